from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Iterable, List, Optional

from ..models import Product

ALL = "all"
# Slider value before any catalog has been loaded.
DEFAULT_PRICE_CEILING = 3000


def base_price(product: Product) -> float:
    """Cheapest option price, 0 when the product has no options."""
    if not product.pricing:
        return 0.0
    return min(p.price for p in product.pricing)


def price_ceiling(products: Iterable[Product]) -> float:
    prices = [base_price(p) for p in products]
    if not prices:
        return DEFAULT_PRICE_CEILING
    # round up to the next hundred plus a buffer
    return math.ceil(max(prices) / 100) * 100 + 500


def filter_catalog(
    products: Iterable[Product],
    type_filter: str = ALL,
    brand_filter: str = ALL,
    ceiling: Optional[float] = None,
) -> List[Product]:
    """Keep products matching type, brand and price ceiling, in input order."""
    out: List[Product] = []
    for p in products:
        if type_filter != ALL and p.type != type_filter:
            continue
        if brand_filter != ALL and p.brand != brand_filter:
            continue
        if ceiling is not None and base_price(p) > ceiling:
            continue
        out.append(p)
    return out


@dataclass
class CatalogView:
    """Catalog as loaded for the visitor, with the values derived per load."""

    products: List[Product] = field(default_factory=list)
    max_price: float = DEFAULT_PRICE_CEILING
    brands: List[str] = field(default_factory=list)
    types: List[str] = field(default_factory=list)

    @classmethod
    def load(cls, products: Iterable[Product]) -> "CatalogView":
        items = list(products)
        types: List[str] = []
        for p in items:
            if p.type and p.type not in types:
                types.append(p.type)
        return cls(
            products=items,
            max_price=price_ceiling(items),
            brands=sorted({p.brand for p in items if p.brand}),
            types=types,
        )

    def filter(self, type_filter: str = ALL, brand_filter: str = ALL, ceiling: Optional[float] = None) -> List[Product]:
        if ceiling is None:
            ceiling = self.max_price
        return filter_catalog(self.products, type_filter, brand_filter, ceiling)
