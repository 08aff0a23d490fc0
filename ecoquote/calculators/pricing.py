from __future__ import annotations

from typing import List, Optional, Sequence, TypeVar

from ..models import (
    ExtraLine,
    FinancingPlan,
    InstallationKit,
    PriceBreakdown,
    PricedItem,
    PricingOption,
    Product,
    Selection,
)

# Used when a product was saved without options or kits.
DEFAULT_OPTION = PricingOption(id="def", name="Estándar", price=0)
DEFAULT_KIT = InstallationKit(id="k-def", name="Instalación Básica", price=0)

T = TypeVar("T", bound=PricedItem)


def options_of(product: Product) -> List[PricingOption]:
    return list(product.pricing) or [DEFAULT_OPTION]


def kits_of(product: Product) -> List[InstallationKit]:
    return list(product.installation_kits) or [DEFAULT_KIT]


def _pick(items: Sequence[T], item_id: Optional[str]) -> T:
    for item in items:
        if item.id == item_id:
            return item
    return items[0]


def resolve_option(product: Product, selection: Selection) -> PricingOption:
    return _pick(options_of(product), selection.option_id)


def resolve_kit(product: Product, selection: Selection) -> InstallationKit:
    return _pick(kits_of(product), selection.kit_id)


def resolve_plan(product: Product, selection: Selection) -> Optional[FinancingPlan]:
    idx = selection.financing_index
    if idx is None or idx < 0 or idx >= len(product.financing):
        return None
    return product.financing[idx]


def extra_lines(product: Product, selection: Selection) -> List[ExtraLine]:
    by_id = {e.id: e for e in product.extras}
    lines: List[ExtraLine] = []
    for extra_id, qty in selection.extras.items():
        extra = by_id.get(extra_id)
        if extra is None:
            continue
        lines.append(ExtraLine(extra=extra, quantity=qty, subtotal=extra.price * qty))
    return lines


def compute_total(product: Product, selection: Selection) -> float:
    """Option + installation kit + extras. Unknown option/kit ids fall back to
    the first entry; unknown extra ids are ignored."""
    total = resolve_option(product, selection).price + resolve_kit(product, selection).price
    for line in extra_lines(product, selection):
        total += line.subtotal
    return total


def compute_financing(total: float, plan: Optional[FinancingPlan]) -> tuple[float, Optional[float]]:
    """Return ``(financed_total, installment)``; ``plan=None`` is paying in full."""
    if plan is None:
        return total, None
    if plan.coefficient:
        financed = total * plan.coefficient
    elif plan.commission is not None:
        financed = total * (1 + plan.commission / 100)
    else:
        financed = total
    return financed, financed / plan.months


def price_selection(product: Product, selection: Selection) -> PriceBreakdown:
    option = resolve_option(product, selection)
    kit = resolve_kit(product, selection)
    lines = extra_lines(product, selection)
    extras_total = sum(line.subtotal for line in lines)
    total = compute_total(product, selection)
    plan = resolve_plan(product, selection)
    financed, installment = compute_financing(total, plan)
    return PriceBreakdown(
        option=option,
        kit=kit,
        extras=lines,
        extras_total=extras_total,
        total=total,
        plan=plan,
        financed_total=financed,
        installment=installment,
    )
