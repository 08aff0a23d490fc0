from __future__ import annotations

from typing import List, Optional

from ..i18n import resolve_text
from ..locales import translate
from ..models import ClientData, FinancingPlan, PriceBreakdown, Product, Quote
from ..utils import money


def _num(x: float) -> str:
    return f"{x:g}"


def financing_text(
    breakdown: PriceBreakdown,
    lang: str,
    currency_symbol: str = "€",
    decimals: int = 0,
) -> str:
    """Human-readable payment summary stored with the quote."""
    plan: Optional[FinancingPlan] = breakdown.plan
    if plan is None or breakdown.installment is None:
        return translate("payment.cash", lang)

    def fmt(x: float) -> str:
        return money(x, currency_symbol, decimals)

    text = (
        f"{resolve_text(plan.label, lang)}\n"
        f"{translate('payment.fee', lang)}: {fmt(breakdown.installment)}/{translate('payment.month', lang)}\n"
        f"{translate('payment.total_pay', lang)}: {fmt(breakdown.financed_total)}"
    )
    if not plan.coefficient and plan.commission is not None:
        text += f" ({_num(plan.commission)}%)"
    return text


def extras_list(breakdown: PriceBreakdown, lang: str) -> List[str]:
    """Installation kit first, then each extra with its quantity when > 1."""
    items = [f"{translate('summary.installation', lang)}: {resolve_text(breakdown.kit.name, lang)}"]
    for line in breakdown.extras:
        name = resolve_text(line.extra.name, lang)
        if not name:
            continue
        items.append(f"{name} (x{line.quantity})" if line.quantity > 1 else name)
    return items


def build_quote(
    product: Product,
    breakdown: PriceBreakdown,
    client: ClientData,
    lang: str = "es",
    currency_symbol: str = "€",
    decimals: int = 0,
) -> Quote:
    """Snapshot a priced configuration into an unsaved, pending quote.

    Names are resolved in ``lang`` now and stored as plain text, so later
    catalog or translation edits do not change the quote.
    """
    return Quote(
        product_id=product.id,
        brand=product.brand,
        model=product.model,
        option=resolve_text(breakdown.option.name, lang),
        price=breakdown.total,
        financing=financing_text(breakdown, lang, currency_symbol, decimals),
        extras=extras_list(breakdown, lang),
        client=client.model_copy(deep=True),
        language=lang,
        status="pending",
    )
