from __future__ import annotations

import math
import re
import uuid
from decimal import Decimal, ROUND_HALF_UP


def to_decimal(x) -> Decimal:
    if isinstance(x, Decimal):
        return x
    if x is None:
        return Decimal(0)
    return Decimal(str(x))


def money(amount: float, symbol: str = "€", places: int = 0) -> str:
    """Format for display the es-ES way: ``1.260 €``, ``105,50 €``.

    Only the displayed value is rounded; callers keep full precision.
    """
    q = Decimal(10) ** -places
    val = to_decimal(amount).quantize(q, rounding=ROUND_HALF_UP)
    parts = f"{val:.{places}f}".split(".")
    whole = parts[0]
    frac = parts[1] if len(parts) > 1 else ""
    sign = ""
    if whole.startswith("-"):
        sign = "-"
        whole = whole[1:]
    whole_grouped = "{:,}".format(int(whole)).replace(",", ".")
    number = f"{whole_grouped},{frac}" if frac else whole_grouped
    return f"{sign}{number} {symbol}"


def to_float(x) -> float:
    """Parse a form/number value, falling back to 0."""
    if isinstance(x, (int, float)):
        return float(x)
    x = str(x or "").strip().replace(",", ".")
    try:
        value = float(x)
    except ValueError:
        return 0.0
    return value if math.isfinite(value) else 0.0


def short_id() -> str:
    return uuid.uuid4().hex[:9]


def safe_filename(name: str) -> str:
    return re.sub(r"[^a-zA-Z0-9.]", "_", name or "file")
