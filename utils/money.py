# utils/money.py
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP

CENT = Decimal("0.01")
ZERO = Decimal("0.00")
# largest magnitude a NUMERIC(12, 2) column holds
MAX_AMOUNT = Decimal("9999999999.99")


def to_money(x) -> Decimal:
    """
    Normalize any numeric (int, float, str, Decimal) to a 2-place Decimal.
    Raises ValueError for values that are not numbers or do not fit MAX_AMOUNT.
    """
    if isinstance(x, bool) or x is None:
        raise ValueError(f"not a monetary amount: {x!r}")
    try:
        d = Decimal(str(x).strip()) if not isinstance(x, Decimal) else x
    except (InvalidOperation, ValueError):
        raise ValueError(f"not a monetary amount: {x!r}") from None
    if not d.is_finite():
        raise ValueError(f"not a monetary amount: {x!r}")
    if abs(d) > MAX_AMOUNT:
        raise ValueError(f"amount out of range: {x!r}")
    try:
        return d.quantize(CENT, rounding=ROUND_HALF_UP)
    except InvalidOperation:
        raise ValueError(f"not a monetary amount: {x!r}") from None


def money_str(x) -> str:
    return str(to_money(x if x is not None else 0))


def within_tolerance(a: Decimal, b: Decimal, tolerance: Decimal) -> bool:
    return abs(to_money(a) - to_money(b)) <= tolerance
