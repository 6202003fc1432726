"""Decimal helpers for monetary amounts.

Amounts are ``Decimal`` values with two fractional digits. Inputs may arrive
as ``int``, ``str`` or ``Decimal``; ``float`` is accepted only through its
shortest ``repr`` so that ``0.1`` becomes ``Decimal("0.10")`` and not the
binary expansion.
"""

from decimal import ROUND_HALF_UP, Decimal, InvalidOperation

CENT = Decimal("0.01")
ZERO = Decimal("0.00")
HUNDRED = Decimal(100)


def to_money(value) -> Decimal:
    """Coerce *value* to a two-place ``Decimal``; ``None`` becomes zero."""
    if value is None:
        return ZERO
    if isinstance(value, float):
        value = repr(value)
    try:
        amount = value if isinstance(value, Decimal) else Decimal(value)
    except (InvalidOperation, TypeError, ValueError) as exc:
        raise ValueError(f"Not a monetary amount: {value!r}") from exc
    if not amount.is_finite():
        raise ValueError(f"Not a monetary amount: {value!r}")
    return amount.quantize(CENT, rounding=ROUND_HALF_UP)


def to_minor_units(amount: Decimal) -> int:
    """``Decimal("12.34")`` -> ``1234``."""
    return int((to_money(amount) * HUNDRED).to_integral_value(rounding=ROUND_HALF_UP))


def from_minor_units(value: int | None) -> Decimal:
    """``1234`` -> ``Decimal("12.34")``."""
    if value is None:
        return ZERO
    return (Decimal(int(value)) / HUNDRED).quantize(CENT)
