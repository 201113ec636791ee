"""Currency and commission-rate arithmetic on integer cents."""
from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal, InvalidOperation

from .errors import ValidationError

CENT = Decimal("1")


def round_cents(value: Decimal) -> int:
    """Round a fractional cent amount half-up to whole cents."""
    return int(value.quantize(CENT, rounding=ROUND_HALF_UP))


def to_cents(value: object, field: str) -> int:
    """Convert a currency amount such as ``15`` or ``"7.50"`` to integer cents."""
    if isinstance(value, bool) or value is None:
        raise ValidationError(f"{field} must be a number")
    try:
        amount = Decimal(str(value))
    except InvalidOperation:
        raise ValidationError(f"{field} must be a number")
    if not amount.is_finite():
        raise ValidationError(f"{field} must be a number")
    return round_cents(amount * 100)


def parse_rate(value: object, field: str) -> Decimal:
    """Commission rates are fractions in [0, 1]."""
    if isinstance(value, bool) or value is None:
        raise ValidationError(f"{field} must be a number between 0 and 1")
    try:
        rate = Decimal(str(value))
    except InvalidOperation:
        raise ValidationError(f"{field} must be a number between 0 and 1")
    if not rate.is_finite() or rate < 0 or rate > 1:
        raise ValidationError(f"{field} must be a number between 0 and 1")
    return rate


def commission_cents(price_cents: int, rate) -> Decimal:
    """Unrounded commission for a line; sums are rounded once at the end."""
    return Decimal(price_cents) * Decimal(str(rate))
