"""
Balance unit conversion.

Plans only ever carry integer minor units. Decimal is used to parse user
amounts and to render balances; floats are never involved.
"""

from decimal import ROUND_DOWN, Decimal, InvalidOperation, localcontext
from typing import Union

from .exceptions import ValidationError


def _shift(value: Decimal, places: int) -> Decimal:
    """value * 10**places without rounding to the context precision."""
    with localcontext() as ctx:
        ctx.prec = max(ctx.prec, len(value.as_tuple().digits) + abs(places) + 1)
        return value.scaleb(places)


def to_minor_units(amount: Union[str, int, Decimal], decimals: int) -> int:
    """
    Convert a token amount ("650", "0.5") to minor units.

    Digits beyond the network's precision are truncated. The result must be
    strictly positive.
    """
    if isinstance(amount, bool) or isinstance(amount, float):
        raise ValidationError(f"Amount must be a decimal string or integer, got {amount!r}")
    try:
        value = Decimal(str(amount).strip())
    except InvalidOperation:
        raise ValidationError(f"Invalid amount: {amount!r}")
    if not value.is_finite():
        raise ValidationError(f"Invalid amount: {amount!r}")

    minor = int(_shift(value, decimals).to_integral_value(rounding=ROUND_DOWN))
    if minor <= 0:
        raise ValidationError(f"Amount must be positive, got {amount}")
    return minor


def from_minor_units(minor: int, decimals: int) -> Decimal:
    return _shift(Decimal(minor), -decimals)


def format_balance(minor: int, decimals: int, symbol: str = "", places: int = 4) -> str:
    """Render minor units as e.g. '650.0000 KSM'."""
    quantum = Decimal(1).scaleb(-places)
    text = f"{from_minor_units(minor, decimals).quantize(quantum, rounding=ROUND_DOWN):f}"
    return f"{text} {symbol}" if symbol else text
