"""Conversions between major-unit decimal amounts and minor-unit strings."""

from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal, InvalidOperation, localcontext
from typing import Union

from ...domain.errors import InvalidAmountError

AmountInput = Union[str, int, float, Decimal]

# Largest accepted amount is just under 10**MAX_AMOUNT_DIGITS major units
MAX_AMOUNT_DIGITS = 15


def parse_amount(raw: AmountInput) -> Decimal:
    """Parse a caller supplied amount into a finite, strictly positive Decimal."""
    if isinstance(raw, bool) or raw is None:
        raise InvalidAmountError(f"Invalid amount: {raw!r}")
    try:
        # str() keeps 0.1 as 0.1 instead of its binary expansion
        value = Decimal(str(raw).strip()) if not isinstance(raw, Decimal) else raw
    except (InvalidOperation, ValueError) as e:
        raise InvalidAmountError(f"Invalid amount: {raw!r}") from e
    if not value.is_finite() or value <= 0:
        raise InvalidAmountError(f"Amount must be a positive number, got {raw!r}")
    if value.adjusted() >= MAX_AMOUNT_DIGITS:
        raise InvalidAmountError(f"Amount is too large: {raw!r}")
    return value


def to_minor_units(amount: Decimal, asset_scale: int) -> str:
    """Return ``round(amount * 10**asset_scale)`` as a string of digits."""
    if asset_scale < 0:
        raise ValueError("asset_scale must be >= 0")
    with localcontext() as ctx:
        ctx.prec = max(ctx.prec, amount.adjusted() + asset_scale + 2)
        minor = amount.scaleb(asset_scale).quantize(Decimal(1), rounding=ROUND_HALF_UP)
    return format(minor, "f")


def from_minor_units(value: str, asset_scale: int) -> Decimal:
    """Return the major-unit Decimal for a minor-unit integer string."""
    if asset_scale < 0:
        raise ValueError("asset_scale must be >= 0")
    return Decimal(int(value)).scaleb(-asset_scale)
