"""
Core Module - Fixed-Point Amounts.

All on-chain amounts are integers in minor units at scale 10^5.
The node's wallet API takes whole-unit decimal strings.
"""

from decimal import Decimal
from typing import Union


AMOUNT_SCALE_DIGITS = 5
AMOUNT_SCALE = 10 ** AMOUNT_SCALE_DIGITS


def format_amount(minor_units: int) -> str:
    """
    Render minor units as '<integer>.<5-digit fractional>'.

    >>> format_amount(1234567)
    '12.34567'
    """
    if minor_units < 0:
        raise ValueError(f"Amount must be non-negative, got {minor_units}")
    whole, frac = divmod(minor_units, AMOUNT_SCALE)
    return f"{whole}.{frac:0{AMOUNT_SCALE_DIGITS}d}"


def to_minor_units(value: Union[int, str, Decimal]) -> int:
    """Parse a node integer field (int or numeric string) into minor units."""
    if isinstance(value, bool):
        raise ValueError(f"Not an amount: {value!r}")
    if isinstance(value, int):
        return value
    parsed = Decimal(str(value))
    if parsed != parsed.to_integral_value():
        raise ValueError(f"Amount in minor units must be integral, got {value!r}")
    return int(parsed)


def to_whole_units(minor_units: int) -> Decimal:
    """Minor units as a Decimal in whole units, for log lines."""
    return Decimal(minor_units) / AMOUNT_SCALE
