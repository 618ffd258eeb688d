# PATH: core/math.py
"""
Math utilities for the Salad operator.

Safe unit conversions (no float money).
"""

from decimal import Decimal, InvalidOperation, ROUND_DOWN
from typing import Union

from core.constants import GRAINS_PER_ENG


def safe_decimal(value: Union[str, int, float, Decimal, None], default: Decimal = Decimal("0")) -> Decimal:
    """
    Safely convert value to Decimal.

    Args:
        value: Value to convert
        default: Default if conversion fails

    Returns:
        Decimal value
    """
    if value is None:
        return default

    try:
        if isinstance(value, Decimal):
            return value
        return Decimal(str(value))
    except (InvalidOperation, ValueError, TypeError):
        return default


def to_grains(eng: Union[str, int, float, Decimal]) -> int:
    """
    Convert an ENG amount to grains, truncating sub-grain dust.

    Example: to_grains("0.001") -> 100000
    """
    grains = safe_decimal(eng) * GRAINS_PER_ENG
    return int(grains.quantize(Decimal("1"), rounding=ROUND_DOWN))


def task_gas_limit(base: int, per_participant: int, participants: int) -> int:
    """Task gas budget that scales linearly with deal size."""
    return base + per_participant * participants
