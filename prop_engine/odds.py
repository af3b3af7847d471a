"""American odds helpers."""

from __future__ import annotations

from decimal import Decimal, ROUND_HALF_UP
from typing import Optional


class OddsConversionError(ValueError):
    """Raised when an odds value cannot be converted."""


def is_valid_american(american: int) -> bool:
    return american <= -100 or american >= 100


def american_to_decimal(american: int) -> Decimal:
    if not is_valid_american(american):
        raise OddsConversionError(f"{american} is not a valid American price")
    if american > 0:
        return Decimal(american) / Decimal(100) + Decimal(1)
    return Decimal(100) / Decimal(abs(american)) + Decimal(1)


def american_to_probability(american: int) -> Decimal:
    decimal_odds = american_to_decimal(american)
    return (Decimal(1) / decimal_odds).quantize(Decimal("0.0001"), rounding=ROUND_HALF_UP)


def implied_probability(american: Optional[int]) -> Optional[Decimal]:
    """Like ``american_to_probability`` but ``None`` for missing or invalid prices."""

    if american is None:
        return None
    try:
        return american_to_probability(american)
    except OddsConversionError:
        return None


def format_american(american: Optional[int]) -> str:
    if american is None:
        return "n/a"
    return f"+{american}" if american > 0 else str(american)
