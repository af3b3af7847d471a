"""Submission checks applied before a bet is accepted."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import FrozenSet, Optional

from normalize.text import normalize
from prop_engine.models import Bet
from prop_engine.odds import format_american, is_valid_american


@dataclass(frozen=True)
class CohortPolicy:
    """Team-scoped price range and membership. ``None`` bounds are open."""

    cohort_id: str
    min_price: Optional[int] = None
    max_price: Optional[int] = None
    members: FrozenSet[str] = field(default_factory=frozenset)
    name: Optional[str] = None


@dataclass(frozen=True)
class ValidationResult:
    ok: bool
    reason: Optional[str] = None


ACCEPTED = ValidationResult(ok=True)


def validate(bet: Bet, policy: Optional[CohortPolicy]) -> ValidationResult:
    """Fail fast: the first failing check's reason is returned."""

    if not (bet.cohort_id or "").strip():
        return _reject("A team must be selected")
    if policy is None:
        return _reject(f"Team {bet.cohort_id} was not found")

    if not (bet.member_id or "").strip():
        return _reject("A member must be selected")
    if bet.member_id not in policy.members:
        return _reject(f"{bet.member_id} is not a member of team {policy.name or policy.cohort_id}")

    if not normalize(bet.raw_text):
        return _reject("Prop text is required")

    if bet.price is not None:
        price = bet.price
        if policy.min_price is not None and price < policy.min_price:
            return _reject(
                f"Odds {format_american(price)} is below team minimum of {format_american(policy.min_price)}"
            )
        if policy.max_price is not None and price > policy.max_price:
            return _reject(
                f"Odds {format_american(price)} is above team maximum of {format_american(policy.max_price)}"
            )
        if not is_valid_american(price):
            return _reject(f"Odds {price} is not a valid American price")

    return ACCEPTED


def _reject(reason: str) -> ValidationResult:
    return ValidationResult(ok=False, reason=reason)
