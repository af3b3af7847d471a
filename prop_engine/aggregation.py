"""Worst-miss selection and standings roll-up."""

from __future__ import annotations

from dataclasses import dataclass, replace
from decimal import Decimal
from typing import Iterable, List, Optional

from prop_engine.models import Bet, BetCategory, BetStatus, Cycle
from prop_engine.odds import implied_probability


SORT_KEYS = ("misses", "hits", "miss_rate")


@dataclass(frozen=True)
class StandingEntry:
    member_id: str
    cohort_id: Optional[str] = None
    hits: int = 0
    misses: int = 0
    pushes: int = 0
    voids: int = 0
    risk_hits: int = 0
    risk_misses: int = 0
    safe_hits: int = 0
    safe_misses: int = 0

    @property
    def miss_rate(self) -> float:
        decided = self.hits + self.misses
        return self.misses / decided if decided else 0.0

    def merge(self, other: "StandingEntry") -> "StandingEntry":
        return replace(
            self,
            hits=self.hits + other.hits,
            misses=self.misses + other.misses,
            pushes=self.pushes + other.pushes,
            voids=self.voids + other.voids,
            risk_hits=self.risk_hits + other.risk_hits,
            risk_misses=self.risk_misses + other.risk_misses,
            safe_hits=self.safe_hits + other.safe_hits,
            safe_misses=self.safe_misses + other.safe_misses,
        )


@dataclass(frozen=True)
class WorstMiss:
    cycle: Cycle
    cohort_id: Optional[str]
    bet: Bet
    designated_cycle: Cycle
    implied_probability: Optional[Decimal] = None

    @property
    def member_id(self) -> str:
        return self.bet.member_id


def compute_worst_miss(bets: Iterable[Bet]) -> Optional[Bet]:
    """The RISK miss with the longest odds; the first one seen wins ties.

    Misses without a price cannot be ranked and are left out.
    """

    worst: Optional[Bet] = None
    for bet in bets:
        if bet.status is not BetStatus.MISS or bet.category is not BetCategory.RISK:
            continue
        if bet.price is None:
            continue
        if worst is None or bet.price > worst.price:
            worst = bet
    return worst


def build_worst_miss(cycle: Cycle, cohort_id: Optional[str], bet: Bet) -> WorstMiss:
    return WorstMiss(
        cycle=cycle,
        cohort_id=cohort_id,
        bet=bet,
        designated_cycle=cycle.next(),
        implied_probability=implied_probability(bet.price),
    )


def rollup(entry: StandingEntry, status: BetStatus, category: BetCategory) -> StandingEntry:
    """Count one terminal bet into ``entry``."""

    risk = category is BetCategory.RISK
    if status is BetStatus.HIT:
        if risk:
            return replace(entry, hits=entry.hits + 1, risk_hits=entry.risk_hits + 1)
        return replace(entry, hits=entry.hits + 1, safe_hits=entry.safe_hits + 1)
    if status is BetStatus.MISS:
        if risk:
            return replace(entry, misses=entry.misses + 1, risk_misses=entry.risk_misses + 1)
        return replace(entry, misses=entry.misses + 1, safe_misses=entry.safe_misses + 1)
    if status is BetStatus.PUSH:
        return replace(entry, pushes=entry.pushes + 1)
    if status is BetStatus.VOID:
        return replace(entry, voids=entry.voids + 1)
    raise ValueError(f"Cannot roll up a bet in status {status.value}")


def sort_standings(entries: Iterable[StandingEntry], key: str = "misses") -> List[StandingEntry]:
    if key not in SORT_KEYS:
        raise ValueError(f"Unknown standings sort key {key!r}; expected one of {', '.join(SORT_KEYS)}")
    ordered = sorted(entries, key=lambda entry: entry.member_id)
    return sorted(ordered, key=lambda entry: getattr(entry, key), reverse=True)
