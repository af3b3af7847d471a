"""Bet status lifecycle.

``PENDING`` moves to exactly one of ``HIT``, ``MISS``, ``PUSH`` or ``VOID``
and never moves again. The store owns atomicity: ``apply_resolution`` only
succeeds for a bet that is still pending, which makes a resolution pass safe
to re-run for the same cycle.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, List, Optional, Protocol

from prop_engine.models import Bet, BetStatus, Cycle
from prop_engine.oracle import OracleReading, Outcome, OutcomeOracle


class BetStore(Protocol):
    def pending_bets(self, cycle: Cycle) -> List[Bet]:
        ...

    def apply_resolution(self, bet_id: int, status: BetStatus, observed_at: datetime) -> bool:
        """Move a pending bet to ``status``; False if it was already terminal."""


@dataclass(frozen=True)
class BatchFailure:
    bet_id: Optional[int]
    error_type: str
    message: str


@dataclass
class BatchResult:
    """Per-item outcome of a resolution pass."""

    cycle: Cycle
    resolved: Dict[int, BetStatus] = field(default_factory=dict)
    unresolved: List[int] = field(default_factory=list)
    skipped: List[int] = field(default_factory=list)
    failures: List[BatchFailure] = field(default_factory=list)

    @property
    def succeeded(self) -> int:
        return len(self.resolved)

    @property
    def failed_ids(self) -> List[int]:
        return [failure.bet_id for failure in self.failures if failure.bet_id is not None]

    @property
    def ok(self) -> bool:
        return not self.failures

    def count(self, status: BetStatus) -> int:
        return sum(1 for value in self.resolved.values() if value is status)

    def summary(self) -> dict:
        return {
            "season": self.cycle.season,
            "week": self.cycle.week,
            "resolved": self.succeeded,
            "hits": self.count(BetStatus.HIT),
            "misses": self.count(BetStatus.MISS),
            "pushes": self.count(BetStatus.PUSH),
            "voids": self.count(BetStatus.VOID),
            "unresolved": len(self.unresolved),
            "skipped": len(self.skipped),
            "failed": len(self.failures),
        }


def status_for(bet: Bet, outcome: Outcome) -> BetStatus:
    """Map an oracle outcome onto ``bet`` according to the side it took."""

    if outcome is Outcome.PUSH:
        return BetStatus.PUSH
    if outcome is Outcome.VOID:
        return BetStatus.VOID
    return BetStatus.HIT if outcome.value == bet.side.value else BetStatus.MISS


def advance(bet: Bet, reading: Optional[OracleReading]) -> Bet:
    """Return ``bet`` moved to its terminal status; a no-op when not applicable."""

    if bet.status.is_terminal or reading is None:
        return bet
    return bet.with_status(status_for(bet, reading.outcome), reading.observed_at)


def resolve_cycle(store: BetStore, oracle: OutcomeOracle, cycle: Cycle) -> BatchResult:
    """Resolve every pending bet of ``cycle`` independently."""

    result = BatchResult(cycle=cycle)
    try:
        pending = store.pending_bets(cycle)
    except Exception as exc:
        result.failures.append(BatchFailure(None, type(exc).__name__, str(exc)))
        return result

    for bet in pending:
        if bet.id is None:
            result.failures.append(
                BatchFailure(None, "ValueError", f"Pending bet of {bet.member_id} has no id")
            )
            continue
        if bet.status.is_terminal:
            result.skipped.append(bet.id)
            continue
        if bet.line_id is None:
            result.unresolved.append(bet.id)
            continue
        try:
            reading = oracle.resolve(bet.line_id)
            updated = advance(bet, reading)
            if updated.status is BetStatus.PENDING:
                result.unresolved.append(bet.id)
                continue
            applied = store.apply_resolution(bet.id, updated.status, updated.resolved_at or datetime.utcnow())
        except Exception as exc:
            result.failures.append(BatchFailure(bet.id, type(exc).__name__, str(exc)))
            continue
        if applied:
            result.resolved[bet.id] = updated.status
        else:
            result.skipped.append(bet.id)
    return result
