"""Weekly bet submission flow."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from controller.weeks import WeekCalendar
from normalize.text import extract
from odds_client.catalog import LineSource
from persistence.database import Database, DuplicateBet
from prop_engine.matching import MatchingEngine, MatchResult
from prop_engine.models import Bet, BetCategory, Cycle, Side
from prop_engine.validation import validate


ACCEPTED = "accepted"
REJECTED = "rejected"
DUPLICATE = "duplicate"
CLOSED = "closed"


@dataclass
class SubmissionResult:
    status: str
    bet: Optional[Bet] = None
    reason: Optional[str] = None
    match: Optional[MatchResult] = None

    @property
    def accepted(self) -> bool:
        return self.status == ACCEPTED


class SubmissionController:
    def __init__(
        self,
        database: Database,
        line_source: Optional[LineSource] = None,
        calendar: Optional[WeekCalendar] = None,
        enforce_window: bool = True,
    ) -> None:
        self._db = database
        self._engine = MatchingEngine(line_source or database)
        self._calendar = calendar or WeekCalendar()
        self._enforce_window = enforce_window

    def preview(self, raw_text: str, cycle: Cycle) -> MatchResult:
        """Lookup used while the member is still typing; nothing is stored."""

        return self._engine.match(raw_text, cycle)

    def submit(
        self,
        member_id: str,
        cohort_id: str,
        cycle: Cycle,
        raw_text: str,
        category: BetCategory = BetCategory.RISK,
        price: Optional[int] = None,
        now: Optional[datetime] = None,
    ) -> SubmissionResult:
        context = {"member": member_id, "cohort": cohort_id, "season": cycle.season, "week": cycle.week}

        now = now or self._calendar.now()
        if self._enforce_window:
            window = self._calendar.can_submit(cycle, now)
            if not window.allowed:
                self._db.log("info", "Bet submission outside its week", {**context, "reason": window.reason})
                return SubmissionResult(status=CLOSED, reason=window.reason)

        match = self._engine.match(raw_text, cycle)
        line = match.line if match.found else None
        side = extract(raw_text).side
        bet = Bet(
            member_id=member_id,
            cohort_id=cohort_id,
            cycle=cycle,
            raw_text=raw_text,
            category=category,
            side=Side(side) if side else Side.OVER,
            price=line.price if line else price,
            line=line,
            confidence=match.confidence,
        )

        verdict = validate(bet, self._db.get_policy(cohort_id))
        if not verdict.ok:
            self._db.log("warning", "Bet submission rejected", {**context, "reason": verdict.reason})
            return SubmissionResult(status=REJECTED, reason=verdict.reason, match=match)

        try:
            stored = self._db.insert_bet(bet)
        except DuplicateBet as exc:
            self._db.log("info", "Duplicate bet submission", context)
            return SubmissionResult(status=DUPLICATE, reason=str(exc), match=match)

        self._db.log(
            "info",
            "Bet submitted",
            {
                **context,
                "bet_id": stored.id,
                "category": category,
                "price": stored.price,
                "line": stored.line_id,
                "confidence": match.confidence,
                "catalog_unavailable": match.catalog_unavailable,
            },
        )
        return SubmissionResult(status=ACCEPTED, bet=stored, match=match)
