"""Core bet records shared by the matching, resolution and aggregation code."""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime
from enum import Enum
from typing import TYPE_CHECKING, Optional

if TYPE_CHECKING:
    from odds_client.catalog import Line


MAX_WEEK = 18


class BetStatus(str, Enum):
    PENDING = "PENDING"
    HIT = "HIT"
    MISS = "MISS"
    PUSH = "PUSH"
    VOID = "VOID"

    @property
    def is_terminal(self) -> bool:
        return self is not BetStatus.PENDING


class BetCategory(str, Enum):
    """RISK is the weekly "bozo" pick, SAFE the "favorite"."""

    RISK = "RISK"
    SAFE = "SAFE"


class Side(str, Enum):
    OVER = "over"
    UNDER = "under"


@dataclass(frozen=True, order=True)
class Cycle:
    """A scoring period: one week of a season."""

    season: int
    week: int

    def next(self) -> "Cycle":
        return Cycle(season=self.season, week=self.week + 1)

    def previous(self) -> Optional["Cycle"]:
        if self.week <= 1:
            return None
        return Cycle(season=self.season, week=self.week - 1)

    def label(self) -> str:
        return f"Week {self.week}, {self.season}"


@dataclass
class Bet:
    member_id: str
    cohort_id: str
    cycle: Cycle
    raw_text: str
    category: BetCategory = BetCategory.RISK
    side: Side = Side.OVER
    price: Optional[int] = None
    line: Optional["Line"] = None
    confidence: float = 0.0
    status: BetStatus = BetStatus.PENDING
    id: Optional[int] = None
    created_at: datetime = field(default_factory=datetime.utcnow)
    resolved_at: Optional[datetime] = None

    @property
    def line_id(self) -> Optional[str]:
        return self.line.source_id if self.line else None

    def with_status(self, status: BetStatus, resolved_at: Optional[datetime] = None) -> "Bet":
        return replace(self, status=status, resolved_at=resolved_at)
