"""NFL week calendar.

Weeks run Tuesday to Tuesday: a week's window opens on the Tuesday before its
Thursday kickoff and closes when the next week's window opens.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime, time, timedelta
from typing import Callable, Dict, List, Optional

from prop_engine.models import MAX_WEEK, Cycle


# Opening Thursday of each known season.
SEASON_KICKOFFS: Dict[int, date] = {
    2024: date(2024, 9, 5),
    2025: date(2025, 9, 4),
}


@dataclass(frozen=True)
class WeekWindow:
    cycle: Cycle
    start: datetime
    end: datetime

    def contains(self, moment: datetime) -> bool:
        return self.start <= moment < self.end


@dataclass(frozen=True)
class SubmissionWindow:
    allowed: bool
    reason: Optional[str] = None
    current: Optional[Cycle] = None


def labor_day_kickoff(season: int) -> date:
    """Thursday after Labor Day (the first Monday of September)."""

    first = date(season, 9, 1)
    labor_day = first + timedelta(days=(0 - first.weekday()) % 7)
    return labor_day + timedelta(days=3)


class WeekCalendar:
    """Season weeks plus the clock that submissions and processing share.

    The clock returns naive local time; pass ``clock`` to pin it.
    """

    def __init__(
        self,
        kickoffs: Optional[Dict[int, date]] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        self._kickoffs = dict(SEASON_KICKOFFS if kickoffs is None else kickoffs)
        self._clock = clock or datetime.now

    def now(self) -> datetime:
        return self._clock()

    def kickoff(self, season: int) -> date:
        return self._kickoffs.get(season) or labor_day_kickoff(season)

    def week_window(self, cycle: Cycle) -> WeekWindow:
        if not 1 <= cycle.week <= MAX_WEEK:
            raise ValueError(f"Week {cycle.week} is not a valid NFL week")
        opening = datetime.combine(self.kickoff(cycle.season), time()) - timedelta(days=2)
        start = opening + timedelta(weeks=cycle.week - 1)
        return WeekWindow(cycle=cycle, start=start, end=start + timedelta(weeks=1))

    def season_windows(self, season: int) -> List[WeekWindow]:
        return [self.week_window(Cycle(season=season, week=week)) for week in range(1, MAX_WEEK + 1)]

    def current_week(self, now: Optional[datetime] = None) -> Optional[Cycle]:
        now = now or self.now()
        for season in (now.year, now.year - 1):
            first = self.week_window(Cycle(season=season, week=1))
            if now < first.start:
                continue
            week = (now - first.start).days // 7 + 1
            if week <= MAX_WEEK:
                return Cycle(season=season, week=week)
        return None

    def can_submit(self, cycle: Cycle, now: Optional[datetime] = None) -> SubmissionWindow:
        if not 1 <= cycle.week <= MAX_WEEK:
            return SubmissionWindow(False, f"Week {cycle.week} is not a valid NFL week")
        current = self.current_week(now)
        if current is None:
            return SubmissionWindow(False, "NFL season is not currently active")
        if cycle < current:
            return SubmissionWindow(
                False, f"Week {cycle.week} has already passed. Current week is {current.week}", current
            )
        if cycle > current:
            return SubmissionWindow(
                False, f"Week {cycle.week} is in the future. Current week is {current.week}", current
            )
        return SubmissionWindow(True, None, current)
