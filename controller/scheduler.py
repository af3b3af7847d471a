"""Resolution scheduling and orchestration."""

from __future__ import annotations

import threading
import time
from dataclasses import asdict, dataclass, field
from datetime import datetime, timedelta
from enum import Enum
from typing import Dict, List, Optional, Set, Tuple

from controller.weeks import WeekCalendar
from odds_client.catalog import CatalogUnavailable, LineSource
from odds_client.client import DEFAULT_BOOKMAKERS, OddsApiClient, OddsApiLineSource
from persistence.database import Database
from prop_engine.aggregation import WorstMiss, build_worst_miss, compute_worst_miss
from prop_engine.models import BetStatus, Cycle
from prop_engine.oracle import OutcomeOracle
from prop_engine.resolution import BatchResult, resolve_cycle


TUESDAY = 1


class ProcessingMode(str, Enum):
    NONE = "none"
    DAILY = "daily"
    ANNOTATION = "annotation"


@dataclass
class ProcessingSchedule:
    daily_hour: int = 1
    annotation_weekday: int = TUESDAY
    annotation_hour: int = 2
    interval_seconds: int = 300


@dataclass
class ProcessingConfig:
    schedule: ProcessingSchedule = field(default_factory=ProcessingSchedule)
    season: Optional[int] = None
    annotation_timeout_hours: int = 24
    bookmakers: List[str] = field(default_factory=lambda: list(DEFAULT_BOOKMAKERS))
    refresh_catalog: bool = True

    def to_profile(self) -> dict:
        return asdict(self)

    @classmethod
    def from_profile(cls, payload: dict) -> "ProcessingConfig":
        schedule = ProcessingSchedule(**(payload.get("schedule") or {}))
        return cls(
            schedule=schedule,
            season=payload.get("season"),
            annotation_timeout_hours=int(payload.get("annotation_timeout_hours", 24)),
            bookmakers=list(payload.get("bookmakers") or DEFAULT_BOOKMAKERS),
            refresh_catalog=bool(payload.get("refresh_catalog", True)),
        )


@dataclass
class AnnotationResult:
    """Outcome of a worst-miss designation run."""

    cycle: Cycle
    status: str
    designations: Dict[Optional[str], WorstMiss] = field(default_factory=dict)
    pending: int = 0
    error: Optional[str] = None


@dataclass
class AutomatedRun:
    mode: ProcessingMode
    cycle: Optional[Cycle] = None
    resolutions: List[BatchResult] = field(default_factory=list)
    annotation: Optional[AnnotationResult] = None


def should_process_daily(now: datetime, schedule: ProcessingSchedule) -> bool:
    return now.hour == schedule.daily_hour


def should_process_annotation(now: datetime, schedule: ProcessingSchedule) -> bool:
    return now.weekday() == schedule.annotation_weekday and now.hour == schedule.annotation_hour


class ProcessingController:
    def __init__(
        self,
        database: Database,
        oracle: OutcomeOracle,
        line_source: Optional[LineSource] = None,
        calendar: Optional[WeekCalendar] = None,
        config: Optional[ProcessingConfig] = None,
        client: Optional[OddsApiClient] = None,
    ) -> None:
        self._db = database
        self._oracle = oracle
        self._calendar = calendar or WeekCalendar()
        self._config = config or ProcessingConfig()
        if line_source is None and client is not None:
            line_source = OddsApiLineSource(client, self._calendar, bookmakers=self._config.bookmakers)
        self._line_source = line_source
        self._thread: Optional[threading.Thread] = None
        self._stop_event = threading.Event()
        self._completed: Dict[ProcessingMode, str] = {}
        self._awaiting: Set[Cycle] = set()

    @property
    def config(self) -> ProcessingConfig:
        return self._config

    def refresh_catalog(self, cycle: Cycle) -> int:
        if self._line_source is None:
            return 0
        try:
            lines = self._line_source.list_lines(cycle)
        except CatalogUnavailable as exc:
            self._db.log(
                "warning",
                "Line catalog refresh failed",
                {"season": cycle.season, "week": cycle.week, "error": str(exc)},
            )
            return 0
        changed = self._db.record_lines(lines)
        self._db.log(
            "info",
            "Line catalog refreshed",
            {"season": cycle.season, "week": cycle.week, "lines": len(lines), "changed": changed},
        )
        return changed

    def run_daily_resolution(self, cycle: Cycle) -> BatchResult:
        result = resolve_cycle(self._db, self._oracle, cycle)
        for failure in result.failures:
            self._db.log(
                "error",
                "Bet resolution failed",
                {
                    "bet_id": failure.bet_id,
                    "season": cycle.season,
                    "week": cycle.week,
                    "error_type": failure.error_type,
                    "error": failure.message,
                },
            )
        self._db.log("info", "Resolution pass completed", result.summary())
        return result

    def run_weekly_annotation(self, cycle: Cycle, now: Optional[datetime] = None) -> AnnotationResult:
        """Designate the worst miss of ``cycle`` for every cohort and overall.

        While bets are still pending the designation waits, until the week
        window has been closed for longer than the annotation timeout.
        """

        now = now or self._calendar.now()
        try:
            bets = self._db.bets_for_cycle(cycle)
        except Exception as exc:
            self._db.log("error", "Worst miss annotation failed", {"week": cycle.week, "error": str(exc)})
            return AnnotationResult(cycle=cycle, status="failed", error=str(exc))

        pending = sum(1 for bet in bets if bet.status is BetStatus.PENDING)
        deadline = self._calendar.week_window(cycle).end + timedelta(
            hours=self._config.annotation_timeout_hours
        )
        if pending and now < deadline:
            self._awaiting.add(cycle)
            self._db.log(
                "info",
                "Worst miss annotation waiting for pending bets",
                {"season": cycle.season, "week": cycle.week, "pending": pending, "deadline": deadline},
            )
            return AnnotationResult(cycle=cycle, status="waiting", pending=pending)
        self._awaiting.discard(cycle)

        result = AnnotationResult(cycle=cycle, status="no_miss", pending=pending)
        groups: List[Tuple[Optional[str], list]] = [
            (cohort_id, [bet for bet in bets if bet.cohort_id == cohort_id])
            for cohort_id in sorted({bet.cohort_id for bet in bets})
        ]
        groups.append((None, bets))
        for cohort_id, cohort_bets in groups:
            worst = compute_worst_miss(cohort_bets)
            if worst is None:
                continue
            record = build_worst_miss(cycle, cohort_id, worst)
            try:
                self._db.record_worst_miss(record)
            except Exception as exc:
                self._db.log(
                    "error",
                    "Worst miss could not be stored",
                    {"cohort": cohort_id, "bet_id": worst.id, "error": str(exc)},
                )
                result.error = str(exc)
                continue
            result.designations[cohort_id] = record

        if result.designations:
            result.status = "designated"
        elif result.error:
            result.status = "failed"
        if pending:
            self._db.log(
                "warning",
                "Worst miss designated with bets still pending",
                {"season": cycle.season, "week": cycle.week, "pending": pending},
            )
        return result

    def run_automated(self, now: Optional[datetime] = None) -> AutomatedRun:
        """Run whichever job is due at ``now``."""

        now = now or self._calendar.now()
        current = self._current_cycle(now)
        if current is None:
            return AutomatedRun(mode=ProcessingMode.NONE)
        schedule = self._config.schedule

        for cycle in sorted(self._awaiting):
            annotation = self.run_weekly_annotation(cycle, now)
            if annotation.status != "waiting":
                return AutomatedRun(mode=ProcessingMode.ANNOTATION, cycle=cycle, annotation=annotation)

        if should_process_annotation(now, schedule) and self._claim(ProcessingMode.ANNOTATION, now):
            finished = current.previous()
            if finished is not None:
                annotation = self.run_weekly_annotation(finished, now)
                return AutomatedRun(mode=ProcessingMode.ANNOTATION, cycle=finished, annotation=annotation)

        if should_process_daily(now, schedule) and self._claim(ProcessingMode.DAILY, now):
            if self._config.refresh_catalog:
                self.refresh_catalog(current)
            # Monday night games belong to the week that just closed.
            cycles = [cycle for cycle in (current.previous(), current) if cycle is not None]
            results = [self.run_daily_resolution(cycle) for cycle in cycles]
            return AutomatedRun(mode=ProcessingMode.DAILY, cycle=current, resolutions=results)

        return AutomatedRun(mode=ProcessingMode.NONE, cycle=current)

    def start(self) -> None:
        if self._thread and self._thread.is_alive():
            raise RuntimeError("Processing already running")
        self._stop_event.clear()
        self._thread = threading.Thread(target=self._run_loop, name="bozo-board-processing", daemon=True)
        self._thread.start()
        self._db.log("info", "Automated processing started", asdict(self._config.schedule))

    def stop(self) -> None:
        self._stop_event.set()
        if self._thread and self._thread.is_alive():
            self._thread.join(timeout=5)
        self._thread = None
        self._db.log("info", "Automated processing stopped")

    def is_running(self) -> bool:
        return bool(self._thread and self._thread.is_alive())

    def _run_loop(self) -> None:
        interval = self._config.schedule.interval_seconds
        while not self._stop_event.is_set():
            start_time = time.time()
            try:
                self.run_automated()
            except Exception as exc:  # pragma: no cover - best effort logging
                self._db.log("error", "Automated processing pass failed", {"error": str(exc)})
            elapsed = time.time() - start_time
            sleep_for = max(interval - elapsed, 0)
            if sleep_for:
                self._stop_event.wait(timeout=sleep_for)

    def _current_cycle(self, now: datetime) -> Optional[Cycle]:
        current = self._calendar.current_week(now)
        season = self._config.season
        if current is not None and season is not None and current.season != season:
            return None
        return current

    def _claim(self, mode: ProcessingMode, now: datetime) -> bool:
        """Allow each job once per scheduled hour."""

        slot = now.strftime("%Y-%m-%dT%H")
        if self._completed.get(mode) == slot:
            return False
        self._completed[mode] = slot
        return True
