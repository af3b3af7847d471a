from datetime import datetime

import pytest

from controller.scheduler import (
    ProcessingConfig,
    ProcessingController,
    ProcessingMode,
    ProcessingSchedule,
    should_process_annotation,
    should_process_daily,
)
from controller.submissions import SubmissionController
from controller.weeks import WeekCalendar
from odds_client.catalog import CatalogUnavailable, Line
from odds_client.client import OddsResponse
from persistence.database import Database
from prop_engine.models import Bet, BetCategory, BetStatus, Cycle
from prop_engine.oracle import Outcome, StaticOutcomeOracle


WEEK6 = Cycle(season=2025, week=6)
WEEK7 = Cycle(season=2025, week=7)

# Week 7 of 2025 opens on Tuesday 14 October.
ANNOTATION_TIME = datetime(2025, 10, 14, 2, 30)
DAILY_TIME = datetime(2025, 10, 15, 1, 10)

CHIEFS_ML = Line("evt-1:h2h:kansas-city-chiefs", "Kansas City Chiefs", "moneyline", -180, team="Kansas City Chiefs", cycle=WEEK6)
RAIDERS_ML = Line("evt-1:h2h:las-vegas-raiders", "Las Vegas Raiders", "moneyline", 150, team="Las Vegas Raiders", cycle=WEEK6)
KELCE_TD = Line("evt-1:player_anytime_td:travis-kelce", "Travis Kelce", "anytime touchdown", 320, cycle=WEEK6)


class DummyLineSource:
    def __init__(self, lines=(), error=None):
        self.lines = list(lines)
        self.error = error

    def list_lines(self, cycle):
        if self.error:
            raise self.error
        return [line for line in self.lines if line.cycle == cycle]


class RecordingOddsClient:
    def __init__(self):
        self.calls = []

    def get_odds(self, regions, bookmakers, markets, odds_format="american", date_format="iso"):
        self.calls.append(tuple(bookmakers))
        return OddsResponse([], 500, None)

    def get_event_odds(self, event_id, regions, bookmakers, markets, odds_format="american", date_format="iso"):
        self.calls.append(tuple(bookmakers))
        return OddsResponse({}, 499, None)


def seeded_db(tmp_path):
    db = Database(tmp_path / "bozo.db")
    db.upsert_cohort("sunday-crew", min_price=-200, max_price=500)
    db.add_member("sunday-crew", "alice")
    db.add_member("sunday-crew", "bob")
    db.upsert_cohort("office")
    db.add_member("office", "carol")
    return db


def place(db, member, cohort, line, category=BetCategory.RISK):
    return db.insert_bet(
        Bet(
            member_id=member,
            cohort_id=cohort,
            cycle=line.cycle,
            raw_text=line.label(),
            category=category,
            price=line.price,
            line=line,
            confidence=1.0,
        )
    )


def test_should_process_daily():
    schedule = ProcessingSchedule()

    assert should_process_daily(datetime(2025, 10, 15, 1, 30), schedule) is True
    assert should_process_daily(datetime(2025, 10, 15, 2, 0), schedule) is False


def test_should_process_annotation():
    schedule = ProcessingSchedule()

    assert should_process_annotation(ANNOTATION_TIME, schedule) is True
    assert should_process_annotation(datetime(2025, 10, 14, 3, 0), schedule) is False
    assert should_process_annotation(datetime(2025, 10, 15, 2, 0), schedule) is False


def test_config_profile_round_trip(tmp_path):
    db = Database(tmp_path / "profiles.db")
    config = ProcessingConfig(
        schedule=ProcessingSchedule(daily_hour=3, interval_seconds=60),
        season=2025,
        annotation_timeout_hours=12,
        bookmakers=["draftkings"],
    )

    db.save_profile("late night", config.to_profile())

    assert ProcessingConfig.from_profile(db.get_profile("late night")) == config
    assert ProcessingConfig.from_profile({}) == ProcessingConfig()


def test_refresh_catalog_records_lines(tmp_path):
    db = seeded_db(tmp_path)
    controller = ProcessingController(db, StaticOutcomeOracle(), DummyLineSource([CHIEFS_ML, RAIDERS_ML]))

    assert controller.refresh_catalog(WEEK6) == 2
    assert controller.refresh_catalog(WEEK6) == 0
    assert db.list_lines(WEEK6) == [CHIEFS_ML, RAIDERS_ML]


def test_refresh_catalog_survives_outage(tmp_path):
    db = seeded_db(tmp_path)
    source = DummyLineSource(error=CatalogUnavailable("provider down"))
    controller = ProcessingController(db, StaticOutcomeOracle(), source)

    assert controller.refresh_catalog(WEEK6) == 0
    assert any(r.message == "Line catalog refresh failed" for r in db.fetch_logs())


def test_daily_resolution_updates_standings_and_logs(tmp_path):
    db = seeded_db(tmp_path)
    alice = place(db, "alice", "sunday-crew", CHIEFS_ML)
    bob = place(db, "bob", "sunday-crew", RAIDERS_ML)
    oracle = StaticOutcomeOracle({CHIEFS_ML.source_id: Outcome.UNDER, RAIDERS_ML.source_id: Outcome.OVER})
    controller = ProcessingController(db, oracle)

    result = controller.run_daily_resolution(WEEK6)

    assert result.resolved == {alice.id: BetStatus.MISS, bob.id: BetStatus.HIT}
    standings = {entry.member_id: entry for entry in db.get_standings(cohort_id="sunday-crew")}
    assert standings["alice"].misses == 1
    assert standings["bob"].hits == 1

    summary = [r for r in db.fetch_logs() if r.message == "Resolution pass completed"]
    assert summary[-1].context["misses"] == 1

    assert controller.run_daily_resolution(WEEK6).succeeded == 0


def test_round_trip_from_submission_to_worst_miss(tmp_path):
    db = seeded_db(tmp_path)
    db.record_lines([CHIEFS_ML, RAIDERS_ML])
    submissions = SubmissionController(db)

    submitted = submissions.submit("alice", "sunday-crew", WEEK6, "Chiefs Moneyline", now=datetime(2025, 10, 8, 12, 0))
    assert submitted.accepted
    assert submitted.bet.price == -180
    assert submitted.match.found is True
    assert submitted.match.confidence == 1.0

    oracle = StaticOutcomeOracle({CHIEFS_ML.source_id: Outcome.UNDER})
    controller = ProcessingController(db, oracle)
    controller.run_daily_resolution(WEEK6)

    (alice,) = db.get_standings(cohort_id="sunday-crew")
    assert (alice.member_id, alice.misses) == ("alice", 1)

    annotation = controller.run_weekly_annotation(WEEK6, ANNOTATION_TIME)
    assert annotation.status == "designated"
    assert set(annotation.designations) == {"sunday-crew", None}
    worst = db.get_worst_miss(WEEK6, "sunday-crew")
    assert worst.member_id == "alice"
    assert worst.price == -180
    assert db.worst_miss_record(WEEK6, "sunday-crew").designated_cycle == WEEK7


def test_annotation_picks_worst_miss_per_cohort_and_overall(tmp_path):
    db = seeded_db(tmp_path)
    place(db, "alice", "sunday-crew", CHIEFS_ML)
    place(db, "bob", "sunday-crew", RAIDERS_ML)
    place(db, "carol", "office", KELCE_TD)
    oracle = StaticOutcomeOracle(
        {
            CHIEFS_ML.source_id: Outcome.UNDER,
            RAIDERS_ML.source_id: Outcome.UNDER,
            KELCE_TD.source_id: Outcome.UNDER,
        }
    )
    controller = ProcessingController(db, oracle)
    controller.run_daily_resolution(WEEK6)

    annotation = controller.run_weekly_annotation(WEEK6, ANNOTATION_TIME)

    assert annotation.designations["sunday-crew"].member_id == "bob"
    assert annotation.designations["office"].member_id == "carol"
    assert annotation.designations[None].member_id == "carol"
    assert db.get_worst_miss(WEEK6).price == 320


def test_annotation_waits_for_pending_bets_until_timeout(tmp_path):
    db = seeded_db(tmp_path)
    place(db, "alice", "sunday-crew", CHIEFS_ML)
    place(db, "bob", "sunday-crew", RAIDERS_ML)
    controller = ProcessingController(db, StaticOutcomeOracle({CHIEFS_ML.source_id: Outcome.UNDER}))
    controller.run_daily_resolution(WEEK6)

    waiting = controller.run_weekly_annotation(WEEK6, ANNOTATION_TIME)
    assert waiting.status == "waiting"
    assert waiting.pending == 1
    assert db.get_worst_miss(WEEK6, "sunday-crew") is None

    late = controller.run_weekly_annotation(WEEK6, datetime(2025, 10, 15, 1, 0))
    assert late.status == "designated"
    assert late.pending == 1
    assert db.get_worst_miss(WEEK6, "sunday-crew").member_id == "alice"


def test_annotation_without_misses(tmp_path):
    db = seeded_db(tmp_path)
    place(db, "bob", "sunday-crew", RAIDERS_ML)
    controller = ProcessingController(db, StaticOutcomeOracle({RAIDERS_ML.source_id: Outcome.OVER}))
    controller.run_daily_resolution(WEEK6)

    assert controller.run_weekly_annotation(WEEK6, ANNOTATION_TIME).status == "no_miss"


def test_run_automated_annotation_slot(tmp_path):
    db = seeded_db(tmp_path)
    place(db, "alice", "sunday-crew", CHIEFS_ML)
    controller = ProcessingController(db, StaticOutcomeOracle({CHIEFS_ML.source_id: Outcome.UNDER}))
    controller.run_daily_resolution(WEEK6)

    run = controller.run_automated(ANNOTATION_TIME)

    assert run.mode is ProcessingMode.ANNOTATION
    assert run.cycle == WEEK6
    assert run.annotation.status == "designated"
    assert controller.run_automated(ANNOTATION_TIME).mode is ProcessingMode.NONE


def test_run_automated_daily_slot_resolves_both_open_weeks(tmp_path):
    db = seeded_db(tmp_path)
    place(db, "alice", "sunday-crew", CHIEFS_ML)
    controller = ProcessingController(db, StaticOutcomeOracle({CHIEFS_ML.source_id: Outcome.OVER}))

    run = controller.run_automated(DAILY_TIME)

    assert run.mode is ProcessingMode.DAILY
    assert run.cycle == WEEK7
    assert [result.cycle for result in run.resolutions] == [WEEK6, WEEK7]
    assert run.resolutions[0].succeeded == 1
    assert controller.run_automated(DAILY_TIME).mode is ProcessingMode.NONE


def test_run_automated_retries_waiting_annotation(tmp_path):
    db = seeded_db(tmp_path)
    place(db, "alice", "sunday-crew", CHIEFS_ML)
    oracle = StaticOutcomeOracle()
    controller = ProcessingController(db, oracle)

    first = controller.run_automated(ANNOTATION_TIME)
    assert first.annotation.status == "waiting"

    oracle.record(CHIEFS_ML.source_id, Outcome.UNDER)
    controller.run_daily_resolution(WEEK6)

    retry = controller.run_automated(datetime(2025, 10, 14, 3, 0))
    assert retry.mode is ProcessingMode.ANNOTATION
    assert retry.annotation.status == "designated"


def test_run_automated_outside_configured_season(tmp_path):
    db = seeded_db(tmp_path)
    controller = ProcessingController(db, StaticOutcomeOracle(), config=ProcessingConfig(season=2024))

    assert controller.run_automated(DAILY_TIME).mode is ProcessingMode.NONE


def test_start_and_stop(tmp_path):
    db = seeded_db(tmp_path)
    controller = ProcessingController(db, StaticOutcomeOracle())

    controller.start()
    try:
        assert controller.is_running()
        with pytest.raises(RuntimeError):
            controller.start()
    finally:
        controller.stop()

    assert not controller.is_running()
    messages = [r.message for r in db.fetch_logs()]
    assert "Automated processing started" in messages
    assert "Automated processing stopped" in messages


def test_configured_bookmakers_reach_the_odds_client(tmp_path):
    db = seeded_db(tmp_path)
    client = RecordingOddsClient()
    config = ProcessingConfig(bookmakers=["draftkings", "betmgm"])
    controller = ProcessingController(db, StaticOutcomeOracle(), config=config, client=client)

    assert controller.refresh_catalog(WEEK7) == 0
    assert client.calls == [("draftkings", "betmgm")]


def test_submissions_and_processing_share_the_calendar_clock(tmp_path):
    db = seeded_db(tmp_path)
    calendar = WeekCalendar(clock=lambda: DAILY_TIME)
    controller = ProcessingController(db, StaticOutcomeOracle(), calendar=calendar)
    submissions = SubmissionController(db, calendar=calendar)

    run = controller.run_automated()
    submitted = submissions.submit("alice", "sunday-crew", run.cycle, "Some obscure thing", price=150)

    assert run.mode is ProcessingMode.DAILY
    assert run.cycle == WEEK7
    assert submitted.accepted


def test_claimed_slots_keep_only_the_latest_hour(tmp_path):
    db = seeded_db(tmp_path)
    controller = ProcessingController(db, StaticOutcomeOracle())

    for day in range(15, 22):
        assert controller.run_automated(datetime(2025, 10, day, 1, 5)).mode is ProcessingMode.DAILY

    assert controller._completed == {ProcessingMode.DAILY: "2025-10-21T01"}
