from dataclasses import replace

from odds_client.catalog import CatalogUnavailable, Line, LineCatalog
from prop_engine.matching import UNAVAILABLE_WARNING, MatchingEngine, match
from prop_engine.models import Cycle


CYCLE = Cycle(season=2025, week=7)

ALLEN = Line("evt-1:player_pass_yds:josh-allen", "Josh Allen", "passing yards", -115, 250.5, team="Bills")
CHIEFS_ML = Line("evt-2:h2h:kansas-city-chiefs", "Kansas City Chiefs", "moneyline", -180, team="Kansas City Chiefs")
HENRY = Line("evt-3:player_rush_yds:derrick-henry", "Derrick Henry", "rushing yards", -110, 85.5)
MAHOMES = Line("evt-2:player_pass_yds:patrick-mahomes", "Patrick Mahomes", "passing yards", -110, 275.5)

LINES = [ALLEN, CHIEFS_ML, HENRY]


class FailingSource:
    def list_lines(self, cycle):
        raise CatalogUnavailable("provider down")


def test_exact_match_with_team_and_threshold():
    result = match("Josh Allen (Bills) - Passing Yards 250.5", LINES)

    assert result.found is True
    assert result.line == ALLEN
    assert result.confidence == 1.0
    assert result.tier == "exact"
    assert result.price == -115


def test_team_shorthand_matches_whole_game_line():
    for text in ("Chiefs Moneyline", "KC ML", "Kansas City Chiefs moneyline"):
        result = match(text, LINES)
        assert result.line == CHIEFS_ML, text
        assert result.confidence == 1.0


def test_subject_and_category_without_threshold_order():
    result = match("Josh Allen under 250.5 passing yards", LINES)

    assert result.line == ALLEN
    assert result.confidence == 0.9


def test_subject_only_match():
    result = match("josh allen yards", LINES)

    assert result.line == ALLEN
    assert result.confidence == 0.8
    assert result.tier == "subject"


def test_category_only_match():
    result = match("Lamar Jackson rushing yards", LINES)

    assert result.line == HENRY
    assert result.confidence == 0.7


def test_partial_subject_match():
    result = match("Allen", LINES)

    assert result.line == ALLEN
    assert result.confidence == 0.5


def test_higher_tier_wins_over_catalog_order():
    result = match("Josh Allen passing yards", [MAHOMES, ALLEN])

    assert result.line == ALLEN
    assert result.confidence == 1.0


def test_first_catalog_entry_breaks_ties():
    twin = replace(ALLEN, source_id="evt-9:player_pass_yds:josh-allen", price=-120)

    assert match("josh allen passing yards", [ALLEN, twin]).line == ALLEN
    assert match("josh allen passing yards", [twin, ALLEN]).line == twin


def test_no_match_returns_suggestions():
    result = match("Zzz Nonexistent Player rushing", LINES)

    assert result.found is False
    assert result.line is None
    assert result.confidence == 0.0
    assert "Zzz Nonexistent Player rushing" in result.warning
    assert result.suggestions[0] == "zzz nonexistent player rushing touchdowns"
    assert len(result.suggestions) == 5
    assert len(set(result.suggestions)) == 5
    assert all(s.startswith("zzz nonexistent player ") for s in result.suggestions)


def test_empty_text_never_matches():
    result = match("   ", LINES)

    assert result.found is False
    assert result.suggestions == []


def test_empty_catalog_is_not_an_outage():
    result = match("Chiefs Moneyline", [])

    assert result.found is False
    assert result.catalog_unavailable is False


def test_engine_reports_unavailable_catalog():
    engine = MatchingEngine(FailingSource())

    result = engine.match("Chiefs Moneyline", CYCLE)

    assert result.found is False
    assert result.catalog_unavailable is True
    assert result.warning == UNAVAILABLE_WARNING


def test_engine_reads_catalog_for_cycle():
    catalog = LineCatalog([replace(line, cycle=CYCLE) for line in LINES])
    engine = MatchingEngine(catalog)

    assert engine.match("KC ML", CYCLE).found is True
    assert engine.match("KC ML", Cycle(season=2025, week=8)).found is False


def test_catalog_supersedes_in_place():
    catalog = LineCatalog(LINES)
    moved = replace(ALLEN, price=-130)

    assert catalog.publish(moved) is True
    assert catalog.publish(moved) is False
    assert catalog.lines()[0] == moved
    assert catalog.history(ALLEN.source_id) == [ALLEN]
    assert len(catalog) == 3


def test_team_total_matches_its_own_game():
    bills_total = Line("e1:totals:over", "Miami Dolphins vs Buffalo Bills", "total", -110, 49.5, cycle=CYCLE)
    chiefs_total = Line("e2:totals:over", "Las Vegas Raiders vs Kansas City Chiefs", "total", -105, 47.5, cycle=CYCLE)

    for text in ("Chiefs total", "KC game total", "Raiders total"):
        result = match(text, [bills_total, chiefs_total])
        assert result.line == chiefs_total, text
        assert result.confidence == 1.0
        assert result.tier == "whole_game"

    assert match("Bills under 49.5 total", [bills_total, chiefs_total]).line == bills_total
