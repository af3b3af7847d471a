"""Tiered matching of free-text bets against the line catalog.

Each tier scans the whole catalog in order; the first tier that yields a
candidate wins and, within a tier, the first catalog entry wins. Tiers are
listed from most to least confident, so this also returns the highest
confidence candidate overall.

=====  =================================================================  ====
Tier   Condition                                                          Conf
=====  =================================================================  ====
1      canonical text equals an entry key (subject, team, category, line) 1.0
1b     whole-game category plus the same team                             1.0
2      subject without trailing team plus category                        0.9
2b     subject only, no category in the text                              0.8
3      category only                                                      0.7
4      subject contained in the entry subject, or the reverse             0.5
=====  =================================================================  ====
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Callable, Iterable, List, Optional, Sequence, Tuple

from normalize.markets import CATEGORY_VOCABULARY, WHOLE_GAME_CATEGORIES, categories_for_hint
from normalize.text import (
    Extraction,
    canonicalize,
    extract,
    find_teams,
    format_threshold,
    match_key,
    strip_team,
)
from odds_client.catalog import CatalogUnavailable, Line, LineSource
from prop_engine.models import Cycle


MIN_CONFIDENCE = 0.5
MAX_SUGGESTIONS = 5

NO_MATCH_WARNING = (
    'Unable to find a matching prop for "{text}". '
    "Please check the spelling or try one of the suggestions below."
)
UNAVAILABLE_WARNING = "Unable to fetch line data. Please enter your prop bet and odds manually."


@dataclass
class MatchResult:
    found: bool
    line: Optional[Line] = None
    confidence: float = 0.0
    suggestions: List[str] = field(default_factory=list)
    warning: Optional[str] = None
    catalog_unavailable: bool = False
    tier: Optional[str] = None

    @property
    def price(self) -> Optional[int]:
        return self.line.price if self.line else None


@dataclass(frozen=True)
class _Entry:
    line: Line
    subject: str
    core_subject: str
    team: Optional[str]
    teams: Tuple[str, ...]
    category: str
    keys: Tuple[str, ...]


Tier = Callable[[Extraction, _Entry], bool]


def _exact(extraction: Extraction, entry: _Entry) -> bool:
    return bool(extraction.key) and extraction.key in entry.keys


def _whole_game(extraction: Extraction, entry: _Entry) -> bool:
    if extraction.category not in WHOLE_GAME_CATEGORIES or not extraction.subject:
        return False
    if entry.category != extraction.category:
        return False
    team = extraction.team or extraction.subject
    # Totals are listed per matchup, so either side of the game counts.
    return team == (entry.team or entry.subject) or team in entry.teams


def _subject_and_category(extraction: Extraction, entry: _Entry) -> bool:
    if not extraction.subject or not extraction.category:
        return False
    core = strip_team(extraction.subject, extraction.team)
    return entry.core_subject == core and entry.category == extraction.category


def _subject_only(extraction: Extraction, entry: _Entry) -> bool:
    if not extraction.subject or extraction.category:
        return False
    return entry.core_subject == strip_team(extraction.subject, extraction.team)


def _category_only(extraction: Extraction, entry: _Entry) -> bool:
    return bool(extraction.category) and entry.category == extraction.category


def _partial_subject(extraction: Extraction, entry: _Entry) -> bool:
    if not extraction.subject or not entry.subject:
        return False
    search = strip_team(extraction.subject, extraction.team)
    return search in entry.subject or entry.subject in search


TIERS: Sequence[Tuple[str, float, Tier]] = (
    ("exact", 1.0, _exact),
    ("whole_game", 1.0, _whole_game),
    ("subject_category", 0.9, _subject_and_category),
    ("subject", 0.8, _subject_only),
    ("category", 0.7, _category_only),
    ("partial", 0.5, _partial_subject),
)


def match(raw_text: Optional[str], lines: Iterable[Line]) -> MatchResult:
    """Resolve ``raw_text`` to a catalog line, or explain why it could not."""

    extraction = extract(raw_text)
    entries = [_entry(line) for line in lines]

    for tier, confidence, condition in TIERS:
        if confidence < MIN_CONFIDENCE:
            break
        for entry in entries:
            if condition(extraction, entry):
                return MatchResult(found=True, line=entry.line, confidence=confidence, tier=tier)

    return MatchResult(
        found=False,
        suggestions=suggest(extraction, entries),
        warning=NO_MATCH_WARNING.format(text=(raw_text or "").strip()),
    )


def suggest(extraction: Extraction, entries: Sequence[_Entry] = ()) -> List[str]:
    """Subject x category combinations the member may have meant."""

    catalog_categories = [entry.category for entry in entries]
    suggestions: List[str] = []
    if extraction.subject:
        categories = categories_for_hint(extraction.hint) + catalog_categories + list(CATEGORY_VOCABULARY)
        if extraction.category:
            categories.insert(0, extraction.category)
        combos = (f"{extraction.subject} {category}" for category in categories)
    elif extraction.category:
        combos = (f"{entry.subject} {extraction.category}" for entry in entries)
    else:
        combos = iter(())

    for combo in combos:
        if combo not in suggestions:
            suggestions.append(combo)
        if len(suggestions) >= MAX_SUGGESTIONS:
            break
    return suggestions


def _entry(line: Line) -> _Entry:
    subject = canonicalize(line.subject)
    team = canonicalize(line.team) if line.team else None
    category = canonicalize(line.category)
    core = strip_team(subject, team)

    names = [subject]
    if team and team != subject and not subject.endswith(f" {team}"):
        names.insert(0, f"{subject} {team}")
    if core != subject:
        names.append(core)
    keys = []
    for name in names:
        keys.append(match_key(f"{name} {category}"))
        if line.threshold:
            keys.append(match_key(f"{name} {category} {format_threshold(line.threshold)}"))
    return _Entry(
        line=line,
        subject=subject,
        core_subject=core,
        team=team,
        teams=tuple(find_teams(subject)),
        category=category,
        keys=tuple(keys),
    )


class MatchingEngine:
    """Runs ``match`` against a line source, keeping outages apart from misses."""

    def __init__(self, source: LineSource) -> None:
        self._source = source

    def match(self, raw_text: Optional[str], cycle: Cycle) -> MatchResult:
        try:
            lines = self._source.list_lines(cycle)
        except CatalogUnavailable:
            return MatchResult(
                found=False,
                suggestions=suggest(extract(raw_text)),
                warning=UNAVAILABLE_WARNING,
                catalog_unavailable=True,
            )
        return match(raw_text, lines)
