"""Betting-term aliases and the category vocabulary."""

from __future__ import annotations

import re
from typing import Dict, List, Optional, Tuple


# Canonical categories recognised in free text, kept longest-first so that
# "passing touchdowns" wins over "touchdowns" during containment checks.
CATEGORY_VOCABULARY: List[str] = sorted(
    [
        "passing yards",
        "rushing yards",
        "receiving yards",
        "passing touchdowns",
        "rushing touchdowns",
        "receiving touchdowns",
        "anytime touchdown",
        "touchdowns",
        "receptions",
        "interceptions",
        "completions",
        "passing attempts",
        "rushing attempts",
        "moneyline",
        "spread",
        "total",
    ],
    key=lambda phrase: (-len(phrase), phrase),
)

WHOLE_GAME_CATEGORIES = frozenset({"moneyline", "spread", "total"})

# Words that usually start the prop part of "Player Name Prop Type".
PROP_INDICATORS = frozenset(
    {
        "passing",
        "rushing",
        "receiving",
        "yards",
        "touchdowns",
        "touchdown",
        "receptions",
        "completions",
        "attempts",
        "interceptions",
        "anytime",
    }
)

_CATEGORY_ALIASES: Dict[str, List[str]] = {
    "moneyline": ["ml", "money line"],
    "spread": ["point spread", "pts spread"],
    "total": ["game total", "points total"],
    "passing yards": ["pass yds", "pass yards", "passing yds", "py"],
    "rushing yards": ["rush yds", "rush yards", "rushing yds"],
    "receiving yards": ["rec yds", "rec yards", "receiving yds", "reception yards"],
    "passing touchdowns": ["pass tds", "passing tds", "passing td", "pass td"],
    "rushing touchdowns": ["rush tds", "rushing tds", "rushing td", "rush td"],
    "receiving touchdowns": ["rec tds", "receiving tds", "receiving td", "rec td"],
    "anytime touchdown": ["anytime td", "anytime tds", "atd"],
    "touchdowns": ["tds", "td"],
    "receptions": ["rec", "catches", "reception"],
    "interceptions": ["ints", "picks", "interception"],
    "completions": ["comp", "completion"],
    "rushing attempts": ["rush att", "rush attempts", "carries"],
    "passing attempts": ["pass att", "pass attempts"],
}


class CategoryNormalizer:
    """Rewrites betting shorthand to canonical category phrases."""

    def __init__(self, aliases: Dict[str, List[str]] | None = None) -> None:
        self._patterns: List[Tuple[re.Pattern[str], str]] = []
        pairs = [
            (alias, canonical)
            for canonical, variations in (aliases or _CATEGORY_ALIASES).items()
            for alias in variations
        ]
        for alias, canonical in sorted(pairs, key=lambda pair: -len(pair[0])):
            pattern = re.compile(rf"(?<![\w.-]){re.escape(alias)}(?![\w-])")
            self._patterns.append((pattern, canonical))

    def expand(self, text: str) -> str:
        for pattern, canonical in self._patterns:
            text = pattern.sub(canonical, text)
        return text


def find_category(text: str) -> Optional[Tuple[str, int]]:
    """Return the first vocabulary phrase contained in ``text`` and its offset."""

    for phrase in CATEGORY_VOCABULARY:
        index = text.find(phrase)
        if index >= 0:
            return phrase, index
    return None


def categories_for_hint(hint: Optional[str]) -> List[str]:
    """Vocabulary entries that contain every word of a partial category."""

    if not hint:
        return []
    words = hint.split()
    return [phrase for phrase in CATEGORY_VOCABULARY if all(word in phrase for word in words)]
