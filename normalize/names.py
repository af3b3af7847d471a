"""Helpers for canonicalizing team names.

Free-text bets and The Odds API spell teams differently ("KC", "Kansas City
Chiefs", "chiefs"). These helpers map every variant onto the lower-case
nickname so that matching compares like with like.
"""

from __future__ import annotations

import re
from functools import lru_cache
from typing import Dict, List, Optional


# Abbreviations that collide with ordinary words ("no", "was", "min", "ten")
# are left out on purpose.
TEAM_ALIASES: Dict[str, List[str]] = {
    "eagles": ["phi", "philadelphia", "philly"],
    "cowboys": ["dal", "dallas"],
    "giants": ["nyg", "new york giants"],
    "commanders": ["washington"],
    "packers": ["gb", "green bay"],
    "bears": ["chicago"],
    "lions": ["detroit"],
    "vikings": ["minnesota"],
    "saints": ["new orleans"],
    "falcons": ["atl", "atlanta"],
    "panthers": ["carolina"],
    "buccaneers": ["tb", "tampa bay", "tampa", "bucs"],
    "rams": ["lar", "los angeles rams"],
    "cardinals": ["ari", "arizona"],
    "seahawks": ["seattle"],
    "49ers": ["sf", "san francisco", "niners"],
    "patriots": ["new england", "pats"],
    "bills": ["buf", "buffalo"],
    "dolphins": ["mia", "miami"],
    "jets": ["nyj", "new york jets"],
    "steelers": ["pit", "pittsburgh"],
    "ravens": ["bal", "baltimore"],
    "bengals": ["cin", "cincinnati"],
    "browns": ["cle", "cleveland"],
    "texans": ["hou", "houston"],
    "colts": ["indianapolis"],
    "jaguars": ["jax", "jacksonville", "jags"],
    "titans": ["tennessee"],
    "broncos": ["denver"],
    "chiefs": ["kc", "kansas city"],
    "raiders": ["lv", "las vegas"],
    "chargers": ["lac", "los angeles chargers"],
}


class TeamNameNormalizer:
    """Maps team aliases and full names to canonical nicknames."""

    def __init__(self, overrides: Dict[str, str] | None = None) -> None:
        self._overrides = {k.casefold(): v.casefold() for k, v in (overrides or {}).items()}
        self._nicknames = frozenset(TEAM_ALIASES)
        pairs = [(alias, nickname) for nickname, aliases in TEAM_ALIASES.items() for alias in aliases]
        self._patterns = [
            (re.compile(rf"(?<![\w.-]){re.escape(alias)}(?![\w-])"), nickname)
            for alias, nickname in sorted(pairs, key=lambda pair: -len(pair[0]))
        ]

    def canonicalize(self, value: str) -> str:
        """Return the nickname for a full or abbreviated team name."""

        key = _squash_whitespace(value.casefold())
        if key in self._overrides:
            return self._overrides[key]
        found = self.find_team(self.expand(key))
        if found:
            return found
        # "Kansas City Chiefs" style names end with the nickname.
        return key.rsplit(" ", 1)[-1] if key else key

    def expand(self, text: str) -> str:
        """Replace team aliases in already-normalized text with nicknames."""

        for pattern, nickname in self._patterns:
            text = pattern.sub(nickname, text)
        # "kansas city chiefs" expands to "chiefs chiefs".
        return _REPEATED_WORD.sub(r"\1", text)

    def find_team(self, text: str) -> Optional[str]:
        for token in text.split():
            if token in self._nicknames:
                return token
            if token in self._overrides:
                return self._overrides[token]
        return None

    def find_teams(self, text: str) -> List[str]:
        """Every team named in ``text``, in order, e.g. both sides of a matchup."""

        teams: List[str] = []
        for token in text.split():
            team = token if token in self._nicknames else self._overrides.get(token)
            if team and team not in teams:
                teams.append(team)
        return teams

    def is_team(self, token: str) -> bool:
        return token in self._nicknames

    def update(self, mapping: Dict[str, str]) -> None:
        for raw, canonical in mapping.items():
            self._overrides[raw.casefold()] = canonical.casefold()


_REPEATED_WORD = re.compile(r"\b(\w+)(?: \1\b)+")


@lru_cache(maxsize=512)
def _squash_whitespace(value: str) -> str:
    return re.sub(r"\s+", " ", value.strip())
