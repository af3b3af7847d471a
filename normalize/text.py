"""Free-text canonicalization and best-effort (subject, category) extraction.

Everything here is pure and total: malformed input degrades to empty strings
and ``None`` fields rather than raising.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import List, Optional

from normalize.markets import PROP_INDICATORS, CategoryNormalizer, find_category
from normalize.names import TeamNameNormalizer


_APOSTROPHES = re.compile(r"['’`]")
_PUNCTUATION = re.compile(r"[^\w\s.-]|_")
_WHITESPACE = re.compile(r"\s+")
_NUMBER = re.compile(r"^[-+]?(\d+\.?\d*|\.\d+)$")
_SIDE_NUMBER = re.compile(r"^([ou])(\d+\.?\d*|\.\d+)$")

SIDE_WORDS = {"over": "over", "under": "under"}

_CATEGORIES = CategoryNormalizer()
_TEAMS = TeamNameNormalizer()


@dataclass(frozen=True)
class Extraction:
    """Pieces recovered from a free-text bet description."""

    subject: Optional[str]
    category: Optional[str]
    team: Optional[str] = None
    side: Optional[str] = None
    threshold: Optional[float] = None
    hint: Optional[str] = None
    key: str = ""


def normalize(text: Optional[str]) -> str:
    """Lowercase, drop punctuation other than ``.``/``-`` and squash whitespace."""

    if not text:
        return ""
    lowered = _APOSTROPHES.sub("", str(text).lower())
    return _WHITESPACE.sub(" ", _PUNCTUATION.sub(" ", lowered)).strip()


def canonicalize(text: Optional[str]) -> str:
    """``normalize`` plus betting-term and team alias expansion."""

    return _TEAMS.expand(_CATEGORIES.expand(normalize(text)))


def format_threshold(value: float) -> str:
    return f"{float(value):g}"


def match_key(text: Optional[str]) -> str:
    """Comparison key: canonical words and numbers, without side words or dashes."""

    return _split_tokens(canonicalize(text))[0]


def strip_team(subject: str, team: Optional[str]) -> str:
    """Drop a trailing team nickname from a canonical subject."""

    words = subject.split()
    if team and len(words) > 1 and words[-1] == team:
        words = words[:-1]
    elif len(words) > 1 and _TEAMS.is_team(words[-1]):
        words = words[:-1]
    return " ".join(words)


def find_team(text: str) -> Optional[str]:
    return _TEAMS.find_team(text)


def find_teams(text: str) -> List[str]:
    return _TEAMS.find_teams(text)


def extract(text: Optional[str]) -> Extraction:
    canonical = canonicalize(text)
    key, words, side, threshold = _split_tokens(canonical)
    body = " ".join(words)
    team = _TEAMS.find_team(body)

    hint: Optional[str] = None
    found = find_category(body)
    if found:
        category: Optional[str] = found[0]
        index = found[1]
        subject = body[:index].strip() or body[index + len(found[0]) :].strip()
    else:
        category = None
        split = next((i for i, word in enumerate(words) if word in PROP_INDICATORS), len(words))
        subject = " ".join(words[:split])
        hint = " ".join(words[split:]) or None

    return Extraction(
        subject=subject or None,
        category=category,
        team=team,
        side=side,
        threshold=threshold,
        hint=hint,
        key=key,
    )


def _split_tokens(canonical: str) -> tuple[str, List[str], Optional[str], Optional[float]]:
    key_tokens: List[str] = []
    words: List[str] = []
    side: Optional[str] = None
    threshold: Optional[float] = None
    for token in canonical.split():
        if token in SIDE_WORDS:
            side = SIDE_WORDS[token]
            continue
        side_number = _SIDE_NUMBER.match(token)
        if side_number:
            side = "over" if side_number.group(1) == "o" else "under"
            threshold = float(side_number.group(2))
            key_tokens.append(format_threshold(threshold))
            continue
        if _NUMBER.match(token):
            threshold = float(token)
            key_tokens.append(format_threshold(threshold))
            continue
        token = token.strip(".-")
        if not token:
            continue
        key_tokens.append(token)
        words.append(token)
    return " ".join(key_tokens), words, side, threshold
