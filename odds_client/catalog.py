"""Line catalog: the priced propositions available for a cycle.

Lines are published by an ingestion job and read by the matching engine.
Publishing a Line whose price changed supersedes the old one; the superseded
version is kept in the history so priced bets can always be traced back to the
price they snapshotted.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass
from datetime import datetime
from typing import Dict, Iterable, List, Optional, Protocol

from prop_engine.models import Cycle


class CatalogUnavailable(RuntimeError):
    """Raised when a line source cannot be read at all."""


@dataclass(frozen=True)
class Line:
    """A priced betting proposition for one cycle."""

    source_id: str
    subject: str
    category: str
    price: int
    threshold: float = 0.0
    team: Optional[str] = None
    cycle: Optional[Cycle] = None
    valid_from: Optional[datetime] = None
    valid_to: Optional[datetime] = None

    def label(self) -> str:
        parts = [self.subject]
        if self.team and self.team.casefold() != self.subject.casefold():
            parts.append(f"({self.team})")
        parts.append(self.category)
        if self.threshold:
            parts.append(f"{self.threshold:g}")
        return " ".join(parts)

    def is_valid_at(self, moment: datetime) -> bool:
        if self.valid_from and moment < self.valid_from:
            return False
        if self.valid_to and moment >= self.valid_to:
            return False
        return True

    def to_dict(self) -> dict:
        payload = asdict(self)
        payload["cycle"] = [self.cycle.season, self.cycle.week] if self.cycle else None
        payload["valid_from"] = self.valid_from.isoformat() if self.valid_from else None
        payload["valid_to"] = self.valid_to.isoformat() if self.valid_to else None
        return payload

    @classmethod
    def from_dict(cls, payload: dict) -> "Line":
        cycle = payload.get("cycle")
        return cls(
            source_id=payload["source_id"],
            subject=payload["subject"],
            category=payload["category"],
            price=int(payload["price"]),
            threshold=float(payload.get("threshold") or 0.0),
            team=payload.get("team"),
            cycle=Cycle(season=cycle[0], week=cycle[1]) if cycle else None,
            valid_from=_parse_time(payload.get("valid_from")),
            valid_to=_parse_time(payload.get("valid_to")),
        )


class LineSource(Protocol):
    def list_lines(self, cycle: Cycle) -> List[Line]:
        """Return the current lines for ``cycle``; raise CatalogUnavailable on failure."""


class LineCatalog:
    """In-memory catalog that keeps lines in first-publication order."""

    def __init__(self, lines: Iterable[Line] = ()) -> None:
        self._current: Dict[str, Line] = {}
        self._history: Dict[str, List[Line]] = {}
        for line in lines:
            self.publish(line)

    def publish(self, line: Line) -> bool:
        """Store ``line``; return True when it is new or supersedes a price."""

        current = self._current.get(line.source_id)
        if current == line:
            return False
        if current is not None:
            self._history.setdefault(line.source_id, []).append(current)
        # Re-assigning an existing key keeps its original position.
        self._current[line.source_id] = line
        return True

    def lines(self, cycle: Optional[Cycle] = None) -> List[Line]:
        if cycle is None:
            return list(self._current.values())
        return [line for line in self._current.values() if line.cycle in (None, cycle)]

    def list_lines(self, cycle: Cycle) -> List[Line]:
        return self.lines(cycle)

    def history(self, source_id: str) -> List[Line]:
        return list(self._history.get(source_id, []))

    def get(self, source_id: str) -> Optional[Line]:
        return self._current.get(source_id)

    def __len__(self) -> int:
        return len(self._current)


def _parse_time(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    try:
        return datetime.fromisoformat(value)
    except ValueError:
        return None
