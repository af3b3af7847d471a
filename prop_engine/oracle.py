"""Outcome oracle boundary.

The engine never decides who won; an oracle reports the outcome of a line
once it is final. A missing reading means "not resolved yet".
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Dict, Optional, Protocol


class Outcome(str, Enum):
    OVER = "over"
    UNDER = "under"
    PUSH = "push"
    VOID = "void"


@dataclass(frozen=True)
class OracleReading:
    outcome: Outcome
    observed_at: datetime = field(default_factory=datetime.utcnow)


class OutcomeOracle(Protocol):
    def resolve(self, line_id: str) -> Optional[OracleReading]:
        """Return the final outcome of ``line_id`` or None while unresolved."""


class StaticOutcomeOracle:
    """Oracle fed with results entered by hand or by an import job."""

    def __init__(self, results: Optional[Dict[str, Outcome | str]] = None) -> None:
        self._readings: Dict[str, OracleReading] = {}
        for line_id, outcome in (results or {}).items():
            self.record(line_id, outcome)

    def record(self, line_id: str, outcome: Outcome | str, observed_at: Optional[datetime] = None) -> None:
        self._readings[line_id] = OracleReading(Outcome(outcome), observed_at or datetime.utcnow())

    def resolve(self, line_id: str) -> Optional[OracleReading]:
        return self._readings.get(line_id)
