from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import date, datetime, timedelta, timezone
from decimal import Decimal
from enum import Enum
from typing import Optional, Tuple


class PatternState(str, Enum):
    DRAFT = "draft"
    ACTIVE = "active"
    CLOSED = "closed"


@dataclass(frozen=True)
class PatternInput:
    """Candidate pattern as submitted by a clinician, before validation."""

    sequence: Tuple[Decimal, ...]
    start_date: date
    end_date: Optional[date] = None
    notes: Optional[str] = None

    @property
    def state(self) -> "PatternState":
        return PatternState.DRAFT

    @staticmethod
    def of(values, start_date: date, end_date: Optional[date] = None, notes: Optional[str] = None) -> "PatternInput":
        # str() keeps floats like 0.1 from turning into long binary expansions
        return PatternInput(
            sequence=tuple(Decimal(str(v)) for v in values),
            start_date=start_date,
            end_date=end_date,
            notes=notes,
        )


@dataclass(frozen=True)
class DosagePattern:
    """Repeating dose sequence effective over an inclusive date interval.

    Patterns are versioned, not edited: a revision closes the current record
    (sets end_date) and opens a new one, so doses computed for past dates
    stay reproducible.
    """

    id: object
    medication_id: object
    sequence: Tuple[Decimal, ...]
    start_date: date
    end_date: Optional[date] = None
    notes: Optional[str] = None
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def __post_init__(self) -> None:
        if not self.sequence:
            raise ValueError("Pattern sequence is empty")
        if self.end_date is not None and self.end_date < self.start_date:
            raise ValueError("End date must be on or after the start date")

    @property
    def length(self) -> int:
        return len(self.sequence)

    @property
    def is_active(self) -> bool:
        return self.end_date is None

    @property
    def state(self) -> PatternState:
        return PatternState.ACTIVE if self.is_active else PatternState.CLOSED

    @property
    def average_dose(self) -> Decimal:
        return sum(self.sequence, Decimal("0")) / self.length

    def covers(self, target: date) -> bool:
        return self.start_date <= target and (self.end_date is None or target <= self.end_date)

    def overlaps(self, start: date, end: Optional[date]) -> bool:
        """Whether [start, end] (end None = open) intersects this pattern's interval."""
        if end is not None and end < self.start_date:
            return False
        if self.end_date is not None and self.end_date < start:
            return False
        return True

    def closed_before(self, new_start: date) -> "DosagePattern":
        """Copy of this pattern ending the day before ``new_start``.

        Only the end date moves; sequence and start date are never rewritten.
        """
        end = new_start - timedelta(days=1)
        if end < self.start_date:
            raise ValueError(
                f"Cannot close pattern {self.id} before its start date {self.start_date.isoformat()}"
            )
        return replace(self, end_date=end)

    def display_pattern(self, unit: str = "mg") -> str:
        values = ", ".join(f"{format_dose(v)}{unit}" for v in self.sequence)
        return f"{values} ({self.length}-day cycle)"


def format_dose(value: Decimal) -> str:
    """4.00 -> '4', 3.50 -> '3.5'."""
    text = f"{value:f}"
    if "." in text:
        text = text.rstrip("0").rstrip(".")
    return text
