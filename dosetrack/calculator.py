from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal

from .pattern import DosagePattern


@dataclass(frozen=True)
class DoseForDate:
    dose: Decimal
    pattern_day_number: int  # 1-based position within the cycle


def days_between(start: date, end: date) -> int:
    """Whole calendar days from ``start`` to ``end``.

    Works on ``date`` objects only so time zones and DST never shift the count.
    """
    if isinstance(start, datetime) or isinstance(end, datetime):
        raise TypeError("days_between expects calendar dates, not datetimes")
    return (end - start).days


def dose_for_day_index(pattern: DosagePattern, day_index: int) -> DoseForDate:
    """Dose for the ``day_index``-th (0-based) administration day of ``pattern``.

    The index must be monotonically increasing across administration days;
    the calculator does not know about frequencies.
    """
    if day_index < 0:
        raise ValueError(f"Day index must be >= 0, got {day_index}")
    position = day_index % pattern.length
    return DoseForDate(dose=pattern.sequence[position], pattern_day_number=position + 1)


def dose_for_date(pattern: DosagePattern, target: date) -> DoseForDate:
    """Expected dose on ``target`` for a daily pattern.

    Example: [4, 4, 3] starting 2025-11-01
    - 2025-11-01 -> 4 (day 1)
    - 2025-11-03 -> 3 (day 3)
    - 2025-11-04 -> 4 (day 1 of the next cycle)
    """
    days_since_start = days_between(pattern.start_date, target)
    if days_since_start < 0:
        raise ValueError(
            f"{target.isoformat()} is before pattern start {pattern.start_date.isoformat()}"
        )
    return dose_for_day_index(pattern, days_since_start)
