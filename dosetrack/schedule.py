from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date, timedelta
from decimal import ROUND_HALF_UP, Decimal
from typing import Dict, List, Optional

from .errors import ValidationError
from .medication import Medication, PatternDose
from .pattern import format_dose
from .resolver import PatternResolver, dose_source
from .store import PatternSnapshot, PatternStore

logger = logging.getLogger(__name__)

MIN_SCHEDULE_DAYS = 1
MAX_SCHEDULE_DAYS = 365

TWO_PLACES = Decimal("0.01")


@dataclass(frozen=True)
class ScheduleEntry:
    date: date
    day_of_week: str
    dose: Optional[Decimal]  # None on non-administration days
    pattern_day: Optional[int] = None
    pattern_length: Optional[int] = None
    pattern_id: object = None
    is_pattern_change: bool = False
    pattern_change_note: Optional[str] = None

    @property
    def is_administration_day(self) -> bool:
        return self.dose is not None


@dataclass(frozen=True)
class ScheduleSummary:
    total_dose: Decimal
    average_daily_dose: Decimal
    min_dose: Decimal
    max_dose: Decimal
    pattern_cycles: Decimal


@dataclass
class Schedule:
    medication_id: object
    start_date: date
    end_date: date
    entries: List[ScheduleEntry] = field(default_factory=list)
    summary: Optional[ScheduleSummary] = None

    @property
    def total_days(self) -> int:
        return len(self.entries)


def _round2(value: Decimal) -> Decimal:
    return value.quantize(TWO_PLACES, rounding=ROUND_HALF_UP)


def summarize(entries: List[ScheduleEntry]) -> ScheduleSummary:
    doses = [e.dose for e in entries if e.dose is not None]
    if not doses:
        zero = Decimal("0")
        return ScheduleSummary(zero, zero, zero, zero, zero)

    # administration days per pattern sub-range, divided by that pattern's length
    per_pattern: Dict[object, List[int]] = {}
    for e in entries:
        if e.dose is None or e.pattern_id is None:
            continue
        counted = per_pattern.setdefault(e.pattern_id, [0, e.pattern_length])
        counted[0] += 1
    cycles = sum(
        (Decimal(days) / Decimal(length) for days, length in per_pattern.values()),
        Decimal("0"),
    )

    total = sum(doses, Decimal("0"))
    return ScheduleSummary(
        total_dose=total,
        average_daily_dose=_round2(total / len(doses)),
        min_dose=min(doses),
        max_dose=max(doses),
        pattern_cycles=_round2(cycles),
    )


class ScheduleGenerator:
    """Day-by-day dosage list over a window, across pattern boundaries."""

    def __init__(self, store: PatternStore) -> None:
        self.store = store

    def generate_schedule(
        self,
        medication: Medication,
        start_date: date,
        num_days: int,
        *,
        include_pattern_changes: bool = True,
        unit: Optional[str] = None,
    ) -> Schedule:
        if not MIN_SCHEDULE_DAYS <= num_days <= MAX_SCHEDULE_DAYS:
            raise ValidationError(f"Days must be between {MIN_SCHEDULE_DAYS} and {MAX_SCHEDULE_DAYS}")
        unit = unit or medication.dosage_unit
        end_date = start_date + timedelta(days=num_days - 1)

        # one range query for the whole window, then pure per-day resolution
        snapshot = PatternSnapshot(self.store.patterns_in_range(medication.id, start_date, end_date))
        resolver = PatternResolver(snapshot)

        entries: List[ScheduleEntry] = []
        previous_pattern_id = None
        for offset in range(num_days):
            current = start_date + timedelta(days=offset)
            pattern = resolver.resolve_active_pattern_for_date(medication.id, current)
            pattern_id = pattern.id if pattern is not None else None
            source = dose_source(medication, pattern, current)

            is_change = include_pattern_changes and offset > 0 and pattern_id != previous_pattern_id
            note = None
            if is_change:
                note = (
                    f"New pattern starts: {pattern.display_pattern(unit)}" if pattern is not None
                    else f"Fixed dose resumes: {format_dose(medication.fixed_dose)}{unit}"
                )

            if isinstance(source, PatternDose):
                entry = ScheduleEntry(
                    date=current,
                    day_of_week=current.strftime("%A"),
                    dose=source.dose,
                    pattern_day=source.day_number,
                    pattern_length=source.pattern.length,
                    pattern_id=pattern_id,
                    is_pattern_change=is_change,
                    pattern_change_note=note,
                )
            else:
                entry = ScheduleEntry(
                    date=current,
                    day_of_week=current.strftime("%A"),
                    dose=source.dose if source is not None else None,
                    pattern_length=pattern.length if pattern is not None else None,
                    pattern_id=pattern_id,
                    is_pattern_change=is_change,
                    pattern_change_note=note,
                )
            entries.append(entry)
            previous_pattern_id = pattern_id

        schedule = Schedule(
            medication_id=medication.id,
            start_date=start_date,
            end_date=end_date,
            entries=entries,
            summary=summarize(entries),
        )
        logger.info(
            "Generated %d-day schedule for medication %s, total dosage: %s",
            num_days, medication.id, schedule.summary.total_dose,
        )
        return schedule
