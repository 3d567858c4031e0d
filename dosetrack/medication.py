from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from enum import Enum
from typing import Optional, Union

from .pattern import DosagePattern


class MedicationType(str, Enum):
    VITAMIN_K_ANTAGONIST = "vitamin_k_antagonist"
    DOAC = "doac"
    HEPARIN = "heparin"
    LMWH = "lmwh"
    ANTIPLATELET = "antiplatelet"
    OTHER = "other"


class MedicationFrequency(str, Enum):
    ONCE_DAILY = "once_daily"
    TWICE_DAILY = "twice_daily"
    THREE_TIMES_DAILY = "three_times_daily"
    FOUR_TIMES_DAILY = "four_times_daily"
    EVERY_OTHER_DAY = "every_other_day"
    WEEKLY = "weekly"
    AS_NEEDED = "as_needed"
    CUSTOM = "custom"

    @property
    def interval_days(self) -> int:
        """Calendar days between administration days."""
        if self is MedicationFrequency.EVERY_OTHER_DAY:
            return 2
        if self is MedicationFrequency.WEEKLY:
            return 7
        return 1


@dataclass(frozen=True)
class Medication:
    id: object
    name: str
    fixed_dose: Decimal
    type: MedicationType = MedicationType.OTHER
    dosage_unit: str = "mg"
    frequency: MedicationFrequency = MedicationFrequency.ONCE_DAILY
    start_date: Optional[date] = None

    def is_administration_day(self, target: date) -> bool:
        if self.start_date is None:
            return True
        # nothing is scheduled before the medication starts, whatever the frequency
        if target < self.start_date:
            return False
        return (target - self.start_date).days % self.frequency.interval_days == 0

    def scheduled_day_index(self, pattern_start: date, target: date) -> Optional[int]:
        """0-based index of ``target`` among administration days since ``pattern_start``.

        The first administration day on or after ``pattern_start`` is index 0.
        Returns None when ``target`` is not an administration day.
        """
        interval = self.frequency.interval_days
        if interval == 1 or self.start_date is None:
            return (target - pattern_start).days
        if not self.is_administration_day(target):
            return None
        anchor = self.start_date
        # ceil division: number of rhythm steps before the first dose of the pattern
        first = max(0, -((anchor - pattern_start).days // interval))
        return (target - anchor).days // interval - first


# Tagged dosing variant returned by every read path.

@dataclass(frozen=True)
class FixedDose:
    dose: Decimal


@dataclass(frozen=True)
class PatternDose:
    pattern: DosagePattern
    dose: Decimal
    day_number: int


DoseSource = Union[FixedDose, PatternDose]
