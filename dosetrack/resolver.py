from __future__ import annotations

import logging
from datetime import date
from typing import Optional

from .calculator import dose_for_day_index
from .errors import IntegrityFault
from .medication import DoseSource, FixedDose, Medication, PatternDose
from .pattern import DosagePattern
from .store import PatternStore

logger = logging.getLogger(__name__)


class PatternResolver:
    """Temporal point query: which pattern governs a medication on a date.

    Every read path (single-date lookup, schedules, log reconciliation) goes
    through here.
    """

    def __init__(self, store: PatternStore, *, strict: bool = True) -> None:
        self.store = store
        self.strict = strict

    def resolve_active_pattern_for_date(self, medication_id, target: date) -> Optional[DosagePattern]:
        """Pattern whose [start_date, end_date] contains ``target``, or None for fixed dosing."""
        matches = [
            p for p in self.store.patterns_in_range(medication_id, target, target)
            if p.covers(target)
        ]
        if not matches:
            return None
        if len(matches) == 1:
            return matches[0]

        ids = [p.id for p in matches]
        logger.error(
            "Integrity fault: %d patterns active for medication %s on %s (ids=%s, starts=%s)",
            len(matches), medication_id, target.isoformat(), ids,
            [p.start_date.isoformat() for p in matches],
        )
        if self.strict:
            raise IntegrityFault(medication_id, target, ids)
        return max(matches, key=lambda p: p.created_at)

    def dose_for(self, medication: Medication, target: date) -> Optional[DoseSource]:
        """Expected dose on ``target``; None when it is not an administration day."""
        return dose_source(medication, self.resolve_active_pattern_for_date(medication.id, target), target)


def dose_source(medication: Medication, pattern: Optional[DosagePattern], target: date) -> Optional[DoseSource]:
    """Dose on ``target`` given the pattern already resolved for it (None = fixed dosing)."""
    if not medication.is_administration_day(target):
        return None
    if pattern is None:
        return FixedDose(dose=medication.fixed_dose)
    index = medication.scheduled_day_index(pattern.start_date, target)
    if index is None:
        return None
    computed = dose_for_day_index(pattern, index)
    return PatternDose(pattern=pattern, dose=computed.dose, day_number=computed.pattern_day_number)
