from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import Optional

from .medication import FixedDose, Medication, PatternDose
from .resolver import PatternResolver
from .store import PatternStore

# Absorbs decimal rounding; the comparison is strict so exactly 0.01 is not a variance.
VARIANCE_TOLERANCE = Decimal("0.01")


@dataclass(frozen=True)
class Reconciliation:
    expected_dose: Optional[Decimal]
    actual_dose: Decimal
    pattern_day_number: Optional[int] = None
    resolved_pattern_id: object = None

    @property
    def has_variance(self) -> bool:
        if self.expected_dose is None:
            return False
        return abs(self.actual_dose - self.expected_dose) > VARIANCE_TOLERANCE

    @property
    def variance_amount(self) -> Optional[Decimal]:
        if self.expected_dose is None:
            return None
        return self.actual_dose - self.expected_dose

    @property
    def variance_percentage(self) -> Optional[Decimal]:
        """Signed percent difference from the expected dose; None when expected is 0."""
        if self.expected_dose is None or self.expected_dose == 0:
            return None
        return (self.actual_dose - self.expected_dose) / self.expected_dose * 100


class VarianceTracker:
    """Compares a logged dose against the pattern in effect on the log date.

    The lookup is by log date, not by the currently active pattern, so later
    revisions never change the expectation of an earlier log.
    """

    def __init__(self, store: PatternStore) -> None:
        self.resolver = PatternResolver(store)

    def reconcile(self, medication: Medication, log_date: date, actual_dose: Decimal) -> Reconciliation:
        actual_dose = Decimal(str(actual_dose))
        source = self.resolver.dose_for(medication, log_date)
        if isinstance(source, PatternDose):
            return Reconciliation(
                expected_dose=source.dose,
                actual_dose=actual_dose,
                pattern_day_number=source.day_number,
                resolved_pattern_id=source.pattern.id,
            )
        if isinstance(source, FixedDose):
            return Reconciliation(expected_dose=source.dose, actual_dose=actual_dose)
        # dose logged on a non-administration day: nothing was expected
        return Reconciliation(expected_dose=Decimal("0"), actual_dose=actual_dose)
