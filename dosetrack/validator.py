"""Pattern validation.

Errors block persistence; warnings are surfaced to the caller for
confirmation because clinical judgment may override the heuristic.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from typing import List, Optional

from .errors import FieldIssue, ValidationError
from .medication import Medication, MedicationType
from .pattern import PatternInput, format_dose

MIN_PATTERN_LENGTH = 1
MAX_PATTERN_LENGTH = 365
MAX_DOSE = Decimal("1000")
MAX_DECIMAL_PLACES = 2
MAX_NOTES_LENGTH = 500

LONG_PATTERN_WARNING = 20
BACKDATE_WARNING_DAYS = 7
NEAR_LIMIT_FRACTION = Decimal("0.8")

VITAMIN_K_ANTAGONIST_CEILING = Decimal("20")


@dataclass(frozen=True)
class MedicationContext:
    name: str = ""
    type: MedicationType = MedicationType.OTHER

    @staticmethod
    def for_medication(medication: Medication) -> "MedicationContext":
        return MedicationContext(name=medication.name, type=medication.type)


@dataclass
class ValidationResult:
    errors: List[FieldIssue] = field(default_factory=list)
    warnings: List[FieldIssue] = field(default_factory=list)

    @property
    def is_valid(self) -> bool:
        return not self.errors

    def raise_for_errors(self) -> None:
        if self.errors:
            raise ValidationError(self.errors)


def safety_ceiling(context: MedicationContext) -> Optional[Decimal]:
    """Per-dose ceiling for a medication, or None when only the global bound applies."""
    if context.type is MedicationType.VITAMIN_K_ANTAGONIST or "warfarin" in context.name.lower():
        return VITAMIN_K_ANTAGONIST_CEILING
    return None


def _decimal_places(value: Decimal) -> int:
    exponent = value.normalize().as_tuple().exponent
    return max(0, -exponent) if isinstance(exponent, int) else 0


def validate(
    candidate: PatternInput,
    context: MedicationContext,
    *,
    today: Optional[date] = None,
    max_backdate_days: Optional[int] = 365,
) -> ValidationResult:
    """Validate a candidate pattern against the structural and safety rules."""
    today = today or date.today()
    result = ValidationResult()
    errors = result.errors
    warnings = result.warnings
    sequence = candidate.sequence

    if len(sequence) < MIN_PATTERN_LENGTH:
        errors.append(FieldIssue("patternSequence", "Pattern must contain at least one dosage value"))
    elif len(sequence) > MAX_PATTERN_LENGTH:
        errors.append(FieldIssue("patternSequence", f"Pattern cannot exceed {MAX_PATTERN_LENGTH} dosages"))

    for i, value in enumerate(sequence):
        name = f"patternSequence[{i}]"
        if not value.is_finite():
            errors.append(FieldIssue(name, "Dosage must be a finite number"))
            continue
        if value <= 0 or value > MAX_DOSE:
            errors.append(FieldIssue(name, f"Each dosage must be greater than 0 and at most {format_dose(MAX_DOSE)}"))
        elif _decimal_places(value) > MAX_DECIMAL_PLACES:
            errors.append(FieldIssue(name, f"Dosage {value} has more than {MAX_DECIMAL_PLACES} decimal places"))

    ceiling = safety_ceiling(context)
    finite = [v for v in sequence if v.is_finite()]
    if ceiling is not None and finite:
        highest = max(finite)
        if highest > ceiling:
            errors.append(FieldIssue(
                "patternSequence",
                f"{context.name or 'This medication'} dosage should not exceed {format_dose(ceiling)}mg. "
                f"Pattern contains {format_dose(highest)}mg.",
            ))
        elif highest >= ceiling * NEAR_LIMIT_FRACTION:
            warnings.append(FieldIssue(
                "patternSequence",
                f"Pattern contains {format_dose(highest)}mg, close to the {format_dose(ceiling)}mg limit. "
                "Please verify with healthcare provider.",
            ))

    if candidate.end_date is not None and candidate.end_date < candidate.start_date:
        errors.append(FieldIssue("endDate", "End date must be on or after the start date"))

    if candidate.notes is not None and len(candidate.notes) > MAX_NOTES_LENGTH:
        errors.append(FieldIssue("notes", f"Notes cannot exceed {MAX_NOTES_LENGTH} characters"))

    days_back = (today - candidate.start_date).days
    if max_backdate_days is not None and days_back > max_backdate_days:
        errors.append(FieldIssue(
            "startDate", f"Start date cannot be more than {max_backdate_days} days in the past"
        ))
    elif days_back > BACKDATE_WARNING_DAYS:
        warnings.append(FieldIssue(
            "startDate",
            "Pattern start date is more than 7 days in the past. This will affect historical "
            "medication logs. Please confirm this is intentional.",
        ))

    if len(sequence) == 1:
        warnings.append(FieldIssue(
            "patternSequence",
            "Pattern contains only one dosage value. Consider using a fixed daily dose instead of a pattern.",
        ))
    elif len(sequence) > LONG_PATTERN_WARNING:
        warnings.append(FieldIssue(
            "patternSequence",
            f"Pattern is unusually long ({len(sequence)} days). Please verify this is correct.",
        ))

    return result

