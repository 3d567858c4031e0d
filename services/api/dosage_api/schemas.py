from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from typing import Annotated, Any, Optional

from pydantic import BaseModel, Field, PlainSerializer
from pydantic.alias_generators import to_camel

from dosetrack.medication import MedicationFrequency, MedicationType
from dosetrack.pattern import DosagePattern


# Doses stay Decimal in Python and go out as JSON numbers.
Dose = Annotated[Decimal, PlainSerializer(float, return_type=float, when_used="json")]


class ApiModel(BaseModel):
    class Config:
        alias_generator = to_camel
        populate_by_name = True
        from_attributes = True


class Issue(ApiModel):
    field: str
    message: str


class Problem(ApiModel):
    title: str
    detail: str
    errors: list[Issue] = Field(default_factory=list)


class MedicationCreate(ApiModel):
    name: str = Field(min_length=1, max_length=100)
    type: MedicationType = MedicationType.OTHER
    fixed_dose: Decimal = Field(gt=0, le=1000, decimal_places=2)
    dosage_unit: str = Field(default="mg", max_length=20)
    frequency: MedicationFrequency = MedicationFrequency.ONCE_DAILY
    start_date: Optional[date] = None


class MedicationRead(ApiModel):
    id: int
    name: str
    type: MedicationType
    fixed_dose: Dose
    dosage_unit: str
    frequency: MedicationFrequency
    start_date: Optional[date]
    created_at: datetime


class PatternCreate(ApiModel):
    # range checks live in the domain validator so they report field-level detail
    pattern_sequence: list[Decimal]
    start_date: date
    end_date: Optional[date] = None
    notes: Optional[str] = None
    close_previous_pattern: bool = True


class PatternRead(ApiModel):
    id: int
    medication_id: int
    pattern_sequence: list[Dose]
    pattern_length: int
    start_date: date
    end_date: Optional[date]
    notes: Optional[str]
    is_active: bool
    average_dose: Dose
    display_pattern: str
    created_at: datetime

    @classmethod
    def from_domain(cls, pattern: DosagePattern, unit: str = "mg", **extra: Any) -> "PatternRead":
        return cls(
            id=pattern.id,
            medication_id=pattern.medication_id,
            pattern_sequence=list(pattern.sequence),
            pattern_length=pattern.length,
            start_date=pattern.start_date,
            end_date=pattern.end_date,
            notes=pattern.notes,
            is_active=pattern.is_active,
            average_dose=pattern.average_dose,
            display_pattern=pattern.display_pattern(unit),
            created_at=pattern.created_at,
            **extra,
        )


class PatternCreated(PatternRead):
    warnings: list[Issue] = Field(default_factory=list)
    closed_pattern_ids: list[int] = Field(default_factory=list)


class ActivePatternRead(PatternRead):
    todays_dosage: Optional[Dose] = None
    todays_pattern_day: Optional[int] = None


class PatternHistoryRead(ApiModel):
    medication_id: int
    total_count: int
    limit: int
    offset: int
    patterns: list[PatternRead]


class ScheduleEntryRead(ApiModel):
    day: date = Field(alias="date")
    day_of_week: str
    dosage: Optional[Dose]
    pattern_day: Optional[int]
    pattern_length: Optional[int]
    is_pattern_change: bool
    pattern_change_note: Optional[str]


class ScheduleSummaryRead(ApiModel):
    total_dosage: Dose
    average_daily_dosage: Dose
    min_dosage: Dose
    max_dosage: Dose
    pattern_cycles: Dose


class ScheduleRead(ApiModel):
    medication_id: int
    medication_name: str
    dosage_unit: str
    start_date: date
    end_date: date
    total_days: int
    current_pattern: Optional[PatternRead]
    summary: ScheduleSummaryRead
    schedule: list[ScheduleEntryRead]


class DateDosageRead(ApiModel):
    medication_id: int
    day: date = Field(alias="date")
    dosage: Optional[Dose]
    is_administration_day: bool
    is_pattern_based: bool
    pattern_id: Optional[int] = None
    pattern_day: Optional[int] = None
    pattern_length: Optional[int] = None


class DoseLogCreate(ApiModel):
    log_date: date
    actual_dose: Decimal = Field(ge=0, le=1000, decimal_places=2)
    notes: Optional[str] = Field(default=None, max_length=1000)


class DoseLogRead(ApiModel):
    id: int
    medication_id: int
    log_date: date
    actual_dose: Dose
    expected_dose: Optional[Dose]
    resolved_pattern_id: Optional[int]
    pattern_day_number: Optional[int]
    has_variance: bool
    variance_amount: Optional[Dose]
    variance_percentage: Optional[Dose]
    notes: Optional[str]
    created_at: datetime
