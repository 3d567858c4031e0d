from __future__ import annotations

from datetime import date, timedelta
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from dosetrack.errors import NotFound
from dosetrack.medication import PatternDose
from dosetrack.pattern import PatternInput
from dosetrack.resolver import PatternResolver, dose_source
from dosetrack.schedule import MAX_SCHEDULE_DAYS, MIN_SCHEDULE_DAYS, ScheduleGenerator
from dosetrack.variance import Reconciliation

from . import crud, schemas
from .db import get_session
from .settings import settings


router = APIRouter(prefix="/medications", tags=["medications"])


# Medication
@router.post("", response_model=schemas.MedicationRead, status_code=201)
async def create_medication(payload: schemas.MedicationCreate, session: AsyncSession = Depends(get_session)):
    data = payload.model_dump()
    data["type"] = payload.type.value
    data["frequency"] = payload.frequency.value
    medication = await crud.create_medication(session, data)
    return medication


@router.get("/{medication_id}", response_model=schemas.MedicationRead)
async def get_medication(medication_id: int, session: AsyncSession = Depends(get_session)):
    return await crud.get_medication(session, medication_id)


# DosagePattern
@router.post("/{medication_id}/patterns", response_model=schemas.PatternCreated, status_code=201)
async def create_pattern(
    medication_id: int, payload: schemas.PatternCreate, session: AsyncSession = Depends(get_session)
):
    candidate = PatternInput(
        sequence=tuple(payload.pattern_sequence),
        start_date=payload.start_date,
        end_date=payload.end_date,
        notes=payload.notes,
    )
    created = await crud.create_pattern(
        session,
        medication_id,
        candidate,
        close_previous=payload.close_previous_pattern,
        max_backdate_days=settings.max_backdate_days,
    )
    medication = await crud.get_medication(session, medication_id)
    return schemas.PatternCreated.from_domain(
        created.pattern,
        medication.dosage_unit,
        warnings=[schemas.Issue(field=w.field, message=w.message) for w in created.warnings],
        closed_pattern_ids=[p.id for p in created.closed],
    )


@router.get("/{medication_id}/patterns/active", response_model=schemas.ActivePatternRead)
async def get_active_pattern(medication_id: int, session: AsyncSession = Depends(get_session)):
    medication = crud.to_medication(await crud.get_medication(session, medication_id))
    pattern = await crud.get_active_pattern(session, medication_id)
    if pattern is None:
        raise NotFound(f"No active dosage pattern found for medication {medication_id}.")

    today = date.today()
    todays_dosage = None
    todays_pattern_day = None
    # an active pattern may not have started yet
    if pattern.covers(today):
        source = dose_source(medication, pattern, today)
        if isinstance(source, PatternDose):
            todays_dosage = source.dose
            todays_pattern_day = source.day_number
    return schemas.ActivePatternRead.from_domain(
        pattern,
        medication.dosage_unit,
        todays_dosage=todays_dosage,
        todays_pattern_day=todays_pattern_day,
    )


@router.get("/{medication_id}/patterns", response_model=schemas.PatternHistoryRead)
async def get_pattern_history(
    medication_id: int,
    active_only: bool = Query(False, alias="activeOnly"),
    limit: int = Query(10),
    offset: int = Query(0, ge=0),
    session: AsyncSession = Depends(get_session),
):
    medication = await crud.get_medication(session, medication_id)
    limit = max(1, min(limit, settings.history_limit_max))
    total, patterns = await crud.pattern_history(
        session, medication_id, active_only=active_only, limit=limit, offset=offset
    )
    return schemas.PatternHistoryRead(
        medication_id=medication_id,
        total_count=total,
        limit=limit,
        offset=offset,
        patterns=[schemas.PatternRead.from_domain(p, medication.dosage_unit) for p in patterns],
    )


# Schedule
@router.get("/{medication_id}/schedule", response_model=schemas.ScheduleRead)
async def get_schedule(
    medication_id: int,
    start_date: Optional[date] = Query(None, alias="startDate"),
    days: int = Query(settings.default_schedule_days, ge=MIN_SCHEDULE_DAYS, le=MAX_SCHEDULE_DAYS),
    include_pattern_changes: bool = Query(True, alias="includePatternChanges"),
    session: AsyncSession = Depends(get_session),
):
    medication = crud.to_medication(await crud.get_medication(session, medication_id))
    start_date = start_date or date.today()
    end_date = start_date + timedelta(days=days - 1)
    snapshot = await crud.load_snapshot(session, medication_id, start_date, end_date)
    schedule = ScheduleGenerator(snapshot).generate_schedule(
        medication, start_date, days, include_pattern_changes=include_pattern_changes
    )
    current = await crud.get_active_pattern(session, medication_id)

    summary = schedule.summary
    return schemas.ScheduleRead(
        medication_id=medication_id,
        medication_name=medication.name,
        dosage_unit=medication.dosage_unit,
        start_date=schedule.start_date,
        end_date=schedule.end_date,
        total_days=schedule.total_days,
        current_pattern=(
            schemas.PatternRead.from_domain(current, medication.dosage_unit) if current is not None else None
        ),
        summary=schemas.ScheduleSummaryRead(
            total_dosage=summary.total_dose,
            average_daily_dosage=summary.average_daily_dose,
            min_dosage=summary.min_dose,
            max_dosage=summary.max_dose,
            pattern_cycles=summary.pattern_cycles,
        ),
        schedule=[
            schemas.ScheduleEntryRead(
                day=e.date,
                day_of_week=e.day_of_week,
                dosage=e.dose,
                pattern_day=e.pattern_day,
                pattern_length=e.pattern_length,
                is_pattern_change=e.is_pattern_change,
                pattern_change_note=e.pattern_change_note,
            )
            for e in schedule.entries
        ],
    )


@router.get("/{medication_id}/schedule/date", response_model=schemas.DateDosageRead)
async def get_dosage_for_date(
    medication_id: int,
    target: date = Query(..., alias="date"),
    session: AsyncSession = Depends(get_session),
):
    medication = crud.to_medication(await crud.get_medication(session, medication_id))
    snapshot = await crud.load_snapshot(session, medication_id, target, target)
    resolver = PatternResolver(snapshot)
    pattern = resolver.resolve_active_pattern_for_date(medication_id, target)
    source = dose_source(medication, pattern, target)

    if isinstance(source, PatternDose):
        return schemas.DateDosageRead(
            medication_id=medication_id,
            day=target,
            dosage=source.dose,
            is_administration_day=True,
            is_pattern_based=True,
            pattern_id=pattern.id,
            pattern_day=source.day_number,
            pattern_length=pattern.length,
        )
    return schemas.DateDosageRead(
        medication_id=medication_id,
        day=target,
        dosage=source.dose if source is not None else None,
        is_administration_day=source is not None,
        is_pattern_based=False,
        pattern_id=pattern.id if pattern is not None else None,
        pattern_length=pattern.length if pattern is not None else None,
    )


# DoseLog
def _log_read(log, reconciliation=None) -> schemas.DoseLogRead:
    if reconciliation is None:
        # stored logs keep the expectation frozen at log time
        reconciliation = Reconciliation(
            expected_dose=log.expected_dose,
            actual_dose=log.actual_dose,
            pattern_day_number=log.pattern_day_number,
            resolved_pattern_id=log.dosage_pattern_id,
        )
    return schemas.DoseLogRead(
        id=log.id,
        medication_id=log.medication_id,
        log_date=log.log_date,
        actual_dose=log.actual_dose,
        expected_dose=reconciliation.expected_dose,
        resolved_pattern_id=reconciliation.resolved_pattern_id,
        pattern_day_number=reconciliation.pattern_day_number,
        has_variance=reconciliation.has_variance,
        variance_amount=reconciliation.variance_amount,
        variance_percentage=reconciliation.variance_percentage,
        notes=log.notes,
        created_at=log.created_at,
    )


@router.post("/{medication_id}/logs", response_model=schemas.DoseLogRead, status_code=201)
async def create_dose_log(
    medication_id: int, payload: schemas.DoseLogCreate, session: AsyncSession = Depends(get_session)
):
    log, reconciliation = await crud.create_dose_log(
        session, medication_id, payload.log_date, payload.actual_dose, payload.notes
    )
    return _log_read(log, reconciliation)


@router.get("/{medication_id}/logs", response_model=list[schemas.DoseLogRead])
async def list_dose_logs(medication_id: int, session: AsyncSession = Depends(get_session)):
    logs = await crud.list_dose_logs(session, medication_id)
    return [_log_read(log) for log in logs]
