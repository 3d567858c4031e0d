from __future__ import annotations

import asyncio
import logging
from collections import defaultdict
from datetime import date
from decimal import Decimal
from typing import Optional, Sequence

from sqlalchemy import func, or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from dosetrack.errors import NotFound, OverlapConflict
from dosetrack.lifecycle import CreatedPattern, plan_closures
from dosetrack.medication import Medication, MedicationFrequency, MedicationType
from dosetrack.pattern import DosagePattern, PatternInput
from dosetrack.store import PatternSnapshot
from dosetrack.validator import MedicationContext, validate
from dosetrack.variance import Reconciliation, VarianceTracker

from . import models

logger = logging.getLogger(__name__)

# Serializes overlap-check-then-insert per medication within this process;
# the row lock and the partial unique index cover concurrent processes.
_medication_locks: dict[int, asyncio.Lock] = defaultdict(asyncio.Lock)


def to_medication(row: models.Medication) -> Medication:
    return Medication(
        id=row.id,
        name=row.name,
        fixed_dose=Decimal(row.fixed_dose),
        type=MedicationType(row.type),
        dosage_unit=row.dosage_unit,
        frequency=MedicationFrequency(row.frequency),
        start_date=row.start_date,
    )


def to_pattern(row: models.DosagePattern) -> DosagePattern:
    return DosagePattern(
        id=row.id,
        medication_id=row.medication_id,
        sequence=tuple(row.pattern_sequence),
        start_date=row.start_date,
        end_date=row.end_date,
        notes=row.notes,
        created_at=row.created_at,
    )


# Medication
async def create_medication(session: AsyncSession, data: dict) -> models.Medication:
    medication = models.Medication(**data)
    session.add(medication)
    await session.commit()
    await session.refresh(medication)
    return medication


async def get_medication(session: AsyncSession, medication_id: int, *, for_update: bool = False) -> models.Medication:
    stmt = select(models.Medication).where(models.Medication.id == medication_id)
    if for_update:
        stmt = stmt.with_for_update()
    result = await session.execute(stmt)
    medication = result.scalar_one_or_none()
    if medication is None:
        raise NotFound(f"Medication with ID {medication_id} does not exist.")
    return medication


# DosagePattern
async def patterns_in_range(
    session: AsyncSession, medication_id: int, start: date, end: Optional[date]
) -> list[DosagePattern]:
    stmt = select(models.DosagePattern).where(
        models.DosagePattern.medication_id == medication_id,
        or_(models.DosagePattern.end_date.is_(None), models.DosagePattern.end_date >= start),
    )
    if end is not None:
        stmt = stmt.where(models.DosagePattern.start_date <= end)
    result = await session.execute(stmt)
    return [to_pattern(row) for row in result.scalars().all()]


async def load_snapshot(
    session: AsyncSession, medication_id: int, start: date, end: Optional[date]
) -> PatternSnapshot:
    return PatternSnapshot(await patterns_in_range(session, medication_id, start, end))


async def create_pattern(
    session: AsyncSession,
    medication_id: int,
    candidate: PatternInput,
    *,
    close_previous: bool,
    today: Optional[date] = None,
    max_backdate_days: Optional[int] = 365,
) -> CreatedPattern:
    medication_row = await get_medication(session, medication_id)
    medication = to_medication(medication_row)
    result = validate(
        candidate,
        MedicationContext.for_medication(medication),
        today=today,
        max_backdate_days=max_backdate_days,
    )
    if not result.is_valid:
        logger.warning(
            "Rejected pattern for medication %s: %s",
            medication_id, "; ".join(i.message for i in result.errors),
        )
    result.raise_for_errors()

    async with _medication_locks[medication_id]:
        try:
            await get_medication(session, medication_id, for_update=True)
            existing = await patterns_in_range(session, medication_id, candidate.start_date, candidate.end_date)
            closures = plan_closures(
                existing, medication_id, candidate.start_date, candidate.end_date, close_previous
            )
            for closed in closures:
                closed_row = await session.get(models.DosagePattern, closed.id)
                closed_row.end_date = closed.end_date
                session.add(models.PatternAudit(
                    pattern_id=closed.id,
                    medication_id=medication_id,
                    action="closed",
                    details={"end_date": closed.end_date.isoformat()},
                ))
            # closures must hit the database before the new open pattern
            await session.flush()

            row = models.DosagePattern(
                medication_id=medication_id,
                pattern_sequence=list(candidate.sequence),
                start_date=candidate.start_date,
                end_date=candidate.end_date,
                notes=candidate.notes,
            )
            session.add(row)
            await session.flush()
            session.add(models.PatternAudit(
                pattern_id=row.id,
                medication_id=medication_id,
                action="created",
                details={
                    "sequence": [str(v) for v in candidate.sequence],
                    "start_date": candidate.start_date.isoformat(),
                    "end_date": candidate.end_date.isoformat() if candidate.end_date else None,
                    "closed": [p.id for p in closures],
                },
            ))
            await session.commit()
        except OverlapConflict:
            await session.rollback()
            logger.warning("Overlap conflict creating pattern for medication %s", medication_id)
            raise
        except IntegrityError as e:
            await session.rollback()
            logger.warning("Constraint rejected pattern for medication %s: %s", medication_id, e.orig)
            raise OverlapConflict(medication_id, []) from e

    await session.refresh(row)
    for closed in closures:
        logger.info(
            "Closed previous pattern %s for medication %s, end date set to %s",
            closed.id, medication_id, closed.end_date,
        )
    pattern = to_pattern(row)
    logger.info(
        "Created dosage pattern %s for medication %s, pattern length %d, start date %s",
        pattern.id, medication_id, pattern.length, pattern.start_date,
    )
    return CreatedPattern(pattern=pattern, closed=closures, warnings=list(result.warnings))


async def get_active_pattern(session: AsyncSession, medication_id: int) -> Optional[DosagePattern]:
    result = await session.execute(
        select(models.DosagePattern)
        .where(models.DosagePattern.medication_id == medication_id, models.DosagePattern.end_date.is_(None))
        .order_by(models.DosagePattern.start_date.desc())
    )
    row = result.scalars().first()
    return to_pattern(row) if row is not None else None


async def pattern_history(
    session: AsyncSession, medication_id: int, *, active_only: bool, limit: int, offset: int
) -> tuple[int, list[DosagePattern]]:
    conditions = [models.DosagePattern.medication_id == medication_id]
    if active_only:
        conditions.append(models.DosagePattern.end_date.is_(None))
    total = await session.scalar(select(func.count()).select_from(models.DosagePattern).where(*conditions))
    result = await session.execute(
        select(models.DosagePattern)
        .where(*conditions)
        .order_by(models.DosagePattern.start_date.desc(), models.DosagePattern.id.desc())
        .offset(offset)
        .limit(limit)
    )
    return int(total or 0), [to_pattern(row) for row in result.scalars().all()]


# DoseLog
async def create_dose_log(
    session: AsyncSession,
    medication_id: int,
    log_date: date,
    actual_dose: Decimal,
    notes: Optional[str] = None,
) -> tuple[models.DoseLog, Reconciliation]:
    medication = to_medication(await get_medication(session, medication_id))
    snapshot = await load_snapshot(session, medication_id, log_date, log_date)
    reconciliation = VarianceTracker(snapshot).reconcile(medication, log_date, actual_dose)
    log = models.DoseLog(
        medication_id=medication_id,
        log_date=log_date,
        actual_dose=actual_dose,
        expected_dose=reconciliation.expected_dose,
        dosage_pattern_id=reconciliation.resolved_pattern_id,
        pattern_day_number=reconciliation.pattern_day_number,
        notes=notes,
    )
    session.add(log)
    await session.commit()
    await session.refresh(log)
    if reconciliation.has_variance:
        logger.info(
            "Dose variance for medication %s on %s: expected %s, actual %s",
            medication_id, log_date, reconciliation.expected_dose, actual_dose,
        )
    return log, reconciliation


async def list_dose_logs(session: AsyncSession, medication_id: int) -> Sequence[models.DoseLog]:
    await get_medication(session, medication_id)
    result = await session.execute(
        select(models.DoseLog)
        .where(models.DoseLog.medication_id == medication_id)
        .order_by(models.DoseLog.log_date.desc(), models.DoseLog.id.desc())
    )
    return result.scalars().all()
