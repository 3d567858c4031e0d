"""Pattern creation and supersession.

A revision never edits an existing pattern's sequence or start date: the
prior pattern is closed (end_date = new start - 1 day) and a new record is
opened, atomically under the medication's write lock.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date
from typing import List, Optional, Sequence

from .errors import FieldIssue, OverlapConflict
from .medication import Medication
from .pattern import DosagePattern, PatternInput
from .store import InMemoryPatternStore
from .validator import MedicationContext, validate

logger = logging.getLogger(__name__)


@dataclass
class CreatedPattern:
    pattern: DosagePattern
    closed: List[DosagePattern] = field(default_factory=list)
    warnings: List[FieldIssue] = field(default_factory=list)


def plan_closures(
    existing: Sequence[DosagePattern],
    medication_id,
    start_date: date,
    end_date: Optional[date],
    close_previous: bool,
) -> List[DosagePattern]:
    """Closed copies of the patterns a new [start_date, end_date] interval supersedes.

    Raises OverlapConflict when the interval collides with an existing pattern
    and the caller did not ask for closure, or when a colliding pattern starts
    on or after the new start date and so cannot be closed without rewriting it.
    """
    overlapping = [p for p in existing if p.overlaps(start_date, end_date)]
    if not overlapping:
        return []
    ids = [p.id for p in overlapping]
    if not close_previous:
        raise OverlapConflict(medication_id, ids)
    blocking = [p for p in overlapping if p.start_date >= start_date]
    if blocking:
        raise OverlapConflict(
            medication_id,
            [p.id for p in blocking],
            f"Pattern(s) {[p.id for p in blocking]} start on or after {start_date.isoformat()} "
            "and cannot be closed by the new pattern.",
        )
    return [p.closed_before(start_date) for p in overlapping]


def create_pattern(
    store: InMemoryPatternStore,
    medication: Medication,
    candidate: PatternInput,
    *,
    close_previous: bool = True,
    today: Optional[date] = None,
    max_backdate_days: Optional[int] = 365,
) -> CreatedPattern:
    """Validate, close superseded patterns and insert ``candidate`` for ``medication``."""
    result = validate(
        candidate,
        MedicationContext.for_medication(medication),
        today=today,
        max_backdate_days=max_backdate_days,
    )
    if not result.is_valid:
        logger.warning(
            "Rejected pattern for medication %s: %s",
            medication.id, "; ".join(i.message for i in result.errors),
        )
    result.raise_for_errors()

    with store.lock(medication.id):
        existing = store.patterns_in_range(medication.id, candidate.start_date, candidate.end_date)
        closures = plan_closures(
            existing, medication.id, candidate.start_date, candidate.end_date, close_previous
        )
        for closed in closures:
            store.close(closed)
            logger.info(
                "Closed previous pattern %s for medication %s, end date set to %s",
                closed.id, medication.id, closed.end_date,
            )
        pattern = store.insert(
            medication.id,
            candidate.sequence,
            candidate.start_date,
            candidate.end_date,
            candidate.notes,
        )

    logger.info(
        "Created dosage pattern %s for medication %s, pattern length %d, start date %s",
        pattern.id, medication.id, pattern.length, pattern.start_date,
    )
    return CreatedPattern(pattern=pattern, closed=closures, warnings=list(result.warnings))
