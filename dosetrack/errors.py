from __future__ import annotations

from dataclasses import dataclass
from typing import List, Optional


@dataclass(frozen=True)
class FieldIssue:
    field: str
    message: str


class DosageError(Exception):
    """Base class for dosage engine failures."""

    status_code: int = 500
    title: str = "Dosage engine error"


class ValidationError(DosageError):
    """Candidate input is malformed or unsafe. Never coerced."""

    status_code = 400
    title = "Validation failed"

    def __init__(self, issues: List[FieldIssue] | str) -> None:
        if isinstance(issues, str):
            issues = [FieldIssue(field="", message=issues)]
        self.issues = list(issues)
        super().__init__("; ".join(i.message for i in self.issues))


class OverlapConflict(DosageError):
    status_code = 409
    title = "Pattern overlap detected"

    def __init__(self, medication_id, conflicting_ids: List, message: Optional[str] = None) -> None:
        self.medication_id = medication_id
        self.conflicting_ids = list(conflicting_ids)
        super().__init__(
            message
            or "A pattern already exists for the specified date range. "
            "Set closePreviousPattern=true to automatically close the previous pattern."
        )


class NotFound(DosageError):
    status_code = 404
    title = "Not found"


class IntegrityFault(DosageError):
    """More than one pattern claims the same date for a medication."""

    status_code = 500
    title = "Internal error"

    def __init__(self, medication_id, target_date, pattern_ids: List) -> None:
        self.medication_id = medication_id
        self.target_date = target_date
        self.pattern_ids = list(pattern_ids)
        super().__init__(
            f"{len(self.pattern_ids)} patterns active for medication {medication_id} "
            f"on {target_date.isoformat()}: {self.pattern_ids}"
        )
