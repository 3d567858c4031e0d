from __future__ import annotations

import itertools
import threading
from collections import defaultdict
from contextlib import contextmanager
from datetime import date, datetime, timezone
from typing import Dict, Iterator, List, Optional, Protocol, Sequence, Tuple

from .pattern import DosagePattern


class PatternStore(Protocol):
    """Persistence boundary for dosage patterns."""

    def patterns_in_range(self, medication_id, start: date, end: Optional[date]) -> List[DosagePattern]:
        """Patterns of ``medication_id`` whose interval intersects [start, end] (end None = open)."""
        ...


class PatternSnapshot:
    """Read-only store over patterns loaded up front.

    Lets a caller fetch a window once and run the engine without further I/O.
    """

    def __init__(self, patterns: Sequence[DosagePattern]) -> None:
        self._patterns = list(patterns)

    def patterns_in_range(self, medication_id, start: date, end: Optional[date]) -> List[DosagePattern]:
        return [
            p for p in self._patterns
            if p.medication_id == medication_id and p.overlaps(start, end)
        ]


class InMemoryPatternStore:
    """Thread-safe in-process pattern store with per-medication write locks."""

    def __init__(self) -> None:
        self._patterns: Dict[int, DosagePattern] = {}
        self._ids = itertools.count(1)
        self._data_lock = threading.Lock()
        self._medication_locks: Dict[object, threading.Lock] = defaultdict(threading.Lock)

    @contextmanager
    def lock(self, medication_id) -> Iterator[None]:
        with self._data_lock:
            medication_lock = self._medication_locks[medication_id]
        with medication_lock:
            yield

    def patterns_in_range(self, medication_id, start: date, end: Optional[date]) -> List[DosagePattern]:
        with self._data_lock:
            patterns = list(self._patterns.values())
        return [p for p in patterns if p.medication_id == medication_id and p.overlaps(start, end)]

    def get(self, pattern_id: int) -> Optional[DosagePattern]:
        with self._data_lock:
            return self._patterns.get(pattern_id)

    def insert(
        self,
        medication_id,
        sequence,
        start_date: date,
        end_date: Optional[date] = None,
        notes: Optional[str] = None,
    ) -> DosagePattern:
        with self._data_lock:
            pattern = DosagePattern(
                id=next(self._ids),
                medication_id=medication_id,
                sequence=tuple(sequence),
                start_date=start_date,
                end_date=end_date,
                notes=notes,
                created_at=datetime.now(timezone.utc),
            )
            self._patterns[pattern.id] = pattern
        return pattern

    def close(self, closed: DosagePattern) -> None:
        """Store a closed copy produced by ``DosagePattern.closed_before``."""
        with self._data_lock:
            current = self._patterns[closed.id]
            if current.sequence != closed.sequence or current.start_date != closed.start_date:
                raise ValueError(f"Pattern {closed.id} sequence and start date are immutable")
            self._patterns[closed.id] = closed

    def history(
        self, medication_id, *, active_only: bool = False, limit: int = 10, offset: int = 0
    ) -> Tuple[int, List[DosagePattern]]:
        with self._data_lock:
            patterns = [p for p in self._patterns.values() if p.medication_id == medication_id]
        if active_only:
            patterns = [p for p in patterns if p.is_active]
        patterns.sort(key=lambda p: (p.start_date, p.created_at), reverse=True)
        return len(patterns), patterns[offset:offset + limit]
