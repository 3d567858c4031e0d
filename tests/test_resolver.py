from dataclasses import replace
from datetime import date, datetime, timezone
from decimal import Decimal

import pytest

from dosetrack.errors import IntegrityFault
from dosetrack.medication import FixedDose, MedicationFrequency, PatternDose
from dosetrack.pattern import DosagePattern
from dosetrack.resolver import PatternResolver
from dosetrack.store import PatternSnapshot


def pattern(pid, values, start, end=None, created=None):
    return DosagePattern(
        id=pid,
        medication_id=1,
        sequence=tuple(Decimal(v) for v in values),
        start_date=start,
        end_date=end,
        created_at=created or datetime(2025, 1, 1, tzinfo=timezone.utc),
    )


def test_resolves_pattern_containing_date(warfarin):
    a = pattern(1, ["4", "3"], date(2025, 11, 1), date(2025, 11, 9))
    b = pattern(2, ["5"], date(2025, 11, 10))
    resolver = PatternResolver(PatternSnapshot([a, b]))
    assert resolver.resolve_active_pattern_for_date(1, date(2025, 11, 9)) is a
    assert resolver.resolve_active_pattern_for_date(1, date(2025, 11, 10)) is b
    assert resolver.resolve_active_pattern_for_date(1, date(2025, 10, 31)) is None
    assert resolver.resolve_active_pattern_for_date(2, date(2025, 11, 10)) is None


def test_fixed_dose_outside_patterns(warfarin):
    a = pattern(1, ["4", "3"], date(2025, 11, 1), date(2025, 11, 5))
    resolver = PatternResolver(PatternSnapshot([a]))
    assert resolver.dose_for(warfarin, date(2025, 11, 6)) == FixedDose(Decimal("5"))
    source = resolver.dose_for(warfarin, date(2025, 11, 2))
    assert isinstance(source, PatternDose)
    assert source.dose == Decimal("3")
    assert source.day_number == 2


def test_overlapping_patterns_raise_in_strict_mode():
    a = pattern(1, ["4"], date(2025, 11, 1))
    b = pattern(2, ["5"], date(2025, 11, 3))
    resolver = PatternResolver(PatternSnapshot([a, b]))
    assert resolver.resolve_active_pattern_for_date(1, date(2025, 11, 2)) is a
    with pytest.raises(IntegrityFault) as exc:
        resolver.resolve_active_pattern_for_date(1, date(2025, 11, 4))
    assert sorted(exc.value.pattern_ids) == [1, 2]


def test_lenient_mode_picks_latest_created():
    a = pattern(1, ["4"], date(2025, 11, 1), created=datetime(2025, 11, 2, tzinfo=timezone.utc))
    b = pattern(2, ["5"], date(2025, 11, 3), created=datetime(2025, 11, 1, tzinfo=timezone.utc))
    resolver = PatternResolver(PatternSnapshot([a, b]), strict=False)
    assert resolver.resolve_active_pattern_for_date(1, date(2025, 11, 4)) is a


def test_no_dose_before_medication_start(warfarin):
    resolver = PatternResolver(PatternSnapshot([]))
    assert resolver.dose_for(warfarin, date(2025, 9, 30)) is None
    assert resolver.dose_for(warfarin, date(2025, 10, 1)) == FixedDose(Decimal("5"))

    weekly = replace(warfarin, frequency=MedicationFrequency.WEEKLY)
    assert resolver.dose_for(weekly, date(2025, 9, 24)) is None
    assert resolver.dose_for(weekly, date(2025, 10, 8)) == FixedDose(Decimal("5"))
