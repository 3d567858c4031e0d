from datetime import date
from decimal import Decimal

import pytest

from dosetrack.medication import Medication, MedicationType
from dosetrack.store import InMemoryPatternStore


@pytest.fixture
def warfarin():
    return Medication(
        id=1,
        name="Warfarin",
        fixed_dose=Decimal("5"),
        type=MedicationType.VITAMIN_K_ANTAGONIST,
        start_date=date(2025, 10, 1),
    )


@pytest.fixture
def store():
    return InMemoryPatternStore()
