import asyncio
from datetime import date, timedelta
from decimal import Decimal

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlalchemy.pool import NullPool

from services.api.dosage_api import models
from services.api.dosage_api.db import create_schema, get_session, make_engine
from services.api.dosage_api.main import app
from services.client.client import ApiClient


@pytest.fixture
def sessions(tmp_path):
    engine = make_engine(f"sqlite+aiosqlite:///{tmp_path / 'dosetrack.db'}", poolclass=NullPool)
    asyncio.run(create_schema(engine))
    return async_sessionmaker(engine, expire_on_commit=False, class_=AsyncSession)


@pytest.fixture
def client(sessions):
    async def override_session():
        async with sessions() as session:
            yield session

    app.dependency_overrides[get_session] = override_session
    yield TestClient(app)
    app.dependency_overrides.clear()


def create_medication(client, **overrides):
    payload = {"name": "Warfarin", "type": "vitamin_k_antagonist", "fixedDose": 5}
    payload.update(overrides)
    r = client.post("/medications", json=payload)
    assert r.status_code == 201
    return r.json()


def create_pattern(client, medication_id, sequence, start, **extra):
    payload = {"patternSequence": sequence, "startDate": start.isoformat()}
    payload.update(extra)
    return client.post(f"/medications/{medication_id}/patterns", json=payload)


def test_medication_round_trip(client):
    med = create_medication(client)
    assert med["fixedDose"] == 5.0
    assert med["dosageUnit"] == "mg"
    r = client.get(f"/medications/{med['id']}")
    assert r.json()["name"] == "Warfarin"
    assert client.get("/medications/999").status_code == 404


def test_create_then_fetch_active_pattern(client):
    med = create_medication(client)
    today = date.today()
    r = create_pattern(client, med["id"], [4, 4, 3], today, notes="INR review")
    assert r.status_code == 201
    created = r.json()
    assert created["patternSequence"] == [4.0, 4.0, 3.0]
    assert created["patternLength"] == 3
    assert created["isActive"] is True
    assert created["warnings"] == []
    assert created["displayPattern"] == "4mg, 4mg, 3mg (3-day cycle)"

    active = client.get(f"/medications/{med['id']}/patterns/active").json()
    assert active["id"] == created["id"]
    assert active["startDate"] == created["startDate"] == today.isoformat()
    assert active["patternSequence"] == created["patternSequence"]
    assert active["averageDose"] == created["averageDose"]
    assert round(active["averageDose"], 2) == 3.67
    assert active["notes"] == "INR review"
    assert active["todaysDosage"] == 4.0
    assert active["todaysPatternDay"] == 1


def test_no_active_pattern_is_404(client):
    med = create_medication(client)
    r = client.get(f"/medications/{med['id']}/patterns/active")
    assert r.status_code == 404
    assert r.json()["title"] == "Not found"


def test_overlap_conflict_without_close(client):
    med = create_medication(client)
    today = date.today()
    first = create_pattern(client, med["id"], [4, 4, 3], today).json()
    r = create_pattern(client, med["id"], [5, 5], today + timedelta(days=3), closePreviousPattern=False)
    assert r.status_code == 409
    assert "closePreviousPattern" in r.json()["detail"]

    history = client.get(f"/medications/{med['id']}/patterns").json()
    assert history["totalCount"] == 1
    assert history["patterns"][0]["id"] == first["id"]
    assert history["patterns"][0]["endDate"] is None


def test_new_pattern_closes_previous(client):
    med = create_medication(client)
    today = date.today()
    first = create_pattern(client, med["id"], [4, 4, 3], today).json()
    second = create_pattern(client, med["id"], [5, 5], today + timedelta(days=5)).json()
    assert second["closedPatternIds"] == [first["id"]]

    history = client.get(f"/medications/{med['id']}/patterns").json()
    assert history["totalCount"] == 2
    assert [p["id"] for p in history["patterns"]] == [second["id"], first["id"]]
    assert history["patterns"][1]["endDate"] == (today + timedelta(days=4)).isoformat()
    assert history["patterns"][1]["patternSequence"] == [4.0, 4.0, 3.0]

    active_only = client.get(f"/medications/{med['id']}/patterns", params={"activeOnly": "true"}).json()
    assert active_only["totalCount"] == 1


def test_history_limit_is_clamped(client):
    med = create_medication(client)
    create_pattern(client, med["id"], [4, 3], date.today())
    assert client.get(f"/medications/{med['id']}/patterns", params={"limit": 1000}).json()["limit"] == 100
    assert client.get(f"/medications/{med['id']}/patterns", params={"limit": 0}).json()["limit"] == 1
    assert client.get(f"/medications/{med['id']}/patterns", params={"offset": -1}).status_code == 400


def test_validation_errors_are_field_level(client):
    med = create_medication(client)
    today = date.today()
    r = create_pattern(client, med["id"], [4, 25], today)
    assert r.status_code == 400
    assert r.json()["errors"][0]["field"] == "patternSequence"

    r = create_pattern(client, med["id"], [0, 4.125], today)
    assert [e["field"] for e in r.json()["errors"]] == ["patternSequence[0]", "patternSequence[1]"]

    r = create_pattern(client, med["id"], ["abc"], today)
    assert r.status_code == 400
    assert r.json()["title"] == "Validation failed"
    assert r.json()["errors"][0]["field"].startswith("patternSequence")


def test_near_limit_warning_is_returned(client):
    med = create_medication(client)
    r = create_pattern(client, med["id"], [16, 10], date.today())
    assert r.status_code == 201
    assert [w["field"] for w in r.json()["warnings"]] == ["patternSequence"]


def test_pattern_for_unknown_medication_is_404(client):
    assert create_pattern(client, 999, [4, 3], date.today()).status_code == 404


def test_schedule(client):
    med = create_medication(client)
    today = date.today()
    create_pattern(client, med["id"], [4, 4, 3], today)
    r = client.get(f"/medications/{med['id']}/schedule", params={"startDate": today.isoformat(), "days": 7})
    assert r.status_code == 200
    body = r.json()
    assert body["totalDays"] == 7
    assert body["schedule"][0]["date"] == today.isoformat()
    assert [e["dosage"] for e in body["schedule"]] == [4.0, 4.0, 3.0, 4.0, 4.0, 3.0, 4.0]
    assert body["summary"]["totalDosage"] == 26.0
    assert body["currentPattern"]["patternLength"] == 3

    default = client.get(f"/medications/{med['id']}/schedule").json()
    assert default["totalDays"] == 14

    for days in (0, 400):
        r = client.get(f"/medications/{med['id']}/schedule", params={"days": days})
        assert r.status_code == 400
        assert r.json()["errors"][0]["field"] == "days"


def test_dosage_for_date(client):
    med = create_medication(client)
    today = date.today()
    create_pattern(client, med["id"], [4, 4, 3], today)

    r = client.get(f"/medications/{med['id']}/schedule/date", params={"date": (today + timedelta(days=2)).isoformat()})
    body = r.json()
    assert body["dosage"] == 3.0
    assert body["patternDay"] == 3
    assert body["isPatternBased"] is True

    before = client.get(f"/medications/{med['id']}/schedule/date", params={"date": (today - timedelta(days=1)).isoformat()}).json()
    assert before["dosage"] == 5.0
    assert before["isPatternBased"] is False


def test_dose_logs_reconcile_against_pattern(client):
    med = create_medication(client)
    today = date.today()
    pattern = create_pattern(client, med["id"], [4, 4, 3], today).json()

    r = client.post(f"/medications/{med['id']}/logs", json={"logDate": today.isoformat(), "actualDose": 4.01})
    assert r.status_code == 201
    assert r.json()["hasVariance"] is False
    assert r.json()["resolvedPatternId"] == pattern["id"]

    r = client.post(f"/medications/{med['id']}/logs", json={"logDate": today.isoformat(), "actualDose": 4.02})
    logged = r.json()
    assert logged["hasVariance"] is True
    assert logged["expectedDose"] == 4.0
    assert logged["patternDayNumber"] == 1

    logs = client.get(f"/medications/{med['id']}/logs").json()
    assert len(logs) == 2
    assert sorted(log["hasVariance"] for log in logs) == [False, True]


def test_api_client_against_app(client):
    api = ApiClient(client=client)
    med = api.create_medication({"name": "Apixaban", "type": "doac", "fixedDose": 5})
    assert api.active_pattern(med["id"]) is None
    api.create_pattern(med["id"], {"patternSequence": [5, 2.5], "startDate": date.today().isoformat()})
    assert api.active_pattern(med["id"])["patternLength"] == 2
    assert api.pattern_history(med["id"])["totalCount"] == 1
    schedule = api.schedule(med["id"], start_date=date.today(), days=4)
    assert [e["dosage"] for e in schedule["schedule"]] == [5.0, 2.5, 5.0, 2.5]
    assert api.dosage_for_date(med["id"], date.today())["dosage"] == 5.0
    api.log_dose(med["id"], {"logDate": date.today().isoformat(), "actualDose": 5})
    assert len(api.list_dose_logs(med["id"])) == 1


def test_doses_with_more_than_two_decimals_are_rejected(client):
    r = client.post("/medications", json={"name": "Warfarin", "fixedDose": 2.555})
    assert r.status_code == 400
    assert r.json()["errors"][0]["field"] == "fixedDose"

    med = create_medication(client)
    today = date.today()
    create_pattern(client, med["id"], [4, 4, 3], today)
    r = client.post(f"/medications/{med['id']}/logs", json={"logDate": today.isoformat(), "actualDose": 4.015})
    assert r.status_code == 400
    assert r.json()["errors"][0]["field"] == "actualDose"
    assert client.get(f"/medications/{med['id']}/logs").json() == []


def test_overlapping_rows_give_generic_server_error(client, sessions):
    med = create_medication(client)
    today = date.today()

    async def seed():
        async with sessions() as session:
            session.add_all([
                models.DosagePattern(
                    medication_id=med["id"],
                    pattern_sequence=[Decimal("4"), Decimal("3")],
                    start_date=today - timedelta(days=3),
                    end_date=today + timedelta(days=3),
                ),
                models.DosagePattern(
                    medication_id=med["id"],
                    pattern_sequence=[Decimal("5")],
                    start_date=today,
                ),
            ])
            await session.commit()

    asyncio.run(seed())
    r = client.get(f"/medications/{med['id']}/schedule/date", params={"date": today.isoformat()})
    assert r.status_code == 500
    body = r.json()
    assert body["title"] == "Internal error"
    assert body["errors"] == []
    assert str(med["id"]) not in body["detail"]
    assert today.isoformat() not in body["detail"]
