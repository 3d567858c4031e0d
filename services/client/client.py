from __future__ import annotations

import os
from datetime import date
from typing import Any

import httpx


API_BASE_URL = os.getenv("API_BASE_URL", "http://localhost:8000")


class ApiClient:
    def __init__(self, base_url: str | None = None, client: httpx.Client | None = None) -> None:
        self.base_url = base_url or API_BASE_URL
        self._client = client or httpx.Client(base_url=self.base_url, timeout=10.0)

    def create_medication(self, payload: dict[str, Any]) -> dict[str, Any]:
        r = self._client.post("/medications", json=payload)
        r.raise_for_status()
        return r.json()

    def get_medication(self, medication_id: int) -> dict[str, Any]:
        r = self._client.get(f"/medications/{medication_id}")
        r.raise_for_status()
        return r.json()

    def create_pattern(self, medication_id: int, payload: dict[str, Any]) -> dict[str, Any]:
        r = self._client.post(f"/medications/{medication_id}/patterns", json=payload)
        r.raise_for_status()
        return r.json()

    def active_pattern(self, medication_id: int) -> dict[str, Any] | None:
        r = self._client.get(f"/medications/{medication_id}/patterns/active")
        if r.status_code == 404:
            return None
        r.raise_for_status()
        return r.json()

    def pattern_history(
        self, medication_id: int, active_only: bool = False, limit: int = 10, offset: int = 0
    ) -> dict[str, Any]:
        params = {"activeOnly": str(active_only).lower(), "limit": limit, "offset": offset}
        r = self._client.get(f"/medications/{medication_id}/patterns", params=params)
        r.raise_for_status()
        return r.json()

    def schedule(
        self,
        medication_id: int,
        start_date: date | None = None,
        days: int = 14,
        include_pattern_changes: bool = True,
    ) -> dict[str, Any]:
        params: dict[str, Any] = {"days": days, "includePatternChanges": str(include_pattern_changes).lower()}
        if start_date is not None:
            params["startDate"] = start_date.isoformat()
        r = self._client.get(f"/medications/{medication_id}/schedule", params=params)
        r.raise_for_status()
        return r.json()

    def dosage_for_date(self, medication_id: int, target: date) -> dict[str, Any]:
        r = self._client.get(f"/medications/{medication_id}/schedule/date", params={"date": target.isoformat()})
        r.raise_for_status()
        return r.json()

    def log_dose(self, medication_id: int, payload: dict[str, Any]) -> dict[str, Any]:
        r = self._client.post(f"/medications/{medication_id}/logs", json=payload)
        r.raise_for_status()
        return r.json()

    def list_dose_logs(self, medication_id: int) -> list[dict[str, Any]]:
        r = self._client.get(f"/medications/{medication_id}/logs")
        r.raise_for_status()
        return r.json()
