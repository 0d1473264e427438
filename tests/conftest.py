"""Shared pytest fixtures."""
from __future__ import annotations

import os

os.environ.setdefault("JWT_SECRET", "test-secret")

from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

from modules.offline.config import OfflineSettings
from modules.offline.exceptions import IncidentServiceError
from modules.offline.manager import OfflineService
from modules.offline.storage import LocalStore


class FakeClock:
    def __init__(self, start: datetime = datetime(2026, 1, 1, 12, 0, tzinfo=timezone.utc)):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


class FakeProbe:
    def __init__(self, link: bool = True, internet: bool = True):
        self.link = link
        self.internet = internet

    async def link_up(self) -> bool:
        return self.link

    async def internet_reachable(self) -> bool:
        return self.internet


class FakeIncidentApi:
    """Stands in for the Incident Service; rejects reports whose title is in ``reject``."""

    def __init__(self):
        self.reject: set[str] = set()
        self.fail_after: int | None = None
        self.submitted: list[dict] = []
        self.tokens: list[str] = []
        self.points: list[tuple[str, str]] = []
        self.points_error: Exception | None = None
        self.nearby: list[dict] | Exception = []
        self.on_create = None
        self.on_points = None

    async def create_incident(self, report: dict, token: str) -> dict:
        if self.on_create is not None:
            self.on_create(report)
        if self.fail_after is not None and len(self.submitted) >= self.fail_after:
            raise IncidentServiceError("POST /api/incidents failed: connection reset")
        if report["title"] in self.reject:
            raise IncidentServiceError("Validation failed", 422)
        self.submitted.append(report)
        self.tokens.append(token)
        return {"id": f"srv-{len(self.submitted)}", "reported_by": "user-1", **report}

    async def add_points(self, user_id: str, action_type: str, token: str) -> dict:
        if self.on_points is not None:
            self.on_points(user_id, action_type)
        if self.points_error is not None:
            raise self.points_error
        self.points.append((user_id, action_type))
        return {"points": 10}

    async def get_nearby(self, latitude, longitude, radius, token=None) -> list[dict]:
        if isinstance(self.nearby, Exception):
            raise self.nearby
        return self.nearby


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def probe() -> FakeProbe:
    return FakeProbe()


@pytest.fixture
def fake_api() -> FakeIncidentApi:
    return FakeIncidentApi()


@pytest.fixture
def store(tmp_path: Path) -> LocalStore:
    return LocalStore(str(tmp_path / "device"))


@pytest.fixture
def service(store, fake_api, probe, clock) -> OfflineService:
    settings = OfflineSettings(data_dir=store.data_dir, api_url="http://api.test")
    svc = OfflineService(settings=settings, store=store, api=fake_api, probe=probe, clock=clock)
    svc.sign_in("token-abc", {"id": "user-1", "username": "alice"})
    return svc
