"""Tests for the connectivity tick, incident cache and report flow."""
from __future__ import annotations

import asyncio

import pytest

from modules.incidents.models import IncidentCreate
from modules.offline.cache import IncidentCache
from modules.offline.exceptions import DataUnavailableError, IncidentServiceError
from modules.offline.models import LocalId, RemoteId

NEARBY = [
    {"id": "b", "title": "Flood", "created_at": "2026-01-01T11:00:00+00:00"},
    {"id": "a", "title": "Fire", "created_at": "2026-01-01T10:00:00+00:00"},
]


def report(title: str = "Fire") -> IncidentCreate:
    return IncidentCreate(title=title, latitude=36.8, longitude=10.18, severity="high")


class TestConnectivityTick:

    def test_tick_syncs_then_refreshes(self, service, fake_api, clock):
        fake_api.nearby = NEARBY
        asyncio.run(service.load_nearby_incidents(36.8, 10.18))
        service.queue.enqueue(report())
        fake_api.nearby = NEARBY[:1]

        assert asyncio.run(service.monitor.tick()) is True

        assert service.state.connected is True
        assert len(service.queue) == 0
        assert service.cache.get_cached() == NEARBY[:1]

    def test_refresh_runs_even_when_sync_fails(self, service, fake_api):
        calls = []

        async def failing_sync():
            calls.append("sync")
            raise IncidentServiceError("boom")

        async def refresh():
            calls.append("refresh")

        service.monitor.attach(failing_sync, refresh)
        asyncio.run(service.monitor.tick())
        assert calls == ["sync", "refresh"]

    def test_offline_tick_does_nothing(self, service, probe, fake_api):
        service.queue.enqueue(report())
        probe.link = False

        assert asyncio.run(service.monitor.tick()) is False

        assert service.state.connected is False
        assert len(service.queue) == 1
        assert fake_api.submitted == []

    def test_fresh_sync_skips_pass(self, service, fake_api, clock):
        asyncio.run(service.sync_pending_incidents())
        service.queue.enqueue(report())
        clock.advance(minutes=10)

        asyncio.run(service.monitor.tick())

        assert len(service.queue) == 1

    def test_background_loop_start_stop(self, service, fake_api):
        service.monitor.interval = 0.01
        service.queue.enqueue(report())

        async def run_briefly():
            service.start()
            await asyncio.sleep(0.05)
            await service.stop()

        asyncio.run(run_briefly())
        assert len(service.queue) == 0
        assert service.state.connected is True


class TestIncidentCache:

    def test_empty_by_default(self, store, clock):
        cache = IncidentCache(store, clock=clock)
        assert cache.get_cached() == []
        assert cache.last_refreshed is None

    def test_overwrites_snapshot(self, store, clock):
        cache = IncidentCache(store, clock=clock)
        cache.cache(NEARBY)
        clock.advance(minutes=2)
        cache.cache(NEARBY[1:])
        assert cache.get_cached() == NEARBY[1:]
        assert cache.last_refreshed == clock.now

    def test_clear(self, store, clock):
        cache = IncidentCache(store, clock=clock)
        cache.cache(NEARBY)
        cache.clear()
        assert cache.get_cached() == []


class TestNearbyIncidents:

    def test_live_fetch_is_cached(self, service, fake_api, clock):
        fake_api.nearby = NEARBY
        result = asyncio.run(service.load_nearby_incidents(36.8, 10.18, 10))
        assert result.from_cache is False
        assert result.incidents == NEARBY
        assert service.cache.get_cached() == NEARBY
        assert service.cache.last_refreshed == clock.now

    def test_falls_back_to_cache(self, service, fake_api, clock):
        fake_api.nearby = NEARBY
        asyncio.run(service.load_nearby_incidents(36.8, 10.18))
        refreshed = clock.now
        clock.advance(hours=1)
        fake_api.nearby = IncidentServiceError("GET /api/incidents/nearby failed: timed out")

        result = asyncio.run(service.load_nearby_incidents(36.8, 10.18))

        assert result.from_cache is True
        assert result.incidents == NEARBY
        assert result.last_refreshed == refreshed

    def test_no_cache_to_fall_back_on(self, service, fake_api):
        fake_api.nearby = IncidentServiceError("unreachable")
        with pytest.raises(DataUnavailableError):
            asyncio.run(service.load_nearby_incidents(36.8, 10.18))


class TestReportIncident:

    def test_direct_submission(self, service, fake_api):
        outcome = asyncio.run(service.report_incident(report()))
        assert outcome.queued is False
        assert outcome.incident_id == RemoteId(value="srv-1")
        assert outcome.incident["reported_by"] == "user-1"
        assert len(service.queue) == 0
        assert fake_api.points == [("user-1", "report_incident")]

    def test_offline_report_is_queued(self, service, probe, fake_api):
        probe.internet = False
        outcome = asyncio.run(service.report_incident(report()))
        assert outcome.queued is True
        assert isinstance(outcome.incident_id, LocalId)
        assert outcome.incident["status"] == "pending_sync"
        assert fake_api.submitted == []
        assert fake_api.points == []

    def test_failed_submission_is_queued(self, service, fake_api):
        fake_api.reject.add("Fire")
        outcome = asyncio.run(service.report_incident(report()))
        assert outcome.queued is True
        assert [p.title for p in service.queue.drain_snapshot()] == ["Fire"]

    def test_signed_out_report_is_queued(self, service, fake_api):
        service.sign_out()
        outcome = asyncio.run(service.report_incident(report()))
        assert outcome.queued is True
        assert fake_api.submitted == []

    def test_reward_failure_is_swallowed(self, service, fake_api):
        fake_api.points_error = RuntimeError("rewards down")
        outcome = asyncio.run(service.report_incident(report()))
        assert outcome.queued is False
