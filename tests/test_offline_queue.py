"""Tests for the pending incident queue and its storage."""
from __future__ import annotations

import json
import os

import pytest

from modules.incidents.models import IncidentCreate
from modules.offline.exceptions import StorageError
from modules.offline.models import LocalId
from modules.offline.queue import PendingIncidentQueue
from modules.offline.storage import LocalStore, PENDING_INCIDENTS, STORAGE_VERSION


def report(title: str, **overrides) -> IncidentCreate:
    fields = {"title": title, "description": f"{title} near the bridge", "latitude": 48.85, "longitude": 2.35}
    fields.update(overrides)
    return IncidentCreate(**fields)


class TestPendingIncidentQueue:

    @pytest.fixture
    def queue(self, store, clock) -> PendingIncidentQueue:
        return PendingIncidentQueue(store, clock=clock)

    def test_enqueue_stamps_record(self, queue, clock):
        pending = queue.enqueue(report("Fire", severity="high"))
        assert pending.status == "pending_sync"
        assert pending.created_at == clock.now
        assert pending.severity == "high"
        assert isinstance(pending.local_id, LocalId)
        assert pending.local_id.value == f"temp_{int(clock.now.timestamp() * 1000)}"

    def test_snapshot_keeps_enqueue_order(self, queue, clock):
        titles = ["Fire", "Flood", "Collapsed wall", "Gas leak"]
        for title in titles:
            queue.enqueue(report(title))
            clock.advance(seconds=1)
        assert [p.title for p in queue.drain_snapshot()] == titles

    def test_snapshot_does_not_remove(self, queue):
        queue.enqueue(report("Fire"))
        queue.drain_snapshot()
        assert len(queue) == 1

    def test_temp_ids_distinct_within_same_millisecond(self, queue):
        ids = [queue.enqueue(report(f"Report {i}")).local_id.value for i in range(5)]
        assert len(set(ids)) == 5
        stamps = [int(v.split("_")[1]) for v in ids]
        assert stamps == sorted(stamps)

    def test_temp_ids_increase_after_clock_steps_back(self, queue, clock):
        first = queue.enqueue(report("Fire"))
        clock.advance(minutes=-5)
        second = queue.enqueue(report("Flood"))
        assert int(second.local_id.value[5:]) > int(first.local_id.value[5:])

    def test_remove(self, queue, clock):
        first = queue.enqueue(report("Fire"))
        clock.advance(seconds=1)
        second = queue.enqueue(report("Flood"))
        assert queue.remove(first.local_id) is True
        assert queue.remove(first.local_id) is False
        assert [p.local_id for p in queue.drain_snapshot()] == [second.local_id]

    def test_replace_all(self, queue, clock):
        items = []
        for title in ["Fire", "Flood", "Smoke"]:
            items.append(queue.enqueue(report(title)))
            clock.advance(seconds=1)
        queue.replace_all([items[0], items[2]])
        assert [p.title for p in queue.drain_snapshot()] == ["Fire", "Smoke"]

    def test_survives_restart(self, store, clock):
        PendingIncidentQueue(store, clock=clock).enqueue(report("Fire"))
        reopened = PendingIncidentQueue(LocalStore(store.data_dir), clock=clock)
        assert [p.title for p in reopened.drain_snapshot()] == ["Fire"]

    def test_unversioned_queue_is_migrated(self, store, queue):
        legacy = [{
            "id": "temp_1700000000000",
            "title": "Fire",
            "description": "Old format",
            "latitude": 1.0,
            "longitude": 2.0,
            "severity": "medium",
            "created_at": "2023-11-14T22:13:20.000Z",
            "status": "pending_sync",
        }]
        with open(os.path.join(store.data_dir, f"{PENDING_INCIDENTS}.json"), "w") as f:
            json.dump(legacy, f)

        items = queue.drain_snapshot()
        assert items[0].local_id == LocalId(value="temp_1700000000000")
        assert items[0].title == "Fire"

        with open(os.path.join(store.data_dir, f"{PENDING_INCIDENTS}.json")) as f:
            assert json.load(f)["version"] == STORAGE_VERSION

    def test_next_id_follows_migrated_items(self, store, queue):
        with open(os.path.join(store.data_dir, f"{PENDING_INCIDENTS}.json"), "w") as f:
            json.dump([{"id": "temp_99999999999999", "title": "Fire", "latitude": 1.0, "longitude": 2.0,
                        "created_at": "2023-11-14T22:13:20Z", "status": "pending_sync"}], f)
        assert queue.enqueue(report("Flood")).local_id.value == "temp_100000000000000"

    def test_unreadable_entries_are_kept_aside(self, store, queue, clock):
        legacy = [
            {"id": "temp_1700000000000", "title": "Fire", "latitude": 1.0, "longitude": 2.0,
             "created_at": "2023-11-14T22:13:20Z", "status": "pending_sync"},
            {"id": "temp_1700000000001", "title": "Flood", "latitude": 1.0, "severity": "urgent",
             "created_at": "2023-11-14T22:13:21Z", "status": "pending_sync"},
        ]
        with open(os.path.join(store.data_dir, f"{PENDING_INCIDENTS}.json"), "w") as f:
            json.dump(legacy, f)

        pending = queue.enqueue(report("New"))

        assert [p.title for p in queue.drain_snapshot()] == ["Fire", "New"]
        assert int(pending.local_id.value[5:]) > 1700000000001
        assert [raw["title"] for raw in queue.unreadable()] == ["Flood"]

        queue.replace_all([])
        assert queue.drain_snapshot() == []
        assert queue.unreadable()[0]["severity"] == "urgent"

    def test_retained_items_are_written_back_verbatim(self, store, queue):
        stored = {"local_id": {"kind": "local", "value": "temp_1700000000000"}, "title": "Fire",
                  "latitude": 1, "longitude": 2, "severity": "low", "created_at": "2023-11-14T22:13:20Z",
                  "status": "pending_sync", "reporter_note": "kept"}
        store.set(PENDING_INCIDENTS, [stored])

        queue.replace_all(queue.drain_snapshot())

        assert store.get(PENDING_INCIDENTS) == [stored]


class TestLocalStore:

    def test_values_are_wrapped_in_envelope(self, store):
        store.set("last_sync", "2026-01-01T00:00:00+00:00")
        with open(os.path.join(store.data_dir, "last_sync.json")) as f:
            raw = json.load(f)
        assert raw["version"] == STORAGE_VERSION
        assert raw["data"] == "2026-01-01T00:00:00+00:00"
        assert store.get("last_sync") == "2026-01-01T00:00:00+00:00"

    def test_missing_key_returns_default(self, store):
        assert store.get("cached_incidents", []) == []

    def test_newer_version_is_refused(self, store):
        with open(os.path.join(store.data_dir, "token.json"), "w") as f:
            json.dump({"version": STORAGE_VERSION + 1, "data": "x"}, f)
        with pytest.raises(StorageError):
            store.get("token")

    def test_corrupt_document(self, store):
        with open(os.path.join(store.data_dir, "token.json"), "w") as f:
            f.write("{not json")
        with pytest.raises(StorageError):
            store.get("token")

    def test_no_temp_files_left(self, store):
        store.set("token", "abc")
        store.set("token", "def")
        assert sorted(os.listdir(store.data_dir)) == ["token.json"]

    def test_remove(self, store):
        store.set("token", "abc")
        store.remove("token")
        store.remove("token")
        assert store.get("token") is None

    def test_invalid_key(self, store):
        with pytest.raises(ValueError):
            store.set("../escape", 1)
