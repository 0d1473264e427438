import logging
import re
from datetime import datetime, timezone
from typing import Callable, Dict, List, Optional, Tuple

from pydantic import ValidationError

from modules.incidents.models import IncidentCreate
from .models import LocalId, PendingIncident
from .storage import LocalStore, PENDING_INCIDENTS, register_migration

logger = logging.getLogger(__name__)

TEMP_ID_PREFIX = "temp_"
_TEMP_ID_PATTERN = re.compile(r"^temp_(\d+)$")


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


@register_migration(PENDING_INCIDENTS, 0)
def _migrate_unversioned_queue(items):
    """Unversioned queues kept the temporary id as a plain ``id`` string."""
    migrated = []
    for item in items or []:
        if not isinstance(item, dict):
            migrated.append(item)
            continue
        item = dict(item)
        temp_id = item.pop("id", None)
        if "local_id" not in item:
            item["local_id"] = {"kind": "local", "value": str(temp_id)}
        migrated.append(item)
    return migrated


class PendingIncidentQueue:
    """
    Reports recorded while the Incident Service could not take them.

    Every method is a synchronous critical section over the stored list, so
    under asyncio no other coroutine can observe a half-applied mutation.

    Stored entries that no longer validate (hand-edited files, older layouts
    with values the current model refuses) are kept on disk untouched, ahead
    of the readable ones, and are never offered for sync. Readable entries
    that come back unchanged through ``replace_all`` are written back exactly
    as they were read.
    """

    def __init__(self, store: LocalStore, clock: Callable[[], datetime] = utcnow):
        self._store = store
        self._clock = clock
        self._stored: Dict[LocalId, dict] = {}

    def _read(self) -> Tuple[List[PendingIncident], List[dict]]:
        items, unreadable = [], []
        self._stored = {}
        for raw in self._store.get(PENDING_INCIDENTS, []):
            try:
                item = PendingIncident.model_validate(raw)
            except ValidationError as e:
                logger.warning(f"Keeping unreadable queued incident aside: {e.error_count()} error(s)")
                unreadable.append(raw)
                continue
            self._stored[item.local_id] = raw
            items.append(item)
        return items, unreadable

    def _load(self) -> List[PendingIncident]:
        return self._read()[0]

    def _save(self, items: List[PendingIncident], unreadable: List[dict]) -> None:
        entries = list(unreadable)
        for item in items:
            raw = self._stored.get(item.local_id)
            if raw is None or PendingIncident.model_validate(raw) != item:
                raw = item.model_dump(mode="json")
            entries.append(raw)
        self._store.set(PENDING_INCIDENTS, entries)

    def _next_temp_id(self, created_at: datetime, items: List[PendingIncident],
                      unreadable: List[dict]) -> LocalId:
        stamp = int(created_at.timestamp() * 1000)
        values = [item.local_id.value for item in items]
        values += [_raw_local_id(raw) for raw in unreadable]
        # Keep ids strictly increasing even within one millisecond or after a clock step back
        for value in values:
            match = _TEMP_ID_PATTERN.match(value or "")
            if match:
                stamp = max(stamp, int(match.group(1)) + 1)
        return LocalId(value=f"{TEMP_ID_PREFIX}{stamp}")

    def enqueue(self, report: IncidentCreate) -> PendingIncident:
        items, unreadable = self._read()
        created_at = self._clock()
        pending = PendingIncident(
            **report.model_dump(),
            local_id=self._next_temp_id(created_at, items, unreadable),
            created_at=created_at,
        )
        items.append(pending)
        self._save(items, unreadable)
        logger.info(f"Queued incident {pending.local_id} for later sync ({len(items)} pending)")
        return pending

    def drain_snapshot(self) -> List[PendingIncident]:
        """All readable pending items in enqueue order; nothing is removed."""
        return self._load()

    def remove(self, local_id: LocalId) -> bool:
        items, unreadable = self._read()
        remaining = [item for item in items if item.local_id != local_id]
        if len(remaining) == len(items):
            return False
        self._save(remaining, unreadable)
        return True

    def replace_all(self, items: List[PendingIncident]) -> None:
        """Replace the readable items; unreadable entries stay where they are."""
        _, unreadable = self._read()
        self._save(list(items), unreadable)

    def unreadable(self) -> List[dict]:
        return self._read()[1]

    def __len__(self):
        return len(self._load())


def _raw_local_id(raw) -> Optional[str]:
    if not isinstance(raw, dict):
        return None
    local_id = raw.get("local_id")
    if isinstance(local_id, dict):
        return str(local_id.get("value"))
    return None
