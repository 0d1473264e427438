import asyncio
import logging
from datetime import datetime, timezone
from typing import Callable, List, Optional

from .api import IncidentServiceClient
from .connectivity import ConnectivityMonitor, ConnectivityState
from .exceptions import NoConnectivityError
from .models import PendingIncident, SyncResult
from .queue import PendingIncidentQueue
from .storage import CredentialStore

logger = logging.getLogger(__name__)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class SyncEngine:
    """
    Drains the pending queue against the Incident Service.

    A pass walks a snapshot of the queue strictly in enqueue order. Accepted
    items leave the queue; rejected ones (network, validation, auth) stay
    byte-for-byte as they were and are retried on the next pass, with no
    attempt limit. Passes never overlap. Reward points for accepted items are
    requested together after the queue is committed, so submissions never
    wait on the Reward Service.
    """

    def __init__(self, queue: PendingIncidentQueue, api: IncidentServiceClient,
                 credentials: CredentialStore, connectivity: ConnectivityMonitor,
                 state: ConnectivityState, reward_trigger=None,
                 clock: Callable[[], datetime] = utcnow):
        self._queue = queue
        self._api = api
        self._credentials = credentials
        self._connectivity = connectivity
        self._state = state
        self._reward_trigger = reward_trigger
        self._clock = clock
        self._lock = asyncio.Lock()

    async def sync_pending_incidents(self) -> SyncResult:
        async with self._lock:
            return await self._run_pass()

    async def _run_pass(self) -> SyncResult:
        if not await self._connectivity.is_connected():
            raise NoConnectivityError("No internet connection")

        snapshot = self._queue.drain_snapshot()
        if not snapshot:
            self._state.record_sync(self._clock())
            return SyncResult()

        token = self._credentials.token
        if not token:
            logger.warning(f"Skipping sync of {len(snapshot)} incident(s): not signed in")
            return SyncResult()

        logger.info(f"Syncing {len(snapshot)} pending incident(s)")
        result = SyncResult()
        retained: List[PendingIncident] = []
        for item in snapshot:
            try:
                entity = await self._api.create_incident(item.submission_payload(), token)
            except Exception as e:
                logger.error(f"Could not sync incident {item.local_id}: {e}")
                retained.append(item)
                result.failed += 1
                continue
            result.synced += 1
            logger.info(f"Incident {item.local_id} synced as {entity.get('id')}")

        self._commit(snapshot, retained)
        self._state.record_sync(self._clock())
        await self._award_points(result.synced)
        logger.info(f"Sync pass finished: {result.synced} synced, {result.failed} failed")
        return result

    async def _award_points(self, synced: int) -> None:
        # Runs once the queue is committed; the trigger swallows its own errors
        if self._reward_trigger is None or not synced:
            return
        await asyncio.gather(*(self._reward_trigger.incident_reported() for _ in range(synced)))

    def _commit(self, snapshot: List[PendingIncident], retained: List[PendingIncident]) -> None:
        # Reports enqueued while the pass was waiting on the network are kept after the retained ones
        attempted = {item.local_id for item in snapshot}
        arrived = [item for item in self._queue.drain_snapshot() if item.local_id not in attempted]
        self._queue.replace_all(retained + arrived)
