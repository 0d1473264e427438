"""
Connectivity Monitor.

Decides whether the device is online (link up AND internet reachable) and
whether the pending queue is due for a sync, and drives the periodic
sync-then-refresh tick.
"""
import asyncio
import logging
import socket
from datetime import datetime, timedelta, timezone
from typing import Awaitable, Callable, Optional

import httpx

from .storage import LocalStore, LAST_SYNC

logger = logging.getLogger(__name__)

DEFAULT_INTERVAL_SECONDS = 10.0
DEFAULT_MAX_AGE_MINUTES = 30


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class NetworkProbe:
    """Platform reachability signal: link state and internet reachability."""

    def __init__(self, reachability_url: str, timeout: float = 5.0,
                 link_host: str = "8.8.8.8", link_port: int = 80,
                 transport: Optional[httpx.AsyncBaseTransport] = None):
        self.reachability_url = reachability_url
        self.timeout = timeout
        self.link_host = link_host
        self.link_port = link_port
        self._transport = transport

    async def link_up(self) -> bool:
        # A UDP connect only asks the OS for a route; nothing is sent
        sock = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
        try:
            sock.connect((self.link_host, self.link_port))
            return True
        except OSError as e:
            logger.debug(f"No network route: {e}")
            return False
        finally:
            sock.close()

    async def internet_reachable(self) -> bool:
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                await client.get(self.reachability_url)
            return True
        except httpx.HTTPError as e:
            logger.debug(f"Reachability check against {self.reachability_url} failed: {e}")
            return False


class ConnectivityState:
    """
    Process-wide connectivity signal.

    ``connected`` is written only by the ConnectivityMonitor; ``last_sync``
    is persisted and stamped at the end of each sync pass.
    """

    def __init__(self, store: LocalStore):
        self._store = store
        self._connected = False

    @property
    def connected(self) -> bool:
        return self._connected

    def _publish(self, connected: bool) -> None:
        # Monitor only
        self._connected = connected

    @property
    def last_sync(self) -> Optional[datetime]:
        value = self._store.get(LAST_SYNC)
        return datetime.fromisoformat(value) if value else None

    def record_sync(self, at: datetime) -> None:
        self._store.set(LAST_SYNC, at.isoformat())


class ConnectivityMonitor:
    """
    Polls reachability on a fixed interval. Each tick updates
    ``ConnectivityState.connected``; when connected and a sync is due it runs
    ``on_sync`` and then ``on_refresh`` whatever the sync outcome was.
    """

    def __init__(self, probe: NetworkProbe, state: ConnectivityState,
                 interval: float = DEFAULT_INTERVAL_SECONDS,
                 max_age_minutes: float = DEFAULT_MAX_AGE_MINUTES,
                 clock: Callable[[], datetime] = utcnow):
        self._probe = probe
        self._state = state
        self.interval = interval
        self.max_age_minutes = max_age_minutes
        self._clock = clock
        self._on_sync: Optional[Callable[[], Awaitable]] = None
        self._on_refresh: Optional[Callable[[], Awaitable]] = None
        self._task: Optional[asyncio.Task] = None

    @property
    def state(self) -> ConnectivityState:
        return self._state

    def attach(self, on_sync: Callable[[], Awaitable], on_refresh: Optional[Callable[[], Awaitable]] = None) -> None:
        self._on_sync = on_sync
        self._on_refresh = on_refresh

    async def is_connected(self) -> bool:
        if not await self._probe.link_up():
            return False
        return await self._probe.internet_reachable()

    def is_sync_needed(self, max_age_minutes: Optional[float] = None) -> bool:
        if max_age_minutes is None:
            max_age_minutes = self.max_age_minutes
        last_sync = self._state.last_sync
        if last_sync is None:
            return True
        return self._clock() - last_sync > timedelta(minutes=max_age_minutes)

    async def tick(self) -> bool:
        """One poll. Returns whether the device was connected."""
        connected = await self.is_connected()
        if connected != self._state.connected:
            logger.info(f"Connectivity changed: {'online' if connected else 'offline'}")
        self._state._publish(connected)

        if connected and self.is_sync_needed() and self._on_sync is not None:
            try:
                await self._on_sync()
            except Exception:
                logger.exception("Sync pass failed")
            if self._on_refresh is not None:
                try:
                    await self._on_refresh()
                except Exception:
                    logger.exception("Incident cache refresh failed")
        return connected

    async def run(self) -> None:
        logger.info(f"Connectivity monitor started (every {self.interval}s)")
        while True:
            try:
                await self.tick()
            except Exception:
                logger.exception("Connectivity check failed")
            await asyncio.sleep(self.interval)

    def start(self) -> asyncio.Task:
        if self._task is None or self._task.done():
            self._task = asyncio.create_task(self.run())
        return self._task

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
        logger.info("Connectivity monitor stopped")
