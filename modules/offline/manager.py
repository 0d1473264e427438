import logging
from datetime import datetime, timezone
from typing import Callable, Optional

from modules.incidents.models import IncidentCreate
from modules.rewards.utils import REPORT_INCIDENT, REWARD_POINTS
from .api import IncidentServiceClient
from .cache import IncidentCache
from .config import OfflineSettings
from .connectivity import ConnectivityMonitor, ConnectivityState, NetworkProbe
from .exceptions import DataUnavailableError, IncidentServiceError
from .models import NearbyIncidents, RemoteId, ReportOutcome, SyncResult
from .queue import PendingIncidentQueue
from .storage import CredentialStore, LocalStore
from .sync import SyncEngine

logger = logging.getLogger("offline.manager")


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class RewardTrigger:
    """Fire-and-forget reward points; failures are logged and never propagate."""

    def __init__(self, api: IncidentServiceClient, credentials: CredentialStore):
        self._api = api
        self._credentials = credentials

    async def add_points(self, user_id: Optional[str], action_type: str) -> None:
        if action_type not in REWARD_POINTS:
            logger.error(f"Unknown reward action '{action_type}'")
            return
        token = self._credentials.token
        if not user_id or not token:
            logger.debug("No signed-in user; skipping reward points")
            return
        try:
            await self._api.add_points(user_id, action_type, token)
        except Exception as e:
            logger.error(f"Could not add {action_type} points for user {user_id}: {e}")

    async def incident_reported(self) -> None:
        await self.add_points(self._credentials.user_id, REPORT_INCIDENT)


class OfflineService:
    """
    Device-side entry point: reporting with offline fallback, the nearby
    incident map with cache fallback, and the background sync loop.
    """

    def __init__(self, settings: Optional[OfflineSettings] = None,
                 store: Optional[LocalStore] = None,
                 api: Optional[IncidentServiceClient] = None,
                 probe: Optional[NetworkProbe] = None,
                 clock: Callable[[], datetime] = utcnow):
        self.settings = settings or OfflineSettings()
        self.store = store or LocalStore(self.settings.data_dir)
        self.credentials = CredentialStore(self.store)
        self.api = api or IncidentServiceClient(self.settings.api_url, timeout=self.settings.http_timeout_seconds)
        self.state = ConnectivityState(self.store)
        self.monitor = ConnectivityMonitor(
            probe or NetworkProbe(self.settings.reachability_url, timeout=self.settings.http_timeout_seconds),
            self.state,
            interval=self.settings.sync_interval_seconds,
            max_age_minutes=self.settings.sync_max_age_minutes,
            clock=clock,
        )
        self.queue = PendingIncidentQueue(self.store, clock=clock)
        self.cache = IncidentCache(self.store, clock=clock)
        self.rewards = RewardTrigger(self.api, self.credentials)
        self.sync_engine = SyncEngine(
            self.queue, self.api, self.credentials, self.monitor, self.state,
            reward_trigger=self.rewards, clock=clock,
        )
        self.monitor.attach(self.sync_engine.sync_pending_incidents, self.refresh_incidents)
        self._last_location = None

    async def login(self, email_or_username: str, password: str) -> dict:
        """Sign in against the Incident Service and keep the credentials on the device."""
        session = await self.api.login(email_or_username, password)
        self.sign_in(session["token"], session["user"])
        logger.info(f"Signed in as {session['user'].get('username')}")
        return session["user"]

    def sign_in(self, token: str, user: dict) -> None:
        self.credentials.save(token, user)

    def sign_out(self) -> None:
        self.credentials.clear()

    async def report_incident(self, report: IncidentCreate) -> ReportOutcome:
        """
        Submit directly when possible; when offline, signed out, or the
        submission fails, the report goes to the pending queue instead.
        """
        token = self.credentials.token
        if token and await self.monitor.is_connected():
            try:
                entity = await self.api.create_incident(report.model_dump(mode="json"), token)
            except IncidentServiceError as e:
                logger.warning(f"Direct report failed, queueing it: {e}")
            else:
                await self.rewards.incident_reported()
                return ReportOutcome(incident_id=RemoteId.from_entity(entity), queued=False, incident=entity)

        pending = self.queue.enqueue(report)
        return ReportOutcome(incident_id=pending.local_id, queued=True, incident=pending.model_dump(mode="json"))

    async def sync_pending_incidents(self) -> SyncResult:
        return await self.sync_engine.sync_pending_incidents()

    def is_sync_needed(self, max_age_minutes: Optional[float] = None) -> bool:
        return self.monitor.is_sync_needed(max_age_minutes)

    async def load_nearby_incidents(self, latitude: float, longitude: float,
                                    radius: Optional[float] = None) -> NearbyIncidents:
        """Fetch nearby incidents, caching them; fall back to the cache when the fetch fails."""
        if radius is None:
            radius = self.settings.nearby_radius_km
        self._last_location = (latitude, longitude, radius)
        try:
            incidents = await self.api.get_nearby(latitude, longitude, radius, token=self.credentials.token)
        except IncidentServiceError as e:
            snapshot = self.cache.snapshot()
            if not snapshot.incidents:
                raise DataUnavailableError("Unable to load incidents") from e
            logger.warning(f"Serving {len(snapshot.incidents)} cached incident(s): {e}")
            return NearbyIncidents(incidents=snapshot.incidents, from_cache=True,
                                   last_refreshed=snapshot.last_refreshed)

        snapshot = self.cache.cache(incidents)
        return NearbyIncidents(incidents=incidents, from_cache=False, last_refreshed=snapshot.last_refreshed)

    async def refresh_incidents(self) -> Optional[NearbyIncidents]:
        if self._last_location is None:
            logger.debug("No known location yet; skipping incident refresh")
            return None
        return await self.load_nearby_incidents(*self._last_location)

    def start(self):
        return self.monitor.start()

    async def stop(self) -> None:
        await self.monitor.stop()
