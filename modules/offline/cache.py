import logging
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional

from .models import CachedIncidentSet
from .storage import LocalStore, CACHED_INCIDENTS, register_migration

logger = logging.getLogger(__name__)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


@register_migration(CACHED_INCIDENTS, 0)
def _migrate_unversioned_cache(incidents):
    """Unversioned caches stored the bare incident list with no refresh time."""
    return {"incidents": list(incidents or []), "last_refreshed": None}


class IncidentCache:
    """Last-known-good set of nearby incidents; replaced wholesale, last write wins."""

    def __init__(self, store: LocalStore, clock: Callable[[], datetime] = utcnow):
        self._store = store
        self._clock = clock

    def cache(self, incidents: List[Dict[str, Any]]) -> CachedIncidentSet:
        snapshot = CachedIncidentSet(incidents=list(incidents), last_refreshed=self._clock())
        self._store.set(CACHED_INCIDENTS, snapshot.model_dump(mode="json"))
        logger.debug(f"Cached {len(snapshot.incidents)} incident(s)")
        return snapshot

    def snapshot(self) -> CachedIncidentSet:
        stored = self._store.get(CACHED_INCIDENTS)
        if stored is None:
            return CachedIncidentSet()
        return CachedIncidentSet.model_validate(stored)

    def get_cached(self) -> List[Dict[str, Any]]:
        return self.snapshot().incidents

    @property
    def last_refreshed(self) -> Optional[datetime]:
        return self.snapshot().last_refreshed

    def clear(self) -> None:
        self._store.remove(CACHED_INCIDENTS)
