"""
Device-local key-value storage.

Each key lives in its own JSON document under the data directory, wrapped in
a versioned envelope::

    {"version": 1, "saved_at": "2026-01-01T00:00:00+00:00", "data": ...}

Documents written before the envelope existed hold the bare value; they are
read as version 0 and migrated forward with the functions registered through
``register_migration``, then rewritten in the current format.
"""
import json
import logging
import os
import re
import tempfile
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Optional

from .exceptions import StorageError

logger = logging.getLogger(__name__)

STORAGE_VERSION = 1

PENDING_INCIDENTS = "pending_incidents"
CACHED_INCIDENTS = "cached_incidents"
LAST_SYNC = "last_sync"
TOKEN = "token"
USER = "user"

_KEY_PATTERN = re.compile(r"^[a-z][a-z0-9_]*$")

# key -> {from_version: fn(data) -> data at from_version + 1}
_MIGRATIONS: Dict[str, Dict[int, Callable[[Any], Any]]] = {}


def register_migration(key: str, from_version: int):
    """Register ``fn`` as the upgrade of ``key`` from ``from_version`` to the next version."""
    def decorator(fn):
        _MIGRATIONS.setdefault(key, {})[from_version] = fn
        return fn
    return decorator


def _is_envelope(raw) -> bool:
    return isinstance(raw, dict) and "version" in raw and "data" in raw


class LocalStore:
    """JSON documents on disk, one per key, written atomically."""

    def __init__(self, data_dir: str):
        self.data_dir = data_dir
        os.makedirs(data_dir, exist_ok=True)

    def _path(self, key: str) -> str:
        if not _KEY_PATTERN.match(key):
            raise ValueError(f"Invalid storage key '{key}'")
        return os.path.join(self.data_dir, f"{key}.json")

    def get(self, key: str, default: Any = None) -> Any:
        path = self._path(key)
        if not os.path.exists(path):
            return default
        with open(path, "r", encoding="utf-8") as f:
            try:
                raw = json.load(f)
            except json.JSONDecodeError as e:
                raise StorageError(f"Stored value for '{key}' is not valid JSON: {e}") from e

        if _is_envelope(raw):
            version, data = raw["version"], raw["data"]
        else:
            version, data = 0, raw
        if not isinstance(version, int) or version > STORAGE_VERSION:
            raise StorageError(f"Stored value for '{key}' has unsupported version {version!r}")

        if version < STORAGE_VERSION:
            data = self._migrate(key, version, data)
            self.set(key, data)
        return data

    def _migrate(self, key: str, version: int, data: Any) -> Any:
        steps = _MIGRATIONS.get(key, {})
        while version < STORAGE_VERSION:
            fn = steps.get(version)
            if fn is not None:
                data = fn(data)
            version += 1
        logger.info(f"Migrated stored '{key}' to version {STORAGE_VERSION}")
        return data

    def set(self, key: str, value: Any) -> None:
        path = self._path(key)
        envelope = {
            "version": STORAGE_VERSION,
            "saved_at": datetime.now(timezone.utc).isoformat(),
            "data": value,
        }
        fd, tmp_path = tempfile.mkstemp(dir=self.data_dir, prefix=f".{key}.", suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(envelope, f)
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp_path, path)
        except BaseException:
            if os.path.exists(tmp_path):
                os.unlink(tmp_path)
            raise

    def remove(self, key: str) -> None:
        path = self._path(key)
        if os.path.exists(path):
            os.unlink(path)


class CredentialStore:
    """The signed-in user's bearer token and profile."""

    def __init__(self, store: LocalStore):
        self._store = store

    @property
    def token(self) -> Optional[str]:
        return self._store.get(TOKEN)

    @property
    def user(self) -> Optional[dict]:
        return self._store.get(USER)

    @property
    def user_id(self) -> Optional[str]:
        user = self.user
        return str(user["id"]) if user and user.get("id") is not None else None

    def save(self, token: str, user: dict) -> None:
        self._store.set(TOKEN, token)
        self._store.set(USER, user)

    def clear(self) -> None:
        self._store.remove(TOKEN)
        self._store.remove(USER)
