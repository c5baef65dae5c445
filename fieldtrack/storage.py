from __future__ import annotations

import json
import logging
import threading
from typing import Any, Callable

from sqlalchemy.orm import Session

from fieldtrack.config import settings
from fieldtrack.db import SessionLocal
from fieldtrack.models import StorageEntry


logger = logging.getLogger(__name__)

GROUPS = 'groups'
CHILDREN = 'children'
SESSIONS = 'sessions'
REPORTS = 'reports'
JOIN_REQUESTS = 'join-requests'
NOTIFICATIONS = 'notifications'
PROGRESS_ENTRIES = 'progress-entries'
CALENDAR_EVENTS = 'calendar-events'
ATTENDANCE = 'attendance'
READ_SESSIONS_BY_CHILD = 'read-sessions-by-child'
READ_PROGRESS_BY_CHILD = 'read-progress-by-child'
USERS = 'users'
CURRENT_SESSION = 'current-session'


def storage_key(name: str) -> str:
    return f'{settings.storage_key_prefix}{name}'


def _decode(key: str, raw: str | None) -> Any | None:
    if raw is None:
        return None
    try:
        return json.loads(raw)
    except json.JSONDecodeError:
        logger.warning('storage_value_corrupt key=%s', key)
        return None


class KeyValueStorage:
    """Durable key-value port. Values must be JSON-serializable."""

    def load(self, key: str) -> Any | None:
        raise NotImplementedError

    def save(self, key: str, value: Any) -> None:
        raise NotImplementedError

    def delete(self, key: str) -> None:
        raise NotImplementedError


class MemoryStorage(KeyValueStorage):
    def __init__(self, initial: dict[str, Any] | None = None) -> None:
        self._lock = threading.Lock()
        self._store: dict[str, str] = {}
        for key, value in (initial or {}).items():
            self._store[key] = json.dumps(value)

    def load(self, key: str) -> Any | None:
        with self._lock:
            raw = self._store.get(key)
        return _decode(key, raw)

    def save(self, key: str, value: Any) -> None:
        payload = json.dumps(value)
        with self._lock:
            self._store[key] = payload

    def delete(self, key: str) -> None:
        with self._lock:
            self._store.pop(key, None)

    def put_raw(self, key: str, raw: str) -> None:
        with self._lock:
            self._store[key] = raw

    def keys(self) -> list[str]:
        with self._lock:
            return sorted(self._store.keys())


class SqlStorage(KeyValueStorage):
    def __init__(self, session_factory: Callable[[], Session]) -> None:
        self._session_factory = session_factory

    def load(self, key: str) -> Any | None:
        db = self._session_factory()
        try:
            row = db.get(StorageEntry, key)
            raw = row.value_json if row else None
        finally:
            db.close()
        return _decode(key, raw)

    def save(self, key: str, value: Any) -> None:
        payload = json.dumps(value)
        db = self._session_factory()
        try:
            row = db.get(StorageEntry, key)
            if row:
                row.value_json = payload
            else:
                db.add(StorageEntry(key=key, value_json=payload))
            db.commit()
        except Exception:
            db.rollback()
            logger.exception('storage_save_failed key=%s', key)
            raise
        finally:
            db.close()

    def delete(self, key: str) -> None:
        db = self._session_factory()
        try:
            db.query(StorageEntry).filter(StorageEntry.key == key).delete()
            db.commit()
        finally:
            db.close()


def build_storage() -> KeyValueStorage:
    if settings.storage_backend == 'memory':
        return MemoryStorage()
    return SqlStorage(SessionLocal)
