"""Session context: the key/value cache, admin flag and degraded-mode notices.

Components that need cached state receive a SessionContext explicitly.
"""

import json
import logging
import os
import threading
from abc import ABC, abstractmethod
from collections import deque
from contextlib import contextmanager
from contextvars import ContextVar
from typing import Any, Dict, Iterator, List, Optional

from errors import NotAuthenticatedError

logger = logging.getLogger(__name__)

ADMIN_BOOKINGS_KEY = "adminBookings"
ADMIN_AUTH_KEY = "adminAuthenticated"
BOOKINGS_KEY = "museum_bookings"
LANGUAGE_KEY = "preferredLanguage"

SUPPORTED_LANGUAGES = ("en", "hi", "bn", "ta", "te", "mr")
DEFAULT_LANGUAGE = "en"

# Notices kept outside any request scope; older ones are dropped.
MAX_NOTICES = 20

_request_notices: ContextVar[Optional[List[str]]] = ContextVar("request_notices", default=None)


class KeyValueStore(ABC):
    """String key/value store."""

    @abstractmethod
    def get(self, key: str) -> Optional[str]:
        ...

    @abstractmethod
    def set(self, key: str, value: str) -> None:
        ...

    @abstractmethod
    def remove(self, key: str) -> None:
        ...


class MemoryKeyValueStore(KeyValueStore):
    def __init__(self, initial: Optional[Dict[str, str]] = None) -> None:
        self._data: Dict[str, str] = dict(initial or {})

    def get(self, key: str) -> Optional[str]:
        return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        self._data[key] = value

    def remove(self, key: str) -> None:
        self._data.pop(key, None)


class FileKeyValueStore(KeyValueStore):
    """Durable store kept as one JSON object on disk, rewritten on every change."""

    def __init__(self, path: str) -> None:
        self.path = path
        self._lock = threading.Lock()
        self._data: Dict[str, str] = {}
        if os.path.exists(path):
            with open(path, "r", encoding="utf-8") as fh:
                try:
                    loaded = json.load(fh)
                except json.JSONDecodeError:
                    logger.warning("Ignoring unreadable key/value file %s", path)
                    loaded = {}
            self._data = {str(k): str(v) for k, v in loaded.items()} if isinstance(loaded, dict) else {}

    def _flush(self) -> None:
        tmp_path = f"{self.path}.tmp"
        with open(tmp_path, "w", encoding="utf-8") as fh:
            json.dump(self._data, fh)
        os.replace(tmp_path, self.path)

    def get(self, key: str) -> Optional[str]:
        with self._lock:
            return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        with self._lock:
            self._data[key] = value
            self._flush()

    def remove(self, key: str) -> None:
        with self._lock:
            if self._data.pop(key, None) is not None:
                self._flush()


class SessionContext:
    """Per-deployment state that used to live in browser storage."""

    def __init__(self, store: Optional[KeyValueStore] = None) -> None:
        self.store = store if store is not None else MemoryKeyValueStore()
        self._notices: deque = deque(maxlen=MAX_NOTICES)

    # Admin flag. Not a security boundary.

    def login_admin(self) -> None:
        self.store.set(ADMIN_AUTH_KEY, "true")

    def logout_admin(self) -> None:
        self.store.remove(ADMIN_AUTH_KEY)

    def is_admin(self) -> bool:
        return self.store.get(ADMIN_AUTH_KEY) == "true"

    def require_admin(self) -> None:
        if not self.is_admin():
            raise NotAuthenticatedError()

    # Language preference

    @property
    def language(self) -> str:
        value = self.store.get(LANGUAGE_KEY)
        return value if value in SUPPORTED_LANGUAGES else DEFAULT_LANGUAGE

    @language.setter
    def language(self, value: str) -> None:
        if value not in SUPPORTED_LANGUAGES:
            raise ValueError(f"Unsupported language: {value}")
        self.store.set(LANGUAGE_KEY, value)

    # Last-known booking list

    def cache_bookings(self, docs: List[Dict[str, Any]]) -> None:
        self.store.set(ADMIN_BOOKINGS_KEY, json.dumps(docs, default=str))

    def cached_bookings(self) -> Optional[List[Dict[str, Any]]]:
        """Return the cached list, or None when nothing usable is cached."""
        raw = self.store.get(ADMIN_BOOKINGS_KEY)
        if raw is None:
            return None
        try:
            docs = json.loads(raw)
        except json.JSONDecodeError:
            logger.warning("Discarding unreadable booking cache")
            return None
        return docs if isinstance(docs, list) else None

    # Degraded-mode reporting

    @contextmanager
    def collect_notices(self) -> Iterator[List[str]]:
        """Scope notices to one unit of work, such as a single HTTP request.

        Inside the block `notices` only shows what was reported in this
        context; threads started from it share the same list.
        """
        notices: List[str] = []
        token = _request_notices.set(notices)
        try:
            yield notices
        finally:
            _request_notices.reset(token)

    def _current(self):
        scoped = _request_notices.get()
        return self._notices if scoped is None else scoped

    def report_degraded(self, message: str) -> None:
        logger.warning("Degraded mode: %s", message)
        notices = self._current()
        if message not in notices:
            notices.append(message)

    @property
    def notices(self) -> List[str]:
        return list(self._current())

    @property
    def degraded(self) -> bool:
        return bool(self._current())

    def clear_notices(self) -> None:
        self._current().clear()
