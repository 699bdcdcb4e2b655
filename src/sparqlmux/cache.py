"""Response cache for dispatched tasks.

The :class:`CacheStore` decides whether a task may be cached, derives a
stable key for it and mediates get/put against a TTL-capable key-value
backend.  Two backends are provided:

* :class:`MemoryBackend` - in-process dict with per-key expiry.
* :class:`RedisBackend` - any ``redis.Redis``-compatible client.

Every cache decision is logged and published to registered observers as
a :class:`CacheRecord`.  Observers are a side channel: a failing observer
never affects the query that triggered it.
"""

from __future__ import annotations

import hashlib
import json
import logging
import re
import threading
import time
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Protocol

from sparqlmux.tasks import Task, is_update_query

logger = logging.getLogger(__name__)

CACHE_NAMESPACE = "sparqlmux:"
DEFAULT_TTL = 60

# INSERT / DELETE / CLEAR, judged on the first two non-blank characters
_UPDATE_INTENT = re.compile(r"^\s*(?:in|de|cl)", re.IGNORECASE)


class CacheEvent(str, Enum):
    """Cache decisions published to observers."""

    HIT = "hit"
    MISS = "miss"
    PUT = "put"


@dataclass(frozen=True)
class CacheRecord:
    """One cache decision."""

    event: CacheEvent
    key: str
    task: Task
    result: Any = None


Observer = Callable[[CacheRecord], None]


class CacheBackend(Protocol):
    """Minimal key-value interface the cache store relies on."""

    def get(self, key: str) -> bytes | str | None: ...

    def set(self, key: str, value: bytes | str) -> Any: ...

    def expire(self, key: str, ttl: int) -> Any: ...


class MemoryBackend:
    """Simple in-memory backend with per-key TTL.

    Expired entries are dropped when read, and swept from the whole store
    on a write at most once every *sweep_interval* seconds.
    """

    def __init__(self, sweep_interval: float = 30.0) -> None:
        self._store: dict[str, tuple[float | None, bytes | str]] = {}
        self._lock = threading.Lock()
        self.sweep_interval = sweep_interval
        self._next_sweep = 0.0

    def get(self, key: str) -> bytes | str | None:
        with self._lock:
            entry = self._store.get(key)
            if entry is None:
                return None
            expires, value = entry
            if expires is not None and time.time() > expires:
                del self._store[key]
                return None
            return value

    def set(self, key: str, value: bytes | str) -> None:
        with self._lock:
            now = time.time()
            if now >= self._next_sweep:
                self._sweep(now)
                self._next_sweep = now + self.sweep_interval
            self._store[key] = (None, value)

    def expire(self, key: str, ttl: int) -> bool:
        with self._lock:
            entry = self._store.get(key)
            if entry is None:
                return False
            self._store[key] = (time.time() + ttl, entry[1])
            return True

    def _sweep(self, now: float) -> None:
        # Caller holds self._lock
        expired = [
            k for k, (expires, _) in self._store.items() if expires is not None and now > expires
        ]
        for k in expired:
            del self._store[k]
        if expired:
            logger.debug(f"Swept {len(expired)} expired cache entries")

    def __len__(self) -> int:
        with self._lock:
            self._sweep(time.time())
            return len(self._store)


class RedisBackend:
    """Backend over a ``redis.Redis`` client (or anything with the same API)."""

    def __init__(self, client: Any) -> None:
        self.client = client

    @classmethod
    def from_url(cls, url: str) -> RedisBackend:
        import redis

        return cls(redis.Redis.from_url(url, socket_timeout=5, socket_connect_timeout=5))

    def get(self, key: str) -> bytes | str | None:
        return self.client.get(key)

    def set(self, key: str, value: bytes | str) -> Any:
        return self.client.set(key, value)

    def expire(self, key: str, ttl: int) -> Any:
        return self.client.expire(key, ttl)


def open_backend(url: str | None) -> CacheBackend | None:
    """Create a backend from a cache URL.

    An empty URL disables caching, ``memory://`` selects the in-process
    backend and ``redis://`` / ``rediss://`` / ``unix://`` URLs select Redis.
    """
    if not url:
        return None
    if url.startswith("memory://"):
        return MemoryBackend()
    if url.startswith(("redis://", "rediss://", "unix://")):
        return RedisBackend.from_url(url)
    raise ValueError(f"Unsupported cache URL: {url}")


def derive_key(task: Task) -> str:
    """Return the namespaced SHA-1 digest of the task's canonical form."""
    digest = hashlib.sha1(task.canonical_json().encode("utf-8")).hexdigest()
    return f"{CACHE_NAMESPACE}{digest}"


def should_cache(task: Task) -> bool:
    """Return False for tasks whose results must never be cached."""
    if task.options.cache is False:
        return False
    query = task.options.query
    if _UPDATE_INTENT.match(query) or is_update_query(query):
        return False
    return True


class CacheStats:
    """Observer that counts cache decisions."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self.counts = {event.value: 0 for event in CacheEvent}

    def __call__(self, record: CacheRecord) -> None:
        with self._lock:
            self.counts[record.event.value] += 1

    def as_dict(self) -> dict[str, int]:
        with self._lock:
            return dict(self.counts)


class CacheStore:
    """Cache lookups and writes for dispatched tasks.

    Attributes:
        backend: Key-value backend, or None to disable caching
        ttl: Lifetime of each entry in seconds
    """

    def __init__(self, backend: CacheBackend | None = None, ttl: int = DEFAULT_TTL) -> None:
        self.backend = backend
        self.ttl = ttl
        self._observers: list[Observer] = []
        self._observers_lock = threading.Lock()

    @property
    def enabled(self) -> bool:
        return self.backend is not None

    derive_key = staticmethod(derive_key)
    should_cache = staticmethod(should_cache)

    # -- observers ------------------------------------------------------

    def subscribe(self, observer: Observer) -> Callable[[], None]:
        """Register *observer* and return a function that unregisters it."""
        with self._observers_lock:
            self._observers.append(observer)

        def unsubscribe() -> None:
            with self._observers_lock:
                if observer in self._observers:
                    self._observers.remove(observer)

        return unsubscribe

    def _emit(self, event: CacheEvent, key: str, task: Task, result: Any = None) -> None:
        logger.debug(f"cache {event.value} {key} for {task}")
        with self._observers_lock:
            observers = list(self._observers)
        record = CacheRecord(event=event, key=key, task=task, result=result)
        for observer in observers:
            try:
                observer(record)
            except Exception as e:
                logger.warning(f"Cache observer {observer!r} failed: {e}")

    # -- lookups --------------------------------------------------------

    def fetch(self, task: Task) -> Any | None:
        """Return the cached result for *task*, or None on a miss.

        Backend errors and undecodable entries count as misses.
        """
        if self.backend is None or not should_cache(task):
            return None

        key = derive_key(task)
        try:
            raw = self.backend.get(key)
        except Exception as e:
            logger.warning(f"Cache backend read failed for {key}: {e}")
            raw = None

        if raw is None:
            self._emit(CacheEvent.MISS, key, task)
            return None

        try:
            if isinstance(raw, bytes):
                raw = raw.decode("utf-8")
            value = json.loads(raw)
        except (UnicodeDecodeError, ValueError) as e:
            logger.warning(f"Discarding undecodable cache entry {key}: {e}")
            self._emit(CacheEvent.MISS, key, task)
            return None

        self._emit(CacheEvent.HIT, key, task, value)
        return value

    def put(self, task: Task, result: Any) -> None:
        """Store *result* for *task*.  Write failures are logged, never raised."""
        if self.backend is None or not should_cache(task):
            return

        key = derive_key(task)
        try:
            payload = json.dumps(result)
        except (TypeError, ValueError) as e:
            logger.warning(f"Result for {task} is not serializable, not caching: {e}")
            return

        try:
            self.backend.set(key, payload)
            self.backend.expire(key, self.ttl)
        except Exception as e:
            logger.warning(f"Cache backend write failed for {key}: {e}")
            return

        self._emit(CacheEvent.PUT, key, task, result)
