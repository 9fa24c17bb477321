"""Cache identity and in-process memoization of aggregated results.

``derive_key`` maps a namespace plus an ordered list of stable input fields to
an opaque alphanumeric key. ``ResultCache`` is the default in-memory store: an
LRU with a per-entry TTL and namespace-level invalidation. Any other store can
be used with the same keys.
"""

from __future__ import annotations

import base64
import re
import threading
import time
from collections import OrderedDict
from dataclasses import dataclass
from typing import Any, Callable, Dict, Generic, Iterable, Optional, Set, TypeVar

from .engine import EngineInput
from .generator import normalize_seed_part
from .logging import get_logger

logger = get_logger(__name__)

DEFAULT_SEPARATOR = ":"

_NON_ALNUM = re.compile(r"[^a-zA-Z0-9]")

V = TypeVar("V")


def derive_key(namespace: str, fields: Iterable[Any], separator: str = DEFAULT_SEPARATOR) -> str:
    """Build a deterministic cache key from a namespace and ordered fields.

    Field order is significant and is never sorted. ``None`` becomes an empty
    string, booleans ``true``/``false`` and dates their ISO form.
    """

    raw = separator.join([namespace, *(normalize_seed_part(f) for f in fields)])
    encoded = base64.b64encode(raw.encode("utf-8")).decode("ascii")
    return _NON_ALNUM.sub("", encoded)


class CacheKeyDeriver:
    """Key derivation bound to one separator."""

    # pylint: disable=too-few-public-methods

    def __init__(self, separator: str = DEFAULT_SEPARATOR):
        self.separator = separator

    def derive(self, namespace: str, fields: Iterable[Any]) -> str:
        return derive_key(namespace, fields, self.separator)

    def key_for(self, namespace: str, engine_input: EngineInput) -> str:
        """Key for ``engine_input`` using its ``cache_fields()``."""

        return self.derive(namespace, engine_input.cache_fields())


@dataclass
class _CacheEntry(Generic[V]):
    """Internal cache entry with expiration."""
    value: V
    expires_at: Optional[float]
    namespace: Optional[str]


@dataclass(frozen=True)
class CacheStats:
    hits: int
    misses: int
    evictions: int
    expirations: int
    size: int

    @property
    def hit_rate(self) -> float:
        lookups = self.hits + self.misses
        return self.hits / lookups if lookups else 0.0


class ResultCache(Generic[V]):
    """Thread-safe LRU cache with a per-entry TTL.

    A ``ttl_seconds`` of 0 keeps entries until they are evicted.
    """

    def __init__(
        self,
        ttl_seconds: int = 3600,
        max_entries: int = 200,
        clock: Callable[[], float] = time.monotonic,
    ):
        if max_entries < 1:
            raise ValueError("max_entries must be at least 1")
        self._ttl = ttl_seconds
        self._max_entries = max_entries
        self._clock = clock
        self._store: "OrderedDict[str, _CacheEntry[V]]" = OrderedDict()
        # Index for invalidation
        self._by_namespace: Dict[str, Set[str]] = {}
        self._lock = threading.Lock()
        self._hits = 0
        self._misses = 0
        self._evictions = 0
        self._expirations = 0

    def get(self, key: str) -> Optional[V]:
        """Fetch a cached value if present and not expired."""

        with self._lock:
            entry = self._store.get(key)
            if entry is None:
                self._misses += 1
                return None
            if entry.expires_at is not None and entry.expires_at <= self._clock():
                self._remove(key)
                self._expirations += 1
                self._misses += 1
                return None
            self._store.move_to_end(key)
            self._hits += 1
            return entry.value

    def set(self, key: str, value: V, namespace: Optional[str] = None) -> None:
        """Insert or update a value, evicting the least recently used on overflow."""

        expires_at = self._clock() + self._ttl if self._ttl > 0 else None
        with self._lock:
            if key in self._store:
                self._remove(key)
            self._store[key] = _CacheEntry(value=value, expires_at=expires_at, namespace=namespace)
            if namespace is not None:
                self._by_namespace.setdefault(namespace, set()).add(key)
            while len(self._store) > self._max_entries:
                oldest = next(iter(self._store))
                self._remove(oldest)
                self._evictions += 1

    def delete(self, key: str) -> bool:
        with self._lock:
            if key not in self._store:
                return False
            self._remove(key)
            return True

    def invalidate_namespace(self, namespace: str) -> int:
        """Invalidate every entry stored under ``namespace``; return the count."""

        with self._lock:
            keys = self._by_namespace.pop(namespace, set())
            count = 0
            for key in keys:
                if key in self._store:
                    self._store.pop(key)
                    count += 1
        if count:
            logger.info("Cache namespace invalidated", namespace=namespace, entries=count)
        return count

    def clear(self) -> None:
        with self._lock:
            self._store.clear()
            self._by_namespace.clear()

    def stats(self) -> CacheStats:
        with self._lock:
            return CacheStats(
                hits=self._hits,
                misses=self._misses,
                evictions=self._evictions,
                expirations=self._expirations,
                size=len(self._store),
            )

    def __len__(self) -> int:
        with self._lock:
            return len(self._store)

    def _remove(self, key: str) -> None:
        # Caller holds the lock
        entry = self._store.pop(key)
        if entry.namespace is not None:
            keys = self._by_namespace.get(entry.namespace)
            if keys is not None:
                keys.discard(key)
                if not keys:
                    del self._by_namespace[entry.namespace]
