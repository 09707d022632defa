"""Compare-and-swap cache stores.

:class:`CacheStore` is the contract the caching layer depends on: a read
returns the current entry together with a version token, and a write is
applied only if the key's version still equals that token. Writing with
:data:`ABSENT` means "create only if nothing is there". A rejected write is
reported as ``False`` and is not an error -- it means a fresher value has
already won.

Three implementations are provided:

- :class:`MemoryCacheStore` -- process-local dict, mainly for tests and
  single-process tools.
- :class:`DiskCacheStore` -- :mod:`diskcache` on the local filesystem, shared
  by every process on the host.
- :class:`RedisCacheStore` -- Redis via optimistic ``WATCH``/``MULTI``,
  shared across hosts.

Versions come from a store-wide counter that only ever grows, so a token
read before an entry expired can never match the entry that replaces it.
"""

from __future__ import annotations

import enum
import itertools
import json
import sqlite3
import threading
import time
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Callable, Literal, Optional, Union

import diskcache
import redis

from rpcache.exceptions import CacheStoreError
from rpcache.models import CacheBackend, CacheConfig, CacheEntry


class _Token(enum.Enum):
    ABSENT = "absent"

    def __repr__(self) -> str:
        return "ABSENT"


ABSENT = _Token.ABSENT
"""Token returned when no entry exists; writing with it means create-only."""

CacheToken = Union[int, Literal[_Token.ABSENT]]


def token_matches(current: Optional[int], token: CacheToken) -> bool:
    """Return ``True`` if a write holding *token* may replace version *current*."""
    if token is ABSENT:
        return current is None
    return current == token


class CacheStore(ABC):
    """Contract for a TTL-capable key-value store with conditional writes."""

    @abstractmethod
    def read(self, key: str) -> tuple[Optional[CacheEntry], CacheToken]:
        """Return ``(entry, token)``, or ``(None, ABSENT)`` when nothing is stored.

        Raises:
            CacheStoreError: If the backend cannot be reached or returns
                undecodable data.
        """

    @abstractmethod
    def write(self, key: str, entry: CacheEntry, ttl: int, token: CacheToken) -> bool:
        """Store *entry* for *ttl* seconds if the key's version still equals *token*.

        Returns:
            ``True`` if the write was applied, ``False`` if it lost the race.

        Raises:
            CacheStoreError: If the backend cannot be reached.
        """

    @abstractmethod
    def clear(self) -> int:
        """Remove every entry this store owns and return how many were removed."""

    @abstractmethod
    def stats(self) -> dict[str, Any]:
        """Return a JSON-serialisable description of the store."""

    def close(self) -> None:
        """Release backend resources."""

    def __enter__(self) -> CacheStore:
        return self

    def __exit__(self, *args: object) -> None:
        self.close()


class MemoryCacheStore(CacheStore):
    """Thread-safe in-process store.

    Args:
        clock: Returns the current epoch time in seconds. Entries are kept
            until ``clock()`` passes ``written_at + ttl``.
    """

    def __init__(self, clock: Callable[[], float] = time.time) -> None:
        self._clock = clock
        self._lock = threading.Lock()
        self._items: dict[str, tuple[int, CacheEntry, float]] = {}
        self._versions = itertools.count(1)

    def read(self, key: str) -> tuple[Optional[CacheEntry], CacheToken]:
        with self._lock:
            item = self._live(key)
        if item is None:
            return None, ABSENT
        version, entry, _ = item
        return entry, version

    def write(self, key: str, entry: CacheEntry, ttl: int, token: CacheToken) -> bool:
        with self._lock:
            item = self._live(key)
            current = item[0] if item is not None else None
            if not token_matches(current, token):
                return False
            self._items[key] = (next(self._versions), entry, self._clock() + ttl)
            return True

    def clear(self) -> int:
        with self._lock:
            count = len(self._items)
            self._items.clear()
        return count

    def stats(self) -> dict[str, Any]:
        with self._lock:
            size = len(self._items)
        return {"backend": CacheBackend.MEMORY.value, "size": size}

    def _live(self, key: str) -> Optional[tuple[int, CacheEntry, float]]:
        # Caller holds the lock.
        item = self._items.get(key)
        if item is not None and item[2] < self._clock():
            del self._items[key]
            return None
        return item


_DISK_ERRORS = (diskcache.Timeout, sqlite3.Error, OSError)


class DiskCacheStore(CacheStore):
    """Filesystem store backed by :class:`diskcache.Cache`.

    Entries live under ``<cache_dir>/responses`` and are keyed as
    ``<namespace>:<key>``. The compare-and-swap runs inside
    :meth:`diskcache.Cache.transact`, which holds SQLite's write lock, so
    concurrent writers in other threads or processes are serialised.

    Values are stored as plain dicts (``version`` plus the JSON dump of the
    entry) rather than pickled models so that the on-disk format does not
    depend on class layout.

    Args:
        cache_dir: Root directory for the cache.
        namespace: Prefix and eviction tag for this store's keys.
        timeout: SQLite lock timeout in seconds.
    """

    def __init__(
        self,
        cache_dir: str | Path,
        namespace: str = "rpcache",
        timeout: float = 1.0,
    ) -> None:
        self._directory = Path(cache_dir) / "responses"
        self._namespace = namespace
        self._version_key = f"{namespace}:__version__"
        try:
            self._cache = diskcache.Cache(str(self._directory), timeout=timeout)
        except _DISK_ERRORS as exc:
            raise CacheStoreError(f"Cannot open cache at {self._directory}: {exc}") from exc

    def read(self, key: str) -> tuple[Optional[CacheEntry], CacheToken]:
        try:
            stored = self._cache.get(self._key(key), retry=True)
        except _DISK_ERRORS as exc:
            raise CacheStoreError(f"Cache read failed for {key}: {exc}") from exc
        if stored is None:
            return None, ABSENT
        return _decode(stored, key)

    def write(self, key: str, entry: CacheEntry, ttl: int, token: CacheToken) -> bool:
        namespaced = self._key(key)
        try:
            with self._cache.transact(retry=True):
                current = _stored_version(self._cache.get(namespaced))
                if not token_matches(current, token):
                    return False
                version = self._cache.incr(self._version_key)
                self._cache.set(
                    namespaced,
                    {"version": version, "entry": entry.model_dump(mode="json")},
                    expire=ttl,
                    tag=self._namespace,
                )
        except _DISK_ERRORS as exc:
            raise CacheStoreError(f"Cache write failed for {key}: {exc}") from exc
        return True

    def clear(self) -> int:
        try:
            return self._cache.evict(self._namespace, retry=True)
        except _DISK_ERRORS as exc:
            raise CacheStoreError(f"Cache clear failed: {exc}") from exc

    def stats(self) -> dict[str, Any]:
        prefix = f"{self._namespace}:"
        try:
            size = sum(
                1
                for k in self._cache.iterkeys()
                if isinstance(k, str) and k.startswith(prefix) and k != self._version_key
            )
        except _DISK_ERRORS as exc:
            raise CacheStoreError(f"Cache stats failed: {exc}") from exc
        return {
            "backend": CacheBackend.DISK.value,
            "namespace": self._namespace,
            "directory": str(self._directory),
            "size": size,
        }

    def close(self) -> None:
        """Close the underlying :class:`diskcache.Cache` and release resources."""
        self._cache.close()

    def _key(self, key: str) -> str:
        return f"{self._namespace}:{key}"


class RedisCacheStore(CacheStore):
    """Network store backed by Redis.

    Uses ``WATCH`` on the entry key, checks the stored version, then commits
    the replacement in ``MULTI``/``EXEC``. If another client touches the key
    in between, Redis aborts the transaction and the write is reported as
    rejected. Version numbers come from ``INCR`` on a per-namespace counter.

    Redis refuses ``EX 0``, so TTLs below one second are stored as one
    second.

    Args:
        url: Redis connection URL, ignored when *client* is given.
        namespace: Prefix for this store's keys.
        client: Pre-built :class:`redis.Redis` instance.
        socket_timeout: Connect and read timeout in seconds.
    """

    def __init__(
        self,
        url: str = "redis://localhost:6379/0",
        namespace: str = "rpcache",
        client: Optional[redis.Redis] = None,
        socket_timeout: float = 5.0,
    ) -> None:
        self._namespace = namespace
        self._version_key = f"{namespace}:__version__"
        self._redis = client if client is not None else redis.Redis.from_url(
            url,
            socket_connect_timeout=socket_timeout,
            socket_timeout=socket_timeout,
        )

    def read(self, key: str) -> tuple[Optional[CacheEntry], CacheToken]:
        try:
            raw = self._redis.get(self._key(key))
        except redis.RedisError as exc:
            raise CacheStoreError(f"Cache read failed for {key}: {exc}") from exc
        if raw is None:
            return None, ABSENT
        return _decode(_loads(raw, key), key)

    def write(self, key: str, entry: CacheEntry, ttl: int, token: CacheToken) -> bool:
        namespaced = self._key(key)
        try:
            with self._redis.pipeline() as pipe:
                pipe.watch(namespaced)
                raw = pipe.get(namespaced)
                try:
                    current = _stored_version(json.loads(raw)) if raw is not None else None
                except (TypeError, ValueError):
                    current = None
                if not token_matches(current, token):
                    return False
                version = self._redis.incr(self._version_key)
                value = json.dumps({"version": version, "entry": entry.model_dump(mode="json")})
                pipe.multi()
                pipe.set(namespaced, value, ex=max(ttl, 1))
                pipe.execute()
        except redis.WatchError:
            return False
        except redis.RedisError as exc:
            raise CacheStoreError(f"Cache write failed for {key}: {exc}") from exc
        return True

    def clear(self) -> int:
        removed = 0
        try:
            for k in self._redis.scan_iter(match=f"{self._namespace}:*"):
                if _as_str(k) == self._version_key:
                    continue
                removed += self._redis.delete(k)
        except redis.RedisError as exc:
            raise CacheStoreError(f"Cache clear failed: {exc}") from exc
        return removed

    def stats(self) -> dict[str, Any]:
        try:
            size = sum(
                1
                for k in self._redis.scan_iter(match=f"{self._namespace}:*")
                if _as_str(k) != self._version_key
            )
        except redis.RedisError as exc:
            raise CacheStoreError(f"Cache stats failed: {exc}") from exc
        return {"backend": CacheBackend.REDIS.value, "namespace": self._namespace, "size": size}

    def close(self) -> None:
        self._redis.close()

    def _key(self, key: str) -> str:
        return f"{self._namespace}:{key}"


def create_store(
    config: CacheConfig,
    cache_dir: str | Path,
    clock: Callable[[], float] = time.time,
) -> CacheStore:
    """Build the store selected by ``config.backend``.

    Args:
        config: Cache settings (backend, namespace, Redis URL).
        cache_dir: Root directory for the disk backend.
        clock: Time source for the memory backend.
    """
    if config.backend == CacheBackend.MEMORY:
        return MemoryCacheStore(clock=clock)
    if config.backend == CacheBackend.REDIS:
        return RedisCacheStore(config.redis_url, namespace=config.namespace)
    return DiskCacheStore(cache_dir, namespace=config.namespace)


# --- Serialisation helpers ---


def _as_str(value: Any) -> str:
    return value.decode("utf-8") if isinstance(value, bytes) else str(value)


def _loads(raw: Any, key: str) -> Any:
    try:
        return json.loads(raw)
    except (TypeError, ValueError) as exc:
        raise CacheStoreError(f"Undecodable cache value for {key}: {exc}") from exc


def _decode(stored: Any, key: str) -> tuple[CacheEntry, int]:
    try:
        return CacheEntry.model_validate(stored["entry"]), int(stored["version"])
    except (KeyError, TypeError, ValueError) as exc:
        raise CacheStoreError(f"Undecodable cache value for {key}: {exc}") from exc


def _stored_version(stored: Any) -> Optional[int]:
    """Version of a raw stored value; anything unreadable counts as an empty slot."""
    version = stored.get("version") if isinstance(stored, dict) else None
    return version if isinstance(version, int) else None
