"""Canonical Pydantic models shared across all rpcache modules.

This is the single source of truth for data shapes in the project. Every other
module imports from here rather than defining its own models. The models fall
into two groups:

**Configuration models** -- serialised as JSON in the user's config directory:
    :class:`RequestConfig`, :class:`OutputConfig`, :class:`CacheConfig`, and
    :class:`GlobalConfig`.

**Cache models** -- produced and consumed by the caching layer:
    :class:`RpcRequest`, :class:`RpcResponse`, :class:`CacheStatus`,
    :class:`CacheEntry`, and :class:`CachePolicy`.

All models use Pydantic v2. Cache models are frozen: an entry read from a
store is a snapshot, and a refreshed value is always written as a new
instance.
"""

from __future__ import annotations

import enum
from typing import Any, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

CACHE_CONTROL_HEADER = "Cache-Control"
CACHE_STATUS_HEADER = "X-Cache"
AGE_HEADER = "Age"


# --- Config ---


class RequestConfig(BaseModel):
    """Transport settings applied to every RPC call."""

    timeout: int = Field(default=30, description="Request timeout in seconds")
    verify_ssl: bool = Field(default=True, description="Verify SSL certificates")


class OutputConfig(BaseModel):
    """Default output format preferences stored in :class:`GlobalConfig`."""

    format: Literal["auto", "json", "plain", "rich"] = Field(
        default="auto", description="Payload format when no --json/--plain flag is given"
    )


class CacheBackend(str, enum.Enum):
    """Cache store implementations selectable from configuration."""

    MEMORY = "memory"
    DISK = "disk"
    REDIS = "redis"


class CacheConfig(BaseModel):
    """Response cache and revalidation pool settings stored in :class:`GlobalConfig`."""

    enabled: bool = Field(default=True, description="Enable response caching")
    backend: CacheBackend = Field(
        default=CacheBackend.DISK, description="Cache store: memory, disk, redis"
    )
    namespace: str = Field(
        default="rpcache", description="Key namespace inside the cache store"
    )
    redis_url: str = Field(
        default="redis://localhost:6379/0", description="Redis URL for the redis backend"
    )
    workers: int = Field(default=4, ge=1, description="Background revalidation workers")
    max_queue: int = Field(
        default=100, ge=1, description="Pending revalidations before new ones are dropped"
    )


class GlobalConfig(BaseModel):
    """User-wide configuration persisted at ``~/.config/rpcache/config.json``.

    Loaded and saved by :func:`~rpcache.config.load_global_config` and
    :func:`~rpcache.config.save_global_config`. Fields here have the
    lowest precedence and can be overridden by project config, environment
    variables, or CLI flags. See :func:`~rpcache.config.resolve_config`
    for the full precedence chain.
    """

    base_url: Optional[str] = Field(
        default=None, description="RPC endpoint prefix, e.g. http://localhost:3001/twirp"
    )
    request: RequestConfig = Field(default_factory=RequestConfig)
    output: OutputConfig = Field(default_factory=OutputConfig)
    cache: CacheConfig = Field(default_factory=CacheConfig)


# --- Cache Models ---


class CacheStatus(str, enum.Enum):
    """Cache disposition attached to every response leaving the caching layer."""

    HIT = "HIT"
    MISS = "MISS"


class RpcRequest(BaseModel):
    """A single RPC invocation as seen by the cache.

    ``body`` is the serialised request message; two requests with the same
    service, method and body are interchangeable for caching purposes.
    """

    model_config = ConfigDict(frozen=True)

    service: str
    method: str
    body: bytes = b""


class RpcResponse(BaseModel):
    """A successful RPC response: decoded payload plus transport headers."""

    model_config = ConfigDict(frozen=True)

    payload: Any = None
    headers: dict[str, str] = Field(default_factory=dict)

    @property
    def cache_status(self) -> Optional[CacheStatus]:
        """The ``X-Cache`` disposition, or ``None`` if the response was not tagged."""
        value = self.headers.get(CACHE_STATUS_HEADER)
        return CacheStatus(value) if value else None

    @property
    def age(self) -> Optional[int]:
        """The ``Age`` header in seconds, or ``None`` if the response was not tagged."""
        value = self.headers.get(AGE_HEADER)
        return int(value) if value is not None else None

    def tagged(self, status: CacheStatus, age: int) -> RpcResponse:
        """Return a copy carrying ``X-Cache`` and ``Age`` headers."""
        headers = {**self.headers, CACHE_STATUS_HEADER: status.value, AGE_HEADER: str(age)}
        return self.model_copy(update={"headers": headers})


class CacheEntry(BaseModel):
    """A cached response and the epoch second at which it was stored."""

    model_config = ConfigDict(frozen=True)

    response: RpcResponse
    cached_at: int

    def age(self, now: int) -> int:
        """Seconds elapsed since the entry was cached, never negative."""
        return max(0, now - self.cached_at)


class CachePolicy(BaseModel):
    """Caching rules derived from a request's ``Cache-Control`` value.

    Built by :func:`~rpcache.cache.control.parse_cache_control`. All
    durations are whole seconds.

    The predicates accept ``entry=None`` for "nothing was cached" and
    return ``False`` in that case.
    """

    model_config = ConfigDict(frozen=True)

    max_age: int = Field(default=60, ge=0)
    stale_while_revalidate: int = Field(default=0, ge=0)
    stale_if_error: int = Field(default=0, ge=0)
    no_cache: bool = False
    no_store: bool = False

    @property
    def store_ttl(self) -> int:
        """TTL used when writing to the store.

        The entry must outlive its freshness window by the longer of the two
        grace periods, otherwise the store would evict it before a stale
        response could be served.
        """
        return self.max_age + max(self.stale_while_revalidate, self.stale_if_error)

    def is_fresh(self, entry: Optional[CacheEntry], now: int) -> bool:
        return entry is not None and entry.cached_at + self.max_age >= now

    def may_serve_stale_while_revalidating(self, entry: Optional[CacheEntry], now: int) -> bool:
        if entry is None or self.stale_while_revalidate <= 0:
            return False
        return entry.cached_at + self.max_age + self.stale_while_revalidate >= now

    def may_serve_stale_on_error(self, entry: Optional[CacheEntry], now: int) -> bool:
        if entry is None or self.stale_if_error <= 0:
            return False
        return entry.cached_at + self.max_age + self.stale_if_error >= now
