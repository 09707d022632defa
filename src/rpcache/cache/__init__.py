"""``Cache-Control`` caching for synchronous RPC calls.

This package provides :class:`CachingDecorator`, which wraps an upstream
call with ``max-age``, ``no-cache``, ``no-store``,
``stale-while-revalidate`` and ``stale-if-error`` semantics, together with
its collaborators:

- :func:`parse_cache_control` -- directive parsing into a
  :class:`~rpcache.models.CachePolicy`.
- :func:`cache_key_for` -- stable keys from service, method and body.
- :class:`CacheStore` and its memory, disk and Redis implementations.
- :class:`RevalidationScheduler` -- bounded background refresh pool.

The decorator is consumed by :class:`~rpcache.client.sync_client.RpcClient`
and configured from the ``cache`` section of
:class:`~rpcache.models.GlobalConfig`.
"""

from rpcache.cache.control import (
    effective_store_ttl,
    is_fresh,
    may_serve_stale_on_error,
    may_serve_stale_while_revalidating,
    parse_cache_control,
)
from rpcache.cache.decorator import CachingDecorator
from rpcache.cache.keys import cache_key_for, serialize_request
from rpcache.cache.revalidation import RevalidationScheduler, RevalidationTask
from rpcache.cache.store import (
    ABSENT,
    CacheStore,
    CacheToken,
    DiskCacheStore,
    MemoryCacheStore,
    RedisCacheStore,
    create_store,
)

__all__ = [
    "ABSENT",
    "CacheStore",
    "CacheToken",
    "CachingDecorator",
    "DiskCacheStore",
    "MemoryCacheStore",
    "RedisCacheStore",
    "RevalidationScheduler",
    "RevalidationTask",
    "cache_key_for",
    "create_store",
    "effective_store_ttl",
    "is_fresh",
    "may_serve_stale_on_error",
    "may_serve_stale_while_revalidating",
    "parse_cache_control",
    "serialize_request",
]
