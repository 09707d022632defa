"""The caching decorator placed in front of a synchronous RPC call.

:class:`CachingDecorator` answers a request from the cache when the
request's ``Cache-Control`` policy allows it and calls upstream otherwise.
For one call, with ``now`` taken once on entry:

1. A fresh entry is returned as ``HIT``. Under ``no-cache`` the read is
   skipped; the token for the write that replaces the bypassed entry is
   read only after upstream answers.
2. A stale entry still inside ``stale-while-revalidate`` is returned as
   ``HIT`` while a refresh is queued on the
   :class:`~rpcache.cache.revalidation.RevalidationScheduler`.
3. Otherwise upstream is called. Success is stored (unless ``no-store``)
   and returned as ``MISS`` with ``Age: 0``. On
   :class:`~rpcache.exceptions.UpstreamError`, a stale entry still inside
   ``stale-if-error`` is returned as ``HIT``; otherwise the error propagates
   unchanged.

Every write is conditional on the token from the read that preceded it, so a
slow refresh can never overwrite a value committed after that read. The
decorator keeps no locks of its own; one instance may be shared by any number
of threads.

A cache outage is never visible to the caller: a failed read behaves like
an empty cache and a failed write is only reported at debug level.
"""

from __future__ import annotations

import time
from typing import Callable, Optional

from rpcache.cache.control import parse_cache_control
from rpcache.cache.keys import cache_key_for
from rpcache.cache.revalidation import RevalidationScheduler, RevalidationTask
from rpcache.cache.store import ABSENT, CacheStore, CacheToken
from rpcache.exceptions import CacheStoreError, UpstreamError
from rpcache.models import CacheEntry, CacheStatus, RpcRequest, RpcResponse
from rpcache.output import debug

Invoke = Callable[[], RpcResponse]


class CachingDecorator:
    """Apply ``Cache-Control`` semantics around an upstream RPC call.

    Args:
        store: Compare-and-swap store holding cached responses.
        scheduler: Pool that runs stale-while-revalidate refreshes.
        clock: Returns the current epoch time in seconds.

    Example::

        decorator = CachingDecorator(MemoryCacheStore(), RevalidationScheduler())
        response = decorator.handle(request, "max-age=30", lambda: transport.send(request))
        response.cache_status  # CacheStatus.MISS, then HIT for 30 seconds
    """

    def __init__(
        self,
        store: CacheStore,
        scheduler: RevalidationScheduler,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._store = store
        self._scheduler = scheduler
        self._clock = clock

    @property
    def store(self) -> CacheStore:
        return self._store

    @property
    def scheduler(self) -> RevalidationScheduler:
        return self._scheduler

    def handle(
        self,
        request: RpcRequest,
        cache_control: Optional[str],
        invoke: Invoke,
    ) -> RpcResponse:
        """Serve *request* from the cache or from *invoke*.

        Args:
            request: Identifies the call; its service, method and body form
                the cache key.
            cache_control: Raw ``Cache-Control`` value, or ``None``.
            invoke: Performs the real RPC call. Raises
                :class:`~rpcache.exceptions.UpstreamError` on failure.

        Returns:
            The response, tagged with ``X-Cache`` and ``Age`` headers.

        Raises:
            UpstreamError: When upstream fails and no stale entry may be
                served in its place.
        """
        now = int(self._clock())
        key = cache_key_for(request.service, request.method, request.body)
        policy = parse_cache_control(cache_control)

        entry: Optional[CacheEntry] = None
        token: CacheToken = ABSENT
        if not policy.no_cache:
            entry, token = self._read(key)
            if entry is not None and policy.is_fresh(entry, now):
                debug(f"Cache hit: {key}")
                return self._hit(entry, now)

        if entry is not None and policy.may_serve_stale_while_revalidating(entry, now):
            self._scheduler.submit(
                RevalidationTask(
                    key=key,
                    token=token,
                    ttl=policy.store_ttl,
                    invoke=invoke,
                    commit=self._write,
                )
            )
            debug(f"Stale hit, revalidating in background: {key}")
            return self._hit(entry, now)

        try:
            response = invoke()
        except UpstreamError as exc:
            if entry is not None and policy.may_serve_stale_on_error(entry, now):
                debug(f"Upstream failed ({exc}), serving stale: {key}")
                return self._hit(entry, now)
            raise

        if not policy.no_store:
            if policy.no_cache:
                # The bypassed entry is replaced, not merely created.
                _, token = self._read(key)
            self._write(key, response, policy.store_ttl, token)
        debug(f"Cache miss: {key}")
        return response.tagged(CacheStatus.MISS, 0)

    def wrap(
        self, request: RpcRequest, cache_control: Optional[str] = None
    ) -> Callable[[Invoke], Callable[[], RpcResponse]]:
        """Decorator form of :meth:`handle` for a zero-argument upstream call.

        Example::

            @decorator.wrap(RpcRequest(service="svc", method="Get"), "max-age=5")
            def fetch() -> RpcResponse:
                return transport.send(...)

            fetch()
        """

        def decorate(invoke: Invoke) -> Callable[[], RpcResponse]:
            def cached() -> RpcResponse:
                return self.handle(request, cache_control, invoke)

            return cached

        return decorate

    # ------------------------------------------------------------------ #
    # Private helpers
    # ------------------------------------------------------------------ #

    def _read(self, key: str) -> tuple[Optional[CacheEntry], CacheToken]:
        try:
            return self._store.read(key)
        except CacheStoreError as exc:
            debug(f"Cache read failed, treating as miss: {exc}")
            return None, ABSENT

    def _write(self, key: str, response: RpcResponse, ttl: int, token: CacheToken) -> None:
        entry = CacheEntry(response=response, cached_at=int(self._clock()))
        try:
            applied = self._store.write(key, entry, ttl, token)
        except CacheStoreError as exc:
            debug(f"Cache write failed, response not cached: {exc}")
            return
        if not applied:
            debug(f"Cache write superseded by a newer entry: {key}")

    @staticmethod
    def _hit(entry: CacheEntry, now: int) -> RpcResponse:
        return entry.response.tagged(CacheStatus.HIT, entry.age(now))
