"""Background revalidation on a bounded worker pool.

A stale-while-revalidate hit answers the caller from the cache and hands the
upstream refresh to :class:`RevalidationScheduler`. The scheduler owns a
fixed number of daemon threads draining a bounded queue. Submission never
blocks: when the queue is full the task is dropped on the spot, so a burst of
stale hits can neither stall request threads nor pile up unbounded work. A
dropped refresh is not retried; the next stale hit simply submits another.

Task failures are swallowed. Until a refresh succeeds the stale entry stays
authoritative, and nobody is waiting on the result.
"""

from __future__ import annotations

import queue
import threading
from dataclasses import dataclass
from typing import Any, Callable, Optional

from rpcache.models import RpcResponse
from rpcache.output import debug


@dataclass(frozen=True)
class RevalidationTask:
    """Everything needed to refresh one cache key in the background.

    Attributes:
        key: Cache key to refresh.
        token: Version token from the read that found the stale entry.
        ttl: Store TTL for the refreshed entry.
        invoke: The upstream call.
        commit: Writes the fresh response; called as
            ``commit(key, response, ttl, token)``.
    """

    key: str
    token: Any
    ttl: int
    invoke: Callable[[], RpcResponse]
    commit: Callable[[str, RpcResponse, int, Any], None]

    def run(self) -> None:
        response = self.invoke()
        self.commit(self.key, response, self.ttl, self.token)


class RevalidationScheduler:
    """Fixed-size thread pool with a bounded queue and drop-on-overflow.

    Args:
        workers: Number of worker threads, started immediately.
        max_queue: Tasks that may wait for a worker before new ones are
            dropped.
        name: Thread name prefix.

    Example::

        with RevalidationScheduler(workers=2, max_queue=10) as scheduler:
            accepted = scheduler.submit(task)
    """

    def __init__(
        self,
        workers: int = 4,
        max_queue: int = 100,
        name: str = "rpcache-revalidate",
    ) -> None:
        if workers < 1:
            raise ValueError("workers must be at least 1")
        if max_queue < 1:
            raise ValueError("max_queue must be at least 1")
        self._queue: queue.Queue[Optional[RevalidationTask]] = queue.Queue(maxsize=max_queue)
        self._lock = threading.Lock()
        self._closed = False
        self._submitted = 0
        self._dropped = 0
        self._failed = 0
        self._threads = [
            threading.Thread(target=self._work, name=f"{name}-{i}", daemon=True)
            for i in range(workers)
        ]
        for thread in self._threads:
            thread.start()

    def submit(self, task: RevalidationTask) -> bool:
        """Queue *task* without blocking.

        Returns:
            ``True`` if the task was accepted, ``False`` if it was dropped
            because the queue is full or the scheduler is shut down.
        """
        with self._lock:
            if self._closed:
                self._dropped += 1
                return False
            try:
                self._queue.put_nowait(task)
            except queue.Full:
                self._dropped += 1
                debug(f"Revalidation queue full, dropped refresh of {task.key}")
                return False
            self._submitted += 1
        return True

    def join(self) -> None:
        """Block until every accepted task has finished."""
        self._queue.join()

    def shutdown(self, wait: bool = True) -> None:
        """Stop accepting work and stop the workers after the queue drains.

        Args:
            wait: Join the worker threads before returning.
        """
        with self._lock:
            if self._closed:
                return
            self._closed = True
        for _ in self._threads:
            self._queue.put(None)
        if wait:
            for thread in self._threads:
                thread.join()

    def stats(self) -> dict[str, int]:
        with self._lock:
            return {
                "workers": len(self._threads),
                "pending": self._queue.qsize(),
                "submitted": self._submitted,
                "dropped": self._dropped,
                "failed": self._failed,
            }

    def __enter__(self) -> RevalidationScheduler:
        return self

    def __exit__(self, *args: object) -> None:
        self.shutdown()

    def _work(self) -> None:
        while True:
            task = self._queue.get()
            try:
                if task is None:
                    return
                try:
                    task.run()
                except Exception as exc:
                    with self._lock:
                        self._failed += 1
                    debug(f"Revalidation of {task.key} failed: {exc}")
            finally:
                self._queue.task_done()
