#
# Process-wide scheduler for asynchronous watches.
#
from __future__ import annotations

"""Bounded pool of daemon threads running delayed one-shot tasks.

Watchers do not use a fixed-rate timer: each step enqueues its own successor,
so steps of one watch never overlap while different watches run concurrently
(queueing once all workers are busy). Workers are daemon threads and never
block interpreter shutdown.
"""

import heapq
import itertools
import logging
import threading
import time
import typing

from ..settings import SETTINGS

logger = logging.getLogger(__name__)

Task = typing.Callable[[], None]


class WatchService:
    def __init__(self, *, workers: int, name: str = "durable-task watcher"):
        if workers < 1:
            raise ValueError("workers must be >= 1")
        self._cond = threading.Condition()
        self._queue: list[tuple[float, int, Task]] = []
        self._seq = itertools.count()
        self._shutdown = False
        self._threads = [
            threading.Thread(target=self._work, name=f"{name}-{i + 1}", daemon=True) for i in range(workers)
        ]
        for t in self._threads:
            t.start()

    @property
    def workers(self) -> int:
        return len(self._threads)

    def submit(self, task: Task) -> None:
        self.schedule(task, 0.0)

    def schedule(self, task: Task, delay_seconds: float) -> None:
        due = time.monotonic() + max(0.0, float(delay_seconds))
        with self._cond:
            if self._shutdown:
                raise RuntimeError("watch_service_shut_down")
            heapq.heappush(self._queue, (due, next(self._seq), task))
            self._cond.notify()

    def pending(self) -> int:
        with self._cond:
            return len(self._queue)

    def shutdown(self, *, wait: bool = False) -> None:
        # Queued tasks are dropped; a task already running finishes its step.
        with self._cond:
            self._shutdown = True
            self._queue.clear()
            self._cond.notify_all()
        if not wait:
            return
        current = threading.current_thread()
        for t in self._threads:
            if t is not current:
                t.join()

    def _next_task(self) -> Task | None:
        with self._cond:
            while not self._shutdown:
                if not self._queue:
                    self._cond.wait()
                    continue
                due = self._queue[0][0]
                remaining = due - time.monotonic()
                if remaining <= 0:
                    return heapq.heappop(self._queue)[2]
                self._cond.wait(remaining)
            return None

    def _work(self) -> None:
        while True:
            task = self._next_task()
            if task is None:
                return
            try:
                task()
            except Exception:
                # Tasks handle their own failures; this only keeps the worker alive.
                logger.exception("watch service task failed")


_WATCH_SERVICE: WatchService | None = None
_WATCH_SERVICE_LOCK = threading.Lock()


def watch_service() -> WatchService:
    """Return the shared watch service, creating it on first use."""

    global _WATCH_SERVICE
    with _WATCH_SERVICE_LOCK:
        if _WATCH_SERVICE is None:
            _WATCH_SERVICE = WatchService(workers=max(1, int(SETTINGS.watch_pool_size)))
        return _WATCH_SERVICE


def reset_watch_service(*, wait: bool = True) -> None:
    """Shut down and forget the shared watch service (tests use this between runs)."""

    global _WATCH_SERVICE
    with _WATCH_SERVICE_LOCK:
        service = _WATCH_SERVICE
        _WATCH_SERVICE = None
    if service is not None:
        service.shutdown(wait=wait)
