"""Bounded-concurrency queue for persistence writes.

Every unique listing produces one pending write (append to the listings
store, mark as seen, ...). Writes are wrapped in zero-argument tasks and
handed to a `PersistenceQueue`, which admits them in FIFO order and runs at
most `concurrency` of them at a time on the event loop.

Failure policy is BEST_EFFORT: a task that raises is logged, counted and
reported to the optional `on_failure` callback, then dropped. It is never
retried and the error never reaches the code that enqueued it, so one bad
write cannot stall the pipeline. The flip side is that a failed write is
lost data; watch `failures` after `drain()`.

Completion order is not guaranteed once concurrency > 1.

The queue's counters and deque are only touched from the event loop
thread. Worker threads must go through `enqueue_threadsafe()`.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
from collections import deque
from typing import Any, Awaitable, Callable, Optional, Union

from jobgate.config import DEFAULT_PERSIST_CONCURRENCY, parse_positive_int

logger = logging.getLogger(__name__)

PersistenceTask = Callable[[], Union[Awaitable[Any], Any]]
FailureCallback = Callable[[BaseException], None]

BEST_EFFORT = "best-effort"


def resolve_persist_concurrency(value: Any) -> int:
    """Return a usable concurrency limit; never zero or negative."""
    return parse_positive_int(value, DEFAULT_PERSIST_CONCURRENCY)


class PersistenceQueue:
    """FIFO admission queue with a hard ceiling on in-flight tasks."""

    policy = BEST_EFFORT

    def __init__(
        self,
        concurrency: Any = None,
        on_failure: Optional[FailureCallback] = None,
    ):
        self._concurrency = resolve_persist_concurrency(concurrency)
        self._on_failure = on_failure
        self._queued: deque[PersistenceTask] = deque()
        self._active = 0
        self._failures = 0
        self._completed = 0
        self._drain_waiters: list[asyncio.Future] = []
        # Strong references so running tasks are not garbage collected.
        self._running: set[asyncio.Task] = set()

    # ------------------------------------------------------------------
    # Public interface
    # ------------------------------------------------------------------

    @property
    def concurrency(self) -> int:
        return self._concurrency

    @property
    def failures(self) -> int:
        """Number of tasks that raised since the queue was created."""
        return self._failures

    @property
    def completed(self) -> int:
        """Number of tasks that finished without raising."""
        return self._completed

    @property
    def is_idle(self) -> bool:
        return self._active == 0 and not self._queued

    def enqueue(self, task: PersistenceTask) -> None:
        """Append a task and start it if a slot is free.

        Must be called from the event loop thread; never blocks.
        """
        self._queued.append(task)
        self._pump()

    def enqueue_threadsafe(
        self, task: PersistenceTask, loop: asyncio.AbstractEventLoop
    ) -> None:
        """Enqueue from a thread that is not running `loop`."""
        loop.call_soon_threadsafe(self.enqueue, task)

    async def drain(self) -> None:
        """Wait until no task is running and none is queued.

        Returns immediately on an idle queue. Concurrent callers are all
        released on the same idle transition.
        """
        if self.is_idle:
            return

        waiter = asyncio.get_running_loop().create_future()
        self._drain_waiters.append(waiter)
        await waiter

    def stats(self) -> dict[str, int]:
        return {"active": self._active, "queued": len(self._queued)}

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _pump(self) -> None:
        loop = asyncio.get_running_loop()
        while self._active < self._concurrency and self._queued:
            task = self._queued.popleft()
            self._active += 1
            running = loop.create_task(self._run(task))
            self._running.add(running)
            running.add_done_callback(self._running.discard)

    async def _run(self, task: PersistenceTask) -> None:
        try:
            result = task()
            if inspect.isawaitable(result):
                await result
            self._completed += 1
        except Exception as exc:
            self._failures += 1
            logger.error("[PersistenceQueue] Task failed: %s", exc)
            self._notify_failure(exc)
        finally:
            self._active = max(0, self._active - 1)
            self._pump()
            self._release_drain_waiters_if_idle()

    def _notify_failure(self, exc: BaseException) -> None:
        if self._on_failure is None:
            return
        try:
            self._on_failure(exc)
        except Exception as callback_exc:
            logger.error(
                "[PersistenceQueue] on_failure callback raised: %s", callback_exc
            )

    def _release_drain_waiters_if_idle(self) -> None:
        if not self.is_idle:
            return

        waiters, self._drain_waiters = self._drain_waiters, []
        for waiter in waiters:
            if not waiter.done():
                waiter.set_result(None)
