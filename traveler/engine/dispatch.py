"""
Traveler Best-Effort Dispatcher: non-blocking side channel for secondary writes.

Share and ownership operations save the document first and then update the
principal back-references (``user.forms`` etc.). Those secondary writes go
through this dispatcher: they are queued without blocking the request,
executed by a single background task, and a failure is logged and counted,
never raised to the caller that submitted it.

The queue is bounded; when it is full the job is dropped and logged, the
same policy the audit log queue uses.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, Optional, Tuple

logger = logging.getLogger("traveler.engine.dispatch")


@dataclass
class _Job:
    description: str
    fn: Callable[..., Awaitable[Any]]
    args: Tuple[Any, ...]
    kwargs: Dict[str, Any]


class BestEffortDispatcher:
    """
    Bounded asyncio queue drained by one worker task.

    Usage:
        dispatcher = BestEffortDispatcher(max_queue_size=1000)
        dispatcher.submit("add form f1 to alice", store.add_reference, ...)
        await dispatcher.join()   # tests / shutdown only
    """

    def __init__(self, max_queue_size: int = 1000, name: str = "side-effects"):
        self._max_queue_size = max_queue_size
        self._name = name
        self._queue: Optional[asyncio.Queue] = None
        self._worker: Optional[asyncio.Task] = None
        self._dropped_count = 0
        self._failed_count = 0
        self._completed_count = 0

    def start(self) -> None:
        """Start the worker on the running event loop."""
        if self._worker is not None and not self._worker.done():
            return
        self._queue = asyncio.Queue(maxsize=self._max_queue_size)
        self._worker = asyncio.get_running_loop().create_task(
            self._run(), name=f"traveler-{self._name}"
        )
        logger.info(f"Dispatcher '{self._name}' started")

    def submit(
        self,
        description: str,
        fn: Callable[..., Awaitable[Any]],
        *args: Any,
        **kwargs: Any,
    ) -> bool:
        """
        Queue a coroutine function for background execution. Non-blocking.

        Must be called from a running event loop; the worker starts lazily.

        Returns:
            True if queued, False if dropped (queue full).
        """
        if self._worker is None or self._worker.done():
            self.start()
        try:
            self._queue.put_nowait(_Job(description, fn, args, kwargs))
            return True
        except asyncio.QueueFull:
            self._dropped_count += 1
            logger.warning(f"Dispatcher '{self._name}' full, dropped {description}")
            return False

    async def _run(self) -> None:
        while True:
            job = await self._queue.get()
            try:
                await job.fn(*job.args, **job.kwargs)
                self._completed_count += 1
            except Exception as e:
                self._failed_count += 1
                logger.error(f"Best-effort job failed ({job.description}): {e}")
            finally:
                self._queue.task_done()

    async def join(self) -> None:
        """Wait until every queued job has run."""
        if self._queue is not None:
            await self._queue.join()

    async def stop(self, timeout: float = 5.0) -> None:
        """Drain outstanding jobs (bounded by timeout), then stop the worker."""
        if self._worker is None:
            return
        try:
            await asyncio.wait_for(self.join(), timeout=timeout)
        except asyncio.TimeoutError:
            logger.warning(
                f"Dispatcher '{self._name}' stopped with {self.pending_count} pending job(s)"
            )
        self._worker.cancel()
        try:
            await self._worker
        except asyncio.CancelledError:
            pass
        self._worker = None
        logger.info(
            f"Dispatcher '{self._name}' stopped "
            f"(completed: {self._completed_count}, failed: {self._failed_count}, "
            f"dropped: {self._dropped_count})"
        )

    @property
    def pending_count(self) -> int:
        return self._queue.qsize() if self._queue is not None else 0

    @property
    def dropped_count(self) -> int:
        return self._dropped_count

    @property
    def failed_count(self) -> int:
        return self._failed_count

    @property
    def completed_count(self) -> int:
        return self._completed_count
