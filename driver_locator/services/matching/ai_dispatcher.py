"""Bounded-concurrency dispatcher for AI fallback calls.

Work items go into a FIFO queue drained by a fixed pool of worker tasks.
At most ``concurrency`` calls are in flight and consecutive call starts are
at least ``dispatch_delay_ms`` apart. Callers await a future for the result.
"""

import asyncio
from typing import Awaitable, Callable, Optional, TypeVar

from driver_locator.core.exceptions import DispatcherClosedError
from driver_locator.utils.logging import get_logger

LOGGER = get_logger(__name__)

T = TypeVar("T")


class AIDispatcher:
    """FIFO worker pool with a concurrency cap and start spacing."""

    def __init__(self, concurrency: int = 3, dispatch_delay_ms: int = 500):
        if concurrency < 1:
            raise ValueError("concurrency must be at least 1")
        self.concurrency = concurrency
        self.delay = max(0, dispatch_delay_ms) / 1000
        self._queue: Optional[asyncio.Queue] = None
        self._workers: list[asyncio.Task] = []
        self._start_lock: Optional[asyncio.Lock] = None
        self._last_start: Optional[float] = None
        self._running = 0
        self._closed = False

    def _ensure_workers(self) -> None:
        if self._workers:
            return
        self._queue = asyncio.Queue()
        self._start_lock = asyncio.Lock()
        self._workers = [
            asyncio.create_task(self._worker(index), name=f"ai-dispatch-{index}")
            for index in range(self.concurrency)
        ]
        LOGGER.info(
            "AI dispatcher started",
            extra={"concurrency": self.concurrency, "delay_ms": int(self.delay * 1000)},
        )

    async def submit(self, fn: Callable[[], Awaitable[T]]) -> T:
        """Queue a call and wait for its result.

        Exceptions raised by the call are re-raised to the submitter.

        Raises:
            DispatcherClosedError: If the dispatcher has been closed
        """
        if self._closed:
            raise DispatcherClosedError("AI dispatcher is closed")

        self._ensure_workers()
        future = asyncio.get_running_loop().create_future()
        await self._queue.put((fn, future))
        return await future

    async def _wait_for_slot(self) -> None:
        loop = asyncio.get_running_loop()
        async with self._start_lock:
            if self._last_start is not None:
                wait = self._last_start + self.delay - loop.time()
                if wait > 0:
                    await asyncio.sleep(wait)
            self._last_start = loop.time()

    async def _worker(self, index: int) -> None:
        while True:
            fn, future = await self._queue.get()
            try:
                if future.done():
                    continue

                self._running += 1
                try:
                    await self._wait_for_slot()
                    result = await fn()
                except asyncio.CancelledError:
                    if not future.done():
                        future.set_exception(DispatcherClosedError("AI dispatcher closed mid-call"))
                    raise
                except Exception as e:
                    LOGGER.warning(
                        "AI dispatch failed",
                        extra={"worker": index, "error": str(e)},
                    )
                    if not future.done():
                        future.set_exception(e)
                else:
                    if not future.done():
                        future.set_result(result)
                finally:
                    self._running -= 1
            finally:
                self._queue.task_done()

    def stats(self) -> dict:
        return {
            "pending": self._queue.qsize() if self._queue else 0,
            "running": self._running,
            "concurrency": self.concurrency,
        }

    async def close(self) -> None:
        """Stop the workers and fail anything still queued."""
        self._closed = True
        for task in self._workers:
            task.cancel()
        if self._workers:
            await asyncio.gather(*self._workers, return_exceptions=True)
        self._workers = []

        if self._queue is not None:
            while not self._queue.empty():
                _, future = self._queue.get_nowait()
                if not future.done():
                    future.set_exception(DispatcherClosedError("AI dispatcher closed before dispatch"))
        LOGGER.info("AI dispatcher closed")
