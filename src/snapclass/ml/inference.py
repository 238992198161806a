"""Inference concurrency layer.

Architecture:
    FastAPI (async) -> asyncio.Semaphore(N) -> ThreadPoolExecutor(N) -> ONNX forward pass

Classification requests beyond the semaphore limit wait up to 5s for a
slot, then fail with PoolSaturatedError (503 at the API layer).
"""

from __future__ import annotations

import asyncio
import logging
import threading
from concurrent.futures import ThreadPoolExecutor
from typing import TYPE_CHECKING, TypeVar

if TYPE_CHECKING:
    from collections.abc import Callable

    from snapclass.config import Settings

logger = logging.getLogger(__name__)

T = TypeVar("T")

SEMAPHORE_TIMEOUT_SECONDS: float = 5.0


class PoolSaturatedError(RuntimeError):
    """Raised when no inference slot frees up within the wait timeout."""


class InferencePool:
    """Bounds concurrent forward passes and runs them off the event loop."""

    def __init__(self, settings: Settings) -> None:
        self._semaphore = asyncio.Semaphore(settings.max_concurrent)
        self._executor = ThreadPoolExecutor(
            max_workers=settings.max_concurrent,
            thread_name_prefix="snapclass-inference",
        )
        self._active_count: int = 0
        self._queue_depth: int = 0
        self._counter_lock = threading.Lock()

    async def run(self, func: Callable[..., T], *args: object) -> T:
        """Run a blocking function in the inference thread pool.

        Raises:
            PoolSaturatedError: If no slot is acquired within the timeout.
        """
        self._adjust(queued=1)
        try:
            await asyncio.wait_for(self._semaphore.acquire(), timeout=SEMAPHORE_TIMEOUT_SECONDS)
        except TimeoutError:
            logger.warning("Inference pool saturated; request waited %.1fs", SEMAPHORE_TIMEOUT_SECONDS)
            raise PoolSaturatedError("Inference pool is busy") from None
        finally:
            self._adjust(queued=-1)

        self._adjust(active=1)
        try:
            loop = asyncio.get_running_loop()
            return await loop.run_in_executor(self._executor, func, *args)
        finally:
            self._semaphore.release()
            self._adjust(active=-1)

    def _adjust(self, *, queued: int = 0, active: int = 0) -> None:
        with self._counter_lock:
            self._queue_depth += queued
            self._active_count += active

    @property
    def active_count(self) -> int:
        """Number of forward passes currently running."""
        with self._counter_lock:
            return self._active_count

    @property
    def queue_depth(self) -> int:
        """Number of requests waiting for a slot."""
        with self._counter_lock:
            return self._queue_depth

    def shutdown(self) -> None:
        """Shut down the thread pool executor."""
        self._executor.shutdown(wait=True)
