"""Deadline supervision for a single activation attempt."""
from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable, Optional

from .exceptions import ActivationTimeoutError
from .guard import ActivationGuard
from .models import ActivationResult

logger = logging.getLogger(__name__)

LateResultHandler = Callable[[int, ActivationResult], None]


class TimeoutSupervisor:
    """Races an activation call against a fixed deadline.

    The underlying call is never cancelled. On timeout the supervisor stops
    waiting and retires the attempt's generation; on timeout or when the
    waiting caller is cancelled, any eventual result goes to ``on_late_result``
    so the caller can discard it.
    """

    def __init__(self, guard: ActivationGuard, *, timeout_seconds: float) -> None:
        if timeout_seconds <= 0:
            raise ValueError("timeout_seconds must be > 0")
        self._guard = guard
        self.timeout_seconds = timeout_seconds
        self._orphans: set[asyncio.Task] = set()

    @property
    def orphaned_calls(self) -> int:
        """Number of timed-out calls that have not resolved yet."""
        return len(self._orphans)

    async def run(
        self,
        generation: int,
        call: Awaitable[ActivationResult],
        *,
        on_late_result: Optional[LateResultHandler] = None,
    ) -> ActivationResult:
        task = asyncio.ensure_future(call)
        try:
            done, _ = await asyncio.wait({task}, timeout=self.timeout_seconds)
        except asyncio.CancelledError:
            # The caller stopped waiting; the call itself runs to completion.
            self._orphan(generation, task, on_late_result)
            raise

        if task in done:
            return task.result()

        self._guard.retire(generation)
        logger.warning(
            "Activation attempt timed out after %.1fs generation=%s",
            self.timeout_seconds,
            generation,
            extra={"generation": generation},
        )
        self._orphan(generation, task, on_late_result)
        return ActivationResult.failure(ActivationTimeoutError())

    def _orphan(
        self,
        generation: int,
        task: asyncio.Task,
        on_late_result: Optional[LateResultHandler],
    ) -> None:
        self._orphans.add(task)
        task.add_done_callback(lambda finished: self._collect_late(generation, finished, on_late_result))

    def _collect_late(
        self,
        generation: int,
        task: asyncio.Task,
        on_late_result: Optional[LateResultHandler],
    ) -> None:
        self._orphans.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.warning(
                "Late activation call for generation=%s raised %s",
                generation,
                type(exc).__name__,
                extra={"generation": generation},
            )
            return
        if on_late_result is not None:
            on_late_result(generation, task.result())


__all__ = ["LateResultHandler", "TimeoutSupervisor"]
