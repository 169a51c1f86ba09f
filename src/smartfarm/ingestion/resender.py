"""Fallback resender.

A fixed-interval task that re-dispatches the latest snapshot whenever no
dispatch has happened for longer than the interval. It covers modules
activated between two emissions and broadcasts that were never observed.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from collections.abc import Callable

from smartfarm.dispatch.router import DispatchRouter
from smartfarm.state.store import GlobalState

_logger = logging.getLogger(__name__)

DEFAULT_FALLBACK_INTERVAL: float = 3.0


class FallbackResender:
    """Cancellable periodic task owned by the runtime."""

    def __init__(
        self,
        *,
        state: GlobalState,
        router: DispatchRouter,
        interval: float = DEFAULT_FALLBACK_INTERVAL,
        clock: Callable[[], float] | None = None,
    ) -> None:
        if interval <= 0:
            raise ValueError("interval must be positive")
        self._state = state
        self._router = router
        self._interval = interval
        self._clock = clock or router.clock
        self._task: asyncio.Task[None] | None = None

    @property
    def interval(self) -> float:
        return self._interval

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def tick(self) -> bool:
        """Force a dispatch if the latest snapshot is stale; returns whether one fired."""
        latest = self._state.latest
        if latest is None:
            return False
        last = self._router.last_dispatch_at
        if last is not None and (self._clock() - last) <= self._interval:
            return False
        _logger.warning("Fallback resender triggered; re-dispatching latest data")
        self._router.dispatch(latest, forced=True)
        return True

    def start(self) -> None:
        if self.running:
            return
        self._task = asyncio.create_task(self._run())

    async def stop(self) -> None:
        task = self._task
        self._task = None
        if task is None:
            return
        task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await task

    async def _run(self) -> None:
        while True:
            await asyncio.sleep(self._interval)
            try:
                self.tick()
            except Exception:
                _logger.error("Fallback resender error", exc_info=True)
