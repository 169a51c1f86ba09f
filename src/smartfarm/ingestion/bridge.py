"""Realtime bridge between the telemetry source and the dispatch router.

One persistent subscription feeds ``state.latest`` and triggers a
dispatch per emission. Independently, each history channel is backfilled
once with a bounded range query; channels succeed or fail on their own.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable, Sequence
from typing import Any

from smartfarm.config import DEFAULT_HISTORY_CHANNELS, HistoryChannel
from smartfarm.dispatch.handlers import invoke_isolated
from smartfarm.dispatch.router import DispatchRouter
from smartfarm.models.telemetry import TelemetrySnapshot, history_points_from_value
from smartfarm.plugins import HistoryListener
from smartfarm.sources.base import Subscription, TelemetrySource
from smartfarm.state.store import GlobalState

_logger = logging.getLogger(__name__)


class RealtimeBridge:
    """Sole writer of :class:`GlobalState`."""

    def __init__(
        self,
        *,
        source: TelemetrySource,
        state: GlobalState,
        router: DispatchRouter,
        sensors_path: str = "/smartFarm/sensors",
        history_channels: Sequence[HistoryChannel] = DEFAULT_HISTORY_CHANNELS,
        history_limit: int = 500,
    ) -> None:
        self._source = source
        self._state = state
        self._router = router
        self._sensors_path = sensors_path
        self._history_channels = tuple(history_channels)
        self._history_limit = min(history_limit, state.history_capacity)
        self._subscription: Subscription | None = None
        self._subscribed = False
        self._history_tasks: set[asyncio.Task[None]] = set()
        self._history_listeners: list[HistoryListener] = []

    @property
    def subscribed(self) -> bool:
        return self._subscription is not None

    def add_history_listener(self, listener: HistoryListener) -> Callable[[], None]:
        """Notify ``listener(channel_id, state)`` each time a channel is loaded."""
        self._history_listeners.append(listener)

        def _remove() -> None:
            if listener in self._history_listeners:
                self._history_listeners.remove(listener)

        return _remove

    async def subscribe(self) -> None:
        """Open the realtime subscription and start the history backfills."""
        if self._subscribed:
            _logger.warning("Realtime bridge already subscribed to %s", self._sensors_path)
            return
        self._subscribed = True

        try:
            self._subscription = await self._source.subscribe(
                self._sensors_path,
                self._on_value,
                self._on_subscription_error,
            )
        except Exception:
            _logger.error("Realtime subscription on %s failed", self._sensors_path, exc_info=True)

        for channel in self._history_channels:
            task = asyncio.create_task(self._backfill(channel))
            self._history_tasks.add(task)
            task.add_done_callback(self._history_tasks.discard)

        _logger.debug("Realtime listeners attached path=%s", self._sensors_path)

    def _on_value(self, value: Any) -> None:
        snapshot = TelemetrySnapshot.from_value(value)
        self._state.set_latest(snapshot)
        self._router.dispatch(snapshot, forced=False)
        _logger.debug("Realtime value forwarded to module=%s", self._router.active_module)

    def _on_subscription_error(self, exc: BaseException) -> None:
        # Not retried: the subscription stays down until the runtime restarts.
        _logger.error("Realtime subscription on %s failed: %s", self._sensors_path, exc, exc_info=exc)
        self._subscription = None

    async def _backfill(self, channel: HistoryChannel) -> None:
        try:
            raw = await self._source.query_last(channel.path, self._history_limit)
            points = history_points_from_value(raw)[-self._history_limit :]
        except asyncio.CancelledError:
            raise
        except Exception:
            _logger.warning("History %s load failed", channel.channel_id, exc_info=True)
            return

        self._state.set_history(channel.channel_id, points)
        _logger.debug("History %s loaded entries=%d", channel.channel_id, len(points))
        for listener in list(self._history_listeners):
            invoke_isolated(f"history listener {channel.channel_id}", listener, channel.channel_id, self._state)

    async def wait_for_history(self) -> None:
        """Wait until every pending history backfill has finished."""
        pending = list(self._history_tasks)
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)

    def close(self) -> None:
        """Cancel the subscription and any backfill still in flight."""
        subscription = self._subscription
        self._subscription = None
        if subscription is not None:
            try:
                subscription.cancel()
            except Exception:
                _logger.debug("Subscription cancel failed", exc_info=True)
        for task in list(self._history_tasks):
            task.cancel()
