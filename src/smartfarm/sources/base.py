"""Telemetry source interfaces consumed by the realtime bridge."""

from __future__ import annotations

from collections.abc import Callable
from typing import Any, Protocol

ValueCallback = Callable[[Any], None]
ErrorCallback = Callable[[BaseException], None]


class Subscription(Protocol):
    """Handle of an open "subscribe to latest" subscription."""

    def cancel(self) -> None:
        ...


class TelemetrySource(Protocol):
    """Path-addressed realtime value store.

    ``subscribe`` delivers the full current value at *path* on every change
    (``None`` when the path is empty). ``query_last`` returns the trailing
    *limit* children of *path*.
    """

    async def subscribe(
        self,
        path: str,
        on_value: ValueCallback,
        on_error: ErrorCallback | None = None,
    ) -> Subscription:
        ...

    async def query_last(self, path: str, limit: int) -> Any:
        ...
