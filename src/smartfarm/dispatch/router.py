"""Dispatch of telemetry snapshots to the active module.

For every non-empty snapshot the router fires, in this order and
independently of each other:

1. the active module's ``on_realtime`` hook,
2. the active module's ``on_update`` hook,
3. every broadcast listener, regardless of which module is active.

A failing hook is logged and never stops the remaining ones.
"""

from __future__ import annotations

import dataclasses
import logging
import time
from collections.abc import Callable
from typing import Any

from smartfarm.dispatch.handlers import HandlerRegistry, invoke_isolated
from smartfarm.models.telemetry import TelemetrySnapshot

_logger = logging.getLogger(__name__)

Listener = Callable[[TelemetrySnapshot], Any]


def _no_active_module() -> str | None:
    return None


@dataclasses.dataclass(slots=True)
class DispatchRecord:
    """Bookkeeping updated by every dispatch that carried a snapshot."""

    last_dispatch_at: float | None = None
    dispatch_count: int = 0
    forced_count: int = 0


@dataclasses.dataclass(frozen=True, slots=True)
class DispatchResult:
    """Outcome of a single :meth:`DispatchRouter.dispatch` call."""

    dispatched: bool
    forced: bool = False
    module: str | None = None
    invoked: tuple[str, ...] = ()
    failed: tuple[str, ...] = ()


class DispatchRouter:
    """Resolve and invoke handlers for the currently active module."""

    def __init__(
        self,
        registry: HandlerRegistry,
        *,
        active_module: Callable[[], str | None] = _no_active_module,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._registry = registry
        self._active_module = active_module
        self._clock = clock
        self._listeners: list[Listener] = []
        self.record = DispatchRecord()

    @property
    def registry(self) -> HandlerRegistry:
        return self._registry

    @property
    def clock(self) -> Callable[[], float]:
        return self._clock

    @property
    def active_module(self) -> str | None:
        return self._active_module()

    def bind_active_module(self, getter: Callable[[], str | None]) -> None:
        """Set where the active module name is read from (the module loader)."""
        self._active_module = getter

    @property
    def last_dispatch_at(self) -> float | None:
        return self.record.last_dispatch_at

    # ------------------------------------------------------------------
    # Broadcast observers
    # ------------------------------------------------------------------

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Add a broadcast listener; returns a callable that removes it."""
        self._listeners.append(listener)

        def _unsubscribe() -> None:
            self.unsubscribe(listener)

        return _unsubscribe

    def unsubscribe(self, listener: Listener) -> bool:
        try:
            self._listeners.remove(listener)
        except ValueError:
            return False
        return True

    @property
    def listener_count(self) -> int:
        return len(self._listeners)

    # ------------------------------------------------------------------
    # Dispatch
    # ------------------------------------------------------------------

    def dispatch(self, snapshot: TelemetrySnapshot | None, *, forced: bool = False) -> DispatchResult:
        """Deliver *snapshot* to the active module and all broadcast listeners.

        ``forced`` marks a recovery/sync dispatch. It only affects logging
        and counters, never resolution order.
        """
        if snapshot is None or not snapshot:
            return DispatchResult(dispatched=False, forced=forced)

        self.record.last_dispatch_at = self._clock()
        self.record.dispatch_count += 1
        if forced:
            self.record.forced_count += 1

        module = self._active_module()
        handlers = self._registry.get(module)
        invoked: list[str] = []
        failed: list[str] = []

        if handlers is not None and handlers.on_realtime is not None:
            invoked.append("on_realtime")
            if not invoke_isolated(f"{module}.on_realtime", handlers.on_realtime, snapshot):
                failed.append("on_realtime")

        if handlers is not None and handlers.on_update is not None:
            invoked.append("on_update")
            if not invoke_isolated(f"{module}.on_update", handlers.on_update, snapshot):
                failed.append("on_update")

        if self._listeners:
            invoked.append("broadcast")
            for listener in list(self._listeners):
                name = getattr(listener, "__qualname__", repr(listener))
                if not invoke_isolated(f"broadcast listener {name}", listener, snapshot):
                    if "broadcast" not in failed:
                        failed.append("broadcast")

        if forced:
            _logger.debug("Dispatch (forced) -> module=%s data=%s", module, snapshot.as_dict())
        else:
            _logger.debug("Dispatch -> module=%s", module)

        return DispatchResult(
            dispatched=True,
            forced=forced,
            module=module,
            invoked=tuple(invoked),
            failed=tuple(failed),
        )
