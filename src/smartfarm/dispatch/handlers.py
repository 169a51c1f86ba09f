"""Per-module handler registry.

Modules register a typed :class:`ModuleHandlers` object under their own
name while they activate. The router resolves the active module's entry
fresh on every dispatch, so a module that never registered simply
receives nothing.
"""

from __future__ import annotations

import asyncio
import dataclasses
import inspect
import logging
from collections.abc import Callable
from typing import Any

from smartfarm.models.telemetry import TelemetrySnapshot

_logger = logging.getLogger(__name__)

InitHook = Callable[[], Any]
SnapshotHook = Callable[[TelemetrySnapshot], Any]
OptionalSnapshotHook = Callable[[TelemetrySnapshot | None], Any]


@dataclasses.dataclass(frozen=True, slots=True)
class ModuleHandlers:
    """Lifecycle and dispatch hooks of one module.

    Parameters
    ----------
    init : callable, optional
        Called with no arguments once the module's fragments are active.
    on_init : callable, optional
        Called right after ``init`` with the latest snapshot or ``None``.
    on_realtime : callable, optional
        Called with the snapshot on every dispatch while the module is active.
    on_update : callable, optional
        Called after ``on_realtime`` on every dispatch while active.
    """

    init: InitHook | None = None
    on_init: OptionalSnapshotHook | None = None
    on_realtime: SnapshotHook | None = None
    on_update: SnapshotHook | None = None

    def merged(self, other: ModuleHandlers) -> ModuleHandlers:
        """Return a copy where hooks set on *other* replace ours."""
        overrides = {
            field.name: getattr(other, field.name)
            for field in dataclasses.fields(other)
            if getattr(other, field.name) is not None
        }
        return dataclasses.replace(self, **overrides)


class HandlerRegistry:
    """Module name -> handlers mapping."""

    def __init__(self) -> None:
        self._handlers: dict[str, ModuleHandlers] = {}

    def register(self, name: str, handlers: ModuleHandlers) -> ModuleHandlers:
        """Register hooks for *name*, overriding previously set hooks field by field."""
        current = self._handlers.get(name)
        combined = handlers if current is None else current.merged(handlers)
        self._handlers[name] = combined
        return combined

    def unregister(self, name: str) -> ModuleHandlers | None:
        return self._handlers.pop(name, None)

    def get(self, name: str | None) -> ModuleHandlers | None:
        if name is None:
            return None
        return self._handlers.get(name)

    def __contains__(self, name: object) -> bool:
        return name in self._handlers


# Strong references to hook tasks still running; the loop only keeps weak ones.
_pending_hooks: set[asyncio.Task[Any]] = set()


def _log_task_failure(label: str) -> Callable[[asyncio.Task[Any]], None]:
    def _done(task: asyncio.Task[Any]) -> None:
        _pending_hooks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            _logger.error("%s failed", label, exc_info=exc)

    return _done


def invoke_isolated(label: str, fn: Callable[..., Any], *args: Any) -> bool:
    """Call a module hook, containing and logging any failure.

    Awaitable results are scheduled on the running loop; their failures are
    logged when the task finishes. Returns ``False`` when the call raised.
    """
    try:
        result = fn(*args)
    except Exception:
        _logger.error("%s error", label, exc_info=True)
        return False

    if inspect.isawaitable(result):
        task = asyncio.ensure_future(result)
        _pending_hooks.add(task)
        task.add_done_callback(_log_task_failure(label))
    return True


async def await_isolated(label: str, fn: Callable[..., Any], *args: Any) -> bool:
    """Like :func:`invoke_isolated` but waits for an awaitable result."""
    try:
        result = fn(*args)
        if inspect.isawaitable(result):
            await result
    except Exception:
        _logger.error("%s error", label, exc_info=True)
        return False
    return True
