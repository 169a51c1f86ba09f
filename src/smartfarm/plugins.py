"""Plugin interface implemented by display modules.

A module package lists fragments; each fragment resolves to a
:class:`ModulePlugin`. On activation the loader hands every plugin a
:class:`ModuleContext` through which it registers its hooks and
listeners. Everything registered through the context is released when
the module is torn down.
"""

from __future__ import annotations

import dataclasses
import importlib
import logging
from collections.abc import Callable, Mapping
from typing import Any, Protocol, runtime_checkable

from smartfarm.dispatch.handlers import HandlerRegistry, ModuleHandlers
from smartfarm.dispatch.router import DispatchRouter, Listener
from smartfarm.display import DisplaySurface
from smartfarm.models.telemetry import TelemetrySnapshot
from smartfarm.state.store import GlobalState

_logger = logging.getLogger(__name__)

HistoryListener = Callable[[str, GlobalState], Any]


def _noop() -> None:
    return None


@runtime_checkable
class ModulePlugin(Protocol):
    """Code fragment of a display module."""

    def activate(self, context: ModuleContext) -> Any:
        """Register hooks; may return an awaitable. The result is the handle."""
        ...

    def deactivate(self, handle: Any) -> None:
        ...


class HistorySource(Protocol):
    def add_history_listener(self, listener: HistoryListener) -> Callable[[], None]:
        ...


@dataclasses.dataclass(slots=True)
class FunctionPlugin:
    """Adapter turning plain callables into a :class:`ModulePlugin`."""

    on_activate: Callable[[ModuleContext], Any]
    on_deactivate: Callable[[Any], None] | None = None

    def activate(self, context: ModuleContext) -> Any:
        return self.on_activate(context)

    def deactivate(self, handle: Any) -> None:
        if self.on_deactivate is not None:
            self.on_deactivate(handle)


class ModuleContext:
    """What an activating module is allowed to touch."""

    def __init__(
        self,
        name: str,
        *,
        state: GlobalState,
        display: DisplaySurface,
        registry: HandlerRegistry,
        router: DispatchRouter,
        history: HistorySource | None = None,
    ) -> None:
        self.name = name
        self.state = state
        self.display = display
        self._registry = registry
        self._router = router
        self._history = history
        self._releases: list[Callable[[], None]] = []
        self._handles: list[tuple[ModulePlugin, Any]] = []
        self._closed = False

    @property
    def latest(self) -> TelemetrySnapshot | None:
        return self.state.latest

    @property
    def closed(self) -> bool:
        return self._closed

    def register_handlers(self, handlers: ModuleHandlers | None = None, **hooks: Any) -> ModuleHandlers:
        """Register this module's hooks.

        Accepts a :class:`ModuleHandlers` object and/or hook keyword
        arguments; hooks set later override earlier ones. Ignored once the
        module has been torn down.
        """
        combined = handlers or ModuleHandlers()
        if hooks:
            combined = combined.merged(ModuleHandlers(**hooks))
        if self._closed:
            _logger.warning("Module %s registered hooks after teardown; ignored", self.name)
            return combined
        return self._registry.register(self.name, combined)

    def add_listener(self, listener: Listener) -> Callable[[], None]:
        """Listen to every dispatched snapshot until the module is torn down."""
        if self._closed:
            _logger.warning("Module %s added a listener after teardown; ignored", self.name)
            return _noop
        release = self._router.subscribe(listener)
        self._releases.append(release)
        return release

    def add_history_listener(self, listener: HistoryListener) -> Callable[[], None]:
        """Be notified ``(channel_id, state)`` whenever a history channel is loaded."""
        if self._closed:
            _logger.warning("Module %s added a history listener after teardown; ignored", self.name)
            return _noop
        if self._history is None:
            return _noop
        release = self._history.add_history_listener(listener)
        self._releases.append(release)
        return release

    def track(self, plugin: ModulePlugin, handle: Any) -> None:
        if self._closed:
            _logger.warning("Module %s fragment activated after teardown; deactivating", self.name)
            try:
                plugin.deactivate(handle)
            except Exception:
                _logger.error("deactivate failed for module %s", self.name, exc_info=True)
            return
        self._handles.append((plugin, handle))

    def close(self) -> None:
        """Deactivate plugins (newest first) and release everything registered."""
        if self._closed:
            return
        self._closed = True
        for plugin, handle in reversed(self._handles):
            try:
                plugin.deactivate(handle)
            except Exception:
                _logger.error("deactivate failed for module %s", self.name, exc_info=True)
        self._handles.clear()
        for release in reversed(self._releases):
            release()
        self._releases.clear()
        self._registry.unregister(self.name)


def resolve_plugin(ref: str, catalog: Mapping[str, ModulePlugin] | None = None) -> ModulePlugin:
    """Resolve a fragment reference to a plugin.

    Catalog names win; otherwise *ref* must be ``"package.module:attr"``.
    Classes are instantiated without arguments.
    """
    if catalog is not None and ref in catalog:
        return catalog[ref]

    module_path, sep, attr = ref.partition(":")
    if not sep or not module_path or not attr:
        raise LookupError(f"Unknown plugin reference: {ref!r}")

    module = importlib.import_module(module_path)
    obj: Any = module
    for part in attr.split("."):
        obj = getattr(obj, part)
    if isinstance(obj, type):
        obj = obj()
    if not isinstance(obj, ModulePlugin):
        raise TypeError(f"{ref!r} does not implement activate/deactivate")
    return obj
