"""On-demand activation of display modules.

``load(name)`` swaps the active module: the previous module is torn
down, the new package is fetched and rendered, its fragments are
activated in document order, its ``init``/``on_init`` hooks run, and the
latest known snapshot is force-dispatched so the module never starts
stale.

Overlapping loads are neither serialized nor cancelled. The last call to
start wins the active slot. A superseded load still finishes its fetch,
then logs a warning and returns ``False`` without rendering, running
hooks or dispatching; anything its fragments register after the swap is
dropped by the closed context.
"""

from __future__ import annotations

import inspect
import logging
from collections.abc import Mapping

from smartfarm._fetch import PackageFetcher
from smartfarm.dispatch.handlers import await_isolated
from smartfarm.dispatch.router import DispatchRouter
from smartfarm.display import DisplaySurface
from smartfarm.exceptions import ModuleLoadError
from smartfarm.plugins import HistorySource, ModuleContext, ModulePlugin, resolve_plugin
from smartfarm.state.store import GlobalState

_logger = logging.getLogger(__name__)


class ModuleLoader:
    """Owns the active module slot."""

    def __init__(
        self,
        *,
        fetcher: PackageFetcher,
        state: GlobalState,
        router: DispatchRouter,
        display: DisplaySurface | None = None,
        history: HistorySource | None = None,
        plugins: Mapping[str, ModulePlugin] | None = None,
    ) -> None:
        self._fetcher = fetcher
        self._state = state
        self._router = router
        self._display = display or DisplaySurface()
        self._history = history
        self._plugins: dict[str, ModulePlugin] = dict(plugins or {})
        self._active: str | None = None
        self._context: ModuleContext | None = None
        self._generation = 0
        router.bind_active_module(self._get_active)

    def _get_active(self) -> str | None:
        return self._active

    @property
    def active_module(self) -> str | None:
        return self._active

    @property
    def display(self) -> DisplaySurface:
        return self._display

    @property
    def context(self) -> ModuleContext | None:
        """Context of the most recently started activation."""
        return self._context

    def register_plugin(self, ref: str, plugin: ModulePlugin) -> None:
        """Make *plugin* resolvable by fragment reference *ref*."""
        self._plugins[ref] = plugin

    async def load(self, name: str) -> bool:
        """Activate module *name*; returns ``False`` when the package failed to load."""
        if not name:
            raise ValueError("module name must be non-empty")

        self._generation += 1
        generation = self._generation

        self.teardown()
        self._active = name
        # Drop registrations left behind by an earlier, superseded activation.
        self._router.registry.unregister(name)
        context = ModuleContext(
            name,
            state=self._state,
            display=self._display,
            registry=self._router.registry,
            router=self._router,
            history=self._history,
        )
        self._context = context

        try:
            package = await self._fetcher.fetch(name)
        except ModuleLoadError as exc:
            _logger.warning("Module load failed for %s: %s", name, exc)
            if generation == self._generation:
                self._display.render_error(str(exc))
            return False
        except Exception as exc:
            _logger.error("Module load failed for %s", name, exc_info=True)
            if generation == self._generation:
                self._display.render_error(str(exc) or type(exc).__name__)
            return False

        if generation != self._generation:
            _logger.warning("Module %s superseded by %s while loading; discarding package", name, self._active)
            return False

        self._display.render(package.markup)

        for ref in package.fragments:
            await self._activate_fragment(context, ref)

        handlers = self._router.registry.get(name)
        if not context.closed and handlers is not None and handlers.init is not None:
            await await_isolated(f"{name}.init", handlers.init)

        # Re-read: init may have registered more hooks.
        handlers = self._router.registry.get(name)
        latest = self._state.latest
        if not context.closed and handlers is not None and handlers.on_init is not None:
            await await_isolated(f"{name}.on_init", handlers.on_init, latest)

        if context.closed:
            _logger.warning("Module %s superseded by %s while activating", name, self._active)
            return False

        if latest is not None:
            self._router.dispatch(latest, forced=True)

        _logger.debug("Loaded module: %s", name)
        return True

    def teardown(self) -> None:
        """Deactivate the current module and release its registrations."""
        context = self._context
        self._context = None
        if context is None:
            return
        context.close()
        _logger.debug("Deactivated module: %s", context.name)

    async def _activate_fragment(self, context: ModuleContext, ref: str) -> None:
        try:
            plugin = resolve_plugin(ref, self._plugins)
        except Exception:
            _logger.warning("Failed to resolve fragment %s for module %s", ref, context.name, exc_info=True)
            return

        try:
            handle = plugin.activate(context)
            if inspect.isawaitable(handle):
                handle = await handle
        except Exception:
            _logger.error("Error activating fragment %s for module %s", ref, context.name, exc_info=True)
            return

        context.track(plugin, handle)
