"""Handler registry and dispatch router."""

from smartfarm.dispatch.handlers import HandlerRegistry, ModuleHandlers, await_isolated, invoke_isolated
from smartfarm.dispatch.router import DispatchRecord, DispatchResult, DispatchRouter, Listener

__all__ = [
    "DispatchRecord",
    "DispatchResult",
    "DispatchRouter",
    "HandlerRegistry",
    "Listener",
    "ModuleHandlers",
    "await_isolated",
    "invoke_isolated",
]
