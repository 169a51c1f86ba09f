"""smartfarm - Async runtime for smart-farm dashboard modules and realtime telemetry."""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("smartfarm")
except PackageNotFoundError:
    __version__ = "0+local"
from smartfarm.charting import RollingSeries, ts_to_label
from smartfarm.config import HistoryChannel, RuntimeConfig
from smartfarm.dispatch import DispatchRecord, DispatchResult, DispatchRouter, HandlerRegistry, ModuleHandlers
from smartfarm.display import DisplaySurface
from smartfarm.exceptions import (
    ModuleLoadError,
    SmartFarmConfigError,
    SmartFarmError,
    TelemetrySourceError,
)
from smartfarm.ingestion import FallbackResender, RealtimeBridge
from smartfarm.loader import ModuleLoader
from smartfarm.models import HistoryPoint, ModulePackage, TelemetrySnapshot
from smartfarm.plugins import FunctionPlugin, ModuleContext, ModulePlugin
from smartfarm.runtime import FarmRuntime
from smartfarm.state import GlobalState, HistoryBuffer

__all__ = [
    "__version__",
    "DispatchRecord",
    "DispatchResult",
    "DispatchRouter",
    "DisplaySurface",
    "FallbackResender",
    "FarmRuntime",
    "FunctionPlugin",
    "GlobalState",
    "HandlerRegistry",
    "HistoryBuffer",
    "HistoryChannel",
    "HistoryPoint",
    "ModuleContext",
    "ModuleHandlers",
    "ModuleLoadError",
    "ModuleLoader",
    "ModulePackage",
    "ModulePlugin",
    "RealtimeBridge",
    "RollingSeries",
    "RuntimeConfig",
    "SmartFarmConfigError",
    "SmartFarmError",
    "TelemetrySnapshot",
    "TelemetrySourceError",
    "ts_to_label",
]
