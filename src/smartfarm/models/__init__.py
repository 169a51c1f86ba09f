"""Data models for telemetry, history and module packages."""

from smartfarm.models._base import FarmBaseModel
from smartfarm.models.package import ModulePackage
from smartfarm.models.telemetry import HistoryPoint, TelemetrySnapshot, history_points_from_value

__all__ = [
    "FarmBaseModel",
    "HistoryPoint",
    "ModulePackage",
    "TelemetrySnapshot",
    "history_points_from_value",
]
