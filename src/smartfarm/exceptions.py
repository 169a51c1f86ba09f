"""Custom exception hierarchy for smartfarm."""

from __future__ import annotations


class SmartFarmError(Exception):
    """Base exception for all smartfarm errors."""


class SmartFarmConfigError(SmartFarmError):
    """Invalid or missing configuration."""


class ModuleLoadError(SmartFarmError):
    """A display module package could not be fetched or parsed.

    Raised by package fetchers for network failures, non-200 responses
    and malformed packages. The loader contains it and renders an error
    placeholder instead of propagating.
    """

    def __init__(
        self,
        message: str,
        *,
        module: str = "",
        status_code: int | None = None,
    ) -> None:
        self.module = module
        self.status_code = status_code
        super().__init__(message)


class TelemetrySourceError(SmartFarmError):
    """Subscription or range query against the telemetry source failed."""

    def __init__(
        self,
        message: str,
        *,
        path: str = "",
        status_code: int | None = None,
    ) -> None:
        self.path = path
        self.status_code = status_code
        super().__init__(message)
