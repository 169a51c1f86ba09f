"""Runtime container wiring the dashboard components together."""

from __future__ import annotations

import logging
import time
from collections.abc import Callable, Mapping
from typing import Any

import aiohttp

from smartfarm._fetch import FilePackageFetcher, HttpPackageFetcher, PackageFetcher
from smartfarm.config import TRANSPORT_MQTT, RuntimeConfig
from smartfarm.dispatch.handlers import HandlerRegistry
from smartfarm.dispatch.router import DispatchRouter
from smartfarm.display import DisplaySurface
from smartfarm.exceptions import SmartFarmConfigError, SmartFarmError
from smartfarm.ingestion.bridge import RealtimeBridge
from smartfarm.ingestion.resender import FallbackResender
from smartfarm.loader import ModuleLoader
from smartfarm.plugins import ModulePlugin
from smartfarm.sources.base import TelemetrySource
from smartfarm.sources.firebase import FirebaseSource
from smartfarm.sources.mqtt import MqttTelemetrySource
from smartfarm.state.store import GlobalState

_logger = logging.getLogger(__name__)


class FarmRuntime:
    """Owns the state container and the components that share it.

    Usage::

        async with FarmRuntime(RuntimeConfig.from_env()) as runtime:
            await runtime.start()
            await runtime.load("charts")
    """

    def __init__(
        self,
        config: RuntimeConfig,
        *,
        source: TelemetrySource | None = None,
        fetcher: PackageFetcher | None = None,
        session: aiohttp.ClientSession | None = None,
        plugins: Mapping[str, ModulePlugin] | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._config = config
        self._external_session = session is not None
        self._http_session = session
        self._source = source
        self._fetcher = fetcher
        self._plugins = dict(plugins or {})

        self.state = GlobalState(history_capacity=config.history_limit)
        self.registry = HandlerRegistry()
        self.router = DispatchRouter(self.registry, clock=clock)
        self.display = DisplaySurface()
        self.resender = FallbackResender(
            state=self.state,
            router=self.router,
            interval=config.fallback_interval,
        )
        self._bridge: RealtimeBridge | None = None
        self._loader: ModuleLoader | None = None

    # ------------------------------------------------------------------
    # Context manager lifecycle
    # ------------------------------------------------------------------

    async def __aenter__(self) -> FarmRuntime:
        if self._http_session is None and (self._source is None or self._fetcher is None):
            self._http_session = aiohttp.ClientSession()

        try:
            source = self._source or self._build_source()
            fetcher = self._fetcher or self._build_fetcher()
        except SmartFarmError:
            if not self._external_session and self._http_session is not None:
                await self._http_session.close()
                self._http_session = None
            raise

        self._bridge = RealtimeBridge(
            source=source,
            state=self.state,
            router=self.router,
            sensors_path=self._config.sensors_path,
            history_channels=self._config.history_channels,
            history_limit=self._config.history_limit,
        )
        self._loader = ModuleLoader(
            fetcher=fetcher,
            state=self.state,
            router=self.router,
            display=self.display,
            history=self._bridge,
            plugins=self._plugins,
        )
        return self

    async def __aexit__(self, *exc: Any) -> None:
        await self.close()
        if not self._external_session and self._http_session is not None:
            await self._http_session.close()
            self._http_session = None

    # ------------------------------------------------------------------
    # Component construction
    # ------------------------------------------------------------------

    def _require_session(self) -> aiohttp.ClientSession:
        if self._http_session is None:
            raise SmartFarmError("Runtime not initialized. Use 'async with FarmRuntime(...) as runtime:'")
        return self._http_session

    def _build_firebase(self) -> FirebaseSource | None:
        if not self._config.database_url:
            return None
        return FirebaseSource(
            self._config.database_url,
            self._require_session(),
            auth_token=self._config.auth_token,
        )

    def _build_source(self) -> TelemetrySource:
        firebase = self._build_firebase()
        if self._config.telemetry_transport == TRANSPORT_MQTT:
            return MqttTelemetrySource(
                host=self._config.mqtt_host,
                port=self._config.mqtt_port,
                keepalive=self._config.mqtt_keepalive,
                tls=self._config.mqtt_tls,
                topic_prefix=self._config.mqtt_topic_prefix,
                history=firebase,
            )
        if firebase is None:
            raise SmartFarmConfigError("database_url is required for the firebase transport")
        return firebase

    def _build_fetcher(self) -> PackageFetcher:
        if self._config.modules_dir:
            return FilePackageFetcher(self._config.modules_dir)
        if self._config.modules_url:
            return HttpPackageFetcher(self._config.modules_url, self._require_session())
        raise SmartFarmConfigError("modules_url or modules_dir is required")

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------

    @property
    def config(self) -> RuntimeConfig:
        return self._config

    @property
    def bridge(self) -> RealtimeBridge:
        if self._bridge is None:
            raise SmartFarmError("Runtime not initialized. Use 'async with FarmRuntime(...) as runtime:'")
        return self._bridge

    @property
    def loader(self) -> ModuleLoader:
        if self._loader is None:
            raise SmartFarmError("Runtime not initialized. Use 'async with FarmRuntime(...) as runtime:'")
        return self._loader

    @property
    def active_module(self) -> str | None:
        return self._loader.active_module if self._loader is not None else None

    async def start(self, initial_module: str | None = None) -> bool:
        """Subscribe to telemetry, start the resender and load the first module."""
        await self.bridge.subscribe()
        self.resender.start()
        return await self.loader.load(initial_module or self._config.initial_module)

    async def load(self, name: str) -> bool:
        return await self.loader.load(name)

    async def close(self) -> None:
        """Stop the resender, drop the subscription and tear down the active module."""
        await self.resender.stop()
        if self._bridge is not None:
            self._bridge.close()
        if self._loader is not None:
            self._loader.teardown()
        _logger.debug("Runtime closed")
