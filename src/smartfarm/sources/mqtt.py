"""MQTT adapter: latest-value subscription over a broker topic."""

from __future__ import annotations

import asyncio
import json
import logging
import secrets
from typing import Any, Protocol, cast

import paho.mqtt.client as mqtt

from smartfarm.exceptions import TelemetrySourceError
from smartfarm.sources.base import ErrorCallback, ValueCallback


class RangeQuerySource(Protocol):
    async def query_last(self, path: str, limit: int) -> Any:
        ...


def decode_telemetry_payload(payload: bytes) -> Any:
    """Decode a JSON telemetry message; an empty payload means ``None``."""
    text = payload.decode("utf-8").strip()
    if not text:
        return None
    return json.loads(text)


class MqttSubscriptionRuntime:
    """Threaded paho-mqtt client that emits decoded values onto an asyncio loop."""

    def __init__(
        self,
        *,
        loop: asyncio.AbstractEventLoop,
        topic: str,
        on_value: ValueCallback,
        on_error: ErrorCallback | None = None,
        keepalive: int = 120,
        tls: bool = False,
        logger: logging.Logger | None = None,
    ) -> None:
        self._loop = loop
        self._topic = topic
        self._on_value = on_value
        self._on_error = on_error
        self._keepalive = keepalive
        self._tls = tls
        self._logger = logger or logging.getLogger(__name__)
        self._client: mqtt.Client | None = None
        self._running = False

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def topic(self) -> str:
        return self._topic

    def start(self, host: str, port: int, client_id: str) -> None:
        """Connect and subscribe; blocking, run it in an executor."""
        self._logger.debug("MQTT start requested host=%s port=%s topic=%s", host, port, self._topic)

        client = mqtt.Client(
            callback_api_version=cast(Any, mqtt).CallbackAPIVersion.VERSION2,
            client_id=client_id,
            protocol=mqtt.MQTTv5,
        )
        client.enable_logger(self._logger)
        if self._tls:
            client.tls_set()

        def on_connect(
            c: mqtt.Client,
            _userdata: Any,
            _flags: Any,
            reason_code: Any,
            _properties: Any,
        ) -> None:
            if reason_code.value != 0:
                self._logger.warning("MQTT connect failed: %s", reason_code)
                return
            self._logger.debug("MQTT connected, subscribing topic=%s", self._topic)
            c.subscribe(self._topic, qos=0)

        def on_message(_c: mqtt.Client, _userdata: Any, msg: mqtt.MQTTMessage) -> None:
            try:
                value = decode_telemetry_payload(msg.payload)
            except (UnicodeDecodeError, json.JSONDecodeError):
                self._logger.debug("MQTT payload parse failure topic=%s", msg.topic, exc_info=True)
                return
            self._loop.call_soon_threadsafe(self._on_value, value)

        def on_disconnect(
            _client: mqtt.Client,
            _userdata: Any,
            _disconnect_flags: Any,
            reason_code: Any,
            _properties: Any,
        ) -> None:
            if not self._running:
                return
            self._logger.debug("MQTT disconnected: %s", reason_code)
            if self._on_error is not None and reason_code.value != 0:
                error = TelemetrySourceError(f"MQTT disconnected: {reason_code}", path=self._topic)
                self._loop.call_soon_threadsafe(self._on_error, error)

        client.on_connect = on_connect
        client.on_message = on_message
        client.on_disconnect = on_disconnect

        try:
            client.connect(host, port, keepalive=self._keepalive)
        except OSError as exc:
            raise TelemetrySourceError(f"MQTT connect to {host}:{port} failed: {exc}", path=self._topic) from exc
        client.loop_start()

        self._client = client
        self._running = True

    def cancel(self) -> None:
        """Disconnect and stop the network loop."""
        client = self._client
        self._client = None
        was_running = self._running
        self._running = False
        if client is None:
            return
        try:
            if was_running:
                client.disconnect()
        finally:
            client.loop_stop()
            self._logger.debug("MQTT network loop stopped")


class MqttTelemetrySource:
    """Telemetry source reading latest values from MQTT.

    Store paths map to topics as ``<topic_prefix><path without slashes at
    the ends>``. Range queries are delegated to *history*, when given.
    """

    def __init__(
        self,
        *,
        host: str,
        port: int = 1883,
        keepalive: int = 120,
        tls: bool = False,
        topic_prefix: str = "",
        history: RangeQuerySource | None = None,
        client_id: str | None = None,
        logger: logging.Logger | None = None,
    ) -> None:
        self._host = host
        self._port = port
        self._keepalive = keepalive
        self._tls = tls
        self._topic_prefix = topic_prefix
        self._history = history
        self._client_id = client_id or f"smartfarm_{secrets.token_hex(6)}"
        self._logger = logger or logging.getLogger(__name__)

    def topic_for(self, path: str) -> str:
        return f"{self._topic_prefix}{path.strip('/')}"

    async def subscribe(
        self,
        path: str,
        on_value: ValueCallback,
        on_error: ErrorCallback | None = None,
    ) -> MqttSubscriptionRuntime:
        loop = asyncio.get_running_loop()
        runtime = MqttSubscriptionRuntime(
            loop=loop,
            topic=self.topic_for(path),
            on_value=on_value,
            on_error=on_error,
            keepalive=self._keepalive,
            tls=self._tls,
            logger=self._logger,
        )
        await loop.run_in_executor(None, runtime.start, self._host, self._port, self._client_id)
        return runtime

    async def query_last(self, path: str, limit: int) -> Any:
        if self._history is None:
            raise TelemetrySourceError("MQTT source has no history backend for range queries", path=path)
        return await self._history.query_last(path, limit)
