"""Runtime configuration for smartfarm."""

from __future__ import annotations

import dataclasses
import os
from typing import Any

from smartfarm.exceptions import SmartFarmConfigError

TRANSPORT_FIREBASE = "firebase"
TRANSPORT_MQTT = "mqtt"
_TRANSPORTS = frozenset({TRANSPORT_FIREBASE, TRANSPORT_MQTT})

MAX_HISTORY_LIMIT = 500


def _env_bool(value: str | None, default: bool) -> bool:
    if value is None:
        return default
    normalized = value.strip().lower()
    if normalized in {"1", "true", "yes", "y", "on"}:
        return True
    if normalized in {"0", "false", "no", "n", "off"}:
        return False
    return default


@dataclasses.dataclass(frozen=True)
class HistoryChannel:
    """A named historical series and the store path it is read from."""

    channel_id: str
    path: str


DEFAULT_HISTORY_CHANNELS: tuple[HistoryChannel, ...] = (
    HistoryChannel("soil", "/smartFarm/history/soilMoisture"),
    HistoryChannel("temp", "/smartFarm/history/soilTemperature"),
    HistoryChannel("light", "/smartFarm/history/sunlight"),
)


def parse_history_channels(raw: str) -> tuple[HistoryChannel, ...]:
    """Parse ``"soil=/a,temp=/b"`` into history channels."""
    channels: list[HistoryChannel] = []
    for item in raw.split(","):
        item = item.strip()
        if not item:
            continue
        channel_id, sep, path = item.partition("=")
        if not sep or not channel_id.strip() or not path.strip():
            raise SmartFarmConfigError(f"Invalid history channel entry: {item!r}")
        channels.append(HistoryChannel(channel_id.strip(), path.strip()))
    return tuple(channels)


@dataclasses.dataclass(frozen=True)
class RuntimeConfig:
    """Runtime configuration.

    Parameters
    ----------
    database_url : str
        Base URL of the realtime database (e.g.
        ``"https://farm-default-rtdb.firebaseio.com"``).
    auth_token : str or None
        Optional database auth token appended to REST requests.
    modules_url : str
        Base URL module packages are fetched from (``<modules_url>/<name>.json``).
    modules_dir : str or None
        Local directory to read module packages from instead of HTTP.
    sensors_path : str
        Store path holding the latest sensor reading.
    history_channels : tuple of HistoryChannel
        Channels backfilled once at subscription time.
    history_limit : int
        Number of trailing entries requested and kept per channel, at
        most ``MAX_HISTORY_LIMIT``.
    fallback_interval : float
        Resender tick interval and staleness threshold, in seconds.
    initial_module : str
        Module loaded when the runtime starts.
    telemetry_transport : str
        ``"firebase"`` (REST streaming) or ``"mqtt"``.
    mqtt_host : str
        MQTT broker host, used with the ``mqtt`` transport.
    mqtt_port : int
        MQTT broker port.
    mqtt_keepalive : int
        MQTT keepalive in seconds.
    mqtt_tls : bool
        Enable TLS for the MQTT connection.
    mqtt_topic_prefix : str
        Prefix prepended to store paths to build MQTT topics.
    """

    database_url: str = ""
    auth_token: str | None = None
    modules_url: str = ""
    modules_dir: str | None = None
    sensors_path: str = "/smartFarm/sensors"
    history_channels: tuple[HistoryChannel, ...] = DEFAULT_HISTORY_CHANNELS
    history_limit: int = 500
    fallback_interval: float = 3.0
    initial_module: str = "home"
    telemetry_transport: str = TRANSPORT_FIREBASE
    mqtt_host: str = "localhost"
    mqtt_port: int = 1883
    mqtt_keepalive: int = 120
    mqtt_tls: bool = False
    mqtt_topic_prefix: str = ""

    def __post_init__(self) -> None:
        if self.telemetry_transport not in _TRANSPORTS:
            raise SmartFarmConfigError(f"Unknown telemetry transport: {self.telemetry_transport!r}")
        if not 0 < self.history_limit <= MAX_HISTORY_LIMIT:
            raise SmartFarmConfigError(f"history_limit must be between 1 and {MAX_HISTORY_LIMIT}")
        if self.fallback_interval <= 0:
            raise SmartFarmConfigError("fallback_interval must be positive")
        if not self.initial_module.strip():
            raise SmartFarmConfigError("initial_module must be non-empty")

    @classmethod
    def from_env(cls, **overrides: Any) -> RuntimeConfig:
        """Create configuration from ``SMARTFARM_*`` environment variables.

        Explicit keyword arguments override environment values.
        """
        env = os.environ

        _ENV_CONFIG_MAP = {
            "SMARTFARM_DATABASE_URL": "database_url",
            "SMARTFARM_AUTH_TOKEN": "auth_token",
            "SMARTFARM_MODULES_URL": "modules_url",
            "SMARTFARM_MODULES_DIR": "modules_dir",
            "SMARTFARM_SENSORS_PATH": "sensors_path",
            "SMARTFARM_INITIAL_MODULE": "initial_module",
            "SMARTFARM_TELEMETRY_TRANSPORT": "telemetry_transport",
            "SMARTFARM_MQTT_HOST": "mqtt_host",
            "SMARTFARM_MQTT_TOPIC_PREFIX": "mqtt_topic_prefix",
        }
        config_kwargs: dict[str, Any] = {}
        for env_key, field_name in _ENV_CONFIG_MAP.items():
            val = env.get(env_key)
            if val is not None:
                config_kwargs[field_name] = val

        # numeric fields, handled separately
        try:
            for env_key, field_name, cast in (
                ("SMARTFARM_HISTORY_LIMIT", "history_limit", int),
                ("SMARTFARM_FALLBACK_INTERVAL", "fallback_interval", float),
                ("SMARTFARM_MQTT_PORT", "mqtt_port", int),
                ("SMARTFARM_MQTT_KEEPALIVE", "mqtt_keepalive", int),
            ):
                val = env.get(env_key)
                if val is not None and field_name not in overrides:
                    config_kwargs[field_name] = cast(val)
        except ValueError as exc:
            raise SmartFarmConfigError(f"Invalid numeric setting: {exc}") from exc

        channels_env = env.get("SMARTFARM_HISTORY_CHANNELS")
        if channels_env is not None and "history_channels" not in overrides:
            config_kwargs["history_channels"] = parse_history_channels(channels_env)

        if "mqtt_tls" not in overrides:
            config_kwargs["mqtt_tls"] = _env_bool(env.get("SMARTFARM_MQTT_TLS"), False)

        config_kwargs.update(overrides)

        return cls(**config_kwargs)
