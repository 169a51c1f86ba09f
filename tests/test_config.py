from __future__ import annotations

import pytest

from smartfarm.config import (
    DEFAULT_HISTORY_CHANNELS,
    HistoryChannel,
    RuntimeConfig,
    parse_history_channels,
)
from smartfarm.exceptions import SmartFarmConfigError


def _clear_env(monkeypatch: pytest.MonkeyPatch) -> None:
    for key in (
        "SMARTFARM_DATABASE_URL",
        "SMARTFARM_HISTORY_LIMIT",
        "SMARTFARM_FALLBACK_INTERVAL",
        "SMARTFARM_HISTORY_CHANNELS",
        "SMARTFARM_MQTT_TLS",
        "SMARTFARM_TELEMETRY_TRANSPORT",
    ):
        monkeypatch.delenv(key, raising=False)


def test_defaults() -> None:
    config = RuntimeConfig()

    assert config.sensors_path == "/smartFarm/sensors"
    assert config.history_channels == DEFAULT_HISTORY_CHANNELS
    assert config.history_limit == 500
    assert config.fallback_interval == 3.0
    assert config.initial_module == "home"


def test_from_env_reads_settings(monkeypatch: pytest.MonkeyPatch) -> None:
    _clear_env(monkeypatch)
    monkeypatch.setenv("SMARTFARM_DATABASE_URL", "https://farm.example.com")
    monkeypatch.setenv("SMARTFARM_HISTORY_LIMIT", "120")
    monkeypatch.setenv("SMARTFARM_FALLBACK_INTERVAL", "1.5")
    monkeypatch.setenv("SMARTFARM_HISTORY_CHANNELS", "soil=/h/soil, light=/h/light")
    monkeypatch.setenv("SMARTFARM_MQTT_TLS", "yes")

    config = RuntimeConfig.from_env()

    assert config.database_url == "https://farm.example.com"
    assert config.history_limit == 120
    assert config.fallback_interval == 1.5
    assert config.history_channels == (HistoryChannel("soil", "/h/soil"), HistoryChannel("light", "/h/light"))
    assert config.mqtt_tls is True


def test_overrides_win_over_env(monkeypatch: pytest.MonkeyPatch) -> None:
    _clear_env(monkeypatch)
    monkeypatch.setenv("SMARTFARM_HISTORY_LIMIT", "not-a-number")

    config = RuntimeConfig.from_env(history_limit=10)

    assert config.history_limit == 10


def test_invalid_values_raise(monkeypatch: pytest.MonkeyPatch) -> None:
    _clear_env(monkeypatch)
    monkeypatch.setenv("SMARTFARM_FALLBACK_INTERVAL", "soon")
    with pytest.raises(SmartFarmConfigError):
        RuntimeConfig.from_env()

    with pytest.raises(SmartFarmConfigError):
        RuntimeConfig(telemetry_transport="carrier-pigeon")
    with pytest.raises(SmartFarmConfigError):
        RuntimeConfig(fallback_interval=0)
    with pytest.raises(SmartFarmConfigError):
        RuntimeConfig(history_limit=1000)
    with pytest.raises(SmartFarmConfigError):
        RuntimeConfig(history_limit=0)
    with pytest.raises(SmartFarmConfigError):
        parse_history_channels("soil")
