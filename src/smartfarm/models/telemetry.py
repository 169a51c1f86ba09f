"""Telemetry snapshot and history models."""

from __future__ import annotations

from collections.abc import Mapping
from datetime import UTC, datetime
from types import MappingProxyType
from typing import Any

from pydantic import Field, field_validator

from smartfarm.models._base import FarmBaseModel


def _thaw(value: Any) -> Any:
    """Deep, mutable copy of a JSON-like value."""
    if isinstance(value, Mapping):
        return {str(k): _thaw(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_thaw(v) for v in value]
    return value


def _freeze(value: Any) -> Any:
    if isinstance(value, Mapping):
        return MappingProxyType({k: _freeze(v) for k, v in value.items()})
    if isinstance(value, (list, tuple)):
        return tuple(_freeze(v) for v in value)
    return value


class TelemetrySnapshot(FarmBaseModel):
    """The most recent reading emitted by the telemetry source.

    ``data`` may be partial; components read the keys they know about.
    A missing reading is represented by ``None``, never by an empty
    snapshot (see :meth:`from_value`).

    The same snapshot is handed to every hook and listener of a dispatch
    and kept as the latest state, so ``data`` is read-only all the way
    down: objects are mapping proxies and arrays are tuples. Use
    :meth:`as_dict` for a mutable copy.
    """

    data: Mapping[str, Any] = Field(default_factory=lambda: MappingProxyType({}))
    observed_at: datetime = Field(default_factory=lambda: datetime.now(UTC))

    @field_validator("data", mode="before")
    @classmethod
    def _detach_data(cls, value: Any) -> Any:
        # Snapshots must not share mutable state with the emitter.
        if isinstance(value, Mapping):
            return _thaw(value)
        return value

    @field_validator("data", mode="after")
    @classmethod
    def _freeze_data(cls, value: Mapping[str, Any]) -> Mapping[str, Any]:
        return _freeze(value)

    @classmethod
    def from_value(cls, value: Any) -> TelemetrySnapshot | None:
        """Build a snapshot from a raw store value.

        ``None`` and empty mappings mean "no data yet" and return ``None``.
        Scalars are wrapped as ``{"value": x}``.
        """
        if value is None:
            return None
        if isinstance(value, TelemetrySnapshot):
            return value if value.data else None
        if isinstance(value, Mapping):
            if not value:
                return None
            return cls(data=value)
        return cls(data={"value": value})

    def as_dict(self) -> dict[str, Any]:
        """Mutable deep copy of ``data`` (plain dicts and lists)."""
        return _thaw(self.data)

    def get(self, key: str, default: Any = None) -> Any:
        return self.data.get(key, default)

    def __getitem__(self, key: str) -> Any:
        return self.data[key]

    def __bool__(self) -> bool:
        return bool(self.data)


class HistoryPoint(FarmBaseModel):
    """One entry of a history channel, keyed by its store key."""

    key: str
    value: Any = None


def history_points_from_value(value: Any) -> list[HistoryPoint]:
    """Normalize a range-query result into ordered history points.

    The store returns either an object keyed by push id (already in key
    order), an array with ``null`` holes, or ``null`` for an empty range.
    """
    if value is None:
        return []
    if isinstance(value, Mapping):
        return [HistoryPoint(key=str(k), value=v) for k, v in value.items()]
    if isinstance(value, (list, tuple)):
        return [HistoryPoint(key=str(i), value=v) for i, v in enumerate(value) if v is not None]
    return [HistoryPoint(key="0", value=value)]
