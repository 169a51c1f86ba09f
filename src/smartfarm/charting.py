"""Helpers for modules that plot telemetry.

Data only: modules own the actual drawing and call ``on_update`` to
refresh whatever widget renders the series.
"""

from __future__ import annotations

from collections import deque
from collections.abc import Callable
from datetime import datetime
from typing import Any

DEFAULT_SERIES_LIMIT = 50

# Threshold to distinguish seconds from milliseconds.
_MS_THRESHOLD = 1_000_000_000_000


def ts_to_label(ts: Any) -> str:
    """Format an epoch timestamp (seconds or milliseconds) as a local time label."""
    value = float(ts)
    if value >= _MS_THRESHOLD:
        value /= 1000.0
    return datetime.fromtimestamp(value).strftime("%H:%M:%S")


class RollingSeries:
    """Bounded label/value window, oldest points dropped first."""

    def __init__(
        self,
        limit: int = DEFAULT_SERIES_LIMIT,
        *,
        on_update: Callable[[RollingSeries], Any] | None = None,
    ) -> None:
        if limit <= 0:
            raise ValueError("limit must be positive")
        self._labels: deque[str] = deque(maxlen=limit)
        self._values: deque[Any] = deque(maxlen=limit)
        self._on_update = on_update

    @property
    def labels(self) -> list[str]:
        return list(self._labels)

    @property
    def values(self) -> list[Any]:
        return list(self._values)

    def push(self, label: str, value: Any) -> None:
        self._labels.append(label)
        self._values.append(value)
        if self._on_update is not None:
            self._on_update(self)

    def __len__(self) -> int:
        return len(self._labels)
