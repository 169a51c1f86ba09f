"""In-memory state container shared by the runtime components."""

from __future__ import annotations

from collections import deque
from collections.abc import Iterable, Iterator, Mapping
from types import MappingProxyType

from smartfarm.models.telemetry import HistoryPoint, TelemetrySnapshot

DEFAULT_HISTORY_CAPACITY = 500


class HistoryBuffer:
    """Ordered, bounded sequence of history points for one channel.

    Insertion order is preserved and the oldest entries are dropped first
    once ``capacity`` is reached.
    """

    def __init__(self, capacity: int = DEFAULT_HISTORY_CAPACITY) -> None:
        if capacity <= 0:
            raise ValueError("capacity must be positive")
        self._capacity = capacity
        self._points: deque[HistoryPoint] = deque(maxlen=capacity)

    @property
    def capacity(self) -> int:
        return self._capacity

    def extend(self, points: Iterable[HistoryPoint]) -> None:
        self._points.extend(points)

    def replace(self, points: Iterable[HistoryPoint]) -> None:
        self._points.clear()
        self._points.extend(points)

    def values(self) -> list[object]:
        return [point.value for point in self._points]

    def __iter__(self) -> Iterator[HistoryPoint]:
        return iter(list(self._points))

    def __len__(self) -> int:
        return len(self._points)


class GlobalState:
    """Latest telemetry snapshot plus per-channel history.

    Created once by the runtime at startup and kept for the process
    lifetime; no teardown is needed. Readers must tolerate ``latest`` being
    ``None`` and channels that have not been backfilled yet.
    """

    def __init__(self, *, history_capacity: int = DEFAULT_HISTORY_CAPACITY) -> None:
        if history_capacity <= 0:
            raise ValueError("history_capacity must be positive")
        # Never more than DEFAULT_HISTORY_CAPACITY entries per channel.
        self._history_capacity = min(history_capacity, DEFAULT_HISTORY_CAPACITY)
        self._latest: TelemetrySnapshot | None = None
        self._history: dict[str, HistoryBuffer] = {}

    @property
    def latest(self) -> TelemetrySnapshot | None:
        return self._latest

    @property
    def history(self) -> Mapping[str, tuple[HistoryPoint, ...]]:
        """Read-only copy of every channel's points, keyed by channel id."""
        return MappingProxyType({channel_id: tuple(buffer) for channel_id, buffer in self._history.items()})

    @property
    def history_capacity(self) -> int:
        return self._history_capacity

    def set_latest(self, snapshot: TelemetrySnapshot | None) -> None:
        """Replace the latest snapshot (no merge)."""
        self._latest = snapshot

    def set_history(self, channel_id: str, points: Iterable[HistoryPoint]) -> HistoryBuffer:
        """Replace a channel's history, keeping only the newest entries."""
        buffer = self._history.get(channel_id)
        if buffer is None:
            buffer = HistoryBuffer(self._history_capacity)
            self._history[channel_id] = buffer
        buffer.replace(points)
        return buffer

    def get_history(self, channel_id: str) -> HistoryBuffer | None:
        return self._history.get(channel_id)
