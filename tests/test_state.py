from __future__ import annotations

import pydantic
import pytest

from smartfarm.models import HistoryPoint, TelemetrySnapshot, history_points_from_value
from smartfarm.state import GlobalState, HistoryBuffer


def test_snapshot_from_value_variants() -> None:
    assert TelemetrySnapshot.from_value(None) is None
    assert TelemetrySnapshot.from_value({}) is None

    snap = TelemetrySnapshot.from_value({"moisture": 42})
    assert snap is not None
    assert snap.data == {"moisture": 42}
    assert snap["moisture"] == 42
    assert snap.get("missing", "n/a") == "n/a"

    scalar = TelemetrySnapshot.from_value(17)
    assert scalar is not None
    assert scalar.data == {"value": 17}

    assert TelemetrySnapshot.from_value(snap) is snap


def test_snapshot_is_detached_and_frozen() -> None:
    raw = {"soil": {"moisture": 40}}
    snap = TelemetrySnapshot.from_value(raw)
    assert snap is not None

    raw["soil"]["moisture"] = 99
    assert snap.data["soil"]["moisture"] == 40

    with pytest.raises(pydantic.ValidationError):
        snap.data = {}  # type: ignore[misc]


def test_history_points_from_object_preserves_key_order() -> None:
    points = history_points_from_value({"-Na": 1, "-Nb": 2, "-Nc": 3})
    assert [p.key for p in points] == ["-Na", "-Nb", "-Nc"]
    assert [p.value for p in points] == [1, 2, 3]


def test_history_points_from_array_skips_holes() -> None:
    points = history_points_from_value([None, 5, None, 7])
    assert [(p.key, p.value) for p in points] == [("1", 5), ("3", 7)]
    assert history_points_from_value(None) == []


def test_history_buffer_drops_oldest_first() -> None:
    buffer = HistoryBuffer(capacity=3)
    buffer.extend(HistoryPoint(key=str(i), value=i) for i in range(5))

    assert len(buffer) == 3
    assert buffer.values() == [2, 3, 4]
    assert buffer.capacity == 3


def test_history_buffer_rejects_non_positive_capacity() -> None:
    with pytest.raises(ValueError):
        HistoryBuffer(capacity=0)


def test_global_state_history_never_exceeds_capacity() -> None:
    state = GlobalState()
    points = [HistoryPoint(key=f"k{i:04d}", value=i) for i in range(750)]

    buffer = state.set_history("soil", points)

    assert len(buffer) == 500
    assert [p.key for p in buffer][0] == "k0250"
    assert state.get_history("soil") is buffer

    state.set_history("soil", points[:10])
    assert len(state.history["soil"]) == 10


def test_global_state_latest_is_replaced() -> None:
    state = GlobalState()
    assert state.latest is None

    first = TelemetrySnapshot.from_value({"moisture": 1, "temp": 20})
    second = TelemetrySnapshot.from_value({"moisture": 2})
    state.set_latest(first)
    state.set_latest(second)

    assert state.latest is second
    assert state.latest is not None
    assert "temp" not in state.latest.data


def test_snapshot_data_is_read_only_all_the_way_down() -> None:
    snap = TelemetrySnapshot.from_value({"soil": {"moisture": 40}, "readings": [1, 2]})
    assert snap is not None

    with pytest.raises(TypeError):
        snap.data["soil"]["moisture"] = 0  # type: ignore[index]
    with pytest.raises(TypeError):
        snap.data["extra"] = 1  # type: ignore[index]
    assert snap["readings"] == (1, 2)

    mutable = snap.as_dict()
    mutable["soil"]["moisture"] = 0
    assert mutable == {"soil": {"moisture": 0}, "readings": [1, 2]}
    assert snap["soil"]["moisture"] == 40

    again = TelemetrySnapshot.from_value(snap.data)
    assert again is not None
    assert again.data == snap.data


def test_global_state_caps_capacity_at_default() -> None:
    state = GlobalState(history_capacity=1000)
    points = [HistoryPoint(key=f"k{i:04d}", value=i) for i in range(1000)]

    buffer = state.set_history("soil", points)

    assert state.history_capacity == 500
    assert len(buffer) == 500
    assert buffer.capacity == 500


def test_global_state_history_view_is_a_copy() -> None:
    state = GlobalState()
    state.set_history("soil", [HistoryPoint(key="a", value=1)])

    view = state.history

    with pytest.raises(TypeError):
        view["temp"] = ()  # type: ignore[index]
    state.set_history("soil", [HistoryPoint(key="b", value=2), HistoryPoint(key="c", value=3)])
    assert [p.key for p in view["soil"]] == ["a"]
    assert len(state.history["soil"]) == 2
