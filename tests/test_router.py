from __future__ import annotations

import asyncio
import gc
import logging
from typing import Any

import pytest

from smartfarm.dispatch import DispatchRouter, HandlerRegistry, ModuleHandlers
from smartfarm.dispatch import handlers as dispatch_handlers
from smartfarm.models import TelemetrySnapshot


class _Clock:
    def __init__(self, now: float = 100.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now


def _router(active: str | None = "home", clock: _Clock | None = None) -> DispatchRouter:
    return DispatchRouter(HandlerRegistry(), active_module=lambda: active, clock=clock or _Clock())


def _snap(**data: Any) -> TelemetrySnapshot:
    snapshot = TelemetrySnapshot.from_value(data)
    assert snapshot is not None
    return snapshot


def test_dispatch_none_is_a_noop() -> None:
    router = _router()
    calls: list[str] = []
    router.registry.register("home", ModuleHandlers(on_realtime=lambda s: calls.append("rt")))
    router.subscribe(lambda s: calls.append("broadcast"))

    result = router.dispatch(None)
    forced = router.dispatch(None, forced=True)

    assert not result.dispatched
    assert not forced.dispatched
    assert calls == []
    assert router.last_dispatch_at is None
    assert router.record.dispatch_count == 0


def test_dispatch_empty_snapshot_is_a_noop() -> None:
    router = _router()
    result = router.dispatch(TelemetrySnapshot(data={}))
    assert not result.dispatched
    assert router.last_dispatch_at is None


def test_dispatch_fires_all_paths_in_fixed_order() -> None:
    clock = _Clock(42.0)
    router = _router(clock=clock)
    calls: list[tuple[str, Any]] = []
    router.registry.register(
        "home",
        ModuleHandlers(
            on_realtime=lambda s: calls.append(("realtime", s.data)),
            on_update=lambda s: calls.append(("update", s.data)),
        ),
    )
    router.subscribe(lambda s: calls.append(("broadcast", s.data)))

    result = router.dispatch(_snap(moisture=42))

    assert calls == [
        ("realtime", {"moisture": 42}),
        ("update", {"moisture": 42}),
        ("broadcast", {"moisture": 42}),
    ]
    assert result.invoked == ("on_realtime", "on_update", "broadcast")
    assert result.failed == ()
    assert result.module == "home"
    assert router.last_dispatch_at == 42.0


def test_failing_handler_does_not_block_siblings(caplog: pytest.LogCaptureFixture) -> None:
    router = _router()
    calls: list[str] = []

    def _boom(_snapshot: TelemetrySnapshot) -> None:
        raise RuntimeError("chart exploded")

    router.registry.register(
        "home",
        ModuleHandlers(on_realtime=_boom, on_update=lambda s: calls.append("update")),
    )
    router.subscribe(lambda s: calls.append("listener-1"))
    router.subscribe(lambda s: 1 / 0)
    router.subscribe(lambda s: calls.append("listener-3"))

    with caplog.at_level(logging.ERROR):
        result = router.dispatch(_snap(moisture=1))

    assert calls == ["update", "listener-1", "listener-3"]
    assert result.failed == ("on_realtime", "broadcast")
    assert "home.on_realtime error" in caplog.text
    assert router.last_dispatch_at is not None


def test_timestamp_updates_without_any_registration() -> None:
    clock = _Clock(7.0)
    router = _router(active="ghost", clock=clock)

    result = router.dispatch(_snap(temp=21))

    assert result.dispatched
    assert result.invoked == ()
    assert router.last_dispatch_at == 7.0


def test_broadcast_fires_without_active_module() -> None:
    router = _router(active=None)
    received: list[dict[str, Any]] = []
    router.subscribe(lambda s: received.append(s.data))

    router.dispatch(_snap(light=300))

    assert received == [{"light": 300}]


def test_handlers_follow_active_module() -> None:
    active = {"name": "home"}
    router = DispatchRouter(HandlerRegistry(), active_module=lambda: active["name"])
    calls: list[str] = []
    router.registry.register("home", ModuleHandlers(on_update=lambda s: calls.append("home")))
    router.registry.register("charts", ModuleHandlers(on_update=lambda s: calls.append("charts")))

    router.dispatch(_snap(a=1))
    active["name"] = "charts"
    router.dispatch(_snap(a=2))

    assert calls == ["home", "charts"]


def test_forced_dispatch_only_changes_counters() -> None:
    router = _router()
    calls: list[str] = []
    router.registry.register("home", ModuleHandlers(on_realtime=lambda s: calls.append("rt")))

    plain = router.dispatch(_snap(a=1))
    forced = router.dispatch(_snap(a=1), forced=True)

    assert plain.invoked == forced.invoked
    assert forced.forced and not plain.forced
    assert calls == ["rt", "rt"]
    assert router.record.dispatch_count == 2
    assert router.record.forced_count == 1


def test_unsubscribe_removes_listener() -> None:
    router = _router()
    received: list[int] = []

    def _listener(snapshot: TelemetrySnapshot) -> None:
        received.append(snapshot["a"])

    release = router.subscribe(_listener)
    router.dispatch(_snap(a=1))
    release()
    router.dispatch(_snap(a=2))

    assert received == [1]
    assert router.listener_count == 0
    assert router.unsubscribe(_listener) is False


@pytest.mark.asyncio
async def test_async_handler_is_scheduled_and_failure_logged(caplog: pytest.LogCaptureFixture) -> None:
    router = _router()
    seen: list[int] = []

    async def _on_update(snapshot: TelemetrySnapshot) -> None:
        seen.append(snapshot["a"])

    async def _on_realtime(_snapshot: TelemetrySnapshot) -> None:
        raise ValueError("async failure")

    router.registry.register("home", ModuleHandlers(on_realtime=_on_realtime, on_update=_on_update))

    with caplog.at_level(logging.ERROR):
        result = router.dispatch(_snap(a=5))
        for _ in range(3):
            await asyncio.sleep(0)

    assert result.failed == ()
    assert seen == [5]
    assert "home.on_realtime failed" in caplog.text


def test_registry_merges_hooks_field_by_field() -> None:
    registry = HandlerRegistry()

    def first(s: TelemetrySnapshot) -> None:
        return None

    def second(s: TelemetrySnapshot) -> None:
        return None

    def update(s: TelemetrySnapshot) -> None:
        return None

    registry.register("home", ModuleHandlers(on_realtime=first, on_update=update))
    merged = registry.register("home", ModuleHandlers(on_realtime=second))

    assert merged.on_realtime is second
    assert merged.on_update is update
    assert "home" in registry
    assert registry.unregister("home") is merged
    assert registry.get("home") is None
    assert registry.get(None) is None


@pytest.mark.asyncio
async def test_pending_async_hook_is_held_until_done(caplog: pytest.LogCaptureFixture) -> None:
    router = _router()
    gate = asyncio.Event()

    async def _on_update(_snapshot: TelemetrySnapshot) -> None:
        await gate.wait()
        raise ValueError("late failure")

    router.registry.register("home", ModuleHandlers(on_update=_on_update))
    before = len(dispatch_handlers._pending_hooks)

    with caplog.at_level(logging.ERROR):
        router.dispatch(_snap(a=1))
        await asyncio.sleep(0)
        assert len(dispatch_handlers._pending_hooks) == before + 1
        gc.collect()
        gate.set()
        for _ in range(3):
            await asyncio.sleep(0)

    assert len(dispatch_handlers._pending_hooks) == before
    assert "home.on_update failed" in caplog.text


def test_mutating_handler_cannot_change_what_siblings_see() -> None:
    router = _router()
    seen: list[Any] = []

    def _on_realtime(snapshot: TelemetrySnapshot) -> None:
        snapshot.data.update(moisture=-1)  # type: ignore[attr-defined]

    def _on_update(snapshot: TelemetrySnapshot) -> None:
        snapshot.data["soil"]["depth"] = 0  # type: ignore[index]

    router.registry.register("home", ModuleHandlers(on_realtime=_on_realtime, on_update=_on_update))
    router.subscribe(lambda s: seen.append(s.as_dict()))
    snapshot = _snap(moisture=42, soil={"depth": 10})

    result = router.dispatch(snapshot)

    assert result.failed == ("on_realtime", "on_update")
    assert seen == [{"moisture": 42, "soil": {"depth": 10}}]
    assert snapshot["moisture"] == 42
