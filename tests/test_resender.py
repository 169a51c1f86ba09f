from __future__ import annotations

import asyncio
from typing import Any

import pytest

from smartfarm.dispatch import DispatchRouter, HandlerRegistry, ModuleHandlers
from smartfarm.ingestion import FallbackResender
from smartfarm.models import TelemetrySnapshot
from smartfarm.state import GlobalState


class _Clock:
    def __init__(self, now: float = 1000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


def _build(clock: _Clock, interval: float = 3.0) -> tuple[GlobalState, DispatchRouter, FallbackResender]:
    state = GlobalState()
    router = DispatchRouter(HandlerRegistry(), active_module=lambda: "home", clock=clock)
    return state, router, FallbackResender(state=state, router=router, interval=interval)


def test_tick_without_data_does_nothing() -> None:
    clock = _Clock()
    _state, router, resender = _build(clock)

    clock.advance(10)

    assert resender.tick() is False
    assert router.record.dispatch_count == 0


def test_tick_forces_dispatch_when_never_dispatched() -> None:
    clock = _Clock()
    state, router, resender = _build(clock)
    state.set_latest(TelemetrySnapshot.from_value({"moisture": 42}))

    assert resender.tick() is True
    assert router.record.forced_count == 1
    assert router.last_dispatch_at == clock.now


def test_stale_latest_is_redelivered_exactly_once() -> None:
    clock = _Clock()
    state, router, resender = _build(clock)
    delivered: list[dict[str, Any]] = []
    router.registry.register("home", ModuleHandlers(on_update=lambda s: delivered.append(s.data)))

    snapshot = TelemetrySnapshot.from_value({"moisture": 42})
    state.set_latest(snapshot)
    router.dispatch(snapshot)
    delivered.clear()

    clock.advance(3.1)
    fired = [resender.tick(), resender.tick()]

    assert fired == [True, False]
    assert delivered == [{"moisture": 42}]
    assert router.record.forced_count == 1


def test_recent_dispatch_suppresses_resend() -> None:
    clock = _Clock()
    state, router, resender = _build(clock)
    snapshot = TelemetrySnapshot.from_value({"moisture": 1})
    state.set_latest(snapshot)
    router.dispatch(snapshot)

    clock.advance(2.5)
    assert resender.tick() is False
    clock.advance(0.5)
    # Exactly the interval is not yet stale.
    assert resender.tick() is False
    clock.advance(0.25)
    assert resender.tick() is True


def test_interval_must_be_positive() -> None:
    state = GlobalState()
    router = DispatchRouter(HandlerRegistry())
    with pytest.raises(ValueError):
        FallbackResender(state=state, router=router, interval=0)


@pytest.mark.asyncio
async def test_background_task_resends_and_stops() -> None:
    state = GlobalState()
    router = DispatchRouter(HandlerRegistry())
    resender = FallbackResender(state=state, router=router, interval=0.01)
    state.set_latest(TelemetrySnapshot.from_value({"light": 120}))

    resender.start()
    resender.start()
    assert resender.running
    await asyncio.sleep(0.1)
    await resender.stop()

    assert not resender.running
    assert router.record.forced_count >= 1
    count = router.record.forced_count
    await asyncio.sleep(0.05)
    assert router.record.forced_count == count
