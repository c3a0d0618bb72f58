from __future__ import annotations

from collections.abc import Callable

import pytest

from chanrelay.config import RelayRuntimeConfig
from chanrelay.dispatch import Delivery, Dispatcher
from chanrelay.registry import ChannelRegistry


class FakeClock:
    def __init__(self, start: float = 1_700_000_000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeScheduler:
    """Records scheduled callbacks; tests fire them explicitly."""

    def __init__(self) -> None:
        self.pending: list[tuple[float, Callable[[], None]]] = []

    def __call__(self, delay_s: float, fn: Callable[[], None]) -> None:
        self.pending.append((delay_s, fn))

    def fire_all(self) -> None:
        pending, self.pending = self.pending, []
        for _delay, fn in pending:
            fn()


class Recorder:
    """Stands in for the transport's send capability."""

    def __init__(self) -> None:
        self.sent: list[Delivery] = []

    def __call__(self, connection_id: str, event: str, payload: dict) -> None:
        self.sent.append(Delivery(connection_id, event, payload))

    def to(self, connection_id: str, event: str | None = None) -> list[dict]:
        return [
            d.payload
            for d in self.sent
            if d.connection_id == connection_id and (event is None or d.event == event)
        ]

    def events_for(self, connection_id: str) -> list[str]:
        return [d.event for d in self.sent if d.connection_id == connection_id]

    def clear(self) -> None:
        self.sent.clear()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def scheduler() -> FakeScheduler:
    return FakeScheduler()


@pytest.fixture
def config() -> RelayRuntimeConfig:
    return RelayRuntimeConfig(denylist=("badword",))


@pytest.fixture
def registry(config, clock, scheduler) -> ChannelRegistry:
    return ChannelRegistry(config, clock=clock, scheduler=scheduler)


@pytest.fixture
def recorder() -> Recorder:
    return Recorder()


@pytest.fixture
def dispatcher(recorder) -> Dispatcher:
    return Dispatcher(recorder)
