"""Tests for the heartbeat monitor and link quality grading."""

from __future__ import annotations

import asyncio
from collections.abc import Callable
from typing import Any

import pytest

from conftest import RecordingSleep
from tanklink.backend.ws_health import (
    ConnectionQuality,
    HeartbeatMonitor,
    HeartbeatState,
    connection_quality,
)
from tanklink.endpoint import DeviceEndpoint
from tanklink.errors import HeartbeatTimeoutError


class FakeConnection:
    """Minimal heartbeat target recording probes and reconnect requests."""

    def __init__(self, *, accept: bool = True) -> None:
        self.endpoint = DeviceEndpoint("192.168.1.100", 81)
        self.accept = accept
        self.sent: list[Any] = []
        self.forced: list[tuple[str, Exception | None]] = []
        self.listeners: list[Callable[[Any], None]] = []

    def send(self, message: Any) -> bool:
        if self.accept:
            self.sent.append(message)
        return self.accept

    def force_reconnect(self, reason: str = "", error: Exception | None = None) -> bool:
        self.forced.append((reason, error))
        return True

    def on_message(self, listener: Callable[[Any], None]) -> Callable[[], None]:
        self.listeners.append(listener)
        return lambda: self.listeners.remove(listener)

    def deliver(self, message: Any = "frame") -> None:
        for listener in list(self.listeners):
            listener(message)


class FakeClock:
    def __init__(self, start: float = 100.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now


@pytest.mark.asyncio
async def test_threshold_misses_force_one_reconnect(until) -> None:
    """Three silent cycles trigger exactly one reconnect and end the loop."""

    conn = FakeConnection()
    sleep = RecordingSleep()
    monitor = HeartbeatMonitor(sleep=sleep)

    monitor.start(conn)
    await until(lambda: not monitor.running)

    assert sleep.delays == [30.0, 15.0] * 3
    assert conn.sent == ["getAllData"] * 3
    assert len(conn.forced) == 1
    reason, error = conn.forced[0]
    assert reason == "heartbeat timeout"
    assert isinstance(error, HeartbeatTimeoutError)
    assert error.endpoint == conn.endpoint
    assert monitor.state.missed_count == 3


@pytest.mark.asyncio
async def test_single_miss_is_counted(until) -> None:
    conn = FakeConnection()
    sleep = RecordingSleep(block_after=2)
    monitor = HeartbeatMonitor(sleep=sleep)

    monitor.start(conn)
    await until(lambda: len(sleep.delays) == 3)

    assert monitor.state.missed_count == 1
    assert conn.sent == ["getAllData", "getAllData"]
    assert conn.forced == []
    monitor.stop()
    sleep.release()


@pytest.mark.asyncio
async def test_inbound_traffic_resets_misses_and_measures_rtt(until) -> None:
    """Traffic during the wait counts as an answer to the last probe."""

    conn = FakeConnection()
    clock = FakeClock()
    gate = asyncio.Event()
    delays: list[float] = []

    async def _sleep(delay: float) -> None:
        delays.append(delay)
        clock.now += delay
        if len(delays) == 3:
            conn.deliver()
        if len(delays) >= 4:
            await gate.wait()

    monitor = HeartbeatMonitor(sleep=_sleep, monotonic=clock)
    monitor.start(conn)
    await until(lambda: len(delays) == 4)

    assert delays == [30.0, 15.0, 30.0, 30.0]
    assert monitor.state.missed_count == 0
    assert monitor.state.last_rtt == 30.0
    assert monitor.state.last_ack_at == 175.0
    assert len(conn.sent) == 3
    monitor.stop()


@pytest.mark.asyncio
async def test_probe_now_false_waits_for_callers_request(until) -> None:
    """The first cycle reuses the caller's request instead of sending one."""

    conn = FakeConnection()
    sleep = RecordingSleep(block_after=1)
    monitor = HeartbeatMonitor(sleep=sleep, monotonic=FakeClock(42.0))

    monitor.start(conn, probe_now=False)

    assert monitor.state.last_sent_at == 42.0
    await until(lambda: len(sleep.delays) == 2)

    assert sleep.delays == [30.0, 15.0]
    assert conn.sent == []
    conn.deliver()
    assert monitor.state.last_rtt == 0.0
    monitor.stop()
    sleep.release()


@pytest.mark.asyncio
async def test_rejected_probe_stops_monitor(until) -> None:
    conn = FakeConnection(accept=False)
    sleep = RecordingSleep()
    monitor = HeartbeatMonitor(sleep=sleep)

    monitor.start(conn)
    await until(lambda: not monitor.running)

    assert sleep.delays == []
    assert conn.forced == []


@pytest.mark.asyncio
async def test_stop_unsubscribes_and_cancels() -> None:
    """``stop`` detaches from the connection and is idempotent."""

    conn = FakeConnection()
    sleep = RecordingSleep(block_after=0)
    monitor = HeartbeatMonitor(sleep=sleep)

    monitor.start(conn)
    assert monitor.running
    assert len(conn.listeners) == 1

    monitor.stop()
    monitor.stop()
    await asyncio.sleep(0)

    assert not monitor.running
    assert conn.listeners == []


@pytest.mark.asyncio
async def test_restart_resets_state() -> None:
    conn = FakeConnection()
    monitor = HeartbeatMonitor(sleep=RecordingSleep(block_after=0))
    monitor.state.missed_count = 2
    monitor.state.last_rtt = 9.0

    monitor.start(conn)

    assert monitor.state.missed_count == 0
    assert monitor.state.last_rtt is None
    assert len(conn.listeners) == 1
    monitor.stop()


def test_set_interval() -> None:
    monitor = HeartbeatMonitor()

    monitor.set_interval(60)

    assert monitor.interval == 60.0
    assert monitor.grace == 15.0
    with pytest.raises(ValueError):
        monitor.set_interval(0)


@pytest.mark.parametrize(
    "kwargs", [{"interval": 0}, {"interval": -1}, {"grace": -0.5}]
)
def test_monitor_rejects_bad_timing(kwargs: dict[str, float]) -> None:
    with pytest.raises(ValueError):
        HeartbeatMonitor(**kwargs)


def test_miss_threshold_floor() -> None:
    """A threshold below one is treated as one."""

    assert HeartbeatMonitor(miss_threshold=0).miss_threshold == 1


def test_heartbeat_state_helpers() -> None:
    state = HeartbeatState(last_sent_at=10.0)

    assert not state.acked_since(10.0)
    state.last_ack_at = 10.0
    assert state.acked_since(10.0)
    assert not state.acked_since(10.5)
    assert state.snapshot() == {
        "last_sent_at": 10.0,
        "last_ack_at": 10.0,
        "missed_count": 0,
        "last_rtt": None,
    }

    state.reset()
    assert state == HeartbeatState()


@pytest.mark.parametrize(
    ("rtt", "failures", "threshold", "expected"),
    [
        (None, 0, 3, ConnectionQuality.EXCELLENT),
        (0.4, 0, 3, ConnectionQuality.EXCELLENT),
        (1.99, 2, 3, ConnectionQuality.EXCELLENT),
        (2.0, 0, 3, ConnectionQuality.GOOD),
        (4.9, 1, 3, ConnectionQuality.GOOD),
        (5.0, 0, 3, ConnectionQuality.POOR),
        (12.0, 2, 3, ConnectionQuality.POOR),
        (0.1, 3, 3, ConnectionQuality.OFFLINE),
        (None, 5, 3, ConnectionQuality.OFFLINE),
        (None, 1, 0, ConnectionQuality.OFFLINE),
    ],
)
def test_connection_quality(
    rtt: float | None, failures: int, threshold: int, expected: ConnectionQuality
) -> None:
    """Quality follows the response time until failures reach the threshold."""

    assert connection_quality(rtt, failures, threshold) is expected
