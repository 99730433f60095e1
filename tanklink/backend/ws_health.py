"""Heartbeat liveness checks for the controller link."""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from enum import StrEnum
import logging
import time
from typing import Any, Protocol

from ..const import (
    HEARTBEAT_GRACE,
    HEARTBEAT_INTERVAL,
    HEARTBEAT_MISS_THRESHOLD,
    MSG_GET_ALL_DATA,
    QUALITY_EXCELLENT_RTT,
    QUALITY_GOOD_RTT,
)
from ..dispatcher import Unsubscribe
from ..endpoint import DeviceEndpoint
from ..errors import HeartbeatTimeoutError

_LOGGER = logging.getLogger(__name__)


class ConnectionQuality(StrEnum):
    """Coarse link quality grade."""

    EXCELLENT = "excellent"
    GOOD = "good"
    POOR = "poor"
    OFFLINE = "offline"


def connection_quality(
    rtt: float | None,
    failures: int,
    threshold: int = HEARTBEAT_MISS_THRESHOLD,
) -> ConnectionQuality:
    """Grade a link from its latest round-trip time and failure count."""

    if failures >= max(1, threshold):
        return ConnectionQuality.OFFLINE
    if rtt is None or rtt < QUALITY_EXCELLENT_RTT:
        return ConnectionQuality.EXCELLENT
    if rtt < QUALITY_GOOD_RTT:
        return ConnectionQuality.GOOD
    return ConnectionQuality.POOR


class HeartbeatTarget(Protocol):
    """What the monitor needs from a connection."""

    @property
    def endpoint(self) -> DeviceEndpoint | None: ...

    def send(self, message: Any) -> bool: ...

    def force_reconnect(
        self, reason: str = ..., error: Exception | None = ...
    ) -> bool: ...

    def on_message(self, listener: Callable[[Any], None]) -> Unsubscribe: ...


@dataclass(slots=True)
class HeartbeatState:
    """Timestamps of the heartbeat exchange, on the monitor's clock."""

    last_sent_at: float | None = None
    last_ack_at: float | None = None
    missed_count: int = 0
    last_rtt: float | None = None

    def reset(self) -> None:
        """Forget every probe and acknowledgement."""

        self.last_sent_at = None
        self.last_ack_at = None
        self.missed_count = 0
        self.last_rtt = None

    def acked_since(self, timestamp: float) -> bool:
        """Return True when traffic arrived at or after ``timestamp``."""

        return self.last_ack_at is not None and self.last_ack_at >= timestamp

    def snapshot(self) -> dict[str, Any]:
        """Return a serializable copy of the state."""

        return {
            "last_sent_at": self.last_sent_at,
            "last_ack_at": self.last_ack_at,
            "missed_count": self.missed_count,
            "last_rtt": self.last_rtt,
        }


class HeartbeatMonitor:
    """Periodically probe a connection and force a reconnect when it goes quiet.

    Each cycle sends ``probe_message`` and waits ``interval``. Without inbound
    traffic by then it waits a further ``grace`` before counting a miss.
    Reaching ``miss_threshold`` consecutive misses asks the connection to
    reconnect once and ends the loop. Any inbound message is an acknowledgement.
    """

    def __init__(
        self,
        interval: float = HEARTBEAT_INTERVAL,
        grace: float = HEARTBEAT_GRACE,
        miss_threshold: int = HEARTBEAT_MISS_THRESHOLD,
        probe_message: Any = MSG_GET_ALL_DATA,
        *,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        monotonic: Callable[[], float] = time.monotonic,
    ) -> None:
        if interval <= 0:
            raise ValueError("interval must be positive")
        if grace < 0:
            raise ValueError("grace must not be negative")
        self._interval = float(interval)
        self._grace = float(grace)
        self._miss_threshold = max(1, int(miss_threshold))
        self._probe_message = probe_message
        self._sleep = sleep
        self._monotonic = monotonic
        self._state = HeartbeatState()
        self._task: asyncio.Task | None = None
        self._unsubscribe: Unsubscribe | None = None
        self._connection: HeartbeatTarget | None = None

    @property
    def state(self) -> HeartbeatState:
        return self._state

    @property
    def interval(self) -> float:
        return self._interval

    @property
    def grace(self) -> float:
        return self._grace

    @property
    def miss_threshold(self) -> int:
        return self._miss_threshold

    @property
    def running(self) -> bool:
        """Return True while the heartbeat loop is active."""

        return self._task is not None and not self._task.done()

    def set_interval(self, seconds: float) -> None:
        """Change the probe cadence; takes effect from the next cycle."""

        if seconds <= 0:
            raise ValueError("interval must be positive")
        if seconds != self._interval:
            _LOGGER.debug("WS: heartbeat interval %.0fs -> %.0fs", self._interval, seconds)
        self._interval = float(seconds)

    def start(self, connection: HeartbeatTarget, *, probe_now: bool = True) -> None:
        """Begin monitoring ``connection`` from a clean state.

        With ``probe_now`` false the caller has just sent a request itself, so
        the first cycle only waits for its answer.
        """

        self.stop()
        self._state.reset()
        if not probe_now:
            self._state.last_sent_at = self._monotonic()
        self._connection = connection
        self._unsubscribe = connection.on_message(self.record_ack)
        self._task = asyncio.get_running_loop().create_task(
            self._run(connection, probe_now), name="tanklink-heartbeat"
        )
        _LOGGER.debug(
            "WS: heartbeat started (interval=%.0fs grace=%.0fs threshold=%d)",
            self._interval,
            self._grace,
            self._miss_threshold,
        )

    def stop(self) -> None:
        """Stop monitoring; safe to call repeatedly."""

        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None
        task, self._task = self._task, None
        if task is not None and not task.done() and task is not asyncio.current_task():
            task.cancel()
        if self._connection is not None:
            _LOGGER.debug("WS: heartbeat stopped")
        self._connection = None

    def record_ack(self, _message: Any = None) -> None:
        """Register inbound traffic as an acknowledgement."""

        now = self._monotonic()
        sent = self._state.last_sent_at
        if sent is not None and not self._state.acked_since(sent):
            self._state.last_rtt = max(0.0, now - sent)
        self._state.last_ack_at = now
        self._state.missed_count = 0

    async def _run(self, connection: HeartbeatTarget, probe_now: bool) -> None:
        send_probe = probe_now
        while True:
            if send_probe:
                sent_at = self._monotonic()
                self._state.last_sent_at = sent_at
                if not connection.send(self._probe_message):
                    _LOGGER.debug("WS: heartbeat probe rejected; stopping")
                    return
            else:
                sent_at = self._state.last_sent_at
                if sent_at is None:
                    sent_at = self._monotonic()
            send_probe = True

            await self._sleep(self._interval)
            if self._state.acked_since(sent_at):
                continue
            await self._sleep(self._grace)
            if self._state.acked_since(sent_at):
                continue

            self._state.missed_count += 1
            _LOGGER.debug(
                "WS: heartbeat missed (%d/%d)",
                self._state.missed_count,
                self._miss_threshold,
            )
            if self._state.missed_count >= self._miss_threshold:
                silent_for = self._interval + self._grace
                _LOGGER.info(
                    "WS: no traffic from %s for %d heartbeat(s); reconnecting",
                    connection.endpoint,
                    self._state.missed_count,
                )
                connection.force_reconnect(
                    "heartbeat timeout",
                    HeartbeatTimeoutError(
                        connection.endpoint,
                        f"{self._state.missed_count} probes unanswered "
                        f"after {silent_for:.0f}s each",
                    ),
                )
                return


__all__ = [
    "ConnectionQuality",
    "HeartbeatMonitor",
    "HeartbeatState",
    "connection_quality",
]
