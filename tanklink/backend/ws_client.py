"""Resilient websocket link to a single tank controller."""

from __future__ import annotations

import asyncio
from collections import deque
from collections.abc import Awaitable, Callable, Coroutine
from contextlib import suppress
from dataclasses import dataclass
from enum import StrEnum
import logging
from typing import Any

import aiohttp

from ..codecs import InboundMessage, MessageEnvelope, coerce_envelope, decode_inbound, encode
from ..const import DEFAULT_PORT, HANDSHAKE_TIMEOUT
from ..dispatcher import Signal, Unsubscribe
from ..domain.commands import BaseCommand
from ..endpoint import DeviceEndpoint
from ..errors import (
    HandshakeError,
    HandshakeTimeoutError,
    MaxReconnectAttemptsExceeded,
    TransportClosedError,
)
from .reconnect import ReconnectPolicy
from .sanitize import redact_payload

_LOGGER = logging.getLogger(__name__)

SleepCallable = Callable[[float], Awaitable[Any]]

_TEXT_TYPES = (aiohttp.WSMsgType.TEXT, aiohttp.WSMsgType.BINARY)
_CLOSE_TYPES = (
    aiohttp.WSMsgType.CLOSE,
    aiohttp.WSMsgType.CLOSING,
    aiohttp.WSMsgType.CLOSED,
)


class ConnectionState(StrEnum):
    """Lifecycle states of the controller link."""

    IDLE = "idle"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    RECONNECTING = "reconnecting"
    DISCONNECTED = "disconnected"
    FAILED = "failed"


@dataclass(frozen=True, slots=True)
class StateChange:
    """A single state transition as delivered to listeners."""

    previous: ConnectionState
    current: ConnectionState
    endpoint: DeviceEndpoint | None
    reason: str | None = None
    error: Exception | None = None
    attempt: int = 0


class ConnectionManager:
    """Own the websocket link to one controller and keep it alive.

    ``connect`` and ``send`` never block: the handshake runs as a task and
    outbound text goes through a queue drained by a per-connection writer.
    Unintentional closes are retried with exponential backoff according to
    the :class:`ReconnectPolicy`; ``disconnect`` stops all of it.
    """

    def __init__(
        self,
        *,
        session: aiohttp.ClientSession | None = None,
        policy: ReconnectPolicy | None = None,
        reconnect: bool = True,
        handshake_timeout: float = HANDSHAKE_TIMEOUT,
        bare_commands: bool = False,
        sleep: SleepCallable = asyncio.sleep,
    ) -> None:
        if handshake_timeout <= 0:
            raise ValueError("handshake_timeout must be positive")
        self._session = session
        self._owns_session = session is None
        self._policy = policy or ReconnectPolicy()
        self._reconnect = reconnect
        self._handshake_timeout = handshake_timeout
        self._bare_commands = bare_commands
        self._sleep = sleep

        self._state = ConnectionState.IDLE
        self._endpoint: DeviceEndpoint | None = None
        self._attempts = 0
        self._last_error: Exception | None = None
        self._intentional_close = False
        self._max_attempts_notified = False

        # Bumped whenever the current link is abandoned; callbacks from an
        # older generation are ignored.
        self._generation = 0
        self._ws: aiohttp.ClientWebSocketResponse | None = None
        self._outbound: asyncio.Queue[str] | None = None
        self._connect_task: asyncio.Task | None = None
        self._backoff_task: asyncio.Task | None = None
        self._reader_task: asyncio.Task | None = None
        self._writer_task: asyncio.Task | None = None
        self._background_tasks: set[asyncio.Task] = set()

        self._pending_changes: deque[StateChange] = deque()
        self._dispatching = False
        self._state_changes: Signal[StateChange] = Signal("state_change")
        self._messages: Signal[InboundMessage] = Signal("message")
        self._max_attempts: Signal[MaxReconnectAttemptsExceeded] = Signal(
            "max_attempts"
        )
        self._errors: Signal[Exception] = Signal("error")

    # ------------------------------------------------------------------
    # Properties
    # ------------------------------------------------------------------
    @property
    def state(self) -> ConnectionState:
        """Return the current connection state."""
        return self._state

    @property
    def endpoint(self) -> DeviceEndpoint | None:
        """Return the endpoint of the current or last link."""
        return self._endpoint

    @property
    def attempts(self) -> int:
        """Return the number of reconnect attempts since the last success."""
        return self._attempts

    @property
    def policy(self) -> ReconnectPolicy:
        return self._policy

    @property
    def reconnect_enabled(self) -> bool:
        return self._reconnect

    @property
    def is_connected(self) -> bool:
        return self._state is ConnectionState.CONNECTED

    @property
    def last_error(self) -> Exception | None:
        """Return the error carried by the most recent failure, if any."""
        return self._last_error

    # ------------------------------------------------------------------
    # Subscriptions
    # ------------------------------------------------------------------
    def on_state_change(self, listener: Callable[[StateChange], None]) -> Unsubscribe:
        """Call ``listener`` with every :class:`StateChange`."""
        return self._state_changes.connect(listener)

    def on_message(self, listener: Callable[[InboundMessage], None]) -> Unsubscribe:
        """Call ``listener`` with every inbound message, decoded or not."""
        return self._messages.connect(listener)

    def on_envelope(
        self,
        listener: Callable[[MessageEnvelope], None],
        message_type: str | None = None,
    ) -> Unsubscribe:
        """Call ``listener`` with decoded envelopes, optionally of one type."""

        if not callable(listener):
            raise TypeError("envelope listener must be callable")

        def _filtered(message: InboundMessage) -> None:
            envelope = message.envelope
            if envelope is None:
                return
            if message_type is not None and envelope.type != message_type:
                return
            listener(envelope)

        return self._messages.connect(_filtered)

    def on_max_attempts(
        self, listener: Callable[[MaxReconnectAttemptsExceeded], None]
    ) -> Unsubscribe:
        """Call ``listener`` once when reconnection gives up."""
        return self._max_attempts.connect(listener)

    def on_error(self, listener: Callable[[Exception], None]) -> Unsubscribe:
        """Call ``listener`` with link errors when reconnect is disabled."""
        return self._errors.connect(listener)

    # ------------------------------------------------------------------
    # Public control
    # ------------------------------------------------------------------
    def connect(self, endpoint: DeviceEndpoint | str) -> None:
        """Start connecting to ``endpoint``; progress is reported as state changes."""

        asyncio.get_running_loop()
        if isinstance(endpoint, str):
            endpoint = DeviceEndpoint.parse(endpoint, default_port=DEFAULT_PORT)
        if endpoint == self._endpoint and self._state in (
            ConnectionState.CONNECTING,
            ConnectionState.CONNECTED,
        ):
            _LOGGER.debug("WS: already %s to %s", self._state, endpoint)
            return

        self._cancel_backoff()
        if self._endpoint is not None and endpoint != self._endpoint and self._state in (
            ConnectionState.CONNECTING,
            ConnectionState.CONNECTED,
            ConnectionState.RECONNECTING,
        ):
            _LOGGER.info("WS: switching device %s -> %s", self._endpoint, endpoint)
            self._release_link()
            self._transition(ConnectionState.DISCONNECTED, reason="switching device")

        self._endpoint = endpoint
        self._attempts = 0
        self._last_error = None
        self._intentional_close = False
        self._max_attempts_notified = False
        self._begin_attempt(reason="connect requested")

    async def disconnect(self, reason: str = "disconnect requested") -> None:
        """Close the link on purpose and suppress automatic reconnection."""

        self._intentional_close = True
        pending = self._cancel_backoff()
        cancelled, ws = self._detach_link()
        pending.extend(cancelled)
        self._transition(ConnectionState.DISCONNECTED, reason=reason)

        if pending:
            await asyncio.gather(*pending, return_exceptions=True)
        if ws is not None:
            await self._close_ws(ws)

    def send(
        self, message: MessageEnvelope | BaseCommand | str | dict[str, Any]
    ) -> bool:
        """Queue ``message`` for the controller; return False unless connected."""

        if self._state is not ConnectionState.CONNECTED or self._outbound is None:
            _LOGGER.debug("WS: send rejected in state %s", self._state)
            return False
        envelope = coerce_envelope(message)
        text = encode(envelope, bare_commands=self._bare_commands)
        self._outbound.put_nowait(text)
        if _LOGGER.isEnabledFor(logging.DEBUG):
            _LOGGER.debug(
                "WS: queued %s %s", envelope.type, redact_payload(envelope.payload)
            )
        return True

    def force_reconnect(
        self, reason: str = "forced reconnect", error: Exception | None = None
    ) -> bool:
        """Treat the live link as lost; no-op unless connected."""

        if self._state is not ConnectionState.CONNECTED or self._ws is None:
            return False
        _LOGGER.info("WS: forcing reconnect to %s (%s)", self._endpoint, reason)
        self._connection_lost(
            self._ws,
            self._generation,
            error or TransportClosedError(self._endpoint, reason),
            reason=reason,
        )
        return True

    async def close(self) -> None:
        """Disconnect and release the HTTP session if this manager created it."""

        await self.disconnect(reason="manager closed")
        if self._background_tasks:
            await asyncio.gather(*tuple(self._background_tasks), return_exceptions=True)
        if self._owns_session and self._session is not None:
            await self._session.close()
            self._session = None
        self._state_changes.clear()
        self._messages.clear()
        self._max_attempts.clear()
        self._errors.clear()

    # ------------------------------------------------------------------
    # State machine
    # ------------------------------------------------------------------
    def _transition(
        self,
        state: ConnectionState,
        *,
        reason: str | None = None,
        error: Exception | None = None,
    ) -> None:
        previous = self._state
        if previous is state:
            return
        self._state = state
        change = StateChange(
            previous=previous,
            current=state,
            endpoint=self._endpoint,
            reason=reason,
            error=error,
            attempt=self._attempts,
        )
        _LOGGER.debug(
            "WS: %s -> %s (%s)", previous, state, reason or "no reason given"
        )
        self._pending_changes.append(change)
        if self._dispatching:
            return
        self._dispatching = True
        try:
            while self._pending_changes:
                self._state_changes.send(self._pending_changes.popleft())
        finally:
            self._dispatching = False

    def _begin_attempt(self, *, reason: str) -> None:
        self._generation += 1
        generation = self._generation
        self._connect_task = self._create_task(
            self._open(generation), name=f"tanklink-connect-{self._endpoint}"
        )
        self._transition(ConnectionState.CONNECTING, reason=reason)

    async def _open(self, generation: int) -> None:
        endpoint = self._endpoint
        assert endpoint is not None
        session = self._ensure_session()
        _LOGGER.debug("WS: connecting to %s", endpoint.url)
        try:
            async with asyncio.timeout(self._handshake_timeout):
                ws = await session.ws_connect(endpoint.url, heartbeat=None)
        except TimeoutError:
            self._handshake_failed(
                generation,
                HandshakeTimeoutError(
                    endpoint, f"no response within {self._handshake_timeout:g}s"
                ),
            )
            return
        except asyncio.CancelledError:
            raise
        except Exception as err:
            _LOGGER.debug("WS: handshake error details", exc_info=True)
            self._handshake_failed(
                generation, HandshakeError(endpoint, f"{type(err).__name__}: {err}")
            )
            return

        if generation != self._generation or self._state is not ConnectionState.CONNECTING:
            _LOGGER.debug("WS: discarding superseded connection to %s", endpoint)
            self._spawn_close(ws)
            return
        self._attach(ws, generation)

    def _attach(self, ws: aiohttp.ClientWebSocketResponse, generation: int) -> None:
        self._connect_task = None
        self._ws = ws
        self._outbound = asyncio.Queue()
        self._attempts = 0
        self._last_error = None
        self._reader_task = self._create_task(
            self._read_loop(ws, generation), name=f"tanklink-reader-{self._endpoint}"
        )
        self._writer_task = self._create_task(
            self._write_loop(ws, self._outbound, generation),
            name=f"tanklink-writer-{self._endpoint}",
        )
        _LOGGER.info("WS: connected to %s", self._endpoint)
        self._transition(ConnectionState.CONNECTED, reason="handshake complete")

    def _handshake_failed(self, generation: int, error: HandshakeError) -> None:
        if generation != self._generation or self._state is not ConnectionState.CONNECTING:
            return
        self._connect_task = None
        self._last_error = error
        _LOGGER.info("WS: %s", error)
        if not self._reconnect:
            self._errors.send(error)
            self._transition(ConnectionState.FAILED, reason="handshake failed", error=error)
            return
        self._schedule_reconnect(reason="handshake failed", error=error)

    def _connection_lost(
        self,
        ws: aiohttp.ClientWebSocketResponse,
        generation: int,
        error: Exception | None,
        *,
        reason: str = "connection closed",
    ) -> None:
        if ws is not self._ws or generation != self._generation:
            return
        if self._intentional_close or self._state is not ConnectionState.CONNECTED:
            return
        if not isinstance(error, TransportClosedError):
            detail = f"{type(error).__name__}: {error}" if error else "closed by peer"
            closed = TransportClosedError(self._endpoint, detail)
            if error is not None:
                closed.__cause__ = error
            error = closed
        self._last_error = error
        _LOGGER.info("WS: %s", error)
        self._release_link()
        if not self._reconnect:
            self._errors.send(error)
            self._transition(ConnectionState.DISCONNECTED, reason=reason, error=error)
            return
        self._schedule_reconnect(reason=reason, error=error)

    def _schedule_reconnect(self, *, reason: str, error: Exception) -> None:
        if not self._policy.allows(self._attempts):
            self._give_up(error)
            return
        delay = self._policy.delay(self._attempts)
        self._attempts += 1
        _LOGGER.info(
            "WS: reconnecting to %s in %.1fs (attempt %d/%d)",
            self._endpoint,
            delay,
            self._attempts,
            self._policy.max_attempts,
        )
        self._backoff_task = self._create_task(
            self._backoff(delay), name=f"tanklink-backoff-{self._endpoint}"
        )
        self._transition(ConnectionState.RECONNECTING, reason=reason, error=error)

    async def _backoff(self, delay: float) -> None:
        await self._sleep(delay)
        if self._backoff_task is not asyncio.current_task():
            return
        self._backoff_task = None
        if self._state is not ConnectionState.RECONNECTING:
            return
        self._begin_attempt(reason=f"reconnect attempt {self._attempts}")

    def _give_up(self, error: Exception) -> None:
        exhausted = MaxReconnectAttemptsExceeded(self._endpoint, self._attempts)
        exhausted.__cause__ = error
        self._last_error = exhausted
        _LOGGER.warning("WS: %s", exhausted)
        self._transition(
            ConnectionState.FAILED, reason="max reconnect attempts reached", error=exhausted
        )
        if not self._max_attempts_notified:
            self._max_attempts_notified = True
            self._max_attempts.send(exhausted)

    # ------------------------------------------------------------------
    # Connection I/O
    # ------------------------------------------------------------------
    async def _read_loop(
        self, ws: aiohttp.ClientWebSocketResponse, generation: int
    ) -> None:
        """Deliver inbound frames in wire order until the socket closes."""

        error: Exception | None = None
        try:
            while True:
                msg = await ws.receive()
                if msg.type in _TEXT_TYPES:
                    self._deliver(msg.data)
                    continue
                if msg.type is aiohttp.WSMsgType.ERROR:
                    error = msg.data if isinstance(msg.data, Exception) else None
                    if error is None:
                        error = TransportClosedError(self._endpoint, "websocket error")
                    break
                if msg.type in _CLOSE_TYPES:
                    break
        except asyncio.CancelledError:
            raise
        except Exception as err:
            _LOGGER.debug("WS: read loop error", exc_info=True)
            error = err
        self._connection_lost(ws, generation, error)

    async def _write_loop(
        self,
        ws: aiohttp.ClientWebSocketResponse,
        queue: asyncio.Queue[str],
        generation: int,
    ) -> None:
        try:
            while True:
                text = await queue.get()
                await ws.send_str(text)
        except asyncio.CancelledError:
            raise
        except Exception as err:
            _LOGGER.debug("WS: write failed", exc_info=True)
            self._connection_lost(ws, generation, err, reason="send failed")

    def _deliver(self, data: str | bytes) -> None:
        message = decode_inbound(data)
        if _LOGGER.isEnabledFor(logging.DEBUG):
            _LOGGER.debug(
                "WS: received %s", message.type if message.decoded else "undecoded frame"
            )
        self._messages.send(message)

    # ------------------------------------------------------------------
    # Task helpers
    # ------------------------------------------------------------------
    def _ensure_session(self) -> aiohttp.ClientSession:
        if self._session is None:
            self._session = aiohttp.ClientSession()
            self._owns_session = True
        return self._session

    def _create_task(
        self, coro: Coroutine[Any, Any, None], *, name: str
    ) -> asyncio.Task:
        return asyncio.get_running_loop().create_task(coro, name=name)

    def _cancel_backoff(self) -> list[asyncio.Task]:
        task = self._backoff_task
        self._backoff_task = None
        if task is None or task.done() or task is asyncio.current_task():
            return []
        task.cancel()
        return [task]

    def _detach_link(
        self,
    ) -> tuple[list[asyncio.Task], aiohttp.ClientWebSocketResponse | None]:
        """Abandon the current link; return the cancelled tasks and open socket."""

        self._generation += 1
        current = asyncio.current_task()
        cancelled: list[asyncio.Task] = []
        for task in (self._connect_task, self._reader_task, self._writer_task):
            if task is None or task.done() or task is current:
                continue
            task.cancel()
            cancelled.append(task)
        self._connect_task = None
        self._reader_task = None
        self._writer_task = None
        self._outbound = None
        ws, self._ws = self._ws, None
        return cancelled, ws

    def _release_link(self) -> None:
        _, ws = self._detach_link()
        if ws is not None:
            self._spawn_close(ws)

    def _spawn_close(self, ws: aiohttp.ClientWebSocketResponse) -> None:
        task = asyncio.get_running_loop().create_task(self._close_ws(ws))
        self._background_tasks.add(task)
        task.add_done_callback(self._background_tasks.discard)

    @staticmethod
    async def _close_ws(ws: aiohttp.ClientWebSocketResponse) -> None:
        with suppress(aiohttp.ClientError, OSError, RuntimeError):
            await ws.close()


__all__ = [
    "ConnectionManager",
    "ConnectionState",
    "StateChange",
]
