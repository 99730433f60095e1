"""Consumer-facing coordinator for the tank controller link."""

from __future__ import annotations

import asyncio
from collections.abc import Callable
from dataclasses import dataclass
import logging
import time
from typing import Any

import aiohttp

from .backend.ws_client import ConnectionManager, ConnectionState, StateChange
from .backend.ws_health import ConnectionQuality, HeartbeatMonitor, connection_quality
from .codecs import InboundMessage, MessageEnvelope
from .config import LinkConfig
from .const import MSG_GET_ALL_DATA
from .dispatcher import Unsubscribe
from .domain.commands import BaseCommand
from .endpoint import DeviceEndpoint
from .errors import MaxReconnectAttemptsExceeded, SendRejectedError
from .storage import DeviceStore, MemoryDeviceStore

_LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class ConnectionStatus:
    """Read-only snapshot of the link as seen by consumers."""

    state: ConnectionState
    endpoint: DeviceEndpoint | None
    is_connected: bool
    is_checking: bool
    last_successful_sync: float | None
    last_sync_attempt: float | None
    consecutive_failures: int
    connection_quality: ConnectionQuality
    reconnect_attempt: int
    last_error: Exception | None
    sync_interval: float

    def as_dict(self) -> dict[str, Any]:
        """Return a JSON friendly representation."""

        return {
            "state": str(self.state),
            "endpoint": str(self.endpoint) if self.endpoint else None,
            "is_connected": self.is_connected,
            "is_checking": self.is_checking,
            "last_successful_sync": self.last_successful_sync,
            "last_sync_attempt": self.last_sync_attempt,
            "consecutive_failures": self.consecutive_failures,
            "connection_quality": str(self.connection_quality),
            "reconnect_attempt": self.reconnect_attempt,
            "last_error": str(self.last_error) if self.last_error else None,
            "sync_interval": self.sync_interval,
        }


class SyncCoordinator:
    """Tie the connection manager, heartbeat and device store together.

    Every time the link becomes connected the endpoint is remembered, a full
    data refresh is requested and the heartbeat starts; leaving the connected
    state stops the heartbeat again.
    """

    def __init__(
        self,
        config: LinkConfig | None = None,
        *,
        store: DeviceStore | None = None,
        session: aiohttp.ClientSession | None = None,
        manager: ConnectionManager | None = None,
        heartbeat: HeartbeatMonitor | None = None,
        clock: Callable[[], float] = time.time,
        monotonic: Callable[[], float] = time.monotonic,
    ) -> None:
        self._config = config or LinkConfig()
        self._store: DeviceStore = store if store is not None else MemoryDeviceStore()
        self._owns_manager = manager is None
        self._manager = manager or ConnectionManager(
            session=session,
            policy=self._config.reconnect_policy(),
            reconnect=self._config.reconnect,
            handshake_timeout=self._config.handshake_timeout,
            bare_commands=self._config.bare_commands,
        )
        self._heartbeat = heartbeat or HeartbeatMonitor(
            interval=self._config.heartbeat_interval,
            grace=self._config.heartbeat_grace,
            miss_threshold=self._config.heartbeat_miss_threshold,
        )
        self._clock = clock
        self._monotonic = monotonic
        self._background = False

        self._last_successful_sync: float | None = None
        self._last_sync_attempt: float | None = None
        self._consecutive_failures = 0
        self._last_rtt: float | None = None
        self._checking = False
        self._sync_waiters: list[asyncio.Future[InboundMessage | None]] = []

        self._unsubscribers: list[Unsubscribe] = [
            self._manager.on_state_change(self._handle_state_change),
            self._manager.on_message(self._handle_message),
        ]

    @property
    def config(self) -> LinkConfig:
        return self._config

    @property
    def manager(self) -> ConnectionManager:
        return self._manager

    @property
    def heartbeat(self) -> HeartbeatMonitor:
        return self._heartbeat

    @property
    def store(self) -> DeviceStore:
        return self._store

    @property
    def background(self) -> bool:
        return self._background

    @property
    def status(self) -> ConnectionStatus:
        """Return a snapshot of the current connection status."""

        manager = self._manager
        beat = self._heartbeat.state
        failures = self._consecutive_failures + beat.missed_count
        rtt = beat.last_rtt if beat.last_rtt is not None else self._last_rtt
        if manager.is_connected:
            quality = connection_quality(
                rtt, failures, self._heartbeat.miss_threshold
            )
        else:
            quality = ConnectionQuality.OFFLINE
        return ConnectionStatus(
            state=manager.state,
            endpoint=manager.endpoint,
            is_connected=manager.is_connected,
            is_checking=self._checking,
            last_successful_sync=self._last_successful_sync,
            last_sync_attempt=self._last_sync_attempt,
            consecutive_failures=failures,
            connection_quality=quality,
            reconnect_attempt=manager.attempts,
            last_error=manager.last_error,
            sync_interval=self._heartbeat.interval,
        )

    # ------------------------------------------------------------------
    # Commands
    # ------------------------------------------------------------------
    def connect(self, host: DeviceEndpoint | str) -> DeviceEndpoint:
        """Connect to ``host`` and return the endpoint being used."""

        if isinstance(host, DeviceEndpoint):
            endpoint = host
        else:
            endpoint = DeviceEndpoint.parse(host, default_port=self._config.port)
        self._consecutive_failures = 0
        self._manager.connect(endpoint)
        return endpoint

    async def disconnect(self) -> None:
        """Close the link on purpose."""

        self._heartbeat.stop()
        await self._manager.disconnect()

    async def resume(self) -> bool:
        """Reconnect to the remembered device; return False if there is none."""

        endpoint = self._store.load()
        if endpoint is None:
            _LOGGER.debug("No remembered device to resume")
            return False
        _LOGGER.info("Resuming connection to %s", endpoint)
        self.connect(endpoint)
        return True

    def send(
        self,
        message: MessageEnvelope | BaseCommand | str | dict[str, Any],
        *,
        strict: bool = False,
    ) -> bool:
        """Send ``message`` to the controller.

        Returns False when the link is not connected, or raises
        :class:`SendRejectedError` with ``strict`` set.
        """

        if self._manager.send(message):
            return True
        if strict:
            raise SendRejectedError(
                f"cannot send while {self._manager.state}"
            )
        return False

    async def manual_sync(self, timeout: float | None = None) -> bool:
        """Request a full refresh and wait for the controller to answer."""

        if timeout is None:
            timeout = self._config.heartbeat_grace or self._config.heartbeat_interval
        self._last_sync_attempt = self._clock()
        if not self._manager.is_connected:
            self._consecutive_failures += 1
            _LOGGER.debug("Manual sync skipped while %s", self._manager.state)
            return False

        waiter: asyncio.Future[InboundMessage | None] = (
            asyncio.get_running_loop().create_future()
        )
        self._sync_waiters.append(waiter)
        self._checking = True
        started = self._monotonic()
        try:
            if not self._manager.send(MSG_GET_ALL_DATA):
                self._consecutive_failures += 1
                return False
            async with asyncio.timeout(timeout):
                message = await waiter
        except TimeoutError:
            self._consecutive_failures += 1
            _LOGGER.info(
                "Manual sync got no answer within %.1fs (%d consecutive failure(s))",
                timeout,
                self._consecutive_failures,
            )
            return False
        finally:
            self._checking = False
            if waiter in self._sync_waiters:
                self._sync_waiters.remove(waiter)

        if message is None:
            self._consecutive_failures += 1
            return False
        self._last_rtt = max(0.0, self._monotonic() - started)
        _LOGGER.debug("Manual sync answered in %.3fs", self._last_rtt)
        return True

    def set_background(self, background: bool) -> None:
        """Slow the heartbeat while the consumer is in the background."""

        background = bool(background)
        if background == self._background:
            return
        self._background = background
        interval = (
            self._config.background_heartbeat_interval
            if background
            else self._config.heartbeat_interval
        )
        self._heartbeat.set_interval(interval)
        _LOGGER.debug(
            "Heartbeat interval %.0fs (%s)",
            interval,
            "background" if background else "foreground",
        )
        if not background and self._manager.is_connected:
            self._request_refresh()

    async def close(self) -> None:
        """Stop the heartbeat and tear down the link."""

        self._heartbeat.stop()
        for unsubscribe in self._unsubscribers:
            unsubscribe()
        self._unsubscribers.clear()
        self._resolve_waiters(None)
        if self._owns_manager:
            await self._manager.close()
        else:
            await self._manager.disconnect()

    # ------------------------------------------------------------------
    # Subscriptions
    # ------------------------------------------------------------------
    def on_state_change(self, listener: Callable[[StateChange], None]) -> Unsubscribe:
        return self._manager.on_state_change(listener)

    def on_message(self, listener: Callable[[InboundMessage], None]) -> Unsubscribe:
        return self._manager.on_message(listener)

    def on_envelope(
        self,
        listener: Callable[[MessageEnvelope], None],
        message_type: str | None = None,
    ) -> Unsubscribe:
        return self._manager.on_envelope(listener, message_type)

    def on_max_attempts(
        self, listener: Callable[[MaxReconnectAttemptsExceeded], None]
    ) -> Unsubscribe:
        return self._manager.on_max_attempts(listener)

    # ------------------------------------------------------------------
    # Event handlers
    # ------------------------------------------------------------------
    def _handle_state_change(self, change: StateChange) -> None:
        if change.current is ConnectionState.CONNECTED:
            self._on_connected(change)
        elif change.previous is ConnectionState.CONNECTED:
            self._heartbeat.stop()
            self._resolve_waiters(None)

    def _on_connected(self, change: StateChange) -> None:
        endpoint = change.endpoint
        if endpoint is not None:
            try:
                self._store.save(endpoint)
            except OSError as err:
                _LOGGER.warning("Could not remember device %s: %s", endpoint, err)
        self._consecutive_failures = 0
        self._request_refresh()
        self._heartbeat.start(self._manager, probe_now=False)

    def _request_refresh(self) -> None:
        self._last_sync_attempt = self._clock()
        if not self._manager.send(MSG_GET_ALL_DATA):
            _LOGGER.debug("Refresh request rejected while %s", self._manager.state)

    def _handle_message(self, message: InboundMessage) -> None:
        self._last_successful_sync = message.received_at
        self._consecutive_failures = 0
        self._resolve_waiters(message)

    def _resolve_waiters(self, message: InboundMessage | None) -> None:
        waiters, self._sync_waiters = self._sync_waiters, []
        for waiter in waiters:
            if not waiter.done():
                waiter.set_result(message)


__all__ = ["ConnectionStatus", "SyncCoordinator"]
