"""Error taxonomy for the tanklink connectivity core."""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:  # pragma: no cover - typing only
    from .endpoint import DeviceEndpoint


class TankLinkError(Exception):
    """Base exception for all tanklink errors."""


class ConfigError(TankLinkError, ValueError):
    """Configuration values failed validation."""


class HandshakeError(TankLinkError):
    """Raised when the websocket handshake with the controller fails."""

    def __init__(self, endpoint: DeviceEndpoint, detail: str) -> None:
        super().__init__(f"handshake with {endpoint} failed: {detail}")
        self.endpoint = endpoint
        self.detail = detail


class HandshakeTimeoutError(HandshakeError):
    """The handshake did not complete before the handshake timeout."""


class TransportClosedError(TankLinkError):
    """The established link was closed by the peer or the network."""

    def __init__(self, endpoint: DeviceEndpoint | None, detail: str) -> None:
        super().__init__(f"connection to {endpoint} closed: {detail}")
        self.endpoint = endpoint
        self.detail = detail


class HeartbeatTimeoutError(TransportClosedError):
    """The link went silent for longer than the heartbeat allows."""


class MaxReconnectAttemptsExceeded(TankLinkError):
    """Automatic reconnection gave up after the configured attempts."""

    def __init__(self, endpoint: DeviceEndpoint | None, attempts: int) -> None:
        super().__init__(
            f"gave up reconnecting to {endpoint} after {attempts} attempts"
        )
        self.endpoint = endpoint
        self.attempts = attempts


class SendRejectedError(TankLinkError):
    """A message was sent while the link was not connected."""


class DecodeError(TankLinkError, ValueError):
    """Inbound text could not be decoded into a message envelope."""

    def __init__(self, message: str, raw: str) -> None:
        super().__init__(message)
        self.raw = raw


__all__ = [
    "ConfigError",
    "DecodeError",
    "HandshakeError",
    "HandshakeTimeoutError",
    "HeartbeatTimeoutError",
    "MaxReconnectAttemptsExceeded",
    "SendRejectedError",
    "TankLinkError",
    "TransportClosedError",
]
