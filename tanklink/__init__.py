"""Device connectivity core for water tank controllers."""
from __future__ import annotations

from .backend import (
    ConnectionManager,
    ConnectionQuality,
    ConnectionState,
    HeartbeatMonitor,
    NetworkScanner,
    ReconnectPolicy,
    ScanResult,
    StateChange,
    probe,
)
from .codecs import InboundMessage, MessageEnvelope, decode, decode_inbound, encode
from .config import LinkConfig
from .coordinator import ConnectionStatus, SyncCoordinator
from .endpoint import DeviceEndpoint
from .errors import (
    ConfigError,
    DecodeError,
    HandshakeError,
    HandshakeTimeoutError,
    HeartbeatTimeoutError,
    MaxReconnectAttemptsExceeded,
    SendRejectedError,
    TankLinkError,
    TransportClosedError,
)
from .storage import DeviceStore, FileDeviceStore, MemoryDeviceStore

__version__ = "0.3.0"

__all__ = [
    "ConfigError",
    "ConnectionManager",
    "ConnectionQuality",
    "ConnectionState",
    "ConnectionStatus",
    "DecodeError",
    "DeviceEndpoint",
    "DeviceStore",
    "FileDeviceStore",
    "HandshakeError",
    "HandshakeTimeoutError",
    "HeartbeatMonitor",
    "HeartbeatTimeoutError",
    "InboundMessage",
    "LinkConfig",
    "MaxReconnectAttemptsExceeded",
    "MemoryDeviceStore",
    "MessageEnvelope",
    "NetworkScanner",
    "ReconnectPolicy",
    "ScanResult",
    "SendRejectedError",
    "StateChange",
    "SyncCoordinator",
    "TankLinkError",
    "TransportClosedError",
    "decode",
    "decode_inbound",
    "encode",
    "probe",
]
