"""Transport layer: probing, scanning and the managed websocket link."""
from __future__ import annotations

from .probe import ProbeOutcome, ProbeResult, probe
from .reconnect import ReconnectPolicy
from .scanner import NetworkScanner, ScanResult
from .ws_client import ConnectionManager, ConnectionState, StateChange
from .ws_health import (
    ConnectionQuality,
    HeartbeatMonitor,
    HeartbeatState,
    connection_quality,
)

__all__ = [
    "ConnectionManager",
    "ConnectionQuality",
    "ConnectionState",
    "HeartbeatMonitor",
    "HeartbeatState",
    "NetworkScanner",
    "ProbeOutcome",
    "ProbeResult",
    "ReconnectPolicy",
    "ScanResult",
    "StateChange",
    "connection_quality",
    "probe",
]
