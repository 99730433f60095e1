"""Domain-layer primitives for the tank controller."""

from .commands import (
    BaseCommand,
    ConfigureWifi,
    RequestData,
    SetMotor,
    SetTopologyConfig,
    SystemReset,
    UpdateSettings,
)

__all__ = [
    "BaseCommand",
    "ConfigureWifi",
    "RequestData",
    "SetMotor",
    "SetTopologyConfig",
    "SystemReset",
    "UpdateSettings",
]
