"""Outbound command types for the tank controller."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any

from ..codecs.envelope_models import MessageEnvelope
from ..const import (
    MSG_GET_ALL_DATA,
    MSG_GET_HOME_DATA,
    MSG_GET_SENSOR_DATA,
    MSG_GET_SETTING_DATA,
    MSG_GET_SYSTEM_STATUS_TEXT,
    MSG_GET_WIFI_CONFIG,
    MSG_MOTOR1_OFF,
    MSG_MOTOR1_ON,
    MSG_MOTOR2_OFF,
    MSG_MOTOR2_ON,
    MSG_SETTING_DATA,
    MSG_SYSTEM_RESET,
    MSG_UPDATE_SETTINGS,
    MSG_WIFI_CONFIG,
)

_MOTOR_TYPES: dict[tuple[int, bool], str] = {
    (1, True): MSG_MOTOR1_ON,
    (1, False): MSG_MOTOR1_OFF,
    (2, True): MSG_MOTOR2_ON,
    (2, False): MSG_MOTOR2_OFF,
}

_REQUEST_TYPES = frozenset(
    {
        MSG_GET_ALL_DATA,
        MSG_GET_HOME_DATA,
        MSG_GET_SETTING_DATA,
        MSG_GET_SENSOR_DATA,
        MSG_GET_WIFI_CONFIG,
        MSG_GET_SYSTEM_STATUS_TEXT,
    }
)


@dataclass(slots=True)
class BaseCommand:
    """Base type for controller commands."""

    def to_envelope(self) -> MessageEnvelope:
        """Return the wire envelope for this command."""

        raise NotImplementedError


@dataclass(slots=True)
class RequestData(BaseCommand):
    """Ask the controller to publish one of its data snapshots."""

    kind: str = MSG_GET_ALL_DATA

    def to_envelope(self) -> MessageEnvelope:
        if self.kind not in _REQUEST_TYPES:
            raise ValueError(f"Unknown data request: {self.kind!r}")
        return MessageEnvelope(type=self.kind)


@dataclass(slots=True)
class SetMotor(BaseCommand):
    """Switch a pump motor on or off."""

    motor: int
    on: bool

    def to_envelope(self) -> MessageEnvelope:
        msg_type = _MOTOR_TYPES.get((int(self.motor), bool(self.on)))
        if msg_type is None:
            raise ValueError(f"Invalid motor: {self.motor!r}")
        return MessageEnvelope(type=msg_type)


@dataclass(slots=True)
class UpdateSettings(BaseCommand):
    """Push a flat settings map to the controller."""

    settings: Mapping[str, Any] = field(default_factory=dict)

    def to_envelope(self) -> MessageEnvelope:
        return MessageEnvelope(type=MSG_UPDATE_SETTINGS, payload=dict(self.settings))


@dataclass(slots=True)
class SetTopologyConfig(BaseCommand):
    """Send a topology based configuration block."""

    config: Mapping[str, Any]

    def to_envelope(self) -> MessageEnvelope:
        if not self.config:
            raise ValueError("config must not be empty")
        return MessageEnvelope(type=MSG_SETTING_DATA, payload={"config": dict(self.config)})


@dataclass(slots=True)
class ConfigureWifi(BaseCommand):
    """Configure the controller's Wi-Fi station settings."""

    mode: str
    ssid: str
    password: str
    static_ip: tuple[int, int, int, int] | None = None
    gateway: tuple[int, int, int, int] | None = None
    subnet: tuple[int, int, int, int] | None = None
    dns: tuple[int, int, int, int] | None = None

    def to_envelope(self) -> MessageEnvelope:
        if not self.mode or not self.ssid or not self.password:
            raise ValueError("mode, ssid and password are required")
        payload: dict[str, Any] = {
            "MODE": self.mode,
            "SSID": self.ssid,
            "PASS": self.password,
        }
        for prefix, octets in (
            ("SIP", self.static_ip),
            ("SG", self.gateway),
            ("SS", self.subnet),
            ("SPD", self.dns),
        ):
            if octets is None:
                continue
            if len(octets) != 4:
                raise ValueError(f"{prefix} needs four octets")
            for idx, octet in enumerate(octets):
                payload[f"{prefix}{idx}"] = int(octet)
        return MessageEnvelope(type=MSG_WIFI_CONFIG, payload=payload)


@dataclass(slots=True)
class SystemReset(BaseCommand):
    """Reboot the controller."""

    def to_envelope(self) -> MessageEnvelope:
        return MessageEnvelope(type=MSG_SYSTEM_RESET)
