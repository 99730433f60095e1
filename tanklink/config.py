"""Validated configuration for the controller link."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import asdict, dataclass
from typing import Any

import voluptuous as vol

from .backend.reconnect import ReconnectPolicy
from .const import (
    BACKGROUND_HEARTBEAT_INTERVAL,
    DEFAULT_PORT,
    HANDSHAKE_TIMEOUT,
    HEARTBEAT_GRACE,
    HEARTBEAT_INTERVAL,
    HEARTBEAT_MISS_THRESHOLD,
    MAX_RECONNECT_ATTEMPTS,
    PROBE_TIMEOUT,
    RECONNECT_BASE_INTERVAL_MS,
    RECONNECT_MAX_INTERVAL_MS,
    SCAN_BATCH_SIZE,
)
from .errors import ConfigError

_PositiveSeconds = vol.All(vol.Coerce(float), vol.Range(min=0, min_included=False))

CONFIG_SCHEMA = vol.Schema(
    {
        vol.Optional("port", default=DEFAULT_PORT): vol.All(
            vol.Coerce(int), vol.Range(min=1, max=65535)
        ),
        vol.Optional("reconnect", default=True): vol.Boolean(),
        vol.Optional("max_reconnect_attempts", default=MAX_RECONNECT_ATTEMPTS): vol.All(
            vol.Coerce(int), vol.Range(min=0)
        ),
        vol.Optional(
            "reconnect_base_interval_ms", default=RECONNECT_BASE_INTERVAL_MS
        ): vol.All(vol.Coerce(int), vol.Range(min=0)),
        vol.Optional(
            "reconnect_max_interval_ms", default=RECONNECT_MAX_INTERVAL_MS
        ): vol.All(vol.Coerce(int), vol.Range(min=0)),
        vol.Optional("handshake_timeout", default=HANDSHAKE_TIMEOUT): _PositiveSeconds,
        vol.Optional("probe_timeout", default=PROBE_TIMEOUT): _PositiveSeconds,
        vol.Optional("scan_batch_size", default=SCAN_BATCH_SIZE): vol.All(
            vol.Coerce(int), vol.Range(min=1)
        ),
        vol.Optional("heartbeat_interval", default=HEARTBEAT_INTERVAL): _PositiveSeconds,
        vol.Optional("heartbeat_grace", default=HEARTBEAT_GRACE): vol.All(
            vol.Coerce(float), vol.Range(min=0)
        ),
        vol.Optional(
            "heartbeat_miss_threshold", default=HEARTBEAT_MISS_THRESHOLD
        ): vol.All(vol.Coerce(int), vol.Range(min=1)),
        vol.Optional(
            "background_heartbeat_interval", default=BACKGROUND_HEARTBEAT_INTERVAL
        ): _PositiveSeconds,
        vol.Optional("bare_commands", default=False): vol.Boolean(),
    }
)


@dataclass(frozen=True, slots=True)
class LinkConfig:
    """Connection, discovery and heartbeat settings."""

    port: int = DEFAULT_PORT
    reconnect: bool = True
    max_reconnect_attempts: int = MAX_RECONNECT_ATTEMPTS
    reconnect_base_interval_ms: int = RECONNECT_BASE_INTERVAL_MS
    reconnect_max_interval_ms: int = RECONNECT_MAX_INTERVAL_MS
    handshake_timeout: float = HANDSHAKE_TIMEOUT
    probe_timeout: float = PROBE_TIMEOUT
    scan_batch_size: int = SCAN_BATCH_SIZE
    heartbeat_interval: float = HEARTBEAT_INTERVAL
    heartbeat_grace: float = HEARTBEAT_GRACE
    heartbeat_miss_threshold: int = HEARTBEAT_MISS_THRESHOLD
    background_heartbeat_interval: float = BACKGROUND_HEARTBEAT_INTERVAL
    bare_commands: bool = False

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any] | None = None) -> LinkConfig:
        """Validate ``data`` against :data:`CONFIG_SCHEMA` and build a config."""

        try:
            validated = CONFIG_SCHEMA(dict(data or {}))
        except vol.Invalid as err:
            raise ConfigError(f"invalid configuration: {err}") from err
        if validated["reconnect_max_interval_ms"] < validated["reconnect_base_interval_ms"]:
            raise ConfigError(
                "reconnect_max_interval_ms must not be below reconnect_base_interval_ms"
            )
        return cls(**validated)

    def reconnect_policy(self) -> ReconnectPolicy:
        """Return the backoff policy described by this config."""

        return ReconnectPolicy(
            base_delay_ms=self.reconnect_base_interval_ms,
            max_delay_ms=self.reconnect_max_interval_ms,
            max_attempts=self.max_reconnect_attempts,
        )

    def as_dict(self) -> dict[str, Any]:
        return asdict(self)


__all__ = ["CONFIG_SCHEMA", "LinkConfig"]
