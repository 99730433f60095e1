"""Tests for the validated link configuration."""

from __future__ import annotations

import pytest

from tanklink.backend.reconnect import ReconnectPolicy
from tanklink.config import CONFIG_SCHEMA, LinkConfig
from tanklink.errors import ConfigError


def test_defaults() -> None:
    """An empty mapping yields the controller defaults."""

    config = LinkConfig.from_mapping({})

    assert config == LinkConfig()
    assert config.port == 81
    assert config.reconnect is True
    assert config.max_reconnect_attempts == 10
    assert config.reconnect_base_interval_ms == 3000
    assert config.reconnect_max_interval_ms == 30000
    assert config.heartbeat_interval == 30.0
    assert config.heartbeat_grace == 15.0
    assert config.heartbeat_miss_threshold == 3
    assert config.background_heartbeat_interval == 60.0
    assert config.scan_batch_size == 20
    assert config.probe_timeout == 5.0
    assert LinkConfig.from_mapping(None) == config


def test_values_are_coerced() -> None:
    config = LinkConfig.from_mapping(
        {"port": "8081", "reconnect": "off", "heartbeat_interval": "45", "bare_commands": "yes"}
    )

    assert config.port == 8081
    assert config.reconnect is False
    assert config.heartbeat_interval == 45.0
    assert config.bare_commands is True


@pytest.mark.parametrize(
    "data",
    [
        {"port": 0},
        {"port": 70000},
        {"port": "eighty"},
        {"max_reconnect_attempts": -1},
        {"heartbeat_interval": 0},
        {"heartbeat_grace": -1},
        {"heartbeat_miss_threshold": 0},
        {"scan_batch_size": 0},
        {"probe_timeout": 0},
        {"unknown_option": True},
        {"reconnect_base_interval_ms": 5000, "reconnect_max_interval_ms": 1000},
    ],
)
def test_invalid_values_raise_config_error(data: dict[str, object]) -> None:
    """Bad values surface as ``ConfigError``."""

    with pytest.raises(ConfigError):
        LinkConfig.from_mapping(data)


def test_config_error_is_value_error() -> None:
    with pytest.raises(ValueError):
        LinkConfig.from_mapping({"port": -5})


def test_zero_grace_is_allowed() -> None:
    assert LinkConfig.from_mapping({"heartbeat_grace": 0}).heartbeat_grace == 0.0


def test_reconnect_policy_from_config() -> None:
    config = LinkConfig.from_mapping(
        {
            "max_reconnect_attempts": 4,
            "reconnect_base_interval_ms": 500,
            "reconnect_max_interval_ms": 4000,
        }
    )

    assert config.reconnect_policy() == ReconnectPolicy(
        base_delay_ms=500, max_delay_ms=4000, max_attempts=4
    )


def test_as_dict_round_trips_through_schema() -> None:
    """``as_dict`` output is itself valid configuration."""

    config = LinkConfig(port=82, heartbeat_interval=20.0)

    assert CONFIG_SCHEMA(config.as_dict()) == config.as_dict()
    assert LinkConfig.from_mapping(config.as_dict()) == config
