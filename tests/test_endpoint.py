"""Tests for device endpoint parsing."""

from __future__ import annotations

import dataclasses

import pytest

from tanklink.endpoint import DeviceEndpoint


@pytest.mark.parametrize(
    ("text", "host", "port"),
    [
        ("192.168.1.100", "192.168.1.100", 81),
        ("  192.168.1.100  ", "192.168.1.100", 81),
        ("192.168.1.100:8080", "192.168.1.100", 8080),
        ("ws://192.168.4.1:81/", "192.168.4.1", 81),
        ("ws://192.168.4.1", "192.168.4.1", 81),
        ("http://10.0.0.100:82/status", "10.0.0.100", 82),
        ("tank.local", "tank.local", 81),
        ("tank.local:90", "tank.local", 90),
        ("controller at 192.168.0.100 (kitchen)", "192.168.0.100", 81),
    ],
)
def test_parse_accepts_common_forms(text: str, host: str, port: int) -> None:
    """Bare hosts, host:port pairs, URLs and free text with an IPv4 parse."""

    endpoint = DeviceEndpoint.parse(text)

    assert endpoint == DeviceEndpoint(host, port)


def test_parse_uses_default_port() -> None:
    assert DeviceEndpoint.parse("192.168.1.5", default_port=8081).port == 8081


@pytest.mark.parametrize("text", ["", "   ", "not a host", "a/b", "192.168.1.5:99999"])
def test_parse_rejects_garbage(text: str) -> None:
    """Blank or malformed addresses raise ``ValueError``."""

    with pytest.raises(ValueError):
        DeviceEndpoint.parse(text)


def test_endpoint_url_and_str() -> None:
    endpoint = DeviceEndpoint("192.168.1.100")

    assert endpoint.url == "ws://192.168.1.100:81"
    assert str(endpoint) == "192.168.1.100:81"


def test_endpoint_is_frozen_and_hashable() -> None:
    """Endpoints are immutable values usable as set members."""

    endpoint = DeviceEndpoint("10.0.0.1", 81)

    with pytest.raises(dataclasses.FrozenInstanceError):
        endpoint.host = "10.0.0.2"  # type: ignore[misc]
    assert {endpoint, DeviceEndpoint("10.0.0.1", "81")} == {endpoint}


@pytest.mark.parametrize("port", [0, 65536, "abc", None])
def test_endpoint_rejects_bad_ports(port: object) -> None:
    with pytest.raises(ValueError):
        DeviceEndpoint("10.0.0.1", port)  # type: ignore[arg-type]


def test_dict_round_trip() -> None:
    endpoint = DeviceEndpoint("192.168.1.100", 81)

    assert DeviceEndpoint.from_dict(endpoint.as_dict()) == endpoint


@pytest.mark.parametrize(
    "data",
    [None, "192.168.1.1", {}, {"host": ""}, {"host": 5}, {"host": "h", "port": -1}],
)
def test_from_dict_returns_none_for_invalid_data(data: object) -> None:
    assert DeviceEndpoint.from_dict(data) is None
