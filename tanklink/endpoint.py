"""Device endpoint value type and address parsing."""

from __future__ import annotations

from dataclasses import dataclass
import re
from typing import Any
from urllib.parse import urlsplit

from .const import DEFAULT_PORT, WS_SCHEME

_IPV4_RE = re.compile(r"(\d{1,3}\.\d{1,3}\.\d{1,3}\.\d{1,3})")


def _validate_port(port: Any) -> int:
    """Return ``port`` as an int in the TCP port range."""

    try:
        value = int(port)
    except (TypeError, ValueError) as err:
        raise ValueError(f"Invalid port: {port!r}") from err
    if not 0 < value < 65536:
        raise ValueError(f"Invalid port: {port!r}")
    return value


@dataclass(frozen=True, slots=True)
class DeviceEndpoint:
    """Host/port pair identifying the tank controller."""

    host: str
    port: int = DEFAULT_PORT

    def __post_init__(self) -> None:
        host = str(self.host or "").strip()
        if not host:
            raise ValueError("Endpoint host must be a non-empty string")
        object.__setattr__(self, "host", host)
        object.__setattr__(self, "port", _validate_port(self.port))

    @property
    def url(self) -> str:
        """Return the websocket URL for this endpoint."""

        return f"{WS_SCHEME}://{self.host}:{self.port}"

    def __str__(self) -> str:
        return f"{self.host}:{self.port}"

    def as_dict(self) -> dict[str, Any]:
        """Return a serialisable representation."""

        return {"host": self.host, "port": self.port}

    @classmethod
    def from_dict(cls, data: Any) -> DeviceEndpoint | None:
        """Build an endpoint from :meth:`as_dict` output, or ``None``."""

        if not isinstance(data, dict):
            return None
        host = data.get("host")
        if not isinstance(host, str) or not host.strip():
            return None
        try:
            return cls(host, data.get("port", DEFAULT_PORT))
        except ValueError:
            return None

    @classmethod
    def parse(cls, text: str, *, default_port: int = DEFAULT_PORT) -> DeviceEndpoint:
        """Parse a user supplied address into an endpoint.

        Accepts bare hosts (``192.168.1.100``), ``host:port`` pairs and full
        ``ws://`` URLs. Any other string containing a dotted IPv4 address is
        reduced to that address on ``default_port``.
        """

        raw = str(text or "").strip()
        if not raw:
            raise ValueError("Device address must be a non-empty string")

        if "://" in raw:
            parsed = urlsplit(raw)
            if parsed.scheme in {"ws", "wss", "http", "https"} and parsed.hostname:
                try:
                    port = parsed.port
                except ValueError as err:
                    raise ValueError(f"Invalid device address: {text!r}") from err
                return cls(parsed.hostname, port or default_port)

        host, sep, port_text = raw.rpartition(":")
        if sep and host and port_text.isdigit() and "/" not in raw:
            return cls(host, int(port_text))

        match = _IPV4_RE.search(raw)
        if match and match.group(1) != raw:
            return cls(match.group(1), default_port)

        if any(ch in raw for ch in "/ \t"):
            raise ValueError(f"Invalid device address: {text!r}")
        return cls(raw, default_port)


__all__ = ["DeviceEndpoint"]
