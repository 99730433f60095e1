"""Persistence strategies for the last connected device."""

from __future__ import annotations

import json
import logging
import os
from pathlib import Path
from typing import Protocol, runtime_checkable

from .const import DEFAULT_PORT
from .endpoint import DeviceEndpoint

_LOGGER = logging.getLogger(__name__)


@runtime_checkable
class DeviceStore(Protocol):
    """Remember the endpoint of the last successful connection."""

    def load(self) -> DeviceEndpoint | None:
        """Return the remembered endpoint, if any."""

    def save(self, endpoint: DeviceEndpoint) -> None:
        """Remember ``endpoint``."""


class MemoryDeviceStore:
    """Process-local store, mainly for tests and one-shot tools."""

    def __init__(self, endpoint: DeviceEndpoint | None = None) -> None:
        self._endpoint = endpoint
        self.saves = 0

    def load(self) -> DeviceEndpoint | None:
        return self._endpoint

    def save(self, endpoint: DeviceEndpoint) -> None:
        self._endpoint = endpoint
        self.saves += 1


class FileDeviceStore:
    """Store the last device as a small JSON document on disk.

    A file holding just a host string is read as that host on the default
    port. Unreadable or malformed files load as ``None``.
    """

    def __init__(self, path: str | os.PathLike[str]) -> None:
        self.path = Path(path)

    def load(self) -> DeviceEndpoint | None:
        try:
            text = self.path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return None
        except OSError as err:
            _LOGGER.warning("Could not read %s: %s", self.path, err)
            return None

        try:
            data = json.loads(text)
        except ValueError:
            data = text.strip()
        if isinstance(data, str):
            try:
                return DeviceEndpoint.parse(data, default_port=DEFAULT_PORT)
            except ValueError:
                _LOGGER.debug("Ignoring malformed device file %s", self.path)
                return None
        endpoint = DeviceEndpoint.from_dict(data)
        if endpoint is None:
            _LOGGER.debug("Ignoring malformed device file %s", self.path)
        return endpoint

    def save(self, endpoint: DeviceEndpoint) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp = self.path.with_suffix(self.path.suffix + ".tmp")
        tmp.write_text(json.dumps(endpoint.as_dict()), encoding="utf-8")
        os.replace(tmp, self.path)
        _LOGGER.debug("Saved last device %s to %s", endpoint, self.path)


__all__ = ["DeviceStore", "FileDeviceStore", "MemoryDeviceStore"]
