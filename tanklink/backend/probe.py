"""Single-attempt websocket reachability probe."""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from enum import StrEnum
import logging
import time

import aiohttp

from ..const import PROBE_TIMEOUT
from ..endpoint import DeviceEndpoint

_LOGGER = logging.getLogger(__name__)


class ProbeOutcome(StrEnum):
    """Result of a probe attempt."""

    SUCCESS = "success"
    TIMEOUT = "timeout"
    REFUSED = "refused"


@dataclass(frozen=True, slots=True)
class ProbeResult:
    """Outcome of probing a single endpoint."""

    endpoint: DeviceEndpoint
    outcome: ProbeOutcome
    elapsed: float

    @property
    def ok(self) -> bool:
        """Return True when the handshake completed."""

        return self.outcome is ProbeOutcome.SUCCESS

    def __bool__(self) -> bool:
        return self.ok


ProbeCallable = Callable[..., Awaitable[ProbeResult]]


async def _attempt(
    session: aiohttp.ClientSession, endpoint: DeviceEndpoint, timeout: float
) -> ProbeOutcome:
    try:
        async with asyncio.timeout(timeout):
            ws = await session.ws_connect(endpoint.url, heartbeat=None, autoping=False)
            await ws.close()
    except TimeoutError:
        return ProbeOutcome.TIMEOUT
    except (aiohttp.ClientError, OSError, ValueError) as err:
        _LOGGER.debug("Probe %s refused: %s", endpoint, err)
        return ProbeOutcome.REFUSED
    return ProbeOutcome.SUCCESS


async def probe(
    endpoint: DeviceEndpoint,
    timeout: float = PROBE_TIMEOUT,
    *,
    session: aiohttp.ClientSession | None = None,
) -> ProbeResult:
    """Check whether ``endpoint`` accepts a websocket handshake within ``timeout``.

    The connection is closed again as soon as the handshake completes. No
    retries are made; timeouts and refusals are both terminal.
    """

    started = time.monotonic()
    if session is None:
        async with aiohttp.ClientSession() as own_session:
            outcome = await _attempt(own_session, endpoint, timeout)
    else:
        outcome = await _attempt(session, endpoint, timeout)
    elapsed = time.monotonic() - started
    _LOGGER.debug("Probe %s -> %s in %.3fs", endpoint, outcome, elapsed)
    return ProbeResult(endpoint, outcome, elapsed)


__all__ = ["ProbeCallable", "ProbeOutcome", "ProbeResult", "probe"]
