"""Tests for the single-shot websocket probe."""

from __future__ import annotations

import aiohttp
import pytest

from conftest import HANG, StubSession, StubWebSocket
from tanklink.backend.probe import ProbeOutcome, ProbeResult, probe
from tanklink.endpoint import DeviceEndpoint

ENDPOINT = DeviceEndpoint("192.168.1.100", 81)


@pytest.mark.asyncio
async def test_probe_success_closes_socket() -> None:
    """A completed handshake is a success and the socket is closed again."""

    ws = StubWebSocket()
    session = StubSession([ws])

    result = await probe(ENDPOINT, 1.0, session=session)

    assert isinstance(result, ProbeResult)
    assert result.outcome is ProbeOutcome.SUCCESS
    assert result.ok and bool(result)
    assert result.endpoint == ENDPOINT
    assert result.elapsed >= 0
    assert session.urls == ["ws://192.168.1.100:81"]
    assert ws.close_calls == 1


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "error",
    [
        aiohttp.ClientConnectionError("refused"),
        ConnectionRefusedError(111, "Connection refused"),
        OSError("no route to host"),
    ],
)
async def test_probe_refused(error: Exception) -> None:
    """Client and socket errors count as a refusal."""

    session = StubSession([error])

    result = await probe(ENDPOINT, 1.0, session=session)

    assert result.outcome is ProbeOutcome.REFUSED
    assert not result


@pytest.mark.asyncio
async def test_probe_times_out() -> None:
    """A handshake that never completes is abandoned after the timeout."""

    session = StubSession([HANG])

    result = await probe(ENDPOINT, 0.02, session=session)

    assert result.outcome is ProbeOutcome.TIMEOUT
    assert result.elapsed < 1.0


@pytest.mark.asyncio
async def test_probe_does_not_retry() -> None:
    """Only one connection attempt is made per probe."""

    session = StubSession([aiohttp.ClientConnectionError("refused")])

    await probe(ENDPOINT, 1.0, session=session)

    assert len(session.urls) == 1
