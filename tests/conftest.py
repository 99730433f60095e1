# ruff: noqa: D100,D101,D102,D103,D107,INP001
from __future__ import annotations

import asyncio
from collections import deque
from collections.abc import Awaitable, Callable, Iterable
import inspect
from types import SimpleNamespace
from typing import Any

import aiohttp
import pytest

HANG = object()


def pytest_configure(config: pytest.Config) -> None:
    """Register custom pytest markers used across the suite."""

    if not config.pluginmanager.hasplugin("pytest_asyncio"):
        config.addinivalue_line(
            "markers", "asyncio: mark test as requiring asyncio event loop support."
        )


def pytest_pyfunc_call(pyfuncitem: pytest.Function) -> bool | None:
    """Execute async tests when pytest-asyncio is unavailable."""

    if pyfuncitem.config.pluginmanager.hasplugin("pytest_asyncio"):
        return None

    testfunction = pyfuncitem.obj
    if not inspect.iscoroutinefunction(testfunction):
        return None

    marker = pyfuncitem.get_closest_marker("asyncio")
    if marker is None:
        return None

    with asyncio.Runner(debug=False) as runner:
        runner.run(testfunction(**pyfuncitem.funcargs))
    return True


def frame(kind: aiohttp.WSMsgType, data: Any = None) -> SimpleNamespace:
    """Return an object shaped like ``aiohttp.WSMessage``."""

    return SimpleNamespace(type=kind, data=data, extra=None)


class StubWebSocket:
    """In-memory stand-in for ``aiohttp.ClientWebSocketResponse``."""

    def __init__(self, frames: Iterable[SimpleNamespace] = ()) -> None:
        self._frames: asyncio.Queue[SimpleNamespace] = asyncio.Queue()
        for item in frames:
            self._frames.put_nowait(item)
        self.sent: list[str] = []
        self.send_error: Exception | None = None
        self.closed = False
        self.close_calls = 0

    def feed_text(self, text: str) -> None:
        self._frames.put_nowait(frame(aiohttp.WSMsgType.TEXT, text))

    def feed_close(self) -> None:
        self._frames.put_nowait(frame(aiohttp.WSMsgType.CLOSE, 1000))

    def feed_error(self, error: Exception) -> None:
        self._frames.put_nowait(frame(aiohttp.WSMsgType.ERROR, error))

    async def receive(self) -> SimpleNamespace:
        return await self._frames.get()

    async def send_str(self, data: str) -> None:
        if self.send_error is not None:
            raise self.send_error
        self.sent.append(data)

    async def close(self) -> bool:
        self.close_calls += 1
        self.closed = True
        self._frames.put_nowait(frame(aiohttp.WSMsgType.CLOSED))
        return True


class StubSession:
    """Session whose ``ws_connect`` replays scripted outcomes.

    Each outcome is a :class:`StubWebSocket` to return, an exception to raise
    or :data:`HANG` to never complete. ``default`` is used once the script is
    exhausted; without it a fresh websocket is returned.
    """

    def __init__(self, outcomes: Iterable[Any] = (), *, default: Any = None) -> None:
        self.outcomes: deque[Any] = deque(outcomes)
        self.default = default
        self.urls: list[str] = []
        self.kwargs: list[dict[str, Any]] = []
        self.sockets: list[StubWebSocket] = []
        self.closed = False

    async def ws_connect(self, url: str, **kwargs: Any) -> StubWebSocket:
        self.urls.append(url)
        self.kwargs.append(kwargs)
        outcome = self.outcomes.popleft() if self.outcomes else self.default
        if outcome is None:
            outcome = StubWebSocket()
        if outcome is HANG:
            await asyncio.Event().wait()
        if isinstance(outcome, BaseException):
            raise outcome
        self.sockets.append(outcome)
        return outcome

    async def close(self) -> None:
        self.closed = True


class RecordingSleep:
    """Async sleep replacement that records delays.

    Calls return immediately until ``block_after`` delays have been recorded;
    later calls wait until :meth:`release` is called.
    """

    def __init__(self, block_after: int | None = None) -> None:
        self.delays: list[float] = []
        self.block_after = block_after
        self._gate = asyncio.Event()

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)
        if self.block_after is not None and len(self.delays) > self.block_after:
            await self._gate.wait()
        else:
            await asyncio.sleep(0)

    def release(self) -> None:
        self._gate.set()


@pytest.fixture
def until() -> Callable[..., Awaitable[None]]:
    """Return a helper that waits for a predicate to become true."""

    async def _until(predicate: Callable[[], bool], timeout: float = 1.0) -> None:
        async with asyncio.timeout(timeout):
            while not predicate():
                await asyncio.sleep(0.001)

    return _until


@pytest.fixture
def stub_session() -> StubSession:
    return StubSession()
