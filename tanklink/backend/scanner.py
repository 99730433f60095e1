"""Local network discovery for tank controllers."""

from __future__ import annotations

import asyncio
from collections.abc import Callable, Iterable, Iterator, Sequence
import ipaddress
import logging
import math

import aiohttp

from ..const import (
    COMMON_SUBNETS,
    DEFAULT_PORT,
    HOST_OCTET_RANGE,
    PROBE_TIMEOUT,
    QUICK_SCAN_CANDIDATES,
    SCAN_BATCH_SIZE,
)
from ..endpoint import DeviceEndpoint
from .probe import ProbeCallable, ProbeResult, probe as default_probe

_LOGGER = logging.getLogger(__name__)

FoundCallback = Callable[[DeviceEndpoint], None]


class ScanResult:
    """Ordered, duplicate-free set of endpoints that answered a probe."""

    def __init__(self) -> None:
        self._endpoints: list[DeviceEndpoint] = []
        self._seen: set[DeviceEndpoint] = set()
        self.cancelled = False
        self.batches = 0

    def add(self, endpoint: DeviceEndpoint) -> bool:
        """Append ``endpoint`` unless already present; return True if added."""

        if endpoint in self._seen:
            return False
        self._seen.add(endpoint)
        self._endpoints.append(endpoint)
        return True

    def merge(self, other: ScanResult) -> None:
        """Append every endpoint of ``other`` not already present."""

        for endpoint in other:
            self.add(endpoint)
        self.batches += other.batches
        self.cancelled = self.cancelled or other.cancelled

    @property
    def endpoints(self) -> list[DeviceEndpoint]:
        """Return the endpoints in discovery order."""

        return list(self._endpoints)

    @property
    def hosts(self) -> list[str]:
        """Return the discovered host addresses in discovery order."""

        return [endpoint.host for endpoint in self._endpoints]

    def __iter__(self) -> Iterator[DeviceEndpoint]:
        return iter(tuple(self._endpoints))

    def __len__(self) -> int:
        return len(self._endpoints)

    def __contains__(self, item: object) -> bool:
        return item in self._seen

    def __repr__(self) -> str:
        return f"ScanResult(hosts={self.hosts!r}, cancelled={self.cancelled})"


def normalize_prefix(prefix: str) -> str:
    """Return the ``a.b.c`` form of a /24 prefix.

    Accepts ``192.168.1``, ``192.168.1.`` and ``192.168.1.0/24``.
    """

    raw = str(prefix or "").strip()
    if "/" in raw:
        try:
            network = ipaddress.IPv4Network(raw, strict=False)
        except ValueError as err:
            raise ValueError(f"Invalid network prefix: {prefix!r}") from err
        if network.prefixlen != 24:
            raise ValueError(f"Only /24 networks can be scanned: {prefix!r}")
        return ".".join(str(network.network_address).split(".")[:3])

    octets = raw.rstrip(".").split(".")
    if len(octets) != 3:
        raise ValueError(f"Invalid network prefix: {prefix!r}")
    try:
        ipaddress.IPv4Address(".".join([*octets, "0"]))
    except ValueError as err:
        raise ValueError(f"Invalid network prefix: {prefix!r}") from err
    return ".".join(str(int(octet)) for octet in octets)


def _batched(items: Sequence[DeviceEndpoint], size: int) -> Iterator[Sequence[DeviceEndpoint]]:
    for start in range(0, len(items), size):
        yield items[start : start + size]


class NetworkScanner:
    """Probe candidate addresses for a controller websocket.

    Probes run in fixed-size batches; each batch settles completely before the
    next starts, so at most ``batch_size`` sockets are open at any time and a
    full range scan takes at most ``ceil(254 / batch_size) * probe_timeout``.
    """

    def __init__(
        self,
        *,
        port: int = DEFAULT_PORT,
        batch_size: int = SCAN_BATCH_SIZE,
        probe_timeout: float = PROBE_TIMEOUT,
        candidates: Iterable[str] = QUICK_SCAN_CANDIDATES,
        session: aiohttp.ClientSession | None = None,
        probe: ProbeCallable | None = None,
    ) -> None:
        if batch_size < 1:
            raise ValueError("batch_size must be at least 1")
        if probe_timeout <= 0:
            raise ValueError("probe_timeout must be positive")
        self.port = port
        self.batch_size = batch_size
        self.probe_timeout = probe_timeout
        self.candidates: tuple[str, ...] = tuple(candidates)
        self._session = session
        self._probe = probe or default_probe
        self._cancel_event = asyncio.Event()

    # ------------------------------------------------------------------
    # Public control
    # ------------------------------------------------------------------
    def cancel(self) -> None:
        """Abandon the running scan at the next batch boundary."""

        self._cancel_event.set()

    @property
    def cancelled(self) -> bool:
        """Return True once :meth:`cancel` has been requested."""

        return self._cancel_event.is_set()

    def max_duration(self, host_count: int = len(HOST_OCTET_RANGE)) -> float:
        """Return the worst-case wall-clock time to probe ``host_count`` hosts."""

        return math.ceil(host_count / self.batch_size) * self.probe_timeout

    async def quick_scan(
        self,
        candidates: Iterable[str] | None = None,
        *,
        concurrency: int = 1,
        cancel: asyncio.Event | None = None,
    ) -> ScanResult:
        """Probe a short list of likely controller addresses."""

        self._cancel_event = asyncio.Event()
        hosts = list(dict.fromkeys(candidates if candidates is not None else self.candidates))
        endpoints = [DeviceEndpoint.parse(host, default_port=self.port) for host in hosts]
        _LOGGER.debug("Quick scan of %d candidate(s)", len(endpoints))
        result = await self._run(endpoints, max(1, concurrency), cancel, None)
        _LOGGER.info("Quick scan found %d device(s): %s", len(result), result.hosts)
        return result

    async def range_scan(
        self,
        prefix: str,
        *,
        cancel: asyncio.Event | None = None,
        on_found: FoundCallback | None = None,
    ) -> ScanResult:
        """Probe ``prefix.1`` through ``prefix.254``."""

        self._cancel_event = asyncio.Event()
        return await self._range_scan(prefix, cancel, on_found)

    async def scan_subnets(
        self,
        prefixes: Iterable[str] = COMMON_SUBNETS,
        *,
        cancel: asyncio.Event | None = None,
        on_found: FoundCallback | None = None,
    ) -> ScanResult:
        """Range scan each prefix in turn and merge the results.

        A cancel request ends the whole walk, including prefixes not yet
        started.
        """

        self._cancel_event = asyncio.Event()
        combined = ScanResult()
        for prefix in prefixes:
            if self._should_stop(cancel):
                combined.cancelled = True
                break
            partial = await self._range_scan(prefix, cancel, on_found)
            combined.merge(partial)
            if partial.cancelled:
                break
        return combined

    # ------------------------------------------------------------------
    # Batch execution
    # ------------------------------------------------------------------
    async def _range_scan(
        self,
        prefix: str,
        cancel: asyncio.Event | None,
        on_found: FoundCallback | None,
    ) -> ScanResult:
        base = normalize_prefix(prefix)
        endpoints = [
            DeviceEndpoint(f"{base}.{octet}", self.port) for octet in HOST_OCTET_RANGE
        ]
        _LOGGER.info(
            "Scanning %s.0/24 in batches of %d (timeout %.1fs)",
            base,
            self.batch_size,
            self.probe_timeout,
        )
        result = await self._run(endpoints, self.batch_size, cancel, on_found)
        _LOGGER.info(
            "Scan of %s.0/24 %s; found %d device(s): %s",
            base,
            "cancelled" if result.cancelled else "complete",
            len(result),
            result.hosts,
        )
        return result

    def _should_stop(self, cancel: asyncio.Event | None) -> bool:
        return self._cancel_event.is_set() or (cancel is not None and cancel.is_set())

    async def _probe_one(self, endpoint: DeviceEndpoint) -> ProbeResult:
        return await self._probe(endpoint, self.probe_timeout, session=self._session)

    async def _run(
        self,
        endpoints: Sequence[DeviceEndpoint],
        batch_size: int,
        cancel: asyncio.Event | None,
        on_found: FoundCallback | None,
    ) -> ScanResult:
        result = ScanResult()
        for batch in _batched(endpoints, batch_size):
            if self._should_stop(cancel):
                result.cancelled = True
                break
            found = await self._run_batch(batch)
            if self._should_stop(cancel):
                _LOGGER.debug("Scan cancelled; discarding %d in-flight hit(s)", len(found))
                result.cancelled = True
                break
            result.batches += 1
            for endpoint in found:
                if result.add(endpoint) and on_found is not None:
                    on_found(endpoint)
            if self._should_stop(cancel):
                result.cancelled = True
                break
        return result

    async def _run_batch(self, batch: Sequence[DeviceEndpoint]) -> list[DeviceEndpoint]:
        """Probe ``batch`` concurrently; return hits in completion order."""

        found: list[DeviceEndpoint] = []
        tasks = [asyncio.ensure_future(self._probe_one(endpoint)) for endpoint in batch]
        try:
            for next_done in asyncio.as_completed(tasks):
                try:
                    outcome = await next_done
                except asyncio.CancelledError:
                    raise
                except Exception:  # noqa: BLE001 - a broken probe is a miss
                    _LOGGER.debug("Probe raised unexpectedly", exc_info=True)
                    continue
                if outcome.ok:
                    _LOGGER.info("Found controller at %s", outcome.endpoint)
                    found.append(outcome.endpoint)
        finally:
            for task in tasks:
                if not task.done():
                    task.cancel()
        return found


__all__ = ["NetworkScanner", "ScanResult", "normalize_prefix"]
