"""Discover, watch and drive tank controllers from a terminal."""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from typing import Any

import aiohttp

from .backend.sanitize import redact_payload, redact_text
from .backend.scanner import NetworkScanner, ScanResult
from .backend.ws_client import ConnectionState, StateChange
from .codecs import InboundMessage, MessageEnvelope
from .config import LinkConfig
from .const import COMMON_SUBNETS, DEFAULT_PORT, PROBE_TIMEOUT, SCAN_BATCH_SIZE
from .coordinator import SyncCoordinator
from .endpoint import DeviceEndpoint
from .errors import SendRejectedError

_LOGGER = logging.getLogger(__name__)


class UsageError(Exception):
    """Command line input that cannot be acted on."""


def _setup_logging(debug: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if debug else logging.WARNING,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )


def _emit(args: argparse.Namespace, data: dict[str, Any], text: str) -> None:
    print(json.dumps(data) if args.json_output else text, flush=True)


def _load_config(**overrides: Any) -> LinkConfig:
    try:
        return LinkConfig.from_mapping(overrides)
    except ValueError as err:
        raise UsageError(str(err)) from err


def _parse_host(host: str, port: int) -> DeviceEndpoint:
    try:
        return DeviceEndpoint.parse(host, default_port=port)
    except ValueError as err:
        raise UsageError(f"HOST: {err}") from err


# ----------------------------------------------------------------------
# scan
# ----------------------------------------------------------------------
def cmd_scan(args: argparse.Namespace) -> int:
    """Look for controllers on the local network.

    Without ``--prefix`` the usual addresses are tried first and the common
    home subnets are scanned only when none of them answer.
    """

    config = _load_config(
        port=args.port, probe_timeout=args.timeout, scan_batch_size=args.batch_size
    )

    def _found(endpoint: DeviceEndpoint) -> None:
        if not args.json_output:
            print(f"  found {endpoint}", flush=True)

    async def _run() -> ScanResult:
        async with aiohttp.ClientSession() as session:
            scanner = NetworkScanner(
                port=config.port,
                batch_size=config.scan_batch_size,
                probe_timeout=config.probe_timeout,
                session=session,
            )
            if args.prefixes:
                return await scanner.scan_subnets(args.prefixes, on_found=_found)
            result = await scanner.quick_scan()
            if result or args.quick:
                return result
            return await scanner.scan_subnets(COMMON_SUBNETS, on_found=_found)

    try:
        result = asyncio.run(_run())
    except ValueError as err:
        raise UsageError(f"--prefix: {err}") from err

    if args.json_output:
        print(
            json.dumps(
                {
                    "devices": [endpoint.as_dict() for endpoint in result],
                    "cancelled": result.cancelled,
                }
            )
        )
        return 0
    if not result:
        print("No controllers found.")
        return 0
    print(f"Found {len(result)} controller(s):")
    for endpoint in result:
        print(f"  {endpoint.url}")
    return 0


# ----------------------------------------------------------------------
# monitor
# ----------------------------------------------------------------------
def cmd_monitor(args: argparse.Namespace) -> int:
    """Connect to a controller and print state changes and messages."""

    config = _load_config(port=args.port)
    endpoint = _parse_host(args.host, config.port)

    def _on_state(change: StateChange) -> None:
        _emit(
            args,
            {
                "event": "state",
                "previous": str(change.previous),
                "state": str(change.current),
                "reason": change.reason,
            },
            f"[{change.current}] {change.reason or ''}".rstrip(),
        )

    def _on_message(message: InboundMessage) -> None:
        if message.envelope is None:
            _emit(
                args,
                {
                    "event": "undecoded",
                    "raw": redact_text(message.raw),
                    "error": message.error,
                },
                f"<undecoded> {redact_text(message.raw)}",
            )
            return
        payload = redact_payload(message.envelope.payload)
        _emit(
            args,
            {"event": "message", "type": message.envelope.type, "payload": payload},
            f"{message.envelope.type}: {json.dumps(payload)}",
        )

    async def _run() -> None:
        coordinator = SyncCoordinator(config)
        coordinator.on_state_change(_on_state)
        coordinator.on_message(_on_message)
        try:
            coordinator.connect(endpoint)
            if args.duration > 0:
                await asyncio.sleep(args.duration)
            else:
                await asyncio.Event().wait()
        finally:
            await coordinator.close()

    try:
        asyncio.run(_run())
    except KeyboardInterrupt:
        _LOGGER.debug("Monitor interrupted")
    return 0


# ----------------------------------------------------------------------
# send
# ----------------------------------------------------------------------
def _build_envelope(message_type: str, payload: str | None) -> MessageEnvelope:
    try:
        body = json.loads(payload) if payload else {}
    except ValueError as err:
        raise UsageError(f"--payload: not valid JSON: {err}") from err
    if not isinstance(body, dict):
        raise UsageError("--payload: must be a JSON object")
    try:
        return MessageEnvelope(type=message_type, payload=body)
    except ValueError as err:
        raise UsageError(f"MESSAGE_TYPE: {err}") from err


def cmd_send(args: argparse.Namespace) -> int:
    """Send one command to a controller and print any replies."""

    envelope = _build_envelope(args.message_type, args.payload)
    config = _load_config(port=args.port, reconnect=False)
    endpoint = _parse_host(args.host, config.port)

    async def _run() -> list[InboundMessage]:
        coordinator = SyncCoordinator(config)
        settled = asyncio.Event()
        replies: list[InboundMessage] = []

        def _on_state(change: StateChange) -> None:
            if change.current in (
                ConnectionState.CONNECTED,
                ConnectionState.FAILED,
                ConnectionState.DISCONNECTED,
            ):
                settled.set()

        coordinator.on_state_change(_on_state)
        try:
            coordinator.connect(endpoint)
            async with asyncio.timeout(config.handshake_timeout + 1):
                await settled.wait()
            if not coordinator.status.is_connected:
                raise SendRejectedError(
                    f"could not connect to {endpoint}: {coordinator.status.last_error}"
                )
            coordinator.on_message(replies.append)
            coordinator.send(envelope, strict=True)
            # Let the writer flush before the link is torn down.
            await asyncio.sleep(args.wait if args.wait > 0 else 0.1)
        finally:
            await coordinator.close()
        return replies

    try:
        replies = asyncio.run(_run())
    except TimeoutError:
        print(f"Error: timed out connecting to {endpoint}", file=sys.stderr)
        return 1
    except SendRejectedError as err:
        print(f"Error: {err}", file=sys.stderr)
        return 1

    _emit(
        args,
        {"event": "sent", "type": envelope.type, "payload": redact_payload(envelope.payload)},
        f"Sent {envelope.type} to {endpoint}",
    )
    for reply in replies:
        if reply.envelope is None:
            raw = redact_text(reply.raw)
            _emit(args, {"event": "undecoded", "raw": raw}, f"<undecoded> {raw}")
            continue
        payload = redact_payload(reply.envelope.payload)
        _emit(
            args,
            {"event": "reply", "type": reply.envelope.type, "payload": payload},
            f"{reply.envelope.type}: {json.dumps(payload)}",
        )
    return 0


def build_parser() -> argparse.ArgumentParser:
    """Return the argument parser for the ``tanklink`` command."""

    parser = argparse.ArgumentParser(
        prog="tanklink", description="Water tank controller link tool"
    )
    parser.add_argument("--debug", action="store_true", help="Enable debug logging")
    parser.add_argument(
        "--json-output", action="store_true", help="Output in JSON format"
    )
    commands = parser.add_subparsers(dest="command", required=True)

    scan = commands.add_parser("scan", help="Look for controllers on the network")
    scan.add_argument(
        "--prefix",
        dest="prefixes",
        action="append",
        default=[],
        help="Network prefix to scan, e.g. 192.168.1 or 192.168.1.0/24",
    )
    scan.add_argument(
        "--quick", action="store_true", help="Only probe the usual controller addresses"
    )
    scan.add_argument("--port", type=int, default=DEFAULT_PORT)
    scan.add_argument(
        "--timeout", type=float, default=PROBE_TIMEOUT, help="Per-host probe timeout (secs)"
    )
    scan.add_argument("--batch-size", type=int, default=SCAN_BATCH_SIZE)
    scan.set_defaults(func=cmd_scan)

    monitor = commands.add_parser("monitor", help="Print state changes and messages")
    monitor.add_argument("host", help="Controller address, e.g. 192.168.1.100")
    monitor.add_argument("--port", type=int, default=DEFAULT_PORT)
    monitor.add_argument(
        "--duration",
        type=float,
        default=0.0,
        help="Seconds to watch before exiting (0 = until interrupted)",
    )
    monitor.set_defaults(func=cmd_monitor)

    send = commands.add_parser("send", help="Send one command to a controller")
    send.add_argument("host", help="Controller address, e.g. 192.168.1.100")
    send.add_argument("message_type", help="Message type, e.g. motor1On")
    send.add_argument("--payload", default=None, help="JSON object sent alongside the type")
    send.add_argument("--port", type=int, default=DEFAULT_PORT)
    send.add_argument(
        "--wait", type=float, default=0.0, help="Seconds to wait for replies after sending"
    )
    send.set_defaults(func=cmd_send)
    return parser


def main(argv: list[str] | None = None) -> int:
    """CLI entry point."""

    parser = build_parser()
    args = parser.parse_args(argv)
    _setup_logging(args.debug)
    try:
        return args.func(args)
    except UsageError as err:
        parser.error(str(err))


if __name__ == "__main__":
    raise SystemExit(main())
