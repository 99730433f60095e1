"""Codec helpers for controller websocket messages."""

from __future__ import annotations

from collections.abc import Mapping
import json
import logging
import time
from typing import Any

from pydantic import ValidationError

from ..backend.sanitize import redact_text
from ..const import BARE_COMMAND_TYPES
from ..errors import DecodeError
from .envelope_models import InboundMessage, MessageEnvelope

_LOGGER = logging.getLogger(__name__)


def encode(envelope: MessageEnvelope, *, bare_commands: bool = False) -> str:
    """Encode an envelope as websocket text.

    With ``bare_commands`` set, payload-less commands that older firmware only
    understands as bare words are sent as the word itself.
    """

    if bare_commands and not envelope.payload and envelope.type in BARE_COMMAND_TYPES:
        return envelope.type
    return json.dumps(envelope.to_wire(), separators=(",", ":"), ensure_ascii=False)


def decode(text: str | bytes) -> MessageEnvelope:
    """Decode websocket text into an envelope or raise :class:`DecodeError`."""

    if isinstance(text, (bytes, bytearray)):
        try:
            text = bytes(text).decode("utf-8")
        except UnicodeDecodeError as err:
            raise DecodeError(f"invalid UTF-8: {err}", repr(text)) from err

    try:
        data = json.loads(text)
    except (TypeError, ValueError) as err:
        raise DecodeError(f"invalid JSON: {err}", text) from err

    if not isinstance(data, dict):
        raise DecodeError(
            f"expected a JSON object, got {type(data).__name__}", text
        )
    if not isinstance(data.get("type"), str):
        raise DecodeError("missing 'type' field", text)

    try:
        return MessageEnvelope.from_wire(data)
    except ValidationError as err:
        raise DecodeError(f"invalid envelope: {err.errors()[0]['msg']}", text) from err


def decode_inbound(
    text: str | bytes, *, received_at: float | None = None
) -> InboundMessage:
    """Decode inbound text, tagging failures instead of raising."""

    timestamp = time.time() if received_at is None else received_at
    try:
        envelope = decode(text)
    except DecodeError as err:
        _LOGGER.debug(
            "WS: undecoded message (%s): %.120s", err, redact_text(err.raw)
        )
        return InboundMessage(raw=err.raw, error=str(err), received_at=timestamp)

    raw = text.decode("utf-8") if isinstance(text, (bytes, bytearray)) else text
    return InboundMessage(raw=raw, envelope=envelope, received_at=timestamp)


def coerce_envelope(message: Any) -> MessageEnvelope:
    """Return ``message`` as an envelope.

    Accepts envelopes, command objects with a ``to_envelope`` method, flat
    ``{"type": ...}`` mappings and bare type strings.
    """

    if isinstance(message, MessageEnvelope):
        return message
    to_envelope = getattr(message, "to_envelope", None)
    if callable(to_envelope):
        return to_envelope()
    if isinstance(message, str):
        return MessageEnvelope(type=message)
    if isinstance(message, Mapping):
        data = dict(message)
        if set(data) <= {"type", "payload"} and isinstance(data.get("payload"), Mapping):
            return MessageEnvelope(type=data.get("type"), payload=dict(data["payload"]))
        return MessageEnvelope.from_wire(data)
    raise TypeError(f"Unsupported message: {type(message).__name__}")


__all__ = ["coerce_envelope", "decode", "decode_inbound", "encode"]
