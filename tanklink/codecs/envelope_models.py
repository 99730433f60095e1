"""Pydantic models for controller websocket messages."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator


class MessageEnvelope(BaseModel):
    """A ``{type, payload}`` message exchanged with the controller.

    On the wire the payload fields sit next to ``type`` in a single flat JSON
    object, so ``payload`` may not carry a ``type`` key of its own.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    type: str
    payload: dict[str, Any] = Field(default_factory=dict)

    @field_validator("type")
    @classmethod
    def _require_type(cls, value: str) -> str:
        """Reject blank dispatch keys."""

        trimmed = value.strip()
        if not trimmed:
            raise ValueError("message type must be a non-empty string")
        return trimmed

    @field_validator("payload")
    @classmethod
    def _reject_nested_type(cls, value: dict[str, Any]) -> dict[str, Any]:
        """Keep payload keys from shadowing the dispatch key."""

        if "type" in value:
            raise ValueError("payload may not contain a 'type' key")
        return value

    def to_wire(self) -> dict[str, Any]:
        """Return the flat JSON object sent over the websocket."""

        return {"type": self.type, **self.payload}

    @classmethod
    def from_wire(cls, data: dict[str, Any]) -> MessageEnvelope:
        """Build an envelope from a flat JSON object."""

        payload = {key: value for key, value in data.items() if key != "type"}
        return cls(type=data.get("type"), payload=payload)


class InboundMessage(BaseModel):
    """Inbound websocket text, decoded when possible."""

    model_config = ConfigDict(frozen=True)

    raw: str
    envelope: MessageEnvelope | None = None
    error: str | None = None
    received_at: float = 0.0

    @property
    def decoded(self) -> bool:
        """Return True when the text decoded into an envelope."""

        return self.envelope is not None

    @property
    def type(self) -> str | None:
        """Return the envelope type, if decoded."""

        return self.envelope.type if self.envelope is not None else None


__all__ = ["InboundMessage", "MessageEnvelope"]
