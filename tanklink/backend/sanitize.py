"""Shared sanitisation helpers for log output."""

from __future__ import annotations

from collections.abc import Mapping
import re
from typing import Any

_SECRET_KEYS = frozenset({"pass", "password", "psk", "token", "secret", "key"})
_PASS_FIELD_RE = re.compile(r'("(?:PASS|pass|password|psk|token)"\s*:\s*)"[^"]*"')


def redact_secret(value: Any) -> str:
    """Return a shortened representation of a secret-like value."""

    if value is None:
        return ""
    trimmed = str(value).strip()
    if not trimmed:
        return ""
    if len(trimmed) <= 4:
        return "***"
    return f"{trimmed[:1]}***{trimmed[-1:]}"


def redact_payload(payload: Mapping[str, Any]) -> dict[str, Any]:
    """Return a copy of ``payload`` with credential fields masked."""

    redacted: dict[str, Any] = {}
    for key, value in payload.items():
        if str(key).lower() in _SECRET_KEYS:
            redacted[key] = redact_secret(value)
        elif isinstance(value, Mapping):
            redacted[key] = redact_payload(value)
        else:
            redacted[key] = value
    return redacted


def redact_text(value: str | None) -> str:
    """Return websocket text with credential fields masked."""

    if not value:
        return ""
    return _PASS_FIELD_RE.sub(lambda match: f'{match.group(1)}"***"', str(value))


__all__ = ["redact_payload", "redact_secret", "redact_text"]
