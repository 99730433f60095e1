"""Reconnect backoff policy for the controller link."""

from __future__ import annotations

from dataclasses import dataclass

from ..const import (
    MAX_RECONNECT_ATTEMPTS,
    RECONNECT_BASE_INTERVAL_MS,
    RECONNECT_MAX_INTERVAL_MS,
)


@dataclass(frozen=True, slots=True)
class ReconnectPolicy:
    """Exponential backoff: ``min(base * 2**attempt, max)`` milliseconds."""

    base_delay_ms: int = RECONNECT_BASE_INTERVAL_MS
    max_delay_ms: int = RECONNECT_MAX_INTERVAL_MS
    max_attempts: int = MAX_RECONNECT_ATTEMPTS

    def __post_init__(self) -> None:
        if self.base_delay_ms < 0:
            raise ValueError("base_delay_ms must not be negative")
        if self.max_delay_ms < self.base_delay_ms:
            raise ValueError("max_delay_ms must be >= base_delay_ms")
        if self.max_attempts < 0:
            raise ValueError("max_attempts must not be negative")

    def delay_ms(self, attempt: int) -> int:
        """Return the backoff before reconnect ``attempt`` (zero based)."""

        if attempt < 0:
            raise ValueError("attempt must not be negative")
        delay = self.base_delay_ms
        for _ in range(attempt):
            if delay >= self.max_delay_ms:
                break
            delay *= 2
        return min(delay, self.max_delay_ms)

    def delay(self, attempt: int) -> float:
        """Return the backoff in seconds."""

        return self.delay_ms(attempt) / 1000.0

    def allows(self, attempts_so_far: int) -> bool:
        """Return True when another reconnect attempt may be scheduled."""

        return attempts_so_far < self.max_attempts


__all__ = ["ReconnectPolicy"]
