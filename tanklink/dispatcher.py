"""Typed listener registries for connection events."""

from __future__ import annotations

from collections.abc import Callable
import logging
from typing import Generic, TypeVar

_LOGGER = logging.getLogger(__name__)

_PayloadT = TypeVar("_PayloadT")

Listener = Callable[[_PayloadT], None]
Unsubscribe = Callable[[], None]


class Signal(Generic[_PayloadT]):
    """A single event channel with any number of listeners.

    Each dispatch delivers to a snapshot of the listeners registered when it
    started; listeners added or removed by a callback take effect on the next
    dispatch. A failing listener is logged and does not stop delivery.
    """

    def __init__(self, name: str) -> None:
        self.name = name
        self._listeners: list[Listener[_PayloadT]] = []

    def connect(self, listener: Listener[_PayloadT]) -> Unsubscribe:
        """Register ``listener`` and return a callable that removes it."""

        if not callable(listener):
            raise TypeError(f"{self.name} listener must be callable")
        self._listeners.append(listener)

        def _remove() -> None:
            try:
                self._listeners.remove(listener)
            except ValueError:
                pass

        return _remove

    def send(self, payload: _PayloadT) -> None:
        """Deliver ``payload`` to every listener registered at call time."""

        for listener in tuple(self._listeners):
            try:
                listener(payload)
            except Exception:
                _LOGGER.exception("Error in %s listener %r", self.name, listener)

    def clear(self) -> None:
        """Drop every registered listener."""

        self._listeners.clear()

    def __len__(self) -> int:
        return len(self._listeners)


__all__ = ["Listener", "Signal", "Unsubscribe"]
