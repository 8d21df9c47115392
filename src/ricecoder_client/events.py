"""Minimal in-process event bus with disposable subscriptions."""

from __future__ import annotations

from collections import defaultdict
from collections.abc import Callable
from typing import Any

from ricecoder_client.logging import get_logger

log = get_logger("events")

Listener = Callable[..., Any]


class Subscription:
    """Handle returned by EventEmitter.on(); dispose() unregisters."""

    def __init__(self, emitter: EventEmitter, event: str, listener: Listener) -> None:
        self._emitter = emitter
        self._event = event
        self._listener = listener
        self._disposed = False

    @property
    def disposed(self) -> bool:
        return self._disposed

    def dispose(self) -> None:
        if self._disposed:
            return
        self._disposed = True
        self._emitter._remove(self._event, self._listener)


class EventEmitter:
    """Synchronous fan-out of named events to registered listeners.

    Listeners run in registration order on the caller's stack. A listener that
    raises is logged and does not prevent delivery to the others.
    """

    def __init__(self) -> None:
        self._listeners: dict[str, list[Listener]] = defaultdict(list)

    def on(self, event: str, listener: Listener) -> Subscription:
        self._listeners[event].append(listener)
        return Subscription(self, event, listener)

    def emit(self, event: str, *args: Any) -> int:
        """Deliver an event; returns the number of listeners invoked."""
        listeners = list(self._listeners.get(event, ()))
        for listener in listeners:
            try:
                listener(*args)
            except Exception:
                log.exception("Listener for %r raised", event)
        return len(listeners)

    def listener_count(self, event: str) -> int:
        return len(self._listeners.get(event, ()))

    def clear(self) -> None:
        self._listeners.clear()

    def _remove(self, event: str, listener: Listener) -> None:
        listeners = self._listeners.get(event)
        if listeners and listener in listeners:
            listeners.remove(listener)
