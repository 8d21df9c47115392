"""Inbound message routing.

Responses go to the correlator, stream notifications to the stream manager,
and every other notification to subscribers of the generic notification event.
The router keeps no state of its own beyond its dispatch table.
"""

from __future__ import annotations

from collections.abc import Callable
from typing import Any

from ricecoder_client.correlator import Correlator
from ricecoder_client.errors import ErrorCode, RicecoderError
from ricecoder_client.events import EventEmitter, Subscription
from ricecoder_client.logging import get_logger
from ricecoder_client.protocol.messages import (
    STREAM_CHUNK,
    STREAM_COMPLETE,
    STREAM_ERROR,
    STREAM_PREFIX,
    JsonRpcMessage,
    MessageKind,
)
from ricecoder_client.streams import StreamManager

log = get_logger("router")

NOTIFICATION_EVENT = "notification"


class NotificationRouter:
    """Demultiplexes parsed inbound messages."""

    def __init__(
        self,
        correlator: Correlator,
        streams: StreamManager,
        reply: Callable[[JsonRpcMessage], None],
        *,
        events: EventEmitter | None = None,
    ) -> None:
        self._correlator = correlator
        self._reply = reply
        self._events = events if events is not None else EventEmitter()
        self._stream_handlers: dict[str, Callable[[Any], None]] = {
            STREAM_CHUNK: streams.handle_chunk,
            STREAM_COMPLETE: streams.handle_complete,
            STREAM_ERROR: streams.handle_error,
        }

    def route(self, msg: JsonRpcMessage) -> None:
        match msg.kind:
            case MessageKind.RESPONSE:
                self._correlator.handle_response(msg)
            case MessageKind.NOTIFICATION:
                self._dispatch_notification(msg.method or "", msg.params)
            case MessageKind.REQUEST:
                self._reject_request(msg)
            case MessageKind.INVALID:
                log.warning("Dropping message with neither id nor method: %r", msg.to_dict())

    def on_notification(self, callback: Callable[[str, Any], None]) -> Subscription:
        """Subscribe to notifications that are not part of the stream protocol."""
        return self._events.on(NOTIFICATION_EVENT, callback)

    def _dispatch_notification(self, method: str, params: Any) -> None:
        handler = self._stream_handlers.get(method)
        if handler is not None:
            handler(params)
            return

        if method.startswith(STREAM_PREFIX):
            log.warning("Dropping unknown stream notification: %s", method)
            return

        if self._events.emit(NOTIFICATION_EVENT, method, params) == 0:
            log.warning("Unhandled notification: %s", method)

    def _reject_request(self, msg: JsonRpcMessage) -> None:
        log.warning("Server sent unsupported request %s (id=%r)", msg.method, msg.id)
        try:
            self._reply(
                JsonRpcMessage.error_response(
                    msg.id, ErrorCode.METHOD_NOT_FOUND, f"Method not found: {msg.method}"
                )
            )
        except RicecoderError as e:
            log.warning("Could not answer request %r: %s", msg.id, e)
