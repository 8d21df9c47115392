"""Streams: long-running operations whose result arrives incrementally.

A stream is started with a regular request to ``<method>/stream`` carrying a
client-generated stream id. The server then sends zero or more
``stream/chunk`` notifications followed by exactly one terminal notification,
``stream/complete`` or ``stream/error``.

State machine (terminal states are one-way and fire their event once):

    CREATED -> ACTIVE -> COMPLETED
                      -> ERRORED
                      -> CANCELLED

CREATED can also go straight to ERRORED (the initiating request failed) or
CANCELLED. Cancellation is decided locally: cancel_stream() drops the context
and fires the cancel event before the ``stream/cancel`` request is even sent,
so chunks racing the cancel are never delivered.
"""

from __future__ import annotations

import asyncio
import json
from collections.abc import Callable
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from pydantic import ValidationError as PydanticValidationError

from ricecoder_client.correlator import Correlator
from ricecoder_client.errors import (
    ConnectionLost,
    RicecoderError,
    StreamError,
)
from ricecoder_client.events import EventEmitter, Subscription
from ricecoder_client.logging import get_logger
from ricecoder_client.protocol.messages import (
    STREAM_CANCEL,
    STREAM_SUFFIX,
    StreamChunkParams,
    StreamCompleteParams,
    StreamErrorParams,
)

log = get_logger("streams")

CHUNK_EVENT = "chunk"
COMPLETE_EVENT = "complete"
ERROR_EVENT = "error"
CANCEL_EVENT = "cancel"


class StreamState(Enum):
    CREATED = "created"
    ACTIVE = "active"
    COMPLETED = "completed"
    ERRORED = "errored"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in _TERMINAL_STATES


_TERMINAL_STATES = frozenset(
    {StreamState.COMPLETED, StreamState.ERRORED, StreamState.CANCELLED}
)


@dataclass(frozen=True)
class TextChunk:
    """A chunk delivered as a plain string."""

    text: str

    @property
    def value(self) -> str:
        return self.text


@dataclass(frozen=True)
class StructuredChunk:
    """A chunk delivered as a JSON object."""

    data: dict[str, Any]

    @property
    def value(self) -> dict[str, Any]:
        return self.data


Chunk = TextChunk | StructuredChunk


def to_chunk(payload: Any) -> Chunk:
    """Wrap a raw wire payload; non-object, non-string payloads become text."""
    if isinstance(payload, dict):
        return StructuredChunk(payload)
    if isinstance(payload, str):
        return TextChunk(payload)
    return TextChunk(_coerce(payload))


def _coerce(value: Any) -> str:
    if isinstance(value, str):
        return value
    if value is None or isinstance(value, (bool, list, dict)):
        return json.dumps(value, default=str)
    return str(value)


def chunk_text(chunk: Chunk) -> str:
    """Text contributed by one chunk to the combined output."""
    match chunk:
        case TextChunk(text=text):
            return text
        case StructuredChunk(data={"text": text}):
            return _coerce(text)
        case StructuredChunk(data=data):
            return _coerce(data)
    raise TypeError(f"Not a stream chunk: {chunk!r}")


def combine_chunks(chunks: list[Chunk]) -> str:
    return "".join(chunk_text(chunk) for chunk in chunks)


@dataclass
class StreamContext:
    """Client-side state of one stream."""

    stream_id: str
    method: str
    params: dict[str, Any] | None = None
    state: StreamState = StreamState.CREATED
    chunks: list[Chunk] = field(default_factory=list)
    error: RicecoderError | None = None

    @property
    def is_terminal(self) -> bool:
        return self.state.is_terminal

    @property
    def text(self) -> str:
        return combine_chunks(self.chunks)


class StreamManager:
    """Tracks every stream started on one connection."""

    def __init__(self, correlator: Correlator, *, events: EventEmitter | None = None) -> None:
        self._correlator = correlator
        self._streams: dict[str, StreamContext] = {}
        self._next_id = 1
        self._events = events if events is not None else EventEmitter()

    # -- operations ---------------------------------------------------------

    async def start_stream(
        self,
        method: str,
        params: dict[str, Any] | None = None,
        *,
        timeout: int | None = None,
    ) -> str:
        """Start a stream and return its id once the server has accepted it.

        Raises:
            StreamError: The initiating request failed. The stream is ERRORED
                and removed; the underlying failure is the ``__cause__``.
        """
        stream_id = f"stream-{self._next_id}"
        self._next_id += 1

        ctx = StreamContext(stream_id=stream_id, method=method, params=params)
        self._streams[stream_id] = ctx
        log.debug("Starting %s as %s", method, stream_id)

        payload = {**(params or {}), "stream_id": stream_id}
        try:
            await self._correlator.request(f"{method}{STREAM_SUFFIX}", payload, timeout=timeout)
        except asyncio.CancelledError:
            if not ctx.is_terminal:
                self._streams.pop(stream_id, None)
                self._finish(ctx, StreamState.CANCELLED)
                self._events.emit(CANCEL_EVENT, stream_id)
            raise
        except RicecoderError as e:
            self._streams.pop(stream_id, None)
            error = StreamError(
                f"Failed to start stream {method}: {e}",
                stream_id=stream_id,
            )
            if not ctx.is_terminal:
                ctx.error = error
                self._finish(ctx, StreamState.ERRORED)
                self._events.emit(ERROR_EVENT, stream_id, error)
            raise error from e

        if ctx.state is StreamState.CREATED:
            ctx.state = StreamState.ACTIVE
        return stream_id

    async def cancel_stream(self, stream_id: str) -> bool:
        """Cancel a live stream.

        Local state is removed and the cancel event fires before the
        ``stream/cancel`` request goes out; that request is best effort and its
        failure is only logged.

        Returns:
            True if a live stream was cancelled, False if the id was unknown or
            the stream had already finished.
        """
        ctx = self._streams.get(stream_id)
        if ctx is None:
            log.debug("cancel_stream: unknown stream %s", stream_id)
            return False
        if ctx.is_terminal:
            return False

        del self._streams[stream_id]
        self._finish(ctx, StreamState.CANCELLED)
        self._events.emit(CANCEL_EVENT, stream_id)

        try:
            await self._correlator.request(STREAM_CANCEL, {"stream_id": stream_id})
        except RicecoderError as e:
            log.warning("stream/cancel for %s failed: %s", stream_id, e)
        return True

    def get_combined_text(self, stream_id: str) -> str:
        """Concatenated text of a stream's chunks; "" for unknown ids."""
        ctx = self._streams.get(stream_id)
        if ctx is None:
            return ""
        return ctx.text

    def get_stream(self, stream_id: str) -> StreamContext | None:
        return self._streams.get(stream_id)

    def active_streams(self) -> list[str]:
        return [sid for sid, ctx in self._streams.items() if not ctx.is_terminal]

    def release(self, stream_id: str) -> bool:
        """Forget a finished stream. Live streams must be cancelled instead."""
        ctx = self._streams.get(stream_id)
        if ctx is None or not ctx.is_terminal:
            return False
        del self._streams[stream_id]
        return True

    def fail_all(self, reason: ConnectionLost) -> int:
        """Error every live stream because the connection went away."""
        failed = 0
        for ctx in list(self._streams.values()):
            if ctx.is_terminal:
                continue
            error = ConnectionLost(reason.message)
            ctx.error = error
            self._finish(ctx, StreamState.ERRORED)
            self._events.emit(ERROR_EVENT, ctx.stream_id, error)
            failed += 1
        if failed:
            log.info("Failed %d live stream(s): %s", failed, reason.message)
        return failed

    # -- inbound notifications ---------------------------------------------

    def handle_chunk(self, params: Any) -> None:
        try:
            note = StreamChunkParams.model_validate(params)
        except PydanticValidationError as e:
            log.warning("Dropping malformed stream/chunk: %s", e)
            return

        ctx = self._live(note.stream_id, "stream/chunk")
        if ctx is None:
            return

        chunk = to_chunk(note.chunk)
        ctx.chunks.append(chunk)
        self._events.emit(CHUNK_EVENT, ctx.stream_id, chunk)

    def handle_complete(self, params: Any) -> None:
        try:
            note = StreamCompleteParams.model_validate(params)
        except PydanticValidationError as e:
            log.warning("Dropping malformed stream/complete: %s", e)
            return

        ctx = self._live(note.stream_id, "stream/complete")
        if ctx is None:
            return

        self._finish(ctx, StreamState.COMPLETED)
        self._events.emit(COMPLETE_EVENT, ctx.stream_id, list(ctx.chunks))

    def handle_error(self, params: Any) -> None:
        try:
            note = StreamErrorParams.model_validate(params)
        except PydanticValidationError as e:
            log.warning("Dropping malformed stream/error: %s", e)
            return

        ctx = self._live(note.stream_id, "stream/error")
        if ctx is None:
            return

        obj = note.to_error_object()
        error = StreamError(
            obj.message, stream_id=ctx.stream_id, code=obj.code, data=obj.data
        )
        ctx.error = error
        self._finish(ctx, StreamState.ERRORED)
        self._events.emit(ERROR_EVENT, ctx.stream_id, error)

    # -- subscriptions ------------------------------------------------------

    def on_chunk(self, callback: Callable[[str, Chunk], None]) -> Subscription:
        return self._events.on(CHUNK_EVENT, callback)

    def on_complete(self, callback: Callable[[str, list[Chunk]], None]) -> Subscription:
        return self._events.on(COMPLETE_EVENT, callback)

    def on_error(self, callback: Callable[[str, RicecoderError], None]) -> Subscription:
        return self._events.on(ERROR_EVENT, callback)

    def on_cancel(self, callback: Callable[[str], None]) -> Subscription:
        return self._events.on(CANCEL_EVENT, callback)

    # -- internals ----------------------------------------------------------

    def _live(self, stream_id: str, what: str) -> StreamContext | None:
        ctx = self._streams.get(stream_id)
        if ctx is None:
            log.debug("Ignoring %s for unknown stream %s", what, stream_id)
            return None
        if ctx.is_terminal:
            log.debug("Ignoring %s for %s stream %s", what, ctx.state.value, stream_id)
            return None
        return ctx

    def _finish(self, ctx: StreamContext, state: StreamState) -> None:
        log.debug("Stream %s: %s -> %s", ctx.stream_id, ctx.state.value, state.value)
        ctx.state = state
