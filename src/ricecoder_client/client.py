"""RicecoderClient: the protocol client used by editor integrations.

Wires one Transport, Correlator, StreamManager and NotificationRouter together
per connection. After a disconnect the next connect() builds all of them anew;
nothing but subscriptions and configuration carries over.

Example:
    async with RicecoderClient("localhost", 9000) as client:
        items = await client.request("completion", {"file": "main.rs", "line": 3})

        stream_id = await client.start_stream("chat", {"prompt": "explain"})
        client.on_stream_complete(lambda sid, chunks: print(client.get_combined_text(sid)))
"""

from __future__ import annotations

from collections.abc import Callable, Mapping
from dataclasses import dataclass
from typing import Any

from ricecoder_client.correlator import Correlator
from ricecoder_client.errors import ConnectionLost, RicecoderError, ValidationError
from ricecoder_client.events import EventEmitter, Subscription
from ricecoder_client.logging import get_logger
from ricecoder_client.protocol.messages import JsonRpcMessage
from ricecoder_client.router import NOTIFICATION_EVENT, NotificationRouter
from ricecoder_client.settings.schema import (
    DEFAULT_HOST,
    DEFAULT_PORT,
    DEFAULT_REQUEST_TIMEOUT,
    Settings,
)
from ricecoder_client.settings.validator import validate_field, validate_settings
from ricecoder_client.streams import (
    CANCEL_EVENT,
    CHUNK_EVENT,
    COMPLETE_EVENT,
    ERROR_EVENT,
    Chunk,
    StreamContext,
    StreamManager,
)
from ricecoder_client.transport import CONNECT_TIMEOUT, ConnectionState, Transport

log = get_logger("client")

DISCONNECT_EVENT = "disconnect"


@dataclass
class _Session:
    """Per-connection components; discarded as a whole on reconnect."""

    transport: Transport
    correlator: Correlator
    streams: StreamManager
    router: NotificationRouter
    closed: bool = False


class RicecoderClient:
    """Client for the ricecoder backend over one persistent socket."""

    def __init__(
        self,
        host: str = DEFAULT_HOST,
        port: int = DEFAULT_PORT,
        request_timeout: int = DEFAULT_REQUEST_TIMEOUT,
        *,
        connect_timeout: float = CONNECT_TIMEOUT,
    ) -> None:
        self._host = host
        self._port = port
        self._connect_timeout = connect_timeout
        self._request_timeout = _checked_timeout(request_timeout)

        self._events = EventEmitter()
        self._session = self._new_session()

    @classmethod
    def from_settings(
        cls,
        settings: Settings | Mapping[str, Any],
        *,
        connect_timeout: float = CONNECT_TIMEOUT,
    ) -> RicecoderClient:
        """Build a client from validated settings.

        Raises:
            ValidationError: If the settings are invalid. Nothing touches the
                network in that case.
        """
        result = validate_settings(settings)
        if not result.valid:
            raise ValidationError(result)
        for warning in result.warnings:
            log.warning("Settings warning: %s", warning)

        if not isinstance(settings, Settings):
            settings = Settings.from_dict(dict(settings))
        return cls(
            settings.server_host,
            settings.server_port,
            settings.request_timeout,
            connect_timeout=connect_timeout,
        )

    # -- connection ---------------------------------------------------------

    @property
    def host(self) -> str:
        return self._host

    @property
    def port(self) -> int:
        return self._port

    @property
    def state(self) -> ConnectionState:
        return self._session.transport.state

    @property
    def is_connected(self) -> bool:
        return self._session.transport.is_connected

    @property
    def request_timeout(self) -> int:
        return self._request_timeout

    def set_request_timeout(self, timeout_ms: int) -> None:
        """Change the default request deadline (milliseconds).

        Raises:
            ValidationError: If timeout_ms is outside 100..300000.
        """
        self._request_timeout = _checked_timeout(timeout_ms)
        self._session.correlator.request_timeout = timeout_ms

    async def connect(self) -> None:
        """Connect to the server.

        Raises:
            RpcConnectionError: Connection refused or timed out.
        """
        if self._session.closed:
            self._session = self._new_session()
        await self._session.transport.connect()

    async def disconnect(self) -> None:
        """Disconnect, failing everything still outstanding. Idempotent."""
        await self._session.transport.disconnect()

    async def __aenter__(self) -> RicecoderClient:
        await self.connect()
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.disconnect()

    # -- requests -----------------------------------------------------------

    async def request(
        self,
        method: str,
        params: Any = None,
        *,
        timeout: int | None = None,
    ) -> Any:
        """Send a request and wait for its result.

        Raises:
            RemoteError: The server answered with an error object.
            RequestTimeoutError: No response within the deadline.
            ConnectionLost: The connection closed before the response.
            RpcConnectionError: The client is not connected.
        """
        return await self._session.correlator.request(method, params, timeout=timeout)

    def notify(self, method: str, params: Any = None) -> bool:
        """Send a notification; a no-op returning False when not connected."""
        return self._session.correlator.notify(method, params)

    @property
    def pending_requests(self) -> int:
        return self._session.correlator.pending_count

    # -- streams ------------------------------------------------------------

    async def start_stream(
        self,
        method: str,
        params: dict[str, Any] | None = None,
        *,
        timeout: int | None = None,
    ) -> str:
        """Start a stream; see StreamManager.start_stream."""
        return await self._session.streams.start_stream(method, params, timeout=timeout)

    async def cancel_stream(self, stream_id: str) -> bool:
        return await self._session.streams.cancel_stream(stream_id)

    def get_combined_text(self, stream_id: str) -> str:
        """Text of a stream's chunks so far.

        Completed and errored streams stay readable until release_stream()
        is called or the client reconnects.
        """
        return self._session.streams.get_combined_text(stream_id)

    def get_stream(self, stream_id: str) -> StreamContext | None:
        return self._session.streams.get_stream(stream_id)

    def release_stream(self, stream_id: str) -> bool:
        """Forget a finished stream; False if it is unknown or still live."""
        return self._session.streams.release(stream_id)

    def active_streams(self) -> list[str]:
        return self._session.streams.active_streams()

    # -- subscriptions ------------------------------------------------------

    def on_notification(self, callback: Callable[[str, Any], None]) -> Subscription:
        return self._events.on(NOTIFICATION_EVENT, callback)

    def on_stream_chunk(self, callback: Callable[[str, Chunk], None]) -> Subscription:
        return self._events.on(CHUNK_EVENT, callback)

    def on_stream_complete(self, callback: Callable[[str, list[Chunk]], None]) -> Subscription:
        return self._events.on(COMPLETE_EVENT, callback)

    def on_stream_error(self, callback: Callable[[str, RicecoderError], None]) -> Subscription:
        return self._events.on(ERROR_EVENT, callback)

    def on_stream_cancelled(self, callback: Callable[[str], None]) -> Subscription:
        return self._events.on(CANCEL_EVENT, callback)

    def on_disconnect(self, callback: Callable[[ConnectionLost], None]) -> Subscription:
        return self._events.on(DISCONNECT_EVENT, callback)

    # -- internals ----------------------------------------------------------

    def _new_session(self) -> _Session:
        session: _Session

        def on_message(msg: JsonRpcMessage) -> None:
            session.router.route(msg)

        def on_close(reason: ConnectionLost) -> None:
            self._handle_close(session, reason)

        transport = Transport(
            self._host,
            self._port,
            on_message=on_message,
            on_close=on_close,
            connect_timeout=self._connect_timeout,
        )
        correlator = Correlator(transport, request_timeout=self._request_timeout)
        streams = StreamManager(correlator, events=self._events)
        router = NotificationRouter(correlator, streams, transport.send, events=self._events)
        session = _Session(transport, correlator, streams, router)
        return session

    def _handle_close(self, session: _Session, reason: ConnectionLost) -> None:
        session.closed = True
        session.correlator.fail_all(reason)
        session.streams.fail_all(reason)
        self._events.emit(DISCONNECT_EVENT, reason)


def _checked_timeout(timeout_ms: int) -> int:
    result = validate_field("requestTimeout", timeout_ms)
    if not result.valid:
        raise ValidationError(result)
    return timeout_ms
