"""Socket transport: one TCP connection, newline-framed JSON-RPC.

The transport owns the socket and its connection state. Inbound bytes are read
by a background task, split into lines by a LineBuffer and handed to the
message callback one parsed message at a time. A malformed line is logged and
dropped; the connection keeps going.

Any close, whether EOF, socket error or an explicit disconnect(), moves the
state to DISCONNECTED and invokes the close callback synchronously, before any
await, so owners can fail everything that was waiting on this connection.
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable
from enum import Enum

from ricecoder_client.errors import ConnectionLost, ProtocolError, RpcConnectionError
from ricecoder_client.logging import TRACE, get_logger
from ricecoder_client.protocol.framing import (
    CONTENT_ENCODING,
    LineBuffer,
    decode_line,
    encode_message,
)
from ricecoder_client.protocol.messages import JsonRpcMessage

log = get_logger("transport")

CONNECT_TIMEOUT = 10.0  # seconds
READ_SIZE = 64 * 1024

MessageHandler = Callable[[JsonRpcMessage], None]
CloseHandler = Callable[[ConnectionLost], None]


class ConnectionState(Enum):
    """Lifecycle state of a transport connection."""

    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"


class Transport:
    """Owns exactly one socket to the ricecoder server."""

    def __init__(
        self,
        host: str,
        port: int,
        *,
        on_message: MessageHandler,
        on_close: CloseHandler,
        connect_timeout: float = CONNECT_TIMEOUT,
    ) -> None:
        self.host = host
        self.port = port
        self.connect_timeout = connect_timeout
        self.state = ConnectionState.DISCONNECTED

        self._on_message = on_message
        self._on_close = on_close
        self._reader: asyncio.StreamReader | None = None
        self._writer: asyncio.StreamWriter | None = None
        self._reader_task: asyncio.Task[None] | None = None
        self._buffer = LineBuffer()

    @property
    def is_connected(self) -> bool:
        return self.state is ConnectionState.CONNECTED

    async def connect(self) -> None:
        """Open the socket and start the reader task.

        Raises:
            RpcConnectionError: If the peer refuses, the host cannot be
                resolved, or the connect timeout elapses.
        """
        if self.state is ConnectionState.CONNECTED:
            return
        if self.state is ConnectionState.CONNECTING:
            raise RpcConnectionError(f"Connection to {self.host}:{self.port} already in progress")

        self.state = ConnectionState.CONNECTING
        log.debug("Connecting to %s:%d", self.host, self.port)

        try:
            reader, writer = await asyncio.wait_for(
                asyncio.open_connection(self.host, self.port),
                timeout=self.connect_timeout,
            )
        except asyncio.TimeoutError as e:
            self.state = ConnectionState.DISCONNECTED
            raise RpcConnectionError(
                f"Connection to {self.host}:{self.port} timed out "
                f"after {self.connect_timeout:g}s"
            ) from e
        except OSError as e:
            self.state = ConnectionState.DISCONNECTED
            raise RpcConnectionError(
                f"Cannot connect to ricecoder server at {self.host}:{self.port}: {e}"
            ) from e

        if self.state is not ConnectionState.CONNECTING:
            # disconnect() was called while the connect was in flight
            writer.close()
            raise RpcConnectionError(f"Connection to {self.host}:{self.port} was closed")

        self._reader = reader
        self._writer = writer
        self._buffer.clear()
        self.state = ConnectionState.CONNECTED
        self._reader_task = asyncio.create_task(
            self._read_loop(reader), name=f"ricecoder-reader-{self.host}:{self.port}"
        )
        log.info("Connected to ricecoder server at %s:%d", self.host, self.port)

    def send(self, msg: JsonRpcMessage) -> None:
        """Frame and write one message.

        Raises:
            RpcConnectionError: If the transport is not connected.
            ProtocolError: If the message cannot be serialized.
        """
        writer = self._writer
        if self.state is not ConnectionState.CONNECTED or writer is None or writer.is_closing():
            raise RpcConnectionError("Not connected to ricecoder server")

        data = encode_message(msg)
        if log.isEnabledFor(TRACE):
            log.log(TRACE, "--> %s", data.decode(CONTENT_ENCODING).rstrip())
        writer.write(data)

    async def disconnect(self) -> None:
        """Close the connection. Always succeeds and is idempotent."""
        writer = self._writer
        task = self._reader_task

        self._close(ConnectionLost("Connection closed"))

        if task is not None and task is not asyncio.current_task():
            await asyncio.wait([task])
        if writer is not None:
            try:
                await writer.wait_closed()
            except OSError as e:
                log.debug("Error while closing socket: %s", e)

    async def _read_loop(self, reader: asyncio.StreamReader) -> None:
        reason = ConnectionLost("Connection closed by server")
        try:
            while True:
                data = await reader.read(READ_SIZE)
                if not data:
                    break
                self._feed(data)
        except OSError as e:
            log.warning("Socket error: %s", e)
            reason = ConnectionLost(f"Connection lost: {e}")
        self._close(reason)

    def _feed(self, data: bytes) -> None:
        try:
            lines = self._buffer.feed(data)
        except ProtocolError as e:
            log.warning("Dropping inbound data: %s", e)
            return

        for line in lines:
            if log.isEnabledFor(TRACE):
                log.log(TRACE, "<-- %s", line.decode(CONTENT_ENCODING, errors="replace"))
            try:
                msg = decode_line(line)
            except ProtocolError as e:
                log.warning("Dropping malformed line: %s", e)
                continue

            try:
                self._on_message(msg)
            except Exception:
                log.exception("Error handling inbound message")

    def _close(self, reason: ConnectionLost) -> None:
        if self.state is ConnectionState.DISCONNECTED and self._writer is None:
            return

        was_connected = self.state is ConnectionState.CONNECTED
        self.state = ConnectionState.DISCONNECTED

        writer, self._writer = self._writer, None
        task, self._reader_task = self._reader_task, None
        self._reader = None
        self._buffer.clear()

        if writer is not None:
            writer.close()
        if task is not None and task is not asyncio.current_task():
            task.cancel()

        if was_connected:
            log.info("Disconnected from %s:%d: %s", self.host, self.port, reason)
            self._on_close(reason)
