"""Test doubles: an in-memory transport and a loopback JSON-RPC server."""

from __future__ import annotations

import asyncio
import json
from dataclasses import dataclass, field
from typing import Any

from ricecoder_client.errors import RpcConnectionError
from ricecoder_client.protocol.messages import JsonRpcMessage


@dataclass
class FakeTransport:
    """Records outbound messages instead of writing them to a socket."""

    is_connected: bool = True
    sent: list[JsonRpcMessage] = field(default_factory=list)
    fail_methods: set[str] = field(default_factory=set)

    def send(self, msg: JsonRpcMessage) -> None:
        if not self.is_connected:
            raise RpcConnectionError("Not connected to ricecoder server")
        if msg.method in self.fail_methods:
            raise RpcConnectionError(f"send failed for {msg.method}")
        self.sent.append(msg)

    def last(self, method: str | None = None) -> JsonRpcMessage:
        """Most recent outbound message, optionally filtered by method."""
        for msg in reversed(self.sent):
            if method is None or msg.method == method:
                return msg
        raise AssertionError(f"no message sent for {method!r}")


def response(request_id: int | str | None, result: Any = None) -> JsonRpcMessage:
    return JsonRpcMessage(id=request_id, result=result)


def error_response(request_id: int, code: int, message: str, data: Any = None) -> JsonRpcMessage:
    error: dict[str, Any] = {"code": code, "message": message}
    if data is not None:
        error["data"] = data
    return JsonRpcMessage(id=request_id, error=error)


def notification(method: str, params: Any = None) -> JsonRpcMessage:
    return JsonRpcMessage(method=method, params=params)


@dataclass
class FakeServer:
    """Newline-delimited JSON-RPC server bound to 127.0.0.1.

    Every message a client sends lands in ``received``; tests answer with
    send(), send_raw() or drop the connection with close_connections().
    """

    host: str = "127.0.0.1"
    port: int = 0
    received: asyncio.Queue[dict[str, Any]] = field(default_factory=asyncio.Queue)
    _server: asyncio.Server | None = field(default=None, init=False)
    _writers: list[asyncio.StreamWriter] = field(default_factory=list, init=False)
    _connected: asyncio.Event = field(default_factory=asyncio.Event, init=False)

    async def start(self) -> None:
        self._server = await asyncio.start_server(self._handle, self.host, 0)
        self.port = self._server.sockets[0].getsockname()[1]

    async def stop(self) -> None:
        await self.close_connections()
        if self._server is not None:
            self._server.close()
            await self._server.wait_closed()
            self._server = None

    async def wait_connected(self, timeout: float = 2.0) -> None:
        await asyncio.wait_for(self._connected.wait(), timeout=timeout)

    async def next_message(self, timeout: float = 2.0) -> dict[str, Any]:
        return await asyncio.wait_for(self.received.get(), timeout=timeout)

    async def expect(self, method: str, timeout: float = 2.0) -> dict[str, Any]:
        """Next message, asserting its method."""
        msg = await self.next_message(timeout)
        assert msg.get("method") == method, msg
        return msg

    async def send(self, msg: dict[str, Any]) -> None:
        await self.send_raw(json.dumps(msg, separators=(",", ":")).encode() + b"\n")

    async def send_raw(self, data: bytes) -> None:
        writer = self._writers[-1]
        writer.write(data)
        await writer.drain()

    async def reply(self, request: dict[str, Any], result: Any = None) -> None:
        await self.send({"jsonrpc": "2.0", "id": request["id"], "result": result})

    async def notify(self, method: str, params: Any = None) -> None:
        await self.send({"jsonrpc": "2.0", "method": method, "params": params})

    async def close_connections(self) -> None:
        writers, self._writers = self._writers, []
        for writer in writers:
            writer.close()
        for writer in writers:
            try:
                await writer.wait_closed()
            except OSError:
                pass
        self._connected.clear()

    async def _handle(self, reader: asyncio.StreamReader, writer: asyncio.StreamWriter) -> None:
        self._writers.append(writer)
        self._connected.set()
        while True:
            try:
                line = await reader.readline()
            except OSError:
                break
            if not line:
                break
            try:
                await self.received.put(json.loads(line))
            except json.JSONDecodeError:
                await self.received.put({"raw": line.decode(errors="replace")})
