"""Newline-delimited JSON framing.

Each message on the wire is one compact JSON object followed by a single
``\\n``. Inbound bytes may arrive split at arbitrary points, so a LineBuffer
accumulates them, yields every complete line, and keeps the trailing partial
line for the next read.

Wire Format:
    {"jsonrpc":"2.0","id":1,"method":"completion","params":{...}}\\n
    {"jsonrpc":"2.0","method":"stream/chunk","params":{...}}\\n
"""

from __future__ import annotations

import json
from typing import Any

from ricecoder_client.errors import ProtocolError
from ricecoder_client.protocol.messages import JsonRpcMessage

CONTENT_ENCODING = "utf-8"
DELIMITER = b"\n"

# A single line larger than this is treated as a framing failure.
MAX_LINE_SIZE = 10 * 1024 * 1024


def encode_message(msg: JsonRpcMessage | dict[str, Any]) -> bytes:
    """Serialize a message to its framed wire form.

    Raises:
        ProtocolError: If the message cannot be serialized to JSON.
    """
    data = msg.to_dict() if isinstance(msg, JsonRpcMessage) else msg
    try:
        body = json.dumps(data, separators=(",", ":"))
    except (TypeError, ValueError) as e:
        raise ProtocolError(f"Message cannot be serialized to JSON: {e}") from e
    return body.encode(CONTENT_ENCODING) + DELIMITER


def decode_line(line: bytes) -> JsonRpcMessage:
    """Parse one complete line (without delimiter) into a message.

    Raises:
        ProtocolError: If the line is not valid UTF-8 JSON or not an object.
    """
    try:
        text = line.decode(CONTENT_ENCODING)
    except UnicodeDecodeError as e:
        raise ProtocolError(f"Invalid UTF-8 in message: {e}") from e

    try:
        data = json.loads(text)
    except json.JSONDecodeError as e:
        raise ProtocolError(f"Invalid JSON in message: {e}") from e

    if not isinstance(data, dict):
        raise ProtocolError(
            f"JSON-RPC message must be an object, got {type(data).__name__}"
        )

    return JsonRpcMessage.from_dict(data)


class LineBuffer:
    """Accumulates inbound bytes and splits them into complete lines."""

    def __init__(self, max_line_size: int = MAX_LINE_SIZE) -> None:
        self._buffer = bytearray()
        self._max_line_size = max_line_size

    def __len__(self) -> int:
        return len(self._buffer)

    def feed(self, data: bytes) -> list[bytes]:
        """Append data and return every complete, non-blank line.

        Raises:
            ProtocolError: If the retained partial line exceeds the size limit.
                The buffer is cleared so that reading can resume at the next
                delimiter.
        """
        self._buffer.extend(data)

        lines: list[bytes] = []
        while True:
            index = self._buffer.find(DELIMITER)
            if index == -1:
                break
            line = bytes(self._buffer[:index])
            del self._buffer[: index + 1]
            line = line.rstrip(b"\r")
            if line.strip():
                lines.append(line)

        if len(self._buffer) > self._max_line_size:
            size = len(self._buffer)
            self._buffer.clear()
            raise ProtocolError(f"Line size {size} exceeds maximum {self._max_line_size}")

        return lines

    def clear(self) -> None:
        self._buffer.clear()
