"""Tests for newline-delimited JSON framing."""

from __future__ import annotations

import json

import pytest

from ricecoder_client.errors import ProtocolError
from ricecoder_client.protocol.framing import LineBuffer, decode_line, encode_message
from ricecoder_client.protocol.messages import JsonRpcMessage, MessageKind


class TestEncodeMessage:
    """Tests for encode_message function."""

    def test_compact_json_with_newline(self) -> None:
        """Messages are written as compact JSON terminated by one newline."""
        data = encode_message(JsonRpcMessage.request(1, "hover", {"line": 10}))
        assert data == b'{"jsonrpc":"2.0","id":1,"method":"hover","params":{"line":10}}\n'

    def test_single_trailing_newline(self) -> None:
        """Embedded newlines in strings are escaped, only the delimiter is raw."""
        data = encode_message(JsonRpcMessage.notification("log", {"text": "a\nb"}))
        assert data.count(b"\n") == 1
        assert data.endswith(b"\n")

    def test_accepts_plain_dict(self) -> None:
        """A dict is framed as-is."""
        data = encode_message({"jsonrpc": "2.0", "method": "ping"})
        assert json.loads(data) == {"jsonrpc": "2.0", "method": "ping"}

    def test_unserializable_raises(self) -> None:
        """Params that JSON cannot represent raise ProtocolError."""
        with pytest.raises(ProtocolError, match="cannot be serialized"):
            encode_message(JsonRpcMessage.request(1, "x", {"obj": object()}))

    def test_unicode_is_utf8(self) -> None:
        """Non-ASCII text survives encoding."""
        data = encode_message(JsonRpcMessage.notification("log", {"text": "Hello, 世界!"}))
        assert json.loads(data.decode("utf-8"))["params"]["text"] == "Hello, 世界!"


class TestDecodeLine:
    """Tests for decode_line function."""

    def test_response(self) -> None:
        msg = decode_line(b'{"jsonrpc":"2.0","id":3,"result":[1,2]}')
        assert msg.kind is MessageKind.RESPONSE
        assert msg.id == 3
        assert msg.result == [1, 2]

    def test_invalid_json_raises(self) -> None:
        """Garbage raises ProtocolError."""
        with pytest.raises(ProtocolError, match="Invalid JSON"):
            decode_line(b"not valid json")

    def test_non_object_raises(self) -> None:
        """JSON that isn't an object raises error."""
        with pytest.raises(ProtocolError, match="must be an object"):
            decode_line(b"[1, 2, 3]")

    def test_invalid_utf8_raises(self) -> None:
        with pytest.raises(ProtocolError, match="Invalid UTF-8"):
            decode_line(b'{"a":"\xff"}')


class TestLineBuffer:
    """Tests for LineBuffer reassembly."""

    def test_complete_line(self) -> None:
        buf = LineBuffer()
        assert buf.feed(b'{"id":1}\n') == [b'{"id":1}']
        assert len(buf) == 0

    def test_partial_line_retained(self) -> None:
        """A line split across reads is yielded once complete."""
        buf = LineBuffer()
        assert buf.feed(b'{"jsonrpc":"2.0",') == []
        assert len(buf) > 0
        assert buf.feed(b'"id":1}\n') == [b'{"jsonrpc":"2.0","id":1}']
        assert len(buf) == 0

    def test_multiple_lines_in_one_read(self) -> None:
        """Several messages in one chunk come out in order."""
        buf = LineBuffer()
        lines = buf.feed(b'{"id":1}\n{"id":2}\n{"id":3')
        assert lines == [b'{"id":1}', b'{"id":2}']
        assert buf.feed(b"}\n") == [b'{"id":3}']

    def test_byte_at_a_time(self) -> None:
        """Reassembly does not depend on read boundaries."""
        buf = LineBuffer()
        data = b'{"method":"stream/chunk"}\n'
        lines: list[bytes] = []
        for i in range(len(data)):
            lines.extend(buf.feed(data[i : i + 1]))
        assert lines == [b'{"method":"stream/chunk"}']

    def test_blank_lines_skipped(self) -> None:
        buf = LineBuffer()
        assert buf.feed(b"\n\n  \n{}\n") == [b"{}"]

    def test_crlf_stripped(self) -> None:
        """A trailing carriage return is not part of the message."""
        buf = LineBuffer()
        assert buf.feed(b'{"id":1}\r\n') == [b'{"id":1}']

    def test_oversized_line_raises_and_clears(self) -> None:
        """An unterminated line past the limit is discarded."""
        buf = LineBuffer(max_line_size=8)
        with pytest.raises(ProtocolError, match="exceeds maximum"):
            buf.feed(b"0123456789")
        assert len(buf) == 0
        assert buf.feed(b"{}\n") == [b"{}"]

    def test_clear(self) -> None:
        buf = LineBuffer()
        buf.feed(b'{"partial":')
        buf.clear()
        assert buf.feed(b"{}\n") == [b"{}"]
