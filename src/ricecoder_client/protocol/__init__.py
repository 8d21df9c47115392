"""Wire protocol: JSON-RPC message model and newline framing."""

from ricecoder_client.protocol.framing import (
    LineBuffer,
    decode_line,
    encode_message,
)
from ricecoder_client.protocol.messages import (
    STREAM_CANCEL,
    STREAM_CHUNK,
    STREAM_COMPLETE,
    STREAM_ERROR,
    ErrorObject,
    JsonRpcMessage,
    MessageKind,
    StreamChunkParams,
    StreamCompleteParams,
    StreamErrorParams,
)

__all__ = [
    "JsonRpcMessage",
    "MessageKind",
    "ErrorObject",
    "StreamChunkParams",
    "StreamCompleteParams",
    "StreamErrorParams",
    "STREAM_CHUNK",
    "STREAM_COMPLETE",
    "STREAM_ERROR",
    "STREAM_CANCEL",
    "LineBuffer",
    "decode_line",
    "encode_message",
]
