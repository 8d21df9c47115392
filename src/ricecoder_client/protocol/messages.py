"""JSON-RPC 2.0 message model and streaming payload types.

A message is classified solely by the presence of ``id`` and ``method``:

    id + method     -> request
    id, no method   -> response
    method, no id   -> notification

Payloads of the streaming notifications are validated with pydantic models so
that a malformed server message is rejected at the edge instead of deep inside
the stream manager.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from ricecoder_client.errors import ErrorCode

JSONRPC_VERSION = "2.0"

# Streaming sub-protocol
STREAM_SUFFIX = "/stream"
STREAM_PREFIX = "stream/"
STREAM_CHUNK = "stream/chunk"
STREAM_COMPLETE = "stream/complete"
STREAM_ERROR = "stream/error"
STREAM_CANCEL = "stream/cancel"


class MessageKind(Enum):
    """Shape of a parsed JSON-RPC message."""

    REQUEST = "request"
    RESPONSE = "response"
    NOTIFICATION = "notification"
    INVALID = "invalid"


@dataclass
class JsonRpcMessage:
    """Parsed JSON-RPC message."""

    jsonrpc: str = JSONRPC_VERSION
    id: int | str | None = None
    method: str | None = None
    params: Any = None
    result: Any = None
    error: dict[str, Any] | None = None

    @property
    def kind(self) -> MessageKind:
        if self.id is not None:
            return MessageKind.REQUEST if self.method is not None else MessageKind.RESPONSE
        if self.method is not None:
            return MessageKind.NOTIFICATION
        return MessageKind.INVALID

    def is_request(self) -> bool:
        return self.kind is MessageKind.REQUEST

    def is_response(self) -> bool:
        return self.kind is MessageKind.RESPONSE

    def is_notification(self) -> bool:
        return self.kind is MessageKind.NOTIFICATION

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization.

        A response always carries exactly one of ``result`` or ``error``.
        """
        d: dict[str, Any] = {"jsonrpc": self.jsonrpc}
        if self.id is not None:
            d["id"] = self.id
        if self.method is not None:
            d["method"] = self.method
            if self.params is not None:
                d["params"] = self.params
        elif self.error is not None:
            d["error"] = self.error
        elif self.id is not None:
            d["result"] = self.result
        return d

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> JsonRpcMessage:
        """Parse from dictionary."""
        return cls(
            jsonrpc=data.get("jsonrpc", JSONRPC_VERSION),
            id=data.get("id"),
            method=data.get("method"),
            params=data.get("params"),
            result=data.get("result"),
            error=data.get("error"),
        )

    @classmethod
    def request(cls, request_id: int, method: str, params: Any = None) -> JsonRpcMessage:
        return cls(id=request_id, method=method, params=params)

    @classmethod
    def notification(cls, method: str, params: Any = None) -> JsonRpcMessage:
        return cls(method=method, params=params)

    @classmethod
    def error_response(
        cls, request_id: int | str | None, code: int, message: str
    ) -> JsonRpcMessage:
        return cls(id=request_id, error={"code": int(code), "message": message})


class WireModel(BaseModel):
    """Base model for wire payloads with populate_by_name enabled."""

    model_config = ConfigDict(populate_by_name=True)


class ErrorObject(WireModel):
    """JSON-RPC error object carried by a failed response."""

    code: int
    message: str
    data: Any = None


class StreamNotification(WireModel):
    """Common shape of every stream/* notification."""

    stream_id: str = Field(alias="streamId")


class StreamChunkParams(StreamNotification):
    """Params of ``stream/chunk``."""

    chunk: Any = None


class StreamCompleteParams(StreamNotification):
    """Params of ``stream/complete``."""


class StreamErrorParams(StreamNotification):
    """Params of ``stream/error``.

    The server may send a bare message string or a full error object.
    """

    error: ErrorObject | str = "stream failed"

    def to_error_object(self) -> ErrorObject:
        if isinstance(self.error, ErrorObject):
            return self.error
        return ErrorObject(code=ErrorCode.STREAM_ERROR, message=self.error)
