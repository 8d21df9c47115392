"""Exception hierarchy for the ricecoder protocol client.

Every error a caller can observe derives from RicecoderError and carries the
JSON-RPC error code it maps to on the wire. Transport-level failures are
converted into these types at the point of detection, so an awaiting caller
always receives a typed error instead of hanging.
"""

from __future__ import annotations

from enum import IntEnum
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from ricecoder_client.settings.validator import ValidationResult


class ErrorCode(IntEnum):
    """JSON-RPC error codes, standard and ricecoder-specific."""

    PARSE_ERROR = -32700
    INVALID_REQUEST = -32600
    METHOD_NOT_FOUND = -32601
    INVALID_PARAMS = -32602
    INTERNAL_ERROR = -32603

    CONNECTION_ERROR = 1000
    TIMEOUT = 1001
    STREAM_ERROR = 1002
    CONFIG_ERROR = 1003


class RicecoderError(Exception):
    """Base class for all client errors."""

    code: int = ErrorCode.INTERNAL_ERROR

    def __init__(self, message: str, *, code: int | None = None) -> None:
        super().__init__(message)
        self.message = message
        if code is not None:
            self.code = code


class RpcConnectionError(RicecoderError, ConnectionError):
    """The connection could not be established or is not available."""

    code = ErrorCode.CONNECTION_ERROR


class ConnectionLost(RpcConnectionError):
    """The connection closed while an operation was outstanding."""


class RequestTimeoutError(RicecoderError, TimeoutError):
    """No response arrived within the request deadline."""

    code = ErrorCode.TIMEOUT

    def __init__(self, method: str, request_id: int, timeout_ms: int) -> None:
        super().__init__(
            f"Request {request_id} ({method}) timed out after {timeout_ms}ms"
        )
        self.method = method
        self.request_id = request_id
        self.timeout_ms = timeout_ms


class ProtocolError(RicecoderError):
    """An inbound line could not be parsed as a JSON-RPC message."""

    code = ErrorCode.PARSE_ERROR


class RemoteError(RicecoderError):
    """The server answered a request with a JSON-RPC error object."""

    def __init__(self, code: int, message: str, data: Any = None) -> None:
        super().__init__(message, code=code)
        self.data = data

    def __str__(self) -> str:
        return f"[{self.code}] {self.message}"


class StreamError(RicecoderError):
    """A single stream failed, as reported by the server or the client."""

    code = ErrorCode.STREAM_ERROR

    def __init__(
        self,
        message: str,
        *,
        stream_id: str | None = None,
        code: int | None = None,
        data: Any = None,
    ) -> None:
        super().__init__(message, code=code)
        self.stream_id = stream_id
        self.data = data


class SettingsFileError(RicecoderError):
    """A settings file exists but is not a YAML mapping."""

    code = ErrorCode.CONFIG_ERROR

    def __init__(self, path: object, reason: str) -> None:
        super().__init__(f"{path}: {reason}")
        self.path = path
        self.reason = reason


class ValidationError(RicecoderError, ValueError):
    """Settings failed validation and must not be applied."""

    code = ErrorCode.CONFIG_ERROR

    def __init__(self, result: ValidationResult) -> None:
        fields = ", ".join(issue.field for issue in result.errors)
        super().__init__(f"Invalid settings: {fields}")
        self.result = result

    @property
    def errors(self) -> list[Any]:
        return list(self.result.errors)
