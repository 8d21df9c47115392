"""ricecoder_client: JSON-RPC client for the ricecoder backend.

Provides the connection, request/response correlation, notification routing,
streaming and settings validation used by editor integrations.

Usage:
    from ricecoder_client import RicecoderClient

    async with RicecoderClient("localhost", 9000) as client:
        result = await client.request("hover", {"file": "lib.rs", "line": 10})
"""

__version__ = "0.1.0"

from ricecoder_client.client import RicecoderClient
from ricecoder_client.errors import (
    ConnectionLost,
    ErrorCode,
    ProtocolError,
    RemoteError,
    RequestTimeoutError,
    RicecoderError,
    RpcConnectionError,
    SettingsFileError,
    StreamError,
    ValidationError,
)
from ricecoder_client.events import Subscription
from ricecoder_client.settings import (
    Settings,
    SettingsManager,
    ValidationIssue,
    ValidationResult,
    load_settings,
    validate_settings,
)
from ricecoder_client.streams import (
    Chunk,
    StreamContext,
    StreamState,
    StructuredChunk,
    TextChunk,
)
from ricecoder_client.transport import ConnectionState

__all__ = [
    "__version__",
    # Client
    "RicecoderClient",
    "ConnectionState",
    "Subscription",
    # Streams
    "Chunk",
    "StreamContext",
    "StreamState",
    "StructuredChunk",
    "TextChunk",
    # Settings
    "Settings",
    "SettingsManager",
    "ValidationIssue",
    "ValidationResult",
    "load_settings",
    "validate_settings",
    # Errors
    "ErrorCode",
    "RicecoderError",
    "RpcConnectionError",
    "ConnectionLost",
    "RequestTimeoutError",
    "ProtocolError",
    "RemoteError",
    "SettingsFileError",
    "StreamError",
    "ValidationError",
]
