"""Settings record for the ricecoder client.

Field names are snake_case in Python and camelCase on the configuration
surface (YAML files, editor settings). Values are stored as given: nothing
here coerces or checks them, that is the validator's job.

Example settings.yaml:
    serverHost: localhost
    serverPort: 9000
    requestTimeout: 5000
    providerSelection: lsp-first
    logLevel: info
"""

from __future__ import annotations

import dataclasses
from dataclasses import dataclass, field
from typing import Any

DEFAULT_HOST = "localhost"
DEFAULT_PORT = 9000
DEFAULT_REQUEST_TIMEOUT = 5000  # milliseconds

PROVIDER_SELECTIONS = ("lsp-first", "configured-rules", "builtin", "generic")
LOG_LEVELS = ("error", "warn", "info", "debug")

# camelCase configuration key -> Settings attribute
FIELD_NAMES: dict[str, str] = {
    "enabled": "enabled",
    "serverHost": "server_host",
    "serverPort": "server_port",
    "requestTimeout": "request_timeout",
    "providerSelection": "provider_selection",
    "completionEnabled": "completion_enabled",
    "diagnosticsEnabled": "diagnostics_enabled",
    "hoverEnabled": "hover_enabled",
    "debugMode": "debug_mode",
    "logLevel": "log_level",
}

_ATTRIBUTE_NAMES = {attr: key for key, attr in FIELD_NAMES.items()}


@dataclass
class Settings:
    """Client configuration."""

    enabled: bool = True
    server_host: str = DEFAULT_HOST
    server_port: int = DEFAULT_PORT
    request_timeout: int = DEFAULT_REQUEST_TIMEOUT  # milliseconds
    provider_selection: str = "lsp-first"
    completion_enabled: bool = True
    diagnostics_enabled: bool = True
    hover_enabled: bool = True
    debug_mode: bool = False
    log_level: str = "info"

    # Unrecognized keys, kept so they survive a load/update round trip
    extra: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        """Return the settings keyed by their camelCase configuration names."""
        return {key: getattr(self, attr) for key, attr in FIELD_NAMES.items()}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Settings:
        """Build settings from camelCase or snake_case keys.

        Missing keys take their defaults; unknown keys go to ``extra``.
        """
        values: dict[str, Any] = {}
        extra: dict[str, Any] = {}
        for key, value in data.items():
            attr = FIELD_NAMES.get(key) or (key if key in _ATTRIBUTE_NAMES else None)
            if attr is None:
                extra[key] = value
            else:
                values[attr] = value
        return cls(**values, extra=extra)

    def replace(self, **changes: Any) -> Settings:
        """Return a copy with the given attributes (snake_case) changed."""
        return dataclasses.replace(self, **changes)


def normalize_keys(data: dict[str, Any]) -> dict[str, Any]:
    """Map snake_case keys to camelCase, leaving unknown keys untouched."""
    return {_ATTRIBUTE_NAMES.get(key, key): value for key, value in data.items()}
