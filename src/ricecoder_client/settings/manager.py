"""Holds the active client settings and gates every change through validation."""

from __future__ import annotations

from collections.abc import Callable, Mapping
from pathlib import Path
from typing import Any

from ricecoder_client.errors import ValidationError
from ricecoder_client.events import EventEmitter, Subscription
from ricecoder_client.logging import get_logger
from ricecoder_client.settings.loader import load_settings
from ricecoder_client.settings.schema import Settings, normalize_keys
from ricecoder_client.settings.validator import ValidationResult, validate_settings

log = get_logger("settings")

_CHANGED = "changed"


class SettingsManager:
    """Current settings plus change notification.

    Invalid settings are never applied: update_settings() and apply() raise
    ValidationError and leave the current settings untouched.
    """

    def __init__(self, settings: Settings | None = None) -> None:
        initial = settings if settings is not None else Settings()
        result = validate_settings(initial)
        if not result.valid:
            raise ValidationError(result)
        self._settings = initial
        self._events = EventEmitter()

    def get_settings(self) -> Settings:
        """Return a copy of the current settings."""
        return self._settings.replace(extra=dict(self._settings.extra))

    def validate(self, settings: Settings | Mapping[str, Any]) -> ValidationResult:
        return validate_settings(settings)

    def update_settings(self, changes: Mapping[str, Any]) -> ValidationResult:
        """Apply a partial update (camelCase or snake_case keys).

        Raises:
            ValidationError: If the resulting settings are invalid.
        """
        data = {**self._settings.extra, **self._settings.to_dict()}
        data.update(normalize_keys(dict(changes)))
        return self.apply(Settings.from_dict(data))

    def apply(self, settings: Settings) -> ValidationResult:
        """Replace the current settings wholesale.

        Raises:
            ValidationError: If settings are invalid.
        """
        result = validate_settings(settings)
        if not result.valid:
            log.warning("Rejected settings change: %s", ", ".join(result.fields()))
            raise ValidationError(result)

        for warning in result.warnings:
            log.warning("Settings warning: %s", warning)

        if settings == self._settings:
            return result

        self._settings = settings
        self._events.emit(_CHANGED, self.get_settings())
        return result

    def reload(self, project_root: str | Path | None = None) -> Settings:
        """Reload from settings files and environment, then apply."""
        self.apply(load_settings(project_root))
        return self.get_settings()

    def on_settings_changed(self, callback: Callable[[Settings], None]) -> Subscription:
        return self._events.on(_CHANGED, callback)

    def dispose(self) -> None:
        self._events.clear()
