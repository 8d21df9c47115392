"""Settings file loading.

Handles:
- YAML file parsing (user and project layers), flattened key by key
- RICECODER_* environment variable overrides
- Validation before anything is handed to the client
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any

import yaml

from ricecoder_client.errors import SettingsFileError, ValidationError
from ricecoder_client.logging import get_logger
from ricecoder_client.settings.paths import get_settings_paths
from ricecoder_client.settings.schema import Settings, normalize_keys
from ricecoder_client.settings.validator import validate_settings

log = get_logger("settings")

# Environment variable -> (configuration key, value kind)
ENV_OVERRIDES: dict[str, tuple[str, str]] = {
    "RICECODER_ENABLED": ("enabled", "bool"),
    "RICECODER_SERVER_HOST": ("serverHost", "str"),
    "RICECODER_SERVER_PORT": ("serverPort", "int"),
    "RICECODER_REQUEST_TIMEOUT": ("requestTimeout", "int"),
    "RICECODER_PROVIDER_SELECTION": ("providerSelection", "str"),
    "RICECODER_DEBUG": ("debugMode", "bool"),
    "RICECODER_LOG_LEVEL": ("logLevel", "str"),
}

_TRUE = {"1", "true", "yes", "on"}
_FALSE = {"0", "false", "no", "off"}


def read_settings_file(path: Path) -> dict[str, Any]:
    """Parse one settings file into a camelCase layer.

    A missing or empty file is an empty layer.

    Raises:
        SettingsFileError: The file cannot be read, is not valid YAML, or its
            top level is not a mapping.
    """
    try:
        text = path.read_text(encoding="utf-8")
    except FileNotFoundError:
        return {}
    except OSError as e:
        raise SettingsFileError(path, f"cannot be read ({e.strerror or e})") from e

    try:
        data = yaml.safe_load(text)
    except yaml.YAMLError as e:
        raise SettingsFileError(path, f"invalid YAML: {e}") from e

    if data is None:
        return {}
    if not isinstance(data, dict):
        raise SettingsFileError(
            path, f"top level must be a mapping of settings, got {type(data).__name__}"
        )
    return normalize_keys(data)


def merge_layers(*layers: dict[str, Any]) -> dict[str, Any]:
    """Flatten layers into one record; later layers win key by key.

    A null value leaves the lower layer's value in place, so a file can
    mention a key without overriding it.
    """
    merged: dict[str, Any] = {}
    for layer in layers:
        merged.update((key, value) for key, value in layer.items() if value is not None)
    return merged


def _parse_env_value(raw: str, kind: str) -> Any:
    # Unparseable values are passed through so the validator reports them.
    if kind == "int":
        try:
            return int(raw)
        except ValueError:
            return raw
    if kind == "bool":
        lowered = raw.strip().lower()
        if lowered in _TRUE:
            return True
        if lowered in _FALSE:
            return False
        return raw
    return raw


def env_overrides(environ: dict[str, str] | None = None) -> dict[str, Any]:
    """Build a settings layer from RICECODER_* environment variables."""
    env = os.environ if environ is None else environ
    overrides: dict[str, Any] = {}
    for var, (key, kind) in ENV_OVERRIDES.items():
        raw = env.get(var)
        if raw is not None and raw != "":
            overrides[key] = _parse_env_value(raw, kind)
    return overrides


def load_settings(
    project_root: str | Path | None = None,
    *,
    paths: list[Path] | None = None,
    environ: dict[str, str] | None = None,
) -> Settings:
    """Load, merge and validate settings from all sources.

    Priority order (highest first):
    1. RICECODER_* environment variables
    2. Project settings (<project_root>/.ricecoder/settings.yaml)
    3. User settings (~/.config/ricecoder/settings.yaml or %APPDATA%)
    4. Built-in defaults

    Args:
        project_root: Project directory for the project layer.
        paths: Explicit list of files to load instead of the standard ones.
        environ: Environment to read overrides from (defaults to os.environ).

    Raises:
        ValidationError: If the merged settings violate any rule.
    """
    layers: list[dict[str, Any]] = []

    for path in paths if paths is not None else get_settings_paths(project_root):
        try:
            layer = read_settings_file(path)
        except SettingsFileError as e:
            log.warning("Skipping settings file %s", e)
            continue
        if layer:
            log.debug("Loaded settings from %s", path)
            layers.append(layer)

    env_layer = env_overrides(environ)
    if env_layer:
        layers.append(env_layer)

    settings = Settings.from_dict(merge_layers(*layers))

    result = validate_settings(settings)
    for warning in result.warnings:
        log.warning("Settings warning: %s", warning)
    if not result.valid:
        raise ValidationError(result)

    return settings
