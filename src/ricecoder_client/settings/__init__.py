"""Client settings: schema, validation, layered loading and change tracking.

Example usage:
    from ricecoder_client.settings import load_settings, validate_settings

    settings = load_settings(project_root="/path/to/project")
    result = validate_settings({"serverPort": 0})
    for issue in result.errors:
        print(issue.field, issue.remediation)
"""

from ricecoder_client.settings.loader import env_overrides, load_settings
from ricecoder_client.settings.manager import SettingsManager
from ricecoder_client.settings.schema import (
    LOG_LEVELS,
    PROVIDER_SELECTIONS,
    Settings,
)
from ricecoder_client.settings.validator import (
    RULES,
    Severity,
    ValidationIssue,
    ValidationResult,
    ValidationRule,
    validate_field,
    validate_settings,
)

__all__ = [
    # Schema
    "Settings",
    "PROVIDER_SELECTIONS",
    "LOG_LEVELS",
    # Validation
    "RULES",
    "Severity",
    "ValidationIssue",
    "ValidationResult",
    "ValidationRule",
    "validate_field",
    "validate_settings",
    # Loading
    "env_overrides",
    "load_settings",
    "SettingsManager",
]
