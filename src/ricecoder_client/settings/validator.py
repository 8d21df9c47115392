"""Settings validation.

validate_settings() checks a settings record against a fixed rule table and
reports every violation, each with a remediation naming the field and what it
accepts. Some conditions are legal but suspicious; those become warnings and
do not make the result invalid.

Validation is pure: the input is never modified.
"""

from __future__ import annotations

import ipaddress
import re
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from ricecoder_client.settings.schema import (
    DEFAULT_PORT,
    DEFAULT_REQUEST_TIMEOUT,
    LOG_LEVELS,
    PROVIDER_SELECTIONS,
    Settings,
    normalize_keys,
)

PORT_MIN = 1
PORT_MAX = 65535
REQUEST_TIMEOUT_MIN = 100
REQUEST_TIMEOUT_MAX = 300000
REQUEST_TIMEOUT_WARN = 30000

_HOST_LABEL = re.compile(r"^(?!-)[A-Za-z0-9-]{1,63}(?<!-)$")
_NUMERIC_HOST = re.compile(r"^[0-9.]+$")


class Severity(Enum):
    ERROR = "error"
    WARNING = "warning"


@dataclass(frozen=True)
class ValidationIssue:
    """One violated rule."""

    field: str
    message: str
    remediation: str
    severity: Severity = Severity.ERROR

    def __str__(self) -> str:
        return f"{self.field}: {self.message} ({self.remediation})"


@dataclass
class ValidationResult:
    """Outcome of validating a settings record."""

    errors: list[ValidationIssue] = field(default_factory=list)
    warnings: list[ValidationIssue] = field(default_factory=list)

    @property
    def valid(self) -> bool:
        return not self.errors

    def fields(self) -> list[str]:
        return [issue.field for issue in self.errors]


@dataclass(frozen=True)
class ValidationRule:
    """A per-field predicate with its error text."""

    field: str
    predicate: Callable[[Any], bool]
    message: str
    remediation: str

    def check(self, value: Any) -> ValidationIssue | None:
        if self.predicate(value):
            return None
        return ValidationIssue(
            field=self.field,
            message=f"{self.message}, got {value!r}",
            remediation=self.remediation,
        )


def _is_bool(value: Any) -> bool:
    return isinstance(value, bool)


def _is_int(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


def is_valid_host(value: Any) -> bool:
    """Accept localhost, a dotted-quad IPv4 address, or an RFC 1123 hostname."""
    if not isinstance(value, str) or not value.strip():
        return False
    if value == "localhost":
        return True
    if _NUMERIC_HOST.match(value):
        try:
            ipaddress.IPv4Address(value)
        except ValueError:
            return False
        return True
    if len(value) > 253:
        return False
    labels = value[:-1].split(".") if value.endswith(".") else value.split(".")
    return all(_HOST_LABEL.match(label) for label in labels)


def _bool_rule(name: str) -> ValidationRule:
    return ValidationRule(
        field=name,
        predicate=_is_bool,
        message=f"{name} must be a boolean",
        remediation=f"Set {name} to true or false",
    )


RULES: tuple[ValidationRule, ...] = (
    _bool_rule("enabled"),
    ValidationRule(
        field="serverHost",
        predicate=is_valid_host,
        message="serverHost must be a hostname, an IPv4 address or localhost",
        remediation=(
            "Set serverHost to a non-empty hostname (e.g. 'localhost' or "
            "'ricecoder.internal') or a dotted-quad IPv4 address (e.g. '127.0.0.1')"
        ),
    ),
    ValidationRule(
        field="serverPort",
        predicate=lambda v: _is_int(v) and PORT_MIN <= v <= PORT_MAX,
        message=f"serverPort must be an integer between {PORT_MIN} and {PORT_MAX}",
        remediation=(
            f"Set serverPort to an integer between {PORT_MIN} and {PORT_MAX} "
            f"(default: {DEFAULT_PORT})"
        ),
    ),
    ValidationRule(
        field="requestTimeout",
        predicate=lambda v: _is_int(v) and REQUEST_TIMEOUT_MIN <= v <= REQUEST_TIMEOUT_MAX,
        message=(
            f"requestTimeout must be an integer between {REQUEST_TIMEOUT_MIN} "
            f"and {REQUEST_TIMEOUT_MAX} milliseconds"
        ),
        remediation=(
            f"Set requestTimeout to an integer between {REQUEST_TIMEOUT_MIN} and "
            f"{REQUEST_TIMEOUT_MAX} milliseconds (default: {DEFAULT_REQUEST_TIMEOUT})"
        ),
    ),
    ValidationRule(
        field="providerSelection",
        predicate=lambda v: v in PROVIDER_SELECTIONS,
        message="providerSelection is not a known provider strategy",
        remediation=(
            "Set providerSelection to one of: " + ", ".join(PROVIDER_SELECTIONS)
        ),
    ),
    _bool_rule("completionEnabled"),
    _bool_rule("diagnosticsEnabled"),
    _bool_rule("hoverEnabled"),
    _bool_rule("debugMode"),
    ValidationRule(
        field="logLevel",
        predicate=lambda v: v in LOG_LEVELS,
        message="logLevel is not a known log level",
        remediation="Set logLevel to one of: " + ", ".join(LOG_LEVELS),
    ),
)

_RULES_BY_FIELD = {rule.field: rule for rule in RULES}


def _timeout_warning(values: Mapping[str, Any]) -> ValidationIssue | None:
    timeout = values.get("requestTimeout")
    if not _is_int(timeout) or not REQUEST_TIMEOUT_WARN <= timeout <= REQUEST_TIMEOUT_MAX:
        return None
    return ValidationIssue(
        field="requestTimeout",
        message=f"requestTimeout of {timeout}ms is unusually long",
        remediation=(
            f"Editor features will wait up to {timeout // 1000}s for the server; "
            f"consider a requestTimeout below {REQUEST_TIMEOUT_WARN}"
        ),
        severity=Severity.WARNING,
    )


def _debug_level_warning(values: Mapping[str, Any]) -> ValidationIssue | None:
    if values.get("debugMode") is not True or values.get("logLevel") == "debug":
        return None
    return ValidationIssue(
        field="logLevel",
        message=f"debugMode is enabled but logLevel is {values.get('logLevel')!r}",
        remediation="Set logLevel to 'debug' to see debug output, or disable debugMode",
        severity=Severity.WARNING,
    )


WARNING_CHECKS: tuple[Callable[[Mapping[str, Any]], ValidationIssue | None], ...] = (
    _timeout_warning,
    _debug_level_warning,
)


def _as_values(settings: Settings | Mapping[str, Any]) -> dict[str, Any]:
    defaults = Settings().to_dict()
    if isinstance(settings, Settings):
        return settings.to_dict()
    given = normalize_keys(dict(settings))
    return {key: given.get(key, default) for key, default in defaults.items()}


def validate_settings(settings: Settings | Mapping[str, Any]) -> ValidationResult:
    """Validate a full settings record.

    Args:
        settings: A Settings instance or a mapping with camelCase or snake_case
            keys. Missing keys are checked at their default values.

    Returns:
        A ValidationResult listing every violated rule and every warning.
    """
    values = _as_values(settings)
    result = ValidationResult()

    for rule in RULES:
        issue = rule.check(values[rule.field])
        if issue is not None:
            result.errors.append(issue)

    for check in WARNING_CHECKS:
        issue = check(values)
        if issue is not None:
            result.warnings.append(issue)

    return result


def validate_field(name: str, value: Any) -> ValidationResult:
    """Validate a single configuration key in isolation.

    Raises:
        KeyError: If name is not a known configuration key.
    """
    rule = _RULES_BY_FIELD[name]
    result = ValidationResult()
    issue = rule.check(value)
    if issue is not None:
        result.errors.append(issue)
    elif name == "requestTimeout":
        warning = _timeout_warning({name: value})
        if warning is not None:
            result.warnings.append(warning)
    return result
