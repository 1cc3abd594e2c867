"""Validation diagnostics shared by the document model, resolver and index.

Every problem found in a document is reported as a :class:`ValidationError`
rather than raised. Diagnostics carry a stable rule identifier so that
machine-readable output can be filtered, and a ``(line, column)`` position
when the source was YAML.

:func:`sort_validation_errors` gives the deterministic ordering used by all
output paths.
"""

from __future__ import annotations

import enum
from typing import Any, Iterable, Optional


class Severity(str, enum.Enum):
    """How serious a diagnostic is."""

    ERROR = "error"
    WARNING = "warning"
    HINT = "hint"


_SEVERITY_RANK = {Severity.ERROR: 0, Severity.WARNING: 1, Severity.HINT: 2}


# --- Rule identifiers ---

RULE_REQUIRED_FIELD = "required-field-missing"
RULE_MUTUALLY_EXCLUSIVE = "mutually-exclusive-fields"
RULE_ALLOWED_VALUES = "validation-allowed-values"
RULE_SUPPORTED_VERSION = "validation-supported-version"
RULE_INVALID_REFERENCE = "validation-invalid-reference"
RULE_UNKNOWN_PROPERTIES = "validation-unknown-properties"
RULE_RESOLUTION_JSON_SCHEMA = "resolution-json-schema"
RULE_RESOLUTION_REFERENCE = "resolution-openapi-reference"
RULE_CIRCULAR_REFERENCE = "circular-reference"
RULE_CIRCULAR_REFERENCE_INVALID = "circular-reference-invalid"


class ValidationError(Exception):
    """A single diagnostic attached to a location in a document.

    Args:
        message: Human-readable description.
        rule: Stable rule identifier, one of the ``RULE_*`` constants.
        severity: Diagnostic severity.
        line: 1-based source line, when known.
        column: 1-based source column, when known.
        document_location: Path or URL of the document the node lives in.
    """

    def __init__(
        self,
        message: str,
        rule: str,
        severity: Severity = Severity.ERROR,
        line: Optional[int] = None,
        column: Optional[int] = None,
        document_location: str = "",
    ):
        super().__init__(message)
        self.message = message
        self.rule = rule
        self.severity = severity
        self.line = line
        self.column = column
        self.document_location = document_location

    @classmethod
    def for_node(
        cls,
        node: Any,
        message: str,
        rule: str,
        severity: Severity = Severity.ERROR,
        document_location: str = "",
    ) -> "ValidationError":
        """Build a diagnostic positioned at *node*'s source line and column."""
        line, column = getattr(node, "position", (None, None))
        return cls(message, rule, severity, line, column, document_location)

    def __str__(self) -> str:
        if self.line is None:
            return f"[{self.severity.value}] {self.message} ({self.rule})"
        return f"[{self.line}:{self.column}] [{self.severity.value}] {self.message} ({self.rule})"

    def __repr__(self) -> str:
        return f"ValidationError({self.rule!r}, {self.message!r}, line={self.line})"

    def to_dict(self) -> dict[str, Any]:
        """Serialise for JSON output."""
        return {
            "severity": self.severity.value,
            "rule": self.rule,
            "message": self.message,
            "line": self.line,
            "column": self.column,
            "document": self.document_location,
        }


def _sort_key(err: ValidationError) -> tuple:
    # Positionless diagnostics sort after positioned ones.
    return (
        err.document_location,
        err.line is None,
        err.line or 0,
        err.column or 0,
        _SEVERITY_RANK[err.severity],
        err.rule,
        err.message,
    )


def sort_validation_errors(errors: Iterable[ValidationError]) -> list[ValidationError]:
    """Return *errors* in a stable order: document, line, column, severity, rule, message."""
    return sorted(errors, key=_sort_key)
