"""Exception hierarchy for oasgraph.

All exceptions inherit from :class:`OasgraphError`, which carries an
``exit_code`` attribute mapped to a constant from :mod:`oasgraph.exit_codes`.
The top-level error handler in :func:`oasgraph.app.main` catches
``OasgraphError`` and exits with the appropriate code.

Document problems found while indexing or validating are *not* raised; they
are collected as :class:`~oasgraph.validation.ValidationError` diagnostics.
The exceptions below cover failures that stop a single operation.

Subclass hierarchy::

    OasgraphError (exit 1)
    +-- ConnectionError_        (exit 6)
    +-- SpecParseError          (exit 7)
    +-- ResolutionError         (exit 8)
    |   +-- CircularReferenceError
    |   +-- InvalidReferenceError
    +-- JsonPointerError        (exit 8)
    +-- ValidationFailedError   (exit 9)
    +-- CancelledError          (exit 1)
    +-- ConfigError             (exit 1)
"""

from oasgraph.exit_codes import (
    EXIT_CONNECTION_ERROR,
    EXIT_GENERIC_FAILURE,
    EXIT_RESOLUTION_ERROR,
    EXIT_SPEC_PARSE_ERROR,
    EXIT_VALIDATION_FAILURE,
)


class OasgraphError(Exception):
    """Base exception for all oasgraph errors.

    Every subclass sets a class-level ``exit_code`` corresponding to one of
    the constants in :mod:`oasgraph.exit_codes`.

    Args:
        message: Human-readable error description printed to stderr.
        exit_code: Optional override for the class-level exit code.
    """

    exit_code: int = EXIT_GENERIC_FAILURE

    def __init__(self, message: str, exit_code: int | None = None):
        super().__init__(message)
        if exit_code is not None:
            self.exit_code = exit_code


class ConnectionError_(OasgraphError):
    """Raised when a remote document cannot be fetched.

    Named with a trailing underscore to avoid shadowing the built-in
    ``ConnectionError``.
    """

    exit_code = EXIT_CONNECTION_ERROR


class SpecParseError(OasgraphError):
    """Raised when a document cannot be parsed or is not OpenAPI 3.x."""

    exit_code = EXIT_SPEC_PARSE_ERROR


class ResolutionError(OasgraphError):
    """Raised when a ``$ref`` pointer cannot be resolved to an object."""

    exit_code = EXIT_RESOLUTION_ERROR


class CircularReferenceError(ResolutionError):
    """Raised when following a pointer chain returns to a pointer already in the chain.

    Args:
        chain: The absolute references visited, ending with the repeated one.
    """

    def __init__(self, chain: list[str]):
        self.chain = list(chain)
        super().__init__("circular reference detected: " + " -> ".join(self.chain))


class JsonPointerError(OasgraphError):
    """Raised for malformed JSON pointers or pointers with no target."""

    exit_code = EXIT_RESOLUTION_ERROR


class ValidationFailedError(OasgraphError):
    """Raised by the CLI when validation reports one or more errors."""

    exit_code = EXIT_VALIDATION_FAILURE


class ConfigError(OasgraphError):
    """Raised for configuration problems (invalid JSON, unknown keys, bad values)."""

    exit_code = EXIT_GENERIC_FAILURE


class InvalidReferenceError(ResolutionError):
    """Raised when a ``$ref`` string is syntactically malformed."""


class CancelledError(OasgraphError):
    """Raised when a walk or resolution observes its cancel event."""
