"""Numeric process exit codes following `clig.dev <https://clig.dev/>`_ conventions.

Each constant maps to a specific error category and is referenced by the
corresponding :class:`~oasgraph.exceptions.OasgraphError` subclass.
CI scripts can inspect the exit code to tell a broken document apart from an
unreachable one without parsing stderr.

Example::

    $ oasgraph validate openapi.yaml
    $ echo $?
    9   # EXIT_VALIDATION_FAILURE -- the document has errors
"""

EXIT_SUCCESS = 0
"""The command completed successfully."""

EXIT_GENERIC_FAILURE = 1
"""An unclassified error occurred."""

EXIT_INVALID_USAGE = 2
"""The command was invoked with invalid arguments."""

EXIT_CONNECTION_ERROR = 6
"""A remote document could not be fetched (timeout, DNS failure, connection refused)."""

EXIT_SPEC_PARSE_ERROR = 7
"""The OpenAPI document could not be parsed."""

EXIT_RESOLUTION_ERROR = 8
"""A ``$ref`` pointer could not be resolved or forms a pointer cycle."""

EXIT_VALIDATION_FAILURE = 9
"""The document was parsed but validation reported errors."""
