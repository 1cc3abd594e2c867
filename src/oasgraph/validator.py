"""Whole-document validation.

Combines node-local checks (required fields, mutually exclusive fields,
allowed values) with the diagnostics collected while building the
:class:`~oasgraph.index.Index`: unknown properties, resolution failures and
non-terminating circular references.
"""

from __future__ import annotations

from typing import Optional

from oasgraph.document import Node, OpenAPI
from oasgraph.index import Index, build_index
from oasgraph.resolution import ResolveOptions
from oasgraph.validation import ValidationError, sort_validation_errors
from oasgraph.walk import walk


def validate_document(
    document: OpenAPI,
    options: Optional[ResolveOptions] = None,
    index: Optional[Index] = None,
) -> list[ValidationError]:
    """Validate *document* and return every diagnostic, sorted by position.

    Args:
        document: The parsed root document.
        options: Resolution options for the index build.
        index: An index already built for *document*; built on demand if omitted.
    """
    errors: list[ValidationError] = []
    for item in walk(document, cancel=options.cancel if options else None):
        if isinstance(item.node, Node):
            for error in item.node.validate_node():
                error.document_location = error.document_location or document.location
                errors.append(error)

    if index is None:
        index = build_index(document, options)
    errors.extend(index.get_all_errors())

    # A malformed $ref is reported by both passes.
    unique: dict[tuple, ValidationError] = {}
    for error in errors:
        key = (error.document_location, error.line, error.column, error.rule, error.message)
        unique.setdefault(key, error)
    return sort_validation_errors(list(unique.values()))
