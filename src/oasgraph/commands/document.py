"""Document commands -- validate, index, walk and list references.

Each command loads one OpenAPI document (file path, URL, or ``-`` for
stdin), applies the resolution settings from
:func:`~oasgraph.config.resolve_config`, and prints its result as a table
in the active output format.
"""

from __future__ import annotations

from typing import Optional

import typer

from oasgraph.document import OpenAPI, Resolvable
from oasgraph.exceptions import OasgraphError, ValidationFailedError
from oasgraph.index import Index, IndexNode, ReferenceBuckets, SchemaBuckets
from oasgraph.output import debug, error, get_output, success
from oasgraph.resolution import ResolveOptions
from oasgraph.validation import Severity

SPEC_ARGUMENT = typer.Argument(help="Path or URL of the OpenAPI document, or '-' for stdin.")
NO_EXTERNAL_REFS_OPTION = typer.Option(
    False, "--no-external-refs", help="Reject $ref pointers into other documents."
)
TIMEOUT_OPTION = typer.Option(
    None, "--timeout", help="Timeout in seconds for fetching remote documents."
)


def _load(
    spec: str,
    no_external_refs: bool = False,
    timeout: Optional[float] = None,
) -> tuple[OpenAPI, ResolveOptions]:
    """Load *spec* and build the resolution options for it.

    Raises:
        typer.Exit: With the error's exit code if the configuration is
            invalid or the document cannot be loaded.
    """
    from oasgraph.config import resolve_config
    from oasgraph.parser import load_document

    try:
        config = resolve_config(
            cli_disable_external_refs=True if no_external_refs else None,
            cli_http_timeout=timeout,
        )
        document = load_document(spec, timeout=config.resolve.http_timeout)
    except OasgraphError as exc:
        error(str(exc))
        raise typer.Exit(code=exc.exit_code) from None

    debug(f"Loaded {document.location or 'stdin'} (openapi {document.openapi})")
    options = ResolveOptions(
        root_document=document,
        disable_external_refs=config.resolve.disable_external_refs,
        http_timeout=config.resolve.http_timeout,
    )
    return document, options


def _build_index(document: OpenAPI, options: ResolveOptions) -> Index:
    from oasgraph.index import build_index

    try:
        return build_index(document, options)
    except OasgraphError as exc:
        error(str(exc))
        raise typer.Exit(code=exc.exit_code) from None


def _display_location(entry: IndexNode, root_location: str) -> str:
    pointer = f"#{entry.pointer}"
    if entry.document_location and entry.document_location != root_location:
        return entry.document_location + pointer
    return pointer


def validate_command(
    spec: str = SPEC_ARGUMENT,
    no_external_refs: bool = NO_EXTERNAL_REFS_OPTION,
    timeout: Optional[float] = TIMEOUT_OPTION,
) -> None:
    """Validate a document and print every diagnostic.

    Combines node-local checks with resolution and circular reference
    analysis. Exits with code 9 when any diagnostic has error severity.

    Example::

        oasgraph validate openapi.yaml
        oasgraph --json validate https://example.com/openapi.json
    """
    from oasgraph.validator import validate_document

    document, options = _load(spec, no_external_refs, timeout)
    try:
        diagnostics = validate_document(document, options)
    except OasgraphError as exc:
        error(str(exc))
        raise typer.Exit(code=exc.exit_code) from None

    if diagnostics:
        rows = [
            [
                d.severity.value,
                "" if d.line is None else str(d.line),
                "" if d.column is None else str(d.column),
                d.rule,
                d.message,
                d.document_location,
            ]
            for d in diagnostics
        ]
        get_output().print_table(
            ["Severity", "Line", "Column", "Rule", "Message", "Document"],
            rows,
            title=f"Diagnostics ({len(rows)})",
        )

    errors = sum(1 for d in diagnostics if d.severity is Severity.ERROR)
    if errors:
        failure = ValidationFailedError(f"{errors} error(s) found")
        error(str(failure))
        raise typer.Exit(code=failure.exit_code)
    success(f"No errors found ({len(diagnostics)} warning(s))")


_REFERENCE_KINDS = (
    ("schemas", "Schema"),
    ("path_items", "PathItem"),
    ("parameters", "Parameter"),
    ("request_bodies", "RequestBody"),
    ("responses", "Response"),
    ("headers", "Header"),
    ("examples", "Example"),
    ("links", "Link"),
    ("callbacks", "Callback"),
    ("security_schemes", "SecurityScheme"),
)

_ANCILLARY_BUCKETS = (
    "operations",
    "response_containers",
    "servers",
    "server_variables",
    "tags",
    "external_docs",
    "discriminators",
    "xmls",
    "media_types",
    "encodings",
    "oauth_flows",
    "oauth_flow_items",
    "description_nodes",
    "summary_nodes",
    "description_and_summary_nodes",
)


def index_command(
    spec: str = SPEC_ARGUMENT,
    no_external_refs: bool = NO_EXTERNAL_REFS_OPTION,
    timeout: Optional[float] = TIMEOUT_OPTION,
) -> None:
    """Print index bucket counts and circular reference totals.

    Example::

        oasgraph index openapi.yaml
    """
    document, options = _load(spec, no_external_refs, timeout)
    index = _build_index(document, options)
    output = get_output()

    rows: list[list[str]] = []
    for attribute, label in _REFERENCE_KINDS:
        buckets: ReferenceBuckets = getattr(index, attribute)
        boolean = str(len(buckets.boolean)) if isinstance(buckets, SchemaBuckets) else "-"
        rows.append([
            label,
            boolean,
            str(len(buckets.inline)),
            str(len(buckets.component)),
            str(len(buckets.external)),
            str(len(buckets.references)),
        ])
    output.print_table(
        ["Kind", "Boolean", "Inline", "Component", "External", "References"],
        rows,
        title="Referenceable objects",
    )

    totals = [[name, str(len(getattr(index, name)))] for name in _ANCILLARY_BUCKETS]
    totals.append(["circular_references_valid", str(index.get_valid_circular_ref_count())])
    totals.append(["circular_references_invalid", str(index.get_invalid_circular_ref_count())])
    totals.append(["errors", str(len(index.get_all_errors()))])
    output.print_table(["Bucket", "Count"], totals, title="Other objects")


def walk_command(
    spec: str = SPEC_ARGUMENT,
) -> None:
    """Print the JSON pointer and type of every node, in walk order.

    Pointers are not followed.

    Example::

        oasgraph walk openapi.yaml
    """
    from oasgraph.walk import walk

    document, _ = _load(spec)
    rows: list[list[str]] = []
    for item in walk(document):
        node = item.node
        if item.is_extensions:
            node_type, reference = "extensions", ""
        else:
            node_type = type(node).__name__
            reference = (node.get_reference() or "") if isinstance(node, Resolvable) else ""
        rows.append([f"#{item.pointer}", node_type, reference])
    get_output().print_table(["Pointer", "Type", "Reference"], rows, title=f"Nodes ({len(rows)})")


def refs_command(
    spec: str = SPEC_ARGUMENT,
    no_external_refs: bool = NO_EXTERNAL_REFS_OPTION,
    timeout: Optional[float] = TIMEOUT_OPTION,
) -> None:
    """List every ``$ref`` found while indexing, with its resolution state.

    Example::

        oasgraph refs openapi.yaml
    """
    document, options = _load(spec, no_external_refs, timeout)
    index = _build_index(document, options)

    rows: list[list[str]] = []
    for entry in index.get_all_references():
        node: Resolvable = entry.node
        rows.append([
            _display_location(entry, document.location),
            type(node).__name__,
            node.get_reference() or "",
            node.resolution_cache.state.value,
        ])
    get_output().print_table(
        ["Location", "Type", "Reference", "State"], rows, title=f"References ({len(rows)})"
    )
