"""Resolve ``$ref`` pointers to the objects they name.

:func:`resolve` follows a pointer chain from a Reference Node (or a ``$ref``
:class:`~oasgraph.document.Schema`) to the inline object at its end. A
pointer may target another pointer, possibly in a different file; every hop
is resolved against the location of the document it appears in.

Resolution is tracked with a *chain* of absolute references visited so far.
When a hop's absolute reference is already in the chain, the chain is a
cycle: every node on it is marked ``CIRCULAR_ERROR`` and
:class:`~oasgraph.exceptions.CircularReferenceError` is raised with the full
chain, e.g. ``circular reference detected: a.yaml#/A -> a.yaml#/B -> a.yaml#/A``.

Each node resolves its own hop at most once, even under concurrent callers
(see :class:`~oasgraph.document.cache.ResolutionCache`). Results shared
across nodes live on the root document:

* parsed external documents, keyed by absolute location, and
* objects unmarshalled from raw data, keyed by absolute reference, so that
  every pointer to the same external target sees the same object.

Local pointers are navigated in the typed root document, so they resolve to
the component object itself.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field, replace
from typing import Any, Optional

import httpx
import pydantic

from oasgraph import jsonpointer
from oasgraph.document import Node, OpenAPI, Reference, Resolvable, ResolutionResult, Schema
from oasgraph.exceptions import (
    CancelledError,
    CircularReferenceError,
    ConnectionError_,
    JsonPointerError,
    ResolutionError,
    SpecParseError,
)
from oasgraph.parser.loader import DEFAULT_TIMEOUT, load_raw
from oasgraph.references import AbsoluteReference, resolve_absolute_reference, split_reference
from oasgraph.validation import ValidationError
from oasgraph.walk import walk_node

logger = logging.getLogger(__name__)


@dataclass
class ResolveOptions:
    """Where and how to resolve pointers.

    Attributes:
        root_document: The document being indexed. Owns the shared caches.
        target_location: Path or URL of the document the pointer appears in.
            Defaults to the root document's location.
        target_document: The document the pointer appears in, typed or raw.
            Defaults to the root document.
        root_location: Location of the root document. Pointers into it
            navigate the typed root instead of re-reading the file.
        disable_external_refs: Reject pointers into other documents.
        http_client: Client used to fetch remote documents. When ``None`` a
            one-off request is made with ``http_timeout``.
        http_timeout: Timeout in seconds for remote fetches.
        skip_validation: Do not validate objects unmarshalled from raw data.
        cancel: Set to abandon resolution; the cache is left untouched.
    """

    root_document: OpenAPI
    target_location: str = ""
    target_document: Any = None
    root_location: str = ""
    disable_external_refs: bool = False
    http_client: Optional[httpx.Client] = None
    http_timeout: float = DEFAULT_TIMEOUT
    skip_validation: bool = False
    cancel: Optional[threading.Event] = None

    def __post_init__(self) -> None:
        if not self.target_location:
            self.target_location = self.root_document.location
        if self.target_document is None:
            self.target_document = self.root_document
        if not self.root_location:
            self.root_location = self.root_document.location or self.target_location

    def for_target(self, location: str, document: Any) -> "ResolveOptions":
        """Copy of these options for pointers found in another document."""
        return replace(self, target_location=location, target_document=document)


@dataclass
class ResolvedTarget:
    """The end of a resolved pointer chain."""

    object: Any
    absolute_reference: str
    """Absolute reference of the first hop; identifies the target for dedup."""

    absolute_document_path: str
    """Location of the document the final object lives in."""

    document: Any
    """The document the final object lives in (typed root or raw data)."""

    validation_errors: list[ValidationError] = field(default_factory=list)

    target_reference: str = ""
    """Absolute reference of the last hop; where the final object lives."""


def resolve(node: Resolvable, options: ResolveOptions) -> ResolvedTarget:
    """Resolve *node*'s pointer chain to an inline object.

    Inline nodes resolve to themselves (a Reference Node to its inline
    object) without touching the cache.

    Raises:
        CircularReferenceError: The chain returns to a pointer already in it.
        ResolutionError: The target is missing, of the wrong kind, in a
            document that cannot be loaded, or external references are
            disabled.
        CancelledError: ``options.cancel`` was set.
    """
    return _resolve(node, options, [])


def _resolve(node: Resolvable, options: ResolveOptions, chain: list[str]) -> ResolvedTarget:
    _check_cancelled(options)

    ref = node.get_reference()
    if ref is None:
        obj = node.object if isinstance(node, Reference) else node
        return ResolvedTarget(obj, "", options.target_location, options.target_document)

    absolute = resolve_absolute_reference(ref, options.target_location)
    if absolute.reference in chain:
        error = CircularReferenceError([*chain, absolute.reference])
        node.resolution_cache.mark_circular(error)
        raise error
    chain = [*chain, absolute.reference]

    result = node.resolution_cache.get_or_resolve(
        lambda: _resolve_hop(node, ref, absolute, options)
    )

    target = result.object
    if isinstance(target, Resolvable) and target.is_reference():
        target.set_parent(node)
        try:
            final = _resolve(target, options.for_target(result.absolute_document_path, result.document), chain)
        except CircularReferenceError as exc:
            node.resolution_cache.mark_circular(exc)
            raise
        return ResolvedTarget(
            final.object,
            absolute.reference,
            final.absolute_document_path,
            final.document,
            [*result.validation_errors, *final.validation_errors],
            target_reference=final.target_reference,
        )

    if isinstance(target, Reference):
        target = target.object
    if target is None:
        raise ResolutionError(f"unable to resolve reference: {ref}")

    return ResolvedTarget(
        target,
        absolute.reference,
        result.absolute_document_path,
        result.document,
        list(result.validation_errors),
        target_reference=absolute.reference,
    )


def _check_cancelled(options: ResolveOptions) -> None:
    if options.cancel is not None and options.cancel.is_set():
        raise CancelledError("resolution cancelled")


def _resolve_hop(
    node: Resolvable,
    ref: str,
    absolute: AbsoluteReference,
    options: ResolveOptions,
) -> ResolutionResult:
    """Find the target of a single pointer; runs under the node's cache lock."""
    uri, pointer = split_reference(ref)
    root = options.root_document

    if not uri:
        document, location = options.target_document, options.target_location
    elif absolute.document == options.root_location:
        document, location = root, options.root_location
    else:
        if options.disable_external_refs:
            raise ResolutionError(f"external reference not allowed: {ref}")
        document, location = _load_document(absolute.document, ref, options), absolute.document

    cache_key = (absolute.reference, type(node).__name__)
    cached = root.get_cached_object(cache_key)
    if cached is not None:
        logger.debug("Object cache hit for %s", absolute.reference)
        return ResolutionResult(cached, location, absolute.reference, document)

    logger.debug("Resolving %s", absolute.reference)
    try:
        raw = jsonpointer.get_target(document, pointer)
    except JsonPointerError as exc:
        raise ResolutionError(f"unable to resolve reference: {ref}: {exc}") from exc

    obj = _unmarshal_target(node, ref, raw)
    errors: list[ValidationError] = []
    if obj is not raw:
        cached = root.cache_object(cache_key, obj)
        if cached is obj and not options.skip_validation:
            errors = _validate_tree(obj, location)
        obj = cached

    return ResolutionResult(obj, location, absolute.reference, document, errors)


def _load_document(location: str, ref: str, options: ResolveOptions) -> Any:
    root = options.root_document
    document = root.get_cached_document(location)
    if document is not None:
        logger.debug("Document cache hit for %s", location)
        return document

    _check_cancelled(options)
    try:
        document = load_raw(location, client=options.http_client, timeout=options.http_timeout)
    except (SpecParseError, ConnectionError_) as exc:
        raise ResolutionError(f"unable to resolve reference: {ref}: {exc}") from exc
    return root.cache_document(location, document)


def _unmarshal_target(node: Resolvable, ref: str, raw: Any) -> Any:
    """Return *raw* as the typed object *node* expects, unmarshalling plain data."""
    if isinstance(node, Schema):
        if isinstance(raw, Schema):
            return raw
        if isinstance(raw, (dict, bool)):
            return _model_validate(Schema, ref, raw)
        raise ResolutionError(f"unable to resolve reference: {ref}: target is not a schema")

    if not isinstance(node, Reference):
        raise ResolutionError(f"unable to resolve reference: {ref}: {type(node).__name__} cannot hold a reference")
    if isinstance(raw, (type(node), node.object_type)):
        return raw
    if isinstance(raw, dict):
        return _model_validate(type(node), ref, raw)
    raise ResolutionError(
        f"unable to resolve reference: {ref}: expected {node.object_type.__name__}, "
        f"found {type(raw).__name__}"
    )


def _validate_tree(obj: Node, location: str) -> list[ValidationError]:
    errors: list[ValidationError] = []
    for item in walk_node(obj):
        if isinstance(item.node, Node):
            for error in item.node.validate_node():
                error.document_location = location
                errors.append(error)
    return errors


def _model_validate(model: type[Node], ref: str, raw: Any) -> Any:
    try:
        return model.model_validate(raw)
    except pydantic.ValidationError as exc:
        raise ResolutionError(f"unable to resolve reference: {ref}: {exc}") from exc
