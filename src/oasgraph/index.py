"""Index an OpenAPI document and analyse its schema reference cycles.

:func:`build_index` walks the document once and sorts every schema and
Reference Node into buckets. Whenever it meets a ``$ref``, it resolves the
pointer and walks the target as well, so that content reachable only through
a pointer (for example a schema in another file) is indexed too. Each
target is walked once per build, keyed by its absolute reference, so a
schema referenced from 200 operations costs one walk, not 200.

Schema buckets are mutually exclusive: a schema is *boolean*, *component*
(directly under ``components/schemas``), *external* (the root of a target in
another document), or *inline*. ``$ref`` schemas go to the *references*
bucket and are not counted as schemas. A target in the root document that the
main walk never reaches (say, under an ``x-`` key) is bucketed under the
pointer it was found at.

Circular references
-------------------

The index keeps a stack of the schema pointers it is currently walking
through. When a pointer's target is already on the stack, the pointers from
that entry to the current one form a cycle. Every location step along the
cycle is turned into a :class:`CircularPathSegment` and the cycle is
classified:

* an optional object property, an array that may be empty, a map that may
  be empty, or a nullable schema is a *termination point*: a finite value
  can stop recursing there, so the cycle is **valid**;
* a ``oneOf`` / ``anyOf`` branch defers the decision: the cycle is valid if
  at least one branch of that union never recurses;
* otherwise every edge is mandatory and the cycle is **invalid**; it is
  reported as a ``circular-reference-invalid`` error.

Cycles are identified by the path they were discovered on, so the same ring
of schemas entered from two different pointers is reported twice.
"""

from __future__ import annotations

import enum
import logging
from dataclasses import dataclass, field
from typing import Any, Optional

from oasgraph import jsonpointer
from oasgraph.document import (
    XML,
    Discriminator,
    Encoding,
    ExternalDocumentation,
    MediaType,
    Node,
    OAuthFlow,
    OAuthFlows,
    OpenAPI,
    Operation,
    Reference,
    Resolvable,
    Responses,
    Schema,
    Server,
    ServerVariable,
    Tag,
)
from oasgraph.exceptions import (
    CancelledError,
    CircularReferenceError,
    InvalidReferenceError,
    OasgraphError,
)
from oasgraph.references import get_json_pointer, validate_reference
from oasgraph.resolution import ResolvedTarget, ResolveOptions, resolve
from oasgraph.validation import (
    RULE_CIRCULAR_REFERENCE,
    RULE_CIRCULAR_REFERENCE_INVALID,
    RULE_INVALID_REFERENCE,
    RULE_RESOLUTION_JSON_SCHEMA,
    RULE_RESOLUTION_REFERENCE,
    RULE_UNKNOWN_PROPERTIES,
    Severity,
    ValidationError,
)
from oasgraph.walk import Locations, LocationContext, WalkItem, walk, walk_node

logger = logging.getLogger(__name__)


# --- Bucket types ---


@dataclass
class IndexNode:
    """A bucket entry: the node and where it was found."""

    node: Any
    location: Locations
    document_location: str = ""

    @property
    def pointer(self) -> str:
        return self.location.to_json_pointer()


@dataclass
class ReferenceBuckets:
    """Buckets for one referenceable kind."""

    inline: list[IndexNode] = field(default_factory=list)
    component: list[IndexNode] = field(default_factory=list)
    external: list[IndexNode] = field(default_factory=list)
    references: list[IndexNode] = field(default_factory=list)

    def all(self) -> list[IndexNode]:
        """Inline, component and external entries; references excluded."""
        return [*self.inline, *self.component, *self.external]


@dataclass
class SchemaBuckets(ReferenceBuckets):
    boolean: list[IndexNode] = field(default_factory=list)

    def all(self) -> list[IndexNode]:
        return [*self.boolean, *super().all()]


_KIND_ATTRIBUTES = {
    "path_item": "path_items",
    "parameter": "parameters",
    "request_body": "request_bodies",
    "response": "responses",
    "header": "headers",
    "example": "examples",
    "link": "links",
    "callback": "callbacks",
    "security_scheme": "security_schemes",
}

_ANCILLARY_ATTRIBUTES: dict[type, str] = {
    Operation: "operations",
    Responses: "response_containers",
    Server: "servers",
    ServerVariable: "server_variables",
    Tag: "tags",
    ExternalDocumentation: "external_docs",
    Discriminator: "discriminators",
    XML: "xmls",
    MediaType: "media_types",
    Encoding: "encodings",
    OAuthFlows: "oauth_flows",
    OAuthFlow: "oauth_flow_items",
}


# --- Circular reference analysis ---


class CircularClassification(str, enum.Enum):
    VALID = "valid"
    INVALID = "invalid"
    PENDING = "pending"
    """Depends on the other branches of a ``oneOf`` / ``anyOf``."""


@dataclass
class CircularPathSegment:
    """One edge of a schema cycle and the constraints that apply to it."""

    field: str = ""
    property_name: str = ""
    branch_index: Optional[int] = None
    parent_schema: Optional[Schema] = None
    is_required: bool = False
    is_nullable: bool = False
    min_items: Optional[int] = None
    min_properties: Optional[int] = None


@dataclass
class CircularReference:
    """One discovered schema cycle."""

    members: list[str]
    """Absolute references along the cycle; the first and last are the same target."""

    valid: bool
    reason: str = ""

    @property
    def chain(self) -> str:
        return " -> ".join(self.members)


@dataclass
class _PolymorphicCircular:
    parent_schema: Schema
    field: str
    total_branches: int
    members: list[str]
    reference: Schema
    document_location: str
    branch_results: dict[int, CircularClassification] = field(default_factory=dict)


@dataclass
class _StackEntry:
    target: str
    location: Locations


_ARRAY_FIELDS = frozenset({"items", "prefixItems", "unevaluatedItems"})
_MAP_FIELDS = frozenset({"additionalProperties", "patternProperties", "unevaluatedProperties"})
_UNION_FIELDS = frozenset({"oneOf", "anyOf"})


def build_path_segment(step: LocationContext) -> CircularPathSegment:
    """Describe the edge from ``step.parent`` into its child."""
    segment = CircularPathSegment(
        field=step.parent_field,
        property_name=step.parent_key or "",
        branch_index=step.parent_index,
    )
    parent = step.parent
    if isinstance(parent, Schema) and parent.is_reference():
        parent = parent.get_resolved_schema()
    if not isinstance(parent, Schema):
        return segment

    segment.parent_schema = parent
    segment.is_nullable = parent.is_nullable()
    if segment.field == "properties":
        segment.is_required = segment.property_name in (parent.required or [])
    elif segment.field in _ARRAY_FIELDS:
        segment.min_items = parent.min_items
    elif segment.field in _MAP_FIELDS:
        segment.min_properties = parent.min_properties
    return segment


def termination_reason(segment: CircularPathSegment) -> Optional[str]:
    """Why a finite value may stop recursing at *segment*, or ``None`` if it cannot."""
    if segment.parent_schema is None:
        return None
    if segment.is_nullable:
        return "nullable schema"
    if segment.field == "properties" and not segment.is_required:
        return f"optional property `{segment.property_name}`"
    if segment.field in _ARRAY_FIELDS and not segment.min_items:
        return f"empty array at `{segment.field}`"
    if segment.field in _MAP_FIELDS and not segment.min_properties:
        return f"empty object at `{segment.field}`"
    return None


def classify_circular_path(
    segments: list[CircularPathSegment],
) -> tuple[CircularClassification, Optional[CircularPathSegment], str]:
    """Decide whether a cycle made of *segments* can terminate.

    Returns:
        ``(classification, union_segment, reason)``. ``union_segment`` is the
        first ``oneOf`` / ``anyOf`` edge when the result is ``PENDING``.
    """
    union_segment: Optional[CircularPathSegment] = None
    for segment in segments:
        reason = termination_reason(segment)
        if reason is not None:
            return CircularClassification.VALID, None, reason
        if union_segment is None and segment.parent_schema is not None and segment.field in _UNION_FIELDS:
            union_segment = segment
    if union_segment is not None:
        return CircularClassification.PENDING, union_segment, ""
    return CircularClassification.INVALID, None, "every edge requires recursion"


# --- Index ---


class Index:
    """Classified summary of every schema and reference in a document.

    Use :func:`build_index` rather than constructing this directly.
    """

    def __init__(self, document: OpenAPI, options: Optional[ResolveOptions] = None):
        self.document = document
        self.options = options or ResolveOptions(root_document=document)

        self.schemas = SchemaBuckets()
        self.path_items = ReferenceBuckets()
        self.parameters = ReferenceBuckets()
        self.request_bodies = ReferenceBuckets()
        self.responses = ReferenceBuckets()
        self.headers = ReferenceBuckets()
        self.examples = ReferenceBuckets()
        self.links = ReferenceBuckets()
        self.callbacks = ReferenceBuckets()
        self.security_schemes = ReferenceBuckets()

        self.operations: list[IndexNode] = []
        self.response_containers: list[IndexNode] = []
        self.servers: list[IndexNode] = []
        self.server_variables: list[IndexNode] = []
        self.tags: list[IndexNode] = []
        self.external_docs: list[IndexNode] = []
        self.discriminators: list[IndexNode] = []
        self.xmls: list[IndexNode] = []
        self.media_types: list[IndexNode] = []
        self.encodings: list[IndexNode] = []
        self.oauth_flows: list[IndexNode] = []
        self.oauth_flow_items: list[IndexNode] = []
        self.description_nodes: list[IndexNode] = []
        self.summary_nodes: list[IndexNode] = []
        self.description_and_summary_nodes: list[IndexNode] = []

        self.circular_references: list[CircularReference] = []

        self._validation_errors: list[ValidationError] = []
        self._resolution_errors: list[ValidationError] = []
        self._circular_errors: list[ValidationError] = []
        self._valid_circular_count = 0
        self._invalid_circular_count = 0

        # Build state, scoped to one build.
        self._seen: set[tuple[int, int]] = set()
        self._classified: set[int] = set()
        self._reported: set[int] = set()
        self._unknown_reported: set[tuple[int, str]] = set()
        self._resolution_messages: set[str] = set()
        self._visited_schema_refs: set[str] = set()
        self._visited_refs: set[str] = set()
        self._active_refs: set[str] = set()
        self._local_depth = 0
        self._location_prefix = Locations()
        self._main_walk_nodes: Optional[set[int]] = None
        self._reference_stack: list[_StackEntry] = []
        self._document_stack: list[tuple[str, Any]] = [
            (self.options.target_location, self.options.target_document)
        ]
        self._polymorphic: dict[tuple[int, str], _PolymorphicCircular] = {}

    # ------------------------------------------------------------------ #
    # Build
    # ------------------------------------------------------------------ #

    def build(self) -> "Index":
        """Walk the document and fill every bucket.

        Raises:
            CancelledError: ``options.cancel`` was set during the build.
        """
        cancel = self.options.cancel
        for item in walk(self.document, cancel=cancel):
            self._visit(item)
        if cancel is not None and cancel.is_set():
            raise CancelledError("index build cancelled")
        self._finalize_polymorphic_circulars()
        logger.debug(
            "Indexed %d schemas, %d references, %d circular (%d invalid)",
            len(self.get_all_schemas()),
            len(self.get_all_references()),
            self._valid_circular_count + self._invalid_circular_count,
            self._invalid_circular_count,
        )
        return self

    @property
    def _current_location(self) -> str:
        return self._document_stack[-1][0]

    def _resolve_options(self) -> ResolveOptions:
        location, document = self._document_stack[-1]
        return self.options.for_target(location, document)

    def _visit(self, item: WalkItem) -> None:
        node = item.node
        if not isinstance(node, Node):
            return

        self._check_unknown_properties(node)
        if isinstance(node, Schema):
            self._index_schema(item)
        elif isinstance(node, Reference):
            self._index_reference(item)
        else:
            attribute = _ANCILLARY_ATTRIBUTES.get(type(node))
            if attribute is not None:
                self._add(getattr(self, attribute), node, item.location)
        self._index_text(node, item.location)

    def _walk_target(self, obj: Node, target: ResolvedTarget) -> None:
        # Targets the main walk reaches are bucketed there, at their real
        # locations. Walking them here only follows pointers. Anything else
        # is bucketed under the pointer it was found at.
        document_location = target.absolute_document_path
        local = document_location == self.options.root_location
        suppressed = local and self._reached_by_main_walk(target.object)
        pushed = document_location != self._current_location
        if pushed:
            self._document_stack.append((document_location, target.document))
        saved = (self._local_depth, self._location_prefix)
        if suppressed:
            self._local_depth += 1
        else:
            self._local_depth = 0
            self._location_prefix = _pointer_locations(target.target_reference) if local else Locations()
        try:
            for item in walk_node(obj, cancel=self.options.cancel):
                self._visit(item)
        finally:
            self._local_depth, self._location_prefix = saved
            if pushed:
                self._document_stack.pop()

    def _reached_by_main_walk(self, obj: Any) -> bool:
        if self._main_walk_nodes is None:
            nodes: set[int] = set()
            for item in walk(self.document, cancel=self.options.cancel):
                nodes.add(id(item.node))
                if isinstance(item.node, Reference) and item.node.object is not None:
                    nodes.add(id(item.node.object))
            self._main_walk_nodes = nodes
        return id(obj) in self._main_walk_nodes

    # ------------------------------------------------------------------ #
    # Bucketing helpers
    # ------------------------------------------------------------------ #

    def _absolute(self, location: Locations) -> Locations:
        if not self._location_prefix:
            return location
        return Locations((*self._location_prefix, *location))

    def _add(self, bucket: list[IndexNode], node: Any, location: Locations) -> None:
        if self._local_depth:
            return
        key = (id(bucket), id(node))
        if key in self._seen:
            return
        self._seen.add(key)
        bucket.append(IndexNode(node, self._absolute(location), self._current_location))

    def _classify(self, bucket: list[IndexNode], node: Any, location: Locations) -> None:
        if self._local_depth or id(node) in self._classified:
            return
        self._classified.add(id(node))
        bucket.append(IndexNode(node, self._absolute(location), self._current_location))

    def _classify_object(self, buckets: ReferenceBuckets, node: Any, location: Locations, component_field: str) -> None:
        if _is_top_level_component(self._absolute(location), component_field):
            self._classify(buckets.component, node, location)
        elif not location and not self._location_prefix:
            # Root of a walk into a target in another document.
            self._classify(buckets.external, node, location)
        else:
            self._classify(buckets.inline, node, location)

    def _index_text(self, node: Node, location: Locations) -> None:
        target = node.object if isinstance(node, Reference) and node.object is not None else node
        fields = type(target).model_fields
        description = getattr(target, "description", None) if "description" in fields else None
        summary = getattr(target, "summary", None) if "summary" in fields else None
        if description:
            self._add(self.description_nodes, target, location)
        if summary:
            self._add(self.summary_nodes, target, location)
        if description and summary:
            self._add(self.description_and_summary_nodes, target, location)

    # ------------------------------------------------------------------ #
    # Schemas
    # ------------------------------------------------------------------ #

    def _index_schema(self, item: WalkItem) -> None:
        schema: Schema = item.node
        location = item.location

        if schema.is_reference():
            self._add(self.schemas.references, schema, location)
            self._follow_schema_reference(schema, location)
        elif schema.is_boolean():
            self._classify(self.schemas.boolean, schema, location)
        else:
            self._classify_object(self.schemas, schema, location, "schemas")

    def _follow_schema_reference(self, schema: Schema, location: Locations) -> None:
        target = self._resolve(schema, RULE_RESOLUTION_JSON_SCHEMA)
        if target is None:
            return

        key = target.absolute_reference
        for stack_index, entry in enumerate(self._reference_stack):
            if entry.target == key:
                self._record_circular(schema, location, stack_index, key)
                return
        if key in self._visited_schema_refs:
            return

        self._reference_stack.append(_StackEntry(key, location))
        try:
            self._walk_target(target.object, target)
        finally:
            self._reference_stack.pop()
        self._visited_schema_refs.add(key)

    def _record_circular(self, schema: Schema, location: Locations, stack_index: int, key: str) -> None:
        segments = [
            build_path_segment(step)
            for entry in self._reference_stack[stack_index + 1 :]
            for step in entry.location
        ]
        segments.extend(build_path_segment(step) for step in location)
        members = [entry.target for entry in self._reference_stack[stack_index:]] + [key]

        if schema.is_nullable():
            classification, union_segment, reason = CircularClassification.VALID, None, "nullable reference"
        else:
            classification, union_segment, reason = classify_circular_path(segments)

        if classification is CircularClassification.VALID:
            self._valid_circular_count += 1
            self.circular_references.append(CircularReference(members, True, reason))
        elif union_segment is not None and union_segment.parent_schema is not None:
            # Pending: settled once every branch of the union has been seen.
            parent = union_segment.parent_schema
            group_key = (id(parent), union_segment.field)
            group = self._polymorphic.get(group_key)
            if group is None:
                branches = parent.get_child(union_segment.field)
                group = _PolymorphicCircular(
                    parent_schema=parent,
                    field=union_segment.field,
                    total_branches=len(branches),
                    members=members,
                    reference=schema,
                    document_location=self._current_location,
                )
                self._polymorphic[group_key] = group
            if union_segment.branch_index is not None:
                group.branch_results[union_segment.branch_index] = CircularClassification.INVALID
        else:
            self._invalid_circular_count += 1
            record = CircularReference(members, False, reason)
            self.circular_references.append(record)
            self._circular_errors.append(
                ValidationError.for_node(
                    schema,
                    f"non-terminating circular reference detected: {record.chain}",
                    RULE_CIRCULAR_REFERENCE_INVALID,
                    document_location=self._current_location,
                )
            )

    def _finalize_polymorphic_circulars(self) -> None:
        for group in self._polymorphic.values():
            escapes = [
                index
                for index in range(group.total_branches)
                if group.branch_results.get(index) is not CircularClassification.INVALID
            ]
            if escapes:
                self._valid_circular_count += 1
                reason = f"{group.field} branch {escapes[0]} does not recurse"
                self.circular_references.append(CircularReference(group.members, True, reason))
                continue

            self._invalid_circular_count += 1
            reason = f"all {group.field} branches recurse with no base case"
            self.circular_references.append(CircularReference(group.members, False, reason))
            self._circular_errors.append(
                ValidationError.for_node(
                    group.reference,
                    f"non-terminating circular reference: {reason}",
                    RULE_CIRCULAR_REFERENCE_INVALID,
                    document_location=group.document_location,
                )
            )
        self._polymorphic.clear()

    # ------------------------------------------------------------------ #
    # Other Reference Nodes
    # ------------------------------------------------------------------ #

    def _index_reference(self, item: WalkItem) -> None:
        ref: Reference = item.node
        location = item.location
        buckets: ReferenceBuckets = getattr(self, _KIND_ATTRIBUTES[ref.kind])

        if not ref.is_reference():
            if ref.object is not None:
                self._classify_object(buckets, ref.object, location, ref.component_field)
            return

        self._add(buckets.references, ref, location)
        target = self._resolve(ref, RULE_RESOLUTION_REFERENCE)
        if target is None:
            return

        key = target.absolute_reference
        if key in self._visited_refs or key in self._active_refs:
            return
        self._active_refs.add(key)
        try:
            wrapper = type(ref)(object=target.object)
            self._walk_target(wrapper, target)
        finally:
            self._active_refs.discard(key)
        self._visited_refs.add(key)

    # ------------------------------------------------------------------ #
    # Diagnostics
    # ------------------------------------------------------------------ #

    def _resolve(self, node: Resolvable, rule: str) -> Optional[ResolvedTarget]:
        ref = node.get_reference() or ""
        try:
            validate_reference(ref)
        except InvalidReferenceError as exc:
            self._add_error(self._validation_errors, node, str(exc), RULE_INVALID_REFERENCE)
            return None

        try:
            target = resolve(node, self._resolve_options())
        except CancelledError:
            raise
        except CircularReferenceError as exc:
            self._add_resolution_error(node, str(exc), RULE_CIRCULAR_REFERENCE)
            return None
        except OasgraphError as exc:
            self._add_resolution_error(node, str(exc), rule)
            return None

        for error in target.validation_errors:
            if id(error) not in self._reported:
                self._reported.add(id(error))
                self._validation_errors.append(error)
        return target

    def _add_resolution_error(self, node: Node, message: str, rule: str) -> None:
        if message in self._resolution_messages:
            return
        self._resolution_messages.add(message)
        logger.debug("Resolution error: %s", message)
        self._add_error(self._resolution_errors, node, message, rule)

    def _add_error(
        self,
        errors: list[ValidationError],
        node: Node,
        message: str,
        rule: str,
        severity: Severity = Severity.ERROR,
    ) -> None:
        errors.append(
            ValidationError.for_node(
                node, message, rule, severity, document_location=self._current_location
            )
        )

    def _check_unknown_properties(self, node: Node) -> None:
        target = node.object if isinstance(node, Reference) and node.object is not None else node
        for prop in target.get_unknown_properties():
            key = (id(target), prop)
            if key in self._unknown_reported:
                continue
            self._unknown_reported.add(key)
            self._add_error(
                self._validation_errors,
                target,
                f"unknown property `{prop}` found",
                RULE_UNKNOWN_PROPERTIES,
                Severity.WARNING,
            )

    # ------------------------------------------------------------------ #
    # Queries
    # ------------------------------------------------------------------ #

    def get_all_schemas(self) -> list[IndexNode]:
        """Boolean, inline, component and external schemas."""
        return self.schemas.all()

    def get_all_path_items(self) -> list[IndexNode]:
        return self.path_items.all()

    def get_all_parameters(self) -> list[IndexNode]:
        return self.parameters.all()

    def get_all_request_bodies(self) -> list[IndexNode]:
        return self.request_bodies.all()

    def get_all_responses(self) -> list[IndexNode]:
        return self.responses.all()

    def get_all_headers(self) -> list[IndexNode]:
        return self.headers.all()

    def get_all_examples(self) -> list[IndexNode]:
        return self.examples.all()

    def get_all_links(self) -> list[IndexNode]:
        return self.links.all()

    def get_all_callbacks(self) -> list[IndexNode]:
        return self.callbacks.all()

    def get_all_security_schemes(self) -> list[IndexNode]:
        return self.security_schemes.all()

    def get_all_references(self) -> list[IndexNode]:
        """Every ``$ref`` node found, schemas first, whether or not it resolved."""
        references = list(self.schemas.references)
        for attribute in _KIND_ATTRIBUTES.values():
            references.extend(getattr(self, attribute).references)
        return references

    def get_validation_errors(self) -> list[ValidationError]:
        return list(self._validation_errors)

    def get_resolution_errors(self) -> list[ValidationError]:
        return list(self._resolution_errors)

    def get_circular_reference_errors(self) -> list[ValidationError]:
        return list(self._circular_errors)

    def get_all_errors(self) -> list[ValidationError]:
        """Validation, then resolution, then circular reference diagnostics."""
        return [*self._validation_errors, *self._resolution_errors, *self._circular_errors]

    def has_errors(self) -> bool:
        """True if any diagnostic has error severity. Warnings do not count."""
        return any(e.severity is Severity.ERROR for e in self.get_all_errors())

    def get_valid_circular_ref_count(self) -> int:
        return self._valid_circular_count

    def get_invalid_circular_ref_count(self) -> int:
        return self._invalid_circular_count


def _is_top_level_component(location: Locations, component_field: str) -> bool:
    return (
        len(location) == 2
        and location[0].parent_field == "components"
        and location[1].parent_field == component_field
        and location[1].parent_key is not None
    )


def _pointer_locations(reference: str) -> Locations:
    """Location steps spelling out the JSON pointer of an absolute reference."""
    tokens = jsonpointer.parse(get_json_pointer(reference))
    return Locations(LocationContext(None, token) for token in tokens)


def build_index(document: OpenAPI, options: Optional[ResolveOptions] = None) -> Index:
    """Build the :class:`Index` for *document*.

    Args:
        document: A parsed document.
        options: Resolution options. Defaults to resolving against the
            document's own location with external references enabled.

    Returns:
        The populated index. Problems in the document are recorded as
        diagnostics on the index, never raised.

    Raises:
        CancelledError: ``options.cancel`` was set during the build.
    """
    return Index(document, options).build()
