"""JSON Schema objects as used by OpenAPI 3.0 and 3.1.

:class:`Schema` covers both dialects: the OpenAPI 3.0 subset (with
``nullable`` and boolean ``exclusiveMaximum``) and JSON Schema 2020-12 as
adopted by OpenAPI 3.1 (``$defs``, ``prefixItems``, ``if``/``then``/``else``,
type unions and so on).

Unlike the other OpenAPI objects, a schema carries ``$ref`` as an ordinary
keyword, so :class:`Schema` is itself :class:`~oasgraph.document.base.Resolvable`.
Boolean schemas (``true`` / ``false``) are represented by a :class:`Schema`
with :meth:`Schema.is_boolean` set.
"""

from __future__ import annotations

from typing import Any, Optional, Union

from pydantic import Field, ModelWrapValidatorHandler, PrivateAttr, model_validator

from oasgraph.document.base import Node, Resolvable
from oasgraph.exceptions import InvalidReferenceError
from oasgraph.references import validate_reference
from oasgraph.validation import RULE_ALLOWED_VALUES, RULE_INVALID_REFERENCE, ValidationError

SCHEMA_TYPES = frozenset({"string", "number", "integer", "boolean", "array", "object", "null"})


class ExternalDocumentation(Node):
    description: Optional[str] = None
    url: Optional[str] = None

    required_fields = ("url",)


class Discriminator(Node):
    property_name: Optional[str] = None
    mapping: Optional[dict[str, str]] = None

    required_fields = ("property_name",)


class XML(Node):
    name: Optional[str] = None
    namespace: Optional[str] = None
    prefix: Optional[str] = None
    attribute: Optional[bool] = None
    wrapped: Optional[bool] = None


class Schema(Resolvable):
    """A JSON Schema, possibly a ``$ref`` or a boolean schema."""

    # --- Core and applicator keywords ---
    ref: Optional[str] = Field(default=None, alias="$ref")
    dollar_schema: Optional[str] = Field(default=None, alias="$schema")
    dollar_id: Optional[str] = Field(default=None, alias="$id")
    anchor: Optional[str] = Field(default=None, alias="$anchor")
    dynamic_ref: Optional[str] = Field(default=None, alias="$dynamicRef")
    dynamic_anchor: Optional[str] = Field(default=None, alias="$dynamicAnchor")
    comment: Optional[str] = Field(default=None, alias="$comment")
    defs: Optional[dict[str, Schema]] = Field(default=None, alias="$defs")

    all_of: Optional[list[Schema]] = None
    one_of: Optional[list[Schema]] = None
    any_of: Optional[list[Schema]] = None
    not_: Optional[Schema] = Field(default=None, alias="not")
    if_: Optional[Schema] = Field(default=None, alias="if")
    then: Optional[Schema] = None
    else_: Optional[Schema] = Field(default=None, alias="else")
    dependent_schemas: Optional[dict[str, Schema]] = None
    prefix_items: Optional[list[Schema]] = None
    items: Optional[Schema] = None
    contains: Optional[Schema] = None
    properties: Optional[dict[str, Schema]] = None
    pattern_properties: Optional[dict[str, Schema]] = None
    additional_properties: Optional[Schema] = None
    property_names: Optional[Schema] = None
    unevaluated_items: Optional[Schema] = None
    unevaluated_properties: Optional[Schema] = None
    content_schema: Optional[Schema] = None

    # --- Validation keywords ---
    type: Optional[Union[str, list[str]]] = None
    enum: Optional[list[Any]] = None
    const: Optional[Any] = None
    multiple_of: Optional[float] = None
    maximum: Optional[float] = None
    exclusive_maximum: Optional[Union[bool, float]] = None
    minimum: Optional[float] = None
    exclusive_minimum: Optional[Union[bool, float]] = None
    max_length: Optional[int] = None
    min_length: Optional[int] = None
    pattern: Optional[str] = None
    max_items: Optional[int] = None
    min_items: Optional[int] = None
    unique_items: Optional[bool] = None
    max_contains: Optional[int] = None
    min_contains: Optional[int] = None
    max_properties: Optional[int] = None
    min_properties: Optional[int] = None
    required: Optional[list[str]] = None
    dependent_required: Optional[dict[str, list[str]]] = None

    # --- Annotations ---
    title: Optional[str] = None
    description: Optional[str] = None
    default: Optional[Any] = None
    deprecated: Optional[bool] = None
    read_only: Optional[bool] = None
    write_only: Optional[bool] = None
    examples: Optional[list[Any]] = None
    format: Optional[str] = None
    content_encoding: Optional[str] = None
    content_media_type: Optional[str] = None

    # --- OpenAPI vocabulary ---
    nullable: Optional[bool] = None
    discriminator: Optional[Discriminator] = None
    xml: Optional[XML] = None
    external_docs: Optional[ExternalDocumentation] = None
    example: Optional[Any] = None

    walk_fields = (
        "all_of",
        "one_of",
        "any_of",
        "discriminator",
        "prefix_items",
        "contains",
        "if_",
        "then",
        "else_",
        "dependent_schemas",
        "pattern_properties",
        "property_names",
        "unevaluated_items",
        "unevaluated_properties",
        "items",
        "not_",
        "properties",
        "defs",
        "additional_properties",
        "content_schema",
        "external_docs",
        "xml",
    )

    _boolean: Optional[bool] = PrivateAttr(default=None)

    @model_validator(mode="wrap")
    @classmethod
    def _boolean_schema(cls, data: Any, handler: ModelWrapValidatorHandler[Any]) -> Any:
        if isinstance(data, bool):
            schema = handler({})
            schema._boolean = data
            return schema
        return handler(data)

    def get_reference(self) -> Optional[str]:
        return self.ref

    def is_boolean(self) -> bool:
        return self._boolean is not None

    @property
    def boolean_value(self) -> Optional[bool]:
        return self._boolean

    def get_types(self) -> list[str]:
        if self.type is None:
            return []
        if isinstance(self.type, str):
            return [self.type]
        return list(self.type)

    def is_nullable(self) -> bool:
        """True when ``null`` is an allowed value (3.0 ``nullable`` or a 3.1 type union)."""
        return bool(self.nullable) or "null" in self.get_types()

    def get_resolved_schema(self) -> Optional["Schema"]:
        """This schema if inline, otherwise the cached end of its pointer chain."""
        if not self.is_reference():
            return self
        return self._resolved_target()

    def _validate_rules(self) -> list[ValidationError]:
        errors: list[ValidationError] = []
        if self.ref is not None:
            try:
                validate_reference(self.ref)
            except InvalidReferenceError as exc:
                errors.append(ValidationError.for_node(self, str(exc), RULE_INVALID_REFERENCE))
        for type_name in self.get_types():
            if type_name not in SCHEMA_TYPES:
                errors.append(
                    ValidationError.for_node(
                        self,
                        f"schema.type `{type_name}` is not one of "
                        + ", ".join(sorted(SCHEMA_TYPES)),
                        RULE_ALLOWED_VALUES,
                    )
                )
        return errors


Schema.model_rebuild()
