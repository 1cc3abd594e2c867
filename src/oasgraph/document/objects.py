"""Typed OpenAPI 3.0 / 3.1 objects.

Field definitions only carry what the walker, resolver and index need:
child objects, the values the circular analysis inspects, and enough of the
scalar fields that unknown-property warnings stay meaningful. Each class
declares its walk order in ``walk_fields`` and its node-local rules in
``required_fields`` / ``mutually_exclusive`` / ``_validate_rules``.

Referenceable objects are wrapped in a :class:`~oasgraph.document.reference.Reference`
subclass wherever the OpenAPI specification allows ``$ref``.
"""

from __future__ import annotations

import re
import threading
from typing import Any, ClassVar, Optional

from pydantic import Field, PrivateAttr

from oasgraph.document.base import Node
from oasgraph.document.reference import Reference
from oasgraph.document.schema import ExternalDocumentation, Schema
from oasgraph.validation import RULE_ALLOWED_VALUES, RULE_SUPPORTED_VERSION, ValidationError

HTTP_METHODS = ("get", "put", "post", "delete", "options", "head", "patch", "trace")
PARAMETER_LOCATIONS = ("query", "header", "path", "cookie")
SECURITY_SCHEME_TYPES = ("apiKey", "http", "mutualTLS", "oauth2", "openIdConnect")

_VERSION_PATTERN = re.compile(r"^3\.[01]\.\d+(-.+)?$")


def _split_entries(data: dict[str, Any], *reserved: str) -> dict[str, Any]:
    """Move every non-extension, non-reserved key of *data* under ``entries``."""
    entries = {
        k: data.pop(k)
        for k in list(data)
        if k not in reserved
        and k not in ("entries", "extensions")
        and not (isinstance(k, str) and k.startswith("x-"))
    }
    data.setdefault("entries", entries)
    return data


def _allowed(node: Node, field: str, value: Optional[str], allowed: tuple[str, ...]) -> list[ValidationError]:
    if value is None or value in allowed:
        return []
    name = type(node).__name__.lower()
    return [
        ValidationError.for_node(
            node,
            f"{name}.{field} must be one of [{', '.join(allowed)}], got `{value}`",
            RULE_ALLOWED_VALUES,
        )
    ]


# --- Info ---


class Contact(Node):
    name: Optional[str] = None
    url: Optional[str] = None
    email: Optional[str] = None


class License(Node):
    name: Optional[str] = None
    identifier: Optional[str] = None
    url: Optional[str] = None

    required_fields = ("name",)
    mutually_exclusive = (("identifier", "url"),)


class Info(Node):
    title: Optional[str] = None
    version: Optional[str] = None
    summary: Optional[str] = None
    description: Optional[str] = None
    terms_of_service: Optional[str] = None
    contact: Optional[Contact] = None
    license: Optional[License] = None

    walk_fields = ("contact", "license")
    required_fields = ("title", "version")


# --- Servers, tags, security ---


class ServerVariable(Node):
    enum: Optional[list[str]] = None
    default: Optional[str] = None
    description: Optional[str] = None

    required_fields = ("default",)


class Server(Node):
    url: Optional[str] = None
    description: Optional[str] = None
    variables: Optional[dict[str, ServerVariable]] = None

    walk_fields = ("variables",)
    required_fields = ("url",)


class Tag(Node):
    name: Optional[str] = None
    description: Optional[str] = None
    external_docs: Optional[ExternalDocumentation] = None

    walk_fields = ("external_docs",)
    required_fields = ("name",)


class SecurityRequirement(Node):
    """Map of security scheme name to required scopes."""

    entries: dict[str, list[str]] = Field(default_factory=dict)

    map_field = "entries"

    @classmethod
    def _prepare(cls, data: dict[str, Any]) -> dict[str, Any]:
        return _split_entries(super()._prepare(data))


class OAuthFlow(Node):
    authorization_url: Optional[str] = None
    token_url: Optional[str] = None
    refresh_url: Optional[str] = None
    scopes: Optional[dict[str, str]] = None


class OAuthFlows(Node):
    implicit: Optional[OAuthFlow] = None
    password: Optional[OAuthFlow] = None
    client_credentials: Optional[OAuthFlow] = None
    authorization_code: Optional[OAuthFlow] = None

    walk_fields = ("implicit", "password", "client_credentials", "authorization_code")


class SecurityScheme(Node):
    type: Optional[str] = None
    description: Optional[str] = None
    name: Optional[str] = None
    in_: Optional[str] = Field(default=None, alias="in")
    scheme: Optional[str] = None
    bearer_format: Optional[str] = None
    flows: Optional[OAuthFlows] = None
    open_id_connect_url: Optional[str] = None

    walk_fields = ("flows",)
    required_fields = ("type",)

    def _validate_rules(self) -> list[ValidationError]:
        return _allowed(self, "type", self.type, SECURITY_SCHEME_TYPES)


# --- Examples, links ---


class Example(Node):
    summary: Optional[str] = None
    description: Optional[str] = None
    value: Optional[Any] = None
    external_value: Optional[str] = None

    mutually_exclusive = (("value", "external_value"),)


class Link(Node):
    operation_ref: Optional[str] = None
    operation_id: Optional[str] = None
    parameters: Optional[dict[str, Any]] = None
    request_body: Optional[Any] = None
    description: Optional[str] = None
    server: Optional[Server] = None

    walk_fields = ("server",)
    mutually_exclusive = (("operation_ref", "operation_id"),)


# --- Parameters, headers, media types ---


class Encoding(Node):
    content_type: Optional[str] = None
    headers: Optional[dict[str, ReferencedHeader]] = None
    style: Optional[str] = None
    explode: Optional[bool] = None
    allow_reserved: Optional[bool] = None

    walk_fields = ("headers",)


class MediaType(Node):
    schema_: Optional[Schema] = Field(default=None, alias="schema")
    example: Optional[Any] = None
    examples: Optional[dict[str, ReferencedExample]] = None
    encoding: Optional[dict[str, Encoding]] = None

    walk_fields = ("schema_", "encoding", "examples")
    mutually_exclusive = (("example", "examples"),)


class Parameter(Node):
    name: Optional[str] = None
    in_: Optional[str] = Field(default=None, alias="in")
    description: Optional[str] = None
    required: Optional[bool] = None
    deprecated: Optional[bool] = None
    allow_empty_value: Optional[bool] = None
    style: Optional[str] = None
    explode: Optional[bool] = None
    allow_reserved: Optional[bool] = None
    schema_: Optional[Schema] = Field(default=None, alias="schema")
    example: Optional[Any] = None
    examples: Optional[dict[str, ReferencedExample]] = None
    content: Optional[dict[str, MediaType]] = None

    walk_fields = ("schema_", "content", "examples")
    required_fields = ("name", "in_")
    mutually_exclusive = (("schema_", "content"), ("example", "examples"))

    def _validate_rules(self) -> list[ValidationError]:
        errors = _allowed(self, "in", self.in_, PARAMETER_LOCATIONS)
        if self.in_ == "path" and self.required is not True:
            errors.append(
                ValidationError.for_node(
                    self,
                    f"parameter.required must be true for path parameter `{self.name}`",
                    RULE_ALLOWED_VALUES,
                )
            )
        return errors


class Header(Node):
    description: Optional[str] = None
    required: Optional[bool] = None
    deprecated: Optional[bool] = None
    style: Optional[str] = None
    explode: Optional[bool] = None
    schema_: Optional[Schema] = Field(default=None, alias="schema")
    example: Optional[Any] = None
    examples: Optional[dict[str, ReferencedExample]] = None
    content: Optional[dict[str, MediaType]] = None

    walk_fields = ("schema_", "content", "examples")
    mutually_exclusive = (("schema_", "content"), ("example", "examples"))


class RequestBody(Node):
    description: Optional[str] = None
    content: Optional[dict[str, MediaType]] = None
    required: Optional[bool] = None

    walk_fields = ("content",)
    required_fields = ("content",)


# --- Responses ---


class Response(Node):
    description: Optional[str] = None
    headers: Optional[dict[str, ReferencedHeader]] = None
    content: Optional[dict[str, MediaType]] = None
    links: Optional[dict[str, ReferencedLink]] = None

    walk_fields = ("headers", "content", "links")
    required_fields = ("description",)


class Responses(Node):
    """Map of status code to response, plus the ``default`` response."""

    default: Optional[ReferencedResponse] = None
    entries: dict[str, ReferencedResponse] = Field(default_factory=dict)

    walk_fields = ("default",)
    map_field = "entries"

    @classmethod
    def _prepare(cls, data: dict[str, Any]) -> dict[str, Any]:
        return _split_entries(super()._prepare(data), "default")


# --- Paths and operations ---


class Operation(Node):
    tags: Optional[list[str]] = None
    summary: Optional[str] = None
    description: Optional[str] = None
    external_docs: Optional[ExternalDocumentation] = None
    operation_id: Optional[str] = None
    parameters: Optional[list[ReferencedParameter]] = None
    request_body: Optional[ReferencedRequestBody] = None
    responses: Optional[Responses] = None
    callbacks: Optional[dict[str, ReferencedCallback]] = None
    deprecated: Optional[bool] = None
    security: Optional[list[SecurityRequirement]] = None
    servers: Optional[list[Server]] = None

    walk_fields = (
        "servers",
        "security",
        "parameters",
        "request_body",
        "responses",
        "callbacks",
        "external_docs",
    )


class PathItem(Node):
    summary: Optional[str] = None
    description: Optional[str] = None
    servers: Optional[list[Server]] = None
    parameters: Optional[list[ReferencedParameter]] = None
    get: Optional[Operation] = None
    put: Optional[Operation] = None
    post: Optional[Operation] = None
    delete: Optional[Operation] = None
    options: Optional[Operation] = None
    head: Optional[Operation] = None
    patch: Optional[Operation] = None
    trace: Optional[Operation] = None

    walk_fields = ("servers", "parameters") + HTTP_METHODS
    keyed_fields: ClassVar[frozenset[str]] = frozenset(HTTP_METHODS)
    """Children located by key rather than by field (operations, by HTTP method)."""

    def operations(self) -> list[tuple[str, Operation]]:
        return [(m, getattr(self, m)) for m in HTTP_METHODS if getattr(self, m) is not None]


class Paths(Node):
    """Map of path template to path item."""

    entries: dict[str, ReferencedPathItem] = Field(default_factory=dict)

    map_field = "entries"

    @classmethod
    def _prepare(cls, data: dict[str, Any]) -> dict[str, Any]:
        return _split_entries(super()._prepare(data))


class Callback(Node):
    """Map of runtime expression to path item."""

    entries: dict[str, ReferencedPathItem] = Field(default_factory=dict)

    map_field = "entries"

    @classmethod
    def _prepare(cls, data: dict[str, Any]) -> dict[str, Any]:
        return _split_entries(super()._prepare(data))


# --- Reference Node kinds ---


class ReferencedPathItem(Reference):
    object: Optional[PathItem] = None
    object_type = PathItem
    kind = "path_item"
    component_field = "pathItems"


class ReferencedParameter(Reference):
    object: Optional[Parameter] = None
    object_type = Parameter
    kind = "parameter"
    component_field = "parameters"


class ReferencedRequestBody(Reference):
    object: Optional[RequestBody] = None
    object_type = RequestBody
    kind = "request_body"
    component_field = "requestBodies"


class ReferencedResponse(Reference):
    object: Optional[Response] = None
    object_type = Response
    kind = "response"
    component_field = "responses"


class ReferencedHeader(Reference):
    object: Optional[Header] = None
    object_type = Header
    kind = "header"
    component_field = "headers"


class ReferencedExample(Reference):
    object: Optional[Example] = None
    object_type = Example
    kind = "example"
    component_field = "examples"


class ReferencedLink(Reference):
    object: Optional[Link] = None
    object_type = Link
    kind = "link"
    component_field = "links"


class ReferencedCallback(Reference):
    object: Optional[Callback] = None
    object_type = Callback
    kind = "callback"
    component_field = "callbacks"


class ReferencedSecurityScheme(Reference):
    object: Optional[SecurityScheme] = None
    object_type = SecurityScheme
    kind = "security_scheme"
    component_field = "securitySchemes"


REFERENCE_TYPES: tuple[type[Reference], ...] = (
    ReferencedPathItem,
    ReferencedParameter,
    ReferencedRequestBody,
    ReferencedResponse,
    ReferencedHeader,
    ReferencedExample,
    ReferencedLink,
    ReferencedCallback,
    ReferencedSecurityScheme,
)


# --- Components and root ---


class Components(Node):
    schemas: Optional[dict[str, Schema]] = None
    responses: Optional[dict[str, ReferencedResponse]] = None
    parameters: Optional[dict[str, ReferencedParameter]] = None
    examples: Optional[dict[str, ReferencedExample]] = None
    request_bodies: Optional[dict[str, ReferencedRequestBody]] = None
    headers: Optional[dict[str, ReferencedHeader]] = None
    security_schemes: Optional[dict[str, ReferencedSecurityScheme]] = None
    links: Optional[dict[str, ReferencedLink]] = None
    callbacks: Optional[dict[str, ReferencedCallback]] = None
    path_items: Optional[dict[str, ReferencedPathItem]] = None

    walk_fields = (
        "schemas",
        "responses",
        "parameters",
        "examples",
        "request_bodies",
        "headers",
        "security_schemes",
        "links",
        "callbacks",
        "path_items",
    )


class OpenAPI(Node):
    """The document root.

    Besides the OpenAPI fields, the root owns the caches shared by every
    resolution against this document: parsed external documents keyed by
    absolute location, and unmarshalled pointer targets keyed by absolute
    reference.
    """

    openapi: Optional[str] = None
    info: Optional[Info] = None
    json_schema_dialect: Optional[str] = None
    servers: Optional[list[Server]] = None
    paths: Optional[Paths] = None
    webhooks: Optional[dict[str, ReferencedPathItem]] = None
    components: Optional[Components] = None
    security: Optional[list[SecurityRequirement]] = None
    tags: Optional[list[Tag]] = None
    external_docs: Optional[ExternalDocumentation] = None

    walk_fields = (
        "info",
        "external_docs",
        "tags",
        "servers",
        "security",
        "paths",
        "webhooks",
        "components",
    )
    required_fields = ("openapi", "info")

    _location: str = PrivateAttr(default="")
    _documents: dict[str, Any] = PrivateAttr(default_factory=dict)
    _objects: dict[Any, Any] = PrivateAttr(default_factory=dict)
    _cache_lock: threading.Lock = PrivateAttr(default_factory=threading.Lock)

    @property
    def location(self) -> str:
        """Absolute path or URL this document was loaded from, or ``""``."""
        return self._location

    def set_location(self, location: str) -> None:
        self._location = location

    def get_cached_document(self, location: str) -> Any:
        with self._cache_lock:
            return self._documents.get(location)

    def cache_document(self, location: str, document: Any) -> Any:
        """Store *document* unless one is already cached; return the cached one."""
        with self._cache_lock:
            return self._documents.setdefault(location, document)

    def get_cached_object(self, key: Any) -> Any:
        with self._cache_lock:
            return self._objects.get(key)

    def cache_object(self, key: Any, obj: Any) -> Any:
        """Store *obj* unless one is already cached under *key*; return the cached one."""
        with self._cache_lock:
            return self._objects.setdefault(key, obj)

    def is_openapi_31(self) -> bool:
        return bool(self.openapi and self.openapi.startswith("3.1."))

    def _validate_rules(self) -> list[ValidationError]:
        if self.openapi is None or _VERSION_PATTERN.match(self.openapi):
            return []
        return [
            ValidationError.for_node(
                self,
                f"openapi.openapi `{self.openapi}` is not a supported version (3.0.x or 3.1.x)",
                RULE_SUPPORTED_VERSION,
            )
        ]


for _model in (
    *REFERENCE_TYPES,
    Encoding,
    MediaType,
    Parameter,
    Header,
    RequestBody,
    Response,
    Responses,
    Operation,
    PathItem,
    Paths,
    Callback,
    Components,
    OpenAPI,
):
    _model.model_rebuild()
