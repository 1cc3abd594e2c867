"""Typed OpenAPI document model.

Re-exports the object classes so callers can write
``from oasgraph.document import OpenAPI, Schema``.
"""

from oasgraph.document.base import Node, PositionedDict, Resolvable
from oasgraph.document.cache import ResolutionCache, ResolutionResult, ResolutionState
from oasgraph.document.objects import (
    HTTP_METHODS,
    REFERENCE_TYPES,
    Callback,
    Components,
    Contact,
    Encoding,
    Example,
    Header,
    Info,
    License,
    Link,
    MediaType,
    OAuthFlow,
    OAuthFlows,
    OpenAPI,
    Operation,
    Parameter,
    PathItem,
    Paths,
    ReferencedCallback,
    ReferencedExample,
    ReferencedHeader,
    ReferencedLink,
    ReferencedParameter,
    ReferencedPathItem,
    ReferencedRequestBody,
    ReferencedResponse,
    ReferencedSecurityScheme,
    RequestBody,
    Response,
    Responses,
    SecurityRequirement,
    SecurityScheme,
    Server,
    ServerVariable,
    Tag,
)
from oasgraph.document.reference import Reference
from oasgraph.document.schema import XML, Discriminator, ExternalDocumentation, Schema

__all__ = [
    "HTTP_METHODS",
    "REFERENCE_TYPES",
    "XML",
    "Callback",
    "Components",
    "Contact",
    "Discriminator",
    "Encoding",
    "Example",
    "ExternalDocumentation",
    "Header",
    "Info",
    "License",
    "Link",
    "MediaType",
    "Node",
    "OAuthFlow",
    "OAuthFlows",
    "OpenAPI",
    "Operation",
    "Parameter",
    "PathItem",
    "Paths",
    "PositionedDict",
    "Reference",
    "ReferencedCallback",
    "ReferencedExample",
    "ReferencedHeader",
    "ReferencedLink",
    "ReferencedParameter",
    "ReferencedPathItem",
    "ReferencedRequestBody",
    "ReferencedResponse",
    "ReferencedSecurityScheme",
    "RequestBody",
    "Resolvable",
    "ResolutionCache",
    "ResolutionResult",
    "ResolutionState",
    "Response",
    "Responses",
    "Schema",
    "SecurityRequirement",
    "SecurityScheme",
    "Server",
    "ServerVariable",
    "Tag",
]
