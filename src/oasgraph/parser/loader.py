"""Load OpenAPI documents from a URL, local file, or stdin.

This module handles all I/O for fetching raw documents and turning them into
Python data, and unmarshals root documents into the typed
:class:`~oasgraph.document.OpenAPI` model. Both JSON and YAML are supported
with automatic format detection.

YAML is parsed with a :class:`yaml.SafeLoader` subclass that builds every
mapping as a :class:`~oasgraph.document.PositionedDict`, so that the typed
nodes know the ``(line, column)`` they came from and diagnostics can cite
it. JSON input carries no positions.

Public functions:

* :func:`load_document` -- Load, version-check and unmarshal a root document.
* :func:`load_raw` -- Load and parse any document (used for ``$ref`` targets
  in other files).
* :func:`parse_content` -- Parse a string as JSON or YAML.
* :func:`validate_openapi_version` -- Reject Swagger 2.x and non-3.x documents.
"""

from __future__ import annotations

import json
import logging
import sys
from pathlib import Path
from typing import Any, Optional

import httpx
import pydantic
import yaml

from oasgraph.document import OpenAPI, PositionedDict
from oasgraph.exceptions import ConnectionError_, SpecParseError
from oasgraph.references import ReferenceType, classify, file_url_to_path

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 30.0


# --- Position-tracking YAML ---


class PositionLoader(yaml.SafeLoader):
    """SafeLoader that records where each mapping starts."""


def _construct_positioned_map(loader: PositionLoader, node: yaml.MappingNode):
    data = PositionedDict()
    data.line = node.start_mark.line + 1
    data.column = node.start_mark.column + 1
    yield data
    mapping = loader.construct_mapping(node)
    # YAML turns keys like 200 into ints; OpenAPI keys are always strings.
    data.update((k if isinstance(k, str) else str(k), v) for k, v in mapping.items())


PositionLoader.add_constructor("tag:yaml.org,2002:map", _construct_positioned_map)


# --- Loading ---


def load_document(
    source: str,
    client: Optional[httpx.Client] = None,
    timeout: float = DEFAULT_TIMEOUT,
) -> OpenAPI:
    """Load an OpenAPI document and unmarshal it into the typed model.

    Args:
        source: A URL (http/https), file path, or ``'-'`` for stdin.
        client: Optional :class:`httpx.Client` used for remote sources.
        timeout: Request timeout in seconds when no client is given.

    Returns:
        The :class:`~oasgraph.document.OpenAPI` root, with its location set
        to the absolute path or URL it was loaded from.

    Raises:
        SpecParseError: If the document cannot be read, parsed, or is not
            OpenAPI 3.x.
        ConnectionError_: If a remote source cannot be reached.
    """
    raw = load_raw(source, client=client, timeout=timeout)
    if not isinstance(raw, dict):
        raise SpecParseError(f"Spec must be a JSON/YAML object (got {type(raw).__name__})")
    validate_openapi_version(raw)

    try:
        document = OpenAPI.model_validate(raw)
    except pydantic.ValidationError as exc:
        raise SpecParseError(f"Invalid OpenAPI document: {exc}") from exc

    document.set_location(absolute_location(source))
    logger.debug("Loaded %s (openapi %s)", document.location or "stdin", document.openapi)
    return document


def absolute_location(source: str) -> str:
    """Return the absolute form of *source* used as a resolution base."""
    if source == "-":
        return ""
    if classify(source) is ReferenceType.URL:
        return source
    return str(Path(source).resolve())


def load_raw(
    source: str,
    client: Optional[httpx.Client] = None,
    timeout: float = DEFAULT_TIMEOUT,
) -> Any:
    """Load and parse a document from URL, file path, or stdin ('-').

    Args:
        source: A URL (http/https/file), file path, or '-' for stdin.
        client: Optional :class:`httpx.Client` used for remote sources.
        timeout: Request timeout in seconds when no client is given.

    Returns:
        The parsed document.

    Raises:
        SpecParseError: If the source cannot be loaded or parsed.
        ConnectionError_: If a remote source cannot be reached.
    """
    if source == "-":
        return _load_from_stdin()
    if source.startswith("file:"):
        return _load_from_file(file_url_to_path(source))
    if source.startswith(("http://", "https://")):
        return _load_from_url(source, client=client, timeout=timeout)
    return _load_from_file(source)


def _load_from_stdin() -> Any:
    """Read a document from stdin.

    Raises:
        SpecParseError: If stdin is empty or content cannot be parsed.
    """
    try:
        content = sys.stdin.read()
    except Exception as exc:
        raise SpecParseError(f"Failed to read from stdin: {exc}") from exc

    if not content.strip():
        raise SpecParseError("No input received from stdin")

    return parse_content(content, hint="stdin")


def _load_from_url(
    url: str,
    client: Optional[httpx.Client] = None,
    timeout: float = DEFAULT_TIMEOUT,
) -> Any:
    """Fetch a document from a URL. Supports JSON and YAML responses.

    Raises:
        SpecParseError: If the server answers with an error status or the
            content cannot be parsed.
        ConnectionError_: On network-level failures.
    """
    logger.info("Fetching %s", url)
    try:
        if client is not None:
            response = client.get(url)
        else:
            response = httpx.get(url, timeout=timeout, follow_redirects=True)
        response.raise_for_status()
    except httpx.HTTPStatusError as exc:
        raise SpecParseError(
            f"HTTP {exc.response.status_code} fetching document from {url}"
        ) from exc
    except httpx.RequestError as exc:
        raise ConnectionError_(f"Failed to fetch document from {url}: {exc}") from exc

    content_type = response.headers.get("content-type", "")
    hint = ""
    if "json" in content_type:
        hint = "json"
    elif "yaml" in content_type or "yml" in content_type:
        hint = "yaml"

    return parse_content(response.text, hint=hint)


def _load_from_file(path: str) -> Any:
    """Load a document from a local file.

    Raises:
        SpecParseError: If the file cannot be read or content cannot be parsed.
    """
    file_path = Path(path)
    if not file_path.is_file():
        raise SpecParseError(f"Spec file not found: {path}")

    try:
        content = file_path.read_text(encoding="utf-8")
    except OSError as exc:
        raise SpecParseError(f"Failed to read spec file {path}: {exc}") from exc

    if not content.strip():
        raise SpecParseError(f"Spec file is empty: {path}")

    suffix = file_path.suffix.lower()
    hint = ""
    if suffix == ".json":
        hint = "json"
    elif suffix in (".yaml", ".yml"):
        hint = "yaml"

    return parse_content(content, hint=hint)


def parse_content(content: str, hint: str = "") -> Any:
    """Parse content as JSON or YAML.

    Tries JSON first (unless hint is 'yaml'), then falls back to YAML, since
    valid JSON is also valid YAML but JSON parsing is stricter and faster.

    Args:
        content: The raw string content.
        hint: Optional format hint ('json' or 'yaml').

    Returns:
        The parsed data. YAML mappings are :class:`PositionedDict` instances.

    Raises:
        SpecParseError: If the content cannot be parsed as either format.
    """
    json_error: Exception | None = None

    if hint != "yaml":
        try:
            return json.loads(content)
        except json.JSONDecodeError as exc:
            json_error = exc
            if hint == "json":
                raise SpecParseError(f"Invalid JSON: {exc}") from exc

    try:
        result = yaml.load(content, Loader=PositionLoader)
    except yaml.YAMLError as exc:
        msg = "Failed to parse document as JSON or YAML"
        if json_error:
            msg += f"\n  JSON error: {json_error}"
        msg += f"\n  YAML error: {exc}"
        raise SpecParseError(msg) from exc

    if result is None:
        raise SpecParseError("Spec must be a JSON/YAML object (got empty document)")
    return result


def validate_openapi_version(spec: dict[str, Any]) -> str:
    """Validate and return the OpenAPI version string.

    Supports OpenAPI 3.0.x and 3.1.x. Later 3.x versions are accepted and
    left for node-local validation to flag.

    Raises:
        SpecParseError: If the version is missing, unsupported, or indicates Swagger 2.x.
    """
    if "swagger" in spec:
        swagger_ver = str(spec["swagger"])
        raise SpecParseError(
            f"Swagger {swagger_ver} is not supported. "
            "Only OpenAPI 3.0.x and 3.1.x are supported. "
            "Consider converting with https://converter.swagger.io"
        )

    openapi_version = spec.get("openapi")
    if openapi_version is None:
        raise SpecParseError("Missing 'openapi' field. Is this an OpenAPI 3.x document?")

    version_str = str(openapi_version)
    if version_str.startswith("3."):
        if not isinstance(openapi_version, str):
            spec["openapi"] = version_str
        return version_str

    raise SpecParseError(
        f"Unsupported OpenAPI version: {version_str}. "
        "Only OpenAPI 3.0.x and 3.1.x are supported."
    )
