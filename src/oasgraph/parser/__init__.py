"""Document loading -- read OpenAPI documents and unmarshal them into typed nodes.

Typical usage::

    from oasgraph.parser import load_document

    document = load_document("openapi.yaml")

Sub-modules:

* :mod:`~oasgraph.parser.loader` -- I/O layer (URL, file, stdin), format
  detection, position-tracking YAML and OpenAPI version validation.
"""

from oasgraph.parser.loader import load_document, load_raw, parse_content, validate_openapi_version

__all__ = ["load_document", "load_raw", "parse_content", "validate_openapi_version"]
