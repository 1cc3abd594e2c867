"""Parse, classify and absolutise ``$ref`` strings.

A reference has two parts separated by ``#``: an optional URI naming the
document (a URL, or a file path relative to the referring document), and an
optional JSON pointer into that document::

    #/components/schemas/Pet                 local fragment
    common.yaml#/components/schemas/Error    relative file
    https://example.com/api.yaml#/paths      remote document

Resolution always works with *absolute* references, which combine the
absolute document location with the pointer. They are the keys of every
cache and of the cycle-detection chain.
"""

from __future__ import annotations

import enum
import os
import posixpath
import re
from functools import lru_cache
from typing import NamedTuple
from urllib.parse import urljoin, urlsplit
from urllib.request import url2pathname

from oasgraph import jsonpointer
from oasgraph.exceptions import InvalidReferenceError, JsonPointerError

_WHITESPACE = re.compile(r"\s")


class ReferenceType(str, enum.Enum):
    """Where a reference points."""

    URL = "url"
    FILE_PATH = "file_path"
    FRAGMENT = "fragment"


class AbsoluteReference(NamedTuple):
    """The absolute form of a reference relative to its referring document."""

    document: str
    """Absolute path or URL of the target document."""

    reference: str
    """``document#pointer``, or just ``document`` when there is no pointer."""


def split_reference(ref: str) -> tuple[str, str]:
    """Split *ref* into its ``(uri, json_pointer)`` parts."""
    uri, _, pointer = ref.partition("#")
    return uri, pointer


def get_uri(ref: str) -> str:
    return split_reference(ref)[0]


def get_json_pointer(ref: str) -> str:
    return split_reference(ref)[1]


def validate_reference(ref: str) -> None:
    """Check the syntax of a ``$ref`` string.

    Raises:
        InvalidReferenceError: If the reference is empty, contains
            whitespace, has a scheme-less network location, or its fragment
            is not a valid JSON pointer.
    """
    if not ref:
        raise InvalidReferenceError("reference is empty")
    if _WHITESPACE.search(ref):
        raise InvalidReferenceError(f"invalid reference {ref!r}: contains whitespace")

    uri, pointer = split_reference(ref)
    if uri.startswith("//"):
        raise InvalidReferenceError(f"invalid reference {ref!r}: missing scheme")
    if "://" in uri and not urlsplit(uri).scheme:
        raise InvalidReferenceError(f"invalid reference {ref!r}: missing scheme")

    try:
        jsonpointer.validate(pointer)
    except JsonPointerError as exc:
        raise InvalidReferenceError(f"invalid reference {ref!r}: {exc}") from exc


def _is_url(value: str) -> bool:
    # A single-letter scheme is a Windows drive, not a URL.
    scheme = urlsplit(value).scheme
    return len(scheme) > 1


def classify(ref: str) -> ReferenceType:
    """Classify *ref* as a URL, a file path, or a local fragment."""
    if _is_url(ref):
        return ReferenceType.URL
    if ref.startswith("#"):
        return ReferenceType.FRAGMENT
    return ReferenceType.FILE_PATH


def file_url_to_path(url: str) -> str:
    """Convert a ``file://`` URL into a local filesystem path."""
    return url2pathname(urlsplit(url).path)


def resolve_absolute_reference(ref: str, target_location: str) -> AbsoluteReference:
    """Absolutise *ref* against the location of the document it appears in.

    * An empty URI refers to *target_location* itself.
    * Absolute URLs and absolute file paths are used as-is.
    * Anything else is joined with the directory of *target_location*, as a
      URL join when the referring document is remote.

    Args:
        ref: The raw ``$ref`` string.
        target_location: Path or URL of the referring document. May be empty
            for documents built in memory.

    Returns:
        The :class:`AbsoluteReference`.
    """
    # Relative paths in documents built in memory follow the working directory.
    return _absolute_reference(ref, target_location, "" if target_location else os.getcwd())


@lru_cache(maxsize=4096)
def _absolute_reference(ref: str, target_location: str, cwd: str) -> AbsoluteReference:
    uri, pointer = split_reference(ref)

    if not uri:
        document = target_location
    elif _is_url(uri):
        document = uri
    elif os.path.isabs(uri):
        document = os.path.normpath(uri)
    elif _is_url(target_location):
        document = urljoin(target_location, uri)
    else:
        base = os.path.dirname(target_location) if target_location else cwd
        document = os.path.normpath(os.path.join(base, uri))

    if _is_url(document) and not document.startswith("file:"):
        # Normalise "a/../b" segments in remote paths so cache keys match.
        parts = urlsplit(document)
        path = posixpath.normpath(parts.path) if parts.path else parts.path
        document = parts._replace(path=path).geturl()

    reference = f"{document}#{pointer}" if pointer or "#" in ref else document
    return AbsoluteReference(document, reference)
