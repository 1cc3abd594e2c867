"""RFC 6901 JSON pointers over raw and typed documents.

Pointers are used in two directions: the resolver follows the fragment of a
``$ref`` into a document, and the walker turns a location path back into a
pointer. Both go through :func:`escape` / :func:`unescape` so that the two
directions round-trip.

:func:`get_target` navigates plain ``dict`` / ``list`` data (external
documents as parsed from YAML) as well as typed nodes, which expose their
children through ``get_child``.
"""

from __future__ import annotations

import re
from typing import Any, Iterable

from oasgraph.exceptions import JsonPointerError

_INVALID_ESCAPE = re.compile(r"~(?![01])")


def escape(token: str) -> str:
    """Escape a single reference token (``~`` -> ``~0``, ``/`` -> ``~1``)."""
    return token.replace("~", "~0").replace("/", "~1")


def unescape(token: str) -> str:
    """Unescape a single reference token.

    Raises:
        JsonPointerError: If the token contains a ``~`` not followed by ``0`` or ``1``.
    """
    if _INVALID_ESCAPE.search(token):
        raise JsonPointerError(f"invalid JSON pointer escape in token: {token!r}")
    # Order matters: ~1 first so that "~01" decodes to "~1", not "/".
    return token.replace("~1", "/").replace("~0", "~")


def validate(pointer: str) -> None:
    """Check that *pointer* is syntactically valid.

    The empty pointer refers to the whole document. Any other pointer must
    start with ``/`` and contain only valid escapes.

    Raises:
        JsonPointerError: If the pointer is malformed.
    """
    if pointer == "":
        return
    if not pointer.startswith("/"):
        raise JsonPointerError(f"invalid JSON pointer: {pointer!r} must start with '/'")
    if _INVALID_ESCAPE.search(pointer):
        raise JsonPointerError(f"invalid JSON pointer: {pointer!r} contains an invalid '~' escape")


def parse(pointer: str) -> list[str]:
    """Split *pointer* into unescaped reference tokens."""
    validate(pointer)
    if pointer == "":
        return []
    return [unescape(token) for token in pointer[1:].split("/")]


def from_tokens(tokens: Iterable[str]) -> str:
    """Build a pointer from unescaped reference tokens."""
    return "".join("/" + escape(str(token)) for token in tokens)


def get_target(document: Any, pointer: str) -> Any:
    """Return the value *pointer* refers to inside *document*.

    Args:
        document: A parsed ``dict`` / ``list`` tree, or a typed node.
        pointer: The JSON pointer (without the leading ``#``).

    Returns:
        The target value. For typed documents this is the node object
        itself, so identity is preserved.

    Raises:
        JsonPointerError: If the pointer is malformed or a segment is missing.
    """
    current = document
    for position, token in enumerate(parse(pointer)):
        try:
            current = _child(current, token)
        except (KeyError, IndexError, ValueError) as exc:
            walked = from_tokens(parse(pointer)[: position + 1])
            raise JsonPointerError(f"JSON pointer segment {walked!r} not found") from exc
    return current


def _child(current: Any, token: str) -> Any:
    if hasattr(current, "get_child"):
        return current.get_child(token)
    if isinstance(current, dict):
        return current[token]
    if isinstance(current, list):
        if not token.isdigit() or (len(token) > 1 and token.startswith("0")):
            raise ValueError(f"invalid array index {token!r}")
        return current[int(token)]
    raise KeyError(token)
