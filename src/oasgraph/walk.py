"""Depth-first walk over a typed OpenAPI document.

:func:`walk` is a generator yielding a :class:`WalkItem` for every object,
map entry, array element and Reference Node reachable from the root, each
with the :class:`Locations` path describing how it was reached::

    for item in walk(document):
        if isinstance(item.node, Schema):
            print(item.location.to_json_pointer())

The walk is pre-order: a container is yielded before its children, and a
node's ``x-`` extensions map is yielded last among its children. Pointers
are not followed. A ``$ref`` Reference Node or schema is yielded once as an
opaque item; the index walks into resolved targets separately with
:func:`walk_node`.

Stopping early is always safe: close the generator, break out of the loop,
or set the ``cancel`` event.
"""

from __future__ import annotations

import threading
from dataclasses import dataclass
from typing import Any, Iterator, Optional

from oasgraph import jsonpointer
from oasgraph.document import Node, Reference, Resolvable


@dataclass(frozen=True, eq=False)
class LocationContext:
    """One step of a location path.

    ``parent_field`` names the attribute of ``parent`` the child hangs off.
    Map entries add ``parent_key`` and array elements add ``parent_index``
    on top of the field. Entries of map-shaped objects (``Paths``,
    ``Responses``...) and operations have a key but no field, and the
    extensions step has neither.
    """

    parent: Any
    parent_field: str = ""
    parent_key: Optional[str] = None
    parent_index: Optional[int] = None

    @property
    def parent_type(self) -> str:
        return type(self.parent).__name__

    def tokens(self) -> list[str]:
        """Unescaped JSON pointer tokens contributed by this step."""
        tokens = [self.parent_field] if self.parent_field else []
        if self.parent_key is not None:
            tokens.append(self.parent_key)
        elif self.parent_index is not None:
            tokens.append(str(self.parent_index))
        return tokens


class Locations(tuple):
    """Immutable path of :class:`LocationContext` steps from the walk root."""

    def append(self, step: LocationContext) -> "Locations":
        return Locations((*self, step))

    def to_json_pointer(self) -> str:
        return jsonpointer.from_tokens(token for step in self for token in step.tokens())

    def __repr__(self) -> str:
        return f"Locations({self.to_json_pointer()!r})"


@dataclass
class WalkItem:
    node: Any
    """The visited object. For the extensions step, the extensions ``dict``."""

    location: Locations
    root: Any
    """The node the walk started from."""

    @property
    def pointer(self) -> str:
        return self.location.to_json_pointer()

    @property
    def is_extensions(self) -> bool:
        return bool(self.location) and not self.location[-1].tokens() and isinstance(self.node, dict)


def walk(document: Node, cancel: Optional[threading.Event] = None) -> Iterator[WalkItem]:
    """Yield every node of *document*, depth-first, pre-order."""
    yield from walk_node(document, cancel=cancel)


def walk_node(
    node: Node,
    location: Locations = Locations(),
    *,
    cancel: Optional[threading.Event] = None,
    root: Any = None,
) -> Iterator[WalkItem]:
    """Walk the sub-tree rooted at *node*, with locations relative to *location*."""
    yield from _walk(node, location, cancel, node if root is None else root)


def _cancelled(cancel: Optional[threading.Event]) -> bool:
    return cancel is not None and cancel.is_set()


def _walk(node: Node, location: Locations, cancel: Optional[threading.Event], root: Any) -> Iterator[WalkItem]:
    if _cancelled(cancel):
        return
    yield WalkItem(node, location, root)

    target: Optional[Node] = node
    if isinstance(node, Resolvable):
        if node.is_reference():
            return
        if isinstance(node, Reference):
            target = node.object
    if target is not None:
        yield from _walk_children(target, location, cancel, root)


def _walk_children(node: Node, location: Locations, cancel: Optional[threading.Event], root: Any) -> Iterator[WalkItem]:
    cls = type(node)
    keyed = getattr(cls, "keyed_fields", frozenset())

    for name in cls.walk_fields:
        value = getattr(node, name)
        if value is None:
            continue
        alias = cls.field_alias(name)
        if name in keyed:
            yield from _walk(value, location.append(LocationContext(node, parent_key=alias)), cancel, root)
        else:
            yield from _walk_value(node, alias, value, location, cancel, root)

    if cls.map_field is not None:
        for key, value in getattr(node, cls.map_field).items():
            if isinstance(value, Node):
                yield from _walk(value, location.append(LocationContext(node, parent_key=key)), cancel, root)

    if node.extensions and not _cancelled(cancel):
        yield WalkItem(node.extensions, location.append(LocationContext(node)), root)


def _walk_value(
    parent: Node,
    field: str,
    value: Any,
    location: Locations,
    cancel: Optional[threading.Event],
    root: Any,
) -> Iterator[WalkItem]:
    if isinstance(value, Node):
        yield from _walk(value, location.append(LocationContext(parent, field)), cancel, root)
    elif isinstance(value, list):
        for index, item in enumerate(value):
            if isinstance(item, Node):
                step = LocationContext(parent, field, parent_index=index)
                yield from _walk(item, location.append(step), cancel, root)
    elif isinstance(value, dict):
        for key, item in value.items():
            if isinstance(item, Node):
                step = LocationContext(parent, field, parent_key=key)
                yield from _walk(item, location.append(step), cancel, root)
