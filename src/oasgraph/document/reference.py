"""The dual-state Reference Node.

A :class:`Reference` is either an inline object or a ``$ref`` pointer (with
optional ``summary`` / ``description`` overrides) that must be resolved to
produce that object. Which state a node is in is decided once, when it is
unmarshalled:

* a mapping containing ``$ref`` becomes the pointer state (``reference`` is
  set, ``object`` is ``None``), and
* any other mapping becomes the inline state (``object`` holds the typed
  object, ``reference`` is ``None``).

Concrete subclasses (``ReferencedParameter``, ``ReferencedResponse``...) live
in :mod:`oasgraph.document.objects` and narrow the type of ``object``.
"""

from __future__ import annotations

from typing import Any, ClassVar, Optional

from pydantic import Field

from oasgraph.document.base import Node, Resolvable
from oasgraph.exceptions import InvalidReferenceError
from oasgraph.references import validate_reference
from oasgraph.validation import RULE_INVALID_REFERENCE, ValidationError


class Reference(Resolvable):
    """Either an inline object or a pointer to one."""

    reference: Optional[str] = Field(default=None, alias="$ref")
    summary: Optional[str] = None
    description: Optional[str] = None
    object: Optional[Node] = None

    object_type: ClassVar[type[Node]] = Node
    """Type of the inline object."""

    kind: ClassVar[str] = ""
    """Entity kind used for index buckets, e.g. ``"parameter"``."""

    component_field: ClassVar[str] = ""
    """Key of the ``components`` section holding reusable objects of this kind."""

    @classmethod
    def _prepare(cls, data: dict[str, Any]) -> dict[str, Any]:
        if "$ref" in data:
            return super()._prepare(data)
        if set(data) == {"object"} and isinstance(data["object"], Node):
            return data
        return {"object": data}

    def get_reference(self) -> Optional[str]:
        return self.reference

    def get_object(self) -> Optional[Node]:
        """The inline object, or the resolved object once the pointer chain is followed."""
        if not self.is_reference():
            return self.object
        return self._resolved_target()

    @property
    def position(self) -> tuple[Optional[int], Optional[int]]:
        if self.object is not None:
            return self.object.position
        return self._position

    def _inline_object(self) -> Any:
        return self.object

    def get_child(self, token: str) -> Any:
        if self.object is None:
            raise KeyError(token)
        return self.object.get_child(token)

    def get_unknown_properties(self) -> list[str]:
        if self.object is not None:
            return self.object.get_unknown_properties()
        return super().get_unknown_properties()

    def validate_node(self) -> list[ValidationError]:
        if self.object is not None:
            return self.object.validate_node()
        if self.reference is None:
            return []
        try:
            validate_reference(self.reference)
        except InvalidReferenceError as exc:
            return [ValidationError.for_node(self, str(exc), RULE_INVALID_REFERENCE)]
        return []
