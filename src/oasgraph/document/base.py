"""Base classes for the typed OpenAPI object graph.

Every OpenAPI object is a :class:`Node`, a Pydantic v2 model that:

* accepts the camelCase keys used in documents (via an alias generator) as
  well as snake_case attribute names,
* keeps unknown keys in ``model_extra`` so they can be reported as warnings,
* moves ``x-`` keys into :attr:`Node.extensions`,
* remembers the ``(line, column)`` it was parsed from when the input mapping
  came from the position-tracking YAML loader,
* declares its walk order, required fields and mutually exclusive fields as
  class-level data, so that the walker and node-local validation are generic.

:class:`Resolvable` adds the state shared by everything that can carry a
``$ref``: the per-node :class:`~oasgraph.document.cache.ResolutionCache`
and the parent links set while following pointer chains.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, ClassVar, Optional

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    ModelWrapValidatorHandler,
    PrivateAttr,
    model_validator,
)
from pydantic.alias_generators import to_camel

from oasgraph.document.cache import ResolutionCache, ResolutionResult, ResolutionState
from oasgraph.validation import (
    RULE_MUTUALLY_EXCLUSIVE,
    RULE_REQUIRED_FIELD,
    ValidationError,
)

if TYPE_CHECKING:
    from oasgraph.resolution import ResolvedTarget, ResolveOptions


class PositionedDict(dict):
    """A ``dict`` that remembers where its mapping started in the source text.

    Produced by :func:`oasgraph.parser.loader.parse_content` for YAML input.
    """

    line: Optional[int] = None
    column: Optional[int] = None

    def copy(self) -> "PositionedDict":
        duplicate = PositionedDict(self)
        duplicate.line, duplicate.column = self.line, self.column
        return duplicate


class Node(BaseModel):
    """Base for every object in an OpenAPI document."""

    model_config = ConfigDict(
        extra="allow",
        alias_generator=to_camel,
        populate_by_name=True,
    )

    extensions: dict[str, Any] = Field(
        default_factory=dict, description="Specification extensions (``x-`` keys)."
    )

    walk_fields: ClassVar[tuple[str, ...]] = ()
    """Child attributes in the order the walker visits them."""

    required_fields: ClassVar[tuple[str, ...]] = ()
    mutually_exclusive: ClassVar[tuple[tuple[str, str], ...]] = ()

    map_field: ClassVar[Optional[str]] = None
    """For map-shaped objects (``Paths``, ``Responses``...), the attribute holding the entries."""

    _position: tuple[Optional[int], Optional[int]] = PrivateAttr(default=(None, None))

    @model_validator(mode="wrap")
    @classmethod
    def _unmarshal(cls, data: Any, handler: ModelWrapValidatorHandler[Any]) -> Any:
        position = (None, None)
        if isinstance(data, PositionedDict):
            position = (data.line, data.column)
        if isinstance(data, dict):
            data = cls._prepare(data.copy())
        node = handler(data)
        if position[0] is not None:
            node._position = position
        return node

    @classmethod
    def _prepare(cls, data: dict[str, Any]) -> dict[str, Any]:
        """Reshape raw mapping *data* before field validation.

        The default moves ``x-`` keys into ``extensions``. Subclasses with a
        different document shape override this and call ``super()``.
        """
        extension_keys = [k for k in data if isinstance(k, str) and k.startswith("x-")]
        if extension_keys:
            data["extensions"] = {k: data.pop(k) for k in extension_keys}
        return data

    # ------------------------------------------------------------------ #
    # Introspection
    # ------------------------------------------------------------------ #

    @property
    def position(self) -> tuple[Optional[int], Optional[int]]:
        """``(line, column)`` in the source document, or ``(None, None)``."""
        return self._position

    @classmethod
    def field_alias(cls, name: str) -> str:
        """Return the document key for attribute *name*."""
        info = cls.model_fields[name]
        return info.alias or name

    @classmethod
    def _attribute_for_key(cls, key: str) -> Optional[str]:
        for name, info in cls.model_fields.items():
            if key == (info.alias or name) or key == name:
                return name
        return None

    def get_child(self, token: str) -> Any:
        """Return the child stored under document key *token*.

        Used by :func:`oasgraph.jsonpointer.get_target` to navigate typed
        documents.

        Raises:
            KeyError: If there is no such child.
        """
        if self.map_field is not None:
            entries = getattr(self, self.map_field)
            if token in entries:
                return entries[token]
        if token in self.extensions:
            return self.extensions[token]
        name = self._attribute_for_key(token)
        if name is not None and name != "extensions":
            value = getattr(self, name)
            if value is None:
                raise KeyError(token)
            return value
        return (self.model_extra or {})[token]

    def get_unknown_properties(self) -> list[str]:
        """Keys present in the source that this object does not define."""
        return list(self.model_extra or {})

    # ------------------------------------------------------------------ #
    # Node-local validation
    # ------------------------------------------------------------------ #

    def validate_node(self) -> list[ValidationError]:
        """Run the rules that only need this node, not its children or targets."""
        errors: list[ValidationError] = []
        for name in self.required_fields:
            if getattr(self, name) is None:
                errors.append(
                    ValidationError.for_node(
                        self,
                        f"{type(self).__name__.lower()}.{self.field_alias(name)} is required",
                        RULE_REQUIRED_FIELD,
                    )
                )
        for first, second in self.mutually_exclusive:
            if getattr(self, first) is not None and getattr(self, second) is not None:
                errors.append(
                    ValidationError.for_node(
                        self,
                        f"{type(self).__name__.lower()}.{self.field_alias(first)} and "
                        f"{self.field_alias(second)} are mutually exclusive",
                        RULE_MUTUALLY_EXCLUSIVE,
                    )
                )
        errors.extend(self._validate_rules())
        return errors

    def _validate_rules(self) -> list[ValidationError]:
        return []


class Resolvable(Node):
    """A node that may be a ``$ref`` pointer instead of an inline object."""

    _cache: ResolutionCache = PrivateAttr(default_factory=ResolutionCache)
    _parent: Optional["Resolvable"] = PrivateAttr(default=None)
    _top_level_parent: Optional["Resolvable"] = PrivateAttr(default=None)

    def is_reference(self) -> bool:
        return self.get_reference() is not None

    def get_reference(self) -> Optional[str]:
        raise NotImplementedError

    @property
    def resolution_cache(self) -> ResolutionCache:
        return self._cache

    def is_resolved(self) -> bool:
        """True for inline objects and for references whose chain has been followed."""
        if not self.is_reference():
            return True
        return self._cache.state is ResolutionState.RESOLVED

    def get_resolution_info(self) -> Optional[ResolutionResult]:
        """The cached result of this node's own pointer hop, if resolved."""
        return self._cache.result

    def get_parent(self) -> Optional["Resolvable"]:
        """The reference that pointed at this one during chained resolution."""
        return self._parent

    def get_top_level_parent(self) -> Optional["Resolvable"]:
        """The reference that started the chain this node was reached through."""
        return self._top_level_parent

    def set_parent(self, parent: "Resolvable") -> None:
        self._parent = parent
        self._top_level_parent = parent.get_top_level_parent() or parent

    def resolve(self, options: "ResolveOptions") -> "ResolvedTarget":
        """Resolve this node's pointer chain. See :func:`oasgraph.resolution.resolve`."""
        from oasgraph.resolution import resolve

        return resolve(self, options)

    def _resolved_target(self) -> Any:
        result = self._cache.result
        if self._cache.state is not ResolutionState.RESOLVED or result is None:
            return None
        target = result.object
        if isinstance(target, Resolvable):
            if target.is_reference():
                return target._resolved_target()
            return target._inline_object()
        return target

    def _inline_object(self) -> Any:
        return self
