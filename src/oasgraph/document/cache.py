"""Per-reference resolution cache.

Each reference-bearing node (a :class:`~oasgraph.document.reference.Reference`
or a ``$ref`` :class:`~oasgraph.document.schema.Schema`) owns one
:class:`ResolutionCache`. The cache moves from ``UNRESOLVED`` to exactly one
terminal state, ``RESOLVED`` or ``CIRCULAR_ERROR``, and never stores a
partial result: if the resolve callback raises, the cache stays
``UNRESOLVED`` and a later caller may retry.

Reads of a terminal state are lock-free. Resolution itself runs under a
:class:`threading.Lock` with a second check inside the lock, so concurrent
callers trigger at most one physical resolution.
"""

from __future__ import annotations

import enum
import threading
from dataclasses import dataclass, field
from typing import Any, Callable, Optional


class ResolutionState(str, enum.Enum):
    UNRESOLVED = "unresolved"
    RESOLVED = "resolved"
    CIRCULAR_ERROR = "circular_error"


@dataclass
class ResolutionResult:
    """The cached outcome of resolving one pointer hop."""

    object: Any
    """The pointer target. May itself be a reference for chained pointers."""

    absolute_document_path: str
    """Absolute path or URL of the document the target lives in."""

    absolute_reference: str
    """``absolute_document_path#pointer`` for the hop."""

    document: Any = None
    """The document the target was found in (typed root or raw data)."""

    validation_errors: list = field(default_factory=list)
    """Diagnostics produced while unmarshalling the target."""


class ResolutionCache:
    """Write-once cache guarded by a single writer lock."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._state = ResolutionState.UNRESOLVED
        self._result: Optional[ResolutionResult] = None
        self._error: Optional[Exception] = None
        self.resolve_count = 0

    @property
    def state(self) -> ResolutionState:
        return self._state

    @property
    def result(self) -> Optional[ResolutionResult]:
        return self._result

    @property
    def error(self) -> Optional[Exception]:
        return self._error

    def get_or_resolve(self, resolve: Callable[[], ResolutionResult]) -> ResolutionResult:
        """Return the cached result, running *resolve* at most once.

        Raises:
            Exception: The stored error when the cache is in ``CIRCULAR_ERROR``,
                or whatever *resolve* raises (the cache is left unchanged).
        """
        if self._state is ResolutionState.RESOLVED:
            return self._result  # type: ignore[return-value]
        if self._state is ResolutionState.CIRCULAR_ERROR:
            raise self._error  # type: ignore[misc]

        with self._lock:
            if self._state is ResolutionState.RESOLVED:
                return self._result  # type: ignore[return-value]
            if self._state is ResolutionState.CIRCULAR_ERROR:
                raise self._error  # type: ignore[misc]

            result = resolve()
            self._result = result
            self.resolve_count += 1
            self._state = ResolutionState.RESOLVED
            return result

    def mark_circular(self, error: Exception) -> None:
        """Move the cache to ``CIRCULAR_ERROR``, keeping the first error recorded."""
        with self._lock:
            if self._state is ResolutionState.CIRCULAR_ERROR:
                return
            self._error = error
            self._state = ResolutionState.CIRCULAR_ERROR
