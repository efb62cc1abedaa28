"""
Expression tree primitives for listing filters.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, List


AND = "AND"
OR = "OR"


@dataclass
class Q:
    """
    Boolean filter expression in the familiar ``Q(name__lookup=value)`` style.

    Keyword lookups inside one ``Q`` are AND-ed; combine instances with
    ``&``, ``|`` and ``~``.
    """

    children: List[Any] = field(default_factory=list)
    connector: str = AND
    negated: bool = False

    def __init__(self, *children: Any, **lookups: Any) -> None:
        self.children = list(children)
        self.children.extend(lookups.items())
        self.connector = AND
        self.negated = False

    def __or__(self, other: "Q") -> "Q":
        return self._combine(other, OR)

    def __and__(self, other: "Q") -> "Q":
        return self._combine(other, AND)

    def __invert__(self) -> "Q":
        q = self._clone()
        q.negated = not q.negated
        return q

    # Internal helpers -------------------------------------------------
    def _clone(self) -> "Q":
        clone = Q()
        clone.children = list(self.children)
        clone.connector = self.connector
        clone.negated = self.negated
        return clone

    def _combine(self, other: "Q", connector: str) -> "Q":
        if not isinstance(other, Q):
            return NotImplemented
        q = Q()
        q.children = [self._clone(), other._clone()]
        q.connector = connector
        return q

    def is_empty(self) -> bool:
        return not self.children
