"""Tagged-union syntax nodes consumed by the reference extractor.

Parser adapters translate their concrete trees into these nodes. Only the
shapes the extractor cares about get their own class; everything else is a
``GenericNode`` whose children are still traversed.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Tuple, Union


@dataclass(frozen=True)
class Position:
    offset: int = 0
    line: int = 0
    column: int = 0


@dataclass(frozen=True)
class StringLiteral:
    """A string with no substitutions."""

    value: str
    position: Position = field(default_factory=Position)
    text: str = ""

    @property
    def children(self) -> Tuple["Node", ...]:
        return ()


@dataclass(frozen=True)
class Substitution:
    """An interpolated expression inside a string."""

    text: str
    children: Tuple["Node", ...] = ()
    position: Position = field(default_factory=Position)


@dataclass(frozen=True)
class StringInterpolation:
    """A string with substitutions.

    ``elements`` alternates literal text and ``Substitution`` entries and
    always starts and ends with a (possibly empty) literal.
    """

    elements: Tuple[Union[str, Substitution], ...]
    position: Position = field(default_factory=Position)
    text: str = ""

    @property
    def children(self) -> Tuple["Node", ...]:
        nested: list[Node] = []
        for element in self.elements:
            if isinstance(element, Substitution):
                nested.extend(element.children)
        return tuple(nested)


@dataclass(frozen=True)
class AdjacentStrings:
    """String literals written next to each other without an operator."""

    strings: Tuple["Node", ...]
    position: Position = field(default_factory=Position)
    text: str = ""

    @property
    def children(self) -> Tuple["Node", ...]:
        return self.strings


@dataclass(frozen=True)
class BinaryExpression:
    operator: str
    left: "Node"
    right: "Node"
    position: Position = field(default_factory=Position)
    text: str = ""

    @property
    def children(self) -> Tuple["Node", ...]:
        return (self.left, self.right)


@dataclass(frozen=True)
class ListLiteral:
    elements: Tuple["Node", ...]
    position: Position = field(default_factory=Position)
    text: str = ""

    @property
    def children(self) -> Tuple["Node", ...]:
        return self.elements


@dataclass(frozen=True)
class Annotation:
    """``@Name(args)``; ``name`` is the unqualified identifier."""

    name: str
    arguments: Tuple["Node", ...] = ()
    position: Position = field(default_factory=Position)
    text: str = ""

    @property
    def children(self) -> Tuple["Node", ...]:
        return self.arguments


@dataclass(frozen=True)
class GenericNode:
    kind: str
    nodes: Tuple["Node", ...] = ()
    position: Position = field(default_factory=Position)
    text: str = ""

    @property
    def children(self) -> Tuple["Node", ...]:
        return self.nodes


Node = Union[
    StringLiteral,
    StringInterpolation,
    AdjacentStrings,
    BinaryExpression,
    ListLiteral,
    Annotation,
    GenericNode,
]


def walk(node: Node):
    """Yield ``node`` and all of its descendants depth-first."""
    stack = [node]
    while stack:
        current = stack.pop()
        yield current
        stack.extend(reversed(current.children))


__all__ = [
    "AdjacentStrings",
    "Annotation",
    "BinaryExpression",
    "GenericNode",
    "ListLiteral",
    "Node",
    "Position",
    "StringInterpolation",
    "StringLiteral",
    "Substitution",
    "walk",
]
