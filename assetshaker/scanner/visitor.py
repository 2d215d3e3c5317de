"""Extraction of asset references from a syntax tree."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterable, List, Optional, Sequence, Set, Tuple

from ..config import DEFAULT_ASSET_PREFIXES, DEFAULT_KEEP_ANNOTATIONS
from ..models import AssetReference, DynamicAssetReference, ReferenceKind
from ..patterns import normalize_path
from .syntax import (
    AdjacentStrings,
    Annotation,
    BinaryExpression,
    ListLiteral,
    Node,
    StringInterpolation,
    StringLiteral,
)


@dataclass
class ExtractionResult:
    """References found in one or more source files."""

    static_assets: Set[str] = field(default_factory=set)
    dynamic_references: Set[DynamicAssetReference] = field(default_factory=set)
    annotated_assets: Set[str] = field(default_factory=set)
    all_references: List[AssetReference] = field(default_factory=list)

    def merge(self, other: "ExtractionResult") -> "ExtractionResult":
        return ExtractionResult(
            static_assets=self.static_assets | other.static_assets,
            dynamic_references=self.dynamic_references | other.dynamic_references,
            annotated_assets=self.annotated_assets | other.annotated_assets,
            all_references=[*self.all_references, *other.all_references],
        )


class ReferenceExtractor:
    """Walks a syntax tree and records static, dynamic and annotated asset references."""

    def __init__(
        self,
        source_file: str,
        asset_prefixes: Sequence[str] = DEFAULT_ASSET_PREFIXES,
        keep_annotations: Sequence[str] = DEFAULT_KEEP_ANNOTATIONS,
    ) -> None:
        self.source_file = source_file
        self.asset_prefixes = tuple(asset_prefixes)
        self.keep_annotations = frozenset(keep_annotations)

    def extract(self, root: Node) -> ExtractionResult:
        result = ExtractionResult()
        stack: List[Node] = [root]
        while stack:
            node = stack.pop()
            descend = self._visit(node, result)
            stack.extend(reversed(tuple(descend)))
        return result

    def _visit(self, node: Node, result: ExtractionResult) -> Iterable[Node]:
        """Record references for ``node`` and return the nodes to visit next."""
        if isinstance(node, StringLiteral):
            if self._looks_like_asset(node.value):
                self._add_static(node.value, node, ReferenceKind.STATIC, result)
            return ()

        if isinstance(node, AdjacentStrings):
            if all(isinstance(part, StringLiteral) for part in node.strings):
                value = "".join(part.value for part in node.strings)  # type: ignore[union-attr]
                if self._looks_like_asset(value):
                    self._add_static(value, node, ReferenceKind.ADJACENT_STRINGS, result)
                return ()
            return node.strings

        if isinstance(node, StringInterpolation):
            parts = _interpolation_parts(node)
            if parts is not None and self._looks_like_asset(parts[0]):
                self._add_dynamic(parts[0], parts[1], node, ReferenceKind.INTERPOLATION, result)
            return node.children

        if isinstance(node, BinaryExpression) and node.operator == "+":
            operands = _flatten_concatenation(node)
            parts = _concatenation_parts(operands)
            if parts is not None and self._looks_like_asset(parts[0]):
                self._add_dynamic(parts[0], parts[1], node, ReferenceKind.CONCATENATION, result)
                # Literal operands were consumed into the prefix/suffix.
                return [operand for operand in operands if not isinstance(operand, StringLiteral)]
            # Nested "+" nodes of this chain were already considered.
            return operands

        if isinstance(node, Annotation) and node.name in self.keep_annotations:
            for argument in node.arguments:
                self._add_annotated(argument, result)
            return [arg for arg in node.arguments if not isinstance(arg, (StringLiteral, ListLiteral))]

        return node.children

    def _add_annotated(self, argument: Node, result: ExtractionResult) -> None:
        if isinstance(argument, StringLiteral):
            candidates: Tuple[Node, ...] = (argument,)
        elif isinstance(argument, ListLiteral):
            candidates = argument.elements
        else:
            return
        for candidate in candidates:
            if not isinstance(candidate, StringLiteral):
                continue
            path = normalize_path(candidate.value)
            result.annotated_assets.add(path)
            result.all_references.append(
                self._reference(path, candidate, ReferenceKind.ANNOTATION)
            )

    def _add_static(
        self, value: str, node: Node, kind: ReferenceKind, result: ExtractionResult
    ) -> None:
        path = normalize_path(value)
        result.static_assets.add(path)
        result.all_references.append(self._reference(path, node, kind))

    def _add_dynamic(
        self,
        prefix: str,
        suffix: Optional[str],
        node: Node,
        kind: ReferenceKind,
        result: ExtractionResult,
    ) -> None:
        reference = DynamicAssetReference(
            static_prefix=normalize_path(prefix),
            static_suffix=suffix or None,
            source_file=self.source_file,
            line=node.position.line,
            column=node.position.column,
            original_expression=node.text,
        )
        result.dynamic_references.add(reference)
        result.all_references.append(
            self._reference(reference.inferred_pattern, node, kind, expression=node.text)
        )

    def _reference(
        self, path: str, node: Node, kind: ReferenceKind, expression: Optional[str] = None
    ) -> AssetReference:
        return AssetReference(
            asset_path=path,
            source_file=self.source_file,
            line=node.position.line,
            column=node.position.column,
            kind=kind,
            expression=expression,
        )

    def _looks_like_asset(self, value: str) -> bool:
        normalized = normalize_path(value)
        return any(normalized.startswith(prefix) for prefix in self.asset_prefixes)


def _interpolation_parts(node: StringInterpolation) -> Optional[Tuple[str, Optional[str]]]:
    elements = node.elements
    if not elements:
        return None
    first = elements[0]
    prefix = first if isinstance(first, str) else None
    suffix: Optional[str] = None
    if len(elements) > 1 and isinstance(elements[-1], str):
        suffix = elements[-1] or None
    if not prefix:
        return None
    return prefix, suffix


def _flatten_concatenation(node: BinaryExpression) -> List[Node]:
    operands: List[Node] = []
    stack: List[Node] = [node]
    while stack:
        current = stack.pop()
        if isinstance(current, BinaryExpression) and current.operator == "+":
            stack.append(current.right)
            stack.append(current.left)
        else:
            operands.append(current)
    return operands


def _concatenation_parts(operands: Sequence[Node]) -> Optional[Tuple[str, Optional[str]]]:
    prefix_parts: List[str] = []
    suffix: Optional[str] = None
    seen_variable = False
    for operand in operands:
        if isinstance(operand, StringLiteral):
            if seen_variable:
                suffix = operand.value
            else:
                prefix_parts.append(operand.value)
        else:
            seen_variable = True
    if not prefix_parts:
        return None
    return "".join(prefix_parts), suffix


__all__ = ["ExtractionResult", "ReferenceExtractor"]
