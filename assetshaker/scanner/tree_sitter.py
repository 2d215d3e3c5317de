"""Tree-sitter powered Dart parser that produces extractor syntax nodes."""

from __future__ import annotations

import threading
from dataclasses import dataclass
from typing import Any, List, Optional, Sequence, Tuple, Union

from ..logging import get_logger
from .syntax import (
    AdjacentStrings,
    Annotation,
    BinaryExpression,
    GenericNode,
    ListLiteral,
    Node,
    Position,
    StringInterpolation,
    StringLiteral,
    Substitution,
)

try:  # pragma: no cover - optional dependency
    from tree_sitter_language_pack import get_parser

    TREE_SITTER_AVAILABLE = True
except ModuleNotFoundError:  # pragma: no cover - optional dependency
    get_parser = None  # type: ignore[assignment]
    TREE_SITTER_AVAILABLE = False


_LANGUAGE = "dart"
_STRING_NODE = "string_literal"
_SUBSTITUTION_NODE = "template_substitution"
_OPERATOR_NODES = {"additive_operator", "+", "-"}
_SKIPPED_NODES = {"comment", "documentation_comment"}
_SIMPLE_ESCAPES = {
    "n": "\n",
    "r": "\r",
    "t": "\t",
    "b": "\b",
    "f": "\f",
    "v": "\v",
}


class DartParseError(ValueError):
    """Raised when Dart source cannot be turned into a syntax tree."""


@dataclass(frozen=True)
class _Span:
    """Substitution located at ``text[start:end]`` of the literal."""

    start: int
    end: int


StringSegment = List[Union[str, _Span]]


class DartParser:
    """Parses Dart source with tree-sitter and converts it to syntax nodes."""

    def __init__(self) -> None:
        self._local = threading.local()
        self.logger = get_logger("scanner.tree_sitter")

    def __call__(self, source: str) -> Node:
        return self.parse(source)

    def parse(self, source: str) -> Node:
        parser = self._get_parser()
        source_bytes = source.encode("utf-8")
        tree = parser.parse(source_bytes)
        if tree.root_node.has_error:
            self.logger.debug("Syntax errors present; extracting from recovered tree")
        try:
            return _Converter(source_bytes).convert(tree.root_node)
        except RecursionError as exc:
            raise DartParseError("Syntax tree is nested too deeply") from exc

    def _get_parser(self):  # type: ignore[no-untyped-def]
        # Parsers are not safe to share between threads.
        parser = getattr(self._local, "parser", None)
        if parser is not None:
            return parser
        if not TREE_SITTER_AVAILABLE:
            raise DartParseError("tree-sitter Dart grammar is not installed")
        parser = get_parser(_LANGUAGE)
        self._local.parser = parser
        return parser


class _Converter:
    def __init__(self, source_bytes: bytes) -> None:
        self._source = source_bytes

    def convert(self, node: Any) -> Node:
        kind = node.type
        if kind == _STRING_NODE:
            return self._convert_strings([node])
        if kind == "annotation":
            return self._convert_annotation(node)
        if kind == "list_literal":
            # Commas stay in the sequence so separate elements are never joined.
            elements = [
                child
                for child in node.children
                if child.type not in _SKIPPED_NODES and child.type != "type_arguments"
            ]
            return ListLiteral(
                elements=self._convert_sequence(elements),
                position=self._position(node),
                text=self._text(node),
            )
        children = list(node.children)
        if _is_concatenation(children, self._text):
            return self._convert_concatenation(node, children)
        return GenericNode(
            kind=kind,
            nodes=self._convert_sequence(children),
            position=self._position(node),
            text=self._text(node),
        )

    def _convert_sequence(self, children: Sequence[Any]) -> Tuple[Node, ...]:
        """Convert named children, grouping string literals with no token between them."""
        converted: List[Node] = []
        pending: List[Any] = []
        for child in children:
            if child.type == _STRING_NODE:
                pending.append(child)
                continue
            if pending:
                converted.append(self._convert_strings(pending))
                pending = []
            if child.is_named and child.type not in _SKIPPED_NODES:
                converted.append(self.convert(child))
        if pending:
            converted.append(self._convert_strings(pending))
        return tuple(converted)

    def _convert_strings(self, nodes: Sequence[Any]) -> Node:
        pieces: List[Node] = []
        for node in nodes:
            text = self._text(node)
            substitutions = [
                child for child in _descendants(node) if child.type == _SUBSTITUTION_NODE
            ]
            try:
                segments = split_string_literal(text)
            except ValueError:
                pieces.append(
                    GenericNode(
                        kind=node.type,
                        nodes=self._convert_sequence(substitutions),
                        position=self._position(node),
                        text=text,
                    )
                )
                continue
            pieces.extend(self._segment_nodes(node, text, segments, substitutions))
        if len(pieces) == 1:
            return pieces[0]
        first = nodes[0]
        return AdjacentStrings(
            strings=tuple(pieces),
            position=self._position(first),
            text=self._source[first.start_byte : nodes[-1].end_byte].decode(
                "utf-8", errors="ignore"
            ),
        )

    def _segment_nodes(
        self,
        node: Any,
        text: str,
        segments: Sequence[StringSegment],
        substitutions: Sequence[Any],
    ) -> List[Node]:
        position = self._position(node)
        span_count = sum(1 for segment in segments for item in segment if isinstance(item, _Span))
        # Only attach subtrees when they line up one-to-one with the spans.
        subtrees = list(substitutions) if len(substitutions) == span_count else []
        results: List[Node] = []
        for segment in segments:
            if all(isinstance(item, str) for item in segment):
                value = "".join(segment)  # type: ignore[arg-type]
                results.append(StringLiteral(value=value, position=position, text=text))
                continue
            elements: List[Union[str, Substitution]] = []
            for item in segment:
                if isinstance(item, str):
                    elements.append(item)
                    continue
                subtree = subtrees.pop(0) if subtrees else None
                nested = (
                    self._convert_sequence(subtree.named_children) if subtree is not None else ()
                )
                elements.append(
                    Substitution(text=text[item.start : item.end], children=nested, position=position)
                )
            results.append(
                StringInterpolation(elements=tuple(elements), position=position, text=text)
            )
        return results

    def _convert_annotation(self, node: Any) -> Node:
        name = ""
        arguments: Tuple[Node, ...] = ()
        for child in node.named_children:
            if child.type == "arguments":
                values = []
                for argument in child.children:
                    if argument.type in _SKIPPED_NODES:
                        continue
                    if argument.type == "argument" and len(argument.named_children) == 1:
                        values.append(argument.named_children[0])
                    else:
                        values.append(argument)
                arguments = self._convert_sequence(values)
            elif not name and child.type not in _SKIPPED_NODES:
                name = self._text(child).split("<", 1)[0].rsplit(".", 1)[-1].strip()
        return Annotation(
            name=name,
            arguments=arguments,
            position=self._position(node),
            text=self._text(node),
        )

    def _convert_concatenation(self, node: Any, children: Sequence[Any]) -> Node:
        groups: List[List[Any]] = [[]]
        for child in children:
            if child.type in _OPERATOR_NODES:
                groups.append([])
            else:
                groups[-1].append(child)
        operands: List[Node] = []
        for group in groups:
            converted = self._convert_sequence(group)
            if len(converted) == 1:
                operands.append(converted[0])
            else:
                operands.append(GenericNode(kind="operand", nodes=converted))
        position = self._position(node)
        expression = operands[0]
        for operand in operands[1:]:
            expression = BinaryExpression(
                operator="+", left=expression, right=operand, position=position
            )
        if isinstance(expression, BinaryExpression):
            expression = BinaryExpression(
                operator="+",
                left=expression.left,
                right=expression.right,
                position=position,
                text=self._text(node),
            )
        return expression

    def _text(self, node: Any) -> str:
        return self._source[node.start_byte : node.end_byte].decode("utf-8", errors="ignore")

    @staticmethod
    def _position(node: Any) -> Position:
        row, column = node.start_point[0], node.start_point[1]
        return Position(offset=node.start_byte, line=row + 1, column=column + 1)


def _is_concatenation(children: Sequence[Any], text_of) -> bool:  # type: ignore[no-untyped-def]
    operators = [child for child in children if child.type in _OPERATOR_NODES]
    if not operators or len(operators) == len(children):
        return False
    return all(text_of(operator).strip() == "+" for operator in operators)


def _descendants(node: Any) -> List[Any]:
    found: List[Any] = []
    stack = list(reversed(node.children))
    while stack:
        current = stack.pop()
        found.append(current)
        if current.type == _SUBSTITUTION_NODE:
            # Substitutions nested inside this one belong to its subtree.
            continue
        stack.extend(reversed(current.children))
    return found


def split_string_literal(text: str) -> List[StringSegment]:
    """Split Dart string literal source into decoded segments.

    Each adjacent literal becomes one segment: a list that alternates decoded
    literal text and ``_Span`` substitutions, starting and ending with text.
    Raises ``ValueError`` for text that is not a string literal.
    """
    segments: List[StringSegment] = []
    index = 0
    length = len(text)
    while index < length:
        if text[index].isspace():
            index += 1
            continue
        segment, index = _read_segment(text, index)
        segments.append(segment)
    if not segments:
        raise ValueError("empty string literal")
    return segments


def _read_segment(text: str, index: int) -> Tuple[StringSegment, int]:
    raw = False
    if text[index] in "rR":
        raw = True
        index += 1
    if text.startswith("'''", index) or text.startswith('"""', index):
        quote = text[index : index + 3]
        index += 3
        if text.startswith("\r\n", index):
            index += 2
        elif text.startswith("\n", index):
            index += 1
    elif index < len(text) and text[index] in "'\"":
        quote = text[index]
        index += 1
    else:
        raise ValueError(f"unexpected character at offset {index}")

    segment: StringSegment = []
    buffer: List[str] = []
    length = len(text)
    while True:
        if index >= length:
            raise ValueError("unterminated string literal")
        if text.startswith(quote, index):
            index += len(quote)
            break
        char = text[index]
        if char == "\\" and not raw:
            decoded, index = _read_escape(text, index + 1)
            buffer.append(decoded)
            continue
        if char == "$" and not raw and index + 1 < length:
            following = text[index + 1]
            if following == "{":
                end = _find_closing_brace(text, index + 2)
                segment.append("".join(buffer))
                segment.append(_Span(index, end + 1))
                buffer = []
                index = end + 1
                continue
            if following.isalpha() or following == "_":
                end = index + 2
                while end < length and (text[end].isalnum() or text[end] == "_"):
                    end += 1
                segment.append("".join(buffer))
                segment.append(_Span(index, end))
                buffer = []
                index = end
                continue
        buffer.append(char)
        index += 1
    segment.append("".join(buffer))
    return segment, index


def _read_escape(text: str, index: int) -> Tuple[str, int]:
    if index >= len(text):
        raise ValueError("dangling escape")
    char = text[index]
    if char in _SIMPLE_ESCAPES:
        return _SIMPLE_ESCAPES[char], index + 1
    if char == "x":
        return chr(int(text[index + 1 : index + 3], 16)), index + 3
    if char == "u":
        if text.startswith("{", index + 1):
            end = text.index("}", index + 2)
            return chr(int(text[index + 2 : end], 16)), end + 1
        return chr(int(text[index + 1 : index + 5], 16)), index + 5
    return char, index + 1


def _find_closing_brace(text: str, index: int) -> int:
    depth = 1
    length = len(text)
    while index < length:
        char = text[index]
        if char in "'\"":
            # Skip over a nested string inside the substitution.
            _, index = _read_segment(text, index)
            continue
        if char == "{":
            depth += 1
        elif char == "}":
            depth -= 1
            if depth == 0:
                return index
        index += 1
    raise ValueError("unterminated substitution")


__all__ = [
    "DartParseError",
    "DartParser",
    "TREE_SITTER_AVAILABLE",
    "split_string_literal",
]
