"""Glob matching and pattern inference helpers for asset paths."""

from __future__ import annotations

import re
from functools import lru_cache
from typing import Dict, Iterable, List, Optional, Sequence

_WILDCARD_CHARS = "*?["
_NUMERIC = re.compile(r"^\d+$")
# Longer varying segments are treated as unrelated names rather than a family.
_MAX_SHORT_SEGMENT = 20


def normalize_path(path: str) -> str:
    """Use forward slashes and drop a leading ``./`` or ``/``."""
    normalized = path.replace("\\", "/")
    if normalized.startswith("./"):
        normalized = normalized[2:]
    if normalized.startswith("/"):
        normalized = normalized[1:]
    return normalized


def has_wildcard(value: str) -> bool:
    return any(char in value for char in _WILDCARD_CHARS)


@lru_cache(maxsize=512)
def _compile(pattern: str) -> re.Pattern[str]:
    parts: List[str] = []
    index = 0
    length = len(pattern)
    while index < length:
        char = pattern[index]
        if char == "*":
            if pattern.startswith("**", index):
                index += 2
                if index < length and pattern[index] == "/":
                    # "**/" also matches zero directories.
                    index += 1
                    parts.append("(?:.*/)?")
                else:
                    parts.append(".*")
                continue
            parts.append("[^/]*")
        elif char == "?":
            parts.append("[^/]")
        elif char == "[":
            end = pattern.find("]", index + 1)
            body = pattern[index + 1 : end] if end != -1 else ""
            if not body or body in {"!", "^"}:
                parts.append(re.escape(char))
            else:
                if body.startswith(("!", "^")):
                    body = "^" + body[1:]
                body = body.replace("\\", "\\\\")
                parts.append(f"[{body}]")
                index = end
        else:
            parts.append(re.escape(char))
        index += 1
    return re.compile("^" + "".join(parts) + "$")


def matches(path: str, pattern: str) -> bool:
    """Return True when ``path`` matches the glob ``pattern``.

    ``*`` matches within a path segment, ``**`` crosses segments, ``?`` matches
    one non-separator character and ``[...]`` is a character class.
    """
    return _compile(pattern).match(path) is not None


def first_match(path: str, patterns: Sequence[str]) -> Optional[str]:
    """Return the first pattern (in declaration order) that matches ``path``."""
    for pattern in patterns:
        if matches(path, pattern):
            return pattern
    return None


def find_matching_patterns(path: str, patterns: Iterable[str]) -> List[str]:
    return [pattern for pattern in patterns if matches(path, pattern)]


def static_prefix(pattern: str) -> str:
    """Return the part of ``pattern`` before its first wildcard."""
    for index, char in enumerate(pattern):
        if char in _WILDCARD_CHARS:
            return pattern[:index]
    return pattern


def static_suffix(pattern: str) -> Optional[str]:
    """Return the part of ``pattern`` after its last wildcard, if any."""
    last = max(pattern.rfind("*"), pattern.rfind("?"), pattern.rfind("]"))
    if last == -1 or last >= len(pattern) - 1:
        return None
    return pattern[last + 1 :]


def group_by_directory(paths: Iterable[str]) -> Dict[str, List[str]]:
    groups: Dict[str, List[str]] = {}
    for path in paths:
        directory = path.rsplit("/", 1)[0] if "/" in path else ""
        groups.setdefault(directory, []).append(path)
    return groups


def infer_pattern(paths: Sequence[str]) -> Optional[str]:
    """Infer a ``prefix*suffix`` pattern shared by ``paths``.

    Returns None when the varying parts look like unrelated names, so the
    pattern never grows broad enough to swallow neighbouring assets.
    """
    if not paths:
        return None
    if len(set(paths)) == 1:
        return paths[0]

    prefix = _longest_common_prefix(paths)
    if not prefix:
        return None
    suffix = _longest_common_suffix(paths)
    # Prefix and suffix may not overlap inside the shortest path.
    room = min(len(path) for path in paths) - len(prefix)
    if len(suffix) > room:
        suffix = suffix[len(suffix) - room :] if room > 0 else ""

    varying = [path[len(prefix) : len(path) - len(suffix)] for path in paths]
    if all(_NUMERIC.match(segment) for segment in varying):
        return f"{prefix}*{suffix}"
    if all(len(segment) < _MAX_SHORT_SEGMENT for segment in varying):
        return f"{prefix}*{suffix}"
    return None


def _longest_common_prefix(values: Sequence[str]) -> str:
    shortest = min(values, key=len)
    for index, char in enumerate(shortest):
        if any(value[index] != char for value in values):
            return shortest[:index]
    return shortest


def _longest_common_suffix(values: Sequence[str]) -> str:
    reversed_prefix = _longest_common_prefix([value[::-1] for value in values])
    return reversed_prefix[::-1]


__all__ = [
    "find_matching_patterns",
    "first_match",
    "group_by_directory",
    "has_wildcard",
    "infer_pattern",
    "matches",
    "normalize_path",
    "static_prefix",
    "static_suffix",
]
