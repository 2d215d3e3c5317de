"""Source scanning: syntax nodes, reference extraction and corpus scans."""

from __future__ import annotations

from .syntax import Node
from .tree_sitter import TREE_SITTER_AVAILABLE, DartParseError, DartParser
from .usage_scanner import UsageScanResult, UsageScanner, is_generated_file
from .visitor import ExtractionResult, ReferenceExtractor

__all__ = [
    "DartParseError",
    "DartParser",
    "ExtractionResult",
    "Node",
    "ReferenceExtractor",
    "TREE_SITTER_AVAILABLE",
    "UsageScanResult",
    "UsageScanner",
    "is_generated_file",
]
