"""Core data models shared across assetshaker components."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional


class ReferenceKind(str, Enum):
    """How an asset path was spelled in source code."""

    STATIC = "static"
    INTERPOLATION = "interpolation"
    CONCATENATION = "concatenation"
    ADJACENT_STRINGS = "adjacent_strings"
    ANNOTATION = "annotation"


class AssetStatus(str, Enum):
    """Reconciliation verdict for a declared asset."""

    USED = "used"
    UNUSED = "unused"
    WHITELISTED = "whitelisted"
    DYNAMIC_MATCH = "dynamic_match"
    ANNOTATED = "annotated"
    MISSING = "missing"


# Most actionable first.
STATUS_PRIORITY: Dict[AssetStatus, int] = {
    AssetStatus.UNUSED: 0,
    AssetStatus.MISSING: 1,
    AssetStatus.DYNAMIC_MATCH: 2,
    AssetStatus.WHITELISTED: 3,
    AssetStatus.ANNOTATED: 4,
    AssetStatus.USED: 5,
}


@dataclass(frozen=True)
class DeclaredAsset:
    """A concrete asset the manifest claims exists.

    Identity is ``(normalized_path, original_declaration)`` so the same file
    reached through two different declarations stays two entries.
    """

    normalized_path: str
    original_declaration: str
    is_directory: bool = field(default=False, compare=False)
    is_glob: bool = field(default=False, compare=False)
    absolute_path: Optional[str] = field(default=None, compare=False)
    size_bytes: Optional[int] = field(default=None, compare=False)

    @property
    def exists(self) -> bool:
        return self.absolute_path is not None


@dataclass(frozen=True)
class AssetReference:
    """A located mention of an asset-like string in source code."""

    asset_path: str
    source_file: str
    line: int
    column: int
    kind: ReferenceKind
    expression: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "asset_path": self.asset_path,
            "source_file": self.source_file,
            "line": self.line,
            "column": self.column,
            "kind": self.kind.value,
            "expression": self.expression,
        }


@dataclass(frozen=True)
class DynamicAssetReference:
    """An asset path built at runtime whose static prefix/suffix is known.

    Equality only considers ``inferred_pattern``: different call sites that
    produce the same pattern collapse into one entry.
    """

    static_prefix: str = field(compare=False)
    static_suffix: Optional[str] = field(default=None, compare=False)
    inferred_pattern: str = ""
    source_file: str = field(default="", compare=False)
    line: int = field(default=0, compare=False)
    column: int = field(default=0, compare=False)
    original_expression: str = field(default="", compare=False)

    def __post_init__(self) -> None:
        if not self.inferred_pattern:
            object.__setattr__(
                self, "inferred_pattern", build_pattern(self.static_prefix, self.static_suffix)
            )

    def matches(self, asset_path: str) -> bool:
        """Return True when ``asset_path`` could be produced by this reference."""
        if not asset_path.startswith(self.static_prefix):
            return False
        if self.static_suffix and not asset_path.endswith(self.static_suffix):
            return False
        return True

    def to_dict(self) -> Dict[str, Any]:
        return {
            "static_prefix": self.static_prefix,
            "static_suffix": self.static_suffix,
            "inferred_pattern": self.inferred_pattern,
            "source_file": self.source_file,
            "line": self.line,
            "column": self.column,
            "original_expression": self.original_expression,
        }


def build_pattern(prefix: str, suffix: Optional[str]) -> str:
    """Build a glob-like pattern from a static prefix and optional suffix."""
    if suffix:
        return f"{prefix}*{suffix}"
    return f"{prefix}*"


@dataclass(frozen=True)
class ScanError:
    """A source file that could not be read or parsed."""

    file: str
    message: str

    def __str__(self) -> str:
        return f"{self.file}: {self.message}"


@dataclass
class AnalyzedAsset:
    """Classification of a single declared asset."""

    path: str
    status: AssetStatus
    references: List[AssetReference] = field(default_factory=list)
    matched_pattern: Optional[str] = None
    size_bytes: Optional[int] = None
    original_declaration: Optional[str] = None

    @property
    def is_safe_to_delete(self) -> bool:
        return self.status is AssetStatus.UNUSED

    @property
    def is_protected(self) -> bool:
        return self.status in {
            AssetStatus.USED,
            AssetStatus.WHITELISTED,
            AssetStatus.DYNAMIC_MATCH,
            AssetStatus.ANNOTATED,
        }

    def to_dict(self) -> Dict[str, Any]:
        return {
            "path": self.path,
            "status": self.status.value,
            "references": [reference.to_dict() for reference in self.references],
            "matched_pattern": self.matched_pattern,
            "size_bytes": self.size_bytes,
            "original_declaration": self.original_declaration,
        }


@dataclass
class AnalysisSummary:
    """Aggregate counters over the classified assets."""

    total_assets: int = 0
    used_assets: int = 0
    unused_assets: int = 0
    whitelisted_assets: int = 0
    dynamic_match_assets: int = 0
    annotated_assets: int = 0
    missing_assets: int = 0
    total_size_bytes: int = 0
    unused_size_bytes: int = 0

    @property
    def unused_percentage(self) -> float:
        if not self.total_assets:
            return 0.0
        return self.unused_assets / self.total_assets * 100

    @property
    def unused_size_percentage(self) -> float:
        if not self.total_size_bytes:
            return 0.0
        return self.unused_size_bytes / self.total_size_bytes * 100

    @property
    def unused_size_formatted(self) -> str:
        return format_bytes(self.unused_size_bytes)

    @property
    def total_size_formatted(self) -> str:
        return format_bytes(self.total_size_bytes)

    def status_total(self) -> int:
        return (
            self.used_assets
            + self.unused_assets
            + self.whitelisted_assets
            + self.dynamic_match_assets
            + self.annotated_assets
            + self.missing_assets
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "total_assets": self.total_assets,
            "used_assets": self.used_assets,
            "unused_assets": self.unused_assets,
            "whitelisted_assets": self.whitelisted_assets,
            "dynamic_match_assets": self.dynamic_match_assets,
            "annotated_assets": self.annotated_assets,
            "missing_assets": self.missing_assets,
            "total_size_bytes": self.total_size_bytes,
            "unused_size_bytes": self.unused_size_bytes,
        }


@dataclass
class DynamicUsageWarning:
    """A dynamic reference together with the declared assets it may load."""

    reference: DynamicAssetReference
    potentially_affected_assets: List[str]
    suggested_config: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "reference": self.reference.to_dict(),
            "potentially_affected_assets": list(self.potentially_affected_assets),
            "suggested_config": self.suggested_config,
        }


@dataclass
class AnalysisResult:
    """Complete outcome of reconciling declared assets against source usage."""

    assets: List[AnalyzedAsset]
    warnings: List[DynamicUsageWarning]
    summary: AnalysisSummary
    timestamp: datetime
    project_root: str
    files_scanned: int
    errors: List[str] = field(default_factory=list)

    def by_status(self, status: AssetStatus) -> List[AnalyzedAsset]:
        return [asset for asset in self.assets if asset.status is status]

    @property
    def unused_assets(self) -> List[AnalyzedAsset]:
        return self.by_status(AssetStatus.UNUSED)

    @property
    def used_assets(self) -> List[AnalyzedAsset]:
        return self.by_status(AssetStatus.USED)

    @property
    def whitelisted_assets(self) -> List[AnalyzedAsset]:
        return self.by_status(AssetStatus.WHITELISTED)

    @property
    def dynamic_match_assets(self) -> List[AnalyzedAsset]:
        return self.by_status(AssetStatus.DYNAMIC_MATCH)

    @property
    def annotated_assets(self) -> List[AnalyzedAsset]:
        return self.by_status(AssetStatus.ANNOTATED)

    @property
    def missing_assets(self) -> List[AnalyzedAsset]:
        return self.by_status(AssetStatus.MISSING)

    @property
    def has_unused_assets(self) -> bool:
        return any(asset.status is AssetStatus.UNUSED for asset in self.assets)

    @property
    def passed(self) -> bool:
        return not self.has_unused_assets

    @property
    def unused_assets_size(self) -> int:
        return sum(asset.size_bytes or 0 for asset in self.unused_assets)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "project_root": self.project_root,
            "timestamp": self.timestamp.isoformat(),
            "files_scanned": self.files_scanned,
            "summary": self.summary.to_dict(),
            "assets": [asset.to_dict() for asset in self.assets],
            "warnings": [warning.to_dict() for warning in self.warnings],
            "errors": list(self.errors),
        }


def format_bytes(size: int) -> str:
    """Render a byte count as B, KB or MB."""
    if size < 1024:
        return f"{size} B"
    if size < 1024 * 1024:
        return f"{size / 1024:.1f} KB"
    return f"{size / (1024 * 1024):.1f} MB"
