"""Scans a project's Dart sources for asset references."""

from __future__ import annotations

import os
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Iterable, Iterator, List, Optional, Set

from ..config import ShakerConfig
from ..logging import get_logger
from ..models import AssetReference, DynamicAssetReference, ScanError
from .syntax import Node
from .tree_sitter import DartParser
from .visitor import ExtractionResult, ReferenceExtractor

ParseFn = Callable[[str], Node]

_SOURCE_SUFFIX = ".dart"
_GENERATED_SUFFIXES = (".g.dart", ".freezed.dart", ".gr.dart", ".mocks.dart")
_EXCLUDED_DIRS = {
    ".git",
    ".dart_tool",
    ".idea",
    "build",
}


@dataclass
class UsageScanResult:
    """Merged references for every scanned source file."""

    static_assets: Set[str] = field(default_factory=set)
    dynamic_references: Set[DynamicAssetReference] = field(default_factory=set)
    annotated_assets: Set[str] = field(default_factory=set)
    all_references: List[AssetReference] = field(default_factory=list)
    scanned_files: Set[str] = field(default_factory=set)
    errors: List[ScanError] = field(default_factory=list)

    def merge(self, other: "UsageScanResult") -> "UsageScanResult":
        return UsageScanResult(
            static_assets=self.static_assets | other.static_assets,
            dynamic_references=self.dynamic_references | other.dynamic_references,
            annotated_assets=self.annotated_assets | other.annotated_assets,
            all_references=[*self.all_references, *other.all_references],
            scanned_files=self.scanned_files | other.scanned_files,
            errors=[*self.errors, *other.errors],
        )

    def update(self, other: "UsageScanResult") -> None:
        """Merge ``other`` into this result in place."""
        self.static_assets |= other.static_assets
        self.dynamic_references |= other.dynamic_references
        self.annotated_assets |= other.annotated_assets
        self.all_references.extend(other.all_references)
        self.scanned_files |= other.scanned_files
        self.errors.extend(other.errors)

    @classmethod
    def from_extraction(cls, source_file: str, extraction: ExtractionResult) -> "UsageScanResult":
        return cls(
            static_assets=set(extraction.static_assets),
            dynamic_references=set(extraction.dynamic_references),
            annotated_assets=set(extraction.annotated_assets),
            all_references=list(extraction.all_references),
            scanned_files={source_file},
        )

    @property
    def all_used_assets(self) -> Set[str]:
        return self.static_assets | self.annotated_assets

    @property
    def dynamic_patterns(self) -> Set[str]:
        return {reference.inferred_pattern for reference in self.dynamic_references}


class UsageScanner:
    """Collects Dart files and extracts their asset references in parallel."""

    def __init__(
        self,
        project_root: str | Path,
        config: ShakerConfig | None = None,
        parse: Optional[ParseFn] = None,
    ) -> None:
        self.project_root = Path(project_root).expanduser().resolve()
        self.config = config or ShakerConfig()
        self._parse: ParseFn = parse or DartParser()
        self.logger = get_logger("scanner")

    def scan(self) -> UsageScanResult:
        """Scan every configured source directory."""
        files = self.collect_source_files()
        self.logger.debug("Collected %d Dart files", len(files))
        return self._scan_all(files)

    def scan_files(self, file_paths: Iterable[str | Path]) -> UsageScanResult:
        """Scan only the given files (absolute or relative to the project root)."""
        files: List[Path] = []
        for raw in file_paths:
            path = Path(raw)
            if not path.is_absolute():
                path = self.project_root / path
            if path.is_file():
                files.append(path)
        return self._scan_all(files)

    def collect_source_files(self) -> List[Path]:
        roots = [self.project_root / scan_path for scan_path in self.config.scan_paths]
        if self.config.include_tests:
            roots.append(self.project_root / "test")

        seen: Set[Path] = set()
        files: List[Path] = []
        for root in roots:
            for path in self._iter_dart_files(root):
                if path in seen:
                    continue
                seen.add(path)
                files.append(path)
        return sorted(files)

    def scan_file(self, path: Path) -> UsageScanResult:
        """Extract references from one file; failures become a ScanError entry."""
        relative = self._relative(path)
        try:
            source = path.read_text(encoding="utf-8")
            tree = self._parse(source)
            extractor = ReferenceExtractor(
                source_file=relative,
                asset_prefixes=self.config.asset_prefixes,
                keep_annotations=self.config.keep_annotations,
            )
            extraction = extractor.extract(tree)
        except Exception as exc:
            # Per-file failures are recorded, never raised.
            self.logger.warning("Failed to scan %s: %s", relative, exc)
            return UsageScanResult(
                scanned_files={relative},
                errors=[ScanError(file=relative, message=str(exc) or type(exc).__name__)],
            )
        return UsageScanResult.from_extraction(relative, extraction)

    def _scan_all(self, files: List[Path]) -> UsageScanResult:
        combined = UsageScanResult()
        if not files:
            return combined
        with ThreadPoolExecutor(max_workers=self.config.max_workers) as executor:
            # map() preserves input order, so merging is deterministic.
            for result in executor.map(self.scan_file, files):
                combined.update(result)
        self.logger.info(
            "Scanned %d files: %d static, %d dynamic, %d annotated references",
            len(combined.scanned_files),
            len(combined.static_assets),
            len(combined.dynamic_references),
            len(combined.annotated_assets),
        )
        return combined

    def _iter_dart_files(self, root: Path) -> Iterator[Path]:
        if not root.is_dir():
            return
        for dirpath, dirnames, filenames in os.walk(root):
            dirnames[:] = sorted(name for name in dirnames if name not in _EXCLUDED_DIRS)
            for filename in sorted(filenames):
                if not filename.endswith(_SOURCE_SUFFIX):
                    continue
                if not self.config.include_generated_files and is_generated_file(filename):
                    continue
                yield Path(dirpath) / filename

    def _relative(self, path: Path) -> str:
        try:
            return path.resolve().relative_to(self.project_root).as_posix()
        except ValueError:
            return path.as_posix()


def is_generated_file(filename: str) -> bool:
    return filename.endswith(_GENERATED_SUFFIXES)


__all__ = ["UsageScanResult", "UsageScanner", "is_generated_file"]
