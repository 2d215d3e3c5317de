"""Reconciliation of declared assets against references found in code."""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Dict, Iterable, List, Optional, Sequence, Set

from .config import ShakerConfig
from .logging import get_logger
from .models import (
    STATUS_PRIORITY,
    AnalysisResult,
    AnalysisSummary,
    AnalyzedAsset,
    AssetReference,
    AssetStatus,
    DeclaredAsset,
    DynamicAssetReference,
    DynamicUsageWarning,
    ReferenceKind,
)
from .patterns import first_match, has_wildcard, normalize_path
from .scanner.usage_scanner import UsageScanResult


class GraphAnalyzer:
    """Assigns exactly one status to every declared asset.

    The checks form a fixed priority chain: missing, used, annotated,
    whitelisted, dynamic match, unused. Direct evidence of use therefore
    outranks every suppression rule.
    """

    def __init__(self, config: ShakerConfig | None = None) -> None:
        self.config = config or ShakerConfig()
        self.logger = get_logger("analyzer")

    def analyze(
        self,
        declared_assets: Iterable[DeclaredAsset],
        scan_result: UsageScanResult,
        project_root: str,
    ) -> AnalysisResult:
        declared = list(declared_assets)
        reference_map = _build_reference_map(scan_result.all_references)
        annotation_map = _build_reference_map(
            scan_result.all_references, kinds={ReferenceKind.ANNOTATION}
        )
        annotated_patterns = [entry for entry in scan_result.annotated_assets if has_wildcard(entry)]
        dynamic_references = sorted(
            scan_result.dynamic_references, key=lambda reference: reference.inferred_pattern
        )

        assets = [
            self._classify(
                asset,
                reference_map,
                annotation_map,
                scan_result.annotated_assets,
                annotated_patterns,
                dynamic_references,
            )
            for asset in declared
        ]
        assets.sort(key=lambda asset: (STATUS_PRIORITY[asset.status], asset.path))

        warnings = self._dynamic_warnings(dynamic_references, declared)
        summary = summarize(assets)
        self.logger.info(
            "Classified %d assets: %d used, %d unused, %d missing",
            summary.total_assets,
            summary.used_assets,
            summary.unused_assets,
            summary.missing_assets,
        )
        return AnalysisResult(
            assets=assets,
            warnings=warnings,
            summary=summary,
            timestamp=datetime.now(UTC),
            project_root=project_root,
            files_scanned=len(scan_result.scanned_files),
            errors=[str(error) for error in scan_result.errors],
        )

    def _classify(
        self,
        asset: DeclaredAsset,
        reference_map: Dict[str, List[AssetReference]],
        annotation_map: Dict[str, List[AssetReference]],
        annotated_paths: Set[str],
        annotated_patterns: Sequence[str],
        dynamic_references: Sequence[DynamicAssetReference],
    ) -> AnalyzedAsset:
        path = asset.normalized_path

        def verdict(
            status: AssetStatus,
            references: Optional[List[AssetReference]] = None,
            matched_pattern: Optional[str] = None,
        ) -> AnalyzedAsset:
            return AnalyzedAsset(
                path=path,
                status=status,
                references=references or [],
                matched_pattern=matched_pattern,
                size_bytes=asset.size_bytes,
                original_declaration=asset.original_declaration,
            )

        if not asset.exists:
            return verdict(AssetStatus.MISSING)

        references = reference_map.get(path)
        if references:
            return verdict(AssetStatus.USED, references=references)

        if path in annotated_paths:
            return verdict(AssetStatus.ANNOTATED, references=annotation_map.get(path))
        annotated_pattern = first_match(path, annotated_patterns)
        if annotated_pattern is not None:
            return verdict(
                AssetStatus.ANNOTATED,
                references=annotation_map.get(annotated_pattern),
                matched_pattern=annotated_pattern,
            )

        exclude = first_match(path, self.config.exclude_patterns)
        if exclude is not None:
            return verdict(AssetStatus.WHITELISTED, matched_pattern=exclude)

        dynamic = first_match(path, self.config.dynamic_patterns)
        if dynamic is not None:
            return verdict(AssetStatus.DYNAMIC_MATCH, matched_pattern=dynamic)
        for reference in dynamic_references:
            if reference.matches(path):
                return verdict(AssetStatus.DYNAMIC_MATCH, matched_pattern=reference.inferred_pattern)

        return verdict(AssetStatus.UNUSED)

    def _dynamic_warnings(
        self,
        dynamic_references: Sequence[DynamicAssetReference],
        declared: Sequence[DeclaredAsset],
    ) -> List[DynamicUsageWarning]:
        warnings: List[DynamicUsageWarning] = []
        for reference in dynamic_references:
            affected = sorted(
                {asset.normalized_path for asset in declared if reference.matches(asset.normalized_path)}
            )
            if not affected:
                continue
            warnings.append(
                DynamicUsageWarning(
                    reference=reference,
                    potentially_affected_assets=affected,
                    suggested_config=suggest_config(reference.inferred_pattern),
                )
            )
        return warnings


def suggest_config(pattern: str) -> str:
    return f'dynamic_patterns:\n  - "{pattern}"'


def summarize(assets: Iterable[AnalyzedAsset]) -> AnalysisSummary:
    """Count statuses and sizes in a single pass."""
    summary = AnalysisSummary()
    for asset in assets:
        size = asset.size_bytes or 0
        summary.total_assets += 1
        summary.total_size_bytes += size
        if asset.status is AssetStatus.USED:
            summary.used_assets += 1
        elif asset.status is AssetStatus.UNUSED:
            summary.unused_assets += 1
            summary.unused_size_bytes += size
        elif asset.status is AssetStatus.WHITELISTED:
            summary.whitelisted_assets += 1
        elif asset.status is AssetStatus.DYNAMIC_MATCH:
            summary.dynamic_match_assets += 1
        elif asset.status is AssetStatus.ANNOTATED:
            summary.annotated_assets += 1
        elif asset.status is AssetStatus.MISSING:
            summary.missing_assets += 1
    return summary


def _build_reference_map(
    references: Iterable[AssetReference],
    kinds: Optional[Set[ReferenceKind]] = None,
) -> Dict[str, List[AssetReference]]:
    """Index references by normalized path.

    Without ``kinds`` every non-annotation reference counts as evidence of use.
    """
    mapping: Dict[str, List[AssetReference]] = {}
    for reference in references:
        if kinds is None:
            if reference.kind is ReferenceKind.ANNOTATION:
                continue
        elif reference.kind not in kinds:
            continue
        mapping.setdefault(normalize_path(reference.asset_path), []).append(reference)
    return mapping


__all__ = ["GraphAnalyzer", "suggest_config", "summarize"]
