"""Pipeline orchestration for analyze/clean/restore/init flows."""

from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor
from pathlib import Path
from typing import Callable, Optional, Set, Tuple

from .analyzer import GraphAnalyzer
from .cleaner import AssetCleaner, CleanResult, RestoreResult
from .config import ShakerConfig, load_config, write_default_config
from .discovery import AssetDiscovery
from .logging import get_logger
from .models import AnalysisResult, DeclaredAsset
from .scanner import UsageScanResult, UsageScanner
from .scanner.usage_scanner import ParseFn


class Orchestrator:
    """Coordinates discovery, scanning, reconciliation and cleaning.

    Collaborators can be injected for testing. ``parse`` replaces the
    tree-sitter backed Dart parser used by the default scanner.
    """

    def __init__(
        self,
        analyzer: GraphAnalyzer | None = None,
        parse: Optional[ParseFn] = None,
        config_loader: Callable[[Path], ShakerConfig] = load_config,
    ) -> None:
        self._analyzer_override = analyzer
        self._parse = parse
        self._config_loader = config_loader
        self.logger = get_logger("orchestrator")

    def run_analysis(self, path: str | Path) -> AnalysisResult:
        """Classify every asset declared by the project at ``path``."""
        project_root = _resolve_root(path)
        config = self._config_loader(project_root)
        return self._analyze(project_root, config)

    def run_clean(
        self,
        path: str | Path,
        *,
        dry_run: bool = True,
        create_backup: bool = True,
        remove_from_manifest: bool = False,
    ) -> Tuple[AnalysisResult, CleanResult]:
        project_root = _resolve_root(path)
        config = self._config_loader(project_root)
        analysis = self._analyze(project_root, config)
        cleaner = AssetCleaner(
            project_root,
            manifest_file=config.manifest_file,
            backup_dir=config.backup_dir,
        )
        clean_result = cleaner.clean(
            analysis,
            dry_run=dry_run,
            create_backup=create_backup,
            remove_from_manifest=remove_from_manifest,
        )
        return analysis, clean_result

    def run_restore(self, path: str | Path, backup_file: str | Path) -> RestoreResult:
        project_root = _resolve_root(path)
        config = self._config_loader(project_root)
        cleaner = AssetCleaner(
            project_root,
            manifest_file=config.manifest_file,
            backup_dir=config.backup_dir,
        )
        return cleaner.restore(backup_file)

    def run_init(self, path: str | Path) -> Path:
        """Write the default configuration template; refuses to overwrite."""
        project_root = _resolve_root(path)
        target = write_default_config(project_root)
        self.logger.info("Wrote configuration template to %s", target)
        return target

    def _analyze(self, project_root: Path, config: ShakerConfig) -> AnalysisResult:
        self.logger.info("Starting analysis for %s", project_root)
        discovery = AssetDiscovery(
            project_root,
            manifest_file=config.manifest_file,
            max_workers=config.max_workers,
        )
        scanner = UsageScanner(project_root, config=config, parse=self._parse)

        # Resolution and scanning are independent; reconciliation waits for both.
        with ThreadPoolExecutor(max_workers=2) as executor:
            declared_future = executor.submit(discovery.discover)
            scan_future = executor.submit(scanner.scan)
            declared: Set[DeclaredAsset] = declared_future.result()
            scan_result: UsageScanResult = scan_future.result()

        self.logger.debug(
            "Resolved %d declared assets from %d scanned files",
            len(declared),
            len(scan_result.scanned_files),
        )
        analyzer = self._analyzer_override or GraphAnalyzer(config)
        return analyzer.analyze(declared, scan_result, str(project_root))


def _resolve_root(path: str | Path) -> Path:
    project_root = Path(path).expanduser().resolve()
    if not project_root.is_dir():
        raise FileNotFoundError(f"Project directory not found: {project_root}")
    return project_root


__all__ = ["Orchestrator"]
