"""Resolution of pubspec asset declarations into concrete files."""

from __future__ import annotations

import os
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path
from typing import Any, Iterable, List, Optional, Set

import yaml

from .logging import get_logger
from .models import DeclaredAsset
from .patterns import has_wildcard, matches, normalize_path, static_prefix

_EXCLUDED_DIRS = {
    ".git",
    ".dart_tool",
    ".idea",
    "build",
}


class ManifestError(RuntimeError):
    """Raised when the manifest is missing or structurally invalid."""


class AssetDiscovery:
    """Expands the manifest's ``flutter.assets`` list into declared assets."""

    def __init__(
        self,
        project_root: str | Path,
        manifest_file: str = "pubspec.yaml",
        max_workers: Optional[int] = None,
    ) -> None:
        self.project_root = Path(project_root).expanduser().resolve()
        self.manifest_file = manifest_file
        self.max_workers = max_workers
        self.logger = get_logger("discovery")

    def discover(self) -> Set[DeclaredAsset]:
        """Read the manifest and resolve every asset declaration."""
        return self.resolve_declarations(self.load_declarations())

    def load_declarations(self) -> List[str]:
        manifest_path = self.project_root / self.manifest_file
        if not manifest_path.is_file():
            raise ManifestError(f"{self.manifest_file} not found at {manifest_path}")
        try:
            data = yaml.safe_load(manifest_path.read_text(encoding="utf-8"))
        except (OSError, UnicodeDecodeError) as exc:
            raise ManifestError(f"Failed to read {self.manifest_file}: {exc}") from exc
        except yaml.YAMLError as exc:
            raise ManifestError(f"Failed to parse {self.manifest_file}: {exc}") from exc
        return extract_declarations(data, self.manifest_file)

    def resolve_declarations(self, declarations: Iterable[str]) -> Set[DeclaredAsset]:
        """Resolve declarations concurrently and merge them into one set."""
        declarations = list(declarations)
        assets: Set[DeclaredAsset] = set()
        if not declarations:
            return assets
        with ThreadPoolExecutor(max_workers=self.max_workers) as executor:
            for resolved in executor.map(self.resolve_declaration, declarations):
                assets.update(resolved)
        self.logger.debug(
            "Resolved %d declarations into %d assets", len(declarations), len(assets)
        )
        return assets

    def resolve_declaration(self, declaration: str) -> Set[DeclaredAsset]:
        """Resolve one declaration; never raises for missing files or globs."""
        normalized = normalize_path(declaration)
        if normalized.endswith("/"):
            return self._resolve_directory(normalized, declaration)
        if has_wildcard(normalized):
            return self._resolve_glob(normalized, declaration)

        absolute = self.project_root / normalized
        if absolute.is_file():
            return {
                DeclaredAsset(
                    normalized_path=normalized,
                    original_declaration=declaration,
                    absolute_path=str(absolute),
                    size_bytes=absolute.stat().st_size,
                )
            }
        self.logger.debug("Declared asset %s does not exist on disk", normalized)
        return {DeclaredAsset(normalized_path=normalized, original_declaration=declaration)}

    def asset_paths(self) -> List[str]:
        return sorted(asset.normalized_path for asset in self.discover())

    def total_size(self) -> int:
        return sum(asset.size_bytes or 0 for asset in self.discover())

    def _resolve_directory(self, directory: str, declaration: str) -> Set[DeclaredAsset]:
        assets: Set[DeclaredAsset] = set()
        absolute_dir = self.project_root / directory
        if not absolute_dir.is_dir():
            self.logger.debug("Declared directory %s does not exist", directory)
            return assets
        try:
            entries = list(absolute_dir.iterdir())
        except OSError as exc:
            self.logger.warning("Cannot list %s: %s", directory, exc)
            return assets
        for entry in entries:
            if not entry.is_file():
                continue
            assets.add(
                DeclaredAsset(
                    normalized_path=entry.relative_to(self.project_root).as_posix(),
                    original_declaration=declaration,
                    is_directory=True,
                    absolute_path=str(entry),
                    size_bytes=entry.stat().st_size,
                )
            )
        return assets

    def _resolve_glob(self, pattern: str, declaration: str) -> Set[DeclaredAsset]:
        assets: Set[DeclaredAsset] = set()
        # Walk only below the deepest directory that contains no wildcard.
        prefix = static_prefix(pattern)
        base = prefix.rsplit("/", 1)[0] if "/" in prefix else ""
        start = self.project_root / base
        if not start.is_dir():
            return assets
        try:
            for dirpath, dirnames, filenames in os.walk(start):
                dirnames[:] = [name for name in dirnames if name not in _EXCLUDED_DIRS]
                current = Path(dirpath)
                for filename in filenames:
                    path = current / filename
                    relative = path.relative_to(self.project_root).as_posix()
                    if not matches(relative, pattern):
                        continue
                    assets.add(
                        DeclaredAsset(
                            normalized_path=relative,
                            original_declaration=declaration,
                            is_glob=True,
                            absolute_path=str(path),
                            size_bytes=path.stat().st_size,
                        )
                    )
        except (OSError, ValueError) as exc:
            # Over-broad or malformed globs contribute nothing.
            self.logger.debug("Glob %s could not be expanded: %s", pattern, exc)
        return assets


def extract_declarations(data: Any, manifest_name: str = "pubspec.yaml") -> List[str]:
    """Return the ``flutter.assets`` declarations of a parsed manifest."""
    if not isinstance(data, dict):
        raise ManifestError(f"{manifest_name} must contain a mapping at the root")
    flutter = data.get("flutter")
    if not isinstance(flutter, dict):
        return []
    asset_list = flutter.get("assets")
    if asset_list is None:
        return []
    if not isinstance(asset_list, list):
        raise ManifestError(f"flutter.assets must be a list in {manifest_name}")

    declarations: List[str] = []
    for entry in asset_list:
        if isinstance(entry, dict):
            # Flavored form: {path: ..., flavors: [...]}
            path = entry.get("path")
            if isinstance(path, str) and path:
                declarations.append(path)
        elif entry is not None:
            declarations.append(str(entry))
    return declarations


__all__ = ["AssetDiscovery", "ManifestError", "extract_declarations"]
