"""Configuration loading for assetshaker (asset_tree_shaker.yaml)."""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence

import yaml

DEFAULT_CONFIG_NAME = "asset_tree_shaker.yaml"
ALTERNATIVE_CONFIG_NAMES = (
    "asset_tree_shaker.yml",
    ".asset_tree_shaker.yaml",
    ".asset_tree_shaker.yml",
)

DEFAULT_SCAN_PATHS = ("lib/",)
DEFAULT_KEEP_ANNOTATIONS = ("KeepAsset", "KeepAssets", "PreserveAsset")
DEFAULT_ASSET_PREFIXES = ("assets/", "packages/")
DEFAULT_MANIFEST_FILE = "pubspec.yaml"


class ConfigError(RuntimeError):
    """Raised when the configuration file cannot be parsed."""


@dataclass
class ShakerConfig:
    """Settings that drive discovery, scanning, reconciliation and cleaning."""

    scan_paths: List[str] = field(default_factory=lambda: list(DEFAULT_SCAN_PATHS))
    exclude_patterns: List[str] = field(default_factory=list)
    keep_annotations: List[str] = field(default_factory=lambda: list(DEFAULT_KEEP_ANNOTATIONS))
    dynamic_patterns: List[str] = field(default_factory=list)
    asset_prefixes: List[str] = field(default_factory=lambda: list(DEFAULT_ASSET_PREFIXES))
    include_tests: bool = False
    include_generated_files: bool = True
    strict_mode: bool = False
    manifest_file: str = DEFAULT_MANIFEST_FILE
    max_workers: Optional[int] = None
    backup_dir: Optional[str] = None


_TEMPLATE = """\
# assetshaker configuration

# Directories to scan for Dart files (relative to project root)
scan_paths:
  - lib/

# Glob patterns for assets that are never reported as unused
exclude_patterns:
  # - "assets/generated/**"

# Annotation names that mark assets as required
keep_annotations:
  - KeepAsset
  - KeepAssets
  - PreserveAsset

# Known dynamic asset patterns, e.g. for 'assets/avatars/$id.png'
dynamic_patterns:
  # - "assets/avatars/*.png"

# Path prefixes that identify asset strings in code
asset_prefixes:
  - assets/
  - packages/

# Scan the test/ directory as well
include_tests: false

# Scan generated files (.g.dart, .freezed.dart, ...)
include_generated_files: true

# Exit with a failure status when unused assets are found
strict_mode: false
"""


def load_config(project_root: Path) -> ShakerConfig:
    """Load configuration for ``project_root``; defaults when no file exists."""
    config_file = find_config_file(project_root)
    if config_file is None:
        return ShakerConfig()

    data = _read_config(config_file)
    if not isinstance(data, dict):
        raise ConfigError(f"{config_file.name} must contain a mapping at the root")

    defaults = ShakerConfig()
    return ShakerConfig(
        scan_paths=_as_str_list(data.get("scan_paths"), defaults.scan_paths),
        exclude_patterns=_as_str_list(data.get("exclude_patterns"), defaults.exclude_patterns),
        keep_annotations=_as_str_list(data.get("keep_annotations"), defaults.keep_annotations),
        dynamic_patterns=_as_str_list(data.get("dynamic_patterns"), defaults.dynamic_patterns),
        asset_prefixes=_as_str_list(data.get("asset_prefixes"), defaults.asset_prefixes),
        include_tests=_as_bool(data.get("include_tests"), defaults.include_tests),
        include_generated_files=_as_bool(
            data.get("include_generated_files"), defaults.include_generated_files
        ),
        strict_mode=_as_bool(data.get("strict_mode"), defaults.strict_mode),
        manifest_file=_as_str(data.get("manifest_file")) or defaults.manifest_file,
        max_workers=_as_positive_int(data.get("max_workers")),
        backup_dir=_as_str(data.get("backup_dir")),
    )


def find_config_file(project_root: Path) -> Optional[Path]:
    root = project_root.expanduser()
    for name in (DEFAULT_CONFIG_NAME, *ALTERNATIVE_CONFIG_NAMES):
        candidate = root / name
        if candidate.is_file():
            return candidate
    return None


def write_default_config(project_root: Path) -> Path:
    """Write a commented configuration template into ``project_root``."""
    target = project_root / DEFAULT_CONFIG_NAME
    if target.exists():
        raise FileExistsError(f"Configuration already exists at {target}")
    target.write_text(_TEMPLATE, encoding="utf-8")
    return target


def _read_config(path: Path) -> Dict[str, Any]:
    try:
        text = path.read_text(encoding="utf-8")
    except OSError as exc:
        raise ConfigError(f"Failed to read {path.name}: {exc}") from exc
    if not text.strip():
        return {}
    try:
        loaded = yaml.safe_load(text)
    except yaml.YAMLError as exc:
        raise ConfigError(f"Failed to parse {path.name}: {exc}") from exc
    return {} if loaded is None else loaded


def _as_str(value: Any) -> Optional[str]:
    return str(value) if isinstance(value, (str, int, float)) and not isinstance(value, bool) else None


def _as_bool(value: Any, default: bool) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered in {"true", "yes", "1"}:
            return True
        if lowered in {"false", "no", "0"}:
            return False
    return default


def _as_positive_int(value: Any) -> Optional[int]:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value if value > 0 else None
    if isinstance(value, str):
        try:
            parsed = int(value)
        except ValueError:
            return None
        return parsed if parsed > 0 else None
    return None


def _as_str_list(value: Any, default: Sequence[str]) -> List[str]:
    if value is None:
        return list(default)
    if isinstance(value, str):
        return [value]
    if isinstance(value, list):
        return [str(item) for item in value if isinstance(item, (str, int, float))]
    return list(default)


__all__ = [
    "ConfigError",
    "ShakerConfig",
    "find_config_file",
    "load_config",
    "write_default_config",
]
