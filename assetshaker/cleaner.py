"""Safe removal of unused assets with a restorable backup manifest."""

from __future__ import annotations

import base64
import binascii
import hashlib
import json
import os
import tempfile
from dataclasses import dataclass, field
from datetime import UTC, datetime
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Sequence, Set

from .logging import get_logger
from .models import AnalysisResult, AnalyzedAsset, format_bytes
from .patterns import normalize_path

_BACKUP_PREFIX = ".asset_backup_"
_ESCAPES_ROOT = "Path escapes the project root"


class CleanerError(RuntimeError):
    """Raised when a backup manifest is missing or unreadable."""


@dataclass
class DeletedAsset:
    path: str
    size_bytes: int
    hash: Optional[str] = None


@dataclass
class FailedDeletion:
    path: str
    reason: str

    def __str__(self) -> str:
        return f"Failed to delete {self.path}: {self.reason}"


@dataclass
class FailedRestore:
    path: str
    reason: str

    def __str__(self) -> str:
        return f"Failed to restore {self.path}: {self.reason}"


@dataclass
class CleanResult:
    """Outcome of a clean run (or of its dry-run preview)."""

    deleted_assets: List[DeletedAsset] = field(default_factory=list)
    failed_deletions: List[FailedDeletion] = field(default_factory=list)
    backup_file: Optional[Path] = None
    dry_run: bool = True

    @property
    def has_failures(self) -> bool:
        return bool(self.failed_deletions)

    @property
    def total_deleted_size(self) -> int:
        return sum(asset.size_bytes for asset in self.deleted_assets)

    def __str__(self) -> str:
        if self.dry_run:
            return f"CleanResult (dry run): would delete {len(self.deleted_assets)} assets"
        return (
            f"CleanResult: deleted {len(self.deleted_assets)} assets, "
            f"{len(self.failed_deletions)} failed"
        )


@dataclass
class RestoreResult:
    restored_assets: List[str] = field(default_factory=list)
    failed_restores: List[FailedRestore] = field(default_factory=list)

    @property
    def has_failures(self) -> bool:
        return bool(self.failed_restores)


@dataclass
class AssetPreview:
    path: str
    exists: bool
    size_bytes: int


@dataclass
class CleanPreview:
    assets: List[AssetPreview]
    total_size_bytes: int

    @property
    def total_size_formatted(self) -> str:
        return format_bytes(self.total_size_bytes)


@dataclass
class BackupEntry:
    path: str
    hash: str
    size_bytes: int
    content: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "path": self.path,
            "hash": self.hash,
            "size_bytes": self.size_bytes,
            "content": self.content,
        }


class AssetCleaner:
    """Deletes assets classified as unused, backing them up first."""

    def __init__(
        self,
        project_root: str | Path,
        manifest_file: str = "pubspec.yaml",
        backup_dir: str | Path | None = None,
    ) -> None:
        self.project_root = Path(project_root).expanduser().resolve()
        self.manifest_file = manifest_file
        self.backup_dir = self.project_root / backup_dir if backup_dir else self.project_root
        self.logger = get_logger("cleaner")

    def clean(
        self,
        analysis: AnalysisResult,
        *,
        dry_run: bool = True,
        create_backup: bool = True,
        remove_from_manifest: bool = False,
    ) -> CleanResult:
        """Delete every unused asset; dry runs only report what would happen."""
        failed: List[FailedDeletion] = []
        targets: List[AnalyzedAsset] = []
        for asset in _unique_by_path(analysis.unused_assets):
            if self._contains(asset.path):
                targets.append(asset)
            else:
                self.logger.warning("Refusing to delete %s: %s", asset.path, _ESCAPES_ROOT)
                failed.append(FailedDeletion(path=asset.path, reason=_ESCAPES_ROOT))
        if not targets and not failed:
            return CleanResult(dry_run=dry_run)

        if dry_run:
            return CleanResult(
                deleted_assets=[
                    DeletedAsset(path=asset.path, size_bytes=asset.size_bytes or 0)
                    for asset in targets
                ],
                failed_deletions=failed,
                dry_run=True,
            )

        # The backup manifest is fully written before the first deletion.
        backup_file = self.create_backup(targets) if create_backup and targets else None

        deleted: List[DeletedAsset] = []
        for asset in targets:
            path = self.project_root / asset.path
            try:
                data = path.read_bytes()
                path.unlink()
            except OSError as exc:
                self.logger.warning("Could not delete %s: %s", asset.path, exc)
                failed.append(FailedDeletion(path=asset.path, reason=_describe(exc)))
                continue
            self.logger.debug("Deleted %s", asset.path)
            deleted.append(
                DeletedAsset(
                    path=asset.path,
                    size_bytes=asset.size_bytes if asset.size_bytes is not None else len(data),
                    hash=content_hash(data),
                )
            )

        if remove_from_manifest and deleted:
            self.remove_from_manifest(asset.path for asset in deleted)

        self.logger.info("Deleted %d assets (%d failed)", len(deleted), len(failed))
        return CleanResult(
            deleted_assets=deleted,
            failed_deletions=failed,
            backup_file=backup_file,
            dry_run=False,
        )

    def preview(self, analysis: AnalysisResult) -> CleanPreview:
        assets = [
            AssetPreview(
                path=asset.path,
                exists=(self.project_root / asset.path).is_file(),
                size_bytes=asset.size_bytes or 0,
            )
            for asset in _unique_by_path(analysis.unused_assets)
        ]
        return CleanPreview(assets=assets, total_size_bytes=sum(a.size_bytes for a in assets))

    def create_backup(self, assets: Sequence[AnalyzedAsset]) -> Path:
        """Capture the current bytes of ``assets`` in a JSON backup manifest."""
        entries: List[BackupEntry] = []
        for asset in _unique_by_path(assets):
            if not self._contains(asset.path):
                self.logger.warning("Skipping backup of %s: %s", asset.path, _ESCAPES_ROOT)
                continue
            path = self.project_root / asset.path
            try:
                data = path.read_bytes()
            except OSError as exc:
                self.logger.warning("Skipping backup of %s: %s", asset.path, exc)
                continue
            entries.append(
                BackupEntry(
                    path=asset.path,
                    hash=content_hash(data),
                    size_bytes=len(data),
                    content=base64.b64encode(data).decode("ascii"),
                )
            )

        now = datetime.now(UTC)
        stamp = now.strftime("%Y-%m-%dT%H-%M-%S-%fZ")
        backup_path = self.backup_dir / f"{_BACKUP_PREFIX}{stamp}.json"
        relative = _display_path(backup_path, self.project_root)
        payload = {
            "timestamp": now.isoformat(),
            "project_root": str(self.project_root),
            "assets": [entry.to_dict() for entry in entries],
            "restore_command": f"assetshaker restore {self.project_root} --from {relative}",
        }
        _atomic_write(backup_path, json.dumps(payload, indent=2))
        self.logger.info("Backed up %d assets to %s", len(entries), backup_path)
        return backup_path

    def restore(self, backup_file: str | Path) -> RestoreResult:
        """Write every asset stored in ``backup_file`` back to disk."""
        backup_path = Path(backup_file)
        if not backup_path.is_absolute():
            backup_path = self.project_root / backup_path
        payload = _load_backup(backup_path)

        result = RestoreResult()
        for raw in payload["assets"]:
            entry_path = raw.get("path") if isinstance(raw, dict) else None
            if not isinstance(entry_path, str) or not entry_path:
                result.failed_restores.append(
                    FailedRestore(path="<unknown>", reason="Entry has no path")
                )
                continue
            failure = self._restore_entry(entry_path, raw)
            if failure is None:
                result.restored_assets.append(entry_path)
            else:
                self.logger.warning("Could not restore %s: %s", entry_path, failure)
                result.failed_restores.append(FailedRestore(path=entry_path, reason=failure))
        self.logger.info(
            "Restored %d assets (%d failed)",
            len(result.restored_assets),
            len(result.failed_restores),
        )
        return result

    def remove_from_manifest(self, deleted_paths: Iterable[str]) -> bool:
        """Drop list entries for ``deleted_paths`` from the manifest's ``assets:`` block.

        This is a line-oriented edit; directory and glob declarations are left
        untouched. Returns True when the manifest changed.
        """
        manifest = self.project_root / self.manifest_file
        if not manifest.is_file():
            return False
        content = manifest.read_text(encoding="utf-8")
        updated = strip_manifest_entries(content, set(deleted_paths))
        if updated == content:
            return False
        _atomic_write(manifest, updated)
        self.logger.info("Removed deleted assets from %s", self.manifest_file)
        return True

    def _restore_entry(self, entry_path: str, raw: Dict[str, Any]) -> Optional[str]:
        encoded = raw.get("content")
        if not isinstance(encoded, str):
            return "No content in backup"
        try:
            data = base64.b64decode(encoded, validate=True)
        except (binascii.Error, ValueError) as exc:
            return f"Corrupt content: {exc}"
        expected = raw.get("hash")
        if isinstance(expected, str) and expected and content_hash(data) != expected:
            return "Content hash mismatch"

        if not self._contains(entry_path):
            return _ESCAPES_ROOT
        target = self.project_root / entry_path
        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            target.write_bytes(data)
        except OSError as exc:
            return _describe(exc)
        return None

    def _contains(self, relative: str) -> bool:
        return (self.project_root / relative).resolve().is_relative_to(self.project_root)


def _unique_by_path(assets: Iterable[AnalyzedAsset]) -> List[AnalyzedAsset]:
    """First asset per path; one file can be declared by several entries."""
    seen: Set[str] = set()
    unique: List[AnalyzedAsset] = []
    for asset in assets:
        if asset.path not in seen:
            seen.add(asset.path)
            unique.append(asset)
    return unique


def content_hash(data: bytes) -> str:
    return hashlib.sha256(data).hexdigest()


def strip_manifest_entries(content: str, deleted_paths: Set[str]) -> str:
    """Remove ``assets:`` list lines whose value is one of ``deleted_paths``."""
    kept: List[str] = []
    assets_indent: Optional[int] = None
    for line in content.split("\n"):
        stripped = line.strip()
        indent = len(line) - len(line.lstrip())
        if stripped.split("#", 1)[0].strip() == "assets:":
            assets_indent = indent
            kept.append(line)
            continue
        if assets_indent is not None and stripped and not stripped.startswith("#"):
            if stripped.startswith("-"):
                value = stripped[1:].split(" #", 1)[0].strip().strip("\"'")
                if normalize_path(value) in deleted_paths:
                    continue
            elif indent <= assets_indent:
                # A sibling or parent key closes the block.
                assets_indent = None
        kept.append(line)
    return "\n".join(kept)


def _load_backup(path: Path) -> Dict[str, Any]:
    if not path.is_file():
        raise CleanerError(f"Backup file not found: {path}")
    try:
        payload = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, UnicodeDecodeError, json.JSONDecodeError) as exc:
        raise CleanerError(f"Backup file {path} is not readable: {exc}") from exc
    if not isinstance(payload, dict) or not isinstance(payload.get("assets"), list):
        raise CleanerError(f"Backup file {path} has no asset list")
    return payload


def _atomic_write(path: Path, text: str) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, temp_name = tempfile.mkstemp(dir=path.parent, prefix=f".{path.name}.", suffix=".tmp")
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as handle:
            handle.write(text)
            handle.flush()
            os.fsync(handle.fileno())
        os.replace(temp_name, path)
    except BaseException:
        Path(temp_name).unlink(missing_ok=True)
        raise


def _describe(exc: OSError) -> str:
    return exc.strerror or str(exc)


def _display_path(path: Path, root: Path) -> str:
    try:
        return path.relative_to(root).as_posix()
    except ValueError:
        return str(path)


__all__ = [
    "AssetCleaner",
    "AssetPreview",
    "BackupEntry",
    "CleanPreview",
    "CleanResult",
    "CleanerError",
    "DeletedAsset",
    "FailedDeletion",
    "FailedRestore",
    "RestoreResult",
    "content_hash",
    "strip_manifest_entries",
]
