"""Tests for assetshaker.cleaner."""

from __future__ import annotations

import base64
import json
from datetime import UTC, datetime
from pathlib import Path
from typing import Optional

import pytest

from assetshaker.analyzer import summarize
from assetshaker.cleaner import AssetCleaner, CleanerError, content_hash, strip_manifest_entries
from assetshaker.models import AnalysisResult, AnalyzedAsset, AssetStatus


def _asset(path: str, status: AssetStatus = AssetStatus.UNUSED, size: Optional[int] = None) -> AnalyzedAsset:
    return AnalyzedAsset(path=path, status=status, size_bytes=size, original_declaration=path)


def _result(root: Path, *assets: AnalyzedAsset) -> AnalysisResult:
    return AnalysisResult(
        assets=list(assets),
        warnings=[],
        summary=summarize(assets),
        timestamp=datetime.now(UTC),
        project_root=str(root),
        files_scanned=0,
    )


def _backups(root: Path) -> list[Path]:
    return sorted(root.glob(".asset_backup_*.json"))


def test_dry_run_touches_nothing(project_builder) -> None:
    root = project_builder.path()
    project_builder.assets(["assets/a.png"], content=b"aaaa")
    project_builder.assets(["assets/b.png"], content=b"bbbbbbbb")
    analysis = _result(
        root,
        _asset("assets/a.png", size=4),
        _asset("assets/b.png", size=8),
        _asset("assets/used.png", AssetStatus.USED, size=1),
    )

    result = AssetCleaner(root).clean(analysis, dry_run=True)

    assert result.dry_run
    assert [(item.path, item.size_bytes) for item in result.deleted_assets] == [
        ("assets/a.png", 4),
        ("assets/b.png", 8),
    ]
    assert (root / "assets/a.png").read_bytes() == b"aaaa"
    assert (root / "assets/b.png").exists()
    assert _backups(root) == []
    assert result.backup_file is None


def test_preview_reports_existence_and_sizes(project_builder) -> None:
    root = project_builder.path()
    project_builder.assets(["assets/a.png"], content=b"x" * 2048)
    analysis = _result(root, _asset("assets/a.png", size=2048), _asset("assets/gone.png", size=0))

    preview = AssetCleaner(root).preview(analysis)

    assert [(item.path, item.exists) for item in preview.assets] == [
        ("assets/a.png", True),
        ("assets/gone.png", False),
    ]
    assert preview.total_size_bytes == 2048
    assert preview.total_size_formatted == "2.0 KB"


def test_clean_writes_backup_before_deleting(project_builder) -> None:
    root = project_builder.path()
    project_builder.assets(["assets/a.png"], content=b"\x00\x01binary")
    project_builder.assets(["assets/keep.png"], content=b"keep")
    analysis = _result(
        root,
        _asset("assets/a.png", size=8),
        _asset("assets/keep.png", AssetStatus.WHITELISTED, size=4),
    )

    result = AssetCleaner(root).clean(analysis, dry_run=False)

    assert not (root / "assets/a.png").exists()
    assert (root / "assets/keep.png").exists()
    assert [item.path for item in result.deleted_assets] == ["assets/a.png"]
    assert result.total_deleted_size == 8
    assert not result.has_failures

    assert result.backup_file is not None and result.backup_file.is_file()
    payload = json.loads(result.backup_file.read_text(encoding="utf-8"))
    assert set(payload) == {"timestamp", "project_root", "assets", "restore_command"}
    (entry,) = payload["assets"]
    assert entry["path"] == "assets/a.png"
    assert entry["size_bytes"] == 8
    assert entry["hash"] == content_hash(b"\x00\x01binary")
    assert base64.b64decode(entry["content"]) == b"\x00\x01binary"
    assert result.backup_file.name in payload["restore_command"]


def test_backup_dir_is_respected(project_builder) -> None:
    root = project_builder.path()
    project_builder.assets(["assets/a.png"])

    result = AssetCleaner(root, backup_dir=".backups").clean(
        _result(root, _asset("assets/a.png")), dry_run=False
    )

    assert result.backup_file is not None
    assert result.backup_file.parent == root.resolve() / ".backups"


def test_clean_without_backup(project_builder) -> None:
    root = project_builder.path()
    project_builder.assets(["assets/a.png"])

    result = AssetCleaner(root).clean(
        _result(root, _asset("assets/a.png")), dry_run=False, create_backup=False
    )

    assert result.backup_file is None
    assert _backups(root) == []
    assert not (root / "assets/a.png").exists()


def test_failed_deletion_does_not_stop_others(project_builder) -> None:
    root = project_builder.path()
    project_builder.assets(["assets/b.png", "assets/c.png"])
    analysis = _result(
        root,
        _asset("assets/a_vanished.png"),
        _asset("assets/b.png"),
        _asset("assets/c.png"),
    )

    result = AssetCleaner(root).clean(analysis, dry_run=False)

    assert [failure.path for failure in result.failed_deletions] == ["assets/a_vanished.png"]
    assert [item.path for item in result.deleted_assets] == ["assets/b.png", "assets/c.png"]
    assert result.has_failures
    payload = json.loads(result.backup_file.read_text(encoding="utf-8"))
    assert [entry["path"] for entry in payload["assets"]] == ["assets/b.png", "assets/c.png"]


def test_backup_restore_round_trip(project_builder) -> None:
    root = project_builder.path()
    original = bytes(range(256)) * 3
    project_builder.assets(["assets/deep/nested/blob.bin"], content=original)
    cleaner = AssetCleaner(root)

    clean_result = cleaner.clean(_result(root, _asset("assets/deep/nested/blob.bin")), dry_run=False)
    assert not (root / "assets/deep/nested/blob.bin").exists()

    restore_result = cleaner.restore(clean_result.backup_file.name)

    assert restore_result.restored_assets == ["assets/deep/nested/blob.bin"]
    assert not restore_result.has_failures
    restored = (root / "assets/deep/nested/blob.bin").read_bytes()
    assert restored == original
    assert content_hash(restored) == clean_result.deleted_assets[0].hash


def test_restore_recreates_missing_directories(tmp_path: Path) -> None:
    root = tmp_path / "app"
    root.mkdir()
    data = b"hello"
    backup = root / "backup.json"
    backup.write_text(
        json.dumps(
            {
                "timestamp": "2024-01-01T00:00:00+00:00",
                "project_root": str(root),
                "assets": [
                    {
                        "path": "assets/new/dir/a.txt",
                        "hash": content_hash(data),
                        "size_bytes": len(data),
                        "content": base64.b64encode(data).decode("ascii"),
                    }
                ],
                "restore_command": "",
            }
        ),
        encoding="utf-8",
    )

    result = AssetCleaner(root).restore(backup)

    assert result.restored_assets == ["assets/new/dir/a.txt"]
    assert (root / "assets/new/dir/a.txt").read_bytes() == data


def test_restore_isolates_bad_entries(tmp_path: Path) -> None:
    root = tmp_path / "app"
    root.mkdir()
    good = base64.b64encode(b"good").decode("ascii")
    entries = [
        {"path": "assets/no_content.png", "hash": "x"},
        {"path": "assets/corrupt.png", "content": "***not base64***"},
        {"path": "assets/tampered.png", "hash": content_hash(b"other"), "content": good},
        {"path": "../escape.png", "hash": content_hash(b"good"), "content": good},
        {"path": "assets/good.png", "hash": content_hash(b"good"), "content": good},
    ]
    backup = root / "backup.json"
    backup.write_text(json.dumps({"assets": entries}), encoding="utf-8")

    result = AssetCleaner(root).restore(backup)

    assert result.restored_assets == ["assets/good.png"]
    failed = {failure.path: failure.reason for failure in result.failed_restores}
    assert set(failed) == {
        "assets/no_content.png",
        "assets/corrupt.png",
        "assets/tampered.png",
        "../escape.png",
    }
    assert failed["assets/tampered.png"] == "Content hash mismatch"
    assert failed["../escape.png"] == "Path escapes the project root"
    assert not (tmp_path / "escape.png").exists()


def test_restore_missing_or_invalid_backup_raises(tmp_path: Path) -> None:
    cleaner = AssetCleaner(tmp_path)
    with pytest.raises(CleanerError):
        cleaner.restore(tmp_path / "nope.json")
    broken = tmp_path / "broken.json"
    broken.write_text("{not json", encoding="utf-8")
    with pytest.raises(CleanerError):
        cleaner.restore(broken)
    empty = tmp_path / "empty.json"
    empty.write_text("{}", encoding="utf-8")
    with pytest.raises(CleanerError):
        cleaner.restore(empty)


def test_remove_from_manifest_strips_deleted_entries(project_builder) -> None:
    root = project_builder.path()
    project_builder.assets(["assets/old.png", "assets/keep.png"])
    project_builder.write(
        {
            "pubspec.yaml": """
            name: demo
            flutter:
              assets:
                - assets/keep.png
                - "assets/old.png"  # legacy splash
                - assets/icons/
            dev_dependencies:
              test: any
            """
        }
    )
    analysis = _result(
        root,
        _asset("assets/old.png"),
        _asset("assets/keep.png", AssetStatus.USED),
    )

    AssetCleaner(root).clean(analysis, dry_run=False, remove_from_manifest=True)

    manifest = (root / "pubspec.yaml").read_text(encoding="utf-8")
    assert "assets/old.png" not in manifest
    assert "- assets/keep.png" in manifest
    assert "- assets/icons/" in manifest
    assert "test: any" in manifest


def test_strip_manifest_leaves_other_lists_alone() -> None:
    content = "flutter:\n  assets:\n    - assets/a.png\nother:\n  - assets/a.png\n"
    assert strip_manifest_entries(content, {"assets/a.png"}) == (
        "flutter:\n  assets:\nother:\n  - assets/a.png\n"
    )


def test_clean_with_nothing_unused_is_a_no_op(project_builder) -> None:
    root = project_builder.path()
    result = AssetCleaner(root).clean(
        _result(root, _asset("assets/a.png", AssetStatus.USED)), dry_run=False
    )
    assert result.deleted_assets == []
    assert result.backup_file is None


def test_file_declared_twice_is_deleted_once(project_builder) -> None:
    root = project_builder.path()
    project_builder.assets(["assets/icons/a.png"], content=b"icon")
    analysis = _result(
        root,
        AnalyzedAsset(
            path="assets/icons/a.png",
            status=AssetStatus.UNUSED,
            size_bytes=4,
            original_declaration="assets/icons/",
        ),
        AnalyzedAsset(
            path="assets/icons/a.png",
            status=AssetStatus.UNUSED,
            size_bytes=4,
            original_declaration="assets/icons/*.png",
        ),
    )
    cleaner = AssetCleaner(root)

    preview = cleaner.clean(analysis, dry_run=True)
    result = cleaner.clean(analysis, dry_run=False)

    assert [item.path for item in preview.deleted_assets] == ["assets/icons/a.png"]
    assert [item.path for item in result.deleted_assets] == ["assets/icons/a.png"]
    assert not result.has_failures
    payload = json.loads(result.backup_file.read_text(encoding="utf-8"))
    assert [entry["path"] for entry in payload["assets"]] == ["assets/icons/a.png"]


def test_assets_outside_the_root_are_never_deleted(tmp_path: Path) -> None:
    root = tmp_path / "app"
    root.mkdir()
    shared = tmp_path / "shared" / "logo.png"
    shared.parent.mkdir()
    shared.write_bytes(b"shared")
    analysis = _result(root, _asset("../shared/logo.png"))
    cleaner = AssetCleaner(root)

    preview = cleaner.clean(analysis, dry_run=True)
    result = cleaner.clean(analysis, dry_run=False)

    assert preview.deleted_assets == []
    assert [str(failure) for failure in result.failed_deletions] == [
        "Failed to delete ../shared/logo.png: Path escapes the project root"
    ]
    assert result.deleted_assets == []
    assert result.backup_file is None
    assert shared.read_bytes() == b"shared"


def test_backup_skips_assets_outside_the_root(tmp_path: Path) -> None:
    root = tmp_path / "app"
    (root / "assets").mkdir(parents=True)
    (root / "assets/a.png").write_bytes(b"a")
    (tmp_path / "outside.png").write_bytes(b"o")

    backup = AssetCleaner(root).create_backup([_asset("../outside.png"), _asset("assets/a.png")])

    payload = json.loads(backup.read_text(encoding="utf-8"))
    assert [entry["path"] for entry in payload["assets"]] == ["assets/a.png"]


def test_strip_manifest_matches_unnormalized_declarations() -> None:
    content = (
        "flutter:\n"
        "  assets:\n"
        "    - ./assets/old.png\n"
        "    - /assets/older.png\n"
        "    - assets/keep.png\n"
    )
    stripped = strip_manifest_entries(content, {"assets/old.png", "assets/older.png"})
    assert stripped == "flutter:\n  assets:\n    - assets/keep.png\n"
