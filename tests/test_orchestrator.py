"""Tests for assetshaker.orchestrator."""

from __future__ import annotations

import pytest

from assetshaker.config import ConfigError
from assetshaker.discovery import ManifestError
from assetshaker.models import AssetStatus
from assetshaker.orchestrator import Orchestrator
from tests._fixtures.project_builder import literal_parse


def _flutter_project(project_builder) -> None:
    project_builder.assets(
        [
            "assets/images/logo.png",
            "assets/images/old.png",
            "assets/generated/x.json",
        ]
    )
    project_builder.pubspec(
        ["assets/images/logo.png", "assets/images/old.png", "assets/generated/", "assets/gone.png"]
    )
    project_builder.write(
        {
            "lib/main.dart": """
            import 'package:flutter/widgets.dart';

            Widget logo() => Image.asset('assets/images/logo.png');
            """,
            "asset_tree_shaker.yaml": """
            exclude_patterns:
              - "assets/generated/**"
            """,
        }
    )


def test_run_analysis_classifies_project(project_builder) -> None:
    _flutter_project(project_builder)

    result = Orchestrator(parse=literal_parse).run_analysis(str(project_builder.path()))

    statuses = {asset.path: asset.status for asset in result.assets}
    assert statuses == {
        "assets/images/logo.png": AssetStatus.USED,
        "assets/images/old.png": AssetStatus.UNUSED,
        "assets/generated/x.json": AssetStatus.WHITELISTED,
        "assets/gone.png": AssetStatus.MISSING,
    }
    assert result.files_scanned == 1
    assert result.project_root == str(project_builder.path().resolve())


def test_run_clean_defaults_to_dry_run(project_builder) -> None:
    _flutter_project(project_builder)
    root = project_builder.path()

    analysis, clean_result = Orchestrator(parse=literal_parse).run_clean(root)

    assert clean_result.dry_run
    assert [item.path for item in clean_result.deleted_assets] == ["assets/images/old.png"]
    assert (root / "assets/images/old.png").exists()
    assert analysis.summary.unused_assets == 1


def test_run_clean_and_restore(project_builder) -> None:
    _flutter_project(project_builder)
    root = project_builder.path()
    orchestrator = Orchestrator(parse=literal_parse)

    _, clean_result = orchestrator.run_clean(root, dry_run=False, remove_from_manifest=True)

    assert not (root / "assets/images/old.png").exists()
    assert "assets/images/old.png" not in (root / "pubspec.yaml").read_text(encoding="utf-8")
    assert clean_result.backup_file is not None

    restore_result = orchestrator.run_restore(root, clean_result.backup_file)

    assert restore_result.restored_assets == ["assets/images/old.png"]
    assert (root / "assets/images/old.png").read_bytes() == b"\x89PNG data"


def test_run_init_writes_template_once(project_builder) -> None:
    orchestrator = Orchestrator()
    target = orchestrator.run_init(project_builder.path())
    assert target.name == "asset_tree_shaker.yaml"
    with pytest.raises(FileExistsError):
        orchestrator.run_init(project_builder.path())


def test_fatal_errors_propagate(project_builder, tmp_path) -> None:
    orchestrator = Orchestrator(parse=literal_parse)
    with pytest.raises(FileNotFoundError):
        orchestrator.run_analysis(tmp_path / "does-not-exist")
    with pytest.raises(ManifestError):
        orchestrator.run_analysis(project_builder.path())
    project_builder.pubspec(["assets/a.png"])
    project_builder.write({"asset_tree_shaker.yaml": "- not a mapping\n"})
    with pytest.raises(ConfigError):
        orchestrator.run_analysis(project_builder.path())


def test_clean_handles_file_declared_by_directory_and_glob(project_builder) -> None:
    project_builder.assets(["assets/icons/a.png"])
    project_builder.pubspec(["assets/icons/", "assets/icons/*.png"])

    analysis, result = Orchestrator(parse=literal_parse).run_clean(
        project_builder.path(), dry_run=False
    )

    assert {asset.original_declaration for asset in analysis.unused_assets} == {
        "assets/icons/",
        "assets/icons/*.png",
    }
    assert [item.path for item in result.deleted_assets] == ["assets/icons/a.png"]
    assert not result.has_failures


def test_clean_leaves_files_outside_the_project(project_builder, tmp_path) -> None:
    shared = tmp_path / "shared" / "logo.png"
    shared.parent.mkdir()
    shared.write_bytes(b"shared")
    project_builder.pubspec(["../shared/logo.png"])

    _, result = Orchestrator(parse=literal_parse).run_clean(project_builder.path(), dry_run=False)

    assert [failure.path for failure in result.failed_deletions] == ["../shared/logo.png"]
    assert shared.read_bytes() == b"shared"
