"""Tests for assetshaker.scanner.usage_scanner."""

from __future__ import annotations

from assetshaker.config import ShakerConfig
from assetshaker.scanner import UsageScanner, is_generated_file
from tests._fixtures.project_builder import literal_parse


def _scanner(project_builder, **overrides) -> UsageScanner:
    return UsageScanner(project_builder.path(), ShakerConfig(**overrides), parse=literal_parse)


def test_scan_collects_references_across_files(project_builder) -> None:
    project_builder.write(
        {
            "lib/main.dart": "final a = 'assets/a.png';\n",
            "lib/src/widgets/icon.dart": "final b = 'assets/icons/b.png';\nfinal c = 'hello';\n",
        }
    )

    result = _scanner(project_builder).scan()

    assert result.static_assets == {"assets/a.png", "assets/icons/b.png"}
    assert result.scanned_files == {"lib/main.dart", "lib/src/widgets/icon.dart"}
    assert result.errors == []
    reference = next(ref for ref in result.all_references if ref.asset_path == "assets/icons/b.png")
    assert reference.source_file == "lib/src/widgets/icon.dart"
    assert reference.line == 1


def test_tests_directory_is_opt_in(project_builder) -> None:
    project_builder.write(
        {
            "lib/main.dart": "void main() {}\n",
            "test/widget_test.dart": "final t = 'assets/test_only.png';\n",
        }
    )

    assert _scanner(project_builder).scan().static_assets == set()
    included = _scanner(project_builder, include_tests=True).scan()
    assert included.static_assets == {"assets/test_only.png"}


def test_generated_files_can_be_skipped(project_builder) -> None:
    project_builder.write(
        {
            "lib/main.dart": "final a = 'assets/a.png';\n",
            "lib/main.g.dart": "final g = 'assets/generated.png';\n",
        }
    )

    assert "assets/generated.png" in _scanner(project_builder).scan().static_assets
    skipped = _scanner(project_builder, include_generated_files=False).scan()
    assert skipped.static_assets == {"assets/a.png"}
    assert skipped.scanned_files == {"lib/main.dart"}


def test_parse_failure_is_recorded_and_isolated(project_builder) -> None:
    project_builder.write(
        {
            "lib/good.dart": "final a = 'assets/a.png';\n",
            "lib/broken.dart": "BROKEN\n",
        }
    )

    def parse(source: str):
        if "BROKEN" in source:
            raise ValueError("unexpected token")
        return literal_parse(source)

    scanner = UsageScanner(project_builder.path(), ShakerConfig(), parse=parse)
    result = scanner.scan()

    assert result.static_assets == {"assets/a.png"}
    assert [(error.file, error.message) for error in result.errors] == [
        ("lib/broken.dart", "unexpected token")
    ]
    assert "lib/broken.dart" in result.scanned_files


def test_scan_files_limits_to_given_paths(project_builder) -> None:
    project_builder.write(
        {
            "lib/a.dart": "final a = 'assets/a.png';\n",
            "lib/b.dart": "final b = 'assets/b.png';\n",
        }
    )

    result = _scanner(project_builder).scan_files(["lib/b.dart", "lib/missing.dart"])

    assert result.static_assets == {"assets/b.png"}


def test_results_are_identical_regardless_of_worker_count(project_builder) -> None:
    project_builder.write(
        {f"lib/file_{index}.dart": f"final v = 'assets/item_{index}.png';\n" for index in range(12)}
    )

    serial = _scanner(project_builder, max_workers=1).scan()
    parallel = _scanner(project_builder, max_workers=6).scan()

    assert serial.static_assets == parallel.static_assets
    assert serial.all_references == parallel.all_references


def test_is_generated_file() -> None:
    assert is_generated_file("model.g.dart")
    assert is_generated_file("state.freezed.dart")
    assert is_generated_file("api.mocks.dart")
    assert not is_generated_file("main.dart")
