"""CLI entrypoints for assetshaker commands."""

from __future__ import annotations

import argparse
import json
import sys
from pathlib import Path

from .cleaner import CleanerError, CleanResult
from .config import ConfigError, load_config
from .discovery import ManifestError
from .logging import configure_logging
from .models import AnalysisResult, AnalyzedAsset, format_bytes
from .orchestrator import Orchestrator


def _add_verbose_option(
    parser: argparse.ArgumentParser, *, suppress_default: bool = False
) -> None:
    kwargs: dict[str, object] = {
        "action": "store_true",
        "help": "Increase log verbosity for troubleshooting.",
    }
    if suppress_default:
        kwargs["default"] = argparse.SUPPRESS
    else:
        kwargs["default"] = False
    parser.add_argument(
        "-v",
        "--verbose",
        **kwargs,
    )


def _add_path_argument(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "path",
        nargs="?",
        default=".",
        help="Path to the Flutter project root (defaults to current directory).",
    )


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="assetshaker",
        description="Find and remove Flutter assets that no Dart code references.",
    )
    _add_verbose_option(parser)
    parser.add_argument(
        "--log-file",
        type=Path,
        default=None,
        help="Also write a debug log of the run to this file.",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    analyze_parser = subparsers.add_parser(
        "analyze",
        help="Report which declared assets are used, unused or missing.",
    )
    _add_verbose_option(analyze_parser, suppress_default=True)
    _add_path_argument(analyze_parser)
    analyze_parser.add_argument(
        "--json",
        action="store_true",
        help="Print the full analysis result as JSON.",
    )
    analyze_parser.add_argument(
        "--strict",
        action="store_true",
        help="Exit with status 1 when unused assets are found.",
    )

    clean_parser = subparsers.add_parser(
        "clean",
        help="Delete unused assets (dry run unless --apply is given).",
    )
    _add_verbose_option(clean_parser, suppress_default=True)
    _add_path_argument(clean_parser)
    clean_parser.add_argument(
        "--apply",
        action="store_true",
        help="Actually delete files instead of previewing.",
    )
    clean_parser.add_argument(
        "--no-backup",
        action="store_true",
        help="Skip the restorable backup manifest (not recommended).",
    )
    clean_parser.add_argument(
        "--remove-from-manifest",
        action="store_true",
        help="Also drop deleted entries from the pubspec assets list.",
    )

    restore_parser = subparsers.add_parser(
        "restore",
        help="Restore assets from a backup manifest.",
    )
    _add_verbose_option(restore_parser, suppress_default=True)
    _add_path_argument(restore_parser)
    restore_parser.add_argument(
        "--from",
        dest="backup_file",
        required=True,
        help="Backup manifest written by a previous clean run.",
    )

    init_parser = subparsers.add_parser(
        "init",
        help="Write a default asset_tree_shaker.yaml configuration.",
    )
    _add_verbose_option(init_parser, suppress_default=True)
    _add_path_argument(init_parser)

    return parser


def main(argv: list[str] | None = None) -> None:
    """CLI entrypoint for assetshaker commands."""
    parser = _build_parser()
    args = parser.parse_args(argv)

    configure_logging(
        verbose=bool(args.verbose),
        quiet=bool(getattr(args, "json", False)),
        log_file=args.log_file,
    )

    orchestrator = Orchestrator()

    if args.command == "analyze":
        try:
            result = orchestrator.run_analysis(args.path)
        except (FileNotFoundError, ConfigError, ManifestError) as exc:
            parser.exit(1, f"{exc}\n")
        except Exception as exc:  # pragma: no cover - defensive guard
            parser.exit(1, f"assetshaker analyze failed: {exc}\nRun with --verbose for more details.\n")
        if args.json:
            print(json.dumps(result.to_dict(), indent=2))
        else:
            print(_format_analysis(result))
        strict = args.strict or load_config(Path(result.project_root)).strict_mode
        if strict and result.has_unused_assets:
            parser.exit(1, f"{len(result.unused_assets)} unused assets found (strict mode)\n")
    elif args.command == "clean":
        try:
            analysis, clean_result = orchestrator.run_clean(
                args.path,
                dry_run=not args.apply,
                create_backup=not args.no_backup,
                remove_from_manifest=bool(args.remove_from_manifest),
            )
        except (FileNotFoundError, ConfigError, ManifestError) as exc:
            parser.exit(1, f"{exc}\n")
        except Exception as exc:  # pragma: no cover - defensive guard
            parser.exit(1, f"assetshaker clean failed: {exc}\nRun with --verbose for more details.\n")
        print(_format_clean(analysis, clean_result))
        if clean_result.has_failures:
            parser.exit(1, f"{len(clean_result.failed_deletions)} assets could not be deleted\n")
    elif args.command == "restore":
        try:
            restore_result = orchestrator.run_restore(args.path, args.backup_file)
        except (FileNotFoundError, ConfigError, CleanerError) as exc:
            parser.exit(1, f"{exc}\n")
        except Exception as exc:  # pragma: no cover - defensive guard
            parser.exit(1, f"assetshaker restore failed: {exc}\nRun with --verbose for more details.\n")
        print(f"Restored {len(restore_result.restored_assets)} assets")
        for failure in restore_result.failed_restores:
            print(f"  {failure}")
        if restore_result.has_failures:
            parser.exit(1, f"{len(restore_result.failed_restores)} assets could not be restored\n")
    elif args.command == "init":
        try:
            config_path = orchestrator.run_init(args.path)
        except (FileExistsError, FileNotFoundError) as exc:
            parser.exit(1, f"{exc}\n")
        print(f"Configuration created at {_relativize(config_path)}")
    else:  # pragma: no cover - argparse enforces choices
        parser.exit(1, "Unknown command\n")


def _format_analysis(result: AnalysisResult) -> str:
    summary = result.summary
    lines = [
        f"Scanned {result.files_scanned} Dart files, {summary.total_assets} declared assets",
        f"  used: {summary.used_assets}",
        f"  unused: {summary.unused_assets} ({summary.unused_size_formatted})",
        f"  whitelisted: {summary.whitelisted_assets}",
        f"  dynamic match: {summary.dynamic_match_assets}",
        f"  annotated: {summary.annotated_assets}",
        f"  missing: {summary.missing_assets}",
    ]
    if result.unused_assets:
        lines.append("Unused assets:")
        lines.extend(_asset_line(asset) for asset in result.unused_assets)
    if result.missing_assets:
        lines.append("Missing assets:")
        lines.extend(f"  {asset.path}" for asset in result.missing_assets)
    for warning in result.warnings:
        reference = warning.reference
        lines.append(
            f"Dynamic reference {reference.inferred_pattern} at "
            f"{reference.source_file}:{reference.line} may use "
            f"{len(warning.potentially_affected_assets)} assets"
        )
    for error in result.errors:
        lines.append(f"Scan error: {error}")
    return "\n".join(lines)


def _format_clean(analysis: AnalysisResult, result: CleanResult) -> str:
    if not result.deleted_assets and not result.failed_deletions:
        return "No unused assets to delete"
    verb = "Would delete" if result.dry_run else "Deleted"
    lines = [
        f"{verb} {len(result.deleted_assets)} assets "
        f"({format_bytes(result.total_deleted_size)})"
    ]
    lines.extend(f"  {deleted.path}" for deleted in result.deleted_assets)
    lines.extend(f"  {failure}" for failure in result.failed_deletions)
    if result.backup_file is not None:
        lines.append(f"Backup written to {_relativize(result.backup_file)}")
        try:
            backup = result.backup_file.relative_to(analysis.project_root).as_posix()
        except ValueError:
            backup = str(result.backup_file)
        lines.append(f"Restore with: assetshaker restore {analysis.project_root} --from {backup}")
    if result.dry_run:
        lines.append("Dry run; pass --apply to delete")
    return "\n".join(lines)


def _asset_line(asset: AnalyzedAsset) -> str:
    if asset.size_bytes is None:
        return f"  {asset.path}"
    return f"  {asset.path} ({format_bytes(asset.size_bytes)})"


def _relativize(path: Path) -> str:
    try:
        return str(path.relative_to(Path.cwd()))
    except ValueError:
        return str(path)


if __name__ == "__main__":
    main(sys.argv[1:])
