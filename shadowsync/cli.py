"""CLI entrypoints for shadowsync commands."""

from __future__ import annotations

import argparse
import asyncio
import sys
from pathlib import Path

from .errors import ShadowSyncError
from .logging import configure_logging
from .orchestrator import ConvertResult, Orchestrator


def _add_verbose_option(
    parser: argparse.ArgumentParser, *, suppress_default: bool = False
) -> None:
    kwargs: dict[str, object] = {
        "action": "store_true",
        "help": "Increase log verbosity for troubleshooting.",
    }
    kwargs["default"] = argparse.SUPPRESS if suppress_default else False
    parser.add_argument("-v", "--verbose", **kwargs)


def _add_root_option(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--root",
        default=None,
        help="Workspace root (defaults to the nearest directory with .shadowsync.yml or .git).",
    )


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="shadowsync",
        description="Keep source files in sync with their pseudocode shadow files.",
    )
    _add_verbose_option(parser)
    subparsers = parser.add_subparsers(dest="command", required=True)

    open_parser = subparsers.add_parser(
        "open", help="Create a shadow file for a source file, seeded with its code."
    )
    _add_verbose_option(open_parser, suppress_default=True)
    _add_root_option(open_parser)
    open_parser.add_argument("file", help="Source file to shadow.")

    convert_parser = subparsers.add_parser(
        "convert", help="Convert a shadow file's pending pseudocode changes now."
    )
    _add_verbose_option(convert_parser, suppress_default=True)
    _add_root_option(convert_parser)
    convert_parser.add_argument("shadow", help="Shadow file to convert.")

    copy_parser = subparsers.add_parser(
        "copy", help="Overwrite a shadow file with its source file's current code."
    )
    _add_verbose_option(copy_parser, suppress_default=True)
    _add_root_option(copy_parser)
    copy_parser.add_argument("shadow", help="Shadow file to reseed.")

    watch_parser = subparsers.add_parser(
        "watch", help="Convert shadow files as they change until interrupted."
    )
    _add_verbose_option(watch_parser, suppress_default=True)
    watch_parser.add_argument(
        "path",
        nargs="?",
        default=".",
        help="Workspace root (defaults to current directory).",
    )

    cleanup_parser = subparsers.add_parser(
        "cleanup", help="Drop checkpoints whose shadow file no longer exists."
    )
    _add_verbose_option(cleanup_parser, suppress_default=True)
    cleanup_parser.add_argument(
        "path",
        nargs="?",
        default=".",
        help="Workspace root (defaults to current directory).",
    )

    return parser


def main(argv: list[str] | None = None) -> None:
    """CLI entrypoint for shadowsync commands."""
    parser = _build_parser()
    args = parser.parse_args(argv)

    configure_logging(verbose=bool(args.verbose))

    orchestrator = Orchestrator()

    try:
        if args.command == "open":
            result = orchestrator.run_open(args.file, root=args.root)
            verb = "created" if result.created else "already exists"
            print(f"Shadow file {verb}: {_relativize(result.shadow_path)}")
        elif args.command == "copy":
            orchestrator.run_copy(args.shadow, root=args.root)
            print(f"Copied source code into {_relativize(Path(args.shadow))}")
        elif args.command == "convert":
            converted = asyncio.run(orchestrator.run_convert(args.shadow, root=args.root))
            _report_convert(parser, converted)
        elif args.command == "watch":
            try:
                asyncio.run(orchestrator.run_watch(args.path))
            except KeyboardInterrupt:
                print("Stopped watching")
        elif args.command == "cleanup":
            removed = orchestrator.run_cleanup(args.path)
            print(f"Removed {len(removed)} ghost checkpoint(s)")
        else:  # pragma: no cover - argparse enforces choices
            parser.exit(1, "Unknown command\n")
    except FileNotFoundError as exc:
        parser.exit(1, f"{exc}\n")
    except (ValueError, ShadowSyncError) as exc:
        parser.exit(
            1, f"shadowsync {args.command} failed: {exc}\nRun with --verbose for more details.\n"
        )


def _report_convert(parser: argparse.ArgumentParser, result: ConvertResult) -> None:
    if result.status == "error":
        parser.exit(1, f"shadowsync convert failed: {result.errors[-1]}\n")
    if result.status == "unchanged":
        print("Shadow file unchanged since the last conversion")
    elif result.status == "applied":
        print(f"Updated {_relativize(result.target_path)}")
    else:
        print("No changes needed")
    for report in result.reports:
        for suggestion in report.suggestions:
            print(suggestion)


def _relativize(path: Path) -> str:
    try:
        return str(path.resolve().relative_to(Path.cwd()))
    except ValueError:
        return str(path)


if __name__ == "__main__":
    main(sys.argv[1:])
