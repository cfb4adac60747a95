#!/usr/bin/env python3

import argparse
import logging
from collections.abc import Callable, Sequence
from pathlib import Path

from tabsplit.runtime import set_data_dir, set_log_level


def _coerce_exit_code(code: object) -> int:
    if code is None:
        return 0
    if isinstance(code, int):
        return code
    return 1


def _run_command(command: Callable[[argparse.Namespace], None], args: argparse.Namespace) -> int:
    """
    Normalize command handlers that call sys.exit().

    This keeps process termination centralized in this module's entrypoint.
    """
    try:
        command(args)
    except SystemExit as exc:
        return _coerce_exit_code(exc.code)
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="tabsplit",
        description="Receipt ingestion for shared expenses",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Commands:
  serve [--host] [--port]    Start the receipt ingestion server
  scan <file> [--mode]       Extract a receipt file and print the draft
  list <group_id>            List locally stored receipts for a group
""",
    )
    parser.add_argument("--verbose", "-v", action="store_true", help="Enable debug logging")
    parser.add_argument("--data-dir", default=None, help="Local storage directory (default: $TABSPLIT_DATA_DIR)")

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    serve_parser = subparsers.add_parser("serve", help="Start the receipt ingestion server")
    serve_parser.add_argument("--host", default="127.0.0.1", help="Host to bind to (default: 127.0.0.1)")
    serve_parser.add_argument("--port", type=int, default=8000, help="Port to bind to (default: 8000)")

    scan_parser = subparsers.add_parser("scan", help="Extract a receipt file and print the draft")
    scan_parser.add_argument("image", help="Path to receipt image or PDF")
    scan_parser.add_argument(
        "--mode",
        choices=["structured", "text"],
        default=None,
        help="Extraction backend (default: $TABSPLIT_EXTRACTION_MODE or structured)",
    )
    scan_parser.add_argument("--extraction-url", default=None, help="Override the extraction endpoint URL")

    list_parser = subparsers.add_parser("list", help="List locally stored receipts for a group")
    list_parser.add_argument("group_id", help="Group identifier")

    return parser


def main(argv: Sequence[str] | None = None) -> int:
    """Main entry point for the CLI."""
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        return 1

    if args.verbose:
        set_log_level(logging.DEBUG)
    if args.data_dir:
        set_data_dir(Path(args.data_dir))

    if args.command == "serve":
        from tabsplit.cli.receipt import cmd_serve

        return _run_command(cmd_serve, args)
    elif args.command == "scan":
        from tabsplit.cli.receipt import cmd_scan

        return _run_command(cmd_scan, args)
    elif args.command == "list":
        from tabsplit.cli.receipt import cmd_list

        return _run_command(cmd_list, args)

    return 1


if __name__ == "__main__":
    raise SystemExit(main())
