#!/usr/bin/env python
# cli.py - stagefs-history executable

import os
import sys
import difflib
import logging
import argparse
from typing import List, Optional

from .config import LOCK_TIMEOUT, ConfigError, ServerConfig
from .errors import StageFSError
from .orchestrator import HistoryRequest, MutationOrchestrator, RestoreRequest
from .utils import log, read_text_or_empty, setup_logging

COLOR_RESET = "\033[0m"
COLOR_RED = "\033[91m"
COLOR_GREEN = "\033[92m"
COLOR_YELLOW = "\033[93m"
COLOR_BLUE = "\033[94m"
COLOR_CYAN = "\033[96m"


def generate_diff(before: str, after: str, path_a: str, path_b: str) -> str:
    """Generates a unified diff string."""
    diff_iter = difflib.unified_diff(
        before.splitlines(keepends=True),
        after.splitlines(keepends=True),
        fromfile=f"a/{path_a}",
        tofile=f"b/{path_b}",
    )
    return "".join(line if line.endswith("\n") else line + "\n" for line in diff_iter)


def print_diff_with_color(diff_content: Optional[str]) -> None:
    """Print a diff with color highlighting."""
    if not diff_content:
        print(f"{COLOR_YELLOW}No differences.{COLOR_RESET}")
        return

    for line in diff_content.splitlines():
        if line.startswith("+") and not line.startswith("+++"):
            print(f"{COLOR_GREEN}{line}{COLOR_RESET}")
        elif line.startswith("-") and not line.startswith("---"):
            print(f"{COLOR_RED}{line}{COLOR_RESET}")
        elif line.startswith("@@"):
            print(f"{COLOR_CYAN}{line}{COLOR_RESET}")
        elif line.startswith(("--- ", "+++ ")):
            print(f"{COLOR_BLUE}{line}{COLOR_RESET}")
        else:
            print(line)


# --- Command Handlers ---

def handle_history(args: argparse.Namespace, orchestrator: MutationOrchestrator) -> None:
    """Handle the history command."""
    result = orchestrator.execute(HistoryRequest(path=args.path))
    if result.get("status") == "error":
        raise StageFSError(result["message"])

    versions = result["history"]["versions"]
    if not versions:
        print(f"{COLOR_YELLOW}No versions found for {result['current']}.{COLOR_RESET}")
        return

    shown = versions if args.limit <= 0 else versions[: args.limit]
    print(f"{COLOR_CYAN}{'VERSION':<16} {'TIMESTAMP':<26}{COLOR_RESET}")
    for v in shown:
        print(f"{v['version']:<16} {v['timestamp']:<26}")

    print(f"\nShowing {len(shown)} of {len(versions)} versions of {result['current']}.")
    stats = result["history"]["stats"]
    print(f"Backups kept in {stats['backup_location']}")


def handle_show(args: argparse.Namespace, orchestrator: MutationOrchestrator) -> None:
    """Handle the show command."""
    path = orchestrator.sandbox.validate(args.path)
    version = orchestrator.versions.find_version(path, args.version)
    log.debug(f"Showing {version.storage_location}")
    with open(version.storage_location, "r", encoding="utf-8", errors="replace") as f:
        stored = f.read()

    if not args.diff:
        sys.stdout.write(stored)
        return

    current = read_text_or_empty(path)
    rel = os.path.basename(path)
    print_diff_with_color(generate_diff(stored, current, f"{rel}@{version.version_id}", rel))


def handle_restore(args: argparse.Namespace, orchestrator: MutationOrchestrator) -> None:
    """Handle the restore command."""
    result = orchestrator.execute(RestoreRequest(path=args.path, version=args.version))
    if result.get("status") == "error":
        raise StageFSError(result["message"])
    print(
        f"{COLOR_GREEN}Restored {args.path} from version {result['restored_from']}.{COLOR_RESET}"
    )
    print(f"Previous content saved as {result['current_version_backed_up']}")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="stagefs-history",
        description="Inspect and restore file versions kept by the StageFS server.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  stagefs-history history src/main.py                    # List versions, newest first
  stagefs-history show src/main.py 1700000000000 --diff  # Diff a version against the file
  stagefs-history -r ~/a restore ~/a/x.py 1700000000000  # Restore, backing up the current file
""",
    )
    parser.add_argument(
        "-r", "--root", action="append", default=[],
        help="Allowed directory the server was started with (repeatable; default: CWD).",
    )
    parser.add_argument(
        "--data-dir", default=os.environ.get("STAGEFS_DATA_DIR"),
        help="Data directory the server uses.",
    )
    parser.add_argument(
        "--backup-dir", default=os.environ.get("STAGEFS_BACKUP_DIR"),
        help="Backup directory the server uses.",
    )
    parser.add_argument(
        "--staging-dir", default=os.environ.get("STAGEFS_STAGING_DIR"),
        help="Staging directory the server uses; its lock files guard restores.",
    )
    parser.add_argument(
        "--timeout", type=float, default=LOCK_TIMEOUT,
        help=f"Timeout in seconds for acquiring locks (default: {LOCK_TIMEOUT}).",
    )
    parser.add_argument(
        "--verbose", action="store_true", help="Enable debug logging."
    )

    subparsers = parser.add_subparsers(dest="command", required=True, help="Sub-command help")

    parser_history = subparsers.add_parser("history", aliases=["log"], help="List stored versions of a file.")
    parser_history.add_argument("path", help="File whose versions to list.")
    parser_history.add_argument("-n", "--limit", type=int, default=20, help="Limit versions shown (0 for all, default: 20).")
    parser_history.set_defaults(func=handle_history)

    parser_show = subparsers.add_parser("show", aliases=["s"], help="Print a stored version.")
    parser_show.add_argument("path", help="File the version belongs to.")
    parser_show.add_argument("version", help="Version identifier from the history command.")
    parser_show.add_argument("--diff", action="store_true", help="Show a diff against the current file instead.")
    parser_show.set_defaults(func=handle_show)

    parser_restore = subparsers.add_parser("restore", help="Restore a stored version, backing up the current content.")
    parser_restore.add_argument("path", help="File to restore.")
    parser_restore.add_argument("version", help="Version identifier from the history command.")
    parser_restore.set_defaults(func=handle_restore)

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)

    setup_logging(args.verbose)
    if not args.verbose:
        log.setLevel(logging.WARNING)

    try:
        config = ServerConfig.create(
            args.root or [os.getcwd()],
            data_dir=args.data_dir,
            backup_dir=args.backup_dir,
            staging_dir=args.staging_dir,
            lock_timeout=args.timeout,
            session_timeout=0,
        )
    except ConfigError as e:
        print(f"{COLOR_RED}Error: {e}{COLOR_RESET}", file=sys.stderr)
        return 1

    # The server owns the staging area, so it is not reset here.
    orchestrator = MutationOrchestrator(config)

    exit_code = 0
    try:
        args.func(args, orchestrator)
    except KeyboardInterrupt:
        print("\nOperation cancelled by user.", file=sys.stderr)
        exit_code = 130
    except StageFSError as e:
        print(f"{COLOR_RED}Error: {e}{COLOR_RESET}", file=sys.stderr)
        exit_code = 1
    except Exception as e:
        print(f"{COLOR_RED}An unexpected error occurred. Use --verbose for detailed logs.{COLOR_RESET}", file=sys.stderr)
        print(f"{COLOR_RED}Error details: {e}{COLOR_RESET}", file=sys.stderr)
        log.exception("Unexpected error during command execution:")
        exit_code = 2
    return exit_code


if __name__ == "__main__":
    sys.exit(main())
