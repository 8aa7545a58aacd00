# config.py

import os
import argparse
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence

from .utils import expand_home, resolve_directory

# --- Configuration Constants ---
DEFAULT_DATA_DIR = "~/.stagefs"
BACKUPS_DIR = "backups"
STAGING_DIR = "staging"
LOCKS_DIR = "locks"
DEFAULT_SESSION_TIMEOUT = 3600.0  # seconds; 0 disables the idle sweep
LOCK_TIMEOUT = 10  # seconds for file locks
POSITION_TOLERANCE = 5  # characters
INTERRUPTED_TAIL_LINES = 5


class ConfigError(Exception):
    """Raised when the startup configuration is unusable."""

    pass


@dataclass
class ServerConfig:
    allowed_directories: List[str]
    backup_dir: str
    staging_dir: str
    session_timeout: float = DEFAULT_SESSION_TIMEOUT
    lock_timeout: float = LOCK_TIMEOUT
    position_tolerance: int = POSITION_TOLERANCE
    descriptions: Dict[str, str] = field(default_factory=dict)
    verbose: bool = False

    @property
    def locks_dir(self) -> str:
        return os.path.join(self.staging_dir, LOCKS_DIR)

    @classmethod
    def create(
        cls,
        allowed_directories: Sequence[str],
        data_dir: Optional[str] = None,
        backup_dir: Optional[str] = None,
        staging_dir: Optional[str] = None,
        **kwargs,
    ) -> "ServerConfig":
        """Builds a config, normalizing and checking the allowed directories."""
        roots = []
        for d in allowed_directories:
            resolved = resolve_directory(d)
            if not os.path.isdir(resolved):
                raise ConfigError(
                    f"Allowed directory '{d}' resolved to '{resolved}' which is not a directory."
                )
            if not os.access(resolved, os.R_OK):
                raise ConfigError(
                    f"Insufficient permissions (need read access) for allowed directory '{resolved}'."
                )
            if resolved not in roots:
                roots.append(resolved)
        if not roots:
            raise ConfigError("No valid allowed directories provided.")

        data_root = os.path.abspath(expand_home(data_dir or DEFAULT_DATA_DIR))
        descriptions = {
            resolve_directory(k): v for k, v in kwargs.pop("descriptions", {}).items()
        }
        return cls(
            allowed_directories=roots,
            backup_dir=os.path.abspath(
                expand_home(backup_dir or os.path.join(data_root, BACKUPS_DIR))
            ),
            staging_dir=os.path.abspath(
                expand_home(staging_dir or os.path.join(data_root, STAGING_DIR))
            ),
            descriptions=descriptions,
            **kwargs,
        )


def _parse_description(value: str) -> tuple:
    if "=" not in value:
        raise argparse.ArgumentTypeError("expected ROOT=TEXT")
    root, text = value.split("=", 1)
    return root, text


def build_arg_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="stagefs-server",
        description="Staged, versioned file editing MCP server.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  stagefs-server ~/projects                      # Serve one directory
  stagefs-server ~/a ~/b --data-dir /var/stagefs # Custom backup/staging location
  stagefs-server ~/a --describe ~/a="Main repo"  # Describe a root for server_info
""",
    )
    parser.add_argument(
        "allowed_directories",
        nargs="+",
        help="Directories the server may read and modify.",
    )
    parser.add_argument(
        "--data-dir",
        default=os.environ.get("STAGEFS_DATA_DIR"),
        help=f"Parent of the backup and staging directories (default: {DEFAULT_DATA_DIR}).",
    )
    parser.add_argument(
        "--backup-dir",
        default=os.environ.get("STAGEFS_BACKUP_DIR"),
        help="Where file versions are kept (default: <data-dir>/backups).",
    )
    parser.add_argument(
        "--staging-dir",
        default=os.environ.get("STAGEFS_STAGING_DIR"),
        help="Scratch area for in-flight writes, wiped at startup (default: <data-dir>/staging).",
    )
    parser.add_argument(
        "--session-timeout",
        type=float,
        default=float(
            os.environ.get("STAGEFS_SESSION_TIMEOUT", DEFAULT_SESSION_TIMEOUT)
        ),
        help="Seconds before an idle pending write is discarded (0 disables).",
    )
    parser.add_argument(
        "--lock-timeout",
        type=float,
        default=LOCK_TIMEOUT,
        help=f"Timeout in seconds for acquiring per-file locks (default: {LOCK_TIMEOUT}).",
    )
    parser.add_argument(
        "--describe",
        action="append",
        type=_parse_description,
        default=[],
        metavar="ROOT=TEXT",
        help="Attach a description to an allowed directory.",
    )
    parser.add_argument(
        "--verbose", action="store_true", help="Enable debug logging."
    )
    return parser


def config_from_args(argv: Optional[Sequence[str]] = None) -> ServerConfig:
    args = build_arg_parser().parse_args(argv)
    return ServerConfig.create(
        args.allowed_directories,
        data_dir=args.data_dir,
        backup_dir=args.backup_dir,
        staging_dir=args.staging_dir,
        session_timeout=args.session_timeout,
        lock_timeout=args.lock_timeout,
        descriptions=dict(args.describe),
        verbose=args.verbose,
    )
