# versions.py

import os
import re
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable, Dict, Any, List, Optional, Tuple, Union

from .errors import StorageError, VersionNotFoundError
from .sandbox import PathSandbox
from .utils import (
    log,
    atomic_write,
    read_bytes_or_empty,
    sanitize_path_for_filename,
    write_durable,
)


@dataclass(frozen=True)
class BackupVersion:
    version_id: str
    timestamp_ms: int
    timestamp: str
    source_path: str
    storage_location: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "version": self.version_id,
            "timestamp": self.timestamp,
            "path": self.storage_location,
        }


def format_timestamp_ms(timestamp_ms: int) -> str:
    """ISO-8601 UTC with millisecond precision, e.g. 2024-01-02T03:04:05.678Z."""
    dt = datetime.fromtimestamp(timestamp_ms / 1000, tz=timezone.utc)
    return dt.strftime("%Y-%m-%dT%H:%M:%S.") + f"{timestamp_ms % 1000:03d}Z"


def parse_version_token(token: str) -> Optional[int]:
    """Decodes a backup suffix into epoch milliseconds, or None if unparseable."""
    if token.isdigit():
        return int(token)
    try:
        dt = datetime.fromisoformat(token)
    except ValueError:
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return int(round(dt.timestamp() * 1000))


def _now_ms() -> int:
    return time.time_ns() // 1_000_000


class VersionStore:
    """
    Timestamped backups mirrored under a dedicated backup root.

    A file at <root>/<rel> is backed up as
    <backup_dir>/<root-key>/<rel>.<epoch-ms>, where <root-key> names the
    allowed root so same-named files under different roots stay apart.
    """

    def __init__(
        self,
        sandbox: PathSandbox,
        backup_dir: str,
        clock_ms: Callable[[], int] = _now_ms,
    ):
        self.sandbox = sandbox
        self.backup_dir = backup_dir
        self.clock_ms = clock_ms

    def root_backup_dir(self, root: str) -> str:
        """Folder holding the backups of every file under an allowed root."""
        return os.path.join(self.backup_dir, sanitize_path_for_filename(root))

    def _backup_base(self, path: str) -> Optional[str]:
        root = self.sandbox.root_for(path)
        if root is None:
            return None
        relative = os.path.relpath(path, root)
        if relative == os.curdir:
            return None
        return os.path.join(self.root_backup_dir(root), relative)

    def backup_location_for(self, path: str) -> str:
        """Next free backup location for a sandboxed path; creates its directory."""
        base = self._backup_base(path)
        if base is None:
            raise StorageError("Invalid path for backup")
        try:
            os.makedirs(os.path.dirname(base), exist_ok=True)
        except OSError as e:
            raise StorageError(f"Could not create backup directory: {e}") from e

        timestamp_ms = self.clock_ms()
        # Same-millisecond backups move to the next free token
        while os.path.exists(f"{base}.{timestamp_ms}"):
            timestamp_ms += 1
        return f"{base}.{timestamp_ms}"

    def write_backup(self, path: str, content: Union[str, bytes]) -> BackupVersion:
        """Durably writes content as a new version of path."""
        location = self.backup_location_for(path)
        if isinstance(content, str):
            content = content.encode("utf-8")
        write_durable(location, content)
        token = location.rsplit(".", 1)[1]
        timestamp_ms = int(token)
        log.info(f"Backed up {path} as version {token}")
        return BackupVersion(
            version_id=token,
            timestamp_ms=timestamp_ms,
            timestamp=format_timestamp_ms(timestamp_ms),
            source_path=path,
            storage_location=location,
        )

    def history_for(self, path: str) -> List[BackupVersion]:
        """All parseable versions of path, most recent first."""
        base = self._backup_base(path)
        if base is None:
            return []
        backup_dir = os.path.dirname(base)
        file_name = os.path.basename(base)
        pattern = re.compile(
            rf"^{re.escape(file_name)}\.(\d+|\d{{4}}-\d{{2}}-\d{{2}}T.*Z)$"
        )

        try:
            entries = os.listdir(backup_dir)
        except OSError:
            return []

        versions = []
        for entry in entries:
            match = pattern.match(entry)
            if not match:
                continue
            token = match.group(1)
            timestamp_ms = parse_version_token(token)
            if timestamp_ms is None:
                log.debug(f"Skipping unparseable backup name: {entry}")
                continue
            location = os.path.join(backup_dir, entry)
            if not os.path.isfile(location):
                continue
            versions.append(
                BackupVersion(
                    version_id=token,
                    timestamp_ms=timestamp_ms,
                    timestamp=token
                    if not token.isdigit()
                    else format_timestamp_ms(timestamp_ms),
                    source_path=path,
                    storage_location=location,
                )
            )
        versions.sort(key=lambda v: (v.timestamp_ms, v.version_id), reverse=True)
        return versions

    def find_version(self, path: str, version_id: str) -> BackupVersion:
        for version in self.history_for(path):
            if version.version_id == version_id:
                return version
        raise VersionNotFoundError(
            "Version not found. Please check the available versions using 'file_history'."
        )

    def restore(self, path: str, version_id: str) -> Tuple[BackupVersion, BackupVersion]:
        """
        Restores a version as the live content of path.

        The current content is backed up first, so a restore can itself be undone.

        Returns:
            (restored version, backup of the pre-restore content)
        """
        version = self.find_version(path, version_id)
        try:
            with open(version.storage_location, "rb") as f:
                restored = f.read()
        except OSError as e:
            raise StorageError(f"Could not read version {version_id}: {e}") from e
        current = read_bytes_or_empty(path)

        pre_restore = self.write_backup(path, current)
        atomic_write(path, restored)
        log.info(f"Restored {path} to version {version_id}")
        return version, pre_restore


def history_summary(versions: List[BackupVersion]) -> Dict[str, Any]:
    return {
        "total_versions": len(versions),
        "last_modified": versions[0].timestamp if versions else None,
        "backup_location": os.path.dirname(versions[0].storage_location)
        if versions
        else None,
    }


def version_dicts(versions: List[BackupVersion]) -> List[Dict[str, Any]]:
    return [v.to_dict() for v in versions]


__all__ = [
    "BackupVersion",
    "VersionStore",
    "format_timestamp_ms",
    "parse_version_token",
    "history_summary",
    "version_dicts",
]
