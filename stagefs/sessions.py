# sessions.py

import os
import shutil
import threading
import time
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional

from .errors import StorageError
from .utils import log, read_text, sanitize_path_for_filename


@dataclass
class PendingEdit:
    """An in-flight streamed write for one sandboxed path."""

    path: str
    staging_path: str
    original_content: bytes
    position: int
    started_at: float
    last_activity: float


def initialize_staging(staging_dir: str) -> None:
    """Creates the staging area and discards anything left by a previous process."""
    os.makedirs(staging_dir, exist_ok=True)
    for entry in os.listdir(staging_dir):
        entry_path = os.path.join(staging_dir, entry)
        try:
            if os.path.isdir(entry_path) and not os.path.islink(entry_path):
                shutil.rmtree(entry_path)
            else:
                os.unlink(entry_path)
        except OSError as e:
            log.error(f"Error cleaning staging directory entry {entry_path}: {e}")
            raise
    log.info(f"Staging area ready at {staging_dir}")


class SessionRegistry:
    """
    Holds the PendingEdit for every path with a stream-write in progress.

    Staged content lives in side files under the staging directory; the
    live file is never touched until the orchestrator commits.
    """

    def __init__(
        self,
        staging_dir: str,
        idle_timeout: float = 0,
        clock: Callable[[], float] = time.time,
    ):
        self.staging_dir = staging_dir
        self.idle_timeout = idle_timeout
        self.clock = clock
        self._sessions: Dict[str, PendingEdit] = {}
        self._lock = threading.Lock()

    def __contains__(self, path: str) -> bool:
        with self._lock:
            return path in self._sessions

    def __len__(self) -> int:
        with self._lock:
            return len(self._sessions)

    def get(self, path: str) -> Optional[PendingEdit]:
        with self._lock:
            return self._sessions.get(path)

    def staging_path_for(self, path: str) -> str:
        return os.path.join(
            self.staging_dir, sanitize_path_for_filename(path) + ".temp"
        )

    def start(self, path: str, content: str, original_content: bytes) -> PendingEdit:
        """
        Opens a session whose staged body is `content`.

        `original_content` is the raw live file as it was when the write began;
        commit backs it up unchanged, whatever its encoding.
        """
        staging_path = self.staging_path_for(path)
        try:
            os.makedirs(self.staging_dir, exist_ok=True)
            with open(staging_path, "w", encoding="utf-8", newline="") as f:
                f.write(content)
        except OSError as e:
            raise StorageError(f"Could not create staging file: {e}") from e

        now = self.clock()
        session = PendingEdit(
            path=path,
            staging_path=staging_path,
            original_content=original_content,
            position=len(content),
            started_at=now,
            last_activity=now,
        )
        with self._lock:
            self._sessions[path] = session
        log.info(f"Started staged write for {path} ({len(content)} chars)")
        return session

    def append(self, session: PendingEdit, content: str) -> PendingEdit:
        try:
            with open(session.staging_path, "a", encoding="utf-8", newline="") as f:
                f.write(content)
        except OSError as e:
            raise StorageError(f"Could not append to staging file: {e}") from e
        session.position += len(content)
        session.last_activity = self.clock()
        log.debug(f"Appended {len(content)} chars to {session.path}, now at {session.position}")
        return session

    def staged_content(self, session: PendingEdit) -> str:
        return read_text(session.staging_path)

    def tail(self, session: PendingEdit, lines: int) -> str:
        """Last `lines` lines of the staged content."""
        return "\n".join(self.staged_content(session).split("\n")[-lines:])

    def discard(self, path: str) -> Optional[PendingEdit]:
        """Removes the session for path and deletes its staging file."""
        with self._lock:
            session = self._sessions.pop(path, None)
        if session is None:
            return None
        try:
            os.remove(session.staging_path)
        except FileNotFoundError:
            pass
        except OSError as e:
            log.warning(f"Could not remove staging file {session.staging_path}: {e}")
        return session

    def sweep_expired(self) -> List[str]:
        """Discards sessions idle for longer than the idle timeout."""
        if not self.idle_timeout or self.idle_timeout <= 0:
            return []
        cutoff = self.clock() - self.idle_timeout
        with self._lock:
            expired = [
                p for p, s in self._sessions.items() if s.last_activity < cutoff
            ]
        for path in expired:
            self.discard(path)
            log.warning(f"Discarded idle staged write for {path}")
        return expired
