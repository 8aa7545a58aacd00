# orchestrator.py

import os
import time
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Any, Callable, Dict, Iterator, Optional, Union, assert_never

from .config import INTERRUPTED_TAIL_LINES, ServerConfig
from .errors import (
    MutationConflictError,
    NoPendingEditError,
    PositionMismatchError,
    StageFSError,
    StorageError,
)
from .patching import patch_file
from .sandbox import PathSandbox
from .search import find_files, find_files_containing, list_entries
from .sessions import SessionRegistry, initialize_staging
from .syntax import check_syntax
from .utils import (
    log,
    acquire_lock,
    atomic_write_text,
    read_text,
    read_bytes_or_empty,
    release_lock,
    sanitize_path_for_filename,
)
from .versions import VersionStore, history_summary, version_dicts


# --- Requests ---
@dataclass(frozen=True)
class ListRequest:
    path: str


@dataclass(frozen=True)
class ReadRequest:
    path: str


@dataclass(frozen=True)
class StreamWriteRequest:
    path: str
    content: str
    is_complete: bool = False
    is_resume: bool = False
    position: int = 0


@dataclass(frozen=True)
class PatchRequest:
    path: str
    start_line: int
    end_line: int
    new_code: str


@dataclass(frozen=True)
class CommitRequest:
    path: str


@dataclass(frozen=True)
class HistoryRequest:
    path: str


@dataclass(frozen=True)
class RestoreRequest:
    path: str
    version: str


@dataclass(frozen=True)
class SearchRequest:
    pattern: str
    recursive: bool = True


@dataclass(frozen=True)
class SearchContentRequest:
    pattern: str
    search_string: str
    recursive: bool = True


@dataclass(frozen=True)
class ValidateSyntaxRequest:
    path: str
    language: str


@dataclass(frozen=True)
class InfoRequest:
    pass


Request = Union[
    ListRequest,
    ReadRequest,
    StreamWriteRequest,
    PatchRequest,
    CommitRequest,
    HistoryRequest,
    RestoreRequest,
    SearchRequest,
    SearchContentRequest,
    ValidateSyntaxRequest,
    InfoRequest,
]

CAPABILITIES = {
    "list_directory": "List files in a directory",
    "read_file": "Read file content with line numbers and version history",
    "stream_write": "Stream content to a file in chunks with resume capability",
    "patch_file": "Replace code between specified line numbers",
    "commit": "Commit a streamed write and make it the live file",
    "file_history": "View version history of a file",
    "restore_version": "Restore a previous version of a file",
    "search_files": "Search for files in allowed directories",
    "search_content": "Search for files containing a string",
    "validate_syntax": "Validate the syntax of code in a file",
}


def error_response(code: str, message: str) -> Dict[str, Any]:
    return {"status": "error", "error": code, "message": message}


class MutationOrchestrator:
    """
    Command surface over the sandbox, version store and staged sessions.

    Every request is validated against the sandbox first. Mutations of a path
    run under that path's file lock, and domain errors come back as
    structured failure responses instead of exceptions.
    """

    def __init__(
        self,
        config: ServerConfig,
        clock: Callable[[], float] = time.time,
        clock_ms: Optional[Callable[[], int]] = None,
    ):
        self.config = config
        self.sandbox = PathSandbox(config.allowed_directories)
        if clock_ms is None:
            self.versions = VersionStore(self.sandbox, config.backup_dir)
        else:
            self.versions = VersionStore(self.sandbox, config.backup_dir, clock_ms)
        self.sessions = SessionRegistry(
            config.staging_dir, idle_timeout=config.session_timeout, clock=clock
        )

    @classmethod
    def startup(cls, config: ServerConfig, **kwargs) -> "MutationOrchestrator":
        """Resets the staging area and builds an orchestrator over it."""
        initialize_staging(config.staging_dir)
        os.makedirs(config.backup_dir, exist_ok=True)
        return cls(config, **kwargs)

    # --- Command boundary ---
    def execute(self, request: Request) -> Dict[str, Any]:
        self.sessions.sweep_expired()
        try:
            return self._dispatch(request)
        except StageFSError as e:
            log.warning(f"{type(request).__name__} failed: {e.code}: {e}")
            return error_response(e.code, str(e))
        except (OSError, UnicodeDecodeError) as e:
            log.error(f"{type(request).__name__} failed with I/O error: {e}")
            return error_response(StorageError.code, str(e))
        except Exception as e:
            log.exception(f"Unexpected error handling {type(request).__name__}: {e}")
            return error_response("InternalError", f"Unexpected error: {e}")

    def _dispatch(self, request: Request) -> Dict[str, Any]:
        match request:
            case ListRequest(path=path):
                return self.list_directory(path)
            case ReadRequest(path=path):
                return self.read(path)
            case StreamWriteRequest():
                return self.stream_write(request)
            case PatchRequest(path=path, start_line=start, end_line=end, new_code=code):
                return self.patch(path, start, end, code)
            case CommitRequest(path=path):
                return self.commit(path)
            case HistoryRequest(path=path):
                return self.history(path)
            case RestoreRequest(path=path, version=version):
                return self.restore(path, version)
            case SearchRequest(pattern=pattern, recursive=recursive):
                matches = find_files(self.sandbox, pattern, recursive)
                return {"pattern": pattern, "matches": matches, "count": len(matches)}
            case SearchContentRequest(
                pattern=pattern, search_string=needle, recursive=recursive
            ):
                matches = find_files_containing(self.sandbox, pattern, needle, recursive)
                return {"search_string": needle, "matches": matches, "count": len(matches)}
            case ValidateSyntaxRequest(path=path, language=language):
                return self.validate_syntax(path, language)
            case InfoRequest():
                return self.info()
            case _:
                assert_never(request)

    @contextmanager
    def _path_lock(self, path: str) -> Iterator[None]:
        lock = acquire_lock(
            os.path.join(self.config.locks_dir, sanitize_path_for_filename(path)),
            self.config.lock_timeout,
        )
        try:
            yield
        finally:
            release_lock(lock)

    # --- Read-only operations ---
    def list_directory(self, request_path: str) -> Dict[str, Any]:
        path = self.sandbox.validate(request_path)
        try:
            files = list_entries(path, request_path)
        except OSError as e:
            raise StorageError(f"Could not list '{request_path}': {e.strerror or e}") from e
        return {"files": files}

    def read(self, request_path: str) -> Dict[str, Any]:
        path = self.sandbox.validate(request_path)
        session = self.sessions.get(path)
        if session is not None:
            content = self.sessions.staged_content(session)
        else:
            content = read_text(path)
        return {
            "content": [
                {"line_number": i, "code": line}
                for i, line in enumerate(content.split("\n"), 1)
            ],
            "versions": version_dicts(self.versions.history_for(path)),
            "is_pending_changes": session is not None,
        }

    def history(self, request_path: str) -> Dict[str, Any]:
        path = self.sandbox.validate(request_path)
        versions = self.versions.history_for(path)
        return {
            "current": path,
            "history": {
                "versions": version_dicts(versions),
                "stats": history_summary(versions),
                "actions": {
                    "restore": "Use 'restore_version' with 'path' and 'version' to restore a previous version.",
                },
            },
        }

    def validate_syntax(self, request_path: str, language: str) -> Dict[str, Any]:
        path = self.sandbox.validate(request_path)
        session = self.sessions.get(path)
        if session is not None:
            content = self.sessions.staged_content(session)
        else:
            content = read_text(path)
        return check_syntax(
            content, language, self.config.staging_dir, os.path.splitext(path)[1]
        )

    def info(self) -> Dict[str, Any]:
        directories = []
        for root in self.sandbox.allowed_directories:
            directories.append(
                {
                    "path": root,
                    "description": self.config.descriptions.get(root),
                    "exists": os.path.exists(root),
                    "is_directory": os.path.isdir(root),
                }
            )
        return {
            "allowed_directories": directories,
            "capabilities": CAPABILITIES,
            "pending_edits": len(self.sessions),
        }

    # --- Mutations ---
    def stream_write(self, request: StreamWriteRequest) -> Dict[str, Any]:
        path = self.sandbox.validate(request.path)
        with self._path_lock(path):
            session = self.sessions.get(path)

            if session is not None and not request.is_resume:
                return {
                    "status": "interrupted",
                    "message": "Previous write was interrupted. Do you want to resume from the last point?",
                    "last_lines": self.sessions.tail(session, INTERRUPTED_TAIL_LINES),
                    "position": session.position,
                    "suggested_action": "Provide 'is_resume': true and 'position' to continue.",
                }

            if request.is_resume:
                if session is None:
                    raise NoPendingEditError(
                        "No interrupted write to resume for this file. Start a new write without 'is_resume'."
                    )
                tolerance = self.config.position_tolerance
                if abs(request.position - session.position) > tolerance:
                    raise PositionMismatchError(
                        session.position, request.position, tolerance
                    )
                self.sessions.append(session, request.content)
            else:
                if os.path.isdir(path):
                    raise StorageError(f"'{request.path}' is a directory.")
                session = self.sessions.start(
                    path, request.content, read_bytes_or_empty(path)
                )

            if request.is_complete:
                return {
                    "status": "ready_to_commit",
                    "message": "Content complete, ready for commit",
                    "position": session.position,
                }
            return {
                "status": "in_progress",
                "message": "Content streamed successfully",
                "position": session.position,
            }

    def patch(
        self, request_path: str, start_line: int, end_line: int, new_code: str
    ) -> Dict[str, Any]:
        path = self.sandbox.validate(request_path)
        with self._path_lock(path):
            if path in self.sessions:
                raise MutationConflictError(
                    "A streamed write is pending for this file. Commit it before patching."
                )
            result = patch_file(self.versions, path, start_line, end_line, new_code)
        return {
            "status": "success",
            "message": f"Code replaced successfully from line {start_line} to {end_line}.",
            "backup": os.path.basename(result.backup.storage_location),
            "version": result.backup.version_id,
            "start_line": result.start_line,
            "end_line": result.end_line,
            "total_lines": result.lines_after,
        }

    def commit(self, request_path: str) -> Dict[str, Any]:
        path = self.sandbox.validate(request_path)
        with self._path_lock(path):
            session = self.sessions.get(path)
            if session is None:
                raise NoPendingEditError("No pending changes to commit for this file.")

            backup = self.versions.write_backup(path, session.original_content)
            staged = self.sessions.staged_content(session)
            atomic_write_text(path, staged)
            self.sessions.discard(path)
        log.info(f"Committed staged write for {path} ({len(staged)} chars)")
        return {
            "status": "committed",
            "message": "Changes committed successfully.",
            "backup": os.path.basename(backup.storage_location),
            "version": backup.version_id,
        }

    def restore(self, request_path: str, version: str) -> Dict[str, Any]:
        path = self.sandbox.validate(request_path)
        with self._path_lock(path):
            if path in self.sessions:
                raise MutationConflictError(
                    "A streamed write is pending for this file. Commit it before restoring."
                )
            restored, pre_restore = self.versions.restore(path, version)
        return {
            "status": "restored",
            "message": "File restored successfully.",
            "restored_from": restored.version_id,
            "current_version_backed_up": os.path.basename(pre_restore.storage_location),
            "version": pre_restore.version_id,
        }
