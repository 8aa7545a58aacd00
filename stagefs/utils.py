# utils.py

import os
import re
import hashlib
import logging
from pathlib import Path
from typing import Optional

import filelock

from .errors import StorageError

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

log = logging.getLogger("stagefs")


def setup_logging(verbose: bool = False) -> None:
    """Configures root logging on stderr; stdout belongs to the MCP transport."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO, format=LOG_FORMAT
    )
    log.setLevel(logging.DEBUG if verbose else logging.INFO)
    if not verbose:
        # Keep libraries quieter
        logging.getLogger("mcp").setLevel(logging.WARNING)
        logging.getLogger("filelock").setLevel(logging.WARNING)


# --- Path Normalization and Expansion ---
def normalize_path(p: str) -> str:
    """Normalizes a path string."""
    return os.path.normpath(p)


def expand_home(filepath: str) -> str:
    """Expands ~ and ~user constructs in a path."""
    if filepath.startswith("~/") or filepath == "~":
        return os.path.join(
            os.path.expanduser("~"), filepath[2:] if filepath.startswith("~/") else ""
        )
    elif filepath.startswith("~") and "/" not in filepath[1:]:
        try:
            return os.path.expanduser(filepath)
        except KeyError:
            log.warning(f"Could not expand user for path: {filepath}")
            return filepath
    return filepath


def resolve_directory(d: str) -> str:
    """Absolute, normalized, symlink-resolved form of a configured directory."""
    return normalize_path(os.path.realpath(os.path.abspath(expand_home(d))))


def sanitize_path_for_filename(abs_path: str) -> str:
    """Creates a safe, collision-free filename from an absolute path."""
    base = re.sub(r"[^\w\-\.]", "_", os.path.basename(abs_path))[:100]
    digest = hashlib.sha1(abs_path.encode("utf-8")).hexdigest()[:12]
    return f"{base}_{digest}"


# --- File Access ---
def read_text(path: str) -> str:
    """Reads a UTF-8 file without newline translation."""
    try:
        with open(path, "r", encoding="utf-8", newline="") as f:
            return f.read()
    except (OSError, UnicodeDecodeError) as e:
        log.error(f"Error reading {path}: {e}")
        raise StorageError(f"Could not read {os.path.basename(path)}: {e}") from e


def read_text_or_empty(path: str) -> str:
    if not os.path.exists(path):
        return ""
    return read_text(path)


def read_bytes_or_empty(path: str) -> bytes:
    """Raw content of a file, or empty bytes when it does not exist."""
    if not os.path.exists(path):
        return b""
    try:
        with open(path, "rb") as f:
            return f.read()
    except OSError as e:
        log.error(f"Error reading {path}: {e}")
        raise StorageError(f"Could not read {os.path.basename(path)}: {e}") from e


def write_durable(path: str, data: bytes) -> None:
    """Writes bytes and fsyncs them before returning."""
    try:
        with open(path, "wb") as f:
            f.write(data)
            f.flush()
            os.fsync(f.fileno())
    except OSError as e:
        log.error(f"Error writing {path}: {e}")
        raise StorageError(f"Could not write {os.path.basename(path)}: {e}") from e


def atomic_write(path: str, data: bytes) -> None:
    """Replaces a file's content atomically via a temp file and os.replace."""
    target = Path(path)
    temp_path = target.with_name(f".{target.name}.stagefs.tmp")
    try:
        target.parent.mkdir(parents=True, exist_ok=True)
        with open(temp_path, "wb") as f:
            f.write(data)
            f.flush()
            os.fsync(f.fileno())
        os.replace(temp_path, target)
    except OSError as e:
        log.error(f"Error writing {target}: {e}")
        if temp_path.exists():
            os.remove(temp_path)
        raise StorageError(f"Could not write {target.name}: {e}") from e


def atomic_write_text(path: str, content: str) -> None:
    atomic_write(path, content.encode("utf-8"))


# --- Locking ---
def acquire_lock(lock_path: str, timeout: float) -> filelock.FileLock:
    """Acquires a file lock, creating parent directory if needed."""
    lock_file = Path(f"{lock_path}.lock")
    try:
        lock_file.parent.mkdir(parents=True, exist_ok=True)
    except OSError as e:
        log.error(f"Could not create directory for lock file {lock_file}: {e}")
        raise StorageError(f"Failed to create directory for lock {lock_path}") from e

    lock = filelock.FileLock(str(lock_file), timeout=timeout)
    try:
        lock.acquire()
        log.debug(f"Acquired lock: {lock_file}")
        return lock
    except filelock.Timeout:
        log.error(f"Timeout acquiring lock: {lock_file}")
        raise StorageError(
            "Another operation is modifying this file. Try again shortly."
        )


def release_lock(lock: Optional[filelock.FileLock]) -> None:
    """Releases a file lock if it's held and removes the lock file."""
    if lock and lock.is_locked:
        lock_path = lock.lock_file
        try:
            lock.release()
            log.debug(f"Released lock object for: {lock_path}")
            try:
                if os.path.exists(lock_path):
                    os.remove(lock_path)
            except OSError as e:
                log.warning(f"Could not remove lock file {lock_path}: {e}")
        except Exception as e:
            log.error(f"Error releasing lock object for {lock_path}: {e}")
