# search.py

import os
from pathlib import Path
from typing import List

from .errors import InvalidPathError
from .sandbox import PathSandbox
from .utils import log


def _is_hidden(path: Path, root: Path) -> bool:
    return any(part.startswith(".") for part in path.relative_to(root).parts)


def find_files(sandbox: PathSandbox, pattern: str, recursive: bool = True) -> List[str]:
    """Files matching a glob pattern in every allowed directory."""
    results = []
    for root in sandbox.allowed_directories:
        root_path = Path(root)
        if recursive and "**" not in pattern:
            candidates = root_path.rglob(pattern)
        else:
            candidates = root_path.glob(pattern)
        try:
            for candidate in candidates:
                if not candidate.is_file() or _is_hidden(candidate, root_path):
                    continue
                try:
                    validated = sandbox.validate(str(candidate))
                except InvalidPathError:
                    continue
                if validated not in results:
                    results.append(validated)
        except (OSError, ValueError) as e:
            log.error(f"Search error in {root}: {e}")
    return results


def find_files_containing(
    sandbox: PathSandbox, pattern: str, search_string: str, recursive: bool = True
) -> List[str]:
    results = []
    for path in find_files(sandbox, pattern, recursive):
        try:
            with open(path, "r", encoding="utf-8") as f:
                if search_string in f.read():
                    results.append(path)
        except (OSError, UnicodeDecodeError) as e:
            log.debug(f"Skipping unreadable file {path}: {e}")
    return results


def list_entries(path: str, request_path: str) -> List[dict]:
    """Directory entries as name/type/path records, directories first."""
    entries = []
    with os.scandir(path) as it:
        for entry in it:
            entries.append(
                {
                    "name": entry.name,
                    "type": "directory" if entry.is_dir() else "file",
                    "path": os.path.join(request_path, entry.name),
                }
            )
    entries.sort(key=lambda e: (e["type"] != "directory", e["name"]))
    return entries
