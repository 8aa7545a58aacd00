# sandbox.py

import os
from typing import List, Optional

from .errors import InvalidPathError
from .utils import log, normalize_path, expand_home, resolve_directory


def is_within(path: str, root: str) -> bool:
    """True if path equals root or is nested under it, by path segments."""
    relative = os.path.relpath(path, root)
    if os.path.isabs(relative):
        return False
    return relative != ".." and not relative.startswith(".." + os.sep)


class PathSandbox:
    """Validates caller-supplied paths against the configured allowed roots."""

    def __init__(self, allowed_directories: List[str]):
        self.allowed_directories = [resolve_directory(d) for d in allowed_directories]

    def root_for(self, path: str) -> Optional[str]:
        for root in self.allowed_directories:
            try:
                if is_within(path, root):
                    return root
            except ValueError:
                # Different drives on Windows
                continue
        return None

    def validate(self, requested_path: str) -> str:
        """
        Validate that a path is within allowed directories.

        Args:
            requested_path: The caller-supplied path.

        Returns:
            The normalized, absolute, symlink-resolved path.

        Raises:
            InvalidPathError: If the path is empty, malformed or outside every root.
        """
        if not requested_path or "\x00" in requested_path:
            raise InvalidPathError()

        absolute_path = normalize_path(os.path.abspath(expand_home(requested_path)))
        if self.root_for(absolute_path) is None:
            log.warning(f"Access denied for path '{requested_path}'")
            raise InvalidPathError()

        try:
            # realpath resolves symlinks in the existing prefix, even for new files
            real_path = normalize_path(os.path.realpath(absolute_path))
        except (OSError, ValueError) as e:
            log.warning(f"Could not resolve real path for '{requested_path}': {e}")
            raise InvalidPathError()

        if self.root_for(real_path) is None:
            log.warning(
                f"Access denied for '{requested_path}': symlink target outside allowed directories"
            )
            raise InvalidPathError()

        log.debug(f"Validated '{requested_path}' as '{real_path}'")
        return real_path

    def relative_to_root(self, path: str) -> Optional[str]:
        """Relative path of a validated path under its allowed root."""
        root = self.root_for(path)
        if root is None:
            return None
        return os.path.relpath(path, root)
