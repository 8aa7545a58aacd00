# errors.py

from typing import Optional


class StageFSError(Exception):
    """Base class for errors reported back to the caller as structured failures."""

    code = "StageFSError"


class InvalidPathError(StageFSError):
    """Path is malformed or outside every allowed directory."""

    code = "InvalidPath"

    def __init__(self, message: Optional[str] = None):
        super().__init__(
            message
            or "Invalid path. Please provide a valid path within the allowed directories."
        )


class PositionMismatchError(StageFSError):
    """A resumed stream-write declared a position too far from the recorded one."""

    code = "PositionMismatch"

    def __init__(self, expected: int, actual: int, tolerance: int):
        self.expected = expected
        self.actual = actual
        self.tolerance = tolerance
        super().__init__(
            f"Position mismatch. Expected position around {expected}, but got {actual}. "
            f"Acceptable difference is {tolerance} characters."
        )


class LineRangeOutOfBoundsError(StageFSError):
    code = "LineRangeOutOfBounds"


class NoPendingEditError(StageFSError):
    code = "NoPendingEdit"


class VersionNotFoundError(StageFSError):
    code = "VersionNotFound"


class MutationConflictError(StageFSError):
    """Another kind of mutation is already in flight for the same path."""

    code = "MutationConflict"


class UnsupportedLanguageError(StageFSError):
    code = "UnsupportedLanguage"


class StorageError(StageFSError):
    """Wraps OS-level failures while reading or writing files."""

    code = "UnderlyingIOFailure"
