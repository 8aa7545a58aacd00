# patching.py

from dataclasses import dataclass

from .errors import LineRangeOutOfBoundsError
from .utils import log, atomic_write_text, read_text
from .versions import BackupVersion, VersionStore


@dataclass(frozen=True)
class PatchResult:
    backup: BackupVersion
    start_line: int
    end_line: int
    lines_before: int
    lines_after: int


def replace_line_range(content: str, start_line: int, end_line: int, new_code: str) -> str:
    """
    Replace an inclusive, 1-based line range of content with new_code.

    The replacement may have any number of lines. Raises
    LineRangeOutOfBoundsError when the range does not fit the content.
    """
    lines = content.split("\n")
    if start_line > end_line:
        raise LineRangeOutOfBoundsError(
            "start_line must be less than or equal to end_line."
        )
    if start_line < 1 or end_line > len(lines):
        raise LineRangeOutOfBoundsError(
            f"Line numbers out of range. The file has {len(lines)} lines; "
            f"got {start_line}-{end_line}."
        )
    lines[start_line - 1 : end_line] = new_code.split("\n")
    return "\n".join(lines)


def patch_file(
    store: VersionStore, path: str, start_line: int, end_line: int, new_code: str
) -> PatchResult:
    """Patch the live file at path, backing up its prior content first."""
    content = read_text(path)
    updated = replace_line_range(content, start_line, end_line, new_code)

    backup = store.write_backup(path, content)
    atomic_write_text(path, updated)

    result = PatchResult(
        backup=backup,
        start_line=start_line,
        end_line=end_line,
        lines_before=len(content.split("\n")),
        lines_after=len(updated.split("\n")),
    )
    log.info(
        f"Patched {path} lines {start_line}-{end_line} "
        f"({result.lines_before} -> {result.lines_after} lines)"
    )
    return result
