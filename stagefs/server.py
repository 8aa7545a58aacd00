import sys
import json
from typing import Any, Dict, Optional

from mcp.server.fastmcp import FastMCP

from .errors import StageFSError
from .config import ConfigError, ServerConfig, config_from_args
from .orchestrator import (
    CommitRequest,
    HistoryRequest,
    InfoRequest,
    ListRequest,
    MutationOrchestrator,
    PatchRequest,
    ReadRequest,
    Request,
    RestoreRequest,
    SearchContentRequest,
    SearchRequest,
    StreamWriteRequest,
    ValidateSyntaxRequest,
    error_response,
)
from .utils import log, setup_logging


MCP_INSTRUCTIONS = """
File editing server with staged writes and automatic versioning.

- Every path must lie inside one of the allowed directories.
- Large files are written with `stream_write` in chunks. Pass `is_complete`
  on the last chunk, then call `commit` to make the content live.
- If `stream_write` answers with status `interrupted`, a previous write for
  that file is still pending. Resume it with `is_resume` and the reported
  `position`, or `commit` it first.
- `patch_file`, `commit` and `restore_version` back up the previous content
  before changing anything. Use `file_history` to list versions and
  `restore_version` to roll back.
- Every tool answers with a JSON object. Failures carry `"status": "error"`,
  an `error` code and a human readable `message`.
"""

mcp = FastMCP("stagefs", instructions=MCP_INSTRUCTIONS)

_orchestrator: Optional[MutationOrchestrator] = None


def configure(config: ServerConfig, **kwargs) -> MutationOrchestrator:
    """Prepares backup and staging storage and installs the orchestrator used by the tools."""
    global _orchestrator
    _orchestrator = MutationOrchestrator.startup(config, **kwargs)
    log.info(
        f"Serving {len(config.allowed_directories)} allowed directories; "
        f"backups in {config.backup_dir}, staging in {config.staging_dir}"
    )
    return _orchestrator


def _run(request: Request) -> str:
    if _orchestrator is None:
        result: Dict[str, Any] = error_response(
            "InternalError", "Server is not configured with any allowed directories."
        )
    else:
        result = _orchestrator.execute(request)
    return json.dumps(result, indent=2)


@mcp.tool()
def list_directory(path: str) -> str:
    """List the files and subdirectories of a directory, directories first."""
    return _run(ListRequest(path=path))


@mcp.tool()
def read_file(path: str) -> str:
    """
    Read a file with line numbers, its version history and whether a streamed
    write is pending for it. While a write is pending, the staged content is
    returned instead of the live file.
    """
    return _run(ReadRequest(path=path))


@mcp.tool()
def stream_write(
    path: str,
    content: str,
    is_complete: bool = False,
    is_resume: bool = False,
    position: int = 0,
) -> str:
    """
    Write a file in chunks without touching the live file until `commit`.

    Args:
        path: File to write. It does not need to exist yet.
        content: The chunk to write. The first call starts a fresh draft.
        is_complete: True on the last chunk.
        is_resume: True to append to a pending draft.
        position: The draft length you expect when resuming, as reported by the
            previous call. It must be within 5 characters of the real length.

    Returns:
        JSON with status `in_progress`, `ready_to_commit` or `interrupted`.
    """
    return _run(
        StreamWriteRequest(
            path=path,
            content=content,
            is_complete=is_complete,
            is_resume=is_resume,
            position=position,
        )
    )


@mcp.tool()
def patch_file(path: str, start_line: int, end_line: int, new_code: str) -> str:
    """
    Replace an inclusive, 1-based range of lines with new code.

    Args:
        path: File to patch.
        start_line: First line to replace (1-based).
        end_line: Last line to replace (1-based, inclusive).
        new_code: Replacement text; it may span any number of lines.

    Returns:
        JSON with the backup taken before patching.
    """
    return _run(
        PatchRequest(
            path=path, start_line=start_line, end_line=end_line, new_code=new_code
        )
    )


@mcp.tool()
def commit(path: str) -> str:
    """Make a streamed write live, backing up the content it replaces."""
    return _run(CommitRequest(path=path))


@mcp.tool()
def file_history(path: str) -> str:
    """List the stored versions of a file, newest first."""
    return _run(HistoryRequest(path=path))


@mcp.tool()
def restore_version(path: str, version: str) -> str:
    """
    Restore a previous version of a file. The current content is backed up
    first, so a restore can itself be undone.

    Args:
        path: File to restore.
        version: A version identifier from `file_history`.
    """
    return _run(RestoreRequest(path=path, version=version))


@mcp.tool()
def search_files(pattern: str, recursive: bool = True) -> str:
    """Find files matching a glob pattern (e.g. '*.py') in all allowed directories."""
    return _run(SearchRequest(pattern=pattern, recursive=recursive))


@mcp.tool()
def search_content(pattern: str, search_string: str, recursive: bool = True) -> str:
    """Find files matching a glob pattern whose content contains search_string."""
    return _run(
        SearchContentRequest(
            pattern=pattern, search_string=search_string, recursive=recursive
        )
    )


@mcp.tool()
def validate_syntax(path: str, language: str) -> str:
    """Check a file's syntax ('python' or 'javascript'), including any pending draft."""
    return _run(ValidateSyntaxRequest(path=path, language=language))


@mcp.tool()
def server_info() -> str:
    """Describe the allowed directories and the available tools."""
    return _run(InfoRequest())


def main(argv=None) -> None:
    try:
        config = config_from_args(argv)
    except ConfigError as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)

    setup_logging(config.verbose)
    try:
        configure(config)
    except (OSError, StageFSError) as e:
        log.critical(f"Failed to prepare storage: {e}")
        sys.exit(1)

    print("StageFS MCP server running", file=sys.stderr)
    mcp.run()


if __name__ == "__main__":
    main()
