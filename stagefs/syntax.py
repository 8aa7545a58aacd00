# syntax.py

import os
import sys
import subprocess
from typing import Any, Dict, List

from .errors import StorageError, UnsupportedLanguageError
from .utils import log

SYNTAX_CHECK_TIMEOUT = 30  # seconds


def checker_command(language: str, file_path: str) -> List[str]:
    language = language.lower()
    if language == "python":
        return [sys.executable, "-m", "py_compile", file_path]
    if language == "javascript":
        return ["node", "--check", file_path]
    raise UnsupportedLanguageError(
        "Unsupported language for syntax validation. Supported languages are: python, javascript."
    )


def check_syntax(content: str, language: str, scratch_dir: str, extension: str) -> Dict[str, Any]:
    """
    Runs an external syntax checker over content.

    The content is written to a scratch file in scratch_dir, which is removed
    again whatever the outcome.
    """
    scratch_file = os.path.join(scratch_dir, f"syntax_check{extension}")
    command = checker_command(language, scratch_file)
    try:
        os.makedirs(scratch_dir, exist_ok=True)
        with open(scratch_file, "w", encoding="utf-8", newline="") as f:
            f.write(content)
    except OSError as e:
        raise StorageError(f"Could not write syntax check file: {e}") from e

    try:
        process = subprocess.run(
            command,
            capture_output=True,
            text=True,
            check=False,
            timeout=SYNTAX_CHECK_TIMEOUT,
        )
    except FileNotFoundError:
        log.error(f"Syntax checker not found: {command[0]}")
        return {
            "status": "invalid",
            "message": f"Syntax checker '{command[0]}' is not installed.",
            "errors": None,
        }
    except subprocess.TimeoutExpired:
        log.error(f"Syntax check timed out for {language}")
        return {
            "status": "invalid",
            "message": "Syntax check timed out.",
            "errors": None,
        }
    finally:
        try:
            os.remove(scratch_file)
        except OSError as e:
            log.warning(f"Could not remove syntax check file {scratch_file}: {e}")

    if process.returncode == 0:
        return {"status": "valid", "message": "Syntax is valid."}
    return {
        "status": "invalid",
        "message": "Syntax errors found.",
        "errors": process.stderr or process.stdout,
    }
