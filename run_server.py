#!/usr/bin/env python3
"""
Compatibility script to run the StageFS MCP server.

This script allows the server to be started with `uv run run_server.py`
without installing the package first.
"""

import sys
from pathlib import Path

if __name__ == "__main__":
    # Get the directory containing this script
    script_dir = Path(__file__).parent.absolute()

    # Add the script directory to the Python path
    sys.path.insert(0, str(script_dir))

    # Arguments are expected to be directories to allow access to
    args = sys.argv[1:]
    if not args:
        print(
            "Usage: python run_server.py <allowed-directory> [additional-directories...] [options]"
        )
        sys.exit(1)

    from stagefs.server import main

    main(args)
