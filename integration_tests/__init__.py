"""Integration tests for the StageFS MCP server.

The tests drive the real storage code against temporary directories.
"""
