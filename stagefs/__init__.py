"""StageFS: staged, versioned file editing over MCP."""

__version__ = "0.1.0"
