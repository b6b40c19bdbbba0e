"""tkxr - In-repo ticket management with CLI and MCP server."""

__version__ = "0.1.0"
