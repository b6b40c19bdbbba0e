"""Shared output formatting for CLI and MCP."""

from .format import OUTPUT_FORMATS, format_error, format_response, render_cli
from .pagination import build_pagination, paginate

__all__ = ["OUTPUT_FORMATS", "format_error", "format_response", "render_cli", "build_pagination", "paginate"]
