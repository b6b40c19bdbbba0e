"""Output formatting utilities for CLI and MCP."""

from __future__ import annotations

import json
from typing import Any, Callable, Optional

import yaml

OUTPUT_FORMATS = ("json", "yaml", "text")


def format_error(output_format: Optional[str], allowed: tuple = OUTPUT_FORMATS) -> Optional[dict]:
    """Error dict for a format outside ``allowed``, else None."""
    if (output_format or "json").lower() in allowed:
        return None
    return {
        "error": "invalid_format",
        "message": f"Unknown format \"{output_format}\". Expected one of: {', '.join(allowed)}",
    }


def format_response(
    payload: Any,
    output_format: str = "json",
    text_renderer: Optional[Callable[[Any], str]] = None,
) -> dict:
    """Normalize response with format metadata and content.

    Args:
        payload: Data to serialize.
        output_format: "json", "yaml", or "text".
        text_renderer: Optional renderer for text output.
    """
    output_format = (output_format or "json").lower()

    if output_format == "yaml":
        content = yaml.safe_dump(payload, default_flow_style=False, sort_keys=False, allow_unicode=True)
        return {"format": "yaml", "content": content}
    if output_format == "text":
        content = text_renderer(payload) if text_renderer else json.dumps(payload, indent=2, default=str)
        return {"format": "text", "content": content}

    return {"format": "json", "content": payload}


def render_cli(response: dict) -> str:
    """Render a formatted response into a CLI string."""
    fmt = response.get("format")
    content = response.get("content")
    if fmt == "json":
        return json.dumps(content, indent=2, default=str)
    return str(content).rstrip("\n")
