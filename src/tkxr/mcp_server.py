"""MCP Server for tkxr - in-repo ticket management.

Exposes the ticket store of the repository the assistant is working in:
tickets, users, sprints, comments and completed-sprint archives.

Every tool takes an optional ``path`` (directory to resolve the store
from, default cwd) and ``format`` ("json" or "yaml").
"""

import logging
from pathlib import Path
from typing import Callable, Optional

from mcp.server.fastmcp import FastMCP

from . import services
from .config import resolve_context
from .errors import TkxrError
from .logging import setup_logging
from .output import format_error, format_response
from .store import FileStorage

logger = logging.getLogger(__name__)

MCP_FORMATS = ("json", "yaml")
CLEARABLE_FIELDS = ("description", "assignee", "sprint", "priority", "estimate", "labels")

mcp = FastMCP(
    "tkxr",
    instructions="""tkxr - In-repo ticket management

Tickets (tasks and bugs), sprints, users and comments are stored as files
inside the repository under `tkxr/`, so they are versioned with the code.

## Quick Reference

| Goal | Tool |
|------|------|
| What is open? | `list_tickets(status="todo")` |
| Ticket details + comments | `get_ticket(ticket_id)` |
| New work item | `create_ticket(type, title, ...)` |
| Start / finish work | `update_ticket_status(ticket_id, "progress" / "done")` |
| Discuss | `add_comment(ticket_id, author, content)` |
| Close a sprint | `update_sprint_status(sprint_id, "completed")` |

Statuses: tickets `todo` → `progress` → `done`; sprints `planning` → `active` → `completed`.
Completing a sprint moves its tickets and their comments into an archive
(`get_archive(sprint_id)`); they no longer show up in `list_tickets`.

Assignees and comment authors may be given as user id or username.
""",
)


def _get_storage(path: Optional[str] = None) -> FileStorage:
    """Get the store for a path (explicit path or the server's cwd)."""
    context = resolve_context(Path(path) if path else None)
    if context.data_dir.exists():
        setup_logging(context.data_dir)
    return context.create_storage()


def _run(path: Optional[str], format: str, operation: Callable[..., dict], *args, **kwargs) -> dict:
    """Run a service operation against the store and format its result.

    Unknown formats are rejected before the operation runs; tkxr errors,
    including failures to open the store, become error dicts.
    """
    error = format_error(format, MCP_FORMATS)
    if error:
        return format_response(error)
    try:
        result = operation(_get_storage(path), *args, **kwargs)
    except TkxrError as e:
        logger.debug("%s failed: %s", operation.__name__, e, extra={"tool": operation.__name__})
        result = {"error": e.kind, "message": str(e)}
    return format_response(result, format)


# ============================================================================
# Tickets
# ============================================================================


@mcp.tool()
def list_tickets(
    type: Optional[str] = None,
    status: Optional[str] = None,
    assignee: Optional[str] = None,
    sprint: Optional[str] = None,
    search: Optional[str] = None,
    sort_by: str = "updated",
    order: str = "desc",
    limit: int = 50,
    offset: int = 0,
    path: Optional[str] = None,
    format: str = "json",
) -> dict:
    """List tickets with optional filters.

    Args:
        type: "task" or "bug" (default: both)
        status: "todo", "progress" or "done"
        assignee: User id or username
        sprint: Sprint id
        search: Case-insensitive match on title, description and id
        sort_by: "title", "status", "priority", "created" or "updated"
        order: "asc" or "desc"
        limit: Max tickets to return (default 50)
        offset: Skip first N tickets

    Returns ticket summaries, pagination and counts by status.
    """
    return _run(
        path,
        format,
        services.list_tickets,
        ticket_type=type,
        status=status,
        assignee=assignee,
        sprint=sprint,
        search=search,
        sort_by=sort_by,
        order=order,
        limit=limit,
        offset=offset,
    )


@mcp.tool()
def get_ticket(ticket_id: str, path: Optional[str] = None, format: str = "json") -> dict:
    """Get full ticket details including comments."""
    return _run(path, format, services.get_ticket, ticket_id)


@mcp.tool()
def create_ticket(
    type: str,
    title: str,
    description: Optional[str] = None,
    assignee: Optional[str] = None,
    sprint: Optional[str] = None,
    priority: Optional[str] = None,
    estimate: Optional[float] = None,
    labels: Optional[list[str]] = None,
    path: Optional[str] = None,
    format: str = "json",
) -> dict:
    """Create a task or bug.

    Args:
        type: "task" or "bug"
        title: Ticket title
        description: Optional description
        assignee: User id or username
        sprint: Sprint id (active or archived)
        priority: "low", "medium", "high" or "critical"
        estimate: Non-negative story points or hours
        labels: List of labels
    """
    return _run(
        path,
        format,
        services.create_ticket,
        type,
        title,
        description=description,
        assignee=assignee,
        sprint=sprint,
        priority=priority,
        estimate=estimate,
        labels=labels,
    )


@mcp.tool()
def update_ticket_status(
    ticket_id: str,
    status: str,
    path: Optional[str] = None,
    format: str = "json",
) -> dict:
    """Set a ticket's status to "todo", "progress" or "done"."""
    return _run(path, format, services.update_ticket_status, ticket_id, status)


@mcp.tool()
def update_ticket(
    ticket_id: str,
    title: Optional[str] = None,
    description: Optional[str] = None,
    status: Optional[str] = None,
    assignee: Optional[str] = None,
    sprint: Optional[str] = None,
    priority: Optional[str] = None,
    estimate: Optional[float] = None,
    labels: Optional[list[str]] = None,
    clear: Optional[list[str]] = None,
    path: Optional[str] = None,
    format: str = "json",
) -> dict:
    """Update ticket fields. Only provided fields are changed; the type cannot change.

    Args:
        clear: Optional fields to unset: "description", "assignee", "sprint",
            "priority", "estimate" or "labels"
    """
    fields = {
        "title": title,
        "description": description,
        "status": status,
        "assignee": assignee,
        "sprint": sprint,
        "priority": priority,
        "estimate": estimate,
        "labels": labels,
    }
    changes = {k: v for k, v in fields.items() if v is not None}
    for name in clear or []:
        if name not in CLEARABLE_FIELDS:
            message = f"Cannot clear '{name}'. Clearable fields: {', '.join(CLEARABLE_FIELDS)}"
            return format_response({"error": "validation_error", "message": message}, format)
        if name in changes:
            message = f"'{name}' cannot be both set and cleared"
            return format_response({"error": "validation_error", "message": message}, format)
        changes[name] = None
    if not changes:
        return format_response({"error": "no_changes", "message": "No fields provided to update"}, format)
    return _run(path, format, services.update_ticket, ticket_id, changes)


@mcp.tool()
def delete_ticket(ticket_id: str, path: Optional[str] = None, format: str = "json") -> dict:
    """Delete a ticket and all of its comments."""
    return _run(path, format, services.delete_ticket, ticket_id)


# ============================================================================
# Users
# ============================================================================


@mcp.tool()
def list_users(path: Optional[str] = None, format: str = "json") -> dict:
    """List all users."""
    return _run(path, format, services.list_users)


@mcp.tool()
def create_user(
    username: str,
    display_name: str,
    email: Optional[str] = None,
    path: Optional[str] = None,
    format: str = "json",
) -> dict:
    """Create a user. Usernames are unique."""
    return _run(path, format, services.create_user, username, display_name, email=email)


# ============================================================================
# Sprints
# ============================================================================


@mcp.tool()
def list_sprints(
    status: Optional[str] = None,
    include_archived: bool = False,
    path: Optional[str] = None,
    format: str = "json",
) -> dict:
    """List sprints with their ticket counts.

    Args:
        status: "planning", "active" or "completed"
        include_archived: Also return ids of sprints that have an archive
    """
    return _run(path, format, services.list_sprints, status=status, include_archived=include_archived)


@mcp.tool()
def create_sprint(
    name: str,
    description: Optional[str] = None,
    goal: Optional[str] = None,
    start_date: Optional[str] = None,
    end_date: Optional[str] = None,
    path: Optional[str] = None,
    format: str = "json",
) -> dict:
    """Create a sprint in "planning" status. Dates are ISO-8601 (YYYY-MM-DD works)."""
    return _run(
        path,
        format,
        services.create_sprint,
        name,
        description=description,
        goal=goal,
        start_date=start_date,
        end_date=end_date,
    )


@mcp.tool()
def update_sprint_status(
    sprint_id: str,
    status: str,
    path: Optional[str] = None,
    format: str = "json",
) -> dict:
    """Set a sprint's status.

    Moving a sprint to "completed" archives its tickets and their comments;
    the result reports how many were archived.
    """
    return _run(path, format, services.update_sprint_status, sprint_id, status)


@mcp.tool()
def get_archive(sprint_id: str, path: Optional[str] = None, format: str = "json") -> dict:
    """Get the archived tickets and comments of a completed sprint."""
    return _run(path, format, services.get_archive, sprint_id)


# ============================================================================
# Comments
# ============================================================================


@mcp.tool()
def list_comments(ticket_id: str, path: Optional[str] = None, format: str = "json") -> dict:
    """List a ticket's comments, oldest first."""
    return _run(path, format, services.list_comments, ticket_id)


@mcp.tool()
def add_comment(
    ticket_id: str,
    author: str,
    content: str,
    path: Optional[str] = None,
    format: str = "json",
) -> dict:
    """Add a comment to a ticket. ``author`` is a user id or username."""
    return _run(path, format, services.add_comment, ticket_id, author, content)


def main():
    """Run the MCP server."""
    mcp.run(transport="stdio")


if __name__ == "__main__":
    main()
