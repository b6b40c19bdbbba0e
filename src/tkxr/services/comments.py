"""Shared comment operations for CLI and MCP."""

from __future__ import annotations

from typing import Iterable, Optional

from ..models import Comment, User
from ..store import Storage


def format_comment(comment: Comment, users: Optional[Iterable[User]] = None) -> dict:
    """Comment record plus the author's display name (the raw id if the user is gone)."""
    data = comment.to_dict()
    user = next((u for u in users or [] if u.id == comment.author), None)
    data["authorName"] = (user.display_name or user.username) if user else comment.author
    return data


def list_comments(storage: Storage, ticket_id: str) -> dict:
    if not storage.find_ticket(ticket_id):
        return {"error": "not_found", "message": f"Ticket '{ticket_id}' not found"}
    users = storage.get_users()
    comments = storage.get_comments(ticket_id)
    return {
        "ticket_id": ticket_id,
        "comments": [format_comment(c, users) for c in comments],
        "count": len(comments),
    }


def add_comment(storage: Storage, ticket_id: str, author: str, content: str) -> dict:
    """Add a comment; ``author`` may be a user id or a username."""
    if not storage.find_ticket(ticket_id):
        return {"error": "not_found", "message": f"Ticket '{ticket_id}' not found"}
    user = storage.resolve_user(author)
    if not user:
        return {"error": "not_found", "message": f"User '{author}' not found"}

    comment = storage.create_comment(ticket_id, user.id, content)
    return {"success": True, "comment": format_comment(comment, [user])}
