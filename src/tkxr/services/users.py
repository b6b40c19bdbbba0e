"""Shared user operations for CLI and MCP."""

from __future__ import annotations

from typing import Optional

from ..models import User
from ..output.pagination import paginate
from ..store import Storage


def format_user(user: User) -> dict:
    return user.to_dict()


def list_users(storage: Storage, limit: Optional[int] = None, offset: int = 0) -> dict:
    users = sorted(storage.get_users(), key=lambda u: u.username.lower())
    page, pagination = paginate(users, limit, offset)
    return {"users": [format_user(u) for u in page], "pagination": pagination}


def create_user(storage: Storage, username: str, display_name: str, email: Optional[str] = None) -> dict:
    user = storage.create_user(username, display_name, email=email)
    return {"success": True, "user": format_user(user)}
