"""Shared sprint operations for CLI and MCP."""

from __future__ import annotations

from datetime import datetime
from typing import Optional, Union

from ..models import Sprint
from ..output.pagination import paginate
from ..store import Storage
from .tickets import format_ticket_summary


def format_sprint(sprint: Sprint, ticket_count: Optional[int] = None) -> dict:
    data = sprint.to_dict()
    if ticket_count is not None:
        data["ticketCount"] = ticket_count
    return data


def list_sprints(
    storage: Storage,
    status: Optional[str] = None,
    include_archived: bool = False,
    limit: Optional[int] = None,
    offset: int = 0,
) -> dict:
    sprints = storage.get_sprints()
    if status:
        sprints = [s for s in sprints if s.status == status]

    counts: dict[str, int] = {}
    for ticket in storage.get_all_tickets():
        if ticket.sprint:
            counts[ticket.sprint] = counts.get(ticket.sprint, 0) + 1

    page, pagination = paginate(sprints, limit, offset)
    result = {
        "sprints": [format_sprint(s, counts.get(s.id, 0)) for s in page],
        "pagination": pagination,
    }
    if include_archived:
        result["archived"] = storage.get_archived_sprints()
    return result


def create_sprint(
    storage: Storage,
    name: str,
    description: Optional[str] = None,
    goal: Optional[str] = None,
    start_date: Optional[Union[datetime, str]] = None,
    end_date: Optional[Union[datetime, str]] = None,
) -> dict:
    sprint = storage.create_sprint(
        name,
        description=description,
        goal=goal,
        start_date=start_date,
        end_date=end_date,
    )
    return {"success": True, "sprint": format_sprint(sprint)}


def update_sprint_status(storage: Storage, sprint_id: str, status: str) -> dict:
    """Change sprint status, reporting what was archived when it completes."""
    before = storage.get_sprint(sprint_id)
    if not before:
        return {"error": "not_found", "message": f"Sprint '{sprint_id}' not found"}

    sprint = storage.update_sprint_status(sprint_id, status)
    if not sprint:
        return {"error": "not_found", "message": f"Sprint '{sprint_id}' not found"}

    result: dict = {"success": True, "sprint": format_sprint(sprint), "archived": None}
    if status == "completed" and before.status != "completed":
        archive = storage.get_archive(sprint_id)
        if archive:
            result["archived"] = {
                "tickets": len(archive.tickets),
                "comments": len(archive.comments),
                "archived_at": archive.to_dict()["archivedAt"],
            }
    return result


def get_archive(storage: Storage, sprint_id: str) -> dict:
    archive = storage.get_archive(sprint_id)
    if not archive:
        return {"error": "not_found", "message": f"No archive for sprint '{sprint_id}'"}
    return {
        "sprint": format_sprint(archive.sprint),
        "archivedAt": archive.to_dict()["archivedAt"],
        "tickets": [format_ticket_summary(t) for t in archive.tickets],
        "comments": [c.to_dict() for c in archive.comments],
    }
