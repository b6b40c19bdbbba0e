"""Shared ticket operations for CLI and MCP."""

from __future__ import annotations

from typing import Iterable, Optional, Union

from ..errors import ValidationError
from ..models import Sprint, Ticket, User
from ..output.pagination import paginate
from ..store import Storage

SORT_FIELDS = ("title", "status", "priority", "created", "updated")
SORT_ORDERS = ("asc", "desc")

STATUS_ORDER = {"todo": 0, "progress": 1, "done": 2}
PRIORITY_ORDER = {"low": 0, "medium": 1, "high": 2, "critical": 3}
TYPE_ORDER = {"bug": 0, "task": 1}


def format_ticket(
    ticket: Ticket,
    users: Optional[Iterable[User]] = None,
    sprints: Optional[Iterable[Sprint]] = None,
) -> dict:
    """Full ticket record, with assignee and sprint names when they can be resolved."""
    data = ticket.to_dict()
    if ticket.assignee and users is not None:
        user = next((u for u in users if u.id == ticket.assignee), None)
        data["assigneeName"] = user.display_name if user else ticket.assignee
    if ticket.sprint and sprints is not None:
        sprint = next((s for s in sprints if s.id == ticket.sprint), None)
        data["sprintName"] = sprint.name if sprint else ticket.sprint
    return data


def format_ticket_summary(ticket: Ticket) -> dict:
    return {
        "id": ticket.id,
        "type": ticket.type,
        "title": ticket.title,
        "status": ticket.status,
        "priority": ticket.priority,
        "assignee": ticket.assignee,
        "sprint": ticket.sprint,
    }


def filter_tickets(
    tickets: Iterable[Ticket],
    status: Optional[str] = None,
    assignee: Optional[str] = None,
    sprint: Optional[str] = None,
    search: Optional[str] = None,
) -> list[Ticket]:
    """Filter by exact status/assignee/sprint and a case-insensitive search over title, description and id."""
    term = search.lower() if search else None
    result = []
    for ticket in tickets:
        if status and ticket.status != status:
            continue
        if assignee and ticket.assignee != assignee:
            continue
        if sprint and ticket.sprint != sprint:
            continue
        if term:
            haystack = f"{ticket.title} {ticket.description or ''} {ticket.id}".lower()
            if term not in haystack:
                continue
        result.append(ticket)
    return result


def sort_tickets(tickets: Iterable[Ticket], sort_by: str = "updated", order: str = "desc") -> list[Ticket]:
    """Sort tickets.

    Priority sorting treats a missing priority as medium and keeps bugs ahead
    of tasks of equal priority in either order.
    """
    if sort_by not in SORT_FIELDS:
        raise ValidationError(f"Invalid sort field {sort_by!r}. Must be one of: {', '.join(SORT_FIELDS)}")
    if order not in SORT_ORDERS:
        raise ValidationError(f"Invalid sort order {order!r}. Must be asc or desc")

    reverse = order == "desc"
    items = list(tickets)

    if sort_by == "priority":
        items.sort(key=lambda t: TYPE_ORDER.get(t.type, 1))
        items.sort(key=lambda t: PRIORITY_ORDER.get(t.priority or "medium", 1), reverse=reverse)
        return items

    keys = {
        "title": lambda t: t.title.lower(),
        "status": lambda t: STATUS_ORDER.get(t.status, 0),
        "created": lambda t: t.created_at,
        "updated": lambda t: t.updated_at,
    }
    return sorted(items, key=keys[sort_by], reverse=reverse)


def _resolve_assignee(storage: Storage, assignee: Optional[str]) -> Union[str, dict, None]:
    """Map a user id or username to a user id, or an error dict."""
    if not assignee:
        return None
    user = storage.resolve_user(assignee)
    if user is None:
        return {"error": "not_found", "message": f"User '{assignee}' not found"}
    return user.id


def _check_sprint(storage: Storage, sprint_id: Optional[str]) -> Optional[dict]:
    """Error dict unless the sprint exists in active storage or in an archive."""
    if not sprint_id:
        return None
    if storage.get_sprint(sprint_id) or sprint_id in storage.get_archived_sprints():
        return None
    return {"error": "not_found", "message": f"Sprint '{sprint_id}' not found"}


def list_tickets(
    storage: Storage,
    ticket_type: Optional[str] = None,
    status: Optional[str] = None,
    assignee: Optional[str] = None,
    sprint: Optional[str] = None,
    search: Optional[str] = None,
    sort_by: str = "updated",
    order: str = "desc",
    limit: Optional[int] = None,
    offset: int = 0,
) -> dict:
    tickets = storage.get_tickets_by_type(ticket_type) if ticket_type else storage.get_all_tickets()

    if assignee:
        user = storage.resolve_user(assignee)
        assignee = user.id if user else assignee

    matched = sort_tickets(filter_tickets(tickets, status, assignee, sprint, search), sort_by, order)
    page, pagination = paginate(matched, limit, offset)

    return {
        "tickets": [format_ticket_summary(t) for t in page],
        "pagination": pagination,
        "summary": {
            "total": len(matched),
            "by_status": {s: sum(1 for t in matched if t.status == s) for s in STATUS_ORDER},
        },
    }


def get_ticket(storage: Storage, ticket_id: str) -> dict:
    ticket = storage.find_ticket(ticket_id)
    if not ticket:
        return {"error": "not_found", "message": f"Ticket '{ticket_id}' not found"}

    users = storage.get_users()
    data = format_ticket(ticket, users, storage.get_sprints())
    comments = storage.get_comments(ticket.id)
    names = {u.id: u.display_name for u in users}
    data["comments"] = [
        {**c.to_dict(), "authorName": names.get(c.author, c.author)} for c in comments
    ]
    return {"ticket": data}


def create_ticket(
    storage: Storage,
    ticket_type: str,
    title: str,
    description: Optional[str] = None,
    assignee: Optional[str] = None,
    sprint: Optional[str] = None,
    priority: Optional[str] = None,
    estimate: Optional[Union[int, float]] = None,
    labels: Optional[list[str]] = None,
) -> dict:
    assignee_id = _resolve_assignee(storage, assignee)
    if isinstance(assignee_id, dict):
        return assignee_id
    sprint_error = _check_sprint(storage, sprint)
    if sprint_error:
        return sprint_error

    ticket = storage.create_ticket(
        ticket_type,
        title,
        description=description,
        assignee=assignee_id,
        sprint=sprint,
        priority=priority,
        estimate=estimate,
        labels=labels,
    )
    return {"success": True, "ticket": format_ticket(ticket)}


def update_ticket_status(storage: Storage, ticket_id: str, status: str) -> dict:
    ticket = storage.update_ticket_status(ticket_id, status)
    if not ticket:
        return {"error": "not_found", "message": f"Ticket '{ticket_id}' not found"}
    return {"success": True, "ticket": format_ticket(ticket)}


def update_ticket(storage: Storage, ticket_id: str, changes: dict) -> dict:
    """Partial update; assignee may be given as a username."""
    changes = dict(changes)
    if changes.get("assignee"):
        assignee_id = _resolve_assignee(storage, changes["assignee"])
        if isinstance(assignee_id, dict):
            return assignee_id
        changes["assignee"] = assignee_id
    if changes.get("sprint"):
        sprint_error = _check_sprint(storage, changes["sprint"])
        if sprint_error:
            return sprint_error

    ticket = storage.update_ticket(ticket_id, changes)
    if not ticket:
        return {"error": "not_found", "message": f"Ticket '{ticket_id}' not found"}
    return {"success": True, "ticket": format_ticket(ticket)}


def delete_ticket(storage: Storage, ticket_id: str) -> dict:
    """Delete a ticket together with its comments (comments first)."""
    ticket = storage.find_ticket(ticket_id)
    if not ticket:
        return {"error": "not_found", "message": f"Ticket '{ticket_id}' not found"}

    comments = storage.get_comments(ticket.id)
    for comment in comments:
        storage.delete_comment(comment.id)
    storage.delete_entity(f"{ticket.type}s", ticket.id)

    return {
        "success": True,
        "deleted": {"id": ticket.id, "type": ticket.type, "title": ticket.title},
        "comments_deleted": len(comments),
    }
