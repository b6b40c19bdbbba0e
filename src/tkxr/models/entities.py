"""Entity records stored by tkxr: users, sprints, tickets and comments."""

from __future__ import annotations

from dataclasses import dataclass, field, fields, replace
from datetime import date, datetime, timedelta, timezone
from typing import Any, Literal, Optional, Union

from ..errors import ValidationError

TicketType = Literal["task", "bug"]
TicketStatus = Literal["todo", "progress", "done"]
SprintStatus = Literal["planning", "active", "completed"]
Priority = Literal["low", "medium", "high", "critical"]

TICKET_TYPES: tuple[str, ...] = ("task", "bug")
TICKET_STATUSES: tuple[str, ...] = ("todo", "progress", "done")
SPRINT_STATUSES: tuple[str, ...] = ("planning", "active", "completed")
PRIORITIES: tuple[str, ...] = ("low", "medium", "high", "critical")


# ============================================================================
# Dates
# ============================================================================


def utcnow() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


def parse_datetime(value: Any) -> Optional[datetime]:
    """Coerce a stored date value into an aware UTC datetime.

    Accepts ISO-8601 strings (with or without a trailing ``Z``), datetimes and
    dates (as produced by YAML loaders) and epoch numbers, in seconds or in
    milliseconds. Naive values are taken to be UTC.
    """
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        dt = value
    elif isinstance(value, date):
        dt = datetime(value.year, value.month, value.day)
    elif isinstance(value, (int, float)) and not isinstance(value, bool):
        seconds = value / 1000 if abs(value) > 1e11 else value
        return datetime.fromtimestamp(seconds, tz=timezone.utc)
    elif isinstance(value, str):
        text = value.strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        dt = datetime.fromisoformat(text)
    else:
        raise ValueError(f"Cannot interpret {value!r} as a date")

    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def format_datetime(value: Optional[datetime]) -> Optional[str]:
    """Render a datetime as an ISO-8601 UTC string (``...Z``)."""
    if value is None:
        return None
    return value.astimezone(timezone.utc).isoformat().replace("+00:00", "Z")


# ============================================================================
# Validation helpers
# ============================================================================


def require_text(value: Any, name: str) -> str:
    """Return a stripped non-empty string or raise ValidationError."""
    if not isinstance(value, str) or not value.strip():
        raise ValidationError(f"{name} is required", field=name)
    return value.strip()


def require_choice(value: Any, choices: tuple[str, ...], name: str) -> str:
    if value not in choices:
        raise ValidationError(
            f"Invalid {name} {value!r}. Must be one of: {', '.join(choices)}",
            field=name,
        )
    return value


def check_estimate(value: Any) -> Optional[Union[int, float]]:
    if value is None:
        return None
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValidationError(f"estimate must be a number, got {value!r}", field="estimate")
    if value < 0:
        raise ValidationError("estimate must not be negative", field="estimate")
    return value


def normalize_labels(labels: Any) -> list[str]:
    """De-duplicate labels, keeping first-seen order."""
    if labels is None:
        return []
    if isinstance(labels, str) or not all(isinstance(label, str) for label in labels):
        raise ValidationError("labels must be a list of strings", field="labels")
    seen: list[str] = []
    for label in labels:
        label = label.strip()
        if label and label not in seen:
            seen.append(label)
    return seen


def _optional_text(value: Any) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


# ============================================================================
# Records
# ============================================================================


class _Timestamped:
    """Shared behaviour for records carrying created_at/updated_at."""

    id: str
    created_at: datetime
    updated_at: datetime

    def touch(self) -> None:
        """Refresh updated_at, keeping it strictly increasing."""
        now = utcnow()
        floor = max(self.updated_at, self.created_at)
        if now <= floor:
            now = floor + timedelta(microseconds=1)
        self.updated_at = now

    def copy(self):
        """Return an independent copy of the record."""
        clone = replace(self)
        for f in fields(clone):
            value = getattr(clone, f.name)
            if isinstance(value, list):
                setattr(clone, f.name, list(value))
        return clone


def _drop_empty(data: dict) -> dict:
    return {k: v for k, v in data.items() if v is not None and v != []}


@dataclass
class User(_Timestamped):
    """A person tickets can be assigned to and comments attributed to."""

    id: str
    username: str
    display_name: str
    email: Optional[str] = None
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)

    def to_dict(self) -> dict:
        return _drop_empty({
            "id": self.id,
            "username": self.username,
            "displayName": self.display_name,
            "email": self.email,
            "createdAt": format_datetime(self.created_at),
            "updatedAt": format_datetime(self.updated_at),
        })

    @classmethod
    def from_dict(cls, data: dict) -> "User":
        created = parse_datetime(data.get("createdAt")) or utcnow()
        return cls(
            id=data["id"],
            username=data["username"],
            display_name=data.get("displayName") or data["username"],
            email=data.get("email"),
            created_at=created,
            updated_at=parse_datetime(data.get("updatedAt")) or created,
        )


@dataclass
class Sprint(_Timestamped):
    """A time-boxed group of tickets (planning -> active -> completed)."""

    id: str
    name: str
    status: str = "planning"
    description: Optional[str] = None
    goal: Optional[str] = None
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)

    UPDATABLE = ("name", "description", "goal", "start_date", "end_date")

    def to_dict(self) -> dict:
        return _drop_empty({
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "goal": self.goal,
            "status": self.status,
            "startDate": format_datetime(self.start_date),
            "endDate": format_datetime(self.end_date),
            "createdAt": format_datetime(self.created_at),
            "updatedAt": format_datetime(self.updated_at),
        })

    @classmethod
    def from_dict(cls, data: dict) -> "Sprint":
        created = parse_datetime(data.get("createdAt")) or utcnow()
        return cls(
            id=data["id"],
            name=data["name"],
            status=data.get("status", "planning"),
            description=data.get("description"),
            goal=data.get("goal"),
            start_date=parse_datetime(data.get("startDate")),
            end_date=parse_datetime(data.get("endDate")),
            created_at=created,
            updated_at=parse_datetime(data.get("updatedAt")) or created,
        )


@dataclass
class Ticket(_Timestamped):
    """A task or bug tracked through todo -> progress -> done."""

    id: str
    type: str
    title: str
    status: str = "todo"
    description: Optional[str] = None
    assignee: Optional[str] = None  # User id
    sprint: Optional[str] = None  # Sprint id
    estimate: Optional[Union[int, float]] = None
    labels: list[str] = field(default_factory=list)
    priority: Optional[str] = None
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)

    UPDATABLE = ("title", "description", "status", "assignee", "sprint", "estimate", "labels", "priority")

    def to_dict(self) -> dict:
        return _drop_empty({
            "id": self.id,
            "type": self.type,
            "title": self.title,
            "description": self.description,
            "status": self.status,
            "assignee": self.assignee,
            "sprint": self.sprint,
            "estimate": self.estimate,
            "labels": list(self.labels),
            "priority": self.priority,
            "createdAt": format_datetime(self.created_at),
            "updatedAt": format_datetime(self.updated_at),
        })

    @classmethod
    def from_dict(cls, data: dict) -> "Ticket":
        created = parse_datetime(data.get("createdAt")) or utcnow()
        return cls(
            id=data["id"],
            type=data["type"],
            title=data["title"],
            status=data.get("status", "todo"),
            description=data.get("description"),
            assignee=data.get("assignee"),
            sprint=data.get("sprint"),
            estimate=data.get("estimate"),
            labels=list(data.get("labels") or []),
            priority=data.get("priority"),
            created_at=created,
            updated_at=parse_datetime(data.get("updatedAt")) or created,
        )

    def apply(self, changes: dict) -> None:
        """Apply validated field changes (snake_case keys) in place."""
        if "type" in changes and changes["type"] != self.type:
            raise ValidationError("Ticket type cannot be changed after creation", field="type")
        unknown = set(changes) - set(self.UPDATABLE) - {"type"}
        if unknown:
            raise ValidationError(f"Unknown ticket field(s): {', '.join(sorted(unknown))}")

        for name, value in changes.items():
            if name == "type":
                continue
            if name == "title":
                value = require_text(value, "title")
            elif name == "status":
                value = require_choice(value, TICKET_STATUSES, "status")
            elif name == "priority" and value is not None:
                value = require_choice(value, PRIORITIES, "priority")
            elif name == "estimate":
                value = check_estimate(value)
            elif name == "labels":
                value = normalize_labels(value)
            else:
                value = _optional_text(value)
            setattr(self, name, value)


@dataclass
class Comment(_Timestamped):
    """A note left on a ticket by a user."""

    id: str
    ticket_id: str
    author: str  # User id
    content: str
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "ticketId": self.ticket_id,
            "author": self.author,
            "content": self.content,
            "createdAt": format_datetime(self.created_at),
            "updatedAt": format_datetime(self.updated_at),
        }

    @classmethod
    def from_dict(cls, data: dict) -> "Comment":
        created = parse_datetime(data.get("createdAt")) or utcnow()
        return cls(
            id=data["id"],
            ticket_id=data["ticketId"],
            author=data.get("author", ""),
            content=data.get("content", ""),
            created_at=created,
            updated_at=parse_datetime(data.get("updatedAt")) or created,
        )


def apply_sprint_changes(sprint: Sprint, changes: dict) -> None:
    """Apply field changes to a sprint in place. Status goes through update_sprint_status."""
    if "status" in changes:
        raise ValidationError("Use update_sprint_status to change a sprint's status", field="status")
    unknown = set(changes) - set(Sprint.UPDATABLE)
    if unknown:
        raise ValidationError(f"Unknown sprint field(s): {', '.join(sorted(unknown))}")

    for name, value in changes.items():
        if name == "name":
            value = require_text(value, "name")
        elif name in ("start_date", "end_date"):
            try:
                value = parse_datetime(value)
            except ValueError as e:
                raise ValidationError(str(e), field=name) from e
        else:
            value = _optional_text(value)
        setattr(sprint, name, value)
