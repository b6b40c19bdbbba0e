"""Aggregate documents: the whole-project snapshot and sprint archives."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime

from .entities import Comment, Sprint, Ticket, User, format_datetime, parse_datetime, utcnow

STORE_VERSION = "1.0.0"


@dataclass
class ProjectInfo:
    """Project metadata kept in project.yaml."""

    name: str
    created: datetime = field(default_factory=utcnow)
    updated: datetime = field(default_factory=utcnow)

    def to_dict(self) -> dict:
        return {
            "name": self.name,
            "created": format_datetime(self.created),
            "updated": format_datetime(self.updated),
        }

    @classmethod
    def from_dict(cls, data: dict) -> "ProjectInfo":
        created = parse_datetime(data.get("created")) or utcnow()
        return cls(
            name=data.get("name") or "tkxr",
            created=created,
            updated=parse_datetime(data.get("updated")) or created,
        )


@dataclass
class ProjectSnapshot:
    """Every active record of a store at one instant."""

    version: str
    project: ProjectInfo
    users: list[User] = field(default_factory=list)
    sprints: list[Sprint] = field(default_factory=list)
    tickets: list[Ticket] = field(default_factory=list)
    comments: list[Comment] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "version": self.version,
            "project": self.project.to_dict(),
            "users": [u.to_dict() for u in self.users],
            "sprints": [s.to_dict() for s in self.sprints],
            "tickets": [t.to_dict() for t in self.tickets],
            "comments": [c.to_dict() for c in self.comments],
        }

    @classmethod
    def from_dict(cls, data: dict) -> "ProjectSnapshot":
        return cls(
            version=str(data.get("version", STORE_VERSION)),
            project=ProjectInfo.from_dict(data.get("project") or {}),
            users=[User.from_dict(u) for u in data.get("users") or []],
            sprints=[Sprint.from_dict(s) for s in data.get("sprints") or []],
            tickets=[Ticket.from_dict(t) for t in data.get("tickets") or []],
            comments=[Comment.from_dict(c) for c in data.get("comments") or []],
        )


@dataclass
class ArchiveDocument:
    """A completed sprint together with the tickets and comments moved out of active storage."""

    sprint: Sprint
    tickets: list[Ticket] = field(default_factory=list)
    comments: list[Comment] = field(default_factory=list)
    archived_at: datetime = field(default_factory=utcnow)
    version: str = STORE_VERSION

    def to_dict(self) -> dict:
        return {
            "version": self.version,
            "sprint": self.sprint.to_dict(),
            "tickets": [t.to_dict() for t in self.tickets],
            "comments": [c.to_dict() for c in self.comments],
            "archivedAt": format_datetime(self.archived_at),
        }

    @classmethod
    def from_dict(cls, data: dict) -> "ArchiveDocument":
        return cls(
            version=str(data.get("version", STORE_VERSION)),
            sprint=Sprint.from_dict(data["sprint"]),
            tickets=[Ticket.from_dict(t) for t in data.get("tickets") or []],
            comments=[Comment.from_dict(c) for c in data.get("comments") or []],
            archived_at=parse_datetime(data.get("archivedAt")) or utcnow(),
        )

    def ticket_ids(self) -> set[str]:
        return {t.id for t in self.tickets}
