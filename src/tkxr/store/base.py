"""The storage contract every tkxr front-end programs against."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Optional, Protocol, Union

from ..models import ArchiveDocument, Comment, ProjectSnapshot, Sprint, Ticket, User

Entity = Union[User, Sprint, Ticket, Comment]

# delete_entity kinds -> (collection, ticket type filter)
ENTITY_KINDS: dict[str, tuple[str, Optional[str]]] = {
    "tasks": ("tickets", "task"),
    "bugs": ("tickets", "bug"),
    "tickets": ("tickets", None),
    "sprints": ("sprints", None),
    "users": ("users", None),
    "comments": ("comments", None),
}


@dataclass
class EntityRef:
    """Result of a cross-collection lookup."""

    kind: str  # tasks, bugs, sprints or users
    entity: Entity

    @property
    def singular(self) -> str:
        return self.kind[:-1]


class Storage(Protocol):
    """Create/read/update/delete operations over users, sprints, tickets and comments.

    Lookups and mutations of unknown ids return None (or False for deletes);
    exceptions are raised only for invalid input (ValidationError) and for
    failures of the backing store (StorageIOError, ArchivalError). Every
    returned entity is an independent copy.
    """

    # Create
    def create_user(self, username: str, display_name: str, email: Optional[str] = None) -> User: ...

    def create_sprint(
        self,
        name: str,
        description: Optional[str] = None,
        goal: Optional[str] = None,
        start_date: Optional[Union[datetime, str]] = None,
        end_date: Optional[Union[datetime, str]] = None,
    ) -> Sprint: ...

    def create_ticket(
        self,
        type: str,
        title: str,
        description: Optional[str] = None,
        status: str = "todo",
        assignee: Optional[str] = None,
        sprint: Optional[str] = None,
        estimate: Optional[Union[int, float]] = None,
        labels: Optional[list[str]] = None,
        priority: Optional[str] = None,
    ) -> Ticket: ...

    def create_comment(self, ticket_id: str, author: str, content: str) -> Comment: ...

    # Read
    def get_users(self) -> list[User]: ...

    def get_user(self, user_id: str) -> Optional[User]: ...

    def resolve_user(self, id_or_username: str) -> Optional[User]: ...

    def get_sprints(self) -> list[Sprint]: ...

    def get_sprint(self, sprint_id: str) -> Optional[Sprint]: ...

    def get_tickets_by_type(self, type: str) -> list[Ticket]: ...

    def get_all_tickets(self) -> list[Ticket]: ...

    def find_ticket(self, ticket_id: str) -> Optional[Ticket]: ...

    def find_entity(self, entity_id: str) -> Optional[EntityRef]: ...

    def get_comments(self, ticket_id: str) -> list[Comment]: ...

    def get_comment(self, comment_id: str) -> Optional[Comment]: ...

    # Update
    def update_ticket_status(self, ticket_id: str, status: str) -> Optional[Ticket]: ...

    def update_ticket(self, ticket_id: str, changes: dict) -> Optional[Ticket]: ...

    def update_sprint_status(self, sprint_id: str, status: str) -> Optional[Sprint]: ...

    def update_sprint(self, sprint_id: str, changes: dict) -> Optional[Sprint]: ...

    # Delete
    def delete_entity(self, kind: str, entity_id: str) -> bool: ...

    def delete_comment(self, comment_id: str) -> bool: ...

    # Archives and aggregates
    def get_archived_sprints(self) -> list[str]: ...

    def get_archive(self, sprint_id: str) -> Optional[ArchiveDocument]: ...

    def snapshot(self) -> ProjectSnapshot: ...
