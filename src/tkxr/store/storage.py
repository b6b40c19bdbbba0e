"""File-backed implementation of the tkxr storage contract.

Layout of a data directory (default ``./tkxr``)::

    tkxr/
    ├── project.yaml              # store version, project metadata, chunk size
    ├── users/chunk-000001.jsonl
    ├── sprints/chunk-000001.jsonl
    ├── tickets/chunk-000001.jsonl
    ├── comments/chunk-000001.jsonl
    └── archives/archive-<sprint-id>.yaml

Nothing is cached between calls: every read scans the segments on disk and
every mutation is flushed before the method returns. project.yaml is
rewritten before the record it accounts for, so a failed metadata write
leaves the record unsaved.
"""

from __future__ import annotations

import logging
from datetime import datetime
from pathlib import Path
from typing import Any, Callable, Optional, TypeVar, Union

import yaml

from ..errors import StorageIOError, ValidationError
from ..ids import new_id
from ..models import (
    PRIORITIES,
    SPRINT_STATUSES,
    STORE_VERSION,
    TICKET_STATUSES,
    TICKET_TYPES,
    ArchiveDocument,
    Comment,
    ProjectInfo,
    ProjectSnapshot,
    Sprint,
    Ticket,
    User,
    parse_datetime,
    utcnow,
)
from ..models.entities import (
    apply_sprint_changes,
    check_estimate,
    normalize_labels,
    require_choice,
    require_text,
)
from ..notifier import ChangeNotifier
from .archive import ArchiveStore, archive_sprint
from .base import ENTITY_KINDS, EntityRef
from .files import atomic_write_text, read_text
from .segments import DEFAULT_CHUNK_SIZE, SegmentLog, decode

logger = logging.getLogger(__name__)

PROJECT_FILE = "project.yaml"
DEFAULT_DATA_DIR = Path("tkxr")

T = TypeVar("T")


def _optional(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    value = value.strip()
    return value or None


def _date_option(value: Optional[Union[datetime, str]], name: str) -> Optional[datetime]:
    try:
        return parse_datetime(value)
    except ValueError as e:
        raise ValidationError(f"Invalid {name}: {e}", field=name) from e


class FileStorage:
    """Chunked-log storage rooted at a data directory.

    Usage:
        storage = FileStorage(Path("tkxr"))

        alice = storage.create_user("alice", "Alice A")
        ticket = storage.create_ticket("task", "Fix login", assignee=alice.id)
        storage.update_ticket_status(ticket.id, "done")
    """

    def __init__(
        self,
        data_dir: Path = DEFAULT_DATA_DIR,
        chunk_size: Optional[int] = None,
        notifier: Optional[ChangeNotifier] = None,
        project_name: Optional[str] = None,
    ):
        """Initialize storage. Nothing is written until the first mutation.

        Args:
            data_dir: Root directory of the store.
            chunk_size: Records per segment. Defaults to the value recorded in
                project.yaml, else 1000.
            notifier: Optional receiver of change events, called after each
                mutation has been persisted.
            project_name: Name recorded when project.yaml is first written.
        """
        self.data_dir = Path(data_dir)
        self.notifier = notifier
        self._project_name = project_name

        meta = self._read_meta()
        self.chunk_size = int(chunk_size or meta.get("chunkSize") or DEFAULT_CHUNK_SIZE)

        self.users = SegmentLog(self.data_dir / "users", self.chunk_size)
        self.sprints = SegmentLog(self.data_dir / "sprints", self.chunk_size)
        self.tickets = SegmentLog(self.data_dir / "tickets", self.chunk_size)
        self.comments = SegmentLog(self.data_dir / "comments", self.chunk_size)
        self.archives = ArchiveStore(self.data_dir / "archives")

    # ------------------------------------------------------------------
    # Project metadata
    # ------------------------------------------------------------------

    @property
    def meta_path(self) -> Path:
        return self.data_dir / PROJECT_FILE

    def _read_meta(self) -> dict:
        text = read_text(self.meta_path)
        if text is None:
            return {}
        try:
            data = yaml.safe_load(text) or {}
        except yaml.YAMLError as e:
            raise StorageIOError(f"Corrupt {self.meta_path}: {e}", self.meta_path) from e
        if not isinstance(data, dict):
            raise StorageIOError(f"Corrupt {self.meta_path}: expected a mapping", self.meta_path)
        return data

    def project_info(self) -> ProjectInfo:
        """Project metadata, defaulting to the name of the directory holding the store."""
        meta = self._read_meta()
        if meta.get("project"):
            return ProjectInfo.from_dict(meta["project"])
        name = self._project_name or self.data_dir.resolve().parent.name or "tkxr"
        return ProjectInfo(name=name)

    def _touch_project(self) -> None:
        info = self.project_info()
        info.updated = utcnow()
        meta = {
            "version": STORE_VERSION,
            "project": info.to_dict(),
            "chunkSize": self.chunk_size,
        }
        atomic_write_text(
            self.meta_path,
            yaml.safe_dump(meta, default_flow_style=False, sort_keys=False, allow_unicode=True),
        )

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _load(self, log: SegmentLog, model: Callable[[dict], T]) -> list[T]:
        return [decode(model, record, log.directory) for record in log.read_all()]

    def _get(self, log: SegmentLog, model: Callable[[dict], T], record_id: str) -> Optional[T]:
        if not record_id:
            return None
        record = log.get(record_id)
        if record is None:
            return None
        return decode(model, record, log.directory)

    def _emit(self, event: str, payload: Any) -> None:
        if self.notifier is None:
            return
        try:
            getattr(self.notifier, event)(payload)
        except Exception:
            logger.debug("Change notifier failed on %s", event, exc_info=True)

    # ------------------------------------------------------------------
    # Users
    # ------------------------------------------------------------------

    def create_user(self, username: str, display_name: str, email: Optional[str] = None) -> User:
        """Create a user. Usernames must be unique."""
        username = require_text(username, "username")
        display_name = require_text(display_name, "display_name")
        if any(u.username == username for u in self.get_users()):
            raise ValidationError(f"Username '{username}' is already taken", field="username")

        now = utcnow()
        user = User(
            id=new_id("user"),
            username=username,
            display_name=display_name,
            email=_optional(email),
            created_at=now,
            updated_at=now,
        )
        self._touch_project()
        self.users.append(user.to_dict())
        logger.info("Created user %s (@%s)", user.id, user.username)
        self._emit("user_created", user.to_dict())
        return user.copy()

    def get_users(self) -> list[User]:
        return self._load(self.users, User.from_dict)

    def get_user(self, user_id: str) -> Optional[User]:
        return self._get(self.users, User.from_dict, user_id)

    def resolve_user(self, id_or_username: str) -> Optional[User]:
        """Find a user by id or by username."""
        if not id_or_username:
            return None
        for user in self.get_users():
            if user.id == id_or_username or user.username == id_or_username:
                return user
        return None

    # ------------------------------------------------------------------
    # Sprints
    # ------------------------------------------------------------------

    def create_sprint(
        self,
        name: str,
        description: Optional[str] = None,
        goal: Optional[str] = None,
        start_date: Optional[Union[datetime, str]] = None,
        end_date: Optional[Union[datetime, str]] = None,
    ) -> Sprint:
        """Create a sprint in the planning state."""
        now = utcnow()
        sprint = Sprint(
            id=new_id("sprint"),
            name=require_text(name, "name"),
            status="planning",
            description=_optional(description),
            goal=_optional(goal),
            start_date=_date_option(start_date, "start_date"),
            end_date=_date_option(end_date, "end_date"),
            created_at=now,
            updated_at=now,
        )
        self._touch_project()
        self.sprints.append(sprint.to_dict())
        logger.info("Created sprint %s (%s)", sprint.id, sprint.name)
        self._emit("sprint_created", sprint.to_dict())
        return sprint.copy()

    def get_sprints(self) -> list[Sprint]:
        return self._load(self.sprints, Sprint.from_dict)

    def get_sprint(self, sprint_id: str) -> Optional[Sprint]:
        return self._get(self.sprints, Sprint.from_dict, sprint_id)

    def update_sprint_status(self, sprint_id: str, status: str) -> Optional[Sprint]:
        """Change a sprint's status.

        Moving a sprint to ``completed`` from any other status archives its
        tickets and their comments first (see ``archive_sprint``); the sprint's
        new status is saved only after the move succeeded. Completing an
        already completed sprint does not archive again.

        Returns:
            The updated sprint, or None if it does not exist.

        Raises:
            ValidationError: unknown status.
            ArchivalError: the archive move failed; the sprint keeps its old status.
        """
        require_choice(status, SPRINT_STATUSES, "status")
        sprint = self.get_sprint(sprint_id)
        if sprint is None:
            return None

        previous = sprint.status
        sprint.status = status
        sprint.touch()

        if status == "completed" and previous != "completed":
            archive_sprint(self.archives, sprint, self.tickets, self.comments)

        self._touch_project()
        self.sprints.replace(sprint.id, sprint.to_dict())
        logger.info("Sprint %s status %s -> %s", sprint.id, previous, status)
        self._emit("sprint_updated", sprint.to_dict())
        return sprint.copy()

    def update_sprint(self, sprint_id: str, changes: dict) -> Optional[Sprint]:
        """Update name, description, goal or dates of a sprint."""
        sprint = self.get_sprint(sprint_id)
        if sprint is None:
            return None
        apply_sprint_changes(sprint, changes)
        sprint.touch()
        self._touch_project()
        self.sprints.replace(sprint.id, sprint.to_dict())
        self._emit("sprint_updated", sprint.to_dict())
        return sprint.copy()

    # ------------------------------------------------------------------
    # Tickets
    # ------------------------------------------------------------------

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
    ) -> Ticket:
        """Create a task or bug.

        Foreign ids (assignee, sprint) are stored as given and not checked.
        """
        require_choice(type, TICKET_TYPES, "type")
        if priority is not None:
            require_choice(priority, PRIORITIES, "priority")

        now = utcnow()
        ticket = Ticket(
            id=new_id(type),
            type=type,
            title=require_text(title, "title"),
            status=require_choice(status, TICKET_STATUSES, "status"),
            description=_optional(description),
            assignee=_optional(assignee),
            sprint=_optional(sprint),
            estimate=check_estimate(estimate),
            labels=normalize_labels(labels),
            priority=priority,
            created_at=now,
            updated_at=now,
        )
        self._touch_project()
        self.tickets.append(ticket.to_dict())
        logger.info("Created %s %s", ticket.type, ticket.id)
        self._emit("ticket_created", ticket.to_dict())
        return ticket.copy()

    def get_tickets_by_type(self, type: str) -> list[Ticket]:
        require_choice(type, TICKET_TYPES, "type")
        return [t for t in self.get_all_tickets() if t.type == type]

    def get_all_tickets(self) -> list[Ticket]:
        return self._load(self.tickets, Ticket.from_dict)

    def find_ticket(self, ticket_id: str) -> Optional[Ticket]:
        return self._get(self.tickets, Ticket.from_dict, ticket_id)

    def update_ticket_status(self, ticket_id: str, status: str) -> Optional[Ticket]:
        require_choice(status, TICKET_STATUSES, "status")
        return self.update_ticket(ticket_id, {"status": status})

    def update_ticket(self, ticket_id: str, changes: dict) -> Optional[Ticket]:
        """Apply a partial update to a ticket.

        Args:
            ticket_id: Ticket to change.
            changes: Field name -> new value, for any of title, description,
                status, assignee, sprint, estimate, labels, priority. None clears
                an optional field. ``type`` cannot be changed.

        Returns:
            The updated ticket, or None if it does not exist.
        """
        ticket = self.find_ticket(ticket_id)
        if ticket is None:
            return None
        ticket.apply(changes)
        ticket.touch()
        self._touch_project()
        self.tickets.replace(ticket.id, ticket.to_dict())
        self._emit("ticket_updated", ticket.to_dict())
        return ticket.copy()

    # ------------------------------------------------------------------
    # Comments
    # ------------------------------------------------------------------

    def create_comment(self, ticket_id: str, author: str, content: str) -> Comment:
        now = utcnow()
        comment = Comment(
            id=new_id("comment"),
            ticket_id=require_text(ticket_id, "ticket_id"),
            author=require_text(author, "author"),
            content=require_text(content, "content"),
            created_at=now,
            updated_at=now,
        )
        self._touch_project()
        self.comments.append(comment.to_dict())
        logger.info("Added comment %s to %s", comment.id, comment.ticket_id)
        return comment.copy()

    def get_comments(self, ticket_id: str) -> list[Comment]:
        """Comments on a ticket, oldest first."""
        comments = [c for c in self._load(self.comments, Comment.from_dict) if c.ticket_id == ticket_id]
        return sorted(comments, key=lambda c: c.created_at)

    def get_comment(self, comment_id: str) -> Optional[Comment]:
        return self._get(self.comments, Comment.from_dict, comment_id)

    def delete_comment(self, comment_id: str) -> bool:
        return self.delete_entity("comments", comment_id)

    # ------------------------------------------------------------------
    # Cross-collection
    # ------------------------------------------------------------------

    def delete_entity(self, kind: str, entity_id: str) -> bool:
        """Delete one record immediately.

        Deleting a ticket does not delete its comments; callers wanting that
        remove the comments first (see ``services.tickets.delete_ticket``).

        Args:
            kind: tasks, bugs, tickets, sprints, users or comments. ``tasks`` and
                ``bugs`` only match tickets of that type.
            entity_id: Record id.

        Returns:
            True if a record was deleted, False if none matched.

        Raises:
            ValueError: unknown kind.
        """
        if kind not in ENTITY_KINDS:
            raise ValueError(f"Unknown entity kind {kind!r}. Expected one of: {', '.join(ENTITY_KINDS)}")
        collection, ticket_type = ENTITY_KINDS[kind]
        log: SegmentLog = getattr(self, collection)

        record = log.get(entity_id)
        if record is None:
            return False
        if ticket_type is not None and record.get("type") != ticket_type:
            return False

        self._touch_project()
        if not log.remove({entity_id}):
            return False
        logger.info("Deleted %s %s", kind, entity_id)
        if collection == "tickets":
            self._emit("ticket_deleted", entity_id)
        return True

    def find_entity(self, entity_id: str) -> Optional[EntityRef]:
        """Look an id up in tickets, then sprints, then users."""
        ticket = self.find_ticket(entity_id)
        if ticket is not None:
            return EntityRef(kind=f"{ticket.type}s", entity=ticket)
        sprint = self.get_sprint(entity_id)
        if sprint is not None:
            return EntityRef(kind="sprints", entity=sprint)
        user = self.get_user(entity_id)
        if user is not None:
            return EntityRef(kind="users", entity=user)
        return None

    # ------------------------------------------------------------------
    # Archives and snapshots
    # ------------------------------------------------------------------

    def get_archived_sprints(self) -> list[str]:
        return self.archives.sprint_ids()

    def get_archive(self, sprint_id: str) -> Optional[ArchiveDocument]:
        return self.archives.load(sprint_id)

    def snapshot(self) -> ProjectSnapshot:
        """All active records plus project metadata."""
        meta = self._read_meta()
        return ProjectSnapshot(
            version=str(meta.get("version", STORE_VERSION)),
            project=self.project_info(),
            users=self.get_users(),
            sprints=self.get_sprints(),
            tickets=self.get_all_tickets(),
            comments=self._load(self.comments, Comment.from_dict),
        )
