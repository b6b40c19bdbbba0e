"""Archives of completed sprints.

When a sprint is completed, its tickets and their comments are moved out of
the active collections into ``archives/archive-<sprint-id>.yaml``. The
archive is written first and the active records are removed afterwards, so
an interrupted run can leave records in both places but never in neither.
Running the move again merges into the existing archive by id.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional

import yaml

from ..errors import ArchivalError, StorageIOError
from ..models import ArchiveDocument, Comment, Sprint, Ticket, utcnow
from .files import atomic_write_text, read_text
from .segments import SegmentLog, decode

logger = logging.getLogger(__name__)

ARCHIVE_PREFIX = "archive-"
ARCHIVE_SUFFIX = ".yaml"


class ArchiveStore:
    """Directory of archive documents, one per completed sprint."""

    def __init__(self, directory: Path):
        self.directory = directory

    def path_for(self, sprint_id: str) -> Path:
        return self.directory / f"{ARCHIVE_PREFIX}{sprint_id}{ARCHIVE_SUFFIX}"

    def sprint_ids(self) -> list[str]:
        """Sprint ids that have an archive document, sorted."""
        if not self.directory.is_dir():
            return []
        try:
            names = [p.name for p in self.directory.iterdir() if p.is_file()]
        except OSError as e:
            raise StorageIOError(f"Failed to list {self.directory}: {e}", self.directory) from e
        return sorted(
            name[len(ARCHIVE_PREFIX):-len(ARCHIVE_SUFFIX)]
            for name in names
            if name.startswith(ARCHIVE_PREFIX) and name.endswith(ARCHIVE_SUFFIX)
        )

    def load(self, sprint_id: str) -> Optional[ArchiveDocument]:
        path = self.path_for(sprint_id)
        text = read_text(path)
        if text is None:
            return None
        try:
            data = yaml.safe_load(text)
            return ArchiveDocument.from_dict(data)
        except (yaml.YAMLError, AttributeError, KeyError, TypeError, ValueError) as e:
            raise StorageIOError(f"Corrupt archive {path}: {e}", path) from e

    def write(self, document: ArchiveDocument) -> Path:
        path = self.path_for(document.sprint.id)
        text = yaml.safe_dump(
            document.to_dict(),
            default_flow_style=False,
            sort_keys=False,
            allow_unicode=True,
        )
        atomic_write_text(path, text)
        return path


def _merge(existing: list, current: list) -> list:
    """Union of two record lists by id; the active (current) copy wins."""
    merged = {record.id: record for record in existing}
    for record in current:
        merged[record.id] = record
    return list(merged.values())


def archive_sprint(
    archives: ArchiveStore,
    sprint: Sprint,
    tickets: SegmentLog,
    comments: SegmentLog,
) -> Optional[ArchiveDocument]:
    """Move a sprint's tickets and their comments into its archive document.

    Args:
        archives: Archive directory.
        sprint: The sprint as it should be recorded (normally already completed).
        tickets: Active ticket log.
        comments: Active comment log.

    Returns:
        The archive document written, or None when the sprint has no tickets
        (no document is created in that case).

    Raises:
        ArchivalError: stage "write" if the document could not be written (active
            storage untouched), stage "remove" if archived records could not be
            removed from active storage.
    """
    existing = archives.load(sprint.id)

    active_tickets = [
        decode(Ticket.from_dict, r, tickets.directory)
        for r in tickets.read_all()
        if r.get("sprint") == sprint.id
    ]
    ticket_ids = {t.id for t in active_tickets}
    if existing is not None:
        ticket_ids |= existing.ticket_ids()

    if not ticket_ids:
        logger.info("Sprint %s has no tickets; nothing to archive", sprint.id)
        return None

    active_comments = [
        decode(Comment.from_dict, r, comments.directory)
        for r in comments.read_all()
        if r.get("ticketId") in ticket_ids
    ]

    document = ArchiveDocument(
        sprint=sprint.copy(),
        tickets=_merge(existing.tickets if existing else [], active_tickets),
        comments=_merge(existing.comments if existing else [], active_comments),
        archived_at=utcnow(),
    )

    try:
        path = archives.write(document)
    except StorageIOError as e:
        raise ArchivalError(
            f"Could not write archive for sprint {sprint.id}: {e}",
            sprint_id=sprint.id,
            stage="write",
            path=e.path,
        ) from e

    try:
        comments.remove({c.id for c in active_comments})
        tickets.remove({t.id for t in active_tickets})
    except StorageIOError as e:
        raise ArchivalError(
            f"Archive for sprint {sprint.id} was written to {path} but archived records "
            f"could not be removed from active storage: {e}. Complete the sprint again to finish.",
            sprint_id=sprint.id,
            stage="remove",
            path=e.path,
        ) from e

    logger.info(
        "Archived sprint %s: %d ticket(s), %d comment(s) -> %s",
        sprint.id,
        len(document.tickets),
        len(document.comments),
        path,
    )
    return document
