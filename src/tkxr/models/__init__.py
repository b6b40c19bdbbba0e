"""Data models for tkxr."""

from .entities import (
    PRIORITIES,
    SPRINT_STATUSES,
    TICKET_STATUSES,
    TICKET_TYPES,
    Comment,
    Priority,
    Sprint,
    SprintStatus,
    Ticket,
    TicketStatus,
    TicketType,
    User,
    format_datetime,
    parse_datetime,
    utcnow,
)
from .documents import STORE_VERSION, ArchiveDocument, ProjectInfo, ProjectSnapshot

__all__ = [
    "PRIORITIES",
    "SPRINT_STATUSES",
    "TICKET_STATUSES",
    "TICKET_TYPES",
    "STORE_VERSION",
    "ArchiveDocument",
    "Comment",
    "Priority",
    "ProjectInfo",
    "ProjectSnapshot",
    "Sprint",
    "SprintStatus",
    "Ticket",
    "TicketStatus",
    "TicketType",
    "User",
    "format_datetime",
    "parse_datetime",
    "utcnow",
]
