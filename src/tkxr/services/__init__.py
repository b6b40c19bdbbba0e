"""Shared service layer for CLI and MCP."""

from .comments import add_comment, format_comment, list_comments
from .entities import delete_entity, describe_entity, find_entity
from .sprints import create_sprint, format_sprint, get_archive, list_sprints, update_sprint_status
from .tickets import (
    create_ticket,
    delete_ticket,
    filter_tickets,
    format_ticket,
    format_ticket_summary,
    get_ticket,
    list_tickets,
    sort_tickets,
    update_ticket,
    update_ticket_status,
)
from .users import create_user, format_user, list_users

__all__ = [
    "add_comment",
    "format_comment",
    "list_comments",
    "delete_entity",
    "describe_entity",
    "find_entity",
    "create_sprint",
    "format_sprint",
    "get_archive",
    "list_sprints",
    "update_sprint_status",
    "create_ticket",
    "delete_ticket",
    "filter_tickets",
    "format_ticket",
    "format_ticket_summary",
    "get_ticket",
    "list_tickets",
    "sort_tickets",
    "update_ticket",
    "update_ticket_status",
    "create_user",
    "format_user",
    "list_users",
]
