"""Pagination helpers for list responses."""

from __future__ import annotations

from typing import Any, Optional, Sequence


def build_pagination(total_count: int, limit: Optional[int], offset: int) -> dict:
    """Build pagination metadata. A limit of None means "everything after offset"."""
    if limit is None:
        limit = max(total_count - offset, 0)
    has_more = offset + limit < total_count
    return {
        "total_count": total_count,
        "limit": limit,
        "offset": offset,
        "has_more": has_more,
        "next_offset": offset + limit if has_more else None,
    }


def paginate(items: Sequence[Any], limit: Optional[int], offset: int = 0) -> tuple[list[Any], dict]:
    """Slice items and return pagination metadata."""
    offset = max(offset, 0)
    end = None if limit is None else offset + limit
    page = list(items[offset:end])
    return page, build_pagination(len(items), limit, offset)
