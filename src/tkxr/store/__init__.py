"""Flat-file persistence for tkxr.

Usage:
    from tkxr.store import FileStorage

    storage = FileStorage(Path("tkxr"))
    ticket = storage.create_ticket("bug", "Dashboard crash")
"""

from .archive import ArchiveStore, archive_sprint
from .base import ENTITY_KINDS, EntityRef, Storage
from .segments import DEFAULT_CHUNK_SIZE, SegmentLog
from .storage import DEFAULT_DATA_DIR, FileStorage

__all__ = [
    "ArchiveStore",
    "archive_sprint",
    "DEFAULT_CHUNK_SIZE",
    "DEFAULT_DATA_DIR",
    "ENTITY_KINDS",
    "EntityRef",
    "FileStorage",
    "SegmentLog",
    "Storage",
]
