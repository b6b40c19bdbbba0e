"""Error types raised by the tkxr storage layer.

Not-found is never an error: lookups, updates and deletes return ``None`` or
``False`` for unknown ids. Exceptions are reserved for bad input and for
failures of the files backing the store.
"""

from __future__ import annotations

from pathlib import Path
from typing import Optional


class TkxrError(Exception):
    """Base class for tkxr errors."""

    kind = "error"


class ValidationError(TkxrError, ValueError):
    """A create or update was called with invalid field values."""

    kind = "validation_error"

    def __init__(self, message: str, field: Optional[str] = None):
        super().__init__(message)
        self.field = field


class StorageIOError(TkxrError):
    """Reading or writing the backing files failed, or their content is corrupt."""

    kind = "storage_error"

    def __init__(self, message: str, path: Optional[Path] = None):
        super().__init__(message)
        self.path = path


class ArchivalError(StorageIOError):
    """Sprint archival stopped part way.

    ``stage`` is ``"write"`` when the archive document could not be written
    (active storage untouched) or ``"remove"`` when the archive exists but the
    archived records are still partly active. Completing the sprint again
    finishes the move without duplicating records.
    """

    kind = "archival_error"

    def __init__(self, message: str, sprint_id: str, stage: str, path: Optional[Path] = None):
        super().__init__(message, path)
        self.sprint_id = sprint_id
        self.stage = stage
