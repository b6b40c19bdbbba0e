"""Chunked append-only log of JSON records for one entity collection.

Each collection lives in its own directory as numbered segments::

    tickets/
    ├── chunk-000001.jsonl   # full (chunk_size records)
    └── chunk-000002.jsonl   # newest, receives appends

A segment holds one JSON object per line. Creates append to the newest
segment and open a new one once it holds ``chunk_size`` records. Updates and
deletes rewrite only the segment that owns the record.
"""

from __future__ import annotations

import json
import logging
import re
from pathlib import Path
from typing import Callable, Iterator, Optional, TypeVar

from ..errors import StorageIOError
from .files import append_line, atomic_write_text, read_text

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_CHUNK_SIZE = 1000
SEGMENT_PREFIX = "chunk-"
SEGMENT_SUFFIX = ".jsonl"
_SEGMENT_RE = re.compile(r"^chunk-(\d+)\.jsonl$")


def segment_name(number: int) -> str:
    return f"{SEGMENT_PREFIX}{number:06d}{SEGMENT_SUFFIX}"


class SegmentLog:
    """Chunked JSON-lines storage for a single collection.

    Usage:
        log = SegmentLog(Path("tkxr/tickets"), chunk_size=1000)

        log.append({"id": "tas-Ab12Cd34", "title": "Fix login"})
        for record in log.read_all():
            print(record["id"])

        log.replace("tas-Ab12Cd34", {...})   # rewrites the owning segment
        log.remove({"tas-Ab12Cd34"})
    """

    def __init__(self, directory: Path, chunk_size: int = DEFAULT_CHUNK_SIZE):
        """Initialize the log.

        Args:
            directory: Collection directory. Need not exist yet.
            chunk_size: Maximum number of records per segment.
        """
        if chunk_size < 1:
            raise ValueError("chunk_size must be at least 1")
        self.directory = directory
        self.chunk_size = chunk_size

    # ------------------------------------------------------------------
    # Reading
    # ------------------------------------------------------------------

    def segments(self) -> list[Path]:
        """Segment files in numeric order. A missing directory has none."""
        if not self.directory.is_dir():
            return []
        try:
            numbered = []
            for path in self.directory.iterdir():
                match = _SEGMENT_RE.match(path.name)
                if match and path.is_file():
                    numbered.append((int(match.group(1)), path))
        except OSError as e:
            raise StorageIOError(f"Failed to list {self.directory}: {e}", self.directory) from e
        return [path for _, path in sorted(numbered)]

    def read_segment(self, path: Path) -> list[dict]:
        """Decode every record of one segment."""
        text = read_text(path)
        if text is None:
            return []
        records = []
        for lineno, line in enumerate(text.splitlines(), start=1):
            if not line.strip():
                continue
            try:
                record = json.loads(line)
            except json.JSONDecodeError as e:
                raise StorageIOError(f"Corrupt record at {path}:{lineno}: {e.msg}", path) from e
            if not isinstance(record, dict) or "id" not in record:
                raise StorageIOError(f"Corrupt record at {path}:{lineno}: expected an object with an id", path)
            records.append(record)
        return records

    def iter_records(self) -> Iterator[tuple[Path, dict]]:
        for path in self.segments():
            for record in self.read_segment(path):
                yield path, record

    def read_all(self) -> list[dict]:
        """Every record of the collection, oldest segment first."""
        return [record for _, record in self.iter_records()]

    def get(self, record_id: str) -> Optional[dict]:
        for _, record in self.iter_records():
            if record["id"] == record_id:
                return record
        return None

    def locate(self, record_id: str) -> Optional[Path]:
        """Return the segment holding ``record_id``, if any."""
        for path, record in self.iter_records():
            if record["id"] == record_id:
                return path
        return None

    # ------------------------------------------------------------------
    # Writing
    # ------------------------------------------------------------------

    def append(self, record: dict) -> Path:
        """Append a record to the newest segment, rolling over when it is full.

        Returns:
            The segment the record was written to.
        """
        segments = self.segments()
        if segments:
            target = segments[-1]
            if len(self.read_segment(target)) >= self.chunk_size:
                number = int(_SEGMENT_RE.match(target.name).group(1)) + 1
                target = self.directory / segment_name(number)
                logger.info("Opening segment %s", target)
        else:
            target = self.directory / segment_name(1)

        append_line(target, _encode(record))
        return target

    def replace(self, record_id: str, record: dict) -> bool:
        """Overwrite a record in place. Returns False if it does not exist."""
        path = self.locate(record_id)
        if path is None:
            return False
        records = [record if r["id"] == record_id else r for r in self.read_segment(path)]
        self._rewrite(path, records)
        return True

    def remove(self, record_ids: set[str]) -> int:
        """Delete records by id, rewriting each affected segment once.

        Returns:
            Number of records removed.
        """
        if not record_ids:
            return 0
        removed = 0
        for path in self.segments():
            records = self.read_segment(path)
            kept = [r for r in records if r["id"] not in record_ids]
            if len(kept) != len(records):
                self._rewrite(path, kept)
                removed += len(records) - len(kept)
        return removed

    def _rewrite(self, path: Path, records: list[dict]) -> None:
        text = "".join(_encode(r) + "\n" for r in records)
        atomic_write_text(path, text)


def _encode(record: dict) -> str:
    return json.dumps(record, ensure_ascii=False, separators=(",", ":"))


def decode(model: Callable[[dict], T], record: dict, where: object = None) -> T:
    """Build a model from a stored record, reporting bad records as storage errors."""
    try:
        return model(record)
    except (KeyError, TypeError, ValueError) as e:
        location = f" in {where}" if where is not None else ""
        raise StorageIOError(f"Malformed record {record.get('id', '?')!r}{location}: {e!r}") from e
