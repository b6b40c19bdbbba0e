"""Tests for the chunked segment log and its file primitives."""

from pathlib import Path

import pytest

from tkxr.errors import StorageIOError
from tkxr.store.files import atomic_write_text, read_text
from tkxr.store.segments import SegmentLog, segment_name


@pytest.fixture
def log(tmp_path: Path) -> SegmentLog:
    """A log with room for two records per segment."""
    return SegmentLog(tmp_path / "tickets", chunk_size=2)


def fill(log: SegmentLog, count: int) -> list[str]:
    ids = [f"tas-{n:08d}" for n in range(count)]
    for record_id in ids:
        log.append({"id": record_id, "title": f"Ticket {record_id}"})
    return ids


class TestReading:
    """Tests for reading segments."""

    def test_missing_directory_is_empty(self, log: SegmentLog):
        assert log.segments() == []
        assert log.read_all() == []
        assert log.get("tas-00000000") is None
        assert not log.directory.exists()

    def test_segment_name(self):
        assert segment_name(1) == "chunk-000001.jsonl"
        assert segment_name(42) == "chunk-000042.jsonl"

    def test_ignores_unrelated_files(self, log: SegmentLog):
        fill(log, 1)
        (log.directory / "notes.txt").write_text("hello")
        (log.directory / ".chunk-000001.jsonl.abc.tmp").write_text("{broken")

        assert [p.name for p in log.segments()] == ["chunk-000001.jsonl"]

    def test_segments_in_numeric_order(self, log: SegmentLog):
        log.directory.mkdir(parents=True)
        (log.directory / "chunk-000010.jsonl").write_text('{"id": "b"}\n')
        (log.directory / "chunk-000002.jsonl").write_text('{"id": "a"}\n')

        assert [r["id"] for r in log.read_all()] == ["a", "b"]

    def test_corrupt_line_raises(self, log: SegmentLog):
        fill(log, 1)
        path = log.segments()[0]
        with open(path, "a", encoding="utf-8") as f:
            f.write("{not json\n")

        with pytest.raises(StorageIOError) as exc:
            log.read_all()
        assert exc.value.path == path
        assert ":2:" in str(exc.value)

    def test_record_without_id_raises(self, log: SegmentLog):
        log.directory.mkdir(parents=True)
        (log.directory / segment_name(1)).write_text('{"title": "no id"}\n')

        with pytest.raises(StorageIOError):
            log.read_all()

    def test_blank_lines_are_skipped(self, log: SegmentLog):
        log.directory.mkdir(parents=True)
        (log.directory / segment_name(1)).write_text('{"id": "a"}\n\n{"id": "b"}\n')

        assert [r["id"] for r in log.read_all()] == ["a", "b"]


class TestAppend:
    """Tests for appends and segment rollover."""

    def test_rollover_at_chunk_size(self, log: SegmentLog):
        ids = fill(log, 5)

        assert [p.name for p in log.segments()] == [segment_name(1), segment_name(2), segment_name(3)]
        assert [r["id"] for r in log.read_all()] == ids
        assert len(log.read_segment(log.segments()[-1])) == 1

    def test_append_returns_segment(self, log: SegmentLog):
        first = log.append({"id": "a"})
        log.append({"id": "b"})
        third = log.append({"id": "c"})

        assert first.name == segment_name(1)
        assert third.name == segment_name(2)

    def test_one_json_object_per_line(self, log: SegmentLog):
        fill(log, 2)
        lines = log.segments()[0].read_text(encoding="utf-8").splitlines()

        assert len(lines) == 2
        assert lines[0].startswith('{"id":"tas-00000000"')

    def test_appends_go_to_newest_segment_after_removal(self, log: SegmentLog):
        ids = fill(log, 4)
        log.remove({ids[0]})
        log.append({"id": "new"})

        assert log.locate("new").name == segment_name(3)

    def test_unicode_round_trip(self, log: SegmentLog):
        log.append({"id": "a", "title": "Überprüfung ✓"})
        assert log.get("a")["title"] == "Überprüfung ✓"

    def test_chunk_size_must_be_positive(self, tmp_path: Path):
        with pytest.raises(ValueError):
            SegmentLog(tmp_path / "x", chunk_size=0)


class TestRewrite:
    """Tests for replace and remove."""

    def test_replace_rewrites_only_owning_segment(self, log: SegmentLog):
        ids = fill(log, 4)
        second = log.segments()[1]
        before = second.read_text(encoding="utf-8")

        assert log.replace(ids[0], {"id": ids[0], "title": "Renamed"})

        assert log.get(ids[0])["title"] == "Renamed"
        assert second.read_text(encoding="utf-8") == before
        assert [r["id"] for r in log.read_all()] == ids

    def test_replace_missing_returns_false(self, log: SegmentLog):
        fill(log, 1)
        assert log.replace("nope", {"id": "nope"}) is False
        assert log.get("nope") is None

    def test_remove_counts_records(self, log: SegmentLog):
        ids = fill(log, 5)

        assert log.remove({ids[0], ids[3], "missing"}) == 2
        assert [r["id"] for r in log.read_all()] == [ids[1], ids[2], ids[4]]
        assert log.remove(set()) == 0

    def test_rewrite_leaves_no_temp_files(self, log: SegmentLog):
        ids = fill(log, 3)
        log.replace(ids[1], {"id": ids[1], "title": "x"})
        log.remove({ids[2]})

        assert list(log.directory.glob("*.tmp")) == []
        assert list(log.directory.glob(".*.tmp")) == []


class TestFiles:
    """Tests for the durable file helpers."""

    def test_atomic_write_creates_parents(self, tmp_path: Path):
        target = tmp_path / "a" / "b" / "file.yaml"
        atomic_write_text(target, "x: 1\n")

        assert read_text(target) == "x: 1\n"

    def test_atomic_write_replaces(self, tmp_path: Path):
        target = tmp_path / "file.txt"
        atomic_write_text(target, "old")
        atomic_write_text(target, "new")

        assert read_text(target) == "new"

    def test_read_missing_is_none(self, tmp_path: Path):
        assert read_text(tmp_path / "missing") is None

    def test_write_failure_raises_storage_error(self, tmp_path: Path):
        blocker = tmp_path / "blocker"
        blocker.write_text("a file, not a directory")

        with pytest.raises(StorageIOError):
            atomic_write_text(blocker / "child.txt", "x")
