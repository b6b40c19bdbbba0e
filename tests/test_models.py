"""Tests for entity records and date handling."""

from datetime import date, datetime, timedelta, timezone

import pytest

from tkxr.errors import ValidationError
from tkxr.models import (
    ArchiveDocument,
    Comment,
    Sprint,
    Ticket,
    User,
    format_datetime,
    parse_datetime,
    utcnow,
)
from tkxr.models.entities import apply_sprint_changes, normalize_labels


def make_ticket(**overrides) -> Ticket:
    fields = {"id": "tas-Ab12Cd34", "type": "task", "title": "Fix login"}
    fields.update(overrides)
    return Ticket(**fields)


class TestParseDatetime:
    """Tests for date coercion on load."""

    def test_iso_with_z(self):
        assert parse_datetime("2024-01-02T03:04:05Z") == datetime(2024, 1, 2, 3, 4, 5, tzinfo=timezone.utc)

    def test_iso_with_offset_converted_to_utc(self):
        result = parse_datetime("2024-01-02T05:04:05+02:00")
        assert result == datetime(2024, 1, 2, 3, 4, 5, tzinfo=timezone.utc)
        assert result.tzinfo == timezone.utc

    def test_date_only_string(self):
        assert parse_datetime("2024-01-02") == datetime(2024, 1, 2, tzinfo=timezone.utc)

    def test_yaml_values(self):
        """YAML loaders hand back date and naive datetime objects."""
        assert parse_datetime(date(2024, 1, 2)) == datetime(2024, 1, 2, tzinfo=timezone.utc)
        assert parse_datetime(datetime(2024, 1, 2, 3, 4)) == datetime(2024, 1, 2, 3, 4, tzinfo=timezone.utc)

    def test_epoch_seconds_and_millis(self):
        expected = datetime(2023, 11, 14, 22, 13, 20, tzinfo=timezone.utc)
        assert parse_datetime(1700000000) == expected
        assert parse_datetime(1700000000000) == expected

    def test_empty_is_none(self):
        assert parse_datetime(None) is None
        assert parse_datetime("") is None

    def test_garbage_raises(self):
        with pytest.raises(ValueError):
            parse_datetime("not a date")
        with pytest.raises(ValueError):
            parse_datetime(["2024"])

    def test_format_uses_z_suffix(self):
        value = datetime(2024, 1, 2, 3, 4, 5, tzinfo=timezone.utc)
        assert format_datetime(value) == "2024-01-02T03:04:05Z"
        assert format_datetime(None) is None


class TestTicket:
    """Tests for the Ticket record."""

    def test_to_dict_uses_camel_case_and_drops_empty(self):
        ticket = make_ticket()
        data = ticket.to_dict()

        assert data["id"] == "tas-Ab12Cd34"
        assert "createdAt" in data
        assert "updatedAt" in data
        assert "labels" not in data
        assert "assignee" not in data
        assert "priority" not in data

    def test_from_dict_coerces_dates(self):
        ticket = Ticket.from_dict({
            "id": "bug-Zz99Yy88",
            "type": "bug",
            "title": "Crash",
            "createdAt": "2024-01-02",
            "updatedAt": 1700000000000,
        })

        assert ticket.status == "todo"
        assert ticket.created_at == datetime(2024, 1, 2, tzinfo=timezone.utc)
        assert ticket.updated_at.year == 2023
        assert ticket.labels == []

    def test_from_dict_missing_updated_uses_created(self):
        ticket = Ticket.from_dict({
            "id": "tas-1",
            "type": "task",
            "title": "T",
            "createdAt": "2024-01-02T00:00:00Z",
        })
        assert ticket.updated_at == ticket.created_at

    def test_apply_changes(self):
        ticket = make_ticket()
        ticket.apply({"status": "progress", "labels": ["ui", "ui", " api "], "priority": "high"})

        assert ticket.status == "progress"
        assert ticket.labels == ["ui", "api"]
        assert ticket.priority == "high"

    def test_apply_clears_optional_field(self):
        ticket = make_ticket(assignee="usr-1")
        ticket.apply({"assignee": None})
        assert ticket.assignee is None

    def test_apply_rejects_type_change(self):
        ticket = make_ticket()
        with pytest.raises(ValidationError) as exc:
            ticket.apply({"type": "bug"})
        assert exc.value.field == "type"

    def test_apply_same_type_is_allowed(self):
        ticket = make_ticket()
        ticket.apply({"type": "task", "title": "Renamed"})
        assert ticket.title == "Renamed"

    def test_apply_rejects_bad_values(self):
        ticket = make_ticket()
        with pytest.raises(ValidationError):
            ticket.apply({"status": "blocked"})
        with pytest.raises(ValidationError):
            ticket.apply({"estimate": -1})
        with pytest.raises(ValidationError):
            ticket.apply({"title": "   "})
        with pytest.raises(ValidationError):
            ticket.apply({"color": "red"})

    def test_validation_error_is_value_error(self):
        with pytest.raises(ValueError):
            make_ticket().apply({"priority": "urgent"})


class TestTimestamps:
    """Tests for touch() and copy()."""

    def test_touch_is_strictly_increasing(self):
        future = utcnow() + timedelta(hours=1)
        ticket = make_ticket(created_at=future, updated_at=future)

        ticket.touch()

        assert ticket.updated_at > future

    def test_touch_uses_current_time(self):
        past = utcnow() - timedelta(days=1)
        ticket = make_ticket(created_at=past, updated_at=past)

        ticket.touch()

        assert ticket.updated_at > past + timedelta(hours=23)

    def test_copy_is_independent(self):
        ticket = make_ticket(labels=["a"])
        clone = ticket.copy()
        clone.labels.append("b")
        clone.title = "Other"

        assert ticket.labels == ["a"]
        assert ticket.title == "Fix login"


class TestOtherRecords:
    """Tests for User, Sprint, Comment and ArchiveDocument."""

    def test_user_display_name_falls_back_to_username(self):
        user = User.from_dict({"id": "usr-1", "username": "alice"})
        assert user.display_name == "alice"
        assert user.to_dict()["displayName"] == "alice"

    def test_sprint_dates(self):
        sprint = Sprint.from_dict({
            "id": "spr-1",
            "name": "Sprint 1",
            "startDate": "2024-03-01",
            "endDate": date(2024, 3, 14),
        })
        data = sprint.to_dict()

        assert sprint.status == "planning"
        assert data["startDate"] == "2024-03-01T00:00:00Z"
        assert data["endDate"] == "2024-03-14T00:00:00Z"

    def test_sprint_changes_reject_status(self):
        sprint = Sprint(id="spr-1", name="Sprint 1")
        with pytest.raises(ValidationError):
            apply_sprint_changes(sprint, {"status": "completed"})

    def test_sprint_changes(self):
        sprint = Sprint(id="spr-1", name="Sprint 1")
        apply_sprint_changes(sprint, {"goal": "Ship it", "end_date": "2024-03-14"})

        assert sprint.goal == "Ship it"
        assert sprint.end_date == datetime(2024, 3, 14, tzinfo=timezone.utc)

    def test_comment_keeps_ticket_id_key(self):
        comment = Comment(id="com-1", ticket_id="tas-1", author="usr-1", content="Hi")
        assert comment.to_dict()["ticketId"] == "tas-1"

    def test_archive_document_round_trip(self):
        document = ArchiveDocument(
            sprint=Sprint(id="spr-1", name="Sprint 1", status="completed"),
            tickets=[make_ticket(sprint="spr-1")],
            comments=[Comment(id="com-1", ticket_id="tas-Ab12Cd34", author="usr-1", content="Hi")],
        )

        loaded = ArchiveDocument.from_dict(document.to_dict())

        assert loaded.sprint == document.sprint
        assert loaded.ticket_ids() == {"tas-Ab12Cd34"}
        assert loaded.tickets == document.tickets
        assert "archivedAt" in document.to_dict()

    def test_normalize_labels_rejects_string(self):
        with pytest.raises(ValidationError):
            normalize_labels("ui")
