"""Tests for id generation."""

from tkxr.ids import ID_ALPHABET, ID_TOKEN_LENGTH, id_prefix, new_id


class TestIdPrefix:
    """Tests for id_prefix."""

    def test_first_three_letters(self):
        assert id_prefix("task") == "tas"
        assert id_prefix("bug") == "bug"
        assert id_prefix("sprint") == "spr"
        assert id_prefix("comment") == "com"

    def test_user_prefix(self):
        """Users get the usr prefix rather than use."""
        assert id_prefix("user") == "usr"

    def test_case_insensitive(self):
        assert id_prefix("Task") == "tas"


class TestNewId:
    """Tests for new_id."""

    def test_shape(self):
        entity_id = new_id("user")
        prefix, token = entity_id.split("-")

        assert prefix == "usr"
        assert len(token) == ID_TOKEN_LENGTH
        assert all(c in ID_ALPHABET for c in token)

    def test_ids_are_distinct(self):
        ids = [new_id("task") for _ in range(1000)]
        assert len(set(ids)) == len(ids)
