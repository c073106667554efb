"""
test_reference_manager.py
--------------------------
Unit tests for ReferenceManager find-or-create operations.

Covers case-insensitive lookups across the four reference tables and the
single re-lookup after a unique-constraint race.
"""
import pytest
from sqlalchemy.exc import IntegrityError

from seedbank.core.exceptions import ValidationError
from seedbank.database.models import Artist, Author, ComicType, Genre


class TestModelFor:

    @pytest.mark.parametrize(
        "kind, model", [("author", Author), ("artist", Artist), ("type", ComicType), ("genre", Genre)]
    )
    def test_known_kinds(self, reference_manager, kind, model):
        assert reference_manager.model_for(kind) is model

    def test_unknown_kind(self, reference_manager):
        with pytest.raises(ValidationError, match="publisher"):
            reference_manager.model_for("publisher")


class TestGetByName:

    def test_returns_none_when_not_found(self, reference_manager):
        assert reference_manager.get_by_name("author", "Nobody") is None

    def test_case_and_whitespace_insensitive(self, reference_manager, db_session):
        created, _ = reference_manager.get_or_create("author", "Jane Doe")
        db_session.flush()
        assert reference_manager.get_by_name("author", "  JANE   doe ").id == created.id

    def test_empty_name(self, reference_manager):
        assert reference_manager.get_by_name("genre", "   ") is None


class TestGetOrCreate:

    def test_creates_once(self, reference_manager):
        first, first_created = reference_manager.get_or_create("genre", "Action")
        second, second_created = reference_manager.get_or_create("genre", "action")
        assert first.id == second.id
        assert (first_created, second_created) == (True, False)
        assert reference_manager.count("genre") == 1

    def test_keeps_first_casing(self, reference_manager):
        reference_manager.get_or_create("artist", "Jang Sung-rak")
        reference_manager.get_or_create("artist", "JANG SUNG-RAK")
        assert reference_manager.count("artist") == 1
        assert reference_manager.get_by_name("artist", "jang sung-rak").name == "Jang Sung-rak"

    def test_kinds_are_independent(self, reference_manager):
        author, _ = reference_manager.get_or_create("author", "Chugong")
        artist, _ = reference_manager.get_or_create("artist", "Chugong")
        assert isinstance(author, Author)
        assert isinstance(artist, Artist)

    def test_empty_name_rejected(self, reference_manager):
        with pytest.raises(ValidationError):
            reference_manager.get_or_create("type", "  ")

    def test_race_relooks_up_once(self, reference_manager, db_session, monkeypatch):
        """A unique violation on flush should fall back to the row another worker wrote."""
        winner = Genre(name="Drama")
        db_session.add(winner)
        db_session.commit()

        calls = {"lookups": 0}
        original = type(reference_manager).get_by_name.__wrapped__

        def stale_first_lookup(self, kind, name):
            calls["lookups"] += 1
            if calls["lookups"] == 1:
                return None
            return original(self, kind, name)

        monkeypatch.setattr(type(reference_manager), "get_by_name", stale_first_lookup)

        entity, created = reference_manager.get_or_create("genre", "Drama")
        assert entity.id == winner.id
        assert created is False
        assert calls["lookups"] == 2
