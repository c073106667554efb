"""
conftest.py
-----------
Shared pytest fixtures for Seedbank tests.

Provides fixtures for:
- Temporary data, asset and log directories
- A file-backed SQLite database with the schema created
- Session and manager instances
- Fake asset transport (no network access in tests)
- Seed file writers
"""
import json
import threading
from collections import Counter
from pathlib import Path
from typing import Dict
from unittest.mock import MagicMock

import pytest

from seedbank.core.config import ImportConfig
from seedbank.core.exceptions import AssetFetchError
from seedbank.core.logging_manager import SeedbankLogger


# ----- Fake transport -----

class FakeFetcher:
    """
    In-memory AssetFetcher.

    Serves bytes from a URL -> payload mapping, counts calls per URL and
    raises AssetFetchError for URLs it does not know.
    """

    def __init__(self, payloads: Dict[str, bytes] = None):
        self.payloads = dict(payloads or {})
        self.calls = Counter()
        self._lock = threading.Lock()

    def fetch(self, url: str) -> bytes:
        with self._lock:
            self.calls[url] += 1
        if url not in self.payloads:
            raise AssetFetchError(f"404 Not Found: {url}")
        return self.payloads[url]

    @property
    def total_calls(self) -> int:
        return sum(self.calls.values())


# ----- Path Fixtures -----

@pytest.fixture
def tmp_dir(tmp_path):
    """Temporary working directory for a test."""
    return tmp_path


@pytest.fixture
def data_dir(tmp_dir):
    """Directory holding JSON source files."""
    path = tmp_dir / "seed"
    path.mkdir()
    return path


@pytest.fixture
def asset_root(tmp_dir):
    """Directory assets are materialized into."""
    return tmp_dir / "public"


@pytest.fixture
def write_json(data_dir):
    """Write a JSON payload into the data directory and return its path."""

    def _write(name: str, payload) -> Path:
        path = data_dir / name
        path.write_text(json.dumps(payload), encoding="utf-8")
        return path

    return _write


# ----- Logging Fixtures -----

@pytest.fixture
def mock_logger():
    """MagicMock standing in for SeedbankLogger."""
    return MagicMock(spec=SeedbankLogger)


# ----- Configuration Fixtures -----

@pytest.fixture
def test_config(tmp_dir, data_dir, asset_root):
    """ImportConfig pointing every path into the temporary directory."""
    return ImportConfig(
        data_dir=data_dir,
        db_path=tmp_dir / "seedbank.db",
        asset_root=asset_root,
        log_dir=tmp_dir / "logs",
        retry_base_delay=0.0,
    ).validate()


# ----- Database Fixtures -----

@pytest.fixture
def test_db_path(tmp_dir):
    """Temporary test database path."""
    return tmp_dir / "seedbank.db"


@pytest.fixture
def test_db(test_db_path):
    """
    SeedbankDB instance with an initialized schema.

    Engine is disposed after the test.
    """
    from seedbank.database.manager import SeedbankDB

    db = SeedbankDB(f"sqlite:///{test_db_path}")
    db.initialize_schema()
    yield db
    db.dispose()


@pytest.fixture
def db_session(test_db):
    """
    Database session for tests.

    Work is rolled back after the test.
    """
    session = test_db.get_session()
    yield session
    session.rollback()
    session.close()


@pytest.fixture
def reference_manager(db_session):
    from seedbank.database.managers import ReferenceManager
    return ReferenceManager(db_session)


@pytest.fixture
def comic_manager(db_session):
    from seedbank.database.managers import ComicManager
    return ComicManager(db_session)


@pytest.fixture
def chapter_manager(db_session):
    from seedbank.database.managers import ChapterManager
    return ChapterManager(db_session)


@pytest.fixture
def user_manager(db_session):
    from seedbank.database.managers import UserManager
    return UserManager(db_session)


# ----- Asset Fixtures -----

@pytest.fixture
def fake_fetcher():
    """Empty FakeFetcher; tests add payloads as needed."""
    return FakeFetcher()


# ----- Sample records -----

@pytest.fixture
def comic_payload():
    """A scraped comic with alias fields and nested references."""
    return {
        "title": "Solo Leveling",
        "slug": "solo-leveling",
        "description": "A weak hunter grows stronger.",
        "status": "completed",
        "rating": "9.1",
        "author": {"name": "Chugong"},
        "artist": "Jang Sung-rak",
        "type": "Manhwa",
        "genres": [{"name": "Action"}, "Fantasy", "action"],
        "coverImage": "https://cdn.example.com/solo/cover.jpg",
        "images": [
            {"url": "https://cdn.example.com/solo/1.png"},
            "https://cdn.example.com/solo/2.png",
        ],
    }


@pytest.fixture
def chapter_payload():
    return {
        "comicslug": "solo-leveling",
        "title": "Chapter 12: The Return",
        "images": [
            "https://cdn.example.com/solo/12/p1.jpg",
            "https://cdn.example.com/solo/12/p2.jpg",
        ],
    }
