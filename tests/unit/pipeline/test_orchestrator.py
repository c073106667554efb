"""
Tests for the UpsertOrchestrator per-record pipeline and outcome mapping.
"""
import json
import threading
import time
from collections import Counter
from dataclasses import replace

import pytest

from seedbank.core.config import MAX_CONCURRENCY
from seedbank.core.exceptions import (
    DatabaseError,
    FatalPersistenceError,
    TransientPersistenceError,
)
from seedbank.database.managers import ChapterManager, ComicManager, ReferenceManager, UserManager
from seedbank.database.models import Chapter, ChapterImage, Comic, ComicImage
from seedbank.pipeline.models import RecordKind, UpsertOutcome
from seedbank.pipeline import orchestrator as orchestrator_module
from seedbank.pipeline.orchestrator import UpsertOrchestrator


@pytest.fixture
def make_orchestrator(test_config, test_db, fake_fetcher, mock_logger):
    def _make(fetcher=None, **overrides):
        config = replace(test_config, **overrides) if overrides else test_config
        return UpsertOrchestrator.from_config(
            config, mock_logger, db=test_db, fetcher=fetcher or fake_fetcher
        )

    return _make


@pytest.fixture
def orchestrator(make_orchestrator):
    return make_orchestrator()


def comic(title, cover=None, **extra):
    raw = {"title": title}
    if cover:
        raw["coverImage"] = cover
    raw.update(extra)
    return raw


def outcomes(results):
    return [r.outcome for r in results]


class InFlightFetcher:
    """
    Serves distinct bytes for every URL after a short delay and records the
    peak number of fetches in flight, overall and per record folder.
    """

    def __init__(self, delay: float = 0.02):
        self.delay = delay
        self.peak_per_record = 0
        self._active = Counter()
        self._lock = threading.Lock()

    def fetch(self, url: str) -> bytes:
        record = url.rsplit("/", 1)[0]
        with self._lock:
            self._active[record] += 1
            self.peak_per_record = max(self.peak_per_record, self._active[record])
        try:
            time.sleep(self.delay)
            return url.encode()
        finally:
            with self._lock:
                self._active[record] -= 1


def track_records_in_flight(orchestrator):
    """Wrap process() and return a dict whose 'peak' is the most records seen at once."""
    original = orchestrator.process
    lock = threading.Lock()
    state = {"active": 0, "peak": 0}

    def tracked(kind, item):
        with lock:
            state["active"] += 1
            state["peak"] = max(state["peak"], state["active"])
        try:
            return original(kind, item)
        finally:
            with lock:
                state["active"] -= 1

    orchestrator.process = tracked
    return state


def gallery_comics(count, pages):
    return [
        comic(f"Comic {i}", images=[f"https://cdn/{i}/{j}.png" for j in range(pages)])
        for i in range(count)
    ]


class TestComics:

    def test_created_then_updated(self, make_orchestrator, comic_payload, fake_fetcher):
        fake_fetcher.payloads.update({url: url.encode() for url in [
            "https://cdn.example.com/solo/cover.jpg",
            "https://cdn.example.com/solo/1.png",
            "https://cdn.example.com/solo/2.png",
        ]})

        first = make_orchestrator().run(RecordKind.COMIC, [comic_payload])
        second = make_orchestrator().run(RecordKind.COMIC, [comic_payload])

        assert outcomes(first) == [UpsertOutcome.CREATED]
        assert outcomes(second) == [UpsertOutcome.UPDATED]

    def test_persists_references_images_and_genres(self, orchestrator, comic_payload, fake_fetcher, test_db):
        fake_fetcher.payloads.update({
            "https://cdn.example.com/solo/cover.jpg": b"cover",
            "https://cdn.example.com/solo/1.png": b"one",
            "https://cdn.example.com/solo/2.png": b"two",
        })
        orchestrator.run(RecordKind.COMIC, [comic_payload])

        with test_db.session_scope() as session:
            stored = ComicManager(session).get_by_key("solo-leveling")
            assert stored.author.name == "Chugong"
            assert stored.artist.name == "Jang Sung-rak"
            assert stored.comic_type.name == "Manhwa"
            assert sorted(g.name for g in stored.genres) == ["Action", "Fantasy"]
            assert stored.image.startswith("/comics/covers/")
            gallery = [i.image_url for i in sorted(stored.images, key=lambda i: i.image_order)]
            assert len(gallery) == 2
            assert all(path.startswith("/comics/solo-leveling/") for path in gallery)

    def test_missing_references_use_placeholders(self, orchestrator, test_db):
        orchestrator.run(RecordKind.COMIC, [comic("Orphan", author="_", artist="")])

        with test_db.session_scope() as session:
            stored = ComicManager(session).get_by_key("orphan")
            assert stored.author.name == "Unknown Author"
            assert stored.artist.name == "Unknown Artist"
            assert stored.comic_type.name == "Unknown Type"
            assert stored.image == "/placeholder-comic.jpg"

    def test_rerun_replaces_children(self, make_orchestrator, fake_fetcher, test_db):
        fake_fetcher.payloads.update({"https://a/1.png": b"1", "https://a/2.png": b"2"})
        make_orchestrator().run(RecordKind.COMIC, [comic("A", images=["https://a/1.png", "https://a/2.png"])])
        make_orchestrator().run(RecordKind.COMIC, [comic("A", images=["https://a/2.png"])])

        with test_db.session_scope() as session:
            assert session.query(ComicImage).count() == 1

    def test_same_author_spelled_differently(self, orchestrator, test_db):
        orchestrator.run(
            RecordKind.COMIC,
            [comic("A", author="Jane Doe"), comic("B", author="jane doe"), comic("C", author=" JANE  DOE ")],
        )
        with test_db.session_scope() as session:
            assert ReferenceManager(session).count("author") == 1

    def test_shared_cover_url_downloads_once(self, orchestrator, fake_fetcher):
        fake_fetcher.payloads.update({"https://cdn/shared.jpg": b"S", "https://cdn/own.jpg": b"O"})
        orchestrator.run(
            RecordKind.COMIC,
            [comic("A", "https://cdn/shared.jpg"), comic("B", "https://cdn/shared.jpg"),
             comic("C", "https://cdn/own.jpg")],
            concurrency=3,
        )

        images = orchestrator.reporter.finalize().images
        assert (images.downloaded, images.cached, images.deduplicated, images.failed) == (2, 1, 0, 0)
        assert fake_fetcher.calls["https://cdn/shared.jpg"] == 1

    def test_identical_bytes_different_urls(self, orchestrator, fake_fetcher):
        fake_fetcher.payloads.update({"https://a/x.jpg": b"same", "https://b/y.jpg": b"same"})
        orchestrator.run(
            RecordKind.COMIC, [comic("A", "https://a/x.jpg"), comic("B", "https://b/y.jpg")], concurrency=1
        )

        images = orchestrator.reporter.finalize().images
        assert (images.downloaded, images.deduplicated) == (1, 1)

    def test_failed_download_uses_placeholder(self, orchestrator, test_db):
        results = orchestrator.run(RecordKind.COMIC, [comic("A", "https://cdn/404.jpg")])

        assert outcomes(results) == [UpsertOutcome.CREATED]
        with test_db.session_scope() as session:
            assert ComicManager(session).get_by_key("a").image == "/placeholder-comic.jpg"
        assert orchestrator.reporter.finalize().images.failed == 1


class TestOutcomeMapping:

    def test_invalid_record_is_skipped(self, orchestrator):
        results = orchestrator.run(RecordKind.COMIC, [comic("Good"), {"slug": "no-title"}, "junk"])
        assert outcomes(results) == [UpsertOutcome.CREATED, UpsertOutcome.SKIPPED, UpsertOutcome.SKIPPED]
        assert "title" in results[1].message

        stats = orchestrator.reporter.finalize()
        assert stats.counts("comic").skipped == 2
        assert stats.has_errors is False

    def test_chapter_without_parent_is_skipped(self, orchestrator, chapter_payload, fake_fetcher):
        results = orchestrator.run(RecordKind.CHAPTER, [chapter_payload])

        assert outcomes(results) == [UpsertOutcome.SKIPPED]
        assert "Comic not found" in results[0].message
        assert fake_fetcher.total_calls == 0

    def test_chapter_with_parent(self, orchestrator, chapter_payload, fake_fetcher, test_db):
        fake_fetcher.payloads.update({url: url.encode() for url in chapter_payload["images"]})
        orchestrator.run(RecordKind.COMIC, [comic("Solo Leveling")])
        results = orchestrator.run(RecordKind.CHAPTER, [chapter_payload])

        assert outcomes(results) == [UpsertOutcome.CREATED]
        with test_db.session_scope() as session:
            chapter = session.query(Chapter).one()
            assert chapter.chapter_number == 12.0
            pages = session.query(ChapterImage).order_by(ChapterImage.page_number).all()
            assert [p.page_number for p in pages] == [1, 2]
            assert pages[0].image_url.startswith("/comics/solo-leveling/chapters/12/")

    def test_transient_error_is_retried(self, orchestrator, monkeypatch):
        original = ComicManager.upsert
        calls = []

        def flaky(self, values):
            calls.append(values["slug"])
            if len(calls) == 1:
                raise TransientPersistenceError("database is locked")
            return original(self, values)

        monkeypatch.setattr(ComicManager, "upsert", flaky)
        results = orchestrator.run(RecordKind.COMIC, [comic("A")])

        assert outcomes(results) == [UpsertOutcome.CREATED]
        assert calls == ["a", "a"]

    def test_persistent_error_is_errored(self, orchestrator, monkeypatch, mock_logger):
        def broken(self, values):
            raise DatabaseError("Data integrity violation: CHECK constraint failed")

        monkeypatch.setattr(ComicManager, "upsert", broken)
        results = orchestrator.run(RecordKind.COMIC, [comic("A"), comic("B")])

        assert outcomes(results) == [UpsertOutcome.ERRORED, UpsertOutcome.ERRORED]
        assert orchestrator.reporter.finalize().has_errors
        mock_logger.log_error.assert_called()

    def test_one_failure_does_not_affect_others(self, orchestrator, monkeypatch, test_db):
        original = ComicManager.upsert

        def fail_one(self, values):
            if values["slug"] == "c":
                raise DatabaseError("boom")
            return original(self, values)

        monkeypatch.setattr(ComicManager, "upsert", fail_one)
        results = orchestrator.run(RecordKind.COMIC, [comic(t) for t in "ABCDE"], concurrency=3)

        assert [r.outcome for r in results].count(UpsertOutcome.CREATED) == 4
        with test_db.session_scope() as session:
            assert session.query(Comic).count() == 4

    def test_non_finite_number_skips_only_that_record(self, orchestrator, test_db):
        orchestrator.run(RecordKind.COMIC, [comic("Solo")])
        chapters = [{"comicslug": "solo", "chapterNumber": n} for n in range(1, 6)]
        chapters.append(json.loads('{"comicslug": "solo", "chapterNumber": 99, "views": 1e400}'))

        results = orchestrator.run(RecordKind.CHAPTER, chapters)

        assert outcomes(results) == [UpsertOutcome.CREATED] * 5 + [UpsertOutcome.SKIPPED]
        assert "views" in results[-1].message
        with test_db.session_scope() as session:
            assert session.query(Chapter).count() == 5

    def test_nan_chapter_number_is_skipped(self, orchestrator, test_db):
        orchestrator.run(RecordKind.COMIC, [comic("Solo")])
        raw = json.loads('{"comicslug": "solo", "chapterNumber": NaN}')

        results = orchestrator.run(RecordKind.CHAPTER, [raw])

        assert outcomes(results) == [UpsertOutcome.SKIPPED]
        assert orchestrator.reporter.finalize().has_errors is False
        with test_db.session_scope() as session:
            assert session.query(Chapter).count() == 0

    def test_unexpected_validation_failure_is_errored(self, orchestrator, monkeypatch):
        original = orchestrator_module.validate

        def fragile(raw, kind):
            if raw.get("title") == "B":
                raise RuntimeError("unexpected shape")
            return original(raw, kind)

        monkeypatch.setattr(orchestrator_module, "validate", fragile)
        results = orchestrator.run(RecordKind.COMIC, [comic("A"), comic("B"), comic("C")])

        assert outcomes(results) == [UpsertOutcome.CREATED, UpsertOutcome.ERRORED, UpsertOutcome.CREATED]
        assert results[1].key == "B"
        assert "RuntimeError" in results[1].message

    def test_unexpected_key_failure_is_errored(self, orchestrator, monkeypatch):
        def broken(raw, kind):
            raise KeyError("slug")

        monkeypatch.setattr(orchestrator_module, "describe_raw", broken)
        results = orchestrator.run(RecordKind.COMIC, [comic("A")])

        assert outcomes(results) == [UpsertOutcome.ERRORED]
        assert results[0].key == "<unknown>"

    def test_transient_error_in_parent_check_is_retried(self, orchestrator, monkeypatch):
        orchestrator.run(RecordKind.COMIC, [comic("Solo")])
        original = ChapterManager.require_comic
        calls = []

        def flaky(self, comic_slug):
            calls.append(comic_slug)
            if len(calls) == 1:
                raise TransientPersistenceError("database is locked")
            return original(self, comic_slug)

        monkeypatch.setattr(ChapterManager, "require_comic", flaky)
        results = orchestrator.run(RecordKind.CHAPTER, [{"comicslug": "solo", "chapterNumber": 1}])

        assert outcomes(results) == [UpsertOutcome.CREATED]
        assert calls == ["solo", "solo", "solo"]

    def test_fatal_error_aborts_run(self, orchestrator, monkeypatch):
        calls = []

        def unreachable(self, values, password=None, default_password=None):
            calls.append(values["email"])
            raise FatalPersistenceError("unable to open database file")

        monkeypatch.setattr(UserManager, "upsert", unreachable)
        users = [{"email": f"user{i}@example.com"} for i in range(10)]

        with pytest.raises(FatalPersistenceError):
            orchestrator.run(RecordKind.USER, users, concurrency=1)
        assert len(calls) < 10


class TestUsers:

    def test_user_avatar_and_password(self, orchestrator, fake_fetcher, test_db):
        fake_fetcher.payloads["https://cdn/avatar.png"] = b"avatar"
        orchestrator.run(
            RecordKind.USER,
            [{"email": "A@Example.com", "avatar": "https://cdn/avatar.png"}, {"email": "b@example.com"}],
        )

        with test_db.session_scope() as session:
            manager = UserManager(session)
            assert manager.get_by_key("a@example.com").image.startswith("/users/")
            assert manager.get_by_key("b@example.com").image == "/shadcn.jpg"


class TestRunSources:

    def test_imports_in_dependency_order(self, orchestrator, write_json, chapter_payload, test_config):
        write_json("chapters.json", [chapter_payload])
        write_json("comics.json", [comic("Solo Leveling")])
        write_json("users.json", {"users": [{"email": "a@example.com"}]})

        stats = orchestrator.run_sources()

        assert list(stats.kinds) == ["user", "comic", "chapter"]
        assert stats.created == 3
        assert stats.index_saved is True
        assert test_config.resolved_index_path.exists()

    def test_selected_kinds_and_limit(self, make_orchestrator, write_json):
        write_json("comics.json", [comic(t) for t in "ABCDE"])
        write_json("users.json", [{"email": "a@example.com"}])

        stats = make_orchestrator(limit=2).run_sources(["comic"])
        assert list(stats.kinds) == ["comic"]
        assert stats.counts("comic").created == 2

    def test_dry_run_writes_nothing(self, make_orchestrator, write_json, fake_fetcher, test_db, test_config):
        write_json("comics.json", [comic("A", "https://cdn/a.jpg"), {"slug": "invalid"}])

        stats = make_orchestrator(dry_run=True).run_sources(["comic"])

        assert stats.dry_run is True
        assert stats.counts("comic").created == 1
        assert stats.counts("comic").skipped == 1
        assert fake_fetcher.total_calls == 0
        assert not test_config.resolved_index_path.exists()
        with test_db.session_scope() as session:
            assert session.query(Comic).count() == 0

    def test_dry_run_reports_updates(self, make_orchestrator, write_json):
        write_json("comics.json", [comic("A")])
        make_orchestrator().run_sources(["comic"])

        stats = make_orchestrator(dry_run=True).run_sources(["comic"])
        assert stats.counts("comic").updated == 1

    def test_cache_stats(self, orchestrator):
        orchestrator.run(RecordKind.COMIC, [comic("A", genres=["Action", "action"])])
        stats = orchestrator.stats()
        assert stats["references"]["created"] >= 4
        assert set(stats["assets"]) == {"cached", "deduplicated", "materialized", "fallback", "passthrough"}


class TestConcurrency:

    def test_records_and_assets_stay_within_bounds(self, make_orchestrator):
        fetcher = InFlightFetcher()
        orchestrator = make_orchestrator(fetcher=fetcher, concurrency=3, asset_concurrency=4)
        in_flight = track_records_in_flight(orchestrator)

        results = orchestrator.run(RecordKind.COMIC, gallery_comics(8, pages=5))

        assert outcomes(results) == [UpsertOutcome.CREATED] * 8
        assert 1 < in_flight["peak"] <= 3
        assert fetcher.peak_per_record <= orchestrator.config.effective_asset_concurrency == 2

    def test_override_below_config_tightens_asset_bound(self, make_orchestrator):
        fetcher = InFlightFetcher()
        orchestrator = make_orchestrator(fetcher=fetcher, concurrency=4, asset_concurrency=3)
        in_flight = track_records_in_flight(orchestrator)

        orchestrator.run(RecordKind.COMIC, gallery_comics(4, pages=4), concurrency=2)

        assert in_flight["peak"] <= 2
        assert orchestrator.deduplicator.max_workers == 1
        assert fetcher.peak_per_record == 1

    def test_override_is_clamped(self, make_orchestrator):
        fetcher = InFlightFetcher(delay=0.01)
        orchestrator = make_orchestrator(fetcher=fetcher, concurrency=2, asset_concurrency=4)
        in_flight = track_records_in_flight(orchestrator)

        results = orchestrator.run(RecordKind.COMIC, gallery_comics(24, pages=1), concurrency=64)

        assert len(results) == 24
        assert in_flight["peak"] <= MAX_CONCURRENCY
        assert orchestrator.deduplicator.max_workers == 4

    def test_zero_override_falls_back_to_config(self, make_orchestrator):
        orchestrator = make_orchestrator(concurrency=1)
        in_flight = track_records_in_flight(orchestrator)

        orchestrator.run(RecordKind.COMIC, [comic(t) for t in "ABC"], concurrency=0)

        assert in_flight["peak"] == 1
