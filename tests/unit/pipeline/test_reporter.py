"""
Tests for RunReporter counters, error summaries and finalization.
"""
import json
from concurrent.futures import ThreadPoolExecutor
from unittest.mock import MagicMock, patch

from seedbank.pipeline.assets import DedupIndex
from seedbank.pipeline.models import (
    AssetOutcome,
    RecordKind,
    UpsertOutcome,
    UpsertResult,
)
from seedbank.pipeline.reporter import RunReporter


def result(outcome, kind=RecordKind.COMIC, key="solo-leveling", message=None):
    return UpsertResult(kind, key, outcome, 0.01, message)


class TestCounters:

    def test_per_kind_counts(self):
        reporter = RunReporter()
        reporter.record(result(UpsertOutcome.CREATED))
        reporter.record(result(UpsertOutcome.UPDATED))
        reporter.record(result(UpsertOutcome.SKIPPED, RecordKind.CHAPTER, "x#1", "Comic not found"))

        stats = reporter.finalize()
        assert stats.counts("comic").to_dict() == {"created": 1, "updated": 1, "skipped": 0, "errored": 0}
        assert stats.counts("chapter").skipped == 1
        assert stats.counts("user").total == 0
        assert stats.has_errors is False

    def test_start_kind_registers_empty_kind(self):
        reporter = RunReporter()
        reporter.start_kind(RecordKind.USER)
        assert "user" in reporter.finalize().kinds

    def test_image_counters(self):
        reporter = RunReporter()
        for outcome in [
            AssetOutcome.MATERIALIZED,
            AssetOutcome.MATERIALIZED,
            AssetOutcome.DEDUPLICATED,
            AssetOutcome.CACHED,
            AssetOutcome.FALLBACK,
            AssetOutcome.PASSTHROUGH,
        ]:
            reporter.record_asset(outcome)

        images = reporter.finalize().images
        assert images.to_dict() == {"downloaded": 2, "deduplicated": 1, "cached": 1, "failed": 1}

    def test_thread_safe(self):
        reporter = RunReporter()
        with ThreadPoolExecutor(max_workers=8) as pool:
            list(pool.map(lambda _: reporter.record(result(UpsertOutcome.CREATED)), range(500)))
            list(pool.map(lambda _: reporter.record_asset(AssetOutcome.CACHED), range(500)))

        stats = reporter.finalize()
        assert stats.created == 500
        assert stats.images.cached == 500


class TestErrors:

    def test_errored_sets_has_errors(self):
        reporter = RunReporter()
        reporter.record(result(UpsertOutcome.ERRORED, message="Database operation failed"))
        stats = reporter.finalize()
        assert stats.has_errors
        assert str(stats.errors[0]) == "[comic] solo-leveling (errored): Database operation failed"

    def test_summaries_are_capped(self):
        reporter = RunReporter(max_errors=3)
        for i in range(5):
            reporter.record(result(UpsertOutcome.SKIPPED, key=f"c{i}", message="invalid"))

        stats = reporter.finalize()
        assert [e.key for e in stats.errors] == ["c0", "c1", "c2"]
        assert stats.errors_truncated == 2
        assert stats.skipped == 5


class TestFinalize:

    def test_saves_index(self):
        index = MagicMock()
        stats = RunReporter().finalize(index)
        index.save.assert_called_once()
        assert stats.index_saved is True

    def test_index_failure_is_logged_not_raised(self, mock_logger):
        index = MagicMock()
        index.save.side_effect = OSError("read-only file system")
        stats = RunReporter(mock_logger).finalize(index)

        assert stats.index_saved is False
        mock_logger.log_error.assert_called_once()

    def test_unchanged_index_is_not_rewritten(self, tmp_path):
        path = tmp_path / "index.json"
        path.write_text(json.dumps({"https://cdn/a.png": "/a.png"}), encoding="utf-8")
        index = DedupIndex(path)
        index.load()

        with patch.object(DedupIndex, "save") as save:
            stats = RunReporter().finalize(index)

        save.assert_not_called()
        assert stats.index_saved is False

    def test_changed_index_is_written(self, tmp_path):
        path = tmp_path / "index.json"
        path.write_text("{}", encoding="utf-8")
        index = DedupIndex(path)
        index.load()
        index.set("https://cdn/a.png", "/a.png")

        stats = RunReporter().finalize(index)

        assert stats.index_saved is True
        assert json.loads(path.read_text(encoding="utf-8")) == {"https://cdn/a.png": "/a.png"}

    def test_missing_index_file_is_created(self, tmp_path):
        index = DedupIndex(tmp_path / "index.json")
        index.load()

        assert RunReporter().finalize(index).index_saved is True
        assert json.loads((tmp_path / "index.json").read_text(encoding="utf-8")) == {}

    def test_dry_run_does_not_save(self):
        index = MagicMock()
        stats = RunReporter().finalize(index, dry_run=True)
        index.save.assert_not_called()
        assert stats.dry_run is True
        assert "dry run" in stats.summary()

    def test_summary_and_dict(self):
        reporter = RunReporter()
        reporter.record(result(UpsertOutcome.CREATED))
        reporter.record_asset(AssetOutcome.MATERIALIZED)
        stats = reporter.finalize()

        assert "comic: 1 created, 0 updated, 0 skipped, 0 errored" in stats.summary()
        assert "images: 1 downloaded" in stats.summary()
        assert stats.to_dict()["kinds"]["comic"]["created"] == 1
