#!/usr/bin/env python3
"""
orchestrator.py
---------------
Concurrent, idempotent import of validated records.

The UpsertOrchestrator drives one record at a time through:

    validate -> resolve references -> materialize assets
             -> upsert by natural key -> replace child rows

with at most ``concurrency`` records in flight. Each record commits in its
own session; its failure is recorded and never affects other records.

Outcomes:
    - created / updated: row inserted or refreshed
    - skipped: validation failure, unresolvable reference or missing parent
    - errored: persistence failure after retries
    - FatalPersistenceError (database unreachable) aborts the whole run:
      pending records are cancelled and the error is re-raised

Kinds are processed in dependency order (users, comics, chapters) so
chapters always see the comics of the same run.

Usage:
    orchestrator = UpsertOrchestrator.from_config(config, logger)
    stats = orchestrator.run_sources(["comic", "chapter"])
    print(stats.summary())
"""
# --- Annotations ---
from __future__ import annotations

# --- Standard library imports ---
import threading
import time
from concurrent.futures import FIRST_EXCEPTION, ThreadPoolExecutor, wait
from typing import Any, Dict, Iterable, List, Optional, Sequence, Union

# --- Local imports ---
from seedbank.core.config import ImportConfig, asset_bound, clamp_concurrency
from seedbank.core.exceptions import (
    DatabaseError,
    FatalPersistenceError,
    ParentNotFoundError,
    ReferenceResolutionError,
    SeedbankError,
    ValidationError,
)
from seedbank.core.logging_manager import SeedbankLogger, safe_logger
from seedbank.database.decorators import execute_with_retry
from seedbank.database.manager import SeedbankDB
from seedbank.database.managers import ChapterManager, ComicManager, UserManager
from seedbank.utils.slugify import slugify
from .assets import (
    AssetDeduplicator,
    AssetFetcher,
    DedupIndex,
    HttpAssetFetcher,
    LocalAssetStore,
)
from .entity_resolver import ReferenceResolver
from .loader import SourceLoader, SourceRecord
from .models import RecordKind, RunStatistics, UpsertOutcome, UpsertResult
from .reporter import RunReporter
from .schemas import (
    ChapterRecord,
    ComicRecord,
    UserRecord,
    ValidatedRecord,
    describe_raw,
    format_number,
    validate,
)

RawItem = Union[SourceRecord, Any]


class UpsertOrchestrator:
    """
    Runs the per-record pipeline over a bounded worker pool.

    Attributes:
        config: Run configuration
        db: Database manager
        resolver: Reference cache
        deduplicator: Asset cache
        reporter: Statistics sink
        loader: Source file reader (used by run_sources)
        logger: Optional logger
    """

    def __init__(
        self,
        config: ImportConfig,
        db: SeedbankDB,
        resolver: ReferenceResolver,
        deduplicator: AssetDeduplicator,
        reporter: RunReporter,
        loader: Optional[SourceLoader] = None,
        logger: Optional[SeedbankLogger] = None,
    ) -> None:
        self.config = config
        self.db = db
        self.resolver = resolver
        self.deduplicator = deduplicator
        self.reporter = reporter
        self.loader = loader or SourceLoader(config.data_dir, config.sources, logger)
        self.logger = logger
        self._abort = threading.Event()
        self._preview_db = True

    @classmethod
    def from_config(
        cls,
        config: ImportConfig,
        logger: Optional[SeedbankLogger] = None,
        db: Optional[SeedbankDB] = None,
        fetcher: Optional[AssetFetcher] = None,
    ) -> "UpsertOrchestrator":
        """
        Wire a fresh set of per-run caches from configuration.

        Args:
            config: Validated run configuration
            logger: Optional logger shared by every component
            db: Database manager (created from config when None)
            fetcher: Asset transport (HTTP when None)
        """
        db = db or SeedbankDB(config.resolved_database_url, logger)
        reporter = RunReporter(logger)
        index = DedupIndex(config.resolved_index_path, logger)
        deduplicator = AssetDeduplicator(
            fetcher or HttpAssetFetcher(config.http_timeout, config.max_asset_bytes),
            LocalAssetStore(config.asset_root, config.asset_url_prefix),
            index,
            logger,
            max_workers=config.effective_asset_concurrency,
            on_outcome=reporter.record_asset,
        )
        resolver = ReferenceResolver(
            db, logger, config.retry_attempts, config.retry_base_delay
        )
        return cls(config, db, resolver, deduplicator, reporter, logger=logger)

    # -------------------------------------------------------------------------
    # Public API
    # -------------------------------------------------------------------------

    def run_sources(self, kinds: Optional[Sequence[str]] = None) -> RunStatistics:
        """
        Load, validate and import the requested kinds in dependency order.

        Args:
            kinds: Kind names to import (all when None or empty)

        Returns:
            Final RunStatistics

        Raises:
            FatalPersistenceError: If the database becomes unusable
        """
        log = safe_logger(self.logger)
        dry_run = self.config.dry_run
        ordered = RecordKind.ordered(list(kinds) if kinds else None)
        index = self.deduplicator.index

        log.log_operation(
            "run_start",
            {"kinds": [k.value for k in ordered], "dry_run": dry_run,
             "concurrency": self.config.concurrency},
        )

        if dry_run:
            self._preview_db = self.db.exists()
        else:
            self.db.check_connection()
            self.db.initialize_schema()
            index.load()

        try:
            for kind in ordered:
                batch = self.loader.load(kind, self.config.limit)
                self.reporter.start_kind(kind)
                self.run(kind, batch.records)
        except FatalPersistenceError as e:
            log.log_error(e, {"operation": "run_sources"})
            self.reporter.finalize(None if dry_run else index, dry_run)
            raise

        return self.reporter.finalize(None if dry_run else index, dry_run)

    def run(
        self,
        kind: RecordKind,
        records: Iterable[RawItem],
        concurrency: Optional[int] = None,
    ) -> List[UpsertResult]:
        """
        Process raw records of one kind with bounded concurrency.

        Args:
            kind: Record kind of every item
            records: SourceRecords or raw decoded JSON values
            concurrency: Records in flight (config value when None), limited
                to 1..MAX_CONCURRENCY; the asset bound is derived from it

        Returns:
            Results in input order

        Raises:
            FatalPersistenceError: After cancelling every pending record
        """
        kind = RecordKind(kind)
        items = list(records)
        bound = clamp_concurrency(concurrency or self.config.concurrency)
        self.deduplicator.max_workers = asset_bound(bound, self.config.asset_concurrency)
        workers = min(bound, len(items) or 1)
        log = safe_logger(self.logger)
        self._abort.clear()

        log.log_info(
            f"Importing {len(items)} {kind.value} records",
            {"workers": workers, "asset_workers": self.deduplicator.max_workers},
        )

        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix=f"seed-{kind.value}") as pool:
            futures = [pool.submit(self.process, kind, item) for item in items]
            done, pending = wait(futures, return_when=FIRST_EXCEPTION)

            failed = [f for f in done if f.exception() is not None]
            if failed:
                self._abort.set()
                for future in pending:
                    future.cancel()
                raise failed[0].exception()

        return [f.result() for f in futures]

    def process(self, kind: RecordKind, item: RawItem) -> Optional[UpsertResult]:
        """
        Run one record through the pipeline and report its outcome.

        Returns:
            UpsertResult, or None when the run was aborted first

        Raises:
            FatalPersistenceError: The only error that escapes a record
        """
        if self._abort.is_set():
            return None

        log = safe_logger(self.logger)
        start = time.monotonic()
        raw = item.raw if isinstance(item, SourceRecord) else item
        origin = item.origin if isinstance(item, SourceRecord) else None
        key = "<unknown>"

        def finish(outcome: UpsertOutcome, message: Optional[str] = None) -> UpsertResult:
            result = UpsertResult(kind, key, outcome, time.monotonic() - start, message)
            self.reporter.record(result)
            return result

        try:
            key = describe_raw(raw, kind)
            record, error = validate(raw, kind)
            if error is not None:
                log.log_warning(
                    f"Skipping invalid {kind.value}: {error}", {"key": key, "origin": origin}
                )
                return finish(UpsertOutcome.SKIPPED, str(error))

            key = record.key_text
            if self.config.dry_run:
                outcome = self._preview(record)
            elif isinstance(record, UserRecord):
                outcome = self._import_user(record)
            elif isinstance(record, ComicRecord):
                outcome = self._import_comic(record)
            else:
                outcome = self._import_chapter(record)
        except FatalPersistenceError:
            raise
        except (ValidationError, ReferenceResolutionError, ParentNotFoundError) as e:
            log.log_warning(f"Skipping {kind.value}: {e}", {"key": key, "origin": origin})
            return finish(UpsertOutcome.SKIPPED, str(e))
        except SeedbankError as e:
            log.log_error(e, {"kind": kind.value, "key": key, "origin": origin})
            return finish(UpsertOutcome.ERRORED, str(e))
        except Exception as e:
            log.log_error(e, {"kind": kind.value, "key": key, "origin": origin})
            return finish(UpsertOutcome.ERRORED, f"{type(e).__name__}: {e}")

        log.log_debug(f"{kind.value} {outcome.value}", {"key": key})
        return finish(outcome)

    # -------------------------------------------------------------------------
    # Per-kind pipelines
    # -------------------------------------------------------------------------

    def _persist(self, operation) -> Any:
        return execute_with_retry(
            operation,
            max_attempts=self.config.retry_attempts,
            base_delay=self.config.retry_base_delay,
            logger=self.logger,
        )

    @staticmethod
    def _outcome(created: bool) -> UpsertOutcome:
        return UpsertOutcome.CREATED if created else UpsertOutcome.UPDATED

    def _import_user(self, record: UserRecord) -> UpsertOutcome:
        image = self.deduplicator.materialize(
            record.image_url, "users", self.config.placeholder_for("user")
        )
        values = {
            "email": record.email,
            "name": record.name,
            "role": record.role,
            "image": image,
            "email_verified": record.email_verified,
            "status": record.status,
        }

        def persist() -> bool:
            with self.db.session_scope() as session:
                _, created = UserManager(session, self.logger).upsert(
                    values, record.password, self.config.default_password
                )
                return created

        return self._outcome(self._persist(persist))

    def _import_comic(self, record: ComicRecord) -> UpsertOutcome:
        author_id = self.resolver.resolve("author", record.author)
        artist_id = self.resolver.resolve("artist", record.artist)
        type_id = self.resolver.resolve("type", record.type_name)
        genre_ids = self.resolver.resolve_many("genre", record.genres)

        placeholder = self.config.placeholder_for("comic")
        cover = self.deduplicator.materialize(record.cover_url, "comics/covers", placeholder)
        gallery = self.deduplicator.materialize_many(
            record.image_urls, f"comics/{slugify(record.slug)}", placeholder
        )

        values = {
            "title": record.title,
            "slug": record.slug,
            "description": record.description,
            "status": record.status,
            "rating": record.rating,
            "serialization": record.serialization,
            "url": record.url,
            "image": cover,
            "publication_date": record.publication_date,
            "author_id": author_id,
            "artist_id": artist_id,
            "type_id": type_id,
        }

        def persist() -> bool:
            with self.db.session_scope() as session:
                manager = ComicManager(session, self.logger)
                comic_id, created = manager.upsert(values)
                manager.replace_images(comic_id, gallery)
                manager.replace_genres(comic_id, genre_ids)
                return created

        return self._outcome(self._persist(persist))

    def _import_chapter(self, record: ChapterRecord) -> UpsertOutcome:
        # Parent check before any download
        def check_parent() -> int:
            with self.db.session_scope() as session:
                return ChapterManager(session, self.logger).require_comic(record.comic_slug)

        self._persist(check_parent)

        folder = (
            f"comics/{slugify(record.comic_slug)}/chapters/"
            f"{format_number(record.chapter_number)}"
        )
        pages = self.deduplicator.materialize_many(
            record.image_urls, folder, self.config.placeholder_for("chapter")
        )

        def persist() -> bool:
            with self.db.session_scope() as session:
                manager = ChapterManager(session, self.logger)
                comic_id = manager.require_comic(record.comic_slug)
                chapter_id, created = manager.upsert(
                    {
                        "comic_id": comic_id,
                        "chapter_number": record.chapter_number,
                        "title": record.title,
                        "slug": record.slug,
                        "release_date": record.release_date,
                        "views": record.views,
                        "url": record.url,
                    }
                )
                manager.replace_images(chapter_id, pages)
                return created

        return self._outcome(self._persist(persist))

    def _preview(self, record: ValidatedRecord) -> UpsertOutcome:
        """
        Outcome a real run would report, from a read-only key lookup.

        A database without the schema yet counts every record as new.
        """
        if not self._preview_db:
            return UpsertOutcome.CREATED

        def lookup() -> Any:
            with self.db.session_scope() as session:
                if isinstance(record, UserRecord):
                    return UserManager(session).get_by_key(record.email)
                if isinstance(record, ComicRecord):
                    return ComicManager(session).get_by_key(record.slug)
                return ChapterManager(session).get_by_key(
                    record.comic_slug, record.chapter_number
                )

        try:
            existing = self._persist(lookup)
        except FatalPersistenceError:
            raise
        except DatabaseError:
            existing = None
        return self._outcome(existing is None)

    def stats(self) -> Dict[str, Any]:
        """Cache statistics of the current run."""
        resolver = self.resolver.stats()
        return {
            "references": {
                "cached": len(self.resolver),
                "hits": resolver.hits,
                "misses": resolver.misses,
                "created": resolver.created,
            },
            "assets": self.deduplicator.stats(),
        }
