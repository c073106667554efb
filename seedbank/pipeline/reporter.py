#!/usr/bin/env python3
"""
reporter.py
-----------
Thread-safe accumulation of run statistics.

Workers report every record outcome and every asset outcome here; the
orchestrator calls finalize() once at the end, which persists the durable
image index and returns a RunStatistics snapshot.
"""
# --- Annotations ---
from __future__ import annotations

# --- Standard library imports ---
import threading
import time
from typing import Dict, List, Optional

# --- Local imports ---
from seedbank.core.logging_manager import SeedbankLogger, safe_logger
from .assets import DedupIndex
from .models import (
    AssetOutcome,
    ErrorSummary,
    ImageCounts,
    KindCounts,
    RecordKind,
    RunStatistics,
    UpsertOutcome,
    UpsertResult,
)

MAX_ERROR_SUMMARIES = 50

_IMAGE_COUNTERS = {
    AssetOutcome.MATERIALIZED: "downloaded",
    AssetOutcome.DEDUPLICATED: "deduplicated",
    AssetOutcome.CACHED: "cached",
    AssetOutcome.FALLBACK: "failed",
}


class RunReporter:
    """
    Collects counters and error summaries of one run.

    Attributes:
        logger: Optional logger
        max_errors: Cap on retained error summaries
    """

    def __init__(
        self, logger: Optional[SeedbankLogger] = None, max_errors: int = MAX_ERROR_SUMMARIES
    ) -> None:
        self.logger = logger
        self.max_errors = max_errors
        self._lock = threading.Lock()
        self._kinds: Dict[str, KindCounts] = {}
        self._images = ImageCounts()
        self._errors: List[ErrorSummary] = []
        self._errors_truncated = 0
        self._started = time.monotonic()

    def start_kind(self, kind: RecordKind) -> None:
        """Register a kind so it appears in the summary even with no records."""
        with self._lock:
            self._kinds.setdefault(RecordKind(kind).value, KindCounts())

    def record(self, result: UpsertResult) -> None:
        kind = RecordKind(result.kind).value
        with self._lock:
            counts = self._kinds.setdefault(kind, KindCounts())
            name = result.outcome.value
            setattr(counts, name, getattr(counts, name) + 1)

            if result.outcome in (UpsertOutcome.SKIPPED, UpsertOutcome.ERRORED):
                if len(self._errors) < self.max_errors:
                    self._errors.append(
                        ErrorSummary(kind, result.key, name, result.message or "")
                    )
                else:
                    self._errors_truncated += 1

    def record_asset(self, outcome: AssetOutcome) -> None:
        counter = _IMAGE_COUNTERS.get(outcome)
        if counter is None:
            return
        with self._lock:
            setattr(self._images, counter, getattr(self._images, counter) + 1)

    def snapshot(self, dry_run: bool = False) -> RunStatistics:
        """Current statistics without touching the index."""
        with self._lock:
            return RunStatistics(
                kinds={k: KindCounts(**v.to_dict()) for k, v in self._kinds.items()},
                images=ImageCounts(**self._images.to_dict()),
                elapsed=time.monotonic() - self._started,
                errors=list(self._errors),
                errors_truncated=self._errors_truncated,
                dry_run=dry_run,
            )

    def finalize(self, index: Optional[DedupIndex] = None, dry_run: bool = False) -> RunStatistics:
        """
        Persist the image index and return the final statistics.

        An index that did not change and already exists on disk is not
        rewritten. Index write failures are logged; the run result stands
        regardless.
        """
        log = safe_logger(self.logger)
        stats = self.snapshot(dry_run)

        if index is not None and not dry_run and (index.dirty or not index.path.exists()):
            try:
                index.save()
                stats.index_saved = True
            except OSError as e:
                log.log_error(e, {"operation": "save_image_index", "path": str(index.path)})

        log.log_operation("run_complete", stats.to_dict())
        if stats.errors_truncated:
            log.log_warning(
                f"{stats.errors_truncated} additional failures not listed",
                {"max_errors": self.max_errors},
            )
        return stats
