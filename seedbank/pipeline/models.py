#!/usr/bin/env python3
"""
models.py
---------
Data models shared by the seed pipeline stages.

Models:
    - RecordKind: The three importable record kinds, in dependency order
    - UpsertOutcome: Per-record result category
    - AssetOutcome: How one asset was materialized
    - UpsertResult: Outcome of one record
    - ErrorSummary: One reported failure
    - KindCounts: created/updated/skipped/errored for one kind
    - ImageCounts: downloaded/deduplicated/cached/failed
    - RunStatistics: Snapshot returned at the end of a run
"""
# --- Annotations ---
from __future__ import annotations

# --- Standard library imports ---
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional


class RecordKind(str, Enum):
    """Importable record kinds. Declaration order is import order."""

    USER = "user"
    COMIC = "comic"
    CHAPTER = "chapter"

    @classmethod
    def choices(cls) -> List[str]:
        return [kind.value for kind in cls]

    @classmethod
    def ordered(cls, kinds: Optional[List[str]] = None) -> List["RecordKind"]:
        """
        Requested kinds in dependency order (all kinds when None).

        Examples:
            >>> RecordKind.ordered(["chapter", "comic"])
            [<RecordKind.COMIC: 'comic'>, <RecordKind.CHAPTER: 'chapter'>]
        """
        if not kinds:
            return list(cls)
        wanted = {cls(k) for k in kinds}
        return [kind for kind in cls if kind in wanted]


class UpsertOutcome(str, Enum):
    CREATED = "created"
    UPDATED = "updated"
    SKIPPED = "skipped"
    ERRORED = "errored"


class AssetOutcome(str, Enum):
    """Terminal state of one asset materialization."""

    CACHED = "cached"
    DEDUPLICATED = "deduplicated"
    MATERIALIZED = "materialized"
    FALLBACK = "fallback"
    PASSTHROUGH = "passthrough"


@dataclass(frozen=True)
class UpsertResult:
    """
    Outcome of one record.

    Attributes:
        kind: Record kind
        key: Natural key rendered as text
        outcome: created / updated / skipped / errored
        duration: Seconds spent on the record
        message: Reason for skipped/errored outcomes
    """

    kind: RecordKind
    key: str
    outcome: UpsertOutcome
    duration: float = 0.0
    message: Optional[str] = None


@dataclass(frozen=True)
class ErrorSummary:
    """One skipped or errored record, as shown in the run summary."""

    kind: str
    key: str
    outcome: str
    message: str

    def __str__(self) -> str:
        return f"[{self.kind}] {self.key} ({self.outcome}): {self.message}"


@dataclass
class KindCounts:
    created: int = 0
    updated: int = 0
    skipped: int = 0
    errored: int = 0

    @property
    def total(self) -> int:
        return self.created + self.updated + self.skipped + self.errored

    def to_dict(self) -> Dict[str, int]:
        return {
            "created": self.created,
            "updated": self.updated,
            "skipped": self.skipped,
            "errored": self.errored,
        }


@dataclass
class ImageCounts:
    """
    Asset counters.

    Attributes:
        downloaded: Novel content fetched and stored
        deduplicated: Fetched content identical to an already stored asset
        cached: URL already known (this run or the durable index)
        failed: Fallback used after a fetch or write failure
    """

    downloaded: int = 0
    deduplicated: int = 0
    cached: int = 0
    failed: int = 0

    def to_dict(self) -> Dict[str, int]:
        return {
            "downloaded": self.downloaded,
            "deduplicated": self.deduplicated,
            "cached": self.cached,
            "failed": self.failed,
        }


@dataclass
class RunStatistics:
    """
    Aggregate statistics of one run.

    Built by RunReporter.finalize(); constructed fresh per invocation.

    Attributes:
        kinds: Counters per record kind
        images: Asset counters
        elapsed: Wall-clock seconds
        errors: Error summaries (capped)
        errors_truncated: Number of summaries dropped by the cap
        index_saved: Whether the durable index was written
        dry_run: Whether the run wrote nothing
    """

    kinds: Dict[str, KindCounts] = field(default_factory=dict)
    images: ImageCounts = field(default_factory=ImageCounts)
    elapsed: float = 0.0
    errors: List[ErrorSummary] = field(default_factory=list)
    errors_truncated: int = 0
    index_saved: bool = False
    dry_run: bool = False

    def counts(self, kind: str) -> KindCounts:
        return self.kinds.get(kind, KindCounts())

    def _total(self, name: str) -> int:
        return sum(getattr(c, name) for c in self.kinds.values())

    @property
    def created(self) -> int:
        return self._total("created")

    @property
    def updated(self) -> int:
        return self._total("updated")

    @property
    def skipped(self) -> int:
        return self._total("skipped")

    @property
    def errored(self) -> int:
        return self._total("errored")

    @property
    def has_errors(self) -> bool:
        """True when any record errored; drives the CLI exit status."""
        return self.errored > 0

    def summary(self) -> str:
        """
        Get human-readable multi-line summary.

        Returns:
            Formatted summary string
        """
        lines = []
        for kind, counts in self.kinds.items():
            lines.append(
                f"{kind}: {counts.created} created, {counts.updated} updated, "
                f"{counts.skipped} skipped, {counts.errored} errored"
            )
        lines.append(
            f"images: {self.images.downloaded} downloaded, "
            f"{self.images.deduplicated} deduplicated, "
            f"{self.images.cached} cached, {self.images.failed} failed"
        )
        lines.append(f"elapsed: {self.elapsed:.2f}s")
        if self.dry_run:
            lines.append("dry run: nothing was written")
        return "\n".join(lines)

    def to_dict(self) -> Dict[str, Any]:
        """
        Convert to dictionary for JSON output.

        Returns:
            Dictionary with all counters and error summaries
        """
        return {
            "kinds": {kind: counts.to_dict() for kind, counts in self.kinds.items()},
            "images": self.images.to_dict(),
            "elapsed": self.elapsed,
            "errors": [
                {"kind": e.kind, "key": e.key, "outcome": e.outcome, "message": e.message}
                for e in self.errors
            ],
            "errors_truncated": self.errors_truncated,
            "index_saved": self.index_saved,
            "dry_run": self.dry_run,
        }
