#!/usr/bin/env python3
"""
loader.py
---------
Discovery and decoding of JSON seed files.

Each record kind has an ordered list of glob patterns relative to the data
directory (exact names and prefixes such as ``comicsdata*.json``). A file
holds either a single object or an array of objects; an object wrapping
the array under the kind's plural name (``{"comics": [...]}``) or under
``data`` is unwrapped as well.

Unreadable or malformed files are logged and skipped; they never stop the
other files of the run.

Usage:
    loader = SourceLoader(Path("data/seed"), config.sources, logger)
    batch = loader.load(RecordKind.COMIC)
    for item in batch.records:
        validate(item.raw, RecordKind.COMIC)
"""
# --- Annotations ---
from __future__ import annotations

# --- Standard library imports ---
import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Sequence

# --- Local imports ---
from seedbank.core.exceptions import SourceLoadError
from seedbank.core.logging_manager import SeedbankLogger, safe_logger
from seedbank.utils.fs import find_source_files
from .models import RecordKind

_WRAPPER_KEYS = {
    RecordKind.USER: ("users", "data"),
    RecordKind.COMIC: ("comics", "data"),
    RecordKind.CHAPTER: ("chapters", "data"),
}


@dataclass(frozen=True)
class SourceRecord:
    """One raw record and where it came from."""

    raw: Any
    source: Path
    index: int

    @property
    def origin(self) -> str:
        return f"{self.source.name}[{self.index}]"


@dataclass
class LoadedBatch:
    """
    Records of one kind collected from every matching file.

    Attributes:
        kind: Record kind
        records: Raw records in file order
        files: Files read successfully
        failed_files: (path, reason) for files that were skipped
    """

    kind: RecordKind
    records: List[SourceRecord] = field(default_factory=list)
    files: List[Path] = field(default_factory=list)
    failed_files: List[tuple] = field(default_factory=list)

    def summary(self) -> str:
        return (
            f"{self.kind.value}: {len(self.records)} records from "
            f"{len(self.files)} files ({len(self.failed_files)} unreadable)"
        )


class SourceLoader:
    """
    Reads seed files per record kind.

    Attributes:
        data_dir: Directory the patterns are resolved against
        sources: Glob patterns per kind value
        logger: Optional logger
    """

    def __init__(
        self,
        data_dir: Path,
        sources: Mapping[str, Sequence[str]],
        logger: Optional[SeedbankLogger] = None,
    ) -> None:
        self.data_dir = Path(data_dir)
        self.sources: Dict[str, List[str]] = {k: list(v) for k, v in sources.items()}
        self.logger = logger

    def discover(self, kind: RecordKind) -> List[Path]:
        """Files matching the kind's patterns, without duplicates."""
        patterns = self.sources.get(RecordKind(kind).value, [])
        return find_source_files(self.data_dir, patterns)

    def read_file(self, path: Path, kind: RecordKind) -> List[Any]:
        """
        Decode one file into a list of raw records.

        Raises:
            SourceLoadError: If the file cannot be read or decoded, or does
                not hold an object or an array
        """
        try:
            with open(path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, UnicodeDecodeError, json.JSONDecodeError) as e:
            raise SourceLoadError(f"{path.name}: {e}") from e

        if isinstance(data, list):
            return data
        if isinstance(data, dict):
            if len(data) == 1:
                (key, wrapped), = data.items()
                if key in _WRAPPER_KEYS[RecordKind(kind)] and isinstance(wrapped, list):
                    return wrapped
            return [data]
        raise SourceLoadError(
            f"{path.name}: expected an object or an array, got {type(data).__name__}"
        )

    def load(self, kind: RecordKind, limit: Optional[int] = None) -> LoadedBatch:
        """
        Collect the raw records of a kind from every matching file.

        Args:
            kind: Record kind
            limit: Stop after this many records

        Returns:
            LoadedBatch (possibly empty)
        """
        kind = RecordKind(kind)
        log = safe_logger(self.logger)
        batch = LoadedBatch(kind=kind)

        paths = self.discover(kind)
        if not paths:
            log.log_warning(
                f"No {kind.value} source files found",
                {"data_dir": str(self.data_dir), "patterns": self.sources.get(kind.value, [])},
            )
            return batch

        for path in paths:
            if limit is not None and len(batch.records) >= limit:
                break
            try:
                items = self.read_file(path, kind)
            except SourceLoadError as e:
                log.log_warning(f"Skipping unreadable source file: {e}", {"path": str(path)})
                batch.failed_files.append((path, str(e)))
                continue

            batch.files.append(path)
            for index, raw in enumerate(items):
                if limit is not None and len(batch.records) >= limit:
                    break
                batch.records.append(SourceRecord(raw=raw, source=path, index=index))

            log.log_debug(
                f"Loaded {kind.value} file", {"path": str(path), "records": len(items)}
            )

        log.log_info(batch.summary())
        return batch
