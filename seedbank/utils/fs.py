#!/usr/bin/env python3
"""
fs.py
-------------------
Filesystem utilities for source discovery, hashing and atomic writes.

Functions:
    find_source_files: Discover source files by a list of glob patterns
    get_content_hash: SHA-256 of an in-memory payload
    atomic_write_bytes: Write bytes via temp file + os.replace
    atomic_write_json: Serialize JSON via atomic_write_bytes

Usage:
    from seedbank.utils.fs import find_source_files, atomic_write_json

    files = find_source_files(Path("data/seed"), ["comics.json", "comicsdata*.json"])
    atomic_write_json(Path("public/.seed-image-cache.json"), {"https://...": "/comics/a.webp"})
"""
# --- Annotations ---
from __future__ import annotations

# --- Standard library imports ---
import hashlib
import json
import os
import tempfile
from pathlib import Path
from typing import Any, Iterable, List


def find_source_files(directory: Path, patterns: Iterable[str]) -> List[Path]:
    """
    Find files matching any of the patterns, without duplicates.

    Results keep pattern order; files matched by one pattern are sorted by
    name so numbered dumps (comicsdata1.json, comicsdata2.json, ...) load in
    a stable order.
    """
    directory = Path(directory)
    if not directory.exists():
        return []

    seen = set()
    found: List[Path] = []
    for pattern in patterns:
        for path in sorted(directory.glob(pattern)):
            if path.is_file() and path not in seen:
                seen.add(path)
                found.append(path)
    return found


def get_content_hash(data: bytes) -> str:
    """Hexadecimal SHA-256 of a payload."""
    return hashlib.sha256(data).hexdigest()


def atomic_write_bytes(path: Path, data: bytes) -> None:
    """
    Write bytes so readers never observe a partial file.

    The payload goes to a temporary file in the same directory which then
    replaces the target in one rename.
    """
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(dir=path.parent, prefix=f".{path.name}.", suffix=".tmp")
    try:
        with os.fdopen(fd, "wb") as f:
            f.write(data)
        os.replace(tmp_name, path)
    except BaseException:
        if os.path.exists(tmp_name):
            os.unlink(tmp_name)
        raise


def atomic_write_json(path: Path, payload: Any) -> None:
    """Serialize payload as indented, key-sorted JSON and write atomically."""
    text = json.dumps(payload, indent=2, sort_keys=True, ensure_ascii=False)
    atomic_write_bytes(path, (text + "\n").encode("utf-8"))
