#!/usr/bin/env python3
"""
locks.py
--------
Per-key locking for worker threads.

``KeyedLocks`` hands out one ``threading.Lock`` per key so that two
workers touching the same URL, content hash or reference name serialize,
while workers on different keys proceed in parallel.

Usage:
    locks = KeyedLocks()
    with locks.hold("author:jane doe"):
        ...
"""
# --- Annotations ---
from __future__ import annotations

# --- Standard library imports ---
import threading
from contextlib import contextmanager
from typing import Dict, Hashable, Iterator


class KeyedLocks:
    """Lazily created lock per key; the registry itself is lock protected."""

    def __init__(self) -> None:
        self._guard = threading.Lock()
        self._locks: Dict[Hashable, threading.Lock] = {}

    def get(self, key: Hashable) -> threading.Lock:
        with self._guard:
            lock = self._locks.get(key)
            if lock is None:
                lock = threading.Lock()
                self._locks[key] = lock
            return lock

    @contextmanager
    def hold(self, key: Hashable) -> Iterator[None]:
        lock = self.get(key)
        with lock:
            yield

    def __len__(self) -> int:
        with self._guard:
            return len(self._locks)
