#!/usr/bin/env python3
"""
assets.py
---------
Content-addressed materialization of remote images.

The AssetDeduplicator turns a source URL into a stored asset path while
avoiding redundant transfers, both inside a run and across runs.

State machine per asset:
    1. Session URL cache hit                       -> CACHED
    2. Durable index hit whose file still exists   -> CACHED
       (a stale entry is dropped and the flow continues)
    3. Fetch bytes, SHA-256 them; hash already stored (this run, or a
       file named by that hash in the durable index) -> DEDUPLICATED
    4. Novel content: store under <folder>/<hash[:24]><ext> -> MATERIALIZED
    5. Any fetch/write failure                     -> FALLBACK (placeholder path)

Values that are not http(s) URLs (already-local paths) pass through
unchanged; empty values resolve to the fallback.

Guarantees:
    - One fetch per URL per run (per-URL locks + session cache, failures
      included)
    - One store per content hash (per-hash locks + hash cache)
    - Never raises to the caller

Transport:
    - AssetFetcher.fetch(url) -> bytes        (HttpAssetFetcher: requests)
    - AssetStore.store(bytes, hint) -> path   (LocalAssetStore: filesystem)
    - AssetStore.exists(path) -> bool

Durable index:
    DedupIndex, a flat JSON object mapping source URL -> stored path,
    loaded at start and written atomically at the end of the run (only
    when it changed). Content hashes are recovered from the stored file
    names, so identical bytes behind a new URL are not stored again.

Usage:
    index = DedupIndex(config.resolved_index_path, logger)
    index.load()
    dedup = AssetDeduplicator(HttpAssetFetcher(), LocalAssetStore(root), index)
    cover = dedup.materialize(url, "comics/covers", "/placeholder-comic.jpg")
    pages = dedup.materialize_many(urls, "comics/solo-leveling/chapters/12", fallback)
"""
# --- Annotations ---
from __future__ import annotations

# --- Standard library imports ---
import json
import re
import threading
from collections import Counter
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path, PurePosixPath
from typing import Callable, Dict, Iterable, List, Optional, Protocol, Set
from urllib.parse import unquote, urlparse

# --- Third party imports ---
import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

# --- Local imports ---
from seedbank import __version__
from seedbank.core.exceptions import AssetError, AssetFetchError, AssetWriteError
from seedbank.core.logging_manager import SeedbankLogger, safe_logger
from seedbank.utils.fs import atomic_write_bytes, atomic_write_json, get_content_hash
from seedbank.utils.locks import KeyedLocks
from .models import AssetOutcome

ALLOWED_EXTENSIONS = (".jpg", ".jpeg", ".png", ".gif", ".webp", ".avif", ".svg", ".bmp")
DEFAULT_EXTENSION = ".webp"
HASH_PREFIX_LENGTH = 24

_CONTENT_NAME_RE = re.compile(rf"^[0-9a-f]{{{HASH_PREFIX_LENGTH}}}$")


def is_remote(value: str) -> bool:
    """Whether a value is an http(s) URL."""
    return value.lower().startswith(("http://", "https://"))


def infer_extension(url: str) -> str:
    """
    File extension of a URL path, or the default.

    Examples:
        >>> infer_extension("https://cdn.example.com/covers/01.PNG?w=300")
        '.png'
        >>> infer_extension("https://cdn.example.com/image?id=3")
        '.webp'
    """
    suffix = PurePosixPath(unquote(urlparse(url).path)).suffix.lower()
    return suffix if suffix in ALLOWED_EXTENSIONS else DEFAULT_EXTENSION


def content_key(path: str) -> Optional[str]:
    """
    Content hash prefix carried by a stored file name, or None.

    Examples:
        >>> content_key("/comics/covers/0123456789abcdef01234567.png")
        '0123456789abcdef01234567'
        >>> content_key("/placeholder-comic.jpg") is None
        True
    """
    stem = PurePosixPath(path).stem
    return stem if _CONTENT_NAME_RE.match(stem) else None


# =============================================================================
# Transport
# =============================================================================


class AssetFetcher(Protocol):
    def fetch(self, url: str) -> bytes: ...


class AssetStore(Protocol):
    def store(self, data: bytes, hint: str) -> str: ...

    def exists(self, path: str) -> bool: ...

    def public_path(self, hint: str) -> str: ...


def requests_retry_session(
    retries: int = 2,
    backoff_factor: float = 0.5,
    status_forcelist=(429, 500, 502, 503, 504),
    session: Optional[requests.Session] = None,
) -> requests.Session:
    """Session retrying connection errors and throttling/5xx responses."""
    session = session or requests.Session()
    retry = Retry(
        total=retries,
        read=retries,
        connect=retries,
        backoff_factor=backoff_factor,
        status_forcelist=status_forcelist,
        allowed_methods=frozenset({"GET"}),
        raise_on_status=False,
    )
    adapter = HTTPAdapter(max_retries=retry)
    session.mount("http://", adapter)
    session.mount("https://", adapter)
    return session


class HttpAssetFetcher:
    """
    Downloads assets over HTTP with requests.

    Each worker thread gets its own Session (connection pools are not
    shared across threads).

    Attributes:
        timeout: Seconds per request
        max_bytes: Largest accepted payload
        user_agent: User-Agent header
    """

    def __init__(
        self,
        timeout: float = 30.0,
        max_bytes: int = 20 * 1024 * 1024,
        user_agent: Optional[str] = None,
        retries: int = 2,
    ) -> None:
        self.timeout = timeout
        self.max_bytes = max_bytes
        self.user_agent = user_agent or f"seedbank/{__version__}"
        self.retries = retries
        self._local = threading.local()

    def _session(self) -> requests.Session:
        session = getattr(self._local, "session", None)
        if session is None:
            session = requests_retry_session(retries=self.retries)
            session.headers["User-Agent"] = self.user_agent
            self._local.session = session
        return session

    def fetch(self, url: str) -> bytes:
        """
        Download one asset.

        Raises:
            AssetFetchError: On connection errors, timeouts, non-2xx status
                or payloads above max_bytes
        """
        try:
            with self._session().get(url, timeout=self.timeout, stream=True) as response:
                if not response.ok:
                    raise AssetFetchError(f"{response.status_code} {response.reason}: {url}")

                declared = response.headers.get("Content-Length")
                if declared and declared.isdigit() and int(declared) > self.max_bytes:
                    raise AssetFetchError(f"Asset too large ({declared} bytes): {url}")

                chunks: List[bytes] = []
                size = 0
                for chunk in response.iter_content(chunk_size=1 << 15):
                    if not chunk:
                        continue
                    size += len(chunk)
                    if size > self.max_bytes:
                        raise AssetFetchError(f"Asset exceeds {self.max_bytes} bytes: {url}")
                    chunks.append(chunk)
        except requests.RequestException as e:
            raise AssetFetchError(f"Request failed for {url}: {e}") from e

        data = b"".join(chunks)
        if not data:
            raise AssetFetchError(f"Empty response body: {url}")
        return data


class LocalAssetStore:
    """
    Writes assets below a local root directory.

    Stored files are addressed publicly as ``<url_prefix><hint>``, e.g.
    root ``public/`` + hint ``comics/covers/ab12.webp`` -> ``/comics/covers/ab12.webp``.

    Attributes:
        root: Directory assets are written to
        url_prefix: Prefix of the public path
    """

    def __init__(self, root: Path, url_prefix: str = "/") -> None:
        self.root = Path(root)
        self.url_prefix = url_prefix if url_prefix.endswith("/") else url_prefix + "/"

    def public_path(self, hint: str) -> str:
        return self.url_prefix + hint.lstrip("/")

    def local_path(self, public_path: str) -> Optional[Path]:
        """Filesystem location of a public path, or None if it is not ours."""
        if not public_path.startswith(self.url_prefix):
            return None
        relative = public_path[len(self.url_prefix):]
        if not relative or ".." in PurePosixPath(relative).parts:
            return None
        return self.root / relative

    def exists(self, path: str) -> bool:
        local = self.local_path(path)
        return local is not None and local.is_file()

    def store(self, data: bytes, hint: str) -> str:
        """
        Write bytes atomically under root/hint.

        Raises:
            AssetWriteError: If the file cannot be written
        """
        target = self.root / hint.lstrip("/")
        try:
            atomic_write_bytes(target, data)
        except OSError as e:
            raise AssetWriteError(f"Cannot write asset {target}: {e}") from e
        return self.public_path(hint)


# =============================================================================
# Durable index
# =============================================================================


class DedupIndex:
    """
    Durable URL -> stored path map shared between runs.

    A best-effort optimization: a missing or corrupt file yields an empty
    index, and entries are re-validated against storage before use.

    Stored files are named after their content hash, so the index also
    answers "is this content already stored somewhere?" across runs and
    folders without keeping a second map on disk.
    """

    def __init__(self, path: Path, logger: Optional[SeedbankLogger] = None) -> None:
        self.path = Path(path)
        self.logger = logger
        self._entries: Dict[str, str] = {}
        self._by_content: Dict[str, str] = {}
        self._lock = threading.Lock()
        self._dirty = False

    def load(self) -> int:
        """
        Read the index file.

        Returns:
            Number of entries loaded
        """
        log = safe_logger(self.logger)
        entries: Dict[str, str] = {}

        if self.path.exists():
            try:
                with open(self.path, "r", encoding="utf-8") as f:
                    data = json.load(f)
                if not isinstance(data, dict):
                    raise ValueError(f"expected an object, got {type(data).__name__}")
                entries = {
                    str(url): str(path)
                    for url, path in data.items()
                    if isinstance(url, str) and isinstance(path, str) and path
                }
            except (OSError, ValueError) as e:
                log.log_warning(
                    "Ignoring unreadable image index", {"path": str(self.path), "error": str(e)}
                )
                entries = {}

        with self._lock:
            self._entries = entries
            self._reindex_locked()
            self._dirty = False

        log.log_info("Image index loaded", {"path": str(self.path), "entries": len(entries)})
        return len(entries)

    def save(self) -> None:
        """
        Write the index atomically.

        Raises:
            OSError: If the file cannot be written
        """
        with self._lock:
            snapshot = dict(self._entries)
        atomic_write_json(self.path, snapshot)
        with self._lock:
            self._dirty = False
        safe_logger(self.logger).log_info(
            "Image index saved", {"path": str(self.path), "entries": len(snapshot)}
        )

    def get(self, url: str) -> Optional[str]:
        with self._lock:
            return self._entries.get(url)

    def find_content(self, digest: str) -> Optional[str]:
        """Stored path of a file whose name carries this content hash, or None."""
        with self._lock:
            return self._by_content.get(digest[:HASH_PREFIX_LENGTH])

    def set(self, url: str, path: str) -> None:
        with self._lock:
            if self._entries.get(url) != path:
                self._entries[url] = path
                self._dirty = True
            key = content_key(path)
            if key is not None:
                self._by_content[key] = path

    def remove(self, url: str) -> None:
        with self._lock:
            if self._entries.pop(url, None) is not None:
                self._reindex_locked()
                self._dirty = True

    def prune(self, exists: Callable[[str], bool]) -> int:
        """
        Drop entries whose stored file no longer exists.

        Returns:
            Number of entries removed
        """
        with self._lock:
            stale = [url for url, path in self._entries.items() if not exists(path)]
            for url in stale:
                del self._entries[url]
            if stale:
                self._reindex_locked()
                self._dirty = True
        return len(stale)

    def items(self) -> List[tuple]:
        with self._lock:
            return list(self._entries.items())

    @property
    def dirty(self) -> bool:
        """Whether entries changed since the last load or save."""
        return self._dirty

    def _reindex_locked(self) -> None:
        self._by_content = {}
        for path in self._entries.values():
            key = content_key(path)
            if key is not None:
                self._by_content.setdefault(key, path)

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)


# =============================================================================
# Deduplicator
# =============================================================================


class AssetDeduplicator:
    """
    Per-run asset cache in front of a fetcher and a store.

    Attributes:
        fetcher: Transport used on cache misses
        store: Destination of novel content
        index: Durable URL index (seeded at start, saved by the reporter)
        max_workers: Bound of materialize_many's pool
        on_outcome: Callback receiving every AssetOutcome (reporter hook)
    """

    def __init__(
        self,
        fetcher: AssetFetcher,
        store: AssetStore,
        index: DedupIndex,
        logger: Optional[SeedbankLogger] = None,
        max_workers: int = 2,
        on_outcome: Optional[Callable[[AssetOutcome], None]] = None,
    ) -> None:
        self.fetcher = fetcher
        self.store = store
        self.index = index
        self.logger = logger
        self.max_workers = max(1, max_workers)
        self.on_outcome = on_outcome

        self._lock = threading.Lock()
        self._url_cache: Dict[str, str] = {}
        self._hash_cache: Dict[str, str] = {}
        self._failed_urls: Set[str] = set()
        self._url_locks = KeyedLocks()
        self._hash_locks = KeyedLocks()
        self._counts: Counter = Counter()

    # -------------------------------------------------------------------------
    # Public API
    # -------------------------------------------------------------------------

    def materialize(self, source_url: Optional[str], folder: str, fallback: str) -> str:
        """
        Stored path for one asset URL.

        Args:
            source_url: Remote URL (or an already-local path)
            folder: Destination folder below the store root
            fallback: Path returned when the asset cannot be materialized

        Returns:
            Stored path, the unchanged local path, or the fallback
        """
        if not source_url or not str(source_url).strip():
            return fallback

        url = str(source_url).strip()
        if not is_remote(url):
            self._emit(AssetOutcome.PASSTHROUGH)
            return url

        with self._url_locks.hold(url):
            return self._materialize_locked(url, folder.strip("/"), fallback)

    def materialize_many(
        self, source_urls: Iterable[Optional[str]], folder: str, fallback: str
    ) -> List[str]:
        """
        Materialize several URLs with a bounded pool; order is preserved.

        Failed assets resolve to the fallback, keeping list positions stable.
        """
        urls = list(source_urls)
        if not urls:
            return []
        if len(urls) == 1 or self.max_workers == 1:
            return [self.materialize(url, folder, fallback) for url in urls]

        workers = min(self.max_workers, len(urls))
        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="asset") as pool:
            return list(pool.map(lambda u: self.materialize(u, folder, fallback), urls))

    def stats(self) -> Dict[str, int]:
        """Counts per AssetOutcome value for this run."""
        with self._lock:
            return {outcome.value: self._counts[outcome] for outcome in AssetOutcome}

    # -------------------------------------------------------------------------
    # Internals
    # -------------------------------------------------------------------------

    def _emit(self, outcome: AssetOutcome) -> None:
        with self._lock:
            self._counts[outcome] += 1
        if self.on_outcome is not None:
            self.on_outcome(outcome)

    def _remember(self, url: str, digest: Optional[str], path: str) -> None:
        with self._lock:
            self._url_cache[url] = path
            if digest is not None:
                self._hash_cache.setdefault(digest, path)
        self.index.set(url, path)

    def _materialize_locked(self, url: str, folder: str, fallback: str) -> str:
        log = safe_logger(self.logger)

        # 1. Session cache
        with self._lock:
            cached = self._url_cache.get(url)
            failed = url in self._failed_urls
        if cached is not None:
            self._emit(AssetOutcome.CACHED)
            return cached
        if failed:
            self._emit(AssetOutcome.FALLBACK)
            return fallback

        # 2. Durable index, validated against storage
        indexed = self.index.get(url)
        if indexed is not None:
            if self.store.exists(indexed):
                with self._lock:
                    self._url_cache[url] = indexed
                self._emit(AssetOutcome.CACHED)
                return indexed
            log.log_debug("Stale image index entry", {"url": url, "path": indexed})
            self.index.remove(url)

        # 3. Fetch + hash
        try:
            data = self.fetcher.fetch(url)
        except AssetError as e:
            log.log_warning(f"Image fetch failed, using fallback: {e}", {"url": url})
            with self._lock:
                self._failed_urls.add(url)
            self._emit(AssetOutcome.FALLBACK)
            return fallback

        digest = get_content_hash(data)

        with self._hash_locks.hold(digest):
            with self._lock:
                existing = self._hash_cache.get(digest)
            if existing is None:
                # Content stored by an earlier run, possibly in another folder
                indexed = self.index.find_content(digest)
                if indexed is not None and self.store.exists(indexed):
                    existing = indexed
            if existing is not None:
                self._remember(url, digest, existing)
                self._emit(AssetOutcome.DEDUPLICATED)
                return existing

            # 4. Store novel content (content-addressed name)
            hint = f"{folder}/{digest[:HASH_PREFIX_LENGTH]}{infer_extension(url)}"
            target = self.store.public_path(hint)
            if self.store.exists(target):
                self._remember(url, digest, target)
                self._emit(AssetOutcome.DEDUPLICATED)
                return target

            try:
                path = self.store.store(data, hint)
            except AssetError as e:
                log.log_warning(f"Image write failed, using fallback: {e}", {"url": url})
                self._emit(AssetOutcome.FALLBACK)
                return fallback

            self._remember(url, digest, path)
            self._emit(AssetOutcome.MATERIALIZED)
            log.log_debug("Image stored", {"url": url, "path": path, "bytes": len(data)})
            return path
