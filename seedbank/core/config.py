#!/usr/bin/env python3
"""
config.py
-------------------
Run configuration for the seed pipeline.

A single ``ImportConfig`` dataclass carries every tunable of a run. Values
are layered, later sources winning:

    defaults (seedbank.core.paths)
      < YAML file (seedbank.yaml)
      < environment (SEEDBANK_*)
      < explicit overrides (CLI options)

Usage:
    from seedbank.core.config import ImportConfig

    config = ImportConfig.load(Path("seedbank.yaml"), overrides={"concurrency": 8})
    config.validate()
"""
# --- Annotations ---
from __future__ import annotations

# --- Standard library imports ---
import os
from dataclasses import dataclass, field, fields, replace
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional

# --- Third party imports ---
import yaml

# --- Local imports ---
from .exceptions import ConfigError
from .paths import (
    ASSET_URL_PREFIX,
    CONFIG_PATH,
    DB_PATH,
    LOG_DIR,
    PUBLIC_DIR,
    SEED_DIR,
)

MAX_CONCURRENCY = 16
KINDS = ("user", "comic", "chapter")

DEFAULT_SOURCES: Dict[str, List[str]] = {
    "user": ["users.json", "usersdata*.json"],
    "comic": ["comics.json", "comicsdata*.json"],
    "chapter": ["chapters.json", "chaptersdata*.json"],
}

DEFAULT_PLACEHOLDERS: Dict[str, str] = {
    "user": "/shadcn.jpg",
    "comic": "/placeholder-comic.jpg",
    "chapter": "/placeholder-comic.jpg",
}


def clamp_concurrency(value: int) -> int:
    """Record bound limited to 1..MAX_CONCURRENCY."""
    return max(1, min(int(value), MAX_CONCURRENCY))


def asset_bound(concurrency: int, asset_concurrency: int) -> int:
    """
    Inner asset bound for a record bound, always strictly below it.

    Examples:
        >>> asset_bound(4, 2)
        2
        >>> asset_bound(2, 8)
        1
    """
    if concurrency <= 1:
        return 1
    return max(1, min(asset_concurrency, concurrency - 1))

# Environment variable -> (field name, converter)
_ENV_VARS = {
    "SEEDBANK_DATA_DIR": ("data_dir", Path),
    "SEEDBANK_DATABASE_URL": ("database_url", str),
    "SEEDBANK_DB_PATH": ("db_path", Path),
    "SEEDBANK_ASSET_ROOT": ("asset_root", Path),
    "SEEDBANK_ASSET_URL_PREFIX": ("asset_url_prefix", str),
    "SEEDBANK_INDEX_PATH": ("index_path", Path),
    "SEEDBANK_LOG_DIR": ("log_dir", Path),
    "SEEDBANK_CONCURRENCY": ("concurrency", int),
    "SEEDBANK_ASSET_CONCURRENCY": ("asset_concurrency", int),
    "SEEDBANK_RETRY_ATTEMPTS": ("retry_attempts", int),
    "SEEDBANK_RETRY_BASE_DELAY": ("retry_base_delay", float),
    "SEEDBANK_HTTP_TIMEOUT": ("http_timeout", float),
    "SEEDBANK_DEFAULT_PASSWORD": ("default_password", str),
}

_PATH_FIELDS = {"data_dir", "db_path", "asset_root", "index_path", "log_dir"}


@dataclass
class ImportConfig:
    """
    Configuration for one seed run.

    Attributes:
        data_dir: Directory holding the JSON source files
        database_url: SQLAlchemy URL; when None a SQLite file at db_path is used
        db_path: SQLite database file (ignored when database_url is set)
        asset_root: Local directory assets are materialized into
        asset_url_prefix: Prefix of the public path stored in the database
        index_path: Durable URL -> path index (defaults inside asset_root)
        log_dir: Base directory for log files
        concurrency: Maximum records in flight at once
        asset_concurrency: Maximum asset downloads in flight per record
        retry_attempts: Attempts for transient persistence errors
        retry_base_delay: First backoff delay in seconds (doubles each retry)
        http_timeout: Timeout for one asset request in seconds
        max_asset_bytes: Largest accepted asset payload
        placeholders: Fallback asset path per record kind
        default_password: Password hashed for users without one
        sources: Glob patterns per record kind, relative to data_dir
        dry_run: Validate only, write nothing
        limit: Process at most this many records per kind
    """

    data_dir: Path = SEED_DIR
    database_url: Optional[str] = None
    db_path: Path = DB_PATH
    asset_root: Path = PUBLIC_DIR
    asset_url_prefix: str = ASSET_URL_PREFIX
    index_path: Optional[Path] = None
    log_dir: Path = LOG_DIR
    concurrency: int = 5
    asset_concurrency: int = 2
    retry_attempts: int = 3
    retry_base_delay: float = 0.5
    http_timeout: float = 30.0
    max_asset_bytes: int = 20 * 1024 * 1024
    placeholders: Dict[str, str] = field(
        default_factory=lambda: dict(DEFAULT_PLACEHOLDERS)
    )
    default_password: str = "Password123!"
    sources: Dict[str, List[str]] = field(
        default_factory=lambda: {k: list(v) for k, v in DEFAULT_SOURCES.items()}
    )
    dry_run: bool = False
    limit: Optional[int] = None

    # ---- Derived values ----
    @property
    def resolved_database_url(self) -> str:
        """SQLAlchemy URL for the run."""
        if self.database_url:
            return self.database_url
        return f"sqlite:///{Path(self.db_path).expanduser().resolve()}"

    @property
    def resolved_index_path(self) -> Path:
        """Location of the durable dedup index."""
        if self.index_path is not None:
            return Path(self.index_path)
        return Path(self.asset_root) / ".seed-image-cache.json"

    @property
    def effective_asset_concurrency(self) -> int:
        """Inner asset bound, always strictly below the outer record bound."""
        return asset_bound(self.concurrency, self.asset_concurrency)

    def placeholder_for(self, kind: str) -> str:
        """Fallback asset path for a record kind."""
        return self.placeholders.get(kind, DEFAULT_PLACEHOLDERS["comic"])

    # ---- Validation ----
    def validate(self) -> "ImportConfig":
        """
        Check value ranges.

        Returns:
            self, to allow chaining

        Raises:
            ConfigError: If any value is out of range
        """
        if not 1 <= self.concurrency <= MAX_CONCURRENCY:
            raise ConfigError(
                f"concurrency must be between 1 and {MAX_CONCURRENCY}, "
                f"got {self.concurrency}"
            )
        if self.asset_concurrency < 1:
            raise ConfigError(
                f"asset_concurrency must be at least 1, got {self.asset_concurrency}"
            )
        if self.retry_attempts < 1:
            raise ConfigError(
                f"retry_attempts must be at least 1, got {self.retry_attempts}"
            )
        if self.retry_base_delay < 0:
            raise ConfigError("retry_base_delay cannot be negative")
        if self.http_timeout <= 0:
            raise ConfigError("http_timeout must be positive")
        if self.max_asset_bytes <= 0:
            raise ConfigError("max_asset_bytes must be positive")
        if self.limit is not None and self.limit < 0:
            raise ConfigError("limit cannot be negative")

        unknown = set(self.sources) - set(KINDS)
        if unknown:
            raise ConfigError(f"Unknown record kinds in sources: {sorted(unknown)}")
        return self

    # ---- Loading ----
    @classmethod
    def from_mapping(cls, data: Mapping[str, Any], base: Optional["ImportConfig"] = None) -> "ImportConfig":
        """
        Build a config from a plain mapping layered over ``base``.

        None values are ignored so that unset CLI options do not clobber
        values from lower layers.

        Raises:
            ConfigError: On unknown keys
        """
        base = base or cls()
        known = {f.name for f in fields(cls)}
        unknown = set(data) - known
        if unknown:
            raise ConfigError(f"Unknown configuration keys: {sorted(unknown)}")

        changes: Dict[str, Any] = {}
        for key, value in data.items():
            if value is None:
                continue
            if key in _PATH_FIELDS:
                value = Path(value).expanduser()
            elif key == "sources":
                value = cls._merge_sources(base.sources, value)
            elif key == "placeholders":
                value = {**base.placeholders, **value}
            changes[key] = value

        return replace(base, **changes)

    @classmethod
    def from_file(cls, path: Path, base: Optional["ImportConfig"] = None) -> "ImportConfig":
        """
        Layer a YAML configuration file over ``base``.

        Raises:
            ConfigError: If the file cannot be read or is not a mapping
        """
        try:
            with open(path, "r", encoding="utf-8") as f:
                data = yaml.safe_load(f) or {}
        except (OSError, yaml.YAMLError) as e:
            raise ConfigError(f"Cannot read config file {path}: {e}") from e

        if not isinstance(data, dict):
            raise ConfigError(f"Config file {path} must contain a mapping")

        return cls.from_mapping(data, base)

    @classmethod
    def from_env(
        cls,
        environ: Optional[Mapping[str, str]] = None,
        base: Optional["ImportConfig"] = None,
    ) -> "ImportConfig":
        """
        Layer ``SEEDBANK_*`` environment variables over ``base``.

        Raises:
            ConfigError: If a variable cannot be converted
        """
        environ = os.environ if environ is None else environ
        data: Dict[str, Any] = {}
        for var, (name, convert) in _ENV_VARS.items():
            raw = environ.get(var)
            if raw is None or raw == "":
                continue
            try:
                data[name] = convert(raw)
            except ValueError as e:
                raise ConfigError(f"Invalid value for {var}: {raw!r}") from e
        return cls.from_mapping(data, base)

    @classmethod
    def load(
        cls,
        config_path: Optional[Path] = None,
        overrides: Optional[Mapping[str, Any]] = None,
        environ: Optional[Mapping[str, str]] = None,
    ) -> "ImportConfig":
        """
        Build the effective configuration from every layer.

        Args:
            config_path: Explicit YAML file; when None, ``seedbank.yaml`` in the
                project root is used if present
            overrides: Highest-priority values (usually CLI options)
            environ: Environment mapping (defaults to os.environ)

        Returns:
            Validated ImportConfig
        """
        config = cls()

        path = Path(config_path) if config_path else CONFIG_PATH
        if config_path or path.exists():
            config = cls.from_file(path, config)

        config = cls.from_env(environ, config)
        if overrides:
            config = cls.from_mapping(overrides, config)

        return config.validate()

    @staticmethod
    def _merge_sources(
        current: Dict[str, List[str]], update: Mapping[str, Any]
    ) -> Dict[str, List[str]]:
        merged = {k: list(v) for k, v in current.items()}
        for kind, patterns in update.items():
            if isinstance(patterns, str):
                patterns = [patterns]
            merged[kind] = list(patterns)
        return merged
