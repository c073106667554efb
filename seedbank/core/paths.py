#!/usr/bin/env python3
"""
paths.py
-------------------
Path constants for the Seedbank project.

Defines default locations as Path objects for consistent path handling
across the codebase. Every value here is only a default: the configuration
layer (``seedbank.core.config``) and CLI options override them.

The project structure:
    ROOT/
    ├── data/seed/          # JSON source files (users, comics, chapters)
    ├── data/seedbank.db    # SQLite database
    ├── public/             # Materialized assets + durable dedup index
    └── logs/               # Application logs

ROOT is ``$SEEDBANK_HOME`` when set, otherwise the current working directory.
"""
# --- Annotations ---
from __future__ import annotations

# --- Standard library imports ---
import os
from pathlib import Path


def _get_project_root() -> Path:
    """
    Determine project root directory.

    Returns:
        Path object for project root
    """
    home = os.environ.get("SEEDBANK_HOME")
    if home:
        return Path(home).expanduser().resolve()
    return Path.cwd().resolve()


# ----- Project directory -----
ROOT: Path = _get_project_root()
DATA_DIR = ROOT / "data"

# --- Sources ---
SEED_DIR = DATA_DIR / "seed"
CONFIG_PATH = ROOT / "seedbank.yaml"

# --- Database ---
DB_PATH = DATA_DIR / "seedbank.db"

# --- Assets ---
PUBLIC_DIR = ROOT / "public"
ASSET_URL_PREFIX = "/"

# --- Logs ---
LOG_DIR = ROOT / "logs"
