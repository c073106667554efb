#!/usr/bin/env python3
"""
conftest.py
-----------
Shared fixtures for end-to-end seed runs.

Fixtures:
    workspace: Temporary project layout with a seedbank.yaml
    runner: Click test runner
    invoke: Run the seedbank CLI against the workspace
    served_assets: URL -> bytes mapping answered instead of the network
    make_comics: Build N distinct comic records
"""
# --- Annotations ---
from __future__ import annotations

# --- Standard library imports ---
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List

# --- Third-party imports ---
import pytest
import yaml
from click.testing import CliRunner

# --- Local imports ---
from seedbank.core.config import ImportConfig
from seedbank.core.exceptions import AssetFetchError
from seedbank.pipeline.assets import HttpAssetFetcher
from seedbank.pipeline.cli import cli


@dataclass
class Workspace:
    root: Path
    data_dir: Path
    db_path: Path
    asset_root: Path
    log_dir: Path
    config_path: Path

    @property
    def index_path(self) -> Path:
        return self.asset_root / ".seed-image-cache.json"

    def config(self, **overrides) -> ImportConfig:
        return ImportConfig.load(self.config_path, overrides=overrides, environ={})


# ==================== Workspace ====================

@pytest.fixture(autouse=True)
def clean_environment(monkeypatch):
    """Keep SEEDBANK_* variables of the developer machine out of the tests."""
    for var in list(os.environ):
        if var.startswith("SEEDBANK_"):
            monkeypatch.delenv(var)


@pytest.fixture
def workspace(tmp_path, data_dir) -> Workspace:
    ws = Workspace(
        root=tmp_path,
        data_dir=data_dir,
        db_path=tmp_path / "db" / "seedbank.db",
        asset_root=tmp_path / "public",
        log_dir=tmp_path / "logs",
        config_path=tmp_path / "seedbank.yaml",
    )
    settings = {
        "data_dir": str(ws.data_dir),
        "db_path": str(ws.db_path),
        "asset_root": str(ws.asset_root),
        "log_dir": str(ws.log_dir),
        "retry_base_delay": 0.0,
        "concurrency": 4,
    }
    ws.config_path.write_text(yaml.safe_dump(settings), encoding="utf-8")
    return ws


@pytest.fixture
def runner():
    return CliRunner()


@pytest.fixture
def invoke(runner, workspace):
    """Invoke the CLI with the workspace configuration file."""

    def _invoke(*args: str, **kwargs):
        return runner.invoke(cli, ["--config", str(workspace.config_path), *args], **kwargs)

    return _invoke


# ==================== Assets ====================

@pytest.fixture
def served_assets(monkeypatch) -> Dict[str, bytes]:
    """
    Replace HTTP downloads with an in-memory mapping.

    Unknown URLs fail like a 404. Tests add entries to the returned dict.
    """
    payloads: Dict[str, bytes] = {}

    def fetch(self, url: str) -> bytes:
        if url not in payloads:
            raise AssetFetchError(f"404 Not Found: {url}")
        return payloads[url]

    monkeypatch.setattr(HttpAssetFetcher, "fetch", fetch)
    return payloads


# ==================== Sample data ====================

@pytest.fixture
def make_comics():
    """Build ``count`` comics titled 'Comic 0'..'Comic N-1'."""

    def _make(count: int, **extra) -> List[dict]:
        return [{"title": f"Comic {i}", "author": f"Author {i % 3}", **extra} for i in range(count)]

    return _make
