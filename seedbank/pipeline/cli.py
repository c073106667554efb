#!/usr/bin/env python3
"""
Seedbank Command-Line Interface
-------------------------------

Import JSON seed data (users, comics, chapters) into the database and
manage the durable image index.

Commands:
    - seed: Run the import pipeline
    - init-db: Create the database schema
    - validate: Check source files without importing anything
    - cache-stats: Show the durable image index
    - cache-clear: Delete the image index or drop its stale entries

Configuration precedence:
    command-line options > SEEDBANK_* environment > seedbank.yaml > defaults

Usage:
    # Import everything with the defaults
    seedbank seed

    # Only comics and chapters, eight records at a time
    seedbank seed comic chapter --concurrency 8

    # See what would happen
    seedbank seed --dry-run --limit 20
"""
# --- Annotations ---
from __future__ import annotations

# --- Standard library imports ---
import json
import sys
from pathlib import Path
from typing import Any, Dict, Optional

# --- Third party imports ---
import click

# --- Local imports ---
from seedbank.core.config import ImportConfig
from seedbank.core.exceptions import SeedbankError
from seedbank.core.logging_manager import handle_cli_error, setup_logger
from seedbank.core.paths import LOG_DIR
from seedbank.database.manager import SeedbankDB
from .assets import DedupIndex, LocalAssetStore
from .loader import SourceLoader
from .models import RecordKind
from .orchestrator import UpsertOrchestrator
from .schemas import describe_raw, validate

KIND_ARGUMENT = click.argument(
    "kinds", nargs=-1, type=click.Choice(RecordKind.choices(), case_sensitive=False)
)


def get_config(ctx: click.Context, **overrides: Any) -> ImportConfig:
    """Base configuration of the group with command options applied on top."""
    base: ImportConfig = ctx.obj["config"]
    if not any(value is not None for value in overrides.values()):
        return base
    return ImportConfig.from_mapping(overrides, base).validate()


@click.group()
@click.option(
    "--config",
    "config_path",
    type=click.Path(dir_okay=False, path_type=Path),
    default=None,
    help="YAML configuration file (default: seedbank.yaml if present)",
)
@click.option(
    "--log-dir",
    type=click.Path(file_okay=False, path_type=Path),
    default=None,
    help=f"Path to log directory (default: {LOG_DIR})",
)
@click.option(
    "--verbose",
    is_flag=True,
    help="Show progress on the console and tracebacks on errors",
)
@click.pass_context
def cli(ctx: click.Context, config_path: Optional[Path], log_dir: Optional[Path], verbose: bool):
    """Seedbank: idempotent seed data importer."""
    ctx.ensure_object(dict)
    ctx.obj["verbose"] = verbose

    try:
        config = ImportConfig.load(config_path, overrides={"log_dir": log_dir})
    except SeedbankError as e:
        handle_cli_error(ctx, e, "load_config", {"config": str(config_path)})

    ctx.obj["config"] = config
    logger = setup_logger(config.log_dir, "seedbank", verbose)
    ctx.obj["logger"] = logger
    ctx.call_on_close(logger.close)


@cli.command()
@KIND_ARGUMENT
@click.option("--data-dir", type=click.Path(file_okay=False, path_type=Path), help="Directory with JSON sources")
@click.option("--db", "db_path", type=click.Path(dir_okay=False, path_type=Path), help="SQLite database file")
@click.option("--database-url", help="SQLAlchemy URL (overrides --db)")
@click.option("--assets", "asset_root", type=click.Path(file_okay=False, path_type=Path), help="Asset output directory")
@click.option("--concurrency", type=click.IntRange(min=1), help="Records in flight")
@click.option("--asset-concurrency", type=click.IntRange(min=1), help="Downloads in flight per record")
@click.option("--limit", type=click.IntRange(min=0), help="Records per kind")
@click.option("--dry-run", is_flag=True, help="Validate and report only")
@click.option("--json", "as_json", is_flag=True, help="Print statistics as JSON")
@click.pass_context
def seed(
    ctx: click.Context,
    kinds,
    data_dir,
    db_path,
    database_url,
    asset_root,
    concurrency,
    asset_concurrency,
    limit,
    dry_run,
    as_json,
):
    """Import users, comics and chapters (all kinds when none given)."""
    logger = ctx.obj["logger"]

    try:
        config = get_config(
            ctx,
            data_dir=data_dir,
            db_path=db_path,
            database_url=database_url,
            asset_root=asset_root,
            concurrency=concurrency,
            asset_concurrency=asset_concurrency,
            limit=limit,
            dry_run=True if dry_run else None,
        )
        orchestrator = UpsertOrchestrator.from_config(config, logger)
        try:
            stats = orchestrator.run_sources([k.lower() for k in kinds])
        finally:
            orchestrator.db.dispose()
    except SeedbankError as e:
        handle_cli_error(ctx, e, "seed", {"kinds": list(kinds)})

    if as_json:
        click.echo(json.dumps(stats.to_dict(), indent=2))
    else:
        click.echo("\n📦 Seed run complete:")
        for line in stats.summary().splitlines():
            click.echo(f"  • {line}")
        if stats.errors:
            click.echo("\n⚠️  Failures:")
            for error in stats.errors:
                click.echo(f"  • {error}")
            if stats.errors_truncated:
                click.echo(f"  ... and {stats.errors_truncated} more (see logs)")

    if stats.has_errors:
        sys.exit(1)


@cli.command("init-db")
@click.option("--db", "db_path", type=click.Path(dir_okay=False, path_type=Path), help="SQLite database file")
@click.option("--database-url", help="SQLAlchemy URL (overrides --db)")
@click.pass_context
def init_db(ctx: click.Context, db_path, database_url):
    """Create every missing table."""
    try:
        config = get_config(ctx, db_path=db_path, database_url=database_url)
        db = SeedbankDB(config.resolved_database_url, ctx.obj["logger"])
        db.check_connection()
        db.initialize_schema()
        tables = db.table_names()
        db.dispose()
    except SeedbankError as e:
        handle_cli_error(ctx, e, "init_db")

    click.echo(f"✅ Schema ready ({len(tables)} tables)")


@cli.command("validate")
@KIND_ARGUMENT
@click.option("--data-dir", type=click.Path(file_okay=False, path_type=Path), help="Directory with JSON sources")
@click.pass_context
def validate_sources(ctx: click.Context, kinds, data_dir):
    """Validate source files without touching the database."""
    logger = ctx.obj["logger"]
    try:
        config = get_config(ctx, data_dir=data_dir)
    except SeedbankError as e:
        handle_cli_error(ctx, e, "validate")

    loader = SourceLoader(config.data_dir, config.sources, logger)
    invalid = 0

    for kind in RecordKind.ordered([k.lower() for k in kinds] or None):
        batch = loader.load(kind, config.limit)
        failures = []
        for item in batch.records:
            _, error = validate(item.raw, kind)
            if error is not None:
                failures.append((item.origin, describe_raw(item.raw, kind), error))

        valid = len(batch.records) - len(failures)
        click.echo(f"{kind.value}: {valid} valid, {len(failures)} invalid ({len(batch.files)} files)")
        for path, reason in batch.failed_files:
            click.echo(f"  ✗ {path.name}: {reason}")
        for origin, key, error in failures:
            click.echo(f"  • {origin} {key}: {error}")
        invalid += len(failures) + len(batch.failed_files)

    if invalid:
        sys.exit(1)


def _open_index(ctx: click.Context, asset_root: Optional[Path]):
    config = get_config(ctx, asset_root=asset_root)
    index = DedupIndex(config.resolved_index_path, ctx.obj["logger"])
    store = LocalAssetStore(config.asset_root, config.asset_url_prefix)
    return index, store


@cli.command("cache-stats")
@click.option("--assets", "asset_root", type=click.Path(file_okay=False, path_type=Path), help="Asset directory")
@click.pass_context
def cache_stats(ctx: click.Context, asset_root):
    """Show the size and health of the durable image index."""
    try:
        index, store = _open_index(ctx, asset_root)
    except SeedbankError as e:
        handle_cli_error(ctx, e, "cache_stats")

    index.load()
    entries = index.items()
    present = sum(1 for _, path in entries if store.exists(path))
    counts: Dict[str, int] = {
        "entries": len(entries),
        "present": present,
        "missing": len(entries) - present,
    }

    click.echo(f"🗂️  Image index: {index.path}")
    for name, value in counts.items():
        click.echo(f"  • {name}: {value}")


@cli.command("cache-clear")
@click.option("--assets", "asset_root", type=click.Path(file_okay=False, path_type=Path), help="Asset directory")
@click.option("--prune-missing", is_flag=True, help="Only drop entries whose file is gone")
@click.option("--yes", is_flag=True, help="Do not ask for confirmation")
@click.pass_context
def cache_clear(ctx: click.Context, asset_root, prune_missing, yes):
    """Delete the durable image index (stored files are kept)."""
    try:
        index, store = _open_index(ctx, asset_root)

        if prune_missing:
            index.load()
            removed = index.prune(store.exists)
            index.save()
            click.echo(f"🧹 Removed {removed} stale entries ({len(index)} kept)")
            return

        if not index.path.exists():
            click.echo("Image index does not exist")
            return
        if not yes:
            click.confirm(f"Delete {index.path}?", abort=True)
        index.path.unlink()
        click.echo(f"🗑️  Deleted {index.path}")
    except (SeedbankError, OSError) as e:
        handle_cli_error(ctx, e, "cache_clear")


if __name__ == "__main__":
    cli(obj={})
