"""
Seed import pipeline.

- loader: discovery and decoding of JSON source files
- schemas: per-kind validation and alias normalization
- entity_resolver: find-or-create cache for authors, artists, types, genres
- assets: content-addressed image materialization with a durable index
- orchestrator: bounded concurrent upserts in dependency order
- reporter: thread-safe run statistics
- cli: click entry point (``seedbank``)
"""
from .models import RecordKind, RunStatistics, UpsertOutcome, UpsertResult
from .orchestrator import UpsertOrchestrator

__all__ = ["RecordKind", "RunStatistics", "UpsertOrchestrator", "UpsertOutcome", "UpsertResult"]
