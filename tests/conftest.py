"""
Shared pytest fixtures for the repofinder test suite.

Provides:
  - ``in_memory_db``: A fresh in-memory SQLite connection with the full
    schema applied. Created anew for each test that requests it.
  - ``db_path``: A file-backed database under ``tmp_path`` with the schema
    applied, for the async stores (which open one connection per call).
  - ``as_of``: Fixed reference time for scoring.
  - ``repo_factory``: Builds ``Repository`` snapshots with sensible defaults.
"""

from __future__ import annotations

import sqlite3
from datetime import datetime, timedelta, timezone
from typing import Callable, Generator

import pytest

from repofinder.db.connection import get_connection
from repofinder.db.schema import apply_schema
from repofinder.models.preferences import UserPreferences
from repofinder.models.repository import HealthSignals, Repository

AS_OF = datetime(2026, 1, 1, 12, 0, 0, tzinfo=timezone.utc)


# ── Database fixtures ─────────────────────────────────────────────────────────

@pytest.fixture
def in_memory_db() -> Generator[sqlite3.Connection, None, None]:
    """Yield a fresh in-memory SQLite connection with the full schema applied.

    Foreign key enforcement is ON. Connection is closed after the test.
    """
    conn = sqlite3.connect(":memory:")
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA foreign_keys = ON;")
    apply_schema(conn)
    yield conn
    conn.close()


@pytest.fixture
def db_path(tmp_path) -> str:
    """Path of a file-backed SQLite database with the schema applied."""
    path = str(tmp_path / "repofinder-test.db")
    with get_connection(path) as conn:
        apply_schema(conn)
    return path


# ── Sample domain object factories ────────────────────────────────────────────

@pytest.fixture
def as_of() -> datetime:
    return AS_OF


@pytest.fixture
def repo_factory() -> Callable[..., Repository]:
    """Return a factory: ``repo_factory(repo_id, **overrides) -> Repository``.

    Defaults describe a healthy mid-sized Python project pushed two days
    before ``AS_OF``.
    """

    def _make(repo_id: int = 1, **overrides) -> Repository:
        fields = dict(
            repo_id=repo_id,
            full_name=f"owner{repo_id}/project{repo_id}",
            description="A small example project used in tests.",
            language="Python",
            topics=frozenset({"python", "cli"}),
            stars=1_200,
            forks=150,
            created_at=AS_OF - timedelta(days=800),
            updated_at=AS_OF - timedelta(days=2),
            pushed_at=AS_OF - timedelta(days=2),
            license="MIT",
            owner_login=f"owner{repo_id}",
            html_url=f"https://github.com/owner{repo_id}/project{repo_id}",
        )
        fields.update(overrides)
        return Repository(**fields)

    return _make


@pytest.fixture
def healthy_signals() -> HealthSignals:
    """Signals of a well-maintained project."""
    return HealthSignals(
        contributor_count=40,
        release_count=25,
        commit_activity_52w=600,
        issue_close_rate=0.9,
        avg_issue_close_days=2.0,
        has_readme=True,
        has_contributing=True,
    )


@pytest.fixture
def python_prefs() -> UserPreferences:
    """Preferences of a Python backend developer."""
    return UserPreferences(
        tech_stack=("python", "fastapi"),
        goals=("building",),
        interests=("backend",),
        project_types=("library",),
    )
