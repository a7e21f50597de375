"""
SQLite schema DDL — all CREATE TABLE and CREATE INDEX statements.

All statements use ``IF NOT EXISTS`` so ``apply_schema()`` is **idempotent**:
safe to call on an already-initialised database (e.g. on every service start
and in tests).

Table creation order respects foreign key dependencies:
  1. repositories       (no FKs)   — catalog of repository snapshots
  2. repo_signals       (→ repositories)
  3. user_preferences   (no FKs)
  4. interactions       (no FKs; repo_id may reference repos outside the catalog)
  5. cluster_metadata   (no FKs)
  6. repo_clusters      (→ cluster_metadata, repositories)
  7. run_metadata       (no FKs)
"""

from __future__ import annotations

import logging
import sqlite3

logger = logging.getLogger(__name__)

# ── DDL statements ─────────────────────────────────────────────────────────────

_DDL_REPOSITORIES = """
CREATE TABLE IF NOT EXISTS repositories (
    repo_id           INTEGER PRIMARY KEY,
    full_name         TEXT    NOT NULL,
    description       TEXT,
    language          TEXT,
    topics_json       TEXT    NOT NULL DEFAULT '[]',
    stars             INTEGER NOT NULL DEFAULT 0 CHECK (stars >= 0),
    forks             INTEGER NOT NULL DEFAULT 0 CHECK (forks >= 0),
    watchers          INTEGER NOT NULL DEFAULT 0,
    open_issues       INTEGER NOT NULL DEFAULT 0,
    created_at        TEXT,
    updated_at        TEXT,
    pushed_at         TEXT,
    license           TEXT,
    owner_login       TEXT    NOT NULL DEFAULT '',
    owner_avatar_url  TEXT,
    html_url          TEXT    NOT NULL DEFAULT '',
    fetched_at        TEXT    NOT NULL DEFAULT (strftime('%Y-%m-%dT%H:%M:%SZ', 'now'))
);
CREATE INDEX IF NOT EXISTS idx_repositories_full_name ON repositories (full_name);
CREATE INDEX IF NOT EXISTS idx_repositories_stars ON repositories (stars DESC);
"""

_DDL_REPO_SIGNALS = """
CREATE TABLE IF NOT EXISTS repo_signals (
    repo_id               INTEGER PRIMARY KEY REFERENCES repositories(repo_id) ON DELETE CASCADE,
    contributor_count     INTEGER,
    release_count         INTEGER,
    commit_activity_52w   INTEGER,
    issue_close_rate      REAL CHECK (issue_close_rate IS NULL OR (issue_close_rate BETWEEN 0 AND 1)),
    avg_issue_close_days  REAL,
    has_readme            INTEGER,
    has_contributing      INTEGER,
    fetched_at            TEXT NOT NULL DEFAULT (strftime('%Y-%m-%dT%H:%M:%SZ', 'now'))
);
"""

_DDL_USER_PREFERENCES = """
CREATE TABLE IF NOT EXISTS user_preferences (
    user_id          TEXT PRIMARY KEY,
    prefs_json       TEXT NOT NULL,
    preference_hash  TEXT NOT NULL,
    updated_at       TEXT NOT NULL DEFAULT (strftime('%Y-%m-%dT%H:%M:%SZ', 'now'))
);
"""

_DDL_INTERACTIONS = """
CREATE TABLE IF NOT EXISTS interactions (
    interaction_id  INTEGER PRIMARY KEY AUTOINCREMENT,
    user_id         TEXT    NOT NULL,
    repo_id         INTEGER NOT NULL,
    action          TEXT    NOT NULL CHECK (action IN ('view', 'like', 'save', 'skip')),
    occurred_at     TEXT    NOT NULL,
    source          TEXT    NOT NULL DEFAULT 'discovery',
    position        INTEGER
);
CREATE INDEX IF NOT EXISTS idx_interactions_user_time ON interactions (user_id, occurred_at DESC);
CREATE INDEX IF NOT EXISTS idx_interactions_user_action ON interactions (user_id, action);
"""

_DDL_CLUSTER_METADATA = """
CREATE TABLE IF NOT EXISTS cluster_metadata (
    cluster_name  TEXT PRIMARY KEY,
    display_name  TEXT NOT NULL,
    description   TEXT,
    repo_count    INTEGER NOT NULL DEFAULT 0,
    is_active     INTEGER NOT NULL DEFAULT 1,
    updated_at    TEXT NOT NULL DEFAULT (strftime('%Y-%m-%dT%H:%M:%SZ', 'now'))
);
"""

_DDL_REPO_CLUSTERS = """
CREATE TABLE IF NOT EXISTS repo_clusters (
    cluster_name       TEXT    NOT NULL REFERENCES cluster_metadata(cluster_name),
    repo_id            INTEGER NOT NULL REFERENCES repositories(repo_id) ON DELETE CASCADE,
    quality_score      REAL    NOT NULL,
    rotation_priority  INTEGER NOT NULL DEFAULT 0,
    PRIMARY KEY (cluster_name, repo_id)
);
CREATE INDEX IF NOT EXISTS idx_repo_clusters_rank
    ON repo_clusters (cluster_name, quality_score DESC, rotation_priority DESC);
"""

_DDL_RUN_METADATA = """
CREATE TABLE IF NOT EXISTS run_metadata (
    run_id           INTEGER PRIMARY KEY AUTOINCREMENT,
    run_slug         TEXT    NOT NULL UNIQUE,
    pipeline_stage   TEXT    NOT NULL,
    status           TEXT    NOT NULL DEFAULT 'started',
    config_snapshot  TEXT    NOT NULL,
    rows_processed   INTEGER NOT NULL DEFAULT 0,
    error_message    TEXT,
    started_at       TEXT    NOT NULL,
    finished_at      TEXT
);
"""

_ALL_DDL: list[str] = [
    _DDL_REPOSITORIES,
    _DDL_REPO_SIGNALS,
    _DDL_USER_PREFERENCES,
    _DDL_INTERACTIONS,
    _DDL_CLUSTER_METADATA,
    _DDL_REPO_CLUSTERS,
    _DDL_RUN_METADATA,
]

ALL_TABLE_NAMES: list[str] = [
    "repositories",
    "repo_signals",
    "user_preferences",
    "interactions",
    "cluster_metadata",
    "repo_clusters",
    "run_metadata",
]


def apply_schema(conn: sqlite3.Connection) -> None:
    """Create all tables and indexes if they do not already exist.

    Args:
        conn: An open ``sqlite3.Connection`` (FK enforcement should be ON).
    """
    logger.debug("Applying schema to database...")
    for ddl in _ALL_DDL:
        for statement in _split_ddl(ddl):
            conn.execute(statement)
    conn.commit()
    logger.info("Schema applied: %d tables verified.", len(ALL_TABLE_NAMES))


def _split_ddl(ddl: str) -> list[str]:
    """Split a multi-statement DDL block on semicolons."""
    return [s.strip() for s in ddl.split(";") if s.strip()]


def get_existing_tables(conn: sqlite3.Connection) -> list[str]:
    """Return the table names present in the database, sorted."""
    rows = conn.execute(
        "SELECT name FROM sqlite_master WHERE type='table' ORDER BY name;"
    ).fetchall()
    return [row["name"] for row in rows]


def get_existing_indexes(conn: sqlite3.Connection) -> list[str]:
    """Return the explicitly created index names, sorted."""
    rows = conn.execute(
        "SELECT name FROM sqlite_master WHERE type='index' AND sql IS NOT NULL ORDER BY name;"
    ).fetchall()
    return [row["name"] for row in rows]
