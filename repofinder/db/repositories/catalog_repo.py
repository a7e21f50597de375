"""
Repository catalog — persisted ``Repository`` snapshots and their health signals.

The catalog feeds the cluster rebuild, the hybrid tier's default recommender,
saved/liked lookups and single-repo health reports. Upserts replace the whole
snapshot: a repository is superseded by re-fetch, never edited in place.
"""

from __future__ import annotations

import logging
import sqlite3
from typing import Iterable, Optional

from repofinder.db.repositories.base import (
    BaseRepository,
    dump_json,
    from_flag,
    from_iso,
    load_json,
    to_flag,
    to_iso,
)
from repofinder.models.repository import HealthSignals, Repository

logger = logging.getLogger(__name__)

_UPSERT_REPO = """
INSERT INTO repositories (
    repo_id, full_name, description, language, topics_json, stars, forks,
    watchers, open_issues, created_at, updated_at, pushed_at, license,
    owner_login, owner_avatar_url, html_url, fetched_at
) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, strftime('%Y-%m-%dT%H:%M:%SZ', 'now'))
ON CONFLICT(repo_id) DO UPDATE SET
    full_name        = excluded.full_name,
    description      = excluded.description,
    language         = excluded.language,
    topics_json      = excluded.topics_json,
    stars            = excluded.stars,
    forks            = excluded.forks,
    watchers         = excluded.watchers,
    open_issues      = excluded.open_issues,
    created_at       = excluded.created_at,
    updated_at       = excluded.updated_at,
    pushed_at        = excluded.pushed_at,
    license          = excluded.license,
    owner_login      = excluded.owner_login,
    owner_avatar_url = excluded.owner_avatar_url,
    html_url         = excluded.html_url,
    fetched_at       = excluded.fetched_at;
"""


def row_to_repository(row: sqlite3.Row) -> Repository:
    """Map a ``repositories`` row back to a ``Repository``."""
    return Repository(
        repo_id=row["repo_id"],
        full_name=row["full_name"],
        description=row["description"],
        language=row["language"],
        topics=load_json(row["topics_json"], []),
        stars=row["stars"],
        forks=row["forks"],
        watchers=row["watchers"],
        open_issues=row["open_issues"],
        created_at=from_iso(row["created_at"]),
        updated_at=from_iso(row["updated_at"]),
        pushed_at=from_iso(row["pushed_at"]),
        license=row["license"],
        owner_login=row["owner_login"],
        owner_avatar_url=row["owner_avatar_url"],
        html_url=row["html_url"],
    )


class CatalogRepository(BaseRepository):
    """Read/write access to ``repositories`` and ``repo_signals``."""

    def upsert(self, repo: Repository) -> None:
        self.execute(_UPSERT_REPO, self._params(repo))

    def upsert_many(self, repos: Iterable[Repository]) -> int:
        """Upsert a batch of snapshots; returns the number written."""
        params = [self._params(r) for r in repos]
        if params:
            self.executemany(_UPSERT_REPO, params)
        return len(params)

    def get_by_id(self, repo_id: int) -> Optional[Repository]:
        row = self.fetchone("SELECT * FROM repositories WHERE repo_id = ?;", (repo_id,))
        return row_to_repository(row) if row else None

    def get_by_full_name(self, full_name: str) -> Optional[Repository]:
        row = self.fetchone(
            "SELECT * FROM repositories WHERE full_name = ? COLLATE NOCASE;", (full_name,)
        )
        return row_to_repository(row) if row else None

    def get_many(self, repo_ids: Iterable[int]) -> dict[int, Repository]:
        """Fetch several snapshots at once, keyed by id (missing ids omitted)."""
        ids = list(dict.fromkeys(repo_ids))
        if not ids:
            return {}
        placeholders = ", ".join("?" for _ in ids)
        rows = self.fetchall(
            f"SELECT * FROM repositories WHERE repo_id IN ({placeholders});", tuple(ids)
        )
        return {row["repo_id"]: row_to_repository(row) for row in rows}

    def list_all(self, limit: Optional[int] = None) -> list[Repository]:
        """All snapshots, most-starred first (ties by id)."""
        sql = "SELECT * FROM repositories ORDER BY stars DESC, repo_id ASC"
        if limit is not None:
            rows = self.fetchall(sql + " LIMIT ?;", (limit,))
        else:
            rows = self.fetchall(sql + ";")
        return [row_to_repository(r) for r in rows]

    def count(self) -> int:
        return int(self.scalar("SELECT COUNT(*) FROM repositories;", default=0))

    # ── Signals ────────────────────────────────────────────────────────────────

    def upsert_signals(self, repo_id: int, signals: HealthSignals) -> None:
        self.execute(
            """
            INSERT INTO repo_signals (
                repo_id, contributor_count, release_count, commit_activity_52w,
                issue_close_rate, avg_issue_close_days, has_readme, has_contributing,
                fetched_at
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, strftime('%Y-%m-%dT%H:%M:%SZ', 'now'))
            ON CONFLICT(repo_id) DO UPDATE SET
                contributor_count    = excluded.contributor_count,
                release_count        = excluded.release_count,
                commit_activity_52w  = excluded.commit_activity_52w,
                issue_close_rate     = excluded.issue_close_rate,
                avg_issue_close_days = excluded.avg_issue_close_days,
                has_readme           = excluded.has_readme,
                has_contributing     = excluded.has_contributing,
                fetched_at           = excluded.fetched_at;
            """,
            (
                repo_id,
                signals.contributor_count,
                signals.release_count,
                signals.commit_activity_52w,
                signals.issue_close_rate,
                signals.avg_issue_close_days,
                to_flag(signals.has_readme),
                to_flag(signals.has_contributing),
            ),
        )

    def get_signals(self, repo_id: int) -> Optional[HealthSignals]:
        row = self.fetchone("SELECT * FROM repo_signals WHERE repo_id = ?;", (repo_id,))
        if row is None:
            return None
        return HealthSignals(
            contributor_count=row["contributor_count"],
            release_count=row["release_count"],
            commit_activity_52w=row["commit_activity_52w"],
            issue_close_rate=row["issue_close_rate"],
            avg_issue_close_days=row["avg_issue_close_days"],
            has_readme=from_flag(row["has_readme"]),
            has_contributing=from_flag(row["has_contributing"]),
        )

    def get_signals_many(self, repo_ids: Iterable[int]) -> dict[int, HealthSignals]:
        result: dict[int, HealthSignals] = {}
        for repo_id in dict.fromkeys(repo_ids):
            signals = self.get_signals(repo_id)
            if signals is not None:
                result[repo_id] = signals
        return result

    @staticmethod
    def _params(repo: Repository) -> tuple:
        return (
            repo.repo_id,
            repo.full_name,
            repo.description,
            repo.language,
            dump_json(repo.topics),
            repo.stars,
            repo.forks,
            repo.watchers,
            repo.open_issues,
            to_iso(repo.created_at),
            to_iso(repo.updated_at),
            to_iso(repo.pushed_at),
            repo.license,
            repo.owner_login,
            repo.owner_avatar_url,
            repo.html_url,
        )
