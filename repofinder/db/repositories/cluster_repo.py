"""
Repository for cluster shortlists (``repo_clusters``) and ``cluster_metadata``.

Shortlists are rebuilt wholesale by the ``refresh_clusters`` stage
(``replace_cluster``) and read by ClusterIndex; the core never edits
individual assignments.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Iterable, Optional

from repofinder.db.repositories.base import BaseRepository
from repofinder.db.repositories.catalog_repo import row_to_repository
from repofinder.models.repository import Repository

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ClusterAssignment:
    """One repository's place in one cluster's shortlist."""

    cluster: str
    repo: Repository
    quality_score: float
    rotation_priority: int = 0


@dataclass(frozen=True)
class ClusterInfo:
    """Display metadata for one cluster."""

    name: str
    display_name: str
    description: str
    repo_count: int
    is_active: bool = True


class ClusterRepository(BaseRepository):
    """Read/write access to ``repo_clusters`` and ``cluster_metadata``."""

    def upsert_metadata(self, info: ClusterInfo) -> None:
        self.execute(
            """
            INSERT INTO cluster_metadata (cluster_name, display_name, description, repo_count, is_active, updated_at)
            VALUES (?, ?, ?, ?, ?, strftime('%Y-%m-%dT%H:%M:%SZ', 'now'))
            ON CONFLICT(cluster_name) DO UPDATE SET
                display_name = excluded.display_name,
                description  = excluded.description,
                repo_count   = excluded.repo_count,
                is_active    = excluded.is_active,
                updated_at   = excluded.updated_at;
            """,
            (info.name, info.display_name, info.description, info.repo_count, int(info.is_active)),
        )

    def list_metadata(self, active_only: bool = True) -> list[ClusterInfo]:
        sql = "SELECT * FROM cluster_metadata"
        if active_only:
            sql += " WHERE is_active = 1"
        rows = self.fetchall(sql + " ORDER BY display_name;")
        return [
            ClusterInfo(
                name=row["cluster_name"],
                display_name=row["display_name"],
                description=row["description"] or "",
                repo_count=row["repo_count"],
                is_active=bool(row["is_active"]),
            )
            for row in rows
        ]

    def replace_cluster(self, cluster: str, assignments: Iterable[ClusterAssignment]) -> int:
        """Atomically swap a cluster's shortlist; returns the new size.

        The caller's connection context commits or rolls back the whole swap.
        The cluster's metadata row must already exist.
        """
        rows = [
            (cluster, a.repo.repo_id, a.quality_score, a.rotation_priority)
            for a in assignments
        ]
        self.execute("DELETE FROM repo_clusters WHERE cluster_name = ?;", (cluster,))
        if rows:
            self.executemany(
                """
                INSERT INTO repo_clusters (cluster_name, repo_id, quality_score, rotation_priority)
                VALUES (?, ?, ?, ?)
                ON CONFLICT(cluster_name, repo_id) DO NOTHING;
                """,
                rows,
            )
        self.execute(
            "UPDATE cluster_metadata SET repo_count = ? WHERE cluster_name = ?;",
            (len(rows), cluster),
        )
        return len(rows)

    def get_shortlist(self, cluster: str, limit: Optional[int] = None) -> list[ClusterAssignment]:
        """A cluster's shortlist ordered by quality, then rotation priority, then id."""
        sql = """
            SELECT rc.quality_score, rc.rotation_priority, r.*
            FROM repo_clusters rc
            JOIN repositories r ON r.repo_id = rc.repo_id
            WHERE rc.cluster_name = ?
            ORDER BY rc.quality_score DESC, rc.rotation_priority DESC, r.repo_id ASC
        """
        params: tuple = (cluster,)
        if limit is not None:
            sql += " LIMIT ?"
            params = (cluster, limit)
        return [
            ClusterAssignment(
                cluster=cluster,
                repo=row_to_repository(row),
                quality_score=row["quality_score"],
                rotation_priority=row["rotation_priority"],
            )
            for row in self.fetchall(sql + ";", params)
        ]

    def all_assignments(self) -> list[ClusterAssignment]:
        """Every assignment across clusters (for tag lookups)."""
        rows = self.fetchall(
            """
            SELECT rc.cluster_name, rc.quality_score, rc.rotation_priority, r.*
            FROM repo_clusters rc
            JOIN repositories r ON r.repo_id = rc.repo_id
            ORDER BY rc.quality_score DESC, r.repo_id ASC;
            """
        )
        return [
            ClusterAssignment(
                cluster=row["cluster_name"],
                repo=row_to_repository(row),
                quality_score=row["quality_score"],
                rotation_priority=row["rotation_priority"],
            )
            for row in rows
        ]
