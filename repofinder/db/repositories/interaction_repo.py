"""
Repository for the append-only ``interactions`` log.

Records are never updated or deleted; the core reads aggregates only: seen-id
sets, liked/saved repository lists and recent summaries for session scoring.
"""

from __future__ import annotations

import logging
from typing import Optional

from repofinder.db.repositories.base import BaseRepository, from_iso, load_json, to_iso
from repofinder.db.repositories.catalog_repo import row_to_repository
from repofinder.models.interaction import InteractionRecord, InteractionSummary
from repofinder.models.repository import Repository
from repofinder.taxonomy.preference_taxonomy import InteractionAction

logger = logging.getLogger(__name__)


class InteractionRepository(BaseRepository):
    """Append and aggregate access to ``interactions``."""

    def append(self, record: InteractionRecord) -> int:
        """Insert one record and return its ``interaction_id``."""
        cur = self.execute(
            """
            INSERT INTO interactions (user_id, repo_id, action, occurred_at, source, position)
            VALUES (?, ?, ?, ?, ?, ?);
            """,
            (
                record.user_id,
                record.repo_id,
                record.action.value,
                to_iso(record.occurred_at),
                record.source,
                record.position,
            ),
        )
        return int(cur.lastrowid)

    def seen_ids(self, user_id: str) -> set[int]:
        """Every repository id the user has interacted with in any way."""
        rows = self.fetchall(
            "SELECT DISTINCT repo_id FROM interactions WHERE user_id = ?;", (user_id,)
        )
        return {row["repo_id"] for row in rows}

    def repos_with_action(
        self,
        user_id: str,
        actions: tuple[InteractionAction, ...],
        limit: Optional[int] = None,
    ) -> list[Repository]:
        """Catalog snapshots the user acted on, most recent action first.

        Repositories missing from the catalog are skipped.
        """
        placeholders = ", ".join("?" for _ in actions)
        sql = f"""
            SELECT r.*, MAX(i.occurred_at) AS last_at
            FROM interactions i
            JOIN repositories r ON r.repo_id = i.repo_id
            WHERE i.user_id = ? AND i.action IN ({placeholders})
            GROUP BY r.repo_id
            ORDER BY last_at DESC, r.repo_id ASC
        """
        params: tuple = (user_id, *(a.value for a in actions))
        if limit is not None:
            sql += " LIMIT ?"
            params = params + (limit,)
        return [row_to_repository(row) for row in self.fetchall(sql + ";", params)]

    def recent(self, user_id: str, limit: int = 50) -> list[InteractionSummary]:
        """Most recent interactions with the acted-on repo's language/topics."""
        rows = self.fetchall(
            """
            SELECT i.repo_id, i.action, r.language, r.topics_json
            FROM interactions i
            LEFT JOIN repositories r ON r.repo_id = i.repo_id
            WHERE i.user_id = ?
            ORDER BY i.occurred_at DESC, i.interaction_id DESC
            LIMIT ?;
            """,
            (user_id, limit),
        )
        return [
            InteractionSummary(
                repo_id=row["repo_id"],
                action=InteractionAction(row["action"]),
                language=row["language"],
                topics=load_json(row["topics_json"], []),
            )
            for row in rows
        ]

    def history(self, user_id: str) -> list[InteractionRecord]:
        """Full interaction log for a user, oldest first."""
        rows = self.fetchall(
            "SELECT * FROM interactions WHERE user_id = ? ORDER BY occurred_at, interaction_id;",
            (user_id,),
        )
        return [
            InteractionRecord(
                interaction_id=row["interaction_id"],
                user_id=row["user_id"],
                repo_id=row["repo_id"],
                action=InteractionAction(row["action"]),
                occurred_at=from_iso(row["occurred_at"]),
                source=row["source"],
                position=row["position"],
            )
            for row in rows
        ]

    def action_counts(self, user_id: str) -> dict[str, int]:
        """Count of interactions per action for a user."""
        rows = self.fetchall(
            "SELECT action, COUNT(*) AS n FROM interactions WHERE user_id = ? GROUP BY action;",
            (user_id,),
        )
        return {row["action"]: row["n"] for row in rows}
