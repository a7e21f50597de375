"""
Repository for user preferences — one JSON document per user.
"""

from __future__ import annotations

import logging
from typing import Optional

from repofinder.db.repositories.base import BaseRepository
from repofinder.models.preferences import UserPreferences

logger = logging.getLogger(__name__)


class PreferenceRepository(BaseRepository):
    """Read/write access to the ``user_preferences`` table."""

    def get(self, user_id: str) -> Optional[UserPreferences]:
        """Return stored preferences, or ``None`` for an unknown user."""
        row = self.fetchone(
            "SELECT prefs_json FROM user_preferences WHERE user_id = ?;", (user_id,)
        )
        if row is None:
            return None
        return UserPreferences.model_validate_json(row["prefs_json"])

    def upsert(self, user_id: str, prefs: UserPreferences) -> None:
        """Insert or replace a user's preferences."""
        self.execute(
            """
            INSERT INTO user_preferences (user_id, prefs_json, preference_hash, updated_at)
            VALUES (?, ?, ?, strftime('%Y-%m-%dT%H:%M:%SZ', 'now'))
            ON CONFLICT(user_id) DO UPDATE SET
                prefs_json      = excluded.prefs_json,
                preference_hash = excluded.preference_hash,
                updated_at      = excluded.updated_at;
            """,
            (user_id, prefs.model_dump_json(), prefs.preference_hash()),
        )

    def delete(self, user_id: str) -> bool:
        """Remove a user's preferences; returns ``True`` if a row was deleted."""
        cur = self.execute("DELETE FROM user_preferences WHERE user_id = ?;", (user_id,))
        return cur.rowcount > 0
