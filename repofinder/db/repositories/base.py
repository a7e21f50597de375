"""
Base repository providing shared SQLite helpers.

Every repository class receives an open ``sqlite3.Connection`` (managed by the
caller through ``get_connection()``) and speaks Pydantic models, not raw
dicts. All SQL is explicit and lives in repository methods; there is no ORM.

Column conventions shared by every table:
  - Timestamps are ISO-8601 UTC strings (``to_iso`` / ``from_iso``).
  - Sets and lists are JSON arrays (``dump_json`` / ``load_json``).
  - Booleans are ``0``/``1`` integers, ``NULL`` when unknown.
"""

from __future__ import annotations

import json
import logging
import sqlite3
from datetime import datetime
from typing import Any, Optional

from repofinder.utils.time_utils import ensure_utc

logger = logging.getLogger(__name__)

Params = tuple[Any, ...] | dict[str, Any]


def to_iso(value: Optional[datetime]) -> Optional[str]:
    return ensure_utc(value).isoformat() if value is not None else None


def from_iso(value: Optional[str]) -> Optional[datetime]:
    return ensure_utc(datetime.fromisoformat(value)) if value else None


def dump_json(value: Any) -> str:
    if isinstance(value, (set, frozenset)):
        value = sorted(value)
    return json.dumps(value, sort_keys=True)


def load_json(value: Optional[str], default: Any = None) -> Any:
    return json.loads(value) if value else default


def to_flag(value: Optional[bool]) -> Optional[int]:
    return None if value is None else int(value)


def from_flag(value: Optional[int]) -> Optional[bool]:
    return None if value is None else bool(value)


class BaseRepository:
    """Shared SQL execution helpers for all repository classes.

    Attributes:
        conn: The active ``sqlite3.Connection``.
    """

    def __init__(self, conn: sqlite3.Connection) -> None:
        self.conn = conn

    def execute(self, sql: str, params: Params = ()) -> sqlite3.Cursor:
        """Execute a single SQL statement."""
        logger.debug("SQL: %s | params: %s", sql.strip(), params)
        return self.conn.execute(sql, params)

    def executemany(self, sql: str, params_list: list[Params]) -> sqlite3.Cursor:
        """Execute a SQL statement once per parameter set."""
        logger.debug("SQL (many): %s | count: %d", sql.strip(), len(params_list))
        return self.conn.executemany(sql, params_list)

    def fetchone(self, sql: str, params: Params = ()) -> Optional[sqlite3.Row]:
        """Return the first row of a query, or ``None``."""
        return self.execute(sql, params).fetchone()

    def fetchall(self, sql: str, params: Params = ()) -> list[sqlite3.Row]:
        """Return every row of a query."""
        return self.execute(sql, params).fetchall()

    def scalar(self, sql: str, params: Params = (), default: Any = None) -> Any:
        """Return the first column of the first row, or ``default``."""
        row = self.fetchone(sql, params)
        return row[0] if row is not None else default
