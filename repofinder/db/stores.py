"""
Async store facades over the SQLite repositories.

The recommendation core is asyncio-based; sqlite3 is blocking. Each store
method runs its repository call in a worker thread (``asyncio.to_thread``)
on a short-lived connection from ``get_connection()``, so concurrent requests
never share a connection and the event loop never blocks on disk I/O.

Stores:
  SqlitePreferenceStore   — PreferenceStore   (``user_preferences``)
  SqliteInteractionStore  — InteractionStore  (``interactions`` + catalog joins)
  SqliteCatalogStore      — catalog snapshots and cached health signals
  SqliteClusterSource     — ClusterIndex backing (``repo_clusters``)
  CatalogLookup           — RepositoryLookup: catalog first, remote fallback
"""

from __future__ import annotations

import asyncio
import logging
import sqlite3
from typing import TYPE_CHECKING, Callable, Iterable, Optional, TypeVar

from repofinder.db.connection import get_connection
from repofinder.db.repositories.catalog_repo import CatalogRepository
from repofinder.db.repositories.cluster_repo import (
    ClusterAssignment,
    ClusterInfo,
    ClusterRepository,
)
from repofinder.db.repositories.interaction_repo import InteractionRepository
from repofinder.db.repositories.preference_repo import PreferenceRepository
from repofinder.interfaces import PreferenceNotFound
from repofinder.models.interaction import InteractionRecord, InteractionSummary
from repofinder.models.preferences import UserPreferences
from repofinder.models.repository import HealthSignals, Repository
from repofinder.taxonomy.preference_taxonomy import InteractionAction

if TYPE_CHECKING:
    from repofinder.config import DatabaseConfig
    from repofinder.ingestion.github_client import GitHubSearchClient

logger = logging.getLogger(__name__)

T = TypeVar("T")


class SqliteStore:
    """Shared plumbing: run a repository callable on a fresh connection."""

    def __init__(self, db_path: str, wal_mode: bool = True, busy_timeout_ms: int = 5000) -> None:
        if db_path == ":memory:":
            raise ValueError(
                "Async stores open one connection per call; use a file-backed database."
            )
        self.db_path = db_path
        self.wal_mode = wal_mode
        self.busy_timeout_ms = busy_timeout_ms

    @classmethod
    def from_config(cls, config: "DatabaseConfig"):
        return cls(config.db_path, wal_mode=config.wal_mode, busy_timeout_ms=config.busy_timeout_ms)

    def _call(self, fn: Callable[[sqlite3.Connection], T]) -> T:
        with get_connection(self.db_path, self.wal_mode, self.busy_timeout_ms) as conn:
            return fn(conn)

    async def _run(self, fn: Callable[[sqlite3.Connection], T]) -> T:
        return await asyncio.to_thread(self._call, fn)


class SqlitePreferenceStore(SqliteStore):
    """Per-user preferences backed by ``user_preferences``."""

    async def get(self, user_id: str) -> UserPreferences:
        """Return the user's preferences.

        Raises:
            PreferenceNotFound: If the user never saved preferences.
        """
        prefs = await self._run(lambda conn: PreferenceRepository(conn).get(user_id))
        if prefs is None:
            raise PreferenceNotFound(user_id)
        return prefs

    async def set(self, user_id: str, prefs: UserPreferences) -> None:
        await self._run(lambda conn: PreferenceRepository(conn).upsert(user_id, prefs))


class SqliteInteractionStore(SqliteStore):
    """Append-only interaction log backed by ``interactions``."""

    async def append(self, record: InteractionRecord) -> None:
        await self._run(lambda conn: InteractionRepository(conn).append(record))

    async def seen_ids(self, user_id: str) -> set[int]:
        return await self._run(lambda conn: InteractionRepository(conn).seen_ids(user_id))

    async def saved_repos(self, user_id: str) -> list[Repository]:
        return await self._run(
            lambda conn: InteractionRepository(conn).repos_with_action(
                user_id, (InteractionAction.SAVE,)
            )
        )

    async def liked_repos(self, user_id: str) -> list[Repository]:
        return await self._run(
            lambda conn: InteractionRepository(conn).repos_with_action(
                user_id, (InteractionAction.LIKE,)
            )
        )

    async def recent(self, user_id: str, limit: int = 50) -> list[InteractionSummary]:
        return await self._run(lambda conn: InteractionRepository(conn).recent(user_id, limit))


class SqliteCatalogStore(SqliteStore):
    """Repository snapshots and cached health signals."""

    async def upsert_many(self, repos: Iterable[Repository]) -> int:
        batch = list(repos)
        return await self._run(lambda conn: CatalogRepository(conn).upsert_many(batch))

    async def get_repository(self, repo_id: int) -> Optional[Repository]:
        return await self._run(lambda conn: CatalogRepository(conn).get_by_id(repo_id))

    async def get_repository_by_name(self, full_name: str) -> Optional[Repository]:
        return await self._run(lambda conn: CatalogRepository(conn).get_by_full_name(full_name))

    async def list_repositories(self, limit: Optional[int] = None) -> list[Repository]:
        return await self._run(lambda conn: CatalogRepository(conn).list_all(limit))

    async def get_signals(self, repo_id: int) -> Optional[HealthSignals]:
        return await self._run(lambda conn: CatalogRepository(conn).get_signals(repo_id))

    async def save_signals(self, repo: Repository, signals: HealthSignals) -> None:
        def _write(conn: sqlite3.Connection) -> None:
            catalog = CatalogRepository(conn)
            catalog.upsert(repo)
            catalog.upsert_signals(repo.repo_id, signals)

        await self._run(_write)


class SqliteClusterSource(SqliteStore):
    """Read side of the cluster shortlists for ClusterIndex."""

    async def shortlist(self, cluster: str, limit: Optional[int] = None) -> list[ClusterAssignment]:
        return await self._run(lambda conn: ClusterRepository(conn).get_shortlist(cluster, limit))

    async def all_assignments(self) -> list[ClusterAssignment]:
        return await self._run(lambda conn: ClusterRepository(conn).all_assignments())

    async def list_clusters(self) -> list[ClusterInfo]:
        return await self._run(lambda conn: ClusterRepository(conn).list_metadata())


class CatalogLookup:
    """Resolve repositories and signals from the catalog, then the remote API.

    Remote results are written back to the catalog so the next lookup is
    local. Without a ``remote`` client the lookup is catalog-only and missing
    signals come back empty (scored as worst case).
    """

    def __init__(
        self,
        catalog: SqliteCatalogStore,
        remote: Optional["GitHubSearchClient"] = None,
    ) -> None:
        self.catalog = catalog
        self.remote = remote

    async def get_repository(self, repo_id: int) -> Optional[Repository]:
        repo = await self.catalog.get_repository(repo_id)
        if repo is not None or self.remote is None:
            return repo
        repo = await self.remote.get_repository(repo_id)
        if repo is not None:
            await self.catalog.upsert_many([repo])
        return repo

    async def get_signals(self, repo: Repository) -> HealthSignals:
        cached = await self.catalog.get_signals(repo.repo_id)
        if cached is not None:
            return cached
        if self.remote is None:
            return HealthSignals()
        signals = await self.remote.get_signals(repo)
        await self.catalog.save_signals(repo, signals)
        logger.debug("Cached health signals for %s", repo.full_name)
        return signals
