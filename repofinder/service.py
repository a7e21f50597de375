"""
DiscoveryService — the public facade of the recommendation core.

The API layer (or the CLI) talks only to this class::

    async with DiscoveryService.from_config(load_config()) as service:
        batch = await service.get_recommendations("user-1", 20)
        report = await service.get_health_report(10270250)
        result = await service.compare([10270250, 11730342])

Wiring (``from_config``):
  search        GitHubSearchClient            (remote, rate-limited)
  preferences   SqlitePreferenceStore
  interactions  SqliteInteractionStore
  lookup        CatalogLookup(catalog, search)
  clusters      ClusterIndex(SqliteClusterSource)   (cluster tier and pool top-up)
  hybrid        CatalogRecommender(catalog)

A user with no stored preferences gets ``UserPreferences()`` defaults.
"""

from __future__ import annotations

import logging
from typing import Iterable, Optional

from repofinder.config import AppConfig
from repofinder.db.repositories.cluster_repo import ClusterInfo
from repofinder.interfaces import (
    InteractionStore,
    PreferenceNotFound,
    PreferenceStore,
    RepositoryLookup,
    RepositoryNotFound,
)
from repofinder.models.health import HealthScore
from repofinder.models.interaction import InteractionRecord, InteractionSummary
from repofinder.models.preferences import UserPreferences
from repofinder.models.recommendation import ComparisonResult, RecommendationBatch
from repofinder.models.repository import Repository
from repofinder.recommendations.comparison import ComparisonEngine
from repofinder.recommendations.orchestrator import RecommendationOrchestrator
from repofinder.recommendations.pool import CandidatePool
from repofinder.scoring.health import HealthScorer

logger = logging.getLogger(__name__)


class DiscoveryService:
    """Recommendations, health reports and comparisons for the API layer.

    Args:
        preferences: Preference store.
        interactions: Interaction store.
        lookup: Repository lookup for reports and comparisons.
        pool: Candidate pools (shared with ``orchestrator``).
        orchestrator: Tier cascade.
        scorer: HealthScorer for reports and comparisons.
        catalog: Optional catalog store; interacted repositories are cached
            there so like/save/skip history can be joined back to tags.
        default_count: Batch size when ``count`` is omitted.
    """

    def __init__(
        self,
        preferences: PreferenceStore,
        interactions: InteractionStore,
        lookup: RepositoryLookup,
        pool: CandidatePool,
        orchestrator: RecommendationOrchestrator,
        scorer: Optional[HealthScorer] = None,
        catalog=None,
        default_count: int = 20,
    ) -> None:
        self.preferences = preferences
        self.interactions = interactions
        self.lookup = lookup
        self.pool = pool
        self.orchestrator = orchestrator
        self.scorer = scorer or HealthScorer()
        self.comparison = ComparisonEngine(lookup, self.scorer)
        self.catalog = catalog
        self.default_count = default_count
        self._closers: list = []

    @classmethod
    def from_config(cls, config: AppConfig, search=None) -> "DiscoveryService":
        """Wire the SQLite stores and the GitHub client from configuration.

        Args:
            config: Application configuration.
            search: Optional SearchService to use instead of a new
                ``GitHubSearchClient`` (the caller then owns its lifecycle).
        """
        from repofinder.db.stores import (
            CatalogLookup,
            SqliteCatalogStore,
            SqliteClusterSource,
            SqliteInteractionStore,
            SqlitePreferenceStore,
        )
        from repofinder.ingestion.github_client import GitHubSearchClient
        from repofinder.recommendations.clusters import ClusterIndex
        from repofinder.recommendations.hybrid import CatalogRecommender

        owns_search = search is None
        if search is None:
            search = GitHubSearchClient(config.github)

        db = config.database
        preferences = SqlitePreferenceStore.from_config(db)
        interactions = SqliteInteractionStore.from_config(db)
        catalog = SqliteCatalogStore.from_config(db)
        scorer = HealthScorer.from_config(config.scoring)
        clusters = ClusterIndex(SqliteClusterSource.from_config(db))
        pool = CandidatePool(search, interactions, scorer, config.pool, clusters=clusters)
        orchestrator = RecommendationOrchestrator(
            pool=pool,
            clusters=clusters,
            hybrid=CatalogRecommender(catalog),
            search=search,
            interactions=interactions,
            config=config.orchestrator,
        )
        service = cls(
            preferences=preferences,
            interactions=interactions,
            lookup=CatalogLookup(catalog, search),
            pool=pool,
            orchestrator=orchestrator,
            scorer=scorer,
            catalog=catalog,
            default_count=config.orchestrator.default_count,
        )
        if owns_search:
            service._closers.append(search.aclose)
        return service

    async def __aenter__(self) -> "DiscoveryService":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        for close in self._closers:
            await close()
        self._closers.clear()

    # ── Preferences ───────────────────────────────────────────────────────────

    async def get_preferences(self, user_id: str) -> UserPreferences:
        """Stored preferences, or defaults for a user who has none."""
        try:
            return await self.preferences.get(user_id)
        except PreferenceNotFound:
            logger.debug("No stored preferences for user %s; using defaults", user_id)
            return UserPreferences()

    async def set_preferences(self, user_id: str, prefs: UserPreferences) -> None:
        """Store preferences; the next request rebuilds the pool if they changed."""
        await self.preferences.set(user_id, prefs)

    # ── Recommendations ───────────────────────────────────────────────────────

    async def get_recommendations(
        self,
        user_id: str,
        count: Optional[int] = None,
        prefs: Optional[UserPreferences] = None,
    ) -> RecommendationBatch:
        """Next batch of unseen, de-duplicated recommendations.

        Args:
            user_id: The requesting user.
            count: Batch size (default ``orchestrator.default_count``).
            prefs: Preferences to use instead of the stored ones.

        Returns:
            ``RecommendationBatch``; empty means "nothing more right now".
        """
        if prefs is None:
            prefs = await self.get_preferences(user_id)
        return await self.orchestrator.recommend(
            user_id, prefs, count if count is not None else self.default_count
        )

    async def refresh_pool(self, user_id: str) -> int:
        """Rebuild the user's pool; returns the new pool size."""
        prefs = await self.get_preferences(user_id)
        return len(await self.pool.refresh_pool(user_id, prefs))

    async def clear_pool(self, user_id: str) -> None:
        self.pool.clear_pool(user_id)

    async def record_interaction(
        self,
        record: InteractionRecord,
        repo: Optional[Repository] = None,
    ) -> None:
        """Append an interaction and refine the user's pool in memory.

        Args:
            record: The interaction event.
            repo: The repository acted on, if the caller has it; cached in the
                catalog and used for similarity refinement.
        """
        if repo is not None and self.catalog is not None:
            await self.catalog.upsert_many([repo])
        await self.interactions.append(record)

        summary = InteractionSummary(
            repo_id=record.repo_id,
            action=record.action,
            language=repo.language if repo is not None else None,
            topics=repo.topics if repo is not None else frozenset(),
        )
        self.pool.refine_pool_based_on_interactions(record.user_id, [summary])

    # ── Health & comparison ───────────────────────────────────────────────────

    async def get_health_report(self, repo_id: int) -> HealthScore:
        """Health score for one repository.

        Raises:
            RepositoryNotFound: If the id resolves neither locally nor remotely.
            RemoteUnavailable: If the remote lookup fails.
        """
        repo = await self.lookup.get_repository(repo_id)
        if repo is None:
            raise RepositoryNotFound(repo_id)
        signals = await self.lookup.get_signals(repo)
        return self.scorer.score(repo, signals)

    async def compare(
        self,
        repo_ids: Iterable[int],
        preferences: Optional[UserPreferences] = None,
    ) -> ComparisonResult:
        """Compare two or more repositories.

        Raises:
            InsufficientInputError: If fewer than two ids resolve.
        """
        return await self.comparison.compare(repo_ids, preferences)

    # ── Clusters ──────────────────────────────────────────────────────────────

    async def list_clusters(self) -> list[ClusterInfo]:
        """Active clusters with display metadata and repo counts."""
        return await self.orchestrator.clusters.list_clusters()
