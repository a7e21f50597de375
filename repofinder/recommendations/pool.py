"""
CandidatePool: per-user cached pools of scored candidate repositories.

One ``PoolState`` per user holds the current pool generation. Each state has
its own ``asyncio.Lock`` so builds for different users never wait on each
other, while two concurrent requests for the same user share a single remote
fetch (the second waits on the lock and then finds a fresh cache).

Generations
-----------
``clear_pool`` bumps the state's generation counter without taking the lock.
A build records the generation it started under and applies its fetch result
only if the counter is unchanged when the fetch completes; otherwise the
result is discarded. A cleared pool therefore cannot be repopulated by a
stale in-flight fetch.

Scoring
-------
Each candidate's ``fit_score`` is its content fit (``scoring.fit``) blended
with its HealthScore overall (``PoolConfig.health_blend``). Interaction-based
refinement then adds boosts or penalties in memory, both when an interaction
is recorded and on every rebuild, so a new generation keeps the adjustments.

When a ``ClusterIndex`` is supplied and the search returns fewer unseen
candidates than ``pool_size``, the shortfall is filled from the curated
shortlists (primary cluster, secondary clusters, then tag matches).
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Callable, Iterable, Optional

from repofinder.config import PoolConfig
from repofinder.ingestion.query_builder import build_pool_query
from repofinder.interfaces import InteractionStore, SearchService
from repofinder.models.interaction import InteractionSummary
from repofinder.models.preferences import UserPreferences
from repofinder.models.repository import Repository
from repofinder.recommendations.clusters import ClusterIndex
from repofinder.scoring.fit import blend_fit, content_fit_score, repo_similarity
from repofinder.scoring.health import HealthScorer
from repofinder.taxonomy.preference_taxonomy import InteractionAction
from repofinder.utils.time_utils import utcnow

logger = logging.getLogger(__name__)


@dataclass
class PoolEntry:
    """A pooled candidate and its current fit score (0–100)."""

    repo: Repository
    fit_score: float


@dataclass
class PoolState:
    """One user's pool generation.

    Attributes:
        lock:            Serialises builds for this user.
        generation:      Bumped on every clear; guards in-flight fetches.
        preference_hash: Hash of the preferences the pool was built for.
        entries:         Candidates ordered by ``fit_score`` descending.
        built_at:        When the entries were fetched.
        page:            Search page the entries came from.
        stale:           Set when the pool drains below the low-water mark.
    """

    lock: asyncio.Lock = field(default_factory=asyncio.Lock)
    generation: int = 0
    preference_hash: Optional[str] = None
    entries: list[PoolEntry] = field(default_factory=list)
    built_at: Optional[datetime] = None
    page: int = 1
    stale: bool = False


def interaction_history(
    liked: Iterable[Repository],
    saved: Iterable[Repository],
    recent: Iterable[InteractionSummary],
) -> list[InteractionSummary]:
    """One summary per repository: saves, then likes, then recent actions."""
    history: dict[int, InteractionSummary] = {}
    for action, repos in ((InteractionAction.SAVE, saved), (InteractionAction.LIKE, liked)):
        for repo in repos:
            history.setdefault(
                repo.repo_id,
                InteractionSummary(
                    repo_id=repo.repo_id, action=action,
                    language=repo.language, topics=repo.topics,
                ),
            )
    for summary in recent:
        history.setdefault(summary.repo_id, summary)
    return list(history.values())


class CandidatePool:
    """Per-user candidate pools built from the remote search.

    Args:
        search: Remote search collaborator.
        interactions: Interaction store (seen ids and interaction history).
        scorer: HealthScorer used in the blended fit score.
        config: Pool sizing and refinement settings.
        clock: Returns "now" (UTC); injectable for TTL tests.
        clusters: Curated shortlists used to top up a short pool; optional.
    """

    def __init__(
        self,
        search: SearchService,
        interactions: InteractionStore,
        scorer: Optional[HealthScorer] = None,
        config: Optional[PoolConfig] = None,
        clock: Callable[[], datetime] = utcnow,
        clusters: Optional[ClusterIndex] = None,
    ) -> None:
        self.search = search
        self.interactions = interactions
        self.scorer = scorer or HealthScorer()
        self.config = config or PoolConfig()
        self._clock = clock
        self.clusters = clusters
        self._states: dict[str, PoolState] = {}

    # ── State access ──────────────────────────────────────────────────────────

    def _state(self, user_id: str) -> PoolState:
        state = self._states.get(user_id)
        if state is None:
            state = self._states[user_id] = PoolState()
        return state

    def entries(self, user_id: str) -> list[PoolEntry]:
        """Snapshot of the user's current pool (empty if never built)."""
        state = self._states.get(user_id)
        return list(state.entries) if state else []

    def generation(self, user_id: str) -> int:
        state = self._states.get(user_id)
        return state.generation if state else 0

    def _is_fresh(self, state: PoolState, prefs_hash: str) -> bool:
        if state.built_at is None or state.stale:
            return False
        if state.preference_hash != prefs_hash:
            return False
        age = self._clock() - state.built_at
        return age < timedelta(hours=self.config.ttl_hours)

    # ── Build ─────────────────────────────────────────────────────────────────

    def score_candidates(
        self,
        repos: Iterable[Repository],
        prefs: UserPreferences,
        exclude: set[int] | frozenset[int] = frozenset(),
    ) -> list[PoolEntry]:
        """Score, de-duplicate and order candidates; drop ids in ``exclude``."""
        now = self._clock()
        entries: list[PoolEntry] = []
        seen: set[int] = set()
        for repo in repos:
            if repo.repo_id in exclude or repo.repo_id in seen:
                continue
            seen.add(repo.repo_id)
            health = self.scorer.score(repo, as_of=now)
            fit = blend_fit(
                content_fit_score(repo, prefs, as_of=now),
                health.overall,
                self.config.health_blend,
            )
            entries.append(PoolEntry(repo=repo, fit_score=fit))
        entries.sort(key=lambda e: (-e.fit_score, e.repo.repo_id))
        return entries[: self.config.pool_size]

    async def build_pool(self, user_id: str, prefs: UserPreferences) -> list[PoolEntry]:
        """Build (or reuse) the user's pool for ``prefs``.

        A fresh pool for the same preference hash is returned without any
        remote call. Otherwise the search, the user's seen ids and the
        interaction history are fetched concurrently, candidates are scored,
        topped up from the cluster shortlists when the search comes up short,
        and refined against the history. The pool is replaced unless it was
        cleared while the fetch was in flight. A stale pool for unchanged
        preferences fetches the next search page and keeps its remaining
        entries.

        Args:
            user_id: The requesting user.
            prefs: The user's current preferences.

        Returns:
            The pool entries in score order.

        Raises:
            RemoteUnavailable: If the search fails.
        """
        state = self._state(user_id)
        prefs_hash = prefs.preference_hash()

        async with state.lock:
            if self._is_fresh(state, prefs_hash):
                logger.debug("Pool cache hit for user %s (%d entries)", user_id, len(state.entries))
                return list(state.entries)

            if state.preference_hash == prefs_hash and state.stale:
                page = state.page + 1
            else:
                page = 1
            generation = state.generation
            query = build_pool_query(prefs)

            repos, seen, liked, saved, recent = await asyncio.gather(
                self.search.search(query, {"per_page": self.config.pool_size}, page=page),
                self.interactions.seen_ids(user_id),
                self.interactions.liked_repos(user_id),
                self.interactions.saved_repos(user_id),
                self.interactions.recent(user_id, self.config.history_size),
            )

            # Leftovers of a drained generation stay in the rebuilt pool.
            carry = [e.repo for e in state.entries] if page > 1 else []
            candidates = [*carry, *repos]
            shortfall = self.config.pool_size - len(
                {r.repo_id for r in candidates} - seen
            )
            curated: list[Repository] = []
            if shortfall > 0 and self.clusters is not None:
                exclude = seen | {r.repo_id for r in candidates}
                curated = await self._curated_candidates(user_id, prefs, shortfall, exclude)

            if state.generation != generation:
                logger.info(
                    "Discarding pool fetch for user %s: generation %d superseded by %d",
                    user_id, generation, state.generation,
                )
                return list(state.entries)

            state.entries = self.score_candidates([*candidates, *curated], prefs, exclude=seen)
            state.preference_hash = prefs_hash
            state.built_at = self._clock()
            state.page = page
            state.stale = False
            self.refine_pool_based_on_interactions(
                user_id, interaction_history(liked, saved, recent)
            )
            logger.info(
                "Built pool for user %s: %d candidates (page %d, %d fetched, %d curated, %d seen)",
                user_id, len(state.entries), page, len(repos), len(curated), len(seen),
            )
            return list(state.entries)

    async def _curated_candidates(
        self,
        user_id: str,
        prefs: UserPreferences,
        needed: int,
        exclude: set[int],
    ) -> list[Repository]:
        """Shortlisted repositories to top up a short pool.

        Drawn from the primary cluster, then each secondary cluster, then a
        tag lookup over the preference terms.
        """
        exclude = set(exclude)
        found: list[Repository] = []
        clusters = [self.clusters.detect_primary_cluster(prefs)]
        clusters.extend(c for c in prefs.secondary_clusters if c not in clusters)

        for cluster in clusters:
            if len(found) >= needed:
                break
            repos = await self.clusters.get_best_of_cluster(
                cluster, needed - len(found), exclude, user_id=user_id
            )
            found.extend(repos)
            exclude.update(r.repo_id for r in repos)

        if len(found) < needed:
            found.extend(
                await self.clusters.get_repos_by_tags(prefs.terms(), needed - len(found), exclude)
            )
        return found

    # ── Refine ────────────────────────────────────────────────────────────────

    def refine_pool_based_on_interactions(
        self,
        user_id: str,
        history: Iterable[InteractionSummary],
    ) -> None:
        """Re-order the user's pool from recent interactions, in memory.

        Entries similar to liked or saved repositories are boosted by
        ``min(like_boost_max, sim × 30)``; entries similar to skipped ones are
        penalised by ``min(skip_penalty_max, sim × 20)``. Only similarities
        above ``similarity_threshold`` count, and scores stay within [0, 100].
        Repositories that were interacted with leave the pool.
        """
        state = self._states.get(user_id)
        if state is None or not state.entries:
            return
        history = list(history)
        if not history:
            return

        positive = [h for h in history if h.is_positive]
        negative = [h for h in history if h.is_negative]
        touched = {h.repo_id for h in positive} | {h.repo_id for h in negative}
        threshold = self.config.similarity_threshold

        refined: list[PoolEntry] = []
        for entry in state.entries:
            if entry.repo.repo_id in touched:
                continue
            score = entry.fit_score
            repo = entry.repo

            best_like = max(
                (repo_similarity(repo.language, repo.topics, h.language, h.topics) for h in positive),
                default=0.0,
            )
            if best_like > threshold:
                score += min(self.config.like_boost_max, best_like * 30)

            best_skip = max(
                (repo_similarity(repo.language, repo.topics, h.language, h.topics) for h in negative),
                default=0.0,
            )
            if best_skip > threshold:
                score -= min(self.config.skip_penalty_max, best_skip * 20)

            refined.append(PoolEntry(repo=repo, fit_score=round(max(0.0, min(100.0, score)), 2)))

        refined.sort(key=lambda e: (-e.fit_score, e.repo.repo_id))
        removed = len(state.entries) - len(refined)
        state.entries = refined
        logger.debug("Refined pool for user %s: %d entries, %d removed", user_id, len(refined), removed)

    # ── Serve ─────────────────────────────────────────────────────────────────

    async def get_recommendations(
        self,
        user_id: str,
        prefs: UserPreferences,
        count: int,
        exclude_ids: set[int] | frozenset[int] = frozenset(),
        seen_ids: Optional[set[int] | frozenset[int]] = None,
        max_stars: Optional[int] = None,
    ) -> list[Repository]:
        """Take up to ``count`` repositories from the user's pool.

        Builds the pool first when it is missing, expired, stale or was
        built for different preferences. Returned and excluded entries are
        removed from the pool, as are entries above ``max_stars``; those are
        skipped without counting towards ``count``. If fewer than
        ``low_water`` entries remain the pool is marked stale so the next
        call fetches the next search page.

        Raises:
            RemoteUnavailable: If a needed build fails.
        """
        if count <= 0:
            return []
        state = self._state(user_id)
        if not self._is_fresh(state, prefs.preference_hash()):
            await self.build_pool(user_id, prefs)

        excluded = set(exclude_ids) | set(seen_ids or ())
        picked: list[Repository] = []
        remaining: list[PoolEntry] = []
        capped = 0
        for entry in state.entries:
            rid = entry.repo.repo_id
            if rid in excluded:
                continue
            if max_stars is not None and entry.repo.stars > max_stars:
                capped += 1
                continue
            if len(picked) < count:
                picked.append(entry.repo)
                excluded.add(rid)
            else:
                remaining.append(entry)
        state.entries = remaining
        if capped:
            logger.debug("Dropped %d pool entries above %d stars for user %s", capped, max_stars, user_id)

        if len(remaining) < self.config.low_water:
            state.stale = True
            logger.debug(
                "Pool for user %s below low-water mark (%d < %d); marked stale",
                user_id, len(remaining), self.config.low_water,
            )
        return picked

    # ── Reset ─────────────────────────────────────────────────────────────────

    def clear_pool(self, user_id: str) -> None:
        """Drop the user's pool and invalidate any in-flight build."""
        state = self._state(user_id)
        state.generation += 1
        state.entries = []
        state.built_at = None
        state.preference_hash = None
        state.page = 1
        state.stale = False
        logger.info("Cleared pool for user %s (generation %d)", user_id, state.generation)

    async def refresh_pool(self, user_id: str, prefs: UserPreferences) -> list[PoolEntry]:
        """Clear then rebuild the user's pool."""
        self.clear_pool(user_id)
        return await self.build_pool(user_id, prefs)
