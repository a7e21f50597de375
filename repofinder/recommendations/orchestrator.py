"""
RecommendationOrchestrator: the pool → cluster → hybrid → trending cascade.

Each tier is a plain async function with the same shape::

    async def tier(exclude: frozenset[int], needed: int) -> TierResult

and the cascade is an ordered list of ``Tier`` records built per request.
Every tier's output is popularity-capped, filtered against the cumulative
exclusion set (the user's seen ids plus everything already accepted in this
call) and merged without duplicates, up to the requested count.

Failure model
-------------
A tier that raises ``RemoteUnavailable``, exceeds its ``asyncio.wait_for``
deadline, or fails in any other way is recorded as a failed ``TierOutcome``
and the cascade moves on. Exhausting every tier yields an empty (or short)
batch; ``recommend`` itself never raises for tier failures.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Awaitable, Callable, Optional

from repofinder.config import OrchestratorConfig
from repofinder.interfaces import (
    HybridRecommender,
    InteractionStore,
    RemoteUnavailable,
    SearchService,
)
from repofinder.models.preferences import UserPreferences
from repofinder.models.recommendation import RecommendationBatch, TieredRepository, TierOutcome
from repofinder.models.repository import Repository
from repofinder.recommendations.clusters import ClusterIndex
from repofinder.recommendations.filters import apply_popularity_cap, exclude_ids, merge_unique
from repofinder.recommendations.hybrid import hybrid_rank
from repofinder.recommendations.pool import CandidatePool

logger = logging.getLogger(__name__)

# Candidates requested per needed slot from tiers whose output is filtered afterwards.
_OVERFETCH = 2
_HYBRID_CANDIDATES_MIN = 30
_SESSION_HISTORY = 50


@dataclass(frozen=True)
class TierResult:
    """What one tier produced.

    Attributes:
        repos:  Candidates in the tier's preferred order.
        ok:     False when the tier could not produce results.
        scores: Optional per-repo score to carry into the batch.
    """

    repos: list[Repository]
    ok: bool = True
    scores: dict[int, float] = field(default_factory=dict)


TierFn = Callable[[frozenset[int], int], Awaitable[TierResult]]


@dataclass(frozen=True)
class Tier:
    """One step of the cascade.

    Attributes:
        name:     Tier name recorded on each returned repository.
        fetch:    The tier function.
        floor:    When set, the cascade stops after this tier once it has
                  contributed at least this many repositories.
        degraded: Results are non-personalised (logged as a warning).
    """

    name: str
    fetch: TierFn
    floor: Optional[int] = None
    degraded: bool = False


class RecommendationOrchestrator:
    """Fill a recommendation request from the tier cascade.

    Args:
        pool: Per-user candidate pools.
        clusters: Curated cluster shortlists.
        hybrid: Secondary recommender for the hybrid tier.
        search: Remote search (trending tier).
        interactions: Interaction store (seen ids and session history).
        config: Cascade settings.
    """

    def __init__(
        self,
        pool: CandidatePool,
        clusters: ClusterIndex,
        hybrid: HybridRecommender,
        search: SearchService,
        interactions: InteractionStore,
        config: Optional[OrchestratorConfig] = None,
    ) -> None:
        self.pool = pool
        self.clusters = clusters
        self.hybrid = hybrid
        self.search = search
        self.interactions = interactions
        self.config = config or OrchestratorConfig()

    # ── Tiers ─────────────────────────────────────────────────────────────────

    def build_tiers(self, user_id: str, prefs: UserPreferences) -> list[Tier]:
        """The cascade for one request, in order."""
        cap = self._star_cap(prefs)

        async def pool_tier(exclude: frozenset[int], needed: int) -> TierResult:
            repos = await self.pool.get_recommendations(
                user_id, prefs, needed, exclude, max_stars=cap
            )
            return TierResult(repos)

        async def cluster_tier(exclude: frozenset[int], needed: int) -> TierResult:
            cluster = self.clusters.detect_primary_cluster(prefs)
            repos = await self.clusters.get_best_of_cluster(
                cluster, needed * _OVERFETCH, exclude, user_id=user_id
            )
            return TierResult(repos)

        async def hybrid_tier(exclude: frozenset[int], needed: int) -> TierResult:
            limit = max(needed * _OVERFETCH, _HYBRID_CANDIDATES_MIN)
            candidates, history = await asyncio.gather(
                self.hybrid.recommend(user_id, prefs, limit),
                self.interactions.recent(user_id, _SESSION_HISTORY),
            )
            candidates = exclude_ids(candidates, exclude)
            ranked = hybrid_rank(candidates, prefs, history, limit=needed * _OVERFETCH)
            return TierResult(
                [s.repo for s in ranked],
                scores={s.repo.repo_id: s.final for s in ranked},
            )

        async def trending_tier(exclude: frozenset[int], needed: int) -> TierResult:
            repos = await self.search.trending(self.config.trending_window)
            return TierResult(repos)

        return [
            Tier("pool", pool_tier, floor=self.config.pool_tier_floor),
            Tier("cluster", cluster_tier),
            Tier("hybrid", hybrid_tier),
            Tier("trending", trending_tier, degraded=True),
        ]

    # ── Cascade ───────────────────────────────────────────────────────────────

    def _star_cap(self, prefs: UserPreferences) -> Optional[int]:
        return None if prefs.wants_popular else self.config.popularity_cap_stars

    async def _seen_ids(self, user_id: str) -> set[int]:
        try:
            return await asyncio.wait_for(
                self.interactions.seen_ids(user_id), self.config.tier_timeout_seconds
            )
        except TimeoutError:
            logger.warning(
                "Seen-id lookup timed out for user %s; continuing without it",
                user_id, extra={"user_id": user_id},
            )
            return set()

    async def recommend(
        self,
        user_id: str,
        prefs: UserPreferences,
        count: int,
        tiers: Optional[list[Tier]] = None,
    ) -> RecommendationBatch:
        """Return up to ``count`` unseen repositories for ``user_id``.

        Args:
            user_id: The requesting user.
            prefs: The user's preferences.
            count: Number of repositories wanted.
            tiers: Override the cascade (default: ``build_tiers``).

        Returns:
            A ``RecommendationBatch``; empty when every tier came up dry.
        """
        if count <= 0:
            return RecommendationBatch(user_id=user_id, requested=max(count, 0))

        seen = await self._seen_ids(user_id)
        cap = self._star_cap(prefs)
        timeout = self.config.tier_timeout_seconds

        accepted: list[Repository] = []
        items: list[TieredRepository] = []
        outcomes: list[TierOutcome] = []

        for tier in tiers if tiers is not None else self.build_tiers(user_id, prefs):
            needed = count - len(accepted)
            if needed <= 0:
                break
            exclude = frozenset(seen | {r.repo_id for r in accepted})
            log_ctx = {"user_id": user_id, "tier": tier.name}

            try:
                result = await asyncio.wait_for(tier.fetch(exclude, needed), timeout)
            except RemoteUnavailable as exc:
                logger.warning("Tier %s unavailable for user %s: %s", tier.name, user_id, exc, extra=log_ctx)
                outcomes.append(TierOutcome(tier=tier.name, ok=False, error=str(exc)))
                continue
            except TimeoutError:
                logger.warning(
                    "Tier %s timed out after %.1fs for user %s", tier.name, timeout, user_id, extra=log_ctx
                )
                outcomes.append(TierOutcome(tier=tier.name, ok=False, error="timeout"))
                continue
            except Exception as exc:
                logger.exception("Tier %s failed for user %s", tier.name, user_id, extra=log_ctx)
                outcomes.append(TierOutcome(tier=tier.name, ok=False, error=f"{type(exc).__name__}: {exc}"))
                continue

            filtered = exclude_ids(apply_popularity_cap(result.repos, cap), exclude)
            accepted, new = merge_unique(accepted, filtered, count)
            items.extend(
                TieredRepository(repo=r, tier=tier.name, score=result.scores.get(r.repo_id))
                for r in new
            )
            outcomes.append(
                TierOutcome(tier=tier.name, ok=result.ok, returned=len(result.repos), accepted=len(new))
            )
            logger.debug(
                "Tier %s for user %s: %d returned, %d accepted (%d/%d)",
                tier.name, user_id, len(result.repos), len(new), len(accepted), count, extra=log_ctx,
            )

            if tier.degraded and new:
                logger.warning(
                    "Serving %d degraded %s results to user %s", len(new), tier.name, user_id, extra=log_ctx
                )
            if tier.floor is not None and (len(new) >= tier.floor or len(new) >= count):
                break

        if not items:
            logger.info("No recommendations available for user %s", user_id, extra={"user_id": user_id})
        return RecommendationBatch(
            user_id=user_id,
            requested=count,
            items=tuple(items),
            outcomes=tuple(outcomes),
        )
