"""
Hybrid tier scoring: blends a secondary recommender's output with the
user's recent session behaviour.

Scores (each 0–100)
-------------------
content        content fit against the user's preferences (``scoring.fit``)
collaborative  the secondary recommender's own ordering, as a rank score
session        recent behaviour: +0.5 per tag shared with the last 5 liked or
               saved repos, +0.2 × similarity to each of them, −0.3 per tag
               shared with the last 10 skipped repos (× 100, clamped)

final = 0.5 × content + 0.2 × collaborative + 0.3 × session

The ranked list then goes through ``filters.diversify`` so no language or
topic dominates the first ten cards.

``CatalogRecommender`` is the default secondary recommender: it ranks the
local catalog by content fit and needs no remote call.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import TYPE_CHECKING, Iterable, Optional, Sequence

from repofinder.models.interaction import InteractionSummary
from repofinder.models.preferences import UserPreferences
from repofinder.models.repository import Repository
from repofinder.recommendations.filters import diversify
from repofinder.scoring.fit import content_fit_score, repo_similarity
from repofinder.taxonomy.preference_taxonomy import InteractionAction

if TYPE_CHECKING:
    from repofinder.db.stores import SqliteCatalogStore

logger = logging.getLogger(__name__)

HYBRID_WEIGHTS: dict[str, float] = {
    "content":       0.5,
    "collaborative": 0.2,
    "session":       0.3,
}

SESSION_POSITIVE_WINDOW = 5
SESSION_SKIP_WINDOW = 10
_PREFERRED_TAG_POINTS = 0.5
_AVOIDED_TAG_POINTS = 0.3
_SIMILARITY_POINTS = 0.2


@dataclass(frozen=True)
class HybridScore:
    """Score breakdown for one hybrid candidate."""

    repo: Repository
    content: float
    collaborative: float
    session: float

    @property
    def final(self) -> float:
        return round(
            self.content * HYBRID_WEIGHTS["content"]
            + self.collaborative * HYBRID_WEIGHTS["collaborative"]
            + self.session * HYBRID_WEIGHTS["session"],
            2,
        )


def _tag_set(language: Optional[str], topics: Iterable[str]) -> set[str]:
    tags = {t.lower() for t in topics}
    if language:
        tags.add(language.lower())
    return tags


def split_session(
    history: Sequence[InteractionSummary],
) -> tuple[list[InteractionSummary], list[InteractionSummary]]:
    """Recent positives (last 5 likes/saves) and skips (last 10).

    ``history`` is most-recent-first, as returned by ``InteractionStore.recent``.
    """
    positive = [h for h in history if h.is_positive][:SESSION_POSITIVE_WINDOW]
    skipped = [h for h in history if h.action == InteractionAction.SKIP][:SESSION_SKIP_WINDOW]
    return positive, skipped


def session_score(
    repo: Repository,
    positive: Sequence[InteractionSummary],
    skipped: Sequence[InteractionSummary],
) -> float:
    """Session affinity of ``repo`` in [0, 100]."""
    if not positive and not skipped:
        return 0.0
    preferred: set[str] = set()
    for h in positive:
        preferred |= _tag_set(h.language, h.topics)
    avoided: set[str] = set()
    for h in skipped:
        avoided |= _tag_set(h.language, h.topics)

    tags = _tag_set(repo.language, repo.topics)
    raw = len(tags & preferred) * _PREFERRED_TAG_POINTS
    raw -= len(tags & avoided) * _AVOIDED_TAG_POINTS
    for h in positive:
        raw += repo_similarity(repo.language, repo.topics, h.language, h.topics) * _SIMILARITY_POINTS
    return max(0.0, min(100.0, raw * 100.0))


def rank_score(position: int, total: int) -> float:
    """Linear rank score: 100 for the first of ``total``, falling towards 0."""
    if total <= 0:
        return 0.0
    return round(100.0 * (total - position) / total, 2)


def score_hybrid(
    candidates: Sequence[Repository],
    prefs: UserPreferences,
    history: Sequence[InteractionSummary],
    as_of: Optional[datetime] = None,
) -> list[HybridScore]:
    """Score ``candidates`` (in the secondary recommender's order).

    Repositories the user recently acted on are dropped. Duplicates keep
    their first position.

    Returns:
        Scores sorted by final score descending (ties by repo id).
    """
    positive, skipped = split_session(history)
    acted = {h.repo_id for h in positive} | {h.repo_id for h in skipped}

    unique: list[Repository] = []
    seen: set[int] = set()
    for repo in candidates:
        if repo.repo_id in seen or repo.repo_id in acted:
            continue
        seen.add(repo.repo_id)
        unique.append(repo)

    scores = [
        HybridScore(
            repo=repo,
            content=content_fit_score(repo, prefs, as_of=as_of),
            collaborative=rank_score(i, len(unique)),
            session=session_score(repo, positive, skipped),
        )
        for i, repo in enumerate(unique)
    ]
    scores.sort(key=lambda s: (-s.final, s.repo.repo_id))
    return scores


def hybrid_rank(
    candidates: Sequence[Repository],
    prefs: UserPreferences,
    history: Sequence[InteractionSummary],
    limit: int,
    as_of: Optional[datetime] = None,
) -> list[HybridScore]:
    """Score, diversify and truncate the secondary recommender's output."""
    scored = score_hybrid(candidates, prefs, history, as_of=as_of)
    by_id = {s.repo.repo_id: s for s in scored}
    return [by_id[r.repo_id] for r in diversify([s.repo for s in scored])[:limit]]


class CatalogRecommender:
    """Secondary recommender: the local catalog ranked by content fit.

    Args:
        catalog: Catalog store to rank.
        scan_limit: Maximum catalog rows considered per call (most-starred first).
    """

    def __init__(self, catalog: "SqliteCatalogStore", scan_limit: int = 500) -> None:
        self.catalog = catalog
        self.scan_limit = scan_limit

    async def recommend(
        self, user_id: str, prefs: UserPreferences, limit: int
    ) -> list[Repository]:
        repos = await self.catalog.list_repositories(self.scan_limit)
        ranked = sorted(
            repos,
            key=lambda r: (-content_fit_score(r, prefs), r.repo_id),
        )
        logger.debug(
            "Catalog recommender for user %s: %d of %d catalog repos",
            user_id, min(limit, len(ranked)), len(repos),
        )
        return ranked[:limit]
