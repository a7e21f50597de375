"""
ComparisonEngine: side-by-side health comparison of two or more repositories.

Tie-breaking is fixed and deterministic:
  category winner   highest sub-score → higher overall → more stars → first listed
  overall winner    highest overall → more stars → first listed
"""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime
from typing import Callable, Iterable, Optional, Sequence

from repofinder.interfaces import RemoteUnavailable, RepositoryLookup
from repofinder.models.health import HEALTH_CATEGORIES, HealthScore
from repofinder.models.preferences import UserPreferences
from repofinder.models.recommendation import ComparisonResult
from repofinder.models.repository import HealthSignals, Repository
from repofinder.scoring.fit import content_fit_score
from repofinder.scoring.health import HealthScorer
from repofinder.utils.time_utils import days_between, utcnow

logger = logging.getLogger(__name__)

MIN_COMPARE = 2


class InsufficientInputError(ValueError):
    """Raised when fewer than two repositories could be resolved for comparison.

    Attributes:
        resolved: Number of repositories that did resolve.
    """

    def __init__(self, resolved: int) -> None:
        self.resolved = resolved
        super().__init__(
            f"Comparison needs at least {MIN_COMPARE} resolvable repositories, got {resolved}."
        )


def star_velocity(repo: Repository, as_of: datetime) -> float:
    """Stars per 30 days of repository age (0.0 when the age is unknown)."""
    age = days_between(repo.created_at, as_of)
    if age is None:
        return 0.0
    return round(repo.stars / max(1.0, age) * 30.0, 1)


def pick_category_winner(
    category: str,
    repos: Sequence[Repository],
    scores: dict[int, HealthScore],
) -> int:
    best = repos[0]
    for repo in repos[1:]:
        a, b = scores[repo.repo_id], scores[best.repo_id]
        if (a.category(category), a.overall, repo.stars) > (b.category(category), b.overall, best.stars):
            best = repo
    return best.repo_id


def pick_overall_winner(repos: Sequence[Repository], scores: dict[int, HealthScore]) -> int:
    best = repos[0]
    for repo in repos[1:]:
        if (scores[repo.repo_id].overall, repo.stars) > (scores[best.repo_id].overall, best.stars):
            best = repo
    return best.repo_id


def build_verdict(
    repos: Sequence[Repository],
    scores: dict[int, HealthScore],
    category_winners: dict[str, int],
    overall_winner: int,
) -> str:
    """One or two sentences: the overall winner, then who wins what else.

    Example: "a/x leads overall with a health score of 82/100 (A). However,
    b/y wins in maintenance."
    """
    by_id = {r.repo_id: r for r in repos}
    winner = by_id[overall_winner]
    score = scores[overall_winner]
    verdict = (
        f"{winner.full_name} leads overall with a health score of "
        f"{score.overall}/100 ({score.grade})."
    )

    tradeoffs = []
    for repo in repos:
        if repo.repo_id == overall_winner:
            continue
        wins = [c for c in HEALTH_CATEGORIES if category_winners.get(c) == repo.repo_id]
        if wins:
            tradeoffs.append(f"{repo.full_name} wins in {_join(wins)}")
    if tradeoffs:
        verdict += " However, " + "; ".join(tradeoffs) + "."
    return verdict


def _join(items: list[str]) -> str:
    if len(items) == 1:
        return items[0]
    return ", ".join(items[:-1]) + " and " + items[-1]


class ComparisonEngine:
    """Compare repositories by HealthScore.

    Args:
        lookup: Resolves repository ids and their health signals.
        scorer: HealthScorer (any object with a compatible ``score``).
        clock: Returns "now" (UTC).
    """

    def __init__(
        self,
        lookup: RepositoryLookup,
        scorer: Optional[HealthScorer] = None,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self.lookup = lookup
        self.scorer = scorer or HealthScorer()
        self._clock = clock

    async def _resolve(self, repo_id: int) -> Optional[tuple[Repository, HealthSignals]]:
        try:
            repo = await self.lookup.get_repository(repo_id)
            if repo is None:
                logger.info("Dropping unresolvable repository %d from comparison", repo_id)
                return None
            signals = await self.lookup.get_signals(repo)
        except RemoteUnavailable as exc:
            logger.warning("Dropping repository %d from comparison: %s", repo_id, exc)
            return None
        return repo, signals

    async def compare(
        self,
        repo_ids: Iterable[int],
        preferences: Optional[UserPreferences] = None,
    ) -> ComparisonResult:
        """Compare the given repositories.

        Args:
            repo_ids: Two or more repository ids; duplicates are collapsed and
                input order is kept.
            preferences: When given, the verdict also names the repository
                that best fits these preferences.

        Returns:
            ``ComparisonResult`` with scores, winners, verdict and star velocity.

        Raises:
            InsufficientInputError: If fewer than two ids resolve.
        """
        ids = list(dict.fromkeys(repo_ids))
        if len(ids) < MIN_COMPARE:
            raise InsufficientInputError(len(ids))

        resolved = await asyncio.gather(*(self._resolve(rid) for rid in ids))
        pairs = [p for p in resolved if p is not None]
        if len(pairs) < MIN_COMPARE:
            raise InsufficientInputError(len(pairs))

        now = self._clock()
        repos = [repo for repo, _ in pairs]
        scores = {repo.repo_id: self.scorer.score(repo, signals, as_of=now) for repo, signals in pairs}
        category_winners = {c: pick_category_winner(c, repos, scores) for c in HEALTH_CATEGORIES}
        overall_winner = pick_overall_winner(repos, scores)
        verdict = build_verdict(repos, scores, category_winners, overall_winner)

        if preferences is not None and preferences.terms():
            fits = {r.repo_id: content_fit_score(r, preferences, as_of=now) for r in repos}
            best_fit = max(repos, key=lambda r: fits[r.repo_id])
            verdict += f" For your preferences, {best_fit.full_name} is the closest fit."

        logger.debug("Compared %d repositories; overall winner %d", len(repos), overall_winner)
        return ComparisonResult(
            repos=tuple(repos),
            scores=scores,
            category_winners=category_winners,
            overall_winner=overall_winner,
            verdict=verdict,
            star_velocity={r.repo_id: star_velocity(r, now) for r in repos},
        )
