"""
Recommendation and comparison result types.

``RecommendationBatch`` is what the orchestrator returns: repositories in
display order, each annotated with the tier that produced it so callers (and
logs) can tell personalised results from degraded fallbacks.

``ComparisonResult`` is what ComparisonEngine returns for a side-by-side view.
"""

from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, ConfigDict, field_validator

from repofinder.models.health import HEALTH_CATEGORIES, HealthScore
from repofinder.models.repository import Repository

VALID_TIERS = frozenset({"pool", "cluster", "hybrid", "trending"})


class TieredRepository(BaseModel):
    """A recommended repository and the tier that supplied it."""

    model_config = ConfigDict(frozen=True)

    repo: Repository
    tier: str
    score: Optional[float] = None

    @field_validator("tier")
    @classmethod
    def validate_tier(cls, v: str) -> str:
        if v not in VALID_TIERS:
            raise ValueError(f"Unknown tier '{v}'. Must be one of {sorted(VALID_TIERS)}.")
        return v


class TierOutcome(BaseModel):
    """Observability record for one tier attempt."""

    model_config = ConfigDict(frozen=True)

    tier: str
    ok: bool
    returned: int = 0
    accepted: int = 0
    error: Optional[str] = None


class RecommendationBatch(BaseModel):
    """Result of one ``get_recommendations`` call.

    An empty batch is a valid terminal state ("no more recommendations right
    now"), not an error.
    """

    model_config = ConfigDict(frozen=True)

    user_id: str
    requested: int
    items: tuple[TieredRepository, ...] = ()
    outcomes: tuple[TierOutcome, ...] = ()

    @property
    def repos(self) -> list[Repository]:
        return [item.repo for item in self.items]

    @property
    def repo_ids(self) -> list[int]:
        return [item.repo.repo_id for item in self.items]

    @property
    def is_empty(self) -> bool:
        return not self.items

    @property
    def degraded(self) -> bool:
        """True when the non-personalised trending tier contributed results."""
        return any(item.tier == "trending" for item in self.items)

    def tier_counts(self) -> dict[str, int]:
        counts: dict[str, int] = {}
        for item in self.items:
            counts[item.tier] = counts.get(item.tier, 0) + 1
        return counts


class ComparisonResult(BaseModel):
    """Side-by-side comparison of two or more repositories.

    Attributes:
        repos: Compared repositories in input order.
        scores: Health score per repo id.
        category_winners: Category name → winning repo id.
        overall_winner: Repo id with the best overall score.
        verdict: Short natural-language summary.
        star_velocity: Repo id → stars gained per 30 days of age.
    """

    model_config = ConfigDict(frozen=True)

    repos: tuple[Repository, ...]
    scores: dict[int, HealthScore]
    category_winners: dict[str, int]
    overall_winner: int
    verdict: str
    star_velocity: dict[int, float] = {}

    @field_validator("category_winners")
    @classmethod
    def validate_categories(cls, v: dict[str, int]) -> dict[str, int]:
        unknown = set(v) - set(HEALTH_CATEGORIES)
        if unknown:
            raise ValueError(f"Unknown health categories: {sorted(unknown)}.")
        return v

    def wins_for(self, repo_id: int) -> list[str]:
        """Categories won by ``repo_id``, in canonical category order."""
        return [c for c in HEALTH_CATEGORIES if self.category_winners.get(c) == repo_id]
