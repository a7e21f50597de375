"""
HealthScore — the six-factor quality assessment of a repository.

Derived on demand by ``HealthScorer`` and never stored on the ``Repository``
itself. Sub-scores and ``overall`` are integers in [0, 100].
"""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, field_validator

# Best to worst. ``F`` is everything below the lowest configured threshold.
GRADE_ORDER: tuple[str, ...] = ("A+", "A", "B+", "B", "C+", "C", "D", "F")
VALID_GRADES = frozenset(GRADE_ORDER)

HEALTH_CATEGORIES: tuple[str, ...] = (
    "popularity", "activity", "maintenance", "community", "documentation", "maturity",
)


def grade_rank(grade: str) -> int:
    """Return the rank of ``grade`` (0 = best)."""
    return GRADE_ORDER.index(grade)


class HealthScore(BaseModel):
    """Health assessment for one repository snapshot.

    Attributes:
        repo_id: Repository the score belongs to.
        popularity: Saturating function of stars.
        activity: Push recency and 52-week commit volume.
        maintenance: Issue close rate/time and release cadence.
        community: Contributors and fork ratio.
        documentation: README/description/topic proxies.
        maturity: Age, releases and license.
        overall: Weighted combination of the six, clamped to [0, 100].
        grade: Letter bucket of ``overall``.
        summary: One-line human-readable strengths/weaknesses digest.
    """

    model_config = ConfigDict(frozen=True)

    repo_id: int
    popularity: int
    activity: int
    maintenance: int
    community: int
    documentation: int
    maturity: int
    overall: int
    grade: str
    summary: str = ""

    @field_validator(
        "popularity", "activity", "maintenance", "community",
        "documentation", "maturity", "overall",
    )
    @classmethod
    def validate_range(cls, v: int) -> int:
        if not 0 <= v <= 100:
            raise ValueError(f"Health sub-scores must be in [0, 100], got {v}.")
        return v

    @field_validator("grade")
    @classmethod
    def validate_grade(cls, v: str) -> str:
        if v not in VALID_GRADES:
            raise ValueError(f"Unknown grade '{v}'. Must be one of {list(GRADE_ORDER)}.")
        return v

    def category(self, name: str) -> int:
        """Return the sub-score for a category name in ``HEALTH_CATEGORIES``."""
        if name not in HEALTH_CATEGORIES:
            raise KeyError(f"Unknown health category '{name}'.")
        return getattr(self, name)

    @property
    def breakdown(self) -> dict[str, int]:
        return {name: getattr(self, name) for name in HEALTH_CATEGORIES}
