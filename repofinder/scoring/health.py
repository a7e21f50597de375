"""
Repository health scoring: converts a Repository snapshot + auxiliary signals
into six sub-scores, a weighted overall score and a letter grade.

Score formula (weighted sum, range 0–100)
-----------------------------------------
    overall = (
        popularity      * 0.20   # stars, saturating
        + activity      * 0.25   # push recency + 52-week commit volume
        + maintenance   * 0.20   # issue close rate/time + release cadence
        + community     * 0.15   # contributors + fork ratio
        + documentation * 0.10   # README / description / topics proxies
        + maturity      * 0.10   # age + releases + license
    )

Weights come from ``[scoring.weights]`` and are renormalised to sum to 1.

Component explanations
----------------------
popularity (0–100):
    log-scale of stars between 10 and 50 000: 100 stars ≈ 27, 1 000 ≈ 54,
    10 000 ≈ 81, 50 000+ = 100. Outliers saturate instead of dominating.

activity (0–100):
    Mean of a recency bucket (days since last push) and a commits/week
    bucket. With no commits in the 52-week window (or no commit signal at
    all) the score is capped at recency / 10: a dormant repository scores
    near zero however popular it is.

maintenance (0–100):
    Weighted mean of issue close rate (0.4), average close time (0.3) and
    release cadence in releases/year (0.3). An undefined close rate (no
    issues ever opened) or unknown close time is dropped from the mean and
    the remaining weights renormalised. It is never read as zero.

community (0–100):
    0.6 × log-scale of contributors (1..500) + 0.4 × fork/star ratio bucket.

documentation (0–100):
    README 40 + description 20 + CONTRIBUTING 20 + topics (≥3: 10, ≥1: 5)
    + declared language 10.

maturity (0–100):
    0.35 × age bucket + 0.35 × release-count bucket + 0.30 × license.

Grades
------
    A+ ≥ 90, A ≥ 80, B+ ≥ 70, B ≥ 60, C+ ≥ 50, C ≥ 40, D ≥ 30, else F.
Thresholds are configurable but must be strictly descending in grade order,
which keeps the mapping monotonic with no gaps or overlaps.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import datetime
from typing import TYPE_CHECKING, Mapping, Optional

from repofinder.models.health import GRADE_ORDER, HEALTH_CATEGORIES, HealthScore
from repofinder.models.repository import HealthSignals, Repository
from repofinder.utils.time_utils import days_between, utcnow

if TYPE_CHECKING:
    from repofinder.config import ScoringConfig

DEFAULT_WEIGHTS: dict[str, float] = {
    "popularity":    0.20,
    "activity":      0.25,
    "maintenance":   0.20,
    "community":     0.15,
    "documentation": 0.10,
    "maturity":      0.10,
}

DEFAULT_GRADE_THRESHOLDS: dict[str, int] = {
    "A+": 90, "A": 80, "B+": 70, "B": 60, "C+": 50, "C": 40, "D": 30,
}

# Summary thresholds
_STRENGTH_MIN = 75
_WEAKNESS_MAX = 45

# (upper bound in days, score); first match wins
_RECENCY_BUCKETS: tuple[tuple[float, float], ...] = (
    (7, 100.0), (30, 85.0), (90, 65.0), (180, 40.0), (365, 20.0),
)
_RECENCY_FLOOR = 5.0

# (min commits/week, score)
_COMMIT_BUCKETS: tuple[tuple[float, float], ...] = (
    (10, 100.0), (5, 85.0), (2, 70.0), (1, 55.0), (0.5, 40.0),
)

# (max avg close days, score)
_CLOSE_TIME_BUCKETS: tuple[tuple[float, float], ...] = (
    (1, 100.0), (3, 90.0), (7, 75.0), (14, 60.0), (30, 45.0), (90, 25.0),
)

# (min releases/year, score)
_CADENCE_BUCKETS: tuple[tuple[float, float], ...] = (
    (12, 100.0), (4, 80.0), (1, 60.0),
)

# (min fork/star ratio, score)
_FORK_RATIO_BUCKETS: tuple[tuple[float, float], ...] = (
    (0.3, 100.0), (0.2, 80.0), (0.1, 60.0), (0.05, 40.0),
)

# (min age days, score)
_AGE_BUCKETS: tuple[tuple[float, float], ...] = (
    (1095, 100.0), (730, 85.0), (365, 70.0), (180, 55.0), (90, 40.0),
)

# (min release count, score)
_RELEASE_BUCKETS: tuple[tuple[int, float], ...] = (
    (20, 100.0), (10, 80.0), (5, 60.0), (1, 40.0),
)


@dataclass(frozen=True)
class HealthComponents:
    """The six sub-scores before rounding.

    Attributes:
        popularity:    0–100.
        activity:      0–100.
        maintenance:   0–100.
        community:     0–100.
        documentation: 0–100.
        maturity:      0–100.
    """

    popularity:    float
    activity:      float
    maintenance:   float
    community:     float
    documentation: float
    maturity:      float

    def weighted_total(self, weights: Mapping[str, float]) -> float:
        """Weighted mean of the six components, clamped to [0, 100]."""
        total_weight = sum(weights[c] for c in HEALTH_CATEGORIES)
        if total_weight <= 0:
            return 0.0
        total = sum(getattr(self, c) * weights[c] for c in HEALTH_CATEGORIES)
        return _clamp(total / total_weight, 0.0, 100.0)


# ── Pillar scorers ────────────────────────────────────────────────────────────


def log_scale(value: float, low: float, high: float) -> float:
    """Map ``value`` logarithmically from ``[low, high]`` onto ``[0, 100]``.

    Non-positive values score 0; values outside the range are clamped first.
    """
    if value <= 0:
        return 0.0
    clamped = _clamp(value, low, high)
    return 100.0 * (math.log(clamped) - math.log(low)) / (math.log(high) - math.log(low))


def score_popularity(stars: int) -> float:
    return log_scale(stars, 10, 50_000)


def score_activity(
    days_since_push: Optional[float],
    commit_activity_52w: Optional[int],
) -> float:
    """Blend push recency with 52-week commit volume.

    Args:
        days_since_push: Days since last push; ``None`` when unknown.
        commit_activity_52w: Commits in the last 52 weeks; ``None`` when unknown.

    Returns:
        Activity score in [0, 100].
    """
    if days_since_push is None:
        recency = 0.0
    else:
        recency = _bucket_upper(days_since_push, _RECENCY_BUCKETS, _RECENCY_FLOOR)

    commits = commit_activity_52w or 0
    if commits <= 0:
        return recency / 10.0

    per_week = commits / 52.0
    commit_score = _bucket_lower(per_week, _COMMIT_BUCKETS, 25.0)
    return recency * 0.5 + commit_score * 0.5


def score_maintenance(
    issue_close_rate: Optional[float],
    avg_issue_close_days: Optional[float],
    release_count: Optional[int],
    age_days: Optional[float],
) -> float:
    """Weighted mean of the defined maintenance signals.

    Release cadence is always defined (missing releases or age read as zero
    cadence); the two issue signals drop out when undefined.
    """
    parts: list[tuple[float, float]] = []

    if issue_close_rate is not None:
        parts.append((_clamp(issue_close_rate * 100.0, 0.0, 100.0), 0.4))

    if avg_issue_close_days is not None:
        parts.append((_bucket_upper(avg_issue_close_days, _CLOSE_TIME_BUCKETS, 10.0), 0.3))

    releases = release_count or 0
    years = max((age_days or 0.0) / 365.0, 1.0)
    cadence = releases / years
    cadence_score = _bucket_lower(cadence, _CADENCE_BUCKETS, 35.0) if releases > 0 else 0.0
    parts.append((cadence_score, 0.3))

    total_weight = sum(w for _, w in parts)
    return sum(score * w for score, w in parts) / total_weight


def score_community(contributor_count: Optional[int], forks: int, stars: int) -> float:
    contrib_score = log_scale(contributor_count or 0, 1, 500)
    fork_ratio = forks / stars if stars > 0 else 0.0
    if fork_ratio > 0:
        ratio_score = _bucket_lower(fork_ratio, _FORK_RATIO_BUCKETS, 20.0)
    else:
        ratio_score = 0.0
    return contrib_score * 0.6 + ratio_score * 0.4


def score_documentation(
    has_readme: Optional[bool],
    description: Optional[str],
    has_contributing: Optional[bool],
    topic_count: int,
    language: Optional[str],
) -> float:
    score = 0.0
    if has_readme:
        score += 40.0
    if description and description.strip():
        score += 20.0
    if has_contributing:
        score += 20.0
    if topic_count >= 3:
        score += 10.0
    elif topic_count >= 1:
        score += 5.0
    if language:
        score += 10.0
    return min(100.0, score)


def score_maturity(
    age_days: Optional[float],
    release_count: Optional[int],
    license_name: Optional[str],
) -> float:
    age_score = _bucket_lower(age_days or 0.0, _AGE_BUCKETS, 25.0)
    release_score = _bucket_lower(release_count or 0, _RELEASE_BUCKETS, 10.0)
    license_score = 100.0 if license_name else 20.0
    return age_score * 0.35 + release_score * 0.35 + license_score * 0.30


# ── Grades ────────────────────────────────────────────────────────────────────


def validate_grade_thresholds(thresholds: Mapping[str, int]) -> None:
    """Check that grade thresholds are complete and strictly descending.

    Every grade except ``F`` needs a threshold in [0, 100], and each grade's
    threshold must be strictly below the one of the grade above it.

    Raises:
        ValueError: On missing, unknown, out-of-range or non-monotonic entries.
    """
    graded = GRADE_ORDER[:-1]
    missing = [g for g in graded if g not in thresholds]
    unknown = [g for g in thresholds if g not in graded]
    if missing or unknown:
        raise ValueError(
            f"Grade thresholds must define exactly {list(graded)}; "
            f"missing={missing}, unknown={unknown}."
        )
    previous: Optional[int] = None
    for grade in graded:
        value = thresholds[grade]
        if not 0 <= value <= 100:
            raise ValueError(f"Threshold for {grade} must be in [0, 100], got {value}.")
        if previous is not None and value >= previous:
            raise ValueError(
                f"Grade thresholds must be strictly descending: "
                f"{grade}={value} is not below {previous}."
            )
        previous = value


def grade_for(overall: float, thresholds: Mapping[str, int] = DEFAULT_GRADE_THRESHOLDS) -> str:
    """Map an overall score onto a letter grade."""
    for grade in GRADE_ORDER[:-1]:
        if overall >= thresholds[grade]:
            return grade
    return GRADE_ORDER[-1]


def build_summary(
    breakdown: Mapping[str, int],
    repo: Repository,
    signals: HealthSignals,
    days_since_push: Optional[float],
) -> str:
    """Human-readable digest: strengths, weaknesses and key stats."""
    parts: list[str] = []

    strengths = [k for k, v in breakdown.items() if v >= _STRENGTH_MIN]
    if strengths:
        parts.append(f"Strong in: {', '.join(strengths)}.")

    weaknesses = [k for k, v in breakdown.items() if v < _WEAKNESS_MAX]
    if weaknesses:
        parts.append(f"Needs improvement: {', '.join(weaknesses)}.")

    parts.append(
        f"{repo.stars:,} stars, {signals.contributor_count or 0} contributors, "
        f"{signals.release_count or 0} releases."
    )

    if days_since_push is None:
        parts.append("Last push unknown.")
    elif days_since_push <= 7:
        parts.append("Actively maintained (pushed within last week).")
    else:
        parts.append(f"Last push {round(days_since_push)} days ago.")

    return " ".join(parts)


# ── Scorer ────────────────────────────────────────────────────────────────────


class HealthScorer:
    """Deterministic repository health scorer.

    Pure: no I/O, no clock reads when ``as_of`` is supplied. Safe to share
    across tasks and users.

    Usage::

        scorer = HealthScorer.from_config(config.scoring)
        health = scorer.score(repo, signals, as_of=utcnow())
    """

    def __init__(
        self,
        weights: Optional[Mapping[str, float]] = None,
        grade_thresholds: Optional[Mapping[str, int]] = None,
    ) -> None:
        self.weights = dict(weights or DEFAULT_WEIGHTS)
        missing = [c for c in HEALTH_CATEGORIES if c not in self.weights]
        if missing:
            raise ValueError(f"Missing health weights: {missing}.")
        if any(w < 0 for w in self.weights.values()) or sum(self.weights.values()) <= 0:
            raise ValueError("Health weights must be non-negative with a positive sum.")
        self.grade_thresholds = dict(grade_thresholds or DEFAULT_GRADE_THRESHOLDS)
        validate_grade_thresholds(self.grade_thresholds)

    @classmethod
    def from_config(cls, config: "ScoringConfig") -> "HealthScorer":
        return cls(
            weights=config.weights.model_dump(),
            grade_thresholds=config.grade_thresholds,
        )

    def components(
        self,
        repo: Repository,
        signals: Optional[HealthSignals] = None,
        as_of: Optional[datetime] = None,
    ) -> HealthComponents:
        """Compute the six unrounded sub-scores for one repository."""
        signals = signals or HealthSignals()
        now = as_of or utcnow()
        days_since_push = days_between(repo.last_activity_at, now)
        age_days = days_between(repo.created_at, now)

        return HealthComponents(
            popularity=score_popularity(repo.stars),
            activity=score_activity(days_since_push, signals.commit_activity_52w),
            maintenance=score_maintenance(
                signals.issue_close_rate,
                signals.avg_issue_close_days,
                signals.release_count,
                age_days,
            ),
            community=score_community(signals.contributor_count, repo.forks, repo.stars),
            documentation=score_documentation(
                signals.has_readme,
                repo.description,
                signals.has_contributing,
                len(repo.topics),
                repo.language,
            ),
            maturity=score_maturity(age_days, signals.release_count, repo.license),
        )

    def score(
        self,
        repo: Repository,
        signals: Optional[HealthSignals] = None,
        as_of: Optional[datetime] = None,
    ) -> HealthScore:
        """Score one repository.

        Args:
            repo: Repository snapshot.
            signals: Auxiliary signals; ``None`` scores every signal as missing.
            as_of: Reference time for recency and age (default: now, UTC).

        Returns:
            ``HealthScore`` with sub-scores, overall, grade and summary.
        """
        signals = signals or HealthSignals()
        now = as_of or utcnow()
        comp = self.components(repo, signals, now)

        breakdown = {c: int(round(_clamp(getattr(comp, c), 0.0, 100.0))) for c in HEALTH_CATEGORIES}
        overall = int(round(comp.weighted_total(self.weights)))

        return HealthScore(
            repo_id=repo.repo_id,
            overall=overall,
            grade=grade_for(overall, self.grade_thresholds),
            summary=build_summary(
                breakdown, repo, signals, days_between(repo.last_activity_at, now)
            ),
            **breakdown,
        )


# ── Utilities ─────────────────────────────────────────────────────────────────


def _bucket_upper(value: float, buckets: tuple[tuple[float, float], ...], floor: float) -> float:
    """First bucket whose upper bound is >= ``value``; ``floor`` otherwise."""
    for bound, score in buckets:
        if value <= bound:
            return score
    return floor


def _bucket_lower(value: float, buckets: tuple[tuple[float, float], ...], floor: float) -> float:
    """First bucket whose lower bound is <= ``value``; ``floor`` otherwise."""
    for bound, score in buckets:
        if value >= bound:
            return score
    return floor


def _clamp(value: float, lo: float, hi: float) -> float:
    return max(lo, min(hi, value))
