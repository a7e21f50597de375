"""
Content fit and repository similarity.

``content_fit_score`` measures how well a repository matches a user's declared
preferences (0–100). It is the personalised half of a pool entry's score;
the other half is the repository's HealthScore (see ``blend_fit``).

Points (normalised to 100)
--------------------------
    tech stack overlap       30
    language in tech stack   20
    goal keywords            15
    project-type keywords    10
    activity preference      10
    documentation            5
    popularity               10 × {high: 1.0, medium: 0.5, low: 0.2}

``repo_similarity`` compares two repositories (or a repository and an
interaction summary) by language, tag overlap and topic overlap; it drives
pool refinement and the hybrid tier's session scoring.
"""

from __future__ import annotations

from datetime import datetime
from typing import Iterable, Optional

from repofinder.models.preferences import UserPreferences
from repofinder.models.repository import Repository
from repofinder.taxonomy.preference_taxonomy import (
    ActivityPreference,
    DocumentationImportance,
    PopularityWeight,
)
from repofinder.utils.time_utils import days_between, utcnow

POPULARITY_FACTOR: dict[PopularityWeight, float] = {
    PopularityWeight.HIGH:   1.0,
    PopularityWeight.MEDIUM: 0.5,
    PopularityWeight.LOW:    0.2,
}

GOAL_KEYWORDS: dict[str, tuple[str, ...]] = {
    "learning": (
        "tutorial", "learn", "course", "guide", "example", "lesson",
        "beginner", "workshop", "education", "getting-started",
    ),
    "building": ("boilerplate", "starter", "template", "scaffold", "kit"),
    "finding-solutions": ("library", "package", "tool", "utility", "sdk", "plugin"),
    "contributing": ("open-source", "good-first-issue", "hacktoberfest", "help-wanted"),
    "inspiration": ("awesome", "showcase", "demo", "design", "portfolio"),
}

PROJECT_TYPE_KEYWORDS: dict[str, tuple[str, ...]] = {
    "library": ("library", "lib", "package", "sdk"),
    "framework": ("framework",),
    "tool": ("tool", "cli", "utility"),
    "tutorial": ("tutorial", "course", "learn", "guide"),
    "boilerplate": ("boilerplate", "starter", "template"),
    "full-app": ("app", "application", "clone", "dashboard"),
}

_MAX_POINTS = 30 + 20 + 15 + 10 + 10 + 5 + 10


def _searchable_text(repo: Repository) -> str:
    return " ".join(
        [repo.full_name.lower(), (repo.description or "").lower(), *repo.tags, *repo.topics]
    )


def _keyword_match(text: str, keywords: Iterable[str]) -> bool:
    return any(k in text for k in keywords)


def popularity_preference(stars: int) -> float:
    """Sweet-spot popularity factor (0–1): favours 100–10 000 stars."""
    if stars <= 0:
        return 0.0
    if 100 <= stars <= 10_000:
        return 1.0
    if 10_000 < stars <= 50_000:
        return 0.7
    if stars > 50_000:
        return 0.3
    if stars >= 50:
        return 0.8
    if stars >= 10:
        return 0.5
    return 0.1


def activity_match(
    repo: Repository,
    preference: ActivityPreference,
    as_of: Optional[datetime] = None,
) -> float:
    days = days_between(repo.last_activity_at, as_of or utcnow())
    if preference == ActivityPreference.ACTIVE:
        if days is None:
            return 0.0
        return 1.0 if days < 7 else 0.5 if days < 30 else 0.0
    if preference == ActivityPreference.STABLE:
        return 1.0 if days is not None and days > 30 and repo.stars > 100 else 0.5
    if preference == ActivityPreference.TRENDING:
        return 1.0 if repo.stars > 1000 else 0.7 if repo.stars > 500 else 0.3
    return 0.5


def documentation_match(repo: Repository, importance: DocumentationImportance) -> float:
    good = bool(repo.description) and len(repo.description or "") > 100
    if importance == DocumentationImportance.CRITICAL:
        return 1.0 if good else 0.3
    if importance == DocumentationImportance.IMPORTANT:
        return 1.0 if good else 0.6
    return 0.8


def content_fit_score(
    repo: Repository,
    prefs: UserPreferences,
    as_of: Optional[datetime] = None,
) -> float:
    """Score how well ``repo`` matches ``prefs``.

    Args:
        repo: Candidate repository.
        prefs: The user's preferences.
        as_of: Reference time for the activity component.

    Returns:
        Fit score in [0, 100].
    """
    text = _searchable_text(repo)
    tags = repo.tags
    stack = [t.lower() for t in prefs.tech_stack]
    score = 0.0

    if stack:
        matching = [
            tag for tag in tags
            if any(tech in tag or tag in tech for tech in stack)
        ]
        score += min(1.0, len(matching) / len(stack)) * 30

    if repo.language and repo.language.lower() in stack:
        score += 20

    if prefs.goals:
        hits = sum(
            1 for g in prefs.goals
            if _keyword_match(text, GOAL_KEYWORDS.get(g.lower(), (g.lower(),)))
        )
        score += (hits / len(prefs.goals)) * 15

    if prefs.project_types:
        hits = sum(
            1 for p in prefs.project_types
            if _keyword_match(text, PROJECT_TYPE_KEYWORDS.get(p.lower(), (p.lower(),)))
        )
        score += (hits / len(prefs.project_types)) * 10

    score += activity_match(repo, prefs.activity_preference, as_of) * 10
    score += documentation_match(repo, prefs.documentation_importance) * 5
    score += popularity_preference(repo.stars) * POPULARITY_FACTOR[prefs.popularity_weight] * 10

    return round(100.0 * score / _MAX_POINTS, 2)


def blend_fit(content_fit: float, health_overall: Optional[int], health_share: float) -> float:
    """Blend content fit with health overall; ``health_share`` in [0, 1]."""
    if health_overall is None:
        return content_fit
    return round(content_fit * (1.0 - health_share) + health_overall * health_share, 2)


def _jaccard(a: set[str], b: set[str]) -> float:
    union = a | b
    if not union:
        return 0.0
    return len(a & b) / len(union)


def repo_similarity(
    language_a: Optional[str],
    topics_a: Iterable[str],
    language_b: Optional[str],
    topics_b: Iterable[str],
) -> float:
    """Similarity in [0, 1] between two (language, topics) profiles.

    Language match contributes 0.3, tag (language + topics) overlap 0.5 and
    topic overlap 0.2.
    """
    lang_a = language_a.lower() if language_a else None
    lang_b = language_b.lower() if language_b else None
    ta = {t.lower() for t in topics_a}
    tb = {t.lower() for t in topics_b}

    similarity = 0.0
    if lang_a and lang_a == lang_b:
        similarity += 0.3
    tags_a = ta | ({lang_a} if lang_a else set())
    tags_b = tb | ({lang_b} if lang_b else set())
    similarity += _jaccard(tags_a, tags_b) * 0.5
    similarity += _jaccard(ta, tb) * 0.2
    return min(1.0, similarity)


def similarity_between(a: Repository, b: Repository) -> float:
    return repo_similarity(a.language, a.topics, b.language, b.topics)
