"""
GitHub search query construction.

GitHub's search syntax ANDs space-separated terms, so queries stay short: at
most ``MAX_QUERY_KEYWORDS`` free-text keywords plus star qualifiers. The star
floor follows the user's popularity weighting and the ceiling keeps mega-
popular repositories out of the candidate pool.
"""

from __future__ import annotations

from datetime import date, timedelta
from typing import Optional

from repofinder.models.preferences import UserPreferences
from repofinder.taxonomy.preference_taxonomy import PopularityWeight
from repofinder.utils.time_utils import trending_cutoff, utcnow

MAX_QUERY_KEYWORDS = 5
SEARCH_STAR_CEILING = 50_000

MIN_STARS_BY_WEIGHT: dict[PopularityWeight, int] = {
    PopularityWeight.HIGH:   100,
    PopularityWeight.MEDIUM: 50,
    PopularityWeight.LOW:    10,
}

# Goal / project type → search keywords
_GOAL_QUERY_TERMS: dict[str, tuple[str, ...]] = {
    "learning": ("tutorial",),
    "building": ("starter",),
    "finding-solutions": ("library",),
    "contributing": ("good-first-issue",),
}
_PROJECT_TYPE_QUERY_TERMS: dict[str, tuple[str, ...]] = {
    "tutorial": ("tutorial",),
    "boilerplate": ("boilerplate",),
    "framework": ("framework",),
}

# Trending window → minimum stars for the "recently pushed" query
TRENDING_MIN_STARS: dict[str, int] = {"daily": 20, "weekly": 50, "monthly": 100}

# Trending window → lookback for the "recently created" query (no monthly variant)
_TRENDING_CREATED_DAYS: dict[str, int] = {"daily": 7, "weekly": 30}


def build_pool_query(prefs: UserPreferences) -> str:
    """Build the candidate-pool search query for a preference set.

    Tech stack entries come first (they discriminate most), then goal and
    project-type keywords, capped at ``MAX_QUERY_KEYWORDS``. An empty
    preference set falls back to a plain popularity query.

    Example::

        >>> build_pool_query(UserPreferences(tech_stack=("react",), goals=("learning",)))
        'react tutorial stars:>50 stars:<50000'
    """
    keywords: list[str] = []
    for term in prefs.tech_stack:
        keywords.append(_quote(term.lower()))
    for goal in prefs.goals:
        keywords.extend(_GOAL_QUERY_TERMS.get(goal.lower(), ()))
    for ptype in prefs.project_types:
        keywords.extend(_PROJECT_TYPE_QUERY_TERMS.get(ptype.lower(), ()))

    unique = list(dict.fromkeys(keywords))[:MAX_QUERY_KEYWORDS]
    min_stars = MIN_STARS_BY_WEIGHT[prefs.popularity_weight]
    parts = unique + [f"stars:>{min_stars}", f"stars:<{SEARCH_STAR_CEILING}"]
    return " ".join(parts)


def build_trending_queries(
    window: str,
    as_of: Optional[date] = None,
    language: Optional[str] = None,
) -> list[str]:
    """Build the trending queries for a window.

    Returns one "recently pushed with traction" query and, for daily/weekly
    windows, a second "recently created and already starred" query.

    Raises:
        ValueError: If ``window`` is not a known trending window.
    """
    reference = as_of or utcnow().date()
    pushed_since = trending_cutoff(window, reference)
    lang = f" language:{_quote(language)}" if language else ""

    queries = [
        f"pushed:>{pushed_since.isoformat()} stars:>{TRENDING_MIN_STARS[window]}{lang}"
    ]
    created_days = _TRENDING_CREATED_DAYS.get(window)
    if created_days is not None:
        created_since = reference - timedelta(days=created_days)
        queries.append(
            f"created:>{created_since.isoformat()} pushed:>{pushed_since.isoformat()} "
            f"stars:>10{lang}"
        )
    return queries


def _quote(term: str) -> str:
    """Quote multi-word terms so GitHub treats them as a phrase."""
    return f'"{term}"' if " " in term else term
