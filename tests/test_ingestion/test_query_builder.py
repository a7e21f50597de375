"""
Tests for repofinder.ingestion.query_builder.

Covers:
  - build_pool_query(): keyword order, de-duplication, keyword cap, star
    qualifiers per popularity weight, phrase quoting, empty preferences
  - build_trending_queries(): per-window queries, dates, language, unknown
    window
"""

from __future__ import annotations

from datetime import date

import pytest

from repofinder.ingestion.query_builder import (
    MAX_QUERY_KEYWORDS,
    build_pool_query,
    build_trending_queries,
)
from repofinder.models.preferences import UserPreferences
from repofinder.taxonomy.preference_taxonomy import PopularityWeight

_AS_OF = date(2026, 1, 15)


class TestPoolQuery:
    def test_docstring_example(self):
        prefs = UserPreferences(tech_stack=("react",), goals=("learning",))
        assert build_pool_query(prefs) == "react tutorial stars:>50 stars:<50000"

    def test_stack_then_goal_then_type(self):
        prefs = UserPreferences(tech_stack=("Go",), goals=("building",), project_types=("framework",))
        assert build_pool_query(prefs).startswith("go starter framework ")

    def test_dedupes_keywords(self):
        prefs = UserPreferences(goals=("learning",), project_types=("tutorial",))
        assert build_pool_query(prefs).split().count("tutorial") == 1

    def test_keyword_cap(self):
        prefs = UserPreferences(tech_stack=tuple(f"lang{i}" for i in range(10)))
        keywords = [t for t in build_pool_query(prefs).split() if not t.startswith("stars:")]
        assert len(keywords) == MAX_QUERY_KEYWORDS

    @pytest.mark.parametrize(
        "weight, floor",
        [(PopularityWeight.HIGH, 100), (PopularityWeight.MEDIUM, 50), (PopularityWeight.LOW, 10)],
    )
    def test_star_floor(self, weight, floor):
        query = build_pool_query(UserPreferences(popularity_weight=weight))
        assert f"stars:>{floor}" in query

    def test_multi_word_terms_quoted(self):
        prefs = UserPreferences(tech_stack=("ruby on rails",))
        assert build_pool_query(prefs).startswith('"ruby on rails" ')

    def test_empty_preferences(self):
        assert build_pool_query(UserPreferences()) == "stars:>50 stars:<50000"


class TestTrendingQueries:
    def test_weekly(self):
        queries = build_trending_queries("weekly", as_of=_AS_OF)
        assert queries == [
            "pushed:>2026-01-08 stars:>50",
            "created:>2025-12-16 pushed:>2026-01-08 stars:>10",
        ]

    def test_daily_has_two_queries(self):
        queries = build_trending_queries("daily", as_of=_AS_OF)
        assert len(queries) == 2
        assert queries[0] == "pushed:>2026-01-14 stars:>20"

    def test_monthly_single_query(self):
        assert build_trending_queries("monthly", as_of=_AS_OF) == ["pushed:>2025-12-16 stars:>100"]

    def test_language_qualifier(self):
        queries = build_trending_queries("monthly", as_of=_AS_OF, language="Rust")
        assert queries[0].endswith(" language:Rust")

    def test_unknown_window(self):
        with pytest.raises(ValueError, match="Unknown trending window"):
            build_trending_queries("yearly", as_of=_AS_OF)
