"""
Tests for repofinder/scoring/health.py.

What we test
------------
Pillar scorers:
  - popularity is log-scaled and saturates at 50 000 stars.
  - activity with zero / unknown commits is capped at recency / 10.
  - maintenance drops an undefined close rate instead of scoring it as zero.
  - documentation adds README/description/CONTRIBUTING/topics/language points.
  - maturity combines age, releases and license.

Grades:
  - Boundary values map to the expected letter.
  - Thresholds must be complete and strictly descending.

HealthScorer.score():
  - Zero-everything repository scores low, within [0, 100], without raising.
  - A popular but dormant repository grades D.
  - A healthy repository grades at least B+.
  - Weights are renormalised (scaling all weights changes nothing).
  - Summary lists strengths and weaknesses.
"""

from __future__ import annotations

from datetime import timedelta

import pytest

from repofinder.models.health import GRADE_ORDER, grade_rank
from repofinder.models.repository import HealthSignals, Repository
from repofinder.scoring.health import (
    DEFAULT_GRADE_THRESHOLDS,
    DEFAULT_WEIGHTS,
    HealthScorer,
    grade_for,
    log_scale,
    score_activity,
    score_documentation,
    score_maintenance,
    score_maturity,
    score_popularity,
    validate_grade_thresholds,
)


# ── Pillars ────────────────────────────────────────────────────────────────────

class TestPopularity:
    def test_floor_and_ceiling(self):
        assert score_popularity(0) == 0.0
        assert score_popularity(10) == pytest.approx(0.0)
        assert score_popularity(50_000) == pytest.approx(100.0)

    def test_saturates_above_ceiling(self):
        assert score_popularity(5_000_000) == pytest.approx(100.0)

    def test_monotonic(self):
        values = [score_popularity(s) for s in (10, 100, 1_000, 10_000, 50_000)]
        assert values == sorted(values)

    def test_log_scale_midpoint(self):
        assert log_scale(100, 10, 1_000) == pytest.approx(50.0)


class TestActivity:
    def test_zero_commits_caps_at_tenth_of_recency(self):
        assert score_activity(3, 0) == pytest.approx(10.0)

    def test_unknown_commits_treated_as_none(self):
        assert score_activity(3, None) == pytest.approx(10.0)

    def test_busy_recent_repo_scores_full(self):
        # 520 commits / 52 weeks = 10 per week
        assert score_activity(3, 520) == pytest.approx(100.0)

    def test_blend_of_recency_and_commits(self):
        # 45 days → 65; 52 commits → 1/week → 55
        assert score_activity(45, 52) == pytest.approx(60.0)

    def test_unknown_push_date(self):
        assert score_activity(None, 0) == 0.0


class TestMaintenance:
    def test_undefined_close_rate_is_excluded_not_zero(self):
        without_issues = score_maintenance(None, None, 12, 365)
        zero_closed = score_maintenance(0.0, None, 12, 365)
        assert without_issues == pytest.approx(100.0)
        assert zero_closed == pytest.approx(30.0 / 0.7)
        assert without_issues > zero_closed

    def test_no_releases_scores_zero_cadence(self):
        assert score_maintenance(None, None, 0, 1000) == 0.0

    def test_all_parts_weighted(self):
        # close rate 80, close time 2d → 90, 4 releases/year → 80
        score = score_maintenance(0.8, 2.0, 4, 365)
        assert score == pytest.approx(0.8 * 100 * 0.4 + 90 * 0.3 + 80 * 0.3)


class TestDocumentation:
    def test_full_marks(self):
        assert score_documentation(True, "desc", True, 5, "Go") == 100.0

    def test_nothing(self):
        assert score_documentation(None, None, None, 0, None) == 0.0

    def test_few_topics_half_credit(self):
        assert score_documentation(False, "", False, 1, None) == 5.0

    def test_blank_description_ignored(self):
        assert score_documentation(False, "   ", False, 0, None) == 0.0


class TestMaturity:
    def test_old_released_licensed(self):
        assert score_maturity(2000, 30, "MIT") == pytest.approx(100.0)

    def test_brand_new_unlicensed(self):
        assert score_maturity(0, 0, None) == pytest.approx(25 * 0.35 + 10 * 0.35 + 20 * 0.30)


# ── Grades ─────────────────────────────────────────────────────────────────────

class TestGrades:
    @pytest.mark.parametrize(
        "overall, grade",
        [(100, "A+"), (90, "A+"), (89, "A"), (80, "A"), (75, "B+"), (60, "B"),
         (55, "C+"), (40, "C"), (30, "D"), (29, "F"), (0, "F")],
    )
    def test_boundaries(self, overall, grade):
        assert grade_for(overall) == grade

    def test_monotonic(self):
        ranks = [grade_rank(grade_for(v)) for v in range(0, 101)]
        # higher overall never gives a worse (higher-rank) grade
        assert all(a >= b for a, b in zip(ranks, ranks[1:]))

    def test_defaults_are_valid(self):
        validate_grade_thresholds(DEFAULT_GRADE_THRESHOLDS)

    def test_rejects_non_descending(self):
        bad = dict(DEFAULT_GRADE_THRESHOLDS, B=75)
        with pytest.raises(ValueError, match="strictly descending"):
            validate_grade_thresholds(bad)

    def test_rejects_missing_grade(self):
        bad = {k: v for k, v in DEFAULT_GRADE_THRESHOLDS.items() if k != "C+"}
        with pytest.raises(ValueError, match="missing"):
            validate_grade_thresholds(bad)

    def test_rejects_f_threshold(self):
        with pytest.raises(ValueError, match="unknown"):
            validate_grade_thresholds(dict(DEFAULT_GRADE_THRESHOLDS, F=0))

    def test_grade_order_ends_with_f(self):
        assert GRADE_ORDER[-1] == "F"


# ── HealthScorer ───────────────────────────────────────────────────────────────

class TestHealthScorer:
    def test_zero_repo_scores_low_without_error(self, as_of):
        repo = Repository(repo_id=1, full_name="a/b")
        score = HealthScorer().score(repo, as_of=as_of)
        assert 0 <= score.overall <= 100
        assert score.overall == 2
        assert score.grade == "F"
        assert score.popularity == 0
        assert score.activity == 0

    def test_popular_but_dormant_repo_grades_d(self, as_of):
        repo = Repository(
            repo_id=7,
            full_name="big/dormant",
            description="Once famous.",
            language="Python",
            stars=50_000,
            forks=5_000,
            license="MIT",
            created_at=as_of - timedelta(days=5 * 365),
            pushed_at=as_of - timedelta(days=3 * 365),
        )
        score = HealthScorer().score(repo, as_of=as_of)
        assert score.popularity == 100
        assert score.activity <= 1
        assert score.overall == 34
        assert score.grade == "D"

    def test_healthy_repo_grades_high(self, repo_factory, healthy_signals, as_of):
        score = HealthScorer().score(repo_factory(), healthy_signals, as_of=as_of)
        assert grade_rank(score.grade) <= grade_rank("B+")
        assert score.activity == 100
        # two topics earn half the topic credit
        assert score.documentation == 95

    def test_weights_are_renormalised(self, repo_factory, healthy_signals, as_of):
        doubled = {k: v * 2 for k, v in DEFAULT_WEIGHTS.items()}
        a = HealthScorer().score(repo_factory(), healthy_signals, as_of=as_of)
        b = HealthScorer(weights=doubled).score(repo_factory(), healthy_signals, as_of=as_of)
        assert a.overall == b.overall

    def test_single_weight_selects_one_category(self, repo_factory, as_of):
        weights = {k: 0.0 for k in DEFAULT_WEIGHTS}
        weights["popularity"] = 1.0
        score = HealthScorer(weights=weights).score(repo_factory(stars=50_000), as_of=as_of)
        assert score.overall == 100

    def test_missing_weight_rejected(self):
        with pytest.raises(ValueError, match="Missing health weights"):
            HealthScorer(weights={"popularity": 1.0})

    def test_summary_mentions_strengths_and_stats(self, repo_factory, healthy_signals, as_of):
        score = HealthScorer().score(repo_factory(), healthy_signals, as_of=as_of)
        assert "Strong in:" in score.summary
        assert "1,200 stars" in score.summary
        assert "Actively maintained" in score.summary

    def test_deterministic(self, repo_factory, healthy_signals, as_of):
        scorer = HealthScorer()
        assert scorer.score(repo_factory(), healthy_signals, as_of) == scorer.score(
            repo_factory(), healthy_signals, as_of
        )

    def test_missing_signals_never_raise(self, repo_factory, as_of):
        score = HealthScorer().score(repo_factory(), HealthSignals(), as_of=as_of)
        assert 0 <= score.overall <= 100
