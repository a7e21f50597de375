"""Tests for HealthScore, RecommendationBatch, ComparisonResult and RunMetadata."""

from __future__ import annotations

import pytest
from pydantic import ValidationError

from repofinder.models.health import GRADE_ORDER, HealthScore, grade_rank
from repofinder.models.meta import RunMetadata
from repofinder.models.recommendation import (
    ComparisonResult,
    RecommendationBatch,
    TieredRepository,
)


def _score(repo_id: int = 1, **overrides) -> HealthScore:
    fields = dict(
        repo_id=repo_id,
        popularity=50, activity=60, maintenance=70,
        community=40, documentation=80, maturity=90,
        overall=65, grade="C+",
    )
    fields.update(overrides)
    return HealthScore(**fields)


class TestHealthScore:
    def test_breakdown_order(self):
        assert list(_score().breakdown) == [
            "popularity", "activity", "maintenance", "community", "documentation", "maturity",
        ]

    def test_category_lookup(self):
        assert _score().category("maintenance") == 70
        with pytest.raises(KeyError):
            _score().category("stars")

    def test_out_of_range_raises(self):
        with pytest.raises(ValidationError):
            _score(overall=101)

    def test_unknown_grade_raises(self):
        with pytest.raises(ValidationError, match="grade"):
            _score(grade="E")

    def test_grade_rank(self):
        assert grade_rank("A+") == 0
        assert grade_rank("F") == len(GRADE_ORDER) - 1


class TestRecommendationBatch:
    def test_empty_batch(self):
        batch = RecommendationBatch(user_id="u", requested=10)
        assert batch.is_empty
        assert batch.repo_ids == []
        assert not batch.degraded

    def test_counts_and_degraded(self, repo_factory):
        batch = RecommendationBatch(
            user_id="u",
            requested=3,
            items=(
                TieredRepository(repo=repo_factory(1), tier="pool"),
                TieredRepository(repo=repo_factory(2), tier="trending"),
                TieredRepository(repo=repo_factory(3), tier="pool", score=72.5),
            ),
        )
        assert batch.repo_ids == [1, 2, 3]
        assert batch.tier_counts() == {"pool": 2, "trending": 1}
        assert batch.degraded

    def test_unknown_tier_raises(self, repo_factory):
        with pytest.raises(ValidationError, match="tier"):
            TieredRepository(repo=repo_factory(), tier="editorial")


class TestComparisonResult:
    def test_wins_for_canonical_order(self, repo_factory):
        result = ComparisonResult(
            repos=(repo_factory(1), repo_factory(2)),
            scores={1: _score(1), 2: _score(2)},
            category_winners={"maturity": 1, "popularity": 1, "activity": 2},
            overall_winner=1,
            verdict="owner1/project1 leads.",
        )
        assert result.wins_for(1) == ["popularity", "maturity"]
        assert result.wins_for(2) == ["activity"]

    def test_unknown_category_raises(self, repo_factory):
        with pytest.raises(ValidationError, match="Unknown health categories"):
            ComparisonResult(
                repos=(repo_factory(1),),
                scores={1: _score(1)},
                category_winners={"stars": 1},
                overall_winner=1,
                verdict="",
            )


class TestRunMetadata:
    def test_mutable_status(self, as_of):
        run = RunMetadata(
            run_slug="abc", pipeline_stage="import_catalog", config_snapshot={}, started_at=as_of
        )
        run.status = "failed"
        assert run.status == "failed"

    def test_unknown_stage_raises(self, as_of):
        with pytest.raises(ValidationError, match="pipeline_stage"):
            RunMetadata(run_slug="abc", pipeline_stage="train", config_snapshot={}, started_at=as_of)
