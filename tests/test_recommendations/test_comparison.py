"""
Tests for repofinder/recommendations/comparison.py.

What we test
------------
ComparisonEngine.compare():
  - Fewer than two ids (after de-duplication) → InsufficientInputError.
  - Unresolvable ids and RemoteUnavailable lookups are dropped; fewer than
    two survivors → InsufficientInputError.
  - Category and overall winners, including every tie-break step.
  - Verdict names the overall winner and the other repos' category wins.
  - Preferences add a closest-fit sentence.
  - Star velocity per 30 days of age.
"""

from __future__ import annotations

import asyncio
from datetime import timedelta

import pytest

from repofinder.interfaces import RemoteUnavailable
from repofinder.models.health import HEALTH_CATEGORIES, HealthScore
from repofinder.models.repository import HealthSignals
from repofinder.recommendations.comparison import (
    ComparisonEngine,
    InsufficientInputError,
    build_verdict,
    pick_category_winner,
    pick_overall_winner,
    star_velocity,
)


# ── Helpers ───────────────────────────────────────────────────────────────────

class FakeLookup:
    def __init__(self, repos, failing=()):
        self.repos = {r.repo_id: r for r in repos}
        self.failing = set(failing)

    async def get_repository(self, repo_id):
        if repo_id in self.failing:
            raise RemoteUnavailable("lookup failed")
        return self.repos.get(repo_id)

    async def get_signals(self, repo):
        return HealthSignals()


class FakeScorer:
    """Returns pre-built scores by repo id."""

    def __init__(self, scores: dict[int, HealthScore]):
        self.scores = scores

    def score(self, repo, signals=None, as_of=None):
        return self.scores[repo.repo_id]


def _score(repo_id: int, overall: int = 50, grade: str = "C+", **categories) -> HealthScore:
    fields = {c: 50 for c in HEALTH_CATEGORIES}
    fields.update(categories)
    return HealthScore(repo_id=repo_id, overall=overall, grade=grade, **fields)


def _engine(repos, scores=None, failing=(), as_of=None) -> ComparisonEngine:
    scorer = FakeScorer(scores) if scores is not None else None
    clock = (lambda: as_of) if as_of is not None else None
    if clock is None:
        return ComparisonEngine(FakeLookup(repos, failing), scorer)
    return ComparisonEngine(FakeLookup(repos, failing), scorer, clock=clock)


# ── Input validation ──────────────────────────────────────────────────────────

class TestInputValidation:
    def test_single_id(self, repo_factory):
        with pytest.raises(InsufficientInputError) as exc_info:
            asyncio.run(_engine([repo_factory(1)]).compare([1]))
        assert exc_info.value.resolved == 1

    def test_duplicates_collapse(self, repo_factory):
        with pytest.raises(InsufficientInputError):
            asyncio.run(_engine([repo_factory(1)]).compare([1, 1, 1]))

    def test_unresolvable_dropped(self, repo_factory):
        engine = _engine([repo_factory(1), repo_factory(2)])
        with pytest.raises(InsufficientInputError) as exc_info:
            asyncio.run(engine.compare([1, 404]))
        assert exc_info.value.resolved == 1

    def test_remote_failure_dropped(self, repo_factory):
        engine = _engine([repo_factory(i) for i in (1, 2, 3)], failing={2})
        result = asyncio.run(engine.compare([1, 2, 3]))
        assert [r.repo_id for r in result.repos] == [1, 3]

    def test_is_value_error(self):
        assert issubclass(InsufficientInputError, ValueError)


# ── Winners ───────────────────────────────────────────────────────────────────

class TestWinners:
    def test_category_winner_by_sub_score(self, repo_factory):
        repos = [repo_factory(1), repo_factory(2)]
        scores = {1: _score(1, activity=40), 2: _score(2, activity=90)}
        assert pick_category_winner("activity", repos, scores) == 2

    def test_category_tie_broken_by_overall(self, repo_factory):
        repos = [repo_factory(1), repo_factory(2)]
        scores = {1: _score(1, overall=60), 2: _score(2, overall=70)}
        assert pick_category_winner("maturity", repos, scores) == 2

    def test_category_tie_broken_by_stars(self, repo_factory):
        repos = [repo_factory(1, stars=10), repo_factory(2, stars=500)]
        scores = {1: _score(1), 2: _score(2)}
        assert pick_category_winner("community", repos, scores) == 2

    def test_full_tie_first_listed_wins(self, repo_factory):
        repos = [repo_factory(2), repo_factory(1)]
        scores = {1: _score(1), 2: _score(2)}
        assert pick_category_winner("community", repos, scores) == 2
        assert pick_overall_winner(repos, scores) == 2

    def test_overall_tie_broken_by_stars(self, repo_factory):
        repos = [repo_factory(1, stars=10), repo_factory(2, stars=11)]
        scores = {1: _score(1, overall=80), 2: _score(2, overall=80)}
        assert pick_overall_winner(repos, scores) == 2


# ── Verdict ───────────────────────────────────────────────────────────────────

class TestVerdict:
    def test_winner_and_tradeoffs(self, repo_factory):
        repos = [repo_factory(1), repo_factory(2)]
        scores = {
            1: _score(1, overall=82, grade="A", popularity=90),
            2: _score(2, overall=70, grade="B+", maintenance=95, community=80),
        }
        winners = {c: pick_category_winner(c, repos, scores) for c in HEALTH_CATEGORIES}
        verdict = build_verdict(repos, scores, winners, 1)
        assert verdict == (
            "owner1/project1 leads overall with a health score of 82/100 (A). "
            "However, owner2/project2 wins in maintenance and community."
        )

    def test_clean_sweep_has_no_however(self, repo_factory):
        repos = [repo_factory(1), repo_factory(2)]
        scores = {1: _score(1, overall=90, grade="A+"), 2: _score(2, overall=40, grade="C")}
        winners = {c: 1 for c in HEALTH_CATEGORIES}
        assert "However" not in build_verdict(repos, scores, winners, 1)


# ── End to end ────────────────────────────────────────────────────────────────

class TestCompare:
    def test_with_fake_scores(self, repo_factory):
        repos = [repo_factory(1), repo_factory(2), repo_factory(3)]
        scores = {
            1: _score(1, overall=60, grade="B", activity=99),
            2: _score(2, overall=75, grade="B+"),
            3: _score(3, overall=30, grade="D", documentation=100, maturity=100),
        }
        result = asyncio.run(_engine(repos, scores).compare([1, 2, 3]))
        assert result.overall_winner == 2
        assert result.category_winners["activity"] == 1
        assert result.category_winners["documentation"] == 3
        assert result.category_winners["popularity"] == 2
        assert result.wins_for(3) == ["documentation", "maturity"]
        assert result.verdict.startswith("owner2/project2 leads overall")
        assert "owner1/project1 wins in activity" in result.verdict

    def test_real_scorer(self, repo_factory, as_of):
        repos = [
            repo_factory(1, stars=40_000),
            repo_factory(2, stars=15, description=None, pushed_at=as_of - timedelta(days=700)),
        ]
        result = asyncio.run(_engine(repos, as_of=as_of).compare([2, 1]))
        assert [r.repo_id for r in result.repos] == [2, 1]
        assert result.overall_winner == 1
        assert set(result.scores) == {1, 2}
        assert set(result.category_winners) == set(HEALTH_CATEGORIES)

    def test_preferences_add_fit_sentence(self, repo_factory, python_prefs, as_of):
        repos = [repo_factory(1), repo_factory(2, language="Haskell", topics={"monads"})]
        result = asyncio.run(_engine(repos, as_of=as_of).compare([1, 2], python_prefs))
        assert result.verdict.endswith("For your preferences, owner1/project1 is the closest fit.")

    def test_star_velocity(self, repo_factory, as_of):
        repo = repo_factory(stars=3_000, created_at=as_of - timedelta(days=300))
        assert star_velocity(repo, as_of) == pytest.approx(300.0)
        assert star_velocity(repo_factory(created_at=None), as_of) == 0.0
