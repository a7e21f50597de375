"""
Tests for repofinder/recommendations/pool.py.

What we test
------------
build_pool():
  - Fresh pool for the same preferences is served without a second search.
  - Concurrent builds for one user share a single search.
  - Seen ids are excluded; duplicates collapse; size capped at pool_size.
  - Changed preferences or an expired TTL trigger a rebuild.
  - A pool cleared while the search is in flight stays empty.
  - RemoteUnavailable propagates.
  - Liked, saved and recently skipped repositories re-rank every rebuild.
  - A short search result is topped up from the primary cluster, the
    secondary clusters and a tag lookup, never with seen ids.

get_recommendations():
  - Returned and excluded entries leave the pool.
  - Entries above max_stars are skipped without using up the count.
  - Draining below low_water marks the pool stale; the next call fetches
    page 2 and keeps the leftovers.

refine_pool_based_on_interactions():
  - Similar-to-liked entries are boosted, similar-to-skipped penalised.
  - Scores stay within [0, 100]; interacted repositories leave the pool.

clear_pool() / refresh_pool():
  - Generation bump and rebuild.
"""

from __future__ import annotations

import asyncio
from datetime import datetime, timedelta, timezone

import pytest

from repofinder.config import PoolConfig
from repofinder.db.repositories.cluster_repo import ClusterAssignment
from repofinder.interfaces import RemoteUnavailable
from repofinder.models.interaction import InteractionSummary
from repofinder.models.preferences import UserPreferences
from repofinder.recommendations.clusters import ClusterIndex, InMemoryClusterSource
from repofinder.recommendations.pool import CandidatePool, interaction_history
from repofinder.taxonomy.cluster_taxonomy import ClusterId
from repofinder.taxonomy.preference_taxonomy import InteractionAction

AS_OF = datetime(2026, 1, 1, 12, 0, 0, tzinfo=timezone.utc)


# ── Helpers ───────────────────────────────────────────────────────────────────

class FakeSearch:
    """SearchService returning canned pages and recording every call."""

    def __init__(self, pages: dict[int, list], delay: float = 0.0, fail: bool = False) -> None:
        self.pages = pages
        self.delay = delay
        self.fail = fail
        self.calls: list[tuple[str, int]] = []
        self.on_search = None

    async def search(self, query, filters=None, page=1):
        self.calls.append((query, page))
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.on_search is not None:
            self.on_search()
        if self.fail:
            raise RemoteUnavailable("search down", status_code=503)
        return list(self.pages.get(page, []))

    async def trending(self, window="weekly", filters=None):
        return []


class FakeInteractions:
    def __init__(self, seen=(), liked=(), saved=(), recent=()) -> None:
        self.seen = set(seen)
        self.liked = list(liked)
        self.saved = list(saved)
        self.history = list(recent)

    async def seen_ids(self, user_id):
        return set(self.seen)

    async def liked_repos(self, user_id):
        return list(self.liked)

    async def saved_repos(self, user_id):
        return list(self.saved)

    async def recent(self, user_id, limit=50):
        return self.history[:limit]


class Clock:
    def __init__(self) -> None:
        self.now = AS_OF

    def __call__(self):
        return self.now


def _pool(search, interactions=None, clock=None, clusters=None, **config) -> CandidatePool:
    return CandidatePool(
        search,
        interactions or FakeInteractions(),
        config=PoolConfig(**config),
        clock=clock or Clock(),
        clusters=clusters,
    )


def _ids(items) -> list[int]:
    return [getattr(i, "repo", i).repo_id for i in items]


PREFS = UserPreferences(tech_stack=("python",))


# ── Build ─────────────────────────────────────────────────────────────────────

class TestBuildPool:
    def test_cache_hit_skips_search(self, repo_factory):
        search = FakeSearch({1: [repo_factory(i) for i in range(1, 4)]})
        pool = _pool(search)

        async def scenario():
            first = await pool.build_pool("u1", PREFS)
            second = await pool.build_pool("u1", PREFS)
            return first, second

        first, second = asyncio.run(scenario())
        assert len(search.calls) == 1
        assert _ids(first) == _ids(second)

    def test_concurrent_builds_share_one_search(self, repo_factory):
        search = FakeSearch({1: [repo_factory(1)]}, delay=0.01)
        pool = _pool(search)

        async def scenario():
            return await asyncio.gather(pool.build_pool("u1", PREFS), pool.build_pool("u1", PREFS))

        a, b = asyncio.run(scenario())
        assert len(search.calls) == 1
        assert _ids(a) == _ids(b) == [1]

    def test_users_are_independent(self, repo_factory):
        search = FakeSearch({1: [repo_factory(1)]})
        pool = _pool(search)

        async def scenario():
            await pool.build_pool("u1", PREFS)
            await pool.build_pool("u2", PREFS)

        asyncio.run(scenario())
        assert len(search.calls) == 2

    def test_seen_and_duplicates_excluded(self, repo_factory):
        repos = [repo_factory(1), repo_factory(2), repo_factory(2), repo_factory(3)]
        pool = _pool(FakeSearch({1: repos}), FakeInteractions(seen={2}))
        entries = asyncio.run(pool.build_pool("u1", PREFS))
        assert sorted(_ids(entries)) == [1, 3]

    def test_pool_size_cap_and_order(self, repo_factory):
        repos = [repo_factory(i, stars=100 * i) for i in range(1, 11)]
        pool = _pool(FakeSearch({1: repos}), pool_size=4)
        entries = asyncio.run(pool.build_pool("u1", PREFS))
        assert len(entries) == 4
        scores = [e.fit_score for e in entries]
        assert scores == sorted(scores, reverse=True)
        assert all(0.0 <= s <= 100.0 for s in scores)

    def test_changed_preferences_rebuild(self, repo_factory):
        search = FakeSearch({1: [repo_factory(1)]})
        pool = _pool(search)

        async def scenario():
            await pool.build_pool("u1", PREFS)
            await pool.build_pool("u1", UserPreferences(tech_stack=("go",)))

        asyncio.run(scenario())
        assert len(search.calls) == 2
        assert "go" in search.calls[1][0]

    def test_expired_ttl_rebuilds(self, repo_factory):
        search = FakeSearch({1: [repo_factory(1)]})
        clock = Clock()
        pool = _pool(search, clock=clock, ttl_hours=1.0)

        async def scenario():
            await pool.build_pool("u1", PREFS)
            clock.now = AS_OF + timedelta(minutes=59)
            await pool.build_pool("u1", PREFS)
            assert len(search.calls) == 1
            clock.now = AS_OF + timedelta(hours=2)
            await pool.build_pool("u1", PREFS)

        asyncio.run(scenario())
        assert len(search.calls) == 2

    def test_clear_during_fetch_discards_result(self, repo_factory):
        search = FakeSearch({1: [repo_factory(1), repo_factory(2)]})
        pool = _pool(search)
        search.on_search = lambda: pool.clear_pool("u1")

        entries = asyncio.run(pool.build_pool("u1", PREFS))
        assert entries == []
        assert pool.entries("u1") == []
        assert pool.generation("u1") == 1

    def test_remote_failure_propagates(self):
        pool = _pool(FakeSearch({}, fail=True))
        with pytest.raises(RemoteUnavailable):
            asyncio.run(pool.build_pool("u1", PREFS))


# ── Serve ─────────────────────────────────────────────────────────────────────

class TestGetRecommendations:
    def test_returned_entries_leave_pool(self, repo_factory):
        pool = _pool(FakeSearch({1: [repo_factory(i) for i in range(1, 11)]}))

        async def scenario():
            first = await pool.get_recommendations("u1", PREFS, 3)
            second = await pool.get_recommendations("u1", PREFS, 3)
            return first, second

        first, second = asyncio.run(scenario())
        assert len(first) == 3 and len(second) == 3
        assert not set(_ids(first)) & set(_ids(second))
        assert len(pool.entries("u1")) == 4

    def test_exclude_ids_removed(self, repo_factory):
        pool = _pool(FakeSearch({1: [repo_factory(i) for i in range(1, 11)]}))
        picked = asyncio.run(pool.get_recommendations("u1", PREFS, 10, exclude_ids={1, 2}))
        assert 1 not in _ids(picked) and 2 not in _ids(picked)
        assert len(picked) == 8
        assert pool.entries("u1") == []

    def test_max_stars_skips_without_using_count(self, repo_factory):
        repos = [repo_factory(i, stars=40_000) for i in range(1, 4)]
        repos += [repo_factory(i, stars=500) for i in range(4, 9)]
        pool = _pool(FakeSearch({1: repos}), low_water=0)
        picked = asyncio.run(pool.get_recommendations("u1", PREFS, 3, max_stars=30_000))
        assert len(picked) == 3
        assert all(r.stars <= 30_000 for r in picked)
        assert len(pool.entries("u1")) == 2
        assert all(e.repo.stars <= 30_000 for e in pool.entries("u1"))

    def test_low_water_marks_stale_and_fetches_next_page(self, repo_factory):
        search = FakeSearch({
            1: [repo_factory(i) for i in range(1, 9)],
            2: [repo_factory(i) for i in range(20, 26)],
        })
        pool = _pool(search, low_water=5)

        async def scenario():
            first = await pool.get_recommendations("u1", PREFS, 4)
            leftovers = _ids(pool.entries("u1"))
            second = await pool.get_recommendations("u1", PREFS, 100)
            return first, leftovers, second

        first, leftovers, second = asyncio.run(scenario())
        assert [page for _, page in search.calls] == [1, 2]
        assert len(leftovers) == 4
        assert set(leftovers) <= set(_ids(second))
        assert {20, 21, 22, 23, 24, 25} <= set(_ids(second))
        assert not set(_ids(first)) & set(_ids(second))

    def test_zero_count(self, repo_factory):
        search = FakeSearch({1: [repo_factory(1)]})
        assert asyncio.run(_pool(search).get_recommendations("u1", PREFS, 0)) == []
        assert search.calls == []


# ── Refine ────────────────────────────────────────────────────────────────────

class TestRefine:
    def _built(self, repo_factory):
        repos = [
            repo_factory(1, language="Python", topics={"python", "cli"}),
            repo_factory(2, language="Go", topics={"http"}),
            repo_factory(3, language="Rust", topics={"wasm"}),
        ]
        pool = _pool(FakeSearch({1: repos}))
        asyncio.run(pool.build_pool("u1", PREFS))
        return pool, {e.repo.repo_id: e.fit_score for e in pool.entries("u1")}

    def test_like_boosts_similar(self, repo_factory):
        pool, before = self._built(repo_factory)
        liked = InteractionSummary(
            repo_id=99, action=InteractionAction.LIKE, language="Python", topics={"python", "cli"},
        )
        pool.refine_pool_based_on_interactions("u1", [liked])
        after = {e.repo.repo_id: e.fit_score for e in pool.entries("u1")}
        assert after[1] == pytest.approx(min(100.0, before[1] + 20.0))
        assert after[2] == pytest.approx(before[2])
        assert _ids(pool.entries("u1"))[0] == 1

    def test_skip_penalises_similar(self, repo_factory):
        pool, before = self._built(repo_factory)
        skipped = InteractionSummary(
            repo_id=98, action=InteractionAction.SKIP, language="Go", topics={"http"},
        )
        pool.refine_pool_based_on_interactions("u1", [skipped])
        after = {e.repo.repo_id: e.fit_score for e in pool.entries("u1")}
        assert after[2] == pytest.approx(max(0.0, before[2] - 15.0))
        assert after[3] == pytest.approx(before[3])

    def test_interacted_repo_leaves_pool(self, repo_factory):
        pool, _ = self._built(repo_factory)
        saved = InteractionSummary(repo_id=3, action=InteractionAction.SAVE, language="Rust")
        pool.refine_pool_based_on_interactions("u1", [saved])
        assert 3 not in _ids(pool.entries("u1"))

    def test_views_do_not_change_scores(self, repo_factory):
        pool, before = self._built(repo_factory)
        viewed = InteractionSummary(repo_id=50, action=InteractionAction.VIEW, language="Python", topics={"python"})
        pool.refine_pool_based_on_interactions("u1", [viewed])
        after = {e.repo.repo_id: e.fit_score for e in pool.entries("u1")}
        assert after == before

    def test_unknown_user_is_noop(self):
        pool = _pool(FakeSearch({}))
        pool.refine_pool_based_on_interactions("nobody", [])
        assert pool.entries("nobody") == []


# ── History on rebuild ────────────────────────────────────────────────────────

def _scores(pool, user_id="u1") -> dict[int, float]:
    return {e.repo.repo_id: e.fit_score for e in pool.entries(user_id)}


class TestHistoryOnBuild:
    def _repos(self, repo_factory):
        return [repo_factory(1), repo_factory(2, language="Go", topics={"http"})]

    def _baseline(self, repo_factory) -> dict[int, float]:
        pool = _pool(FakeSearch({1: self._repos(repo_factory)}))
        asyncio.run(pool.build_pool("u1", PREFS))
        return _scores(pool)

    def test_like_survives_refresh(self, repo_factory):
        base = self._baseline(repo_factory)
        liked = repo_factory(99, language="Go", topics={"http"})
        interactions = FakeInteractions(seen={99}, liked=[liked])
        pool = _pool(FakeSearch({1: self._repos(repo_factory)}), interactions)

        async def scenario():
            await pool.build_pool("u1", PREFS)
            built = _scores(pool)
            await pool.refresh_pool("u1", PREFS)
            return built, _scores(pool)

        built, refreshed = asyncio.run(scenario())
        expected = min(100.0, base[2] + 20.0)
        assert built[2] == pytest.approx(expected)
        assert refreshed[2] == pytest.approx(expected)
        assert built[1] == pytest.approx(base[1])

    def test_recent_skip_penalises_new_generation(self, repo_factory):
        base = self._baseline(repo_factory)
        skipped = InteractionSummary(
            repo_id=98, action=InteractionAction.SKIP, language="Go", topics={"http"},
        )
        pool = _pool(FakeSearch({1: self._repos(repo_factory)}), FakeInteractions(recent=[skipped]))
        asyncio.run(pool.build_pool("u1", PREFS))
        assert _scores(pool)[2] == pytest.approx(max(0.0, base[2] - 15.0))

    def test_history_merges_sources(self, repo_factory):
        repo = repo_factory(5)
        recent = [
            InteractionSummary(repo_id=5, action=InteractionAction.VIEW),
            InteractionSummary(repo_id=6, action=InteractionAction.SKIP),
        ]
        history = interaction_history([repo], [repo], recent)
        assert [(h.repo_id, h.action) for h in history] == [
            (5, InteractionAction.SAVE),
            (6, InteractionAction.SKIP),
        ]
        assert history[0].topics == frozenset({"python", "cli"})


# ── Cluster top-up ────────────────────────────────────────────────────────────

class TestClusterTopUp:
    PREFS = UserPreferences(
        tech_stack=("python",),
        primary_cluster=ClusterId.BACKEND,
        secondary_clusters=(ClusterId.MOBILE,),
    )

    def _clusters(self, repo_factory) -> ClusterIndex:
        return ClusterIndex(InMemoryClusterSource([
            ClusterAssignment(cluster="backend", repo=repo_factory(10), quality_score=90.0),
            ClusterAssignment(cluster="backend", repo=repo_factory(11), quality_score=80.0),
            ClusterAssignment(cluster="mobile", repo=repo_factory(20), quality_score=85.0),
            ClusterAssignment(cluster="devops", repo=repo_factory(30), quality_score=70.0),
            ClusterAssignment(
                cluster="devops", repo=repo_factory(31, language="Go", topics={"k8s"}), quality_score=95.0,
            ),
        ]))

    def test_short_search_topped_up(self, repo_factory):
        pool = _pool(
            FakeSearch({1: [repo_factory(1)]}), clusters=self._clusters(repo_factory), pool_size=5,
        )
        entries = asyncio.run(pool.build_pool("u1", self.PREFS))
        # backend shortlist, then mobile, then the tag match on "python"
        assert sorted(_ids(entries)) == [1, 10, 11, 20, 30]

    def test_full_search_skips_clusters(self, repo_factory):
        pool = _pool(
            FakeSearch({1: [repo_factory(1), repo_factory(2)]}),
            clusters=self._clusters(repo_factory),
            pool_size=2,
        )
        entries = asyncio.run(pool.build_pool("u1", self.PREFS))
        assert sorted(_ids(entries)) == [1, 2]

    def test_seen_ids_never_topped_up(self, repo_factory):
        pool = _pool(
            FakeSearch({1: [repo_factory(1)]}),
            FakeInteractions(seen={10, 20}),
            clusters=self._clusters(repo_factory),
            pool_size=5,
        )
        entries = asyncio.run(pool.build_pool("u1", self.PREFS))
        assert sorted(_ids(entries)) == [1, 11, 30]


# ── Reset ─────────────────────────────────────────────────────────────────────

class TestClearAndRefresh:
    def test_clear_forces_rebuild(self, repo_factory):
        search = FakeSearch({1: [repo_factory(1)]})
        pool = _pool(search)

        async def scenario():
            await pool.build_pool("u1", PREFS)
            pool.clear_pool("u1")
            assert pool.entries("u1") == []
            await pool.build_pool("u1", PREFS)

        asyncio.run(scenario())
        assert len(search.calls) == 2
        assert pool.generation("u1") == 1

    def test_refresh_rebuilds(self, repo_factory):
        search = FakeSearch({1: [repo_factory(1)]})
        pool = _pool(search)

        async def scenario():
            await pool.build_pool("u1", PREFS)
            return await pool.refresh_pool("u1", PREFS)

        entries = asyncio.run(scenario())
        assert _ids(entries) == [1]
        assert len(search.calls) == 2
