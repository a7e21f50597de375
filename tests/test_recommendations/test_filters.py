"""
Tests for repofinder/recommendations/filters.py.

What we test
------------
apply_popularity_cap():
  - Drops repositories above the cap; the cap itself is kept.
  - None disables the cap.

exclude_ids():
  - Drops excluded ids, preserves order.

merge_unique():
  - Skips duplicates of already-accepted ids and within the incoming list.
  - Stops at the limit and reports only accepted repositories.

diversify():
  - Limits languages and topics in the head window.
  - Deferred repositories are appended in original order; nothing is lost.
"""

from __future__ import annotations

from repofinder.recommendations.filters import (
    apply_popularity_cap,
    diversify,
    exclude_ids,
    merge_unique,
)


def _ids(repos) -> list[int]:
    return [r.repo_id for r in repos]


class TestPopularityCap:
    def test_drops_above_cap(self, repo_factory):
        repos = [repo_factory(1, stars=100), repo_factory(2, stars=30_001), repo_factory(3, stars=30_000)]
        assert _ids(apply_popularity_cap(repos, 30_000)) == [1, 3]

    def test_none_disables_cap(self, repo_factory):
        repos = [repo_factory(1, stars=900_000)]
        assert _ids(apply_popularity_cap(repos, None)) == [1]


class TestExcludeIds:
    def test_drops_and_preserves_order(self, repo_factory):
        repos = [repo_factory(i) for i in (5, 3, 9, 1)]
        assert _ids(exclude_ids(repos, {3, 1})) == [5, 9]


class TestMergeUnique:
    def test_skips_duplicates(self, repo_factory):
        current = [repo_factory(1), repo_factory(2)]
        incoming = [repo_factory(2), repo_factory(3), repo_factory(3), repo_factory(4)]
        merged, accepted = merge_unique(current, incoming, limit=10)
        assert _ids(merged) == [1, 2, 3, 4]
        assert _ids(accepted) == [3, 4]

    def test_respects_limit(self, repo_factory):
        merged, accepted = merge_unique([repo_factory(1)], [repo_factory(i) for i in (2, 3, 4)], limit=2)
        assert _ids(merged) == [1, 2]
        assert _ids(accepted) == [2]

    def test_does_not_modify_current(self, repo_factory):
        current = [repo_factory(1)]
        merge_unique(current, [repo_factory(2)], limit=5)
        assert _ids(current) == [1]


class TestDiversify:
    def test_language_limit_in_head(self, repo_factory):
        repos = [repo_factory(i, topics=set()) for i in (1, 2, 3, 4)]
        repos.append(repo_factory(5, language="Go", topics=set()))
        assert _ids(diversify(repos, window=10, max_per_language=2)) == [1, 2, 5, 3, 4]

    def test_topic_limit_in_head(self, repo_factory):
        langs = ["Go", "Rust", "Zig", "C", "Lua"]
        repos = [repo_factory(i + 1, language=lang, topics={"cli"}) for i, lang in enumerate(langs)]
        repos.append(repo_factory(6, language="Nim", topics={"web"}))
        assert _ids(diversify(repos, max_per_topic=3)) == [1, 2, 3, 6, 4, 5]

    def test_topic_limit_lets_other_topics_through(self, repo_factory):
        repos = [
            repo_factory(1, language="Go", topics={"cli"}),
            repo_factory(2, language="Rust", topics={"cli"}),
            repo_factory(3, language="Zig", topics={"web"}),
        ]
        assert _ids(diversify(repos, max_per_topic=1)) == [1, 3, 2]

    def test_window_bounds_head(self, repo_factory):
        repos = [repo_factory(i, language=f"L{i}", topics=set()) for i in range(1, 6)]
        assert _ids(diversify(repos, window=2)) == [1, 2, 3, 4, 5]

    def test_nothing_lost(self, repo_factory):
        repos = [repo_factory(i) for i in range(1, 12)]
        assert sorted(_ids(diversify(repos))) == list(range(1, 12))

    def test_empty(self):
        assert diversify([]) == []
