"""
List transforms applied to every tier's output.

All functions are pure and order-preserving: they never re-rank, only drop.
The orchestrator applies them in this order per tier::

    apply_popularity_cap → exclude_ids → merge_unique

and ``diversify`` is applied once by the hybrid tier before truncation.
"""

from __future__ import annotations

from collections import defaultdict
from typing import Iterable, Optional, Sequence

from repofinder.models.repository import Repository

DIVERSITY_WINDOW = 10
MAX_PER_LANGUAGE = 2
MAX_PER_TOPIC = 3


def apply_popularity_cap(
    repos: Iterable[Repository],
    cap_stars: Optional[int],
) -> list[Repository]:
    """Drop repositories with more than ``cap_stars`` stars.

    ``cap_stars=None`` disables the cap (used when the user asked for
    popular repositories).
    """
    if cap_stars is None:
        return list(repos)
    return [r for r in repos if r.stars <= cap_stars]


def exclude_ids(repos: Iterable[Repository], excluded: set[int] | frozenset[int]) -> list[Repository]:
    """Drop repositories whose id is in ``excluded``."""
    return [r for r in repos if r.repo_id not in excluded]


def merge_unique(
    current: Sequence[Repository],
    incoming: Iterable[Repository],
    limit: int,
) -> tuple[list[Repository], list[Repository]]:
    """Append ``incoming`` to ``current`` skipping duplicates, up to ``limit``.

    Args:
        current: Already accepted repositories (not modified).
        incoming: Candidates from the next tier, in preference order.
        limit: Maximum length of the merged list.

    Returns:
        ``(merged, accepted)``: the merged list and the subset of ``incoming``
        that made it in.
    """
    merged = list(current)
    seen = {r.repo_id for r in merged}
    accepted: list[Repository] = []
    for repo in incoming:
        if len(merged) >= limit:
            break
        if repo.repo_id in seen:
            continue
        seen.add(repo.repo_id)
        merged.append(repo)
        accepted.append(repo)
    return merged, accepted


def diversify(
    repos: Sequence[Repository],
    window: int = DIVERSITY_WINDOW,
    max_per_language: int = MAX_PER_LANGUAGE,
    max_per_topic: int = MAX_PER_TOPIC,
) -> list[Repository]:
    """Spread languages and topics across the head of a ranked list.

    Walks ``repos`` in order and fills the first ``window`` slots with
    repositories that keep every language at most ``max_per_language`` and
    every topic at most ``max_per_topic`` times. Repositories passed over are
    appended afterwards in their original order, so nothing is lost.
    """
    head: list[Repository] = []
    deferred: list[Repository] = []
    lang_counts: dict[str, int] = defaultdict(int)
    topic_counts: dict[str, int] = defaultdict(int)

    for repo in repos:
        if len(head) >= window:
            deferred.append(repo)
            continue
        lang = repo.language.lower() if repo.language else None
        if lang is not None and lang_counts[lang] >= max_per_language:
            deferred.append(repo)
            continue
        if any(topic_counts[t] >= max_per_topic for t in repo.topics):
            deferred.append(repo)
            continue
        head.append(repo)
        if lang is not None:
            lang_counts[lang] += 1
        for t in repo.topics:
            topic_counts[t] += 1

    return head + deferred
