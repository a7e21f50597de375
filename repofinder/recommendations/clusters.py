"""
ClusterIndex: curated "best of" shortlists per topical cluster.

Shortlists are built out of band by the ``refresh_clusters`` stage and read
here without any remote call, which makes the cluster tier the first
fallback when a user's personal pool runs dry.

Ordering
--------
A shortlist is served by quality score descending, then rotation priority
descending, then repo id. When a ``user_id`` is supplied, each band of equal
(rounded) quality is rotated by a per-user offset derived from a hash of the
user id and cluster, so two users asking for the same cluster see different
heads of the list while higher-quality bands still come first. The rotation
is deterministic: the same user always gets the same order.
"""

from __future__ import annotations

import hashlib
import logging
from itertools import groupby
from typing import Iterable, Optional, Protocol

from repofinder.db.repositories.cluster_repo import ClusterAssignment, ClusterInfo
from repofinder.models.preferences import UserPreferences
from repofinder.models.repository import Repository
from repofinder.taxonomy.cluster_taxonomy import (
    CLUSTER_DISPLAY,
    CLUSTER_PRIORITY,
    ClusterId,
    best_cluster_for_terms,
)

logger = logging.getLogger(__name__)


class ClusterSource(Protocol):
    """Read access to persisted shortlists (see ``db.stores.SqliteClusterSource``)."""

    async def shortlist(self, cluster: str, limit: Optional[int] = None) -> list[ClusterAssignment]: ...

    async def all_assignments(self) -> list[ClusterAssignment]: ...

    async def list_clusters(self) -> list[ClusterInfo]: ...


class InMemoryClusterSource:
    """ClusterSource over a fixed list of assignments."""

    def __init__(
        self,
        assignments: Iterable[ClusterAssignment] = (),
        infos: Optional[Iterable[ClusterInfo]] = None,
    ) -> None:
        self._assignments = list(assignments)
        self._infos = list(infos) if infos is not None else None

    async def shortlist(self, cluster: str, limit: Optional[int] = None) -> list[ClusterAssignment]:
        rows = sorted(
            (a for a in self._assignments if a.cluster == cluster),
            key=lambda a: (-a.quality_score, -a.rotation_priority, a.repo.repo_id),
        )
        return rows if limit is None else rows[:limit]

    async def all_assignments(self) -> list[ClusterAssignment]:
        return list(self._assignments)

    async def list_clusters(self) -> list[ClusterInfo]:
        if self._infos is not None:
            return list(self._infos)
        counts: dict[str, int] = {}
        for a in self._assignments:
            counts[a.cluster] = counts.get(a.cluster, 0) + 1
        return [
            ClusterInfo(
                name=c.value,
                display_name=CLUSTER_DISPLAY[c][0],
                description=CLUSTER_DISPLAY[c][1],
                repo_count=counts.get(c.value, 0),
            )
            for c in CLUSTER_PRIORITY
        ]


def _user_offset(user_id: str, cluster: str, band_size: int) -> int:
    digest = hashlib.sha256(f"{user_id}:{cluster}".encode("utf-8")).hexdigest()
    return int(digest[:8], 16) % band_size


def rotate_for_user(
    assignments: list[ClusterAssignment],
    user_id: str,
) -> list[ClusterAssignment]:
    """Rotate each equal-quality band by a per-user offset.

    ``assignments`` must already be in shortlist order. Bands are formed by
    the quality score rounded to an integer.
    """
    rotated: list[ClusterAssignment] = []
    for _, band_iter in groupby(assignments, key=lambda a: round(a.quality_score)):
        band = list(band_iter)
        if len(band) > 1:
            k = _user_offset(user_id, band[0].cluster, len(band))
            band = band[k:] + band[:k]
        rotated.extend(band)
    return rotated


class ClusterIndex:
    """Best-of-cluster lookups backed by a ClusterSource.

    Args:
        source: Shortlist storage.
    """

    def __init__(self, source: ClusterSource) -> None:
        self.source = source

    def detect_primary_cluster(self, prefs: UserPreferences) -> ClusterId:
        """Pick the cluster best matching the user's preference terms.

        An explicit ``prefs.primary_cluster`` always wins. Otherwise the
        cluster with the largest keyword overlap is chosen; ties and zero
        overlap resolve by cluster priority (``frontend`` first).
        """
        if prefs.primary_cluster is not None:
            return prefs.primary_cluster
        cluster, overlap = best_cluster_for_terms(prefs.terms())
        logger.debug("Detected cluster %s (overlap=%d)", cluster.value, overlap)
        return cluster

    async def get_best_of_cluster(
        self,
        cluster: ClusterId | str,
        count: int,
        exclude_ids: set[int] | frozenset[int] = frozenset(),
        user_id: Optional[str] = None,
    ) -> list[Repository]:
        """Return up to ``count`` shortlisted repositories not in ``exclude_ids``.

        Args:
            cluster: Cluster id.
            count: Maximum number of repositories.
            exclude_ids: Repository ids to skip.
            user_id: When given, rotate equal-quality bands for this user.

        Returns:
            Unique repositories in shortlist order; may be shorter than
            ``count`` (including empty).
        """
        if count <= 0:
            return []
        name = cluster.value if isinstance(cluster, ClusterId) else cluster
        rows = [
            a for a in await self.source.shortlist(name)
            if a.repo.repo_id not in exclude_ids
        ]
        if user_id is not None:
            rows = rotate_for_user(rows, user_id)

        result: list[Repository] = []
        seen: set[int] = set()
        for a in rows:
            if a.repo.repo_id in seen:
                continue
            seen.add(a.repo.repo_id)
            result.append(a.repo)
            if len(result) >= count:
                break

        if len(result) < count:
            logger.debug(
                "Cluster %s short: %d of %d requested", name, len(result), count
            )
        return result

    async def get_repos_by_tags(
        self,
        tags: Iterable[str],
        count: int,
        exclude_ids: set[int] | frozenset[int] = frozenset(),
    ) -> list[Repository]:
        """Rank shortlisted repositories across all clusters by tag overlap.

        A user tag matches a repository tag on equality or substring in
        either direction. Repositories with no match are dropped. Ordered by
        match count, then quality score, then repo id.
        """
        wanted = {t.strip().lower() for t in tags if t.strip()}
        if not wanted or count <= 0:
            return []

        best: dict[int, tuple[int, float, Repository]] = {}
        for a in await self.source.all_assignments():
            repo = a.repo
            if repo.repo_id in exclude_ids:
                continue
            repo_tags = set(repo.tags) | repo.topics
            matches = sum(
                1 for w in wanted
                if any(w == t or w in t or t in w for t in repo_tags)
            )
            if matches == 0:
                continue
            existing = best.get(repo.repo_id)
            if existing is None or a.quality_score > existing[1]:
                best[repo.repo_id] = (matches, a.quality_score, repo)

        ranked = sorted(best.values(), key=lambda m: (-m[0], -m[1], m[2].repo_id))
        return [repo for _, _, repo in ranked[:count]]

    async def list_clusters(self) -> list[ClusterInfo]:
        """Active clusters with display metadata and repo counts."""
        return await self.source.list_clusters()
