"""
RefreshClustersStage — rebuild the curated cluster shortlists from the catalog.

Processing steps:
  1. Load every catalog repository and its cached health signals.
  2. Score each repository with HealthScorer (``config.scoring``).
  3. Assign each repository to every cluster whose keyword set overlaps its
     language and topics (zero or more clusters per repository).
  4. Rank each cluster by health overall, then keyword overlap, then stars;
     keep the top ``config.clusters.shortlist_size``.
  5. Upsert ``cluster_metadata`` and swap each cluster's ``repo_clusters``
     rows in one transaction.

``rotation_priority`` is the keyword overlap, so within an equal-quality band
the more on-topic repository is served first.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from datetime import datetime
from typing import Iterable, Mapping, Optional

from repofinder.db.repositories.cluster_repo import ClusterAssignment, ClusterInfo
from repofinder.models.health import HealthScore
from repofinder.models.meta import RunMetadata
from repofinder.models.repository import Repository
from repofinder.pipeline.base import PipelineStage
from repofinder.taxonomy.cluster_taxonomy import (
    CLUSTER_DISPLAY,
    CLUSTER_PRIORITY,
    ClusterId,
    cluster_overlap,
)

logger = logging.getLogger(__name__)


def repo_terms(repo: Repository) -> set[str]:
    """Lower-cased language and topics used for cluster keyword overlap."""
    terms = set(repo.topics)
    if repo.language:
        terms.add(repo.language.lower())
    return terms


def assign_clusters(
    repos: Iterable[Repository],
    scores: Mapping[int, HealthScore],
    shortlist_size: int,
) -> dict[ClusterId, list[ClusterAssignment]]:
    """Build every cluster's ranked, capped shortlist.

    Args:
        repos: Catalog repositories.
        scores: Health score per repo id (repos without one are skipped).
        shortlist_size: Maximum repositories per cluster.

    Returns:
        Cluster → shortlist in serving order; every cluster is present,
        possibly with an empty list.
    """
    candidates: dict[ClusterId, list[tuple[ClusterAssignment, int]]] = defaultdict(list)
    for repo in repos:
        health = scores.get(repo.repo_id)
        if health is None:
            continue
        terms = repo_terms(repo)
        for cluster in CLUSTER_PRIORITY:
            overlap = cluster_overlap(terms, cluster)
            if overlap == 0:
                continue
            candidates[cluster].append(
                (
                    ClusterAssignment(
                        cluster=cluster.value,
                        repo=repo,
                        quality_score=float(health.overall),
                        rotation_priority=overlap,
                    ),
                    repo.stars,
                )
            )

    shortlists: dict[ClusterId, list[ClusterAssignment]] = {}
    for cluster in CLUSTER_PRIORITY:
        ranked = sorted(
            candidates.get(cluster, []),
            key=lambda c: (-c[0].quality_score, -c[0].rotation_priority, -c[1], c[0].repo.repo_id),
        )
        shortlists[cluster] = [a for a, _ in ranked[:shortlist_size]]
    return shortlists


class RefreshClustersStage(PipelineStage):
    """Rebuild ``repo_clusters`` and ``cluster_metadata`` from the catalog.

    Returns the total number of cluster assignments written.
    """

    stage_name = "refresh_clusters"

    def _execute(self, run: RunMetadata, as_of: Optional[datetime] = None, **kwargs) -> int:
        """Score the catalog and swap in fresh shortlists.

        Args:
            run: In-progress :class:`RunMetadata` (mutable, unused here).
            as_of: Reference time for health scoring (default: now).

        Returns:
            Number of ``repo_clusters`` rows written across all clusters.
        """
        from repofinder.db.connection import get_connection
        from repofinder.db.repositories.catalog_repo import CatalogRepository
        from repofinder.db.repositories.cluster_repo import ClusterRepository
        from repofinder.scoring.health import HealthScorer

        scorer = HealthScorer.from_config(self.config.scoring)
        shortlist_size = self.config.clusters.shortlist_size

        with get_connection(self.db_path) as conn:
            catalog = CatalogRepository(conn)
            repos = catalog.list_all()
            signals = catalog.get_signals_many(r.repo_id for r in repos)
            scores = {
                r.repo_id: scorer.score(r, signals.get(r.repo_id), as_of=as_of)
                for r in repos
            }
            shortlists = assign_clusters(repos, scores, shortlist_size)

            clusters = ClusterRepository(conn)
            total = 0
            for cluster, assignments in shortlists.items():
                display, description = CLUSTER_DISPLAY[cluster]
                clusters.upsert_metadata(
                    ClusterInfo(
                        name=cluster.value,
                        display_name=display,
                        description=description,
                        repo_count=len(assignments),
                    )
                )
                total += clusters.replace_cluster(cluster.value, assignments)
                logger.debug("Cluster %s: %d repos", cluster.value, len(assignments))

        logger.info(
            "Cluster refresh: %d catalog repos → %d assignments across %d clusters",
            len(repos), total, len(shortlists),
        )
        return total
