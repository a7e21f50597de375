"""
Recommendation core: turns preferences and interaction history into a
de-duplicated, quality-ranked stream of repositories.

Modules
-------
filters      : apply_popularity_cap() + exclude_ids() + merge_unique()
               + diversify() — pure list transforms shared by every tier.
clusters     : ClusterIndex — curated best-of shortlists per topical cluster.
pool         : CandidatePool — per-user cached, scored candidate pools.
hybrid       : session scoring + CatalogRecommender (secondary recommender).
orchestrator : RecommendationOrchestrator — pool → cluster → hybrid → trending.
comparison   : ComparisonEngine — side-by-side health comparison.
"""
