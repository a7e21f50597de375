"""
Scoring: pure, synchronous functions with no DB or network access.

Modules
-------
health : HealthScorer + pillar scorers + grade thresholds. Six sub-scores,
         weighted overall and letter grade for one repository snapshot.
fit    : content_fit_score() (preference match), blend_fit() and
         repo_similarity() used by pool refinement and session scoring.
"""
