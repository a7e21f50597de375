"""
Ingestion layer — the remote repository search collaborator.

Submodules:
  github_client  — async GitHub REST client: search, trending, repository
                   lookup and health-signal collection, with 403/429 backoff.
  query_builder  — pure helpers turning preferences / trending windows into
                   GitHub search qualifiers.
  catalog_import — load a JSON export of repository snapshots into the catalog.

Credential placement (.env, gitignored):
  GITHUB_TOKEN              — personal access token (raises rate limits)
  REPOFINDER_GITHUB_TOKEN   — takes precedence over GITHUB_TOKEN
"""
