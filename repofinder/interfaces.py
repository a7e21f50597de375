"""
Collaborator contracts consumed by the recommendation core.

The core treats the remote search API, the preference store, the interaction
store and the secondary (hybrid) recommender as black boxes. Each is a
``typing.Protocol`` so tests and alternative backends can plug in plain
classes without inheritance.

Concrete implementations shipped with the package:
  SearchService      → ``repofinder.ingestion.github_client.GitHubSearchClient``
  PreferenceStore    → ``repofinder.db.stores.SqlitePreferenceStore``
  InteractionStore   → ``repofinder.db.stores.SqliteInteractionStore``
  RepositoryLookup   → ``repofinder.db.stores.CatalogLookup``
  HybridRecommender  → ``repofinder.recommendations.hybrid.CatalogRecommender``
"""

from __future__ import annotations

from typing import Any, Optional, Protocol

from repofinder.models.interaction import InteractionRecord, InteractionSummary
from repofinder.models.preferences import UserPreferences
from repofinder.models.repository import HealthSignals, Repository


# ── Custom exceptions ─────────────────────────────────────────────────────────


class RemoteUnavailable(RuntimeError):
    """Raised when the remote search service is down or rate-limited.

    Retried with backoff inside the client; once retries are exhausted the
    orchestrator treats it as a tier failure, never as a request failure.

    Attributes:
        status_code: Last HTTP status seen, or ``None`` for transport errors.
    """

    def __init__(self, message: str, status_code: Optional[int] = None) -> None:
        self.status_code = status_code
        super().__init__(message)


class PreferenceNotFound(LookupError):
    """Raised by a preference store for a user with no saved preferences.

    Callers fall back to ``UserPreferences()`` defaults.
    """

    def __init__(self, user_id: str) -> None:
        self.user_id = user_id
        super().__init__(f"No preferences stored for user '{user_id}'.")


class RepositoryNotFound(LookupError):
    """Raised when a repository id cannot be resolved locally or remotely."""

    def __init__(self, repo_id: int) -> None:
        self.repo_id = repo_id
        super().__init__(f"Repository {repo_id} could not be resolved.")


# ── Protocols ─────────────────────────────────────────────────────────────────


class SearchService(Protocol):
    """Remote repository search (rate-limited)."""

    async def search(
        self, query: str, filters: Optional[dict[str, Any]] = None, page: int = 1
    ) -> list[Repository]: ...

    async def trending(
        self, window: str = "weekly", filters: Optional[dict[str, Any]] = None
    ) -> list[Repository]: ...


class RepositoryLookup(Protocol):
    """Resolve repository ids (plus health signals) for reports and comparisons."""

    async def get_repository(self, repo_id: int) -> Optional[Repository]: ...

    async def get_signals(self, repo: Repository) -> HealthSignals: ...


class PreferenceStore(Protocol):
    async def get(self, user_id: str) -> UserPreferences: ...

    async def set(self, user_id: str, prefs: UserPreferences) -> None: ...


class InteractionStore(Protocol):
    async def append(self, record: InteractionRecord) -> None: ...

    async def seen_ids(self, user_id: str) -> set[int]: ...

    async def saved_repos(self, user_id: str) -> list[Repository]: ...

    async def liked_repos(self, user_id: str) -> list[Repository]: ...

    async def recent(self, user_id: str, limit: int = 50) -> list[InteractionSummary]: ...


class HybridRecommender(Protocol):
    """Secondary heuristic ranking, treated as a black box."""

    async def recommend(
        self, user_id: str, prefs: UserPreferences, limit: int
    ) -> list[Repository]: ...
