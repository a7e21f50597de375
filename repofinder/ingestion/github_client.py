"""
GitHub REST API client — the concrete remote search collaborator.

API:   https://api.github.com
Docs:  https://docs.github.com/en/rest/search/search#search-repositories

Credential setup (.env, gitignored):
  GITHUB_TOKEN=ghp_...       # optional; unauthenticated search is 10 req/min

Endpoints used:
  GET /search/repositories?q=...&sort=stars&order=desc&per_page=N&page=P
  GET /search/issues?q=repo:{owner/name}+type:issue[+state:closed]&per_page=1
  GET /repositories/{id}
  GET /repos/{owner}/{name}/contributors?per_page=1&anon=1   (count via Link rel=last)
  GET /repos/{owner}/{name}/releases?per_page=1               (count via Link rel=last)
  GET /repos/{owner}/{name}/stats/commit_activity             (202 while computing)
  GET /repos/{owner}/{name}/community/profile                 (README / CONTRIBUTING)
  GET /repos/{owner}/{name}/issues?state=closed&per_page=30   (average close time)

Rate limiting:
  403 and 429 responses (and 5xx / transport errors) are retried up to
  ``max_retries`` times. The delay honours ``Retry-After``, then
  ``X-RateLimit-Reset`` when ``X-RateLimit-Remaining`` is ``0``, and otherwise
  backs off exponentially from ``backoff_base_seconds``; every delay is capped
  at ``max_backoff_seconds``. Once retries are exhausted the call raises
  ``RemoteUnavailable``.
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Any, Awaitable, Callable, ClassVar, Optional

import httpx

from repofinder.config import GitHubConfig
from repofinder.ingestion.query_builder import build_trending_queries
from repofinder.interfaces import RemoteUnavailable
from repofinder.models.repository import HealthSignals, Repository
from repofinder.utils.time_utils import days_between, parse_github_timestamp

logger = logging.getLogger(__name__)

SleepFn = Callable[[float], Awaitable[None]]


# ── Payload parsing ───────────────────────────────────────────────────────────


def parse_repository(payload: dict[str, Any]) -> Repository:
    """Convert a GitHub repository JSON object into a ``Repository``.

    Args:
        payload: One element of ``items`` from the search API, or the body of
            ``GET /repositories/{id}``.

    Returns:
        Immutable ``Repository`` snapshot.
    """
    owner = payload.get("owner") or {}
    license_info = payload.get("license") or {}
    return Repository(
        repo_id=int(payload["id"]),
        full_name=payload["full_name"],
        description=payload.get("description"),
        language=payload.get("language"),
        topics=payload.get("topics") or [],
        stars=int(payload.get("stargazers_count") or 0),
        forks=int(payload.get("forks_count") or 0),
        watchers=int(payload.get("subscribers_count") or payload.get("watchers_count") or 0),
        open_issues=int(payload.get("open_issues_count") or 0),
        created_at=parse_github_timestamp(payload.get("created_at")),
        updated_at=parse_github_timestamp(payload.get("updated_at")),
        pushed_at=parse_github_timestamp(payload.get("pushed_at")),
        license=license_info.get("spdx_id") or license_info.get("name"),
        owner_login=owner.get("login", ""),
        owner_avatar_url=owner.get("avatar_url"),
        html_url=payload.get("html_url", ""),
    )


def _last_page_count(response: httpx.Response, items_on_page: int) -> int:
    """Total item count of a ``per_page=1`` listing, read from the Link header."""
    last = response.links.get("last", {}).get("url")
    if last:
        page = httpx.URL(last).params.get("page")
        if page and page.isdigit():
            return int(page)
    return items_on_page


# ── Client ────────────────────────────────────────────────────────────────────


class GitHubSearchClient:
    """Async client for GitHub repository search and health signals.

    Usage::

        async with GitHubSearchClient(config.github) as client:
            repos = await client.search("react tutorial stars:>50")
            signals = await client.get_signals(repos[0])

    Pass ``http_client`` to inject a preconfigured ``httpx.AsyncClient``
    (tests use ``httpx.MockTransport``); the client is then not closed by
    ``aclose()``. ``sleep`` is injectable so backoff can be observed in tests.
    """

    API_VERSION: ClassVar[str] = "2022-11-28"
    RETRYABLE_STATUS: ClassVar[frozenset[int]] = frozenset({403, 429, 500, 502, 503, 504})

    def __init__(
        self,
        config: Optional[GitHubConfig] = None,
        http_client: Optional[httpx.AsyncClient] = None,
        sleep: SleepFn = asyncio.sleep,
    ) -> None:
        self.config = config or GitHubConfig()
        self._owns_client = http_client is None
        self._client = http_client or httpx.AsyncClient(
            base_url=self.config.api_url,
            headers=self._headers(),
            timeout=self.config.timeout_seconds,
        )
        self._sleep = sleep
        self._semaphore = asyncio.Semaphore(self.config.detail_concurrency)

    async def __aenter__(self) -> "GitHubSearchClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    def _headers(self) -> dict[str, str]:
        headers = {
            "Accept": "application/vnd.github+json",
            "X-GitHub-Api-Version": self.API_VERSION,
        }
        if self.config.token:
            headers["Authorization"] = f"Bearer {self.config.token}"
        return headers

    # ── Transport ──────────────────────────────────────────────────────────────

    def _retry_delay(self, response: Optional[httpx.Response], attempt: int) -> float:
        """Seconds to wait before retry number ``attempt`` (0-based)."""
        cap = self.config.max_backoff_seconds
        if response is not None:
            retry_after = response.headers.get("retry-after")
            if retry_after and retry_after.isdigit():
                return min(float(retry_after), cap)
            reset = response.headers.get("x-ratelimit-reset")
            if response.headers.get("x-ratelimit-remaining") == "0" and reset and reset.isdigit():
                return min(max(0.0, int(reset) - time.time()), cap)
        return min(self.config.backoff_base_seconds * (2 ** attempt), cap)

    async def _get(
        self,
        path: str,
        params: Optional[dict[str, Any]] = None,
        allow_404: bool = False,
    ) -> Optional[httpx.Response]:
        """GET with retry/backoff.

        Returns:
            The successful (2xx) response, or ``None`` on 404 when
            ``allow_404`` is set.

        Raises:
            RemoteUnavailable: After ``max_retries`` failed attempts, or on a
                non-retryable error status.
        """
        last_status: Optional[int] = None
        for attempt in range(self.config.max_retries):
            response: Optional[httpx.Response] = None
            try:
                response = await self._client.get(path, params=params)
            except httpx.TransportError as exc:
                logger.warning(
                    "GitHub %s transport error (attempt %d/%d): %s",
                    path, attempt + 1, self.config.max_retries, exc,
                )
            else:
                last_status = response.status_code
                if response.is_success:
                    return response
                if response.status_code == 404 and allow_404:
                    return None
                if response.status_code not in self.RETRYABLE_STATUS:
                    raise RemoteUnavailable(
                        f"GitHub {path} failed with HTTP {response.status_code}.",
                        status_code=response.status_code,
                    )
                logger.warning(
                    "GitHub %s returned HTTP %d (attempt %d/%d)",
                    path, response.status_code, attempt + 1, self.config.max_retries,
                )

            if attempt + 1 < self.config.max_retries:
                await self._sleep(self._retry_delay(response, attempt))

        raise RemoteUnavailable(
            f"GitHub {path} unavailable after {self.config.max_retries} attempts.",
            status_code=last_status,
        )

    async def _get_required(
        self,
        path: str,
        params: Optional[dict[str, Any]] = None,
    ) -> httpx.Response:
        """GET where a missing resource is an error, not ``None``."""
        response = await self._get(path, params)
        if response is None:
            raise RemoteUnavailable(f"GitHub {path} returned no content.")
        return response

    # ── Search ─────────────────────────────────────────────────────────────────

    async def search(
        self,
        query: str,
        filters: Optional[dict[str, Any]] = None,
        page: int = 1,
    ) -> list[Repository]:
        """Search repositories.

        Args:
            query: GitHub search query (keywords plus qualifiers).
            filters: Optional ``language``, ``sort`` (default ``stars``),
                ``order`` (default ``desc``) and ``per_page`` overrides.
            page: 1-based result page.

        Returns:
            Parsed repositories in API order (possibly empty).

        Raises:
            RemoteUnavailable: If the API stays unavailable after retries.
        """
        filters = filters or {}
        q = query
        if language := filters.get("language"):
            q = f"{q} language:{language}"
        params = {
            "q": q,
            "sort": filters.get("sort", "stars"),
            "order": filters.get("order", "desc"),
            "per_page": int(filters.get("per_page", self.config.per_page)),
            "page": page,
        }
        response = await self._get_required("/search/repositories", params)
        items = response.json().get("items", [])
        repos = [parse_repository(item) for item in items]
        logger.debug("GitHub search q=%r page=%d → %d repos", q, page, len(repos))
        return repos

    async def trending(
        self,
        window: str = "weekly",
        filters: Optional[dict[str, Any]] = None,
    ) -> list[Repository]:
        """Repositories with recent activity and traction, most-starred first.

        Runs the window's queries concurrently and de-duplicates by id.

        Args:
            window: ``daily`` | ``weekly`` | ``monthly``.
            filters: Optional ``language`` and ``per_page``.

        Returns:
            Unique repositories sorted by stars descending.
        """
        filters = dict(filters or {})
        language = filters.pop("language", None)
        queries = build_trending_queries(window, language=language)
        results = await asyncio.gather(*(self.search(q, filters) for q in queries))

        by_id: dict[int, Repository] = {}
        for batch in results:
            for repo in batch:
                existing = by_id.get(repo.repo_id)
                if existing is None or repo.stars > existing.stars:
                    by_id[repo.repo_id] = repo
        return sorted(by_id.values(), key=lambda r: (-r.stars, r.repo_id))

    # ── Lookup ─────────────────────────────────────────────────────────────────

    async def get_repository(self, repo_id: int) -> Optional[Repository]:
        """Fetch one repository by numeric id; ``None`` if it does not exist."""
        response = await self._get(f"/repositories/{repo_id}", allow_404=True)
        if response is None:
            return None
        return parse_repository(response.json())

    async def get_repository_by_name(self, full_name: str) -> Optional[Repository]:
        """Fetch one repository by ``owner/name``; ``None`` if it does not exist."""
        response = await self._get(f"/repos/{full_name}", allow_404=True)
        if response is None:
            return None
        return parse_repository(response.json())

    # ── Health signals ─────────────────────────────────────────────────────────

    async def get_signals(self, repo: Repository) -> HealthSignals:
        """Collect auxiliary health signals for one repository.

        The six sub-requests are independent and issued concurrently, bounded
        by the client-wide detail semaphore. A sub-request that fails leaves its
        signal as ``None`` (scored as worst case) rather than failing the call.
        """
        contributors, releases, commits, community, issues, close_days = await asyncio.gather(
            self._bounded(self._count_listing(f"/repos/{repo.full_name}/contributors", anon=True)),
            self._bounded(self._count_listing(f"/repos/{repo.full_name}/releases")),
            self._bounded(self._commit_activity(repo.full_name)),
            self._bounded(self._community_profile(repo.full_name)),
            self._bounded(self._issue_close_rate(repo.full_name)),
            self._bounded(self._avg_issue_close_days(repo.full_name)),
            return_exceptions=True,
        )

        def ok(value):
            if isinstance(value, BaseException):
                logger.warning("Signal fetch for %s failed: %s", repo.full_name, value)
                return None
            return value

        community = ok(community) or {}
        return HealthSignals(
            contributor_count=ok(contributors),
            release_count=ok(releases),
            commit_activity_52w=ok(commits),
            issue_close_rate=ok(issues),
            avg_issue_close_days=ok(close_days),
            has_readme=community.get("readme"),
            has_contributing=community.get("contributing"),
        )

    async def _bounded(self, coro: Awaitable[Any]) -> Any:
        async with self._semaphore:
            return await coro

    async def _count_listing(self, path: str, anon: bool = False) -> Optional[int]:
        params: dict[str, Any] = {"per_page": 1}
        if anon:
            params["anon"] = 1
        response = await self._get(path, params, allow_404=True)
        if response is None:
            return None
        if response.status_code == 204:
            return 0
        return _last_page_count(response, len(response.json()))

    async def _commit_activity(self, full_name: str) -> Optional[int]:
        response = await self._get(f"/repos/{full_name}/stats/commit_activity", allow_404=True)
        # 202: statistics are still being computed; treat as unknown.
        if response is None or response.status_code == 202:
            return None
        weeks = response.json() or []
        return sum(int(w.get("total", 0)) for w in weeks)

    async def _community_profile(self, full_name: str) -> Optional[dict[str, bool]]:
        response = await self._get(f"/repos/{full_name}/community/profile", allow_404=True)
        if response is None:
            return None
        files = response.json().get("files") or {}
        return {
            "readme": files.get("readme") is not None,
            "contributing": files.get("contributing") is not None,
        }

    async def _issue_close_rate(self, full_name: str) -> Optional[float]:
        total_resp, closed_resp = await asyncio.gather(
            self._get_required(
                "/search/issues", {"q": f"repo:{full_name} type:issue", "per_page": 1}
            ),
            self._get_required(
                "/search/issues",
                {"q": f"repo:{full_name} type:issue state:closed", "per_page": 1},
            ),
        )
        total = int(total_resp.json().get("total_count", 0))
        if total == 0:
            return None
        closed = int(closed_resp.json().get("total_count", 0))
        return min(1.0, closed / total)

    async def _avg_issue_close_days(self, full_name: str) -> Optional[float]:
        """Mean open-to-close time of the most recently updated closed issues."""
        response = await self._get(
            f"/repos/{full_name}/issues",
            {"state": "closed", "sort": "updated", "direction": "desc", "per_page": 30},
            allow_404=True,
        )
        if response is None:
            return None
        durations = [
            days_between(
                parse_github_timestamp(issue["created_at"]),
                parse_github_timestamp(issue["closed_at"]),
            )
            for issue in response.json() or []
            if issue.get("created_at") and issue.get("closed_at") and "pull_request" not in issue
        ]
        if not durations:
            return None
        return round(sum(durations) / len(durations), 2)
