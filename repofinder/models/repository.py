"""
Repository snapshot and auxiliary health signals.

``Repository`` is the single canonical value type flowing through every
recommendation tier: the search client parses into it, the stores persist it,
the pool/cluster/hybrid/trending tiers all return it. Optional remote fields
(``language``, ``license``, timestamps) are explicit ``Optional`` attributes
rather than ad hoc shape checks.

``HealthSignals`` carries the extra inputs HealthScorer needs that are not
part of the search payload (contributors, releases, commit activity, issue
statistics). Any field may be ``None``; a missing signal is scored as its
worst-case input.
"""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, field_validator

# Language plus at most this many topics form a repository's tag list.
MAX_TOPIC_TAGS = 5


class Repository(BaseModel):
    """Immutable snapshot of one remote repository at fetch time.

    Attributes:
        repo_id: Stable platform-assigned identifier.
        full_name: ``owner/name``.
        description: Free-text description, if any.
        language: Primary language, if detected.
        topics: Lower-cased topic tags (set; order irrelevant).
        stars: Stargazer count.
        forks: Fork count.
        watchers: Subscriber count (0 when unknown).
        open_issues: Open issue count (0 when unknown).
        created_at: Repository creation time (UTC).
        updated_at: Last metadata update (UTC).
        pushed_at: Last push (UTC).
        license: SPDX id or license name, if any.
        owner_login: Owner handle.
        owner_avatar_url: Owner avatar URL.
        html_url: Browser URL.
    """

    model_config = ConfigDict(frozen=True)

    repo_id: int
    full_name: str
    description: Optional[str] = None
    language: Optional[str] = None
    topics: frozenset[str] = frozenset()
    stars: int = 0
    forks: int = 0
    watchers: int = 0
    open_issues: int = 0
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    pushed_at: Optional[datetime] = None
    license: Optional[str] = None
    owner_login: str = ""
    owner_avatar_url: Optional[str] = None
    html_url: str = ""

    @field_validator("full_name")
    @classmethod
    def validate_full_name(cls, v: str) -> str:
        owner, sep, name = v.partition("/")
        if not sep or not owner or not name:
            raise ValueError(f"full_name must be 'owner/name', got '{v}'.")
        return v

    @field_validator("stars", "forks", "watchers", "open_issues")
    @classmethod
    def validate_non_negative(cls, v: int) -> int:
        if v < 0:
            raise ValueError(f"Counts must be >= 0, got {v}.")
        return v

    @field_validator("topics", mode="before")
    @classmethod
    def normalize_topics(cls, v):
        if v is None:
            return frozenset()
        return frozenset(str(t).strip().lower() for t in v if str(t).strip())

    @property
    def owner(self) -> str:
        return self.full_name.split("/", 1)[0]

    @property
    def name(self) -> str:
        return self.full_name.split("/", 1)[1]

    @property
    def tags(self) -> list[str]:
        """Language plus up to five topics, lower-cased and de-duplicated.

        Topics are taken in sorted order so the tag list is stable for a
        given snapshot.
        """
        tags: list[str] = [self.language.lower()] if self.language else []
        topics = [t for t in sorted(self.topics) if t not in tags]
        return tags + topics[:MAX_TOPIC_TAGS]

    @property
    def last_activity_at(self) -> Optional[datetime]:
        """Most recent push, falling back to the metadata update time."""
        return self.pushed_at or self.updated_at


class HealthSignals(BaseModel):
    """Auxiliary inputs to HealthScorer, fetched separately from the search.

    Attributes:
        contributor_count: Number of contributors.
        release_count: Number of published releases.
        commit_activity_52w: Total commits over the last 52 weeks.
        issue_close_rate: Closed / total issues in [0, 1]; ``None`` when no
            issue was ever opened.
        avg_issue_close_days: Mean days to close an issue; ``None`` if unknown.
        has_readme: README present.
        has_contributing: CONTRIBUTING guide present.
    """

    model_config = ConfigDict(frozen=True)

    contributor_count: Optional[int] = None
    release_count: Optional[int] = None
    commit_activity_52w: Optional[int] = None
    issue_close_rate: Optional[float] = None
    avg_issue_close_days: Optional[float] = None
    has_readme: Optional[bool] = None
    has_contributing: Optional[bool] = None

    @field_validator("issue_close_rate")
    @classmethod
    def validate_close_rate(cls, v: Optional[float]) -> Optional[float]:
        if v is not None and not 0.0 <= v <= 1.0:
            raise ValueError(f"issue_close_rate must be in [0.0, 1.0], got {v}.")
        return v

    @field_validator("contributor_count", "release_count", "commit_activity_52w")
    @classmethod
    def validate_counts(cls, v: Optional[int]) -> Optional[int]:
        if v is not None and v < 0:
            raise ValueError(f"Counts must be >= 0, got {v}.")
        return v
