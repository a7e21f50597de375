"""
User preferences — the only mutable user-owned input besides interaction history.

Preferences are stored as-is in the ``user_preferences`` table and drive
CandidatePool construction. A pool generation is keyed by
``preference_hash()``: any change to the fields that shape the search query
produces a new hash and therefore a rebuild.
"""

from __future__ import annotations

import hashlib
import json
from typing import Optional

from pydantic import BaseModel, ConfigDict, field_validator

from repofinder.taxonomy.cluster_taxonomy import ClusterId
from repofinder.taxonomy.preference_taxonomy import (
    ActivityPreference,
    DocumentationImportance,
    PopularityWeight,
)

VALID_EXPERIENCE_LEVELS = frozenset({"beginner", "intermediate", "advanced"})


class UserPreferences(BaseModel):
    """Declared interests and weighting knobs for one user.

    Attributes:
        tech_stack: Languages and frameworks (e.g. ``["Python", "FastAPI"]``).
        goals: Goal slugs (``learning``, ``building``, …).
        interests: Domains of interest (``web-frontend``, ``ai-ml``, …).
        project_types: Preferred project shapes (``library``, ``framework``,
            ``tool``, ``tutorial``, ``boilerplate``, ``full-app``).
        experience_level: ``beginner`` | ``intermediate`` | ``advanced``.
        activity_preference: Preferred activity profile.
        popularity_weight: ``high`` disables the popularity cap.
        documentation_importance: Weight of documentation in content fit.
        primary_cluster: Explicit cluster choice; overrides detection.
        secondary_clusters: Further clusters used to top up a short pool.
        onboarding_completed: Whether the user finished onboarding.
    """

    model_config = ConfigDict(frozen=True)

    tech_stack: tuple[str, ...] = ()
    goals: tuple[str, ...] = ()
    interests: tuple[str, ...] = ()
    project_types: tuple[str, ...] = ()
    experience_level: str = "intermediate"
    activity_preference: ActivityPreference = ActivityPreference.ANY
    popularity_weight: PopularityWeight = PopularityWeight.MEDIUM
    documentation_importance: DocumentationImportance = DocumentationImportance.NICE_TO_HAVE
    primary_cluster: Optional[ClusterId] = None
    secondary_clusters: tuple[ClusterId, ...] = ()
    onboarding_completed: bool = False

    @field_validator("tech_stack", "goals", "interests", "project_types", mode="before")
    @classmethod
    def strip_entries(cls, v):
        if v is None:
            return ()
        return tuple(str(x).strip() for x in v if str(x).strip())

    @field_validator("experience_level")
    @classmethod
    def validate_experience_level(cls, v: str) -> str:
        if v not in VALID_EXPERIENCE_LEVELS:
            raise ValueError(
                f"Unknown experience_level '{v}'. "
                f"Must be one of {sorted(VALID_EXPERIENCE_LEVELS)}."
            )
        return v

    @property
    def wants_popular(self) -> bool:
        """True when the user explicitly asked for high-popularity weighting."""
        return self.popularity_weight == PopularityWeight.HIGH

    def terms(self) -> set[str]:
        """All lower-cased preference terms used for keyword overlap."""
        return {
            t.lower()
            for t in (*self.tech_stack, *self.interests, *self.goals, *self.project_types)
        }

    def preference_hash(self) -> str:
        """Stable digest of the fields that shape the candidate search.

        List order and case do not matter: ``["React", "Go"]`` and
        ``["go", "react"]`` hash identically.
        """
        payload = {
            "tech_stack": sorted({t.lower() for t in self.tech_stack}),
            "goals": sorted({g.lower() for g in self.goals}),
            "interests": sorted({i.lower() for i in self.interests}),
            "project_types": sorted({p.lower() for p in self.project_types}),
            "popularity_weight": self.popularity_weight.value,
            "primary_cluster": self.primary_cluster.value if self.primary_cluster else None,
            "secondary_clusters": sorted(c.value for c in self.secondary_clusters),
        }
        encoded = json.dumps(payload, sort_keys=True).encode("utf-8")
        return hashlib.sha256(encoded).hexdigest()[:16]
