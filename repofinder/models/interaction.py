"""
Interaction history models.

``InteractionRecord`` is the append-only event written by the UI layer.
``InteractionSummary`` is what the core reads back when refining a pool or
computing session scores: the action plus the acted-on repository's tags, so
similarity can be evaluated without another lookup.
"""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, field_validator

from repofinder.taxonomy.preference_taxonomy import POSITIVE_ACTIONS, InteractionAction

VALID_SOURCES = frozenset({"discovery", "trending", "saved", "search", "compare", "cli"})


class InteractionRecord(BaseModel):
    """One user action on one repository.

    Attributes:
        interaction_id: Auto-assigned DB PK; ``None`` before insertion.
        user_id: Acting user.
        repo_id: Repository acted on.
        action: ``view`` | ``like`` | ``save`` | ``skip``.
        occurred_at: UTC time of the action.
        source: Screen the action came from.
        position: Card position within the feed, if known.
    """

    model_config = ConfigDict(frozen=True)

    interaction_id: Optional[int] = None
    user_id: str
    repo_id: int
    action: InteractionAction
    occurred_at: datetime
    source: str = "discovery"
    position: Optional[int] = None

    @field_validator("source")
    @classmethod
    def validate_source(cls, v: str) -> str:
        if v not in VALID_SOURCES:
            raise ValueError(f"Unknown source '{v}'. Must be one of {sorted(VALID_SOURCES)}.")
        return v


class InteractionSummary(BaseModel):
    """Aggregate view of one interaction used for in-memory re-ranking."""

    model_config = ConfigDict(frozen=True)

    repo_id: int
    action: InteractionAction
    language: Optional[str] = None
    topics: frozenset[str] = frozenset()

    @property
    def is_positive(self) -> bool:
        return self.action in POSITIVE_ACTIONS

    @property
    def is_negative(self) -> bool:
        return self.action == InteractionAction.SKIP
