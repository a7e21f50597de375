"""
Enumerations for user preferences and interaction history.

These values cross the storage boundary (``user_preferences`` and
``interactions`` tables) as plain strings, so every member's value is the
canonical lower-case slug.

This module has NO imports from any other ``repofinder`` package.
"""

from enum import StrEnum


class InteractionAction(StrEnum):
    """What a user did with a repository card."""

    VIEW = "view"
    """Card was shown; counts towards the seen-set."""

    LIKE = "like"
    """Positive signal; similar repositories are boosted."""

    SAVE = "save"
    """Strongest positive signal; also lands in the user's saved list."""

    SKIP = "skip"
    """Negative signal; similar repositories are penalised."""


POSITIVE_ACTIONS = frozenset({InteractionAction.LIKE, InteractionAction.SAVE})


class PopularityWeight(StrEnum):
    """How much the user cares about star count."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    """Disables the popularity cap on every recommendation tier."""


class ActivityPreference(StrEnum):
    """Preferred repository activity profile."""

    ACTIVE = "active"
    """Pushed within the last week."""

    STABLE = "stable"
    """Older, established and reasonably popular."""

    TRENDING = "trending"
    """Currently accumulating stars."""

    ANY = "any"


class DocumentationImportance(StrEnum):
    """How much weight good documentation carries in content fit."""

    CRITICAL = "critical"
    IMPORTANT = "important"
    NICE_TO_HAVE = "nice-to-have"


class Goal(StrEnum):
    """Why the user is browsing repositories."""

    LEARNING = "learning"
    BUILDING = "building"
    FINDING_SOLUTIONS = "finding-solutions"
    CONTRIBUTING = "contributing"
    INSPIRATION = "inspiration"
