"""
Technology cluster taxonomy for cold-start and fallback recommendations.

A cluster is a named technology domain ("frontend", "data-science", …) that
groups repositories sharing a stack. Clusters power two things:

  - ``detect_primary_cluster``: the user's declared preferences are matched
    against ``CLUSTER_KEYWORDS`` and the best-overlapping cluster wins.
  - The ``refresh_clusters`` pipeline stage assigns catalog repositories to
    clusters by overlapping repository tags with the same keyword sets.

``CLUSTER_PRIORITY`` is the canonical tie-break order: when two clusters match
a preference set equally well, the one listed earlier wins.

The integrity contract (checked in ``tests/test_taxonomy``):
  - Every ``ClusterId`` appears exactly once in ``CLUSTER_PRIORITY``.
  - Every ``ClusterId`` has a non-empty keyword set and a display entry.
  - Keywords are lower-case.

This module has NO imports from any other ``repofinder`` package.
"""

from enum import StrEnum


class ClusterId(StrEnum):
    """Named technology domain."""

    FRONTEND = "frontend"
    """Browser UI: component frameworks, CSS tooling, bundlers."""

    BACKEND = "backend"
    """Server-side services: web frameworks, APIs, databases."""

    AI_ML = "ai-ml"
    """Machine learning, deep learning and LLM tooling."""

    MOBILE = "mobile"
    """Native and cross-platform mobile apps."""

    DEVOPS = "devops"
    """Infrastructure, CI/CD, containers and observability."""

    DATA_SCIENCE = "data-science"
    """Analysis, notebooks, dataframes and visualisation."""

    DESKTOP = "desktop"
    """Desktop applications and cross-platform GUI shells."""

    GAME_DEV = "game-dev"
    """Game engines, graphics and game tooling."""


# Earlier = higher priority when overlap scores tie.
CLUSTER_PRIORITY: tuple[ClusterId, ...] = (
    ClusterId.FRONTEND,
    ClusterId.BACKEND,
    ClusterId.AI_ML,
    ClusterId.MOBILE,
    ClusterId.DEVOPS,
    ClusterId.DATA_SCIENCE,
    ClusterId.DESKTOP,
    ClusterId.GAME_DEV,
)

DEFAULT_CLUSTER = ClusterId.FRONTEND

CLUSTER_KEYWORDS: dict[ClusterId, frozenset[str]] = {
    ClusterId.FRONTEND: frozenset({
        "frontend", "web", "javascript", "typescript", "react", "vue", "angular",
        "svelte", "next.js", "nextjs", "nuxt", "css", "html", "tailwindcss",
        "webpack", "vite", "ui", "web-development",
    }),
    ClusterId.BACKEND: frozenset({
        "backend", "api", "rest", "graphql", "server", "express", "django",
        "flask", "fastapi", "spring", "laravel", "rails", "node", "nodejs",
        "go", "java", "rust", "php", "database", "microservices",
    }),
    ClusterId.AI_ML: frozenset({
        "ai-ml", "ai", "ml", "machine-learning", "deep-learning", "llm",
        "tensorflow", "pytorch", "nlp", "computer-vision", "transformers",
        "neural-network", "artificial-intelligence",
    }),
    ClusterId.MOBILE: frozenset({
        "mobile", "android", "ios", "flutter", "react-native", "ionic",
        "swift", "kotlin", "dart", "swiftui", "jetpack-compose",
    }),
    ClusterId.DEVOPS: frozenset({
        "devops", "docker", "kubernetes", "terraform", "ansible", "ci",
        "cicd", "ci-cd", "infrastructure", "monitoring", "helm", "aws",
        "cloud", "shell",
    }),
    ClusterId.DATA_SCIENCE: frozenset({
        "data-science", "data", "pandas", "numpy", "jupyter", "notebook",
        "visualization", "data-analysis", "statistics", "r", "julia",
        "scipy", "matplotlib",
    }),
    ClusterId.DESKTOP: frozenset({
        "desktop", "electron", "tauri", "qt", "gtk", "wpf", "winforms",
        "c#", "gui",
    }),
    ClusterId.GAME_DEV: frozenset({
        "game-dev", "gamedev", "game", "game-engine", "unity", "godot",
        "unreal-engine", "opengl", "vulkan", "c++", "lua",
    }),
}

CLUSTER_DISPLAY: dict[ClusterId, tuple[str, str]] = {
    ClusterId.FRONTEND:     ("Frontend", "UI frameworks, styling and browser tooling."),
    ClusterId.BACKEND:      ("Backend", "Servers, APIs and data stores."),
    ClusterId.AI_ML:        ("AI & ML", "Models, training and LLM tooling."),
    ClusterId.MOBILE:       ("Mobile", "iOS, Android and cross-platform apps."),
    ClusterId.DEVOPS:       ("DevOps", "Containers, CI/CD and infrastructure as code."),
    ClusterId.DATA_SCIENCE: ("Data Science", "Analysis, notebooks and visualisation."),
    ClusterId.DESKTOP:      ("Desktop", "Native and cross-platform desktop apps."),
    ClusterId.GAME_DEV:     ("Game Dev", "Engines, graphics and game tooling."),
}


def cluster_overlap(terms: set[str] | frozenset[str], cluster: ClusterId) -> int:
    """Count how many of ``terms`` (lower-cased) are keywords of ``cluster``."""
    return len({t.lower() for t in terms} & CLUSTER_KEYWORDS[cluster])


def best_cluster_for_terms(terms: set[str] | frozenset[str]) -> tuple[ClusterId, int]:
    """Return the best-overlapping cluster and its overlap count.

    Ties (including zero overlap everywhere) resolve to the earliest entry in
    ``CLUSTER_PRIORITY``.
    """
    best = DEFAULT_CLUSTER
    best_overlap = 0
    for cluster in CLUSTER_PRIORITY:
        overlap = cluster_overlap(terms, cluster)
        if overlap > best_overlap:
            best, best_overlap = cluster, overlap
    return best, best_overlap
