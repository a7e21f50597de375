"""
Application configuration management.

Load order (each layer overrides the previous):
  1. ``config/default.toml``      — committed static defaults
  2. ``config/local.toml``        — optional local overrides (gitignored)
  3. ``.env``                     — local secrets and env overrides (gitignored)
  4. Environment variables        — ``REPOFINDER_*`` prefix (plus ``GITHUB_TOKEN``)

Entry point: ``load_config(config_path=None) -> AppConfig``

Every heuristic constant used by the recommendation core (scoring weights,
grade thresholds, popularity cap, pool floor and low-water mark) lives here so
it can be tuned without code changes.
"""

from __future__ import annotations

import os
import tomllib
from pathlib import Path
from typing import Any, Optional

from dotenv import load_dotenv
from pydantic import BaseModel, ConfigDict, field_validator, model_validator

# ── Sub-config models ─────────────────────────────────────────────────────────


class DatabaseConfig(BaseModel):
    """SQLite database connection settings."""

    model_config = ConfigDict(frozen=True)

    db_path: str = "data/db/repofinder.db"
    wal_mode: bool = True
    busy_timeout_ms: int = 5000


class GitHubConfig(BaseModel):
    """Remote repository search settings (GitHub REST API)."""

    model_config = ConfigDict(frozen=True)

    api_url: str = "https://api.github.com"
    token: Optional[str] = None
    timeout_seconds: float = 15.0
    max_retries: int = 5
    backoff_base_seconds: float = 1.0
    max_backoff_seconds: float = 60.0
    per_page: int = 100
    detail_concurrency: int = 8

    @field_validator("max_retries", "per_page", "detail_concurrency")
    @classmethod
    def validate_positive(cls, v: int) -> int:
        if v < 1:
            raise ValueError(f"Value must be >= 1, got {v}.")
        return v


class WeightsConfig(BaseModel):
    """Relative weight of each health category in the overall score."""

    model_config = ConfigDict(frozen=True)

    popularity: float = 0.20
    activity: float = 0.25
    maintenance: float = 0.20
    community: float = 0.15
    documentation: float = 0.10
    maturity: float = 0.10

    @model_validator(mode="after")
    def validate_weights(self) -> "WeightsConfig":
        values = self.model_dump()
        negative = [k for k, v in values.items() if v < 0]
        if negative:
            raise ValueError(f"Weights must be non-negative: {negative}.")
        if sum(values.values()) <= 0:
            raise ValueError("At least one health weight must be positive.")
        return self


class ScoringConfig(BaseModel):
    """HealthScorer weights and letter-grade thresholds."""

    model_config = ConfigDict(frozen=True)

    weights: WeightsConfig = WeightsConfig()
    grade_thresholds: dict[str, int] = {
        "A+": 90, "A": 80, "B+": 70, "B": 60, "C+": 50, "C": 40, "D": 30,
    }

    @field_validator("grade_thresholds")
    @classmethod
    def validate_thresholds(cls, v: dict[str, int]) -> dict[str, int]:
        # Imported here: scoring imports config types only under TYPE_CHECKING.
        from repofinder.scoring.health import validate_grade_thresholds

        validate_grade_thresholds(v)
        return v


class PoolConfig(BaseModel):
    """CandidatePool sizing, caching and refinement settings."""

    model_config = ConfigDict(frozen=True)

    pool_size: int = 100
    ttl_hours: float = 24.0
    low_water: int = 5
    health_blend: float = 0.3         # share of HealthScore.overall in the fit score
    like_boost_max: float = 20.0
    skip_penalty_max: float = 15.0
    similarity_threshold: float = 0.3
    history_size: int = 50            # recent interactions replayed on every rebuild

    @field_validator("health_blend", "similarity_threshold")
    @classmethod
    def validate_fraction(cls, v: float) -> float:
        if not 0.0 <= v <= 1.0:
            raise ValueError(f"Value must be in [0.0, 1.0], got {v}.")
        return v


class OrchestratorConfig(BaseModel):
    """Fallback cascade settings."""

    model_config = ConfigDict(frozen=True)

    popularity_cap_stars: int = 30000
    pool_tier_floor: int = 10
    tier_timeout_seconds: float = 10.0
    trending_window: str = "weekly"
    default_count: int = 20

    @field_validator("trending_window")
    @classmethod
    def validate_window(cls, v: str) -> str:
        valid = {"daily", "weekly", "monthly"}
        if v not in valid:
            raise ValueError(f"trending_window must be one of {sorted(valid)}, got '{v}'.")
        return v


class ClusterConfig(BaseModel):
    """Cluster shortlist rebuild settings."""

    model_config = ConfigDict(frozen=True)

    shortlist_size: int = 50


class LoggingConfig(BaseModel):
    """Logging output settings."""

    model_config = ConfigDict(frozen=True)

    level: str = "INFO"
    log_file: str = "data/logs/repofinder.log"
    json_format: bool = False

    @field_validator("level")
    @classmethod
    def validate_level(cls, v: str) -> str:
        valid = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        if v.upper() not in valid:
            raise ValueError(f"Log level must be one of {sorted(valid)}, got '{v}'.")
        return v.upper()


class AppConfig(BaseModel):
    """Complete application configuration — the single source of truth.

    The service facade, pipeline stages and CLI commands all receive an
    ``AppConfig`` instance constructed by ``load_config()``.
    """

    model_config = ConfigDict(frozen=True)

    database: DatabaseConfig = DatabaseConfig()
    github: GitHubConfig = GitHubConfig()
    scoring: ScoringConfig = ScoringConfig()
    pool: PoolConfig = PoolConfig()
    orchestrator: OrchestratorConfig = OrchestratorConfig()
    clusters: ClusterConfig = ClusterConfig()
    logging: LoggingConfig = LoggingConfig()
    debug: bool = False


# ── Loader ────────────────────────────────────────────────────────────────────

_PROJECT_ROOT = Path(__file__).parent.parent


def _find_project_root() -> Path:
    """Walk up from this file to find the project root (contains pyproject.toml)."""
    candidate = Path(__file__).parent
    for _ in range(5):
        if (candidate / "pyproject.toml").exists():
            return candidate
        candidate = candidate.parent
    return _PROJECT_ROOT


def load_config(config_path: Optional[Path] = None) -> AppConfig:
    """Load and merge application configuration.

    Args:
        config_path: Explicit path to a TOML config file. Defaults to
            ``<project_root>/config/default.toml``.

    Returns:
        Fully validated ``AppConfig`` instance.

    Raises:
        FileNotFoundError: If the specified ``config_path`` does not exist.
        pydantic.ValidationError: If merged config values fail validation.
    """
    root = _find_project_root()

    # 1. Load .env file (silently skip if missing)
    load_dotenv(dotenv_path=root / ".env", override=False)

    # 2. Load TOML config
    if config_path is None:
        config_path = root / "config" / "default.toml"

    config_path = Path(config_path)
    if not config_path.exists():
        raise FileNotFoundError(
            f"Config file not found: {config_path}\n"
            "Create config/default.toml or pass --config."
        )

    with open(config_path, "rb") as f:
        raw: dict[str, Any] = tomllib.load(f)

    local_config_path = config_path.parent / "local.toml"
    if local_config_path.exists():
        with open(local_config_path, "rb") as f:
            local_raw: dict[str, Any] = tomllib.load(f)
        raw = _deep_merge(raw, local_raw)

    # 3. Apply REPOFINDER_* environment variable overrides
    raw = _apply_env_overrides(raw)

    # 4. Build and validate AppConfig
    return _build_app_config(raw)


def _deep_merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """Recursively merge ``override`` into ``base``."""
    result = dict(base)
    for key, val in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(val, dict):
            result[key] = _deep_merge(result[key], val)
        else:
            result[key] = val
    return result


def _apply_env_overrides(raw: dict[str, Any]) -> dict[str, Any]:
    """Apply REPOFINDER_* env vars to the raw config dict.

    Supported overrides:
      REPOFINDER_DB_PATH       → raw["database"]["db_path"]
      REPOFINDER_LOG_LEVEL     → raw["logging"]["level"]
      REPOFINDER_DEBUG         → raw["debug"]
      REPOFINDER_GITHUB_TOKEN  → raw["github"]["token"]  (falls back to GITHUB_TOKEN)
    """
    if db_path := os.environ.get("REPOFINDER_DB_PATH"):
        raw.setdefault("database", {})["db_path"] = db_path

    if log_level := os.environ.get("REPOFINDER_LOG_LEVEL"):
        raw.setdefault("logging", {})["level"] = log_level

    if debug := os.environ.get("REPOFINDER_DEBUG"):
        raw["debug"] = debug.lower() in ("1", "true", "yes")

    token = os.environ.get("REPOFINDER_GITHUB_TOKEN") or os.environ.get("GITHUB_TOKEN")
    if token:
        raw.setdefault("github", {})["token"] = token

    return raw


def _build_app_config(raw: dict[str, Any]) -> AppConfig:
    """Map raw TOML dict to ``AppConfig`` model structure."""
    project = raw.pop("project", {})

    scoring_raw = dict(raw.get("scoring", {}))
    weights = WeightsConfig(**scoring_raw.pop("weights", {}))

    return AppConfig(
        database=DatabaseConfig(**raw.get("database", {})),
        github=GitHubConfig(**raw.get("github", {})),
        scoring=ScoringConfig(weights=weights, **scoring_raw),
        pool=PoolConfig(**raw.get("pool", {})),
        orchestrator=OrchestratorConfig(**raw.get("orchestrator", {})),
        clusters=ClusterConfig(**raw.get("clusters", {})),
        logging=LoggingConfig(**raw.get("logging", {})),
        debug=raw.get("debug", project.get("debug", False)),
    )
