"""
Tests for repofinder.config: defaults, TOML loading, local overrides and
REPOFINDER_* environment overrides.
"""

from __future__ import annotations

import pytest
from pydantic import ValidationError

from repofinder.config import (
    AppConfig,
    OrchestratorConfig,
    PoolConfig,
    ScoringConfig,
    WeightsConfig,
    load_config,
)

_ENV_VARS = (
    "REPOFINDER_DB_PATH",
    "REPOFINDER_LOG_LEVEL",
    "REPOFINDER_DEBUG",
    "REPOFINDER_GITHUB_TOKEN",
    "GITHUB_TOKEN",
)


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in _ENV_VARS:
        monkeypatch.delenv(name, raising=False)


def _write(path, text: str):
    path.write_text(text, encoding="utf-8")
    return path


class TestDefaults:
    def test_core_constants(self):
        config = AppConfig()
        assert config.orchestrator.popularity_cap_stars == 30000
        assert config.orchestrator.pool_tier_floor == 10
        assert config.pool.low_water == 5
        assert config.scoring.weights.activity == pytest.approx(0.25)
        assert config.scoring.grade_thresholds["A+"] == 90

    def test_committed_default_file_matches_models(self):
        assert load_config() == AppConfig()


class TestValidation:
    def test_negative_weight(self):
        with pytest.raises(ValidationError, match="non-negative"):
            WeightsConfig(popularity=-0.1)

    def test_all_zero_weights(self):
        with pytest.raises(ValidationError, match="positive"):
            WeightsConfig(
                popularity=0, activity=0, maintenance=0,
                community=0, documentation=0, maturity=0,
            )

    def test_thresholds_must_descend(self):
        with pytest.raises(ValidationError):
            ScoringConfig(grade_thresholds={"A+": 50, "A": 80, "B+": 70, "B": 60, "C+": 45, "C": 40, "D": 30})

    def test_fraction_range(self):
        with pytest.raises(ValidationError):
            PoolConfig(health_blend=1.5)

    def test_unknown_trending_window(self):
        with pytest.raises(ValidationError, match="trending_window"):
            OrchestratorConfig(trending_window="yearly")


class TestLoadConfig:
    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            load_config(tmp_path / "nope.toml")

    def test_toml_values_applied(self, tmp_path):
        path = _write(tmp_path / "app.toml", """
[orchestrator]
popularity_cap_stars = 5000

[scoring.weights]
popularity = 1.0

[logging]
level = "debug"
""")
        config = load_config(path)
        assert config.orchestrator.popularity_cap_stars == 5000
        assert config.scoring.weights.popularity == 1.0
        assert config.scoring.weights.activity == pytest.approx(0.25)
        assert config.logging.level == "DEBUG"

    def test_local_toml_overrides(self, tmp_path):
        path = _write(tmp_path / "default.toml", "[pool]\npool_size = 100\nlow_water = 5\n")
        _write(tmp_path / "local.toml", "[pool]\npool_size = 40\n")
        config = load_config(path)
        assert config.pool.pool_size == 40
        assert config.pool.low_water == 5

    def test_env_overrides(self, tmp_path, monkeypatch):
        path = _write(tmp_path / "app.toml", "[database]\ndb_path = 'from-file.db'\n")
        monkeypatch.setenv("REPOFINDER_DB_PATH", "/tmp/env.db")
        monkeypatch.setenv("REPOFINDER_DEBUG", "true")
        monkeypatch.setenv("GITHUB_TOKEN", "ghp_fallback")
        config = load_config(path)
        assert config.database.db_path == "/tmp/env.db"
        assert config.debug is True
        assert config.github.token == "ghp_fallback"

    def test_prefixed_token_wins(self, tmp_path, monkeypatch):
        path = _write(tmp_path / "app.toml", "")
        monkeypatch.setenv("GITHUB_TOKEN", "ghp_fallback")
        monkeypatch.setenv("REPOFINDER_GITHUB_TOKEN", "ghp_primary")
        assert load_config(path).github.token == "ghp_primary"
