"""Tests for settings validation and logging configuration."""

import pytest
from pydantic import ValidationError

from affiliatebase.core.logging import get_logging_config
from affiliatebase.core.settings import Settings
from affiliatebase.ranking.pipeline import job_options
from affiliatebase.ranking.score import ScoreWeights


def test_defaults():
    settings = Settings(_env_file=None)
    assert settings.featured_days == 30
    assert settings.rolling_window_days == 7
    assert settings.auth_configured is False


def test_env_overrides(monkeypatch):
    monkeypatch.setenv("SCORE_CLICK_WEIGHT", "12.5")
    monkeypatch.setenv("RECOMPUTE_BATCH_SIZE", "10")

    options = job_options(Settings(_env_file=None))

    assert options["weights"] == ScoreWeights(click_weight=12.5)
    assert options["batch_size"] == 10


def test_short_admin_password_rejected():
    with pytest.raises(ValidationError):
        Settings(_env_file=None, admin_password="short")


def test_short_jwt_secret_rejected():
    with pytest.raises(ValidationError):
        Settings(_env_file=None, jwt_secret="too-short")


def test_auth_configured():
    settings = Settings(_env_file=None, admin_password="long-enough-pass", jwt_secret="s" * 32)
    assert settings.auth_configured is True


def test_production_logs_json():
    config = get_logging_config("affiliatebase", Settings(_env_file=None, environment="production"))
    assert config["handlers"]["console"]["formatter"] == "json"
    assert config["formatters"]["json"]["static_fields"] == {"service": "affiliatebase"}
    assert set(config["formatters"]) == {"json"}


def test_development_logs_console():
    config = get_logging_config(settings=Settings(_env_file=None, log_level="DEBUG"))
    assert config["handlers"]["console"]["formatter"] == "console"
    assert config["loggers"]["affiliatebase"]["level"] == "DEBUG"
    assert config["loggers"]["uvicorn.access"]["level"] == "WARNING"

