"""Unit tests for config module."""

import os
from unittest.mock import patch

import pytest

from kizeo_jobs.config import DEFAULT_API_URL, DEFAULT_TENANTS, KizeoJobsConfig


def test_config_from_env_defaults():
    env = {
        "KIZEO_JOBS_DB_DSN": "postgresql://localhost/test",
        "KIZEO_API_TOKEN": "secret",
    }
    with patch.dict(os.environ, env, clear=True):
        config = KizeoJobsConfig.from_env()

    assert config.db_dsn == "postgresql://localhost/test"
    assert config.api_token == "secret"
    assert config.api_url == DEFAULT_API_URL
    assert config.api_delay_ms == 500
    assert config.stuck_timeout_minutes == 60
    assert config.memory_threshold_mb == 200
    assert config.max_attempts == 3
    assert config.backup_retention_days == 7
    assert config.backup_max_per_tenant == 2
    assert config.tenants == DEFAULT_TENANTS
    assert len(config.tenants) == 13
    assert config.operator_token is None


def test_config_from_env_overrides():
    env = {
        "KIZEO_JOBS_DB_DSN": "postgresql://localhost/test",
        "KIZEO_API_TOKEN": "secret",
        "KIZEO_API_URL": "https://example.test/rest/v3",
        "KIZEO_JOBS_API_DELAY_MS": "0",
        "KIZEO_JOBS_TENANTS": "s10, S40",
        "KIZEO_JOBS_PHOTO_DIR": "/data/img",
    }
    with patch.dict(os.environ, env, clear=True):
        config = KizeoJobsConfig.from_env()

    assert config.api_url == "https://example.test/rest/v3"
    assert config.api_delay_ms == 0
    assert config.tenants == ["S10", "S40"]
    assert config.photo_dir == "/data/img"


def test_config_missing_dsn():
    with patch.dict(os.environ, {"KIZEO_API_TOKEN": "secret"}, clear=True):
        with pytest.raises(ValueError, match="KIZEO_JOBS_DB_DSN"):
            KizeoJobsConfig.from_env()


def test_config_missing_token():
    with patch.dict(os.environ, {"KIZEO_JOBS_DB_DSN": "postgresql://x"}, clear=True):
        with pytest.raises(ValueError, match="KIZEO_API_TOKEN"):
            KizeoJobsConfig.from_env()


def test_config_invalid_number():
    env = {
        "KIZEO_JOBS_DB_DSN": "postgresql://x",
        "KIZEO_API_TOKEN": "secret",
        "KIZEO_JOBS_MAX_ATTEMPTS": "three",
    }
    with patch.dict(os.environ, env, clear=True):
        with pytest.raises(ValueError, match="Invalid numeric setting"):
            KizeoJobsConfig.from_env()


def test_is_valid_tenant():
    config = KizeoJobsConfig(db_dsn="postgresql://x", api_token="t")

    assert config.is_valid_tenant("S10")
    assert config.is_valid_tenant("s170")
    assert not config.is_valid_tenant("S20")
