"""
Unit tests for settings.
It asserts expected behavior and guards against regressions in the corresponding component.
These tests are executed by `pytest` locally and in CI and should remain deterministic.
"""

import pytest
from sqlalchemy.engine import make_url

from src.api.api_config import load_api_config
from src.common import settings as settings_module


def test_load_settings_success() -> None:
    settings_module.get_settings.cache_clear()
    settings = settings_module.get_settings()
    assert settings.PROJECT_NAME
    assert settings.DB_PORT > 0


def test_load_settings_missing_required(monkeypatch: pytest.MonkeyPatch) -> None:
    settings_module.get_settings.cache_clear()
    monkeypatch.delenv("PROJECT_NAME", raising=False)
    with pytest.raises(RuntimeError, match="Missing required environment variables"):
        settings_module.load_settings(load_env=False)


def test_load_settings_rejects_bad_port(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("DB_PORT", "not-a-port")
    with pytest.raises(RuntimeError, match="Invalid environment configuration"):
        settings_module.load_settings(load_env=False)


def test_database_url_override_wins() -> None:
    settings = settings_module.load_settings(load_env=False)
    assert settings.database_url == "sqlite://"


def test_database_url_built_from_parts(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv("DATABASE_URL", raising=False)
    monkeypatch.setenv("DB_HOST", "db.internal")
    monkeypatch.setenv("DB_PORT", "6543")
    monkeypatch.setenv("DB_NAME", "MoviesDB")
    monkeypatch.setenv("DB_USER", "movies")
    monkeypatch.setenv("DB_PASSWORD", "p@ss word")

    url = make_url(settings_module.load_settings(load_env=False).database_url)

    assert url.drivername == "postgresql+psycopg2"
    assert url.host == "db.internal"
    assert url.port == 6543
    assert url.database == "MoviesDB"
    assert url.password == "p@ss word"
    assert url.query["sslmode"] == "require"


def test_untrusted_certificate_requires_verification(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv("DATABASE_URL", raising=False)
    monkeypatch.setenv("DB_TRUST_SERVER_CERTIFICATE", "false")

    url = make_url(settings_module.load_settings(load_env=False).database_url)

    assert url.query["sslmode"] == "verify-full"


def test_api_config_uses_settings_database_url(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("API_ALLOWED_ORIGINS", "http://localhost:3000, http://example.test")
    monkeypatch.setenv("API_ENABLE_REQUEST_LOGGING", "off")

    config = load_api_config(load_env=False)

    assert config.database_url == "sqlite://"
    assert config.environment == "test"
    assert config.allowed_origins == ["http://localhost:3000", "http://example.test"]
    assert config.enable_request_logging is False


def test_api_config_rejects_non_boolean_flag(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("API_ENABLE_REQUEST_LOGGING", "sometimes")
    with pytest.raises(ValueError, match="boolean-like"):
        load_api_config(load_env=False)
