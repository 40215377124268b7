"""Unit tests for core/config.py -- SECRET_KEY policy and environment parsing."""

from __future__ import annotations

import pytest
from pydantic import ValidationError

from core.config import Settings, get_settings

_KEY = "k" * 32


@pytest.fixture(autouse=True)
def _isolated_env(monkeypatch: pytest.MonkeyPatch):
    for var in ("SECRET_KEY", "DEBUG", "DATABASE_URL", "BCRYPT_ROUNDS", "LOCKOUT_THRESHOLD", "ALLOWED_HOSTS"):
        monkeypatch.delenv(var, raising=False)
    yield


def test_production_requires_secret_key() -> None:
    with pytest.raises(ValidationError, match="SECRET_KEY is required"):
        Settings(_env_file=None)


def test_short_secret_key_rejected() -> None:
    with pytest.raises(ValidationError, match="at least 32"):
        Settings(_env_file=None, secret_key="short")


def test_debug_generates_secret_key() -> None:
    settings = Settings(_env_file=None, debug=True)
    assert len(settings.secret_key) >= 32
    assert Settings(_env_file=None, debug=True).secret_key != settings.secret_key


def test_defaults(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("SECRET_KEY", _KEY)
    settings = Settings(_env_file=None)
    assert settings.access_token_ttl_seconds == 3600
    assert settings.refresh_token_ttl_days == 7
    assert settings.lockout_threshold == 5
    assert settings.lockout_window_minutes == 15
    assert settings.bcrypt_rounds == 12
    assert settings.database_url.startswith("sqlite:///")
    assert settings.allowed_hosts == ["localhost", "127.0.0.1", "*.localhost"]
    assert "testserver" not in settings.allowed_hosts


def test_environment_overrides(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("SECRET_KEY", _KEY)
    monkeypatch.setenv("LOCKOUT_THRESHOLD", "3")
    monkeypatch.setenv("BCRYPT_ROUNDS", "4")
    settings = Settings(_env_file=None)
    assert settings.lockout_threshold == 3
    assert settings.bcrypt_rounds == 4


def test_bcrypt_rounds_bounds() -> None:
    with pytest.raises(ValidationError):
        Settings(_env_file=None, secret_key=_KEY, bcrypt_rounds=3)
    with pytest.raises(ValidationError):
        Settings(_env_file=None, secret_key=_KEY, bcrypt_rounds=32)


@pytest.mark.parametrize(
    "url, expected",
    [
        ("postgresql://auth:hunter2@db:5432/auth", "postgresql://***:***@db:5432/auth"),
        ("sqlite:///authwarden.db", "sqlite:///authwarden.db"),
    ],
)
def test_masked_database_url(url: str, expected: str) -> None:
    settings = Settings(_env_file=None, secret_key=_KEY, database_url=url)
    assert settings.masked_database_url() == expected


def test_get_settings_is_cached() -> None:
    assert get_settings() is get_settings()
