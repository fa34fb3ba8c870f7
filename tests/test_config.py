"""Unit tests for core/config.py -- Settings defaults and bounds."""

import pytest
from pydantic import ValidationError

from core.config import Settings


def test_defaults():
    s = Settings(_env_file=None, bcrypt_rounds=10, session_expire_days=7)
    assert s.session_expire_days == 7
    assert s.bcrypt_rounds == 10
    assert s.database_url.startswith("sqlite:///")


@pytest.mark.parametrize("rounds", [3, 32])
def test_bcrypt_rounds_bounds(rounds):
    with pytest.raises(ValidationError):
        Settings(_env_file=None, bcrypt_rounds=rounds)


def test_session_days_must_be_positive():
    with pytest.raises(ValidationError):
        Settings(_env_file=None, session_expire_days=0)


def test_env_override(monkeypatch):
    monkeypatch.setenv("SESSION_EXPIRE_DAYS", "14")
    monkeypatch.setenv("SECURE_COOKIES", "true")
    s = Settings(_env_file=None)
    assert s.session_expire_days == 14
    assert s.secure_cookies is True


def test_default_allowed_hosts_are_local_only(monkeypatch):
    monkeypatch.delenv("ALLOWED_HOSTS", raising=False)
    s = Settings(_env_file=None)
    assert s.allowed_hosts == ["localhost", "127.0.0.1", "*.localhost"]
