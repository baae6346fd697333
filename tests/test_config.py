"""Unit tests for core/config.py -- SECRET_KEY policy, fixed session lifetime, rate limits."""

import pytest
from pydantic import ValidationError

from core.config import SESSION_LIFETIME_SECONDS, Settings


def test_debug_generates_key():
    settings = Settings(debug=True, secret_key="")
    assert len(settings.secret_key) >= 32


def test_production_requires_key():
    with pytest.raises(ValidationError, match="SECRET_KEY is required"):
        Settings(debug=False, secret_key="")


def test_short_key_rejected():
    with pytest.raises(ValidationError, match="at least 32 characters"):
        Settings(debug=True, secret_key="short")


def test_session_lifetime_is_fixed():
    assert Settings(debug=True).token_expire_seconds == SESSION_LIFETIME_SECONDS == 900
    with pytest.raises(ValidationError, match="fixed"):
        Settings(debug=True, token_expire_seconds=3600)


def test_rate_limits_default_and_override(monkeypatch):
    settings = Settings(debug=True)
    assert settings.login_rate_limit == "10/minute"
    assert settings.forgot_password_rate_limit == "5/minute"
    assert settings.register_admin_rate_limit == "5/minute"

    monkeypatch.setenv("REGISTER_ADMIN_RATE_LIMIT", "2/hour")
    assert Settings(debug=True).register_admin_rate_limit == "2/hour"
