"""Tests for application configuration.

Covers defaults for the auth and token settings and the security checks
run by Settings.check_production_security().
"""

import pytest
from pydantic import SecretStr, ValidationError

from app.core.config import _INSECURE_DEFAULT_PASSWORD, Settings

# Reusable test constants
_SECURE_DB_PASSWORD = "my-secure-production-password-123!"  # nosec B105
_TEST_AUTH_SECRET = "a" * 64  # nosec B105  # gitleaks:allow
_PRODUCTION = "production"


def _production(**overrides) -> Settings:
    values = {
        "environment": _PRODUCTION,
        "database_password": _SECURE_DB_PASSWORD,
        "auth_secret": SecretStr(_TEST_AUTH_SECRET),
    }
    values.update(overrides)
    return Settings(**values)


class TestProductionSecurityValidation:
    """Tests for production security requirements."""

    def test_allows_default_password_in_development(self):
        s = Settings(
            environment="development",
            database_password=_INSECURE_DEFAULT_PASSWORD,
        )
        assert s.database_password == _INSECURE_DEFAULT_PASSWORD

    def test_rejects_default_password_in_production(self):
        with pytest.raises(ValidationError, match="default database password"):
            _production(database_password=_INSECURE_DEFAULT_PASSWORD)

    def test_accepts_secure_production_settings(self):
        s = _production()
        assert s.environment == _PRODUCTION

    def test_rejects_missing_auth_secret_in_production(self):
        with pytest.raises(ValidationError, match="AUTH_SECRET must be set"):
            _production(auth_secret=SecretStr(""))

    def test_rejects_short_auth_secret_in_production(self):
        with pytest.raises(ValidationError, match="at least 32"):
            _production(auth_secret=SecretStr("short"))

    def test_allows_empty_auth_secret_outside_production(self):
        s = Settings(environment="staging", auth_secret=SecretStr(""))
        assert s.environment == "staging"


class TestGeneralSecurityValidation:
    """Checks that apply in every environment."""

    def test_rejects_samesite_none_without_secure(self):
        with pytest.raises(ValidationError, match="AUTH_COOKIE_SECURE"):
            Settings(auth_cookie_samesite="none", auth_cookie_secure=False)

    def test_allows_samesite_none_with_secure(self):
        s = Settings(auth_cookie_samesite="none", auth_cookie_secure=True)
        assert s.auth_cookie_samesite == "none"

    def test_rejects_wildcard_cors_origin(self):
        with pytest.raises(ValidationError, match="wildcard"):
            Settings(allowed_origins=["*"])

    def test_rejects_non_positive_password_minimum(self):
        with pytest.raises(ValidationError, match="PASSWORD_MIN_LENGTH"):
            Settings(password_min_length=0)


class TestDefaults:
    """Defaults for auth and ephemeral token settings."""

    def test_token_lifetimes(self):
        s = Settings()
        assert s.activation_token_ttl_hours == 24
        assert s.password_reset_token_ttl_minutes == 60
        assert s.session_ttl_hours == 24 * 7

    def test_cookie_defaults_are_secure(self):
        s = Settings()
        assert s.auth_cookie_secure is True
        assert s.auth_cookie_samesite == "lax"

    def test_database_url_uses_asyncpg(self):
        s = Settings(
            database_user="u",
            database_password="p",  # nosec B106
            database_host="db",
            database_port=6543,
            database_name="accounts",
        )
        assert s.database_url == "postgresql+asyncpg://u:p@db:6543/accounts"
