"""Application configuration loaded from environment variables.

Settings for database, API, authentication, ephemeral tokens, and email.
Uses pydantic-settings for validation and .env file support.
"""

from typing import Literal

from pydantic import SecretStr, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

# Known insecure default password that must not be used in production
# Security: Runtime check in check_production_security() prevents use in production
_INSECURE_DEFAULT_PASSWORD = "accounts_dev_password"  # nosec B105

# Minimum length for AUTH_SECRET in production (256 bits = 32 bytes)
_MIN_AUTH_SECRET_LENGTH = 32


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    # Database
    database_host: str = "localhost"
    database_port: int = 5432
    database_name: str = "account_service"
    database_user: str = "account_user"
    database_password: str = _INSECURE_DEFAULT_PASSWORD
    database_pool_size: int = 10

    # API
    # 0.0.0.0 binds to all network interfaces (required for Docker containers)
    api_host: str = "0.0.0.0"  # nosec B104
    api_port: int = 8000

    # CORS (Security)
    # CRITICAL: Never set to ["*"] when allow_credentials=True
    allowed_origins: list[str] = ["http://localhost:3000"]

    # Application
    environment: str = "development"
    log_level: str = "INFO"

    # Authentication
    auth_secret: SecretStr = SecretStr("")
    auth_issuer: str = "account-service"
    session_ttl_hours: int = 24 * 7
    auth_cookie_name: str = "accounts.session-token"
    auth_cookie_secure: bool = True
    auth_cookie_samesite: Literal["lax", "strict", "none"] = "lax"
    auth_cookie_domain: str = ""
    bcrypt_rounds: int = 12
    password_min_length: int = 8

    # Ephemeral tokens (activation + password reset)
    activation_token_ttl_hours: int = 24
    password_reset_token_ttl_minutes: int = 60
    token_cleanup_enabled: bool = True
    token_cleanup_interval_seconds: int = 60 * 60

    # Email
    email_from: str = "noreply@example.com"
    resend_api_key: SecretStr = SecretStr("")

    # Frontend URL (activation and reset links point here)
    frontend_url: str = "http://localhost:3000"

    # Rate Limiting (Security)
    # Format: "count/period" (e.g., "10/minute", "100/hour")
    rate_limit_login: str = "5/15minute"
    rate_limit_token_email: str = "5/hour"
    rate_limit_token_redeem: str = "10/minute"
    rate_limit_enabled: bool = True  # Disable for testing

    @property
    def database_url(self) -> str:
        """Async database URL for SQLAlchemy."""
        return (
            f"postgresql+asyncpg://{self.database_user}:{self.database_password}"
            f"@{self.database_host}:{self.database_port}/{self.database_name}"
        )

    @model_validator(mode="after")
    def check_production_security(self) -> "Settings":
        """Validate production security requirements.

        Security: Prevents deployment with known insecure defaults.
        Checks:
        - SameSite=None requires Secure flag (all environments)
        - CORS must not use wildcard origin (all environments)
        - Password policy minimum must be positive (all environments)
        - Database password must not be the default in production
        - AUTH_SECRET must be set and >= 32 chars in production
        """
        if self.auth_cookie_samesite == "none" and not self.auth_cookie_secure:
            msg = (
                "AUTH_COOKIE_SECURE must be true when AUTH_COOKIE_SAMESITE=none. "
                "Browsers reject SameSite=None cookies without the Secure flag."
            )
            raise ValueError(msg)

        if "*" in self.allowed_origins:
            msg = (
                "ALLOWED_ORIGINS must not contain '*' (wildcard). "
                "This application uses credentials (cookies) which are "
                "incompatible with wildcard CORS origins."
            )
            raise ValueError(msg)

        if self.password_min_length < 1:
            msg = (
                "PASSWORD_MIN_LENGTH must be positive. "
                f"Got: {self.password_min_length}"
            )
            raise ValueError(msg)

        if self.environment == "production":
            if self.database_password == _INSECURE_DEFAULT_PASSWORD:
                msg = (
                    "Cannot use default database password in production. "
                    "Set DATABASE_PASSWORD environment variable to a secure value."
                )
                raise ValueError(msg)

            secret_value = self.auth_secret.get_secret_value()
            if not secret_value:
                msg = (
                    "AUTH_SECRET must be set in production. "
                    'Generate with: python -c "import secrets; '
                    'print(secrets.token_hex(32))"'
                )
                raise ValueError(msg)
            if len(secret_value) < _MIN_AUTH_SECRET_LENGTH:
                msg = (
                    f"AUTH_SECRET must be at least {_MIN_AUTH_SECRET_LENGTH} "
                    "characters for adequate security."
                )
                raise ValueError(msg)

        return self


settings = Settings()
