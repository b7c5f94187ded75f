"""Application settings and configuration helpers."""
from functools import lru_cache
import os

from dotenv import load_dotenv
from pydantic import BaseModel, Field

load_dotenv()


class Settings(BaseModel):
    """Runtime configuration loaded from environment variables."""

    database_url: str = Field(
        default="sqlite+aiosqlite:///./accounts.db", alias="DATABASE_URL"
    )
    secret_key: str = Field(default="change-me", alias="SECRET_KEY")
    access_token_expires_minutes: int = Field(
        default=60 * 24, alias="ACCESS_TOKEN_EXPIRES_MINUTES"
    )
    remember_me_days: int = Field(default=30, alias="REMEMBER_ME_DAYS")

    require_confirmed_email: bool = Field(default=False, alias="REQUIRE_CONFIRMED_EMAIL")
    application_url: str = Field(default="http://localhost:5000", alias="APPLICATION_URL")
    token_lifetime_hours: int = Field(default=24, alias="TOKEN_LIFETIME_HOURS")

    # Lockout
    max_failed_access_attempts: int = Field(default=10, alias="MAX_FAILED_ACCESS_ATTEMPTS")
    lockout_minutes: int = Field(default=30, alias="LOCKOUT_MINUTES")

    # Password policy
    password_required_length: int = Field(default=6, alias="PASSWORD_REQUIRED_LENGTH")
    password_require_digit: bool = Field(default=False, alias="PASSWORD_REQUIRE_DIGIT")
    password_require_lowercase: bool = Field(default=False, alias="PASSWORD_REQUIRE_LOWERCASE")
    password_require_uppercase: bool = Field(default=False, alias="PASSWORD_REQUIRE_UPPERCASE")
    password_require_non_alphanumeric: bool = Field(
        default=False, alias="PASSWORD_REQUIRE_NON_ALPHANUMERIC"
    )

    session_cookie_name: str = Field(default="account_session", alias="SESSION_COOKIE_NAME")
    session_cookie_secure: bool = Field(default=False, alias="SESSION_COOKIE_SECURE")

    # Outgoing mail; delivery is skipped when no host is configured
    smtp_host: str = Field(default="", alias="SMTP_HOST")
    smtp_port: int = Field(default=587, alias="SMTP_PORT")
    smtp_username: str = Field(default="", alias="SMTP_USERNAME")
    smtp_password: str = Field(default="", alias="SMTP_PASSWORD")
    smtp_from_email: str = Field(default="no-reply@localhost", alias="SMTP_FROM_EMAIL")
    smtp_from_name: str = Field(default="Account Service", alias="SMTP_FROM_NAME")
    smtp_start_tls: bool = Field(default=True, alias="SMTP_START_TLS")

    log_level: str = Field(default="INFO", alias="LOG_LEVEL")
    log_json: bool = Field(default=False, alias="LOG_JSON")
    api_logging_enabled: bool = Field(default=True, alias="API_LOGGING_ENABLED")

    # Optional administrator created at startup
    admin_username: str = Field(default="", alias="ADMIN_USERNAME")
    admin_email: str = Field(default="", alias="ADMIN_EMAIL")
    admin_password: str = Field(default="", alias="ADMIN_PASSWORD")

    model_config = {
        "populate_by_name": True,
        "extra": "ignore",
    }


@lru_cache
def get_settings() -> Settings:
    """Return a cached Settings instance."""

    overrides = {
        field.alias: os.environ[field.alias]
        for field in Settings.model_fields.values()
        if field.alias and field.alias in os.environ
    }
    return Settings(**overrides)
