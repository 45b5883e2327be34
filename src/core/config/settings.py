# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Environment configuration for the Pleeno API and workers.

Each concern reads its own prefix (DB_, REDIS_, JWT_, RATE_LIMIT_, CORS_,
API_, EMAIL_, JOBS_); a few provider keys keep their conventional names
(RESEND_API_KEY, ACCESS_TOKEN_EXPIRE_MINUTES, REFRESH_TOKEN_EXPIRE_DAYS).
The API process, the Dramatiq workers and alembic all build the same
Settings, so one .env file configures everything.

Example:
    >>> settings = get_settings()
    >>> settings.jobs.status_update_cron
    '0 7 * * *'
"""

from functools import lru_cache
from typing import Literal, Self

from pydantic import Field, SecretStr, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_JWT_SECRET = "change-this-in-production"
DEFAULT_JOBS_API_KEY = "change-this-jobs-key"


def _prefixed(prefix: str) -> SettingsConfigDict:
    return SettingsConfigDict(env_prefix=prefix, extra="ignore")


class DatabaseSettings(BaseSettings):
    """The shared PostgreSQL database.

    Every agency lives in the same schema. Agency scoped sessions switch to
    ``app_role`` (a role without BYPASSRLS) and set app.current_agency_id so
    the row level security policies apply; an empty ``app_role`` skips the
    switch, for local databases where the login role already lacks BYPASSRLS.
    """

    model_config = _prefixed("DB_")

    user: str = "pleeno"
    password: SecretStr = SecretStr("pleeno_password")
    host: str = "localhost"
    port: int = 5432
    database: str = "pleeno"
    pool_size: int = 10
    max_overflow: int = 20
    echo: bool = False
    # Interpolated into SET LOCAL ROLE, so only plain identifiers are allowed.
    app_role: str = Field(default="pleeno_app", pattern=r"^[a-z_][a-z0-9_]*$|^$")

    @property
    def url(self) -> str:
        password = self.password.get_secret_value()
        return (
            f"postgresql+asyncpg://{self.user}:{password}"
            f"@{self.host}:{self.port}/{self.database}"
        )


class RedisSettings(BaseSettings):
    """Redis for the Dramatiq broker, rate limit counters and dashboard cache."""

    model_config = _prefixed("REDIS_")

    host: str = "localhost"
    port: int = 6379
    password: SecretStr = SecretStr("")
    database: int = 0
    max_connections: int = 50
    dashboard_ttl_seconds: int = 300

    @property
    def url(self) -> str:
        password = self.password.get_secret_value()
        credentials = f":{password}@" if password else ""
        return f"redis://{credentials}{self.host}:{self.port}/{self.database}"


class JWTSettings(BaseSettings):
    model_config = _prefixed("JWT_")

    secret_key: SecretStr = SecretStr(DEFAULT_JWT_SECRET)
    algorithm: str = "HS256"
    access_token_expire_minutes: int = Field(
        default=30, validation_alias="ACCESS_TOKEN_EXPIRE_MINUTES"
    )
    refresh_token_expire_days: int = Field(default=7, validation_alias="REFRESH_TOKEN_EXPIRE_DAYS")


class RateLimitSettings(BaseSettings):
    """slowapi limits. Counters go to ``storage_uri``, or to Redis when it is empty."""

    model_config = _prefixed("RATE_LIMIT_")

    enabled: bool = True
    storage_uri: str = ""
    requests_per_minute: int = 60
    login_per_minute: int = 5


class CORSSettings(BaseSettings):
    model_config = _prefixed("CORS_")

    # Comma separated, e.g. "https://app.pleeno.com,http://localhost:3000"
    origins: str = "http://localhost:3000"
    allow_credentials: bool = True
    allow_methods: list[str] = ["*"]
    allow_headers: list[str] = ["*"]

    @property
    def origins_list(self) -> list[str]:
        return [origin.strip() for origin in self.origins.split(",") if origin.strip()]


class APISettings(BaseSettings):
    """HTTP server and file handling.

    ``public_url`` is the web app origin used to build links in emails
    (invitation acceptance, payment plan pages). Offer letters and other
    student documents are written below ``upload_dir``.
    """

    model_config = _prefixed("API_")

    host: str = "0.0.0.0"
    port: int = 8000
    reload: bool = False
    public_url: str = "http://localhost:3000"
    upload_dir: str = "./uploads"
    max_upload_bytes: int = 10 * 1024 * 1024


class EmailSettings(BaseSettings):
    """Outbound email. Resend in deployed environments, SMTP for a local mail catcher."""

    model_config = _prefixed("EMAIL_")

    provider: Literal["resend", "smtp"] = "resend"
    from_address: str = "Pleeno <noreply@pleeno.com>"
    resend_api_key: SecretStr | None = Field(default=None, validation_alias="RESEND_API_KEY")
    resend_api_url: str = "https://api.resend.com/emails"
    smtp_host: str | None = None
    smtp_port: int = 587
    smtp_user: str | None = None
    smtp_password: SecretStr | None = None
    smtp_use_tls: bool = True
    timeout: float = 30.0


class JobSettings(BaseSettings):
    """The installment jobs and their scheduler.

    Attributes:
        api_key: Expected X-API-Key on the /api/v1/jobs endpoints.
        max_retries: Retries of a job step after a transient database error.
        retry_base_delay: First backoff in seconds, doubled on each retry.
        status_update_cron: UTC crontab of the overdue status job.
        due_soon_cron: UTC crontab of the due soon reminders.
        health_check_interval_minutes: How often the job health check runs.
        health_alert_hours: Hours without a status run before health is critical.
        alert_email: Recipient of missed run alerts. None disables the email.
        scheduler_enabled: Run the APScheduler in this API process. Disable it
            on all but one replica.
    """

    model_config = _prefixed("JOBS_")

    api_key: SecretStr = SecretStr(DEFAULT_JOBS_API_KEY)
    max_retries: int = Field(default=3, ge=0)
    retry_base_delay: float = Field(default=1.0, ge=0)
    # 07:00 UTC is 17:00 in Brisbane, the end of the agency business day.
    status_update_cron: str = "0 7 * * *"
    due_soon_cron: str = "0 19 * * *"
    health_check_interval_minutes: int = Field(default=60, ge=1)
    health_alert_hours: int = 25
    alert_email: str | None = None
    scheduler_enabled: bool = True


class Settings(BaseSettings):
    """All configuration. Obtain it through get_settings()."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        case_sensitive=False,
    )

    environment: Literal["development", "staging", "production"] = "development"
    debug: bool = True
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = "DEBUG"

    database: DatabaseSettings = Field(default_factory=DatabaseSettings)
    redis: RedisSettings = Field(default_factory=RedisSettings)
    jwt: JWTSettings = Field(default_factory=JWTSettings)
    rate_limit: RateLimitSettings = Field(default_factory=RateLimitSettings)
    cors: CORSSettings = Field(default_factory=CORSSettings)
    api: APISettings = Field(default_factory=APISettings)
    email: EmailSettings = Field(default_factory=EmailSettings)
    jobs: JobSettings = Field(default_factory=JobSettings)

    @model_validator(mode="after")
    def reject_default_secrets_in_production(self) -> Self:
        """Refuse to start production with the shipped JWT secret or jobs key.

        Raises:
            ValueError: If either secret still has its default value.
        """
        if not self.is_production:
            return self
        if self.jwt.secret_key.get_secret_value() == DEFAULT_JWT_SECRET:
            raise ValueError(
                "JWT secret key must be changed from default in production. "
                "Set JWT_SECRET_KEY."
            )
        if self.jobs.api_key.get_secret_value() == DEFAULT_JOBS_API_KEY:
            raise ValueError(
                "Jobs API key must be changed from default in production. Set JOBS_API_KEY."
            )
        return self

    @property
    def is_development(self) -> bool:
        return self.environment == "development"

    @property
    def is_production(self) -> bool:
        return self.environment == "production"


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()


def clear_settings_cache() -> None:
    """Forget the cached Settings so the next get_settings() rereads the environment."""
    get_settings.cache_clear()
