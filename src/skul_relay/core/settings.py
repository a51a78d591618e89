"""Application settings and configuration.

This module defines all configuration options for the Skul Relay service.
Settings are loaded from environment variables with sensible defaults.
"""

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables.

    Settings can be overridden via environment variables or .env files.
    """

    # Application metadata
    app_name: str = Field(default="Skul Relay", alias="APP_NAME")
    app_version: str = Field(default="0.1.0", alias="APP_VERSION")
    platform_name: str = Field(default="PrepSkul", alias="PLATFORM_NAME")
    debug: bool = Field(default=False, alias="DEBUG")
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")

    # Security and authentication
    secret_key: str = Field(alias="SECRET_KEY")
    jwt_algorithm: str = Field(default="HS256", alias="JWT_ALGORITHM")
    access_token_expire_minutes: int = Field(
        default=60 * 24 * 7,
        alias="ACCESS_TOKEN_EXPIRE_MINUTES",
    )
    session_cookie_name: str = Field(default="skul_session", alias="SESSION_COOKIE_NAME")

    # Database configuration
    database_url: str = Field(default="sqlite:///./skul_relay.db", alias="DATABASE_URL")
    test_database_url: str | None = Field(default=None, alias="TEST_DATABASE_URL")
    use_testing_database: bool = Field(default=False, alias="USE_TEST_DATABASE")
    sql_debug: bool = Field(default=False, alias="SQL_DEBUG")

    # Moderation and violation ledger
    auto_escalation_enabled: bool = Field(default=True, alias="AUTO_ESCALATION_ENABLED")
    violation_lookback_days: int = Field(default=30, alias="VIOLATION_LOOKBACK_DAYS")
    idempotency_window_seconds: int = Field(default=300, alias="IDEMPOTENCY_WINDOW_SECONDS")

    # Notification fan-out
    message_preview_length: int = Field(default=200, alias="MESSAGE_PREVIEW_LENGTH")
    public_app_url: str = Field(default="https://app.prepskul.com", alias="PUBLIC_APP_URL")

    # SMTP (email channel); the channel is skipped when host or sender is unset
    smtp_host: str | None = Field(default=None, alias="SMTP_HOST")
    smtp_port: int = Field(default=587, alias="SMTP_PORT")
    smtp_username: str | None = Field(default=None, alias="SMTP_USERNAME")
    smtp_password: str | None = Field(default=None, alias="SMTP_PASSWORD")
    smtp_use_tls: bool = Field(default=True, alias="SMTP_USE_TLS")
    smtp_from_email: str | None = Field(default=None, alias="SMTP_FROM_EMAIL")
    smtp_from_name: str = Field(default="PrepSkul", alias="SMTP_FROM_NAME")

    # Firebase Cloud Messaging (push channel)
    fcm_project_id: str | None = Field(default=None, alias="FIREBASE_PROJECT_ID")
    fcm_credentials_path: str | None = Field(default=None, alias="FIREBASE_CREDENTIALS_PATH")
    fcm_http_timeout_seconds: float = Field(default=10.0, alias="FCM_HTTP_TIMEOUT_SECONDS")

    # CORS configuration for web and mobile frontends
    cors_origins: list[str] = Field(
        default=[
            "http://localhost:3000",
            "http://localhost:8080",
            "http://localhost:5000",
            "http://127.0.0.1:3000",
            "http://127.0.0.1:8080",
            "https://app.prepskul.com",
            "https://www.prepskul.com",
        ],
        alias="CORS_ORIGINS",
    )
    cors_origin_regex: str = Field(
        default=r"https?://(localhost|127\.0\.0\.1)(:\d+)?",
        alias="CORS_ORIGIN_REGEX",
    )
    cors_allow_methods: list[str] = Field(
        default=["GET", "POST", "OPTIONS"],
        alias="CORS_ALLOW_METHODS",
    )
    cors_allow_headers: list[str] = Field(
        default=["Content-Type", "Authorization", "X-Requested-With"],
        alias="CORS_ALLOW_HEADERS",
    )
    cors_max_age: int = Field(default=86400, alias="CORS_MAX_AGE")

    model_config = SettingsConfigDict(
        env_file=".env",
        validate_assignment=True,
        extra="ignore",
    )

    @property
    def database_url_sync(self) -> str:
        """Return a sync-compatible database URL for Alembic.

        Returns:
            Database URL compatible with synchronous database drivers
        """
        url = self.effective_database_url
        if url.startswith("postgresql+asyncpg"):
            return url.replace("postgresql+asyncpg", "postgresql+psycopg", 1)
        return url

    @property
    def effective_database_url(self) -> str:
        """Return the database URL respecting testing overrides."""
        if self.use_testing_database and self.test_database_url:
            return self.test_database_url
        return self.database_url

    @property
    def smtp_configured(self) -> bool:
        """Return True when enough SMTP settings exist to send email."""
        return bool(self.smtp_host and self.smtp_from_email)

    @property
    def push_configured(self) -> bool:
        """Return True when FCM credentials are configured."""
        return bool(self.fcm_project_id and self.fcm_credentials_path)


settings = Settings()  # type: ignore[call-arg]
