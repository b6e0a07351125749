# funnel/core/config.py
from __future__ import annotations

from typing import List, Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_nested_delimiter="__",
        extra="ignore"
    )

    # Environment
    environment: str = Field(default="development", validation_alias="ENVIRONMENT")

    # Routing
    api_prefix: str = Field(default="/api", validation_alias="API_PREFIX")

    # Logging
    log_level: str = Field(default="INFO", validation_alias="LOG_LEVEL")
    log_format: str = Field(default="json", validation_alias="LOG_FORMAT")

    # CORS
    allowed_origins: str = Field(default="http://localhost:3000,http://127.0.0.1:3000", validation_alias="ALLOWED_ORIGINS")
    allowed_methods: str = Field(default="GET,POST,OPTIONS", validation_alias="ALLOWED_METHODS")
    allowed_headers: str = Field(default="*", validation_alias="ALLOWED_HEADERS")

    # Session state
    session_backend: str = Field(default="memory", validation_alias="SESSION_BACKEND")
    session_cookie_name: str = Field(default="funnel_sid", validation_alias="SESSION_COOKIE_NAME")
    session_ttl_seconds: int = Field(default=86400, validation_alias="SESSION_TTL_SECONDS")

    # Redis
    redis_url: str = Field(default="redis://redis:6379/0", validation_alias="REDIS_URL")
    redis_max_connections: int = Field(default=50, validation_alias="REDIS_MAX_CONNECTIONS")
    redis_socket_timeout: int = Field(default=5, validation_alias="REDIS_SOCKET_TIMEOUT")
    redis_socket_connect_timeout: int = Field(default=5, validation_alias="REDIS_SOCKET_CONNECT_TIMEOUT")

    # Spreadsheet destination
    sheets_backend: str = Field(default="memory", validation_alias="SHEETS_BACKEND")
    spreadsheet_id: Optional[str] = Field(default=None, validation_alias="SPREADSHEET_ID")
    google_sheets_cred: Optional[str] = Field(default=None, validation_alias="GOOGLE_SHEETS_CRED")

    # Lead transmission
    ingest_endpoint_url: Optional[str] = Field(default=None, validation_alias="INGEST_ENDPOINT_URL")
    ingest_timeout_seconds: float = Field(default=10.0, validation_alias="INGEST_TIMEOUT_SECONDS")
    ingest_max_retries: int = Field(default=0, validation_alias="INGEST_MAX_RETRIES")
    ingest_retry_delay_seconds: float = Field(default=1.0, validation_alias="INGEST_RETRY_DELAY_SECONDS")

    # Anti-abuse
    rate_limit_submissions: int = Field(default=3, validation_alias="RATE_LIMIT_SUBMISSIONS")
    rate_limit_window_seconds: int = Field(default=60, validation_alias="RATE_LIMIT_WINDOW_SECONDS")
    form_token_min_age_seconds: int = Field(default=3, validation_alias="FORM_TOKEN_MIN_AGE_SECONDS")
    form_token_max_age_seconds: int = Field(default=3600, validation_alias="FORM_TOKEN_MAX_AGE_SECONDS")

    # Redirects
    confirmation_url: str = Field(default="/thank-you", validation_alias="CONFIRMATION_URL")
    redirect_delay_ms: int = Field(default=1000, validation_alias="REDIRECT_DELAY_MS")
    redirect_delay_no_endpoint_ms: int = Field(default=400, validation_alias="REDIRECT_DELAY_NO_ENDPOINT_MS")

    # Monitoring
    sentry_dsn: Optional[str] = Field(default=None, validation_alias="SENTRY_DSN")

    @field_validator("environment")
    def validate_environment(cls, v):
        valid_envs = ["development", "testing", "staging", "production"]
        if v not in valid_envs:
            raise ValueError(f"environment must be one of {valid_envs}")
        return v

    @field_validator("log_level")
    def validate_log_level(cls, v):
        valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        if v.upper() not in valid_levels:
            raise ValueError(f"log_level must be one of {valid_levels}")
        return v.upper()

    @field_validator("log_format")
    def validate_log_format(cls, v):
        valid_formats = ["json", "console"]
        if v not in valid_formats:
            raise ValueError(f"log_format must be one of {valid_formats}")
        return v

    @field_validator("session_backend")
    def validate_session_backend(cls, v):
        valid_backends = ["memory", "redis"]
        if v not in valid_backends:
            raise ValueError(f"session_backend must be one of {valid_backends}")
        return v

    @field_validator("sheets_backend")
    def validate_sheets_backend(cls, v):
        valid_backends = ["memory", "google"]
        if v not in valid_backends:
            raise ValueError(f"sheets_backend must be one of {valid_backends}")
        return v

    @property
    def is_production(self) -> bool:
        return self.environment == "production"

    @property
    def is_development(self) -> bool:
        return self.environment == "development"

    @property
    def is_testing(self) -> bool:
        return self.environment == "testing"

    def origins(self) -> List[str]:
        if self.allowed_origins.strip() == "*":
            return ["*"]
        return [origin.strip() for origin in self.allowed_origins.split(",") if origin.strip()]

    def methods(self) -> List[str]:
        return [method.strip() for method in self.allowed_methods.split(",") if method.strip()]


settings = Settings()
