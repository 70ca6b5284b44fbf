"""Application settings using Pydantic Settings."""

from functools import lru_cache
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Application
    app_name: str = Field(default="dripcourse", description="Application name")
    app_version: str = Field(default="0.1.0", description="Application version")
    environment: Literal["development", "staging", "production", "testing"] = Field(
        default="development", description="Environment name"
    )
    debug: bool = Field(default=True, description="Debug mode")

    # API Server
    api_host: str = Field(default="0.0.0.0", description="API host")
    api_port: int = Field(default=8000, description="API port")

    # Operational endpoints (manual activation, unlock runs)
    master_api_key: str | None = Field(
        default=None, description="API key for admin endpoints (X-API-Key header)"
    )

    # Redis
    redis_enabled: bool = Field(default=True, description="Connect to Redis at startup")
    redis_url: str = Field(
        default="redis://localhost:6379/0",
        description="Redis connection URL",
    )
    redis_max_connections: int = Field(default=10, description="Max Redis connections")
    redis_socket_timeout: float = Field(default=5.0, description="Redis socket timeout")
    redis_socket_connect_timeout: float = Field(
        default=5.0, description="Redis connect timeout"
    )
    redis_retry_on_timeout: bool = Field(default=True, description="Retry on timeout")
    redis_health_check_interval: int = Field(
        default=30, description="Health check interval"
    )

    # Enrollment store
    enrollment_store_backend: Literal["cassandra", "memory"] = Field(
        default="cassandra", description="Enrollment store implementation"
    )
    enrollment_store_timeout_seconds: float = Field(
        default=5.0, description="Timeout for each store call made by a request"
    )
    enrollment_max_conflict_retries: int = Field(
        default=3, description="Retries after a lost conditional update"
    )

    # Cassandra
    cassandra_hosts: list[str] = Field(
        default=["localhost"], description="Cassandra hosts"
    )
    cassandra_port: int = Field(default=9042, description="Cassandra port")
    cassandra_keyspace: str = Field(
        default="dripcourse", description="Cassandra keyspace"
    )
    cassandra_username: str | None = Field(default=None, description="Cassandra user")
    cassandra_password: str | None = Field(
        default=None, description="Cassandra password"
    )
    cassandra_protocol_version: int = Field(default=4, description="Protocol version")
    cassandra_connect_timeout: float = Field(
        default=10.0, description="Connect timeout"
    )
    cassandra_request_timeout: float = Field(
        default=10.0, description="Request timeout"
    )

    # Course content schedule
    course_total_weeks: int = Field(default=6, ge=1, description="Weeks in the course")
    course_unlock_interval_days: int = Field(
        default=7, ge=1, description="Days between week unlocks"
    )
    course_sessions_per_week: int = Field(
        default=3, ge=1, description="Sessions published each week"
    )

    # Unlock worker
    unlock_worker_enabled: bool = Field(
        default=True, description="Run the periodic unlock worker in-process"
    )
    unlock_tick_interval_seconds: int = Field(
        default=86400, description="Seconds between unlock passes (daily)"
    )
    unlock_lock_ttl_seconds: int = Field(
        default=900, description="TTL of the Redis lock held during a pass"
    )

    # Notifications
    notification_timeout_seconds: float = Field(
        default=15.0, description="Timeout for a single notification attempt"
    )
    notification_max_attempts: int = Field(
        default=2, ge=1, description="Attempts per notification before giving up"
    )

    # Logging
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="DEBUG", description="Log level"
    )
    log_format: Literal["json", "console"] = Field(
        default="console", description="Log format"
    )
    log_include_caller_info: bool = Field(
        default=True, description="Include caller info"
    )
    log_dir: str = Field(default="logs", description="Directory for log files")
    log_to_file: bool = Field(default=True, description="Write rotating log files")
    log_file_max_bytes: int = Field(
        default=10 * 1024 * 1024, description="Max size per log file (10MB default)"
    )
    log_file_backup_count: int = Field(
        default=5, description="Number of backup log files to keep"
    )
    log_requests: bool = Field(
        default=True, description="Log HTTP request start/finish"
    )
    log_exclude_paths: list[str] = Field(
        default=["/health", "/health/live", "/health/ready"],
        description="Paths to exclude from request logging",
    )

    # CORS
    cors_origins: list[str] = Field(default=["*"], description="CORS origins")
    cors_allow_credentials: bool = Field(default=False, description="Allow credentials")
    cors_allow_methods: list[str] = Field(default=["*"], description="Allowed methods")
    cors_allow_headers: list[str] = Field(default=["*"], description="Allowed headers")
    cors_max_age: int = Field(default=600, description="CORS max age")

    # Email (Gmail API)
    email_enabled: bool = Field(
        default=False, description="Enable email sending via Gmail API"
    )
    email_credentials_path: str = Field(
        default="credentials/google-service-account.json",
        description="Path to Google service account JSON file",
    )
    email_sender_address: str = Field(
        default="hello@calledandequipped.com",
        description="Sender email address (must be in Google Workspace domain)",
    )
    email_sender_name: str = Field(
        default="Called & Equipped", description="Sender display name"
    )
    email_support_address: str = Field(
        default="support@calledandequipped.com",
        description="Support address shown in emails",
    )

    # Stripe
    stripe_secret_key: str | None = Field(default=None, description="Stripe secret key")
    stripe_webhook_secret: str | None = Field(
        default=None, description="Stripe webhook signing secret"
    )
    stripe_price_individual: str | None = Field(
        default=None, description="Stripe price id for the individual plan"
    )
    stripe_price_coaching: str | None = Field(
        default=None, description="Stripe price id for the coaching plan"
    )

    # Frontend
    frontend_url: str = Field(
        default="http://localhost:5173", description="Public storefront/portal URL"
    )

    @property
    def is_development(self) -> bool:
        """Check if running in development mode."""
        return self.environment == "development"

    @property
    def is_production(self) -> bool:
        """Check if running in production mode."""
        return self.environment == "production"

    @property
    def is_testing(self) -> bool:
        """Check if running in testing mode."""
        return self.environment == "testing"

    @property
    def email_configured(self) -> bool:
        """Check if Gmail API email is configured."""
        return bool(self.email_enabled and self.email_sender_address)

    @property
    def stripe_configured(self) -> bool:
        """Check if Stripe checkout and webhooks are configured."""
        return bool(self.stripe_secret_key and self.stripe_webhook_secret)

    @property
    def portal_url(self) -> str:
        """Student portal base URL (token is appended as a query parameter)."""
        return f"{self.frontend_url.rstrip('/')}/portal"

    def price_id_for(self, plan: str) -> str | None:
        """Stripe price id configured for a plan."""
        return {
            "individual": self.stripe_price_individual,
            "coaching": self.stripe_price_coaching,
        }.get(plan)


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
