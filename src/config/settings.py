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
    app_name: str = Field(default="stillpoint", description="Application name")
    app_version: str = Field(default="0.1.0", description="Application version")
    environment: Literal["development", "staging", "production", "testing"] = Field(
        default="development", description="Environment name"
    )
    debug: bool = Field(default=True, description="Debug mode")

    # API Server
    api_host: str = Field(default="0.0.0.0", description="API host")
    api_port: int = Field(default=8000, description="API port")

    # Authentication (tokens are issued by the identity service)
    auth_secret_key: str = Field(
        default="dev-jwt-secret-key-change-in-production-32chars!",
        description="JWT verification key (min 32 chars)",
    )
    auth_algorithm: str = Field(default="HS256", description="JWT algorithm")
    auth_access_token_expire_minutes: int = Field(
        default=15, description="Access token expiration (minutes)"
    )

    # Redis
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
    access_cache_ttl_seconds: int = Field(
        default=300, description="TTL of cached course access decisions"
    )

    # Cassandra
    cassandra_hosts: list[str] = Field(
        default=["localhost"], description="Cassandra hosts"
    )
    cassandra_port: int = Field(default=9042, description="Cassandra port")
    cassandra_keyspace: str = Field(
        default="stillpoint", description="Cassandra keyspace"
    )
    cassandra_username: str | None = Field(default=None, description="Cassandra user")
    cassandra_password: str | None = Field(
        default=None, description="Cassandra password"
    )
    cassandra_protocol_version: int = Field(default=4, description="Protocol version")
    cassandra_connect_timeout: float = Field(
        default=10.0, description="Connect timeout"
    )

    # Enrollment engine
    quiz_default_passing_score: int = Field(
        default=70, ge=0, le=100, description="Passing score when a quiz sets none"
    )
    quiz_attempt_history_limit: int = Field(
        default=20, ge=1, description="Quiz attempts kept per lesson (most recent)"
    )
    progress_max_update_retries: int = Field(
        default=5,
        ge=1,
        description="Optimistic retries for a contended enrollment update",
    )

    # Payments (Razorpay)
    razorpay_key_id: str | None = Field(default=None, description="Razorpay key id")
    razorpay_key_secret: str | None = Field(
        default=None, description="Razorpay key secret (KEEP SECRET!)"
    )
    razorpay_webhook_secret: str | None = Field(
        default=None, description="Razorpay webhook signing secret"
    )
    razorpay_api_base_url: str = Field(
        default="https://api.razorpay.com/v1", description="Razorpay API base URL"
    )
    payment_gateway_timeout_seconds: float = Field(
        default=10.0, description="Timeout for payment gateway calls"
    )
    payment_currency: str = Field(default="INR", description="Default currency")
    admin_payment_scan_limit: int = Field(
        default=1000, ge=1, description="Max payments scanned for the admin overview"
    )
    subscription_prices: dict[str, dict[str, int]] = Field(
        default={"premium": {"monthly": 299, "yearly": 2999}},
        description="Subscription price table: plan -> duration -> amount",
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
    cors_allow_credentials: bool = Field(default=True, description="Allow credentials")
    cors_allow_methods: list[str] = Field(default=["*"], description="Allowed methods")
    cors_allow_headers: list[str] = Field(default=["*"], description="Allowed headers")
    cors_max_age: int = Field(default=600, description="CORS max age")

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
    def razorpay_configured(self) -> bool:
        """Check if Razorpay credentials are configured."""
        return bool(self.razorpay_key_id and self.razorpay_key_secret)

    def subscription_price(self, plan: str, duration: str) -> int | None:
        """Look up the price of a subscription plan, None when not offered."""
        return self.subscription_prices.get(plan, {}).get(duration)


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
