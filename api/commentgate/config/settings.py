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
    app_name: str = Field(default="commentgate", description="Application name")
    app_version: str = Field(default="0.1.0", description="Application version")
    environment: Literal["development", "staging", "production", "testing"] = Field(
        default="development", description="Environment name"
    )
    debug: bool = Field(default=True, description="Debug mode")
    site_url: str = Field(
        default="http://localhost:3000",
        description="Public site URL used to build comment permalinks",
    )

    # API Server
    api_host: str = Field(default="0.0.0.0", description="API host")
    api_port: int = Field(default=8000, description="API port")

    # Authentication
    auth_secret_key: str = Field(
        default="dev-jwt-secret-key-change-in-production-32chars!",
        description="JWT signing key (min 32 chars)",
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

    # Cassandra
    cassandra_hosts: list[str] = Field(
        default=["localhost"], description="Cassandra hosts"
    )
    cassandra_port: int = Field(default=9042, description="Cassandra port")
    cassandra_keyspace: str = Field(
        default="commentgate", description="Cassandra keyspace"
    )
    cassandra_username: str | None = Field(default=None, description="Cassandra user")
    cassandra_password: str | None = Field(
        default=None, description="Cassandra password"
    )
    cassandra_protocol_version: int = Field(default=4, description="Protocol version")
    cassandra_connect_timeout: float = Field(
        default=10.0, description="Connect timeout"
    )
    cassandra_replication_factor: int = Field(
        default=1, description="Replication factor for keyspace creation"
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

    # Comment moderation
    comment_max_length: int = Field(
        default=4000, description="Maximum comment length after sanitization"
    )
    comment_rate_limit_window_seconds: int = Field(
        default=60, description="Rate limit window duration (seconds)"
    )
    comment_rate_limit_max: int = Field(
        default=3, description="Max comments per IP per target per window"
    )
    comment_rate_limit_sweep_multiplier: int = Field(
        default=60, description="Windows older than window * multiplier are swept"
    )
    comment_enable_honeypot: bool = Field(
        default=True, description="Reject submissions that fill the honeypot field"
    )
    comment_max_links_before_moderation: int = Field(
        default=2, description="Comments with more links are held for review"
    )
    comment_moderation_mode: Literal["auto", "all", "first_time"] = Field(
        default="auto", description="Which clean comments still need review"
    )
    comment_ip_hash_salt: str = Field(
        default="change-me-ip-hash-salt",
        description="Salt for one-way submitter IP hashing",
    )

    # Akismet
    akismet_api_key: str | None = Field(
        default=None, description="Akismet API key (KEEP SECRET!)"
    )
    akismet_blog_url: str | None = Field(
        default=None, description="Blog URL registered with Akismet (defaults to site_url)"
    )
    akismet_timeout_seconds: float = Field(
        default=5.0, description="Akismet request timeout"
    )

    # CAPTCHA (reCAPTCHA v3 compatible)
    captcha_enabled: bool = Field(default=False, description="Enable CAPTCHA check")
    captcha_secret_key: str | None = Field(
        default=None, description="CAPTCHA secret key (KEEP SECRET!)"
    )
    captcha_verify_url: str = Field(
        default="https://www.google.com/recaptcha/api/siteverify",
        description="CAPTCHA siteverify endpoint",
    )
    captcha_threshold: float = Field(
        default=0.5, description="Minimum CAPTCHA score to pass"
    )
    captcha_timeout_seconds: float = Field(
        default=5.0, description="CAPTCHA verification timeout"
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
    def akismet_configured(self) -> bool:
        """Check if Akismet credentials are present."""
        return bool(self.akismet_api_key)

    @property
    def captcha_configured(self) -> bool:
        """Check if CAPTCHA is enabled and has a secret."""
        return bool(self.captcha_enabled and self.captcha_secret_key)


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
