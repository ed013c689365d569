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
    app_name: str = Field(default="agora", description="Application name")
    app_version: str = Field(default="0.1.0", description="Application version")
    environment: Literal["development", "staging", "production", "testing"] = Field(
        default="development", description="Environment name"
    )
    debug: bool = Field(default=True, description="Debug mode")

    # API Server
    api_host: str = Field(default="0.0.0.0", description="API host")
    api_port: int = Field(default=8000, description="API port")
    api_workers: int = Field(default=1, description="Number of workers")
    api_reload: bool = Field(default=True, description="Enable auto-reload")

    # Authentication (tokens are issued by the identity service, only verified here)
    auth_secret_key: str = Field(
        default="dev-jwt-secret-key-change-in-production-32chars!",
        description="JWT signing key (min 32 chars)",
    )
    auth_algorithm: str = Field(default="HS256", description="JWT algorithm")
    auth_access_token_expire_minutes: int = Field(
        default=15, description="Access token expiration (minutes)"
    )

    # Redis
    redis_enabled: bool = Field(default=True, description="Connect to Redis on startup")
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
    cassandra_enabled: bool = Field(
        default=False, description="Persist documents in Cassandra instead of memory"
    )
    cassandra_hosts: list[str] = Field(
        default=["localhost"], description="Cassandra hosts"
    )
    cassandra_port: int = Field(default=9042, description="Cassandra port")
    cassandra_keyspace: str = Field(default="agora", description="Cassandra keyspace")
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
    cassandra_datacenter: str = Field(
        default="datacenter1", description="Local datacenter name"
    )
    cassandra_replication_factor: int = Field(
        default=3, description="Replicas per datacenter in production"
    )

    # Logging
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="DEBUG", description="Log level"
    )
    log_format: Literal["json", "console"] = Field(
        default="console", description="Log format"
    )
    log_include_timestamp: bool = Field(default=True, description="Include timestamp")
    log_include_caller_info: bool = Field(
        default=True, description="Include caller info"
    )
    log_include_stack_info: bool = Field(default=True, description="Include stack info")
    log_to_file: bool = Field(default=True, description="Write rotating log files")
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
        default=["/health", "/ws"],
        description="Path prefixes excluded from request logging",
    )

    # CORS
    cors_origins: list[str] = Field(default=["*"], description="CORS origins")
    cors_allow_credentials: bool = Field(default=True, description="Allow credentials")
    cors_allow_methods: list[str] = Field(default=["*"], description="Allowed methods")
    cors_allow_headers: list[str] = Field(default=["*"], description="Allowed headers")
    cors_max_age: int = Field(default=600, description="CORS max age")

    # Forum
    forum_max_reply_depth: int = Field(
        default=64, description="Maximum nesting depth of a reply chain"
    )
    forum_content_max_length: int = Field(
        default=10000, description="Maximum length of post/comment/reply content"
    )
    forum_title_max_length: int = Field(
        default=200, description="Maximum length of a post title"
    )
    forum_page_size: int = Field(default=10, description="Default posts page size")
    forum_page_size_max: int = Field(default=50, description="Maximum posts page size")
    forum_comments_per_minute: int = Field(
        default=20, description="Comments and replies allowed per user per minute"
    )
    forum_suggestions_limit: int = Field(
        default=5, description="Maximum title suggestions returned"
    )
    forum_trending_limit: int = Field(
        default=3, description="Number of trending topics in stats"
    )

    # Real-time fan-out
    fanout_channel: str = Field(
        default="forum:events", description="Redis pub/sub channel for forum events"
    )
    fanout_queue_size: int = Field(
        default=10000, description="Max events buffered before the hub drops new ones"
    )
    fanout_session_queue_size: int = Field(
        default=256,
        description="Max events buffered per connection before it is disconnected",
    )
    fanout_ping_interval_seconds: int = Field(
        default=30, description="WebSocket keepalive interval"
    )

    # Mention lookup (property search service)
    mention_lookup_base_url: str = Field(
        default="http://localhost:3000/api",
        description="Base URL of the property search API",
    )
    mention_lookup_limit: int = Field(
        default=5, description="Maximum mention candidates returned"
    )
    mention_lookup_timeout_seconds: float = Field(
        default=5.0, description="Mention lookup request timeout"
    )
    mention_lookup_debounce_seconds: float = Field(
        default=0.3, description="Debounce delay for mention lookups"
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


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
