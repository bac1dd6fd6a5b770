"""
Configuration Management
Environment-based configuration for the GoCart API gateway
"""

from typing import Optional
from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from shared.utils.security import DEFAULT_JWT_SECRET


class Settings(BaseSettings):
    # App config
    app_name: str = "GoCart API Gateway"
    version: str = "1.0.0"
    environment: str = "development"
    debug: bool = False
    log_level: str = "INFO"
    logging_config_path: Optional[str] = None
    port: int = 8080

    # JWT
    jwt_secret: str = DEFAULT_JWT_SECRET
    jwt_algorithm: str = "HS256"

    # Upstream services
    auth_service_url: str = "http://localhost:3001"
    payment_service_url: str = "http://localhost:3002"
    backend_url: str = "http://localhost:5000"
    upstream_timeout_seconds: float = 30.0
    upstream_connect_timeout_seconds: float = 5.0
    upstream_retries: int = 2
    upstream_retry_backoff_seconds: float = 0.25
    upstream_max_connections: int = 100
    upstream_max_keepalive: int = 20

    # Service status probes
    status_cache_ttl_seconds: float = 30.0
    status_probe_timeout_seconds: float = 5.0

    # Rate limiting
    rate_limit_enabled: bool = True
    rate_limit_backend: str = "redis"
    rate_limit_key_prefix: str = "gocart:ratelimit"
    rate_limit_general_max: int = 100
    rate_limit_general_window_seconds: int = 15 * 60
    rate_limit_auth_max: int = 5
    rate_limit_auth_window_seconds: int = 15 * 60
    rate_limit_payment_max: int = 10
    rate_limit_payment_window_seconds: int = 60
    rate_limit_upload_max: int = 20
    rate_limit_upload_window_seconds: int = 60

    # Redis
    redis_url: str = "redis://localhost:6379/0"
    redis_sentinel_hosts: Optional[str] = None
    redis_sentinel_master: str = "mymaster"
    redis_password: Optional[str] = None
    redis_db: int = 0

    # Largest request body forwarded upstream
    max_body_bytes: int = 10 * 1024 * 1024

    # Client IP resolution: number of reverse proxies in front of the gateway
    trusted_proxy_hops: int = 1

    # Request body logging in development (sensitive fields masked)
    log_request_bodies: bool = True

    # CORS
    cors_origins: list[str] = [
        "http://localhost:3000",
        "http://localhost:3001",
        "http://localhost:3002",
        "https://gocart.com",
        "https://www.gocart.com",
        "https://admin.gocart.com",
        "https://artist.gocart.com",
    ]
    cors_allow_localhost: bool = True

    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=False,
        extra="ignore",
    )

    @field_validator('rate_limit_backend')
    @classmethod
    def validate_rate_limit_backend(cls, v):
        if v not in ("redis", "memory"):
            raise ValueError("RATE_LIMIT_BACKEND must be 'redis' or 'memory'")
        return v

    @field_validator('upstream_retries')
    @classmethod
    def validate_upstream_retries(cls, v):
        if not 0 <= v <= 5:
            raise ValueError('UPSTREAM_RETRIES must be between 0 and 5')
        return v

    @field_validator('upstream_timeout_seconds', 'upstream_connect_timeout_seconds')
    @classmethod
    def validate_timeouts(cls, v):
        if v <= 0:
            raise ValueError('Upstream timeouts must be positive')
        return v

    @property
    def is_development(self) -> bool:
        return self.environment == "development"

    @property
    def uses_default_jwt_secret(self) -> bool:
        return self.jwt_secret == DEFAULT_JWT_SECRET


settings = Settings()
