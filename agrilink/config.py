from __future__ import annotations

from pydantic import ConfigDict, Field
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application configuration loaded from environment variables."""

    jwt_secret: str = Field("test-jwt-secret", alias="JWT_SECRET")
    jwt_ttl_days: int = Field(7, alias="JWT_TTL_DAYS")

    trusted_proxies: list[str] = Field(
        default_factory=lambda: ["127.0.0.1", "testclient"]
    )
    rate_limit_ip_per_min: int = Field(60, alias="RATE_LIMIT_IP_PER_MIN")
    rate_limit_user_per_min: int = Field(120, alias="RATE_LIMIT_USER_PER_MIN")

    database_url: str = Field("sqlite:////tmp/agrilink_test.db", alias="DATABASE_URL")
    db_create_all: bool = Field(False, alias="DB_CREATE_ALL")
    seed_diseases: bool = Field(True, alias="SEED_DISEASES")

    redis_url: str = Field("redis://localhost:6379", alias="REDIS_URL")
    log_level: str = Field("INFO", alias="LOG_LEVEL")

    s3_bucket: str = "agrilink"
    s3_endpoint: str | None = None
    s3_region: str = "us-east-1"
    s3_access_key: str | None = None
    s3_secret_key: str | None = None
    s3_public_url: str | None = None

    nearby_default_distance_m: int = Field(50_000, alias="NEARBY_DEFAULT_DISTANCE_M")
    community_feed_limit: int = Field(20, alias="COMMUNITY_FEED_LIMIT")
    upload_max_bytes: int = Field(
        5 * 1024 * 1024,
        alias="UPLOAD_MAX_BYTES",
        description="Largest accepted diagnosis image",
    )

    model_config = ConfigDict(
        extra="ignore",
        env_file=".env",
        case_sensitive=False,
    )
