"""
Application configuration via pydantic-settings.

All settings are loaded from environment variables (and .env file).

MongoDB and Redis are both optional: without MONGODB_URI the click records
live in an in-process repository, without REDIS_URI the dedup/rate-limit/geo
caches are process-local. Both fallbacks are meant for single-node setups.
"""

from __future__ import annotations

from typing import Optional

from pydantic import model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

# Cloudflare's published edge ranges; only these may set CF-Connecting-IP.
CLOUDFLARE_RANGES: list[str] = [
    "173.245.48.0/20",
    "103.21.244.0/22",
    "103.22.200.0/22",
    "103.31.4.0/22",
    "141.101.64.0/18",
    "108.162.192.0/18",
    "190.93.240.0/20",
    "188.114.96.0/20",
    "197.234.240.0/22",
    "198.41.128.0/17",
    "162.158.0.0/15",
    "104.16.0.0/13",
    "104.24.0.0/14",
    "172.64.0.0/13",
    "131.0.72.0/22",
    "2400:cb00::/32",
    "2606:4700::/32",
    "2803:f800::/32",
    "2405:b500::/32",
    "2405:8100::/32",
    "2a06:98c0::/29",
    "2c0f:f248::/32",
]


class DatabaseSettings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    # Optional — without it click records are kept in memory
    mongodb_uri: Optional[str] = None
    db_name: str = "click-tracker"
    clicks_collection: str = "post_clicks"


class RedisSettings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    # Optional — self-hosters without Redis get a process-local cache
    redis_uri: Optional[str] = None


class TrackingSettings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    duplicate_view_window: int = 1800  # seconds
    rate_limit_window: int = 300  # seconds
    max_requests_per_minute: int = 10
    suspicious_score_threshold: int = 3
    bot_ip_cache_ttl: int = 3600
    datacenter_ip_cache_ttl: int = 3600

    trusted_proxy_ranges: list[str] = CLOUDFLARE_RANGES
    # Header the trusted proxy uses to pass the visitor address
    trusted_proxy_header: str = "CF-Connecting-IP"

    upsert_max_retries: int = 3
    # Run the pipeline after the ingest response has been sent
    ingest_in_background: bool = False


class GeoSettings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    # Tried in order; first validated answer wins
    geo_providers: list[str] = ["ip-api", "ipapi", "ipwhois"]
    geo_timeout_seconds: float = 3.0
    geo_cache_ttl: int = 2_592_000  # 30 days
    geo_failure_ttl: int = 3600
    geo_rate_limited_ttl: int = 300
    geo_max_calls_per_minute: int = 40  # ip-api.com allows 45/min

    # Local GeoLite2 City database; when set it is consulted before the APIs
    geoip_city_db: Optional[str] = None


class LoggingSettings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    log_level: str = "INFO"
    log_format: str = "console"  # "json" in production

    # Sampling rates (0.0–1.0)
    sample_rate_view_recorded: float = 0.05
    sample_rate_view_dropped: float = 0.01
    sample_rate_stats_query: float = 0.20


class SentrySettings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    sentry_dsn: str = ""
    sentry_send_pii: bool = False
    sentry_traces_sample_rate: float = 0.1
    sentry_profile_sample_rate: float = 0.05


class AppSettings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    # Core
    env: str = "development"
    app_name: str = "click-tracker"

    # CORS — all origins by default
    cors_origins: list[str] = ["*"]

    # OpenAPI docs URL (None disables the docs UI in production)
    docs_url: Optional[str] = "/docs"

    # Sub-configs (composed via model_validator below)
    db: Optional[DatabaseSettings] = None
    redis: Optional[RedisSettings] = None
    tracking: Optional[TrackingSettings] = None
    geo: Optional[GeoSettings] = None
    logging: Optional[LoggingSettings] = None
    sentry: Optional[SentrySettings] = None

    @model_validator(mode="after")
    def _populate_sub_configs(self) -> "AppSettings":
        # Populate sub-configs from the same env/dotenv source
        if self.db is None:
            self.db = DatabaseSettings()
        if self.redis is None:
            self.redis = RedisSettings()
        if self.tracking is None:
            self.tracking = TrackingSettings()
        if self.geo is None:
            self.geo = GeoSettings()
        if self.logging is None:
            self.logging = LoggingSettings()
        if self.sentry is None:
            self.sentry = SentrySettings()

        return self

    @property
    def is_production(self) -> bool:
        return self.env == "production"
