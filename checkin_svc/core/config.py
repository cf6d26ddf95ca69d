from __future__ import annotations
from pydantic_settings import BaseSettings
from pydantic import Field

class Settings(BaseSettings):
    database_url: str = Field(..., alias="DATABASE_URL")
    # caller-imposed timeout for every store round-trip
    store_timeout_seconds: float = Field(default=5.0, alias="STORE_TIMEOUT_SECONDS")

    # Scanning
    rapid_rescan_cooldown_seconds: int = Field(default=10, alias="RAPID_RESCAN_COOLDOWN_SECONDS")

    # Listing / import
    attendees_default_limit: int = Field(default=50, alias="ATTENDEES_DEFAULT_LIMIT")
    attendees_max_limit: int = Field(default=500, alias="ATTENDEES_MAX_LIMIT")
    import_max_bytes: int = Field(default=5 * 1024 * 1024, alias="IMPORT_MAX_BYTES")

    # Redis (scan rate limit)
    redis_url: str = Field("redis://127.0.0.1:6379/0", alias="REDIS_URL")
    rl_enabled: bool = Field(default=True, alias="RL_ENABLED")
    rl_window_seconds: int = Field(default=60, alias="RL_WINDOW_SECONDS")
    rl_max_reqs: int = Field(default=120, alias="RL_MAX_REQS")

    # NATS
    nats_enabled: bool = Field(default=True, alias="NATS_ENABLED")
    nats_urls: str = Field("nats://127.0.0.1:4222", alias="NATS_URLS")
    nats_subject_scan: str = Field("checkin.scans.recorded", alias="NATS_SUBJECT_SCAN")
    nats_connect_timeout_sec: float = Field(default=5.0, alias="NATS_CONNECT_TIMEOUT_SEC")
    nats_publish_timeout_sec: float = Field(default=2.0, alias="NATS_PUBLISH_TIMEOUT_SEC")
    # reconnect job cadence while the broker is unreachable
    nats_retry_interval_sec: int = Field(default=30, alias="NATS_RETRY_INTERVAL_SEC")

    # Stats projection rebuild cadence (seconds)
    stats_refresh_interval_sec: int = Field(60, alias="STATS_REFRESH_INTERVAL_SEC")
    stats_scheduler_enabled: bool = Field(default=True, alias="STATS_SCHEDULER_ENABLED")

    # Logging
    log_level: str = Field("INFO", alias="LOG_LEVEL")
    log_file: str | None = Field(default=None, alias="LOG_FILE")

    class Config:
        env_file = ".env"
        env_prefix = ""
        case_sensitive = False

_settings: Settings | None = None
def get_settings() -> Settings:
    global _settings
    if _settings is None:
        _settings = Settings()
    return _settings
