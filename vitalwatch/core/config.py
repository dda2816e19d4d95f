from pathlib import Path
from typing import List, Literal

from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_RULES_PATH = (
    Path(__file__).resolve().parent.parent / "modules" / "alerts" / "thresholds.json"
)


class Settings(BaseSettings):
    # App
    PROJECT_NAME: str = "VitalWatch"
    API_V1_STR: str = "/api/v1"
    ENVIRONMENT: str = ""  # local, dev, prod (from .env)

    # MongoDB (from .env)
    MONGODB_URL: str = "mongodb://localhost:27017"
    MONGODB_DB_NAME: str = "vitalwatch"

    # CORS (from .env, comma-separated)
    BACKEND_CORS_ORIGINS: List[str] = []

    # Logging & Sentry
    LOG_LEVEL: str = "INFO"
    SENTRY_DSN: str | None = None

    # Caching (from .env, set empty to disable)
    REDIS_URL: str | None = None
    ROSTER_CACHE_TTL_SECONDS: int = 30

    # Alerting
    ALERT_RULES_PATH: Path = DEFAULT_RULES_PATH
    TEMPERATURE_UNIT: Literal["celsius", "fahrenheit"] = "celsius"
    ALERT_LOG_SIZE: int = 6

    # Dashboard monitoring
    DISPLAY_TIMEZONE: str = "UTC"
    HISTORY_CAPACITY: int = 10
    DEVICE_OFFLINE_SECONDS: float = 15.0
    HEARTBEAT_POLL_SECONDS: float = 10.0
    INITIAL_LOAD_LIMIT: int = 10
    RESUBSCRIBE_BACKOFF_INITIAL_SECONDS: float = 1.0
    RESUBSCRIBE_BACKOFF_MAX_SECONDS: float = 30.0
    SUBSCRIPTION_QUEUE_SIZE: int = 100

    model_config = SettingsConfigDict(
        env_file=".env", case_sensitive=True, extra="ignore"
    )


settings = Settings()
