"""Configuration management for the PomoQuest progression service."""

from typing import Any, Dict, List, Optional
from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator
import json

from pomoquest.core.exceptions import SettingsValidationError


class Settings(BaseSettings):
    """Application settings with validation."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True
    )

    # Application
    APP_NAME: str = "PomoQuest Progression Service"
    APP_VERSION: str = "1.0.0"
    ENVIRONMENT: str = Field(default="development", pattern="^(development|staging|test|production)$")
    SERVICE_NAME: str = "progression-service"
    SERVICE_PORT: int = 8004

    # Cache (server-held progression state and idempotency records)
    CACHE_URL: str = "memory://"
    CACHE_NAMESPACE: str = "pomoquest"
    IDEMPOTENCY_TTL: int = 7 * 24 * 3600  # 1 week

    # JWT (tokens are issued by the auth provider, only verified here)
    JWT_SECRET: str = "change-me"
    JWT_ALGORITHM: str = "HS256"

    # Remote API used by the offline sync queue
    REMOTE_API_URL: str = "http://localhost:8004"
    REMOTE_TIMEOUT_SECONDS: float = 10.0
    SYNC_INTERVAL_SECONDS: float = 60.0

    # Gamification: session XP
    XP_BASE_SESSION: int = 20
    XP_MINUTES_STEP: int = 5
    XP_PER_STEP: int = 5
    FOCUS_XP_MULTIPLIER: float = 1.2

    # Gamification: streaks
    STREAK_PROTECTION_GRACE_HOURS: int = 48
    STREAK_PROTECTION_COOLDOWN_DAYS: int = 7

    # Gamification: character evolution
    CHARACTER_EXP_DIVISOR: int = 2

    # Logging
    LOG_LEVEL: str = Field(default="INFO", pattern="^(DEBUG|INFO|WARNING|ERROR|CRITICAL)$")
    LOG_FORMAT: str = Field(default="json", pattern="^(json|plain)$")

    # CORS
    CORS_ORIGINS: List[str] = Field(default_factory=list)

    @field_validator("CORS_ORIGINS", mode="before")
    def parse_cors_origins(cls, v):
        if isinstance(v, str):
            try:
                return json.loads(v)
            except json.JSONDecodeError:
                return [origin.strip() for origin in v.split(",")]
        return v

    # Monitoring
    ENABLE_METRICS: bool = True

    def is_production(self) -> bool:
        """Check if running in production."""
        return self.ENVIRONMENT == "production"


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


# Global settings instance
settings = get_settings()


class TimerSettings(BaseModel):
    """User-facing timer preferences.

    These only reach progression through the session durations the timer
    produces; they are never read by the rule engines.
    """

    model_config = ConfigDict(extra="forbid", frozen=True)

    focus_duration: int = Field(default=25, ge=1, le=120)
    short_break_duration: int = Field(default=5, ge=1, le=30)
    long_break_duration: int = Field(default=15, ge=1, le=60)
    sessions_until_long_break: int = Field(default=4, ge=1, le=12)
    auto_start_breaks: bool = False
    auto_start_focus: bool = False
    sound_enabled: bool = True
    vibration_enabled: bool = True


def merge_timer_settings(
    current: TimerSettings,
    overrides: Optional[Dict[str, Any]] = None
) -> TimerSettings:
    """Merge overrides into the current timer settings.

    Unknown keys and out-of-range values raise SettingsValidationError and
    leave ``current`` untouched.
    """
    if not overrides:
        return current

    merged = {**current.model_dump(), **overrides}
    try:
        return TimerSettings.model_validate(merged)
    except ValidationError as e:
        fields = sorted({".".join(str(p) for p in err["loc"]) for err in e.errors()})
        raise SettingsValidationError(
            f"Invalid timer settings: {', '.join(fields)}",
            fields=fields
        ) from e
