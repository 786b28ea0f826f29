from functools import lru_cache

from pydantic import field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings - only define what needs validation."""

    DATABASE_URL: str = "sqlite+aiosqlite:///./watchgate.db"
    DEBUG: bool = False
    API_PORT: int = 8080
    ENVIRONMENT: str = "development"  # "development", "production", "test"
    LOG_LEVEL: str = "INFO"

    # Unlock policy
    UNLOCK_THRESHOLD_PERCENT: float = 90.0
    MANUAL_OVERRIDE_MIN_PERCENT: float = 25.0
    MILESTONE_THRESHOLDS: list[int] = [25, 50, 75, 90]

    # Sampling
    SAMPLE_INTERVAL_SECONDS: float = 1.0  # Poll period for polled players
    MAX_SAMPLE_GAP_SECONDS: float = 10.0  # Larger forward jumps count as a seek
    WRITE_MIN_DELTA_PERCENT: float = 1.0  # Minimum growth before a routine write
    SUBSCRIPTION_POLL_SECONDS: float = 1.0  # How often subscribed rows are re-read for remote writes

    # Activity reporting
    ACTIVE_LEARNER_WINDOW_DAYS: int = 7

    model_config = SettingsConfigDict(
        env_file=(".env", ".env.local"),
        env_file_encoding="utf-8",
        extra="allow",
        case_sensitive=False,
    )

    @field_validator("MILESTONE_THRESHOLDS")
    @classmethod
    def validate_milestones(cls, v: list[int]) -> list[int]:
        """Keep milestones unique, ascending and inside (0, 100]."""
        if any(m <= 0 or m > 100 for m in v):
            msg = "Milestone thresholds must be within (0, 100]"
            raise ValueError(msg)
        return sorted(set(v))

    @model_validator(mode="after")
    def validate_unlock_threshold(self) -> "Settings":
        """Ensure the unlock threshold is reachable and reported as a milestone."""
        if not 0 < self.UNLOCK_THRESHOLD_PERCENT <= 100:
            msg = "UNLOCK_THRESHOLD_PERCENT must be within (0, 100]"
            raise ValueError(msg)
        if not 0 <= self.MANUAL_OVERRIDE_MIN_PERCENT <= self.UNLOCK_THRESHOLD_PERCENT:
            msg = "MANUAL_OVERRIDE_MIN_PERCENT must be between 0 and UNLOCK_THRESHOLD_PERCENT"
            raise ValueError(msg)
        if self.UNLOCK_THRESHOLD_PERCENT not in self.MILESTONE_THRESHOLDS:
            msg = "UNLOCK_THRESHOLD_PERCENT must be one of MILESTONE_THRESHOLDS"
            raise ValueError(msg)
        return self


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    settings = Settings()
    if not settings.DATABASE_URL:
        msg = "DATABASE_URL environment variable is not set"
        raise ValueError(msg)
    return settings
