"""Pydantic models for durable watch progress."""

from datetime import UTC, datetime

from pydantic import BaseModel, ConfigDict, Field, field_validator


DEFAULT_MILESTONES: tuple[int, ...] = (25, 50, 75, 90)


def utc_now() -> datetime:
    """Return the current time as an aware UTC datetime."""
    return datetime.now(UTC)


def ensure_utc(value: datetime | None) -> datetime | None:
    """Attach UTC to naive datetimes (SQLite drops tzinfo on the way back)."""
    if value is None or value.tzinfo is not None:
        return value
    return value.replace(tzinfo=UTC)


class ActivityScore(BaseModel):
    """Outcome of one attempt at the follow-on activity."""

    percent: float = Field(..., ge=0, le=100)
    correct_count: int = Field(0, ge=0)
    total_count: int = Field(0, ge=0)


class ProgressRecord(BaseModel):
    """Authoritative progress for one learner and one unit."""

    model_config = ConfigDict(from_attributes=True)

    learner_id: str
    unit_id: str
    percent_watched: float = Field(0.0, ge=0, le=100)
    milestones_reached: set[int] = Field(default_factory=set)
    video_unlocked_activity: bool = False
    video_completed: bool = False
    activity_completed: bool = False
    activity_attempts: int = Field(0, ge=0)
    last_position_seconds: float = Field(0.0, ge=0)
    activity_started_at: datetime | None = None
    completed_at: datetime | None = None
    activity_score_percent: float | None = Field(None, ge=0, le=100)
    activity_correct_count: int = Field(0, ge=0)
    activity_total_count: int = Field(0, ge=0)
    activity_score_updated_at: datetime | None = None
    activity_time_seconds: float = Field(0.0, ge=0)
    total_time_seconds: float = Field(0.0, ge=0)
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)

    @field_validator("milestones_reached", mode="before")
    @classmethod
    def coerce_milestones(cls, v: object) -> object:
        """Accept lists and tuples as stored by JSON columns."""
        if v is None:
            return set()
        if isinstance(v, list | tuple | frozenset):
            return set(v)
        return v

    @field_validator("activity_started_at", "completed_at", "activity_score_updated_at", "created_at", "updated_at")
    @classmethod
    def normalize_timestamps(cls, v: datetime | None) -> datetime | None:
        """Store every timestamp as aware UTC."""
        return ensure_utc(v)


class ProgressUpdate(BaseModel):
    """Partial progress write.

    Unset fields leave the stored value untouched. Set fields are joined
    into the stored record (see ``watchgate.progress.merge``), never
    written over it.
    """

    percent_watched: float | None = Field(None, ge=0, le=100)
    milestones_reached: set[int] | None = None
    video_unlocked_activity: bool | None = None
    video_completed: bool | None = None
    activity_completed: bool | None = None
    activity_attempts: int | None = Field(None, ge=0)
    last_position_seconds: float | None = Field(None, ge=0)
    activity_started_at: datetime | None = None
    completed_at: datetime | None = None
    activity_score_percent: float | None = Field(None, ge=0, le=100)
    activity_correct_count: int | None = Field(None, ge=0)
    activity_total_count: int | None = Field(None, ge=0)
    activity_score_updated_at: datetime | None = None
    activity_time_seconds: float | None = Field(None, ge=0)
    total_time_seconds: float | None = Field(None, ge=0)
    updated_at: datetime | None = None

    @field_validator("activity_started_at", "completed_at", "activity_score_updated_at", "updated_at")
    @classmethod
    def normalize_timestamps(cls, v: datetime | None) -> datetime | None:
        """Store every timestamp as aware UTC."""
        return ensure_utc(v)


class ActivityCompletion(BaseModel):
    """Request body for completing the follow-on activity."""

    score: ActivityScore | None = None


class ActivityTimeUpdate(BaseModel):
    """Request body reporting time spent in the follow-on activity.

    ``time_seconds`` is cumulative for the unit, not a delta.
    """

    time_seconds: float = Field(..., ge=0)
    started_at: datetime | None = None

    @field_validator("started_at")
    @classmethod
    def normalize_started_at(cls, v: datetime | None) -> datetime | None:
        return ensure_utc(v)


class ResumeResponse(BaseModel):
    """Where a new playback session should start."""

    learner_id: str
    unit_id: str
    seek_seconds: float | None = Field(None, description="Seek target, or null to start from the beginning")


class LearnerSummary(BaseModel):
    """Aggregated progress for one learner."""

    learner_id: str
    units_started: int
    units_unlocked: int
    units_completed: int
    average_percent_watched: float
    average_score: float
    total_time_seconds: float = 0.0
    last_active_at: datetime | None = None


class ClassStatisticsRequest(BaseModel):
    """Learner ids making up a class."""

    learner_ids: list[str] = Field(..., min_length=1, max_length=500)


class ClassStatistics(BaseModel):
    """Aggregated progress for a group of learners."""

    total_learners: int
    active_learners: int
    average_completion: float
    average_score: float
    units_completed: int
    total_learning_time_seconds: float = 0.0
