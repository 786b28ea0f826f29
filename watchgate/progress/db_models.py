"""Database models for watch progress."""

from __future__ import annotations

import uuid
from datetime import UTC, datetime
from uuid import UUID as UUID_TYPE

from sqlalchemy import JSON, Boolean, DateTime, Float, Integer, String, UniqueConstraint, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from watchgate.database.base import Base


def _utc_now() -> datetime:
    return datetime.now(UTC)


class UnitProgress(Base):
    """Progress of one learner through one unit's video and activity."""

    __tablename__ = "unit_progress"
    __table_args__ = (UniqueConstraint("learner_id", "unit_id", name="uq_learner_unit"),)

    id: Mapped[UUID_TYPE] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    learner_id: Mapped[str] = mapped_column(String(128), nullable=False, index=True)
    unit_id: Mapped[str] = mapped_column(String(128), nullable=False, index=True)

    # Video
    percent_watched: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    milestones_reached: Mapped[list[int]] = mapped_column(JSON, nullable=False, default=list)
    video_unlocked_activity: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    video_completed: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    last_position_seconds: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)

    # Activity
    activity_completed: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    activity_attempts: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    activity_started_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    activity_score_percent: Mapped[float | None] = mapped_column(Float, nullable=True)
    activity_correct_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    activity_total_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    activity_score_updated_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    # Time spent, cumulative
    activity_time_seconds: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    total_time_seconds: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)

    # Timestamps
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=_utc_now)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=_utc_now)

    def __repr__(self) -> str:
        """Return string representation of the progress row."""
        return (
            f"<UnitProgress(learner_id={self.learner_id}, unit_id={self.unit_id}, "
            f"percent_watched={self.percent_watched})>"
        )
