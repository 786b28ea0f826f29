"""Business logic for progress tracking over any progress store."""

import asyncio
import logging
from datetime import datetime, timedelta

from watchgate.exceptions import InvalidMilestoneError, ProgressNotFoundError
from watchgate.tracking.policy import TrackingPolicy
from watchgate.tracking.resume import resume_position
from watchgate.tracking.unlock import UnlockPolicy

from .models import (
    ActivityScore,
    ClassStatistics,
    LearnerSummary,
    ProgressRecord,
    ProgressUpdate,
    ResumeResponse,
    utc_now,
)
from .protocols import ReportingProgressStore
from .statistics import DEFAULT_ACTIVE_WINDOW, class_statistics, summarize_learner


logger = logging.getLogger(__name__)


class ProgressService:
    """Service for reading, merging and advancing unit progress."""

    def __init__(
        self,
        store: ReportingProgressStore,
        policy: TrackingPolicy | None = None,
        *,
        active_window: timedelta = DEFAULT_ACTIVE_WINDOW,
    ) -> None:
        """Initialize progress service."""
        self.store = store
        self.policy = policy or TrackingPolicy()
        self.active_window = active_window

    async def get_progress(self, learner_id: str, unit_id: str) -> ProgressRecord:
        """Get the stored record.

        Raises
        ------
            ProgressNotFoundError: If nothing was stored for the pair.
        """
        record = await self.store.read_progress(learner_id, unit_id)
        if record is None:
            raise ProgressNotFoundError(learner_id, unit_id)
        return record

    async def merge_progress(self, learner_id: str, unit_id: str, update: ProgressUpdate) -> ProgressRecord:
        """Join a partial update into the stored record.

        Completion flags are held to the same minimum exposure as a manual
        override: a write cannot mark a barely watched video as done.

        Raises
        ------
            InvalidMilestoneError: If the update names unknown milestones.
            ManualOverrideNotAllowedError: If completion is claimed too early.
        """
        if update.milestones_reached:
            unknown = update.milestones_reached - set(self.policy.milestone_thresholds)
            if unknown:
                raise InvalidMilestoneError(unknown, self.policy.milestone_thresholds)
        if update.video_completed or update.video_unlocked_activity:
            record = await self.store.read_progress(learner_id, unit_id)
            unlock = self._unlock_policy_for(record)
            stored_percent = record.percent_watched if record else 0.0
            unlock.manual_override(max(stored_percent, update.percent_watched or 0.0))

        record = await self.store.merge_progress(learner_id, unit_id, update)
        logger.info(f"Merged progress for learner {learner_id}, unit {unit_id}: {record.percent_watched:.1f}%")
        return record

    async def manual_override_complete(self, learner_id: str, unit_id: str) -> ProgressRecord:
        """Mark the video completed on the learner's request.

        Raises
        ------
            ManualOverrideNotAllowedError: If less than the minimum was watched.
        """
        record = await self.store.read_progress(learner_id, unit_id)
        unlock = self._unlock_policy_for(record)
        percent = record.percent_watched if record else 0.0
        unlock.manual_override(percent)

        update = ProgressUpdate(video_completed=True, video_unlocked_activity=True)
        record = await self.store.merge_progress(learner_id, unit_id, update)
        logger.info(f"Manual completion for learner {learner_id}, unit {unit_id} at {percent:.1f}%")
        return record

    async def get_resume(self, learner_id: str, unit_id: str, duration_seconds: float) -> ResumeResponse:
        """Compute where a new playback session should start."""
        record = await self.store.read_progress(learner_id, unit_id)
        seek = resume_position(record, duration_seconds, unlock_threshold=self.policy.unlock_threshold)
        return ResumeResponse(
            learner_id=learner_id,
            unit_id=unit_id,
            seek_seconds=seek if seek and seek > 0 else None,
        )

    async def begin_activity(self, learner_id: str, unit_id: str, now: datetime | None = None) -> ProgressRecord:
        """Record that the learner opened the follow-on activity.

        Raises
        ------
            ActivityLockedError: If the video has not unlocked the activity.
        """
        unlock = await self._load_unlock_policy(learner_id, unit_id)
        unlock.begin_activity(now or utc_now())
        update = ProgressUpdate(
            video_unlocked_activity=True,
            activity_started_at=unlock.activity_started_at,
        )
        return await self.store.merge_progress(learner_id, unit_id, update)

    async def record_activity_time(
        self,
        learner_id: str,
        unit_id: str,
        time_seconds: float,
        started_at: datetime | None = None,
        now: datetime | None = None,
    ) -> ProgressRecord:
        """Record cumulative time spent in the follow-on activity.

        Reporting time implies the activity was opened, so this also begins it.

        Raises
        ------
            ActivityLockedError: If the video has not unlocked the activity.
        """
        unlock = await self._load_unlock_policy(learner_id, unit_id)
        unlock.begin_activity(started_at or now or utc_now())
        update = ProgressUpdate(
            video_unlocked_activity=True,
            activity_started_at=unlock.activity_started_at,
            activity_time_seconds=time_seconds,
        )
        return await self.store.merge_progress(learner_id, unit_id, update)

    async def complete_activity(
        self,
        learner_id: str,
        unit_id: str,
        score: ActivityScore | None = None,
        now: datetime | None = None,
    ) -> ProgressRecord:
        """Record a finished attempt at the follow-on activity.

        Raises
        ------
            ActivityLockedError: If the video has not unlocked the activity.
        """
        timestamp = now or utc_now()
        unlock = await self._load_unlock_policy(learner_id, unit_id)
        unlock.complete_activity(timestamp)
        update = ProgressUpdate(
            video_unlocked_activity=True,
            activity_completed=True,
            activity_attempts=unlock.activity_attempts,
            activity_started_at=unlock.activity_started_at,
            completed_at=unlock.completed_at,
        )
        if score is not None:
            update.activity_score_percent = score.percent
            update.activity_correct_count = score.correct_count
            update.activity_total_count = score.total_count
            update.activity_score_updated_at = timestamp

        record = await self.store.merge_progress(learner_id, unit_id, update)
        logger.info(
            f"Activity completed for learner {learner_id}, unit {unit_id} (attempt {record.activity_attempts})"
        )
        return record

    async def delete_progress(self, learner_id: str, unit_id: str) -> None:
        """Delete the stored record.

        Raises
        ------
            ProgressNotFoundError: If nothing was stored for the pair.
        """
        deleted = await self.store.delete_progress(learner_id, unit_id)
        if not deleted:
            raise ProgressNotFoundError(learner_id, unit_id)
        logger.info(f"Deleted progress for learner {learner_id}, unit {unit_id}")

    async def learner_summary(self, learner_id: str) -> LearnerSummary:
        """Summarize a learner's progress across all units."""
        records = await self.store.read_learner_progress(learner_id)
        return summarize_learner(learner_id, records)

    async def class_statistics(self, learner_ids: list[str], now: datetime | None = None) -> ClassStatistics:
        """Aggregate progress for a group of learners."""
        unique_ids = list(dict.fromkeys(learner_ids))
        results = await asyncio.gather(*(self.store.read_learner_progress(lid) for lid in unique_ids))
        return class_statistics(dict(zip(unique_ids, results, strict=True)), now=now, active_window=self.active_window)

    async def _load_unlock_policy(self, learner_id: str, unit_id: str) -> UnlockPolicy:
        record = await self.store.read_progress(learner_id, unit_id)
        return self._unlock_policy_for(record)

    def _unlock_policy_for(self, record: ProgressRecord | None) -> UnlockPolicy:
        return UnlockPolicy.from_record(
            record,
            unlock_threshold=self.policy.unlock_threshold,
            manual_override_min_percent=self.policy.manual_override_min_percent,
        )
