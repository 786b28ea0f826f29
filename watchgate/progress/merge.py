"""Monotonic merge of progress records.

Every store applies writes through ``apply_update`` so that concurrent,
unordered writers converge: the join is commutative, associative and
idempotent. Percentages only grow, milestone sets only grow, flags only
flip on, and the first completion timestamp wins. Time spent is cumulative,
so it joins with max as well.
"""

import logging
from collections.abc import Iterable
from datetime import datetime

from .models import DEFAULT_MILESTONES, ProgressRecord, ProgressUpdate, utc_now


logger = logging.getLogger(__name__)


def _min_present(left: datetime | None, right: datetime | None) -> datetime | None:
    if left is None:
        return right
    if right is None:
        return left
    return min(left, right)


def _max_present(left: datetime | None, right: datetime | None) -> datetime | None:
    if left is None:
        return right
    if right is None:
        return left
    return max(left, right)


def _score_key(record: ProgressRecord) -> tuple[float, int, int]:
    score = record.activity_score_percent if record.activity_score_percent is not None else -1.0
    return (score, record.activity_correct_count, record.activity_total_count)


def enforce_unlock_invariant(record: ProgressRecord, unlock_threshold: float) -> ProgressRecord:
    """Force ``video_unlocked_activity`` on when the record has earned it."""
    if record.video_unlocked_activity:
        return record
    if record.video_completed or record.percent_watched >= unlock_threshold:
        return record.model_copy(update={"video_unlocked_activity": True})
    return record


def merge_records(left: ProgressRecord, right: ProgressRecord, *, unlock_threshold: float) -> ProgressRecord:
    """Join two records for the same learner and unit."""
    if (left.learner_id, left.unit_id) != (right.learner_id, right.unit_id):
        msg = (
            f"Cannot merge progress for different keys: "
            f"{left.learner_id}/{left.unit_id} and {right.learner_id}/{right.unit_id}"
        )
        raise ValueError(msg)

    # Position is the one non-monotonic field: newest write wins, ties go to the furthest position
    newest = max((left, right), key=lambda r: (r.updated_at, r.last_position_seconds))
    best_score = max((left, right), key=_score_key)
    activity_time = max(left.activity_time_seconds, right.activity_time_seconds)

    merged = ProgressRecord(
        learner_id=left.learner_id,
        unit_id=left.unit_id,
        percent_watched=max(left.percent_watched, right.percent_watched),
        milestones_reached=left.milestones_reached | right.milestones_reached,
        video_unlocked_activity=left.video_unlocked_activity or right.video_unlocked_activity,
        video_completed=left.video_completed or right.video_completed,
        activity_completed=left.activity_completed or right.activity_completed,
        activity_attempts=max(left.activity_attempts, right.activity_attempts),
        last_position_seconds=newest.last_position_seconds,
        activity_started_at=_min_present(left.activity_started_at, right.activity_started_at),
        completed_at=_min_present(left.completed_at, right.completed_at),
        activity_score_percent=best_score.activity_score_percent,
        activity_correct_count=best_score.activity_correct_count,
        activity_total_count=best_score.activity_total_count,
        activity_score_updated_at=_max_present(left.activity_score_updated_at, right.activity_score_updated_at),
        activity_time_seconds=activity_time,
        total_time_seconds=max(left.total_time_seconds, right.total_time_seconds, activity_time),
        created_at=min(left.created_at, right.created_at),
        updated_at=max(left.updated_at, right.updated_at),
    )
    return enforce_unlock_invariant(merged, unlock_threshold)


def update_to_record(
    update: ProgressUpdate,
    *,
    learner_id: str,
    unit_id: str,
    now: datetime | None = None,
) -> ProgressRecord:
    """Lift a partial update into a full record using the join's identity values."""
    timestamp = update.updated_at or now or utc_now()
    return ProgressRecord(
        learner_id=learner_id,
        unit_id=unit_id,
        percent_watched=update.percent_watched or 0.0,
        milestones_reached=update.milestones_reached or set(),
        video_unlocked_activity=bool(update.video_unlocked_activity),
        video_completed=bool(update.video_completed),
        activity_completed=bool(update.activity_completed),
        activity_attempts=update.activity_attempts or 0,
        last_position_seconds=update.last_position_seconds or 0.0,
        activity_started_at=update.activity_started_at,
        completed_at=update.completed_at,
        activity_score_percent=update.activity_score_percent,
        activity_correct_count=update.activity_correct_count or 0,
        activity_total_count=update.activity_total_count or 0,
        activity_score_updated_at=update.activity_score_updated_at,
        activity_time_seconds=update.activity_time_seconds or 0.0,
        total_time_seconds=max(update.total_time_seconds or 0.0, update.activity_time_seconds or 0.0),
        created_at=timestamp,
        updated_at=timestamp,
    )


def apply_update(
    current: ProgressRecord | None,
    update: ProgressUpdate,
    *,
    learner_id: str,
    unit_id: str,
    unlock_threshold: float,
    milestone_thresholds: Iterable[int] = DEFAULT_MILESTONES,
    now: datetime | None = None,
) -> ProgressRecord:
    """Merge a partial update into the stored record (or create one).

    Milestones outside ``milestone_thresholds`` are dropped from the update.
    """
    allowed = set(milestone_thresholds)
    if update.milestones_reached and not update.milestones_reached <= allowed:
        logger.warning(
            "Dropping unknown milestones %s for learner %s, unit %s",
            sorted(update.milestones_reached - allowed),
            learner_id,
            unit_id,
        )
        update = update.model_copy(update={"milestones_reached": update.milestones_reached & allowed})

    incoming = update_to_record(update, learner_id=learner_id, unit_id=unit_id, now=now)
    if current is None:
        return enforce_unlock_invariant(incoming, unlock_threshold)

    merged = merge_records(current, incoming, unlock_threshold=unlock_threshold)
    if update.last_position_seconds is None:
        merged = merged.model_copy(update={"last_position_seconds": current.last_position_seconds})
    return merged
