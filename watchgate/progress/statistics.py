"""Progress reporting for learners and classes."""

from collections.abc import Iterable, Mapping
from datetime import datetime, timedelta

from .models import ClassStatistics, LearnerSummary, ProgressRecord, utc_now


DEFAULT_ACTIVE_WINDOW = timedelta(days=7)


def _average(values: list[float]) -> float:
    return sum(values) / len(values) if values else 0.0


def summarize_learner(learner_id: str, records: Iterable[ProgressRecord]) -> LearnerSummary:
    """Summarize every unit a learner has touched.

    Units without a scored attempt count as 0 towards the average score.
    """
    records = list(records)
    return LearnerSummary(
        learner_id=learner_id,
        units_started=len(records),
        units_unlocked=sum(1 for r in records if r.video_unlocked_activity),
        units_completed=sum(1 for r in records if r.activity_completed),
        average_percent_watched=round(_average([r.percent_watched for r in records]), 1),
        average_score=round(_average([r.activity_score_percent or 0.0 for r in records]), 1),
        total_time_seconds=sum(r.total_time_seconds for r in records),
        last_active_at=max((r.updated_at for r in records), default=None),
    )


def class_statistics(
    records_by_learner: Mapping[str, Iterable[ProgressRecord]],
    *,
    now: datetime | None = None,
    active_window: timedelta = DEFAULT_ACTIVE_WINDOW,
) -> ClassStatistics:
    """Aggregate progress across a class.

    A learner is active when any of their records changed within
    ``active_window``. Completion is the share of started units whose
    activity was completed. Learning time is the sum of every unit's
    ``total_time_seconds``.
    """
    cutoff = (now or utc_now()) - active_window
    all_records: list[ProgressRecord] = []
    active_learners = 0

    for records in records_by_learner.values():
        learner_records = list(records)
        all_records.extend(learner_records)
        if any(r.updated_at >= cutoff for r in learner_records):
            active_learners += 1

    units_completed = sum(1 for r in all_records if r.activity_completed)
    average_completion = units_completed / len(all_records) * 100 if all_records else 0.0

    return ClassStatistics(
        total_learners=len(records_by_learner),
        active_learners=active_learners,
        average_completion=round(average_completion),
        average_score=round(_average([r.activity_score_percent or 0.0 for r in all_records])),
        units_completed=units_completed,
        total_learning_time_seconds=sum(r.total_time_seconds for r in all_records),
    )
