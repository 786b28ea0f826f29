from datetime import UTC, datetime, timedelta

import pytest

from watchgate.progress.models import ProgressRecord
from watchgate.progress.statistics import class_statistics, summarize_learner


NOW = datetime(2026, 3, 10, 12, 0, tzinfo=UTC)


def make_record(learner_id: str, unit_id: str, **fields) -> ProgressRecord:
    return ProgressRecord(learner_id=learner_id, unit_id=unit_id, **fields)


class TestSummarizeLearner:
    def test_summary(self) -> None:
        records = [
            make_record("a", "u1", percent_watched=100.0, video_unlocked_activity=True, activity_completed=True,
                        activity_score_percent=80.0, updated_at=NOW - timedelta(days=1)),
            make_record("a", "u2", percent_watched=50.0, total_time_seconds=90.0, updated_at=NOW),
        ]

        summary = summarize_learner("a", records)

        assert summary.units_started == 2
        assert summary.units_unlocked == 1
        assert summary.units_completed == 1
        assert summary.average_percent_watched == pytest.approx(75.0)
        assert summary.average_score == pytest.approx(40.0)
        assert summary.total_time_seconds == 90.0
        assert summary.last_active_at == NOW

    def test_empty_summary(self) -> None:
        summary = summarize_learner("nobody", [])

        assert summary.units_started == 0
        assert summary.average_percent_watched == 0.0
        assert summary.last_active_at is None
        assert summary.total_time_seconds == 0.0


class TestClassStatistics:
    def test_statistics(self) -> None:
        records = {
            "a": [
                make_record("a", "u1", activity_completed=True, activity_score_percent=90.0, updated_at=NOW),
                make_record("a", "u2", activity_time_seconds=60.0, total_time_seconds=60.0,
                            updated_at=NOW - timedelta(days=2)),
            ],
            "b": [
                make_record("b", "u1", activity_completed=True, activity_score_percent=60.0,
                            total_time_seconds=240.0, updated_at=NOW - timedelta(days=30)),
            ],
            "c": [],
        }

        stats = class_statistics(records, now=NOW)

        assert stats.total_learners == 3
        assert stats.active_learners == 1
        assert stats.units_completed == 2
        assert stats.average_completion == pytest.approx(67.0)
        assert stats.average_score == pytest.approx(50.0)
        assert stats.total_learning_time_seconds == 300.0

    def test_active_window_is_configurable(self) -> None:
        records = {"b": [make_record("b", "u1", updated_at=NOW - timedelta(days=30))]}

        stats = class_statistics(records, now=NOW, active_window=timedelta(days=31))

        assert stats.active_learners == 1

    def test_empty_class(self) -> None:
        stats = class_statistics({}, now=NOW)

        assert stats.total_learners == 0
        assert stats.average_completion == 0.0
        assert stats.average_score == 0.0
        assert stats.total_learning_time_seconds == 0.0
