import math

import pytest

from watchgate.progress.models import ProgressRecord
from watchgate.tracking.resume import ResumeCalculator, resume_position


def make_record(**fields) -> ProgressRecord:
    return ProgressRecord(learner_id="l1", unit_id="u1", **fields)


class TestResumePosition:
    def test_partial_watch_resumes_proportionally(self) -> None:
        record = make_record(percent_watched=50 / 60 * 100)

        assert resume_position(record, 60.0) == pytest.approx(50.0)

    def test_nothing_to_resume(self) -> None:
        assert resume_position(None, 60.0) is None
        assert resume_position(make_record(percent_watched=40.0), None) is None
        assert resume_position(make_record(percent_watched=40.0), math.nan) is None

    def test_unlocked_units_restart_from_zero(self) -> None:
        assert resume_position(make_record(percent_watched=95.0), 60.0) is None
        assert resume_position(make_record(percent_watched=30.0, video_completed=True), 60.0) is None

    def test_threshold_is_configurable(self) -> None:
        record = make_record(percent_watched=80.0)

        assert resume_position(record, 100.0, unlock_threshold=75.0) is None
        assert resume_position(record, 100.0) == pytest.approx(80.0)


class TestResumeCalculator:
    def test_first_valid_duration_wins(self) -> None:
        calculator = ResumeCalculator(make_record(percent_watched=50.0))

        assert calculator.position_for(0.0) is None
        assert calculator.pending
        assert calculator.position_for(100.0) == pytest.approx(50.0)
        assert not calculator.pending
        assert calculator.position_for(200.0) is None

    def test_zero_position_issues_no_seek(self) -> None:
        calculator = ResumeCalculator(make_record(percent_watched=0.0))

        assert calculator.position_for(100.0) is None
        assert not calculator.pending

    def test_cancel_drops_pending_seek(self) -> None:
        calculator = ResumeCalculator(make_record(percent_watched=50.0))
        calculator.cancel()

        assert calculator.position_for(100.0) is None
