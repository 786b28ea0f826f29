from watchgate.progress.models import ProgressRecord
from watchgate.tracking.milestones import MilestoneEvaluator


class TestMilestoneEvaluator:
    def test_crossing_several_thresholds_at_once(self) -> None:
        evaluator = MilestoneEvaluator()

        assert evaluator.evaluate(90.0, set()) == {25, 50, 75, 90}

    def test_already_fired_thresholds_are_skipped(self) -> None:
        evaluator = MilestoneEvaluator()

        assert evaluator.evaluate(80.0, {25, 50}) == {75}
        assert evaluator.evaluate(24.9, set()) == set()

    def test_evaluate_and_record_fires_each_threshold_once(self) -> None:
        evaluator = MilestoneEvaluator()
        fired: set[int] = set()

        assert evaluator.evaluate_and_record(30.0, fired) == [25]
        assert evaluator.evaluate_and_record(30.0, fired) == []
        assert evaluator.evaluate_and_record(100.0, fired) == [50, 75, 90]
        assert fired == {25, 50, 75, 90}

    def test_seed_from_stored_record(self) -> None:
        evaluator = MilestoneEvaluator()
        record = ProgressRecord(learner_id="l1", unit_id="u1", percent_watched=55.0, milestones_reached=[25, 50])

        fired = evaluator.seed_from(record)

        assert fired == {25, 50}
        assert evaluator.evaluate_and_record(60.0, fired) == []
        assert evaluator.seed_from(None) == set()

    def test_custom_thresholds_are_sorted(self) -> None:
        evaluator = MilestoneEvaluator([80, 10, 80])

        assert evaluator.thresholds == (10, 80)
        assert evaluator.next_milestone({10}) == 80
        assert evaluator.next_milestone({10, 80}) is None
