"""One-time milestone detection over a non-decreasing percentage."""

from collections.abc import Iterable

from watchgate.progress.models import ProgressRecord

from .policy import DEFAULT_MILESTONES


class MilestoneEvaluator:
    """Reports which thresholds a percentage crossed for the first time."""

    def __init__(self, thresholds: Iterable[int] = DEFAULT_MILESTONES) -> None:
        self.thresholds: tuple[int, ...] = tuple(sorted(set(thresholds)))

    def evaluate(self, percent_watched: float, already_fired: set[int]) -> set[int]:
        """Return thresholds reached by ``percent_watched`` that have not fired yet.

        Sparse sampling can cross several thresholds at once, so the result
        may hold more than one value. The caller unions it into
        ``already_fired`` exactly once.
        """
        return {t for t in self.thresholds if percent_watched >= t and t not in already_fired}

    def evaluate_and_record(self, percent_watched: float, already_fired: set[int]) -> list[int]:
        """Evaluate, union the result into ``already_fired`` and return it ascending."""
        newly_crossed = self.evaluate(percent_watched, already_fired)
        already_fired |= newly_crossed
        return sorted(newly_crossed)

    def seed_from(self, record: ProgressRecord | None) -> set[int]:
        """Build the fired set for a resumed session so stored milestones never fire again."""
        if record is None:
            return set()
        return {t for t in record.milestones_reached if t in self.thresholds}

    def next_milestone(self, already_fired: set[int]) -> int | None:
        """Return the lowest threshold that has not fired, if any."""
        return next((t for t in self.thresholds if t not in already_fired), None)
