"""Resume position for a new playback session."""

from __future__ import annotations

import logging

from watchgate.progress.models import ProgressRecord

from .accumulator import is_valid_duration


logger = logging.getLogger(__name__)


def resume_position(
    record: ProgressRecord | None,
    duration_seconds: float | None,
    *,
    unlock_threshold: float = 90.0,
) -> float | None:
    """Convert a stored percentage into a seek target.

    Returns None when there is nothing to resume: no record, unknown
    duration, or a unit already watched past the unlock threshold (a
    rewatch starts from zero).
    """
    if record is None or not is_valid_duration(duration_seconds):
        return None
    if record.video_completed or record.percent_watched >= unlock_threshold:
        return None
    return record.percent_watched / 100 * duration_seconds


class ResumeCalculator:
    """Issues at most one resume seek per playback session.

    The first valid duration triggers the seek; later duration
    corrections are ignored, and ``cancel`` drops a seek that has not
    happened yet.
    """

    def __init__(self, record: ProgressRecord | None, *, unlock_threshold: float = 90.0) -> None:
        self.record = record
        self.unlock_threshold = unlock_threshold
        self._settled = False

    @property
    def pending(self) -> bool:
        return not self._settled

    def position_for(self, duration_seconds: float | None) -> float | None:
        """Return the seek target the first time a valid duration is known."""
        if self._settled or not is_valid_duration(duration_seconds):
            return None
        self._settled = True
        position = resume_position(self.record, duration_seconds, unlock_threshold=self.unlock_threshold)
        if position is None or position <= 0:
            return None
        logger.debug("Resuming at %.1fs of %.1fs", position, duration_seconds)
        return position

    def cancel(self) -> None:
        self._settled = True
