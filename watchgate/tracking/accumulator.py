"""Deduplicating watch-time accumulator.

Wall-clock tracking over-counts when a learner rewinds and replays a
segment. Instead the timeline is split into one-second buckets and only
buckets that playback actually moved through are counted, however many
times they are replayed. Scrubbing forward past unseen footage counts
nothing, so the measure under-counts rather than over-counts.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass

from watchgate.exceptions import InvalidDurationError


logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class AccumulatorSnapshot:
    """Point-in-time view of the accumulator."""

    percent_watched: float
    unique_seconds_watched: int
    duration_known: bool
    last_position_seconds: float


def is_valid_duration(duration: float | None) -> bool:
    """Return True for finite, positive durations."""
    return duration is not None and math.isfinite(duration) and duration > 0


class WatchAccumulator:
    """Turns position samples into a monotonic watched percentage.

    Bucket ``k`` stands for second ``[k, k + 1)`` of the timeline. When a
    sample moves forward from the previous one by no more than
    ``max_sample_gap_seconds`` the span between them counts as watched;
    rewinds and larger jumps only move the cursor.
    """

    def __init__(self, duration_seconds: float | None = None, *, max_sample_gap_seconds: float = 10.0) -> None:
        self.duration_seconds: float | None = None
        self.watched_buckets: set[int] = set()
        self.last_position_seconds = 0.0
        self.max_sample_gap_seconds = max_sample_gap_seconds
        self._high_water = 0.0
        self._ended = False
        if duration_seconds is not None:
            self.set_duration(duration_seconds)

    @property
    def duration_known(self) -> bool:
        return self.duration_seconds is not None

    @property
    def ended(self) -> bool:
        return self._ended

    @property
    def ready(self) -> bool:
        """Whether the percentage can drive milestone and unlock decisions."""
        return self.duration_known or self._ended

    @property
    def unique_seconds_watched(self) -> int:
        if self.duration_seconds is None:
            return len(self.watched_buckets)
        limit = math.ceil(self.duration_seconds)
        return sum(1 for bucket in self.watched_buckets if bucket < limit)

    @property
    def percent_watched(self) -> float:
        return self._refresh()

    def set_duration(self, duration_seconds: float) -> AccumulatorSnapshot:
        """Record the video length, keeping every bucket observed so far.

        Raises
        ------
            InvalidDurationError: If the duration is zero, negative or NaN.
        """
        if not is_valid_duration(duration_seconds):
            raise InvalidDurationError(duration_seconds)
        if self.duration_seconds != duration_seconds:
            logger.debug("Duration changed from %s to %s", self.duration_seconds, duration_seconds)
        self.duration_seconds = float(duration_seconds)
        return self.snapshot()

    def observe(self, position_seconds: float, duration_seconds: float | None = None) -> AccumulatorSnapshot:
        """Fold one position sample into the accumulator."""
        if duration_seconds is not None:
            if is_valid_duration(duration_seconds):
                self.duration_seconds = float(duration_seconds)
            else:
                logger.debug("Ignoring invalid duration %r on sample", duration_seconds)

        if position_seconds is None or not math.isfinite(position_seconds) or position_seconds < 0:
            logger.debug("Ignoring invalid position sample %r", position_seconds)
            return self.snapshot()

        position = self._clamp(float(position_seconds))
        delta = position - self.last_position_seconds
        if 0 < delta <= self.max_sample_gap_seconds:
            self._fill(self.last_position_seconds, position)
        self.last_position_seconds = position
        return self.snapshot()

    def mark_ended(self) -> AccumulatorSnapshot:
        """Treat the video as fully watched (players may never emit tail samples)."""
        self._ended = True
        if self.duration_seconds is not None:
            self.last_position_seconds = self.duration_seconds
        return self.snapshot()

    def reposition(self, position_seconds: float) -> None:
        """Move the cursor without counting anything, e.g. after a seek command."""
        self.last_position_seconds = self._clamp(max(0.0, float(position_seconds)))

    def seed_prefix(self, seconds: float) -> None:
        """Count the first ``seconds`` of the timeline as already watched."""
        if seconds > 0:
            self.watched_buckets.update(range(math.floor(self._clamp(seconds))))
        self._refresh()

    def raise_floor(self, percent_watched: float) -> None:
        """Never report less than ``percent_watched`` from now on."""
        self._high_water = max(self._high_water, min(100.0, max(0.0, percent_watched)))

    def snapshot(self) -> AccumulatorSnapshot:
        return AccumulatorSnapshot(
            percent_watched=self._refresh(),
            unique_seconds_watched=self.unique_seconds_watched,
            duration_known=self.duration_known,
            last_position_seconds=self.last_position_seconds,
        )

    def _clamp(self, position: float) -> float:
        if self.duration_seconds is None:
            return position
        return min(position, self.duration_seconds)

    def _fill(self, start: float, end: float) -> None:
        self.watched_buckets.update(range(math.floor(start), math.ceil(end)))

    def _computed_percent(self) -> float:
        if self._ended:
            return 100.0
        if self.duration_seconds is None:
            return 0.0
        return min(100.0, self.unique_seconds_watched * 100.0 / self.duration_seconds)

    def _refresh(self) -> float:
        # High-water mark: a later, longer duration must not lower what was reported
        self._high_water = max(self._high_water, self._computed_percent())
        return self._high_water
