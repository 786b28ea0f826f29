import math
import random

import pytest

from watchgate.exceptions import InvalidDurationError
from watchgate.tracking.accumulator import WatchAccumulator, is_valid_duration


def watch(accumulator: WatchAccumulator, start: int, end: int, step: int = 1) -> None:
    for position in range(start, end + 1, step):
        accumulator.observe(float(position))


class TestWatchAccumulator:
    """Deduplicated watch-time accounting."""

    def test_sparse_samples_count_contiguous_playback(self) -> None:
        accumulator = WatchAccumulator(100.0)
        watch(accumulator, 10, 90, step=10)

        # 0 -> 10 is a forward move of exactly the gap, so it counts too
        assert accumulator.percent_watched == pytest.approx(90.0)
        assert accumulator.unique_seconds_watched == 90

    def test_partial_watch_of_short_video(self) -> None:
        accumulator = WatchAccumulator(60.0)
        watch(accumulator, 0, 50)

        assert accumulator.percent_watched == pytest.approx(50 / 60 * 100)

    def test_rewatching_a_segment_counts_once(self) -> None:
        once = WatchAccumulator(100.0)
        watch(once, 0, 10)

        repeated = WatchAccumulator(100.0)
        for _ in range(5):
            repeated.observe(0.0)
            watch(repeated, 1, 10)

        assert repeated.percent_watched == once.percent_watched == pytest.approx(10.0)

    def test_scrubbing_forward_counts_nothing(self) -> None:
        accumulator = WatchAccumulator(100.0)
        watch(accumulator, 0, 5)
        accumulator.observe(80.0)

        assert accumulator.unique_seconds_watched == 5
        assert accumulator.last_position_seconds == 80.0

    def test_rewind_only_moves_cursor(self) -> None:
        accumulator = WatchAccumulator(100.0)
        watch(accumulator, 0, 20)
        accumulator.observe(5.0)

        assert accumulator.unique_seconds_watched == 20
        assert accumulator.last_position_seconds == 5.0

    def test_unknown_duration_reports_zero_but_keeps_buckets(self) -> None:
        accumulator = WatchAccumulator()
        watch(accumulator, 0, 30)

        snapshot = accumulator.snapshot()
        assert snapshot.percent_watched == 0.0
        assert snapshot.duration_known is False
        assert accumulator.ready is False

        accumulator.set_duration(60.0)
        assert accumulator.percent_watched == pytest.approx(50.0)
        assert accumulator.ready is True

    def test_duration_on_sample_is_applied(self) -> None:
        accumulator = WatchAccumulator()
        accumulator.observe(0.0, 20.0)
        accumulator.observe(10.0, 20.0)

        assert accumulator.duration_known
        assert accumulator.percent_watched == pytest.approx(50.0)

    @pytest.mark.parametrize("duration", [0.0, -5.0, math.nan, math.inf])
    def test_invalid_duration_is_rejected(self, duration: float) -> None:
        accumulator = WatchAccumulator()

        with pytest.raises(InvalidDurationError):
            accumulator.set_duration(duration)
        assert not is_valid_duration(duration)
        assert accumulator.percent_watched == 0.0

    def test_longer_duration_never_lowers_percent(self) -> None:
        accumulator = WatchAccumulator(50.0)
        watch(accumulator, 0, 50)
        assert accumulator.percent_watched == pytest.approx(100.0)

        accumulator.set_duration(100.0)
        assert accumulator.percent_watched == pytest.approx(100.0)

    def test_positions_are_clamped_to_duration(self) -> None:
        accumulator = WatchAccumulator(10.0)
        watch(accumulator, 0, 9)
        accumulator.observe(14.0)

        assert accumulator.last_position_seconds == 10.0
        assert accumulator.unique_seconds_watched == 10
        assert accumulator.percent_watched == pytest.approx(100.0)

    def test_invalid_positions_are_ignored(self) -> None:
        accumulator = WatchAccumulator(100.0)
        watch(accumulator, 0, 5)
        accumulator.observe(-3.0)
        accumulator.observe(math.nan)

        assert accumulator.last_position_seconds == 5.0
        assert accumulator.unique_seconds_watched == 5

    def test_mark_ended_reports_full_watch(self) -> None:
        accumulator = WatchAccumulator(100.0)
        watch(accumulator, 0, 40)
        accumulator.mark_ended()

        assert accumulator.ended
        assert accumulator.percent_watched == 100.0

    def test_mark_ended_without_duration_is_ready(self) -> None:
        accumulator = WatchAccumulator()
        accumulator.mark_ended()

        assert accumulator.ready
        assert accumulator.percent_watched == 100.0

    def test_reposition_does_not_count(self) -> None:
        accumulator = WatchAccumulator(100.0)
        accumulator.reposition(40.0)
        accumulator.observe(41.0)

        assert accumulator.unique_seconds_watched == 1
        assert accumulator.watched_buckets == {40}

    def test_seed_prefix_continues_previous_session(self) -> None:
        accumulator = WatchAccumulator(60.0)
        accumulator.seed_prefix(50.0)
        accumulator.reposition(50.0)
        watch(accumulator, 51, 60)

        assert accumulator.percent_watched == pytest.approx(100.0)

    def test_raise_floor_keeps_remote_progress(self) -> None:
        accumulator = WatchAccumulator(100.0)
        accumulator.raise_floor(70.0)
        watch(accumulator, 0, 10)

        assert accumulator.percent_watched == pytest.approx(70.0)

    def test_percent_is_non_decreasing_for_random_samples(self) -> None:
        rng = random.Random(42)
        accumulator = WatchAccumulator(300.0)
        previous = 0.0

        for _ in range(2000):
            accumulator.observe(rng.uniform(0, 300))
            current = accumulator.percent_watched
            assert current >= previous
            assert 0.0 <= current <= 100.0
            previous = current

    def test_bucket_count_never_exceeds_duration(self) -> None:
        accumulator = WatchAccumulator(12.5)
        for _ in range(3):
            watch(accumulator, 0, 20)

        assert accumulator.unique_seconds_watched <= math.ceil(12.5)
        assert accumulator.percent_watched == 100.0
