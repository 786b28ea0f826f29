"""One playback session: samples in, milestones and unlock decisions out.

The session is the sink for a ``PlaybackSampleSource``. Sampling callbacks
are synchronous and never wait on storage; writes are scheduled as tasks
and carry the full cumulative state, so a failed write is repaired by the
next one.
"""

from __future__ import annotations

import asyncio
import logging
from types import TracebackType

from watchgate.exceptions import InvalidDurationError, PersistenceError, SampleSourceError, WatchgateError
from watchgate.players.protocols import PlaybackSampleSource
from watchgate.progress.models import ActivityScore, ProgressRecord, ProgressUpdate
from watchgate.progress.protocols import ProgressStore, Unsubscribe

from .accumulator import WatchAccumulator
from .milestones import MilestoneEvaluator
from .policy import TrackingPolicy
from .resume import ResumeCalculator
from .unlock import UnlockPolicy, UnlockState


logger = logging.getLogger(__name__)


def _score_key(score: ActivityScore) -> tuple[float, int, int]:
    return (score.percent, score.correct_count, score.total_count)


class SessionListener:
    """UI-facing events raised by a ``PlaybackSession``.

    Every method is a no-op; subclass and override the ones you need.
    """

    def on_milestone(self, threshold: int) -> None:
        pass

    def on_unlocked(self) -> None:
        pass

    def on_video_completed(self) -> None:
        pass

    def on_state_changed(self, state: UnlockState) -> None:
        pass

    def on_error(self, error: WatchgateError) -> None:
        pass

    def on_seek(self, seconds: float) -> None:
        pass


class PlaybackSession:
    """Tracks one learner watching one unit's video."""

    def __init__(
        self,
        learner_id: str,
        unit_id: str,
        store: ProgressStore,
        *,
        policy: TrackingPolicy | None = None,
        listener: SessionListener | None = None,
        source: PlaybackSampleSource | None = None,
    ) -> None:
        self.learner_id = learner_id
        self.unit_id = unit_id
        self.store = store
        self.policy = policy or TrackingPolicy()
        self.listener = listener or SessionListener()
        self.source = source

        self.accumulator = WatchAccumulator(max_sample_gap_seconds=self.policy.max_sample_gap_seconds)
        self.milestones = MilestoneEvaluator(self.policy.milestone_thresholds)
        self.unlock = UnlockPolicy(
            unlock_threshold=self.policy.unlock_threshold,
            manual_override_min_percent=self.policy.manual_override_min_percent,
        )
        self.milestones_fired: set[int] = set()
        self.stored_record: ProgressRecord | None = None

        self._resume: ResumeCalculator | None = None
        self._unsubscribe: Unsubscribe | None = None
        self._pending: set[asyncio.Task[None]] = set()
        self._video_completed = False
        self._best_score: ActivityScore | None = None
        self._observed_position = False
        self._touched = False
        self._prefix_seeded = False
        self._last_scheduled_percent = 0.0
        self._dirty = False
        self._started = False
        self._closed = False
        self._last_error: WatchgateError | None = None

    # -- lifecycle ---------------------------------------------------------

    async def start(self) -> None:
        """Load stored progress, subscribe to changes and start the source."""
        if self._started:
            return
        self._started = True

        record = None
        try:
            record = await self.store.read_progress(self.learner_id, self.unit_id)
        except PersistenceError as e:
            # Start from scratch; the monotonic merge keeps the stored record safe
            logger.warning("Could not load progress for learner %s, unit %s: %s", self.learner_id, self.unit_id, e)
            self._last_error = e

        self.stored_record = record
        if record is not None:
            self.milestones_fired = self.milestones.seed_from(record)
            self.accumulator.raise_floor(record.percent_watched)
            self.unlock.reconcile(record)
            self._video_completed = record.video_completed
            self._last_scheduled_percent = record.percent_watched
            self._best_score = _record_score(record)

        self._resume = ResumeCalculator(record, unlock_threshold=self.policy.unlock_threshold)
        self._unsubscribe = self.store.subscribe_progress(self.learner_id, self.unit_id, self._on_remote_record)

        if self.source is not None:
            await self.source.start(self)
        logger.info(
            "Started session for learner %s, unit %s at %.1f%% (%s)",
            self.learner_id,
            self.unit_id,
            self.percent_watched,
            self.state.value,
        )

    async def close(self) -> None:
        """Stop sampling and flush the final state."""
        if self._closed:
            return
        self._closed = True

        if self._resume is not None:
            self._resume.cancel()
        if self.source is not None:
            await self.source.stop()
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None
        if self._pending:
            await asyncio.gather(*self._pending, return_exceptions=True)
        if self._touched:
            await self._write(self._snapshot_update())

    async def flush(self) -> None:
        """Wait for every write scheduled so far."""
        if self._pending:
            await asyncio.gather(*self._pending, return_exceptions=True)

    async def __aenter__(self) -> PlaybackSession:
        await self.start()
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        await self.close()

    # -- state -------------------------------------------------------------

    @property
    def state(self) -> UnlockState:
        return self.unlock.state

    @property
    def percent_watched(self) -> float:
        return self.accumulator.percent_watched

    @property
    def video_completed(self) -> bool:
        return self._video_completed

    @property
    def last_error(self) -> WatchgateError | None:
        return self._last_error

    @property
    def can_manual_override(self) -> bool:
        """Whether the learner may mark the video watched by hand."""
        return self.unlock.can_manual_override(self.accumulator.percent_watched)

    @property
    def pending_writes(self) -> int:
        return len(self._pending)

    # -- sample sink ---------------------------------------------------------

    def on_ready(self) -> None:
        logger.debug("Player ready for learner %s, unit %s", self.learner_id, self.unit_id)

    def on_duration(self, seconds: float) -> None:
        try:
            self.accumulator.set_duration(seconds)
        except InvalidDurationError as e:
            self._surface(e)
            return

        if not self._prefix_seeded and self.stored_record is not None:
            # A resumed session continues the stored prefix instead of recounting it
            self._prefix_seeded = True
            self.accumulator.seed_prefix(self.stored_record.percent_watched / 100 * seconds)

        if self._resume is not None:
            target = self._resume.position_for(seconds)
            if target is not None:
                self.accumulator.reposition(target)
                if self.source is not None:
                    self.source.seek(target)
                self._notify("on_seek", target)

        self._evaluate()

    def on_progress(self, position_seconds: float) -> None:
        self._observed_position = True
        self._touched = True
        self.accumulator.observe(position_seconds)
        self._evaluate()

    def on_ended(self) -> None:
        self._touched = True
        self.accumulator.mark_ended()
        if not self._video_completed:
            self._video_completed = True
            self._notify("on_video_completed")

        self._evaluate(force_write=True)
        previous = self.unlock.state
        if self._transition(previous, self.unlock.on_ended()):
            self._schedule_write()

    def on_error(self, detail: object) -> None:
        self._surface(SampleSourceError(detail))

    # -- learner actions -----------------------------------------------------

    def manual_override_complete(self) -> bool:
        """Mark the video watched on the learner's request.

        Raises
        ------
            ManualOverrideNotAllowedError: If too little of the video was watched.
        """
        previous = self.unlock.state
        changed = self.unlock.manual_override(self.accumulator.percent_watched)
        self._touched = True
        if not self._video_completed:
            self._video_completed = True
            self._notify("on_video_completed")
        self._transition(previous, changed)
        self._schedule_write()
        return changed

    def begin_activity(self) -> bool:
        """Record that the follow-on activity was shown.

        Raises
        ------
            ActivityLockedError: If the video has not unlocked the activity.
        """
        previous = self.unlock.state
        changed = self.unlock.begin_activity()
        self._touched = True
        if self._transition(previous, changed):
            self._schedule_write()
        return changed

    def complete_activity(self, score: ActivityScore | None = None) -> bool:
        """Record a finished attempt at the follow-on activity.

        Raises
        ------
            ActivityLockedError: If the video has not unlocked the activity.
        """
        previous = self.unlock.state
        changed = self.unlock.complete_activity()
        self._touched = True
        if score is not None and (self._best_score is None or _score_key(score) > _score_key(self._best_score)):
            self._best_score = score
        self._transition(previous, changed)
        self._schedule_write()
        return changed

    # -- internals -----------------------------------------------------------

    def _evaluate(self, *, force_write: bool = False) -> None:
        if not self.accumulator.ready:
            return
        percent = self.accumulator.percent_watched
        crossed = self.milestones.evaluate_and_record(percent, self.milestones_fired)
        for threshold in crossed:
            logger.info("Learner %s reached %d%% of unit %s", self.learner_id, threshold, self.unit_id)
            self._notify("on_milestone", threshold)

        previous = self.unlock.state
        unlocked = self._transition(previous, self.unlock.observe_progress(percent))

        if (
            force_write
            or crossed
            or unlocked
            or self._dirty
            or percent - self._last_scheduled_percent >= self.policy.write_min_delta_percent
        ):
            self._schedule_write()

    def _transition(self, previous: UnlockState, changed: bool) -> bool:
        if not changed:
            return False
        if previous is UnlockState.LOCKED:
            self._notify("on_unlocked")
        self._notify("on_state_changed", self.unlock.state)
        return True

    def _on_remote_record(self, record: ProgressRecord) -> None:
        self.accumulator.raise_floor(record.percent_watched)
        self.milestones_fired |= self.milestones.seed_from(record)
        if record.video_completed:
            self._video_completed = True
        remote_score = _record_score(record)
        if remote_score is not None and (
            self._best_score is None or _score_key(remote_score) > _score_key(self._best_score)
        ):
            self._best_score = remote_score
        previous = self.unlock.state
        self._transition(previous, self.unlock.reconcile(record))

    def _snapshot_update(self) -> ProgressUpdate:
        score = self._best_score
        return ProgressUpdate(
            percent_watched=self.accumulator.percent_watched,
            milestones_reached=set(self.milestones_fired),
            video_unlocked_activity=self.unlock.is_unlocked,
            video_completed=self._video_completed,
            activity_completed=self.unlock.is_completed,
            activity_attempts=self.unlock.activity_attempts,
            last_position_seconds=self.accumulator.last_position_seconds if self._observed_position else None,
            activity_started_at=self.unlock.activity_started_at,
            completed_at=self.unlock.completed_at,
            activity_score_percent=score.percent if score else None,
            activity_correct_count=score.correct_count if score else None,
            activity_total_count=score.total_count if score else None,
        )

    def _schedule_write(self) -> None:
        update = self._snapshot_update()
        self._last_scheduled_percent = update.percent_watched or 0.0
        task = asyncio.create_task(self._write(update))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def _write(self, update: ProgressUpdate) -> None:
        try:
            await self.store.merge_progress(self.learner_id, self.unit_id, update)
        except PersistenceError as e:
            self._dirty = True
            self._last_error = e
            logger.warning("Progress write failed for learner %s, unit %s: %s", self.learner_id, self.unit_id, e)
            return
        except Exception:
            self._dirty = True
            logger.exception("Unexpected error writing progress for learner %s, unit %s", self.learner_id, self.unit_id)
            return
        self._dirty = False

    def _surface(self, error: WatchgateError) -> None:
        self._last_error = error
        logger.warning("Session error for learner %s, unit %s: %s", self.learner_id, self.unit_id, error.message)
        self._notify("on_error", error)

    def _notify(self, event: str, *args: object) -> None:
        try:
            getattr(self.listener, event)(*args)
        except Exception:
            logger.exception("Session listener failed handling %s", event)


def _record_score(record: ProgressRecord) -> ActivityScore | None:
    if record.activity_score_percent is None:
        return None
    return ActivityScore(
        percent=record.activity_score_percent,
        correct_count=record.activity_correct_count,
        total_count=record.activity_total_count,
    )
