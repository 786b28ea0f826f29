"""Unlock state machine for the activity that follows a video.

    LOCKED ──(percent >= threshold | ended | manual override)──> UNLOCKED
    UNLOCKED ──begin_activity()──> ACTIVITY_IN_PROGRESS
    ACTIVITY_IN_PROGRESS ──complete_activity()──> ACTIVITY_COMPLETED

States are ordered and only ever move forward: nothing returns to LOCKED
and nothing leaves ACTIVITY_COMPLETED. Rewatching a completed unit keeps
its state.
"""

from __future__ import annotations

import logging
from datetime import datetime
from enum import Enum

from watchgate.exceptions import ActivityLockedError, ManualOverrideNotAllowedError
from watchgate.progress.models import ProgressRecord, utc_now


logger = logging.getLogger(__name__)


class UnlockState(str, Enum):
    """Where a learner stands on a unit."""

    LOCKED = "locked"
    UNLOCKED = "unlocked"
    ACTIVITY_IN_PROGRESS = "activity_in_progress"
    ACTIVITY_COMPLETED = "activity_completed"

    @property
    def rank(self) -> int:
        return _STATE_ORDER.index(self)


_STATE_ORDER = [
    UnlockState.LOCKED,
    UnlockState.UNLOCKED,
    UnlockState.ACTIVITY_IN_PROGRESS,
    UnlockState.ACTIVITY_COMPLETED,
]


def state_from_record(record: ProgressRecord | None, unlock_threshold: float = 90.0) -> UnlockState:
    """Derive the furthest state a stored record proves."""
    if record is None:
        return UnlockState.LOCKED
    if record.activity_completed:
        return UnlockState.ACTIVITY_COMPLETED
    if record.activity_started_at is not None:
        return UnlockState.ACTIVITY_IN_PROGRESS
    if record.video_unlocked_activity or record.video_completed or record.percent_watched >= unlock_threshold:
        return UnlockState.UNLOCKED
    return UnlockState.LOCKED


class UnlockPolicy:
    """Decides whether the follow-on activity is available."""

    def __init__(
        self,
        *,
        unlock_threshold: float = 90.0,
        manual_override_min_percent: float = 25.0,
        state: UnlockState = UnlockState.LOCKED,
    ) -> None:
        self.unlock_threshold = unlock_threshold
        self.manual_override_min_percent = manual_override_min_percent
        self.state = state
        self.activity_started_at: datetime | None = None
        self.completed_at: datetime | None = None
        self.activity_attempts = 0

    @classmethod
    def from_record(
        cls,
        record: ProgressRecord | None,
        *,
        unlock_threshold: float = 90.0,
        manual_override_min_percent: float = 25.0,
    ) -> UnlockPolicy:
        """Restore the state machine from a stored record."""
        policy = cls(unlock_threshold=unlock_threshold, manual_override_min_percent=manual_override_min_percent)
        policy.reconcile(record)
        return policy

    @property
    def is_unlocked(self) -> bool:
        return self.state is not UnlockState.LOCKED

    @property
    def is_completed(self) -> bool:
        return self.state is UnlockState.ACTIVITY_COMPLETED

    def can_manual_override(self, percent_watched: float) -> bool:
        """Whether ``manual_override`` would be accepted right now."""
        return self.is_unlocked or percent_watched >= self.manual_override_min_percent

    def observe_progress(self, percent_watched: float) -> bool:
        """Unlock once the watched percentage reaches the threshold.

        Returns True when this call performed the LOCKED -> UNLOCKED transition.
        """
        if percent_watched >= self.unlock_threshold:
            return self._unlock(f"watched {percent_watched:.1f}%")
        return False

    def on_ended(self) -> bool:
        """Unlock because the player reported the end of the video."""
        return self._unlock("playback ended")

    def manual_override(self, percent_watched: float) -> bool:
        """Unlock on explicit learner request, after the minimum exposure.

        Raises
        ------
            ManualOverrideNotAllowedError: If the learner has not watched enough yet.
        """
        if self.is_unlocked:
            return False
        if percent_watched < self.manual_override_min_percent:
            raise ManualOverrideNotAllowedError(percent_watched, self.manual_override_min_percent)
        return self._unlock(f"manual override at {percent_watched:.1f}%")

    def begin_activity(self, now: datetime | None = None) -> bool:
        """Record that the learner was shown the activity.

        Returns True when the state moved to ACTIVITY_IN_PROGRESS.

        Raises
        ------
            ActivityLockedError: If the video has not unlocked the activity.
        """
        if self.state is UnlockState.LOCKED:
            raise ActivityLockedError("begin the activity")
        if self.activity_started_at is None:
            self.activity_started_at = now or utc_now()
        if self.state is UnlockState.UNLOCKED:
            self.state = UnlockState.ACTIVITY_IN_PROGRESS
            logger.info("Activity started")
            return True
        return False

    def complete_activity(self, now: datetime | None = None) -> bool:
        """Record a finished attempt at the activity.

        Every call counts an attempt; the completion timestamp is only set
        by the first one. Completing from UNLOCKED begins the activity
        implicitly. Returns True when the state moved to ACTIVITY_COMPLETED.

        Raises
        ------
            ActivityLockedError: If the video has not unlocked the activity.
        """
        if self.state is UnlockState.LOCKED:
            raise ActivityLockedError("complete the activity")
        timestamp = now or utc_now()
        self.begin_activity(timestamp)
        self.activity_attempts += 1
        if self.completed_at is None:
            self.completed_at = timestamp
        if self.state is not UnlockState.ACTIVITY_COMPLETED:
            self.state = UnlockState.ACTIVITY_COMPLETED
            logger.info("Activity completed after %d attempt(s)", self.activity_attempts)
            return True
        return False

    def reconcile(self, record: ProgressRecord | None) -> bool:
        """Advance (never regress) to what an authoritative record proves.

        Returns True when the state changed.
        """
        if record is None:
            return False
        if record.activity_started_at is not None and (
            self.activity_started_at is None or record.activity_started_at < self.activity_started_at
        ):
            self.activity_started_at = record.activity_started_at
        if record.completed_at is not None and (self.completed_at is None or record.completed_at < self.completed_at):
            self.completed_at = record.completed_at
        self.activity_attempts = max(self.activity_attempts, record.activity_attempts)

        target = state_from_record(record, self.unlock_threshold)
        if target.rank > self.state.rank:
            logger.info("Reconciled unlock state %s -> %s", self.state.value, target.value)
            self.state = target
            return True
        return False

    def _unlock(self, reason: str) -> bool:
        if self.state is not UnlockState.LOCKED:
            return False
        self.state = UnlockState.UNLOCKED
        logger.info("Activity unlocked: %s", reason)
        return True
