"""Client-side watch tracking: accumulation, milestones, unlocking and resume."""

from .accumulator import AccumulatorSnapshot, WatchAccumulator, is_valid_duration
from .milestones import MilestoneEvaluator
from .policy import DEFAULT_MILESTONES, TrackingPolicy
from .resume import ResumeCalculator, resume_position
from .scheduler import TickScheduler
from .session import PlaybackSession, SessionListener
from .unlock import UnlockPolicy, UnlockState, state_from_record


__all__ = [
    "DEFAULT_MILESTONES",
    "AccumulatorSnapshot",
    "MilestoneEvaluator",
    "PlaybackSession",
    "ResumeCalculator",
    "SessionListener",
    "TickScheduler",
    "TrackingPolicy",
    "UnlockPolicy",
    "UnlockState",
    "WatchAccumulator",
    "is_valid_duration",
    "resume_position",
    "state_from_record",
]
