"""Error taxonomy for progress tracking and activity unlocking.

None of these are fatal to the application: each one is either locally
recoverable or degrades to the manual-override path.
"""


class WatchgateError(Exception):
    """Base exception class for all domain-specific exceptions."""

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(self.message)


class SampleSourceError(WatchgateError):
    """The player failed to load, embed or report progress."""

    def __init__(self, detail: object) -> None:
        self.detail = detail
        super().__init__(f"Playback source reported an error: {detail}")


class PersistenceError(WatchgateError):
    """A progress read or write failed."""


class InvalidDurationError(WatchgateError):
    """Duration was reported as zero, negative or NaN."""

    def __init__(self, duration: object) -> None:
        self.duration = duration
        super().__init__(f"Invalid video duration: {duration!r}")


class UnlockPolicyError(WatchgateError):
    """Base class for rejected unlock state machine actions."""


class ManualOverrideNotAllowedError(UnlockPolicyError):
    """Manual completion was requested before the minimum exposure."""

    def __init__(self, percent_watched: float, minimum_percent: float) -> None:
        self.percent_watched = percent_watched
        self.minimum_percent = minimum_percent
        super().__init__(
            f"Manual completion requires at least {minimum_percent:g}% watched "
            f"(currently {percent_watched:.1f}%)"
        )


class ActivityLockedError(UnlockPolicyError):
    """The follow-on activity was requested while the video is still locked."""

    def __init__(self, action: str) -> None:
        self.action = action
        super().__init__(f"Cannot {action}: the activity is still locked")


class InvalidMilestoneError(WatchgateError):
    """A progress write named milestones outside the configured thresholds."""

    def __init__(self, milestones: set[int], allowed: tuple[int, ...]) -> None:
        self.milestones = milestones
        self.allowed = allowed
        super().__init__(f"Unknown milestones {sorted(milestones)}; expected a subset of {list(allowed)}")


class InvalidPlayerUrlError(WatchgateError):
    """A player adapter could not extract a video id from the URL."""

    def __init__(self, url: str) -> None:
        self.url = url
        super().__init__(f"Could not extract a video id from URL: {url!r}")


class ProgressNotFoundError(WatchgateError):
    """No progress record exists for the learner and unit."""

    def __init__(self, learner_id: str, unit_id: str) -> None:
        self.learner_id = learner_id
        self.unit_id = unit_id
        super().__init__(f"Progress for learner {learner_id} and unit {unit_id} not found")
