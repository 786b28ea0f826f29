"""Playback sample source contracts.

Every player technology gets one adapter implementing
``PlaybackSampleSource``; the accumulator, milestone and unlock logic is
never duplicated per integration.
"""

from enum import Enum
from typing import Protocol


class SampleSink(Protocol):
    """Receives samples and discrete events from a playback source."""

    def on_ready(self) -> None:
        """The player loaded and can be controlled."""
        ...

    def on_duration(self, seconds: float) -> None:
        """The player reported (or corrected) the video length."""
        ...

    def on_progress(self, position_seconds: float) -> None:
        """Current playback position."""
        ...

    def on_ended(self) -> None:
        """Playback reached the end of the video."""
        ...

    def on_error(self, detail: object) -> None:
        """The player failed to load, embed or report."""
        ...


class PlaybackSampleSource(Protocol):
    """Abstract producer of position samples for one video."""

    async def start(self, sink: SampleSink) -> None:
        """Begin delivering samples and events to ``sink``."""
        ...

    def seek(self, seconds: float) -> None:
        """Command the player to jump to ``seconds``."""
        ...

    async def stop(self) -> None:
        """Stop delivering samples and release player resources."""
        ...


class PlayerState(str, Enum):
    """Playback states reported by polled players."""

    UNSTARTED = "unstarted"
    PLAYING = "playing"
    PAUSED = "paused"
    BUFFERING = "buffering"
    CUED = "cued"
    ENDED = "ended"


class PlayerHandle(Protocol):
    """Synchronous control surface of an embedded player."""

    def current_time(self) -> float: ...

    def duration(self) -> float: ...

    def state(self) -> PlayerState: ...

    def seek_to(self, seconds: float) -> None: ...
