"""Adapter for players that must be polled for their position."""

import logging

from watchgate.tracking.scheduler import TickScheduler

from .protocols import PlayerHandle, PlayerState, SampleSink


logger = logging.getLogger(__name__)


class PolledPlayerSource:
    """Polls a ``PlayerHandle`` on a fixed tick and forwards samples to a sink.

    Positions are only forwarded while the player is playing; the end of
    the video is reported once per session, even if the learner replays
    it and it ends again.
    """

    def __init__(self, handle: PlayerHandle | None = None, *, interval_seconds: float = 1.0) -> None:
        self.handle = handle
        self.interval_seconds = interval_seconds
        self._sink: SampleSink | None = None
        self._scheduler: TickScheduler | None = None
        self._last_duration: float | None = None
        self._ended_reported = False
        self._failed = False

    @property
    def running(self) -> bool:
        return self._scheduler is not None and self._scheduler.running

    async def start(self, sink: SampleSink) -> None:
        """Announce readiness and start polling."""
        if self.handle is None:
            msg = "PolledPlayerSource needs a player handle before it can start"
            raise RuntimeError(msg)
        self._sink = sink
        sink.on_ready()
        self.poll()
        self._scheduler = TickScheduler(self.interval_seconds, self.poll)
        self._scheduler.start()

    def seek(self, seconds: float) -> None:
        if self.handle is None:
            return
        self.handle.seek_to(seconds)

    async def stop(self) -> None:
        if self._scheduler is not None:
            await self._scheduler.stop()
            self._scheduler = None
        self._sink = None

    def poll(self) -> None:
        """Read the player once and forward what changed."""
        if self._sink is None or self.handle is None:
            return
        try:
            state = self.handle.state()
            duration = self.handle.duration()
            position = self.handle.current_time()
        except Exception as e:
            # Report a broken player once; keep polling in case it recovers
            if not self._failed:
                self._failed = True
                logger.warning("Player poll failed: %s", e)
                self._sink.on_error(str(e))
            return
        self._failed = False

        if duration != self._last_duration:
            self._last_duration = duration
            self._sink.on_duration(duration)

        if state is PlayerState.PLAYING:
            self._sink.on_progress(position)
        elif state is PlayerState.ENDED and not self._ended_reported:
            self._ended_reported = True
            self._sink.on_progress(position)
            self._sink.on_ended()
