"""Adapter for players that push their own events (native/HTML5 players)."""

import asyncio
import contextlib
import logging
from collections.abc import AsyncIterator, Callable, Mapping
from typing import Any

from .protocols import SampleSink


logger = logging.getLogger(__name__)


class EventStreamSource:
    """Feeds a sink from an async stream of event mappings.

    Events look like ``{"type": "progress", "position": 12.5}``. Supported
    types are ``ready``, ``duration`` (``seconds``), ``progress``
    (``position``, optional ``duration``), ``ended`` and ``error``
    (``detail``). Seek commands are handed to ``send_seek`` so the
    transport can relay them back to the player.
    """

    def __init__(
        self,
        events: AsyncIterator[Mapping[str, Any]],
        *,
        send_seek: Callable[[float], None] | None = None,
    ) -> None:
        self._events = events
        self._send_seek = send_seek
        self._sink: SampleSink | None = None
        self._task: asyncio.Task[None] | None = None
        self.seek_requests: list[float] = []

    @property
    def finished(self) -> bool:
        return self._task is not None and self._task.done()

    async def start(self, sink: SampleSink) -> None:
        self._sink = sink
        self._task = asyncio.create_task(self._consume())

    def seek(self, seconds: float) -> None:
        self.seek_requests.append(seconds)
        if self._send_seek is not None:
            self._send_seek(seconds)

    async def stop(self) -> None:
        if self._task is not None:
            self._task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._task
            self._task = None
        self._sink = None

    async def wait_closed(self) -> None:
        """Wait until the event stream is exhausted."""
        if self._task is not None:
            await self._task

    def dispatch(self, event: Mapping[str, Any]) -> None:
        """Route one event to the sink."""
        if self._sink is None:
            return
        event_type = event.get("type")
        match event_type:
            case "ready":
                self._sink.on_ready()
            case "duration":
                self._sink.on_duration(float(event.get("seconds", 0.0)))
            case "progress":
                if event.get("duration") is not None:
                    self._sink.on_duration(float(event["duration"]))
                self._sink.on_progress(float(event.get("position", 0.0)))
            case "ended":
                self._sink.on_ended()
            case "error":
                self._sink.on_error(event.get("detail", "unknown player error"))
            case _:
                logger.warning("Ignoring unknown player event type: %r", event_type)

    async def _consume(self) -> None:
        async for event in self._events:
            try:
                self.dispatch(event)
            except (TypeError, ValueError) as e:
                logger.warning("Malformed player event %r: %s", event, e)
