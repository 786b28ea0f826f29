"""Periodic tick that drives polled player adapters."""

import asyncio
import contextlib
import inspect
import logging
from collections.abc import Awaitable, Callable


logger = logging.getLogger(__name__)

TickCallback = Callable[[], Awaitable[None] | None]


class TickScheduler:
    """Calls ``callback`` every ``interval_seconds`` on the running event loop."""

    def __init__(self, interval_seconds: float, callback: TickCallback) -> None:
        if interval_seconds <= 0:
            msg = "Tick interval must be positive"
            raise ValueError(msg)
        self.interval_seconds = interval_seconds
        self._callback = callback
        self._task: asyncio.Task[None] | None = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        if self.running:
            return
        self._task = asyncio.create_task(self._run())

    def cancel(self) -> None:
        """Cancel the tick task without waiting for it to wind down."""
        if self._task is not None:
            self._task.cancel()
            self._task = None

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await self._task
        self._task = None

    async def _run(self) -> None:
        while True:
            await asyncio.sleep(self.interval_seconds)
            try:
                result = self._callback()
                if inspect.isawaitable(result):
                    await result
            except Exception:
                # One bad tick must not end sampling
                logger.exception("Tick callback failed")
