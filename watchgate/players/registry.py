"""Reference-counted lifecycle for a player SDK shared by many sessions."""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import Any


logger = logging.getLogger(__name__)


class PlayerApiRegistry:
    """Loads a player API once, hands it out, and unloads it when unused.

    Sessions inject the registry instead of checking a process-global
    "API ready" flag. The first ``acquire`` runs the loader; the last
    ``release`` runs the unloader.
    """

    def __init__(
        self,
        name: str,
        loader: Callable[[], Awaitable[Any]],
        unloader: Callable[[Any], Awaitable[None]] | None = None,
    ) -> None:
        self.name = name
        self._loader = loader
        self._unloader = unloader
        self._api: Any = None
        self._references = 0
        self._lock = asyncio.Lock()

    @property
    def ready(self) -> bool:
        return self._api is not None

    @property
    def references(self) -> int:
        return self._references

    async def acquire(self) -> Any:
        """Return the loaded API, loading it on first use."""
        async with self._lock:
            if self._api is None:
                logger.info("Loading %s player API", self.name)
                self._api = await self._loader()
            self._references += 1
            return self._api

    async def release(self) -> None:
        """Drop one reference; unload when none remain."""
        async with self._lock:
            if self._references == 0:
                logger.warning("Release of %s player API without a matching acquire", self.name)
                return
            self._references -= 1
            if self._references == 0 and self._api is not None:
                api, self._api = self._api, None
                if self._unloader is not None:
                    await self._unloader(api)
                logger.info("Unloaded %s player API", self.name)
