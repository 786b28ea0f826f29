"""YouTube adapter: URL parsing plus a polled player handle."""

import logging
import re
from collections.abc import Callable
from typing import Any
from urllib.parse import parse_qs, urlencode, urlparse

from watchgate.exceptions import InvalidPlayerUrlError

from .polled import PolledPlayerSource
from .protocols import PlayerHandle, SampleSink
from .registry import PlayerApiRegistry


logger = logging.getLogger(__name__)

_VIDEO_ID_PATTERN = re.compile(r"^[A-Za-z0-9_-]{11}$")
_FALLBACK_PATTERN = re.compile(
    r"(?:youtube\.com/(?:[^/?]+/.+/|(?:v|e(?:mbed)?)/|shorts/|.*[?&]v=)|youtu\.be/)([A-Za-z0-9_-]{11})"
)

EMBED_PARAMS = {
    "modestbranding": "1",
    "rel": "0",
    "showinfo": "0",
    "fs": "1",
    "cc_load_policy": "1",
    "iv_load_policy": "3",
    "enablejsapi": "1",
}


def _id_from_parsed(candidate: str) -> str | None:
    parsed = urlparse(candidate)
    hostname = (parsed.hostname or "").lower()
    segments = [segment for segment in parsed.path.split("/") if segment]

    if "youtu.be" in hostname:
        return segments[0] if segments else None

    if "youtube.com" in hostname:
        query_id = parse_qs(parsed.query).get("v")
        if query_id:
            return query_id[0]
        for marker in ("embed", "shorts", "v", "live"):
            if marker in segments:
                index = segments.index(marker)
                if index + 1 < len(segments):
                    return segments[index + 1]
    return None


def extract_video_id(url: str) -> str:
    """Extract the 11-character video id from watch, short, embed or shorts URLs.

    Raises
    ------
        InvalidPlayerUrlError: If no valid id can be found.
    """
    sanitized = (url or "").strip().replace("&amp;", "&")
    if not sanitized:
        raise InvalidPlayerUrlError(url)

    candidates = [sanitized]
    if not re.match(r"^https?://", sanitized, re.IGNORECASE):
        candidates.append(f"https://{sanitized}")

    for candidate in candidates:
        video_id = _id_from_parsed(candidate)
        if video_id and _VIDEO_ID_PATTERN.match(video_id):
            return video_id

    match = _FALLBACK_PATTERN.search(sanitized)
    if match:
        return match.group(1)

    raise InvalidPlayerUrlError(url)


def build_embed_url(video_id: str) -> str:
    """Build the embed URL with the player parameters the adapter relies on."""
    return f"https://www.youtube.com/embed/{video_id}?{urlencode(EMBED_PARAMS)}"


class YouTubePlayerSource(PolledPlayerSource):
    """Polled adapter for the YouTube embedded player.

    The player handle is created from the shared YouTube API once the
    registry has loaded it, so many sessions share one SDK instance.
    """

    def __init__(
        self,
        url: str,
        *,
        registry: PlayerApiRegistry,
        handle_factory: Callable[[Any, str], PlayerHandle],
        interval_seconds: float = 1.0,
    ) -> None:
        super().__init__(None, interval_seconds=interval_seconds)
        self.video_id = extract_video_id(url)
        self.embed_url = build_embed_url(self.video_id)
        self._registry = registry
        self._handle_factory = handle_factory
        self._acquired = False

    async def start(self, sink: SampleSink) -> None:
        api = await self._registry.acquire()
        self._acquired = True
        self.handle = self._handle_factory(api, self.video_id)
        logger.info("Starting YouTube player for video %s", self.video_id)
        await super().start(sink)

    async def stop(self) -> None:
        await super().stop()
        if self._acquired:
            self._acquired = False
            await self._registry.release()
