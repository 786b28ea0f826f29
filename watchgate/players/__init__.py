"""Playback sample sources, one adapter per player technology."""

from .events import EventStreamSource
from .polled import PolledPlayerSource
from .protocols import PlaybackSampleSource, PlayerHandle, PlayerState, SampleSink
from .registry import PlayerApiRegistry
from .youtube import YouTubePlayerSource, build_embed_url, extract_video_id


__all__ = [
    "EventStreamSource",
    "PlaybackSampleSource",
    "PlayerApiRegistry",
    "PlayerHandle",
    "PlayerState",
    "PolledPlayerSource",
    "SampleSink",
    "YouTubePlayerSource",
    "build_embed_url",
    "extract_video_id",
]
