"""Tunable parameters shared by the tracking components."""

from __future__ import annotations

from dataclasses import dataclass, field

from watchgate.config.settings import Settings
from watchgate.progress.models import DEFAULT_MILESTONES


@dataclass(frozen=True)
class TrackingPolicy:
    """Thresholds and sampling knobs for one deployment.

    ``unlock_threshold`` is a policy parameter rather than a constant so a
    surface that historically unlocked at a different percentage can be
    configured without code changes.
    """

    unlock_threshold: float = 90.0
    manual_override_min_percent: float = 25.0
    milestone_thresholds: tuple[int, ...] = field(default=DEFAULT_MILESTONES)
    max_sample_gap_seconds: float = 10.0
    sample_interval_seconds: float = 1.0
    write_min_delta_percent: float = 1.0

    @classmethod
    def from_settings(cls, settings: Settings) -> TrackingPolicy:
        """Build the policy from application settings."""
        return cls(
            unlock_threshold=settings.UNLOCK_THRESHOLD_PERCENT,
            manual_override_min_percent=settings.MANUAL_OVERRIDE_MIN_PERCENT,
            milestone_thresholds=tuple(settings.MILESTONE_THRESHOLDS),
            max_sample_gap_seconds=settings.MAX_SAMPLE_GAP_SECONDS,
            sample_interval_seconds=settings.SAMPLE_INTERVAL_SECONDS,
            write_min_delta_percent=settings.WRITE_MIN_DELTA_PERCENT,
        )
