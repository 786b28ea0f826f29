"""In-memory progress store for single-process deployments and tests."""

import asyncio
import logging
from collections.abc import Iterable

from .merge import apply_update
from .models import DEFAULT_MILESTONES, ProgressRecord, ProgressUpdate
from .protocols import ProgressCallback, Unsubscribe
from .subscriptions import ProgressBroadcaster


logger = logging.getLogger(__name__)


class InMemoryProgressStore:
    """Progress store that keeps records in a dict guarded by an asyncio lock."""

    def __init__(
        self,
        unlock_threshold: float = 90.0,
        milestone_thresholds: Iterable[int] = DEFAULT_MILESTONES,
    ) -> None:
        self.unlock_threshold = unlock_threshold
        self.milestone_thresholds = tuple(milestone_thresholds)
        self._records: dict[tuple[str, str], ProgressRecord] = {}
        self._lock = asyncio.Lock()
        self._broadcaster = ProgressBroadcaster()

    async def merge_progress(self, learner_id: str, unit_id: str, update: ProgressUpdate) -> ProgressRecord:
        """Join a partial update into the stored record."""
        async with self._lock:
            key = (learner_id, unit_id)
            current = self._records.get(key)
            merged = apply_update(
                current,
                update,
                learner_id=learner_id,
                unit_id=unit_id,
                unlock_threshold=self.unlock_threshold,
                milestone_thresholds=self.milestone_thresholds,
            )
            self._records[key] = merged

        logger.debug("Merged progress for learner %s, unit %s: %.1f%%", learner_id, unit_id, merged.percent_watched)
        if merged != current:
            self._broadcaster.publish(merged)
        return merged

    async def read_progress(self, learner_id: str, unit_id: str) -> ProgressRecord | None:
        """Get the stored record for a learner and unit."""
        return self._records.get((learner_id, unit_id))

    async def read_learner_progress(self, learner_id: str) -> list[ProgressRecord]:
        """Get every stored record for a learner, ordered by unit."""
        return [
            record
            for (learner, _), record in sorted(self._records.items())
            if learner == learner_id
        ]

    def subscribe_progress(self, learner_id: str, unit_id: str, callback: ProgressCallback) -> Unsubscribe:
        """Deliver the merged record to ``callback`` whenever it changes."""
        return self._broadcaster.subscribe(learner_id, unit_id, callback)

    async def delete_progress(self, learner_id: str, unit_id: str) -> bool:
        """Delete the stored record."""
        async with self._lock:
            return self._records.pop((learner_id, unit_id), None) is not None
