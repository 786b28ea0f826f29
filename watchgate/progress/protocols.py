"""Progress storage protocols.

This module defines the contract the tracking core consumes for durable,
mergeable and subscribable progress storage.
"""

from collections.abc import Callable
from typing import Protocol

from .models import ProgressRecord, ProgressUpdate


ProgressCallback = Callable[[ProgressRecord], None]
Unsubscribe = Callable[[], None]


class ProgressStore(Protocol):
    """Protocol for durable, monotonic progress storage."""

    async def merge_progress(self, learner_id: str, unit_id: str, update: ProgressUpdate) -> ProgressRecord:
        """Join a partial update into the stored record and return the result.

        Raises
        ------
            PersistenceError: If the write fails.
        """
        ...

    async def read_progress(self, learner_id: str, unit_id: str) -> ProgressRecord | None:
        """Get the stored record, or None when nothing was written yet."""
        ...

    def subscribe_progress(self, learner_id: str, unit_id: str, callback: ProgressCallback) -> Unsubscribe:
        """Deliver the authoritative record whenever it changes."""
        ...

    async def delete_progress(self, learner_id: str, unit_id: str) -> bool:
        """Delete the stored record."""
        ...


class ReportingProgressStore(ProgressStore, Protocol):
    """Progress store that can also list a learner's records for reporting."""

    async def read_learner_progress(self, learner_id: str) -> list[ProgressRecord]:
        """Get every stored record for a learner."""
        ...
