"""In-process fan-out of progress changes to subscribers."""

import logging
from collections import defaultdict

from .models import ProgressRecord
from .protocols import ProgressCallback, Unsubscribe


logger = logging.getLogger(__name__)


class ProgressBroadcaster:
    """Keeps callbacks per (learner, unit) and pushes merged records to them."""

    def __init__(self) -> None:
        self._subscribers: dict[tuple[str, str], list[ProgressCallback]] = defaultdict(list)

    def subscribe(self, learner_id: str, unit_id: str, callback: ProgressCallback) -> Unsubscribe:
        """Register a callback and return a function that removes it."""
        key = (learner_id, unit_id)
        self._subscribers[key].append(callback)

        def unsubscribe() -> None:
            callbacks = self._subscribers.get(key)
            if not callbacks or callback not in callbacks:
                return
            callbacks.remove(callback)
            if not callbacks:
                del self._subscribers[key]

        return unsubscribe

    def subscriber_count(self, learner_id: str, unit_id: str) -> int:
        """Return how many callbacks listen on a key."""
        return len(self._subscribers.get((learner_id, unit_id), ()))

    def publish(self, record: ProgressRecord) -> None:
        """Deliver a record to every subscriber of its key.

        A failing subscriber is logged and does not stop delivery to the others.
        """
        for callback in list(self._subscribers.get((record.learner_id, record.unit_id), ())):
            try:
                callback(record)
            except Exception:
                logger.exception(
                    "Progress subscriber failed for learner %s, unit %s", record.learner_id, record.unit_id
                )
