"""SQLAlchemy-backed progress store with monotonic merge."""

import asyncio
import contextlib
import logging
from collections import Counter
from collections.abc import Iterable
from functools import partial

from sqlalchemy import delete, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from watchgate.exceptions import PersistenceError
from watchgate.tracking.scheduler import TickScheduler

from .db_models import UnitProgress
from .merge import apply_update
from .models import DEFAULT_MILESTONES, ProgressRecord, ProgressUpdate
from .protocols import ProgressCallback, Unsubscribe
from .subscriptions import ProgressBroadcaster


logger = logging.getLogger(__name__)

# A concurrent first write for the same key loses the unique constraint race once
MAX_MERGE_ATTEMPTS = 3

_RECORD_FIELDS = (
    "percent_watched",
    "video_unlocked_activity",
    "video_completed",
    "last_position_seconds",
    "activity_completed",
    "activity_attempts",
    "activity_started_at",
    "completed_at",
    "activity_score_percent",
    "activity_correct_count",
    "activity_total_count",
    "activity_score_updated_at",
    "activity_time_seconds",
    "total_time_seconds",
    "created_at",
    "updated_at",
)


def _to_record(row: UnitProgress) -> ProgressRecord:
    return ProgressRecord.model_validate(row)


def _apply_to_row(row: UnitProgress, record: ProgressRecord) -> None:
    for field in _RECORD_FIELDS:
        setattr(row, field, getattr(record, field))
    row.milestones_reached = sorted(record.milestones_reached)


class SqlProgressStore:
    """Progress store backed by the ``unit_progress`` table.

    The row is locked with ``SELECT ... FOR UPDATE``, joined with the
    incoming update in Python, and written back in the same transaction.
    SQLite ignores ``FOR UPDATE``, so on SQLite merges are serialised by an
    in-process lock instead.

    Subscribers hear about merges made through this instance right after
    commit. Writes from other processes or store instances are picked up by
    a watcher that polls each subscribed row every ``poll_interval_seconds``
    and publishes it when it changed.
    """

    def __init__(
        self,
        session_maker: async_sessionmaker[AsyncSession],
        unlock_threshold: float = 90.0,
        milestone_thresholds: Iterable[int] = DEFAULT_MILESTONES,
        *,
        poll_interval_seconds: float = 1.0,
    ) -> None:
        self._session_maker = session_maker
        self.unlock_threshold = unlock_threshold
        self.milestone_thresholds = tuple(milestone_thresholds)
        self.poll_interval_seconds = poll_interval_seconds
        self._broadcaster = ProgressBroadcaster()
        self._watchers: dict[tuple[str, str], TickScheduler] = {}
        self._last_seen: dict[tuple[str, str], ProgressRecord] = {}
        self._merging: Counter[tuple[str, str]] = Counter()
        bind = session_maker.kw.get("bind")
        self._write_lock = asyncio.Lock() if bind is not None and bind.dialect.name == "sqlite" else None

    async def merge_progress(self, learner_id: str, unit_id: str, update: ProgressUpdate) -> ProgressRecord:
        """Join a partial update into the stored record.

        Raises
        ------
            PersistenceError: If the database write fails.
        """
        key = (learner_id, unit_id)
        self._merging[key] += 1
        try:
            async with self._write_lock or contextlib.nullcontext():
                merged = await self._merge_with_retry(learner_id, unit_id, update)
            if key in self._watchers:
                self._last_seen[key] = merged
        finally:
            self._merging[key] -= 1
            if not self._merging[key]:
                del self._merging[key]
        self._broadcaster.publish(merged)
        return merged

    async def _merge_with_retry(self, learner_id: str, unit_id: str, update: ProgressUpdate) -> ProgressRecord:
        for attempt in range(1, MAX_MERGE_ATTEMPTS + 1):
            try:
                merged = await self._merge_once(learner_id, unit_id, update)
            except IntegrityError as e:
                if attempt == MAX_MERGE_ATTEMPTS:
                    msg = f"Failed to merge progress for learner {learner_id}, unit {unit_id}"
                    raise PersistenceError(msg) from e
                logger.info(
                    "Concurrent insert for learner %s, unit %s; retrying merge (attempt %d)",
                    learner_id,
                    unit_id,
                    attempt,
                )
                continue
            except SQLAlchemyError as e:
                msg = f"Failed to merge progress for learner {learner_id}, unit {unit_id}"
                raise PersistenceError(msg) from e
            return merged

        msg = f"Failed to merge progress for learner {learner_id}, unit {unit_id}"
        raise PersistenceError(msg)

    async def _merge_once(self, learner_id: str, unit_id: str, update: ProgressUpdate) -> ProgressRecord:
        async with self._session_maker() as session:
            try:
                query = (
                    select(UnitProgress)
                    .where(UnitProgress.learner_id == learner_id, UnitProgress.unit_id == unit_id)
                    .with_for_update()
                )
                result = await session.execute(query)
                row = result.scalar_one_or_none()

                current = _to_record(row) if row else None
                merged = apply_update(
                    current,
                    update,
                    learner_id=learner_id,
                    unit_id=unit_id,
                    unlock_threshold=self.unlock_threshold,
                    milestone_thresholds=self.milestone_thresholds,
                )

                if row is None:
                    row = UnitProgress(learner_id=learner_id, unit_id=unit_id)
                    session.add(row)
                _apply_to_row(row, merged)

                await session.commit()
            except Exception:
                await session.rollback()
                raise

        logger.debug("Merged progress for learner %s, unit %s: %.1f%%", learner_id, unit_id, merged.percent_watched)
        return merged

    async def read_progress(self, learner_id: str, unit_id: str) -> ProgressRecord | None:
        """Get the stored record for a learner and unit."""
        try:
            async with self._session_maker() as session:
                query = select(UnitProgress).where(
                    UnitProgress.learner_id == learner_id, UnitProgress.unit_id == unit_id
                )
                result = await session.execute(query)
                row = result.scalar_one_or_none()
                return _to_record(row) if row else None
        except SQLAlchemyError as e:
            msg = f"Failed to read progress for learner {learner_id}, unit {unit_id}"
            raise PersistenceError(msg) from e

    async def read_learner_progress(self, learner_id: str) -> list[ProgressRecord]:
        """Get every stored record for a learner."""
        try:
            async with self._session_maker() as session:
                query = (
                    select(UnitProgress)
                    .where(UnitProgress.learner_id == learner_id)
                    .order_by(UnitProgress.unit_id)
                )
                result = await session.execute(query)
                return [_to_record(row) for row in result.scalars()]
        except SQLAlchemyError as e:
            msg = f"Failed to read progress for learner {learner_id}"
            raise PersistenceError(msg) from e

    def subscribe_progress(self, learner_id: str, unit_id: str, callback: ProgressCallback) -> Unsubscribe:
        """Deliver the merged record to ``callback`` whenever it changes.

        Must be called from a running event loop: the first subscriber on a
        key starts that key's watcher, the last unsubscribe cancels it.
        """
        key = (learner_id, unit_id)
        unsubscribe = self._broadcaster.subscribe(learner_id, unit_id, callback)
        if key not in self._watchers:
            watcher = TickScheduler(self.poll_interval_seconds, partial(self._poll, learner_id, unit_id))
            self._watchers[key] = watcher
            watcher.start()

        def unsubscribe_and_release() -> None:
            unsubscribe()
            if self._broadcaster.subscriber_count(learner_id, unit_id) == 0:
                self._release_watcher(key)

        return unsubscribe_and_release

    async def delete_progress(self, learner_id: str, unit_id: str) -> bool:
        """Delete the stored record."""
        try:
            async with self._session_maker() as session:
                result = await session.execute(
                    delete(UnitProgress).where(
                        UnitProgress.learner_id == learner_id, UnitProgress.unit_id == unit_id
                    )
                )
                await session.commit()
                self._last_seen.pop((learner_id, unit_id), None)
                return result.rowcount > 0
        except SQLAlchemyError as e:
            msg = f"Failed to delete progress for learner {learner_id}, unit {unit_id}"
            raise PersistenceError(msg) from e

    async def close(self) -> None:
        """Stop every watcher. Subscribers stay registered but only see local merges."""
        watchers = list(self._watchers.values())
        self._watchers.clear()
        self._last_seen.clear()
        for watcher in watchers:
            await watcher.stop()

    def _release_watcher(self, key: tuple[str, str]) -> None:
        watcher = self._watchers.pop(key, None)
        self._last_seen.pop(key, None)
        if watcher is not None:
            watcher.cancel()

    async def _poll(self, learner_id: str, unit_id: str) -> None:
        try:
            record = await self.read_progress(learner_id, unit_id)
        except PersistenceError as e:
            logger.warning("Progress watcher read failed for learner %s, unit %s: %s", learner_id, unit_id, e.message)
            return
        if record is None:
            return

        key = (learner_id, unit_id)
        if key in self._merging:
            # The local merge publishes its own result
            return
        last = self._last_seen.get(key)
        if last is not None and (record.updated_at < last.updated_at or record == last):
            return
        self._last_seen[key] = record
        logger.debug(
            "Watcher picked up progress for learner %s, unit %s: %.1f%%", learner_id, unit_id, record.percent_watched
        )
        self._broadcaster.publish(record)
