"""SqlProgressStore against a real SQLite database."""

import asyncio
from datetime import UTC, datetime, timedelta

import pytest
from sqlalchemy.exc import OperationalError
from sqlalchemy.ext.asyncio import AsyncEngine

from watchgate.database import create_session_maker
from watchgate.exceptions import PersistenceError
from watchgate.progress.models import ProgressRecord, ProgressUpdate
from watchgate.progress.sql_store import SqlProgressStore
from watchgate.tracking.session import PlaybackSession
from watchgate.tracking.unlock import UnlockState


pytestmark = pytest.mark.integration

T0 = datetime(2026, 1, 1, tzinfo=UTC)


async def wait_until(predicate, timeout: float = 2.0) -> None:
    async with asyncio.timeout(timeout):
        while not predicate():
            await asyncio.sleep(0.01)


class TestSqlProgressStore:
    async def test_merge_creates_and_reads_back(self, sql_store: SqlProgressStore) -> None:
        record = await sql_store.merge_progress(
            "l1",
            "u1",
            ProgressUpdate(percent_watched=40.0, milestones_reached={25}, last_position_seconds=24.0, updated_at=T0),
        )

        stored = await sql_store.read_progress("l1", "u1")

        assert stored == record
        assert stored.milestones_reached == {25}
        assert stored.updated_at.tzinfo is not None

    async def test_read_missing_returns_none(self, sql_store: SqlProgressStore) -> None:
        assert await sql_store.read_progress("l1", "missing") is None

    async def test_merge_is_monotonic(self, sql_store: SqlProgressStore) -> None:
        await sql_store.merge_progress("l1", "u1", ProgressUpdate(percent_watched=40.0, milestones_reached={25}))
        record = await sql_store.merge_progress(
            "l1", "u1", ProgressUpdate(percent_watched=30.0, milestones_reached=set(), video_completed=True)
        )

        assert record.percent_watched == 40.0
        assert record.milestones_reached == {25}
        assert record.video_completed is True
        assert record.video_unlocked_activity is True

    async def test_merge_order_does_not_matter(self, engine: AsyncEngine) -> None:
        store = SqlProgressStore(create_session_maker(engine))
        await store.merge_progress("l1", "a", ProgressUpdate(percent_watched=40.0))
        await store.merge_progress("l1", "a", ProgressUpdate(percent_watched=30.0))
        await store.merge_progress("l1", "b", ProgressUpdate(percent_watched=30.0))
        await store.merge_progress("l1", "b", ProgressUpdate(percent_watched=40.0))

        a = await store.read_progress("l1", "a")
        b = await store.read_progress("l1", "b")
        assert a.percent_watched == b.percent_watched == 40.0

    async def test_concurrent_writers_converge(self, sql_store: SqlProgressStore) -> None:
        updates = [
            ProgressUpdate(percent_watched=float(p), milestones_reached={m for m in (25, 50, 75) if m <= p})
            for p in (10, 80, 30, 55, 20)
        ]

        await asyncio.gather(*(sql_store.merge_progress("l1", "u1", u) for u in updates))

        record = await sql_store.read_progress("l1", "u1")
        assert record.percent_watched == 80.0
        assert record.milestones_reached == {25, 50, 75}

    async def test_subscribers_receive_committed_records(self, sql_store: SqlProgressStore) -> None:
        received: list[ProgressRecord] = []
        unsubscribe = sql_store.subscribe_progress("l1", "u1", received.append)

        await sql_store.merge_progress("l1", "u1", ProgressUpdate(percent_watched=10.0))
        unsubscribe()
        await sql_store.merge_progress("l1", "u1", ProgressUpdate(percent_watched=20.0))

        assert [r.percent_watched for r in received] == [10.0]

    async def test_activity_fields_round_trip(self, sql_store: SqlProgressStore) -> None:
        await sql_store.merge_progress(
            "l1",
            "u1",
            ProgressUpdate(
                video_completed=True,
                activity_completed=True,
                activity_attempts=2,
                activity_started_at=T0,
                completed_at=T0 + timedelta(minutes=5),
                activity_score_percent=75.0,
                activity_correct_count=3,
                activity_total_count=4,
            ),
        )

        record = await sql_store.read_progress("l1", "u1")
        assert record.activity_attempts == 2
        assert record.activity_started_at == T0
        assert record.completed_at == T0 + timedelta(minutes=5)
        assert record.activity_score_percent == 75.0

    async def test_read_learner_progress(self, sql_store: SqlProgressStore) -> None:
        await sql_store.merge_progress("l1", "u2", ProgressUpdate(percent_watched=10.0))
        await sql_store.merge_progress("l1", "u1", ProgressUpdate(percent_watched=20.0))
        await sql_store.merge_progress("l2", "u1", ProgressUpdate(percent_watched=30.0))

        records = await sql_store.read_learner_progress("l1")

        assert [r.unit_id for r in records] == ["u1", "u2"]

    async def test_delete(self, sql_store: SqlProgressStore) -> None:
        await sql_store.merge_progress("l1", "u1", ProgressUpdate(percent_watched=10.0))

        assert await sql_store.delete_progress("l1", "u1") is True
        assert await sql_store.delete_progress("l1", "u1") is False
        assert await sql_store.read_progress("l1", "u1") is None

    async def test_database_failure_raises_persistence_error(self, sql_store: SqlProgressStore, monkeypatch) -> None:
        async def broken_merge(*_args, **_kwargs):
            msg = "SELECT"
            raise OperationalError(msg, {}, Exception("database is locked"))

        monkeypatch.setattr(sql_store, "_merge_once", broken_merge)

        with pytest.raises(PersistenceError):
            await sql_store.merge_progress("l1", "u1", ProgressUpdate(percent_watched=10.0))

    async def test_session_end_to_end(self, sql_store: SqlProgressStore) -> None:
        session = PlaybackSession("l1", "u1", sql_store)
        await session.start()
        session.on_duration(60.0)
        for position in range(51):
            session.on_progress(float(position))
        await session.close()

        record = await sql_store.read_progress("l1", "u1")
        assert record.percent_watched == pytest.approx(83.33, abs=0.01)
        assert record.milestones_reached == {25, 50, 75}
        assert record.video_unlocked_activity is False
        assert record.last_position_seconds == 50.0

    async def test_unknown_milestones_are_dropped(self, sql_store: SqlProgressStore) -> None:
        record = await sql_store.merge_progress("l1", "u1", ProgressUpdate(milestones_reached={25, 33, 1000}))

        assert record.milestones_reached == {25}
        stored = await sql_store.read_progress("l1", "u1")
        assert stored.milestones_reached == {25}

    async def test_time_spent_round_trips_and_only_grows(self, sql_store: SqlProgressStore) -> None:
        await sql_store.merge_progress(
            "l1",
            "u1",
            ProgressUpdate(activity_time_seconds=120.0, total_time_seconds=300.0, activity_score_updated_at=T0),
        )
        await sql_store.merge_progress("l1", "u1", ProgressUpdate(activity_time_seconds=60.0))

        record = await sql_store.read_progress("l1", "u1")
        assert record.activity_time_seconds == 120.0
        assert record.total_time_seconds == 300.0
        assert record.activity_score_updated_at == T0


class TestCrossInstanceSubscriptions:
    async def test_write_through_another_store_is_delivered(self, engine: AsyncEngine) -> None:
        watching = SqlProgressStore(create_session_maker(engine), poll_interval_seconds=0.01)
        writing = SqlProgressStore(create_session_maker(engine), poll_interval_seconds=0.01)
        received: list[ProgressRecord] = []
        unsubscribe = watching.subscribe_progress("l1", "u1", received.append)

        await writing.merge_progress("l1", "u1", ProgressUpdate(percent_watched=95.0))
        await wait_until(lambda: received)

        assert received[-1].percent_watched == 95.0
        assert received[-1].video_unlocked_activity is True
        unsubscribe()
        await watching.close()

    async def test_local_merge_is_delivered_once(self, engine: AsyncEngine) -> None:
        store = SqlProgressStore(create_session_maker(engine), poll_interval_seconds=0.01)
        received: list[ProgressRecord] = []
        unsubscribe = store.subscribe_progress("l1", "u1", received.append)

        await store.merge_progress("l1", "u1", ProgressUpdate(percent_watched=10.0))
        await asyncio.sleep(0.1)

        assert [r.percent_watched for r in received] == [10.0]
        unsubscribe()

    async def test_unsubscribe_stops_remote_delivery(self, engine: AsyncEngine) -> None:
        watching = SqlProgressStore(create_session_maker(engine), poll_interval_seconds=0.01)
        writing = SqlProgressStore(create_session_maker(engine))
        received: list[ProgressRecord] = []
        unsubscribe = watching.subscribe_progress("l1", "u1", received.append)

        unsubscribe()
        unsubscribe()
        await writing.merge_progress("l1", "u1", ProgressUpdate(percent_watched=50.0))
        await asyncio.sleep(0.1)

        assert received == []

    async def test_one_watcher_serves_every_subscriber(self, engine: AsyncEngine) -> None:
        watching = SqlProgressStore(create_session_maker(engine), poll_interval_seconds=0.01)
        writing = SqlProgressStore(create_session_maker(engine))
        first: list[ProgressRecord] = []
        second: list[ProgressRecord] = []
        unsubscribe_first = watching.subscribe_progress("l1", "u1", first.append)
        unsubscribe_second = watching.subscribe_progress("l1", "u1", second.append)

        unsubscribe_first()
        await writing.merge_progress("l1", "u1", ProgressUpdate(percent_watched=30.0))
        await wait_until(lambda: second)

        assert first == []
        assert second[-1].percent_watched == 30.0
        unsubscribe_second()

    async def test_session_reconciles_with_another_device(self, engine: AsyncEngine) -> None:
        device_a = SqlProgressStore(create_session_maker(engine), poll_interval_seconds=0.01)
        device_b = SqlProgressStore(create_session_maker(engine))
        session = PlaybackSession("l1", "u1", device_a)
        await session.start()
        session.on_duration(100.0)
        session.on_progress(5.0)

        await device_b.merge_progress(
            "l1", "u1", ProgressUpdate(percent_watched=95.0, milestones_reached={25, 50, 75, 90})
        )
        await wait_until(lambda: session.state is UnlockState.UNLOCKED)

        assert session.milestones_fired == {25, 50, 75, 90}
        await session.close()
        record = await device_b.read_progress("l1", "u1")
        assert record.percent_watched == 95.0
