from datetime import datetime, timezone

import pytest
from sqlalchemy import select
from sqlalchemy.exc import OperationalError
from sqlalchemy.ext.asyncio import AsyncSession

from src.core.documents.models import DocumentSequence, ResetFrequency
from src.core.documents.schemas import DocumentSequenceCreate
from src.core.documents.allocator import SequenceAllocator
from src.core.documents.history import SqlAlchemyHistoryRecorder
from src.core.documents.store import SqlAlchemySequenceStore
from src.core.exceptions import DuplicateError, NotFoundError, StoreUnavailableError

NOW = datetime(2026, 3, 15, 10, 0, tzinfo=timezone.utc)


async def _create(store: SqlAlchemySequenceStore, **overrides):
    values = {"document_type": "invoice", "prefix": "INV-", "number_length": 4}
    values.update(overrides)
    return await store.create(DocumentSequenceCreate(**values))


class TestSqlAlchemySequenceStore:
    """Tests for the database-backed sequence store."""

    async def test_create_and_get(self, db_session: AsyncSession):
        store = SqlAlchemySequenceStore(db_session)
        created = await _create(store, reset_frequency=ResetFrequency.MONTHLY)

        state = await store.get("invoice")
        assert state.id == created.id
        assert state.prefix == "INV-"
        assert state.current_number == 0
        assert state.start_number == 1
        assert state.reset_frequency == ResetFrequency.MONTHLY
        assert state.version == 0

    async def test_create_duplicate_type(self, db_session: AsyncSession):
        store = SqlAlchemySequenceStore(db_session)
        await _create(store)
        with pytest.raises(DuplicateError):
            await _create(store)

    async def test_get_unknown(self, db_session: AsyncSession):
        store = SqlAlchemySequenceStore(db_session)
        with pytest.raises(NotFoundError):
            await store.get("missing")
        with pytest.raises(NotFoundError):
            await store.get_by_id(999)

    async def test_compare_and_set_success(self, db_session: AsyncSession):
        store = SqlAlchemySequenceStore(db_session)
        await _create(store)

        committed = await store.compare_and_set(
            "invoice", expected_number=0, expected_version=0, new_number=1, new_last_reset_date=NOW
        )

        assert committed is True
        state = await store.get("invoice")
        assert state.current_number == 1
        assert state.version == 1
        assert state.last_reset_date is not None

    async def test_compare_and_set_stale_read_fails(self, db_session: AsyncSession):
        store = SqlAlchemySequenceStore(db_session)
        await _create(store)
        stale = await store.get("invoice")

        assert await store.compare_and_set("invoice", 0, 0, 1, None) is True
        # Second writer still holds the old read
        assert (
            await store.compare_and_set(
                "invoice", stale.current_number, stale.version, stale.current_number + 1, None
            )
            is False
        )
        assert (await store.get("invoice")).current_number == 1

    async def test_compare_and_set_refuses_inactive(self, db_session: AsyncSession):
        store = SqlAlchemySequenceStore(db_session)
        await _create(store, is_active=False)

        assert await store.compare_and_set("invoice", 0, 0, 1, None) is False

    async def test_reads_are_never_cached(self, db_session: AsyncSession):
        store = SqlAlchemySequenceStore(db_session)
        await _create(store)
        # Load the ORM row into the identity map, then change it behind the session's back
        result = await db_session.execute(select(DocumentSequence))
        result.scalar_one()

        await store.compare_and_set("invoice", 0, 0, 5, None)

        assert (await store.get("invoice")).current_number == 5

    async def test_overwrite(self, db_session: AsyncSession):
        store = SqlAlchemySequenceStore(db_session)
        await _create(store)

        state = await store.overwrite("invoice", current_number=99, last_reset_date=NOW)

        assert state.current_number == 99
        assert state.version == 1

    async def test_overwrite_unknown(self, db_session: AsyncSession):
        store = SqlAlchemySequenceStore(db_session)
        with pytest.raises(NotFoundError):
            await store.overwrite("missing", current_number=1, last_reset_date=NOW)

    async def test_update_config_bumps_version(self, db_session: AsyncSession):
        store = SqlAlchemySequenceStore(db_session)
        await _create(store)

        state = await store.update_config(
            "invoice", {"prefix": "BILL-", "reset_frequency": ResetFrequency.DAILY}
        )

        assert state.prefix == "BILL-"
        assert state.reset_frequency == ResetFrequency.DAILY
        assert state.version == 1

    async def test_update_config_rejects_counter_internals(self, db_session: AsyncSession):
        store = SqlAlchemySequenceStore(db_session)
        await _create(store)
        with pytest.raises(ValueError):
            await store.update_config("invoice", {"version": 10})

    async def test_connection_failure_is_store_unavailable(self, db_session: AsyncSession, monkeypatch):
        store = SqlAlchemySequenceStore(db_session)

        async def broken_execute(*args, **kwargs):
            raise OperationalError("SELECT 1", {}, Exception("connection refused"))

        monkeypatch.setattr(db_session, "execute", broken_execute)
        with pytest.raises(StoreUnavailableError):
            await store.get("invoice")


class TestSqlAlchemyHistoryRecorder:
    """Connectivity failures on the history table."""

    async def test_history_insert_failure_is_store_unavailable(
        self, db_session: AsyncSession, monkeypatch
    ):
        store = SqlAlchemySequenceStore(db_session)
        await _create(store)
        await db_session.commit()

        async def broken_flush(*args, **kwargs):
            raise OperationalError("INSERT", {}, Exception("connection reset"))

        monkeypatch.setattr(db_session, "flush", broken_flush)
        allocator = SequenceAllocator(
            store, SqlAlchemyHistoryRecorder(db_session), clock=lambda: NOW, backoff_ms=0
        )
        with pytest.raises(StoreUnavailableError):
            await allocator.allocate("invoice")

    async def test_history_query_failure_is_store_unavailable(
        self, db_session: AsyncSession, monkeypatch
    ):
        recorder = SqlAlchemyHistoryRecorder(db_session)

        async def broken_execute(*args, **kwargs):
            raise OperationalError("SELECT", {}, Exception("connection refused"))

        monkeypatch.setattr(db_session, "execute", broken_execute)
        with pytest.raises(StoreUnavailableError):
            await recorder.highest_number_since("invoice", None)
        with pytest.raises(StoreUnavailableError):
            await recorder.list_recent(limit=5)
