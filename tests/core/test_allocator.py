"""Tests for allocation and preview against the in-process store."""

import asyncio
from datetime import datetime, timezone

import pytest

from src.core.documents.allocator import PreviewService, SequenceAllocator
from src.core.documents.history import InMemoryHistoryRecorder
from src.core.documents.models import ResetFrequency
from src.core.documents.schemas import NumberingWarning, SequenceState
from src.core.documents.store import InMemorySequenceStore
from src.core.exceptions import (
    NotFoundError,
    SequenceContentionError,
    SequenceInactiveError,
    StoreUnavailableError,
)

NOW = datetime(2026, 3, 15, 10, 0, tzinfo=timezone.utc)
LAST_YEAR = datetime(2025, 7, 1, 9, 0, tzinfo=timezone.utc)


def clock() -> datetime:
    return NOW


def make_state(**overrides) -> SequenceState:
    values = {
        "document_type": "invoice",
        "prefix": "INV-",
        "current_number": 40,
        "number_length": 4,
        "reset_frequency": ResetFrequency.NEVER,
    }
    values.update(overrides)
    return SequenceState(**values)


def make_allocator(store, history=None, **kwargs) -> SequenceAllocator:
    return SequenceAllocator(
        store,
        history or InMemoryHistoryRecorder(),
        clock=clock,
        backoff_ms=kwargs.pop("backoff_ms", 0),
        **kwargs,
    )


class FailingStore(InMemorySequenceStore):
    """Store whose conditional write fails before anything is written."""

    async def compare_and_set(self, *args, **kwargs) -> bool:
        raise StoreUnavailableError()


class AlwaysConflictingStore(InMemorySequenceStore):
    """Store where every conditional write loses a race."""

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.attempts = 0

    async def compare_and_set(self, *args, **kwargs) -> bool:
        self.attempts += 1
        return False


class InterleavingStore(InMemorySequenceStore):
    """Runs another allocation between the first read and its conditional write."""

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.intruder = None

    async def compare_and_set(self, *args, **kwargs) -> bool:
        if self.intruder is not None:
            intruder, self.intruder = self.intruder, None
            await intruder()
        return await super().compare_and_set(*args, **kwargs)


class TestSequenceAllocator:
    """Tests for SequenceAllocator."""

    async def test_sequential_numbers(self):
        """INV- / 40 / length 4 issues INV-0041 then INV-0042."""
        store = InMemorySequenceStore([make_state()])
        allocator = make_allocator(store)

        first = await allocator.allocate("invoice")
        second = await allocator.allocate("invoice")

        assert first.full_document_number == "INV-0041"
        assert first.numeric_value == 41
        assert second.full_document_number == "INV-0042"
        assert second.numeric_value == 42
        assert first.warnings == []
        assert (await store.get("invoice")).current_number == 42

    async def test_yearly_reset_in_new_year(self):
        """A yearly sequence last reset in a previous year restarts at 1."""
        store = InMemorySequenceStore(
            [
                make_state(
                    document_type="claim_batch",
                    prefix="",
                    current_number=0,
                    number_length=3,
                    reset_frequency=ResetFrequency.YEARLY,
                    last_reset_date=LAST_YEAR,
                )
            ]
        )
        result = await make_allocator(store).allocate("claim_batch")

        assert result.full_document_number == "001"
        assert result.fresh_period is True
        state = await store.get("claim_batch")
        assert state.current_number == 1
        assert state.last_reset_date == NOW

    async def test_reset_and_increment_are_one_write(self):
        """The period restart happens in the same conditional write as the increment."""
        store = InMemorySequenceStore(
            [
                make_state(
                    current_number=57,
                    reset_frequency=ResetFrequency.MONTHLY,
                    last_reset_date=LAST_YEAR,
                )
            ]
        )
        before = await store.get("invoice")
        result = await make_allocator(store).allocate("invoice")

        after = await store.get("invoice")
        assert result.numeric_value == 1
        assert after.current_number == 1
        assert after.version == before.version + 1

    async def test_reset_uses_configured_start_number(self):
        store = InMemorySequenceStore(
            [
                make_state(
                    current_number=250,
                    start_number=100,
                    reset_frequency=ResetFrequency.DAILY,
                    last_reset_date=LAST_YEAR,
                )
            ]
        )
        result = await make_allocator(store).allocate("invoice")
        assert result.numeric_value == 100
        assert result.full_document_number == "INV-0100"

    async def test_no_reset_within_period(self):
        store = InMemorySequenceStore(
            [
                make_state(
                    current_number=7,
                    reset_frequency=ResetFrequency.YEARLY,
                    last_reset_date=datetime(2026, 1, 1, tzinfo=timezone.utc),
                )
            ]
        )
        result = await make_allocator(store).allocate("invoice")
        assert result.numeric_value == 8
        assert result.fresh_period is False
        assert (await store.get("invoice")).last_reset_date == datetime(2026, 1, 1, tzinfo=timezone.utc)

    async def test_overflow_is_not_truncated(self):
        """Length 4 at 9999 issues 10000 with a warning."""
        store = InMemorySequenceStore([make_state(prefix="", current_number=9999)])
        result = await make_allocator(store).allocate("invoice")

        assert result.numeric_value == 10000
        assert result.full_document_number == "10000"
        assert result.warnings == [NumberingWarning.NUMBER_LENGTH_EXCEEDED]

    async def test_history_row_per_allocation(self):
        store = InMemorySequenceStore([make_state()])
        history = InMemoryHistoryRecorder()
        allocator = make_allocator(store, history)

        await allocator.allocate("invoice", document_id=501, actor_id=7)
        await allocator.allocate("invoice")

        assert len(history.entries) == 2
        first, second = history.entries
        assert first.full_document_number == "INV-0041"
        assert first.generated_number == 41
        assert first.document_id == 501
        assert first.generated_by == 7
        assert first.generated_date == NOW
        assert second.generated_by is None

    async def test_inactive_sequence(self):
        store = InMemorySequenceStore([make_state(is_active=False)])
        history = InMemoryHistoryRecorder()

        with pytest.raises(SequenceInactiveError):
            await make_allocator(store, history).allocate("invoice")

        assert history.entries == []
        assert (await store.get("invoice")).current_number == 40

    async def test_unknown_document_type(self):
        store = InMemorySequenceStore([make_state()])
        with pytest.raises(NotFoundError):
            await make_allocator(store).allocate("unknown")

    async def test_store_failure_changes_nothing(self):
        store = FailingStore([make_state()])
        history = InMemoryHistoryRecorder()

        with pytest.raises(StoreUnavailableError):
            await make_allocator(store, history).allocate("invoice")

        assert history.entries == []
        state = await store.get("invoice")
        assert state.current_number == 40
        assert state.version == 0

    async def test_contention_after_bounded_attempts(self):
        store = AlwaysConflictingStore([make_state()])
        history = InMemoryHistoryRecorder()

        with pytest.raises(SequenceContentionError) as exc_info:
            await make_allocator(store, history, max_attempts=3).allocate("invoice")

        assert store.attempts == 3
        assert exc_info.value.details["attempts"] == 3
        assert history.entries == []

    async def test_single_attempt_is_honoured(self):
        store = AlwaysConflictingStore([make_state()])

        with pytest.raises(SequenceContentionError):
            await make_allocator(store, max_attempts=1).allocate("invoice")

        assert store.attempts == 1

    def test_zero_attempts_rejected(self):
        with pytest.raises(ValueError):
            make_allocator(InMemorySequenceStore([make_state()]), max_attempts=0)

    async def test_lost_race_retries_with_fresh_read(self):
        store = InterleavingStore([make_state()])
        history = InMemoryHistoryRecorder()
        allocator = make_allocator(store, history)

        intruder_results = []

        async def intruder():
            intruder_results.append(await allocator.allocate("invoice"))

        store.intruder = intruder
        result = await allocator.allocate("invoice")

        assert intruder_results[0].full_document_number == "INV-0041"
        assert result.full_document_number == "INV-0042"
        assert [e.generated_number for e in history.entries] == [41, 42]

    async def test_version_guards_against_same_number_rewrite(self):
        """A reset that lands on the number an allocator read still fails its write."""
        store = InMemorySequenceStore([make_state()])
        state = await store.get("invoice")

        await store.overwrite("invoice", current_number=40, last_reset_date=NOW)
        committed = await store.compare_and_set(
            "invoice",
            expected_number=state.current_number,
            expected_version=state.version,
            new_number=41,
            new_last_reset_date=None,
        )
        assert committed is False

    async def test_concurrent_allocations_are_unique_and_contiguous(self):
        store = InMemorySequenceStore([make_state(current_number=0, number_length=6)])
        history = InMemoryHistoryRecorder()
        allocator = make_allocator(store, history, max_attempts=200)

        results = await asyncio.gather(*(allocator.allocate("invoice") for _ in range(50)))

        values = sorted(r.numeric_value for r in results)
        assert values == list(range(1, 51))
        assert len({r.full_document_number for r in results}) == 50
        assert len(history.entries) == 50
        assert (await store.get("invoice")).current_number == 50

    async def test_document_types_are_independent(self):
        store = InMemorySequenceStore(
            [make_state(), make_state(document_type="receipt", prefix="RCP-", current_number=0)]
        )
        allocator = make_allocator(store)

        invoice = await allocator.allocate("invoice")
        receipt = await allocator.allocate("receipt")

        assert invoice.full_document_number == "INV-0041"
        assert receipt.full_document_number == "RCP-0001"


class TestPreviewService:
    """Tests for PreviewService."""

    async def test_preview_matches_next_allocation(self):
        store = InMemorySequenceStore([make_state()])
        preview = await PreviewService(store, clock=clock).preview("invoice")
        allocated = await make_allocator(store).allocate("invoice")

        assert preview.preview_number == allocated.full_document_number == "INV-0041"

    async def test_preview_does_not_consume(self):
        store = InMemorySequenceStore([make_state()])
        service = PreviewService(store, clock=clock)

        first = await service.preview("invoice")
        second = await service.preview("invoice")

        assert first.preview_number == second.preview_number == "INV-0041"
        state = await store.get("invoice")
        assert state.current_number == 40
        assert state.version == 0

    async def test_preview_applies_reset(self):
        store = InMemorySequenceStore(
            [
                make_state(
                    current_number=300,
                    reset_frequency=ResetFrequency.YEARLY,
                    last_reset_date=LAST_YEAR,
                )
            ]
        )
        preview = await PreviewService(store, clock=clock).preview("invoice")

        assert preview.preview_number == "INV-0001"
        assert preview.fresh_period is True
        assert (await store.get("invoice")).last_reset_date == LAST_YEAR

    async def test_preview_reports_overflow(self):
        store = InMemorySequenceStore([make_state(current_number=9999)])
        preview = await PreviewService(store, clock=clock).preview("invoice")

        assert preview.preview_number == "INV-10000"
        assert preview.warnings == [NumberingWarning.NUMBER_LENGTH_EXCEEDED]
