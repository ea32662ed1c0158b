"""
Issue and preview document numbers.

Allocation is optimistic: read the sequence, work out the next number
(restarting the counter when a reset boundary has passed), then move the
counter with a single conditional write. A lost race re-reads and tries
again, so the reset and the increment always land together.
"""

import asyncio
import logging
import random
from collections.abc import Callable
from datetime import datetime, timezone
from typing import NamedTuple

from src.core.config import settings
from src.core.documents.formatter import exceeds_length, format_document_number
from src.core.documents.history import HistoryRecorder
from src.core.documents.reset_policy import reset_due
from src.core.documents.schemas import (
    AllocationResult,
    NumberingWarning,
    PreviewResult,
    SequenceState,
)
from src.core.documents.store import SequenceStore
from src.core.exceptions import SequenceContentionError, SequenceInactiveError

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class NextNumber(NamedTuple):
    """Planned outcome of allocating from a given sequence state."""

    numeric_value: int
    full_document_number: str
    fresh_period: bool
    last_reset_date: datetime | None
    warnings: list[NumberingWarning]


def plan_next_number(state: SequenceState, now: datetime) -> NextNumber:
    """Compute the next number for state at time now without touching storage."""
    fresh = reset_due(state.reset_frequency, state.last_reset_date, now)
    if fresh:
        base = state.start_number - 1
        last_reset_date = now
    else:
        base = state.current_number
        last_reset_date = state.last_reset_date

    numeric_value = base + 1
    warnings = []
    if exceeds_length(numeric_value, state.number_length):
        warnings.append(NumberingWarning.NUMBER_LENGTH_EXCEEDED)

    full = format_document_number(
        prefix=state.prefix,
        number=numeric_value,
        number_length=state.number_length,
        suffix=state.suffix,
        template=state.format_template,
        issued_at=now,
    )
    return NextNumber(numeric_value, full, fresh, last_reset_date, warnings)


class SequenceAllocator:
    """Hands out unique, sequential numbers per document type."""

    def __init__(
        self,
        store: SequenceStore,
        history: HistoryRecorder,
        clock: Clock = utc_now,
        max_attempts: int | None = None,
        backoff_ms: int | None = None,
    ):
        self.store = store
        self.history = history
        self.clock = clock
        self.max_attempts = settings.numbering_max_attempts if max_attempts is None else max_attempts
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        self.backoff_ms = settings.numbering_retry_backoff_ms if backoff_ms is None else backoff_ms

    async def _backoff(self, attempt: int) -> None:
        delay = self.backoff_ms * (2 ** (attempt - 1)) * random.uniform(0.5, 1.0) / 1000
        await asyncio.sleep(delay)

    async def allocate(
        self,
        document_type: str,
        document_id: int | None = None,
        actor_id: int | None = None,
    ) -> AllocationResult:
        """
        Issue the next number for document_type.

        Raises:
            NotFoundError: unknown document type
            SequenceInactiveError: sequence is disabled
            SequenceContentionError: every conditional write lost a race
            StoreUnavailableError: storage failed; nothing was issued
        """
        for attempt in range(1, self.max_attempts + 1):
            state = await self.store.get(document_type)
            if not state.is_active:
                raise SequenceInactiveError(document_type)

            now = self.clock()
            plan = plan_next_number(state, now)

            committed = await self.store.compare_and_set(
                document_type,
                expected_number=state.current_number,
                expected_version=state.version,
                new_number=plan.numeric_value,
                new_last_reset_date=plan.last_reset_date,
            )
            if not committed:
                logger.debug(
                    "Lost race allocating %s (attempt %d/%d, read %d)",
                    document_type,
                    attempt,
                    self.max_attempts,
                    state.current_number,
                )
                if attempt < self.max_attempts:
                    await self._backoff(attempt)
                continue

            if plan.fresh_period:
                logger.info(
                    "Sequence %s started a new %s period at %d",
                    document_type,
                    state.reset_frequency,
                    plan.numeric_value,
                )
            if NumberingWarning.NUMBER_LENGTH_EXCEEDED in plan.warnings:
                logger.warning(
                    "Document number %s for %s is wider than configured length %d",
                    plan.full_document_number,
                    document_type,
                    state.number_length,
                )

            await self.history.record(
                document_type=document_type,
                generated_number=plan.numeric_value,
                full_document_number=plan.full_document_number,
                generated_date=now,
                document_id=document_id,
                generated_by=actor_id,
            )
            logger.debug("Allocated %s for %s", plan.full_document_number, document_type)

            return AllocationResult(
                document_type=document_type,
                full_document_number=plan.full_document_number,
                numeric_value=plan.numeric_value,
                fresh_period=plan.fresh_period,
                warnings=plan.warnings,
            )

        logger.error(
            "Gave up allocating %s after %d conflicting attempts", document_type, self.max_attempts
        )
        raise SequenceContentionError(document_type, self.max_attempts)


class PreviewService:
    """Read-only view of what the next allocation would produce."""

    def __init__(self, store: SequenceStore, clock: Clock = utc_now):
        self.store = store
        self.clock = clock

    async def preview(self, document_type: str) -> PreviewResult:
        state = await self.store.get(document_type)
        return self.preview_state(state)

    def preview_state(self, state: SequenceState) -> PreviewResult:
        plan = plan_next_number(state, self.clock())
        return PreviewResult(
            document_type=state.document_type,
            preview_number=plan.full_document_number,
            numeric_value=plan.numeric_value,
            fresh_period=plan.fresh_period,
            warnings=plan.warnings,
        )
