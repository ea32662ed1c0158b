"""
Durable per-document-type counter state.

Every mutation of a live counter goes through compare_and_set, which only
succeeds when the row still holds the number and version the caller read.
Concurrent allocators for the same document type therefore serialize on
the row, while different document types never contend.
"""

import asyncio
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from src.core.documents.db_errors import store_errors
from src.core.documents.models import DocumentSequence
from src.core.documents.schemas import DocumentSequenceCreate, SequenceState
from src.core.exceptions import DuplicateError, NotFoundError

CONFIG_FIELDS = frozenset(
    {
        "prefix",
        "suffix",
        "current_number",
        "start_number",
        "number_length",
        "format_template",
        "reset_frequency",
        "is_active",
    }
)


class SequenceStore(ABC):
    """Keyed storage of DocumentSequence state with atomic conditional update."""

    @abstractmethod
    async def get(self, document_type: str) -> SequenceState:
        """Read the current state. Raises NotFoundError for unknown types."""

    @abstractmethod
    async def get_by_id(self, sequence_id: int) -> SequenceState:
        """Read the current state by row id. Raises NotFoundError."""

    @abstractmethod
    async def list_all(self) -> list[SequenceState]:
        """All sequences ordered by document type."""

    @abstractmethod
    async def create(self, data: DocumentSequenceCreate) -> SequenceState:
        """Provision a new sequence. Raises DuplicateError if the type exists."""

    @abstractmethod
    async def compare_and_set(
        self,
        document_type: str,
        expected_number: int,
        expected_version: int,
        new_number: int,
        new_last_reset_date: datetime | None,
    ) -> bool:
        """
        Atomically move the counter if it still matches what the caller read.

        Returns False when another writer got there first or the sequence
        was disabled in the meantime; nothing is changed in that case.
        """

    @abstractmethod
    async def overwrite(
        self,
        document_type: str,
        current_number: int,
        last_reset_date: datetime | None,
    ) -> SequenceState:
        """Unconditionally re-point the counter (privileged reset)."""

    @abstractmethod
    async def update_config(self, document_type: str, changes: dict[str, Any]) -> SequenceState:
        """Apply a configuration-time edit; bumps the version."""


def _clean_changes(changes: dict[str, Any]) -> dict[str, Any]:
    unknown = set(changes) - CONFIG_FIELDS
    if unknown:
        raise ValueError(f"Not a sequence setting: {', '.join(sorted(unknown))}")
    return {
        key: value.value if hasattr(value, "value") else value
        for key, value in changes.items()
    }


class SqlAlchemySequenceStore(SequenceStore):
    """
    SequenceStore backed by the document_sequences table.

    Writes are flushed, not committed: the caller's transaction decides when
    a counter move becomes durable, so a rolled back request never consumes
    a number.
    """

    def __init__(self, session: AsyncSession):
        self.session = session

    async def _fetch(self, *criteria) -> DocumentSequence | None:
        stmt = (
            select(DocumentSequence)
            .where(*criteria)
            # Always re-read the row; a cached instance may predate a lost race
            .execution_options(populate_existing=True)
        )
        with store_errors():
            result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def get(self, document_type: str) -> SequenceState:
        row = await self._fetch(DocumentSequence.document_type == document_type)
        if row is None:
            raise NotFoundError("Document sequence", document_type)
        return SequenceState.model_validate(row)

    async def get_by_id(self, sequence_id: int) -> SequenceState:
        row = await self._fetch(DocumentSequence.id == sequence_id)
        if row is None:
            raise NotFoundError("Document sequence", sequence_id)
        return SequenceState.model_validate(row)

    async def list_all(self) -> list[SequenceState]:
        stmt = (
            select(DocumentSequence)
            .order_by(DocumentSequence.document_type)
            .execution_options(populate_existing=True)
        )
        with store_errors():
            result = await self.session.execute(stmt)
        return [SequenceState.model_validate(row) for row in result.scalars().all()]

    async def create(self, data: DocumentSequenceCreate) -> SequenceState:
        existing = await self._fetch(DocumentSequence.document_type == data.document_type)
        if existing is not None:
            raise DuplicateError("Document sequence", "document_type", data.document_type)

        row = DocumentSequence(
            document_type=data.document_type,
            prefix=data.prefix,
            suffix=data.suffix,
            current_number=data.current_number,
            start_number=data.start_number,
            number_length=data.number_length,
            format_template=data.format_template,
            reset_frequency=data.reset_frequency.value,
            is_active=data.is_active,
            version=0,
        )
        self.session.add(row)
        with store_errors():
            await self.session.flush()
            await self.session.refresh(row)
        return SequenceState.model_validate(row)

    async def compare_and_set(
        self,
        document_type: str,
        expected_number: int,
        expected_version: int,
        new_number: int,
        new_last_reset_date: datetime | None,
    ) -> bool:
        stmt = (
            update(DocumentSequence)
            .where(
                DocumentSequence.document_type == document_type,
                DocumentSequence.current_number == expected_number,
                DocumentSequence.version == expected_version,
                DocumentSequence.is_active.is_(True),
            )
            .values(
                current_number=new_number,
                last_reset_date=new_last_reset_date,
                version=DocumentSequence.version + 1,
            )
            .execution_options(synchronize_session=False)
        )
        with store_errors():
            result = await self.session.execute(stmt)
        return result.rowcount == 1

    async def overwrite(
        self,
        document_type: str,
        current_number: int,
        last_reset_date: datetime | None,
    ) -> SequenceState:
        stmt = (
            update(DocumentSequence)
            .where(DocumentSequence.document_type == document_type)
            .values(
                current_number=current_number,
                last_reset_date=last_reset_date,
                version=DocumentSequence.version + 1,
            )
            .execution_options(synchronize_session=False)
        )
        with store_errors():
            result = await self.session.execute(stmt)
        if result.rowcount == 0:
            raise NotFoundError("Document sequence", document_type)
        return await self.get(document_type)

    async def update_config(self, document_type: str, changes: dict[str, Any]) -> SequenceState:
        values = _clean_changes(changes)
        row = await self._fetch(DocumentSequence.document_type == document_type)
        if row is None:
            raise NotFoundError("Document sequence", document_type)
        for key, value in values.items():
            setattr(row, key, value)
        row.version += 1
        with store_errors():
            await self.session.flush()
            await self.session.refresh(row)
        return SequenceState.model_validate(row)


class InMemorySequenceStore(SequenceStore):
    """
    Process-local SequenceStore with one asyncio.Lock per document type.

    Used by scripts and tests. Reads yield to the event loop before
    returning, like a real round trip, so concurrent allocators interleave.
    """

    def __init__(self, sequences: list[SequenceState] | None = None):
        self._rows: dict[str, SequenceState] = {}
        self._locks: dict[str, asyncio.Lock] = {}
        self._next_id = 1
        for state in sequences or []:
            self._put(state if state.id is not None else state.model_copy(update={"id": self._take_id()}))

    def _take_id(self) -> int:
        value = self._next_id
        self._next_id += 1
        return value

    def _put(self, state: SequenceState) -> None:
        self._rows[state.document_type] = state
        self._locks.setdefault(state.document_type, asyncio.Lock())
        self._next_id = max(self._next_id, (state.id or 0) + 1)

    def _require(self, document_type: str) -> SequenceState:
        state = self._rows.get(document_type)
        if state is None:
            raise NotFoundError("Document sequence", document_type)
        return state

    async def get(self, document_type: str) -> SequenceState:
        await asyncio.sleep(0)
        return self._require(document_type)

    async def get_by_id(self, sequence_id: int) -> SequenceState:
        await asyncio.sleep(0)
        for state in self._rows.values():
            if state.id == sequence_id:
                return state
        raise NotFoundError("Document sequence", sequence_id)

    async def list_all(self) -> list[SequenceState]:
        await asyncio.sleep(0)
        return sorted(self._rows.values(), key=lambda s: s.document_type)

    async def create(self, data: DocumentSequenceCreate) -> SequenceState:
        if data.document_type in self._rows:
            raise DuplicateError("Document sequence", "document_type", data.document_type)
        state = SequenceState(id=self._take_id(), version=0, **data.model_dump())
        self._put(state)
        return state

    async def compare_and_set(
        self,
        document_type: str,
        expected_number: int,
        expected_version: int,
        new_number: int,
        new_last_reset_date: datetime | None,
    ) -> bool:
        self._require(document_type)
        async with self._locks[document_type]:
            current = self._rows[document_type]
            if (
                not current.is_active
                or current.current_number != expected_number
                or current.version != expected_version
            ):
                return False
            self._rows[document_type] = current.model_copy(
                update={
                    "current_number": new_number,
                    "last_reset_date": new_last_reset_date,
                    "version": current.version + 1,
                }
            )
            return True

    async def overwrite(
        self,
        document_type: str,
        current_number: int,
        last_reset_date: datetime | None,
    ) -> SequenceState:
        self._require(document_type)
        async with self._locks[document_type]:
            current = self._rows[document_type]
            state = current.model_copy(
                update={
                    "current_number": current_number,
                    "last_reset_date": last_reset_date,
                    "version": current.version + 1,
                }
            )
            self._rows[document_type] = state
            return state

    async def update_config(self, document_type: str, changes: dict[str, Any]) -> SequenceState:
        values = _clean_changes(changes)
        self._require(document_type)
        async with self._locks[document_type]:
            current = self._rows[document_type]
            state = SequenceState.model_validate(
                {**current.model_dump(), **values, "version": current.version + 1}
            )
            self._rows[document_type] = state
            return state
