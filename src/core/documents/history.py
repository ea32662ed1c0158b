"""Append-only log of issued document numbers."""

import asyncio
from abc import ABC, abstractmethod
from datetime import datetime, timezone

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from src.core.documents.db_errors import store_errors
from src.core.documents.models import DocumentNumberHistory
from src.core.documents.schemas import HistoryEntry


class HistoryRecorder(ABC):
    """Writes one immutable row per successful allocation and answers audit queries."""

    @abstractmethod
    async def record(
        self,
        document_type: str,
        generated_number: int,
        full_document_number: str,
        generated_date: datetime,
        document_id: int | None = None,
        generated_by: int | None = None,
    ) -> HistoryEntry:
        """Persist the audit row for an issued number."""

    @abstractmethod
    async def list_recent(
        self, limit: int = 20, document_type: str | None = None
    ) -> list[HistoryEntry]:
        """Most recent first."""

    @abstractmethod
    async def highest_number_since(
        self, document_type: str, since: datetime | None
    ) -> int | None:
        """Highest generated_number for the type issued at or after since (all time if None)."""


class SqlAlchemyHistoryRecorder(HistoryRecorder):
    """HistoryRecorder backed by the document_number_history table."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def record(
        self,
        document_type: str,
        generated_number: int,
        full_document_number: str,
        generated_date: datetime,
        document_id: int | None = None,
        generated_by: int | None = None,
    ) -> HistoryEntry:
        row = DocumentNumberHistory(
            document_type=document_type,
            document_id=document_id,
            generated_number=generated_number,
            full_document_number=full_document_number,
            generated_by=generated_by,
            generated_date=generated_date,
        )
        self.session.add(row)
        with store_errors():
            await self.session.flush()
        return HistoryEntry.model_validate(row)

    async def list_recent(
        self, limit: int = 20, document_type: str | None = None
    ) -> list[HistoryEntry]:
        stmt = select(DocumentNumberHistory).order_by(
            DocumentNumberHistory.generated_date.desc(),
            DocumentNumberHistory.id.desc(),
        )
        if document_type:
            stmt = stmt.where(DocumentNumberHistory.document_type == document_type)
        stmt = stmt.limit(limit)
        with store_errors():
            result = await self.session.execute(stmt)
        return [HistoryEntry.model_validate(row) for row in result.scalars().all()]

    async def highest_number_since(
        self, document_type: str, since: datetime | None
    ) -> int | None:
        stmt = select(func.max(DocumentNumberHistory.generated_number)).where(
            DocumentNumberHistory.document_type == document_type
        )
        if since is not None:
            stmt = stmt.where(DocumentNumberHistory.generated_date >= since)
        with store_errors():
            result = await self.session.execute(stmt)
        return result.scalar_one_or_none()


class InMemoryHistoryRecorder(HistoryRecorder):
    """Process-local HistoryRecorder for scripts and tests."""

    def __init__(self):
        self.entries: list[HistoryEntry] = []

    async def record(
        self,
        document_type: str,
        generated_number: int,
        full_document_number: str,
        generated_date: datetime,
        document_id: int | None = None,
        generated_by: int | None = None,
    ) -> HistoryEntry:
        await asyncio.sleep(0)
        entry = HistoryEntry(
            id=len(self.entries) + 1,
            document_type=document_type,
            document_id=document_id,
            generated_number=generated_number,
            full_document_number=full_document_number,
            generated_by=generated_by,
            generated_date=generated_date,
        )
        self.entries.append(entry)
        return entry

    async def list_recent(
        self, limit: int = 20, document_type: str | None = None
    ) -> list[HistoryEntry]:
        rows = [e for e in self.entries if not document_type or e.document_type == document_type]
        rows.sort(key=lambda e: (_utc(e.generated_date), e.id or 0), reverse=True)
        return rows[:limit]

    async def highest_number_since(
        self, document_type: str, since: datetime | None
    ) -> int | None:
        numbers = [
            e.generated_number
            for e in self.entries
            if e.document_type == document_type
            and (since is None or _utc(e.generated_date) >= _utc(since))
        ]
        return max(numbers) if numbers else None


def _utc(value: datetime) -> datetime:
    return value.replace(tzinfo=timezone.utc) if value.tzinfo is None else value
