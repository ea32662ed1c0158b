from src.core.documents.models import DocumentNumberHistory, DocumentSequence, ResetFrequency
from src.core.documents.formatter import format_document_number
from src.core.documents.reset_policy import period_start, reset_due
from src.core.documents.store import InMemorySequenceStore, SequenceStore, SqlAlchemySequenceStore
from src.core.documents.history import (
    HistoryRecorder,
    InMemoryHistoryRecorder,
    SqlAlchemyHistoryRecorder,
)
from src.core.documents.allocator import PreviewService, SequenceAllocator
from src.core.documents.admin_reset import AdminResetService
from src.core.documents.service import DocumentNumberingService, get_document_number

__all__ = [
    "DocumentNumberHistory",
    "DocumentSequence",
    "ResetFrequency",
    "format_document_number",
    "period_start",
    "reset_due",
    "SequenceStore",
    "SqlAlchemySequenceStore",
    "InMemorySequenceStore",
    "HistoryRecorder",
    "SqlAlchemyHistoryRecorder",
    "InMemoryHistoryRecorder",
    "SequenceAllocator",
    "PreviewService",
    "AdminResetService",
    "DocumentNumberingService",
    "get_document_number",
]
