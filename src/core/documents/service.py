"""Document numbering service used by the settings API and document workflows."""

import logging

from sqlalchemy.ext.asyncio import AsyncSession

from src.core.audit import AuditAction, create_audit_log
from src.core.config import settings
from src.core.documents.admin_reset import AdminResetService
from src.core.documents.allocator import Clock, PreviewService, SequenceAllocator, utc_now
from src.core.documents.history import SqlAlchemyHistoryRecorder
from src.core.documents.models import ResetFrequency
from src.core.documents.schemas import (
    AllocationResult,
    DocumentSequenceCreate,
    DocumentSequenceResponse,
    DocumentSequenceUpdate,
    HistoryEntry,
    PreviewResult,
    ResetResult,
    SequenceState,
)
from src.core.documents.store import SqlAlchemySequenceStore

logger = logging.getLogger(__name__)

MAX_HISTORY_LIMIT = 500

# Document types provisioned for every practice: (document_type, prefix, reset_frequency)
DEFAULT_SEQUENCES: list[tuple[str, str, ResetFrequency]] = [
    ("invoice", "INV-", ResetFrequency.NEVER),
    ("statement", "STM-", ResetFrequency.NEVER),
    ("claim_batch", "CLB-", ResetFrequency.YEARLY),
    ("receipt", "RCP-", ResetFrequency.NEVER),
    ("superbill", "SPB-", ResetFrequency.NEVER),
    ("referral", "REF-", ResetFrequency.NEVER),
    ("lab_requisition", "LAB-", ResetFrequency.NEVER),
    ("prescription", "RX-", ResetFrequency.NEVER),
    ("encounter", "ENC-", ResetFrequency.NEVER),
]

_AUDITED_FIELDS = (
    "prefix",
    "suffix",
    "current_number",
    "start_number",
    "number_length",
    "format_template",
    "reset_frequency",
    "is_active",
)


def _audit_values(state: SequenceState) -> dict:
    return {
        key: getattr(state, key).value if key == "reset_frequency" else getattr(state, key)
        for key in _AUDITED_FIELDS
    }


class DocumentNumberingService:
    """Service for document sequence configuration, allocation, preview and reset."""

    def __init__(self, session: AsyncSession, clock: Clock = utc_now):
        self.session = session
        self.store = SqlAlchemySequenceStore(session)
        self.history = SqlAlchemyHistoryRecorder(session)
        self.allocator = SequenceAllocator(self.store, self.history, clock=clock)
        self.previewer = PreviewService(self.store, clock=clock)
        self.resetter = AdminResetService(self.store, self.history, clock=clock)

    # --- Configuration ---

    async def list_sequences(self) -> list[DocumentSequenceResponse]:
        """All sequences with their current counters and next number."""
        sequences = await self.store.list_all()
        return [self._to_response(state) for state in sequences]

    async def get_sequence(self, sequence_id: int) -> DocumentSequenceResponse:
        state = await self.store.get_by_id(sequence_id)
        return self._to_response(state)

    async def create_sequence(
        self, data: DocumentSequenceCreate, created_by_id: int | None = None
    ) -> DocumentSequenceResponse:
        """Provision a sequence for a new document type."""
        state = await self.store.create(data)

        await create_audit_log(
            session=self.session,
            action=AuditAction.CREATE,
            entity_type="DocumentSequence",
            entity_id=state.id,
            user_id=created_by_id,
            entity_identifier=state.document_type,
            new_values=_audit_values(state),
        )
        logger.info("Provisioned document sequence %s", state.document_type)
        return self._to_response(state)

    async def update_sequence(
        self,
        sequence_id: int,
        data: DocumentSequenceUpdate,
        updated_by_id: int | None = None,
    ) -> DocumentSequenceResponse:
        """
        Apply a configuration-time edit (only provided fields).

        Not a conditional update: it is meant to precede live allocation
        traffic. It still bumps the version, so any allocation that read
        the old settings retries against the new ones.
        """
        before = await self.store.get_by_id(sequence_id)
        changes = data.model_dump(exclude_unset=True, exclude_none=True)
        if not changes:
            return self._to_response(before)

        after = await self.store.update_config(before.document_type, changes)

        await create_audit_log(
            session=self.session,
            action=AuditAction.UPDATE,
            entity_type="DocumentSequence",
            entity_id=after.id,
            user_id=updated_by_id,
            entity_identifier=after.document_type,
            old_values=_audit_values(before),
            new_values=_audit_values(after),
        )
        return self._to_response(after)

    async def seed_default_sequences(self, seeded_by_id: int | None = None) -> list[str]:
        """Create any missing default sequences. Returns the document types created."""
        existing = {state.document_type for state in await self.store.list_all()}
        created = []
        for document_type, prefix, frequency in DEFAULT_SEQUENCES:
            if document_type in existing:
                continue
            state = await self.store.create(
                DocumentSequenceCreate(
                    document_type=document_type,
                    prefix=prefix,
                    number_length=settings.numbering_default_number_length,
                    format_template=settings.numbering_default_template,
                    reset_frequency=frequency,
                )
            )
            await create_audit_log(
                session=self.session,
                action=AuditAction.SEED_SEQUENCES,
                entity_type="DocumentSequence",
                entity_id=state.id,
                user_id=seeded_by_id,
                entity_identifier=document_type,
                new_values=_audit_values(state),
            )
            created.append(document_type)
        if created:
            logger.info("Seeded default document sequences: %s", ", ".join(created))
        return created

    # --- Numbering ---

    async def preview(self, document_type: str) -> PreviewResult:
        return await self.previewer.preview(document_type)

    async def allocate(
        self,
        document_type: str,
        document_id: int | None = None,
        actor_id: int | None = None,
    ) -> AllocationResult:
        return await self.allocator.allocate(
            document_type, document_id=document_id, actor_id=actor_id
        )

    async def reset(
        self,
        sequence_id: int,
        new_start_number: int,
        actor_id: int | None = None,
        confirm: bool = False,
    ) -> ResetResult:
        """Privileged reset; always audited."""
        state = await self.store.get_by_id(sequence_id)
        result = await self.resetter.reset(
            state.document_type, new_start_number, actor_id=actor_id, confirm=confirm
        )

        await create_audit_log(
            session=self.session,
            action=AuditAction.RESET_SEQUENCE,
            entity_type="DocumentSequence",
            entity_id=sequence_id,
            user_id=actor_id,
            entity_identifier=state.document_type,
            old_values={"current_number": state.current_number},
            new_values={
                "current_number": new_start_number - 1,
                "next_number": result.next_number,
            },
            comment=", ".join(result.warnings) or None,
        )
        return result

    async def list_history(
        self, limit: int = 20, document_type: str | None = None
    ) -> list[HistoryEntry]:
        limit = max(1, min(limit, MAX_HISTORY_LIMIT))
        return await self.history.list_recent(limit=limit, document_type=document_type)

    def _to_response(self, state: SequenceState) -> DocumentSequenceResponse:
        preview = self.previewer.preview_state(state)
        return DocumentSequenceResponse(
            **state.model_dump(exclude={"version", "id"}),
            id=state.id,
            preview_number=preview.preview_number,
        )


async def get_document_number(
    session: AsyncSession,
    document_type: str,
    document_id: int | None = None,
    actor_id: int | None = None,
) -> str:
    """Convenience function for document workflows: issue and return the formatted number."""
    result = await DocumentNumberingService(session).allocate(
        document_type, document_id=document_id, actor_id=actor_id
    )
    return result.full_document_number
