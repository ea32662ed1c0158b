"""API for document numbering settings, preview, allocation and history."""

import logging

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from src.core.auth.dependencies import AdminUser, CurrentUser
from src.core.database import get_db
from src.core.documents.schemas import (
    AllocateRequest,
    AllocationResult,
    DocumentSequenceCreate,
    DocumentSequenceResponse,
    DocumentSequenceUpdate,
    HistoryEntry,
    PreviewResult,
    ResetRequest,
    ResetResult,
)
from src.core.documents.service import DocumentNumberingService
from src.core.exceptions import SequenceContentionError
from src.shared.schemas import SuccessResponse

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/settings/document-numbering", tags=["Document Numbering"])


@router.get("/sequences", response_model=SuccessResponse[list[DocumentSequenceResponse]])
async def list_sequences(
    current_user: CurrentUser,
    db: AsyncSession = Depends(get_db),
):
    """List document sequences with current counters and the next number for each."""
    service = DocumentNumberingService(db)
    sequences = await service.list_sequences()
    return SuccessResponse(data=sequences, message="Document sequences retrieved")


@router.post(
    "/sequences",
    response_model=SuccessResponse[DocumentSequenceResponse],
    status_code=201,
)
async def create_sequence(
    data: DocumentSequenceCreate,
    current_user: AdminUser,
    db: AsyncSession = Depends(get_db),
):
    """Provision a sequence for a new document type (SuperAdmin/Admin)."""
    service = DocumentNumberingService(db)
    sequence = await service.create_sequence(data, created_by_id=current_user.id)
    await db.commit()
    return SuccessResponse(data=sequence, message="Document sequence created")


@router.put("/sequences/{sequence_id}", response_model=SuccessResponse[DocumentSequenceResponse])
async def update_sequence(
    sequence_id: int,
    data: DocumentSequenceUpdate,
    current_user: AdminUser,
    db: AsyncSession = Depends(get_db),
):
    """
    Update sequence configuration (SuperAdmin/Admin).

    Intended for setup time, before documents are being numbered.
    """
    service = DocumentNumberingService(db)
    sequence = await service.update_sequence(sequence_id, data, updated_by_id=current_user.id)
    await db.commit()
    return SuccessResponse(data=sequence, message="Document sequence updated")


@router.get("/preview", response_model=SuccessResponse[PreviewResult])
async def preview_number(
    current_user: CurrentUser,
    document_type: str = Query(..., alias="documentType"),
    db: AsyncSession = Depends(get_db),
):
    """Show the next number without consuming it. Advisory only."""
    service = DocumentNumberingService(db)
    preview = await service.preview(document_type)
    return SuccessResponse(data=preview, message="Preview generated")


@router.post("/allocate", response_model=SuccessResponse[AllocationResult], status_code=201)
async def allocate_number(
    data: AllocateRequest,
    current_user: CurrentUser,
    db: AsyncSession = Depends(get_db),
):
    """Issue the next number for a document being finalized."""
    service = DocumentNumberingService(db)
    try:
        result = await service.allocate(
            data.document_type, document_id=data.document_id, actor_id=current_user.id
        )
    except SequenceContentionError:
        logger.info("Retrying allocation for %s after contention", data.document_type)
        result = await service.allocate(
            data.document_type, document_id=data.document_id, actor_id=current_user.id
        )
    await db.commit()
    return SuccessResponse(data=result, message="Document number issued")


@router.post("/sequences/{sequence_id}/reset", response_model=SuccessResponse[ResetResult])
async def reset_sequence(
    sequence_id: int,
    data: ResetRequest,
    current_user: AdminUser,
    db: AsyncSession = Depends(get_db),
):
    """
    Reset the sequence so the next number is newStartNumber (SuperAdmin/Admin).

    Cannot be undone. When the new start could repeat numbers already
    issued this period, the request must include confirm=true.
    """
    service = DocumentNumberingService(db)
    result = await service.reset(
        sequence_id,
        data.new_start_number,
        actor_id=current_user.id,
        confirm=data.confirm,
    )
    await db.commit()
    message = "Document sequence reset"
    if result.warnings:
        message = "Document sequence reset; previously issued numbers may be repeated"
    return SuccessResponse(data=result, message=message)


@router.get("/history", response_model=SuccessResponse[list[HistoryEntry]])
async def list_history(
    current_user: CurrentUser,
    limit: int = Query(20, ge=1, le=500),
    document_type: str | None = Query(None, alias="documentType"),
    db: AsyncSession = Depends(get_db),
):
    """Recently issued numbers, newest first."""
    service = DocumentNumberingService(db)
    entries = await service.list_history(limit=limit, document_type=document_type)
    return SuccessResponse(data=entries, message="Document number history retrieved")
