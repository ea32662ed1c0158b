"""Privileged counter reset."""

import logging

from src.core.documents.allocator import Clock, PreviewService, utc_now
from src.core.documents.history import HistoryRecorder
from src.core.documents.reset_policy import period_start
from src.core.documents.schemas import NumberingWarning, ResetResult
from src.core.documents.store import SequenceStore
from src.core.exceptions import DuplicateRiskNotConfirmedError, ValidationError

logger = logging.getLogger(__name__)


class AdminResetService:
    """
    Re-point a sequence so the next allocation yields new_start_number.

    The write bypasses the conditional-update check. Before writing, the
    requested start is compared with the highest number already issued in
    the current period; if numbers could be issued twice the caller must
    pass confirm=True, and the result then carries DUPLICATE_RISK.
    """

    def __init__(self, store: SequenceStore, history: HistoryRecorder, clock: Clock = utc_now):
        self.store = store
        self.history = history
        self.clock = clock

    async def reset(
        self,
        document_type: str,
        new_start_number: int,
        actor_id: int | None = None,
        confirm: bool = False,
    ) -> ResetResult:
        if new_start_number < 1:
            raise ValidationError("New start number must be at least 1", field="newStartNumber")

        state = await self.store.get(document_type)
        now = self.clock()

        highest = await self.history.highest_number_since(
            document_type, period_start(state.reset_frequency, now)
        )
        warnings = []
        if highest is not None and new_start_number <= highest:
            if not confirm:
                raise DuplicateRiskNotConfirmedError(document_type, new_start_number, highest)
            warnings.append(NumberingWarning.DUPLICATE_RISK)
            logger.warning(
                "Sequence %s reset to %d by user %s although %d was already issued this period",
                document_type,
                new_start_number,
                actor_id,
                highest,
            )

        updated = await self.store.overwrite(
            document_type,
            current_number=new_start_number - 1,
            last_reset_date=now,
        )
        logger.info(
            "Sequence %s reset by user %s: %d -> next %d",
            document_type,
            actor_id,
            state.current_number,
            new_start_number,
        )

        preview = PreviewService(self.store, clock=lambda: now).preview_state(updated)
        return ResetResult(
            document_type=document_type,
            new_start_number=new_start_number,
            previous_number=state.current_number,
            highest_issued_in_period=highest,
            next_number=preview.preview_number,
            warnings=warnings,
        )
