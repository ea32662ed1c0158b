from datetime import datetime
from enum import StrEnum

from pydantic import ConfigDict, Field, field_validator

from src.core.documents.models import ResetFrequency
from src.shared.schemas import BaseSchema


class NumberingWarning(StrEnum):
    """Non-fatal conditions reported alongside a completed operation."""

    NUMBER_LENGTH_EXCEEDED = "NUMBER_LENGTH_EXCEEDED"
    DUPLICATE_RISK = "DUPLICATE_RISK"


class SequenceState(BaseSchema):
    """Immutable snapshot of a sequence as read from the store."""

    model_config = ConfigDict(frozen=True)

    id: int | None = None
    document_type: str
    prefix: str = ""
    suffix: str = ""
    current_number: int = 0
    start_number: int = 1
    number_length: int = 6
    format_template: str = "{prefix}{number}{suffix}"
    reset_frequency: ResetFrequency = ResetFrequency.NEVER
    last_reset_date: datetime | None = None
    is_active: bool = True
    version: int = 0


def _check_template(value: str | None) -> str | None:
    if value is not None and "{number}" not in value:
        raise ValueError("format_template must contain the {number} placeholder")
    return value


class DocumentSequenceCreate(BaseSchema):
    """Provision a sequence for a new document type."""

    document_type: str = Field(..., min_length=1, max_length=50, pattern=r"^[a-z0-9_]+$")
    prefix: str = Field("", max_length=20)
    suffix: str = Field("", max_length=20)
    current_number: int = Field(0, ge=0)
    start_number: int = Field(1, ge=1)
    number_length: int = Field(6, ge=1, le=10)
    format_template: str = Field("{prefix}{number}{suffix}", max_length=100)
    reset_frequency: ResetFrequency = ResetFrequency.NEVER
    is_active: bool = True

    @field_validator("format_template")
    @classmethod
    def validate_template(cls, v):
        return _check_template(v)


class DocumentSequenceUpdate(BaseSchema):
    """Configuration-time edit (all optional)."""

    prefix: str | None = Field(None, max_length=20)
    suffix: str | None = Field(None, max_length=20)
    current_number: int | None = Field(None, ge=0)
    start_number: int | None = Field(None, ge=1)
    number_length: int | None = Field(None, ge=1, le=10)
    format_template: str | None = Field(None, max_length=100)
    reset_frequency: ResetFrequency | None = None
    is_active: bool | None = None

    @field_validator("format_template")
    @classmethod
    def validate_template(cls, v):
        return _check_template(v)


class DocumentSequenceResponse(BaseSchema):
    """Sequence configuration with its live counter and next number."""

    id: int
    document_type: str
    prefix: str
    suffix: str
    current_number: int
    start_number: int
    number_length: int
    format_template: str
    reset_frequency: ResetFrequency
    last_reset_date: datetime | None
    is_active: bool
    preview_number: str | None = None


class PreviewResult(BaseSchema):
    """What the next allocation would return; advisory, not a reservation."""

    document_type: str
    preview_number: str = Field(..., serialization_alias="previewNumber")
    numeric_value: int
    fresh_period: bool = False
    warnings: list[NumberingWarning] = []


class AllocateRequest(BaseSchema):
    document_type: str = Field(..., alias="documentType", min_length=1)
    document_id: int | None = Field(None, alias="documentId")


class AllocationResult(BaseSchema):
    """Issued document number."""

    document_type: str
    full_document_number: str
    numeric_value: int
    fresh_period: bool = False
    warnings: list[NumberingWarning] = []


class ResetRequest(BaseSchema):
    new_start_number: int = Field(..., alias="newStartNumber", ge=1)
    confirm: bool = False


class ResetResult(BaseSchema):
    """Outcome of an administrative reset."""

    document_type: str
    new_start_number: int
    previous_number: int
    highest_issued_in_period: int | None = None
    next_number: str
    warnings: list[NumberingWarning] = []


class HistoryEntry(BaseSchema):
    """One issued number."""

    id: int | None = None
    document_type: str
    document_id: int | None = None
    generated_number: int
    full_document_number: str
    generated_by: int | None = None
    generated_date: datetime
