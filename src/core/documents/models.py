from datetime import datetime
from enum import StrEnum

from sqlalchemy import BigInteger, Boolean, DateTime, ForeignKey, Integer, String, func
from sqlalchemy.orm import Mapped, mapped_column

from src.core.database.base import Base, BaseModel, BigIntPK


class ResetFrequency(StrEnum):
    """How often a sequence's counter restarts."""

    NEVER = "never"
    YEARLY = "yearly"
    MONTHLY = "monthly"
    DAILY = "daily"


class DocumentSequence(BaseModel):
    """Numbering configuration and live counter for one document type."""

    __tablename__ = "document_sequences"

    document_type: Mapped[str] = mapped_column(String(50), unique=True, nullable=False, index=True)
    prefix: Mapped[str] = mapped_column(String(20), nullable=False, default="")
    suffix: Mapped[str] = mapped_column(String(20), nullable=False, default="")
    current_number: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    start_number: Mapped[int] = mapped_column(BigInteger, nullable=False, default=1)
    number_length: Mapped[int] = mapped_column(Integer, nullable=False, default=6)
    format_template: Mapped[str] = mapped_column(
        String(100), nullable=False, default="{prefix}{number}{suffix}"
    )
    reset_frequency: Mapped[str] = mapped_column(
        String(20), nullable=False, default=ResetFrequency.NEVER.value
    )
    last_reset_date: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    # Bumped on every write; guards conditional updates against ABA on current_number
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=0)


class DocumentNumberHistory(Base):
    """Append-only record of every number issued."""

    __tablename__ = "document_number_history"

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)
    document_type: Mapped[str] = mapped_column(
        String(50),
        ForeignKey("document_sequences.document_type", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )
    document_id: Mapped[int | None] = mapped_column(BigIntPK, nullable=True)
    generated_number: Mapped[int] = mapped_column(BigInteger, nullable=False)
    full_document_number: Mapped[str] = mapped_column(String(100), nullable=False, index=True)
    generated_by: Mapped[int | None] = mapped_column(
        BigIntPK,
        ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
    )
    generated_date: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
        index=True,
    )
