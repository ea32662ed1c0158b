"""Users, audit log, document sequences and number history

Revision ID: 001_document_numbering
Revises:
Create Date: 2026-10-18

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = "001_document_numbering"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

DEFAULT_SEQUENCES = [
    ("invoice", "INV-", "never"),
    ("statement", "STM-", "never"),
    ("claim_batch", "CLB-", "yearly"),
    ("receipt", "RCP-", "never"),
    ("superbill", "SPB-", "never"),
    ("referral", "REF-", "never"),
    ("lab_requisition", "LAB-", "never"),
    ("prescription", "RX-", "never"),
    ("encounter", "ENC-", "never"),
]


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
    ]


def upgrade() -> None:
    # Users table
    op.create_table(
        "users",
        sa.Column("id", sa.BigInteger(), autoincrement=True, nullable=False),
        sa.Column("email", sa.String(255), nullable=False),
        sa.Column("full_name", sa.String(200), nullable=False),
        sa.Column("role", sa.String(50), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default="true"),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_users_email", "users", ["email"], unique=True)
    op.create_index("ix_users_role", "users", ["role"], unique=False)

    # Audit logs
    op.create_table(
        "audit_logs",
        sa.Column("id", sa.BigInteger(), autoincrement=True, nullable=False),
        sa.Column("user_id", sa.BigInteger(), nullable=True),
        sa.Column("action", sa.String(100), nullable=False),
        sa.Column("entity_type", sa.String(100), nullable=False),
        sa.Column("entity_id", sa.BigInteger(), nullable=False),
        sa.Column("entity_identifier", sa.String(200), nullable=True),
        sa.Column("old_values", sa.JSON(), nullable=True),
        sa.Column("new_values", sa.JSON(), nullable=True),
        sa.Column("comment", sa.Text(), nullable=True),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_audit_logs_action", "audit_logs", ["action"])
    op.create_index("ix_audit_logs_entity_type", "audit_logs", ["entity_type"])
    op.create_index("ix_audit_logs_created_at", "audit_logs", ["created_at"])

    # Document sequences
    op.create_table(
        "document_sequences",
        sa.Column("id", sa.BigInteger(), autoincrement=True, nullable=False),
        sa.Column("document_type", sa.String(50), nullable=False),
        sa.Column("prefix", sa.String(20), nullable=False, server_default=""),
        sa.Column("suffix", sa.String(20), nullable=False, server_default=""),
        sa.Column("current_number", sa.BigInteger(), nullable=False, server_default="0"),
        sa.Column("start_number", sa.BigInteger(), nullable=False, server_default="1"),
        sa.Column("number_length", sa.Integer(), nullable=False, server_default="6"),
        sa.Column(
            "format_template",
            sa.String(100),
            nullable=False,
            server_default="{prefix}{number}{suffix}",
        ),
        sa.Column("reset_frequency", sa.String(20), nullable=False, server_default="never"),
        sa.Column("last_reset_date", sa.DateTime(timezone=True), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default="true"),
        sa.Column("version", sa.Integer(), nullable=False, server_default="0"),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
        sa.CheckConstraint(
            "reset_frequency IN ('never', 'yearly', 'monthly', 'daily')",
            name="ck_document_sequences_reset_frequency",
        ),
        sa.CheckConstraint("number_length BETWEEN 1 AND 10", name="ck_document_sequences_number_length"),
    )
    op.create_index(
        "ix_document_sequences_document_type", "document_sequences", ["document_type"], unique=True
    )

    # Document number history
    op.create_table(
        "document_number_history",
        sa.Column("id", sa.BigInteger(), autoincrement=True, nullable=False),
        sa.Column("document_type", sa.String(50), nullable=False),
        sa.Column("document_id", sa.BigInteger(), nullable=True),
        sa.Column("generated_number", sa.BigInteger(), nullable=False),
        sa.Column("full_document_number", sa.String(100), nullable=False),
        sa.Column("generated_by", sa.BigInteger(), nullable=True),
        sa.Column(
            "generated_date",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
        sa.PrimaryKeyConstraint("id"),
        sa.ForeignKeyConstraint(
            ["document_type"], ["document_sequences.document_type"], ondelete="RESTRICT"
        ),
        sa.ForeignKeyConstraint(["generated_by"], ["users.id"], ondelete="SET NULL"),
    )
    op.create_index(
        "ix_document_number_history_document_type", "document_number_history", ["document_type"]
    )
    op.create_index(
        "ix_document_number_history_full_document_number",
        "document_number_history",
        ["full_document_number"],
    )
    op.create_index(
        "ix_document_number_history_generated_date", "document_number_history", ["generated_date"]
    )

    # Seed default sequences
    sequences = sa.table(
        "document_sequences",
        sa.column("document_type", sa.String),
        sa.column("prefix", sa.String),
        sa.column("reset_frequency", sa.String),
    )
    op.bulk_insert(
        sequences,
        [
            {"document_type": t, "prefix": prefix, "reset_frequency": frequency}
            for t, prefix, frequency in DEFAULT_SEQUENCES
        ],
    )


def downgrade() -> None:
    op.drop_table("document_number_history")
    op.drop_table("document_sequences")
    op.drop_table("audit_logs")
    op.drop_table("users")
