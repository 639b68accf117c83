"""add versioned records table

Revision ID: 20261001_versioned_records
Revises:
Create Date: 2026-10-01
"""

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql


# revision identifiers, used by Alembic.
revision = "20261001_versioned_records"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "versioned_records",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True, nullable=False),
        sa.Column("tenant_id", sa.String(length=64), nullable=False),
        sa.Column("owner_kind", sa.String(length=20), nullable=False),
        sa.Column("owner_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("record_kind", sa.String(length=20), nullable=False),
        sa.Column("record_type", sa.String(length=50), nullable=False),
        sa.Column("payload", postgresql.JSONB(astext_type=sa.Text()), nullable=False),
        sa.Column("is_current", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("previous_version_id", postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column("valid_from", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("valid_until", sa.DateTime(timezone=True), nullable=True),
        sa.Column("status", sa.String(length=20), nullable=False, server_default="PENDING"),
        sa.Column("replaced_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("replacement_reason", sa.String(length=20), nullable=True),
        sa.Column("verified_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("verified_by", sa.String(length=255), nullable=True),
        sa.Column("verification_method", sa.String(length=50), nullable=True),
        sa.Column("rejection_reason", sa.Text(), nullable=True),
        sa.Column("created_by", sa.String(length=255), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("deleted_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("lock_version", sa.Integer(), nullable=False, server_default="1"),
        sa.ForeignKeyConstraint(["previous_version_id"], ["versioned_records.id"], ondelete="RESTRICT"),
        sa.UniqueConstraint("previous_version_id", name="uq_versioned_records_previous_version"),
        sa.CheckConstraint(
            "record_kind IN ('IDENTIFICATION', 'ADDRESS', 'EMPLOYMENT', 'BANK_ACCOUNT', 'REFERENCE')",
            name="ck_versioned_records_kind",
        ),
        sa.CheckConstraint(
            "owner_kind IN ('PERSON', 'COMPANY', 'APPLICATION')",
            name="ck_versioned_records_owner_kind",
        ),
        sa.CheckConstraint(
            "status IN ('PENDING', 'VERIFIED', 'REJECTED', 'EXPIRED', 'SUPERSEDED')",
            name="ck_versioned_records_status",
        ),
        sa.CheckConstraint(
            "previous_version_id IS NULL OR previous_version_id <> id",
            name="ck_versioned_records_not_self_linked",
        ),
        sa.CheckConstraint("lock_version >= 1", name="ck_versioned_records_lock_version_positive"),
    )
    op.create_index("ix_versioned_records_tenant_id", "versioned_records", ["tenant_id"])
    op.create_index(
        "ix_versioned_records_owner_key",
        "versioned_records",
        ["tenant_id", "owner_kind", "owner_id", "record_kind", "record_type"],
    )
    op.create_index(
        "uq_versioned_records_one_current",
        "versioned_records",
        ["tenant_id", "owner_kind", "owner_id", "record_kind", "record_type"],
        unique=True,
        postgresql_where=sa.text("is_current = true AND deleted_at IS NULL"),
        sqlite_where=sa.text("is_current = true AND deleted_at IS NULL"),
    )


def downgrade() -> None:
    op.drop_index("uq_versioned_records_one_current", table_name="versioned_records")
    op.drop_index("ix_versioned_records_owner_key", table_name="versioned_records")
    op.drop_index("ix_versioned_records_tenant_id", table_name="versioned_records")
    op.drop_table("versioned_records")
