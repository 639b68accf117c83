"""add data verification ledger

Revision ID: 20261005_data_verifications
Revises: 20261004_applications
Create Date: 2026-10-05
"""

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql


# revision identifiers, used by Alembic.
revision = "20261005_data_verifications"
down_revision = "20261004_applications"
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "data_verifications",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True, nullable=False),
        sa.Column("tenant_id", sa.String(length=64), nullable=False),
        sa.Column("owner_kind", sa.String(length=20), nullable=False),
        sa.Column("owner_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("field_name", sa.String(length=100), nullable=False),
        sa.Column("field_value", postgresql.JSONB(astext_type=sa.Text()), nullable=True),
        sa.Column("method", sa.String(length=50), nullable=False),
        sa.Column("status", sa.String(length=20), nullable=False),
        sa.Column("sequence", sa.Integer(), nullable=False),
        sa.Column("rejection_reason", sa.Text(), nullable=True),
        sa.Column("corrected_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column(
            "correction_history",
            postgresql.JSONB(astext_type=sa.Text()),
            nullable=False,
            server_default=sa.text("'[]'::jsonb"),
        ),
        sa.Column("verified_by", sa.String(length=255), nullable=True),
        sa.Column("verified_by_kind", sa.String(length=20), nullable=True),
        sa.Column(
            "metadata",
            postgresql.JSONB(astext_type=sa.Text()),
            nullable=False,
            server_default=sa.text("'{}'::jsonb"),
        ),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.UniqueConstraint(
            "tenant_id",
            "owner_kind",
            "owner_id",
            "field_name",
            "sequence",
            name="uq_data_verifications_field_sequence",
        ),
        sa.CheckConstraint(
            "status IN ('PENDING', 'VERIFIED', 'REJECTED', 'CORRECTED')",
            name="ck_data_verifications_status",
        ),
        sa.CheckConstraint(
            "owner_kind IN ('PERSON', 'COMPANY', 'APPLICATION')",
            name="ck_data_verifications_owner_kind",
        ),
        sa.CheckConstraint("sequence >= 1", name="ck_data_verifications_seq_positive"),
    )
    op.create_index("ix_data_verifications_tenant_id", "data_verifications", ["tenant_id"])
    op.create_index(
        "ix_data_verifications_owner", "data_verifications", ["tenant_id", "owner_kind", "owner_id"]
    )


def downgrade() -> None:
    op.drop_index("ix_data_verifications_owner", table_name="data_verifications")
    op.drop_index("ix_data_verifications_tenant_id", table_name="data_verifications")
    op.drop_table("data_verifications")
