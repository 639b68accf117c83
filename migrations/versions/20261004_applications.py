"""add applications and status history tables

Revision ID: 20261004_applications
Revises: 20261003_one_active_document
Create Date: 2026-10-04
"""

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql


# revision identifiers, used by Alembic.
revision = "20261004_applications"
down_revision = "20261003_one_active_document"
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "applications",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True, nullable=False),
        sa.Column("tenant_id", sa.String(length=64), nullable=False),
        sa.Column("owner_kind", sa.String(length=20), nullable=False),
        sa.Column("owner_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("requested_amount", sa.Numeric(18, 2), nullable=False),
        sa.Column("requested_term_months", sa.Integer(), nullable=False),
        sa.Column("purpose", sa.String(length=255), nullable=True),
        sa.Column(
            "required_document_types",
            postgresql.JSONB(astext_type=sa.Text()),
            nullable=False,
            server_default=sa.text("'[]'::jsonb"),
        ),
        sa.Column("status", sa.String(length=30), nullable=False, server_default="DRAFT"),
        sa.Column("status_changed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("status_changed_by", sa.String(length=255), nullable=True),
        sa.Column("status_changed_by_kind", sa.String(length=20), nullable=True),
        sa.Column("snapshot_references", postgresql.JSONB(astext_type=sa.Text()), nullable=True),
        sa.Column("snapshot_data", postgresql.JSONB(astext_type=sa.Text()), nullable=True),
        sa.Column("snapshot_captured_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("submitted_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("approved_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("rejected_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("cancelled_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("disbursed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_by", sa.String(length=255), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("lock_version", sa.Integer(), nullable=False, server_default="1"),
        sa.CheckConstraint(
            "status IN ('DRAFT', 'SUBMITTED', 'IN_REVIEW', 'DOCS_PENDING', 'CORRECTIONS_PENDING', "
            "'APPROVED', 'REJECTED', 'CANCELLED', 'DISBURSED', 'ACTIVE', 'COMPLETED', 'DEFAULT')",
            name="ck_applications_status",
        ),
        sa.CheckConstraint("owner_kind IN ('PERSON', 'COMPANY')", name="ck_applications_owner_kind"),
        sa.CheckConstraint("requested_amount > 0", name="ck_applications_amount_positive"),
        sa.CheckConstraint("requested_term_months >= 1", name="ck_applications_term_positive"),
        sa.CheckConstraint("lock_version >= 1", name="ck_applications_lock_version_positive"),
    )
    op.create_index("ix_applications_tenant_id", "applications", ["tenant_id"])
    op.create_index("ix_applications_tenant_status", "applications", ["tenant_id", "status"])
    op.create_index("ix_applications_owner", "applications", ["tenant_id", "owner_kind", "owner_id"])

    op.create_table(
        "application_status_history",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True, nullable=False),
        sa.Column("tenant_id", sa.String(length=64), nullable=False),
        sa.Column("application_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("sequence", sa.Integer(), nullable=False),
        sa.Column("from_status", sa.String(length=30), nullable=True),
        sa.Column("to_status", sa.String(length=30), nullable=False),
        sa.Column("changed_by", sa.String(length=255), nullable=True),
        sa.Column("changed_by_kind", sa.String(length=20), nullable=False, server_default="SYSTEM"),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.ForeignKeyConstraint(["application_id"], ["applications.id"], ondelete="RESTRICT"),
        sa.UniqueConstraint("application_id", "sequence", name="uq_application_status_history_seq"),
        sa.CheckConstraint(
            "changed_by_kind IN ('APPLICANT', 'STAFF', 'SYSTEM')",
            name="ck_application_status_history_actor_kind",
        ),
        sa.CheckConstraint("sequence >= 1", name="ck_application_status_history_seq_positive"),
    )
    op.create_index(
        "ix_application_status_history_tenant_id", "application_status_history", ["tenant_id"]
    )
    op.create_index(
        "ix_application_status_history_application_id",
        "application_status_history",
        ["application_id"],
    )


def downgrade() -> None:
    op.drop_index(
        "ix_application_status_history_application_id", table_name="application_status_history"
    )
    op.drop_index("ix_application_status_history_tenant_id", table_name="application_status_history")
    op.drop_table("application_status_history")
    op.drop_index("ix_applications_owner", table_name="applications")
    op.drop_index("ix_applications_tenant_status", table_name="applications")
    op.drop_index("ix_applications_tenant_id", table_name="applications")
    op.drop_table("applications")
