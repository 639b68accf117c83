"""retire duplicate active documents, then enforce one active per type

Revision ID: 20261003_one_active_document
Revises: 20261002_documents
Create Date: 2026-10-03
"""

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = "20261003_one_active_document"
down_revision = "20261002_documents"
branch_labels = None
depends_on = None


def upgrade() -> None:
    # Keep the newest active row per key; the index cannot be built over duplicates.
    op.execute(
        """
        UPDATE documents
        SET is_active = false,
            valid_to = CURRENT_TIMESTAMP,
            replaced_at = CURRENT_TIMESTAMP,
            replacement_reason = 'UPDATED',
            status = 'SUPERSEDED',
            lock_version = lock_version + 1
        WHERE id IN (
            SELECT id FROM (
                SELECT id,
                       ROW_NUMBER() OVER (
                           PARTITION BY tenant_id, owner_kind, owner_id, doc_type
                           ORDER BY created_at DESC, id DESC
                       ) AS position
                FROM documents
                WHERE is_active = true
            ) ranked
            WHERE ranked.position > 1
        )
        """
    )
    op.create_index(
        "uq_documents_one_active",
        "documents",
        ["tenant_id", "owner_kind", "owner_id", "doc_type"],
        unique=True,
        postgresql_where=sa.text("is_active = true"),
        sqlite_where=sa.text("is_active = true"),
    )


def downgrade() -> None:
    op.drop_index("uq_documents_one_active", table_name="documents")
