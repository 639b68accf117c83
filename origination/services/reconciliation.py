"""One-time repair of duplicate active documents.

Must run before ``uq_documents_one_active`` is created: the index cannot be
built while any key still has more than one active row.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from uuid import UUID

from sqlalchemy import Index, select, update
from sqlalchemy.ext.asyncio import AsyncConnection, AsyncSession

from origination.db.base import utcnow
from origination.models.document import ACTIVE_DOCUMENT_INDEX, Document
from origination.schemas.documents import DocumentReplacementReason, DocumentStatus

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class ReconciliationReport:
    duplicate_keys: int = 0
    kept_ids: list[UUID] = field(default_factory=list)
    retired_ids: list[UUID] = field(default_factory=list)


def active_document_index() -> Index:
    return next(index for index in Document.__table__.indexes if index.name == ACTIVE_DOCUMENT_INDEX)


async def reconcile_active_documents(db: AsyncSession, *, now: datetime | None = None) -> ReconciliationReport:
    """Keep the most recently created active row per key and retire the rest.

    Runs on the caller's transaction; commit it before creating the index.
    """
    now = now or utcnow()
    stmt = (
        select(
            Document.id,
            Document.tenant_id,
            Document.owner_kind,
            Document.owner_id,
            Document.doc_type,
        )
        .where(Document.is_active.is_(True))
        .order_by(
            Document.tenant_id,
            Document.owner_kind,
            Document.owner_id,
            Document.doc_type,
            Document.created_at.desc(),
            Document.id.desc(),
        )
    )
    report = ReconciliationReport()
    previous_key = None
    duplicated_keys = set()
    for row in (await db.execute(stmt)).all():
        key = (row.tenant_id, row.owner_kind, row.owner_id, row.doc_type)
        if key != previous_key:
            previous_key = key
            report.kept_ids.append(row.id)
            continue
        duplicated_keys.add(key)
        report.retired_ids.append(row.id)
    report.duplicate_keys = len(duplicated_keys)

    if report.retired_ids:
        await db.execute(
            update(Document)
            .where(Document.id.in_(report.retired_ids))
            .values(
                is_active=False,
                valid_to=now,
                replaced_at=now,
                replacement_reason=DocumentReplacementReason.UPDATED.value,
                status=DocumentStatus.SUPERSEDED.value,
                lock_version=Document.lock_version + 1,
            )
            .execution_options(synchronize_session=False)
        )
    logger.info(
        "Reconciled active documents",
        extra={"duplicate_keys": report.duplicate_keys, "retired": len(report.retired_ids)},
    )
    return report


async def create_active_document_index(conn: AsyncConnection) -> None:
    await conn.run_sync(lambda sync_conn: active_document_index().create(sync_conn, checkfirst=True))


async def drop_active_document_index(conn: AsyncConnection) -> None:
    await conn.run_sync(lambda sync_conn: active_document_index().drop(sync_conn, checkfirst=True))
