from datetime import timedelta

import pytest
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError

from conftest import make_upload
from origination.core.tenant import TenantContext
from origination.db.base import utcnow
from origination.models.document import Document
from origination.schemas.documents import DocumentStatus, DocumentType
from origination.services.reconciliation import (
    create_active_document_index,
    drop_active_document_index,
    reconcile_active_documents,
)


def _active_row(ctx: TenantContext, owner, doc_type: DocumentType, *, created_minutes_ago: int) -> Document:
    upload = make_upload()
    created_at = utcnow() - timedelta(minutes=created_minutes_ago)
    return Document(
        tenant_id=ctx.tenant_id,
        owner_kind=owner.kind.value,
        owner_id=owner.id,
        doc_type=doc_type.value,
        category="IDENTITY",
        file_name=upload.file_name,
        storage_path=upload.storage_path,
        is_active=True,
        valid_from=created_at,
        status=DocumentStatus.PENDING.value,
        created_at=created_at,
    )


@pytest.mark.asyncio
async def test_reconcile_keeps_newest_active_row(engine, sessions, tenant_ctx, person, company):
    async with engine.begin() as conn:
        await drop_active_document_index(conn)

    oldest = _active_row(tenant_ctx, person, DocumentType.INE_FRONT, created_minutes_ago=30)
    middle = _active_row(tenant_ctx, person, DocumentType.INE_FRONT, created_minutes_ago=20)
    newest = _active_row(tenant_ctx, person, DocumentType.INE_FRONT, created_minutes_ago=10)
    untouched = _active_row(tenant_ctx, company, DocumentType.INE_FRONT, created_minutes_ago=5)
    async with sessions() as db:
        db.add_all([oldest, middle, newest, untouched])
        await db.commit()

    with pytest.raises(IntegrityError):
        async with engine.begin() as conn:
            await create_active_document_index(conn)

    async with sessions() as db:
        report = await reconcile_active_documents(db)
        await db.commit()

    assert report.duplicate_keys == 1
    assert set(report.retired_ids) == {oldest.id, middle.id}
    assert set(report.kept_ids) == {newest.id, untouched.id}

    async with engine.begin() as conn:
        await create_active_document_index(conn)

    async with sessions() as db:
        rows = {row.id: row for row in (await db.execute(select(Document))).scalars().all()}
    assert rows[newest.id].is_active is True
    assert rows[untouched.id].is_active is True
    for retired_id in (oldest.id, middle.id):
        assert rows[retired_id].is_active is False
        assert rows[retired_id].status == DocumentStatus.SUPERSEDED.value
        assert rows[retired_id].valid_to is not None
        assert rows[retired_id].lock_version == 2


@pytest.mark.asyncio
async def test_reconcile_is_a_no_op_on_clean_data(sessions, document_registry, tenant_ctx, person):
    await document_registry.activate(tenant_ctx, person, DocumentType.INE_FRONT, make_upload())
    await document_registry.activate(tenant_ctx, person, DocumentType.INE_FRONT, make_upload())

    async with sessions() as db:
        report = await reconcile_active_documents(db)
        await db.commit()

    assert report.duplicate_keys == 0
    assert report.retired_ids == []
    assert len(report.kept_ids) == 1
