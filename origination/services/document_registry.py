"""One active document per owner and document type.

``uq_documents_one_active`` rejects a second active row at the storage layer,
so racing activations cannot both commit. The losing transaction rolls back
and is retried from a fresh read.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Iterable
from uuid import UUID

from sqlalchemy import or_, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from origination.core.settings import settings
from origination.core.tenant import TenantContext
from origination.db.base import utcnow
from origination.models.document import Document
from origination.schemas.common import ActorRef, OwnerRef, SYSTEM_ACTOR
from origination.schemas.documents import (
    DOCUMENT_CATEGORIES,
    DocumentCategory,
    DocumentReplacementReason,
    DocumentStatus,
    DocumentType,
    DocumentUpload,
)
from origination.services.audit import model_snapshot, record_audit_log
from origination.services.errors import (
    ConstraintViolation,
    InvalidRecordType,
    InvalidSupersession,
    NotFound,
    RecordNotCurrent,
)
from origination.services.transactions import read_session, run_in_transaction

logger = logging.getLogger(__name__)

RESOURCE_TYPE = "document"

_RETIRED_STATUSES = {DocumentStatus.SUPERSEDED.value, DocumentStatus.EXPIRED.value}


def normalize_doc_type(doc_type: DocumentType | str) -> DocumentType:
    try:
        return DocumentType(doc_type)
    except ValueError as exc:
        raise InvalidRecordType(
            f"Unknown document type {doc_type!r}", details={"doc_type": str(doc_type)}
        ) from exc


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


async def fetch_active(
    db: AsyncSession,
    ctx: TenantContext,
    owner: OwnerRef,
    doc_type: DocumentType,
    *,
    for_update: bool = False,
) -> Document | None:
    stmt = select(Document).where(
        Document.tenant_id == ctx.tenant_id,
        Document.owner_kind == owner.kind.value,
        Document.owner_id == owner.id,
        Document.doc_type == doc_type.value,
        Document.is_active.is_(True),
    )
    if for_update:
        stmt = stmt.with_for_update()
    return (await db.execute(stmt)).scalar_one_or_none()


async def _get_document(
    db: AsyncSession, ctx: TenantContext, document_id: UUID, *, for_update: bool = False
) -> Document:
    stmt = select(Document).where(Document.tenant_id == ctx.tenant_id, Document.id == document_id)
    if for_update:
        stmt = stmt.with_for_update()
    document = (await db.execute(stmt)).scalar_one_or_none()
    if document is None:
        raise NotFound("document", document_id=str(document_id))
    return document


def _retire(document: Document, now: datetime, reason: DocumentReplacementReason) -> None:
    document.is_active = False
    document.valid_to = now
    document.replaced_at = now
    document.replacement_reason = reason.value
    document.status = DocumentStatus.SUPERSEDED.value


def _new_document(
    ctx: TenantContext,
    owner: OwnerRef,
    doc_type: DocumentType,
    upload: DocumentUpload,
    *,
    actor: ActorRef,
    now: datetime,
    active: bool,
) -> Document:
    category = DOCUMENT_CATEGORIES.get(doc_type, DocumentCategory.OTHER)
    return Document(
        tenant_id=ctx.tenant_id,
        owner_kind=owner.kind.value,
        owner_id=owner.id,
        doc_type=doc_type.value,
        category=category.value,
        file_name=upload.file_name,
        storage_path=upload.storage_path,
        content_type=upload.content_type,
        size_bytes=upload.size_bytes,
        checksum=upload.checksum,
        is_active=active,
        valid_from=now,
        status=DocumentStatus.PENDING.value,
        created_by=actor.id,
        created_at=now,
    )


async def write_activation(
    db: AsyncSession,
    ctx: TenantContext,
    owner: OwnerRef,
    doc_type: DocumentType,
    upload: DocumentUpload,
    *,
    actor: ActorRef | None = None,
) -> Document:
    actor = actor or SYSTEM_ACTOR
    now = utcnow()
    prior = await fetch_active(db, ctx, owner, doc_type, for_update=True)
    prior_snapshot = None
    if prior is not None:
        prior_snapshot = model_snapshot(prior)
        reason = (
            DocumentReplacementReason.REJECTED
            if prior.status == DocumentStatus.REJECTED.value
            else DocumentReplacementReason.UPDATED
        )
        _retire(prior, now, reason)
        db.add(prior)
        await db.flush()

    document = _new_document(ctx, owner, doc_type, upload, actor=actor, now=now, active=True)
    db.add(document)
    await db.flush()

    if prior is not None:
        prior.superseded_by_id = document.id
        db.add(prior)
        await db.flush()
        record_audit_log(
            db,
            ctx,
            actor=actor,
            action="document.superseded",
            resource_type=RESOURCE_TYPE,
            resource_id=prior.id,
            old_value=prior_snapshot,
            new_value=model_snapshot(prior),
        )
    record_audit_log(
        db,
        ctx,
        actor=actor,
        action="document.activated",
        resource_type=RESOURCE_TYPE,
        resource_id=document.id,
        new_value=model_snapshot(document),
    )
    logger.info(
        "Activated document",
        extra={
            "document_id": str(document.id),
            "doc_type": doc_type.value,
            "owner": str(owner),
            "superseded_id": str(prior.id) if prior is not None else None,
        },
    )
    return document


async def write_supersession(
    db: AsyncSession,
    ctx: TenantContext,
    old_id: UUID,
    new_id: UUID,
    reason: DocumentReplacementReason,
    *,
    actor: ActorRef | None = None,
) -> Document:
    if old_id == new_id:
        raise InvalidSupersession("A document cannot supersede itself", details={"document_id": str(old_id)})
    old = await _get_document(db, ctx, old_id, for_update=True)
    new = await _get_document(db, ctx, new_id, for_update=True)
    details = {"old_id": str(old_id), "new_id": str(new_id)}
    if (old.owner_kind, old.owner_id, old.doc_type) != (new.owner_kind, new.owner_id, new.doc_type):
        raise InvalidSupersession("Documents belong to different owners or types", details=details)
    if not old.is_active:
        raise InvalidSupersession("Only the active document can be superseded", details=details)
    if new.is_active or new.superseded_by_id is not None or new.status in _RETIRED_STATUSES:
        raise InvalidSupersession("Replacement document has already been used", details=details)
    if new.status == DocumentStatus.REJECTED.value:
        raise InvalidSupersession("A rejected document cannot become active", details=details)

    old_snapshot = model_snapshot(old)
    new_snapshot = model_snapshot(new)
    now = utcnow()
    _retire(old, now, reason)
    db.add(old)
    await db.flush()

    new.is_active = True
    new.valid_from = now
    new.valid_to = None
    db.add(new)
    await db.flush()

    old.superseded_by_id = new.id
    db.add(old)
    await db.flush()
    record_audit_log(
        db,
        ctx,
        actor=actor,
        action="document.superseded",
        resource_type=RESOURCE_TYPE,
        resource_id=old.id,
        old_value=old_snapshot,
        new_value=model_snapshot(old),
    )
    record_audit_log(
        db,
        ctx,
        actor=actor,
        action="document.activated",
        resource_type=RESOURCE_TYPE,
        resource_id=new.id,
        old_value=new_snapshot,
        new_value=model_snapshot(new),
    )
    return new


async def load_supersession_chain(db: AsyncSession, ctx: TenantContext, document_id: UUID) -> list[Document]:
    anchor = await _get_document(db, ctx, document_id)
    stmt = select(Document).where(
        Document.tenant_id == ctx.tenant_id,
        Document.owner_kind == anchor.owner_kind,
        Document.owner_id == anchor.owner_id,
        Document.doc_type == anchor.doc_type,
    )
    rows = list((await db.execute(stmt)).scalars().all())
    by_id = {row.id: row for row in rows}
    predecessor = {row.superseded_by_id: row for row in rows if row.superseded_by_id is not None}
    max_depth = settings.version_chain_max_depth

    backward: list[Document] = []
    seen: set[UUID] = {anchor.id}
    node = predecessor.get(anchor.id)
    while node is not None:
        if node.id in seen or len(seen) > max_depth:
            raise ConstraintViolation("Supersession chain contains a cycle", details={"document_id": str(node.id)})
        seen.add(node.id)
        backward.append(node)
        node = predecessor.get(node.id)

    forward: list[Document] = []
    node = by_id.get(anchor.superseded_by_id) if anchor.superseded_by_id else None
    while node is not None:
        if node.id in seen or len(seen) > max_depth:
            raise ConstraintViolation("Supersession chain contains a cycle", details={"document_id": str(node.id)})
        seen.add(node.id)
        forward.append(node)
        node = by_id.get(node.superseded_by_id) if node.superseded_by_id else None

    return list(reversed(backward)) + [anchor] + forward


class ActiveDocumentRegistry:
    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        *,
        max_attempts: int | None = None,
    ) -> None:
        self._sessions = session_factory
        self._max_attempts = max_attempts

    async def activate(
        self,
        ctx: TenantContext,
        owner: OwnerRef,
        doc_type: DocumentType | str,
        document: DocumentUpload,
        *,
        actor: ActorRef | None = None,
    ) -> Document:
        doc_type = normalize_doc_type(doc_type)

        async def _operation(db: AsyncSession) -> Document:
            return await write_activation(db, ctx, owner, doc_type, document, actor=actor)

        return await run_in_transaction(
            self._sessions, _operation, name="activate_document", max_attempts=self._max_attempts
        )

    async def register(
        self,
        ctx: TenantContext,
        owner: OwnerRef,
        doc_type: DocumentType | str,
        document: DocumentUpload,
        *,
        actor: ActorRef | None = None,
    ) -> Document:
        """Store an uploaded document without making it active."""
        doc_type = normalize_doc_type(doc_type)
        actor = actor or SYSTEM_ACTOR

        async def _operation(db: AsyncSession) -> Document:
            row = _new_document(ctx, owner, doc_type, document, actor=actor, now=utcnow(), active=False)
            db.add(row)
            await db.flush()
            record_audit_log(
                db,
                ctx,
                actor=actor,
                action="document.registered",
                resource_type=RESOURCE_TYPE,
                resource_id=row.id,
                new_value=model_snapshot(row),
            )
            return row

        return await run_in_transaction(self._sessions, _operation, name="register_document", max_attempts=1)

    async def get_active(self, ctx: TenantContext, owner: OwnerRef, doc_type: DocumentType | str) -> Document:
        doc_type = normalize_doc_type(doc_type)
        async with read_session(self._sessions, name="get_active") as db:
            document = await fetch_active(db, ctx, owner, doc_type)
        if document is None:
            raise NotFound("active_document", owner=str(owner), doc_type=doc_type.value)
        return document

    async def supersede(
        self,
        ctx: TenantContext,
        old_id: UUID,
        new_id: UUID,
        reason: DocumentReplacementReason | str = DocumentReplacementReason.UPDATED,
        *,
        actor: ActorRef | None = None,
    ) -> Document:
        reason = DocumentReplacementReason(reason)

        async def _operation(db: AsyncSession) -> Document:
            return await write_supersession(db, ctx, old_id, new_id, reason, actor=actor)

        return await run_in_transaction(
            self._sessions, _operation, name="supersede_document", max_attempts=self._max_attempts
        )

    async def get_history(
        self, ctx: TenantContext, owner: OwnerRef, doc_type: DocumentType | str
    ) -> list[Document]:
        doc_type = normalize_doc_type(doc_type)
        stmt = (
            select(Document)
            .where(
                Document.tenant_id == ctx.tenant_id,
                Document.owner_kind == owner.kind.value,
                Document.owner_id == owner.id,
                Document.doc_type == doc_type.value,
            )
            .order_by(Document.created_at.desc(), Document.id)
        )
        async with read_session(self._sessions, name="get_history") as db:
            return list((await db.execute(stmt)).scalars().all())

    async def supersession_chain(self, ctx: TenantContext, document_id: UUID) -> list[Document]:
        async with read_session(self._sessions, name="supersession_chain") as db:
            return await load_supersession_chain(db, ctx, document_id)

    async def valid_at(
        self,
        ctx: TenantContext,
        owner: OwnerRef,
        at: datetime,
        doc_type: DocumentType | str | None = None,
    ) -> list[Document]:
        at = _as_utc(at)
        stmt = select(Document).where(
            Document.tenant_id == ctx.tenant_id,
            Document.owner_kind == owner.kind.value,
            Document.owner_id == owner.id,
            Document.valid_from <= at,
            or_(Document.valid_to.is_(None), Document.valid_to > at),
        )
        if doc_type is not None:
            stmt = stmt.where(Document.doc_type == normalize_doc_type(doc_type).value)
        stmt = stmt.order_by(Document.doc_type, Document.valid_from.desc())
        async with read_session(self._sessions, name="valid_at") as db:
            return list((await db.execute(stmt)).scalars().all())

    async def missing_types(
        self, ctx: TenantContext, owner: OwnerRef, required_types: Iterable[DocumentType | str]
    ) -> list[str]:
        required = [normalize_doc_type(value).value for value in required_types]
        if not required:
            return []
        stmt = select(Document.doc_type).where(
            Document.tenant_id == ctx.tenant_id,
            Document.owner_kind == owner.kind.value,
            Document.owner_id == owner.id,
            Document.is_active.is_(True),
            Document.doc_type.in_(required),
        )
        async with read_session(self._sessions, name="missing_types") as db:
            present = set((await db.execute(stmt)).scalars().all())
        return [value for value in required if value not in present]

    async def _review(self, ctx: TenantContext, document_id: UUID, apply, *, action: str, actor: ActorRef | None):
        async def _operation(db: AsyncSession) -> Document:
            document = await _get_document(db, ctx, document_id, for_update=True)
            if document.status in _RETIRED_STATUSES:
                raise RecordNotCurrent(
                    "Superseded documents cannot be reviewed",
                    details={"document_id": str(document_id), "status": document.status},
                )
            old_snapshot = model_snapshot(document)
            apply(document)
            db.add(document)
            await db.flush()
            record_audit_log(
                db,
                ctx,
                actor=actor,
                action=action,
                resource_type=RESOURCE_TYPE,
                resource_id=document.id,
                old_value=old_snapshot,
                new_value=model_snapshot(document),
            )
            return document

        return await run_in_transaction(
            self._sessions, _operation, name=action, max_attempts=self._max_attempts
        )

    async def approve(self, ctx: TenantContext, document_id: UUID, *, actor: ActorRef | None = None) -> Document:
        actor = actor or SYSTEM_ACTOR

        def _apply(document: Document) -> None:
            document.status = DocumentStatus.APPROVED.value
            document.reviewed_at = utcnow()
            document.reviewed_by = actor.id
            document.rejection_reason = None

        return await self._review(ctx, document_id, _apply, action="document.approved", actor=actor)

    async def reject(
        self, ctx: TenantContext, document_id: UUID, *, reason: str, actor: ActorRef | None = None
    ) -> Document:
        actor = actor or SYSTEM_ACTOR

        def _apply(document: Document) -> None:
            document.status = DocumentStatus.REJECTED.value
            document.reviewed_at = utcnow()
            document.reviewed_by = actor.id
            document.rejection_reason = reason

        return await self._review(ctx, document_id, _apply, action="document.rejected", actor=actor)

