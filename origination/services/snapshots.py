"""Point-in-time capture of the profile an application was submitted with.

Capture only writes onto the application it is handed; the caller's
transaction commits it together with the DRAFT -> SUBMITTED transition.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from origination.core.settings import settings
from origination.core.tenant import TenantContext
from origination.db.base import utcnow
from origination.models.application import Application
from origination.models.document import Document
from origination.models.versioned_record import VersionedRecord
from origination.schemas.applications import ApplicationStatus
from origination.schemas.common import OwnerKind, OwnerRef
from origination.schemas.documents import DocumentType
from origination.schemas.versions import RecordKind
from origination.services import document_registry, version_chain
from origination.services.audit import serialize_for_audit
from origination.services.errors import IncompleteProfile, InvalidRecordType, InvalidTransition, NotFound
from origination.services.transactions import read_session

logger = logging.getLogger(__name__)

REFERENCES_SLOT = "references"


@dataclass(frozen=True, slots=True)
class RecordSlot:
    name: str
    kind: RecordKind
    record_type: str


@dataclass(slots=True)
class SnapshotReferences:
    references: dict[str, Any] = field(default_factory=dict)
    data: dict[str, Any] = field(default_factory=dict)


def record_slots(owner_kind: OwnerKind) -> list[RecordSlot]:
    if owner_kind == OwnerKind.PERSON:
        return [
            RecordSlot("identification", RecordKind.IDENTIFICATION, settings.snapshot_person_identification_type),
            RecordSlot("address", RecordKind.ADDRESS, "HOME"),
            RecordSlot("employment", RecordKind.EMPLOYMENT, "PRIMARY"),
            RecordSlot("bank_account", RecordKind.BANK_ACCOUNT, "PRIMARY"),
        ]
    if owner_kind == OwnerKind.COMPANY:
        return [
            RecordSlot("identification", RecordKind.IDENTIFICATION, settings.snapshot_company_identification_type),
            RecordSlot("address", RecordKind.ADDRESS, "FISCAL"),
            RecordSlot("bank_account", RecordKind.BANK_ACCOUNT, "PRIMARY"),
        ]
    if owner_kind == OwnerKind.APPLICATION:
        raise InvalidRecordType("Applications cannot apply for credit", details={"owner_kind": owner_kind.value})
    raise InvalidRecordType(f"Unsupported owner kind {owner_kind!r}", details={"owner_kind": str(owner_kind)})


def min_references(owner_kind: OwnerKind) -> int:
    return settings.snapshot_min_references if owner_kind == OwnerKind.PERSON else 0


def _record_data(record: VersionedRecord) -> dict[str, Any]:
    return serialize_for_audit(
        {
            "id": record.id,
            "record_type": record.record_type,
            "payload": record.payload,
            "status": record.status,
            "valid_from": record.valid_from,
        }
    )


def _document_data(document: Document) -> dict[str, Any]:
    return serialize_for_audit(
        {
            "id": document.id,
            "doc_type": document.doc_type,
            "file_name": document.file_name,
            "storage_path": document.storage_path,
            "content_type": document.content_type,
            "size_bytes": document.size_bytes,
            "checksum": document.checksum,
            "status": document.status,
            "valid_from": document.valid_from,
        }
    )


def application_owner(application: Application) -> OwnerRef:
    return OwnerRef(kind=OwnerKind(application.owner_kind), id=application.owner_id)


async def collect(
    db: AsyncSession, ctx: TenantContext, application: Application
) -> tuple[SnapshotReferences, list[str]]:
    """Resolve every required slot; returns the snapshot and the names of missing slots."""
    owner = application_owner(application)
    snapshot = SnapshotReferences()
    missing: list[str] = []

    for slot in record_slots(owner.kind):
        record = await version_chain.fetch_current(db, ctx, owner, slot.kind, slot.record_type)
        if record is None:
            missing.append(slot.name)
            continue
        snapshot.references[slot.name] = str(record.id)
        snapshot.data[slot.name] = _record_data(record)

    required_references = min_references(owner.kind)
    if required_references:
        references = await version_chain.fetch_current_for_owner(db, ctx, owner, RecordKind.REFERENCE)
        if len(references) < required_references:
            missing.append(REFERENCES_SLOT)
        else:
            snapshot.references[REFERENCES_SLOT] = [str(record.id) for record in references]
            snapshot.data[REFERENCES_SLOT] = [_record_data(record) for record in references]

    documents_ref: dict[str, str] = {}
    documents_data: dict[str, Any] = {}
    for raw_type in application.required_document_types or []:
        doc_type = DocumentType(raw_type)
        document = await document_registry.fetch_active(db, ctx, owner, doc_type)
        if document is None:
            missing.append(f"document:{doc_type.value}")
            continue
        documents_ref[doc_type.value] = str(document.id)
        documents_data[doc_type.value] = _document_data(document)
    if documents_ref:
        snapshot.references["documents"] = documents_ref
        snapshot.data["documents"] = documents_data

    return snapshot, missing


async def capture(db: AsyncSession, ctx: TenantContext, application: Application) -> SnapshotReferences:
    if application.status != ApplicationStatus.DRAFT.value:
        raise InvalidTransition(application.status, ApplicationStatus.SUBMITTED.value)
    snapshot, missing = await collect(db, ctx, application)
    if missing:
        logger.info(
            "Snapshot capture blocked by incomplete profile",
            extra={"application_id": str(application.id), "missing": missing},
        )
        raise IncompleteProfile(missing)
    application.snapshot_references = snapshot.references
    application.snapshot_data = snapshot.data
    application.snapshot_captured_at = utcnow()
    db.add(application)
    return snapshot


class SnapshotCapturer:
    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._sessions = session_factory

    async def capture(self, db: AsyncSession, ctx: TenantContext, application: Application) -> SnapshotReferences:
        return await capture(db, ctx, application)

    async def missing_slots(self, ctx: TenantContext, application_id: UUID) -> list[str]:
        async with read_session(self._sessions, name="missing_slots") as db:
            stmt = select(Application).where(
                Application.tenant_id == ctx.tenant_id, Application.id == application_id
            )
            application = (await db.execute(stmt)).scalar_one_or_none()
            if application is None:
                raise NotFound("application", application_id=str(application_id))
            _, missing = await collect(db, ctx, application)
        return missing
