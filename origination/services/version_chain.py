"""Append-only version chains with exactly one current row per owner and type.

Each write retires the current row and inserts its successor in a single
transaction. The partial unique index ``uq_versioned_records_one_current`` is
the final arbiter between racing writers; losers surface as
``ConcurrentModification`` and are retried by the transaction runner.
"""

from __future__ import annotations

import logging
from typing import Any
from uuid import UUID

from pydantic import BaseModel, ValidationError
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from origination.core.settings import settings
from origination.core.tenant import TenantContext
from origination.db.base import utcnow
from origination.models.versioned_record import VersionedRecord
from origination.schemas.common import ActorRef, OwnerKind, OwnerRef, SYSTEM_ACTOR, enum_value
from origination.schemas.versions import (
    DEFAULT_REPLACEMENT_REASON,
    PAYLOAD_MODELS,
    RECORD_TYPES,
    RecordKind,
    RecordStatus,
    ReplacementReason,
)
from origination.services.audit import model_snapshot, record_audit_log
from origination.services.errors import (
    ConstraintViolation,
    InvalidRecordType,
    NotFound,
    RecordNotCurrent,
)
from origination.services.transactions import read_session, run_in_transaction

logger = logging.getLogger(__name__)

RESOURCE_TYPE = "versioned_record"

_KINDS_BY_OWNER: dict[OwnerKind, frozenset[RecordKind]] = {
    OwnerKind.PERSON: frozenset(RecordKind),
    OwnerKind.COMPANY: frozenset(
        {RecordKind.IDENTIFICATION, RecordKind.ADDRESS, RecordKind.BANK_ACCOUNT}
    ),
    OwnerKind.APPLICATION: frozenset({RecordKind.REFERENCE}),
}


def allowed_kinds(owner_kind: OwnerKind) -> frozenset[RecordKind]:
    try:
        return _KINDS_BY_OWNER[OwnerKind(owner_kind)]
    except (KeyError, ValueError) as exc:
        raise InvalidRecordType(
            f"Unsupported owner kind {owner_kind!r}", details={"owner_kind": str(owner_kind)}
        ) from exc


def validate_record_type(owner: OwnerRef, kind: RecordKind | str, record_type: str) -> tuple[RecordKind, str]:
    try:
        kind = RecordKind(kind)
    except ValueError as exc:
        raise InvalidRecordType(f"Unknown record kind {kind!r}", details={"record_kind": str(kind)}) from exc
    if kind not in allowed_kinds(owner.kind):
        raise InvalidRecordType(
            f"{owner.kind.value} owners cannot hold {kind.value} records",
            details={"owner_kind": owner.kind.value, "record_kind": kind.value},
        )
    normalized = (record_type or "").strip().upper()
    if normalized not in RECORD_TYPES[kind]:
        raise InvalidRecordType(
            f"Unknown {kind.value} type {record_type!r}",
            details={"record_kind": kind.value, "record_type": record_type, "allowed": sorted(RECORD_TYPES[kind])},
        )
    return kind, normalized


def validate_payload(kind: RecordKind, record_type: str, payload: dict[str, Any] | BaseModel) -> dict[str, Any]:
    model = PAYLOAD_MODELS[kind]
    try:
        if isinstance(payload, BaseModel):
            payload = payload.model_dump()
        parsed = model.model_validate(payload)
    except ValidationError as exc:
        raise InvalidRecordType(
            f"Invalid {kind.value}/{record_type} payload",
            details={"errors": exc.errors(include_url=False, include_context=False)},
        ) from exc
    return parsed.model_dump(mode="json")


def _key_filters(ctx: TenantContext, owner: OwnerRef, kind: RecordKind, record_type: str) -> list:
    return [
        VersionedRecord.tenant_id == ctx.tenant_id,
        VersionedRecord.owner_kind == owner.kind.value,
        VersionedRecord.owner_id == owner.id,
        VersionedRecord.record_kind == kind.value,
        VersionedRecord.record_type == record_type,
    ]


async def fetch_current(
    db: AsyncSession,
    ctx: TenantContext,
    owner: OwnerRef,
    kind: RecordKind,
    record_type: str,
    *,
    for_update: bool = False,
) -> VersionedRecord | None:
    stmt = select(VersionedRecord).where(
        *_key_filters(ctx, owner, kind, record_type),
        VersionedRecord.is_current.is_(True),
        VersionedRecord.deleted_at.is_(None),
    )
    if for_update:
        stmt = stmt.with_for_update()
    return (await db.execute(stmt)).scalar_one_or_none()


async def fetch_current_for_owner(
    db: AsyncSession,
    ctx: TenantContext,
    owner: OwnerRef,
    kind: RecordKind | None = None,
) -> list[VersionedRecord]:
    stmt = select(VersionedRecord).where(
        VersionedRecord.tenant_id == ctx.tenant_id,
        VersionedRecord.owner_kind == owner.kind.value,
        VersionedRecord.owner_id == owner.id,
        VersionedRecord.is_current.is_(True),
        VersionedRecord.deleted_at.is_(None),
    )
    if kind is not None:
        stmt = stmt.where(VersionedRecord.record_kind == RecordKind(kind).value)
    stmt = stmt.order_by(VersionedRecord.record_kind, VersionedRecord.record_type)
    return list((await db.execute(stmt)).scalars().all())


async def _fetch_chain_head(
    db: AsyncSession,
    ctx: TenantContext,
    owner: OwnerRef,
    kind: RecordKind,
    record_type: str,
) -> VersionedRecord | None:
    # With no live current row the newest row (usually soft-deleted) is the head.
    stmt = (
        select(VersionedRecord)
        .where(*_key_filters(ctx, owner, kind, record_type))
        .order_by(VersionedRecord.created_at.desc())
        .limit(1)
    )
    return (await db.execute(stmt)).scalar_one_or_none()


async def write_current_version(
    db: AsyncSession,
    ctx: TenantContext,
    owner: OwnerRef,
    kind: RecordKind,
    record_type: str,
    payload: dict[str, Any],
    *,
    reason: ReplacementReason | None = None,
    actor: ActorRef | None = None,
) -> VersionedRecord:
    """Retire the current row for the key and insert its successor on ``db``.

    Must run inside the caller's transaction; ``payload`` must already be validated.
    """
    actor = actor or SYSTEM_ACTOR
    now = utcnow()
    previous = await fetch_current(db, ctx, owner, kind, record_type, for_update=True)
    old_snapshot = None
    if previous is not None:
        old_snapshot = model_snapshot(previous)
        previous.is_current = False
        previous.status = RecordStatus.SUPERSEDED.value
        previous.valid_until = now
        previous.replaced_at = now
        previous.replacement_reason = enum_value(reason or DEFAULT_REPLACEMENT_REASON)
        db.add(previous)
        await db.flush()
    else:
        previous = await _fetch_chain_head(db, ctx, owner, kind, record_type)

    record = VersionedRecord(
        tenant_id=ctx.tenant_id,
        owner_kind=owner.kind.value,
        owner_id=owner.id,
        record_kind=kind.value,
        record_type=record_type,
        payload=payload,
        is_current=True,
        previous_version_id=previous.id if previous is not None else None,
        valid_from=now,
        status=RecordStatus.PENDING.value,
        created_by=actor.id,
        created_at=now,
    )
    db.add(record)
    await db.flush()

    record_audit_log(
        db,
        ctx,
        actor=actor,
        action="versioned_record.replaced" if old_snapshot else "versioned_record.created",
        resource_type=RESOURCE_TYPE,
        resource_id=record.id,
        old_value=old_snapshot,
        new_value=model_snapshot(record),
    )
    logger.info(
        "Stored new current version",
        extra={
            "record_id": str(record.id),
            "previous_version_id": str(record.previous_version_id) if record.previous_version_id else None,
            "record_kind": kind.value,
            "record_type": record_type,
            "owner": str(owner),
        },
    )
    return record


def walk_chain(
    head: VersionedRecord | None,
    rows_by_id: dict[UUID, VersionedRecord],
    *,
    max_depth: int,
) -> list[VersionedRecord]:
    """Follow ``previous_version_id`` links from ``head``, newest first.

    Raises ``ConstraintViolation`` on a cycle, a dangling link or a chain longer
    than ``max_depth``; none of these can be produced by ``write_current_version``.
    """
    chain: list[VersionedRecord] = []
    seen: set[UUID] = set()
    node = head
    while node is not None:
        if node.id in seen:
            logger.error("Version chain cycle detected", extra={"record_id": str(node.id)})
            raise ConstraintViolation("Version chain contains a cycle", details={"record_id": str(node.id)})
        if len(chain) >= max_depth:
            logger.error("Version chain exceeds max depth", extra={"record_id": str(head.id), "max_depth": max_depth})
            raise ConstraintViolation(
                "Version chain exceeds maximum depth",
                details={"record_id": str(head.id), "max_depth": max_depth},
            )
        seen.add(node.id)
        chain.append(node)
        if node.previous_version_id is None:
            break
        successor = node
        node = rows_by_id.get(node.previous_version_id)
        if node is None:
            logger.error(
                "Version chain link points outside its key",
                extra={"record_id": str(successor.id), "previous_version_id": str(successor.previous_version_id)},
            )
            raise ConstraintViolation(
                "Version chain link points to a missing record",
                details={
                    "record_id": str(successor.id),
                    "previous_version_id": str(successor.previous_version_id),
                },
            )
    return chain


async def load_history(
    db: AsyncSession,
    ctx: TenantContext,
    owner: OwnerRef,
    kind: RecordKind,
    record_type: str,
    *,
    include_deleted: bool = False,
) -> list[VersionedRecord]:
    stmt = select(VersionedRecord).where(*_key_filters(ctx, owner, kind, record_type))
    rows = list((await db.execute(stmt)).scalars().all())
    if not rows:
        return []
    rows_by_id = {row.id: row for row in rows}
    head = next((row for row in rows if row.is_current and row.deleted_at is None), None)
    if head is None:
        referenced = {row.previous_version_id for row in rows if row.previous_version_id}
        heads = [row for row in rows if row.id not in referenced]
        head = max(heads, key=lambda row: row.created_at) if heads else rows[0]
    chain = walk_chain(head, rows_by_id, max_depth=settings.version_chain_max_depth)
    if include_deleted:
        return chain
    return [row for row in chain if row.deleted_at is None]


class VersionChainStore:
    """Public entry point for identification, address, employment, bank and reference records."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        *,
        max_attempts: int | None = None,
    ) -> None:
        self._sessions = session_factory
        self._max_attempts = max_attempts

    async def put_current_version(
        self,
        ctx: TenantContext,
        owner: OwnerRef,
        kind: RecordKind | str,
        record_type: str,
        payload: dict[str, Any] | BaseModel,
        *,
        reason: ReplacementReason | None = None,
        actor: ActorRef | None = None,
    ) -> VersionedRecord:
        kind, record_type = validate_record_type(owner, kind, record_type)
        data = validate_payload(kind, record_type, payload)

        async def _operation(db: AsyncSession) -> VersionedRecord:
            return await write_current_version(
                db, ctx, owner, kind, record_type, data, reason=reason, actor=actor
            )

        return await run_in_transaction(
            self._sessions,
            _operation,
            name="put_current_version",
            max_attempts=self._max_attempts,
        )

    async def get_current(
        self,
        ctx: TenantContext,
        owner: OwnerRef,
        kind: RecordKind | str,
        record_type: str,
    ) -> VersionedRecord:
        kind, record_type = validate_record_type(owner, kind, record_type)
        async with read_session(self._sessions, name="get_current") as db:
            record = await fetch_current(db, ctx, owner, kind, record_type)
        if record is None:
            raise NotFound(
                "current_version",
                owner=str(owner),
                record_kind=kind.value,
                record_type=record_type,
            )
        return record

    async def get_history(
        self,
        ctx: TenantContext,
        owner: OwnerRef,
        kind: RecordKind | str,
        record_type: str,
        *,
        include_deleted: bool = False,
    ) -> list[VersionedRecord]:
        kind, record_type = validate_record_type(owner, kind, record_type)
        async with read_session(self._sessions, name="get_history") as db:
            return await load_history(
                db, ctx, owner, kind, record_type, include_deleted=include_deleted
            )

    async def list_current(
        self,
        ctx: TenantContext,
        owner: OwnerRef,
        kind: RecordKind | str | None = None,
    ) -> list[VersionedRecord]:
        async with read_session(self._sessions, name="list_current") as db:
            return await fetch_current_for_owner(db, ctx, owner, kind)

    async def _review(self, ctx: TenantContext, record_id: UUID, apply, *, action: str, actor: ActorRef | None):
        async def _operation(db: AsyncSession) -> VersionedRecord:
            stmt = (
                select(VersionedRecord)
                .where(VersionedRecord.tenant_id == ctx.tenant_id, VersionedRecord.id == record_id)
                .with_for_update()
            )
            record = (await db.execute(stmt)).scalar_one_or_none()
            if record is None or record.deleted_at is not None:
                raise NotFound("versioned_record", record_id=str(record_id))
            if not record.is_current:
                raise RecordNotCurrent(
                    "Only the current version can be reviewed",
                    details={"record_id": str(record_id), "status": record.status},
                )
            old_snapshot = model_snapshot(record)
            apply(record)
            db.add(record)
            await db.flush()
            record_audit_log(
                db,
                ctx,
                actor=actor,
                action=action,
                resource_type=RESOURCE_TYPE,
                resource_id=record.id,
                old_value=old_snapshot,
                new_value=model_snapshot(record),
            )
            return record

        return await run_in_transaction(
            self._sessions, _operation, name=action, max_attempts=self._max_attempts
        )

    async def mark_verified(
        self,
        ctx: TenantContext,
        record_id: UUID,
        *,
        method: str,
        actor: ActorRef | None = None,
        verification_data: dict[str, Any] | None = None,
    ) -> VersionedRecord:
        actor = actor or SYSTEM_ACTOR

        def _apply(record: VersionedRecord) -> None:
            record.status = RecordStatus.VERIFIED.value
            record.verified_at = utcnow()
            record.verified_by = actor.id
            record.verification_method = method
            record.rejection_reason = None
            if verification_data:
                payload = dict(record.payload or {})
                payload["verification_data"] = {**payload.get("verification_data", {}), **verification_data}
                record.payload = payload

        return await self._review(ctx, record_id, _apply, action="versioned_record.verified", actor=actor)

    async def mark_rejected(
        self,
        ctx: TenantContext,
        record_id: UUID,
        *,
        reason: str,
        actor: ActorRef | None = None,
    ) -> VersionedRecord:
        def _apply(record: VersionedRecord) -> None:
            record.status = RecordStatus.REJECTED.value
            record.rejection_reason = reason
            record.verified_at = None
            record.verified_by = None

        return await self._review(ctx, record_id, _apply, action="versioned_record.rejected", actor=actor)

    async def soft_delete(
        self,
        ctx: TenantContext,
        record_id: UUID,
        *,
        actor: ActorRef | None = None,
    ) -> VersionedRecord:
        def _apply(record: VersionedRecord) -> None:
            now = utcnow()
            record.deleted_at = now
            record.is_current = False
            record.valid_until = now

        return await self._review(ctx, record_id, _apply, action="versioned_record.deleted", actor=actor)
