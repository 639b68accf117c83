"""Per-field verification outcomes, kept as an append-only ledger.

A field may cycle VERIFIED -> REJECTED -> CORRECTED -> VERIFIED any number of
times. Every outcome is a new row numbered by ``sequence`` within its
(owner, field) key, and each row carries the full ``correction_history`` so far.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Iterable
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from origination.core.tenant import TenantContext
from origination.db.base import utcnow
from origination.models.data_verification import DataVerification
from origination.schemas.common import ActorRef, OwnerRef, SYSTEM_ACTOR
from origination.schemas.verifications import VerificationMethod, VerificationStatus
from origination.services.audit import record_audit_log, serialize_for_audit
from origination.services.errors import InvalidVerification
from origination.services.transactions import read_session, run_in_transaction

logger = logging.getLogger(__name__)

RESOURCE_TYPE = "data_verification"


@dataclass(slots=True)
class VerificationEntry:
    field_name: str
    value: Any
    method: VerificationMethod | str
    outcome: VerificationStatus | str
    rejection_reason: str | None = None
    notes: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict)


def _normalize_entry(entry: VerificationEntry) -> VerificationEntry:
    field_name = (entry.field_name or "").strip()
    if not field_name:
        raise InvalidVerification("field_name is required")
    try:
        method = VerificationMethod(entry.method)
        outcome = VerificationStatus(entry.outcome)
    except ValueError as exc:
        raise InvalidVerification(str(exc), details={"field_name": field_name}) from exc
    if outcome == VerificationStatus.REJECTED and not entry.rejection_reason:
        raise InvalidVerification(
            "A rejection reason is required", details={"field_name": field_name}
        )
    return VerificationEntry(
        field_name=field_name,
        value=serialize_for_audit(entry.value),
        method=method,
        outcome=outcome,
        rejection_reason=entry.rejection_reason,
        notes=entry.notes,
        metadata=dict(entry.metadata or {}),
    )


def _key_filters(ctx: TenantContext, owner: OwnerRef, field_name: str) -> list:
    return [
        DataVerification.tenant_id == ctx.tenant_id,
        DataVerification.owner_kind == owner.kind.value,
        DataVerification.owner_id == owner.id,
        DataVerification.field_name == field_name,
    ]


async def fetch_latest(
    db: AsyncSession, ctx: TenantContext, owner: OwnerRef, field_name: str
) -> DataVerification | None:
    stmt = (
        select(DataVerification)
        .where(*_key_filters(ctx, owner, field_name))
        .order_by(DataVerification.sequence.desc())
        .limit(1)
    )
    return (await db.execute(stmt)).scalar_one_or_none()


async def append_verification(
    db: AsyncSession,
    ctx: TenantContext,
    owner: OwnerRef,
    entry: VerificationEntry,
    *,
    actor: ActorRef,
) -> DataVerification:
    """Insert the next ledger row for ``entry``; ``entry`` must be normalized."""
    previous = await fetch_latest(db, ctx, owner, entry.field_name)
    history = list(previous.correction_history or []) if previous is not None else []
    now = utcnow()
    corrected_at = None
    if entry.outcome == VerificationStatus.CORRECTED:
        if previous is None:
            raise InvalidVerification(
                "Nothing to correct: field has no prior verification",
                details={"field_name": entry.field_name},
            )
        corrected_at = now
        history.append(
            {
                "old_value": previous.field_value,
                "new_value": entry.value,
                "corrected_at": now.isoformat(),
                "reason": previous.rejection_reason or entry.rejection_reason,
            }
        )

    row = DataVerification(
        tenant_id=ctx.tenant_id,
        owner_kind=owner.kind.value,
        owner_id=owner.id,
        field_name=entry.field_name,
        field_value=entry.value,
        method=VerificationMethod(entry.method).value,
        status=VerificationStatus(entry.outcome).value,
        sequence=(previous.sequence + 1) if previous is not None else 1,
        rejection_reason=entry.rejection_reason,
        corrected_at=corrected_at,
        correction_history=history,
        verified_by=actor.id,
        verified_by_kind=actor.kind.value,
        verification_metadata=entry.metadata,
        notes=entry.notes,
        created_at=now,
    )
    db.add(row)
    await db.flush()
    record_audit_log(
        db,
        ctx,
        actor=actor,
        action=f"data_verification.{row.status.lower()}",
        resource_type=RESOURCE_TYPE,
        resource_id=row.id,
        old_value={"status": previous.status, "value": previous.field_value} if previous is not None else None,
        new_value={"field_name": row.field_name, "status": row.status, "value": row.field_value},
    )
    return row


class VerificationLedger:
    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        *,
        max_attempts: int | None = None,
    ) -> None:
        self._sessions = session_factory
        self._max_attempts = max_attempts

    async def record_verification(
        self,
        ctx: TenantContext,
        owner: OwnerRef,
        field_name: str,
        value: Any,
        method: VerificationMethod | str,
        outcome: VerificationStatus | str,
        *,
        rejection_reason: str | None = None,
        actor: ActorRef | None = None,
        metadata: dict[str, Any] | None = None,
        notes: str | None = None,
    ) -> DataVerification:
        actor = actor or SYSTEM_ACTOR
        entry = _normalize_entry(
            VerificationEntry(
                field_name=field_name,
                value=value,
                method=method,
                outcome=outcome,
                rejection_reason=rejection_reason,
                notes=notes,
                metadata=metadata or {},
            )
        )

        async def _operation(db: AsyncSession) -> DataVerification:
            return await append_verification(db, ctx, owner, entry, actor=actor)

        row = await run_in_transaction(
            self._sessions, _operation, name="record_verification", max_attempts=self._max_attempts
        )
        logger.info(
            "Recorded field verification",
            extra={"owner": str(owner), "field_name": row.field_name, "status": row.status, "sequence": row.sequence},
        )
        return row

    async def record_batch(
        self,
        ctx: TenantContext,
        owner: OwnerRef,
        entries: Iterable[VerificationEntry],
        *,
        actor: ActorRef | None = None,
    ) -> list[DataVerification]:
        """Append several outcomes atomically, in order."""
        actor = actor or SYSTEM_ACTOR
        normalized = [_normalize_entry(entry) for entry in entries]

        async def _operation(db: AsyncSession) -> list[DataVerification]:
            return [await append_verification(db, ctx, owner, entry, actor=actor) for entry in normalized]

        return await run_in_transaction(
            self._sessions, _operation, name="record_verification_batch", max_attempts=self._max_attempts
        )

    async def list_history(
        self, ctx: TenantContext, owner: OwnerRef, field_name: str
    ) -> tuple[DataVerification, ...]:
        stmt = (
            select(DataVerification)
            .where(*_key_filters(ctx, owner, field_name))
            .order_by(DataVerification.sequence)
        )
        async with read_session(self._sessions, name="list_history") as db:
            return tuple((await db.execute(stmt)).scalars().all())

    async def latest(self, ctx: TenantContext, owner: OwnerRef, field_name: str) -> DataVerification | None:
        async with read_session(self._sessions, name="latest") as db:
            return await fetch_latest(db, ctx, owner, field_name)

    async def verified_fields(self, ctx: TenantContext, owner: OwnerRef) -> dict[str, Any]:
        """Fields whose latest outcome is VERIFIED, mapped to the verified value."""
        latest_seq = (
            select(
                DataVerification.field_name.label("field_name"),
                func.max(DataVerification.sequence).label("sequence"),
            )
            .where(
                DataVerification.tenant_id == ctx.tenant_id,
                DataVerification.owner_kind == owner.kind.value,
                DataVerification.owner_id == owner.id,
            )
            .group_by(DataVerification.field_name)
            .subquery()
        )
        stmt = (
            select(DataVerification)
            .join(
                latest_seq,
                (DataVerification.field_name == latest_seq.c.field_name)
                & (DataVerification.sequence == latest_seq.c.sequence),
            )
            .where(
                DataVerification.tenant_id == ctx.tenant_id,
                DataVerification.owner_kind == owner.kind.value,
                DataVerification.owner_id == owner.id,
                DataVerification.status == VerificationStatus.VERIFIED.value,
            )
            .order_by(DataVerification.field_name)
        )
        async with read_session(self._sessions, name="verified_fields") as db:
            rows = (await db.execute(stmt)).scalars().all()
        return {row.field_name: row.field_value for row in rows}

    async def is_field_verified(self, ctx: TenantContext, owner: OwnerRef, field_name: str) -> bool:
        row = await self.latest(ctx, owner, field_name)
        return row is not None and row.status == VerificationStatus.VERIFIED.value
