"""Application status transitions with an append-only history.

``applications.status`` is a cache of the last history row's ``to_status``;
both are written in the same transaction. Transitions are never retried: a
lost optimistic-lock race surfaces to the caller as ``ConcurrentModification``.
"""

from __future__ import annotations

import logging
from decimal import Decimal
from typing import Iterable
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from origination.core.tenant import TenantContext
from origination.db.base import utcnow
from origination.models.application import Application
from origination.models.application_status_history import ApplicationStatusHistory
from origination.schemas.applications import ApplicationStatus
from origination.schemas.common import ActorRef, OwnerRef, SYSTEM_ACTOR
from origination.services import snapshots
from origination.services.audit import model_snapshot, record_audit_log
from origination.services.document_registry import normalize_doc_type
from origination.services.errors import InvalidTransition, NotFound
from origination.services.notifications import (
    StatusChangeDispatcher,
    StatusChangedEvent,
    build_dispatcher,
    dispatch_safely,
)
from origination.services.transactions import read_session, run_in_transaction

logger = logging.getLogger(__name__)

RESOURCE_TYPE = "application"

S = ApplicationStatus

TRANSITIONS: dict[ApplicationStatus, frozenset[ApplicationStatus]] = {
    S.DRAFT: frozenset({S.SUBMITTED, S.CANCELLED}),
    S.SUBMITTED: frozenset({S.IN_REVIEW, S.DOCS_PENDING, S.CORRECTIONS_PENDING, S.CANCELLED}),
    S.IN_REVIEW: frozenset({S.DOCS_PENDING, S.CORRECTIONS_PENDING, S.APPROVED, S.REJECTED, S.CANCELLED}),
    S.DOCS_PENDING: frozenset({S.IN_REVIEW, S.CORRECTIONS_PENDING, S.CANCELLED}),
    S.CORRECTIONS_PENDING: frozenset({S.IN_REVIEW, S.CANCELLED}),
    S.APPROVED: frozenset({S.DISBURSED}),
    S.DISBURSED: frozenset({S.ACTIVE}),
    S.ACTIVE: frozenset({S.COMPLETED, S.DEFAULT}),
    S.REJECTED: frozenset(),
    S.CANCELLED: frozenset(),
    S.COMPLETED: frozenset(),
    S.DEFAULT: frozenset(),
}

TERMINAL_STATUSES = frozenset(status for status, targets in TRANSITIONS.items() if not targets)

STATUS_TIMESTAMPS: dict[ApplicationStatus, str] = {
    S.SUBMITTED: "submitted_at",
    S.APPROVED: "approved_at",
    S.REJECTED: "rejected_at",
    S.CANCELLED: "cancelled_at",
    S.DISBURSED: "disbursed_at",
}


def allowed_transitions(status: ApplicationStatus | str) -> frozenset[ApplicationStatus]:
    return TRANSITIONS[ApplicationStatus(status)]


def validate_transition(from_status: ApplicationStatus | str, to_status: ApplicationStatus | str) -> None:
    try:
        current = ApplicationStatus(from_status)
        target = ApplicationStatus(to_status)
    except ValueError as exc:
        raise InvalidTransition(str(from_status), str(to_status)) from exc
    allowed = TRANSITIONS[current]
    if target not in allowed:
        raise InvalidTransition(current.value, target.value, allowed=[status.value for status in allowed])


async def _next_sequence(db: AsyncSession, application_id: UUID) -> int:
    stmt = select(func.max(ApplicationStatusHistory.sequence)).where(
        ApplicationStatusHistory.application_id == application_id
    )
    current = (await db.execute(stmt)).scalar_one_or_none()
    return (current or 0) + 1


async def append_history(
    db: AsyncSession,
    ctx: TenantContext,
    application: Application,
    *,
    from_status: str | None,
    to_status: str,
    actor: ActorRef,
    notes: str | None,
) -> ApplicationStatusHistory:
    entry = ApplicationStatusHistory(
        tenant_id=ctx.tenant_id,
        application_id=application.id,
        sequence=await _next_sequence(db, application.id),
        from_status=from_status,
        to_status=to_status,
        changed_by=actor.id,
        changed_by_kind=actor.kind.value,
        notes=notes,
        created_at=utcnow(),
    )
    db.add(entry)
    return entry


async def fetch_application(
    db: AsyncSession, ctx: TenantContext, application_id: UUID, *, for_update: bool = False
) -> Application:
    stmt = select(Application).where(
        Application.tenant_id == ctx.tenant_id, Application.id == application_id
    )
    if for_update:
        stmt = stmt.with_for_update()
    application = (await db.execute(stmt)).scalar_one_or_none()
    if application is None:
        raise NotFound("application", application_id=str(application_id))
    return application


class ApplicationStateMachine:
    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        *,
        dispatcher: StatusChangeDispatcher | None = None,
    ) -> None:
        self._sessions = session_factory
        self._dispatcher = dispatcher or build_dispatcher()

    async def create_application(
        self,
        ctx: TenantContext,
        owner: OwnerRef,
        *,
        requested_amount: Decimal,
        requested_term_months: int,
        purpose: str | None = None,
        required_document_types: Iterable[str] = (),
        actor: ActorRef | None = None,
    ) -> Application:
        actor = actor or SYSTEM_ACTOR
        snapshots.record_slots(owner.kind)
        document_types = [normalize_doc_type(value).value for value in required_document_types]

        async def _operation(db: AsyncSession) -> Application:
            now = utcnow()
            application = Application(
                tenant_id=ctx.tenant_id,
                owner_kind=owner.kind.value,
                owner_id=owner.id,
                requested_amount=requested_amount,
                requested_term_months=requested_term_months,
                purpose=purpose,
                required_document_types=document_types,
                status=S.DRAFT.value,
                status_changed_at=now,
                status_changed_by=actor.id,
                status_changed_by_kind=actor.kind.value,
                created_by=actor.id,
                created_at=now,
            )
            db.add(application)
            await db.flush()
            await append_history(
                db, ctx, application, from_status=None, to_status=S.DRAFT.value, actor=actor, notes=None
            )
            record_audit_log(
                db,
                ctx,
                actor=actor,
                action="application.created",
                resource_type=RESOURCE_TYPE,
                resource_id=application.id,
                new_value=model_snapshot(application),
            )
            return application

        return await run_in_transaction(self._sessions, _operation, name="create_application", max_attempts=1)

    async def get_application(self, ctx: TenantContext, application_id: UUID) -> Application:
        async with read_session(self._sessions, name="get_application") as db:
            return await fetch_application(db, ctx, application_id)

    async def transition(
        self,
        ctx: TenantContext,
        application_id: UUID,
        to_status: ApplicationStatus | str,
        actor: ActorRef | None = None,
        notes: str | None = None,
    ) -> Application:
        actor = actor or SYSTEM_ACTOR
        try:
            target = ApplicationStatus(to_status)
        except ValueError as exc:
            raise InvalidTransition(None, str(to_status)) from exc

        async def _operation(db: AsyncSession) -> tuple[Application, str]:
            application = await fetch_application(db, ctx, application_id, for_update=True)
            from_status = application.status
            validate_transition(from_status, target)
            old_snapshot = model_snapshot(application, exclude=("snapshot_data",))

            if from_status == S.DRAFT.value and target == S.SUBMITTED:
                await snapshots.capture(db, ctx, application)

            now = utcnow()
            application.status = target.value
            application.status_changed_at = now
            application.status_changed_by = actor.id
            application.status_changed_by_kind = actor.kind.value
            timestamp_field = STATUS_TIMESTAMPS.get(target)
            if timestamp_field:
                setattr(application, timestamp_field, now)
            db.add(application)
            await append_history(
                db, ctx, application, from_status=from_status, to_status=target.value, actor=actor, notes=notes
            )
            await db.flush()
            record_audit_log(
                db,
                ctx,
                actor=actor,
                action=f"application.{target.value.lower()}",
                resource_type=RESOURCE_TYPE,
                resource_id=application.id,
                old_value=old_snapshot,
                new_value=model_snapshot(application, exclude=("snapshot_data",)),
            )
            return application, from_status

        application, from_status = await run_in_transaction(
            self._sessions, _operation, name="transition_application", max_attempts=1
        )
        logger.info(
            "Application transitioned",
            extra={
                "application_id": str(application.id),
                "from_status": from_status,
                "to_status": application.status,
            },
        )
        await dispatch_safely(
            self._dispatcher,
            StatusChangedEvent(
                tenant_id=ctx.tenant_id,
                application_id=str(application.id),
                from_status=from_status,
                to_status=application.status,
                actor_id=actor.id,
                actor_kind=actor.kind.value,
                occurred_at=application.status_changed_at,
                notes=notes,
            ),
        )
        return application

    async def list_history(self, ctx: TenantContext, application_id: UUID) -> list[ApplicationStatusHistory]:
        async with read_session(self._sessions, name="list_history") as db:
            await fetch_application(db, ctx, application_id)
            stmt = (
                select(ApplicationStatusHistory)
                .where(
                    ApplicationStatusHistory.tenant_id == ctx.tenant_id,
                    ApplicationStatusHistory.application_id == application_id,
                )
                .order_by(ApplicationStatusHistory.sequence)
            )
            return list((await db.execute(stmt)).scalars().all())
