from fastapi import Depends, Header, HTTPException, Request, status
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from origination.core.context import set_actor_id, set_tenant_id
from origination.core.settings import settings
from origination.core.tenant import TenantContext, normalize_tenant_id
from origination.db.session import get_session_factory
from origination.schemas.common import ActorKind, ActorRef
from origination.services.application_state import ApplicationStateMachine
from origination.services.document_registry import ActiveDocumentRegistry
from origination.services.notifications import StatusChangeDispatcher, build_dispatcher
from origination.services.snapshots import SnapshotCapturer
from origination.services.verification_ledger import VerificationLedger
from origination.services.version_chain import VersionChainStore


def _resolve_subdomain(request: Request) -> str | None:
    host = request.headers.get("host", "")
    # strip port if present
    host = host.split(":")[0]
    if settings.allowed_tenant_hosts:
        if host not in settings.allowed_tenant_hosts:
            return None
    parts = host.split(".")
    # ignore localhost/invalid hosts
    if len(parts) >= 3:
        return parts[0]
    return None


async def get_tenant_context(
    request: Request,
    tenant_id: str | None = Header(default=None, alias="X-Tenant-ID"),
) -> TenantContext:
    if settings.tenancy_mode == "multi":
        candidate = tenant_id or _resolve_subdomain(request)
        if not candidate:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="Tenant resolution failed: provide X-Tenant-ID header or subdomain",
            )
    else:
        candidate = settings.default_tenant_id
    try:
        ctx = TenantContext.of(candidate)
    except ValueError as exc:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail={"code": "invalid_tenant", "message": str(exc), "details": {}},
        ) from exc
    set_tenant_id(ctx.tenant_id)
    return ctx


async def get_actor(
    actor_id: str | None = Header(default=None, alias="X-Actor-Id"),
    actor_kind: str | None = Header(default=None, alias="X-Actor-Kind"),
) -> ActorRef:
    """Actor identity as asserted by the upstream gateway."""
    if not actor_id:
        return ActorRef.system()
    try:
        kind = ActorKind((actor_kind or ActorKind.APPLICANT.value).strip().upper())
    except ValueError as exc:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail={"code": "invalid_actor", "message": "Unknown X-Actor-Kind", "details": {"value": actor_kind}},
        ) from exc
    set_actor_id(actor_id)
    return ActorRef(id=actor_id, kind=kind)


def get_sessions() -> async_sessionmaker[AsyncSession]:
    return get_session_factory()


def get_status_dispatcher() -> StatusChangeDispatcher:
    return build_dispatcher()


def get_version_store(
    sessions: async_sessionmaker[AsyncSession] = Depends(get_sessions),
) -> VersionChainStore:
    return VersionChainStore(sessions)


def get_document_registry(
    sessions: async_sessionmaker[AsyncSession] = Depends(get_sessions),
) -> ActiveDocumentRegistry:
    return ActiveDocumentRegistry(sessions)


def get_snapshot_capturer(
    sessions: async_sessionmaker[AsyncSession] = Depends(get_sessions),
) -> SnapshotCapturer:
    return SnapshotCapturer(sessions)


def get_state_machine(
    sessions: async_sessionmaker[AsyncSession] = Depends(get_sessions),
    dispatcher: StatusChangeDispatcher = Depends(get_status_dispatcher),
) -> ApplicationStateMachine:
    return ApplicationStateMachine(sessions, dispatcher=dispatcher)


def get_verification_ledger(
    sessions: async_sessionmaker[AsyncSession] = Depends(get_sessions),
) -> VerificationLedger:
    return VerificationLedger(sessions)
