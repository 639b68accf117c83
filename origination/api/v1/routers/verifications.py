from __future__ import annotations

from typing import Any
from uuid import UUID

from fastapi import APIRouter, Depends, Query, status

from origination.api import deps
from origination.core.errors import engine_http_error
from origination.core.tenant import TenantContext
from origination.schemas.common import ActorRef, OwnerKind, OwnerRef
from origination.schemas.verifications import (
    RecordVerificationRequest,
    VerificationHistoryResponse,
    VerificationRecordDTO,
)
from origination.services.errors import EngineError
from origination.services.verification_ledger import VerificationLedger


router = APIRouter(prefix="/verifications", tags=["verifications"])


@router.post(
    "",
    response_model=VerificationRecordDTO,
    status_code=status.HTTP_201_CREATED,
    summary="Record a field verification outcome",
)
async def record_verification(
    payload: RecordVerificationRequest,
    ctx: TenantContext = Depends(deps.get_tenant_context),
    actor: ActorRef = Depends(deps.get_actor),
    ledger: VerificationLedger = Depends(deps.get_verification_ledger),
) -> VerificationRecordDTO:
    try:
        row = await ledger.record_verification(
            ctx,
            OwnerRef(kind=payload.owner_kind, id=payload.owner_id),
            payload.field_name,
            payload.value,
            payload.method,
            payload.outcome,
            rejection_reason=payload.rejection_reason,
            actor=actor,
            metadata=payload.metadata,
            notes=payload.notes,
        )
    except EngineError as exc:
        raise engine_http_error(exc) from exc
    return VerificationRecordDTO.model_validate(row)


@router.get("/history", response_model=VerificationHistoryResponse, summary="Ledger for one field, oldest first")
async def get_verification_history(
    owner_kind: OwnerKind,
    owner_id: UUID,
    field_name: str = Query(min_length=1, max_length=100),
    ctx: TenantContext = Depends(deps.get_tenant_context),
    ledger: VerificationLedger = Depends(deps.get_verification_ledger),
) -> VerificationHistoryResponse:
    rows = await ledger.list_history(ctx, OwnerRef(kind=owner_kind, id=owner_id), field_name)
    items = [VerificationRecordDTO.model_validate(row) for row in rows]
    return VerificationHistoryResponse(items=items, total=len(items))


@router.get("/verified", summary="Fields whose latest outcome is VERIFIED")
async def get_verified_fields(
    owner_kind: OwnerKind,
    owner_id: UUID,
    ctx: TenantContext = Depends(deps.get_tenant_context),
    ledger: VerificationLedger = Depends(deps.get_verification_ledger),
) -> dict[str, Any]:
    return await ledger.verified_fields(ctx, OwnerRef(kind=owner_kind, id=owner_id))
