from __future__ import annotations

from uuid import UUID

from fastapi import APIRouter, Depends, Query, status

from origination.api import deps
from origination.core.errors import engine_http_error
from origination.core.tenant import TenantContext
from origination.schemas.common import ActorRef, OwnerKind, OwnerRef
from origination.schemas.versions import (
    PutVersionRequest,
    RecordKind,
    RejectRecordRequest,
    VerifyRecordRequest,
    VersionedRecordDTO,
    VersionHistoryResponse,
)
from origination.services.errors import EngineError
from origination.services.version_chain import VersionChainStore


router = APIRouter(prefix="/records", tags=["records"])


@router.put(
    "",
    response_model=VersionedRecordDTO,
    status_code=status.HTTP_201_CREATED,
    summary="Store a new current version",
)
async def put_current_version(
    payload: PutVersionRequest,
    ctx: TenantContext = Depends(deps.get_tenant_context),
    actor: ActorRef = Depends(deps.get_actor),
    store: VersionChainStore = Depends(deps.get_version_store),
) -> VersionedRecordDTO:
    owner = OwnerRef(kind=payload.owner_kind, id=payload.owner_id)
    try:
        record = await store.put_current_version(
            ctx,
            owner,
            payload.record_kind,
            payload.record_type,
            payload.payload,
            reason=payload.replacement_reason,
            actor=actor,
        )
    except EngineError as exc:
        raise engine_http_error(exc) from exc
    return VersionedRecordDTO.model_validate(record)


@router.get("/current", response_model=VersionedRecordDTO, summary="Get the current version")
async def get_current_version(
    owner_kind: OwnerKind,
    owner_id: UUID,
    record_kind: RecordKind,
    record_type: str = Query(min_length=1, max_length=50),
    ctx: TenantContext = Depends(deps.get_tenant_context),
    store: VersionChainStore = Depends(deps.get_version_store),
) -> VersionedRecordDTO:
    try:
        record = await store.get_current(ctx, OwnerRef(kind=owner_kind, id=owner_id), record_kind, record_type)
    except EngineError as exc:
        raise engine_http_error(exc) from exc
    return VersionedRecordDTO.model_validate(record)


@router.get("/history", response_model=VersionHistoryResponse, summary="Version history, newest first")
async def get_version_history(
    owner_kind: OwnerKind,
    owner_id: UUID,
    record_kind: RecordKind,
    record_type: str = Query(min_length=1, max_length=50),
    include_deleted: bool = False,
    ctx: TenantContext = Depends(deps.get_tenant_context),
    store: VersionChainStore = Depends(deps.get_version_store),
) -> VersionHistoryResponse:
    try:
        chain = await store.get_history(
            ctx,
            OwnerRef(kind=owner_kind, id=owner_id),
            record_kind,
            record_type,
            include_deleted=include_deleted,
        )
    except EngineError as exc:
        raise engine_http_error(exc) from exc
    items = [VersionedRecordDTO.model_validate(record) for record in chain]
    return VersionHistoryResponse(items=items, total=len(items))


@router.get(
    "/owners/{owner_kind}/{owner_id}",
    response_model=VersionHistoryResponse,
    summary="All current records of an owner",
)
async def list_current_records(
    owner_kind: OwnerKind,
    owner_id: UUID,
    record_kind: RecordKind | None = None,
    ctx: TenantContext = Depends(deps.get_tenant_context),
    store: VersionChainStore = Depends(deps.get_version_store),
) -> VersionHistoryResponse:
    records = await store.list_current(ctx, OwnerRef(kind=owner_kind, id=owner_id), record_kind)
    items = [VersionedRecordDTO.model_validate(record) for record in records]
    return VersionHistoryResponse(items=items, total=len(items))


@router.post("/{record_id}/verify", response_model=VersionedRecordDTO, summary="Mark a version verified")
async def verify_record(
    record_id: UUID,
    payload: VerifyRecordRequest,
    ctx: TenantContext = Depends(deps.get_tenant_context),
    actor: ActorRef = Depends(deps.get_actor),
    store: VersionChainStore = Depends(deps.get_version_store),
) -> VersionedRecordDTO:
    try:
        record = await store.mark_verified(
            ctx,
            record_id,
            method=payload.method,
            actor=actor,
            verification_data=payload.verification_data,
        )
    except EngineError as exc:
        raise engine_http_error(exc) from exc
    return VersionedRecordDTO.model_validate(record)


@router.post("/{record_id}/reject", response_model=VersionedRecordDTO, summary="Mark a version rejected")
async def reject_record(
    record_id: UUID,
    payload: RejectRecordRequest,
    ctx: TenantContext = Depends(deps.get_tenant_context),
    actor: ActorRef = Depends(deps.get_actor),
    store: VersionChainStore = Depends(deps.get_version_store),
) -> VersionedRecordDTO:
    try:
        record = await store.mark_rejected(ctx, record_id, reason=payload.reason, actor=actor)
    except EngineError as exc:
        raise engine_http_error(exc) from exc
    return VersionedRecordDTO.model_validate(record)


@router.delete("/{record_id}", response_model=VersionedRecordDTO, summary="Soft-delete the current version")
async def delete_record(
    record_id: UUID,
    ctx: TenantContext = Depends(deps.get_tenant_context),
    actor: ActorRef = Depends(deps.get_actor),
    store: VersionChainStore = Depends(deps.get_version_store),
) -> VersionedRecordDTO:
    try:
        record = await store.soft_delete(ctx, record_id, actor=actor)
    except EngineError as exc:
        raise engine_http_error(exc) from exc
    return VersionedRecordDTO.model_validate(record)
