from __future__ import annotations

from uuid import UUID

from fastapi import APIRouter, Depends, status

from origination.api import deps
from origination.core.errors import engine_http_error
from origination.core.tenant import TenantContext
from origination.schemas.applications import (
    ApplicationCreateRequest,
    ApplicationDTO,
    CompletenessResponse,
    StatusHistoryDTO,
    StatusHistoryResponse,
    TransitionRequest,
)
from origination.schemas.common import ActorRef, OwnerRef
from origination.services.application_state import ApplicationStateMachine
from origination.services.errors import EngineError
from origination.services.snapshots import SnapshotCapturer


router = APIRouter(prefix="/applications", tags=["applications"])


@router.post(
    "",
    response_model=ApplicationDTO,
    status_code=status.HTTP_201_CREATED,
    summary="Create a draft application",
)
async def create_application(
    payload: ApplicationCreateRequest,
    ctx: TenantContext = Depends(deps.get_tenant_context),
    actor: ActorRef = Depends(deps.get_actor),
    machine: ApplicationStateMachine = Depends(deps.get_state_machine),
) -> ApplicationDTO:
    try:
        application = await machine.create_application(
            ctx,
            OwnerRef(kind=payload.owner_kind, id=payload.owner_id),
            requested_amount=payload.requested_amount,
            requested_term_months=payload.requested_term_months,
            purpose=payload.purpose,
            required_document_types=[doc_type.value for doc_type in payload.required_document_types],
            actor=actor,
        )
    except EngineError as exc:
        raise engine_http_error(exc) from exc
    return ApplicationDTO.model_validate(application)


@router.get("/{application_id}", response_model=ApplicationDTO, summary="Get an application")
async def get_application(
    application_id: UUID,
    ctx: TenantContext = Depends(deps.get_tenant_context),
    machine: ApplicationStateMachine = Depends(deps.get_state_machine),
) -> ApplicationDTO:
    try:
        application = await machine.get_application(ctx, application_id)
    except EngineError as exc:
        raise engine_http_error(exc) from exc
    return ApplicationDTO.model_validate(application)


@router.post(
    "/{application_id}/transitions",
    response_model=ApplicationDTO,
    summary="Move an application to another status",
)
async def transition_application(
    application_id: UUID,
    payload: TransitionRequest,
    ctx: TenantContext = Depends(deps.get_tenant_context),
    actor: ActorRef = Depends(deps.get_actor),
    machine: ApplicationStateMachine = Depends(deps.get_state_machine),
) -> ApplicationDTO:
    try:
        application = await machine.transition(ctx, application_id, payload.to_status, actor, payload.notes)
    except EngineError as exc:
        raise engine_http_error(exc) from exc
    return ApplicationDTO.model_validate(application)


@router.get(
    "/{application_id}/history",
    response_model=StatusHistoryResponse,
    summary="Status history, oldest first",
)
async def get_status_history(
    application_id: UUID,
    ctx: TenantContext = Depends(deps.get_tenant_context),
    machine: ApplicationStateMachine = Depends(deps.get_state_machine),
) -> StatusHistoryResponse:
    try:
        entries = await machine.list_history(ctx, application_id)
    except EngineError as exc:
        raise engine_http_error(exc) from exc
    items = [StatusHistoryDTO.model_validate(entry) for entry in entries]
    return StatusHistoryResponse(items=items, total=len(items))


@router.get(
    "/{application_id}/completeness",
    response_model=CompletenessResponse,
    summary="Slots still missing before submission",
)
async def get_completeness(
    application_id: UUID,
    ctx: TenantContext = Depends(deps.get_tenant_context),
    capturer: SnapshotCapturer = Depends(deps.get_snapshot_capturer),
) -> CompletenessResponse:
    try:
        missing = await capturer.missing_slots(ctx, application_id)
    except EngineError as exc:
        raise engine_http_error(exc) from exc
    return CompletenessResponse(complete=not missing, missing=missing)
