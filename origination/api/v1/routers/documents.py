from __future__ import annotations

from datetime import datetime
from uuid import UUID

from fastapi import APIRouter, Depends, status

from origination.api import deps
from origination.core.errors import engine_http_error
from origination.core.tenant import TenantContext
from origination.schemas.common import ActorRef, OwnerKind, OwnerRef
from origination.schemas.documents import (
    ActivateDocumentRequest,
    DocumentDTO,
    DocumentListResponse,
    DocumentType,
    DocumentUpload,
    RejectDocumentRequest,
    SupersedeDocumentRequest,
)
from origination.services.document_registry import ActiveDocumentRegistry
from origination.services.errors import EngineError


router = APIRouter(prefix="/documents", tags=["documents"])


def _upload(payload: ActivateDocumentRequest) -> DocumentUpload:
    return DocumentUpload.model_validate(payload.model_dump(include=set(DocumentUpload.model_fields)))


def _list(documents) -> DocumentListResponse:
    items = [DocumentDTO.model_validate(document) for document in documents]
    return DocumentListResponse(items=items, total=len(items))


@router.post(
    "/activate",
    response_model=DocumentDTO,
    status_code=status.HTTP_201_CREATED,
    summary="Upload a document and make it the active one for its type",
)
async def activate_document(
    payload: ActivateDocumentRequest,
    ctx: TenantContext = Depends(deps.get_tenant_context),
    actor: ActorRef = Depends(deps.get_actor),
    registry: ActiveDocumentRegistry = Depends(deps.get_document_registry),
) -> DocumentDTO:
    owner = OwnerRef(kind=payload.owner_kind, id=payload.owner_id)
    try:
        document = await registry.activate(ctx, owner, payload.doc_type, _upload(payload), actor=actor)
    except EngineError as exc:
        raise engine_http_error(exc) from exc
    return DocumentDTO.model_validate(document)


@router.post(
    "",
    response_model=DocumentDTO,
    status_code=status.HTTP_201_CREATED,
    summary="Register an inactive document",
)
async def register_document(
    payload: ActivateDocumentRequest,
    ctx: TenantContext = Depends(deps.get_tenant_context),
    actor: ActorRef = Depends(deps.get_actor),
    registry: ActiveDocumentRegistry = Depends(deps.get_document_registry),
) -> DocumentDTO:
    owner = OwnerRef(kind=payload.owner_kind, id=payload.owner_id)
    try:
        document = await registry.register(ctx, owner, payload.doc_type, _upload(payload), actor=actor)
    except EngineError as exc:
        raise engine_http_error(exc) from exc
    return DocumentDTO.model_validate(document)


@router.post("/supersede", response_model=DocumentDTO, summary="Move the active flag to another document")
async def supersede_document(
    payload: SupersedeDocumentRequest,
    ctx: TenantContext = Depends(deps.get_tenant_context),
    actor: ActorRef = Depends(deps.get_actor),
    registry: ActiveDocumentRegistry = Depends(deps.get_document_registry),
) -> DocumentDTO:
    try:
        document = await registry.supersede(ctx, payload.old_id, payload.new_id, payload.reason, actor=actor)
    except EngineError as exc:
        raise engine_http_error(exc) from exc
    return DocumentDTO.model_validate(document)


@router.get("/active", response_model=DocumentDTO, summary="Get the active document")
async def get_active_document(
    owner_kind: OwnerKind,
    owner_id: UUID,
    doc_type: DocumentType,
    ctx: TenantContext = Depends(deps.get_tenant_context),
    registry: ActiveDocumentRegistry = Depends(deps.get_document_registry),
) -> DocumentDTO:
    try:
        document = await registry.get_active(ctx, OwnerRef(kind=owner_kind, id=owner_id), doc_type)
    except EngineError as exc:
        raise engine_http_error(exc) from exc
    return DocumentDTO.model_validate(document)


@router.get("/history", response_model=DocumentListResponse, summary="Every document of a type, newest first")
async def get_document_history(
    owner_kind: OwnerKind,
    owner_id: UUID,
    doc_type: DocumentType,
    ctx: TenantContext = Depends(deps.get_tenant_context),
    registry: ActiveDocumentRegistry = Depends(deps.get_document_registry),
) -> DocumentListResponse:
    return _list(await registry.get_history(ctx, OwnerRef(kind=owner_kind, id=owner_id), doc_type))


@router.get("/valid-at", response_model=DocumentListResponse, summary="Documents valid at a point in time")
async def get_documents_valid_at(
    owner_kind: OwnerKind,
    owner_id: UUID,
    at: datetime,
    doc_type: DocumentType | None = None,
    ctx: TenantContext = Depends(deps.get_tenant_context),
    registry: ActiveDocumentRegistry = Depends(deps.get_document_registry),
) -> DocumentListResponse:
    return _list(await registry.valid_at(ctx, OwnerRef(kind=owner_kind, id=owner_id), at, doc_type))


@router.get("/{document_id}/chain", response_model=DocumentListResponse, summary="Supersession chain, oldest first")
async def get_supersession_chain(
    document_id: UUID,
    ctx: TenantContext = Depends(deps.get_tenant_context),
    registry: ActiveDocumentRegistry = Depends(deps.get_document_registry),
) -> DocumentListResponse:
    try:
        chain = await registry.supersession_chain(ctx, document_id)
    except EngineError as exc:
        raise engine_http_error(exc) from exc
    return _list(chain)


@router.post("/{document_id}/approve", response_model=DocumentDTO, summary="Approve a document")
async def approve_document(
    document_id: UUID,
    ctx: TenantContext = Depends(deps.get_tenant_context),
    actor: ActorRef = Depends(deps.get_actor),
    registry: ActiveDocumentRegistry = Depends(deps.get_document_registry),
) -> DocumentDTO:
    try:
        document = await registry.approve(ctx, document_id, actor=actor)
    except EngineError as exc:
        raise engine_http_error(exc) from exc
    return DocumentDTO.model_validate(document)


@router.post("/{document_id}/reject", response_model=DocumentDTO, summary="Reject a document")
async def reject_document(
    document_id: UUID,
    payload: RejectDocumentRequest,
    ctx: TenantContext = Depends(deps.get_tenant_context),
    actor: ActorRef = Depends(deps.get_actor),
    registry: ActiveDocumentRegistry = Depends(deps.get_document_registry),
) -> DocumentDTO:
    try:
        document = await registry.reject(ctx, document_id, reason=payload.reason, actor=actor)
    except EngineError as exc:
        raise engine_http_error(exc) from exc
    return DocumentDTO.model_validate(document)
