from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from origination.schemas.common import ActorKind, OwnerKind
from origination.schemas.documents import DocumentType


class ApplicationStatus(str, Enum):
    DRAFT = "DRAFT"
    SUBMITTED = "SUBMITTED"
    IN_REVIEW = "IN_REVIEW"
    DOCS_PENDING = "DOCS_PENDING"
    CORRECTIONS_PENDING = "CORRECTIONS_PENDING"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"
    CANCELLED = "CANCELLED"
    DISBURSED = "DISBURSED"
    ACTIVE = "ACTIVE"
    COMPLETED = "COMPLETED"
    DEFAULT = "DEFAULT"


class ApplicationCreateRequest(BaseModel):
    owner_kind: OwnerKind
    owner_id: UUID
    requested_amount: Decimal = Field(gt=0)
    requested_term_months: int = Field(ge=1, le=600)
    purpose: str | None = Field(default=None, max_length=255)
    required_document_types: list[DocumentType] = Field(default_factory=list)


class TransitionRequest(BaseModel):
    to_status: ApplicationStatus
    notes: str | None = Field(default=None, max_length=2000)


class StatusHistoryDTO(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    application_id: UUID
    from_status: ApplicationStatus | None = None
    to_status: ApplicationStatus
    changed_by: str | None = None
    changed_by_kind: ActorKind
    notes: str | None = None
    created_at: datetime


class ApplicationDTO(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    tenant_id: str
    owner_kind: OwnerKind
    owner_id: UUID
    requested_amount: Decimal
    requested_term_months: int
    purpose: str | None = None
    required_document_types: list[str]
    status: ApplicationStatus
    status_changed_at: datetime | None = None
    status_changed_by: str | None = None
    status_changed_by_kind: ActorKind | None = None
    snapshot_references: dict[str, Any] | None = None
    snapshot_data: dict[str, Any] | None = None
    snapshot_captured_at: datetime | None = None
    submitted_at: datetime | None = None
    approved_at: datetime | None = None
    rejected_at: datetime | None = None
    cancelled_at: datetime | None = None
    disbursed_at: datetime | None = None
    created_at: datetime


class StatusHistoryResponse(BaseModel):
    items: list[StatusHistoryDTO]
    total: int


class CompletenessResponse(BaseModel):
    complete: bool
    missing: list[str]
