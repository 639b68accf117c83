from __future__ import annotations

from datetime import datetime
from enum import Enum
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from origination.schemas.common import OwnerKind


class DocumentType(str, Enum):
    INE_FRONT = "INE_FRONT"
    INE_BACK = "INE_BACK"
    PASSPORT = "PASSPORT"
    CURP_CERTIFICATE = "CURP_CERTIFICATE"
    RFC_CERTIFICATE = "RFC_CERTIFICATE"
    PROOF_OF_ADDRESS = "PROOF_OF_ADDRESS"
    PAYSLIP = "PAYSLIP"
    BANK_STATEMENT = "BANK_STATEMENT"
    EMPLOYMENT_LETTER = "EMPLOYMENT_LETTER"
    TAX_RETURN = "TAX_RETURN"
    SELFIE = "SELFIE"
    SIGNATURE = "SIGNATURE"
    ARTICLES_OF_INCORPORATION = "ARTICLES_OF_INCORPORATION"
    POWER_OF_ATTORNEY = "POWER_OF_ATTORNEY"
    FINANCIAL_STATEMENTS = "FINANCIAL_STATEMENTS"
    CONTRACT = "CONTRACT"
    OTHER = "OTHER"


class DocumentCategory(str, Enum):
    IDENTITY = "IDENTITY"
    ADDRESS = "ADDRESS"
    INCOME = "INCOME"
    CORPORATE = "CORPORATE"
    CONTRACT = "CONTRACT"
    OTHER = "OTHER"


DOCUMENT_CATEGORIES: dict[DocumentType, DocumentCategory] = {
    DocumentType.INE_FRONT: DocumentCategory.IDENTITY,
    DocumentType.INE_BACK: DocumentCategory.IDENTITY,
    DocumentType.PASSPORT: DocumentCategory.IDENTITY,
    DocumentType.CURP_CERTIFICATE: DocumentCategory.IDENTITY,
    DocumentType.RFC_CERTIFICATE: DocumentCategory.IDENTITY,
    DocumentType.SELFIE: DocumentCategory.IDENTITY,
    DocumentType.SIGNATURE: DocumentCategory.IDENTITY,
    DocumentType.PROOF_OF_ADDRESS: DocumentCategory.ADDRESS,
    DocumentType.PAYSLIP: DocumentCategory.INCOME,
    DocumentType.BANK_STATEMENT: DocumentCategory.INCOME,
    DocumentType.EMPLOYMENT_LETTER: DocumentCategory.INCOME,
    DocumentType.TAX_RETURN: DocumentCategory.INCOME,
    DocumentType.ARTICLES_OF_INCORPORATION: DocumentCategory.CORPORATE,
    DocumentType.POWER_OF_ATTORNEY: DocumentCategory.CORPORATE,
    DocumentType.FINANCIAL_STATEMENTS: DocumentCategory.CORPORATE,
    DocumentType.CONTRACT: DocumentCategory.CONTRACT,
    DocumentType.OTHER: DocumentCategory.OTHER,
}


class DocumentStatus(str, Enum):
    PENDING = "PENDING"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"
    EXPIRED = "EXPIRED"
    SUPERSEDED = "SUPERSEDED"


class DocumentReplacementReason(str, Enum):
    UPDATED = "UPDATED"
    REJECTED = "REJECTED"
    CORRECTED = "CORRECTED"
    EXPIRED = "EXPIRED"


class DocumentUpload(BaseModel):
    """Blob metadata for a document already written to storage."""

    file_name: str = Field(min_length=1, max_length=255)
    storage_path: str = Field(min_length=1, max_length=1024)
    content_type: str | None = Field(default=None, max_length=100)
    size_bytes: int | None = Field(default=None, ge=0)
    checksum: str | None = Field(default=None, max_length=128)


class ActivateDocumentRequest(DocumentUpload):
    owner_kind: OwnerKind
    owner_id: UUID
    doc_type: DocumentType


class SupersedeDocumentRequest(BaseModel):
    old_id: UUID
    new_id: UUID
    reason: DocumentReplacementReason = DocumentReplacementReason.UPDATED


class RejectDocumentRequest(BaseModel):
    reason: str = Field(min_length=1, max_length=1000)


class DocumentDTO(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    tenant_id: str
    owner_kind: OwnerKind
    owner_id: UUID
    doc_type: DocumentType
    category: DocumentCategory
    file_name: str
    storage_path: str
    content_type: str | None = None
    size_bytes: int | None = None
    checksum: str | None = None
    is_active: bool
    valid_from: datetime
    valid_to: datetime | None = None
    superseded_by_id: UUID | None = None
    status: DocumentStatus
    replaced_at: datetime | None = None
    replacement_reason: DocumentReplacementReason | None = None
    rejection_reason: str | None = None
    reviewed_at: datetime | None = None
    reviewed_by: str | None = None
    created_by: str | None = None
    created_at: datetime


class DocumentListResponse(BaseModel):
    items: list[DocumentDTO]
    total: int
