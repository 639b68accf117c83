from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from origination.schemas.common import OwnerKind


class VerificationStatus(str, Enum):
    PENDING = "PENDING"
    VERIFIED = "VERIFIED"
    REJECTED = "REJECTED"
    CORRECTED = "CORRECTED"


class VerificationMethod(str, Enum):
    MANUAL = "MANUAL"
    OTP = "OTP"
    API = "API"
    DOCUMENT = "DOCUMENT"
    BUREAU = "BUREAU"
    KYC_INE_OCR = "KYC_INE_OCR"
    KYC_CURP_RENAPO = "KYC_CURP_RENAPO"
    KYC_RFC_SAT = "KYC_RFC_SAT"
    KYC_FACE_MATCH = "KYC_FACE_MATCH"
    KYC_LIVENESS = "KYC_LIVENESS"
    KYC_BANK_ACCOUNT = "KYC_BANK_ACCOUNT"


class RecordVerificationRequest(BaseModel):
    owner_kind: OwnerKind
    owner_id: UUID
    field_name: str = Field(min_length=1, max_length=100)
    value: Any = None
    method: VerificationMethod
    outcome: VerificationStatus
    rejection_reason: str | None = Field(default=None, max_length=1000)
    notes: str | None = Field(default=None, max_length=2000)
    metadata: dict[str, Any] = Field(default_factory=dict)


class CorrectionEntry(BaseModel):
    old_value: Any = None
    new_value: Any = None
    corrected_at: datetime
    reason: str | None = None


class VerificationRecordDTO(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    tenant_id: str
    owner_kind: OwnerKind
    owner_id: UUID
    field_name: str
    field_value: Any = None
    method: VerificationMethod
    status: VerificationStatus
    sequence: int
    rejection_reason: str | None = None
    corrected_at: datetime | None = None
    correction_history: list[CorrectionEntry]
    verified_by: str | None = None
    verified_by_kind: str | None = None
    metadata: dict[str, Any] = Field(default_factory=dict, validation_alias="verification_metadata")
    notes: str | None = None
    created_at: datetime


class VerificationHistoryResponse(BaseModel):
    items: list[VerificationRecordDTO]
    total: int
