from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from origination.schemas.common import OwnerKind


class RecordKind(str, Enum):
    IDENTIFICATION = "IDENTIFICATION"
    ADDRESS = "ADDRESS"
    EMPLOYMENT = "EMPLOYMENT"
    BANK_ACCOUNT = "BANK_ACCOUNT"
    REFERENCE = "REFERENCE"


class RecordStatus(str, Enum):
    PENDING = "PENDING"
    VERIFIED = "VERIFIED"
    REJECTED = "REJECTED"
    EXPIRED = "EXPIRED"
    SUPERSEDED = "SUPERSEDED"


class ReplacementReason(str, Enum):
    CORRECTED = "CORRECTED"
    UPDATED = "UPDATED"
    RENEWED = "RENEWED"
    MOVED = "MOVED"
    JOB_CHANGE = "JOB_CHANGE"
    EXPIRED = "EXPIRED"


RECORD_TYPES: dict[RecordKind, frozenset[str]] = {
    RecordKind.IDENTIFICATION: frozenset(
        {
            "CURP",
            "RFC",
            "INE",
            "PASSPORT",
            "FM2",
            "FM3",
            "VISA",
            "DRIVER_LICENSE",
            "PROFESSIONAL_ID",
            "MILITARY_ID",
        }
    ),
    RecordKind.ADDRESS: frozenset(
        {
            "HOME",
            "WORK",
            "FISCAL",
            "BILLING",
            "CORRESPONDENCE",
            "DELIVERY",
            "HEADQUARTERS",
            "BRANCH",
            "WAREHOUSE",
        }
    ),
    RecordKind.EMPLOYMENT: frozenset({"PRIMARY", "SECONDARY"}),
    RecordKind.BANK_ACCOUNT: frozenset({"PRIMARY", "SECONDARY"}),
    RecordKind.REFERENCE: frozenset({"PERSONAL", "FAMILY", "WORK"}),
}

# Record kinds that only make sense for a natural person.
PERSON_ONLY_KINDS = frozenset({RecordKind.EMPLOYMENT, RecordKind.REFERENCE})

DEFAULT_REPLACEMENT_REASON = ReplacementReason.CORRECTED


class _Payload(BaseModel):
    model_config = ConfigDict(extra="forbid")

    # Provider responses (OCR, registry lookups) are opaque to the engine.
    verification_data: dict[str, Any] = Field(default_factory=dict)


class IdentificationPayload(_Payload):
    number: str = Field(min_length=1, max_length=64)
    full_name: str | None = Field(default=None, max_length=255)
    issuing_country: str = Field(default="MX", min_length=2, max_length=2)
    issued_at: date | None = None
    expires_at: date | None = None


class AddressPayload(_Payload):
    street: str = Field(min_length=1, max_length=255)
    exterior_number: str | None = Field(default=None, max_length=32)
    interior_number: str | None = Field(default=None, max_length=32)
    neighborhood: str | None = Field(default=None, max_length=255)
    city: str = Field(min_length=1, max_length=255)
    state: str = Field(min_length=1, max_length=255)
    postal_code: str = Field(min_length=1, max_length=16)
    country: str = Field(default="MX", min_length=2, max_length=2)
    years_at_address: int | None = Field(default=None, ge=0)


class EmploymentPayload(_Payload):
    employer_name: str = Field(min_length=1, max_length=255)
    position: str | None = Field(default=None, max_length=255)
    monthly_income: Decimal = Field(ge=0)
    start_date: date | None = None
    employer_phone: str | None = Field(default=None, max_length=32)


class BankAccountPayload(_Payload):
    bank_name: str = Field(min_length=1, max_length=255)
    clabe: str = Field(pattern=r"^\d{18}$")
    holder_name: str = Field(min_length=1, max_length=255)


class ReferencePayload(_Payload):
    full_name: str = Field(min_length=1, max_length=255)
    phone: str = Field(min_length=7, max_length=32)
    relationship: str = Field(min_length=1, max_length=64)


PAYLOAD_MODELS: dict[RecordKind, type[_Payload]] = {
    RecordKind.IDENTIFICATION: IdentificationPayload,
    RecordKind.ADDRESS: AddressPayload,
    RecordKind.EMPLOYMENT: EmploymentPayload,
    RecordKind.BANK_ACCOUNT: BankAccountPayload,
    RecordKind.REFERENCE: ReferencePayload,
}


class PutVersionRequest(BaseModel):
    owner_kind: OwnerKind
    owner_id: UUID
    record_kind: RecordKind
    record_type: str = Field(min_length=1, max_length=50)
    payload: dict[str, Any]
    replacement_reason: ReplacementReason | None = None


class VerifyRecordRequest(BaseModel):
    method: str = Field(min_length=1, max_length=50)
    verification_data: dict[str, Any] = Field(default_factory=dict)


class RejectRecordRequest(BaseModel):
    reason: str = Field(min_length=1, max_length=1000)


class VersionedRecordDTO(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    tenant_id: str
    owner_kind: OwnerKind
    owner_id: UUID
    record_kind: RecordKind
    record_type: str
    payload: dict[str, Any]
    is_current: bool
    previous_version_id: UUID | None = None
    valid_from: datetime
    valid_until: datetime | None = None
    status: RecordStatus
    replaced_at: datetime | None = None
    replacement_reason: ReplacementReason | None = None
    verified_at: datetime | None = None
    verified_by: str | None = None
    verification_method: str | None = None
    rejection_reason: str | None = None
    created_by: str | None = None
    created_at: datetime
    deleted_at: datetime | None = None


class VersionHistoryResponse(BaseModel):
    items: list[VersionedRecordDTO]
    total: int
