from __future__ import annotations

from enum import Enum
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field


class OwnerKind(str, Enum):
    PERSON = "PERSON"
    COMPANY = "COMPANY"
    APPLICATION = "APPLICATION"


class ActorKind(str, Enum):
    APPLICANT = "APPLICANT"
    STAFF = "STAFF"
    SYSTEM = "SYSTEM"


class OwnerRef(BaseModel):
    """Tagged reference to the entity a record, document or verification belongs to."""

    model_config = ConfigDict(frozen=True)

    kind: OwnerKind
    id: UUID

    @classmethod
    def person(cls, owner_id: UUID) -> "OwnerRef":
        return cls(kind=OwnerKind.PERSON, id=owner_id)

    @classmethod
    def company(cls, owner_id: UUID) -> "OwnerRef":
        return cls(kind=OwnerKind.COMPANY, id=owner_id)

    @classmethod
    def application(cls, owner_id: UUID) -> "OwnerRef":
        return cls(kind=OwnerKind.APPLICATION, id=owner_id)

    def __str__(self) -> str:
        return f"{self.kind.value}:{self.id}"


class ActorRef(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str | None = Field(default=None, max_length=255)
    kind: ActorKind = ActorKind.SYSTEM

    @classmethod
    def system(cls) -> "ActorRef":
        return cls(id=None, kind=ActorKind.SYSTEM)


SYSTEM_ACTOR = ActorRef.system()


def enum_value(value) -> str | None:
    if value is None:
        return None
    return value.value if hasattr(value, "value") else str(value)
