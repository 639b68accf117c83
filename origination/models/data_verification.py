import uuid

from sqlalchemy import (
    CheckConstraint,
    Column,
    DateTime,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    func,
)
from sqlalchemy.dialects.postgresql import UUID

from origination.db.base import Base, utcnow
from origination.models.types import JSONType


class DataVerification(Base):
    """One row per verification outcome; rows are never updated."""

    __tablename__ = "data_verifications"
    __table_args__ = (
        UniqueConstraint(
            "tenant_id",
            "owner_kind",
            "owner_id",
            "field_name",
            "sequence",
            name="uq_data_verifications_field_sequence",
        ),
        CheckConstraint(
            "status IN ('PENDING', 'VERIFIED', 'REJECTED', 'CORRECTED')",
            name="ck_data_verifications_status",
        ),
        CheckConstraint(
            "owner_kind IN ('PERSON', 'COMPANY', 'APPLICATION')",
            name="ck_data_verifications_owner_kind",
        ),
        CheckConstraint("sequence >= 1", name="ck_data_verifications_seq_positive"),
        Index("ix_data_verifications_owner", "tenant_id", "owner_kind", "owner_id"),
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    tenant_id = Column(String(64), nullable=False, index=True)
    owner_kind = Column(String(20), nullable=False)
    owner_id = Column(UUID(as_uuid=True), nullable=False)
    field_name = Column(String(100), nullable=False)
    field_value = Column(JSONType, nullable=True)
    method = Column(String(50), nullable=False)
    status = Column(String(20), nullable=False)
    sequence = Column(Integer, nullable=False)
    rejection_reason = Column(Text, nullable=True)
    corrected_at = Column(DateTime(timezone=True), nullable=True)
    correction_history = Column(JSONType, nullable=False, default=list)
    verified_by = Column(String(255), nullable=True)
    verified_by_kind = Column(String(20), nullable=True)
    verification_metadata = Column("metadata", JSONType, nullable=False, default=dict)
    notes = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow, server_default=func.now())
