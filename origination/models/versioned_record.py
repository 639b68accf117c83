import uuid

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    func,
    text,
)
from sqlalchemy.dialects.postgresql import UUID

from origination.db.base import Base, utcnow
from origination.models.types import JSONType


CURRENT_RECORD_PREDICATE = "is_current = true AND deleted_at IS NULL"


class VersionedRecord(Base):
    __tablename__ = "versioned_records"
    __table_args__ = (
        CheckConstraint(
            "record_kind IN ('IDENTIFICATION', 'ADDRESS', 'EMPLOYMENT', 'BANK_ACCOUNT', 'REFERENCE')",
            name="ck_versioned_records_kind",
        ),
        CheckConstraint(
            "owner_kind IN ('PERSON', 'COMPANY', 'APPLICATION')",
            name="ck_versioned_records_owner_kind",
        ),
        CheckConstraint(
            "status IN ('PENDING', 'VERIFIED', 'REJECTED', 'EXPIRED', 'SUPERSEDED')",
            name="ck_versioned_records_status",
        ),
        CheckConstraint(
            "previous_version_id IS NULL OR previous_version_id <> id",
            name="ck_versioned_records_not_self_linked",
        ),
        CheckConstraint("lock_version >= 1", name="ck_versioned_records_lock_version_positive"),
        UniqueConstraint("previous_version_id", name="uq_versioned_records_previous_version"),
        Index(
            "uq_versioned_records_one_current",
            "tenant_id",
            "owner_kind",
            "owner_id",
            "record_kind",
            "record_type",
            unique=True,
            postgresql_where=text(CURRENT_RECORD_PREDICATE),
            sqlite_where=text(CURRENT_RECORD_PREDICATE),
        ),
        Index(
            "ix_versioned_records_owner_key",
            "tenant_id",
            "owner_kind",
            "owner_id",
            "record_kind",
            "record_type",
        ),
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    tenant_id = Column(String(64), nullable=False, index=True)
    owner_kind = Column(String(20), nullable=False)
    owner_id = Column(UUID(as_uuid=True), nullable=False)
    record_kind = Column(String(20), nullable=False)
    record_type = Column(String(50), nullable=False)
    payload = Column(JSONType, nullable=False, default=dict)
    is_current = Column(Boolean, nullable=False, default=True)
    previous_version_id = Column(
        UUID(as_uuid=True),
        ForeignKey("versioned_records.id", ondelete="RESTRICT"),
        nullable=True,
    )
    valid_from = Column(DateTime(timezone=True), nullable=False, default=utcnow, server_default=func.now())
    valid_until = Column(DateTime(timezone=True), nullable=True)
    status = Column(String(20), nullable=False, default="PENDING")
    replaced_at = Column(DateTime(timezone=True), nullable=True)
    replacement_reason = Column(String(20), nullable=True)
    verified_at = Column(DateTime(timezone=True), nullable=True)
    verified_by = Column(String(255), nullable=True)
    verification_method = Column(String(50), nullable=True)
    rejection_reason = Column(Text, nullable=True)
    created_by = Column(String(255), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow, server_default=func.now())
    deleted_at = Column(DateTime(timezone=True), nullable=True)
    lock_version = Column(Integer, nullable=False, default=1)

    __mapper_args__ = {"version_id_col": lock_version}

    def __repr__(self) -> str:
        return (
            f"<VersionedRecord {self.record_kind}/{self.record_type} id={self.id} "
            f"current={self.is_current}>"
        )
