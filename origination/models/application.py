import uuid

from sqlalchemy import (
    CheckConstraint,
    Column,
    DateTime,
    Index,
    Integer,
    Numeric,
    String,
    func,
)
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import relationship

from origination.db.base import Base, utcnow
from origination.models.types import JSONType


APPLICATION_STATUSES = (
    "DRAFT",
    "SUBMITTED",
    "IN_REVIEW",
    "DOCS_PENDING",
    "CORRECTIONS_PENDING",
    "APPROVED",
    "REJECTED",
    "CANCELLED",
    "DISBURSED",
    "ACTIVE",
    "COMPLETED",
    "DEFAULT",
)

SNAPSHOT_COLUMNS = ("snapshot_references", "snapshot_data", "snapshot_captured_at")


class Application(Base):
    __tablename__ = "applications"
    __table_args__ = (
        CheckConstraint(
            "status IN ('DRAFT', 'SUBMITTED', 'IN_REVIEW', 'DOCS_PENDING', 'CORRECTIONS_PENDING', "
            "'APPROVED', 'REJECTED', 'CANCELLED', 'DISBURSED', 'ACTIVE', 'COMPLETED', 'DEFAULT')",
            name="ck_applications_status",
        ),
        CheckConstraint("owner_kind IN ('PERSON', 'COMPANY')", name="ck_applications_owner_kind"),
        CheckConstraint("requested_amount > 0", name="ck_applications_amount_positive"),
        CheckConstraint("requested_term_months >= 1", name="ck_applications_term_positive"),
        CheckConstraint("lock_version >= 1", name="ck_applications_lock_version_positive"),
        Index("ix_applications_tenant_status", "tenant_id", "status"),
        Index("ix_applications_owner", "tenant_id", "owner_kind", "owner_id"),
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    tenant_id = Column(String(64), nullable=False, index=True)
    owner_kind = Column(String(20), nullable=False)
    owner_id = Column(UUID(as_uuid=True), nullable=False)
    requested_amount = Column(Numeric(18, 2), nullable=False)
    requested_term_months = Column(Integer, nullable=False)
    purpose = Column(String(255), nullable=True)
    required_document_types = Column(JSONType, nullable=False, default=list)
    status = Column(String(30), nullable=False, default="DRAFT")
    status_changed_at = Column(DateTime(timezone=True), nullable=True)
    status_changed_by = Column(String(255), nullable=True)
    status_changed_by_kind = Column(String(20), nullable=True)
    snapshot_references = Column(JSONType, nullable=True)
    snapshot_data = Column(JSONType, nullable=True)
    snapshot_captured_at = Column(DateTime(timezone=True), nullable=True)
    submitted_at = Column(DateTime(timezone=True), nullable=True)
    approved_at = Column(DateTime(timezone=True), nullable=True)
    rejected_at = Column(DateTime(timezone=True), nullable=True)
    cancelled_at = Column(DateTime(timezone=True), nullable=True)
    disbursed_at = Column(DateTime(timezone=True), nullable=True)
    created_by = Column(String(255), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow, server_default=func.now())
    updated_at = Column(
        DateTime(timezone=True),
        nullable=False,
        default=utcnow,
        onupdate=utcnow,
        server_default=func.now(),
    )
    lock_version = Column(Integer, nullable=False, default=1)

    status_history = relationship(
        "ApplicationStatusHistory",
        back_populates="application",
        order_by="ApplicationStatusHistory.sequence",
        lazy="raise",
        passive_deletes=True,
    )

    __mapper_args__ = {"version_id_col": lock_version}

    def __repr__(self) -> str:
        return f"<Application id={self.id} status={self.status}>"
