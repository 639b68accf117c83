import uuid

from sqlalchemy import (
    CheckConstraint,
    Column,
    DateTime,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
    func,
)
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import relationship

from origination.db.base import Base, utcnow


class ApplicationStatusHistory(Base):
    """Append-only log of status changes; ``applications.status`` caches the last ``to_status``."""

    __tablename__ = "application_status_history"
    __table_args__ = (
        UniqueConstraint("application_id", "sequence", name="uq_application_status_history_seq"),
        CheckConstraint(
            "changed_by_kind IN ('APPLICANT', 'STAFF', 'SYSTEM')",
            name="ck_application_status_history_actor_kind",
        ),
        CheckConstraint("sequence >= 1", name="ck_application_status_history_seq_positive"),
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    tenant_id = Column(String(64), nullable=False, index=True)
    application_id = Column(
        UUID(as_uuid=True),
        ForeignKey("applications.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )
    sequence = Column(Integer, nullable=False)
    from_status = Column(String(30), nullable=True)
    to_status = Column(String(30), nullable=False)
    changed_by = Column(String(255), nullable=True)
    changed_by_kind = Column(String(20), nullable=False, default="SYSTEM")
    notes = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow, server_default=func.now())

    application = relationship("Application", back_populates="status_history")
