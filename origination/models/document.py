import uuid

from sqlalchemy import (
    BigInteger,
    Boolean,
    CheckConstraint,
    Column,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    func,
    text,
)
from sqlalchemy.dialects.postgresql import UUID

from origination.db.base import Base, utcnow


ACTIVE_DOCUMENT_PREDICATE = "is_active = true"
ACTIVE_DOCUMENT_INDEX = "uq_documents_one_active"


class Document(Base):
    __tablename__ = "documents"
    __table_args__ = (
        CheckConstraint(
            "owner_kind IN ('PERSON', 'COMPANY', 'APPLICATION')",
            name="ck_documents_owner_kind",
        ),
        CheckConstraint(
            "status IN ('PENDING', 'APPROVED', 'REJECTED', 'EXPIRED', 'SUPERSEDED')",
            name="ck_documents_status",
        ),
        CheckConstraint(
            "superseded_by_id IS NULL OR superseded_by_id <> id",
            name="ck_documents_not_self_superseded",
        ),
        CheckConstraint("size_bytes IS NULL OR size_bytes >= 0", name="ck_documents_size_nonneg"),
        Index(
            ACTIVE_DOCUMENT_INDEX,
            "tenant_id",
            "owner_kind",
            "owner_id",
            "doc_type",
            unique=True,
            postgresql_where=text(ACTIVE_DOCUMENT_PREDICATE),
            sqlite_where=text(ACTIVE_DOCUMENT_PREDICATE),
        ),
        Index("ix_documents_owner_type", "tenant_id", "owner_kind", "owner_id", "doc_type"),
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    tenant_id = Column(String(64), nullable=False, index=True)
    owner_kind = Column(String(20), nullable=False)
    owner_id = Column(UUID(as_uuid=True), nullable=False)
    doc_type = Column(String(50), nullable=False)
    category = Column(String(20), nullable=False, default="OTHER")
    file_name = Column(String(255), nullable=False)
    storage_path = Column(String(1024), nullable=False)
    content_type = Column(String(100), nullable=True)
    size_bytes = Column(BigInteger, nullable=True)
    checksum = Column(String(128), nullable=True)
    is_active = Column(Boolean, nullable=False, default=False)
    valid_from = Column(DateTime(timezone=True), nullable=False, default=utcnow, server_default=func.now())
    valid_to = Column(DateTime(timezone=True), nullable=True)
    superseded_by_id = Column(
        UUID(as_uuid=True),
        ForeignKey("documents.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )
    status = Column(String(20), nullable=False, default="PENDING")
    replaced_at = Column(DateTime(timezone=True), nullable=True)
    replacement_reason = Column(String(20), nullable=True)
    rejection_reason = Column(Text, nullable=True)
    reviewed_at = Column(DateTime(timezone=True), nullable=True)
    reviewed_by = Column(String(255), nullable=True)
    created_by = Column(String(255), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow, server_default=func.now())
    lock_version = Column(Integer, nullable=False, default=1)

    __mapper_args__ = {"version_id_col": lock_version}

    def __repr__(self) -> str:
        return f"<Document {self.doc_type} id={self.id} active={self.is_active}>"
