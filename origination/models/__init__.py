from origination.models.application import Application
from origination.models.application_status_history import ApplicationStatusHistory
from origination.models.audit_log import AuditLog
from origination.models.data_verification import DataVerification
from origination.models.document import Document
from origination.models.versioned_record import VersionedRecord

from origination.db.guards import install_write_guards  # noqa: E402

install_write_guards()

__all__ = [
    "Application",
    "ApplicationStatusHistory",
    "AuditLog",
    "DataVerification",
    "Document",
    "VersionedRecord",
]
