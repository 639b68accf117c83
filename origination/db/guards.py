"""Flush-time guards for rows that must never be rewritten.

Installed once on the ``Session`` class so every session, including the ones
tests build against SQLite, enforces them.
"""

from __future__ import annotations

from sqlalchemy import event, inspect
from sqlalchemy.orm import Session

from origination.models.application import SNAPSHOT_COLUMNS, Application
from origination.models.application_status_history import ApplicationStatusHistory
from origination.models.audit_log import AuditLog
from origination.models.data_verification import DataVerification
from origination.models.document import Document
from origination.models.versioned_record import VersionedRecord
from origination.services.errors import ImmutableRecord

APPEND_ONLY_MODELS = (ApplicationStatusHistory, DataVerification, AuditLog)
NEVER_DELETED_MODELS = APPEND_ONLY_MODELS + (VersionedRecord, Document, Application)


def _committed_value(obj, attribute: str):
    history = inspect(obj).attrs[attribute].history
    if history.deleted:
        return history.deleted[0]
    if history.unchanged:
        return history.unchanged[0]
    return None


def _check_application(obj: Application) -> None:
    state = inspect(obj)
    if state.pending:
        return
    if _committed_value(obj, "status") in (None, "DRAFT"):
        return
    changed = [name for name in SNAPSHOT_COLUMNS if state.attrs[name].history.has_changes()]
    if changed:
        raise ImmutableRecord(
            "Snapshot is frozen once an application leaves DRAFT",
            details={"application_id": str(obj.id), "fields": changed},
        )


def _before_flush(session: Session, flush_context, instances) -> None:
    for obj in session.deleted:
        if isinstance(obj, NEVER_DELETED_MODELS):
            raise ImmutableRecord(
                f"{type(obj).__name__} rows cannot be deleted",
                details={"id": str(obj.id)},
            )
    for obj in session.dirty:
        if isinstance(obj, APPEND_ONLY_MODELS) and session.is_modified(obj, include_collections=False):
            raise ImmutableRecord(
                f"{type(obj).__name__} rows are append-only",
                details={"id": str(obj.id)},
            )
        if isinstance(obj, Application):
            _check_application(obj)


def install_write_guards() -> None:
    if not event.contains(Session, "before_flush", _before_flush):
        event.listen(Session, "before_flush", _before_flush)
