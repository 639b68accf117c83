import pytest
from fastapi import HTTPException
from sqlalchemy import text
from sqlalchemy.exc import IntegrityError, OperationalError
from sqlalchemy.orm.exc import StaleDataError

from origination.core.errors import engine_http_error, engine_status_code
from origination.services.errors import (
    ConcurrentModification,
    ConstraintViolation,
    ImmutableRecord,
    IncompleteProfile,
    InvalidRecordType,
    InvalidTransition,
    NotFound,
    RecordNotCurrent,
    StorageUnavailable,
)
from origination.services.transactions import read_session, run_in_transaction, translate_storage_error


@pytest.mark.parametrize(
    "exc, expected",
    [
        (NotFound("application", id="x"), 404),
        (IncompleteProfile(["address"]), 422),
        (InvalidTransition("DRAFT", "APPROVED"), 409),
        (RecordNotCurrent("superseded"), 409),
        (ConcurrentModification(), 409),
        (ImmutableRecord("frozen"), 409),
        (InvalidRecordType("bad type"), 400),
        (StorageUnavailable("records.get_current"), 503),
    ],
)
def test_engine_status_codes(exc, expected):
    assert engine_status_code(exc) == expected
    assert engine_http_error(exc).status_code == expected


def test_concurrent_error_hides_retry_details():
    http_exc = engine_http_error(ConcurrentModification(operation="documents.activate", cause="stale_version"))
    assert isinstance(http_exc, HTTPException)
    assert http_exc.detail["code"] == "concurrent_modification"
    assert http_exc.detail["details"] == {}


def test_incomplete_profile_lists_missing_slots():
    http_exc = engine_http_error(IncompleteProfile(["employment", "references"]))
    assert http_exc.detail["code"] == "incomplete_profile"
    assert http_exc.detail["details"] == {"missing": ["employment", "references"]}


def _integrity(message: str) -> IntegrityError:
    return IntegrityError("INSERT INTO documents", {}, Exception(message))


def test_unique_race_becomes_concurrent_modification():
    exc = _integrity('duplicate key value violates unique constraint "uq_documents_one_active"')
    error = translate_storage_error(exc, operation="documents.activate")
    assert isinstance(error, ConcurrentModification)
    assert error.details["cause"] == "unique_violation"


def test_sqlite_unique_race_is_recognised():
    exc = _integrity("UNIQUE constraint failed: data_verifications.tenant_id, data_verifications.owner_kind")
    assert isinstance(translate_storage_error(exc, operation="ledger.record"), ConcurrentModification)


def test_other_integrity_errors_are_constraint_violations():
    exc = _integrity('new row violates check constraint "ck_documents_status"')
    error = translate_storage_error(exc, operation="documents.activate")
    assert isinstance(error, ConstraintViolation)
    assert not isinstance(error, ConcurrentModification)


def test_stale_version_and_locks_are_retryable():
    assert translate_storage_error(StaleDataError("gone"), operation="op").retryable is True
    locked = OperationalError("UPDATE", {}, Exception("database is locked"))
    assert translate_storage_error(locked, operation="op").details["cause"] == "lock_conflict"


def test_other_storage_failures_become_storage_unavailable():
    broken = OperationalError("SELECT", {}, Exception("canceling statement due to statement timeout"))
    error = translate_storage_error(broken, operation="documents.get_active")
    assert isinstance(error, StorageUnavailable)
    assert error.retryable is False
    assert error.details == {"operation": "documents.get_active"}
    assert engine_http_error(error).status_code == 503


@pytest.mark.asyncio
async def test_read_session_translates_storage_failures(sessions):
    with pytest.raises(StorageUnavailable):
        async with read_session(sessions, name="widgets") as db:
            await db.execute(text("SELECT * FROM widgets"))


@pytest.mark.asyncio
async def test_run_in_transaction_translates_storage_failures(sessions):
    async def broken(db):
        await db.execute(text("UPDATE widgets SET name = 1"))

    with pytest.raises(StorageUnavailable):
        await run_in_transaction(sessions, broken, name="broken", max_attempts=3)


@pytest.mark.asyncio
async def test_run_in_transaction_retries_lost_races(sessions):
    calls = []

    async def flaky(db):
        calls.append(1)
        if len(calls) < 3:
            raise ConcurrentModification(operation="flaky")
        return "done"

    assert await run_in_transaction(sessions, flaky, name="flaky", max_attempts=5) == "done"
    assert len(calls) == 3


@pytest.mark.asyncio
async def test_run_in_transaction_gives_up(sessions):
    async def always_loses(db):
        raise ConcurrentModification(operation="always")

    with pytest.raises(ConcurrentModification):
        await run_in_transaction(sessions, always_loses, name="always", max_attempts=2)


@pytest.mark.asyncio
async def test_run_in_transaction_does_not_retry_domain_errors(sessions):
    calls = []

    async def refuses(db):
        calls.append(1)
        raise InvalidTransition("DRAFT", "ACTIVE")

    with pytest.raises(InvalidTransition):
        await run_in_transaction(sessions, refuses, name="refuses", max_attempts=5)
    assert len(calls) == 1
