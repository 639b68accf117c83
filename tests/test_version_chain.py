import asyncio
import logging
from uuid import uuid4

import pytest
from sqlalchemy import func, select

from conftest import STAFF, address_payload, bank_account_payload, identification_payload, ids
from origination.core.logging import get_audit_logger
from origination.models.audit_log import AuditLog
from origination.models.versioned_record import VersionedRecord
from origination.schemas.common import OwnerRef
from origination.schemas.versions import RecordKind, RecordStatus, ReplacementReason
from origination.services.errors import (
    ConstraintViolation,
    InvalidRecordType,
    NotFound,
    RecordNotCurrent,
)
from origination.services.version_chain import walk_chain


async def _current_rows(sessions, owner, record_type="HOME") -> list[VersionedRecord]:
    async with sessions() as db:
        stmt = select(VersionedRecord).where(
            VersionedRecord.owner_id == owner.id,
            VersionedRecord.record_type == record_type,
            VersionedRecord.is_current.is_(True),
            VersionedRecord.deleted_at.is_(None),
        )
        return list((await db.execute(stmt)).scalars().all())


@pytest.mark.asyncio
async def test_first_version_starts_a_chain(version_store, tenant_ctx, person):
    record = await version_store.put_current_version(
        tenant_ctx, person, RecordKind.ADDRESS, "home", address_payload()
    )

    assert record.is_current is True
    assert record.previous_version_id is None
    assert record.record_type == "HOME"
    assert record.status == RecordStatus.PENDING.value
    assert record.payload["street"] == "Av. Reforma 222"

    current = await version_store.get_current(tenant_ctx, person, RecordKind.ADDRESS, "HOME")
    assert current.id == record.id


@pytest.mark.asyncio
async def test_new_version_retires_previous(version_store, tenant_ctx, person):
    first = await version_store.put_current_version(
        tenant_ctx, person, RecordKind.ADDRESS, "HOME", address_payload("Calle 1")
    )
    second = await version_store.put_current_version(
        tenant_ctx,
        person,
        RecordKind.ADDRESS,
        "HOME",
        address_payload("Calle 2"),
        reason=ReplacementReason.MOVED,
    )

    assert second.previous_version_id == first.id
    history = await version_store.get_history(tenant_ctx, person, RecordKind.ADDRESS, "HOME")
    assert ids(history) == [second.id, first.id]
    retired = history[1]
    assert retired.is_current is False
    assert retired.status == RecordStatus.SUPERSEDED.value
    assert retired.replacement_reason == ReplacementReason.MOVED.value
    assert retired.valid_until is not None
    assert retired.replaced_at is not None


@pytest.mark.asyncio
async def test_replacement_reason_defaults_to_corrected(version_store, tenant_ctx, person):
    await version_store.put_current_version(tenant_ctx, person, RecordKind.ADDRESS, "HOME", address_payload("A"))
    await version_store.put_current_version(tenant_ctx, person, RecordKind.ADDRESS, "HOME", address_payload("B"))

    history = await version_store.get_history(tenant_ctx, person, RecordKind.ADDRESS, "HOME")
    assert history[1].replacement_reason == ReplacementReason.CORRECTED.value


@pytest.mark.asyncio
async def test_chains_are_independent_per_type(version_store, tenant_ctx, person):
    home = await version_store.put_current_version(
        tenant_ctx, person, RecordKind.ADDRESS, "HOME", address_payload("Home st")
    )
    work = await version_store.put_current_version(
        tenant_ctx, person, RecordKind.ADDRESS, "WORK", address_payload("Work st")
    )

    assert work.previous_version_id is None
    current = await version_store.list_current(tenant_ctx, person, RecordKind.ADDRESS)
    assert {record.id for record in current} == {home.id, work.id}


@pytest.mark.asyncio
async def test_get_current_missing_raises_not_found(version_store, tenant_ctx, person):
    with pytest.raises(NotFound):
        await version_store.get_current(tenant_ctx, person, RecordKind.EMPLOYMENT, "PRIMARY")


@pytest.mark.asyncio
async def test_history_of_unknown_key_is_empty(version_store, tenant_ctx, person):
    assert await version_store.get_history(tenant_ctx, person, RecordKind.ADDRESS, "FISCAL") == []


@pytest.mark.asyncio
async def test_rejects_unknown_record_type(version_store, tenant_ctx, person):
    with pytest.raises(InvalidRecordType):
        await version_store.put_current_version(
            tenant_ctx, person, RecordKind.ADDRESS, "SUMMER_HOUSE", address_payload()
        )


@pytest.mark.asyncio
async def test_rejects_kind_not_held_by_owner(version_store, tenant_ctx, company):
    with pytest.raises(InvalidRecordType):
        await version_store.put_current_version(
            tenant_ctx,
            company,
            RecordKind.EMPLOYMENT,
            "PRIMARY",
            {"employer_name": "X", "monthly_income": "1"},
        )


@pytest.mark.asyncio
async def test_rejects_invalid_payload(version_store, tenant_ctx, person):
    with pytest.raises(InvalidRecordType) as exc_info:
        await version_store.put_current_version(
            tenant_ctx, person, RecordKind.BANK_ACCOUNT, "PRIMARY", bank_account_payload(clabe="123")
        )
    assert exc_info.value.details["errors"]


@pytest.mark.asyncio
async def test_rejects_unexpected_payload_fields(version_store, tenant_ctx, person):
    with pytest.raises(InvalidRecordType):
        await version_store.put_current_version(
            tenant_ctx, person, RecordKind.IDENTIFICATION, "INE", identification_payload(shoe_size=42)
        )


@pytest.mark.asyncio
async def test_tenants_are_isolated(version_store, tenant_ctx, other_tenant_ctx, person):
    await version_store.put_current_version(tenant_ctx, person, RecordKind.ADDRESS, "HOME", address_payload())

    with pytest.raises(NotFound):
        await version_store.get_current(other_tenant_ctx, person, RecordKind.ADDRESS, "HOME")
    own = await version_store.put_current_version(
        other_tenant_ctx, person, RecordKind.ADDRESS, "HOME", address_payload("Other tenant st")
    )
    assert own.previous_version_id is None


@pytest.mark.asyncio
async def test_mark_verified_updates_current(version_store, tenant_ctx, person):
    record = await version_store.put_current_version(
        tenant_ctx, person, RecordKind.IDENTIFICATION, "INE", identification_payload()
    )

    verified = await version_store.mark_verified(
        tenant_ctx,
        record.id,
        method="KYC_INE_OCR",
        actor=STAFF,
        verification_data={"ocr_score": 0.98},
    )

    assert verified.status == RecordStatus.VERIFIED.value
    assert verified.verified_by == "staff-1"
    assert verified.verification_method == "KYC_INE_OCR"
    assert verified.payload["verification_data"] == {"ocr_score": 0.98}


@pytest.mark.asyncio
async def test_review_of_superseded_version_is_refused(version_store, tenant_ctx, person):
    first = await version_store.put_current_version(
        tenant_ctx, person, RecordKind.ADDRESS, "HOME", address_payload("A")
    )
    await version_store.put_current_version(tenant_ctx, person, RecordKind.ADDRESS, "HOME", address_payload("B"))

    with pytest.raises(RecordNotCurrent):
        await version_store.mark_rejected(tenant_ctx, first.id, reason="blurry", actor=STAFF)


@pytest.mark.asyncio
async def test_mark_rejected_keeps_record_current(version_store, tenant_ctx, person):
    record = await version_store.put_current_version(
        tenant_ctx, person, RecordKind.ADDRESS, "HOME", address_payload()
    )

    rejected = await version_store.mark_rejected(tenant_ctx, record.id, reason="proof mismatch", actor=STAFF)

    assert rejected.status == RecordStatus.REJECTED.value
    assert rejected.rejection_reason == "proof mismatch"
    assert rejected.is_current is True


@pytest.mark.asyncio
async def test_soft_delete_then_new_version_continues_chain(version_store, tenant_ctx, person):
    first = await version_store.put_current_version(
        tenant_ctx, person, RecordKind.ADDRESS, "HOME", address_payload("A")
    )
    await version_store.soft_delete(tenant_ctx, first.id, actor=STAFF)

    with pytest.raises(NotFound):
        await version_store.get_current(tenant_ctx, person, RecordKind.ADDRESS, "HOME")
    assert await version_store.get_history(tenant_ctx, person, RecordKind.ADDRESS, "HOME") == []

    second = await version_store.put_current_version(
        tenant_ctx, person, RecordKind.ADDRESS, "HOME", address_payload("B")
    )
    assert second.previous_version_id == first.id
    full = await version_store.get_history(
        tenant_ctx, person, RecordKind.ADDRESS, "HOME", include_deleted=True
    )
    assert ids(full) == [second.id, first.id]


@pytest.mark.asyncio
async def test_writes_are_audited(version_store, sessions, tenant_ctx, person):
    first = await version_store.put_current_version(
        tenant_ctx, person, RecordKind.ADDRESS, "HOME", address_payload("A"), actor=STAFF
    )
    await version_store.put_current_version(
        tenant_ctx, person, RecordKind.ADDRESS, "HOME", address_payload("B"), actor=STAFF
    )

    async with sessions() as db:
        rows = (
            await db.execute(select(AuditLog).where(AuditLog.tenant_id == tenant_ctx.tenant_id))
        ).scalars().all()
    actions = sorted(row.action for row in rows)
    assert actions == ["versioned_record.created", "versioned_record.replaced"]
    replaced = next(row for row in rows if row.action == "versioned_record.replaced")
    assert replaced.old_value["id"] == str(first.id)
    assert replaced.actor_id == "staff-1"


@pytest.mark.asyncio
async def test_audit_entries_are_emitted_on_audit_logger(version_store, tenant_ctx, person):
    records: list[logging.LogRecord] = []

    class _Collector(logging.Handler):
        def emit(self, record: logging.LogRecord) -> None:
            records.append(record)

    audit_logger = get_audit_logger()
    handler = _Collector()
    audit_logger.addHandler(handler)
    previous_level = audit_logger.level
    audit_logger.setLevel(logging.INFO)
    try:
        record = await version_store.put_current_version(
            tenant_ctx, person, RecordKind.ADDRESS, "HOME", address_payload(), actor=STAFF
        )
    finally:
        audit_logger.removeHandler(handler)
        audit_logger.setLevel(previous_level)

    assert [entry.action for entry in records] == ["versioned_record.created"]
    assert records[0].resource_id == str(record.id)
    assert records[0].actor_kind == "STAFF"


@pytest.mark.asyncio
async def test_concurrent_writers_leave_exactly_one_current(version_store, sessions, tenant_ctx, person):
    await version_store.put_current_version(tenant_ctx, person, RecordKind.ADDRESS, "HOME", address_payload("seed"))

    await asyncio.gather(
        *(
            version_store.put_current_version(
                tenant_ctx, person, RecordKind.ADDRESS, "HOME", address_payload(f"Street {n}")
            )
            for n in range(5)
        )
    )

    current = await _current_rows(sessions, person)
    assert len(current) == 1
    history = await version_store.get_history(tenant_ctx, person, RecordKind.ADDRESS, "HOME")
    assert len(history) == 6
    assert history[0].id == current[0].id
    async with sessions() as db:
        total = (
            await db.execute(select(func.count()).select_from(VersionedRecord).where(VersionedRecord.owner_id == person.id))
        ).scalar_one()
    assert total == 6


def test_walk_chain_detects_cycles():
    a = VersionedRecord(id=uuid4())
    b = VersionedRecord(id=uuid4())
    a.previous_version_id = b.id
    b.previous_version_id = a.id

    with pytest.raises(ConstraintViolation):
        walk_chain(a, {a.id: a, b.id: b}, max_depth=10)


def test_walk_chain_detects_dangling_links():
    head = VersionedRecord(id=uuid4(), previous_version_id=uuid4())

    with pytest.raises(ConstraintViolation):
        walk_chain(head, {head.id: head}, max_depth=10)


def test_walk_chain_enforces_max_depth():
    rows = [VersionedRecord(id=uuid4()) for _ in range(4)]
    for newer, older in zip(rows, rows[1:]):
        newer.previous_version_id = older.id

    assert len(walk_chain(rows[0], {row.id: row for row in rows}, max_depth=4)) == 4
    with pytest.raises(ConstraintViolation):
        walk_chain(rows[0], {row.id: row for row in rows}, max_depth=3)


@pytest.mark.asyncio
async def test_application_owner_holds_references_only(version_store, tenant_ctx):
    application = OwnerRef.application(uuid4())
    record = await version_store.put_current_version(
        tenant_ctx,
        application,
        RecordKind.REFERENCE,
        "FAMILY",
        {"full_name": "Maria Lopez", "phone": "5599998888", "relationship": "sister"},
    )
    assert record.owner_kind == "APPLICATION"
    with pytest.raises(InvalidRecordType):
        await version_store.put_current_version(
            tenant_ctx, application, RecordKind.ADDRESS, "HOME", address_payload()
        )
