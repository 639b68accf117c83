"""Global test fixtures and shared test infrastructure.

Provides:
- Environment variable defaults (must be set before any origination import)
- A file-backed SQLite engine per test with the full schema created
- Engine components wired to that engine
- Profile factories (seed_person_profile, seed_company_profile, make_upload)
- RecordingDispatcher for status change events
"""

from __future__ import annotations

import os

# Environment defaults: must be set before importing origination, which builds
# Settings and the module-level engine on import.
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///./origination-test.db")
os.environ.setdefault("REDIS_URL", "redis://localhost:6379/0")
os.environ.setdefault("DEFAULT_TENANT_ID", "default")
os.environ.setdefault("WRITE_RETRY_BACKOFF_SECONDS", "0.01")

from decimal import Decimal
from typing import Any
from uuid import UUID, uuid4

import pytest

import origination.models  # noqa: F401
from origination.core.tenant import TenantContext
from origination.db.base import Base
from origination.db.session import build_engine, build_session_factory
from origination.schemas.common import ActorKind, ActorRef, OwnerRef
from origination.schemas.documents import DocumentUpload
from origination.schemas.versions import RecordKind
from origination.services.application_state import ApplicationStateMachine
from origination.services.document_registry import ActiveDocumentRegistry
from origination.services.notifications import StatusChangedEvent
from origination.services.snapshots import SnapshotCapturer
from origination.services.verification_ledger import VerificationLedger
from origination.services.version_chain import VersionChainStore


# ---------------------------------------------------------------------------
# Dispatchers
# ---------------------------------------------------------------------------


class RecordingDispatcher:
    """Keeps every dispatched event in memory."""

    def __init__(self) -> None:
        self.events: list[StatusChangedEvent] = []

    async def dispatch(self, event: StatusChangedEvent) -> None:
        self.events.append(event)


class FailingDispatcher:
    async def dispatch(self, event: StatusChangedEvent) -> None:
        raise RuntimeError("webhook endpoint unreachable")


# ---------------------------------------------------------------------------
# Factories
# ---------------------------------------------------------------------------


STAFF = ActorRef(id="staff-1", kind=ActorKind.STAFF)
APPLICANT = ActorRef(id="applicant-1", kind=ActorKind.APPLICANT)


def identification_payload(number: str = "GOMA800101HDFRRN09", **overrides: Any) -> dict[str, Any]:
    payload: dict[str, Any] = {"number": number, "full_name": "Ana Gomez"}
    payload.update(overrides)
    return payload


def address_payload(street: str = "Av. Reforma 222", **overrides: Any) -> dict[str, Any]:
    payload: dict[str, Any] = {
        "street": street,
        "city": "Ciudad de Mexico",
        "state": "CDMX",
        "postal_code": "06600",
    }
    payload.update(overrides)
    return payload


def employment_payload(**overrides: Any) -> dict[str, Any]:
    payload: dict[str, Any] = {
        "employer_name": "Acme SA de CV",
        "position": "Analyst",
        "monthly_income": "35000.00",
    }
    payload.update(overrides)
    return payload


def bank_account_payload(**overrides: Any) -> dict[str, Any]:
    payload: dict[str, Any] = {
        "bank_name": "Banco Ejemplo",
        "clabe": "012180001234567897",
        "holder_name": "Ana Gomez",
    }
    payload.update(overrides)
    return payload


def reference_payload(**overrides: Any) -> dict[str, Any]:
    payload: dict[str, Any] = {
        "full_name": "Luis Perez",
        "phone": "5512345678",
        "relationship": "friend",
    }
    payload.update(overrides)
    return payload


def make_upload(name: str = "ine-front.jpg", **overrides: Any) -> DocumentUpload:
    defaults: dict[str, Any] = dict(
        file_name=name,
        storage_path=f"uploads/{uuid4().hex}/{name}",
        content_type="image/jpeg",
        size_bytes=2048,
        checksum=uuid4().hex,
    )
    defaults.update(overrides)
    return DocumentUpload(**defaults)


async def seed_person_profile(
    store: VersionChainStore, ctx: TenantContext, owner: OwnerRef, *, skip: tuple[str, ...] = ()
) -> dict[str, Any]:
    """Store one current record for every slot a person needs to submit."""
    records = {}
    if "identification" not in skip:
        records["identification"] = await store.put_current_version(
            ctx, owner, RecordKind.IDENTIFICATION, "INE", identification_payload()
        )
    if "address" not in skip:
        records["address"] = await store.put_current_version(
            ctx, owner, RecordKind.ADDRESS, "HOME", address_payload()
        )
    if "employment" not in skip:
        records["employment"] = await store.put_current_version(
            ctx, owner, RecordKind.EMPLOYMENT, "PRIMARY", employment_payload()
        )
    if "bank_account" not in skip:
        records["bank_account"] = await store.put_current_version(
            ctx, owner, RecordKind.BANK_ACCOUNT, "PRIMARY", bank_account_payload()
        )
    if "references" not in skip:
        records["references"] = await store.put_current_version(
            ctx, owner, RecordKind.REFERENCE, "PERSONAL", reference_payload()
        )
    return records


async def seed_company_profile(store: VersionChainStore, ctx: TenantContext, owner: OwnerRef) -> dict[str, Any]:
    return {
        "identification": await store.put_current_version(
            ctx, owner, RecordKind.IDENTIFICATION, "RFC", identification_payload("ACM010101ABC")
        ),
        "address": await store.put_current_version(
            ctx, owner, RecordKind.ADDRESS, "FISCAL", address_payload("Insurgentes Sur 1000")
        ),
        "bank_account": await store.put_current_version(
            ctx, owner, RecordKind.BANK_ACCOUNT, "PRIMARY", bank_account_payload(holder_name="Acme SA de CV")
        ),
    }


async def create_draft(
    machine: ApplicationStateMachine,
    ctx: TenantContext,
    owner: OwnerRef,
    *,
    required_document_types: tuple[str, ...] = (),
):
    return await machine.create_application(
        ctx,
        owner,
        requested_amount=Decimal("50000.00"),
        requested_term_months=24,
        purpose="working capital",
        required_document_types=required_document_types,
        actor=APPLICANT,
    )


def ids(rows) -> list[UUID]:
    return [row.id for row in rows]


# ---------------------------------------------------------------------------
# Shared pytest fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
async def engine(tmp_path):
    engine = build_engine(f"sqlite+aiosqlite:///{tmp_path / 'origination.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def sessions(engine):
    return build_session_factory(engine)


@pytest.fixture
def tenant_ctx() -> TenantContext:
    return TenantContext.of("acme")


@pytest.fixture
def other_tenant_ctx() -> TenantContext:
    return TenantContext.of("globex")


@pytest.fixture
def person() -> OwnerRef:
    return OwnerRef.person(uuid4())


@pytest.fixture
def company() -> OwnerRef:
    return OwnerRef.company(uuid4())


@pytest.fixture
def dispatcher() -> RecordingDispatcher:
    return RecordingDispatcher()


@pytest.fixture
def version_store(sessions) -> VersionChainStore:
    return VersionChainStore(sessions, max_attempts=25)


@pytest.fixture
def document_registry(sessions) -> ActiveDocumentRegistry:
    return ActiveDocumentRegistry(sessions, max_attempts=25)


@pytest.fixture
def snapshot_capturer(sessions) -> SnapshotCapturer:
    return SnapshotCapturer(sessions)


@pytest.fixture
def state_machine(sessions, dispatcher) -> ApplicationStateMachine:
    return ApplicationStateMachine(sessions, dispatcher=dispatcher)


@pytest.fixture
def verification_ledger(sessions) -> VerificationLedger:
    return VerificationLedger(sessions, max_attempts=25)
