from uuid import uuid4

import pytest
from fastapi.testclient import TestClient

from conftest import (
    RecordingDispatcher,
    address_payload,
    bank_account_payload,
    employment_payload,
    identification_payload,
    reference_payload,
)
from origination.api import deps
from origination.core.settings import settings
from origination.main import app

STAFF_HEADERS = {"X-Actor-Id": "staff-9", "X-Actor-Kind": "STAFF"}


@pytest.fixture
def api_dispatcher() -> RecordingDispatcher:
    return RecordingDispatcher()


@pytest.fixture
def client(sessions, api_dispatcher, monkeypatch):
    monkeypatch.setattr(settings, "tenancy_mode", "single")
    monkeypatch.setattr(settings, "default_tenant_id", "default")
    app.dependency_overrides[deps.get_sessions] = lambda: sessions
    app.dependency_overrides[deps.get_status_dispatcher] = lambda: api_dispatcher
    yield TestClient(app)
    app.dependency_overrides.clear()


def _put(client, owner_id, kind, record_type, payload, **extra):
    body = {
        "owner_kind": "PERSON",
        "owner_id": str(owner_id),
        "record_kind": kind,
        "record_type": record_type,
        "payload": payload,
        **extra,
    }
    return client.put("/api/v1/records", json=body, headers=STAFF_HEADERS)


def _seed_profile(client, owner_id) -> None:
    for kind, record_type, payload in (
        ("IDENTIFICATION", "INE", identification_payload()),
        ("ADDRESS", "HOME", address_payload()),
        ("EMPLOYMENT", "PRIMARY", employment_payload()),
        ("BANK_ACCOUNT", "PRIMARY", bank_account_payload()),
        ("REFERENCE", "PERSONAL", reference_payload()),
    ):
        assert _put(client, owner_id, kind, record_type, payload).status_code == 201


def test_record_versioning_round(client):
    owner_id = uuid4()
    first = _put(client, owner_id, "ADDRESS", "HOME", address_payload("Calle 1"))
    assert first.status_code == 201
    second = _put(client, owner_id, "ADDRESS", "HOME", address_payload("Calle 2"), replacement_reason="MOVED")
    assert second.status_code == 201
    assert second.json()["previous_version_id"] == first.json()["id"]

    params = {"owner_kind": "PERSON", "owner_id": str(owner_id), "record_kind": "ADDRESS", "record_type": "HOME"}
    current = client.get("/api/v1/records/current", params=params)
    assert current.status_code == 200
    assert current.json()["id"] == second.json()["id"]
    assert current.json()["tenant_id"] == "default"

    history = client.get("/api/v1/records/history", params=params).json()
    assert history["total"] == 2
    retired = next(item for item in history["items"] if item["id"] == first.json()["id"])
    assert retired["replacement_reason"] == "MOVED"
    assert retired["is_current"] is False

    stale = client.post(f"/api/v1/records/{first.json()['id']}/verify", json={"method": "MANUAL"}, headers=STAFF_HEADERS)
    assert stale.status_code == 409
    assert stale.json()["code"] == "record_not_current"

    verified = client.post(
        f"/api/v1/records/{second.json()['id']}/verify", json={"method": "MANUAL"}, headers=STAFF_HEADERS
    )
    assert verified.status_code == 200
    assert verified.json()["status"] == "VERIFIED"
    assert verified.json()["verified_by"] == "staff-9"


def test_invalid_payload_is_reported(client):
    response = _put(client, uuid4(), "BANK_ACCOUNT", "PRIMARY", bank_account_payload(clabe="12"))
    assert response.status_code == 400
    body = response.json()
    assert body["code"] == "invalid_record_type"
    assert body["data"] is None


def test_missing_current_is_404(client):
    params = {"owner_kind": "PERSON", "owner_id": str(uuid4()), "record_kind": "ADDRESS", "record_type": "HOME"}
    response = client.get("/api/v1/records/current", params=params)
    assert response.status_code == 404
    assert response.json()["code"] == "not_found"


def test_document_activation_flow(client):
    owner_id = str(uuid4())
    body = {
        "owner_kind": "PERSON",
        "owner_id": owner_id,
        "doc_type": "INE_FRONT",
        "file_name": "front.jpg",
        "storage_path": "uploads/front.jpg",
    }
    d1 = client.post("/api/v1/documents/activate", json=body, headers=STAFF_HEADERS)
    assert d1.status_code == 201
    d2 = client.post("/api/v1/documents/activate", json={**body, "file_name": "front-2.jpg"}, headers=STAFF_HEADERS)
    assert d2.status_code == 201

    params = {"owner_kind": "PERSON", "owner_id": owner_id, "doc_type": "INE_FRONT"}
    active = client.get("/api/v1/documents/active", params=params).json()
    assert active["id"] == d2.json()["id"]

    chain = client.get(f"/api/v1/documents/{d2.json()['id']}/chain").json()
    assert [item["id"] for item in chain["items"]] == [d1.json()["id"], d2.json()["id"]]

    rejected = client.post(
        f"/api/v1/documents/{d1.json()['id']}/reject", json={"reason": "old"}, headers=STAFF_HEADERS
    )
    assert rejected.status_code == 409


def test_application_submission_flow(client, api_dispatcher):
    owner_id = uuid4()
    created = client.post(
        "/api/v1/applications",
        json={
            "owner_kind": "PERSON",
            "owner_id": str(owner_id),
            "requested_amount": "25000.00",
            "requested_term_months": 12,
        },
        headers={"X-Actor-Id": "applicant-7"},
    )
    assert created.status_code == 201
    application_id = created.json()["id"]
    assert created.json()["status"] == "DRAFT"

    completeness = client.get(f"/api/v1/applications/{application_id}/completeness").json()
    assert completeness["complete"] is False
    assert "identification" in completeness["missing"]

    blocked = client.post(f"/api/v1/applications/{application_id}/transitions", json={"to_status": "SUBMITTED"})
    assert blocked.status_code == 422
    assert blocked.json()["code"] == "incomplete_profile"

    _seed_profile(client, owner_id)
    submitted = client.post(
        f"/api/v1/applications/{application_id}/transitions",
        json={"to_status": "SUBMITTED", "notes": "ready"},
        headers={"X-Actor-Id": "applicant-7"},
    )
    assert submitted.status_code == 200
    assert submitted.json()["snapshot_references"]["address"]

    invalid = client.post(
        f"/api/v1/applications/{application_id}/transitions",
        json={"to_status": "DISBURSED"},
        headers=STAFF_HEADERS,
    )
    assert invalid.status_code == 409
    assert invalid.json()["code"] == "invalid_transition"

    history = client.get(f"/api/v1/applications/{application_id}/history").json()
    assert [item["to_status"] for item in history["items"]] == ["DRAFT", "SUBMITTED"]
    assert history["items"][1]["changed_by_kind"] == "APPLICANT"
    assert [event.to_status for event in api_dispatcher.events] == ["SUBMITTED"]


def test_verification_endpoints(client):
    owner_id = str(uuid4())
    base = {"owner_kind": "PERSON", "owner_id": owner_id, "field_name": "rfc", "value": "GOMA800101AB1"}
    assert client.post("/api/v1/verifications", json={**base, "method": "KYC_RFC_SAT", "outcome": "VERIFIED"}).status_code == 201

    refused = client.post("/api/v1/verifications", json={**base, "method": "MANUAL", "outcome": "REJECTED"})
    assert refused.status_code == 400
    assert refused.json()["code"] == "invalid_verification"

    history = client.get(
        "/api/v1/verifications/history", params={"owner_kind": "PERSON", "owner_id": owner_id, "field_name": "rfc"}
    ).json()
    assert history["total"] == 1
    verified = client.get("/api/v1/verifications/verified", params={"owner_kind": "PERSON", "owner_id": owner_id})
    assert verified.json() == {"rfc": "GOMA800101AB1"}


def test_unknown_actor_kind_is_rejected(client):
    response = _put(client, uuid4(), "ADDRESS", "HOME", address_payload())
    assert response.status_code == 201
    bad = client.put(
        "/api/v1/records",
        json={
            "owner_kind": "PERSON",
            "owner_id": str(uuid4()),
            "record_kind": "ADDRESS",
            "record_type": "HOME",
            "payload": address_payload(),
        },
        headers={"X-Actor-Id": "x", "X-Actor-Kind": "ROBOT"},
    )
    assert bad.status_code == 400
    assert bad.json()["code"] == "invalid_actor"


def test_request_id_is_echoed(client):
    response = client.get("/api/v1/health/live", headers={"X-Request-ID": "req-123"})
    assert response.headers["x-request-id"] == "req-123"
