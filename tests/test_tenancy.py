from fastapi import Depends, FastAPI
from fastapi.testclient import TestClient
import pytest

from origination.api import deps
from origination.core.settings import settings
from origination.core.tenant import TenantContext, is_valid_tenant_id, normalize_tenant_id


@pytest.fixture(autouse=True)
def _base_env(monkeypatch):
    monkeypatch.setattr(settings, "default_tenant_id", "default")
    monkeypatch.setattr(settings, "allowed_tenant_hosts", [])
    yield


def _build_app() -> FastAPI:
    app = FastAPI()

    @app.get("/ctx")
    async def ctx_route(ctx: TenantContext = Depends(deps.get_tenant_context)):
        return {"tenant_id": ctx.tenant_id}

    return app


def test_single_mode_uses_default_tenant(monkeypatch):
    monkeypatch.setattr(settings, "tenancy_mode", "single")
    monkeypatch.setattr(settings, "default_tenant_id", "single-tenant")
    client = TestClient(_build_app())
    resp = client.get("/ctx", headers={"X-Tenant-ID": "ignored"})
    assert resp.status_code == 200
    assert resp.json()["tenant_id"] == "single-tenant"


def test_multi_mode_requires_header_or_subdomain(monkeypatch):
    monkeypatch.setattr(settings, "tenancy_mode", "multi")
    client = TestClient(_build_app())
    resp = client.get("/ctx")
    assert resp.status_code == 400
    assert "Tenant resolution failed" in resp.json()["detail"]


def test_multi_mode_accepts_header(monkeypatch):
    monkeypatch.setattr(settings, "tenancy_mode", "multi")
    client = TestClient(_build_app())
    resp = client.get("/ctx", headers={"X-Tenant-ID": "Tenant-123"})
    assert resp.status_code == 200
    assert resp.json()["tenant_id"] == "tenant-123"


def test_multi_mode_accepts_subdomain(monkeypatch):
    monkeypatch.setattr(settings, "tenancy_mode", "multi")
    client = TestClient(_build_app())
    resp = client.get("/ctx", headers={"host": "acme.example.com"})
    assert resp.status_code == 200
    assert resp.json()["tenant_id"] == "acme"


def test_multi_mode_rejects_malformed_tenant(monkeypatch):
    monkeypatch.setattr(settings, "tenancy_mode", "multi")
    client = TestClient(_build_app())
    resp = client.get("/ctx", headers={"X-Tenant-ID": "bad tenant!"})
    assert resp.status_code == 400
    assert resp.json()["detail"]["code"] == "invalid_tenant"


def test_subdomain_outside_allowed_hosts_is_ignored(monkeypatch):
    monkeypatch.setattr(settings, "tenancy_mode", "multi")
    monkeypatch.setattr(settings, "allowed_tenant_hosts", ["acme.example.com"])
    client = TestClient(_build_app())
    resp = client.get("/ctx", headers={"host": "globex.example.com"})
    assert resp.status_code == 400


@pytest.mark.parametrize("value", ["a", "x" * 65, "white space", "UPPER!"])
def test_invalid_tenant_ids(value):
    assert is_valid_tenant_id(value) is False
    with pytest.raises(ValueError):
        normalize_tenant_id(value)


def test_tenant_ids_are_normalized():
    assert normalize_tenant_id("  Acme_MX ") == "acme_mx"
    assert TenantContext.of("ACME").tenant_id == "acme"
