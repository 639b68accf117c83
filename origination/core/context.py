"""Log-correlation context. Never read by the engine's business logic."""

import contextvars
from contextlib import contextmanager
from typing import Iterator

_tenant_id: contextvars.ContextVar[str] = contextvars.ContextVar("tenant_id", default="-")
_request_id: contextvars.ContextVar[str] = contextvars.ContextVar("request_id", default="-")
_actor_id: contextvars.ContextVar[str] = contextvars.ContextVar("actor_id", default="-")


def set_tenant_id(tenant_id: str) -> None:
    _tenant_id.set(tenant_id)


def get_tenant_id() -> str:
    return _tenant_id.get()


def set_request_id(request_id: str) -> None:
    _request_id.set(request_id)


def get_request_id() -> str:
    return _request_id.get()


def set_actor_id(actor_id: str) -> None:
    _actor_id.set(actor_id)


def get_actor_id() -> str:
    return _actor_id.get()


@contextmanager
def request_scope(*, request_id: str, tenant_id: str | None = None) -> Iterator[None]:
    request_token = _request_id.set(request_id)
    tenant_token = _tenant_id.set(tenant_id) if tenant_id else None
    try:
        yield
    finally:
        _request_id.reset(request_token)
        if tenant_token is not None:
            _tenant_id.reset(tenant_token)
        _actor_id.set("-")
