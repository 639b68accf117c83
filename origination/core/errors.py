from __future__ import annotations

import logging
from http import HTTPStatus
from typing import Any

from fastapi import HTTPException, Request, status
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from origination.services.errors import (
    ConcurrentModification,
    ConstraintViolation,
    EngineError,
    IncompleteProfile,
    InvalidTransition,
    NotFound,
    RecordNotCurrent,
    StorageUnavailable,
)

logger = logging.getLogger(__name__)

CONCURRENT_UPDATE_MESSAGE = "The record was updated by another request. Please retry."


def _default_code(status_code: int) -> str:
    mapping = {
        400: "bad_request",
        404: "not_found",
        409: "conflict",
        422: "unprocessable_entity",
    }
    return mapping.get(status_code, "http_error")


def _default_message(status_code: int) -> str:
    try:
        return HTTPStatus(status_code).phrase
    except ValueError:
        return "Request failed"


def _normalize_details(details: Any) -> dict:
    if details is None:
        return {}
    if isinstance(details, dict):
        return details
    if isinstance(details, list):
        return {"errors": details}
    if isinstance(details, str):
        return {"detail": details}
    return {"detail": str(details)}


def _build_response(
    status_code: int,
    code: str,
    message: str,
    details: Any | None = None,
) -> JSONResponse:
    payload = {
        "code": code,
        "message": message,
        "data": None,
        "details": _normalize_details(details),
    }
    return JSONResponse(status_code=status_code, content=jsonable_encoder(payload))


def engine_status_code(exc: EngineError) -> int:
    if isinstance(exc, StorageUnavailable):
        return status.HTTP_503_SERVICE_UNAVAILABLE
    if isinstance(exc, NotFound):
        return status.HTTP_404_NOT_FOUND
    if isinstance(exc, IncompleteProfile):
        return status.HTTP_422_UNPROCESSABLE_ENTITY
    if isinstance(exc, (ConcurrentModification, InvalidTransition, ConstraintViolation, RecordNotCurrent)):
        return status.HTTP_409_CONFLICT
    return status.HTTP_400_BAD_REQUEST


def engine_http_error(exc: EngineError) -> HTTPException:
    """Convert an engine error into the HTTPException routers raise."""
    if isinstance(exc, ConcurrentModification):
        # Retry details are internal; the client only needs to retry.
        return HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail={"code": exc.code, "message": CONCURRENT_UPDATE_MESSAGE, "details": {}},
        )
    if isinstance(exc, ConstraintViolation):
        return HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail={"code": exc.code, "message": exc.message, "details": {}},
        )
    return HTTPException(status_code=engine_status_code(exc), detail=exc.as_detail())


def _parse_http_exception_detail(detail: Any, status_code: int) -> tuple[str, str, dict]:
    code = _default_code(status_code)
    message = _default_message(status_code)

    if isinstance(detail, dict):
        code = detail.get("code") or code
        message = detail.get("message") or detail.get("detail") or message
        if "details" in detail:
            details = _normalize_details(detail.get("details"))
        else:
            remainder = {k: v for k, v in detail.items() if k not in {"code", "message", "detail"}}
            details = remainder or {"detail": detail.get("detail") or message}
        return code, message, details

    if isinstance(detail, list):
        return code, message, {"errors": detail}

    if isinstance(detail, str):
        return code, detail, {"detail": detail}

    return code, message, {"detail": str(detail)}


async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    code, message, details = _parse_http_exception_detail(exc.detail, exc.status_code)
    return _build_response(exc.status_code, code, message, details)


async def engine_exception_handler(request: Request, exc: EngineError) -> JSONResponse:
    http_exc = engine_http_error(exc)
    return await http_exception_handler(request, http_exc)


async def validation_exception_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    errors = exc.errors()
    message = "Validation failed"
    if errors:
        first = errors[0] or {}
        loc = first.get("loc") or []
        msg = first.get("msg") or "Validation failed"
        # Drop the request section (body/query/path) from the location
        loc_parts = [str(part) for part in loc if part not in {"body", "query", "path", "header"}]
        if loc_parts:
            message = f"{'.'.join(loc_parts)}: {msg}"
        else:
            message = str(msg)
    return _build_response(
        status_code=422,
        code="validation_error",
        message=message,
        details={"errors": errors},
    )


async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return _build_response(
        status_code=500,
        code="internal_server_error",
        message="Internal server error",
        details={},
    )


def register_exception_handlers(app) -> None:
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(EngineError, engine_exception_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)
