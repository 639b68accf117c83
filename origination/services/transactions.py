from __future__ import annotations

import asyncio
import logging
import random
from contextlib import asynccontextmanager
from typing import AsyncIterator, Awaitable, Callable, TypeVar

from sqlalchemy.exc import DBAPIError, IntegrityError, OperationalError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlalchemy.orm.exc import StaleDataError

from origination.core.settings import settings
from origination.services.errors import (
    ConcurrentModification,
    ConstraintViolation,
    EngineError,
    StorageUnavailable,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Indexes whose violation means another writer won the race for the same key.
RACE_INDEXES = frozenset(
    {
        "uq_versioned_records_one_current",
        "uq_versioned_records_previous_version",
        "uq_documents_one_active",
        "uq_data_verifications_field_sequence",
        "uq_application_status_history_seq",
    }
)

# Postgres SQLSTATEs for serialization failure, deadlock and lock_not_available.
_LOCK_SQLSTATES = frozenset({"40001", "40P01", "55P03"})
_SQLITE_LOCK_MESSAGES = ("database is locked", "database table is locked")
_SQLITE_RACE_COLUMNS = (
    "versioned_records.tenant_id, versioned_records.owner_kind",
    "versioned_records.previous_version_id",
    "documents.tenant_id, documents.owner_kind",
    "data_verifications.tenant_id, data_verifications.owner_kind",
    "application_status_history.application_id, application_status_history.sequence",
)


def _sqlstate(exc: DBAPIError) -> str | None:
    orig = getattr(exc, "orig", None)
    return getattr(orig, "sqlstate", None) or getattr(orig, "pgcode", None)


def _is_race_violation(exc: IntegrityError) -> bool:
    message = str(getattr(exc, "orig", exc))
    if any(name in message for name in RACE_INDEXES):
        return True
    return any(columns in message for columns in _SQLITE_RACE_COLUMNS)


def _is_lock_failure(exc: DBAPIError) -> bool:
    if _sqlstate(exc) in _LOCK_SQLSTATES:
        return True
    message = str(getattr(exc, "orig", exc)).lower()
    return any(fragment in message for fragment in _SQLITE_LOCK_MESSAGES)


def translate_storage_error(exc: Exception, *, operation: str) -> EngineError:
    """Map a SQLAlchemy/DBAPI failure onto the engine taxonomy."""
    if isinstance(exc, StaleDataError):
        return ConcurrentModification(operation=operation, cause="stale_version")
    if isinstance(exc, IntegrityError):
        if _is_race_violation(exc):
            logger.error(
                "Uniqueness invariant rejected a write during %s",
                operation,
                extra={"operation": operation, "error": str(exc.orig)},
            )
            return ConcurrentModification(operation=operation, cause="unique_violation")
        logger.error(
            "Constraint violation during %s",
            operation,
            extra={"operation": operation, "error": str(exc.orig)},
        )
        return ConstraintViolation(
            "Storage rejected the write",
            details={"operation": operation, "error": str(exc.orig)},
        )
    if isinstance(exc, (OperationalError, DBAPIError)) and _is_lock_failure(exc):
        return ConcurrentModification(operation=operation, cause="lock_conflict")
    logger.error(
        "Storage failure during %s",
        operation,
        extra={"operation": operation, "error": str(getattr(exc, "orig", exc))},
    )
    return StorageUnavailable(operation)


def _backoff_delay(attempt: int) -> float:
    base = settings.write_retry_backoff_seconds
    if base <= 0:
        return 0.0
    delay = min(base * (2 ** (attempt - 1)), 1.0)
    return delay + random.uniform(0, base)


async def run_in_transaction(
    session_factory: async_sessionmaker[AsyncSession],
    operation: Callable[[AsyncSession], Awaitable[T]],
    *,
    name: str,
    max_attempts: int | None = None,
) -> T:
    """Run ``operation`` in a fresh session/transaction, retrying lost races.

    Only ``ConcurrentModification`` is retried. Every other error propagates on
    the first attempt. ``max_attempts=1`` disables retries.
    """
    attempts = max_attempts if max_attempts is not None else settings.write_retry_attempts
    attempts = max(1, attempts)
    attempt = 0
    while True:
        attempt += 1
        try:
            async with session_factory() as db:
                async with db.begin():
                    try:
                        result = await operation(db)
                        await db.flush()
                    except (StaleDataError, DBAPIError) as exc:
                        raise translate_storage_error(exc, operation=name) from exc
                return result
        except (StaleDataError, DBAPIError) as exc:
            # Raised by the commit itself.
            error: EngineError = translate_storage_error(exc, operation=name)
            cause: BaseException | None = exc
        except ConcurrentModification as exc:
            error = exc
            cause = exc.__cause__
        if attempt >= attempts:
            logger.warning(
                "Giving up on %s after %s attempts",
                name,
                attempt,
                extra={"operation": name, "attempts": attempt},
            )
            raise error from cause
        delay = _backoff_delay(attempt)
        logger.warning(
            "Concurrent modification in %s, retrying (attempt %s/%s)",
            name,
            attempt,
            attempts,
            extra={"operation": name, "attempt": attempt, "delay": round(delay, 4)},
        )
        await asyncio.sleep(delay)


@asynccontextmanager
async def read_session(
    session_factory: async_sessionmaker[AsyncSession],
    *,
    name: str,
) -> AsyncIterator[AsyncSession]:
    """Session for read-only calls; storage failures surface as engine errors."""
    async with session_factory() as db:
        try:
            yield db
        except (StaleDataError, DBAPIError) as exc:
            raise translate_storage_error(exc, operation=name) from exc
