from __future__ import annotations

from typing import Any, Iterable


class EngineError(Exception):
    """Base for every error the engine surfaces to callers.

    Storage-layer exceptions never escape a service call; they are translated
    into one of the subclasses below at the transaction boundary.
    """

    code = "engine_error"
    retryable = False

    def __init__(self, message: str, *, details: dict[str, Any] | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def __str__(self) -> str:
        return self.message

    def as_detail(self) -> dict[str, Any]:
        return {"code": self.code, "message": self.message, "details": self.details}


class NotFound(EngineError):
    code = "not_found"

    def __init__(self, resource: str, **key: Any) -> None:
        super().__init__(f"{resource} not found", details={"resource": resource, **key})
        self.resource = resource


class ConcurrentModification(EngineError):
    code = "concurrent_modification"
    retryable = True

    def __init__(self, message: str = "Concurrent update detected, please retry", **details: Any) -> None:
        super().__init__(message, details=details)


class InvalidTransition(EngineError):
    code = "invalid_transition"

    def __init__(self, from_status: str | None, to_status: str, *, allowed: Iterable[str] = ()) -> None:
        super().__init__(
            f"Transition {from_status} -> {to_status} is not allowed",
            details={"from_status": from_status, "to_status": to_status, "allowed": sorted(allowed)},
        )
        self.from_status = from_status
        self.to_status = to_status


class IncompleteProfile(EngineError):
    code = "incomplete_profile"

    def __init__(self, missing: Iterable[str]) -> None:
        self.missing = list(missing)
        super().__init__(
            f"Profile is incomplete, missing: {', '.join(self.missing)}",
            details={"missing": self.missing},
        )


class ConstraintViolation(EngineError):
    code = "constraint_violation"


class InvalidRecordType(EngineError):
    code = "invalid_record_type"


class InvalidSupersession(EngineError):
    code = "invalid_supersession"


class InvalidVerification(EngineError):
    code = "invalid_verification"


class ImmutableRecord(ConstraintViolation):
    code = "immutable_record"


class RecordNotCurrent(EngineError):
    code = "record_not_current"


class StorageUnavailable(EngineError):
    """The store failed for a reason other than a constraint or a lost race."""

    code = "storage_unavailable"

    def __init__(self, operation: str) -> None:
        super().__init__("The data store could not complete the request", details={"operation": operation})
