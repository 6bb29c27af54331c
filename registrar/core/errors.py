# registrar/core/errors.py - Domain errors raised by the enrollment and tuition services
from typing import Any, Dict, Optional


class RegistrarError(Exception):
    """Base class for every failure reported to callers.

    Carries an HTTP status and a stable machine-readable code so the API
    layer can render it without knowing about individual error types.
    """

    status_code: int = 400
    code: str = "REGISTRAR_ERROR"

    def __init__(self, message: str, **context: Any):
        super().__init__(message)
        self.message = message
        self.context: Dict[str, Any] = {k: v for k, v in context.items() if v is not None}

    def to_dict(self) -> Dict[str, Any]:
        return {
            "detail": self.message,
            "code": self.code,
            "context": {k: str(v) for k, v in self.context.items()},
        }


class NotFoundError(RegistrarError):
    """Student, subject, offering, enrollment or invoice is absent."""

    status_code = 404
    code = "NOT_FOUND"

    def __init__(self, message: str = "Resource not found", **context: Any):
        super().__init__(message, **context)


class DuplicateEnrollmentError(RegistrarError):
    status_code = 409
    code = "DUPLICATE_ENROLLMENT"


class CapacityExceededError(RegistrarError):
    status_code = 409
    code = "CAPACITY_EXCEEDED"


class OfferingClosedError(RegistrarError):
    status_code = 409
    code = "OFFERING_CLOSED"


class ScheduleConflictError(RegistrarError):
    status_code = 409
    code = "SCHEDULE_CONFLICT"


class PrerequisiteNotMetError(RegistrarError):
    status_code = 422
    code = "PREREQUISITE_NOT_MET"


class UnitLoadInvalidError(RegistrarError):
    status_code = 422
    code = "UNIT_LOAD_INVALID"


class InvalidAmountError(RegistrarError):
    status_code = 400
    code = "INVALID_AMOUNT"


class ExceedsBalanceError(RegistrarError):
    status_code = 400
    code = "EXCEEDS_BALANCE"


class InvalidStateTransitionError(RegistrarError):
    """Raised e.g. when approving an enrollment that was already rejected."""

    status_code = 409
    code = "INVALID_STATE_TRANSITION"

    def __init__(self, message: str, current: Optional[str] = None, **context: Any):
        super().__init__(message, current_status=current, **context)


__all__ = [
    "RegistrarError",
    "NotFoundError",
    "DuplicateEnrollmentError",
    "CapacityExceededError",
    "OfferingClosedError",
    "ScheduleConflictError",
    "PrerequisiteNotMetError",
    "UnitLoadInvalidError",
    "InvalidAmountError",
    "ExceedsBalanceError",
    "InvalidStateTransitionError",
]
