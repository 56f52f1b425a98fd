"""
Application error taxonomy.

Services raise these; the handlers registered in ``main.py`` turn them into
``{"success": false, "message": ..., "code": ...}`` responses with the
matching HTTP status.
"""

from typing import Any, Dict, Iterable, Optional

from fastapi import status


class AppError(Exception):
    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR
    default_code: str = "error"

    def __init__(self, message: str, code: Optional[str] = None, **extra: Any):
        super().__init__(message)
        self.message = message
        self.code = code or self.default_code
        self.extra = extra

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "success": False,
            "message": self.message,
            "code": self.code,
        }
        payload.update(self.extra)
        return payload


class AuthorizationError(AppError):
    status_code = status.HTTP_403_FORBIDDEN
    default_code = "forbidden"


class ValidationError(AppError):
    status_code = status.HTTP_400_BAD_REQUEST
    default_code = "validation_error"

    def __init__(self, message: str, errors: Optional[Dict[str, str]] = None, **extra: Any):
        super().__init__(message, errors=errors or {}, **extra)
        self.errors = errors or {}


class NotFoundError(AppError):
    status_code = status.HTTP_404_NOT_FOUND
    default_code = "not_found"


class InvalidStateError(AppError):
    status_code = status.HTTP_400_BAD_REQUEST
    default_code = "invalid_state"


class InvalidTransitionError(InvalidStateError):
    default_code = "invalid_transition"

    def __init__(self, from_status: Any, to_status: Any, allowed: Iterable[Any]):
        allowed_values = sorted(getattr(s, "value", s) for s in allowed)
        from_value = getattr(from_status, "value", from_status)
        to_value = getattr(to_status, "value", to_status)
        super().__init__(
            f"Cannot transition from {from_value} to {to_value}",
            current_status=from_value,
            allowed_statuses=allowed_values,
        )
        self.allowed_statuses = allowed_values


class ConflictError(AppError):
    status_code = status.HTTP_409_CONFLICT
    default_code = "conflict"


class ExpiredError(AppError):
    status_code = status.HTTP_400_BAD_REQUEST
    default_code = "expired"
