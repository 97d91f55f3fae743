"""
Result type shared by every service operation.

Services return ServiceResult instead of raising for expected failures; views
translate error codes into HTTP statuses with HTTP_STATUS_BY_ERROR.
"""
from dataclasses import dataclass
from enum import Enum
from typing import Any, Optional


class ErrorKind(str, Enum):
    VALIDATION = "validation"
    INSUFFICIENT_FUNDS = "insufficient_funds"
    NOT_FOUND = "not_found"
    INVALID_TRANSITION = "invalid_transition"
    REMOTE_WRITE = "remote_write"
    UPLOAD_REJECTED = "upload_rejected"


@dataclass
class ServiceResult:
    """Outcome of a service operation"""
    success: bool
    value: Any = None
    error: Optional[str] = None
    error_code: Optional[ErrorKind] = None


def ok(value: Any = None) -> ServiceResult:
    return ServiceResult(success=True, value=value)


def fail(kind: ErrorKind, error: str) -> ServiceResult:
    return ServiceResult(success=False, error=error, error_code=kind)


HTTP_STATUS_BY_ERROR = {
    ErrorKind.VALIDATION: 400,
    ErrorKind.INSUFFICIENT_FUNDS: 402,
    ErrorKind.NOT_FOUND: 404,
    ErrorKind.INVALID_TRANSITION: 409,
    ErrorKind.REMOTE_WRITE: 502,
    ErrorKind.UPLOAD_REJECTED: 400,
}
