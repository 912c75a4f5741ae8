"""Error taxonomy shared by the registry backends, services and tools.

Services raise ``QosError`` subclasses internally; the policy service
converts them into ``OperationResult`` payloads at the tool boundary so
nothing escapes a single top-level operation.
"""

from enum import Enum


class ErrorCode(Enum):
    # absent keys read as empty and delete as a no-op success; never raised
    NOT_FOUND = "NOT_FOUND"
    VALIDATION_ERROR = "VALIDATION_ERROR"
    PERMISSION_DENIED = "PERMISSION_DENIED"
    BACKEND_ERROR = "BACKEND_ERROR"
    TIMEOUT = "TIMEOUT"
    PARTIAL_FAILURE = "PARTIAL_FAILURE"

    def __str__(self):
        return self.value


class QosError(Exception):
    """Base class for all QoS policy errors."""

    code: ErrorCode = ErrorCode.BACKEND_ERROR

    def __init__(self, message: str, code: ErrorCode | None = None) -> None:
        super().__init__(message)
        self.message = message
        if code is not None:
            self.code = code


class ValidationError(QosError):
    code = ErrorCode.VALIDATION_ERROR


class PermissionDeniedError(QosError):
    code = ErrorCode.PERMISSION_DENIED


class BackendError(QosError):
    code = ErrorCode.BACKEND_ERROR


class CommandTimeoutError(QosError):
    """An external command exceeded its time budget. Never retried."""

    code = ErrorCode.TIMEOUT
