"""Service-layer failures with a stable, machine-checkable kind.

Controllers translate these into ``ErrorResponse`` payloads; the message is
always safe to show to a client.
"""
from __future__ import annotations

from agrilink.models import ErrorCode


class ServiceError(Exception):
    code: ErrorCode = ErrorCode.BAD_REQUEST
    status_code: int = 400

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class NotFoundError(ServiceError):
    code = ErrorCode.NOT_FOUND
    status_code = 404


class ForbiddenError(ServiceError):
    code = ErrorCode.FORBIDDEN
    status_code = 403


class InvalidArgumentError(ServiceError):
    code = ErrorCode.INVALID_ARGUMENT
    status_code = 400


class ConflictError(ServiceError):
    """Lost a uniqueness race; recovered internally and never returned."""

    code = ErrorCode.CONFLICT
    status_code = 409


class EmailTakenError(ServiceError):
    code = ErrorCode.EMAIL_TAKEN
    status_code = 400


class InvalidCredentialsError(ServiceError):
    code = ErrorCode.INVALID_CREDENTIALS
    status_code = 400


__all__ = [
    "ServiceError",
    "NotFoundError",
    "ForbiddenError",
    "InvalidArgumentError",
    "ConflictError",
    "EmailTakenError",
    "InvalidCredentialsError",
]
