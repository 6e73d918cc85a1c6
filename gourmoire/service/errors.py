from __future__ import annotations

from enum import Enum
from typing import Optional


class ErrorCode(str, Enum):
    """Stable error codes returned in the ``code`` field of failure bodies."""

    INVALID_CREDENTIALS = "INVALID_CREDENTIALS"
    TOKEN_EXPIRED = "TOKEN_EXPIRED"
    TOKEN_INVALID = "TOKEN_INVALID"
    USER_NOT_FOUND = "USER_NOT_FOUND"
    UNAUTHORIZED = "UNAUTHORIZED"
    NOT_FOUND = "NOT_FOUND"
    VALIDATION_ERROR = "VALIDATION_ERROR"
    INTERNAL_ERROR = "INTERNAL_ERROR"


class ServiceError(Exception):
    """Base class for service-layer exceptions mapped to HTTP responses.

    Each subclass carries an HTTP ``status_code`` and an ``error_code``:
    - 400 bad request (code chosen by the raising flow)
    - 401 UNAUTHORIZED, INVALID_CREDENTIALS, TOKEN_EXPIRED
    - 403 TOKEN_INVALID
    - 404 USER_NOT_FOUND, NOT_FOUND
    - 500 INTERNAL_ERROR
    """

    status_code: int = 400
    error_code: ErrorCode = ErrorCode.VALIDATION_ERROR

    def __init__(
        self,
        message: str,
        *,
        status_code: Optional[int] = None,
        detail: Optional[dict] = None,
        error_code: Optional[ErrorCode] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code
        if error_code is not None:
            self.error_code = error_code
        self.detail = detail or {}


class BadRequestError(ServiceError):
    """Request is malformed or missing required fields (400)."""
    status_code = 400
    error_code = ErrorCode.VALIDATION_ERROR


class AuthenticationError(ServiceError):
    """Authentication missing or unusable (401)."""
    status_code = 401
    error_code = ErrorCode.UNAUTHORIZED


class InvalidCredentialsError(AuthenticationError):
    """Username/password pair rejected (401)."""
    error_code = ErrorCode.INVALID_CREDENTIALS


class TokenExpiredError(AuthenticationError):
    """Credential signature is valid but its lifetime has passed (401)."""
    error_code = ErrorCode.TOKEN_EXPIRED


class TokenInvalidError(ServiceError):
    """Credential is malformed, forged, of the wrong type, or revoked (403)."""
    status_code = 403
    error_code = ErrorCode.TOKEN_INVALID


class NotFoundError(ServiceError):
    """Requested resource not found (404)."""
    status_code = 404
    error_code = ErrorCode.NOT_FOUND


class UserNotFoundError(NotFoundError):
    """Credential subject no longer exists in the system of record (404)."""
    error_code = ErrorCode.USER_NOT_FOUND


class ServerError(ServiceError):
    """Internal server error (500)."""
    status_code = 500
    error_code = ErrorCode.INTERNAL_ERROR


class StoreUnavailable(ServerError):
    """Revocation store call failed; not retried here."""


__all__ = [
    "ErrorCode",
    "ServiceError",
    "BadRequestError",
    "AuthenticationError",
    "InvalidCredentialsError",
    "TokenExpiredError",
    "TokenInvalidError",
    "NotFoundError",
    "UserNotFoundError",
    "ServerError",
    "StoreUnavailable",
]
