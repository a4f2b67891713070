"""
Named rejections raised by the service layer.

Every rejection is a FastAPI HTTPException carrying a stable ``code`` so that
routes can let it propagate unchanged and non-HTTP callers can branch on
``exc.code`` instead of parsing messages.
"""

from __future__ import annotations

from fastapi import HTTPException, status


class DomainError(HTTPException):
    code: str = "DOMAIN_ERROR"
    status_code_default: int = status.HTTP_400_BAD_REQUEST

    def __init__(self, message: str, code: str | None = None) -> None:
        self.code = code or self.code
        self.message = message
        super().__init__(
            status_code=self.status_code_default,
            detail={"code": self.code, "message": message},
        )

    def __str__(self) -> str:
        return f"{self.code}: {self.message}"


class InvalidInputError(DomainError):
    code = "INVALID_INPUT"


class RateLimitExceededError(DomainError):
    code = "RATE_LIMIT_EXCEEDED"
    status_code_default = status.HTTP_429_TOO_MANY_REQUESTS


class SessionNotFoundError(DomainError):
    code = "SESSION_NOT_FOUND"
    status_code_default = status.HTTP_404_NOT_FOUND


class AccessDeniedError(DomainError):
    code = "ACCESS_DENIED"
    status_code_default = status.HTTP_403_FORBIDDEN


class SessionInactiveError(DomainError):
    code = "SESSION_INACTIVE"
    status_code_default = status.HTTP_409_CONFLICT


class SessionExpiredError(DomainError):
    code = "SESSION_EXPIRED"
    status_code_default = status.HTTP_410_GONE


class ConcurrentUpdateError(DomainError):
    code = "CONCURRENT_UPDATE"
    status_code_default = status.HTTP_409_CONFLICT


class DraftNotFoundError(DomainError):
    code = "DRAFT_NOT_FOUND"
    status_code_default = status.HTTP_404_NOT_FOUND


class FlagNotFoundError(DomainError):
    code = "FLAG_NOT_FOUND"
    status_code_default = status.HTTP_404_NOT_FOUND
