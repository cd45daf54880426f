"""Domain error hierarchy translated to HTTP responses at the app boundary."""

from __future__ import annotations

from typing import Any, Optional

from fastapi import status


class ApplicationError(Exception):
    """Base application error with HTTP semantics.

    ``reason`` is a stable machine-readable sub-code (e.g. ``INVITE_EXPIRED``).
    ``clear_cookie`` asks the HTTP boundary to expire the employee session cookie.
    """

    status_code: int = status.HTTP_400_BAD_REQUEST
    code: str = "VALIDATION"
    clear_cookie: bool = False

    def __init__(
        self,
        message: str,
        *,
        reason: Optional[str] = None,
        meta: Optional[dict[str, Any]] = None,
        clear_cookie: Optional[bool] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.reason = reason
        self.meta = meta or {}
        if clear_cookie is not None:
            self.clear_cookie = clear_cookie

    def to_dict(self) -> dict[str, Any]:
        body: dict[str, Any] = {"detail": self.message, "code": self.code}
        if self.reason:
            body["reason"] = self.reason
        if self.meta:
            body["meta"] = self.meta
        return body


class ValidationError(ApplicationError):
    status_code = status.HTTP_400_BAD_REQUEST
    code = "VALIDATION"


class SessionRequiredError(ApplicationError):
    status_code = status.HTTP_401_UNAUTHORIZED
    code = "SESSION_REQUIRED"
    clear_cookie = True


class UnauthorizedError(ApplicationError):
    status_code = status.HTTP_401_UNAUTHORIZED
    code = "UNAUTHORIZED"


class ForbiddenError(ApplicationError):
    status_code = status.HTTP_403_FORBIDDEN
    code = "FORBIDDEN"


class NotFoundError(ApplicationError):
    status_code = status.HTTP_404_NOT_FOUND
    code = "NOT_FOUND"


class ConflictError(ApplicationError):
    status_code = status.HTTP_409_CONFLICT
    code = "CONFLICT"


class TooManyRequestsError(ApplicationError):
    status_code = status.HTTP_429_TOO_MANY_REQUESTS
    code = "TOO_MANY_REQUESTS"


class InternalError(ApplicationError):
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    code = "INTERNAL"
