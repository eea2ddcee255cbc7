"""Exception hierarchy for the vcarpool client."""

from __future__ import annotations

from enum import Enum
from typing import Any


class Severity(str, Enum):
    """How bad a failure is, from the user's point of view."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class AppError(Exception):
    """Base exception for all vcarpool client errors.

    ``code``, ``severity`` and ``is_retryable`` are fixed when the error is
    built; subclasses pin them so callers can branch on the type alone.
    ``details`` is a free-form diagnostic bag and may be ``None``.
    """

    def __init__(
        self,
        message: str,
        code: str = "UNKNOWN_ERROR",
        severity: Severity = Severity.MEDIUM,
        is_retryable: bool = False,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message)
        self._message = message
        self._code = code
        self._severity = Severity(severity)
        self._is_retryable = is_retryable
        self._details = details

    @property
    def message(self) -> str:
        return self._message

    @property
    def code(self) -> str:
        return self._code

    @property
    def severity(self) -> Severity:
        return self._severity

    @property
    def is_retryable(self) -> bool:
        return self._is_retryable

    @property
    def details(self) -> dict[str, Any] | None:
        return self._details

    def __repr__(self) -> str:
        return f"{type(self).__name__}(code={self._code!r}, message={self._message!r})"


class NetworkError(AppError):
    """Raised when the server could not be reached."""

    def __init__(
        self,
        message: str = "Network request failed",
        details: dict[str, Any] | None = None,
        *,
        code: str = "NETWORK_ERROR",
    ) -> None:
        super().__init__(message, code, Severity.HIGH, True, details)


class TimeoutError(NetworkError):  # noqa: A001
    """Raised when a request exceeds its deadline."""

    def __init__(self, endpoint: str, timeout: float) -> None:
        super().__init__(
            f"Request to {endpoint} timed out after {timeout:g}s",
            {"endpoint": endpoint, "timeout": timeout},
            code="TIMEOUT_ERROR",
        )
        self.endpoint = endpoint
        self.timeout = timeout


class ValidationError(AppError):
    """Raised when the server rejects input as invalid (400/422)."""

    def __init__(self, message: str, field: str | None = None) -> None:
        super().__init__(message, "VALIDATION_ERROR", Severity.MEDIUM, False, {"field": field})
        self.field = field


class AuthenticationError(AppError):
    """Raised when the session is missing or no longer valid (401)."""

    def __init__(self, message: str = "Authentication failed") -> None:
        super().__init__(message, "AUTH_ERROR", Severity.HIGH, False)


class AuthorizationError(AppError):
    """Raised when the user lacks permission (403)."""

    def __init__(self, message: str = "Access denied") -> None:
        super().__init__(message, "AUTHORIZATION_ERROR", Severity.HIGH, False)


class ApiError(AppError):
    """Raised for any other non-2xx response.

    Only server errors and rate limiting are worth retrying; everything else
    will fail the same way again.

    A rate-limited (``RATE_LIMIT``) error carries the raw ``Retry-After``
    header in ``details["retry_after"]`` (the web client's ``retryAfter``).
    """

    def __init__(
        self,
        message: str,
        status: int,
        endpoint: str,
        code: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        retryable = status >= 500 or status == 429
        severity = Severity.HIGH if status >= 500 else Severity.MEDIUM
        super().__init__(message, code or f"HTTP_{status}", severity, retryable, details)
        self.status = status
        self.endpoint = endpoint


class RequestCancelled(Exception):
    """Signal that a caller aborted an in-flight request.

    Not an AppError: the classifier turns it into ``ApiError`` with code
    ``REQUEST_CANCELLED``.
    """
