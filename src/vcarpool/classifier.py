"""Map transport outcomes onto the AppError hierarchy.

Everything funnels through one normalized :class:`ResponseShape`, so the
status table below is the single source of truth no matter which transport
produced the failure.
"""

from __future__ import annotations

import asyncio
import builtins
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any

import httpx

from vcarpool.exceptions import (
    ApiError,
    AppError,
    AuthenticationError,
    AuthorizationError,
    NetworkError,
    RequestCancelled,
    TimeoutError,
    ValidationError,
)

SERVER_ERROR_STATUSES = frozenset({500, 502, 503, 504})


@dataclass(frozen=True)
class ResponseShape:
    """Transport-neutral view of an HTTP response."""

    status: int
    body: Any = None
    headers: Mapping[str, str] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return 200 <= self.status < 300

    def header(self, name: str) -> str | None:
        lowered = name.lower()
        for key, value in self.headers.items():
            if key.lower() == lowered:
                return value
        return None


def shape_from_httpx(response: httpx.Response) -> ResponseShape:
    """Build a :class:`ResponseShape` from an ``httpx.Response``."""
    try:
        body = response.json()
    except ValueError:
        body = {"message": response.reason_phrase} if response.reason_phrase else None
    return ResponseShape(
        status=response.status_code,
        body=body,
        headers=dict(response.headers.items()),
    )


def _extract_error_message(shape: ResponseShape) -> str:
    """Best-effort extraction of the server's error message."""
    fallback = f"HTTP {shape.status}"
    body = shape.body
    if not isinstance(body, dict):
        return fallback
    message = body.get("message")
    if isinstance(message, str) and message:
        return message
    error = body.get("error")
    if isinstance(error, dict):
        nested = error.get("message")
        if isinstance(nested, str) and nested:
            return nested
    if isinstance(error, str) and error:
        return error
    return fallback


def _extract_field(shape: ResponseShape) -> str | None:
    body = shape.body
    if not isinstance(body, dict):
        return None
    value = body.get("field")
    if value is None and isinstance(body.get("error"), dict):
        value = body["error"].get("field")
    return str(value) if value is not None else None


def classify_response(shape: ResponseShape, endpoint: str) -> AppError:
    """Turn a non-2xx response into exactly one AppError subtype."""
    message = _extract_error_message(shape)
    status = shape.status

    if status in (400, 422):
        return ValidationError(message, _extract_field(shape))
    if status == 401:
        return AuthenticationError(message)
    if status == 403:
        return AuthorizationError(message)
    if status == 404:
        return ApiError(message, status, endpoint, "NOT_FOUND")
    if status == 409:
        return ApiError(message, status, endpoint, "CONFLICT")
    if status == 429:
        return ApiError(
            message,
            status,
            endpoint,
            "RATE_LIMIT",
            {"retry_after": shape.header("Retry-After")},
        )
    if status in SERVER_ERROR_STATUSES:
        return ApiError(message, status, endpoint, "SERVER_ERROR")
    return ApiError(message, status, endpoint)


def classify_exception(exc: BaseException, endpoint: str, timeout: float | None = None) -> AppError:
    """Turn anything raised while talking to the server into an AppError.

    Never raises; inputs that fit no known kind come back as a plain
    ``AppError`` coded ``UNKNOWN_ERROR``.
    """
    if isinstance(exc, AppError):
        return exc
    if isinstance(exc, RequestCancelled):
        return ApiError("Request was cancelled", 0, endpoint, "REQUEST_CANCELLED")
    if isinstance(exc, (httpx.TimeoutException, asyncio.TimeoutError, builtins.TimeoutError)):
        return TimeoutError(endpoint, timeout if timeout is not None else 0.0)
    if isinstance(exc, httpx.HTTPStatusError):
        return classify_response(shape_from_httpx(exc.response), endpoint)
    if isinstance(exc, (httpx.TransportError, OSError)):
        return NetworkError(f"Failed to connect to {endpoint}", {"endpoint": endpoint})
    return AppError(
        f"Unknown error during {endpoint}",
        "UNKNOWN_ERROR",
        details={"original_error": exc},
    )
