"""Pydantic models for the carpool API wire envelopes and error reports."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from vcarpool.exceptions import Severity


class ApiResponse(BaseModel):
    """Standard ``{success, data, error, message}`` envelope."""

    model_config = ConfigDict(extra="allow")

    success: bool
    data: Any = None
    error: str | None = None
    message: str | None = None
    details: Any = None


class Pagination(BaseModel):
    page: int
    limit: int
    total: int
    total_pages: int = Field(alias="totalPages")

    model_config = ConfigDict(populate_by_name=True)


class PaginatedResponse(ApiResponse):
    """Envelope for list endpoints; ``data`` is always a list."""

    data: list[Any] = Field(default_factory=list)
    pagination: Pagination


class AuthTokens(BaseModel):
    """Token pair from a login, registration or refresh response.

    The refresh endpoint answers with ``accessToken`` while login and
    registration answer with ``token``; both are accepted.
    """

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    access_token: str = Field(validation_alias="accessToken")
    refresh_token: str | None = Field(default=None, validation_alias="refreshToken")
    expires_in: float | None = Field(default=None, validation_alias="expiresIn")

    @classmethod
    def from_payload(cls, payload: dict[str, Any]) -> AuthTokens:
        data = dict(payload)
        if "accessToken" not in data and "token" in data:
            data["accessToken"] = data["token"]
        return cls.model_validate(data)


class AuthResponse(BaseModel):
    """Payload of a successful login or registration."""

    model_config = ConfigDict(extra="allow")

    user: dict[str, Any] = Field(default_factory=dict)
    token: str
    refresh_token: str | None = Field(default=None, alias="refreshToken")
    expires_in: float | None = Field(default=None, alias="expiresIn")


class LoginRequest(BaseModel):
    email: str
    password: str


class ErrorContext(BaseModel):
    """Where and when an error happened."""

    timestamp: str
    user_agent: str
    url: str
    error_boundary: str | None = None
    component_stack: str | None = None
    user_id: str | None = None


class ErrorReport(BaseModel):
    """Structured report handed to an error reporting sink."""

    message: str
    stack: str | None = None
    type: str
    severity: Severity
    code: str | None = None
    context: ErrorContext
