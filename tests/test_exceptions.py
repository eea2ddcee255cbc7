"""Tests for the error hierarchy."""

from __future__ import annotations

import pytest

from vcarpool.exceptions import (
    ApiError,
    AppError,
    AuthenticationError,
    AuthorizationError,
    NetworkError,
    Severity,
    TimeoutError,
    ValidationError,
)


class TestFixedAttributes:
    def test_network_error_is_high_and_retryable(self) -> None:
        err = NetworkError()
        assert err.message == "Network request failed"
        assert err.code == "NETWORK_ERROR"
        assert err.severity is Severity.HIGH
        assert err.is_retryable is True

    def test_validation_error_carries_field(self) -> None:
        err = ValidationError("email is required", "email")
        assert err.code == "VALIDATION_ERROR"
        assert err.severity is Severity.MEDIUM
        assert err.is_retryable is False
        assert err.field == "email"
        assert err.details == {"field": "email"}

    def test_auth_errors_are_not_retryable(self) -> None:
        assert AuthenticationError().code == "AUTH_ERROR"
        assert AuthenticationError().is_retryable is False
        assert AuthorizationError().code == "AUTHORIZATION_ERROR"
        assert AuthorizationError().message == "Access denied"

    def test_timeout_error_is_a_network_error(self) -> None:
        err = TimeoutError("/trips", 2.5)
        assert isinstance(err, NetworkError)
        assert err.code == "TIMEOUT_ERROR"
        assert err.is_retryable is True
        assert err.timeout == 2.5
        assert err.details == {"endpoint": "/trips", "timeout": 2.5}
        assert "2.5s" in err.message

    def test_base_defaults(self) -> None:
        err = AppError("boom")
        assert err.code == "UNKNOWN_ERROR"
        assert err.severity is Severity.MEDIUM
        assert err.is_retryable is False
        assert err.details is None
        assert str(err) == "boom"

    def test_attributes_cannot_be_reassigned(self) -> None:
        err = NetworkError()
        with pytest.raises(AttributeError):
            err.is_retryable = False  # type: ignore[misc]
        with pytest.raises(AttributeError):
            err.severity = Severity.LOW  # type: ignore[misc]


class TestApiError:
    def test_default_code_uses_status(self) -> None:
        err = ApiError("teapot", 418, "/brew")
        assert err.code == "HTTP_418"
        assert err.status == 418
        assert err.endpoint == "/brew"

    @pytest.mark.parametrize("status", [429, 500, 503])
    def test_server_and_rate_limit_errors_are_retryable(self, status: int) -> None:
        assert ApiError("x", status, "/a").is_retryable is True

    @pytest.mark.parametrize("status", [404, 409, 0])
    def test_client_errors_are_not_retryable(self, status: int) -> None:
        assert ApiError("x", status, "/a").is_retryable is False

    def test_server_errors_are_high_severity(self) -> None:
        assert ApiError("x", 502, "/a").severity is Severity.HIGH
        assert ApiError("x", 404, "/a").severity is Severity.MEDIUM
