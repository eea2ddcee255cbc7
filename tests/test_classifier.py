"""Tests for HTTP error classification."""

from __future__ import annotations

import asyncio

import httpx
import pytest

from vcarpool.classifier import ResponseShape, classify_exception, classify_response, shape_from_httpx
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


def _shape(status: int, body: object = None, headers: dict[str, str] | None = None) -> ResponseShape:
    return ResponseShape(status=status, body=body if body is not None else {"message": "nope"}, headers=headers or {})


class TestStatusMapping:
    @pytest.mark.parametrize(
        ("status", "error_type", "code"),
        [
            (400, ValidationError, "VALIDATION_ERROR"),
            (401, AuthenticationError, "AUTH_ERROR"),
            (403, AuthorizationError, "AUTHORIZATION_ERROR"),
            (404, ApiError, "NOT_FOUND"),
            (409, ApiError, "CONFLICT"),
            (422, ValidationError, "VALIDATION_ERROR"),
            (429, ApiError, "RATE_LIMIT"),
            (500, ApiError, "SERVER_ERROR"),
            (502, ApiError, "SERVER_ERROR"),
            (503, ApiError, "SERVER_ERROR"),
            (504, ApiError, "SERVER_ERROR"),
        ],
    )
    def test_status_maps_to_type_and_code(self, status: int, error_type: type, code: str) -> None:
        err = classify_response(_shape(status), "/groups")
        assert type(err) is error_type
        assert err.code == code
        assert err.message == "nope"

    def test_unlisted_status_is_generic_api_error(self) -> None:
        err = classify_response(_shape(418), "/brew")
        assert type(err) is ApiError
        assert err.status == 418
        assert err.code == "HTTP_418"

    def test_rate_limit_carries_retry_after(self) -> None:
        err = classify_response(_shape(429, headers={"Retry-After": "30"}), "/trips")
        assert isinstance(err, ApiError)
        assert err.code == "RATE_LIMIT"
        assert err.details == {"retry_after": "30"}

    def test_rate_limit_without_header(self) -> None:
        err = classify_response(_shape(429), "/trips")
        assert err.details == {"retry_after": None}

    def test_not_found_keeps_endpoint(self) -> None:
        err = classify_response(_shape(404), "/trips/my-trips")
        assert isinstance(err, ApiError)
        assert err.code == "NOT_FOUND"
        assert err.endpoint == "/trips/my-trips"

    def test_validation_error_uses_server_field(self) -> None:
        err = classify_response(_shape(422, {"message": "bad email", "field": "email"}), "/auth/register")
        assert isinstance(err, ValidationError)
        assert err.field == "email"

    def test_classification_is_repeatable(self) -> None:
        shape = _shape(503, {"error": {"message": "maintenance"}})
        first = classify_response(shape, "/admin")
        second = classify_response(shape, "/admin")
        assert first is not second
        assert (first.code, first.severity, first.message) == (second.code, second.severity, second.message)


class TestMessageExtraction:
    def test_nested_error_message(self) -> None:
        err = classify_response(_shape(500, {"error": {"message": "db down"}}), "/x")
        assert err.message == "db down"

    def test_string_error(self) -> None:
        err = classify_response(_shape(400, {"success": False, "error": "Invalid input"}), "/x")
        assert err.message == "Invalid input"

    def test_falls_back_to_status(self) -> None:
        err = classify_response(ResponseShape(status=500, body=[1, 2]), "/x")
        assert err.message == "HTTP 500"


class TestShapeFromHttpx:
    def test_json_body_and_headers(self) -> None:
        resp = httpx.Response(429, json={"message": "slow down"}, headers={"retry-after": "5"})
        shape = shape_from_httpx(resp)
        assert shape.status == 429
        assert shape.body == {"message": "slow down"}
        assert shape.header("Retry-After") == "5"

    def test_non_json_body_uses_reason_phrase(self) -> None:
        shape = shape_from_httpx(httpx.Response(502, text="<html>upstream</html>"))
        assert shape.body == {"message": "Bad Gateway"}
        assert classify_response(shape, "/x").message == "Bad Gateway"


class TestClassifyException:
    def test_app_error_passes_through(self) -> None:
        original = AuthorizationError()
        assert classify_exception(original, "/x") is original

    def test_connect_error_is_network_error(self) -> None:
        err = classify_exception(httpx.ConnectError("connection refused"), "/trips")
        assert type(err) is NetworkError
        assert err.message == "Failed to connect to /trips"

    def test_os_error_is_network_error(self) -> None:
        assert type(classify_exception(ConnectionResetError(), "/trips")) is NetworkError

    def test_httpx_timeout_is_timeout_error(self) -> None:
        err = classify_exception(httpx.ReadTimeout("slow"), "/trips", timeout=3.0)
        assert isinstance(err, TimeoutError)
        assert err.timeout == 3.0

    def test_asyncio_timeout_is_timeout_error(self) -> None:
        err = classify_exception(asyncio.TimeoutError(), "/trips", timeout=1.0)
        assert isinstance(err, TimeoutError)

    def test_cancellation(self) -> None:
        err = classify_exception(RequestCancelled(), "/trips")
        assert isinstance(err, ApiError)
        assert err.code == "REQUEST_CANCELLED"
        assert err.status == 0

    def test_http_status_error_goes_through_table(self) -> None:
        request = httpx.Request("GET", "https://api.test/x")
        response = httpx.Response(403, json={"message": "admins only"}, request=request)
        exc = httpx.HTTPStatusError("forbidden", request=request, response=response)
        err = classify_exception(exc, "/x")
        assert isinstance(err, AuthorizationError)
        assert err.message == "admins only"

    def test_unknown_falls_back_to_base_type(self) -> None:
        original = KeyError("weird")
        err = classify_exception(original, "/x")
        assert type(err) is AppError
        assert err.code == "UNKNOWN_ERROR"
        assert err.details == {"original_error": original}
