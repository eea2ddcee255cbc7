"""Async HTTP client for the carpool API."""

from __future__ import annotations

import asyncio
import dataclasses
import logging
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Literal

import httpx
import pydantic

from vcarpool.auth import FileTokenStorage, RefreshState, TokenRefreshCoordinator, TokenStorage
from vcarpool.classifier import classify_exception, classify_response, shape_from_httpx
from vcarpool.config import ClientSettings
from vcarpool.exceptions import (
    AppError,
    AuthenticationError,
    RequestCancelled,
    TimeoutError,
)
from vcarpool.reporting import ErrorHandler, ErrorReporter
from vcarpool.types import AuthResponse, LoginRequest, PaginatedResponse

logger = logging.getLogger(__name__)

DEFAULT_HEADERS = {
    "Content-Type": "application/json",
    "Accept": "application/json",
}

READ_METHODS = frozenset({"GET", "HEAD", "OPTIONS"})


@dataclass
class RequestOptions:
    """Per-call overrides.

    ``timeout`` replaces the read/write default for this call only. It
    bounds each attempt separately: a request that hits a 401, waits for
    the token refresh and is retried can take up to twice the timeout plus
    the refresh time. Setting ``cancel_event`` aborts the request with a ``REQUEST_CANCELLED``
    ApiError. Pass ``authenticate=False`` for endpoints that do not need a
    session (login, registration).
    """

    headers: dict[str, str] = field(default_factory=dict)
    timeout: float | None = None
    params: dict[str, Any] | None = None
    authenticate: bool = True
    cancel_event: asyncio.Event | None = None


@dataclass(frozen=True)
class RetryContext:
    """Which attempt this is; a 401 is only recovered on the first one."""

    attempt: Literal[1, 2] = 1

    @property
    def is_retry(self) -> bool:
        return self.attempt > 1

    def next(self) -> RetryContext:
        return RetryContext(attempt=2)


@dataclass
class ApiInterceptors:
    """Optional async hooks around every request.

    ``request`` may return a modified request, ``response`` sees every
    successful response, and ``error`` may replace the error about to be
    raised.
    """

    request: Callable[[httpx.Request], Awaitable[httpx.Request]] | None = None
    response: Callable[[httpx.Response], Awaitable[None]] | None = None
    error: Callable[[AppError], Awaitable[AppError]] | None = None


# ---------------------------------------------------------------------------
# Shared response handling
# ---------------------------------------------------------------------------


def _handle_response(resp: httpx.Response, endpoint: str) -> Any:
    """Raise the classified error for non-2xx responses, else decode the body."""
    if not resp.is_success:
        raise classify_response(shape_from_httpx(resp), endpoint)
    if resp.status_code == 204 or not resp.content:
        return None
    try:
        return resp.json()
    except ValueError as exc:
        raise AppError(f"Invalid JSON in response from {endpoint}", "INVALID_RESPONSE") from exc


def _unwrap_auth_response(body: Any, fallback: str) -> AuthResponse:
    envelope = body if isinstance(body, dict) else {}
    data = envelope.get("data")
    if not envelope.get("success") or not isinstance(data, dict):
        raise AuthenticationError(str(envelope.get("error") or envelope.get("message") or fallback))
    try:
        return AuthResponse.model_validate(data)
    except pydantic.ValidationError as exc:
        raise AuthenticationError(fallback) from exc


# ---------------------------------------------------------------------------
# Async client
# ---------------------------------------------------------------------------


class CarpoolClient:
    """Async HTTP client for the carpool coordination API.

    Every call gets the JSON headers, the bearer token and a deadline, and
    every failure comes back as an :class:`~vcarpool.exceptions.AppError`.
    A 401 triggers one token refresh (shared by all concurrent callers)
    and a single retry.

    Usage::

        async with CarpoolClient() as client:
            await client.login("parent@example.com", "secret")
            trips = await client.get("/trips/my-trips")
    """

    def __init__(
        self,
        base_url: str | None = None,
        *,
        settings: ClientSettings | None = None,
        storage: TokenStorage | None = None,
        coordinator: TokenRefreshCoordinator | None = None,
        reporter: ErrorReporter | None = None,
        interceptors: ApiInterceptors | None = None,
        on_session_expired: Callable[[str], None] | None = None,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        self.settings = settings or ClientSettings.from_env()
        self.base_url = (base_url or self.settings.base_url).rstrip("/")
        if coordinator is None:
            if storage is None and self.settings.token_file is not None:
                storage = FileTokenStorage(self.settings.token_file)
            coordinator = TokenRefreshCoordinator(
                storage,
                refresh_path=self.settings.refresh_path,
                login_url=self.settings.login_url,
                on_session_expired=on_session_expired,
            )
        self.coordinator = coordinator
        self.error_handler = ErrorHandler(reporter, environment=self.settings.environment)
        self.interceptors = interceptors or ApiInterceptors()
        self._owns_client = http_client is None
        self._client = http_client or httpx.AsyncClient()

    async def __aenter__(self) -> CarpoolClient:
        return self

    async def __aexit__(self, *exc: object) -> None:
        await self.close()

    async def close(self) -> None:
        """Close the underlying HTTP client if this instance created it."""
        if self._owns_client:
            await self._client.aclose()

    # --- Session ---

    def set_tokens(
        self,
        access_token: str,
        refresh_token: str | None = None,
        expires_in: float | None = None,
    ) -> None:
        self.coordinator.set_tokens(access_token, refresh_token, expires_in)

    def clear_tokens(self) -> None:
        self.coordinator.clear()

    def load_tokens(self) -> None:
        self.coordinator.load()

    async def login(self, email: str, password: str) -> AuthResponse:
        """Log in and keep the returned token pair."""
        body = await self.post(
            "/auth/login",
            LoginRequest(email=email, password=password).model_dump(),
            options=RequestOptions(authenticate=False),
        )
        return await self._accept_session(body, "Login failed", "POST /auth/login")

    async def register(self, payload: dict[str, Any]) -> AuthResponse:
        """Create an account and keep the returned token pair."""
        body = await self.post("/auth/register", payload, options=RequestOptions(authenticate=False))
        return await self._accept_session(body, "Registration failed", "POST /auth/register")

    def logout(self) -> None:
        self.coordinator.clear()

    async def _accept_session(self, body: Any, fallback: str, component_stack: str) -> AuthResponse:
        try:
            auth = _unwrap_auth_response(body, fallback)
        except AuthenticationError as exc:
            await self.error_handler.handle_error(
                exc, error_boundary="CarpoolClient", component_stack=component_stack
            )
            raise
        self.coordinator.set_tokens(auth.token, auth.refresh_token, auth.expires_in)
        return auth

    # --- Verbs ---

    async def get(
        self,
        path: str,
        *,
        params: dict[str, Any] | None = None,
        options: RequestOptions | None = None,
    ) -> Any:
        options = options or RequestOptions()
        if params is not None:
            options = dataclasses.replace(options, params=params)
        return await self._request("GET", path, options=options)

    async def post(self, path: str, body: Any = None, *, options: RequestOptions | None = None) -> Any:
        return await self._request("POST", path, body=body, options=options)

    async def put(self, path: str, body: Any = None, *, options: RequestOptions | None = None) -> Any:
        return await self._request("PUT", path, body=body, options=options)

    async def patch(self, path: str, body: Any = None, *, options: RequestOptions | None = None) -> Any:
        return await self._request("PATCH", path, body=body, options=options)

    async def delete(self, path: str, *, options: RequestOptions | None = None) -> Any:
        return await self._request("DELETE", path, options=options)

    async def get_paginated(
        self,
        path: str,
        params: dict[str, Any] | None = None,
        *,
        options: RequestOptions | None = None,
    ) -> PaginatedResponse:
        """GET a list endpoint; *params* win over ``options.params``."""
        options = options or RequestOptions()
        merged = {**(options.params or {}), **(params or {})}
        data = await self._request("GET", path, options=dataclasses.replace(options, params=merged))
        try:
            return PaginatedResponse.model_validate(data)
        except pydantic.ValidationError as exc:
            error = AppError(f"Invalid paginated response from {path}", "INVALID_RESPONSE")
            error.__cause__ = exc
            raise await self._surface("GET", path, error) from exc

    # --- HTTP transport ---

    def _timeout_for(self, method: str, options: RequestOptions) -> float:
        if options.timeout is not None:
            return options.timeout
        if method in READ_METHODS:
            return self.settings.read_timeout
        return self.settings.write_timeout

    async def _request(
        self,
        method: str,
        path: str,
        *,
        body: Any = None,
        options: RequestOptions | None = None,
    ) -> Any:
        options = options or RequestOptions()
        timeout = self._timeout_for(method, options)
        try:
            return await self._attempt(method, path, body, options, timeout, RetryContext())
        except Exception as exc:
            error = classify_exception(exc, path, timeout)
            if error is not exc:
                error.__cause__ = exc
            error = await self._surface(method, path, error)
            if error is exc:
                raise
            raise error from exc

    async def _surface(self, method: str, path: str, error: AppError) -> AppError:
        """Report an unrecovered error and let the error interceptor replace it."""
        await self.error_handler.handle_error(
            error,
            error_boundary="CarpoolClient",
            component_stack=f"{method} {path}",
            url=f"{self.base_url}{path}",
        )
        if self.interceptors.error is not None:
            error = await self.interceptors.error(error)
        return error

    async def _attempt(
        self,
        method: str,
        path: str,
        body: Any,
        options: RequestOptions,
        timeout: float,
        retry: RetryContext,
    ) -> Any:
        token = self.coordinator.access_token if options.authenticate else None
        if options.authenticate and not token:
            raise AuthenticationError("Not authenticated")

        headers = {**DEFAULT_HEADERS, **options.headers}
        if token:
            headers["Authorization"] = f"Bearer {token}"
        request = self._client.build_request(
            method,
            f"{self.base_url}{path}",
            json=body,
            params=options.params,
            headers=headers,
            timeout=timeout,
        )
        if self.interceptors.request is not None:
            request = await self.interceptors.request(request)

        resp = await self._send(request, path, timeout, options.cancel_event)

        if resp.status_code == 401 and options.authenticate and not retry.is_retry:
            if await self._recover_session(token):
                logger.debug("retrying %s %s with refreshed token", method, path)
                return await self._attempt(method, path, body, options, timeout, retry.next())

        if self.interceptors.response is not None and resp.is_success:
            await self.interceptors.response(resp)
        return _handle_response(resp, path)

    async def _recover_session(self, sent_token: str | None) -> bool:
        """Make sure a newer token exists; False if there is no way to get one."""
        current = self.coordinator.access_token
        if current and current != sent_token:
            return True
        if self.coordinator.state is RefreshState.IDLE and not self.coordinator.refresh_token:
            return False
        await self.coordinator.refresh(
            self._client,
            base_url=self.base_url,
            timeout=self.settings.write_timeout,
        )
        return True

    async def _send(
        self,
        request: httpx.Request,
        endpoint: str,
        timeout: float,
        cancel_event: asyncio.Event | None,
    ) -> httpx.Response:
        """Send *request*, racing it against the deadline and *cancel_event*."""
        send = asyncio.ensure_future(self._client.send(request))
        racers: set[asyncio.Future[Any]] = {send}
        cancelled = None
        if cancel_event is not None:
            cancelled = asyncio.ensure_future(cancel_event.wait())
            racers.add(cancelled)
        try:
            done, _ = await asyncio.wait(racers, timeout=timeout, return_when=asyncio.FIRST_COMPLETED)
        finally:
            for fut in racers:
                if not fut.done():
                    fut.cancel()
        if send in done:
            return send.result()
        if cancelled is not None and cancelled in done:
            raise RequestCancelled()
        raise TimeoutError(endpoint, timeout)
