"""Session credentials and single-flight access-token refresh."""

from __future__ import annotations

import asyncio
import json
import logging
import os
import time
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Callable, Protocol

import httpx
import pydantic

from vcarpool.classifier import classify_exception, classify_response, shape_from_httpx
from vcarpool.exceptions import AppError, AuthenticationError
from vcarpool.types import AuthTokens

logger = logging.getLogger(__name__)

ACCESS_TOKEN_KEY = "access_token"
REFRESH_TOKEN_KEY = "refresh_token"
EXPIRES_AT_KEY = "expires_at"


@dataclass(frozen=True)
class Credentials:
    access_token: str | None = None
    refresh_token: str | None = None
    expires_at: float | None = None

    def is_expired(self, margin_seconds: float = 30.0) -> bool:
        """True once the access token is within *margin_seconds* of expiring.

        A token with no known expiry never counts as expired; the server's
        401 remains the authority.
        """
        if self.expires_at is None:
            return False
        return time.time() >= self.expires_at - margin_seconds


class TokenStorage(Protocol):
    """Where the token pair lives between client instances."""

    def load(self) -> Credentials: ...

    def save(self, credentials: Credentials) -> None: ...

    def clear(self) -> None: ...


class MemoryTokenStorage:
    """Keeps credentials for the lifetime of the process only."""

    def __init__(self, credentials: Credentials | None = None) -> None:
        self._credentials = credentials or Credentials()

    def load(self) -> Credentials:
        return self._credentials

    def save(self, credentials: Credentials) -> None:
        self._credentials = credentials

    def clear(self) -> None:
        self._credentials = Credentials()


class FileTokenStorage:
    """Persists credentials as a small JSON document, readable only by the owner."""

    def __init__(self, path: Path | str) -> None:
        self.path = Path(path)

    def load(self) -> Credentials:
        try:
            raw = json.loads(self.path.read_text(encoding="utf-8"))
        except FileNotFoundError:
            return Credentials()
        except (OSError, ValueError) as exc:
            logger.warning("ignoring unreadable token file %s: %s", self.path, exc)
            return Credentials()
        if not isinstance(raw, dict):
            return Credentials()
        expires_at = raw.get(EXPIRES_AT_KEY)
        return Credentials(
            access_token=raw.get(ACCESS_TOKEN_KEY) or None,
            refresh_token=raw.get(REFRESH_TOKEN_KEY) or None,
            expires_at=float(expires_at) if isinstance(expires_at, (int, float)) else None,
        )

    def save(self, credentials: Credentials) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        payload: dict[str, object] = {
            ACCESS_TOKEN_KEY: credentials.access_token,
            REFRESH_TOKEN_KEY: credentials.refresh_token,
        }
        if credentials.expires_at is not None:
            payload[EXPIRES_AT_KEY] = credentials.expires_at
        self.path.write_text(json.dumps(payload), encoding="utf-8")
        os.chmod(self.path, 0o600)

    def clear(self) -> None:
        self.path.unlink(missing_ok=True)


class RefreshState(str, Enum):
    IDLE = "idle"
    REFRESHING = "refreshing"


class TokenRefreshCoordinator:
    """Serializes access-token refreshes and fans the outcome out to every waiter.

    The first caller that needs a new token moves the coordinator from
    ``IDLE`` to ``REFRESHING`` and starts the refresh call; callers arriving
    while it is in flight queue a future instead of issuing their own call.
    The refresh itself runs as a separate task so that cancelling any one
    caller leaves the others (and the queue) untouched.

    On failure the stored credentials are wiped, every waiter gets the same
    error, and ``on_session_expired`` is called with ``login_url``.
    """

    def __init__(
        self,
        storage: TokenStorage | None = None,
        *,
        refresh_path: str = "/auth/refresh-token",
        login_url: str = "/login",
        on_session_expired: Callable[[str], None] | None = None,
    ) -> None:
        self.storage: TokenStorage = storage if storage is not None else MemoryTokenStorage()
        self.refresh_path = refresh_path
        self.login_url = login_url
        self.on_session_expired = on_session_expired
        self._credentials = Credentials()
        self._state = RefreshState.IDLE
        self._waiters: list[asyncio.Future[str]] = []
        self._refresh_task: asyncio.Task[None] | None = None
        self.load()

    @property
    def state(self) -> RefreshState:
        return self._state

    @property
    def access_token(self) -> str | None:
        return self._credentials.access_token

    @property
    def refresh_token(self) -> str | None:
        return self._credentials.refresh_token

    @property
    def is_stale(self) -> bool:
        """Whether the access token is known to be at or near its expiry."""
        return self._credentials.is_expired()

    def load(self) -> Credentials:
        """Pull persisted credentials into memory."""
        self._credentials = self.storage.load()
        return self._credentials

    def set_tokens(
        self,
        access_token: str,
        refresh_token: str | None = None,
        expires_in: float | None = None,
    ) -> None:
        """Store a new token pair; an omitted refresh token keeps the current one.

        *expires_in* is the access token's lifetime in seconds, when the
        server says.
        """
        self._credentials = Credentials(
            access_token=access_token,
            refresh_token=refresh_token or self._credentials.refresh_token,
            expires_at=time.time() + expires_in if expires_in is not None else None,
        )
        self.storage.save(self._credentials)

    def clear(self) -> None:
        self._credentials = Credentials()
        self.storage.clear()

    async def refresh(
        self,
        client: httpx.AsyncClient,
        *,
        base_url: str = "",
        timeout: float | None = None,
    ) -> str:
        """Return a fresh access token, sharing any refresh already in flight."""
        if self._state is RefreshState.IDLE and not self._credentials.refresh_token:
            raise AuthenticationError("No refresh token available")

        loop = asyncio.get_running_loop()
        waiter: asyncio.Future[str] = loop.create_future()
        self._waiters.append(waiter)
        if self._state is RefreshState.IDLE:
            self._state = RefreshState.REFRESHING
            url = f"{base_url}{self.refresh_path}"
            self._refresh_task = loop.create_task(self._run_refresh(client, url, timeout))
        else:
            logger.debug("refresh already in flight; queued (%d waiting)", len(self._waiters))
        return await waiter

    async def _run_refresh(self, client: httpx.AsyncClient, url: str, timeout: float | None) -> None:
        logger.info("refreshing access token")
        try:
            tokens = await self._request_tokens(client, url, timeout)
            self._store_refreshed(tokens)
        except asyncio.CancelledError:
            self._fail(AuthenticationError("Token refresh was cancelled"))
            raise
        except Exception as exc:  # noqa: BLE001 - every failure ends the session
            self._fail(classify_exception(exc, self.refresh_path, timeout))
            return

        waiters, self._waiters = self._waiters, []
        self._state = RefreshState.IDLE
        logger.info("access token refreshed; releasing %d waiter(s)", len(waiters))
        for waiter in waiters:
            if not waiter.done():
                waiter.set_result(tokens.access_token)

    async def _request_tokens(self, client: httpx.AsyncClient, url: str, timeout: float | None) -> AuthTokens:
        refresh_token = self._credentials.refresh_token
        if not refresh_token:
            raise AuthenticationError("No refresh token available")
        kwargs = {"timeout": timeout} if timeout is not None else {}
        resp = await client.post(url, json={"refreshToken": refresh_token}, **kwargs)
        shape = shape_from_httpx(resp)
        if not shape.ok:
            raise classify_response(shape, self.refresh_path)
        body = shape.body if isinstance(shape.body, dict) else {}
        data = body.get("data")
        if not body.get("success") or not isinstance(data, dict):
            raise AuthenticationError(str(body.get("error") or "Failed to refresh token"))
        try:
            return AuthTokens.from_payload(data)
        except pydantic.ValidationError as exc:
            raise AuthenticationError("Refresh response did not include an access token") from exc

    def _store_refreshed(self, tokens: AuthTokens) -> None:
        try:
            self.set_tokens(tokens.access_token, tokens.refresh_token, tokens.expires_in)
        except Exception as exc:
            raise AppError("Could not store refreshed credentials", "STORAGE_ERROR") from exc

    def _fail(self, error: AppError) -> None:
        """End the session: every waiter is rejected and the state is IDLE again.

        Runs inside the refresh task, so nothing here may raise; storage and
        redirect failures are logged instead.
        """
        logger.warning("token refresh failed (%s); clearing session", error.code)
        waiters, self._waiters = self._waiters, []
        self._state = RefreshState.IDLE
        self._credentials = Credentials()
        try:
            self.storage.clear()
        except Exception:  # noqa: BLE001
            logger.exception("failed to clear stored credentials")
        for waiter in waiters:
            if not waiter.done():
                waiter.set_exception(error)
        if self.on_session_expired is not None:
            logger.info("redirecting to %s", self.login_url)
            try:
                self.on_session_expired(self.login_url)
            except Exception:  # noqa: BLE001
                logger.exception("session-expired callback failed")
