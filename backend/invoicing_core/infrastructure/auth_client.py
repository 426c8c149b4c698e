"""GoTrue Auth Client — AuthProvider over a GoTrue-compatible HTTP auth service.

Invariants:
    - Rate limits (429): exponential backoff with jitter, respects Retry-After header
    - Transient errors (5xx, connection): max_retries retries with exponential backoff
    - Timeouts: immediate AuthProviderError("timeout"), no retry
    - Rejected credentials / expired tokens are a normal None result, not an error
    - sign_out always clears the local session, even when the remote call fails
    - State-change listeners never break the client: failures are logged

Design Decisions:
    - httpx.AsyncClient with injectable transport: tests use httpx.MockTransport
    - Session cached in memory and refreshed on demand when expires_at passes
    - ±25% jitter on backoff: prevents thundering herd after an outage
"""

import asyncio
import logging
import random
from datetime import datetime, timedelta, timezone
from typing import Any, Awaitable, Callable

import httpx

from invoicing_core.core.domain_types import AuthSession, AuthUser, Clock, UserId
from invoicing_core.core.errors import AuthProviderError
from invoicing_core.core.repository_protocols import AuthStateCallback
from invoicing_core.core.session_expiry import utcnow

logger = logging.getLogger(__name__)

SIGNED_IN = "SIGNED_IN"
SIGNED_OUT = "SIGNED_OUT"
TOKEN_REFRESHED = "TOKEN_REFRESHED"

_REJECTED_STATUSES = (400, 401, 403)


def _parse_user(data: dict[str, Any]) -> AuthUser:
    metadata = data.get("app_metadata") or {}
    return AuthUser(
        id=UserId(str(data["id"])),
        email=data.get("email"),
        role=metadata.get("role") or data.get("role"),
    )


class GoTrueAuthClient:
    """Resilient client for password sign-in, session refresh, user lookup and sign-out."""

    def __init__(
        self,
        base_url: str,
        api_key: str,
        *,
        timeout_seconds: float = 10.0,
        max_retries: int = 3,
        base_delay_ms: int = 250,
        max_delay_ms: int = 5_000,
        transport: httpx.AsyncBaseTransport | None = None,
        clock: Clock = utcnow,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.client = httpx.AsyncClient(
            base_url=base_url.rstrip("/"),
            headers={"apikey": api_key},
            timeout=timeout_seconds,
            transport=transport,
        )
        self.max_retries = max_retries
        self.base_delay_ms = base_delay_ms
        self.max_delay_ms = max_delay_ms
        self._clock = clock
        self._sleep = sleep
        self._session: AuthSession | None = None
        self._listeners: list[AuthStateCallback] = []

    # ─── AuthProvider ────────────────────────────────────────────

    async def sign_in_with_password(
        self, email: str, password: str,
    ) -> AuthSession | None:
        response = await self._request(
            "POST", "/auth/v1/token",
            params={"grant_type": "password"},
            json={"email": email, "password": password},
        )
        if response.status_code in _REJECTED_STATUSES:
            logger.info("Sign-in rejected", extra={"operation": "sign_in"})
            return None
        self._raise_for_status(response, "sign_in")
        self._session = self._parse_session(response.json())
        self._notify(SIGNED_IN, self._session)
        return self._session

    async def get_session(self) -> AuthSession | None:
        """Cached session, refreshed first when its access token has expired."""
        session = self._session
        if session is None:
            return None
        if session.expires_at is None or self._clock() < session.expires_at:
            return session
        if not session.refresh_token:
            self._drop_session()
            return None
        return await self._refresh(session)

    async def get_user(self) -> AuthUser | None:
        session = await self.get_session()
        if session is None:
            return None
        response = await self._request(
            "GET", "/auth/v1/user", token=session.access_token,
        )
        if response.status_code in (401, 403):
            return None
        self._raise_for_status(response, "get_user")
        return _parse_user(response.json())

    async def sign_out(self) -> None:
        session = self._session
        if session is None:
            return
        try:
            response = await self._request(
                "POST", "/auth/v1/logout", token=session.access_token,
            )
            if response.status_code >= 400 and response.status_code != 401:
                logger.warning(
                    f"Remote sign-out returned {response.status_code}",
                    extra={"user_id": session.user_id},
                )
        except AuthProviderError as e:
            logger.warning(
                f"Remote sign-out failed: {e.message}",
                extra={"user_id": session.user_id, "error_code": e.code},
            )
        finally:
            self._drop_session()

    def on_auth_state_change(
        self, callback: AuthStateCallback,
    ) -> Callable[[], None]:
        self._listeners.append(callback)

        def unsubscribe() -> None:
            if callback in self._listeners:
                self._listeners.remove(callback)

        return unsubscribe

    async def aclose(self) -> None:
        await self.client.aclose()

    # ─── Session handling ────────────────────────────────────────

    async def _refresh(self, session: AuthSession) -> AuthSession | None:
        response = await self._request(
            "POST", "/auth/v1/token",
            params={"grant_type": "refresh_token"},
            json={"refresh_token": session.refresh_token},
        )
        if response.status_code in _REJECTED_STATUSES:
            logger.info(
                "Refresh token rejected, session ended",
                extra={"user_id": session.user_id},
            )
            self._drop_session()
            return None
        self._raise_for_status(response, "refresh")
        self._session = self._parse_session(response.json())
        self._notify(TOKEN_REFRESHED, self._session)
        return self._session

    def _parse_session(self, data: dict[str, Any]) -> AuthSession:
        now = self._clock()
        if data.get("expires_at"):
            expires_at = datetime.fromtimestamp(int(data["expires_at"]), timezone.utc)
        elif data.get("expires_in"):
            expires_at = now + timedelta(seconds=int(data["expires_in"]))
        else:
            expires_at = None
        return AuthSession(
            user=_parse_user(data["user"]),
            access_token=data["access_token"],
            authenticated_at=now,
            refresh_token=data.get("refresh_token"),
            expires_at=expires_at,
        )

    def _drop_session(self) -> None:
        self._session = None
        self._notify(SIGNED_OUT, None)

    def _notify(self, event: str, session: AuthSession | None) -> None:
        for callback in list(self._listeners):
            try:
                callback(event, session)
            except Exception as e:
                logger.error(
                    f"Auth state listener failed on {event}: {e}", exc_info=True,
                )

    # ─── Transport with retry ────────────────────────────────────

    async def _request(
        self,
        method: str,
        path: str,
        *,
        token: str | None = None,
        params: dict[str, str] | None = None,
        json: dict[str, Any] | None = None,
    ) -> httpx.Response:
        """Send with automatic retry on transient failures."""
        headers = {"Authorization": f"Bearer {token}"} if token else None
        for attempt in range(self.max_retries + 1):
            try:
                response = await self.client.request(
                    method, path, params=params, json=json, headers=headers,
                )
            except httpx.TimeoutException:
                raise AuthProviderError(f"{method} {path} timed out", "timeout")
            except httpx.TransportError as e:
                await self._handle_transient_error(e, attempt)
                continue

            if response.status_code == 429:
                await self._handle_rate_limit(response, attempt)
                continue
            if response.status_code >= 500:
                await self._handle_transient_error(
                    f"HTTP {response.status_code}", attempt,
                )
                continue
            return response
        # Unreachable: the handlers raise on the final attempt
        raise AuthProviderError(f"{method} {path} exhausted retries", "unknown")

    async def _handle_rate_limit(self, response: httpx.Response, attempt: int) -> None:
        retry_after_ms = self._extract_retry_after(response)
        if attempt >= self.max_retries:
            raise AuthProviderError(
                "Rate limit exceeded after retries",
                "rate_limit",
                retry_after_ms=retry_after_ms,
            )
        delay = retry_after_ms or self._backoff(attempt)
        logger.warning(
            f"Auth rate limit hit, retry after {delay}ms",
            extra={"attempt": attempt + 1},
        )
        await self._sleep(delay / 1000)

    async def _handle_transient_error(self, e: object, attempt: int) -> None:
        if attempt >= self.max_retries:
            raise AuthProviderError(
                f"Transient failure after {self.max_retries} retries: {e}",
                "connection_error",
            )
        delay = self._backoff(attempt)
        logger.warning(
            f"Auth transient error, retry after {delay}ms: {e}",
            extra={"attempt": attempt + 1},
        )
        await self._sleep(delay / 1000)

    def _raise_for_status(self, response: httpx.Response, operation: str) -> None:
        if response.status_code >= 400:
            raise AuthProviderError(
                f"{operation} returned HTTP {response.status_code}", "client_error",
            )

    def _backoff(self, attempt: int) -> int:
        """Exponential backoff with ±25% jitter."""
        delay = min(self.max_delay_ms, (2 ** attempt) * self.base_delay_ms)
        return int(delay * random.uniform(0.75, 1.25))  # nosec B311

    def _extract_retry_after(self, response: httpx.Response) -> int | None:
        """Retry-After header in milliseconds."""
        value = response.headers.get("retry-after")
        if value and value.isdigit():
            return int(value) * 1000
        return None
