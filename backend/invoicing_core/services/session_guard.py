"""Session Guard — idle-timeout state machine over ActivityClock and the auth provider.

Invariants:
    - At most one idle timer is armed; every (re)arm bumps the timer generation
    - A check whose generation was superseded (activity, logout, re-login) is discarded
    - Forced logout only when BOTH local and remote activity exceed the timeout
    - Remote read failure never logs the user out (fail open, re-arm a full window)
    - Teardown order: cancel timer → clear session keys → sign out → reset clock
    - logout() always ends UNAUTHENTICATED

Design Decisions:
    - Timer is an asyncio.Task sleeping on an injectable sleep(): tests drive
      check_expiry() directly with a fake clock instead of waiting
    - Session keys cleared before sign-out: the preference store resolves the
      user through the provider, so it must still see the session
    - State goes UNAUTHENTICATED before sign_out() so the provider's own
      SIGNED_OUT callback is recognised as ours and ignored
"""

import asyncio
import inspect
import logging
from datetime import datetime, timedelta
from typing import Any, Awaitable, Callable, Sequence

from invoicing_core.core.domain_types import (
    DEFAULT_SESSION_TIMEOUT, SESSION_SCOPED_KEYS,
    AuthSession, AuthState, LogoutReason, Severity, Signal, UserId, UserProfile,
)
from invoicing_core.core.errors import InvoicingError
from invoicing_core.core.repository_protocols import (
    ActivityRepository, AuthProvider, KeyValueStore,
)
from invoicing_core.core.session_expiry import decide_expiry, is_expired
from invoicing_core.services.activity_clock import ActivityClock
from invoicing_core.services.event_bus import EventBus

logger = logging.getLogger(__name__)

TIMEOUT_NOTICE = "Your session has expired. Please log in again."
ADMIN_POSITION = "Admin"
DEFAULT_POSITION = "Invoicing Associate"

NoticeSink = Callable[[str, Severity], Any]


def default_position(role: str | None) -> str:
    return ADMIN_POSITION if role == "admin" else DEFAULT_POSITION


def _log_notice(message: str, severity: Severity) -> None:
    logger.warning(message, extra={"state": severity.value})


class SessionGuard:
    """Enforces idle-timeout logout for the signed-in user."""

    def __init__(
        self,
        auth: AuthProvider,
        clock: ActivityClock,
        activity_repo: ActivityRepository,
        preferences: KeyValueStore,
        bus: EventBus,
        *,
        timeout: timedelta = DEFAULT_SESSION_TIMEOUT,
        session_scoped_keys: Sequence[str] = SESSION_SCOPED_KEYS,
        notify: NoticeSink | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.auth = auth
        self.clock = clock
        self.activity_repo = activity_repo
        self.preferences = preferences
        self.bus = bus
        self.timeout = timeout
        self.session_scoped_keys = tuple(session_scoped_keys)
        self._notify = notify or _log_notice
        self._sleep = sleep

        self.state = AuthState.UNAUTHENTICATED
        self.session: AuthSession | None = None
        self.last_logout_reason: LogoutReason | None = None

        self._timer: asyncio.Task | None = None
        self._generation = 0
        self._tearing_down = False
        self._unsubscribe_auth: Callable[[], None] | None = None
        self._background: set[asyncio.Task] = set()

    @property
    def is_authenticated(self) -> bool:
        return self.state != AuthState.UNAUTHENTICATED

    @property
    def user_id(self) -> UserId | None:
        return self.session.user_id if self.session else None

    @property
    def timer_armed(self) -> bool:
        return self._timer is not None and not self._timer.done()

    # ─── Lifecycle ───────────────────────────────────────────────

    async def start(self) -> AuthState:
        """Subscribe to the provider and adopt its current session, if live."""
        if self._unsubscribe_auth is None:
            self._unsubscribe_auth = self.auth.on_auth_state_change(
                self._on_auth_event,
            )
        try:
            session = await self.auth.get_session()
        except InvoicingError as e:
            logger.warning(
                f"Could not read session at startup: {e.message}",
                extra=e.log_extra(),
            )
            return self.state
        if session is None or self.is_authenticated:
            return self.state

        remote = await self._read_remote_activity(session.user_id)
        if remote is not None and is_expired(remote, self.clock.now(), self.timeout):
            logger.info(
                "Stale session found at startup",
                extra={"user_id": session.user_id},
            )
            self.session = session
            self.state = AuthState.AUTHENTICATED
            self.clock.bind_user(session.user_id)
            await self._force_logout()
            return self.state

        self._authenticate(session)
        return self.state

    async def stop(self) -> None:
        self._cancel_timer()
        self._generation += 1
        if self._unsubscribe_auth is not None:
            self._unsubscribe_auth()
            self._unsubscribe_auth = None
        if self._background:
            await asyncio.gather(*list(self._background), return_exceptions=True)
        await self.clock.drain()

    # ─── Operations ──────────────────────────────────────────────

    async def complete_login(self, profile: UserProfile) -> bool:
        """Store the signed-in user's profile keys, authenticate and emit LOGIN."""
        try:
            session = await self.auth.get_session()
        except InvoicingError as e:
            logger.warning(f"Login not completed: {e.message}", extra=e.log_extra())
            return False
        if session is None:
            logger.warning("Login not completed: provider reports no session")
            return False

        role = profile.role or session.user.role or "user"
        values = {
            "userRole": role,
            "isLoggedIn": "true",
            "userEmail": profile.email,
            "userId": profile.user_id or session.user_id,
            "userName": profile.name or profile.email.split("@")[0],
            "userPhone": profile.phone or "",
            "userPosition": profile.position or default_position(role),
            "lastLogin": self.clock.now().isoformat(),
        }
        for key, value in values.items():
            await self.preferences.set(key, value)

        if self.is_authenticated and self.user_id == session.user_id:
            self.session = session
            self.record_activity()
        else:
            self._authenticate(session)
        self.bus.emit(Signal.LOGIN)
        return True

    def record_activity(self) -> bool:
        """Route change / detected activity: touch and re-arm. False when signed out."""
        if not self.is_authenticated or self._tearing_down:
            return False
        self.state = AuthState.AUTHENTICATED
        self.clock.touch()
        self._arm(self.timeout)
        return True

    async def check_expiry(self, generation: int | None = None) -> bool:
        """Idle timer fired. Returns True when the session was force-logged-out."""
        if not self.is_authenticated or self._tearing_down:
            return False
        if generation is not None and generation != self._generation:
            return False
        gen = self._generation
        user_id = self.user_id
        self.state = AuthState.TIMING_OUT

        try:
            remote = await self.activity_repo.get_last_activity(user_id)
        except InvoicingError as e:
            logger.warning(
                f"Remote activity read failed, keeping session: {e.message}",
                extra={"user_id": user_id, "error_code": e.code},
            )
            if self._is_current(gen):
                self.state = AuthState.AUTHENTICATED
                self._arm(self.timeout)
            return False

        if not self._is_current(gen):
            logger.debug("Superseded expiry check discarded", extra={"user_id": user_id})
            return False

        decision = decide_expiry(
            self.clock.last_activity_at, remote, self.clock.now(), self.timeout,
        )
        if decision.logout:
            await self._force_logout()
            return True
        self.state = AuthState.AUTHENTICATED
        self._arm(decision.rearm_after)
        return False

    async def logout(self) -> None:
        await self._teardown(LogoutReason.EXPLICIT)

    # ─── Internals ───────────────────────────────────────────────

    def _authenticate(self, session: AuthSession) -> None:
        self.session = session
        self.state = AuthState.AUTHENTICATED
        self.clock.bind_user(session.user_id)
        self.clock.touch()
        self._arm(self.timeout)
        logger.info(
            "Session authenticated",
            extra={"user_id": session.user_id, "state": self.state.value},
        )

    def _is_current(self, gen: int) -> bool:
        return (
            gen == self._generation
            and self.state == AuthState.TIMING_OUT
            and not self._tearing_down
        )

    def _arm(self, delay: timedelta) -> None:
        self._cancel_timer()
        self._generation += 1
        self._timer = asyncio.create_task(self._run_timer(delay, self._generation))

    async def _run_timer(self, delay: timedelta, generation: int) -> None:
        await self._sleep(delay.total_seconds())
        try:
            await self.check_expiry(generation)
        except Exception as e:
            logger.error(
                f"Expiry check crashed: {e}",
                extra={"user_id": self.user_id}, exc_info=True,
            )

    def _cancel_timer(self) -> None:
        timer = self._timer
        self._timer = None
        # The timer may be the task running this teardown / re-arm
        if timer is not None and timer is not asyncio.current_task():
            timer.cancel()

    async def _read_remote_activity(self, user_id: UserId) -> datetime | None:
        try:
            return await self.activity_repo.get_last_activity(user_id)
        except InvoicingError as e:
            logger.warning(
                f"Remote activity read failed at startup: {e.message}",
                extra={"user_id": user_id, "error_code": e.code},
            )
            return None

    async def _force_logout(self) -> None:
        await self._teardown(LogoutReason.TIMEOUT)
        await self._deliver_notice(TIMEOUT_NOTICE, Severity.WARNING)

    async def _teardown(self, reason: LogoutReason) -> None:
        if self._tearing_down:
            return
        self._tearing_down = True
        user_id = self.user_id
        try:
            self._cancel_timer()
            self._generation += 1
            for key in self.session_scoped_keys:
                await self.preferences.remove(key)
            self.state = AuthState.UNAUTHENTICATED
            self.session = None
            self.last_logout_reason = reason
            try:
                await self.auth.sign_out()
            except InvoicingError as e:
                logger.warning(
                    f"Sign-out failed: {e.message}",
                    extra={"user_id": user_id, "error_code": e.code},
                )
            self.clock.reset()
        finally:
            self._tearing_down = False
        logger.info(
            f"Session ended ({reason.value})",
            extra={"user_id": user_id, "state": self.state.value},
        )

    async def _deliver_notice(self, message: str, severity: Severity) -> None:
        try:
            result = self._notify(message, severity)
            if inspect.isawaitable(result):
                await result
        except Exception as e:
            logger.error(f"Notice delivery failed: {e}", exc_info=True)

    def _on_auth_event(self, event: str, session: AuthSession | None) -> None:
        if self._tearing_down:
            return
        if session is None:
            if self.is_authenticated:
                logger.info(
                    f"Provider ended the session ({event})",
                    extra={"user_id": self.user_id},
                )
                self._spawn(self._teardown(LogoutReason.EXTERNAL))
            return
        if not self.is_authenticated:
            self._authenticate(session)
        elif session.user_id == self.user_id:
            self.session = session

    def _spawn(self, coro) -> None:
        task = asyncio.create_task(coro)
        self._background.add(task)
        task.add_done_callback(self._background.discard)
