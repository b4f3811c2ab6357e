"""
Session manager: composition of store, scheduler, executor and listener.

This is the object UI code holds. It reads as {session, user, loading}
and owns startup and teardown of the refresh machinery.
"""

import asyncio
import logging
import time
from typing import Awaitable, Callable, Optional

from ...config.provider import RefreshConfig
from ..auth.errors import (
    AuthRetryableError,
    AuthSessionMissingError,
    SessionLifecycleError,
    is_refresh_token_invalid,
)
from ..auth.interfaces import AuthProvider, NotificationSink
from ..auth.notifications import SIGN_OUT_FAILED_MESSAGE, LogNotificationSink
from .executor import RefreshAttempt, RefreshExecutor, RefreshOutcome, RetryRegistry
from .listener import AuthEventListener
from .models import AuthState, Session, User
from .scheduler import RefreshScheduler
from .store import SessionStore

logger = logging.getLogger(__name__)


class SessionManager:
    def __init__(
        self,
        provider: AuthProvider,
        notifier: Optional[NotificationSink] = None,
        config: Optional[RefreshConfig] = None,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        """
        Initialize session manager.

        Args:
            provider: External auth provider
            notifier: Sink for user-facing messages (logs by default)
            config: Refresh tuning, defaults apply when omitted
            clock: Monotonic clock for rate limiting
            sleep: Async sleep used for backoff
        """
        self.config = config or RefreshConfig()
        self.provider = provider
        self.notifier = notifier or LogNotificationSink()

        self.store = SessionStore()
        self.retries = RetryRegistry()
        self.executor = RefreshExecutor(
            provider,
            self.store,
            self.retries,
            self.notifier,
            max_retries=self.config.max_retries,
            rate_limit_seconds=self.config.rate_limit_seconds,
            backoff_base_seconds=self.config.backoff_base_seconds,
            backoff_cap_seconds=self.config.backoff_cap_seconds,
            notify_rate_limited=self.config.notify_rate_limited,
            clock=clock,
            sleep=sleep,
        )
        self.scheduler = RefreshScheduler(
            self.store, self._on_refresh_due, lead_time_seconds=self.config.lead_time_seconds
        )
        self.listener = AuthEventListener(provider, self.store, self.scheduler, self.retries)
        self._alive = False

    @property
    def state(self) -> AuthState:
        return self.store.state

    @property
    def session(self) -> Optional[Session]:
        return self.store.get()

    @property
    def user(self) -> Optional[User]:
        session = self.store.get()
        return session.user if session else None

    @property
    def loading(self) -> bool:
        return self.store.loading

    def snapshot(self) -> dict:
        """Read-only view for consumers."""
        session = self.store.get()
        return {
            "state": self.store.state.value,
            "loading": self.store.loading,
            "session": session.to_dict() if session else None,
            "user": session.user.to_dict() if session and session.user else None,
        }

    async def initialize(self) -> AuthState:
        """
        Load the existing session and start tracking provider events.

        Returns:
            Lifecycle state after loading

        Raises:
            SessionLifecycleError: If called more than once
        """
        if self.store.state != AuthState.UNINITIALIZED:
            raise SessionLifecycleError("Session manager already initialized")

        logger.info("Initializing session...")
        self._alive = True
        self.store.begin_loading()
        self.listener.start()

        try:
            session = await self.provider.get_session()
        except Exception as e:
            logger.error(f"Session initialization error: {e!r}")
            if is_refresh_token_invalid(e) or isinstance(e, AuthRetryableError):
                await self.executor.terminate()
            self.store.finish_loading()
            return self.store.state

        if not self._alive:
            return self.store.state

        if session is None:
            logger.info("No valid session found")
        else:
            logger.info(f"Found existing session for user {session.user_id}")
            self._apply(session, delay=self._restored_delay(session))

        self.store.finish_loading()
        return self.store.state

    async def refresh_now(self) -> RefreshAttempt:
        """
        Refresh the current session immediately (manual retry).

        Outside the manager's lifetime (before initialize, after dispose)
        nothing is refreshed and the attempt reports SKIPPED.

        Raises:
            AuthSessionMissingError: If signed out
        """
        if not self._alive:
            logger.debug("Manual refresh ignored: session manager not running")
            return RefreshAttempt(RefreshOutcome.SKIPPED)

        session = self.store.get()
        if session is None:
            raise AuthSessionMissingError()

        retry_count = self.retries.attempts(session.user_id) if session.user_id else 0
        attempt = await self.executor.attempt(session, retry_count)
        if not self._alive:
            logger.debug("Discarding manual refresh result after dispose")
            return RefreshAttempt(RefreshOutcome.SKIPPED)
        self._follow_up(session, attempt)
        return attempt

    async def sign_out(self) -> None:
        """Sign out at the provider and drop the local session."""
        session = self.store.get()
        if session is not None and session.user_id:
            self.retries.reset(session.user_id)

        try:
            await self.provider.sign_out()
        except Exception as e:
            logger.error(f"Sign out error: {e!r}")
            self.notifier.notify(SIGN_OUT_FAILED_MESSAGE, "error")
        finally:
            self.store.clear()

    def dispose(self) -> None:
        """
        Tear down: unsubscribe, disarm the timer, cancel in-flight refreshes.

        Refresh results arriving afterwards are discarded.
        """
        if not self._alive:
            return
        logger.info("Cleaning up session manager")
        self._alive = False
        self.executor.close()
        self.listener.dispose()
        self.scheduler.close()
        self.retries.clear()

    def _apply(self, session: Session, delay: Optional[float] = None) -> None:
        self.store.set(session)
        if session.user_id:
            self.retries.reset(session.user_id)
        self.scheduler.schedule(session, delay=delay)

    def _restored_delay(self, session: Session) -> float:
        """
        Refresh delay for a session loaded from storage.

        A stored session may be part-way through its lifetime, so its
        absolute expiry caps the delay computed from expires_in.
        """
        delay = self.scheduler.compute_delay(session)
        if session.expires_at is None:
            return delay
        remaining = session.expires_at - time.time()
        return max(0.0, min(delay, remaining - self.scheduler.lead_time_seconds))

    async def _on_refresh_due(self, session: Session, retry_count: int) -> None:
        if not self._alive:
            return
        attempt = await self.executor.attempt(session, retry_count)
        if not self._alive:
            logger.debug("Discarding refresh result after dispose")
            return
        self._follow_up(session, attempt)

    def _follow_up(self, session: Session, attempt: RefreshAttempt) -> None:
        if attempt.outcome == RefreshOutcome.REFRESHED and attempt.session is not None:
            self.scheduler.schedule(attempt.session)
        elif attempt.outcome == RefreshOutcome.FAILED:
            current = self.store.get()
            # Retry only if nothing replaced the session meanwhile.
            if current is not None and current.access_token == session.access_token:
                self.scheduler.schedule(current, retry_count=attempt.attempts, delay=0)
