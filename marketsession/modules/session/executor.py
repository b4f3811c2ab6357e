"""
Session refresh execution with rate limiting and bounded backoff.

Retry bookkeeping lives in a RetryRegistry handed in by the caller, so
its lifetime is the lifetime of the owning SessionManager and tests can
inspect it directly.
"""

import asyncio
import logging
import time
from dataclasses import dataclass
from enum import Enum
from typing import Awaitable, Callable, Dict, Optional

from ..auth.errors import is_refresh_token_invalid
from ..auth.interfaces import AuthProvider, NotificationSink
from ..auth.notifications import (
    RATE_LIMITED_MESSAGE,
    SESSION_EXPIRED_MESSAGE,
    SIGN_OUT_FAILED_MESSAGE,
)
from .models import Session
from .store import SessionStore

logger = logging.getLogger(__name__)

MAX_RETRIES = 3
RATE_LIMIT_SECONDS = 1.0
BACKOFF_BASE_SECONDS = 1.0
BACKOFF_CAP_SECONDS = 30.0


@dataclass
class RetryState:
    """Consecutive refresh failures for one user."""

    attempt_count: int = 0
    last_attempt_at: float = 0.0


class RetryRegistry:
    """Per-user retry state and last-attempt times."""

    def __init__(self):
        self._states: Dict[str, RetryState] = {}
        self._last_attempt: Dict[str, float] = {}

    def get(self, user_id: str) -> Optional[RetryState]:
        return self._states.get(user_id)

    def attempts(self, user_id: str) -> int:
        state = self._states.get(user_id)
        return state.attempt_count if state else 0

    def record_failure(self, user_id: str, now: float) -> int:
        """Count one more failed refresh. Returns the new attempt count."""
        state = self._states.setdefault(user_id, RetryState())
        state.attempt_count += 1
        state.last_attempt_at = now
        return state.attempt_count

    def reset(self, user_id: str) -> None:
        """Forget failures for a user; the rate-limit window is kept."""
        self._states.pop(user_id, None)

    def seconds_since_attempt(self, user_id: str, now: float) -> Optional[float]:
        last = self._last_attempt.get(user_id)
        if last is None:
            return None
        return now - last

    def mark_attempt(self, user_id: str, now: float) -> None:
        self._last_attempt[user_id] = now

    def clear(self) -> None:
        """Drop everything, as on re-initialization."""
        self._states.clear()
        self._last_attempt.clear()


class RefreshOutcome(str, Enum):
    REFRESHED = "refreshed"
    RATE_LIMITED = "rate_limited"
    FAILED = "failed"
    TERMINATED = "terminated"
    SKIPPED = "skipped"


@dataclass
class RefreshAttempt:
    outcome: RefreshOutcome
    session: Optional[Session] = None
    attempts: int = 0


def backoff_delay(
    retry_count: int,
    base: float = BACKOFF_BASE_SECONDS,
    cap: float = BACKOFF_CAP_SECONDS,
) -> float:
    """Bounded exponential backoff in seconds."""
    return min(base * (2 ** max(0, retry_count)), cap)


class RefreshExecutor:
    def __init__(
        self,
        provider: AuthProvider,
        store: SessionStore,
        retries: RetryRegistry,
        notifier: NotificationSink,
        max_retries: int = MAX_RETRIES,
        rate_limit_seconds: float = RATE_LIMIT_SECONDS,
        backoff_base_seconds: float = BACKOFF_BASE_SECONDS,
        backoff_cap_seconds: float = BACKOFF_CAP_SECONDS,
        notify_rate_limited: bool = False,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        """
        Initialize refresh executor.

        Args:
            provider: External auth provider
            store: Session store written on success, cleared on terminal failure
            retries: Retry registry shared with the event listener
            notifier: Sink for user-facing messages
            max_retries: Consecutive failures before forced sign-out
            rate_limit_seconds: Minimum spacing between attempts per user
            backoff_base_seconds: Backoff for retry_count 0
            backoff_cap_seconds: Upper bound on backoff
            notify_rate_limited: Also tell the user when an attempt is suppressed
            clock: Monotonic clock, injectable for tests
            sleep: Async sleep, injectable for tests
        """
        self.provider = provider
        self.store = store
        self.retries = retries
        self.notifier = notifier
        self.max_retries = max_retries
        self.rate_limit_seconds = rate_limit_seconds
        self.backoff_base_seconds = backoff_base_seconds
        self.backoff_cap_seconds = backoff_cap_seconds
        self.notify_rate_limited = notify_rate_limited
        self._clock = clock
        self._sleep = sleep
        self._closed = False

    def close(self) -> None:
        """Stop writing results; attempts still running end as SKIPPED."""
        self._closed = True

    def _abandoned(self) -> bool:
        return self._closed or self.store.get() is None

    async def refresh(self, session: Session, retry_count: int = 0) -> Optional[Session]:
        """
        Refresh a session.

        Args:
            session: Session being refreshed
            retry_count: Failures so far, drives the backoff

        Returns:
            New session, or None if the attempt was suppressed, failed or
            ended the session
        """
        attempt = await self.attempt(session, retry_count)
        return attempt.session

    async def attempt(self, session: Session, retry_count: int = 0) -> RefreshAttempt:
        """
        Refresh a session and report how the attempt ended.

        Logic:
        1. Suppress attempts for the same user inside the rate-limit window
        2. Sleep for the backoff delay
        3. Call the provider, unless the session was signed out or the
           executor closed in the meantime
        4. Reset retry state on success; count the failure otherwise
        5. Sign out on an invalid refresh token or an exhausted retry budget
        """
        user_id = session.user_id if session else None
        if not user_id:
            logger.warning("Refresh skipped: session has no user id")
            return RefreshAttempt(RefreshOutcome.SKIPPED)

        now = self._clock()
        elapsed = self.retries.seconds_since_attempt(user_id, now)
        if elapsed is not None and elapsed < self.rate_limit_seconds:
            logger.info(f"Rate limited: refresh for user {user_id} attempted {elapsed:.2f}s ago")
            if self.notify_rate_limited:
                self.notifier.notify(RATE_LIMITED_MESSAGE, "warning")
            return RefreshAttempt(RefreshOutcome.RATE_LIMITED, attempts=self.retries.attempts(user_id))
        self.retries.mark_attempt(user_id, now)

        delay = backoff_delay(retry_count, self.backoff_base_seconds, self.backoff_cap_seconds)
        logger.debug(f"Refreshing session for user {user_id} after {delay:.1f}s backoff")
        await self._sleep(delay)

        if self._abandoned():
            logger.info(f"Refresh for user {user_id} abandoned: signed out or closed during backoff")
            return RefreshAttempt(RefreshOutcome.SKIPPED)

        try:
            new_session = await self.provider.refresh_session()
        except Exception as e:
            if self._abandoned():
                logger.info(f"Ignoring refresh error for user {user_id} after sign-out: {e!r}")
                return RefreshAttempt(RefreshOutcome.SKIPPED)

            if is_refresh_token_invalid(e):
                logger.warning(f"Refresh token rejected for user {user_id}: {e}")
                await self.terminate(user_id)
                return RefreshAttempt(RefreshOutcome.TERMINATED)

            attempts = self.retries.record_failure(user_id, self._clock())
            logger.error(f"Session refresh failed (attempt {attempts}): {e!r}")
            if attempts >= self.max_retries:
                await self.terminate(user_id)
                return RefreshAttempt(RefreshOutcome.TERMINATED, attempts=attempts)
            return RefreshAttempt(RefreshOutcome.FAILED, attempts=attempts)

        if self._abandoned():
            logger.info(f"Discarding refreshed session for user {user_id}: signed out meanwhile")
            return RefreshAttempt(RefreshOutcome.SKIPPED)

        if new_session is None:
            logger.error("No session returned after refresh")
            await self.terminate(user_id)
            return RefreshAttempt(RefreshOutcome.TERMINATED)

        self.retries.reset(user_id)
        self.store.set(new_session)
        logger.info(f"Session refreshed for user {user_id}")
        return RefreshAttempt(RefreshOutcome.REFRESHED, session=new_session)

    async def terminate(self, user_id: Optional[str] = None) -> None:
        """
        End the session after a terminal failure.

        Signs out at the provider, clears local state and notifies the user
        once. A failing sign-out still clears local state.
        """
        if user_id:
            self.retries.reset(user_id)

        try:
            await self.provider.sign_out()
        except Exception as e:
            logger.error(f"Sign out error: {e!r}")
            self.store.clear()
            self.notifier.notify(SIGN_OUT_FAILED_MESSAGE, "error")
            return

        self.store.clear()
        self.notifier.notify(SESSION_EXPIRED_MESSAGE, "error")
