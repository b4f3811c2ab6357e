"""
Proactive token refresh scheduling.

The scheduler owns a single PendingTimer. Arming always disarms the
previous timer first, so two refresh timers are never live at once.
"""

import asyncio
import logging
from typing import Awaitable, Callable, Optional, Set

from .models import Session
from .store import SessionStore

logger = logging.getLogger(__name__)

DEFAULT_LEAD_TIME_SECONDS = 300

RefreshCallback = Callable[[Session, int], Awaitable[None]]


class PendingTimer:
    """Owned handle over one armed event-loop timer."""

    def __init__(self, loop: asyncio.AbstractEventLoop, delay: float, callback: Callable[[], None]):
        self.delay = delay
        self._fired = False
        self._handle = loop.call_later(delay, self._fire, callback)

    def _fire(self, callback: Callable[[], None]) -> None:
        self._fired = True
        callback()

    @property
    def active(self) -> bool:
        return not self._fired and not self._handle.cancelled()

    def when(self) -> float:
        """Loop time at which the timer fires."""
        return self._handle.when()

    def cancel(self) -> None:
        self._handle.cancel()


class RefreshScheduler:
    def __init__(
        self,
        store: SessionStore,
        on_due: RefreshCallback,
        lead_time_seconds: int = DEFAULT_LEAD_TIME_SECONDS,
    ):
        """
        Initialize refresh scheduler.

        Args:
            store: Session store; clearing it disarms the timer
            on_due: Coroutine function run with (session, retry_count) when the timer fires
            lead_time_seconds: Refresh this long before the token expires
        """
        self.lead_time_seconds = lead_time_seconds
        self._on_due = on_due
        self._timer: Optional[PendingTimer] = None
        self._tasks: Set[asyncio.Task] = set()

        store.add_clear_hook(self.cancel)

    @property
    def pending(self) -> Optional[PendingTimer]:
        """The armed timer, if any."""
        if self._timer is not None and self._timer.active:
            return self._timer
        return None

    def compute_delay(self, session: Session) -> float:
        """Seconds until the session should be refreshed, never negative."""
        return float(max(0, session.expires_in - self.lead_time_seconds))

    def schedule(
        self,
        session: Session,
        retry_count: int = 0,
        delay: Optional[float] = None,
    ) -> PendingTimer:
        """
        Arm the refresh timer for a session, replacing any armed timer.

        Args:
            session: Live session to refresh
            retry_count: Retry count handed to the refresh callback
            delay: Override for the computed delay (seconds)

        Returns:
            The newly armed timer
        """
        self.cancel()

        if delay is None:
            delay = self.compute_delay(session)

        loop = asyncio.get_running_loop()
        self._timer = PendingTimer(loop, delay, lambda: self._fire(session, retry_count))
        logger.info(f"Session refresh for user {session.user_id} scheduled in {delay:.0f}s")
        return self._timer

    def cancel(self) -> None:
        """Disarm the pending timer. Safe to call when nothing is armed."""
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    def close(self) -> None:
        """Disarm the timer and cancel refreshes started by it."""
        self.cancel()
        for task in list(self._tasks):
            task.cancel()

    def _fire(self, session: Session, retry_count: int) -> None:
        self._timer = None
        task = asyncio.get_running_loop().create_task(self._on_due(session, retry_count))
        self._tasks.add(task)
        task.add_done_callback(self._task_done)

    def _task_done(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if not task.cancelled() and task.exception() is not None:
            logger.error(f"Scheduled session refresh failed: {task.exception()!r}")
