import logging
from typing import Optional

from ..auth.interfaces import AuthEvent, AuthProvider, Unsubscribe
from .executor import RetryRegistry
from .models import Session
from .scheduler import RefreshScheduler
from .store import SessionStore

logger = logging.getLogger(__name__)


class AuthEventListener:
    def __init__(
        self,
        provider: AuthProvider,
        store: SessionStore,
        scheduler: RefreshScheduler,
        retries: RetryRegistry,
    ):
        """
        Initialize auth event listener.

        Args:
            provider: Auth provider to subscribe to
            store: Session store kept in sync with provider events
            scheduler: Re-armed whenever an event brings a session
            retries: Retry state reset on session events
        """
        self.provider = provider
        self.store = store
        self.scheduler = scheduler
        self.retries = retries
        self._unsubscribe: Optional[Unsubscribe] = None
        self._alive = False

    @property
    def alive(self) -> bool:
        return self._alive

    def start(self) -> None:
        """Subscribe to provider events. Calling twice subscribes once."""
        if self._unsubscribe is not None:
            return
        self._alive = True
        self._unsubscribe = self.provider.on_auth_state_change(self.handle_event)
        logger.info("Subscribed to auth state changes")

    def dispose(self) -> None:
        """Unsubscribe and disarm the refresh timer. Later events are ignored."""
        self._alive = False
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None
            logger.info("Unsubscribed from auth state changes")
        self.scheduler.cancel()

    def handle_event(self, event: str, session: Optional[Session]) -> None:
        """
        Apply one provider event.

        Args:
            event: Event name as sent by the provider
            session: Session attached to the event, if any
        """
        if not self._alive:
            logger.debug(f"Ignoring auth event {event} after dispose")
            return

        try:
            auth_event = AuthEvent(event)
        except ValueError:
            logger.warning(f"Ignoring unknown auth event: {event}")
            return

        logger.info(f"Auth state changed: {auth_event.value}")

        if auth_event.ends_session:
            current = self.store.get()
            if current is not None and current.user_id:
                self.retries.reset(current.user_id)
            self.store.clear()
        elif auth_event.carries_session and session is not None:
            self.store.set(session)
            if session.user_id:
                self.retries.reset(session.user_id)
            self.scheduler.schedule(session)
