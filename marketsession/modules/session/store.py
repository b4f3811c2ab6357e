import logging
from typing import Callable, List, Optional

from ..auth.errors import InvalidTransitionError
from .models import AuthState, Session

logger = logging.getLogger(__name__)

# Allowed lifecycle transitions; anything else is a programming error.
_TRANSITIONS = {
    AuthState.UNINITIALIZED: {AuthState.LOADING},
    AuthState.LOADING: {AuthState.AUTHENTICATED, AuthState.ANONYMOUS},
    AuthState.AUTHENTICATED: {AuthState.AUTHENTICATED, AuthState.ANONYMOUS},
    AuthState.ANONYMOUS: {AuthState.AUTHENTICATED},
}


class SessionStore:
    def __init__(self):
        """
        Initialize an empty session store.

        The store holds either one live session or nothing, together with
        the lifecycle state derived from it.
        """
        self._session: Optional[Session] = None
        self._state = AuthState.UNINITIALIZED
        self._clear_hooks: List[Callable[[], None]] = []

    @property
    def state(self) -> AuthState:
        return self._state

    @property
    def loading(self) -> bool:
        return self._state in (AuthState.UNINITIALIZED, AuthState.LOADING)

    def add_clear_hook(self, hook: Callable[[], None]) -> None:
        """Register a callable run every time a live session is cleared."""
        self._clear_hooks.append(hook)

    def get(self) -> Optional[Session]:
        """Get the current session, or None when signed out."""
        return self._session

    def set(self, session: Optional[Session]) -> None:
        """
        Replace the current session.

        Args:
            session: New session, or None to clear

        Raises:
            InvalidTransitionError: If the store cannot accept a session now
        """
        if session is None:
            self.clear()
            return

        self._transition(AuthState.AUTHENTICATED)
        self._session = session

    def clear(self) -> None:
        """
        Drop the current session.

        Clearing an already empty store is a no-op, except that a store
        still loading settles as anonymous.
        """
        if self._session is None:
            if self._state == AuthState.LOADING:
                self._transition(AuthState.ANONYMOUS)
            return

        self._session = None
        self._transition(AuthState.ANONYMOUS)
        for hook in self._clear_hooks:
            hook()

    def begin_loading(self) -> None:
        """Mark the start of session initialization."""
        self._transition(AuthState.LOADING)

    def finish_loading(self) -> None:
        """Settle as anonymous if initialization produced no session."""
        if self._state == AuthState.LOADING:
            self._transition(AuthState.ANONYMOUS)

    def _transition(self, target: AuthState) -> None:
        if target not in _TRANSITIONS[self._state]:
            raise InvalidTransitionError(self._state, target)
        if target != self._state:
            logger.debug(f"Session state {self._state.value} -> {target.value}")
        self._state = target
