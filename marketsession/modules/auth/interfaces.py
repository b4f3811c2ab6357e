"""Auth provider interfaces following Black Box Design principles."""
from enum import Enum
from typing import TYPE_CHECKING, Callable, Optional, Protocol

if TYPE_CHECKING:
    from ..session.models import Session


class AuthEvent(str, Enum):
    """Session-change notifications pushed by the auth provider."""

    INITIAL_SESSION = "INITIAL_SESSION"
    SIGNED_IN = "SIGNED_IN"
    SIGNED_OUT = "SIGNED_OUT"
    TOKEN_REFRESHED = "TOKEN_REFRESHED"
    USER_UPDATED = "USER_UPDATED"
    USER_DELETED = "USER_DELETED"
    PASSWORD_RECOVERY = "PASSWORD_RECOVERY"
    MFA_CHALLENGE_VERIFIED = "MFA_CHALLENGE_VERIFIED"

    @property
    def ends_session(self) -> bool:
        return self in SIGN_OUT_EVENTS

    @property
    def carries_session(self) -> bool:
        return self in SESSION_EVENTS


SIGN_OUT_EVENTS = frozenset({AuthEvent.SIGNED_OUT, AuthEvent.USER_DELETED})

SESSION_EVENTS = frozenset(
    {
        AuthEvent.SIGNED_IN,
        AuthEvent.TOKEN_REFRESHED,
        AuthEvent.USER_UPDATED,
        AuthEvent.PASSWORD_RECOVERY,
        AuthEvent.MFA_CHALLENGE_VERIFIED,
        AuthEvent.INITIAL_SESSION,
    }
)

AuthStateCallback = Callable[[str, Optional["Session"]], None]
Unsubscribe = Callable[[], None]


class AuthProvider(Protocol):
    """Protocol for the external auth provider - allows swappable implementations."""

    async def get_session(self) -> Optional["Session"]:
        """
        Get the session currently held by the provider.

        Returns:
            Session or None when signed out
        """
        ...

    async def refresh_session(self) -> Optional["Session"]:
        """
        Exchange the held refresh token for a new session.

        Returns:
            New Session (None if the provider returned no session)

        Raises:
            AuthError: On provider or transport failure
        """
        ...

    async def sign_out(self) -> None:
        """Revoke the held session."""
        ...

    def on_auth_state_change(self, callback: AuthStateCallback) -> Unsubscribe:
        """
        Subscribe to session-change events.

        Args:
            callback: Called with (event name, session or None)

        Returns:
            Callable that removes the subscription
        """
        ...


class NotificationSink(Protocol):
    """Protocol for user-facing notifications (toast layer)."""

    def notify(self, message: str, level: str = "error") -> None:
        """Deliver a human-readable message. Fire and forget."""
        ...
