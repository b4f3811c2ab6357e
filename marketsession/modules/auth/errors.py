"""Auth and session lifecycle errors."""

from typing import Optional

TERMINAL_ERROR_CODES = frozenset(
    {
        "refresh_token_not_found",
        "refresh_token_already_used",
        "invalid_grant",
        "session_not_found",
    }
)

TERMINAL_MESSAGE_MARKERS = (
    "refresh_token_not_found",
    "invalid refresh token",
)


class AuthError(Exception):
    """Base class for auth provider failures."""

    def __init__(self, message: str, code: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.code = code


class AuthApiError(AuthError):
    """The auth provider answered with an error response."""

    def __init__(self, message: str, status: int, code: Optional[str] = None):
        super().__init__(message, code)
        self.status = status

    def __repr__(self) -> str:
        return f"AuthApiError(status={self.status}, code={self.code!r}, message={self.message!r})"


class AuthRetryableError(AuthError):
    """Transport-level failure reaching the auth provider."""


class AuthSessionMissingError(AuthError):
    """An operation needed a session and none was held."""

    def __init__(self, message: str = "Auth session missing"):
        super().__init__(message, "session_missing")


class SessionLifecycleError(Exception):
    """Misuse of the session lifecycle."""


class InvalidTransitionError(SessionLifecycleError):
    """A lifecycle transition outside the allowed state machine."""

    def __init__(self, current, target):
        super().__init__(f"Invalid session transition: {current.value} -> {target.value}")
        self.current = current
        self.target = target


def is_refresh_token_invalid(error: BaseException) -> bool:
    """
    Check whether a provider error means the refresh token is unusable.

    Such errors are terminal: retrying cannot succeed.

    Args:
        error: Exception raised by the auth provider

    Returns:
        True if the refresh token was rejected as missing or invalid
    """
    code = getattr(error, "code", None)
    if code and code in TERMINAL_ERROR_CODES:
        return True

    message = str(getattr(error, "message", None) or error).lower()
    return any(marker in message for marker in TERMINAL_MESSAGE_MARKERS)
