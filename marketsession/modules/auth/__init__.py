"""
Authentication Module - Black Box Interface

Purpose: Talk to the external auth provider and surface notifications
Interface: AuthProvider (get_session, refresh_session, sign_out, on_auth_state_change),
           NotificationSink (notify)
Hidden: Wire protocol, token formats, event fan-out

This module can be replaced with any other provider (hosted, in-memory,
test double) without affecting the session module.
"""

from .errors import (
    AuthApiError,
    AuthError,
    AuthRetryableError,
    AuthSessionMissingError,
    InvalidTransitionError,
    SessionLifecycleError,
    is_refresh_token_invalid,
)
from .interfaces import SESSION_EVENTS, SIGN_OUT_EVENTS, AuthEvent, AuthProvider, NotificationSink
from .notifications import BufferedNotificationSink, LogNotificationSink
from .gotrue import GoTrueAuthProvider
from .memory_provider import InMemoryAuthProvider

__all__ = [
    "AuthApiError",
    "AuthError",
    "AuthEvent",
    "AuthProvider",
    "AuthRetryableError",
    "AuthSessionMissingError",
    "BufferedNotificationSink",
    "GoTrueAuthProvider",
    "InMemoryAuthProvider",
    "InvalidTransitionError",
    "LogNotificationSink",
    "NotificationSink",
    "SESSION_EVENTS",
    "SIGN_OUT_EVENTS",
    "SessionLifecycleError",
    "is_refresh_token_invalid",
]
