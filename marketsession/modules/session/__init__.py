"""
Session Module - Black Box Interface

Purpose: Manage the client session lifecycle
Interface: SessionManager.initialize(), refresh_now(), sign_out(), dispose(), snapshot()
Hidden: Session storage, refresh timers, retry/backoff state, event handling

Replaceable with any session lifecycle that honours the same contract.
"""

from .executor import RefreshAttempt, RefreshExecutor, RefreshOutcome, RetryRegistry, RetryState
from .listener import AuthEventListener
from .manager import SessionManager
from .models import AuthState, Session, User
from .scheduler import PendingTimer, RefreshScheduler
from .store import SessionStore

__all__ = [
    "AuthEventListener",
    "AuthState",
    "PendingTimer",
    "RefreshAttempt",
    "RefreshExecutor",
    "RefreshOutcome",
    "RefreshScheduler",
    "RetryRegistry",
    "RetryState",
    "Session",
    "SessionManager",
    "SessionStore",
    "User",
]
