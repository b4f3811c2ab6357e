"""
In-memory auth provider for local runs and testing.

This module provides a provider that simulates the behavior of the
hosted auth service (token issue, refresh token rotation, auth events)
without any network access.
"""

import dataclasses
import secrets
import time
import uuid
from collections import deque
from datetime import UTC, datetime, timedelta
from typing import Deque, Dict, Optional

import jwt

from ..session.models import Session, User
from .errors import AuthApiError, AuthSessionMissingError
from .interfaces import AuthEvent, AuthStateCallback, Unsubscribe


class InMemoryAuthProvider:
    """
    In-memory auth provider.

    Supports:
    - Password-less sign-in for known users
    - Refresh token rotation (a used refresh token is rejected)
    - Scripted refresh failures
    - Auth event subscriptions
    """

    def __init__(self, issuer: str = "http://localhost:9999/auth/v1", expires_in: int = 3600):
        """Initialize the in-memory provider."""
        self.issuer = issuer
        self.expires_in = expires_in
        self.signing_secret = secrets.token_urlsafe(32)

        self.users: Dict[str, User] = {
            "buyer@example.com": User(id="user-123", email="buyer@example.com", role="authenticated"),
            "admin@example.com": User(
                id="admin-456",
                email="admin@example.com",
                role="authenticated",
                app_metadata={"roles": ["admin"]},
            ),
        }

        # refresh token -> user email
        self.refresh_tokens: Dict[str, str] = {}
        self.refresh_calls = 0
        self.sign_out_calls = 0

        self._session: Optional[Session] = None
        self._failures: Deque[Exception] = deque()
        self._subscribers: Dict[str, AuthStateCallback] = {}

    def create_access_token(self, user: User, expires_in: int) -> str:
        """Create a signed access token for the user."""
        now = datetime.now(UTC)
        claims = {
            "iss": self.issuer,
            "sub": user.id,
            "aud": "authenticated",
            "email": user.email,
            "role": user.role,
            "iat": int(now.timestamp()),
            "exp": int((now + timedelta(seconds=expires_in)).timestamp()),
            "session_id": str(uuid.uuid4()),
        }
        return jwt.encode(claims, self.signing_secret, algorithm="HS256")

    def issue_session(self, email: str, expires_in: Optional[int] = None) -> Session:
        """Issue a fresh session for a known user."""
        user = self.users.get(email)
        if not user:
            raise AuthApiError(f"User {email} not found", 400, "user_not_found")

        expires_in = expires_in if expires_in is not None else self.expires_in
        refresh_token = secrets.token_urlsafe(16)
        self.refresh_tokens[refresh_token] = email

        issued_at = time.time()
        return Session(
            access_token=self.create_access_token(user, expires_in),
            refresh_token=refresh_token,
            user_id=user.id,
            expires_in=expires_in,
            issued_at=issued_at,
            expires_at=int(issued_at) + expires_in,
            user=user,
        )

    def seed_session(self, email: str, expires_in: Optional[int] = None, age_seconds: int = 0) -> Session:
        """
        Hold a session without emitting events, as if restored from storage.

        age_seconds backdates the session, as if it was stored that long ago.
        """
        session = self.issue_session(email, expires_in)
        if age_seconds:
            session = dataclasses.replace(
                session,
                issued_at=session.issued_at - age_seconds,
                expires_at=session.expires_at - age_seconds,
            )
        self._session = session
        return self._session

    async def sign_in(self, email: str, expires_in: Optional[int] = None) -> Session:
        """Sign a user in and emit SIGNED_IN."""
        self._session = self.issue_session(email, expires_in)
        self._notify(AuthEvent.SIGNED_IN, self._session)
        return self._session

    def fail_next_refresh(self, error: Exception, times: int = 1) -> None:
        """Make the next refresh calls raise error."""
        for _ in range(times):
            self._failures.append(error)

    def revoke_refresh_tokens(self) -> None:
        """Invalidate every outstanding refresh token."""
        self.refresh_tokens.clear()

    async def delete_user(self, email: str) -> None:
        """Remove a user; its session ends with USER_DELETED."""
        user = self.users.pop(email, None)
        if user and self._session and self._session.user_id == user.id:
            self._session = None
            self._notify(AuthEvent.USER_DELETED, None)

    async def get_session(self) -> Optional[Session]:
        return self._session

    async def refresh_session(self) -> Optional[Session]:
        self.refresh_calls += 1
        if self._failures:
            raise self._failures.popleft()

        if self._session is None:
            raise AuthSessionMissingError()

        email = self.refresh_tokens.pop(self._session.refresh_token, None)
        if email is None:
            raise AuthApiError(
                "Invalid Refresh Token: Refresh Token Not Found", 400, "refresh_token_not_found"
            )

        self._session = self.issue_session(email)
        self._notify(AuthEvent.TOKEN_REFRESHED, self._session)
        return self._session

    async def sign_out(self) -> None:
        self.sign_out_calls += 1
        if self._session is not None:
            self.refresh_tokens.pop(self._session.refresh_token, None)
        self._session = None
        self._notify(AuthEvent.SIGNED_OUT, None)

    def on_auth_state_change(self, callback: AuthStateCallback) -> Unsubscribe:
        subscription_id = str(uuid.uuid4())
        self._subscribers[subscription_id] = callback

        def unsubscribe() -> None:
            self._subscribers.pop(subscription_id, None)

        return unsubscribe

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)

    def emit(self, event: str, session: Optional[Session] = None) -> None:
        """Push an arbitrary event to subscribers."""
        for callback in list(self._subscribers.values()):
            callback(event, session)

    def _notify(self, event: AuthEvent, session: Optional[Session]) -> None:
        self.emit(event.value, session)
