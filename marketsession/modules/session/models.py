"""
Session data types shared by the session lifecycle components.

A Session is an immutable credential bundle issued by the auth provider.
It is replaced wholesale on every sign-in or refresh, never patched.
"""

import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Optional

DEFAULT_EXPIRES_IN = 3600


class AuthState(str, Enum):
    """Lifecycle state of the client session."""

    UNINITIALIZED = "uninitialized"
    LOADING = "loading"
    AUTHENTICATED = "authenticated"
    ANONYMOUS = "anonymous"


@dataclass(frozen=True)
class User:
    """Identity attached to a session."""

    id: str
    email: Optional[str] = None
    role: Optional[str] = None
    app_metadata: Dict[str, Any] = field(default_factory=dict)
    user_metadata: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "email": self.email,
            "role": self.role,
            "app_metadata": dict(self.app_metadata),
            "user_metadata": dict(self.user_metadata),
        }


@dataclass(frozen=True)
class Session:
    """
    Authenticated session issued by the auth provider.

    Only the expiry bookkeeping is interpreted here; tokens are opaque.
    """

    access_token: str
    refresh_token: str
    user_id: Optional[str]
    expires_in: int = DEFAULT_EXPIRES_IN
    issued_at: float = field(default_factory=time.time)
    expires_at: Optional[int] = None
    token_type: str = "bearer"
    user: Optional[User] = None

    @classmethod
    def from_payload(
        cls,
        payload: Dict[str, Any],
        issued_at: Optional[float] = None,
        default_expires_in: int = DEFAULT_EXPIRES_IN,
    ) -> "Session":
        """
        Build a session from a provider token payload.

        Args:
            payload: Dict with access_token, refresh_token, expires_in and user
            issued_at: Issue timestamp, defaults to now
            default_expires_in: Lifetime assumed when the payload has no expires_in

        Returns:
            Session
        """
        user_data = payload.get("user") or {}
        user = None
        if user_data.get("id"):
            user = User(
                id=user_data["id"],
                email=user_data.get("email"),
                role=user_data.get("role"),
                app_metadata=user_data.get("app_metadata") or {},
                user_metadata=user_data.get("user_metadata") or {},
            )

        return cls(
            access_token=payload["access_token"],
            refresh_token=payload["refresh_token"],
            user_id=user.id if user else payload.get("user_id"),
            expires_in=int(payload.get("expires_in") or default_expires_in),
            issued_at=issued_at if issued_at is not None else time.time(),
            expires_at=payload.get("expires_at"),
            token_type=payload.get("token_type") or "bearer",
            user=user,
        )

    def to_dict(self) -> dict:
        """Public view of the session, tokens excluded."""
        return {
            "user_id": self.user_id,
            "expires_in": self.expires_in,
            "issued_at": self.issued_at,
            "expires_at": self.expires_at,
            "token_type": self.token_type,
        }
