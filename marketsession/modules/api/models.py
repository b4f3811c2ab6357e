"""
Marketsession HTTP data models.

These models define the bodies served by the session status API.
"""

from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from ..session.models import AuthState


class RefreshResultStatus(str, Enum):
    """How a manual refresh ended."""

    REFRESHED = "refreshed"
    RATE_LIMITED = "rate_limited"
    FAILED = "failed"
    TERMINATED = "terminated"
    SKIPPED = "skipped"


class UserView(BaseModel):
    """Identity of the signed-in user."""

    id: str
    email: Optional[str] = None
    role: Optional[str] = None
    app_metadata: Dict[str, Any] = Field(default_factory=dict)
    user_metadata: Dict[str, Any] = Field(default_factory=dict)


class SessionView(BaseModel):
    """Session bookkeeping, tokens excluded."""

    user_id: Optional[str] = None
    expires_in: int = Field(..., description="Token lifetime in seconds")
    issued_at: float = Field(..., description="Unix time the session was issued")
    expires_at: Optional[int] = None
    token_type: str = "bearer"


class AuthSnapshotResponse(BaseModel):
    """The {session, user, loading} view consumers read."""

    state: AuthState
    loading: bool
    session: Optional[SessionView] = None
    user: Optional[UserView] = None


class RefreshResponse(BaseModel):
    """Result of a manual refresh."""

    status: RefreshResultStatus
    attempts: int = Field(0, description="Consecutive failures recorded for the user")
    snapshot: AuthSnapshotResponse


class NotificationView(BaseModel):
    message: str
    level: str
    timestamp: str


class NotificationsResponse(BaseModel):
    notifications: List[NotificationView]


class HealthResponse(BaseModel):
    status: str
    state: AuthState
    timer_armed: bool
