"""
API Module - Black Box Interface

Purpose: HTTP view of the session lifecycle
Interface: Pydantic response models
Hidden: Mapping from session internals to wire shapes
"""

from .models import (
    AuthSnapshotResponse,
    HealthResponse,
    NotificationsResponse,
    NotificationView,
    RefreshResponse,
    RefreshResultStatus,
    SessionView,
    UserView,
)

__all__ = [
    "AuthSnapshotResponse",
    "HealthResponse",
    "NotificationView",
    "NotificationsResponse",
    "RefreshResponse",
    "RefreshResultStatus",
    "SessionView",
    "UserView",
]
