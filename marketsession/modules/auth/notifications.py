"""
Notification sinks for user-facing session messages.

The session components only ever call notify(); what happens to the
message (log line, toast queue) is up to the sink.
"""

import logging
from collections import deque
from datetime import UTC, datetime
from typing import Deque, List

logger = logging.getLogger(__name__)

SESSION_EXPIRED_MESSAGE = "Your session has expired. Please sign in again."
SIGN_OUT_FAILED_MESSAGE = "An error occurred while signing out. Please refresh the page."
RATE_LIMITED_MESSAGE = "Too many session refresh attempts. Retrying shortly."

_LEVELS = {
    "info": logging.INFO,
    "warning": logging.WARNING,
    "error": logging.ERROR,
}


class LogNotificationSink:
    """Writes notifications to the log."""

    def notify(self, message: str, level: str = "error") -> None:
        logger.log(_LEVELS.get(level, logging.INFO), f"Notification: {message}")


class BufferedNotificationSink:
    """
    Keeps recent notifications for a UI to poll.

    Bounded: the oldest entries are dropped once max_items is reached.
    """

    def __init__(self, max_items: int = 100):
        self._items: Deque[dict] = deque(maxlen=max_items)

    def notify(self, message: str, level: str = "error") -> None:
        logger.log(_LEVELS.get(level, logging.INFO), f"Notification: {message}")
        self._items.append(
            {
                "message": message,
                "level": level,
                "timestamp": datetime.now(UTC).isoformat(),
            }
        )

    def peek(self) -> List[dict]:
        return list(self._items)

    def drain(self) -> List[dict]:
        """Return and forget all buffered notifications."""
        items = list(self._items)
        self._items.clear()
        return items

    def __len__(self) -> int:
        return len(self._items)
