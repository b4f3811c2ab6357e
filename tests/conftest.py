"""
Shared pytest fixtures for marketsession tests.

This module provides common fixtures including:
- FakeClock: controllable monotonic clock for rate-limit tests
- Session builders
- In-memory auth provider and mocked notification sink
"""

import asyncio
import os
import sys
from typing import Optional
from unittest.mock import AsyncMock, MagicMock

import pytest

# Add parent directory to path for imports
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from marketsession.config.provider import RefreshConfig
from marketsession.modules.auth.memory_provider import InMemoryAuthProvider
from marketsession.modules.session.manager import SessionManager
from marketsession.modules.session.models import Session, User


class FakeClock:
    """
    Monotonic clock under test control.

    Usage:
        clock = FakeClock(step=5.0)   # every reading advances 5s
        clock.advance(0.5)            # or move it by hand
    """

    def __init__(self, start: float = 1000.0, step: float = 0.0):
        self.now = start
        self.step = step

    def __call__(self) -> float:
        current = self.now
        self.now += self.step
        return current

    def advance(self, seconds: float) -> None:
        self.now += seconds


def make_session(
    user_id: Optional[str] = "user-123",
    expires_in: int = 3600,
    access_token: str = "access-1",
    refresh_token: str = "refresh-1",
) -> Session:
    """Build a session without going through a provider."""
    user = User(id=user_id, email="buyer@example.com") if user_id else None
    return Session(
        access_token=access_token,
        refresh_token=refresh_token,
        user_id=user_id,
        expires_in=expires_in,
        issued_at=1_700_000_000.0,
        user=user,
    )


async def settle(rounds: int = 20) -> None:
    """Let ready callbacks and fired timers run."""
    for _ in range(rounds):
        await asyncio.sleep(0)


@pytest.fixture
def clock():
    """Clock that advances 5s per reading, outside any rate-limit window."""
    return FakeClock(step=5.0)


@pytest.fixture
def sleep_mock():
    """Backoff sleep that returns immediately but records delays."""
    return AsyncMock()


@pytest.fixture
def notifier():
    """Mock notification sink."""
    sink = MagicMock()
    sink.notify = MagicMock()
    return sink


@pytest.fixture
def memory_provider():
    """In-memory provider issuing one-hour sessions."""
    return InMemoryAuthProvider(expires_in=3600)


@pytest.fixture
def manager(memory_provider, notifier, clock, sleep_mock):
    """SessionManager wired to the in-memory provider with instant backoff."""
    session_manager = SessionManager(
        memory_provider,
        notifier=notifier,
        config=RefreshConfig(),
        clock=clock,
        sleep=sleep_mock,
    )
    yield session_manager
    session_manager.dispose()


def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line(
        "markers", "integration: Tests wiring several modules together"
    )
