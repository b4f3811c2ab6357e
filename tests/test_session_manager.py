import asyncio
from unittest.mock import AsyncMock, call

import pytest

from conftest import settle
from marketsession.config.provider import RefreshConfig
from marketsession.modules.auth.errors import (
    AuthApiError,
    AuthRetryableError,
    AuthSessionMissingError,
    SessionLifecycleError,
)
from marketsession.modules.auth.notifications import SESSION_EXPIRED_MESSAGE
from marketsession.modules.session.executor import RefreshOutcome
from marketsession.modules.session.manager import SessionManager
from marketsession.modules.session.models import AuthState

pytestmark = pytest.mark.integration


@pytest.mark.asyncio
async def test_initialize_without_session(manager):
    """No stored session settles anonymous."""
    assert manager.state == AuthState.UNINITIALIZED
    assert manager.loading is True

    state = await manager.initialize()

    assert state == AuthState.ANONYMOUS
    assert manager.loading is False
    assert manager.session is None
    assert manager.user is None
    assert manager.scheduler.pending is None


@pytest.mark.asyncio
async def test_initialize_with_stored_session(manager, memory_provider):
    """A freshly stored one-hour session is refreshed about 3300s later."""
    session = memory_provider.seed_session("buyer@example.com", expires_in=3600)

    state = await manager.initialize()

    assert state == AuthState.AUTHENTICATED
    assert manager.session is session
    assert manager.user.email == "buyer@example.com"
    assert 3299.0 <= manager.scheduler.pending.delay <= 3300.0
    assert memory_provider.refresh_calls == 0


@pytest.mark.asyncio
async def test_restored_session_timer_uses_remaining_lifetime(manager, memory_provider):
    """A session stored half an hour ago is refreshed half an hour sooner."""
    memory_provider.seed_session("buyer@example.com", expires_in=3600, age_seconds=1800)

    await manager.initialize()

    assert 1499.0 <= manager.scheduler.pending.delay <= 1500.0
    assert memory_provider.refresh_calls == 0


@pytest.mark.asyncio
async def test_restored_session_near_expiry_refreshes_at_startup(manager, memory_provider):
    """Less than the lead time left: refresh right away, then re-arm normally."""
    old = memory_provider.seed_session("buyer@example.com", expires_in=3600, age_seconds=3360)

    await manager.initialize()
    await settle()

    assert memory_provider.refresh_calls == 1
    assert manager.session is not old
    assert manager.state == AuthState.AUTHENTICATED
    assert manager.scheduler.pending.delay == 3300.0


@pytest.mark.asyncio
async def test_initialize_twice_is_rejected(manager):
    """Initialization happens once per manager."""
    await manager.initialize()

    with pytest.raises(SessionLifecycleError):
        await manager.initialize()


@pytest.mark.asyncio
async def test_initialize_with_rejected_refresh_token(manager, memory_provider, notifier):
    """An unusable stored token signs out and tells the user."""
    memory_provider.get_session = AsyncMock(
        side_effect=AuthApiError("Invalid Refresh Token: Refresh Token Not Found", 400, "refresh_token_not_found")
    )

    state = await manager.initialize()

    assert state == AuthState.ANONYMOUS
    assert memory_provider.sign_out_calls == 1
    notifier.notify.assert_called_once_with(SESSION_EXPIRED_MESSAGE, "error")


@pytest.mark.asyncio
async def test_initialize_with_network_failure(manager, memory_provider, notifier):
    """Failing to reach the provider at startup is treated as expired."""
    memory_provider.get_session = AsyncMock(side_effect=AuthRetryableError("Failed to fetch"))

    state = await manager.initialize()

    assert state == AuthState.ANONYMOUS
    notifier.notify.assert_called_once_with(SESSION_EXPIRED_MESSAGE, "error")


@pytest.mark.asyncio
async def test_initialize_with_other_provider_error(manager, memory_provider, notifier):
    """Other startup errors leave the user anonymous without a notification."""
    memory_provider.get_session = AsyncMock(side_effect=AuthApiError("Internal error", 500))

    state = await manager.initialize()

    assert state == AuthState.ANONYMOUS
    assert memory_provider.sign_out_calls == 0
    notifier.notify.assert_not_called()


@pytest.mark.asyncio
async def test_sign_in_event_after_initialize(manager, memory_provider):
    """ANONYMOUS -> AUTHENTICATED on SIGNED_IN."""
    await manager.initialize()

    session = await memory_provider.sign_in("admin@example.com")

    assert manager.state == AuthState.AUTHENTICATED
    assert manager.session is session
    assert manager.snapshot()["user"]["app_metadata"] == {"roles": ["admin"]}
    assert manager.scheduler.pending is not None


@pytest.mark.asyncio
async def test_sign_out_event_cancels_pending_refresh(manager, memory_provider):
    """Sign-out with a pending timer: timer gone, store empty, no refresh."""
    memory_provider.seed_session("buyer@example.com", expires_in=3600)
    await manager.initialize()
    timer = manager.scheduler.pending

    await memory_provider.sign_out()
    await settle()

    assert timer.active is False
    assert manager.session is None
    assert manager.state == AuthState.ANONYMOUS
    assert memory_provider.refresh_calls == 0


@pytest.mark.asyncio
async def test_scheduled_refresh_replaces_session(manager, memory_provider, sleep_mock):
    """A short-lived session is refreshed immediately and re-armed."""
    old = memory_provider.seed_session("buyer@example.com", expires_in=120)

    await manager.initialize()
    await settle()

    assert memory_provider.refresh_calls == 1
    assert manager.session is not old
    assert manager.session.expires_in == 3600
    assert manager.state == AuthState.AUTHENTICATED
    assert manager.scheduler.pending.delay == 3300.0
    sleep_mock.assert_awaited_once_with(1.0)


@pytest.mark.asyncio
async def test_three_failed_refreshes_force_sign_out(manager, memory_provider, notifier, sleep_mock):
    """Three transient failures in a row end the session with one notification."""
    memory_provider.seed_session("buyer@example.com", expires_in=60)
    memory_provider.fail_next_refresh(AuthRetryableError("Failed to fetch"), times=3)

    await manager.initialize()
    await settle(60)

    assert memory_provider.refresh_calls == 3
    assert sleep_mock.await_args_list == [call(1.0), call(2.0), call(4.0)]
    assert memory_provider.sign_out_calls == 1
    assert manager.state == AuthState.ANONYMOUS
    assert manager.scheduler.pending is None
    notifier.notify.assert_called_once_with(SESSION_EXPIRED_MESSAGE, "error")


@pytest.mark.asyncio
async def test_failure_then_success_recovers(manager, memory_provider, notifier):
    """A transient failure is retried and the session survives."""
    memory_provider.seed_session("buyer@example.com", expires_in=60)
    memory_provider.fail_next_refresh(AuthApiError("Internal error", 500))

    await manager.initialize()
    await settle(40)

    assert memory_provider.refresh_calls == 2
    assert manager.state == AuthState.AUTHENTICATED
    assert manager.retries.attempts("user-123") == 0
    notifier.notify.assert_not_called()


@pytest.mark.asyncio
async def test_revoked_token_signs_out_on_first_failure(manager, memory_provider, notifier):
    """A rejected refresh token bypasses the retry budget."""
    memory_provider.seed_session("buyer@example.com", expires_in=60)
    memory_provider.revoke_refresh_tokens()

    await manager.initialize()
    await settle()

    assert memory_provider.refresh_calls == 1
    assert manager.state == AuthState.ANONYMOUS
    notifier.notify.assert_called_once_with(SESSION_EXPIRED_MESSAGE, "error")


@pytest.mark.asyncio
async def test_refresh_now_requires_session(manager):
    """Manual refresh needs a signed-in user."""
    await manager.initialize()

    with pytest.raises(AuthSessionMissingError):
        await manager.refresh_now()


@pytest.mark.asyncio
async def test_refresh_now(manager, memory_provider):
    """Manual refresh swaps in a new session and re-arms the timer."""
    old = memory_provider.seed_session("buyer@example.com")
    await manager.initialize()

    attempt = await manager.refresh_now()

    assert attempt.outcome == RefreshOutcome.REFRESHED
    assert manager.session is attempt.session
    assert manager.session is not old
    assert manager.scheduler.pending.delay == 3300.0


@pytest.mark.asyncio
async def test_sign_out(manager, memory_provider):
    """Explicit sign-out clears the session."""
    memory_provider.seed_session("buyer@example.com")
    await manager.initialize()

    await manager.sign_out()

    assert manager.state == AuthState.ANONYMOUS
    assert manager.scheduler.pending is None
    assert memory_provider.sign_out_calls == 1
    assert manager.snapshot() == {
        "state": "anonymous",
        "loading": False,
        "session": None,
        "user": None,
    }


@pytest.mark.asyncio
async def test_dispose_tears_everything_down(manager, memory_provider):
    """No subscription, timer or state survives dispose."""
    memory_provider.seed_session("buyer@example.com")
    await manager.initialize()
    timer = manager.scheduler.pending

    manager.dispose()
    await memory_provider.sign_in("admin@example.com")

    assert memory_provider.subscriber_count == 0
    assert timer.active is False
    assert manager.user.email == "buyer@example.com"


@pytest.mark.asyncio
async def test_dispose_discards_inflight_refresh(memory_provider, notifier, clock):
    """A refresh in backoff when the manager is disposed never completes."""
    started = asyncio.Event()

    async def slow_sleep(delay):
        started.set()
        await asyncio.sleep(3600)

    manager = SessionManager(
        memory_provider, notifier=notifier, config=RefreshConfig(), clock=clock, sleep=slow_sleep
    )
    old = memory_provider.seed_session("buyer@example.com", expires_in=60)
    await manager.initialize()
    await asyncio.wait_for(started.wait(), timeout=1)

    manager.dispose()
    await settle()

    assert memory_provider.refresh_calls == 0
    assert manager.session is old


@pytest.mark.asyncio
async def test_dispose_discards_inflight_manual_refresh(memory_provider, notifier, clock):
    """A manual refresh in backoff when the manager is disposed changes nothing."""
    started = asyncio.Event()
    release = asyncio.Event()

    async def gated_sleep(delay):
        started.set()
        await release.wait()

    manager = SessionManager(
        memory_provider, notifier=notifier, config=RefreshConfig(), clock=clock, sleep=gated_sleep
    )
    old = memory_provider.seed_session("buyer@example.com")
    await manager.initialize()

    refresh = asyncio.create_task(manager.refresh_now())
    await asyncio.wait_for(started.wait(), timeout=1)
    manager.dispose()
    release.set()
    attempt = await asyncio.wait_for(refresh, timeout=1)

    assert attempt.outcome == RefreshOutcome.SKIPPED
    assert memory_provider.refresh_calls == 0
    assert manager.session is old
    assert manager.scheduler.pending is None


@pytest.mark.asyncio
async def test_refresh_now_after_dispose(manager, memory_provider):
    """No provider call once the manager is torn down."""
    memory_provider.seed_session("buyer@example.com")
    await manager.initialize()
    manager.dispose()

    attempt = await manager.refresh_now()

    assert attempt.outcome == RefreshOutcome.SKIPPED
    assert memory_provider.refresh_calls == 0
    assert manager.scheduler.pending is None
