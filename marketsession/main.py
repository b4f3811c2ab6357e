#!/usr/bin/env python3
"""
Marketsession - Main Entry Point

This is the thin orchestration layer that:
1. Loads configuration
2. Builds the session manager
3. Serves the session status API

All session logic is in the modules, following black box principles.
"""

import logging
import logging.config as log_config
import os
from contextlib import asynccontextmanager
from typing import Optional

import uvicorn
from dotenv import load_dotenv
from fastapi import Depends, FastAPI, HTTPException, Request
from fastapi.responses import JSONResponse

from marketsession.config.provider import ConfigProvider, EnvConfigProvider
from marketsession.logging_config import get_logging_config
from marketsession.modules.api import (
    AuthSnapshotResponse,
    HealthResponse,
    NotificationsResponse,
    RefreshResponse,
    RefreshResultStatus,
)
from marketsession.modules.auth import AuthError, AuthSessionMissingError, BufferedNotificationSink
from marketsession.modules.auth.factory import SessionFactory
from marketsession.modules.session import AuthState, SessionManager

load_dotenv()

log_config.dictConfig(get_logging_config(os.getenv("LOG_LEVEL", "INFO").upper()))
logger = logging.getLogger(__name__)


def create_app(
    manager: Optional[SessionManager] = None,
    config_provider: Optional[ConfigProvider] = None,
) -> FastAPI:
    """
    Create the FastAPI application.

    Args:
        manager: Pre-built session manager; built from configuration when omitted
        config_provider: Configuration provider used to build the manager
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """
        Manage application lifecycle - initialize and cleanup resources.
        """
        logger.info("Starting marketsession API...")

        session_manager = manager
        if session_manager is None:
            session_manager = SessionFactory.build(
                config_provider or EnvConfigProvider(),
                notifier=BufferedNotificationSink(),
            )
        app.state.session_manager = session_manager

        if session_manager.state == AuthState.UNINITIALIZED:
            await session_manager.initialize()

        logger.info(f"Marketsession API started, session state: {session_manager.state.value}")

        yield

        logger.info("Shutting down marketsession API...")
        session_manager.dispose()
        aclose = getattr(session_manager.provider, "aclose", None)
        if aclose is not None:
            await aclose()
        logger.info("Marketsession API shutdown complete")

    app = FastAPI(
        title="Marketsession API",
        description="Client session lifecycle for the marketplace web client",
        version="1.0.0",
        lifespan=lifespan,
    )

    def get_manager(request: Request) -> SessionManager:
        session_manager = getattr(request.app.state, "session_manager", None)
        if session_manager is None:
            raise HTTPException(503, "Service not initialized")
        return session_manager

    @app.get("/health", response_model=HealthResponse)
    async def health(session_manager: SessionManager = Depends(get_manager)):
        """Liveness plus whether a refresh is armed."""
        return HealthResponse(
            status="ok",
            state=session_manager.state,
            timer_armed=session_manager.scheduler.pending is not None,
        )

    @app.get("/session", response_model=AuthSnapshotResponse)
    async def get_session(session_manager: SessionManager = Depends(get_manager)):
        """
        Current {session, user, loading} view.

        Returns:
            200: Snapshot (session and user are null when signed out)
        """
        return AuthSnapshotResponse(**session_manager.snapshot())

    @app.post("/session/refresh", response_model=RefreshResponse)
    async def refresh_session(session_manager: SessionManager = Depends(get_manager)):
        """
        Refresh the session now (manual retry).

        Returns:
            200: Refresh attempted; status tells how it ended
            401: No session to refresh
        """
        try:
            attempt = await session_manager.refresh_now()
        except AuthSessionMissingError:
            raise HTTPException(401, "Not signed in")

        return RefreshResponse(
            status=RefreshResultStatus(attempt.outcome.value),
            attempts=attempt.attempts,
            snapshot=AuthSnapshotResponse(**session_manager.snapshot()),
        )

    @app.post("/session/sign-out", response_model=AuthSnapshotResponse)
    async def sign_out(session_manager: SessionManager = Depends(get_manager)):
        """Sign out and return the resulting snapshot."""
        await session_manager.sign_out()
        return AuthSnapshotResponse(**session_manager.snapshot())

    @app.get("/notifications", response_model=NotificationsResponse)
    async def drain_notifications(session_manager: SessionManager = Depends(get_manager)):
        """Return and clear pending user-facing notifications."""
        drain = getattr(session_manager.notifier, "drain", None)
        return NotificationsResponse(notifications=drain() if drain else [])

    @app.exception_handler(AuthError)
    async def auth_error_handler(request, exc):
        """Handle provider errors that reach the API."""
        logger.error(f"Auth provider error: {exc!r}")
        return JSONResponse(status_code=502, content={"error": str(exc)})

    return app


app = create_app()


if __name__ == "__main__":
    api_config = EnvConfigProvider().get_api_config()
    uvicorn.run(
        "marketsession.main:app",
        host=api_config.host,
        port=api_config.port,
        reload=api_config.debug,
        log_config=get_logging_config(os.getenv("LOG_LEVEL", "INFO").upper()),
    )
