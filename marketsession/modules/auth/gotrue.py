"""
GoTrue (Supabase Auth) provider implementing the AuthProvider interface.

This module follows Black Box Design principles:
- Implements AuthProvider protocol
- Accepts configuration and HTTP client via dependency injection
- No direct environment variable access
"""

import logging
import time
import uuid
from typing import Any, Dict, Optional

import httpx
import jwt
from pydantic import BaseModel, ConfigDict

from ...config.provider import ProviderConfig
from ..session.models import DEFAULT_EXPIRES_IN, Session
from .errors import AuthApiError, AuthRetryableError, AuthSessionMissingError
from .interfaces import AuthEvent, AuthStateCallback, Unsubscribe

logger = logging.getLogger(__name__)

# Logout answers these when the token is already gone; the session is over either way.
_IGNORED_LOGOUT_STATUSES = (401, 403, 404)


class TokenResponse(BaseModel):
    """Token endpoint response body."""

    model_config = ConfigDict(extra="ignore")

    access_token: str
    refresh_token: str
    token_type: str = "bearer"
    expires_in: Optional[int] = None
    expires_at: Optional[int] = None
    user: Optional[Dict[str, Any]] = None


def decode_access_token(token: str) -> Dict[str, Any]:
    """
    Read access token claims without verifying the signature.

    The provider already vouched for the token; only sub/exp/email are used.
    """
    try:
        return jwt.decode(token, options={"verify_signature": False, "verify_exp": False})
    except jwt.InvalidTokenError as e:
        logger.debug(f"Could not decode access token: {e}")
        return {}


class GoTrueAuthProvider:
    """
    Auth provider backed by the hosted GoTrue REST API.

    Holds the current session in memory and pushes auth events to
    subscribers, the way the browser SDK does.
    """

    def __init__(
        self,
        config: ProviderConfig,
        client: Optional[httpx.AsyncClient] = None,
        default_expires_in: int = DEFAULT_EXPIRES_IN,
    ):
        """
        Initialize provider with injected config.

        Args:
            config: Provider configuration (URL, anon key, timeout)
            client: Optional shared httpx client
            default_expires_in: Lifetime assumed when the response omits expires_in
        """
        if not config.is_configured:
            raise ValueError("GoTrue provider requires a URL and an anon key")

        self.config = config
        self.auth_url = config.auth_url
        self.default_expires_in = default_expires_in
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(timeout=config.request_timeout)
        self._headers = {
            "apikey": config.anon_key,
            "Authorization": f"Bearer {config.anon_key}",
        }

        self._session: Optional[Session] = None
        self._bootstrap_refresh_token = config.refresh_token
        self._subscribers: Dict[str, AuthStateCallback] = {}

    async def get_session(self) -> Optional[Session]:
        """
        Get the held session.

        A refresh token from configuration is exchanged on first use.
        """
        if self._session is None and self._bootstrap_refresh_token:
            refresh_token = self._bootstrap_refresh_token
            self._bootstrap_refresh_token = None
            self._session = await self._grant("refresh_token", {"refresh_token": refresh_token})
        return self._session

    async def refresh_session(self) -> Optional[Session]:
        """Exchange the held refresh token for a new session."""
        if self._session is None:
            raise AuthSessionMissingError()

        session = await self._grant("refresh_token", {"refresh_token": self._session.refresh_token})
        self._session = session
        self._notify(AuthEvent.TOKEN_REFRESHED, session)
        return session

    async def sign_in_with_password(self, email: str, password: str) -> Session:
        """Sign in with email and password."""
        session = await self._grant("password", {"email": email, "password": password})
        self._session = session
        self._notify(AuthEvent.SIGNED_IN, session)
        return session

    async def set_session(self, access_token: str, refresh_token: str) -> Session:
        """
        Adopt tokens obtained elsewhere.

        Expired access tokens are refreshed straight away.
        """
        claims = decode_access_token(access_token)
        exp = claims.get("exp")
        now = int(time.time())

        if exp is not None and exp <= now:
            session = await self._grant("refresh_token", {"refresh_token": refresh_token})
            self._session = session
            self._notify(AuthEvent.TOKEN_REFRESHED, session)
            return session

        session = self._session_from_payload(
            {
                "access_token": access_token,
                "refresh_token": refresh_token,
                "expires_in": (exp - now) if exp is not None else None,
                "expires_at": exp,
            }
        )
        self._session = session
        self._notify(AuthEvent.SIGNED_IN, session)
        return session

    async def sign_out(self) -> None:
        """Revoke the held session; local state is dropped even if the call fails."""
        session = self._session
        try:
            if session is not None:
                try:
                    await self._post("/logout", token=session.access_token)
                except AuthApiError as e:
                    if e.status not in _IGNORED_LOGOUT_STATUSES:
                        raise
                    logger.debug(f"Logout ignored provider error: {e!r}")
        finally:
            self._session = None
            self._notify(AuthEvent.SIGNED_OUT, None)

    def on_auth_state_change(self, callback: AuthStateCallback) -> Unsubscribe:
        """Subscribe to auth events; returns the unsubscribe callable."""
        subscription_id = str(uuid.uuid4())
        self._subscribers[subscription_id] = callback

        def unsubscribe() -> None:
            self._subscribers.pop(subscription_id, None)

        return unsubscribe

    async def aclose(self) -> None:
        """Close the HTTP client if this provider created it."""
        if self._owns_client:
            await self._client.aclose()

    async def _grant(self, grant_type: str, body: dict) -> Session:
        data = await self._post("/token", params={"grant_type": grant_type}, json=body)
        return self._session_from_payload(TokenResponse.model_validate(data).model_dump())

    def _session_from_payload(self, payload: Dict[str, Any]) -> Session:
        if not payload.get("user"):
            claims = decode_access_token(payload["access_token"])
            if claims.get("sub"):
                payload["user"] = {
                    "id": claims["sub"],
                    "email": claims.get("email"),
                    "role": claims.get("role"),
                    "app_metadata": claims.get("app_metadata") or {},
                    "user_metadata": claims.get("user_metadata") or {},
                }
            if payload.get("expires_at") is None and claims.get("exp") is not None:
                payload["expires_at"] = claims["exp"]
        return Session.from_payload(payload, default_expires_in=self.default_expires_in)

    async def _post(
        self,
        path: str,
        params: Optional[dict] = None,
        json: Optional[dict] = None,
        token: Optional[str] = None,
    ) -> dict:
        headers = dict(self._headers)
        if token:
            headers["Authorization"] = f"Bearer {token}"

        try:
            response = await self._client.post(
                f"{self.auth_url}{path}", params=params, json=json, headers=headers
            )
        except httpx.HTTPError as e:
            raise AuthRetryableError(f"Failed to fetch: {e}") from e

        if response.status_code >= 400:
            raise self._api_error(response)

        if not response.content:
            return {}
        return response.json()

    @staticmethod
    def _api_error(response: httpx.Response) -> AuthApiError:
        try:
            body = response.json()
        except ValueError:
            body = {}
        if not isinstance(body, dict):
            body = {}

        code = body.get("error_code") or body.get("error")
        message = (
            body.get("msg")
            or body.get("message")
            or body.get("error_description")
            or response.text
            or f"HTTP {response.status_code}"
        )
        return AuthApiError(message, response.status_code, code)

    def _notify(self, event: AuthEvent, session: Optional[Session]) -> None:
        for callback in list(self._subscribers.values()):
            callback(event.value, session)
