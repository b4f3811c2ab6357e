"""
Session Factory following Black Box Design principles.

This factory:
- Constructs the auth provider based on configuration
- Wires the session lifecycle components together
- Returns only the SessionManager facade
"""

import logging
from typing import Optional

from ...config.provider import ConfigProvider, ProviderConfig
from ..session.manager import SessionManager
from .gotrue import GoTrueAuthProvider
from .interfaces import AuthProvider, NotificationSink
from .memory_provider import InMemoryAuthProvider

logger = logging.getLogger(__name__)


class SessionFactory:
    """
    Factory for building the session stack.

    This is the composition root that:
    - Creates the provider
    - Wires it into a SessionManager via dependency injection
    - Returns only the public interface
    """

    @staticmethod
    def build_provider(provider_config: ProviderConfig, default_expires_in: int) -> AuthProvider:
        """
        Build the auth provider named by configuration.

        Args:
            provider_config: Provider configuration
            default_expires_in: Lifetime assumed when the provider omits one

        Returns:
            AuthProvider implementation
        """
        if provider_config.kind == "memory":
            logger.info("Building session stack with in-memory auth provider")
            return InMemoryAuthProvider(expires_in=default_expires_in)

        logger.info(f"Building session stack with GoTrue provider at {provider_config.auth_url}")
        return GoTrueAuthProvider(provider_config, default_expires_in=default_expires_in)

    @staticmethod
    def build(
        config_provider: ConfigProvider,
        provider: Optional[AuthProvider] = None,
        notifier: Optional[NotificationSink] = None,
    ) -> SessionManager:
        """
        Build the complete session stack.

        Args:
            config_provider: Configuration provider
            provider: Optional pre-built auth provider (skips provider config)
            notifier: Optional notification sink

        Returns:
            SessionManager facade
        """
        refresh_config = config_provider.get_refresh_config()

        if provider is None:
            provider = SessionFactory.build_provider(
                config_provider.get_provider_config(), refresh_config.default_expires_in
            )

        return SessionManager(provider, notifier=notifier, config=refresh_config)
