"""Configuration provider following Black Box Design principles."""
import os
from dataclasses import dataclass
from typing import Optional, Protocol

PROVIDER_KINDS = ("gotrue", "memory")


@dataclass
class RefreshConfig:
    """Session refresh tuning."""
    lead_time_seconds: int = 300
    rate_limit_seconds: float = 1.0
    max_retries: int = 3
    backoff_base_seconds: float = 1.0
    backoff_cap_seconds: float = 30.0
    default_expires_in: int = 3600
    notify_rate_limited: bool = False

    def __post_init__(self):
        if self.lead_time_seconds < 0:
            raise ValueError("lead_time_seconds must not be negative")
        if self.max_retries < 1:
            raise ValueError("max_retries must be at least 1")
        if self.backoff_base_seconds < 0 or self.backoff_cap_seconds < self.backoff_base_seconds:
            raise ValueError("backoff cap must be >= backoff base >= 0")
        # A retry starting inside the rate-limit window is suppressed and never re-armed
        if self.backoff_base_seconds < self.rate_limit_seconds:
            raise ValueError(
                f"backoff_base_seconds ({self.backoff_base_seconds}) must be at least "
                f"rate_limit_seconds ({self.rate_limit_seconds})"
            )


@dataclass
class ProviderConfig:
    """Auth provider configuration."""
    kind: str
    url: Optional[str]
    anon_key: Optional[str]
    request_timeout: float
    refresh_token: Optional[str] = None

    @property
    def is_configured(self) -> bool:
        """Check if the hosted provider can be reached."""
        return bool(self.url) and bool(self.anon_key)

    @property
    def auth_url(self) -> Optional[str]:
        if not self.url:
            return None
        return f"{self.url.rstrip('/')}/auth/v1"


@dataclass
class APIConfig:
    """API configuration."""
    port: int
    host: str
    debug: bool


class ConfigProvider(Protocol):
    """Protocol for configuration providers."""

    def get_refresh_config(self) -> RefreshConfig:
        """Get session refresh configuration."""
        ...

    def get_provider_config(self) -> ProviderConfig:
        """Get auth provider configuration."""
        ...

    def get_api_config(self) -> APIConfig:
        """Get API configuration."""
        ...


def _flag(name: str, default: str = "false") -> bool:
    return os.getenv(name, default).lower() == "true"


class EnvConfigProvider:
    """Environment-based configuration provider."""

    def get_refresh_config(self) -> RefreshConfig:
        """Get session refresh configuration from environment variables."""
        return RefreshConfig(
            lead_time_seconds=int(os.getenv("SESSION_LEAD_TIME_SECONDS", "300")),
            rate_limit_seconds=float(os.getenv("SESSION_RATE_LIMIT_SECONDS", "1.0")),
            max_retries=int(os.getenv("SESSION_MAX_RETRIES", "3")),
            backoff_base_seconds=float(os.getenv("SESSION_BACKOFF_BASE_SECONDS", "1.0")),
            backoff_cap_seconds=float(os.getenv("SESSION_BACKOFF_CAP_SECONDS", "30.0")),
            default_expires_in=int(os.getenv("SESSION_DEFAULT_EXPIRES_IN", "3600")),
            notify_rate_limited=_flag("SESSION_NOTIFY_RATE_LIMITED"),
        )

    def get_provider_config(self) -> ProviderConfig:
        """Get auth provider configuration from environment variables."""
        kind = os.getenv("AUTH_PROVIDER", "gotrue").lower()
        if kind not in PROVIDER_KINDS:
            raise ValueError(
                f"AUTH_PROVIDER must be one of {', '.join(PROVIDER_KINDS)}, got {kind!r}"
            )

        config = ProviderConfig(
            kind=kind,
            url=os.getenv("SUPABASE_URL"),
            anon_key=os.getenv("SUPABASE_ANON_KEY"),
            request_timeout=float(os.getenv("AUTH_REQUEST_TIMEOUT", "10.0")),
            refresh_token=os.getenv("AUTH_REFRESH_TOKEN") or None,
        )

        # The hosted provider cannot work without its endpoint and key
        if kind == "gotrue" and not config.is_configured:
            raise ValueError(
                "SUPABASE_URL and SUPABASE_ANON_KEY environment variables are required "
                "when AUTH_PROVIDER=gotrue. Set AUTH_PROVIDER=memory for local runs."
            )

        return config

    def get_api_config(self) -> APIConfig:
        """Get API configuration from environment variables."""
        return APIConfig(
            port=int(os.getenv("API_PORT", "8080")),
            host=os.getenv("API_HOST", "0.0.0.0"),
            debug=_flag("API_DEBUG"),
        )
