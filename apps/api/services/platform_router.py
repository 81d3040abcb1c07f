"""
Platform Router

Resolves the base address a client should use for backend calls.

- web: same origin as the backend, so routes stay relative ("")
- ios / android (or any other native tag): the configured absolute origin

The execution platform is never detected here directly; it comes from an
injected PlatformProvider so the router stays a pure function of platform
and configuration.
"""
from __future__ import annotations

import logging
from typing import Optional, Protocol

from core.config import settings
from core.exceptions import ConfigurationError

logger = logging.getLogger(__name__)

WEB = "web"
IOS = "ios"
ANDROID = "android"

# Placeholder origin used when API_BASE_URL is not configured.
# Not acceptable in production.
DEFAULT_NATIVE_BASE_URL = "https://tu-app.vercel.app"


class PlatformProvider(Protocol):
    def get_platform(self) -> str: ...


class StaticPlatformProvider:
    """Fixed platform tag (tests, scripts, server-to-server calls)."""

    def __init__(self, platform: str = WEB):
        self.platform = normalize_platform(platform)

    def get_platform(self) -> str:
        return self.platform


def normalize_platform(platform: Optional[str]) -> str:
    tag = (platform or "").strip().lower()
    return tag or WEB


def is_native_platform(platform: str) -> bool:
    return normalize_platform(platform) != WEB


def resolve_base(platform: str, base_url: Optional[str] = None) -> str:
    """
    Base address for backend calls.

    ``base_url`` overrides settings.API_BASE_URL (mostly for tests).
    """
    if not is_native_platform(platform):
        return ""

    configured = base_url if base_url is not None else settings.API_BASE_URL
    if configured:
        return configured

    if settings.is_production:
        raise ConfigurationError("API_BASE_URL", capability="Native API origin")
    logger.warning(
        f"API_BASE_URL not set; native platform '{platform}' falls back to placeholder {DEFAULT_NATIVE_BASE_URL}"
    )
    return DEFAULT_NATIVE_BASE_URL


def resolve_route(route: str, platform: str, base_url: Optional[str] = None) -> str:
    """Prefix ``route`` with the platform's base address, if it has one."""
    base = resolve_base(platform, base_url=base_url)
    if base:
        return f"{base}{route}"
    return route
