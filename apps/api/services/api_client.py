"""
Backend API client for non-browser callers.

Resolves every route through the Platform Router, then performs the HTTP
call with ``requests``. Web callers keep relative routes; native callers get
the configured absolute origin.
"""
import logging
from typing import Optional

import requests

from core.config import settings
from services.platform_router import PlatformProvider, StaticPlatformProvider, resolve_route

logger = logging.getLogger(__name__)


class ApiClient:
    def __init__(
        self,
        platform_provider: Optional[PlatformProvider] = None,
        session: Optional[requests.Session] = None,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
    ):
        self.platform_provider = platform_provider or StaticPlatformProvider()
        self.session = session or requests.Session()
        self.base_url = base_url
        self.timeout = timeout if timeout is not None else settings.EXTERNAL_API_TIMEOUT

    def url_for(self, path: str) -> str:
        return resolve_route(path, self.platform_provider.get_platform(), base_url=self.base_url)

    def fetch(self, method: str, path: str, **kwargs) -> requests.Response:
        """
        Perform a request against the backend.

        Relative URLs (web platform) only make sense when the session has a
        base mounted, e.g. a test client; that is the caller's concern.
        """
        url = self.url_for(path)
        kwargs.setdefault("timeout", self.timeout)
        logger.debug(f"API request: {method.upper()} {url}")
        return self.session.request(method.upper(), url, **kwargs)

    def post(self, path: str, **kwargs) -> requests.Response:
        return self.fetch("POST", path, **kwargs)

    def get(self, path: str, **kwargs) -> requests.Response:
        return self.fetch("GET", path, **kwargs)
