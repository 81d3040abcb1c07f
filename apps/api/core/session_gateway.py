"""
Session Gateway

Intercepts every inbound request to a protected path and makes sure a
verified session is attached before any handler runs.

Flow per request:
1. Exempt paths (static assets, health checks, auth surface, docs) bypass
   the gateway entirely.
2. No access token, or one that is not a JWT at all -> reject, no refresh.
3. Valid token -> proceed. Expired token -> exactly one refresh attempt with
   the refresh token of the same session; on success the rotated pair is
   written to the response cookies. Anything else -> reject.
4. The resolved identity id is attached to ``request.state.identity_id``.

Rejections never say why. Page routes get a redirect to the login surface
(preserving the original destination); API routes get a 401 JSON error.

``guard`` is a pure function of the request snapshot and an injected
``SessionStore``; the middleware is only the HTTP adapter around it.
"""
from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from typing import Mapping, Optional, Union
from urllib.parse import quote
from uuid import UUID

from starlette.concurrency import run_in_threadpool
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import JSONResponse, RedirectResponse, Response

from core.config import settings
from core.security import TokenStatus
from core.session_store import SessionStore, SessionTokens

logger = logging.getLogger(__name__)

EXEMPT_PREFIXES = (
    "/static/",
    "/_next/static/",
    "/_next/image",
    "/auth/",
    "/api/auth/",
    "/health/",
)
EXEMPT_PATHS = {
    "/favicon.ico",
    "/health",
    "/api/health",
    "/ping",
    "/docs",
    "/redoc",
    "/openapi.json",
}
STATIC_ASSET_RE = re.compile(r"\.(?:svg|png|jpg|jpeg|gif|webp)$", re.IGNORECASE)

API_PREFIX = "/api/"


@dataclass(frozen=True)
class GatewayRequest:
    """The parts of an inbound request the gateway looks at."""
    path: str
    query_string: str = ""
    cookies: Mapping[str, str] = field(default_factory=dict)
    headers: Mapping[str, str] = field(default_factory=dict)

    @property
    def destination(self) -> str:
        if self.query_string:
            return f"{self.path}?{self.query_string}"
        return self.path

    @property
    def is_api(self) -> bool:
        return self.path.startswith(API_PREFIX)

    def _header(self, name: str) -> Optional[str]:
        for key, value in self.headers.items():
            if key.lower() == name:
                return value
        return None

    @property
    def access_token(self) -> Optional[str]:
        token = self.cookies.get(settings.ACCESS_TOKEN_COOKIE)
        if token:
            return token
        auth_header = self._header("authorization") or ""
        if auth_header.lower().startswith("bearer "):
            return auth_header[7:].strip() or None
        return None

    @property
    def refresh_token(self) -> Optional[str]:
        return self.cookies.get(settings.REFRESH_TOKEN_COOKIE) or self._header("x-refresh-token")


@dataclass(frozen=True)
class Bypass:
    """Exempt path; the gateway does not apply."""


@dataclass(frozen=True)
class Proceed:
    identity_id: UUID
    rotated: Optional[SessionTokens] = None


@dataclass(frozen=True)
class Reject:
    is_api: bool
    redirect_to: str


GuardOutcome = Union[Bypass, Proceed, Reject]


def is_exempt_path(path: str) -> bool:
    if path in EXEMPT_PATHS:
        return True
    if path.startswith(EXEMPT_PREFIXES):
        return True
    return bool(STATIC_ASSET_RE.search(path))


def login_redirect_url(destination: str) -> str:
    return f"{settings.LOGIN_PATH}?redirectTo={quote(destination, safe='/')}"


def guard(request: GatewayRequest, store: SessionStore) -> GuardOutcome:
    """Decide whether a request may reach its handler."""
    if is_exempt_path(request.path):
        return Bypass()

    reject = Reject(is_api=request.is_api, redirect_to=login_redirect_url(request.destination))

    token = request.access_token
    if not token:
        return reject

    check = store.validate_access_token(token)
    if check.is_valid:
        return Proceed(identity_id=check.identity_id)

    if check.status is not TokenStatus.EXPIRED:
        # Malformed, forged or revoked: refresh is never attempted.
        return reject

    if check.session_id is None:
        return reject

    # The refresh token must belong to the session the expired token names.
    rotated = store.refresh(request.refresh_token, session_id=check.session_id)
    if rotated is None:
        return reject
    return Proceed(identity_id=rotated.identity_id, rotated=rotated)


def set_session_cookies(response: Response, tokens: SessionTokens) -> None:
    # Both cookies live for the refresh window so an expired access token is
    # still presented for the refresh attempt.
    max_age = settings.REFRESH_TOKEN_EXPIRE_DAYS * 24 * 60 * 60
    for name, value in (
        (settings.ACCESS_TOKEN_COOKIE, tokens.access_token),
        (settings.REFRESH_TOKEN_COOKIE, tokens.refresh_token),
    ):
        response.set_cookie(
            key=name,
            value=value,
            max_age=max_age,
            httponly=True,
            secure=settings.SESSION_COOKIE_SECURE,
            samesite="lax",
            path="/",
        )


def clear_session_cookies(response: Response) -> None:
    for name in (settings.ACCESS_TOKEN_COOKIE, settings.REFRESH_TOKEN_COOKIE):
        response.delete_cookie(key=name, path="/")


class SessionGatewayMiddleware(BaseHTTPMiddleware):
    """
    HTTP adapter for ``guard``.

    The store is read from ``app.state.session_store`` so it can be swapped
    without touching the middleware stack.
    """

    async def dispatch(self, request: Request, call_next) -> Response:
        gateway_request = GatewayRequest(
            path=request.url.path,
            query_string=request.url.query,
            cookies=request.cookies,
            headers=request.headers,
        )
        if is_exempt_path(gateway_request.path):
            return await call_next(request)

        store: SessionStore = request.app.state.session_store
        outcome = await run_in_threadpool(guard, gateway_request, store)

        if isinstance(outcome, Reject):
            logger.info(
                f"Session gateway rejected {request.method} {request.url.path}",
                extra={"extra_fields": {"path": request.url.path, "api": outcome.is_api}},
            )
            if outcome.is_api:
                response = JSONResponse(status_code=401, content={"error": "Unauthorized"})
            else:
                response = RedirectResponse(url=outcome.redirect_to, status_code=307)
            clear_session_cookies(response)
            return response

        if isinstance(outcome, Proceed):
            request.state.identity_id = outcome.identity_id

        response = await call_next(request)

        if isinstance(outcome, Proceed) and outcome.rotated is not None:
            set_session_cookies(response, outcome.rotated)
            logger.info(
                "Session refreshed",
                extra={"extra_fields": {"session_id": str(outcome.rotated.session_id)}},
            )
        return response
