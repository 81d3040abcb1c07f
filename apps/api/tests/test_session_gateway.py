"""
Tests for the Session Gateway.

``guard`` is exercised directly against a counting store double; the
middleware is exercised through the app with the database-backed store.
"""
from datetime import datetime, timedelta, timezone
from uuid import uuid4

import pytest
from fastapi.testclient import TestClient

from core.config import settings
from core.security import TokenStatus, create_access_token
from core.session_gateway import (
    Bypass,
    GatewayRequest,
    Proceed,
    Reject,
    guard,
    is_exempt_path,
    login_redirect_url,
)
from core.session_store import AccessCheck, SessionTokens
from main import app


class CountingStore:
    """Session store double that records how often refresh is attempted."""

    def __init__(self, access_status=TokenStatus.VALID, refreshed=None):
        self.identity_id = uuid4()
        self.session_id = uuid4()
        self.access_status = access_status
        self.refreshed = refreshed
        self.refresh_calls = []
        self.refresh_sessions = []

    def validate_access_token(self, token):
        if self.access_status in (TokenStatus.VALID, TokenStatus.EXPIRED):
            return AccessCheck(status=self.access_status, identity_id=self.identity_id, session_id=self.session_id)
        return AccessCheck(status=self.access_status)

    def refresh(self, refresh_token, session_id=None):
        self.refresh_calls.append(refresh_token)
        self.refresh_sessions.append(session_id)
        return self.refreshed

    def create_session(self, identity_id):
        raise NotImplementedError

    def revoke(self, refresh_token=None, access_token=None):
        return False


def _tokens(identity_id):
    return SessionTokens(
        identity_id=identity_id,
        session_id=uuid4(),
        access_token="new-access",
        refresh_token="new-refresh",
        refresh_expires_at=datetime.now(timezone.utc) + timedelta(days=30),
    )


def _request(path="/api/ai/analyze-progress", access="access", refresh="refresh", query=""):
    cookies = {}
    if access:
        cookies[settings.ACCESS_TOKEN_COOKIE] = access
    if refresh:
        cookies[settings.REFRESH_TOKEN_COOKIE] = refresh
    return GatewayRequest(path=path, query_string=query, cookies=cookies)


class TestGuard:

    def test_valid_session_proceeds_with_identity(self):
        store = CountingStore()

        outcome = guard(_request(), store)

        assert isinstance(outcome, Proceed)
        assert outcome.identity_id == store.identity_id
        assert outcome.rotated is None
        assert store.refresh_calls == []

    def test_expired_access_refreshes_exactly_once(self):
        identity_id = uuid4()
        store = CountingStore(access_status=TokenStatus.EXPIRED, refreshed=_tokens(identity_id))

        outcome = guard(_request(refresh="r1"), store)

        assert isinstance(outcome, Proceed)
        assert outcome.identity_id == identity_id
        assert outcome.rotated.refresh_token == "new-refresh"
        assert store.refresh_calls == ["r1"]
        assert store.refresh_sessions == [store.session_id]

    def test_expired_access_and_refresh_rejects_after_one_attempt(self):
        store = CountingStore(access_status=TokenStatus.EXPIRED, refreshed=None)

        outcome = guard(_request(), store)

        assert isinstance(outcome, Reject)
        assert len(store.refresh_calls) == 1

    @pytest.mark.parametrize("status", [TokenStatus.MALFORMED, TokenStatus.INVALID])
    def test_malformed_or_invalid_never_refreshes(self, status):
        store = CountingStore(access_status=status, refreshed=_tokens(uuid4()))

        outcome = guard(_request(), store)

        assert isinstance(outcome, Reject)
        assert store.refresh_calls == []

    def test_missing_token_rejects(self):
        store = CountingStore()
        outcome = guard(_request(access=None), store)
        assert isinstance(outcome, Reject)
        assert store.refresh_calls == []

    def test_exempt_paths_bypass(self):
        store = CountingStore(access_status=TokenStatus.MALFORMED)
        assert isinstance(guard(_request(path="/api/health", access=None), store), Bypass)

    def test_reject_kind_depends_on_route(self):
        store = CountingStore(access_status=TokenStatus.MALFORMED)

        api = guard(_request(path="/api/ai/analyze-progress"), store)
        page = guard(_request(path="/trainings", query="week=3"), store)

        assert api.is_api is True
        assert page.is_api is False
        assert page.redirect_to == "/auth/login?redirectTo=/trainings%3Fweek%3D3"

    def test_bearer_and_header_fallbacks(self):
        req = GatewayRequest(
            path="/api/ai/analyze-progress",
            headers={"Authorization": "Bearer abc", "X-Refresh-Token": "def"},
        )
        assert req.access_token == "abc"
        assert req.refresh_token == "def"


class TestExemptPaths:

    @pytest.mark.parametrize("path", [
        "/static/app.js",
        "/_next/static/chunks/main.js",
        "/_next/image",
        "/favicon.ico",
        "/logo.svg",
        "/images/hero.PNG",
        "/photo.jpeg",
        "/health",
        "/api/health",
        "/ping",
        "/auth/login",
        "/api/auth/logout",
    ])
    def test_exempt(self, path):
        assert is_exempt_path(path)

    @pytest.mark.parametrize("path", ["/", "/trainings", "/api/ai/analyze-progress", "/authors"])
    def test_protected(self, path):
        assert not is_exempt_path(path)

    def test_login_redirect_preserves_destination(self):
        assert login_redirect_url("/programs/5") == "/auth/login?redirectTo=/programs/5"


class TestGatewayMiddleware:

    @pytest.fixture
    def client(self):
        return TestClient(app)

    def test_api_without_session_is_401(self, client):
        response = client.post("/api/ai/analyze-progress")
        assert response.status_code == 401
        assert response.json() == {"error": "Unauthorized"}

    def test_page_without_session_redirects_to_login(self, client):
        response = client.get("/trainings?week=3", follow_redirects=False)
        assert response.status_code == 307
        assert response.headers["location"] == "/auth/login?redirectTo=/trainings%3Fweek%3D3"

    def test_garbage_token_is_rejected(self, client):
        client.cookies.set(settings.ACCESS_TOKEN_COOKIE, "garbage")
        response = client.post("/api/ai/analyze-progress")
        assert response.status_code == 401

    def test_expired_access_is_refreshed_and_rotated(self, client, session_store, test_athlete):
        tokens = session_store.create_session(test_athlete.id)
        expired = create_access_token(
            {"sub": str(test_athlete.id), "sid": str(tokens.session_id)},
            expires_delta=timedelta(minutes=-1),
        )
        client.cookies.set(settings.ACCESS_TOKEN_COOKIE, expired)
        client.cookies.set(settings.REFRESH_TOKEN_COOKIE, tokens.refresh_token)

        # Reaches the router; the unknown page gives a 404 rather than a redirect.
        response = client.get("/not-a-page", follow_redirects=False)

        assert response.status_code == 404
        set_cookie = response.headers.get_list("set-cookie")
        assert any(c.startswith(f"{settings.ACCESS_TOKEN_COOKIE}=") for c in set_cookie)
        assert any(c.startswith(f"{settings.REFRESH_TOKEN_COOKIE}=") for c in set_cookie)
        assert session_store.refresh(tokens.refresh_token) is None  # rotated away

    def test_expired_access_and_refresh_is_rejected(self, client, session_store, test_athlete):
        tokens = session_store.create_session(test_athlete.id)
        expired = create_access_token(
            {"sub": str(test_athlete.id), "sid": str(tokens.session_id)},
            expires_delta=timedelta(minutes=-1),
        )
        client.cookies.set(settings.ACCESS_TOKEN_COOKIE, expired)
        client.cookies.set(settings.REFRESH_TOKEN_COOKIE, "stale-refresh-token")

        response = client.post("/api/ai/analyze-progress")

        assert response.status_code == 401
        assert response.json() == {"error": "Unauthorized"}

    def test_refresh_token_of_another_session_is_rejected(self, client, session_store, test_athlete, other_athlete):
        mine = session_store.create_session(test_athlete.id)
        theirs = session_store.create_session(other_athlete.id)
        expired = create_access_token(
            {"sub": str(test_athlete.id), "sid": str(mine.session_id)},
            expires_delta=timedelta(minutes=-1),
        )
        client.cookies.set(settings.ACCESS_TOKEN_COOKIE, expired)
        client.cookies.set(settings.REFRESH_TOKEN_COOKIE, theirs.refresh_token)

        response = client.post("/api/ai/analyze-progress")

        assert response.status_code == 401
        assert session_store.refresh(theirs.refresh_token) is not None

    def test_preflight_is_answered_without_a_session(self, client):
        response = client.options(
            "/api/ai/analyze-progress",
            headers={
                "Origin": "capacitor://localhost",
                "Access-Control-Request-Method": "POST",
            },
        )

        assert response.status_code == 200
        assert response.headers["access-control-allow-origin"] == "capacitor://localhost"
        assert response.headers["access-control-allow-credentials"] == "true"
        assert "set-cookie" not in response.headers

    def test_rejection_carries_cors_headers(self, client):
        response = client.post("/api/ai/analyze-progress", headers={"Origin": "capacitor://localhost"})

        assert response.status_code == 401
        assert response.headers["access-control-allow-origin"] == "capacitor://localhost"

    def test_exempt_path_needs_no_session(self, client):
        assert client.get("/ping").status_code == 200
