"""
Tests for the rate limiting middleware.

Redis is replaced by a small in-memory double implementing the handful of
commands the middleware uses.
"""
import pytest
from fastapi import FastAPI, Request
from fastapi.testclient import TestClient
from redis.exceptions import ConnectionError as RedisConnectionError

from core import rate_limit
from core.rate_limit import RateLimitMiddleware


class FakeRedis:
    def __init__(self):
        self.store = {}

    def get(self, key):
        return self.store.get(key)

    def setex(self, key, ttl, value):
        self.store[key] = str(value)

    def incr(self, key):
        self.store[key] = str(int(self.store.get(key, 0)) + 1)
        return int(self.store[key])

    def expire(self, key, ttl):
        return True

    def ttl(self, key):
        return 60


class BrokenRedis:
    def get(self, key):
        raise RedisConnectionError("down")


def _app(client_getter, identity=None):
    app = FastAPI()
    app.add_middleware(RateLimitMiddleware, default_limit=3, ai_limit=1, window=60, client_getter=client_getter)

    if identity is not None:
        @app.middleware("http")
        async def attach_identity(request: Request, call_next):
            request.state.identity_id = identity
            return await call_next(request)

    @app.get("/api/things")
    async def things():
        return {"ok": True}

    @app.post("/api/ai/analyze-progress")
    async def analyze():
        return {"analysis": "x"}

    @app.get("/api/health")
    async def health():
        return {"status": "ok"}

    return app


@pytest.fixture(autouse=True)
def _enabled(monkeypatch):
    monkeypatch.setattr(rate_limit.settings, "RATE_LIMIT_ENABLED", True)


class TestRateLimit:

    def test_default_limit(self):
        redis = FakeRedis()
        client = TestClient(_app(lambda: redis))

        statuses = [client.get("/api/things").status_code for _ in range(4)]

        assert statuses == [200, 200, 200, 429]

    def test_ai_endpoints_have_tighter_limit(self):
        redis = FakeRedis()
        client = TestClient(_app(lambda: redis))

        first = client.post("/api/ai/analyze-progress")
        second = client.post("/api/ai/analyze-progress")

        assert first.status_code == 200
        assert first.headers["X-RateLimit-Limit"] == "1"
        assert second.status_code == 429
        assert second.json() == {"error": "Rate limit exceeded"}
        assert "Retry-After" in second.headers

    def test_keyed_by_identity_when_known(self):
        redis = FakeRedis()
        client = TestClient(_app(lambda: redis, identity="athlete-1"))

        client.get("/api/things")

        assert "rate_limit:user:athlete-1:/api/things" in redis.store

    def test_exempt_paths_not_counted(self):
        redis = FakeRedis()
        client = TestClient(_app(lambda: redis))

        for _ in range(5):
            assert client.get("/api/health").status_code == 200
        assert redis.store == {}

    def test_fails_open_without_redis(self):
        client = TestClient(_app(lambda: None))
        assert all(client.get("/api/things").status_code == 200 for _ in range(5))

    def test_fails_open_on_redis_error(self):
        client = TestClient(_app(lambda: BrokenRedis()))
        assert client.get("/api/things").status_code == 200

    def test_disabled(self, monkeypatch):
        monkeypatch.setattr(rate_limit.settings, "RATE_LIMIT_ENABLED", False)
        redis = FakeRedis()
        client = TestClient(_app(lambda: redis))

        for _ in range(5):
            assert client.get("/api/things").status_code == 200
