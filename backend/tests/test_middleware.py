"""
Tests for the HTTP middleware: correlation ids and the Redis-backed rate limiter.
"""

import pytest
from fastapi import FastAPI
from httpx import ASGITransport, AsyncClient
from redis.exceptions import ConnectionError as RedisConnectionError

from app.middleware import RateLimitMiddleware, RedisRateLimiter


class FakeClock:
    def __init__(self):
        self.now = 1020.0

    def __call__(self) -> float:
        return self.now


class InMemoryRedis:
    """Just the INCR/EXPIRE surface the limiter uses, with TTLs driven by a clock."""

    def __init__(self, clock=None):
        self.clock = clock or FakeClock()
        self.counts: dict[str, int] = {}
        self.expires_at: dict[str, float] = {}

    def _evict(self) -> None:
        now = self.clock()
        for key in [k for k, at in self.expires_at.items() if at <= now]:
            self.counts.pop(key, None)
            del self.expires_at[key]

    async def incr(self, key: str) -> int:
        self._evict()
        self.counts[key] = self.counts.get(key, 0) + 1
        return self.counts[key]

    async def expire(self, key: str, seconds: int) -> bool:
        self.expires_at[key] = self.clock() + seconds
        return True


class UnreachableRedis:
    async def incr(self, key: str) -> int:
        raise RedisConnectionError("Connection refused")

    async def expire(self, key: str, seconds: int) -> bool:
        raise RedisConnectionError("Connection refused")


class TestRedisRateLimiter:
    async def test_allows_up_to_limit_then_blocks(self):
        clock = FakeClock()
        limiter = RedisRateLimiter(max_requests=2, window_seconds=60, client=InMemoryRedis(clock), clock=clock)

        # 1020 sits 0s into the window [1020, 1080)
        assert await limiter.hit("1.2.3.4") == (True, 1, 60)
        assert (await limiter.hit("1.2.3.4"))[0] is True
        allowed, remaining, reset_in = await limiter.hit("1.2.3.4")
        assert allowed is False
        assert remaining == 0
        assert reset_in == 60

    async def test_keys_are_independent(self):
        clock = FakeClock()
        limiter = RedisRateLimiter(max_requests=1, window_seconds=60, client=InMemoryRedis(clock), clock=clock)
        assert (await limiter.hit("a"))[0] is True
        assert (await limiter.hit("b"))[0] is True
        assert (await limiter.hit("a"))[0] is False

    async def test_window_resets(self):
        clock = FakeClock()
        limiter = RedisRateLimiter(max_requests=1, window_seconds=60, client=InMemoryRedis(clock), clock=clock)
        assert (await limiter.hit("a"))[0] is True
        clock.now += 30
        assert await limiter.hit("a") == (False, 0, 30)
        clock.now += 30
        assert (await limiter.hit("a"))[0] is True

    async def test_counters_carry_a_ttl_and_are_reclaimed(self):
        clock = FakeClock()
        redis = InMemoryRedis(clock)
        limiter = RedisRateLimiter(max_requests=5, window_seconds=60, client=redis, clock=clock)

        for i in range(500):
            await limiter.hit(f"10.0.{i // 256}.{i % 256}")
        assert len(redis.counts) == 500
        assert all(at == clock.now + 60 for at in redis.expires_at.values())

        clock.now += 120
        await limiter.hit("192.168.0.1")
        assert list(redis.counts) == ["ratelimit:192.168.0.1:19"]

    async def test_counter_is_shared_between_limiters(self):
        clock = FakeClock()
        redis = InMemoryRedis(clock)
        first = RedisRateLimiter(max_requests=2, window_seconds=60, client=redis, clock=clock)
        second = RedisRateLimiter(max_requests=2, window_seconds=60, client=redis, clock=clock)

        assert (await first.hit("a"))[0] is True
        assert (await second.hit("a"))[0] is True
        assert (await first.hit("a"))[0] is False


def _build_app(client) -> FastAPI:
    app = FastAPI()
    app.add_middleware(RateLimitMiddleware, max_requests=2, window_seconds=900, client=client)

    @app.get("/api/ping")
    async def ping():
        return {"ok": True}

    @app.get("/api/health")
    async def health():
        return {"status": "healthy"}

    @app.get("/static/logo")
    async def logo():
        return {"ok": True}

    return app


@pytest.fixture
def limited_app() -> FastAPI:
    return _build_app(InMemoryRedis())


class TestRateLimitMiddleware:
    async def test_blocks_after_limit(self, limited_app: FastAPI):
        async with AsyncClient(transport=ASGITransport(app=limited_app), base_url="http://test") as ac:
            first = await ac.get("/api/ping")
            assert first.status_code == 200
            assert first.headers["x-ratelimit-limit"] == "2"
            assert first.headers["x-ratelimit-remaining"] == "1"
            assert (await ac.get("/api/ping")).status_code == 200

            blocked = await ac.get("/api/ping")
            assert blocked.status_code == 429
            assert blocked.json()["error"] == "rate_limited"
            assert "message" in blocked.json()
            assert int(blocked.headers["retry-after"]) > 0

    async def test_health_and_non_api_paths_are_exempt(self, limited_app: FastAPI):
        async with AsyncClient(transport=ASGITransport(app=limited_app), base_url="http://test") as ac:
            for _ in range(5):
                assert (await ac.get("/api/health")).status_code == 200
                assert (await ac.get("/static/logo")).status_code == 200
            assert (await ac.get("/api/ping")).status_code == 200

    async def test_unreachable_redis_lets_requests_through(self):
        app = _build_app(UnreachableRedis())
        async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
            for _ in range(5):
                resp = await ac.get("/api/ping")
                assert resp.status_code == 200
                assert "x-ratelimit-limit" not in resp.headers


class TestCorrelationId:
    async def test_request_id_is_echoed(self, client: AsyncClient):
        resp = await client.get("/api/health", headers={"X-Request-ID": "abc-123"})
        assert resp.headers["x-request-id"] == "abc-123"

    async def test_request_id_is_generated(self, client: AsyncClient):
        resp = await client.get("/api/health")
        assert len(resp.headers["x-request-id"]) == 36
