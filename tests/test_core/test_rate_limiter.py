from unittest.mock import Mock

import pytest

from core.exceptions import RateLimitError
from core.rate_limiter import (
    MemoryRateLimiter,
    RateLimit,
    RateLimitRule,
    TokenBucket,
    _default_rules,
    client_identifier,
)


class TestTokenBucket:
    def test_consume_until_empty(self):
        bucket = TokenBucket(capacity=2, refill_rate=0.001)

        assert bucket.consume() is True
        assert bucket.consume() is True
        assert bucket.consume() is False
        assert bucket.time_until_available() > 0

    def test_from_rule(self):
        bucket = TokenBucket.from_rule(RateLimitRule(requests=10, window=60, burst=3))

        assert bucket.capacity == 3
        assert bucket.refill_rate == pytest.approx(10 / 60)

    async def test_acquire_waits_for_refill(self):
        bucket = TokenBucket(capacity=1, refill_rate=50.0)
        bucket.consume()

        waited = await bucket.acquire()

        assert waited > 0


class TestMemoryRateLimiter:
    def test_rule_is_enforced_per_identifier(self):
        limiter = MemoryRateLimiter()
        limiter.add_rule("auth", RateLimitRule(requests=2, window=60))

        assert limiter.check_rate_limit("1.1.1.1", "auth")[0] is True
        assert limiter.check_rate_limit("1.1.1.1", "auth")[0] is True
        allowed, info = limiter.check_rate_limit("1.1.1.1", "auth")

        assert allowed is False
        assert info["retry_after"] > 0
        assert limiter.check_rate_limit("2.2.2.2", "auth")[0] is True

    def test_unknown_rule_allows(self):
        allowed, info = MemoryRateLimiter().check_rate_limit("1.1.1.1", "missing")

        assert allowed is True
        assert info["remaining"] is None

    def test_reset_limit(self):
        limiter = MemoryRateLimiter()
        limiter.add_rule("api", RateLimitRule(requests=1, window=900))
        limiter.check_rate_limit("ip")

        limiter.reset_limit("ip")

        assert limiter.check_rate_limit("ip")[0] is True

    def test_default_rules_from_env(self, monkeypatch):
        monkeypatch.setenv("API_RATE_LIMIT", "250")
        monkeypatch.setenv("AUTH_RATE_LIMIT", "7")

        rules = _default_rules()

        assert rules["api"] == RateLimitRule(requests=250, window=900, burst=250)
        assert rules["auth"].requests == 7
        assert rules["auth"].window == 60


def make_request(headers=None, host="10.0.0.1"):
    request = Mock()
    request.headers = headers or {}
    request.client = Mock(host=host)
    return request


class TestClientIdentifier:
    def test_forwarded_for_wins(self):
        request = make_request({"X-Forwarded-For": "203.0.113.5, 10.0.0.2"})
        assert client_identifier(request) == "203.0.113.5"

    def test_real_ip(self):
        assert client_identifier(make_request({"X-Real-IP": "198.51.100.7"})) == "198.51.100.7"

    def test_peer_address(self):
        assert client_identifier(make_request()) == "10.0.0.1"


class TestRateLimitDependency:
    async def test_raises_when_exhausted(self, monkeypatch):
        limiter = MemoryRateLimiter()
        limiter.add_rule("auth", RateLimitRule(requests=1, window=60))
        monkeypatch.setattr("core.rate_limiter.get_rate_limiter", lambda: limiter)
        dependency = RateLimit("auth")
        request = make_request(host="192.0.2.10")

        await dependency(request)
        with pytest.raises(RateLimitError) as exc_info:
            await dependency(request)

        assert exc_info.value.retry_after > 0
