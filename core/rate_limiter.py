"""
Rate Limiting System.

Token-bucket rate limiting for JukeBoxd. It protects the HTTP surface from
abuse and keeps the outgoing music catalog traffic within the provider's
published limits.

Key Components:
- `RateLimitRule`: Number of requests allowed per window, plus burst capacity.
- `TokenBucket`: The token bucket itself. Also used directly by the music
  catalog client, which waits for a token instead of rejecting.
- `MemoryRateLimiter`: Per-identifier buckets keyed by rule, kept in-process.
- `RateLimit`: FastAPI dependency that applies a rule to the caller's IP and
  raises `RateLimitError` (HTTP 429) when the bucket is empty.
- `get_rate_limiter` / `init_rate_limiter`: Global instance wiring. Limits
  come from `API_RATE_LIMIT` (per 15 minutes) and `AUTH_RATE_LIMIT` (per
  minute).
"""

import os
import time
import asyncio
import threading
from typing import Any, Dict, Optional, Tuple
from dataclasses import dataclass, field

from fastapi import Request

from core.logging_config import get_logger
from core.exceptions import RateLimitError

logger = get_logger(__name__)


@dataclass
class RateLimitRule:
    """Rate limit rule configuration"""

    requests: int  # Number of requests allowed
    window: float  # Time window in seconds
    burst: Optional[int] = None  # Burst capacity (defaults to requests)

    def __post_init__(self):
        if self.burst is None:
            self.burst = self.requests


@dataclass
class TokenBucket:
    """Token bucket for rate limiting"""

    capacity: int
    refill_rate: float  # tokens per second
    tokens: float = -1.0
    last_refill: float = field(default_factory=time.monotonic)

    def __post_init__(self):
        if self.tokens < 0:
            self.tokens = float(self.capacity)

    @classmethod
    def from_rule(cls, rule: RateLimitRule) -> "TokenBucket":
        return cls(capacity=rule.burst, refill_rate=rule.requests / rule.window)

    def _refill(self) -> None:
        now = time.monotonic()
        elapsed = now - self.last_refill
        self.tokens = min(self.capacity, self.tokens + elapsed * self.refill_rate)
        self.last_refill = now

    def consume(self, tokens: int = 1) -> bool:
        """Try to consume tokens from the bucket"""
        self._refill()
        if self.tokens >= tokens:
            self.tokens -= tokens
            return True
        return False

    def time_until_available(self, tokens: int = 1) -> float:
        """Get time in seconds until tokens are available"""
        self._refill()
        if self.tokens >= tokens:
            return 0.0
        return (tokens - self.tokens) / self.refill_rate

    async def acquire(self, tokens: int = 1) -> float:
        """Wait until tokens are available, then consume them. Returns seconds waited."""
        waited = 0.0
        while not self.consume(tokens):
            delay = self.time_until_available(tokens)
            waited += delay
            await asyncio.sleep(delay)
        return waited


class MemoryRateLimiter:
    """In-memory rate limiter using token bucket algorithm"""

    def __init__(self):
        self.buckets: Dict[str, TokenBucket] = {}
        self.rules: Dict[str, RateLimitRule] = {}
        self._lock = threading.Lock()

    def add_rule(self, key: str, rule: RateLimitRule):
        """Add a rate limiting rule"""
        with self._lock:
            self.rules[key] = rule
            logger.info(
                f"Added rate limit rule for {key}: {rule.requests} requests per {rule.window}s"
            )

    def check_rate_limit(
        self, identifier: str, rule_key: str = "api"
    ) -> Tuple[bool, Dict[str, Any]]:
        """Check if request is within rate limit"""
        with self._lock:
            rule = self.rules.get(rule_key)
            if rule is None:
                return True, {"allowed": True, "remaining": None, "retry_after": 0}

            bucket_key = f"{rule_key}:{identifier}"
            bucket = self.buckets.get(bucket_key)
            if bucket is None:
                bucket = self.buckets[bucket_key] = TokenBucket.from_rule(rule)

            allowed = bucket.consume(1)
            info = {
                "allowed": allowed,
                "limit": rule.requests,
                "remaining": int(bucket.tokens),
                "retry_after": 0 if allowed else bucket.time_until_available(1),
            }

            if not allowed:
                logger.warning(f"Rate limit exceeded for {identifier} on rule {rule_key}")

            return allowed, info

    def reset_limit(self, identifier: str, rule_key: str = "api"):
        """Reset rate limit for an identifier"""
        with self._lock:
            self.buckets.pop(f"{rule_key}:{identifier}", None)

    def get_stats(self) -> Dict[str, Any]:
        """Get rate limiter statistics"""
        with self._lock:
            return {
                "total_buckets": len(self.buckets),
                "rules": {
                    k: {"requests": v.requests, "window": v.window, "burst": v.burst}
                    for k, v in self.rules.items()
                },
            }


def _default_rules() -> Dict[str, RateLimitRule]:
    return {
        "api": RateLimitRule(requests=int(os.getenv("API_RATE_LIMIT", "100")), window=900),
        "auth": RateLimitRule(requests=int(os.getenv("AUTH_RATE_LIMIT", "10")), window=60),
    }


# Global rate limiter instance
_rate_limiter: Optional[MemoryRateLimiter] = None


def get_rate_limiter() -> MemoryRateLimiter:
    """Get the global rate limiter instance"""
    global _rate_limiter
    if _rate_limiter is None:
        _rate_limiter = init_rate_limiter()
    return _rate_limiter


def init_rate_limiter() -> MemoryRateLimiter:
    """Initialize the global rate limiter with the default rules"""
    global _rate_limiter
    _rate_limiter = MemoryRateLimiter()
    for key, rule in _default_rules().items():
        _rate_limiter.add_rule(key, rule)
    logger.info("Initialized memory rate limiter")
    return _rate_limiter


def client_identifier(request: Request) -> str:
    """Identify the caller by IP, honouring proxy headers"""
    forwarded_for = request.headers.get("X-Forwarded-For")
    if forwarded_for:
        return forwarded_for.split(",")[0].strip()
    real_ip = request.headers.get("X-Real-IP")
    if real_ip:
        return real_ip
    return request.client.host if request.client else "unknown"


class RateLimit:
    """FastAPI dependency applying a named rule to the calling client"""

    def __init__(self, rule_key: str = "api"):
        self.rule_key = rule_key

    async def __call__(self, request: Request) -> None:
        identifier = client_identifier(request)
        allowed, info = get_rate_limiter().check_rate_limit(identifier, self.rule_key)
        if not allowed:
            raise RateLimitError(identifier, info["retry_after"])
