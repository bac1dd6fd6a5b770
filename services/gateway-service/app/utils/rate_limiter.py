"""
Rate limiting for the gateway

Fixed-window counters per (rate class, client key). Counters live in Redis so
every gateway instance shares them; the in-memory store is a fallback for
single-process deployments and for when Redis is unreachable at startup.
"""

import asyncio
import math
import time
from dataclasses import dataclass
from typing import Callable, Dict, Optional, Tuple

import structlog
from redis.exceptions import RedisError

from app.config import Settings
from app.models.policy import RateClass

logger = structlog.get_logger(__name__)

# INCR and PEXPIRE run atomically inside Redis, so concurrent hits on the
# same key can never both observe a fresh window.
INCREMENT_WITH_EXPIRY = """
local current = redis.call('INCR', KEYS[1])
if current == 1 then
    redis.call('PEXPIRE', KEYS[1], ARGV[1])
end
local ttl = redis.call('PTTL', KEYS[1])
if ttl < 0 then
    redis.call('PEXPIRE', KEYS[1], ARGV[1])
    ttl = tonumber(ARGV[1])
end
return {current, ttl}
"""


@dataclass(frozen=True)
class RateLimitRule:
    max_requests: int
    window_seconds: int
    message: str


@dataclass(frozen=True)
class RateLimitResult:
    allowed: bool
    limit: int
    remaining: int
    reset_after: int  # seconds until the window resets

    def headers(self) -> Dict[str, str]:
        headers = {
            "RateLimit-Limit": str(self.limit),
            "RateLimit-Remaining": str(self.remaining),
            "RateLimit-Reset": str(self.reset_after),
        }
        if not self.allowed:
            headers["Retry-After"] = str(self.reset_after)
        return headers


def build_rules(settings: Settings) -> Dict[RateClass, RateLimitRule]:
    return {
        RateClass.GENERAL: RateLimitRule(
            settings.rate_limit_general_max,
            settings.rate_limit_general_window_seconds,
            "Too many requests from this IP, please try again later.",
        ),
        RateClass.AUTH: RateLimitRule(
            settings.rate_limit_auth_max,
            settings.rate_limit_auth_window_seconds,
            "Too many authentication attempts, please try again later.",
        ),
        RateClass.PAYMENT: RateLimitRule(
            settings.rate_limit_payment_max,
            settings.rate_limit_payment_window_seconds,
            "Too many payment requests, please try again later.",
        ),
        RateClass.UPLOAD: RateLimitRule(
            settings.rate_limit_upload_max,
            settings.rate_limit_upload_window_seconds,
            "Too many upload requests, please try again later.",
        ),
    }


class RedisRateLimitStore:
    """Shared counters backed by a Redis Lua script"""

    def __init__(self, redis_client):
        self.redis = redis_client
        self._script = redis_client.register_script(INCREMENT_WITH_EXPIRY)

    async def increment(self, key: str, window_seconds: int) -> Tuple[int, float]:
        """
        Atomically count one hit

        Returns:
            (hits in current window, seconds until the window resets)
        """
        count, ttl_ms = await self._script(keys=[key], args=[window_seconds * 1000])
        return int(count), int(ttl_ms) / 1000.0

    async def reset(self, key: str):
        await self.redis.delete(key)


class MemoryRateLimitStore:
    """Per-process counters; only consistent within one gateway process"""

    def __init__(self, clock: Callable[[], float] = time.monotonic):
        self._clock = clock
        self._windows: Dict[str, Tuple[int, float]] = {}
        self._lock = asyncio.Lock()

    async def increment(self, key: str, window_seconds: int) -> Tuple[int, float]:
        async with self._lock:
            now = self._clock()
            count, expires_at = self._windows.get(key, (0, 0.0))
            if expires_at <= now:
                count, expires_at = 0, now + window_seconds
            count += 1
            self._windows[key] = (count, expires_at)
            self._evict_expired(now)
            return count, expires_at - now

    async def reset(self, key: str):
        async with self._lock:
            self._windows.pop(key, None)

    def _evict_expired(self, now: float):
        if len(self._windows) < 10000:
            return
        for stale in [k for k, (_, exp) in self._windows.items() if exp <= now]:
            del self._windows[stale]


class RateLimiter:
    """Applies the per-class rules to a counter store"""

    def __init__(self, store, rules: Dict[RateClass, RateLimitRule], key_prefix: str = "gocart:ratelimit"):
        self.store = store
        self.rules = rules
        self.key_prefix = key_prefix

    def build_key(self, rate_class: RateClass, identity: str) -> str:
        return f"{self.key_prefix}:{rate_class.value}:{identity}"

    def rule_for(self, rate_class: RateClass) -> RateLimitRule:
        return self.rules[rate_class]

    async def hit(self, rate_class: RateClass, identity: str) -> Optional[RateLimitResult]:
        """
        Count a request against its class quota

        Args:
            rate_class: Route class the request belongs to
            identity: "user:<id>" for verified principals, "ip:<addr>" otherwise

        Returns:
            RateLimitResult, or None when the store failed and the request
            was let through
        """
        rule = self.rules[rate_class]
        key = self.build_key(rate_class, identity)
        try:
            count, reset_after = await self.store.increment(key, rule.window_seconds)
        except (RedisError, OSError) as e:
            logger.warning("Rate limit store unavailable, allowing request", key=key, error=str(e))
            return None

        allowed = count <= rule.max_requests
        result = RateLimitResult(
            allowed=allowed,
            limit=rule.max_requests,
            remaining=max(rule.max_requests - count, 0),
            reset_after=max(math.ceil(reset_after), 0),
        )
        if not allowed:
            logger.warning(
                "Rate limit exceeded",
                rate_class=rate_class.value,
                identity=identity,
                count=count,
                limit=rule.max_requests,
            )
        return result
