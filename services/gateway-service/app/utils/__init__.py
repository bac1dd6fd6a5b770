"""
Utility modules for the gateway
"""

from .rate_limiter import RateLimiter, MemoryRateLimitStore, RedisRateLimitStore

__all__ = [
    "RateLimiter",
    "MemoryRateLimitStore",
    "RedisRateLimitStore",
]
