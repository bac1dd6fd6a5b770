"""
Redis client utilities for GoCart

Provides async Redis connection management (direct URL or Sentinel) for
state that has to be shared between service instances.
"""

import logging
from typing import Optional, List, Tuple

import redis.asyncio as aioredis
from redis.asyncio.sentinel import Sentinel

logger = logging.getLogger(__name__)

# Global async Redis client instance
_redis_client: Optional[aioredis.Redis] = None


def parse_sentinel_hosts(hosts: str, default_port: int = 26379) -> List[Tuple[str, int]]:
    """
    Parse a comma separated 'host[:port]' list

    Args:
        hosts: e.g. "sentinel-a:26379,sentinel-b"
        default_port: Port used when an entry has none

    Returns:
        List of (host, port) tuples
    """
    parsed = []
    for entry in hosts.split(","):
        entry = entry.strip()
        if not entry:
            continue
        host, _, port = entry.partition(":")
        parsed.append((host, int(port) if port else default_port))
    return parsed


def create_redis_client(
    redis_url: str,
    sentinel_hosts: Optional[str] = None,
    sentinel_master: str = "mymaster",
    password: Optional[str] = None,
    db: int = 0,
    socket_timeout: float = 5.0,
) -> aioredis.Redis:
    """
    Build an async Redis client without connecting it

    Args:
        redis_url: Connection URL used when no Sentinel hosts are given
        sentinel_hosts: Comma separated Sentinel endpoints
        sentinel_master: Sentinel master name
        password: Password for the Sentinel-managed master
        db: Database index for the Sentinel-managed master
        socket_timeout: Socket and connect timeout in seconds

    Returns:
        Redis client
    """
    if sentinel_hosts:
        hosts = parse_sentinel_hosts(sentinel_hosts)
        logger.info(f"Creating async Redis client with Sentinel: hosts={hosts}, master={sentinel_master}")
        sentinel = Sentinel(
            hosts,
            socket_timeout=socket_timeout,
            socket_connect_timeout=socket_timeout,
            socket_keepalive=True,
            retry_on_timeout=True
        )
        return sentinel.master_for(
            sentinel_master,
            socket_timeout=socket_timeout,
            password=password,
            db=db,
            decode_responses=True,
            retry_on_timeout=True
        )

    return aioredis.from_url(
        redis_url,
        decode_responses=True,
        socket_timeout=socket_timeout,
        socket_connect_timeout=socket_timeout,
        socket_keepalive=True,
        health_check_interval=30,
        max_connections=50,
    )


async def init_redis_client(redis_url: str, **kwargs) -> aioredis.Redis:
    """
    Create the process-wide client and verify it with PING

    Raises:
        redis.exceptions.RedisError: If Redis cannot be reached
    """
    global _redis_client

    if _redis_client is not None:
        return _redis_client

    client = create_redis_client(redis_url, **kwargs)
    try:
        await client.ping()
    except Exception:
        await client.aclose()
        raise

    _redis_client = client
    logger.info("Async Redis client initialized successfully")
    return _redis_client


async def close_redis_client():
    """Close async Redis client connection"""
    global _redis_client

    if _redis_client is not None:
        await _redis_client.aclose()
        _redis_client = None
        logger.info("Async Redis client closed")
