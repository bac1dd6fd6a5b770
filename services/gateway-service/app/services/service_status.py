"""
Upstream health status with a short-lived cache
"""

import asyncio
import time
from datetime import datetime, timezone
from typing import Any, Callable, Dict

import httpx
import structlog

from app.models.upstream import UpstreamRegistry
from app.services.proxy_service import UpstreamProxy

logger = structlog.get_logger(__name__)

HEALTH_ENDPOINT = "/health"


class ServiceStatusMonitor:
    """Probes each upstream's /health endpoint, caching results for cache_ttl seconds"""

    def __init__(
        self,
        upstreams: UpstreamRegistry,
        proxy: UpstreamProxy,
        cache_ttl: float = 30.0,
        probe_timeout: float = 5.0,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.upstreams = upstreams
        self.proxy = proxy
        self.cache_ttl = cache_ttl
        self.probe_timeout = probe_timeout
        self._clock = clock
        self._cache: Dict[str, tuple] = {}

    async def get_service_status(self, service_name: str) -> Dict[str, Any]:
        now = self._clock()
        cached = self._cache.get(service_name)
        if cached and (now - cached[0]) < self.cache_ttl:
            return cached[1]

        upstream = self.upstreams.get(service_name)
        if upstream is None:
            return {"healthy": False, "error": "Service not configured"}

        checked_at = datetime.now(timezone.utc).isoformat()
        started = time.perf_counter()
        try:
            response = await self.proxy.get(
                upstream.base_url.rstrip("/") + HEALTH_ENDPOINT,
                timeout=self.probe_timeout,
            )
            status = {
                "healthy": response.is_success,
                "timestamp": checked_at,
                "response_time_ms": round((time.perf_counter() - started) * 1000, 1),
            }
        except httpx.HTTPError as e:
            logger.warning("Upstream health probe failed", service=service_name, error_type=type(e).__name__)
            status = {
                "healthy": False,
                "timestamp": checked_at,
                "error": type(e).__name__,
            }

        self._cache[service_name] = (now, status)
        return status

    async def get_all_service_status(self) -> Dict[str, Dict[str, Any]]:
        """Probe every upstream concurrently"""
        names = [upstream.service_name for upstream in self.upstreams]
        statuses = await asyncio.gather(*(self.get_service_status(name) for name in names))
        return dict(zip(names, statuses))
