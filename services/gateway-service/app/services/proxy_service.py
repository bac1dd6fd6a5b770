"""
Upstream proxy client

Forwards admitted requests to backend services over a shared
httpx.AsyncClient with connection pooling.

Lifecycle:
    - start() during app startup (FastAPI lifespan)
    - stop() during app shutdown
"""

import asyncio
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional, Tuple

import httpx
import structlog

from shared.utils.errors import UpstreamUnavailableError
from app.models.upstream import UpstreamTarget

logger = structlog.get_logger(__name__)

HOP_BY_HOP_HEADERS = frozenset({
    "connection",
    "keep-alive",
    "proxy-authenticate",
    "proxy-authorization",
    "te",
    "trailer",
    "trailers",
    "transfer-encoding",
    "upgrade",
})

# Set by the gateway only; never trusted from the caller
GATEWAY_HEADERS = frozenset({
    "x-gateway",
    "x-forwarded-for",
    "x-real-ip",
    "x-user-id",
    "x-user-role",
    "x-request-id",
})

# httpx recomputes these for the outgoing request / decoded response
RECOMPUTED_REQUEST_HEADERS = frozenset({"host", "content-length"})
RECOMPUTED_RESPONSE_HEADERS = frozenset({"content-length", "content-encoding"})


@dataclass
class ProxiedRequest:
    method: str
    path: str
    query: str
    headers: List[Tuple[str, str]]
    body: bytes


@dataclass
class ProxiedResponse:
    status_code: int
    headers: List[Tuple[str, str]]
    content: bytes


def _connection_tokens(headers: Iterable[Tuple[str, str]]) -> set:
    tokens = set()
    for name, value in headers:
        if name.lower() == "connection":
            tokens.update(token.strip().lower() for token in value.split(",") if token.strip())
    return tokens


def build_forward_headers(
    incoming: Iterable[Tuple[str, str]],
    client_ip: str,
    request_id: str,
    user_id: Optional[str] = None,
    user_role: Optional[str] = None,
) -> List[Tuple[str, str]]:
    """
    Copy end-to-end request headers and inject gateway provenance

    Identity headers are stripped from the caller's request first, so each
    injected header appears exactly once.
    """
    incoming = list(incoming)
    drop = HOP_BY_HOP_HEADERS | GATEWAY_HEADERS | RECOMPUTED_REQUEST_HEADERS | _connection_tokens(incoming)
    headers = [(name, value) for name, value in incoming if name.lower() not in drop]

    headers.append(("X-Gateway", "true"))
    headers.append(("X-Forwarded-For", client_ip))
    headers.append(("X-Real-IP", client_ip))
    headers.append(("X-Request-ID", request_id))
    if user_id is not None:
        headers.append(("X-User-ID", user_id))
    if user_role is not None:
        headers.append(("X-User-Role", user_role))
    return headers


def filter_response_headers(headers: Iterable[Tuple[str, str]]) -> List[Tuple[str, str]]:
    headers = list(headers)
    drop = HOP_BY_HOP_HEADERS | RECOMPUTED_RESPONSE_HEADERS | _connection_tokens(headers)
    return [(name, value) for name, value in headers if name.lower() not in drop]


class UpstreamProxy:
    """HTTP client shared by every proxied request"""

    def __init__(
        self,
        max_connections: int = 100,
        max_keepalive: int = 20,
        retry_backoff: float = 0.25,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.max_connections = max_connections
        self.max_keepalive = max_keepalive
        self.retry_backoff = retry_backoff
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    async def start(self):
        """Initialize the shared HTTP client"""
        if self._client is not None:
            logger.warning("UpstreamProxy already started")
            return

        limits = httpx.Limits(
            max_connections=self.max_connections,
            max_keepalive_connections=self.max_keepalive,
            keepalive_expiry=5.0
        )
        self._client = httpx.AsyncClient(
            limits=limits,
            transport=self._transport,
            follow_redirects=False,
        )
        logger.info("UpstreamProxy started", max_connections=self.max_connections)

    async def stop(self):
        """Close the HTTP client and release resources"""
        if self._client:
            await self._client.aclose()
            self._client = None
            logger.info("UpstreamProxy stopped")

    @property
    def client(self) -> httpx.AsyncClient:
        if self._client is None:
            raise RuntimeError("UpstreamProxy.start() has not been called")
        return self._client

    async def _send_with_retries(self, upstream: UpstreamTarget, request: httpx.Request) -> httpx.Response:
        attempt = 0
        while True:
            try:
                return await self.client.send(request)
            except (httpx.ConnectError, httpx.ConnectTimeout) as e:
                # Nothing reached the upstream, so any method is safe to resend
                if attempt >= upstream.retries:
                    raise
                delay = self.retry_backoff * (2 ** attempt)
                attempt += 1
                logger.info(
                    "Retrying upstream connection",
                    service=upstream.service_name,
                    attempt=attempt,
                    delay=delay,
                    error=type(e).__name__,
                )
                await asyncio.sleep(delay)

    async def forward(self, upstream: UpstreamTarget, proxied: ProxiedRequest) -> ProxiedResponse:
        """
        Send a request to an upstream and read the full response

        The whole exchange, retries included, is bounded by upstream.timeout.

        Raises:
            UpstreamUnavailableError: If the upstream is unreachable, times out
                or breaks the connection
        """
        url = upstream.build_url(proxied.path, proxied.query)
        timeout = httpx.Timeout(upstream.timeout, connect=min(upstream.connect_timeout, upstream.timeout))
        request = self.client.build_request(
            proxied.method,
            url,
            headers=proxied.headers,
            content=proxied.body or None,
            timeout=timeout,
        )

        try:
            response = await asyncio.wait_for(
                self._send_with_retries(upstream, request),
                timeout=upstream.timeout,
            )
        except (httpx.HTTPError, asyncio.TimeoutError) as e:
            logger.error(
                "Upstream request failed",
                service=upstream.service_name,
                method=proxied.method,
                url=url,
                error_type=type(e).__name__,
            )
            raise UpstreamUnavailableError(upstream.service_name)

        logger.debug(
            "Upstream responded",
            service=upstream.service_name,
            method=proxied.method,
            url=url,
            status=response.status_code,
        )
        return ProxiedResponse(
            status_code=response.status_code,
            headers=filter_response_headers(response.headers.multi_items()),
            content=response.content,
        )

    async def get(self, url: str, timeout: float) -> httpx.Response:
        """Plain GET used by health probes"""
        return await self.client.get(url, timeout=timeout)
