"""
Unit tests for the upstream proxy client
"""

import asyncio
import time
import httpx
import pytest

from shared.utils.errors import ErrorCode, UpstreamUnavailableError
from app.models.upstream import RewriteRule, UpstreamTarget
from app.services.proxy_service import (
    ProxiedRequest,
    UpstreamProxy,
    build_forward_headers,
    filter_response_headers,
)


def make_upstream(timeout: float = 1.0, retries: int = 2) -> UpstreamTarget:
    return UpstreamTarget(
        service_name="backend",
        base_url="http://backend.test",
        mounts=("/api",),
        rewrite_rules=(RewriteRule("/api/products", "/api/catalog/products"),),
        timeout=timeout,
        connect_timeout=timeout,
        retries=retries,
    )


def make_request(method: str = "GET", path: str = "/api/products", body: bytes = b"") -> ProxiedRequest:
    return ProxiedRequest(method=method, path=path, query="", headers=[("accept", "application/json")], body=body)


class TestForwardHeaders:
    """Test header injection"""

    def test_injects_gateway_headers(self):
        headers = build_forward_headers(
            [("accept", "*/*"), ("authorization", "Bearer t")],
            client_ip="203.0.113.9",
            request_id="req-1",
            user_id="u-1",
            user_role="admin",
        )
        as_dict = dict(headers)

        assert as_dict["X-Gateway"] == "true"
        assert as_dict["X-Forwarded-For"] == "203.0.113.9"
        assert as_dict["X-Real-IP"] == "203.0.113.9"
        assert as_dict["X-Request-ID"] == "req-1"
        assert as_dict["X-User-ID"] == "u-1"
        assert as_dict["X-User-Role"] == "admin"
        assert as_dict["authorization"] == "Bearer t"

    def test_spoofed_identity_headers_replaced(self):
        headers = build_forward_headers(
            [("x-user-role", "admin"), ("X-User-ID", "victim"), ("x-gateway", "false")],
            client_ip="1.1.1.1",
            request_id="r",
            user_id="u-2",
            user_role="customer",
        )
        roles = [value for name, value in headers if name.lower() == "x-user-role"]
        ids = [value for name, value in headers if name.lower() == "x-user-id"]

        assert roles == ["customer"]
        assert ids == ["u-2"]

    def test_anonymous_requests_carry_no_identity(self):
        headers = build_forward_headers(
            [("x-user-id", "forged")],
            client_ip="1.1.1.1",
            request_id="r",
        )
        names = {name.lower() for name, _ in headers}
        assert "x-user-id" not in names
        assert "x-user-role" not in names

    def test_hop_by_hop_and_host_removed(self):
        headers = build_forward_headers(
            [
                ("host", "gateway.gocart.com"),
                ("connection", "keep-alive, x-custom-hop"),
                ("x-custom-hop", "1"),
                ("transfer-encoding", "chunked"),
                ("content-length", "10"),
                ("stripe-signature", "t=1,v1=abc"),
            ],
            client_ip="1.1.1.1",
            request_id="r",
        )
        names = {name.lower() for name, _ in headers}
        assert names.isdisjoint({"host", "connection", "x-custom-hop", "transfer-encoding", "content-length"})
        assert "stripe-signature" in names

    def test_response_headers_filtered(self):
        headers = filter_response_headers([
            ("content-type", "application/json"),
            ("content-encoding", "gzip"),
            ("content-length", "99"),
            ("set-cookie", "a=1"),
            ("set-cookie", "b=2"),
            ("connection", "close"),
        ])
        assert headers == [
            ("content-type", "application/json"),
            ("set-cookie", "a=1"),
            ("set-cookie", "b=2"),
        ]


class TestUpstreamProxy:
    """Test forwarding, retries and timeouts"""

    @pytest.mark.asyncio
    async def test_forward_rewrites_path(self):
        seen = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(201, json={"ok": True}, headers={"x-upstream": "1"})

        proxy = UpstreamProxy(transport=httpx.MockTransport(handler))
        await proxy.start()
        try:
            response = await proxy.forward(make_upstream(), make_request("POST", "/api/products", b'{"a":1}'))
        finally:
            await proxy.stop()

        assert response.status_code == 201
        assert ("x-upstream", "1") in response.headers
        assert seen[0].url == httpx.URL("http://backend.test/api/catalog/products")
        assert seen[0].content == b'{"a":1}'

    @pytest.mark.asyncio
    async def test_connect_errors_are_retried(self):
        attempts = []

        def handler(request: httpx.Request) -> httpx.Response:
            attempts.append(request)
            if len(attempts) < 3:
                raise httpx.ConnectError("connection refused", request=request)
            return httpx.Response(200, json={"ok": True})

        proxy = UpstreamProxy(retry_backoff=0.001, transport=httpx.MockTransport(handler))
        await proxy.start()
        try:
            response = await proxy.forward(make_upstream(retries=2), make_request())
        finally:
            await proxy.stop()

        assert response.status_code == 200
        assert len(attempts) == 3

    @pytest.mark.asyncio
    async def test_gives_up_after_retries(self):
        attempts = []

        def handler(request: httpx.Request) -> httpx.Response:
            attempts.append(request)
            raise httpx.ConnectError("connection refused", request=request)

        proxy = UpstreamProxy(retry_backoff=0.001, transport=httpx.MockTransport(handler))
        await proxy.start()
        try:
            with pytest.raises(UpstreamUnavailableError) as exc_info:
                await proxy.forward(make_upstream(retries=2), make_request())
        finally:
            await proxy.stop()

        assert len(attempts) == 3
        assert exc_info.value.code == ErrorCode.UPSTREAM_UNAVAILABLE
        assert exc_info.value.status_code == 502
        assert exc_info.value.service == "backend"

    @pytest.mark.asyncio
    async def test_read_timeout_not_retried(self):
        attempts = []

        def handler(request: httpx.Request) -> httpx.Response:
            attempts.append(request)
            raise httpx.ReadTimeout("timed out", request=request)

        proxy = UpstreamProxy(retry_backoff=0.001, transport=httpx.MockTransport(handler))
        await proxy.start()
        try:
            with pytest.raises(UpstreamUnavailableError):
                await proxy.forward(make_upstream(retries=2), make_request("POST"))
        finally:
            await proxy.stop()

        assert len(attempts) == 1

    @pytest.mark.asyncio
    async def test_slow_upstream_bounded_by_timeout(self):
        async def handler(request: httpx.Request) -> httpx.Response:
            await asyncio.sleep(5)
            return httpx.Response(200)

        proxy = UpstreamProxy(transport=httpx.MockTransport(handler))
        await proxy.start()
        started = time.monotonic()
        try:
            with pytest.raises(UpstreamUnavailableError):
                await proxy.forward(make_upstream(timeout=0.2), make_request())
        finally:
            await proxy.stop()

        assert time.monotonic() - started < 2.0

    @pytest.mark.asyncio
    async def test_forward_requires_start(self):
        proxy = UpstreamProxy(transport=httpx.MockTransport(lambda r: httpx.Response(200)))
        with pytest.raises(RuntimeError):
            await proxy.forward(make_upstream(), make_request())
