"""
Pytest fixtures for gateway service tests
"""

import pytest
import httpx
from typing import Any, Callable, Dict, List
from fastapi.testclient import TestClient

from shared.utils.security import SecurityUtils
from app.config import Settings
from app.main import create_app

TEST_JWT_SECRET = "test-gateway-secret-with-enough-bytes-for-hs256"


@pytest.fixture
def test_settings() -> Settings:
    """Settings with the in-memory limiter and fast upstream timeouts"""
    return Settings(
        environment="testing",
        jwt_secret=TEST_JWT_SECRET,
        rate_limit_backend="memory",
        auth_service_url="http://auth.test",
        payment_service_url="http://payment.test",
        backend_url="http://backend.test",
        upstream_timeout_seconds=1.0,
        upstream_connect_timeout_seconds=0.5,
        upstream_retries=2,
        upstream_retry_backoff_seconds=0.01,
        trusted_proxy_hops=0,
    )


@pytest.fixture
def security() -> SecurityUtils:
    return SecurityUtils(TEST_JWT_SECRET, "HS256")


@pytest.fixture
def make_token(security) -> Callable[..., str]:
    """Issue a signed access token for the given role"""
    def _make_token(role: str = "customer", user_id: str = "user-123", expires_in: int = 30, **extra: Any) -> str:
        payload = {"userId": user_id, "email": f"{user_id}@example.com", "role": role}
        payload.update(extra)
        return security.generate_token(payload, expires_in=expires_in)
    return _make_token


class UpstreamRecorder:
    """MockTransport handler that records forwarded requests"""

    def __init__(self):
        self.requests: List[httpx.Request] = []
        self.status_code = 200
        self.json_body: Dict[str, Any] = {"success": True}
        self.extra_headers: Dict[str, str] = {}
        self.error: Exception = None

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.error is not None:
            raise self.error
        return httpx.Response(self.status_code, json=self.json_body, headers=self.extra_headers)

    @property
    def last(self) -> httpx.Request:
        return self.requests[-1]


@pytest.fixture
def upstream() -> UpstreamRecorder:
    return UpstreamRecorder()


@pytest.fixture
def client(test_settings, upstream):
    """Gateway test client whose upstreams are served by the recorder"""
    app = create_app(test_settings, upstream_transport=httpx.MockTransport(upstream))
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def make_client(upstream):
    """Build a client for custom settings or transports"""
    clients = []

    def _make_client(app_settings: Settings, transport: httpx.AsyncBaseTransport = None) -> TestClient:
        app = create_app(app_settings, upstream_transport=transport or httpx.MockTransport(upstream))
        test_client = TestClient(app)
        test_client.__enter__()
        clients.append(test_client)
        return test_client

    yield _make_client

    for test_client in clients:
        test_client.__exit__(None, None, None)
