"""
Gateway Service - FastAPI Application
Single entry point for the GoCart marketplace: authenticates, authorizes and
rate limits requests before proxying them to the auth, payment and backend
services
"""

import time
from contextlib import asynccontextmanager
from typing import AsyncGenerator, Optional

import httpx
import structlog
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from shared.utils.errors import ErrorCode, GatewayError, NotFoundError
from shared.utils.logger import setup_logging
from shared.utils.redis_client import init_redis_client, close_redis_client
from shared.utils.responses import error_body, error_response
from shared.utils.security import SecurityUtils
from app.config import Settings, settings as default_settings
from app.models.policy import build_default_policies
from app.models.upstream import build_upstreams
from app.routes import health, proxy
from app.services.proxy_service import UpstreamProxy
from app.services.service_status import ServiceStatusMonitor
from app.utils.rate_limiter import (
    MemoryRateLimitStore,
    RateLimiter,
    RedisRateLimitStore,
    build_rules,
)

logger = structlog.get_logger(__name__)

SECURITY_HEADERS = {
    "Content-Security-Policy": (
        "default-src 'self'; style-src 'self' 'unsafe-inline'; "
        "script-src 'self'; img-src 'self' data: https:"
    ),
    "X-Content-Type-Options": "nosniff",
    "X-Frame-Options": "SAMEORIGIN",
    "Referrer-Policy": "no-referrer",
    "Strict-Transport-Security": "max-age=15552000; includeSubDomains",
    "X-DNS-Prefetch-Control": "off",
    "Cross-Origin-Opener-Policy": "same-origin",
}


async def create_rate_limiter(app_settings: Settings) -> Optional[RateLimiter]:
    """Redis-backed limiter, falling back to process memory if Redis is unreachable"""
    if not app_settings.rate_limit_enabled:
        logger.warning("Rate limiting disabled")
        return None

    rules = build_rules(app_settings)
    store = None
    if app_settings.rate_limit_backend == "redis":
        try:
            client = await init_redis_client(
                app_settings.redis_url,
                sentinel_hosts=app_settings.redis_sentinel_hosts,
                sentinel_master=app_settings.redis_sentinel_master,
                password=app_settings.redis_password,
                db=app_settings.redis_db,
            )
            store = RedisRateLimitStore(client)
            logger.info("Redis connected for rate limiting")
        except Exception as e:
            logger.warning(
                "Failed to connect to Redis for rate limiting, using memory store",
                error=str(e),
            )

    if store is None:
        store = MemoryRateLimitStore()

    return RateLimiter(store, rules, key_prefix=app_settings.rate_limit_key_prefix)


def create_app(
    app_settings: Optional[Settings] = None,
    upstream_transport: Optional[httpx.AsyncBaseTransport] = None,
) -> FastAPI:
    """
    Build the gateway application

    Args:
        app_settings: Settings to use instead of the environment-derived ones
        upstream_transport: httpx transport for upstream calls (tests inject a MockTransport)
    """
    app_settings = app_settings or default_settings

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
        """Application lifespan events"""
        logger.info(
            "Starting Gateway Service",
            environment=app_settings.environment,
            upstreams={u.service_name: u.base_url for u in app.state.upstreams},
        )
        if app_settings.uses_default_jwt_secret and not app_settings.is_development:
            logger.warning("JWT_SECRET is not set, using the insecure default secret")

        app.state.started_at = time.monotonic()
        app.state.rate_limiter = await create_rate_limiter(app_settings)
        await app.state.proxy.start()

        yield

        logger.info("Gateway Service shutting down")
        await app.state.proxy.stop()
        if isinstance(getattr(app.state.rate_limiter, "store", None), RedisRateLimitStore):
            await close_redis_client()

    app = FastAPI(
        title=app_settings.app_name,
        description="Authenticating reverse proxy for the GoCart marketplace",
        version=app_settings.version,
        debug=app_settings.debug,
        lifespan=lifespan,
        docs_url="/docs",
        redoc_url="/redoc",
    )

    app.state.settings = app_settings
    app.state.security = SecurityUtils(app_settings.jwt_secret, app_settings.jwt_algorithm)
    app.state.policies = build_default_policies()
    app.state.upstreams = build_upstreams(app_settings)
    app.state.proxy = UpstreamProxy(
        max_connections=app_settings.upstream_max_connections,
        max_keepalive=app_settings.upstream_max_keepalive,
        retry_backoff=app_settings.upstream_retry_backoff_seconds,
        transport=upstream_transport,
    )
    app.state.status_monitor = ServiceStatusMonitor(
        app.state.upstreams,
        app.state.proxy,
        cache_ttl=app_settings.status_cache_ttl_seconds,
        probe_timeout=app_settings.status_probe_timeout_seconds,
    )
    app.state.rate_limiter = None
    app.state.started_at = time.monotonic()

    app.add_middleware(
        CORSMiddleware,
        allow_origins=app_settings.cors_origins,
        allow_origin_regex=r"https?://localhost(:\d+)?" if app_settings.cors_allow_localhost else None,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PUT", "DELETE", "PATCH", "OPTIONS"],
        allow_headers=[
            "Content-Type",
            "Authorization",
            "X-Requested-With",
            "Accept",
            "Origin",
            "Access-Control-Request-Method",
            "Access-Control-Request-Headers",
            "X-API-Key",
            "X-CSRF-Token",
        ],
        expose_headers=[
            "X-Total-Count",
            "RateLimit-Limit",
            "RateLimit-Remaining",
            "RateLimit-Reset",
            "Retry-After",
        ],
        max_age=86400,
    )

    def internal_error_response(request: Request, exc: Exception) -> JSONResponse:
        """Unexpected failures: logged in full, never leaked to the caller"""
        logger.error(
            "Unhandled exception",
            error=str(exc),
            method=request.method,
            path=request.url.path,
            exc_info=exc,
        )
        return JSONResponse(
            status_code=500,
            content=error_body("Internal server error", ErrorCode.INTERNAL_ERROR.value),
        )

    @app.middleware("http")
    async def log_requests(request: Request, call_next):
        """Assign a request id, log the request and add security headers"""
        request_id = request.headers.get("x-request-id") or app.state.security.generate_request_id()
        request.state.request_id = request_id
        structlog.contextvars.clear_contextvars()
        structlog.contextvars.bind_contextvars(request_id=request_id)

        start = time.perf_counter()
        try:
            response = await call_next(request)
        except Exception as e:
            response = internal_error_response(request, e)
        duration_ms = round((time.perf_counter() - start) * 1000, 1)

        for name, value in SECURITY_HEADERS.items():
            response.headers.setdefault(name, value)
        response.headers["X-Request-ID"] = request_id

        logger.info(
            "Request completed",
            method=request.method,
            path=request.url.path,
            status_code=response.status_code,
            duration_ms=duration_ms,
            content_length=response.headers.get("content-length", "0"),
            client_ip=request.client.host if request.client else "unknown",
        )
        return response

    @app.exception_handler(GatewayError)
    async def gateway_error_handler(request: Request, exc: GatewayError):
        """Terminal pipeline failures"""
        return error_response(exc)

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException):
        """Framework-raised HTTP errors in the standard rejection shape"""
        if exc.status_code == 404:
            return error_response(NotFoundError(f"Not found - {request.url.path}"))
        return JSONResponse(
            status_code=exc.status_code,
            content=error_body(str(exc.detail), f"HTTP_{exc.status_code}"),
            headers=getattr(exc, "headers", None),
        )

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        return JSONResponse(
            status_code=422,
            content=error_body("Validation failed", "VALIDATION_FAILED"),
        )

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception):
        return internal_error_response(request, exc)

    # Gateway-served routes must be registered before the catch-all proxy
    app.include_router(health.router, tags=["Health"])
    app.include_router(proxy.router)

    return app


setup_logging(
    config_path=default_settings.logging_config_path,
    log_level=default_settings.log_level,
    json_logs=not default_settings.is_development,
)

app = create_app()


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "app.main:app",
        host="0.0.0.0",
        port=default_settings.port,
        proxy_headers=False,
        log_level="info"
    )
