"""
FastAPI Dependencies
Request authorization pipeline: policy lookup, token verification,
rate limiting and access enforcement
"""

from dataclasses import dataclass
from typing import Annotated, Optional

import structlog
from fastapi import Depends, Request

from shared.schemas.auth import Principal
from shared.utils.errors import (
    AuthenticationError,
    NotFoundError,
    PermissionDeniedError,
    RateLimitExceededError,
)
from shared.utils.security import extract_bearer_token
from app.models.policy import AccessDecision, RoutePolicy, authorize
from app.models.upstream import UpstreamTarget
from app.utils.paths import CanonicalPath, get_request_path
from app.utils.rate_limiter import RateLimitResult

logger = structlog.get_logger(__name__)


@dataclass
class GatewayContext:
    """Everything the proxy needs to know about an admitted request"""
    policy: RoutePolicy
    upstream: UpstreamTarget
    path: CanonicalPath
    client_ip: str
    principal: Optional[Principal] = None
    rate_limit: Optional[RateLimitResult] = None

    @property
    def rate_limit_identity(self) -> str:
        if self.principal is not None:
            return f"user:{self.principal.id}"
        return f"ip:{self.client_ip}"


def get_client_ip(request: Request, trusted_hops: int = 1) -> str:
    """
    Resolve the caller's address

    Each trusted proxy appends the address it saw to X-Forwarded-For, so the
    client is found `trusted_hops` entries from the right.
    """
    peer = request.client.host if request.client else "unknown"
    if trusted_hops <= 0:
        return peer

    forwarded = request.headers.get("x-forwarded-for")
    if not forwarded:
        return peer

    hops = [hop.strip() for hop in forwarded.split(",") if hop.strip()]
    if not hops:
        return peer
    index = max(len(hops) - trusted_hops, 0)
    return hops[index]


def get_request_token(request: Request) -> Optional[str]:
    """Bearer token from the Authorization header, else the 'token' cookie"""
    token = extract_bearer_token(request.headers.get("authorization"))
    if token:
        return token
    return request.cookies.get("token") or None


def enforce_access(
    policy: RoutePolicy,
    principal: Optional[Principal],
    auth_error: Optional[AuthenticationError] = None,
) -> None:
    """
    Reject the request unless the principal satisfies the route policy

    Raises:
        AuthenticationError: 401 with AUTH_REQUIRED, TOKEN_EXPIRED or INVALID_TOKEN
        PermissionDeniedError: 403 with INSUFFICIENT_PERMISSIONS
    """
    decision = authorize(policy.requirement, principal)

    if decision == AccessDecision.ALLOW:
        return
    if decision == AccessDecision.AUTH_REQUIRED:
        if auth_error is not None:
            raise auth_error
        raise AuthenticationError("Access token is required")
    raise PermissionDeniedError()


async def resolve_gateway_context(request: Request) -> GatewayContext:
    """
    Run the gateway pipeline for one request

    Token verification is pure and happens first so that rate limits can be
    keyed by user id. Rate limiting then runs before access enforcement, and
    both complete before anything is forwarded.
    """
    state = request.app.state
    method = request.method
    request_path = get_request_path(request)
    path = request_path.decoded

    upstream = state.upstreams.resolve(path)
    if upstream is None:
        raise NotFoundError(f"Not found - {request.url.path}")

    policy = state.policies.resolve(method, path)
    context = GatewayContext(
        policy=policy,
        upstream=upstream,
        path=request_path,
        client_ip=get_client_ip(request, state.settings.trusted_proxy_hops),
    )

    auth_error: Optional[AuthenticationError] = None
    token = get_request_token(request)
    if token:
        try:
            context.principal = state.security.verify_token(token)
        except AuthenticationError as e:
            auth_error = e
            logger.debug("Token rejected", code=e.code.value, path=path)

    if state.rate_limiter is not None:
        context.rate_limit = await state.rate_limiter.hit(policy.rate_class, context.rate_limit_identity)
        if context.rate_limit is not None and not context.rate_limit.allowed:
            rule = state.rate_limiter.rule_for(policy.rate_class)
            raise RateLimitExceededError(rule.message, headers=context.rate_limit.headers())

    enforce_access(policy, context.principal, auth_error)

    if context.principal is not None:
        structlog.contextvars.bind_contextvars(user_id=context.principal.id)

    return context


# Type alias for cleaner dependency injection
GatewayAccess = Annotated[GatewayContext, Depends(resolve_gateway_context)]
