"""
Route policies

Static mapping from path patterns to the capability a caller needs and the
rate-limit class the request is counted against.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Dict, FrozenSet, Iterable, Optional, Tuple

from shared.schemas.auth import Principal, Role


class Requirement(str, Enum):
    """Capability a route demands from the caller"""
    PUBLIC = "public"
    AUTHENTICATED = "authenticated"
    ADMIN = "role(admin)"
    ARTIST_OR_ADMIN = "role(artist|admin)"


class RateClass(str, Enum):
    GENERAL = "general"
    AUTH = "auth"
    PAYMENT = "payment"
    UPLOAD = "upload"


class AccessDecision(str, Enum):
    ALLOW = "allow"
    AUTH_REQUIRED = "auth_required"
    INSUFFICIENT_PERMISSIONS = "insufficient_permissions"


# Roles accepted by each requirement. None means no principal is needed.
ALLOWED_ROLES: Dict[Requirement, Optional[FrozenSet[Role]]] = {
    Requirement.PUBLIC: None,
    Requirement.AUTHENTICATED: frozenset(Role),
    Requirement.ADMIN: frozenset({Role.ADMIN}),
    Requirement.ARTIST_OR_ADMIN: frozenset({Role.ARTIST, Role.ADMIN}),
}

if set(ALLOWED_ROLES) != set(Requirement):
    raise RuntimeError("ALLOWED_ROLES must cover every Requirement")


def authorize(requirement: Requirement, principal: Optional[Principal]) -> AccessDecision:
    """Total decision function over (requirement, principal)"""
    allowed = ALLOWED_ROLES[requirement]
    if allowed is None:
        return AccessDecision.ALLOW
    if principal is None:
        return AccessDecision.AUTH_REQUIRED
    if principal.role in allowed:
        return AccessDecision.ALLOW
    return AccessDecision.INSUFFICIENT_PERMISSIONS


def path_matches(pattern: str, path: str) -> bool:
    """Segment-aligned prefix match: '/api/cart' matches '/api/cart/1' but not '/api/carts'"""
    if pattern == "/":
        return True
    return path == pattern or path.startswith(pattern + "/")


@dataclass(frozen=True)
class RoutePolicy:
    pattern: str
    requirement: Requirement
    rate_class: RateClass = RateClass.GENERAL
    methods: Optional[FrozenSet[str]] = None

    def matches(self, method: str, path: str) -> bool:
        if self.methods is not None and method.upper() not in self.methods:
            return False
        return path_matches(self.pattern, path)

    @property
    def specificity(self) -> Tuple[int, int]:
        # Longer patterns first; method-restricted beats unrestricted on a tie
        return (len(self.pattern), 1 if self.methods is not None else 0)


DEFAULT_POLICY = RoutePolicy(pattern="/", requirement=Requirement.PUBLIC, rate_class=RateClass.GENERAL)


class PolicyTable:
    """Resolves every request to exactly one RoutePolicy"""

    def __init__(self, policies: Iterable[RoutePolicy], default: RoutePolicy = DEFAULT_POLICY):
        self.policies: Tuple[RoutePolicy, ...] = tuple(
            sorted(policies, key=lambda p: p.specificity, reverse=True)
        )
        self.default = default

        seen = set()
        for policy in self.policies:
            if not policy.pattern.startswith("/"):
                raise ValueError(f"Route pattern must start with '/': {policy.pattern!r}")
            key = (policy.pattern.rstrip("/") or "/", policy.methods)
            if key in seen:
                raise ValueError(f"Duplicate route policy for {policy.pattern!r}")
            seen.add(key)

    def resolve(self, method: str, path: str) -> RoutePolicy:
        for policy in self.policies:
            if policy.matches(method, path):
                return policy
        return self.default


def _many(patterns: Iterable[str], requirement: Requirement, rate_class: RateClass = RateClass.GENERAL):
    return [RoutePolicy(pattern, requirement, rate_class) for pattern in patterns]


def build_default_policies() -> PolicyTable:
    """Access rules of the GoCart gateway"""
    policies = [
        RoutePolicy("/auth", Requirement.PUBLIC, RateClass.AUTH),
        # Stripe calls the webhook directly; the payment service verifies its signature
        RoutePolicy("/payments/webhook", Requirement.PUBLIC, RateClass.PAYMENT, frozenset({"POST"})),
        RoutePolicy("/payments", Requirement.AUTHENTICATED, RateClass.PAYMENT),
        RoutePolicy("/payouts", Requirement.ARTIST_OR_ADMIN, RateClass.PAYMENT),
    ]
    policies += _many(
        ["/api/admin/stores", "/api/admin/coupons", "/api/admin/analytics"],
        Requirement.ADMIN,
    )
    policies += _many(["/api/store", "/api/artworks"], Requirement.ARTIST_OR_ADMIN)
    policies += _many(
        ["/api/orders", "/api/user/profile", "/api/user/addresses", "/api/cart", "/api/wishlist"],
        Requirement.AUTHENTICATED,
    )
    policies += _many(["/api/upload", "/api/media"], Requirement.AUTHENTICATED, RateClass.UPLOAD)
    policies += _many(
        [
            "/api/products",
            "/api/artists",
            "/api/portfolios",
            "/api/shops",
            "/api/reviews",
            "/api/categories",
            "/api/search",
        ],
        Requirement.PUBLIC,
    )
    return PolicyTable(policies)
