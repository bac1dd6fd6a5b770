"""
Routing models for the gateway
"""

from .policy import (
    AccessDecision,
    PolicyTable,
    RateClass,
    Requirement,
    RoutePolicy,
    authorize,
    build_default_policies,
)
from .upstream import RewriteRule, UpstreamRegistry, UpstreamTarget, build_upstreams

__all__ = [
    "AccessDecision",
    "PolicyTable",
    "RateClass",
    "Requirement",
    "RoutePolicy",
    "authorize",
    "build_default_policies",
    "RewriteRule",
    "UpstreamRegistry",
    "UpstreamTarget",
    "build_upstreams",
]
