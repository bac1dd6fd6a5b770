"""
Upstream targets

Backend services the gateway forwards to. Built once at startup from
settings and never mutated afterwards.
"""

from dataclasses import dataclass
from typing import Iterable, Optional, Tuple

from app.config import Settings
from app.models.policy import path_matches


@dataclass(frozen=True)
class RewriteRule:
    prefix: str
    replacement: str

    def apply(self, path: str) -> Optional[str]:
        if not path_matches(self.prefix, path):
            return None
        return self.replacement + path[len(self.prefix):]


@dataclass(frozen=True)
class UpstreamTarget:
    service_name: str
    base_url: str
    mounts: Tuple[str, ...]
    rewrite_rules: Tuple[RewriteRule, ...] = ()
    timeout: float = 30.0
    connect_timeout: float = 5.0
    retries: int = 2

    def rewrite_path(self, path: str) -> str:
        """Apply the first matching rewrite rule; unmatched paths pass through"""
        for rule in self.rewrite_rules:
            rewritten = rule.apply(path)
            if rewritten is not None:
                return rewritten or "/"
        return path or "/"

    def build_url(self, path: str, query: str = "") -> str:
        url = self.base_url.rstrip("/") + self.rewrite_path(path)
        if query:
            url = f"{url}?{query}"
        return url


class UpstreamRegistry:
    """Immutable set of upstreams, resolved by longest mount prefix"""

    def __init__(self, upstreams: Iterable[UpstreamTarget]):
        self._upstreams: Tuple[UpstreamTarget, ...] = tuple(upstreams)
        mounts = []
        for upstream in self._upstreams:
            for mount in upstream.mounts:
                mounts.append((mount, upstream))
        names = [u.service_name for u in self._upstreams]
        if len(names) != len(set(names)):
            raise ValueError("Upstream service names must be unique")
        if len({m for m, _ in mounts}) != len(mounts):
            raise ValueError("Each mount prefix may belong to only one upstream")
        self._mounts: Tuple[Tuple[str, UpstreamTarget], ...] = tuple(
            sorted(mounts, key=lambda item: len(item[0]), reverse=True)
        )

    def __iter__(self):
        return iter(self._upstreams)

    def __len__(self) -> int:
        return len(self._upstreams)

    def get(self, service_name: str) -> Optional[UpstreamTarget]:
        for upstream in self._upstreams:
            if upstream.service_name == service_name:
                return upstream
        return None

    def resolve(self, path: str) -> Optional[UpstreamTarget]:
        for mount, upstream in self._mounts:
            if path_matches(mount, path):
                return upstream
        return None


def build_upstreams(settings: Settings) -> UpstreamRegistry:
    """GoCart upstream services from configuration"""
    common = dict(
        timeout=settings.upstream_timeout_seconds,
        connect_timeout=settings.upstream_connect_timeout_seconds,
        retries=settings.upstream_retries,
    )
    return UpstreamRegistry([
        UpstreamTarget(
            service_name="auth",
            base_url=settings.auth_service_url,
            mounts=("/auth",),
            rewrite_rules=(RewriteRule("/auth", ""),),
            **common,
        ),
        UpstreamTarget(
            service_name="payment",
            base_url=settings.payment_service_url,
            mounts=("/payments", "/payouts"),
            rewrite_rules=(RewriteRule("/payments", ""),),
            **common,
        ),
        UpstreamTarget(
            service_name="backend",
            base_url=settings.backend_url,
            mounts=("/api",),
            rewrite_rules=(
                RewriteRule("/api/products", "/api/catalog/products"),
                RewriteRule("/api/artworks", "/api/catalog/artworks"),
            ),
            **common,
        ),
    ])
