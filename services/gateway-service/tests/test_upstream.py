"""
Unit tests for upstream targets and path rewriting
"""

import dataclasses
import pytest

from app.models.upstream import RewriteRule, UpstreamRegistry, UpstreamTarget, build_upstreams


class TestRewrite:
    """Test path rewrite rules of the default upstreams"""

    @pytest.fixture
    def registry(self, test_settings):
        return build_upstreams(test_settings)

    def test_auth_prefix_stripped(self, registry):
        auth = registry.resolve("/auth/login")
        assert auth.service_name == "auth"
        assert auth.rewrite_path("/auth/login") == "/login"
        assert auth.rewrite_path("/auth") == "/"

    def test_payment_paths(self, registry):
        payment = registry.resolve("/payments/webhook")
        assert payment.service_name == "payment"
        assert payment.rewrite_path("/payments/webhook") == "/webhook"
        assert payment.rewrite_path("/payments/intents/1") == "/intents/1"
        assert registry.resolve("/payouts/history") is payment
        assert payment.rewrite_path("/payouts/history") == "/payouts/history"

    def test_backend_catalog_rewrites(self, registry):
        backend = registry.resolve("/api/products/42")
        assert backend.service_name == "backend"
        assert backend.rewrite_path("/api/products/42") == "/api/catalog/products/42"
        assert backend.rewrite_path("/api/artworks") == "/api/catalog/artworks"
        assert backend.rewrite_path("/api/cart") == "/api/cart"

    def test_rewrite_is_segment_aligned(self, registry):
        backend = registry.get("backend")
        assert backend.rewrite_path("/api/productsearch") == "/api/productsearch"

    def test_build_url_keeps_query(self, registry):
        backend = registry.get("backend")
        assert backend.build_url("/api/products", "page=2&limit=10") == (
            "http://backend.test/api/catalog/products?page=2&limit=10"
        )

    def test_unknown_path_has_no_upstream(self, registry):
        assert registry.resolve("/metrics") is None
        assert registry.resolve("/authx") is None

    def test_settings_applied(self, registry, test_settings):
        for upstream in registry:
            assert upstream.timeout == test_settings.upstream_timeout_seconds
            assert upstream.retries == test_settings.upstream_retries
        assert len(registry) == 3


class TestRegistry:
    def test_targets_are_immutable(self):
        target = UpstreamTarget("svc", "http://svc", mounts=("/svc",))
        with pytest.raises(dataclasses.FrozenInstanceError):
            target.base_url = "http://elsewhere"

    def test_duplicate_mounts_rejected(self):
        with pytest.raises(ValueError):
            UpstreamRegistry([
                UpstreamTarget("a", "http://a", mounts=("/x",)),
                UpstreamTarget("b", "http://b", mounts=("/x",)),
            ])

    def test_duplicate_names_rejected(self):
        with pytest.raises(ValueError):
            UpstreamRegistry([
                UpstreamTarget("a", "http://a", mounts=("/x",)),
                UpstreamTarget("a", "http://b", mounts=("/y",)),
            ])

    def test_longest_mount_wins(self):
        registry = UpstreamRegistry([
            UpstreamTarget("api", "http://api", mounts=("/api",)),
            UpstreamTarget("media", "http://media", mounts=("/api/media",)),
        ])
        assert registry.resolve("/api/media/1").service_name == "media"
        assert registry.resolve("/api/cart").service_name == "api"

    def test_first_matching_rule_applies(self):
        target = UpstreamTarget(
            "svc",
            "http://svc/",
            mounts=("/a",),
            rewrite_rules=(RewriteRule("/a/b", "/first"), RewriteRule("/a", "/second")),
        )
        assert target.build_url("/a/b/c") == "http://svc/first/c"
        assert target.build_url("/a/z") == "http://svc/second/z"
