"""
API routes for the gateway
"""

from . import health, proxy

__all__ = ["health", "proxy"]
