"""
Upstream-facing services for the gateway
"""

from .proxy_service import UpstreamProxy
from .service_status import ServiceStatusMonitor

__all__ = ["UpstreamProxy", "ServiceStatusMonitor"]
