"""
Shared utilities for GoCart

This package contains common utilities used across all microservices.
"""

from .redis_client import init_redis_client, close_redis_client
from .logger import setup_logging, sanitize_body
from .security import SecurityUtils, extract_bearer_token
from .errors import ErrorCode, GatewayError
from .responses import error_response, error_body

__all__ = [
    "init_redis_client",
    "close_redis_client",
    "setup_logging",
    "sanitize_body",
    "SecurityUtils",
    "extract_bearer_token",
    "ErrorCode",
    "GatewayError",
    "error_response",
    "error_body",
]

__version__ = "1.0.0"
