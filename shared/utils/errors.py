"""
Error codes and exceptions for GoCart services

Every rejection the gateway produces maps to one of these codes and
HTTP statuses. None of them is retried on the caller's behalf.
"""

from enum import Enum
from typing import Dict, Optional


class ErrorCode(str, Enum):
    """Stable error codes surfaced to API callers"""
    AUTH_REQUIRED = "AUTH_REQUIRED"
    TOKEN_EXPIRED = "TOKEN_EXPIRED"
    INVALID_TOKEN = "INVALID_TOKEN"
    INSUFFICIENT_PERMISSIONS = "INSUFFICIENT_PERMISSIONS"
    RATE_LIMIT_EXCEEDED = "RATE_LIMIT_EXCEEDED"
    PAYLOAD_TOO_LARGE = "PAYLOAD_TOO_LARGE"
    UPSTREAM_UNAVAILABLE = "UPSTREAM_UNAVAILABLE"
    NOT_FOUND = "NOT_FOUND"
    INTERNAL_ERROR = "INTERNAL_ERROR"


ERROR_STATUS: Dict[ErrorCode, int] = {
    ErrorCode.AUTH_REQUIRED: 401,
    ErrorCode.TOKEN_EXPIRED: 401,
    ErrorCode.INVALID_TOKEN: 401,
    ErrorCode.INSUFFICIENT_PERMISSIONS: 403,
    ErrorCode.RATE_LIMIT_EXCEEDED: 429,
    ErrorCode.PAYLOAD_TOO_LARGE: 413,
    ErrorCode.UPSTREAM_UNAVAILABLE: 502,
    ErrorCode.NOT_FOUND: 404,
    ErrorCode.INTERNAL_ERROR: 500,
}

ERROR_MESSAGES: Dict[ErrorCode, str] = {
    ErrorCode.AUTH_REQUIRED: "Authentication required",
    ErrorCode.TOKEN_EXPIRED: "Token expired",
    ErrorCode.INVALID_TOKEN: "Invalid token",
    ErrorCode.INSUFFICIENT_PERMISSIONS: "Insufficient permissions",
    ErrorCode.RATE_LIMIT_EXCEEDED: "Too many requests, please try again later.",
    ErrorCode.PAYLOAD_TOO_LARGE: "Request entity too large",
    ErrorCode.UPSTREAM_UNAVAILABLE: "Upstream service unavailable",
    ErrorCode.NOT_FOUND: "Not found",
    ErrorCode.INTERNAL_ERROR: "Internal server error",
}


class GatewayError(Exception):
    """Base class for errors that terminate a request with a JSON body"""

    code: ErrorCode = ErrorCode.INTERNAL_ERROR

    def __init__(
        self,
        message: Optional[str] = None,
        headers: Optional[Dict[str, str]] = None,
    ):
        self.message = message or ERROR_MESSAGES[self.code]
        self.headers = headers or {}
        super().__init__(self.message)

    @property
    def status_code(self) -> int:
        return ERROR_STATUS[self.code]

    def extra_fields(self) -> Dict[str, str]:
        """Additional body fields beyond success/message/code/timestamp"""
        return {}


class AuthenticationError(GatewayError):
    code = ErrorCode.AUTH_REQUIRED

    def __init__(self, message: Optional[str] = None):
        super().__init__(message, headers={"WWW-Authenticate": "Bearer"})


class TokenExpiredError(AuthenticationError):
    code = ErrorCode.TOKEN_EXPIRED


class InvalidTokenError(AuthenticationError):
    code = ErrorCode.INVALID_TOKEN


class PermissionDeniedError(GatewayError):
    code = ErrorCode.INSUFFICIENT_PERMISSIONS


class RateLimitExceededError(GatewayError):
    code = ErrorCode.RATE_LIMIT_EXCEEDED


class PayloadTooLargeError(GatewayError):
    code = ErrorCode.PAYLOAD_TOO_LARGE


class NotFoundError(GatewayError):
    code = ErrorCode.NOT_FOUND


class UpstreamUnavailableError(GatewayError):
    """Raised when an upstream cannot be reached or does not answer in time"""

    code = ErrorCode.UPSTREAM_UNAVAILABLE

    def __init__(self, service: str, message: Optional[str] = None):
        self.service = service
        super().__init__(message or f"{service.capitalize()} service unavailable")

    def extra_fields(self) -> Dict[str, str]:
        return {"service": self.service}
