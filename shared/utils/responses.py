"""
Standard JSON response helpers for GoCart services
"""

from datetime import datetime, timezone
from typing import Any, Dict, Optional

from fastapi.responses import JSONResponse

from .errors import GatewayError


def utc_timestamp() -> str:
    """ISO-8601 UTC timestamp with millisecond precision"""
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def error_body(message: str, code: str, **extra: Any) -> Dict[str, Any]:
    body = {
        "success": False,
        "message": message,
        "code": code,
        "timestamp": utc_timestamp(),
    }
    body.update({key: value for key, value in extra.items() if value is not None})
    return body


def error_response(
    error: GatewayError,
    headers: Optional[Dict[str, str]] = None,
) -> JSONResponse:
    """Render a GatewayError as the standard rejection response"""
    merged_headers = dict(error.headers)
    if headers:
        merged_headers.update(headers)

    return JSONResponse(
        status_code=error.status_code,
        content=error_body(error.message, error.code.value, **error.extra_fields()),
        headers=merged_headers or None,
    )
