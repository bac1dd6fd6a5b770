"""
Catch-all proxy route

Every path not served by the gateway itself goes through the authorization
pipeline and, if admitted, is forwarded to its upstream.
"""

import json

from fastapi import APIRouter, Request
from fastapi.responses import Response
import structlog

from shared.utils.errors import PayloadTooLargeError
from shared.utils.logger import sanitize_body
from app.services.proxy_service import ProxiedRequest, build_forward_headers
from app.utils.dependencies import GatewayAccess

logger = structlog.get_logger(__name__)

router = APIRouter()

PROXY_METHODS = ["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS", "HEAD"]


def log_request_body(request: Request, body: bytes):
    """Development aid: log JSON bodies with sensitive fields masked"""
    if request.method not in ("POST", "PUT", "PATCH") or not body:
        return
    if "application/json" not in request.headers.get("content-type", ""):
        return
    try:
        payload = json.loads(body)
    except ValueError:
        return
    logger.debug("Request body", path=request.url.path, body=sanitize_body(payload))


async def read_body(request: Request, max_bytes: int) -> bytes:
    """
    Read the request body, refusing anything over max_bytes

    Raises:
        PayloadTooLargeError: If Content-Length or the streamed size exceeds the limit
    """
    declared = request.headers.get("content-length")
    if declared and declared.isdigit() and int(declared) > max_bytes:
        raise PayloadTooLargeError()

    chunks = []
    size = 0
    async for chunk in request.stream():
        size += len(chunk)
        if size > max_bytes:
            raise PayloadTooLargeError()
        chunks.append(chunk)
    return b"".join(chunks)


@router.api_route("/{full_path:path}", methods=PROXY_METHODS, include_in_schema=False)
async def proxy_request(request: Request, full_path: str, context: GatewayAccess):
    """Forward an admitted request to its upstream"""
    state = request.app.state
    body = await read_body(request, state.settings.max_body_bytes)

    if state.settings.is_development and state.settings.log_request_bodies:
        log_request_body(request, body)

    principal = context.principal
    headers = build_forward_headers(
        request.headers.items(),
        client_ip=context.client_ip,
        request_id=request.state.request_id,
        user_id=principal.id if principal else None,
        user_role=principal.role.value if principal else None,
    )

    upstream_response = await state.proxy.forward(
        context.upstream,
        ProxiedRequest(
            method=request.method,
            path=context.path.encoded,
            query=request.url.query,
            headers=headers,
            body=body,
        ),
    )

    response = Response(content=upstream_response.content, status_code=upstream_response.status_code)
    for name, value in upstream_response.headers:
        response.headers.append(name, value)
    if context.rate_limit is not None:
        for name, value in context.rate_limit.headers().items():
            response.headers[name] = value
    return response
