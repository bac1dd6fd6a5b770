"""
Health check routes for the gateway
"""

import time
from datetime import datetime, timezone
from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse
import structlog

logger = structlog.get_logger(__name__)

router = APIRouter()


@router.get("/health")
async def health_check(request: Request):
    """Gateway liveness"""
    return {
        "service": "gateway",
        "status": "healthy",
        "version": request.app.state.settings.version,
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "uptime": round(time.monotonic() - request.app.state.started_at, 3),
    }


@router.get("/status")
async def service_status(request: Request):
    """Gateway status including every upstream"""
    services = await request.app.state.status_monitor.get_all_service_status()
    return {
        "service": "gateway",
        "status": "healthy",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "services": services,
    }


@router.get("/api/health")
async def api_health_check(request: Request):
    """Gateway health as seen by API clients, including the backend dependency"""
    backend = await request.app.state.status_monitor.get_service_status("backend")
    timestamp = datetime.now(timezone.utc).isoformat()

    if not backend.get("healthy"):
        logger.warning("Backend dependency unhealthy", status=backend)
        return JSONResponse(
            status_code=503,
            content={
                "service": "gateway",
                "status": "unhealthy",
                "timestamp": timestamp,
                "dependencies": {"backend": "unhealthy"},
            },
        )

    return {
        "service": "gateway",
        "status": "healthy",
        "timestamp": timestamp,
        "dependencies": {"backend": "healthy"},
    }
