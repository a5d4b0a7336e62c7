"""
Health and Monitoring Router.

Public, unauthenticated endpoints for uptime and load-balancer checks.

Endpoints Provided:
- `/healthcheck`: Lightweight liveness check.
- `/monitoring/ping`: Connectivity check.
- `/monitoring/detailed`: Component status, currently the database. Reports
  "degraded" rather than failing when a component is unhealthy.
"""

from datetime import datetime, timezone
from typing import Any, Dict

from fastapi import APIRouter

from core.config import get_settings
from core.database import get_database_info
from core.logging_config import get_logger

logger = get_logger(__name__)

SERVICE_NAME = "Photo Sharing API"
SERVICE_VERSION = "1.0.0"

health_router = APIRouter(tags=["Health & Monitoring"])

monitoring_router = APIRouter(prefix="/monitoring", tags=["Health & Monitoring"])


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


@health_router.get("/healthcheck")
async def health_check() -> Dict[str, Any]:
    """
    Basic health check endpoint (no authentication required)

    Returns:
        Dict with status, timestamp, and version info
    """
    logger.debug("Health check requested")

    return {
        "status": "healthy",
        "timestamp": _now(),
        "version": SERVICE_VERSION,
        "service": SERVICE_NAME,
    }


@monitoring_router.get("/ping")
async def ping() -> Dict[str, str]:
    """Simple ping endpoint for connectivity testing"""
    logger.debug("Ping requested")
    return {"message": "pong", "timestamp": _now(), "version": SERVICE_VERSION}


@monitoring_router.get("/detailed")
async def detailed_health_check() -> Dict[str, Any]:
    """Detailed health check with component status"""
    logger.info("Detailed health check requested")

    health_status = {
        "status": "healthy",
        "timestamp": _now(),
        "version": SERVICE_VERSION,
        "service": SERVICE_NAME,
        "environment": get_settings().environment,
        "components": {},
    }

    db_info = await get_database_info()
    if db_info["connection_healthy"]:
        health_status["components"]["database"] = {"status": "healthy", "info": db_info}
    else:
        health_status["components"]["database"] = {"status": "unhealthy", "info": db_info}
        health_status["status"] = "degraded"

    return health_status
