"""
Health Check Endpoints

- /health          - Liveness (app is running)
- /health/detailed - Database and Stremio API diagnostics (admin)
"""

from fastapi import APIRouter, Depends
from datetime import datetime
from typing import Dict, Any
import time

import httpx
from sqlalchemy import text

from app.core.config import settings
from app.core.database import get_session_local
from app.core.logging_config import logger
from app.models.user import User
from app.modules.auth.dependencies import get_current_admin
from app.modules.pin_auth.cleanup import pin_cleanup_service


router = APIRouter(prefix="/health", tags=["Health Checks"])


async def check_database() -> Dict[str, Any]:
    """Check database connectivity"""
    start = time.time()
    try:
        async with get_session_local()() as session:
            await session.execute(text("SELECT 1"))
        return {
            "status": "healthy",
            "latency_ms": round((time.time() - start) * 1000, 2),
        }
    except Exception as e:
        logger.error(f"[HealthCheck] Database check failed: {e}")
        return {
            "status": "unhealthy",
            "latency_ms": round((time.time() - start) * 1000, 2),
            "error": str(e),
        }


async def check_stremio_api() -> Dict[str, Any]:
    """Check that the Stremio API host answers at all"""
    start = time.time()
    try:
        async with httpx.AsyncClient(timeout=settings.REMOTE_CONNECT_TIMEOUT) as client:
            response = await client.get(settings.STREMIO_API_URL)
        return {
            "status": "healthy",
            "http_status": response.status_code,
            "latency_ms": round((time.time() - start) * 1000, 2),
        }
    except httpx.RequestError as e:
        logger.warning(f"[HealthCheck] Stremio API check failed: {e}")
        return {
            "status": "unhealthy",
            "latency_ms": round((time.time() - start) * 1000, 2),
            "error": type(e).__name__,
        }


@router.get("")
async def health():
    """Liveness check for load balancers"""
    return {
        "status": "healthy",
        "service": "stremio-panel",
        "version": settings.API_VERSION,
        "timestamp": datetime.utcnow().isoformat(),
    }


@router.get("/detailed")
async def health_detailed(admin: User = Depends(get_current_admin)):
    """Dependency diagnostics"""
    database = await check_database()
    stremio = await check_stremio_api()

    return {
        "status": "healthy" if database["status"] == "healthy" else "unhealthy",
        "environment": settings.ENVIRONMENT,
        "timestamp": datetime.utcnow().isoformat(),
        "checks": {
            "database": database,
            "stremio_api": stremio,
        },
        "pin_cleanup": {
            "enabled": settings.PIN_CLEANUP_ENABLED,
            "running": pin_cleanup_service.running,
            **pin_cleanup_service.stats,
        },
    }
