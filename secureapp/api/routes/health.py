"""
Health Check Endpoints.

Provides health status for the API, the credential store, Redis and the
mail outbox.
"""
import os
import time
import logging

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse

from ..models import HealthStatus
from ..deps import get_auth_service, get_redis_client
from ...auth.service import AuthService
from ... import __version__

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/health", tags=["Health"])

VERSION = os.getenv("APP_VERSION", __version__)


@router.get("", response_model=HealthStatus)
async def health_check(service: AuthService = Depends(get_auth_service)):
    """
    Basic health check endpoint.

    Returns overall system status. Dead-lettered mail marks the service
    as degraded.
    """
    services = {}
    overall = "healthy"

    # Check credential store
    try:
        start = time.time()
        service.store.ping()
        latency = (time.time() - start) * 1000
        services["store"] = f"healthy ({type(service.store).__name__}, {latency:.1f}ms)"
    except Exception as e:
        services["store"] = f"unhealthy: {str(e)}"
        overall = "unhealthy"

    # Check Redis
    try:
        redis_client = get_redis_client()
        if redis_client:
            start = time.time()
            redis_client.ping()
            latency = (time.time() - start) * 1000
            services["redis"] = f"healthy ({latency:.1f}ms)"
        else:
            services["redis"] = "fallback_mode (in-memory)"
    except Exception as e:
        services["redis"] = f"unhealthy: {str(e)}"
        # Redis failure is not critical - we have in-memory fallback

    mail_outbox = service.outbox.stats()
    if mail_outbox["dead_letters"] and overall == "healthy":
        overall = "degraded"

    return HealthStatus(
        status=overall,
        version=VERSION,
        services=services,
        mail_outbox=mail_outbox,
    )


@router.get("/live")
async def liveness():
    """
    Liveness check.

    Returns 200 if the service is running.
    """
    return {"status": "alive"}


@router.get("/ready")
async def readiness(service: AuthService = Depends(get_auth_service)):
    """
    Readiness check.

    Returns 200 if the credential store is reachable, 503 otherwise.
    """
    try:
        service.store.ping()
        return {"status": "ready"}
    except Exception as e:
        logger.error(f"Readiness check failed: {e}")
        return JSONResponse(status_code=503, content={"status": "not ready", "error": str(e)})
