from fastapi import APIRouter
from fastapi.responses import JSONResponse
from datetime import datetime
from workspace_chat.config import settings
from workspace_chat.core.logging_config import get_logger
from workspace_chat.core.cache import cache
from workspace_chat.models.group import Group

router = APIRouter()
logger = get_logger(__name__)


@router.get("/health")
async def health_check():
    """
    Health check endpoint.

    Verifies:
    - MongoDB connectivity (critical)
    - Redis connectivity, if configured (degrades gracefully)

    Returns 200 when MongoDB is reachable, 503 otherwise.
    """
    checks = {
        "application": "healthy",
        "mongodb": "unknown",
        "redis": "unknown" if settings.REDIS_URL else "not_configured",
    }

    try:
        await Group.find().limit(1).to_list()
        checks["mongodb"] = "healthy"
    except Exception as e:
        logger.error("health_check_mongodb_failed", error=str(e))
        checks["mongodb"] = f"unhealthy: {type(e).__name__}"

    if settings.REDIS_URL:
        if await cache.ping():
            checks["redis"] = "healthy"
        else:
            # The cache is optional: lookups fall back to MongoDB
            checks["redis"] = "degraded: unavailable"

    all_healthy = checks["mongodb"] == "healthy"

    response_data = {
        "status": "healthy" if all_healthy else "degraded",
        "service": "workspace-chat",
        "timestamp": datetime.utcnow().isoformat() + "Z",
        "app": settings.APP_NAME,
        "version": settings.APP_VERSION,
        "checks": checks
    }

    return JSONResponse(content=response_data, status_code=200 if all_healthy else 503)


@router.get("/")
async def root():
    """Root endpoint."""
    return {
        "app": settings.APP_NAME,
        "version": settings.APP_VERSION,
        "docs": "/docs" if settings.ENABLE_DOCS else None,
        "health": "/health",
        "metrics": "/metrics",
    }
