from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from contextlib import asynccontextmanager
from prometheus_fastapi_instrumentator import Instrumentator
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware

from workspace_chat.config import settings
from workspace_chat.core.logging_config import setup_logging, get_logger
from workspace_chat.core.exceptions import register_exception_handlers
from workspace_chat.core.rate_limit import limiter, rate_limit_exceeded_handler
from workspace_chat.core.cache import cache
from workspace_chat.db.mongodb import init_db, close_db
from workspace_chat.middleware.access_log import AccessLogMiddleware, RequestContextMiddleware
from workspace_chat.routes import groups, direct, websocket, ops
from workspace_chat.services.connection_manager import manager

# Setup structured logging BEFORE any other imports that might log
setup_logging()
logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager."""
    logger.info(
        "application_startup",
        app_name=settings.APP_NAME,
        version=settings.APP_VERSION,
        environment=settings.ENVIRONMENT,
        log_level=settings.LOG_LEVEL,
    )

    try:
        await init_db()
        logger.info("database_initialized", database=settings.DATABASE_NAME)
    except Exception as e:
        logger.error(
            "database_initialization_failed",
            error=str(e),
            exc_info=True,
        )
        raise

    # Optional; lookups fall back to MongoDB when Redis is unavailable
    await cache.initialize()

    logger.info(
        "notifier_configured",
        push_enabled=settings.PUSH_NOTIFICATIONS_ENABLED,
        rate_limit_enabled=settings.RATE_LIMIT_ENABLED,
    )

    yield

    logger.info("application_shutdown")

    await manager.shutdown_all()
    await cache.close()
    await close_db()


app = FastAPI(
    title=settings.PROJECT_NAME,
    version=settings.API_VERSION,
    description="""
**Messaging core of a multi-tenant workspace: group channels and one-to-one conversations.**

## Key Features
- **Group channels**: admin-managed membership with per-member unread counters and mute
- **Direct messages**: one-to-one threads within a company, unread state derived on read
- **Live channel**: one WebSocket per user receives `group_message`, `direct_message` and `unread_count_update` events
- **Push notifications**: optional Expo push for offline recipients

## Architecture
- **Database**: MongoDB with Beanie ODM; every write is a single-document operation
- **Cache**: Optional Redis for user display names
- **Authentication**: HS256 JWT bearer tokens carrying user id, role and company id
- **Observability**: Prometheus metrics, structured logging with correlation ids

Errors are returned as `{"message": "..."}`.
    """,
    docs_url="/docs" if settings.ENABLE_DOCS else None,
    redoc_url="/redoc" if settings.ENABLE_DOCS else None,
    openapi_url="/openapi.json" if settings.ENABLE_DOCS else None,
    lifespan=lifespan
)

register_exception_handlers(app)

app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, rate_limit_exceeded_handler)

instrumentator = Instrumentator(
    should_group_status_codes=True,
    should_ignore_untemplated=False,
    should_group_untemplated=True,
    should_instrument_requests_inprogress=True,
    excluded_handlers=["/metrics"],
    inprogress_name="http_requests_inprogress",
    inprogress_labels=True,
)
instrumentator.instrument(app).expose(app, endpoint="/metrics")

# ========== Middleware Stack ==========
# Middlewares execute in REVERSE order of registration:
# 1. RequestContextMiddleware (identifies the caller from the bearer token)
# 2. AccessLogMiddleware (correlation id, access log)
# 3. SlowAPIMiddleware (default rate limit, keyed by user)
# 4. CORSMiddleware
# 5. Route handler

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=settings.CORS_ALLOW_CREDENTIALS,
    allow_methods=settings.CORS_ALLOW_METHODS,
    allow_headers=settings.CORS_ALLOW_HEADERS,
)
app.add_middleware(SlowAPIMiddleware)
app.add_middleware(AccessLogMiddleware)
app.add_middleware(RequestContextMiddleware)

app.include_router(ops.router, tags=["operations"])
app.include_router(groups.router, prefix=settings.API_PREFIX, tags=["groups"])
app.include_router(direct.router, prefix=f"{settings.API_PREFIX}/direct", tags=["direct"])
app.include_router(websocket.router, prefix=settings.API_PREFIX, tags=["websocket"])


def custom_openapi():
    if app.openapi_schema:
        return app.openapi_schema

    from fastapi.openapi.utils import get_openapi

    openapi_schema = get_openapi(
        title=app.title,
        version=app.version,
        description=app.description,
        routes=app.routes,
    )

    openapi_schema["components"] = openapi_schema.get("components", {})
    openapi_schema["components"]["securitySchemes"] = {
        "BearerAuth": {
            "type": "http",
            "scheme": "bearer",
            "bearerFormat": "JWT",
            "description": "HS256 access token with sub, role and company_id claims. Format: `Bearer <token>`."
        }
    }

    app.openapi_schema = openapi_schema
    return app.openapi_schema


app.openapi = custom_openapi


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "workspace_chat.main:app",
        host=settings.HOST,
        port=settings.PORT,
        reload=settings.DEBUG,
        log_level=settings.LOG_LEVEL.lower(),
        access_log=False,  # AccessLogMiddleware replaces it
    )
