"""
Main FastAPI Application

ImobCRM API Gateway with:
- Multi-tenant routing
- Agency onboarding and platform management
- Properties, clients, pipeline, matching and dashboard endpoints
- Subscription billing and Mercado Pago webhooks
- CORS configuration
- Health checks
"""

import logging
from contextlib import asynccontextmanager

import structlog
from fastapi import Depends, FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from motor.motor_asyncio import AsyncIOMotorClient
from redis import asyncio as aioredis
from structlog import get_logger

from ..audit.api_router import router as audit_router
from ..auth.api_router import router as auth_router
from ..billing.api_router import router as billing_router
from ..billing.api_router import webhook_router
from ..billing.db_service import SubscriptionDBService
from ..billing.models import SubscriptionStatus
from ..clients.api_router import router as clients_router
from ..config import get_config
from ..dashboard.api_router import router as dashboard_router
from ..matching.api_router import router as matching_router
from ..pipeline.api_router import router as pipeline_router
from ..properties.api_router import router as properties_router
from ..shared_services.tenant_middleware import TenantRoutingMiddleware
from ..tenant_management.api_router import require_platform_admin
from ..tenant_management.api_router import router as tenant_router
from ..tenant_management.db_service import TenantDBService
from ..tenant_management.models import TenantStatus

logger = get_logger()

APP_VERSION = "0.1.0"


def configure_logging() -> None:
    """Set up structlog processors and level from configuration."""
    config = get_config()
    renderer = structlog.processors.JSONRenderer() if config.log_json else structlog.dev.ConsoleRenderer()

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            renderer,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(logging.getLevelName(config.log_level)),
        cache_logger_on_first_use=True,
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan manager.

    A Mongo client already placed on ``app.state`` is reused and left open.
    """
    config = get_config()
    configure_logging()

    logger.info("starting_imobcrm_platform", environment=config.environment.value)

    owns_client = getattr(app.state, "mongo_client", None) is None
    if owns_client:
        app.state.mongo_client = AsyncIOMotorClient(config.platform_mongo_db_url)
    app.state.platform_db = app.state.mongo_client[config.platform_mongo_db_name]

    await TenantDBService(app.state.platform_db).ensure_indexes()
    await SubscriptionDBService(app.state.platform_db).ensure_indexes()

    if not hasattr(app.state, "redis_client"):
        app.state.redis_client = aioredis.from_url(config.redis_url) if config.redis_url else None

    logger.info("platform_initialized", tenant_cache=app.state.redis_client is not None)

    yield

    logger.info("shutting_down_platform")
    if app.state.redis_client is not None:
        await app.state.redis_client.aclose()
    if owns_client:
        app.state.mongo_client.close()
    logger.info("platform_shutdown_complete")


def create_app() -> FastAPI:
    config = get_config()

    app = FastAPI(
        title="ImobCRM Platform",
        description="Multi-tenant CRM for real-estate agencies: inventory, clients, pipeline and matching",
        version=APP_VERSION,
        lifespan=lifespan,
        docs_url="/docs" if not config.is_production else None,
        redoc_url="/redoc" if not config.is_production else None,
        openapi_url="/openapi.json" if not config.is_production else None,
    )

    # Middleware added last runs first: CORS wraps tenant routing
    app.add_middleware(TenantRoutingMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.get_allowed_origins_list(),
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.get("/health", tags=["Platform"], summary="Health check")
    async def health_check():
        return {
            "status": "healthy",
            "environment": config.environment.value,
            "version": APP_VERSION,
        }

    @app.get("/ping", tags=["Platform"], summary="Ping endpoint")
    async def ping():
        return {"message": "pong"}

    @app.get("/", tags=["Platform"], summary="Root endpoint")
    async def root():
        return {
            "name": "ImobCRM Platform",
            "version": APP_VERSION,
            "description": "Multi-tenant CRM for real-estate agencies",
            "environment": config.environment.value,
            "docs_url": "/docs" if not config.is_production else None,
        }

    @app.get(
        "/platform/status",
        tags=["Platform"],
        summary="Platform status (admin)",
        dependencies=[Depends(require_platform_admin)],
    )
    async def platform_status(request: Request):
        tenant_service = TenantDBService(request.app.state.platform_db)
        subscription_service = SubscriptionDBService(request.app.state.platform_db)

        return {
            "status": "operational",
            "environment": config.environment.value,
            "total_tenants": await tenant_service.count_tenants(),
            "active_tenants": await tenant_service.count_tenants(status=TenantStatus.ACTIVE),
            "subscriptions": {
                s.value: await subscription_service.count_by_status(s) for s in SubscriptionStatus
            },
        }

    @app.exception_handler(404)
    async def not_found_handler(request: Request, exc):
        detail = getattr(exc, "detail", None) or "Resource not found"
        return JSONResponse(
            status_code=status.HTTP_404_NOT_FOUND,
            content={"detail": detail, "path": str(request.url.path)},
        )

    @app.exception_handler(500)
    async def server_error_handler(request: Request, exc):
        logger.error("internal_server_error", path=request.url.path, error=str(exc))
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={"detail": "Internal server error"},
        )

    app.include_router(tenant_router)
    app.include_router(webhook_router)
    app.include_router(auth_router)
    app.include_router(properties_router)
    app.include_router(clients_router)
    app.include_router(pipeline_router)
    app.include_router(matching_router)
    app.include_router(dashboard_router)
    app.include_router(billing_router)
    app.include_router(audit_router)

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    config = get_config()
    uvicorn.run(
        "crm_core.api_gateway.main:app",
        host="0.0.0.0",
        port=8000,
        reload=config.is_local,
        log_level=config.log_level.lower(),
    )
