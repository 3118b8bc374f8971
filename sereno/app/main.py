"""
Sereno crisis-response API.

    uvicorn sereno.app.main:app --reload

Tests build their own app with ``create_app(container)`` so they can inject
fake transports and an SQLite database.
"""

from contextlib import asynccontextmanager
from typing import Optional

from fastapi import APIRouter, FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from sereno.app.container import ServiceContainer
from sereno.app.core.config import settings
from sereno.app.core.errors import register_error_handlers
from sereno.app.core.health import HealthStatus, run_health_check
from sereno.app.core.logging_config import get_logger, setup_logging
from sereno.app.core.middleware import RequestLoggingMiddleware

from sereno.app.api.v1.emergency import router as emergency_router
from sereno.app.api.v1.notifications import router as notifications_router

setup_logging()
logger = get_logger(__name__)

health_router = APIRouter(prefix="/health", tags=["health"])


@health_router.get("")
async def health(request: Request):
    """Every probe, always 200; read ``status`` for the verdict."""
    report = await run_health_check(request.app.state.container)
    return report.to_dict()


@health_router.get("/live")
async def liveness():
    return {"status": "alive"}


@health_router.get("/ready")
async def readiness(request: Request):
    """503 only when the database is gone; degraded still takes traffic."""
    report = await run_health_check(request.app.state.container)
    status_code = 503 if report.status is HealthStatus.UNHEALTHY else 200
    return JSONResponse(status_code=status_code, content=report.to_dict())


def create_app(container: Optional[ServiceContainer] = None) -> FastAPI:
    """
    Build the application.

    Passing a container skips building one from settings; the caller then
    owns its startup and shutdown.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        owned = container is None
        services = container or ServiceContainer.build()
        if owned:
            await services.startup()
        app.state.container = services
        logger.info("%s %s up (%s)", settings.APP_NAME, settings.APP_VERSION, settings.ENVIRONMENT)
        try:
            yield
        finally:
            if owned:
                await services.shutdown()
            logger.info("%s stopped", settings.APP_NAME)

    app = FastAPI(
        title=settings.APP_NAME,
        version=settings.APP_VERSION,
        summary="Panic alerts, SERENO responders, emergency chat and push delivery",
        lifespan=lifespan,
    )
    if container is not None:
        app.state.container = container

    # added last runs first: request logging wraps CORS
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"] if settings.CORS_ALLOW_ALL else settings.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_middleware(RequestLoggingMiddleware)
    register_error_handlers(app)

    for router in (emergency_router, notifications_router, health_router):
        app.include_router(router)

    @app.get("/", include_in_schema=False)
    async def root():
        return {"service": settings.APP_NAME, "version": settings.APP_VERSION, "docs": "/docs"}

    return app


app = create_app()
