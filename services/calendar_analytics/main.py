from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import AsyncGenerator, Dict

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from services.calendar_analytics.api import (
    auth_router,
    calendar_router,
    directory_router,
)
from services.calendar_analytics.settings import get_settings
from services.common.http_errors import register_exception_handlers
from services.common.logging_config import (
    create_request_logging_middleware,
    get_logger,
    log_service_shutdown,
    log_service_startup,
    setup_service_logging,
)

# Set up centralized logging - will be initialized in lifespan
logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    settings = get_settings()

    setup_service_logging(
        service_name=settings.service_name,
        log_level=settings.log_level,
        log_format=settings.log_format,
    )

    log_service_startup(
        settings.service_name,
        version=settings.app_version,
        environment=settings.environment,
        debug=settings.debug,
        graph_base_url=settings.graph_base_url,
        oauth_configured=bool(settings.microsoft_client_id),
    )
    yield
    log_service_shutdown(settings.service_name)


app = FastAPI(
    title="Calendar Analytics Service",
    description="Microsoft Graph calendar proxy with meeting load analytics",
    version="0.1.0",
    openapi_tags=[
        {"name": "auth", "description": "Microsoft sign-in and profile"},
        {
            "name": "calendar",
            "description": "Calendar events and meeting analytics",
        },
        {"name": "directory", "description": "Organization directory search"},
    ],
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=get_settings().cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Add request logging middleware
app.middleware("http")(create_request_logging_middleware())

# Register standardized exception handlers
register_exception_handlers(app)

app.include_router(auth_router, prefix="/v1")
app.include_router(calendar_router, prefix="/v1")
app.include_router(directory_router, prefix="/v1")


@app.get("/")
async def read_root() -> Dict[str, str]:
    logger.info("Root endpoint accessed")
    return {"message": "Calendar Analytics Service is running"}


@app.get("/health")
async def health_check() -> Dict[str, str]:
    return {"status": "ok"}


@app.get("/ready")
async def ready_check() -> Dict[str, str]:
    settings = get_settings()
    return {
        "status": "ok" if settings.microsoft_client_id else "degraded",
        "service": settings.service_name,
        "version": settings.app_version,
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }


if __name__ == "__main__":
    import uvicorn

    settings = get_settings()
    uvicorn.run(
        "services.calendar_analytics.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug,
        log_level="debug" if settings.debug else "info",
        access_log=False,  # request logging is done by the middleware
    )
