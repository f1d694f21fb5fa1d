"""FastAPI application entry point."""

import structlog
from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from catalog_sync_service.api.v1.router import api_router
from catalog_sync_service.config import get_settings
from catalog_sync_service.errors import CatalogSyncError
from catalog_sync_service.infrastructure.catalog import close_catalog_client
from catalog_sync_service.infrastructure.database.connection import close_db
from catalog_sync_service.infrastructure.redis import close_redis
from catalog_sync_service.middleware.request_context import RequestContextMiddleware
from catalog_sync_service.services.status_log import record_status_event

structlog.configure(
    processors=[
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.StackInfoRenderer(),
        structlog.dev.set_exc_info,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.dev.ConsoleRenderer() if get_settings().debug else structlog.processors.JSONRenderer(),
    ],
    wrapper_class=structlog.make_filtering_bound_logger(get_settings().log_level),
    context_class=dict,
    logger_factory=structlog.PrintLoggerFactory(),
    cache_logger_on_first_use=True,
)

logger = structlog.get_logger()


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan manager for startup and shutdown events."""
    settings = get_settings()
    logger.info(
        "Starting Catalog Sync Service",
        app_env=settings.app_env,
        debug=settings.debug,
        store=settings.catalog_store_domain,
    )

    yield

    await close_catalog_client()
    await close_redis()
    await close_db()
    logger.info("Shutting down Catalog Sync Service")


async def catalog_sync_error_handler(request: Request, exc: CatalogSyncError) -> JSONResponse:
    logger.warning(
        "Request failed",
        path=request.url.path,
        status=exc.status_code,
        error=exc.message,
    )
    await record_status_event(exc.status_code, False, exc.message)
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unhandled error", path=request.url.path)
    await record_status_event(500, False, str(exc))
    return JSONResponse(
        status_code=500,
        content={"status": 500, "success": False, "message": "Internal Server Error"},
    )


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    settings = get_settings()

    app = FastAPI(
        title="Catalog Sync API",
        description="Supplier feed reconciliation and remote catalog sync for jewelry products",
        version="1.0.0",
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
        lifespan=lifespan,
    )

    app.add_middleware(RequestContextMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.add_exception_handler(CatalogSyncError, catalog_sync_error_handler)
    app.add_exception_handler(Exception, unhandled_error_handler)

    app.include_router(api_router, prefix="/api/v1")

    return app


app = create_app()


def run() -> None:
    """Run the application using uvicorn."""
    import uvicorn

    settings = get_settings()
    uvicorn.run(
        "catalog_sync_service.main:app",
        host=settings.api_host,
        port=settings.api_port,
        reload=settings.debug,
        workers=1 if settings.debug else settings.api_workers,
    )


if __name__ == "__main__":
    run()
