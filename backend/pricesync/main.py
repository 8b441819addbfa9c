"""Price Sync API -- FastAPI Application Entry Point."""

from contextlib import asynccontextmanager
from typing import Optional

import structlog
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from pricesync import __version__
from pricesync.api.v1.router import api_v1_router
from pricesync.config import settings
from pricesync.core.exceptions import NotFoundError, ScrapeFailedError
from pricesync.core.logging import configure_logging
from pricesync.schemas import ErrorDetail, ErrorResponse
from pricesync.scrapers.scheduler import RefreshScheduler
from pricesync.services.price_service import PriceSyncService, build_services

logger = structlog.get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan: startup and shutdown events."""
    configure_logging(settings.LOG_LEVEL, settings.LOG_JSON)
    logger.info(
        "app_starting",
        environment=settings.ENVIRONMENT,
        debug=settings.DEBUG,
        concurrency_limit=settings.CONCURRENCY_LIMIT,
        cache_ttl_seconds=settings.CACHE_TTL_SECONDS,
    )

    service: Optional[PriceSyncService] = app.state.price_service
    if service is None:
        service = build_services(settings)
        app.state.price_service = service

    # The browser is also launched lazily on the first scrape
    try:
        await service.open()
    except Exception as e:
        logger.warning("browser_start_failed", error=str(e))

    scheduler: Optional[RefreshScheduler] = None
    if settings.REFRESH_INTERVAL_MINUTES > 0 and settings.ENVIRONMENT != "test":
        scheduler = RefreshScheduler(service, settings.REFRESH_INTERVAL_MINUTES)
        scheduler.start()
    else:
        logger.info("refresh_scheduler_disabled")
    app.state.refresh_scheduler = scheduler

    yield

    logger.info("app_stopping")
    if scheduler:
        scheduler.stop()
    try:
        await service.close()
    except Exception as e:
        logger.warning("service_close_failed", error=str(e))


def _error(status_code: int, code: str, message: str) -> JSONResponse:
    body = ErrorResponse(error=ErrorDetail(code=code, message=message))
    return JSONResponse(status_code=status_code, content=body.model_dump())


async def not_found_handler(request: Request, exc: NotFoundError) -> JSONResponse:
    return _error(404, "not_found", exc.message)


async def scrape_failed_handler(request: Request, exc: ScrapeFailedError) -> JSONResponse:
    logger.warning(
        "price_request_failed",
        product_key=exc.failure.product_key,
        error_kind=exc.failure.error_kind.value,
    )
    return _error(502, exc.failure.error_kind.value, exc.message)


def create_app(service: Optional[PriceSyncService] = None) -> FastAPI:
    """Build the FastAPI application.

    Args:
        service: Pre-built service container; built from settings at
            startup when omitted

    Returns:
        Configured FastAPI app
    """
    app = FastAPI(
        title=settings.API_TITLE,
        description="Vendor price and availability synchronization",
        version=__version__,
        docs_url="/docs" if settings.DEBUG else None,
        redoc_url="/redoc" if settings.DEBUG else None,
        lifespan=lifespan,
    )
    app.state.price_service = service
    app.state.refresh_scheduler = None

    app.add_middleware(
        CORSMiddleware,
        allow_origins=[settings.FRONTEND_URL, "http://localhost:3000"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.add_exception_handler(NotFoundError, not_found_handler)
    app.add_exception_handler(ScrapeFailedError, scrape_failed_handler)

    app.include_router(api_v1_router, prefix="/api/v1")

    @app.get("/")
    async def root():
        """Root endpoint with API information."""
        return {
            "name": settings.API_TITLE,
            "version": __version__,
            "docs": "/docs" if settings.DEBUG else None,
            "health": "/api/v1/health",
        }

    return app


app = create_app()
