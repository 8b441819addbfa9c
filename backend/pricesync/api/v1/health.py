"""Health check endpoint."""

from typing import Optional

from fastapi import APIRouter, Depends

from pricesync import __version__
from pricesync.dependencies import get_price_service, get_refresh_scheduler
from pricesync.schemas import HealthCheckResponse
from pricesync.scrapers.scheduler import RefreshScheduler
from pricesync.services.price_service import PriceSyncService

router = APIRouter()


@router.get("/health", response_model=HealthCheckResponse)
async def health_check(
    service: PriceSyncService = Depends(get_price_service),
    scheduler: Optional[RefreshScheduler] = Depends(get_refresh_scheduler),
):
    """Return service health status.

    Reports whether the headless browser is running and, when periodic
    refresh is enabled, the state of the refresh job. A browser that has
    not started yet is launched on the first scrape, so the status is
    "degraded" rather than an error.
    """
    browser_open = getattr(service.retriever, "is_open", True)
    browser_status = "ok" if browser_open else "not_started"

    return HealthCheckResponse(
        status="ok" if browser_open else "degraded",
        version=__version__,
        browser=browser_status,
        scheduler=scheduler.get_jobs_status() if scheduler else None,
        cached_entries=service.cache.size,
    )
