"""FastAPI dependency injection providers."""

from typing import Optional

from fastapi import Request

from pricesync.scrapers.scheduler import RefreshScheduler
from pricesync.services.price_service import PriceSyncService


def get_price_service(request: Request) -> PriceSyncService:
    """Return the service container built at application startup.

    Usage:
        @router.get("/prices")
        async def list_prices(service: PriceSyncService = Depends(get_price_service)):
            return await service.get_prices()
    """
    return request.app.state.price_service


def get_refresh_scheduler(request: Request) -> Optional[RefreshScheduler]:
    """Return the periodic refresh scheduler, or None when disabled."""
    return getattr(request.app.state, "refresh_scheduler", None)
