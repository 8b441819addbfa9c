"""Price API endpoints."""

from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query

from pricesync.dependencies import get_price_service
from pricesync.schemas import (
    ApiResponse,
    CacheClearedResponse,
    CacheStatusItem,
    PriceItem,
    PricesResponse,
    PricesSummaryResponse,
    QuoteResponse,
)
from pricesync.services.price_service import PricesResult, PriceSyncService

router = APIRouter()


def parse_keys(keys: Optional[str]) -> Optional[List[str]]:
    """Split a comma-separated key list. Empty entries are rejected."""
    if keys is None:
        return None
    parts = [part.strip() for part in keys.split(",")]
    if not all(parts):
        raise HTTPException(
            status_code=422,
            detail="keys must be a comma-separated list of non-empty product keys",
        )
    return parts


def _prices_response(result: PricesResult) -> PricesResponse:
    return PricesResponse(
        status="success",
        summary=PricesSummaryResponse.model_validate(result.summary),
        data=[PriceItem.from_result(r) for r in result.data],
    )


@router.get("", response_model=PricesResponse)
async def list_prices(
    keys: Optional[str] = Query(None, description="Comma-separated product keys; all tracked products if omitted"),
    force_refresh: bool = Query(False, description="Bypass the cache and scrape now"),
    service: PriceSyncService = Depends(get_price_service),
):
    """Get prices for several products.

    Always 200 for tracked keys: per-item failures are reported in the
    item's ``success`` flag and ``error`` detail.
    """
    result = await service.get_prices(parse_keys(keys), force_refresh=force_refresh)
    return _prices_response(result)


@router.get("/cache/status", response_model=ApiResponse[List[CacheStatusItem]])
async def cache_status(service: PriceSyncService = Depends(get_price_service)):
    """Age and remaining TTL of every cached quote."""
    return ApiResponse(
        status="success",
        data=[CacheStatusItem.model_validate(s) for s in service.cache_status()],
    )


@router.post("/refresh", response_model=PricesResponse)
async def refresh_prices(service: PriceSyncService = Depends(get_price_service)):
    """Scrape every tracked product now, bypassing the cache."""
    result = await service.refresh_all()
    return _prices_response(result)


@router.delete("/cache", response_model=CacheClearedResponse)
async def clear_cache(service: PriceSyncService = Depends(get_price_service)):
    """Drop every cached quote; the next request repopulates from the vendors."""
    return CacheClearedResponse(status="success", cleared=service.invalidate_cache())


@router.get("/{product_key}", response_model=ApiResponse[QuoteResponse])
async def get_price(
    product_key: str,
    force_refresh: bool = Query(False, description="Bypass the cache and scrape now"),
    service: PriceSyncService = Depends(get_price_service),
):
    """Get the price of one product.

    404 for an unknown key; 502 when the product has never been scraped
    successfully and the current scrape failed.
    """
    quote = await service.get_price(product_key, force_refresh=force_refresh)
    return ApiResponse(status="success", data=QuoteResponse.model_validate(quote))
