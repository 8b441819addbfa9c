"""Price Pydantic schemas for API responses."""

from datetime import datetime
from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, ConfigDict

from pricesync.scrapers.utils.normalizer import AvailabilityState
from pricesync.services.cache_service import CacheResult


class QuoteResponse(BaseModel):
    """Observed price and availability for one product."""

    model_config = ConfigDict(from_attributes=True)

    product_key: str
    price: Decimal
    currency: str
    availability: AvailabilityState
    source_url: str
    observed_at: datetime
    reference_price: Decimal
    price_delta: Decimal
    price_delta_percent: Optional[Decimal] = None
    currency_assumed: bool = False
    extraction_method: str
    matched_selector: Optional[str] = None


class FailureResponse(BaseModel):
    """Why the latest scrape of a product failed."""

    model_config = ConfigDict(from_attributes=True)

    error_kind: str
    message: str
    attempts_made: int
    last_observed_at: datetime


class PriceItem(BaseModel):
    """One entry of a multi-product price response."""

    product_key: str
    success: bool
    from_cache: bool = False
    stale: bool = False
    reference_price: Optional[Decimal] = None
    quote: Optional[QuoteResponse] = None
    error: Optional[FailureResponse] = None

    @classmethod
    def from_result(cls, result: CacheResult) -> "PriceItem":
        error = None
        if result.failure is not None:
            error = FailureResponse(
                error_kind=result.failure.error_kind.value,
                message=result.failure.message,
                attempts_made=result.failure.attempts_made,
                last_observed_at=result.failure.last_observed_at,
            )
        return cls(
            product_key=result.product_key,
            success=result.success,
            from_cache=result.from_cache,
            stale=result.stale,
            reference_price=result.reference_price,
            quote=QuoteResponse.model_validate(result.quote) if result.quote else None,
            error=error,
        )


class PricesSummaryResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    total: int
    successful: int
    failed: int
    cached: int
    scraped: int


class PricesResponse(BaseModel):
    """Multi-product response; partial failure is reported per item."""

    status: str = "success"
    summary: PricesSummaryResponse
    data: List[PriceItem]


class CacheStatusItem(BaseModel):
    """Introspection of one cache entry."""

    model_config = ConfigDict(from_attributes=True)

    product_key: str
    age_seconds: float
    remaining_seconds: float
    last_success: datetime
    success: bool
    is_fresh: bool
    last_error: Optional[str] = None


class CacheClearedResponse(BaseModel):
    status: str = "success"
    cleared: int
