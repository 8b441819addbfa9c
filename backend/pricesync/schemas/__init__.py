"""Pydantic schemas for the price sync API.

All response models are defined here for easy import.
"""

from pricesync.schemas.common import ApiResponse, ErrorDetail, ErrorResponse
from pricesync.schemas.health import HealthCheckResponse
from pricesync.schemas.price import (
    CacheClearedResponse,
    CacheStatusItem,
    FailureResponse,
    PriceItem,
    PricesResponse,
    PricesSummaryResponse,
    QuoteResponse,
)

__all__ = [
    # Common
    "ApiResponse",
    "ErrorDetail",
    "ErrorResponse",
    # Health
    "HealthCheckResponse",
    # Prices
    "CacheClearedResponse",
    "CacheStatusItem",
    "FailureResponse",
    "PriceItem",
    "PricesResponse",
    "PricesSummaryResponse",
    "QuoteResponse",
]
