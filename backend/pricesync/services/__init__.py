"""Services module: catalog access, freshness cache and API-facing operations."""

from pricesync.services.cache_service import FreshnessCache
from pricesync.services.catalog_service import CatalogProvider, InMemoryCatalog
from pricesync.services.price_service import PriceSyncService, build_services

__all__ = [
    "CatalogProvider",
    "FreshnessCache",
    "InMemoryCatalog",
    "PriceSyncService",
    "build_services",
]
