"""API-facing price operations and the service container.

``build_services`` wires retriever, rules, retry policy, scraper, batch
scheduler, catalog and cache from settings. ``PriceSyncService`` owns
their lifecycle: ``open()`` launches the browser, ``close()`` releases it.
"""

import asyncio
from dataclasses import dataclass, field
from typing import List, Optional, Sequence

import structlog

from pricesync.config import Settings
from pricesync.scrapers.base import PageRetriever, PriceQuote
from pricesync.scrapers.batch import BatchScheduler
from pricesync.scrapers.rules import build_default_rule_provider
from pricesync.scrapers.scraper_service import PriceScraper
from pricesync.scrapers.utils.browser_manager import PlaywrightPageRetriever
from pricesync.scrapers.utils.identity import IdentityRotator
from pricesync.scrapers.utils.retry import RetryPolicy
from pricesync.services.cache_service import (
    CacheLookup,
    CacheResult,
    CacheStatusEntry,
    FreshnessCache,
)
from pricesync.services.catalog_service import CatalogProvider, build_catalog


logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class PricesSummary:
    total: int = 0
    successful: int = 0
    failed: int = 0
    cached: int = 0
    scraped: int = 0


@dataclass(frozen=True)
class PricesResult:
    summary: PricesSummary
    data: List[CacheResult] = field(default_factory=list)


def summarize(lookup: CacheLookup) -> PricesResult:
    """Build the summary counts for a cache lookup."""
    successful = sum(1 for r in lookup.results if r.success)
    return PricesResult(
        summary=PricesSummary(
            total=len(lookup.results),
            successful=successful,
            failed=len(lookup.results) - successful,
            cached=lookup.hits,
            scraped=lookup.misses,
        ),
        data=lookup.results,
    )


class PriceSyncService:
    """Operations exposed to the HTTP layer, the CLI and the scheduler."""

    def __init__(
        self,
        cache: FreshnessCache,
        catalog: CatalogProvider,
        retriever: PageRetriever,
    ):
        self.cache = cache
        self.catalog = catalog
        self.retriever = retriever
        self.logger = logger.bind(service="price_sync")
        # Set on shutdown so an in-progress refresh stops at the next window
        self.stop_event = asyncio.Event()

    async def open(self) -> None:
        self.stop_event.clear()
        await self.retriever.open()
        self.logger.info("price_service_opened")

    async def close(self) -> None:
        self.stop_event.set()
        await self.retriever.close()
        self.logger.info("price_service_closed")

    async def __aenter__(self) -> "PriceSyncService":
        await self.open()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    async def get_prices(
        self,
        product_keys: Optional[Sequence[str]] = None,
        force_refresh: bool = False,
    ) -> PricesResult:
        """Prices for the given keys (all tracked products when None).

        Raises:
            NotFoundError: If any key is not tracked
        """
        lookup = await self.cache.get_all(
            product_keys, force_refresh=force_refresh, stop_event=self.stop_event
        )
        result = summarize(lookup)
        self.logger.info(
            "prices_served",
            total=result.summary.total,
            successful=result.summary.successful,
            failed=result.summary.failed,
            cached=result.summary.cached,
            scraped=result.summary.scraped,
        )
        return result

    async def get_price(self, product_key: str, force_refresh: bool = False) -> PriceQuote:
        """Price for one product.

        Raises:
            NotFoundError: If the key is not tracked
            ScrapeFailedError: If the product has never been scraped successfully
        """
        return await self.cache.get(product_key, force_refresh=force_refresh)

    async def refresh_all(self) -> PricesResult:
        """Scrape every tracked product, bypassing the cache."""
        self.logger.info("refresh_all_started")
        return await self.get_prices(force_refresh=True)

    def cache_status(self) -> List[CacheStatusEntry]:
        return self.cache.status()

    def invalidate_cache(self) -> int:
        return self.cache.invalidate_all()


def build_services(
    settings: Settings,
    retriever: Optional[PageRetriever] = None,
    catalog: Optional[CatalogProvider] = None,
) -> PriceSyncService:
    """Construct the service graph from settings.

    Args:
        settings: Application settings
        retriever: Page retriever override (tests inject fakes)
        catalog: Catalog override

    Returns:
        Unopened PriceSyncService
    """
    if retriever is None:
        retriever = PlaywrightPageRetriever(
            headless=settings.HEADLESS,
            default_timeout=settings.fetch_timeout_seconds,
            max_sessions=settings.CONCURRENCY_LIMIT,
            block_resources=settings.BLOCK_RESOURCES,
        )
    if catalog is None:
        catalog = build_catalog(settings.CATALOG_FILE)

    policy = RetryPolicy(
        max_attempts=settings.MAX_RETRIES,
        base_delay=settings.RETRY_BASE_DELAY_SECONDS,
        delay_range=settings.request_delay_range,
        identities=IdentityRotator(locale=settings.BROWSER_LOCALE),
    )
    scraper = PriceScraper(
        retriever=retriever,
        rules=build_default_rule_provider(),
        policy=policy,
        fetch_timeout=settings.fetch_timeout_seconds,
    )
    batch = BatchScheduler(
        scraper,
        concurrency_limit=settings.CONCURRENCY_LIMIT,
        delay_range=settings.request_delay_range,
    )
    cache = FreshnessCache(
        scraper=scraper,
        batch=batch,
        catalog=catalog,
        ttl_seconds=settings.CACHE_TTL_SECONDS,
    )
    return PriceSyncService(cache=cache, catalog=catalog, retriever=retriever)
