"""In-memory freshness cache for price quotes.

Quotes are served from memory while younger than the TTL. Misses, expired
entries and forced refreshes go back to the vendor pages; a failed refresh
keeps serving the last good quote (stale-on-error) and only a key that has
never been scraped successfully surfaces the failure.

Per key:
    Empty -> fresh (first success) -> stale (TTL elapsed)
          -> fresh (refresh success) | stale, retained (refresh failure)

Entries are removed only by ``invalidate_all()`` / ``invalidate()``.
Refreshes of a key are serialized by its lock; a batch holds the locks of
every key it scrapes until its results are written.
"""

import asyncio
import time
from collections import defaultdict
from contextlib import AsyncExitStack
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Callable, Dict, List, Optional, Sequence

import structlog

from pricesync.core.exceptions import NotFoundError, ScrapeFailedError
from pricesync.scrapers.base import (
    PriceQuote,
    ProductSource,
    ScrapeFailure,
    ScrapeOutcome,
    utcnow,
)
from pricesync.scrapers.batch import BatchScheduler
from pricesync.scrapers.scraper_service import PriceScraper
from pricesync.services.catalog_service import CatalogProvider


logger = structlog.get_logger(__name__)


@dataclass
class CacheEntry:
    """Last good quote for one product plus the outcome of the latest refresh."""

    product_key: str
    quote: PriceQuote
    cached_at: float  # clock() reading at the last successful refresh
    ttl: float
    last_success_at: datetime
    last_outcome: ScrapeOutcome
    last_error: Optional[str] = None

    def age(self, now: float) -> float:
        return max(0.0, now - self.cached_at)

    def is_fresh(self, now: float) -> bool:
        return self.age(now) < self.ttl


@dataclass(frozen=True)
class CacheStatusEntry:
    product_key: str
    age_seconds: float
    remaining_seconds: float
    last_success: datetime
    success: bool
    is_fresh: bool
    last_error: Optional[str] = None


@dataclass(frozen=True)
class CacheResult:
    """What the cache served for one key.

    ``quote`` is None only when the key has never been scraped successfully;
    ``stale`` marks a retained quote served after a failed refresh.
    """

    product_key: str
    quote: Optional[PriceQuote]
    failure: Optional[ScrapeFailure] = None
    reference_price: Optional[Decimal] = None
    from_cache: bool = False
    stale: bool = False

    @property
    def success(self) -> bool:
        return self.quote is not None


@dataclass(frozen=True)
class CacheLookup:
    results: List[CacheResult]
    hits: int
    misses: int


class FreshnessCache:
    """TTL cache in front of the scraper and batch scheduler."""

    def __init__(
        self,
        scraper: PriceScraper,
        batch: BatchScheduler,
        catalog: CatalogProvider,
        ttl_seconds: float = 1800,
        clock: Callable[[], float] = time.monotonic,
        wall_clock: Callable[[], datetime] = utcnow,
    ):
        """Initialize the cache.

        Args:
            scraper: Single-product scraper used by ``get``
            batch: Batch scheduler used by ``get_all``
            catalog: Catalog read at the start of every lookup
            ttl_seconds: Entry lifetime
            clock: Monotonic clock for ages (injectable for tests)
            wall_clock: Wall clock for ``last_success_at``
        """
        if ttl_seconds < 0:
            raise ValueError("ttl_seconds must be >= 0")
        self.scraper = scraper
        self.batch = batch
        self.catalog = catalog
        self.ttl = float(ttl_seconds)
        self._clock = clock
        self._wall_clock = wall_clock
        self._entries: Dict[str, CacheEntry] = {}
        self._locks: Dict[str, asyncio.Lock] = defaultdict(asyncio.Lock)
        # Bumped on every completed refresh of a key
        self._generations: Dict[str, int] = defaultdict(int)
        self.logger = logger.bind(service="freshness_cache")

    @property
    def size(self) -> int:
        return len(self._entries)

    def __contains__(self, product_key: str) -> bool:
        return product_key in self._entries

    async def _source_for(self, product_key: str) -> ProductSource:
        source = await self.catalog.get_source(product_key)
        if source is None:
            raise NotFoundError("Product", product_key)
        return source

    async def get(self, product_key: str, force_refresh: bool = False) -> PriceQuote:
        """Return the quote for one product.

        Args:
            product_key: Product to look up
            force_refresh: Scrape even if the cached quote is fresh

        Returns:
            Fresh quote, newly scraped quote, or the retained quote when the
            refresh failed

        Raises:
            NotFoundError: If the product is not tracked
            ScrapeFailedError: If the scrape failed and no prior quote exists
        """
        source = await self._source_for(product_key)

        entry = self._entries.get(product_key)
        if entry and not force_refresh and entry.is_fresh(self._clock()):
            self.logger.debug("cache_hit", product_key=product_key)
            return entry.quote

        generation = self._generations[product_key]
        async with self._locks[product_key]:
            entry = self._entries.get(product_key)
            if entry is not None:
                refreshed_meanwhile = self._generations[product_key] != generation
                if refreshed_meanwhile or (not force_refresh and entry.is_fresh(self._clock())):
                    self.logger.debug("cache_hit_after_wait", product_key=product_key)
                    return entry.quote

            self.logger.debug(
                "cache_miss", product_key=product_key, force_refresh=force_refresh
            )
            result = self._store(source, await self.scraper.scrape_one(source))

        if result.quote is None:
            raise ScrapeFailedError(result.failure)
        return result.quote

    async def get_all(
        self,
        product_keys: Optional[Sequence[str]] = None,
        force_refresh: bool = False,
        stop_event: Optional[asyncio.Event] = None,
    ) -> CacheLookup:
        """Return one result per requested product.

        Hits are served from memory; everything else is scraped in one
        batch. Results are sorted by product key.

        Args:
            product_keys: Keys to look up; None means every tracked product
            force_refresh: Scrape every requested key
            stop_event: Forwarded to the batch scheduler

        Raises:
            NotFoundError: If any requested key is not tracked
        """
        tracked = {s.product_key: s for s in await self.catalog.list_tracked_products()}
        if product_keys is None:
            keys = sorted(tracked)
        else:
            keys = sorted(set(product_keys))
            unknown = [k for k in keys if k not in tracked]
            if unknown:
                raise NotFoundError("Product", ", ".join(unknown))

        now = self._clock()
        results: Dict[str, CacheResult] = {}
        misses: List[ProductSource] = []
        for key in keys:
            entry = self._entries.get(key)
            if entry and not force_refresh and entry.is_fresh(now):
                results[key] = CacheResult(
                    key, entry.quote, reference_price=tracked[key].reference_price, from_cache=True
                )
            else:
                misses.append(tracked[key])

        self.logger.info(
            "cache_lookup",
            requested=len(keys),
            hits=len(results),
            misses=len(misses),
            force_refresh=force_refresh,
        )

        if misses:
            misses = await self._refresh_misses(misses, results, stop_event)

        return CacheLookup(
            results=[results[k] for k in keys],
            hits=len(keys) - len(misses),
            misses=len(misses),
        )

    async def _refresh_misses(
        self,
        misses: List[ProductSource],
        results: Dict[str, CacheResult],
        stop_event: Optional[asyncio.Event],
    ) -> List[ProductSource]:
        """Batch-scrape misses while holding their per-key locks.

        Locks are taken in key order. A key refreshed by another caller
        while we waited is served from that refresh instead of being
        scraped again. Returns the sources that were actually scraped.
        """
        generations = {s.product_key: self._generations[s.product_key] for s in misses}
        async with AsyncExitStack() as stack:
            for source in misses:
                await stack.enter_async_context(self._locks[source.product_key])

            pending = []
            for source in misses:
                key = source.product_key
                entry = self._entries.get(key)
                if entry is not None and self._generations[key] != generations[key]:
                    self.logger.debug("cache_hit_after_wait", product_key=key)
                    results[key] = self._result_from_entry(entry, source)
                else:
                    pending.append(source)

            if pending:
                by_key = {s.product_key: s for s in pending}
                for outcome in await self.batch.scrape_all(pending, stop_event=stop_event):
                    results[outcome.product_key] = self._store(by_key[outcome.product_key], outcome)
        return pending

    @staticmethod
    def _result_from_entry(entry: CacheEntry, source: ProductSource) -> CacheResult:
        if entry.last_outcome.success:
            return CacheResult(
                entry.product_key,
                entry.quote,
                reference_price=source.reference_price,
                from_cache=True,
            )
        return CacheResult(
            entry.product_key,
            entry.quote,
            failure=entry.last_outcome,
            reference_price=source.reference_price,
            stale=True,
        )

    def _store(self, source: ProductSource, outcome: ScrapeOutcome) -> CacheResult:
        """Apply a scrape outcome to the cache map."""
        key = outcome.product_key
        reference = source.reference_price
        self._generations[key] += 1
        entry = self._entries.get(key)

        if outcome.success:
            self._entries[key] = CacheEntry(
                product_key=key,
                quote=outcome.quote,
                cached_at=self._clock(),
                ttl=self.ttl,
                last_success_at=self._wall_clock(),
                last_outcome=outcome,
            )
            return CacheResult(key, outcome.quote, reference_price=reference)

        if entry is None:
            self.logger.warning(
                "price_unavailable",
                product_key=key,
                error_kind=outcome.error_kind.value,
                attempts=outcome.attempts_made,
            )
            return CacheResult(key, None, failure=outcome, reference_price=reference)

        entry.last_outcome = outcome
        entry.last_error = outcome.message
        self.logger.warning(
            "serving_stale_price",
            product_key=key,
            error_kind=outcome.error_kind.value,
            age_seconds=round(entry.age(self._clock()), 1),
        )
        return CacheResult(
            key, entry.quote, failure=outcome, reference_price=reference, stale=True
        )

    def invalidate_all(self) -> int:
        """Drop every entry. Returns the number of entries removed."""
        count = len(self._entries)
        self._entries.clear()
        self.logger.info("cache_cleared", entries=count)
        return count

    def invalidate(self, product_key: str) -> bool:
        removed = self._entries.pop(product_key, None) is not None
        if removed:
            self.logger.info("cache_entry_invalidated", product_key=product_key)
        return removed

    def status(self) -> List[CacheStatusEntry]:
        """Per-entry age and remaining TTL, computed now. No side effects."""
        now = self._clock()
        statuses = []
        for key in sorted(self._entries):
            entry = self._entries[key]
            age = entry.age(now)
            statuses.append(
                CacheStatusEntry(
                    product_key=key,
                    age_seconds=round(age, 3),
                    remaining_seconds=round(max(0.0, entry.ttl - age), 3),
                    last_success=entry.last_success_at,
                    success=entry.last_outcome.success,
                    is_fresh=entry.is_fresh(now),
                    last_error=entry.last_error,
                )
            )
        return statuses
