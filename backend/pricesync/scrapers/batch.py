"""Bounded-concurrency batch scraping.

Sources are split into fixed-size windows. Items inside a window are
scraped concurrently; windows run one after another with a randomized
pacing delay between them. Every input source yields exactly one outcome
and the result list is sorted by product key.
"""

import asyncio
import random
from typing import Iterable, List, Optional, Sequence, Tuple

import structlog

from pricesync.core.exceptions import ErrorKind
from pricesync.scrapers.base import ProductSource, ScrapeFailure, ScrapeOutcome
from pricesync.scrapers.scraper_service import PriceScraper
from pricesync.scrapers.utils.retry import SleepFn


logger = structlog.get_logger(__name__)

MIN_CONCURRENCY = 1
MAX_CONCURRENCY = 10


def _sort_outcomes(outcomes: Iterable[ScrapeOutcome]) -> List[ScrapeOutcome]:
    return sorted(outcomes, key=lambda o: o.product_key)


class BatchScheduler:
    """Runs many single-product scrapes with bounded concurrency.

    - At most ``concurrency_limit`` scrapes in flight at any time
    - A failing item never aborts its siblings or later windows
    - Window boundaries are cancellation checkpoints: a set ``stop_event``
      stops dispatching, and task cancellation lets the in-flight window
      finish before propagating
    """

    def __init__(
        self,
        scraper: PriceScraper,
        concurrency_limit: int = 3,
        delay_range: Tuple[float, float] = (2.0, 5.0),
        sleep: SleepFn = asyncio.sleep,
        rng: Optional[random.Random] = None,
    ):
        self.scraper = scraper
        self.concurrency_limit = self._check_limit(concurrency_limit)
        self.delay_range = delay_range
        self._sleep = sleep
        self._rng = rng or random.Random()
        self.logger = logger.bind(service="batch_scheduler")

    @staticmethod
    def _check_limit(limit: int) -> int:
        if not MIN_CONCURRENCY <= limit <= MAX_CONCURRENCY:
            raise ValueError(
                f"concurrency_limit must be between {MIN_CONCURRENCY} and {MAX_CONCURRENCY}"
            )
        return limit

    async def scrape_all(
        self,
        sources: Sequence[ProductSource],
        concurrency_limit: Optional[int] = None,
        stop_event: Optional[asyncio.Event] = None,
    ) -> List[ScrapeOutcome]:
        """Scrape every source and return one outcome per source.

        Args:
            sources: Products to scrape
            concurrency_limit: Window size override (1..10)
            stop_event: When set, no further windows are dispatched and the
                remaining sources are reported as cancelled

        Returns:
            Outcomes sorted by product key

        Raises:
            asyncio.CancelledError: After the in-flight window has finished,
                if the calling task was cancelled
        """
        limit = self._check_limit(
            self.concurrency_limit if concurrency_limit is None else concurrency_limit
        )
        sources = list(sources)
        windows = [sources[i:i + limit] for i in range(0, len(sources), limit)]
        outcomes: List[ScrapeOutcome] = []

        self.logger.info(
            "batch_started",
            total=len(sources),
            windows=len(windows),
            concurrency_limit=limit,
        )

        for index, window in enumerate(windows):
            if index > 0:
                await self._sleep(self._rng.uniform(*self.delay_range))

            if stop_event is not None and stop_event.is_set():
                remaining = [s for w in windows[index:] for s in w]
                outcomes.extend(self._cancelled(s) for s in remaining)
                self.logger.warning(
                    "batch_stopped",
                    completed_windows=index,
                    skipped=len(remaining),
                )
                break

            window_task = asyncio.ensure_future(self._run_window(window))
            try:
                results = await asyncio.shield(window_task)
            except asyncio.CancelledError:
                # Dispatched fetches finish and release their sessions first
                if not window_task.done():
                    await asyncio.wait({window_task})
                self.logger.warning(
                    "batch_cancelled",
                    completed_windows=index + 1,
                    skipped=len(sources) - len(outcomes) - len(window),
                )
                raise

            outcomes.extend(results)
            self.logger.info(
                "batch_window_completed",
                window=index + 1,
                windows=len(windows),
                successful=sum(1 for o in results if o.success),
                failed=sum(1 for o in results if not o.success),
            )

        outcomes = _sort_outcomes(outcomes)
        self.logger.info(
            "batch_completed",
            total=len(outcomes),
            successful=sum(1 for o in outcomes if o.success),
            failed=sum(1 for o in outcomes if not o.success),
        )
        return outcomes

    async def _run_window(self, window: List[ProductSource]) -> List[ScrapeOutcome]:
        try:
            results = await asyncio.gather(
                *(self.scraper.scrape_one(source) for source in window),
                return_exceptions=True,
            )
        except Exception as e:
            self.logger.error(
                "batch_window_failed",
                keys=[s.product_key for s in window],
                error=str(e),
                exc_info=True,
            )
            return [await self._scrape_isolated(source) for source in window]

        outcomes = []
        for source, result in zip(window, results):
            if isinstance(result, BaseException):
                self.logger.warning(
                    "batch_item_raised",
                    product_key=source.product_key,
                    error=repr(result),
                )
                result = await self._scrape_isolated(source)
            outcomes.append(result)
        return outcomes

    async def _scrape_isolated(self, source: ProductSource) -> ScrapeOutcome:
        """Sequential re-run of one item; anything it raises becomes a failure."""
        try:
            return await self.scraper.scrape_one(source)
        except Exception as e:
            self.logger.error(
                "batch_item_failed",
                product_key=source.product_key,
                error=str(e),
                exc_info=True,
            )
            return ScrapeFailure(
                product_key=source.product_key,
                error_kind=ErrorKind.INTERNAL,
                message=str(e) or type(e).__name__,
                attempts_made=0,
                source_url=source.source_url,
            )

    @staticmethod
    def _cancelled(source: ProductSource) -> ScrapeFailure:
        return ScrapeFailure(
            product_key=source.product_key,
            error_kind=ErrorKind.CANCELLED,
            message="Batch stopped before this item was dispatched",
            attempts_made=0,
            source_url=source.source_url,
        )
