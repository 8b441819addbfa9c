"""Single-product scrape orchestration.

Connects the page retriever, the extraction rules and the retry policy:
preflight checks (URL shape, rule lookup) run once before any fetch, then
each attempt fetches the page under the identity supplied by the retry
policy and extracts a quote from it.
"""

from typing import Optional
from urllib.parse import urlparse

import structlog

from pricesync.core.exceptions import InvalidURLError, ScrapeError
from pricesync.scrapers.base import (
    PageRetriever,
    PriceQuote,
    ProductSource,
    ScrapeFailure,
    ScrapeOutcome,
)
from pricesync.scrapers.extractor import extract_quote
from pricesync.scrapers.rules import ExtractionRule, RuleProvider
from pricesync.scrapers.utils.identity import Identity
from pricesync.scrapers.utils.retry import RetryPolicy


logger = structlog.get_logger(__name__)


def validate_source_url(url: Optional[str]) -> str:
    """Return the URL if it is an absolute http(s) URL with a host.

    Raises:
        InvalidURLError: For empty, relative or non-http URLs
    """
    parsed = urlparse((url or "").strip())
    if parsed.scheme not in ("http", "https") or not parsed.hostname:
        raise InvalidURLError(f"Invalid product URL: {url!r}", url=url)
    return parsed.geturl()


class PriceScraper:
    """Scrapes one product source into a ScrapeOutcome.

    This service never raises for per-product problems; every failure is
    returned as a ScrapeFailure so batch callers can keep going.
    """

    def __init__(
        self,
        retriever: PageRetriever,
        rules: RuleProvider,
        policy: RetryPolicy,
        fetch_timeout: Optional[float] = None,
    ):
        """Initialize the scraper.

        Args:
            retriever: Page retriever used for every attempt
            rules: Extraction rule registry
            policy: Retry policy wrapping each attempt
            fetch_timeout: Per-fetch timeout in seconds (None uses the
                retriever default)
        """
        self.retriever = retriever
        self.rules = rules
        self.policy = policy
        self.fetch_timeout = fetch_timeout
        self.logger = logger.bind(service="price_scraper")

    def preflight(self, source: ProductSource) -> ExtractionRule:
        """Validate the source URL and resolve its extraction rule.

        Raises:
            InvalidURLError: If the URL is malformed
            UnsupportedDomainError: If no rule exists for the domain
        """
        validate_source_url(source.source_url)
        return self.rules.rules_for(source.domain)

    async def scrape_one(self, source: ProductSource) -> ScrapeOutcome:
        """Scrape a single product.

        Args:
            source: Product to scrape

        Returns:
            ScrapeSuccess with the quote, or ScrapeFailure. Preflight
            failures report ``attempts_made=0``.
        """
        try:
            rule = self.preflight(source)
        except ScrapeError as e:
            self.logger.warning(
                "scrape_preflight_failed",
                product_key=source.product_key,
                error_kind=e.kind.value,
                error=str(e),
            )
            return ScrapeFailure(
                product_key=source.product_key,
                error_kind=e.kind,
                message=str(e),
                attempts_made=0,
                source_url=source.source_url,
            )

        async def attempt(identity: Identity) -> PriceQuote:
            page = await self.retriever.fetch(
                source.source_url,
                identity,
                timeout=self.fetch_timeout,
                wait_selector=rule.wait_selector,
            )
            return extract_quote(source, page, rule)

        self.logger.debug(
            "scrape_started", product_key=source.product_key, domain=rule.domain
        )
        return await self.policy.run(source.product_key, source.source_url, attempt)
