"""Core data structures and collaborator interfaces for price scraping.

Everything that crosses a component boundary is defined here: the product
sources read from the catalog, the quotes produced by a scrape, the tagged
ScrapeOutcome values that replace exceptions at the batch boundary, and the
abstract page retriever that wraps the headless browser.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal, ROUND_HALF_UP
from typing import Optional, Union
from urllib.parse import urlparse

from pricesync.core.exceptions import ErrorKind
from pricesync.scrapers.utils.identity import Identity
from pricesync.scrapers.utils.normalizer import AvailabilityState, currency_code


_CENT = Decimal("0.01")


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class ProductSource:
    """A trackable catalog item and its canonical reference price/URL."""

    product_key: str
    reference_price: Decimal
    source_url: str
    reference_currency: str = "EUR"
    domain: str = ""
    name: Optional[str] = None
    supplier: Optional[str] = None

    def __post_init__(self):
        """Validate required fields, normalize the currency and derive the domain."""
        if not self.product_key:
            raise ValueError("product_key is required")
        if self.reference_price is None or self.reference_price < 0:
            raise ValueError("reference_price must be a non-negative Decimal")
        # Raises ValueError for anything that is not a symbol or ISO code
        object.__setattr__(self, "reference_currency", currency_code(self.reference_currency))
        if not self.domain:
            hostname = urlparse(self.source_url or "").hostname or ""
            object.__setattr__(self, "domain", hostname.lower())


@dataclass
class PriceQuote:
    """Observed price and availability for one product. The unit of output."""

    product_key: str
    price: Decimal
    currency: str
    availability: AvailabilityState
    source_url: str
    reference_price: Decimal
    observed_at: datetime = field(default_factory=utcnow)
    price_delta: Decimal = field(init=False)
    price_delta_percent: Optional[Decimal] = field(init=False)
    currency_assumed: bool = False
    extraction_method: str = "selector"  # 'selector' or 'fallback'
    matched_selector: Optional[str] = None

    def __post_init__(self):
        """Derive the informational deltas against the reference price."""
        if self.price is None or self.price < 0:
            raise ValueError("price must be a non-negative Decimal")
        self.price_delta = (self.price - self.reference_price).quantize(
            _CENT, rounding=ROUND_HALF_UP
        )
        if self.reference_price > 0:
            self.price_delta_percent = (
                (self.price - self.reference_price) / self.reference_price * 100
            ).quantize(_CENT, rounding=ROUND_HALF_UP)
        else:
            self.price_delta_percent = None


@dataclass(frozen=True)
class ScrapeSuccess:
    """Successful scrape of one product."""

    quote: PriceQuote
    attempts_made: int = 1
    success: bool = field(default=True, init=False)

    @property
    def product_key(self) -> str:
        return self.quote.product_key


@dataclass(frozen=True)
class ScrapeFailure:
    """Failed scrape of one product. Failures are values, never exceptions."""

    product_key: str
    error_kind: ErrorKind
    message: str
    attempts_made: int
    last_observed_at: datetime = field(default_factory=utcnow)
    source_url: Optional[str] = None
    success: bool = field(default=False, init=False)


ScrapeOutcome = Union[ScrapeSuccess, ScrapeFailure]


@dataclass(frozen=True)
class RenderedPage:
    """Rendered HTML returned by a page retriever."""

    url: str
    html: str
    status: Optional[int] = None
    final_url: Optional[str] = None
    identity: Optional[Identity] = None
    fetched_at: datetime = field(default_factory=utcnow)


class PageRetriever(ABC):
    """Fetches rendered page HTML under a given identity profile.

    Implementations must release any browser session they acquire on
    every exit path and raise only TransportError subclasses or
    NavigationBlockedError.
    """

    async def open(self) -> None:
        """Acquire long-lived resources (browser process, pools)."""

    async def close(self) -> None:
        """Release long-lived resources."""

    @abstractmethod
    async def fetch(
        self,
        url: str,
        identity: Identity,
        timeout: Optional[float] = None,
        wait_selector: Optional[str] = None,
    ) -> RenderedPage:
        """Fetch and render a URL.

        Args:
            url: Page URL
            identity: User-agent/viewport profile for this request
            timeout: Timeout in seconds; None uses the retriever default
            wait_selector: Optional CSS selector to wait for before reading HTML

        Returns:
            RenderedPage with the page HTML

        Raises:
            FetchTimeoutError: If the page did not load in time
            NetworkError: On connection or navigation failure
            NavigationBlockedError: If an anti-automation page was served
        """

    async def __aenter__(self) -> "PageRetriever":
        await self.open()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()
