"""Pytest configuration and shared fixtures."""

import asyncio
import random
from decimal import Decimal
from typing import Dict, List, Optional, Union

import pytest

from pricesync.core.exceptions import NetworkError
from pricesync.scrapers.base import PageRetriever, ProductSource, RenderedPage
from pricesync.scrapers.batch import BatchScheduler
from pricesync.scrapers.rules import build_default_rule_provider
from pricesync.scrapers.scraper_service import PriceScraper
from pricesync.scrapers.utils.identity import Identity, IdentityRotator
from pricesync.scrapers.utils.retry import RetryPolicy


PageResponse = Union[str, BaseException, List[Union[str, BaseException]]]


def product_page(price_text: str, availability_text: str = "Auf Lager") -> str:
    """Minimal vendor product page matching the default selectors."""
    return f"""
    <html>
      <head><title>Product</title></head>
      <body>
        <h1>Servo</h1>
        <span class="price">{price_text}</span>
        <div class="availability">{availability_text}</div>
      </body>
    </html>
    """


def make_source(key: str, price: str = "10.00", url: Optional[str] = None) -> ProductSource:
    return ProductSource(
        product_key=key,
        reference_price=Decimal(price),
        source_url=url or f"https://electropeak.com/{key.lower()}",
    )


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class RecordingSleep:
    """Records requested delays and yields to the loop without waiting."""

    def __init__(self):
        self.delays: List[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)
        await asyncio.sleep(0)


class FakeRetriever(PageRetriever):
    """In-memory retriever with a concurrency gauge.

    ``pages`` maps URL to HTML, to an exception to raise, or to a list of
    those consumed one per call. Unknown URLs raise NetworkError.
    """

    def __init__(self, pages: Optional[Dict[str, PageResponse]] = None, delay: float = 0.0):
        self.pages: Dict[str, PageResponse] = dict(pages or {})
        self.delays: Dict[str, float] = {}
        self.delay = delay
        self.calls: List[str] = []
        self.identities: List[Identity] = []
        self.in_flight = 0
        self.max_in_flight = 0
        self.completed = 0
        self.on_fetch = None

    async def fetch(
        self,
        url: str,
        identity: Identity,
        timeout: Optional[float] = None,
        wait_selector: Optional[str] = None,
    ) -> RenderedPage:
        self.calls.append(url)
        self.identities.append(identity)
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            if self.on_fetch:
                self.on_fetch(url)
            await asyncio.sleep(self.delays.get(url, self.delay))
            response = self.pages.get(url)
            if isinstance(response, list):
                response = response.pop(0) if len(response) > 1 else response[0]
            if response is None:
                raise NetworkError(f"No route to {url}", url=url)
            if isinstance(response, BaseException):
                raise response
            return RenderedPage(url=url, html=response, status=200, identity=identity)
        finally:
            self.in_flight -= 1
            self.completed += 1


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def sleeper() -> RecordingSleep:
    return RecordingSleep()


@pytest.fixture
def retriever() -> FakeRetriever:
    return FakeRetriever()


@pytest.fixture
def policy(sleeper: RecordingSleep) -> RetryPolicy:
    return RetryPolicy(
        max_attempts=3,
        base_delay=1.0,
        delay_range=(2.0, 5.0),
        identities=IdentityRotator(rng=random.Random(7)),
        sleep=sleeper,
        rng=random.Random(7),
    )


@pytest.fixture
def scraper(retriever: FakeRetriever, policy: RetryPolicy) -> PriceScraper:
    return PriceScraper(
        retriever=retriever,
        rules=build_default_rule_provider(),
        policy=policy,
        fetch_timeout=15.0,
    )


@pytest.fixture
def batch_sleeper() -> RecordingSleep:
    return RecordingSleep()


@pytest.fixture
def batch(scraper: PriceScraper, batch_sleeper: RecordingSleep) -> BatchScheduler:
    return BatchScheduler(
        scraper,
        concurrency_limit=3,
        delay_range=(2.0, 5.0),
        sleep=batch_sleeper,
        rng=random.Random(7),
    )
