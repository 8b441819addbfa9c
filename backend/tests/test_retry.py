"""Tests for the retry policy and single-product scraping."""

import random
from decimal import Decimal
from unittest.mock import AsyncMock

import pytest

from pricesync.core.exceptions import (
    ErrorKind,
    FetchTimeoutError,
    NavigationBlockedError,
    NetworkError,
    PriceNotFoundError,
)
from pricesync.scrapers.base import PriceQuote, ScrapeFailure, ScrapeSuccess
from pricesync.scrapers.utils.identity import IdentityRotator
from pricesync.scrapers.utils.normalizer import AvailabilityState
from pricesync.scrapers.utils.retry import RetryPolicy

from conftest import make_source, product_page


def _quote(key: str = "MG996R") -> PriceQuote:
    return PriceQuote(
        product_key=key,
        price=Decimal("6.20"),
        currency="EUR",
        availability=AvailabilityState.IN_STOCK,
        source_url="https://electropeak.com/mg996r",
        reference_price=Decimal("6.2"),
    )


class TestRetryPolicy:
    """Bounded retries, exponential backoff and identity rotation."""

    async def test_exhaustion_after_max_attempts(self, policy, sleeper):
        attempt_fn = AsyncMock(side_effect=FetchTimeoutError("Timed out"))

        outcome = await policy.run("MG996R", "https://electropeak.com/mg996r", attempt_fn)

        assert isinstance(outcome, ScrapeFailure)
        assert outcome.success is False
        assert outcome.error_kind is ErrorKind.TIMEOUT
        assert outcome.attempts_made == 3
        assert attempt_fn.await_count == 3

    async def test_backoff_doubles_between_attempts(self, policy, sleeper):
        attempt_fn = AsyncMock(side_effect=FetchTimeoutError("Timed out"))

        await policy.run("MG996R", None, attempt_fn)

        # pace, backoff, pace, backoff, pace: no wait after the last attempt
        assert len(sleeper.delays) == 5
        assert sleeper.delays[1] == 2.0
        assert sleeper.delays[3] == 4.0
        assert all(2.0 <= d <= 5.0 for d in sleeper.delays[0::2])

    def test_backoff_formula(self):
        policy = RetryPolicy(base_delay=1.0)

        assert [policy.backoff_for(n) for n in (1, 2, 3)] == [2.0, 4.0, 8.0]

    async def test_identity_rotated_per_attempt(self, policy):
        identities = []

        async def attempt(identity):
            identities.append(identity)
            raise NavigationBlockedError("captcha")

        outcome = await policy.run("MG996R", None, attempt)

        assert outcome.error_kind is ErrorKind.BLOCKED
        assert outcome.attempts_made == 3
        agents = [i.user_agent for i in identities]
        assert agents[0] != agents[1] != agents[2]

    async def test_success_after_transient_error(self, policy):
        attempt_fn = AsyncMock(side_effect=[NetworkError("reset"), _quote()])

        outcome = await policy.run("MG996R", None, attempt_fn)

        assert isinstance(outcome, ScrapeSuccess)
        assert outcome.attempts_made == 2
        assert outcome.quote.price == Decimal("6.20")

    async def test_non_retryable_error_stops_immediately(self, policy, sleeper):
        attempt_fn = AsyncMock(side_effect=PriceNotFoundError("no price"))

        outcome = await policy.run("MG996R", None, attempt_fn)

        assert outcome.error_kind is ErrorKind.PRICE_NOT_FOUND
        assert outcome.attempts_made == 1
        assert len(sleeper.delays) == 1  # only the pre-attempt pacing

    async def test_unexpected_exception_becomes_internal_failure(self, policy):
        attempt_fn = AsyncMock(side_effect=RuntimeError("boom"))

        outcome = await policy.run("MG996R", "https://electropeak.com/x", attempt_fn)

        assert outcome.error_kind is ErrorKind.INTERNAL
        assert outcome.message == "boom"
        assert outcome.source_url == "https://electropeak.com/x"

    async def test_single_attempt_policy(self, sleeper):
        policy = RetryPolicy(max_attempts=1, sleep=sleeper, rng=random.Random(1))
        attempt_fn = AsyncMock(side_effect=NetworkError("down"))

        outcome = await policy.run("K", None, attempt_fn)

        assert outcome.attempts_made == 1
        assert len(sleeper.delays) == 1

    def test_invalid_configuration(self):
        with pytest.raises(ValueError):
            RetryPolicy(max_attempts=0)
        with pytest.raises(ValueError):
            RetryPolicy(delay_range=(5.0, 2.0))


class TestIdentityRotator:
    def test_consecutive_identities_differ(self):
        rotator = IdentityRotator(rng=random.Random(3))

        first, second = rotator.next(), rotator.next()

        assert first.user_agent != second.user_agent
        assert 1366 <= first.viewport["width"] <= 1566
        assert first.accept_language.startswith("de-DE")


class TestPriceScraper:
    """Preflight checks and the fetch/extract attempt."""

    async def test_scrape_one_success(self, scraper, retriever):
        source = make_source("MG996R", price="6.2")
        retriever.pages[source.source_url] = product_page("6,20 €")

        outcome = await scraper.scrape_one(source)

        assert outcome.success is True
        assert outcome.product_key == "MG996R"
        assert outcome.attempts_made == 1
        assert outcome.quote.price_delta == Decimal("0.00")

    async def test_invalid_url_fails_before_fetch(self, scraper, retriever):
        source = make_source("FASTENERS", url="#")

        outcome = await scraper.scrape_one(source)

        assert outcome.error_kind is ErrorKind.INVALID_URL
        assert outcome.attempts_made == 0
        assert retriever.calls == []

    async def test_unsupported_domain_fails_before_fetch(self, scraper, retriever):
        source = make_source("X", url="https://unknown.example.com/item")

        outcome = await scraper.scrape_one(source)

        assert outcome.error_kind is ErrorKind.UNSUPPORTED_DOMAIN
        assert outcome.attempts_made == 0
        assert retriever.calls == []

    async def test_timeouts_exhaust_retries(self, scraper, retriever):
        source = make_source("MG996R")
        retriever.pages[source.source_url] = FetchTimeoutError("Timed out")

        outcome = await scraper.scrape_one(source)

        assert outcome.error_kind is ErrorKind.TIMEOUT
        assert outcome.attempts_made == 3
        assert len(retriever.calls) == 3

    async def test_missing_price_is_not_retried(self, scraper, retriever):
        source = make_source("MG996R")
        retriever.pages[source.source_url] = "<html><body>Nothing here</body></html>"

        outcome = await scraper.scrape_one(source)

        assert outcome.error_kind is ErrorKind.PRICE_NOT_FOUND
        assert len(retriever.calls) == 1
