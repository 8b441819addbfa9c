"""Tests for the bounded-concurrency batch scheduler."""

import asyncio
import random
from unittest.mock import MagicMock

import pytest

from pricesync.core.exceptions import ErrorKind
from pricesync.scrapers.base import ScrapeSuccess
from pricesync.scrapers.batch import BatchScheduler

from conftest import RecordingSleep, make_source, product_page


def _sources(keys, retriever, delay=0.0):
    sources = [make_source(key) for key in keys]
    for source in sources:
        retriever.pages[source.source_url] = product_page("12,90 €")
        retriever.delays[source.source_url] = delay
    return sources


class TestScrapeAll:
    """Windows, ordering and failure isolation."""

    async def test_bounded_concurrency(self, batch, retriever):
        sources = _sources([f"P{i:02d}" for i in range(10)], retriever, delay=0.01)

        outcomes = await batch.scrape_all(sources, concurrency_limit=2)

        assert len(outcomes) == 10
        assert all(o.success for o in outcomes)
        assert retriever.max_in_flight == 2

    async def test_window_items_run_concurrently(self, batch, retriever):
        sources = _sources(["A", "B", "C"], retriever, delay=0.01)

        await batch.scrape_all(sources)

        assert retriever.max_in_flight == 3

    async def test_output_sorted_regardless_of_completion_order(self, batch, retriever):
        sources = _sources(["c", "a", "b"], retriever)
        retriever.delays[sources[0].source_url] = 0.0
        retriever.delays[sources[1].source_url] = 0.03
        retriever.delays[sources[2].source_url] = 0.01

        outcomes = await batch.scrape_all(sources)

        assert [o.product_key for o in outcomes] == ["a", "b", "c"]

    async def test_failure_isolated_to_item(self, batch, retriever):
        sources = _sources(["A", "B", "C", "D"], retriever)
        retriever.pages[sources[1].source_url] = "<html><body>Preis auf Anfrage</body></html>"

        outcomes = await batch.scrape_all(sources, concurrency_limit=2)

        by_key = {o.product_key: o for o in outcomes}
        assert by_key["B"].success is False
        assert by_key["B"].error_kind is ErrorKind.PRICE_NOT_FOUND
        assert all(by_key[k].success for k in ("A", "C", "D"))

    async def test_one_outcome_per_source(self, batch, retriever):
        sources = _sources(["A", "B"], retriever) + [
            make_source("BAD_URL", url="#"),
            make_source("OTHER", url="https://unknown.example.com/x"),
        ]

        outcomes = await batch.scrape_all(sources)

        assert [o.product_key for o in outcomes] == ["A", "B", "BAD_URL", "OTHER"]
        assert outcomes[2].error_kind is ErrorKind.INVALID_URL
        assert outcomes[3].error_kind is ErrorKind.UNSUPPORTED_DOMAIN

    async def test_pacing_between_windows(self, batch, batch_sleeper, retriever):
        sources = _sources(["A", "B", "C", "D", "E"], retriever)

        await batch.scrape_all(sources, concurrency_limit=2)

        # three windows, two gaps
        assert len(batch_sleeper.delays) == 2
        assert all(2.0 <= d <= 5.0 for d in batch_sleeper.delays)

    async def test_empty_input(self, batch):
        assert await batch.scrape_all([]) == []

    @pytest.mark.parametrize("limit", [0, 11])
    async def test_invalid_concurrency_limit(self, batch, limit):
        with pytest.raises(ValueError):
            await batch.scrape_all([], concurrency_limit=limit)


class TestRecovery:
    """Items that raise are re-run on their own."""

    async def test_raising_item_is_rerun(self):
        sources = [make_source(k) for k in ("a", "b", "c")]
        raised = set()

        async def scrape_one(source):
            if source.product_key == "b" and "b" not in raised:
                raised.add("b")
                raise RuntimeError("coordination error")
            return MagicMock(spec=ScrapeSuccess, success=True, product_key=source.product_key)

        scraper = MagicMock()
        scraper.scrape_one = scrape_one
        batch = BatchScheduler(scraper, concurrency_limit=3, sleep=RecordingSleep())

        outcomes = await batch.scrape_all(sources)

        assert [o.product_key for o in outcomes] == ["a", "b", "c"]
        assert all(o.success for o in outcomes)

    async def test_item_raising_twice_becomes_failure(self):
        async def scrape_one(source):
            raise RuntimeError("always broken")

        scraper = MagicMock()
        scraper.scrape_one = scrape_one
        batch = BatchScheduler(scraper, concurrency_limit=2, sleep=RecordingSleep())

        outcomes = await batch.scrape_all([make_source("a"), make_source("b")])

        assert [o.error_kind for o in outcomes] == [ErrorKind.INTERNAL, ErrorKind.INTERNAL]
        assert outcomes[0].message == "always broken"


class TestCancellation:
    """Window boundaries are cancellation checkpoints."""

    async def test_stop_event_skips_remaining_windows(self, batch, retriever):
        sources = _sources(["A", "B", "C", "D", "E", "F"], retriever)
        stop = asyncio.Event()
        retriever.on_fetch = lambda url: stop.set()

        outcomes = await batch.scrape_all(sources, concurrency_limit=2, stop_event=stop)

        assert len(outcomes) == 6
        assert [o.success for o in outcomes[:2]] == [True, True]
        cancelled = outcomes[2:]
        assert all(o.error_kind is ErrorKind.CANCELLED for o in cancelled)
        assert all(o.attempts_made == 0 for o in cancelled)
        assert len(retriever.calls) == 2

    async def test_task_cancel_finishes_inflight_window(self, batch, retriever):
        sources = _sources(["A", "B", "C", "D"], retriever, delay=0.05)

        task = asyncio.create_task(batch.scrape_all(sources, concurrency_limit=2))
        while retriever.in_flight < 2:
            await asyncio.sleep(0)
        task.cancel()

        with pytest.raises(asyncio.CancelledError):
            await task

        # first window ran to completion, second was never dispatched
        assert retriever.completed == 2
        assert retriever.in_flight == 0
        assert len(retriever.calls) == 2
