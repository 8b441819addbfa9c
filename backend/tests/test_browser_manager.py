"""Tests for the Playwright page retriever with a mocked browser."""

import asyncio
from unittest.mock import AsyncMock, MagicMock

import pytest
from playwright.async_api import Error as PlaywrightError
from playwright.async_api import TimeoutError as PlaywrightTimeoutError

from pricesync.core.exceptions import (
    FetchTimeoutError,
    NavigationBlockedError,
    NetworkError,
)
from pricesync.scrapers.utils import browser_manager
from pricesync.scrapers.utils.browser_manager import PlaywrightPageRetriever
from pricesync.scrapers.utils.identity import IdentityRotator

from conftest import product_page

URL = "https://electropeak.com/mg996r"


def make_page(html: str = product_page("6,20 €"), status: int = 200) -> AsyncMock:
    page = AsyncMock()
    page.url = URL
    page.goto.return_value = MagicMock(status=status)
    page.content.return_value = html
    return page


@pytest.fixture
def identity():
    return IdentityRotator().next()


@pytest.fixture
def page() -> AsyncMock:
    return make_page()


@pytest.fixture
def context(page) -> AsyncMock:
    context = AsyncMock()
    context.new_page.return_value = page
    return context


@pytest.fixture
def retriever(context) -> PlaywrightPageRetriever:
    browser = AsyncMock()
    browser.new_context.return_value = context
    retriever = PlaywrightPageRetriever(max_sessions=1)
    retriever._browser = browser
    return retriever


class TestSessionRelease:
    """Every fetch closes its browser context and frees its session slot."""

    async def test_successful_fetch(self, retriever, context, identity):
        page = await retriever.fetch(URL, identity, timeout=1.0)

        assert page.status == 200
        assert "6,20" in page.html
        assert page.identity is identity
        context.close.assert_awaited_once()
        assert not retriever._sessions.locked()

    async def test_identity_applied_to_context(self, retriever, identity):
        await retriever.fetch(URL, identity, timeout=1.0)

        kwargs = retriever._browser.new_context.call_args.kwargs
        assert kwargs["user_agent"] == identity.user_agent
        assert kwargs["locale"] == identity.locale
        assert kwargs["extra_http_headers"]["Accept-Language"] == identity.accept_language

    async def test_blocked_page(self, retriever, context, page, identity):
        page.content.return_value = "<html><title>Just a moment...</title></html>"

        with pytest.raises(NavigationBlockedError):
            await retriever.fetch(URL, identity, timeout=1.0)

        context.close.assert_awaited_once()
        assert not retriever._sessions.locked()

    async def test_blocked_status(self, retriever, context, page, identity):
        page.goto.return_value = MagicMock(status=429)

        with pytest.raises(NavigationBlockedError):
            await retriever.fetch(URL, identity, timeout=1.0)

        context.close.assert_awaited_once()

    async def test_navigation_timeout(self, retriever, context, page, identity):
        page.goto.side_effect = PlaywrightTimeoutError("Timeout 1000ms exceeded")

        with pytest.raises(FetchTimeoutError):
            await retriever.fetch(URL, identity, timeout=1.0)

        context.close.assert_awaited_once()
        assert not retriever._sessions.locked()

    async def test_whole_fetch_timeout(self, retriever, context, page, identity, monkeypatch):
        monkeypatch.setattr(browser_manager, "SELECTOR_WAIT_SECONDS", 0.0)
        monkeypatch.setattr(browser_manager, "NAVIGATION_GRACE_SECONDS", 0.0)

        async def hang(*args, **kwargs):
            await asyncio.Event().wait()

        page.goto.side_effect = hang

        with pytest.raises(FetchTimeoutError):
            await retriever.fetch(URL, identity, timeout=0.05)

        context.close.assert_awaited_once()
        assert not retriever._sessions.locked()

    async def test_network_error(self, retriever, context, page, identity):
        page.goto.side_effect = PlaywrightError("net::ERR_NAME_NOT_RESOLVED")

        with pytest.raises(NetworkError):
            await retriever.fetch(URL, identity, timeout=1.0)

        context.close.assert_awaited_once()

    async def test_context_close_failure_is_logged_not_raised(self, retriever, context, identity):
        context.close.side_effect = PlaywrightError("Target closed")

        page = await retriever.fetch(URL, identity, timeout=1.0)

        assert page.status == 200


class TestBrowserLifecycle:
    @pytest.fixture
    def drivers(self, monkeypatch):
        """Patch async_playwright and record every driver it starts."""
        started = []

        def factory():
            driver = AsyncMock()
            driver.chromium.launch.return_value = AsyncMock()
            started.append(driver)
            manager = MagicMock()
            manager.start = AsyncMock(return_value=driver)
            return manager

        monkeypatch.setattr(browser_manager, "async_playwright", factory)
        return started

    async def test_open_is_idempotent(self, drivers):
        retriever = PlaywrightPageRetriever()

        await retriever.open()
        await retriever.open()

        assert len(drivers) == 1
        assert retriever.is_open
        await retriever.close()
        drivers[0].stop.assert_awaited_once()
        assert not retriever.is_open

    async def test_failed_launch_stops_driver(self, monkeypatch, identity):
        started = []

        def factory():
            driver = AsyncMock()
            driver.chromium.launch.side_effect = PlaywrightError("Executable doesn't exist")
            started.append(driver)
            manager = MagicMock()
            manager.start = AsyncMock(return_value=driver)
            return manager

        monkeypatch.setattr(browser_manager, "async_playwright", factory)
        retriever = PlaywrightPageRetriever()

        for _ in range(3):
            with pytest.raises(NetworkError):
                await retriever.fetch(URL, identity, timeout=1.0)
        await retriever.close()

        assert len(started) == 3
        assert all(driver.stop.await_count == 1 for driver in started)
        assert not retriever.is_open
