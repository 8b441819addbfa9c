"""Playwright page retriever with per-fetch browser sessions.

One Chromium process is shared; every fetch opens its own browser context
carrying the identity (user agent, viewport, locale) and closes it on every
exit path. A semaphore bounds the number of simultaneously open contexts.
"""

import asyncio
from typing import Optional

import structlog
from playwright.async_api import (
    Browser,
    Error as PlaywrightError,
    Playwright,
    TimeoutError as PlaywrightTimeoutError,
    async_playwright,
)

from pricesync.core.exceptions import (
    FetchTimeoutError,
    NavigationBlockedError,
    NetworkError,
)
from pricesync.scrapers.base import PageRetriever, RenderedPage
from pricesync.scrapers.utils.identity import Identity


logger = structlog.get_logger(__name__)

# HTTP statuses vendors use for bot walls and throttling
BLOCKED_STATUSES = frozenset({403, 429, 503})

# How long to wait for a rule's wait_selector before reading the page anyway
SELECTOR_WAIT_SECONDS = 3.0

# Slack on top of the navigation timeout before the whole fetch is abandoned
NAVIGATION_GRACE_SECONDS = 2.0

# Anti-automation page markers, matched against lower-cased HTML.
# Kept specific: "robot" alone appears in normal pages (meta robots tag).
BLOCKED_MARKERS = (
    "<title>just a moment...</title>",
    "checking your browser before accessing",
    "cf-challenge",
    "captcha-delivery.com",
    "are you a robot",
    "verify you are human",
    "you don't have permission to access",
)


def detect_block(status: Optional[int], html: str) -> Optional[str]:
    """Return the reason a page looks like an anti-bot wall, or None."""
    if status in BLOCKED_STATUSES:
        return f"http_{status}"
    html_lower = html.lower()
    return next((m for m in BLOCKED_MARKERS if m in html_lower), None)


class PlaywrightPageRetriever(PageRetriever):
    """Fetches rendered HTML through headless Chromium.

    - One browser context per fetch, always closed in ``finally``
    - Context count bounded by ``max_sessions``
    - Stealth JS injection to mask automation signals
    - Resource blocking (images/fonts) for faster page loads
    """

    def __init__(
        self,
        headless: bool = True,
        default_timeout: float = 15.0,
        max_sessions: int = 3,
        block_resources: bool = True,
    ):
        if max_sessions < 1:
            raise ValueError("max_sessions must be >= 1")
        self._headless = headless
        self._default_timeout = default_timeout
        self._block_resources = block_resources
        self._sessions = asyncio.Semaphore(max_sessions)
        self._playwright: Optional[Playwright] = None
        self._browser: Optional[Browser] = None
        self._lock = asyncio.Lock()

    @property
    def is_open(self) -> bool:
        return self._browser is not None

    async def open(self) -> None:
        """Launch the browser. Safe to call more than once."""
        async with self._lock:
            if self._browser:
                return
            if self._playwright is None:
                self._playwright = await async_playwright().start()
            try:
                self._browser = await self._playwright.chromium.launch(
                    headless=self._headless,
                    args=[
                        "--disable-blink-features=AutomationControlled",
                        "--disable-dev-shm-usage",
                        "--no-sandbox",
                        "--disable-gpu",
                    ],
                )
            except BaseException:
                playwright, self._playwright = self._playwright, None
                await playwright.stop()
                raise
            logger.info("browser_started", headless=self._headless)

    async def close(self) -> None:
        """Close the browser and stop Playwright."""
        async with self._lock:
            if self._browser:
                await self._browser.close()
                self._browser = None
            if self._playwright:
                await self._playwright.stop()
                self._playwright = None
            logger.info("browser_stopped")

    async def fetch(
        self,
        url: str,
        identity: Identity,
        timeout: Optional[float] = None,
        wait_selector: Optional[str] = None,
    ) -> RenderedPage:
        timeout = timeout if timeout is not None else self._default_timeout
        async with self._sessions:
            try:
                return await asyncio.wait_for(
                    self._render(url, identity, timeout, wait_selector),
                    timeout=timeout + SELECTOR_WAIT_SECONDS + NAVIGATION_GRACE_SECONDS,
                )
            except (asyncio.TimeoutError, PlaywrightTimeoutError) as e:
                raise FetchTimeoutError(
                    f"Timed out after {timeout:.1f}s loading {url}", url=url
                ) from e
            except PlaywrightError as e:
                raise NetworkError(f"Navigation failed for {url}: {e}", url=url) from e

    async def _render(
        self,
        url: str,
        identity: Identity,
        timeout: float,
        wait_selector: Optional[str],
    ) -> RenderedPage:
        if not self._browser:
            await self.open()

        context = await self._browser.new_context(
            user_agent=identity.user_agent,
            viewport=identity.viewport,
            locale=identity.locale,
            extra_http_headers={
                "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8",
                "Accept-Language": identity.accept_language,
            },
            java_script_enabled=True,
        )
        try:
            await context.add_init_script(STEALTH_JS)
            if self._block_resources:
                await context.route(
                    "**/*.{png,jpg,jpeg,gif,svg,webp,woff,woff2,ttf,eot}",
                    lambda route: route.abort(),
                )

            page = await context.new_page()
            response = await page.goto(
                url, wait_until="domcontentloaded", timeout=timeout * 1000
            )
            if wait_selector:
                try:
                    await page.wait_for_selector(
                        wait_selector, timeout=SELECTOR_WAIT_SECONDS * 1000
                    )
                except PlaywrightTimeoutError:
                    logger.debug("wait_selector_missing", url=url, selector=wait_selector)
            html = await page.content()
            status = response.status if response else None

            reason = detect_block(status, html)
            if reason:
                logger.warning("navigation_blocked", url=url, reason=reason)
                raise NavigationBlockedError(f"Blocked by {url} ({reason})", url=url)

            logger.debug("page_fetched", url=url, status=status, size=len(html))
            return RenderedPage(
                url=url,
                html=html,
                status=status,
                final_url=page.url,
                identity=identity,
            )
        finally:
            try:
                await context.close()
            except PlaywrightError as e:
                logger.warning("browser_context_close_failed", url=url, error=str(e))


# Minimal stealth JS to mask automation signals
STEALTH_JS = """
Object.defineProperty(navigator, 'webdriver', { get: () => undefined });
Object.defineProperty(navigator, 'languages', { get: () => ['de-DE', 'de', 'en-US', 'en'] });
Object.defineProperty(navigator, 'plugins', { get: () => [1, 2, 3, 4, 5] });
window.chrome = { runtime: {} };
"""
