"""
Coin Radar - Headless Browser Transport

One Playwright browser and context per session, created lazily on first use
under a lock (the first caller launches, concurrent callers wait for it) and
reused for every render until close(). Session cookies are injected once,
when the context is created.
"""

from __future__ import annotations

import asyncio
from typing import Any

import structlog
from playwright.async_api import (
    Browser,
    BrowserContext,
    Error as PlaywrightError,
    Playwright,
    TimeoutError as PlaywrightTimeoutError,
    async_playwright,
)

from coinradar.config import settings
from coinradar.scraper.anti_detect import AntiDetect
from coinradar.scraper.credentials import parse_cookie_string
from coinradar.scraper.errors import NetworkError

logger = structlog.get_logger(__name__)

STEALTH_ARGS = [
    "--disable-blink-features=AutomationControlled",
    "--disable-dev-shm-usage",
    "--no-sandbox",
]


class BrowserSession:
    """
    Shared headless browser handle.

    Usage:
        async with BrowserSession(base_url, cookies) as browser:
            html, status = await browser.render(url)
    """

    def __init__(
        self,
        base_url: str = "",
        cookies: str = "",
        anti_detect: AntiDetect | None = None,
        headless: bool | None = None,
        nav_timeout_ms: int | None = None,
        settle_ms: int | None = None,
    ) -> None:
        self._base_url = base_url or settings.CDN_BASE_URL
        self._cookies = cookies
        self._anti_detect = anti_detect or AntiDetect()
        self._headless = settings.BROWSER_HEADLESS if headless is None else headless
        self._nav_timeout_ms = nav_timeout_ms or settings.BROWSER_NAV_TIMEOUT_MS
        self._settle_ms = settings.BROWSER_SETTLE_MS if settle_ms is None else settle_ms

        self._init_lock = asyncio.Lock()
        self._playwright: Playwright | None = None
        self._browser: Browser | None = None
        self._context: BrowserContext | None = None

    async def __aenter__(self) -> BrowserSession:
        return self

    async def __aexit__(self, *args: Any) -> None:
        await self.close()

    @property
    def is_open(self) -> bool:
        return self._context is not None

    async def _ensure_context(self) -> BrowserContext:
        async with self._init_lock:
            if self._context is not None:
                return self._context

            logger.info("browser_session_launching", headless=self._headless)
            if self._playwright is None:
                self._playwright = await async_playwright().start()

            if self._browser is None:
                launch_options: dict[str, Any] = {"headless": self._headless, "args": STEALTH_ARGS}
                proxy = self._anti_detect.get_proxy_config()
                if proxy:
                    launch_options["proxy"] = proxy
                self._browser = await self._playwright.chromium.launch(**launch_options)

            context = await self._browser.new_context(
                user_agent=self._anti_detect.user_agent,
                viewport={"width": 1440, "height": 900},
                locale="en-US",
            )
            if self._cookies:
                cookies = parse_cookie_string(self._cookies, self._base_url)
                await context.add_cookies(cookies)
                logger.debug("browser_cookies_injected", count=len(cookies))

            self._context = context
            return context

    async def render(self, url: str) -> tuple[str, int]:
        """
        Load `url`, wait for network idle plus a settle delay, return (html, status).

        Raises:
            NetworkError: the browser could not be launched, or navigation failed or timed out.
        """
        # Navigation timeout plus settle time plus slack for page creation/teardown
        overall_timeout = (self._nav_timeout_ms + self._settle_ms) / 1000 + 5

        try:
            context = await self._ensure_context()
            page = await context.new_page()
        except PlaywrightError as e:
            logger.error("browser_session_unavailable", url=url, error=str(e), error_type=type(e).__name__)
            raise NetworkError(f"Browser session could not be started for {url}: {e}", url=url) from e

        try:
            response = await asyncio.wait_for(
                self._navigate(page, url), timeout=overall_timeout
            )
            html = await page.content()
        except (PlaywrightTimeoutError, asyncio.TimeoutError) as e:
            raise NetworkError(f"Browser render timed out for {url}", url=url) from e
        except PlaywrightError as e:
            raise NetworkError(f"Browser render failed for {url}: {e}", url=url) from e
        finally:
            await page.close()

        status = response.status if response is not None else 200
        logger.debug("browser_render_complete", url=url, status_code=status, length=len(html))
        return html, status

    async def _navigate(self, page: Any, url: str) -> Any:
        response = await page.goto(url, wait_until="networkidle", timeout=self._nav_timeout_ms)
        if self._settle_ms > 0:
            await page.wait_for_timeout(self._settle_ms)
        return response

    async def close(self) -> None:
        """Release the context, browser and Playwright driver. Safe to call twice."""
        async with self._init_lock:
            if self._context is not None:
                await self._context.close()
                self._context = None
            if self._browser is not None:
                await self._browser.close()
                self._browser = None
            if self._playwright is not None:
                await self._playwright.stop()
                self._playwright = None
                logger.info("browser_session_closed")
