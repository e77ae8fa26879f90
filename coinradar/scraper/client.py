"""
Coin Radar - Fetch Client

Retrieves a URL's content through the per-source throttle, the retry
policy and the content cache, over plain HTTP (httpx) or a headless browser
render (Playwright). Also exposes post_form() for the site's XHR endpoints,
which shares throttling and retries but is never cached.
"""

from __future__ import annotations

import asyncio
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable
from urllib.parse import urljoin

import httpx
import structlog

from coinradar.config import settings
from coinradar.scraper import FetchOptions, FetchResult
from coinradar.scraper.anti_detect import AntiDetect
from coinradar.scraper.browser import BrowserSession
from coinradar.scraper.cache import ContentCache, cache_key
from coinradar.scraper.credentials import (
    CredentialProvider,
    StaticCookieProvider,
    default_cookie_provider,
)
from coinradar.scraper.errors import AuthenticationRequired, NetworkError, error_for_status
from coinradar.scraper.retry import RetryPolicy, retry_with_backoff
from coinradar.scraper.throttle import RequestThrottle

logger = structlog.get_logger(__name__)


class FetchClient:
    """
    Resilient fetcher for a single source.

    Usage:
        async with FetchClient(source="cdn", require_auth=True) as client:
            result = await client.fetch("/pricing/8971")
            children = await client.post_form("/xhr/xhr.catalog.php", {...})
    """

    def __init__(
        self,
        source: str | None = None,
        base_url: str | None = None,
        cookies: CredentialProvider | str | None = None,
        cache: ContentCache | None = None,
        browser: BrowserSession | None = None,
        use_browser: bool | None = None,
        require_auth: bool = False,
        retry_policy: RetryPolicy | None = None,
        throttle: RequestThrottle | None = None,
        cache_ttl_seconds: int | None = None,
        timeout: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
        anti_detect: AntiDetect | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self.source = source or settings.CDN_SOURCE_NAME
        self.base_url = (base_url or settings.CDN_BASE_URL).rstrip("/")

        if cookies is None:
            cookies = default_cookie_provider()
        elif isinstance(cookies, str):
            cookies = StaticCookieProvider(cookies)
        self._cookies = cookies.get_cookies()

        self.cache = cache if cache is not None else ContentCache()
        self._cache_ttl = settings.FETCH_CACHE_TTL_SECONDS if cache_ttl_seconds is None else cache_ttl_seconds
        self._use_browser = settings.USE_BROWSER if use_browser is None else use_browser
        self._require_auth = require_auth
        self._retry_policy = retry_policy or RetryPolicy.from_settings()
        self._sleep = sleep
        self._throttle = throttle or RequestThrottle(
            self.source, settings.SCRAPE_MIN_DELAY_MS, sleep=sleep
        )
        self._timeout = timeout or settings.REQUEST_TIMEOUT_SECONDS
        self._transport = transport
        self._anti_detect = anti_detect or AntiDetect()

        self._browser = browser
        self._owns_browser = browser is None
        self._client: httpx.AsyncClient | None = None

    async def __aenter__(self) -> FetchClient:
        return self

    async def __aexit__(self, *args: Any) -> None:
        await self.close()

    @property
    def has_credentials(self) -> bool:
        return bool(self._cookies)

    def resolve(self, url: str) -> str:
        """Absolute URL for `url`, resolving paths against base_url."""
        return urljoin(self.base_url + "/", url)

    # -----------------------------------------------------------------------
    # Public API
    # -----------------------------------------------------------------------

    async def fetch(self, url: str, options: FetchOptions | None = None) -> FetchResult:
        """
        Fetch a page, serving it from the content cache when a valid entry exists.

        Args:
            url: Absolute URL or path relative to base_url.
            options: Transport and cache overrides.

        Returns:
            FetchResult; from_cache is True when no request was made.

        Raises:
            AuthenticationRequired: credentials missing or rejected.
            FetchError: retries exhausted or a fatal status was returned.
        """
        options = options or FetchOptions()
        full_url = self.resolve(url)
        self._check_credentials(full_url)

        if options.skip_cache:
            return await self._fetch_network(full_url, options)

        ttl = self._cache_ttl if options.cache_ttl_seconds is None else options.cache_ttl_seconds
        result, from_cache = await self.cache.get_or_fetch(
            cache_key(self.source, full_url),
            ttl,
            lambda: self._fetch_network(full_url, options),
        )
        if from_cache:
            return result.model_copy(update={"from_cache": True})
        return result

    async def post_form(self, url: str, data: dict[str, Any]) -> FetchResult:
        """
        POST a form-encoded body. Throttled and retried like fetch(), never cached.
        """
        full_url = self.resolve(url)
        self._check_credentials(full_url)

        async def attempt() -> FetchResult:
            await self._throttle.wait_for_slot()
            return await self._http_request("POST", full_url, data=data, headers={
                "Accept": "application/json, text/javascript, */*; q=0.01",
                "X-Requested-With": "XMLHttpRequest",
                "Referer": self.base_url + "/",
            })

        async with self._throttle.queued():
            return await retry_with_backoff(
                attempt, self._retry_policy, label=full_url, sleep=self._sleep
            )

    async def close(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None
        if self._browser is not None and self._owns_browser:
            await self._browser.close()
            self._browser = None

    # -----------------------------------------------------------------------
    # Internals
    # -----------------------------------------------------------------------

    def _check_credentials(self, url: str) -> None:
        if self._require_auth and not self._cookies:
            raise AuthenticationRequired(
                f"No session cookies configured for {self.source}", url=url, attempts=0
            )

    def _http(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                headers=self._anti_detect.build_headers(self._cookies),
                timeout=self._timeout,
                follow_redirects=True,
                proxy=self._anti_detect.get_proxy_url(),
                transport=self._transport,
            )
        return self._client

    def _browser_session(self) -> BrowserSession:
        if self._browser is None:
            self._browser = BrowserSession(
                base_url=self.base_url, cookies=self._cookies, anti_detect=self._anti_detect
            )
            self._owns_browser = True
        return self._browser

    async def _fetch_network(self, url: str, options: FetchOptions) -> FetchResult:
        use_browser = options.force_browser or self._use_browser

        async def attempt() -> FetchResult:
            await self._throttle.wait_for_slot()
            if use_browser:
                return await self._browser_request(url)
            return await self._http_request("GET", url, headers=options.headers)

        async with self._throttle.queued():
            result = await retry_with_backoff(
                attempt, self._retry_policy, label=url, sleep=self._sleep
            )

        logger.info(
            "fetch_complete",
            source=self.source,
            url=url,
            status_code=result.status_code,
            transport="browser" if use_browser else "http",
        )
        return result

    async def _http_request(
        self,
        method: str,
        url: str,
        data: dict[str, Any] | None = None,
        headers: dict[str, str] | None = None,
    ) -> FetchResult:
        try:
            response = await self._http().request(method, url, data=data, headers=headers or None)
        except httpx.TimeoutException as e:
            raise NetworkError(f"Timed out requesting {url}", url=url) from e
        except httpx.RequestError as e:
            raise NetworkError(f"Request to {url} failed: {e}", url=url) from e

        error = error_for_status(response.status_code, url)
        if error is not None:
            raise error

        return FetchResult(
            content=response.text,
            status_code=response.status_code,
            url=url,
            fetched_at=datetime.now(timezone.utc),
        )

    async def _browser_request(self, url: str) -> FetchResult:
        html, status_code = await self._browser_session().render(url)
        error = error_for_status(status_code, url)
        if error is not None:
            raise error
        return FetchResult(
            content=html,
            status_code=status_code,
            url=url,
            fetched_at=datetime.now(timezone.utc),
        )
