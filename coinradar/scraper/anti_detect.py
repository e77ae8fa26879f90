"""
Coin Radar - Anti-Detection Layer

Realistic browser headers, user-agent rotation and proxy configuration,
shared by the HTTP and browser transports.
"""

from __future__ import annotations

import random

import structlog

from coinradar.config import settings

logger = structlog.get_logger(__name__)


class AntiDetect:
    """
    Builds the request fingerprint for one client.

    The user agent is picked once per instance so every request of a
    session presents the same browser.
    """

    # Realistic user agents for rotation
    USER_AGENTS = [
        "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/605.1.15 (KHTML, like Gecko) Version/17.3 Safari/605.1.15",
        "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/122.0.0.0 Safari/537.36",
        "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/122.0.0.0 Safari/537.36",
        "Mozilla/5.0 (Windows NT 10.0; Win64; x64; rv:123.0) Gecko/20100101 Firefox/123.0",
    ]

    def __init__(self, user_agent: str | None = None, proxy_url: str | None = None) -> None:
        self.user_agent = user_agent or settings.SCRAPE_USER_AGENT or self.get_random_user_agent()
        self._proxy_url = settings.PROXY_URL if proxy_url is None else proxy_url

    def get_random_user_agent(self) -> str:
        """Return a random user agent string."""
        return random.choice(self.USER_AGENTS)

    def build_headers(self, cookies: str = "", extra: dict[str, str] | None = None) -> dict[str, str]:
        """Headers for an HTML page request."""
        headers = {
            "User-Agent": self.user_agent,
            "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8",
            "Accept-Language": "en-US,en;q=0.9",
        }
        if cookies:
            headers["Cookie"] = cookies
        if extra:
            headers.update(extra)
        return headers

    def get_proxy_url(self) -> str | None:
        """Proxy for httpx, or None when PROXY_URL is unset."""
        return self._proxy_url or None

    def get_proxy_config(self) -> dict[str, str] | None:
        """Proxy for Playwright's launch(), or None when PROXY_URL is unset."""
        if self._proxy_url:
            return {"server": self._proxy_url}
        return None
