"""
Coin Radar - Session Credentials

The pricing site authenticates with a browser session cookie. Operators
paste the Cookie header from a logged-in browser into an env var or a file;
providers here read it so the fetch client never knows where it came from.
"""

from __future__ import annotations

from pathlib import Path
from typing import Protocol
from urllib.parse import urlparse

import structlog

from coinradar.config import settings

logger = structlog.get_logger(__name__)


class CredentialProvider(Protocol):
    def get_cookies(self) -> str:
        """Return a raw `name=value; name2=value2` cookie string, or ""."""
        ...


class StaticCookieProvider:
    def __init__(self, cookies: str) -> None:
        self._cookies = cookies.strip()

    def get_cookies(self) -> str:
        return self._cookies


class EnvCookieProvider:
    """Reads the cookie string from settings (CDN_COOKIES env var / .env)."""

    def __init__(self, value: str | None = None) -> None:
        self._value = settings.CDN_COOKIES if value is None else value

    def get_cookies(self) -> str:
        return self._value.strip()


class FileCookieProvider:
    """Reads the cookie string from a text file; a missing file yields ""."""

    def __init__(self, path: str | Path | None = None) -> None:
        self.path = Path(path or settings.CDN_COOKIES_FILE)

    def get_cookies(self) -> str:
        try:
            return self.path.read_text(encoding="utf-8").strip()
        except FileNotFoundError:
            return ""
        except OSError as e:
            logger.warning("cookie_file_unreadable", path=str(self.path), error=str(e))
            return ""


class ChainCookieProvider:
    """First provider returning a non-empty string wins."""

    def __init__(self, *providers: CredentialProvider) -> None:
        self._providers = providers

    def get_cookies(self) -> str:
        for provider in self._providers:
            cookies = provider.get_cookies()
            if cookies:
                return cookies
        return ""


def default_cookie_provider() -> CredentialProvider:
    return ChainCookieProvider(EnvCookieProvider(), FileCookieProvider())


def parse_cookie_string(cookie_str: str, base_url: str) -> list[dict[str, str]]:
    """
    Convert a raw Cookie header into Playwright cookie dicts.

    Args:
        cookie_str: `name=value; name2=value2`.
        base_url: Site URL; its host becomes the cookie domain.

    Returns:
        List of {"name", "value", "domain", "path"} dicts. Malformed pairs
        (no '=' or empty name) are dropped.
    """
    domain = urlparse(base_url).hostname or ""
    cookies: list[dict[str, str]] = []
    for pair in cookie_str.split(";"):
        name, sep, value = pair.strip().partition("=")
        name = name.strip()
        if not sep or not name:
            continue
        cookies.append({"name": name, "value": value.strip(), "domain": domain, "path": "/"})
    return cookies
