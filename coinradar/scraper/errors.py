"""
Coin Radar - Fetch Error Taxonomy

Every failure surfaced by the fetch layer is a ScraperError. Transport
exceptions (httpx, Playwright) are translated into this hierarchy at the
transport boundary so callers never see library types.

    ScraperError
    ├── FetchError (status_code, retryable, url, attempts)
    │   ├── NetworkError            retryable
    │   ├── HttpServerError         retryable (5xx, 429)
    │   └── HttpClientError         fatal (other 4xx)
    │       └── AuthenticationRequired   fatal (401/403, login page)
    ├── ParseError
    └── DiscoveryError
"""

from __future__ import annotations


AUTH_REMEDIATION = (
    "Log in to CDN Exchange in a browser, copy the Cookie request header from "
    "the developer tools Network tab, then either export it as CDN_COOKIES or "
    "save it to the cookie file (run `coin-radar cookies` for details)."
)


class ScraperError(Exception):
    """Base class for all fetch, parse and discovery failures."""


class FetchError(ScraperError):
    """A request could not produce a usable response."""

    retryable: bool = False

    def __init__(
        self,
        message: str,
        *,
        url: str | None = None,
        status_code: int | None = None,
        attempts: int = 1,
    ) -> None:
        super().__init__(message)
        self.url = url
        self.status_code = status_code
        self.attempts = attempts


class NetworkError(FetchError):
    """Connection failure, reset or timeout."""

    retryable = True


class HttpServerError(FetchError):
    """5xx or 429 response."""

    retryable = True


class HttpClientError(FetchError):
    """4xx response other than 429."""


class AuthenticationRequired(HttpClientError):
    """Credentials are missing, expired or rejected."""

    remediation = AUTH_REMEDIATION


class ParseError(ScraperError):
    """Fetched content could not be interpreted."""


class DiscoveryError(ScraperError):
    """The catalog tree side channel returned an unusable answer."""


def error_for_status(status_code: int, url: str) -> FetchError | None:
    """
    Map an HTTP status to the matching FetchError, or None for 2xx/3xx.

    Args:
        status_code: Response status.
        url: Requested URL, attached to the error.
    """
    if status_code < 400:
        return None
    if status_code in (401, 403):
        return AuthenticationRequired(
            f"Authentication required ({status_code}) for {url}",
            url=url,
            status_code=status_code,
        )
    if status_code == 429 or status_code >= 500:
        return HttpServerError(
            f"HTTP {status_code} from {url}", url=url, status_code=status_code
        )
    return HttpClientError(f"HTTP {status_code} from {url}", url=url, status_code=status_code)
