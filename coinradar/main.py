"""
Coin Radar - Command Line Entrypoint

Operator commands over the ingestion pipeline. Exit code 0 on success,
1 on failure.

Run via:
    coin-radar status
    python -m coinradar.main fetch 8971
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from decimal import Decimal
from typing import Sequence

import structlog

from coinradar.config import settings
from coinradar.models import GradePrice, MarketPriceRecord
from coinradar.pipeline.cdn_exchange import CDNExchangeClient, FetchReport, save_known_catalogs
from coinradar.pipeline.scheduler import run_scheduler
from coinradar.providers import CDNExchangeProvider
from coinradar.scraper.credentials import FileCookieProvider, default_cookie_provider
from coinradar.scraper.errors import AUTH_REMEDIATION, AuthenticationRequired, ScraperError
from coinradar.utils.grades import normalize_grade

logger = structlog.get_logger(__name__)


# ---------------------------------------------------------------------------
# Structlog Configuration
# ---------------------------------------------------------------------------


def _configure_logging(log_level: str = "INFO", json_logs: bool = True) -> None:
    """
    Set up structured logging on stderr so command output stays on stdout.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR).
        json_logs: JSON lines when True, human-readable console output otherwise.
    """
    level = getattr(logging, log_level.upper(), logging.INFO)

    # Configure stdlib logging first (for third-party libraries)
    logging.basicConfig(format="%(message)s", stream=sys.stderr, level=level)

    renderer = structlog.processors.JSONRenderer() if json_logs else structlog.dev.ConsoleRenderer()
    structlog.configure(
        processors=[
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            renderer,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
        cache_logger_on_first_use=True,
    )


# ---------------------------------------------------------------------------
# Argument parsing
# ---------------------------------------------------------------------------


def parse_args(argv: Sequence[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="coin-radar",
        description="Scrape, cache and query CDN Exchange coin pricing catalogs.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  coin-radar status
  coin-radar fetch 8971 --force
  coin-radar fetch-all
  coin-radar discover 1 --max-depth 3 --save
  coin-radar search "1878 8TF" --limit 5
  coin-radar price 8971 1878-8tf-1 MS63
  coin-radar watch --interval 30
""",
    )
    parser.add_argument("--log-level", default=settings.LOG_LEVEL, help="DEBUG, INFO, WARNING or ERROR")
    parser.add_argument("--console-logs", action="store_true", help="Human-readable logs instead of JSON")

    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("status", help="Show cache and credential status")

    fetch = sub.add_parser("fetch", help="Fetch one catalog")
    fetch.add_argument("catalog_id", type=int)
    fetch.add_argument("--force", action="store_true", help="Ignore cached copies")

    fetch_all = sub.add_parser("fetch-all", help="Fetch every known catalog")
    fetch_all.add_argument("--force", action="store_true", help="Ignore cached copies")

    discover = sub.add_parser("discover", help="Walk the catalog tree and list pricing catalogs")
    discover.add_argument("root", type=int, nargs="?", default=settings.DISCOVERY_ROOT_NODE)
    discover.add_argument("--max-depth", type=int, default=settings.DISCOVERY_MAX_DEPTH)
    discover.add_argument("--save", action="store_true", help="Add discovered catalogs to the known list")

    search = sub.add_parser("search", help="Search cached coins")
    search.add_argument("query")
    search.add_argument("--limit", type=int, default=20)

    price = sub.add_parser("price", help="Show prices for one coin")
    price.add_argument("catalog_id", type=int)
    price.add_argument("coin_id")
    price.add_argument("grade", nargs="?")

    sub.add_parser("clear", help="Delete the catalog cache")
    sub.add_parser("cookies", help="How to configure session cookies")

    watch = sub.add_parser("watch", help="Refresh stale catalogs on a schedule")
    watch.add_argument("--interval", type=float, default=settings.REFRESH_POLL_INTERVAL_MINUTES,
                       help="Minutes between staleness checks")

    return parser.parse_args(argv)


# ---------------------------------------------------------------------------
# Output helpers
# ---------------------------------------------------------------------------


def _money(value: Decimal | None) -> str:
    return f"${value:,.2f}" if value is not None else "-"


def _print_auth_help(error: AuthenticationRequired) -> None:
    print(f"Authentication required: {error}", file=sys.stderr)
    print(f"  {AUTH_REMEDIATION}", file=sys.stderr)


def _print_report(report: FetchReport) -> None:
    print(
        f"Fetched {len(report.succeeded)} catalogs, "
        f"{len(report.failed)} failed, {len(report.skipped)} skipped."
    )
    for catalog_id, error_type in report.failed.items():
        print(f"  FAILED  {catalog_id}: {error_type}")
    if report.auth_failed:
        print(f"  {AUTH_REMEDIATION}", file=sys.stderr)


def _print_grade(grade: str, grade_price: GradePrice) -> None:
    parts = []
    for field in ("greysheet", "cac", "pcgs", "ngc"):
        value = getattr(grade_price, field)
        if value is not None:
            text = f"{field}={_money(value.price)}"
            if value.previous_price is not None:
                text += f" (was {_money(value.previous_price)})"
            parts.append(text)
    print(f"  {grade:<10} " + "  ".join(parts))


def _print_record(record: MarketPriceRecord) -> None:
    print(f"{record.item_id}  {record.name}")
    for grade, band in record.graded_prices.items():
        print(f"  {grade:<10} {_money(band.low)} / {_money(band.mid)} / {_money(band.high)}")


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------


def _build_client() -> CDNExchangeClient:
    return CDNExchangeClient()


async def _cmd_status(cdn: CDNExchangeClient) -> int:
    provider = CDNExchangeProvider(client=cdn)
    status = await provider.get_status()
    store = cdn.store.status()

    print(f"Provider:        {status.name}")
    print(f"Cookies:         {'configured' if status.available else 'NOT configured'}")
    print(f"Cache file:      {store['path']}")
    print(f"Last fetched:    {store['last_fetched'] or 'never'}")
    print(f"Catalogs cached: {store['catalogs']} ({store['valid_catalogs']} fresh, {store['stale_catalogs']} stale)")
    print(f"Known catalogs:  {len(cdn.known_catalogs)}")
    print(f"Coins cached:    {store['coins']}")
    if status.error:
        print(f"Error:           {status.error}")
    return 0


async def _cmd_fetch(cdn: CDNExchangeClient, catalog_id: int, force: bool) -> int:
    catalog = await cdn.fetch_catalog_checked(catalog_id, force_refresh=force)
    print(f"{catalog.name} ({catalog.catalog_id}): {len(catalog.coins)} coins, "
          f"{len(catalog.grade_columns)} columns")
    return 0


async def _cmd_fetch_all(cdn: CDNExchangeClient, force: bool) -> int:
    report = await cdn.fetch_all_known(force_refresh=force)
    _print_report(report)
    return 0 if report.ok else 1


async def _cmd_discover(cdn: CDNExchangeClient, root: int, max_depth: int, save: bool) -> int:
    catalogs = await cdn.discover(root, max_depth)
    for catalog_id, name in sorted(catalogs.items()):
        marker = " " if catalog_id in cdn.known_catalogs else "+"
        print(f"{marker} {catalog_id:>6}  {name}")
    print(f"Discovered {len(catalogs)} catalogs under node {root}.")

    if save:
        added = cdn.merge_known_catalogs(catalogs)
        path = save_known_catalogs(cdn.known_catalogs)
        print(f"Saved {added} new catalogs to {path}.")
    return 0


async def _cmd_search(cdn: CDNExchangeClient, query: str, limit: int) -> int:
    provider = CDNExchangeProvider(client=cdn)
    records = await provider.search(query, limit=limit)
    if not records:
        print(f"No cached coins match {query!r}.")
        return 0
    for record in records:
        _print_record(record)
    return 0


async def _cmd_price(cdn: CDNExchangeClient, catalog_id: int, coin_id: str, grade: str | None) -> int:
    if cdn.store.get(catalog_id) is None:
        await cdn.fetch_catalog_checked(catalog_id)

    coin = cdn.store.get_coin(catalog_id, coin_id)
    if coin is None:
        print(f"Coin {coin_id!r} not found in catalog {catalog_id}.", file=sys.stderr)
        return 1

    print(f"{coin.description} (catalog {catalog_id})")
    if grade:
        grade_price = cdn.store.get_grade_price(catalog_id, coin_id, grade)
        if grade_price is None:
            print(f"No price for grade {normalize_grade(grade)}.", file=sys.stderr)
            return 1
        _print_grade(normalize_grade(grade), grade_price)
        return 0

    for label, grade_price in coin.grades.items():
        _print_grade(label, grade_price)
    return 0


def _cmd_clear(cdn: CDNExchangeClient) -> int:
    cdn.store.clear()
    cdn.client.cache.clear()
    print("Catalog cache cleared.")
    return 0


def _cmd_cookies() -> int:
    configured = bool(default_cookie_provider().get_cookies())
    cookie_file = FileCookieProvider().path
    print(f"""Session cookies: {'configured' if configured else 'NOT configured'}

CDN Exchange pricing pages require a logged-in session.

1. Log in at {settings.CDN_BASE_URL} in your browser.
2. Open developer tools, Network tab, and reload the page.
3. Select the page request and copy the full value of the "Cookie" request header.
4. Either:
     export CDN_COOKIES='<cookie header>'
   or save it to {cookie_file}

Cookies expire; repeat these steps when commands report "Authentication required".
""")
    return 0


async def _dispatch(args: argparse.Namespace) -> int:
    if args.command == "cookies":
        return _cmd_cookies()

    cdn = _build_client()
    try:
        if args.command == "status":
            return await _cmd_status(cdn)
        if args.command == "fetch":
            return await _cmd_fetch(cdn, args.catalog_id, args.force)
        if args.command == "fetch-all":
            return await _cmd_fetch_all(cdn, args.force)
        if args.command == "discover":
            return await _cmd_discover(cdn, args.root, args.max_depth, args.save)
        if args.command == "search":
            return await _cmd_search(cdn, args.query, args.limit)
        if args.command == "price":
            return await _cmd_price(cdn, args.catalog_id, args.coin_id, args.grade)
        if args.command == "clear":
            return _cmd_clear(cdn)
        if args.command == "watch":
            await run_scheduler(CDNExchangeProvider(client=cdn), args.interval)
            return 0
        raise ValueError(f"Unknown command: {args.command}")
    finally:
        await cdn.close()


def main(argv: Sequence[str] | None = None) -> int:
    """Parse arguments, run one command, return the process exit code."""
    args = parse_args(argv)
    _configure_logging(args.log_level, json_logs=settings.LOG_JSON and not args.console_logs)

    try:
        return asyncio.run(_dispatch(args))
    except AuthenticationRequired as e:
        _print_auth_help(e)
        return 1
    except ScraperError as e:
        print(f"{type(e).__name__}: {e}", file=sys.stderr)
        return 1
    except KeyboardInterrupt:
        logger.info("coin_radar_interrupted_by_user")
        return 130


def run() -> None:
    sys.exit(main())


# ---------------------------------------------------------------------------
# CLI Entry
# ---------------------------------------------------------------------------


if __name__ == "__main__":
    run()
