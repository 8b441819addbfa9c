"""Manual price scraper runner for testing and debugging extraction rules.

Runs one product or a full refresh cycle against the live vendor pages
with the same retry, pacing and concurrency settings as the API server,
then prints what was found.

Usage:
    python scripts/run_scraper.py --product MG996R
    python scripts/run_scraper.py --all
    python scripts/run_scraper.py --all --concurrency 2 --no-headless
"""

import argparse
import asyncio
import os
import sys
from decimal import Decimal
from typing import List, Optional

# Add backend to path so we can import pricesync modules
sys.path.insert(0, os.path.join(os.path.dirname(__file__), "..", "backend"))

from pricesync.config import settings
from pricesync.core.exceptions import NotFoundError, ScrapeFailedError
from pricesync.core.logging import configure_logging
from pricesync.services.cache_service import CacheResult
from pricesync.services.price_service import build_services


async def run_product(product_key: str) -> int:
    """Scrape a single product and print its quote.

    Returns:
        Process exit code
    """
    async with build_services(settings) as service:
        try:
            quote = await service.get_price(product_key, force_refresh=True)
        except NotFoundError:
            keys = [s.product_key for s in await service.catalog.list_tracked_products()]
            print(f"\n❌ Error: Unknown product '{product_key}'")
            print("\n📋 Tracked products:")
            for key in keys:
                print(f"   - {key}")
            return 2
        except ScrapeFailedError as e:
            failure = e.failure
            print(f"\n❌ {product_key}: {failure.error_kind.value} after {failure.attempts_made} attempt(s)")
            print(f"   {failure.message}\n")
            return 1

    print(f"\n{'='*70}")
    print(f"  {quote.product_key}")
    print(f"{'='*70}")
    print(f"  💰 Price: {_format_price(quote.price, quote.currency)}")
    print(f"  🔖 Reference: {_format_price(quote.reference_price, quote.currency)}")
    print(f"  📉 Delta: {quote.price_delta} ({quote.price_delta_percent}%)")
    print(f"  📦 Availability: {quote.availability.value}")
    print(f"  🔍 Extraction: {quote.extraction_method} {quote.matched_selector or ''}")
    if quote.currency_assumed:
        print(f"  ⚠️  Currency assumed from catalog: {quote.currency}")
    print(f"  🔗 URL: {quote.source_url[:80]}")
    print(f"{'='*70}\n")
    return 0


async def run_all(concurrency: Optional[int] = None) -> int:
    """Scrape every tracked product and print a summary table.

    Returns:
        Process exit code (1 if any product failed)
    """
    if concurrency:
        settings.CONCURRENCY_LIMIT = concurrency
    async with build_services(settings) as service:
        print(f"\n🔍 Refreshing all tracked products "
              f"(concurrency {service.cache.batch.concurrency_limit})...\n")
        result = await service.refresh_all()

    _print_results(result.data)

    summary = result.summary
    print(f"{'='*70}")
    print("  Summary")
    print(f"{'='*70}")
    print(f"  Total: {summary.total}")
    print(f"  Successful: {summary.successful}")
    print(f"  Failed: {summary.failed}")

    failure_kinds = {}
    for item in result.data:
        if item.failure is not None:
            kind = item.failure.error_kind.value
            failure_kinds[kind] = failure_kinds.get(kind, 0) + 1
    if failure_kinds:
        print("  Failures:")
        for kind, count in sorted(failure_kinds.items()):
            print(f"    - {kind}: {count}")
    print(f"{'='*70}\n")

    return 0 if summary.failed == 0 else 1


def _print_results(results: List[CacheResult]) -> None:
    for item in results:
        if item.quote is not None:
            quote = item.quote
            print(
                f"✅ {item.product_key:<12} {_format_price(quote.price, quote.currency):>12}"
                f"  Δ {quote.price_delta:>8}  {quote.availability.value}"
            )
        else:
            failure = item.failure
            print(
                f"❌ {item.product_key:<12} {failure.error_kind.value} "
                f"({failure.attempts_made} attempt(s)): {failure.message[:60]}"
            )
    print()


def _format_price(price: Decimal, currency: str) -> str:
    """Format price with currency symbol.

    Args:
        price: The price value
        currency: ISO currency code (e.g., "EUR", "USD")

    Returns:
        Formatted price string
    """
    if currency == "EUR":
        return f"{price:,.2f} €"
    elif currency == "USD":
        return f"${price:,.2f}"
    elif currency == "GBP":
        return f"£{price:,.2f}"
    else:
        return f"{price:,.2f} {currency}"


def main():
    """Parse arguments and run the scraper."""
    parser = argparse.ArgumentParser(
        description="Scrape vendor prices for tracked products",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python scripts/run_scraper.py --product MG996R
  python scripts/run_scraper.py --all
  python scripts/run_scraper.py --all --concurrency 2
        """,
    )

    target = parser.add_mutually_exclusive_group(required=True)
    target.add_argument("--product", help="Product key (e.g., 'MG996R', 'RPI5')")
    target.add_argument("--all", action="store_true", help="Refresh every tracked product")

    parser.add_argument(
        "--concurrency",
        type=int,
        help="Scrapes in flight per window, 1-10 (default: CONCURRENCY_LIMIT)",
    )
    parser.add_argument(
        "--no-headless",
        action="store_true",
        help="Show the browser window",
    )
    parser.add_argument(
        "--log-level",
        default=settings.LOG_LEVEL,
        help="Log level (default: LOG_LEVEL)",
    )

    args = parser.parse_args()

    configure_logging(args.log_level, settings.LOG_JSON)
    if args.no_headless:
        settings.HEADLESS = False

    if args.product:
        code = asyncio.run(run_product(args.product))
    else:
        code = asyncio.run(run_all(args.concurrency))
    sys.exit(code)


if __name__ == "__main__":
    main()
