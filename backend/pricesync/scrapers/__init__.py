"""Scraping layer: fetch vendor pages and turn them into price quotes.

This package provides:
- Domain types and the page retriever interface
- Per-domain extraction rules with a map-backed registry
- Single-product scraping with retries and identity rotation
- Bounded-concurrency batch scraping
"""

from .base import (
    PageRetriever,
    PriceQuote,
    ProductSource,
    RenderedPage,
    ScrapeFailure,
    ScrapeOutcome,
    ScrapeSuccess,
)
from .batch import BatchScheduler
from .rules import ExtractionRule, MapRuleProvider, RuleProvider, build_default_rule_provider
from .scraper_service import PriceScraper

__all__ = [
    # Data structures
    "PriceQuote",
    "ProductSource",
    "RenderedPage",
    "ScrapeFailure",
    "ScrapeOutcome",
    "ScrapeSuccess",
    # Interfaces
    "PageRetriever",
    "RuleProvider",
    # Rules
    "ExtractionRule",
    "MapRuleProvider",
    "build_default_rule_provider",
    # Orchestration
    "PriceScraper",
    "BatchScheduler",
]
