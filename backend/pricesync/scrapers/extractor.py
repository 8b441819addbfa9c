"""Turn a rendered vendor page into a PriceQuote.

Selectors are tried in rule order and the first one whose text parses as a
price wins. When no selector yields a price, the rule's full-text fallback
pattern is matched against the visible page text; prices found this way are
currency-agnostic, so the source's reference currency is assumed and the
quote records that choice.
"""

from typing import Optional, Tuple

import structlog
from bs4 import BeautifulSoup, Tag

from pricesync.core.exceptions import PriceNotFoundError
from pricesync.scrapers.base import PriceQuote, ProductSource, RenderedPage
from pricesync.scrapers.rules import ExtractionRule
from pricesync.scrapers.utils.normalizer import (
    AvailabilityState,
    Price,
    classify_availability,
    parse_price,
)


logger = structlog.get_logger(__name__)


def _element_text(element: Tag) -> str:
    # data-price attributes carry the machine-readable amount
    for attr in ("content", "data-price", "data-price-amount"):
        value = element.get(attr)
        if value:
            return str(value)
    return element.get_text(" ", strip=True)


def find_price(soup: BeautifulSoup, rule: ExtractionRule) -> Tuple[Optional[Price], Optional[str]]:
    """Return the first parseable price and the selector that produced it."""
    for selector in rule.price_selectors:
        for element in soup.select(selector):
            price = parse_price(_element_text(element), rule.currency_symbol)
            if price is not None:
                return price, selector
    return None, None


def find_availability(soup: BeautifulSoup, rule: ExtractionRule) -> AvailabilityState:
    """Classify the first availability element that yields a known state.

    Element text is checked first, then its CSS classes (stores often
    mark stock state only with classes such as ``in-stock``).
    """
    for selector in rule.availability_selectors:
        for element in soup.select(selector):
            state = classify_availability(element.get_text(" ", strip=True))
            if state is AvailabilityState.UNKNOWN:
                state = classify_availability(" ".join(element.get("class") or []))
            if state is not AvailabilityState.UNKNOWN:
                return state
    return AvailabilityState.UNKNOWN


def _page_text(soup: BeautifulSoup) -> str:
    for tag in soup(["script", "style", "noscript"]):
        tag.decompose()
    body = soup.body or soup
    return body.get_text(" ", strip=True)


def extract_quote(
    source: ProductSource, page: RenderedPage, rule: ExtractionRule
) -> PriceQuote:
    """Extract price and availability from a rendered page.

    Args:
        source: Product being scraped
        page: Rendered page HTML
        rule: Extraction rule for the source's domain

    Returns:
        PriceQuote for the source

    Raises:
        PriceNotFoundError: If neither selectors nor the fallback yield a price
    """
    soup = BeautifulSoup(page.html, "html.parser")

    price, selector = find_price(soup, rule)
    availability = find_availability(soup, rule)

    if price is not None:
        return PriceQuote(
            product_key=source.product_key,
            price=price.amount,
            currency=rule.currency_code,
            availability=availability,
            source_url=source.source_url,
            reference_price=source.reference_price,
            observed_at=page.fetched_at,
            extraction_method="selector",
            matched_selector=selector,
        )

    match = rule.fallback_price_pattern.search(_page_text(soup))
    fallback = parse_price(match.group(0), source.reference_currency) if match else None
    if fallback is None:
        logger.warning(
            "rule_maintenance_needed",
            product_key=source.product_key,
            domain=rule.domain,
            url=source.source_url,
            selectors=list(rule.price_selectors),
        )
        raise PriceNotFoundError(
            f"No price found on page for '{source.product_key}'", url=source.source_url
        )

    logger.warning(
        "currency_assumed",
        product_key=source.product_key,
        domain=rule.domain,
        currency=fallback.currency,
        matched_text=match.group(0),
    )
    return PriceQuote(
        product_key=source.product_key,
        price=fallback.amount,
        currency=fallback.currency,
        availability=availability,
        source_url=source.source_url,
        reference_price=source.reference_price,
        observed_at=page.fetched_at,
        currency_assumed=True,
        extraction_method="fallback",
    )
