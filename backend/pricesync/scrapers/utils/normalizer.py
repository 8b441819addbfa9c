"""Value normalization for price parsing and availability classification."""

import re
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Optional, Pattern, Tuple


class AvailabilityState(str, Enum):
    """Stock state derived from vendor page text."""

    IN_STOCK = "in-stock"
    LOW_STOCK = "low-stock"
    OUT_OF_STOCK = "out-of-stock"
    UNKNOWN = "unknown"


@dataclass(frozen=True)
class Price:
    """Parsed monetary amount."""

    amount: Decimal
    currency: str
    pattern: str  # name of the price pattern that matched


CURRENCY_SYMBOLS = {
    "€": "EUR",
    "$": "USD",
    "£": "GBP",
    "¥": "JPY",
    "CHF": "CHF",
    "zł": "PLN",
}

# Grouping characters between digits ("1 234,56", "1'234.56")
_GROUPING_SPACE = re.compile(r"(?<=\d)[ \u00a0\u202f'’](?=\d{3}(?!\d))")

# First run of digits and separators in a text
_NUMBER_RUN = re.compile(r"\d(?:[\d.,]*\d)?")

# Fixed-priority price patterns, tried as full matches on the cleaned run.
# (name, pattern, thousands separator, decimal separator)
PRICE_PATTERNS: Tuple[Tuple[str, Pattern[str], Optional[str], Optional[str]], ...] = (
    ("thousands_dot_decimal_comma", re.compile(r"\d{1,3}(?:\.\d{3})*,\d{2}"), ".", ","),
    ("thousands_comma_decimal_dot", re.compile(r"\d{1,3}(?:,\d{3})*\.\d{2}"), ",", "."),
    ("single_decimal", re.compile(r"\d+[.,]\d{1,2}"), None, None),
    ("integer", re.compile(r"\d{1,3}([.,])\d{3}(?:\1\d{3})*|\d+"), None, None),
)

# Keyword sets, checked negative -> scarcity -> positive so that
# "nicht verfügbar" or "only 2 left in stock" classify correctly.
OUT_OF_STOCK_KEYWORDS = (
    "out of stock",
    "out-of-stock",
    "not in stock",
    "sold out",
    "currently unavailable",
    "unavailable",
    "ausverkauft",
    "vergriffen",
    "nicht verfügbar",
    "nicht lieferbar",
    "nicht auf lager",
)

LOW_STOCK_KEYWORDS = (
    "low stock",
    "low-stock",
    "limited stock",
    "few left",
    "only a few",
    "wenige",
    "begrenzt",
    "nur noch",
)
_LOW_STOCK_PATTERN = re.compile(r"only \d+ left")

IN_STOCK_KEYWORDS = (
    "in stock",
    "in-stock",
    "instock",
    "available",
    "verfügbar",
    "lieferbar",
    "auf lager",
    "sofort",
)
_IN_STOCK_COUNT_PATTERN = re.compile(r"\d+\s*(stk|pcs|pieces|stück)\b")


def currency_code(symbol_or_code: str) -> str:
    """Map a currency symbol or ISO code to its ISO code.

    Args:
        symbol_or_code: "€", "EUR", "$", "usd", ...

    Returns:
        Upper-case ISO 4217 code

    Raises:
        ValueError: If the value is neither a known symbol nor a 3-letter code
    """
    value = (symbol_or_code or "").strip()
    if value in CURRENCY_SYMBOLS:
        return CURRENCY_SYMBOLS[value]
    if len(value) == 3 and value.isalpha():
        return value.upper()
    raise ValueError(f"Unknown currency: {symbol_or_code!r}")


class PriceNormalizer:
    """Locale-tolerant price parsing.

    Handles both decimal conventions:
    - "1.234,56 €" -> 1234.56
    - "€1,234.56" -> 1234.56
    - "6,20 €" -> 6.20
    - "1 234,56" -> 1234.56
    - "12 €" -> 12
    """

    @staticmethod
    def clean_price_string(raw: str) -> Optional[str]:
        """Reduce a raw price text to its first digits/separators run."""
        if not raw:
            return None
        text = _GROUPING_SPACE.sub("", raw)
        match = _NUMBER_RUN.search(text)
        return match.group(0) if match else None

    @staticmethod
    def parse_price(text: str, currency_hint: str) -> Optional[Price]:
        """Parse a raw price text.

        Patterns are tried in a fixed order and the first full match wins:
        thousands-dot/comma-decimal, thousands-comma/dot-decimal, a single
        decimal separator with 1-2 fractional digits, then a bare integer.

        Args:
            text: Raw text extracted from the page
            currency_hint: Currency symbol or ISO code for the result

        Returns:
            Price, or None if no pattern matches
        """
        cleaned = PriceNormalizer.clean_price_string(text)
        if not cleaned:
            return None

        for name, pattern, thousands, decimal in PRICE_PATTERNS:
            if not pattern.fullmatch(cleaned):
                continue

            if thousands is not None:
                number = cleaned.replace(thousands, "").replace(decimal, ".")
            elif name == "single_decimal":
                number = cleaned.replace(",", ".")
            else:
                number = cleaned.replace(".", "").replace(",", "")

            try:
                amount = Decimal(number)
            except InvalidOperation:
                return None
            return Price(amount=amount, currency=currency_code(currency_hint), pattern=name)

        return None


class AvailabilityClassifier:
    """Keyword-based stock classification (English and German)."""

    @staticmethod
    def classify(text: Optional[str]) -> AvailabilityState:
        """Classify free text into an AvailabilityState.

        Args:
            text: Availability text or CSS class names from the page

        Returns:
            AvailabilityState; UNKNOWN when no keyword matches
        """
        if not text:
            return AvailabilityState.UNKNOWN

        lowered = " ".join(text.lower().split())

        if any(kw in lowered for kw in OUT_OF_STOCK_KEYWORDS):
            return AvailabilityState.OUT_OF_STOCK

        if any(kw in lowered for kw in LOW_STOCK_KEYWORDS) or _LOW_STOCK_PATTERN.search(lowered):
            return AvailabilityState.LOW_STOCK

        if any(kw in lowered for kw in IN_STOCK_KEYWORDS) or _IN_STOCK_COUNT_PATTERN.search(lowered):
            return AvailabilityState.IN_STOCK

        return AvailabilityState.UNKNOWN


def parse_price(text: str, currency_hint: str) -> Optional[Price]:
    """Module-level shortcut for PriceNormalizer.parse_price."""
    return PriceNormalizer.parse_price(text, currency_hint)


def classify_availability(text: Optional[str]) -> AvailabilityState:
    """Module-level shortcut for AvailabilityClassifier.classify."""
    return AvailabilityClassifier.classify(text)
