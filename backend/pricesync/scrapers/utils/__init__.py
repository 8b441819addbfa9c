"""Scraper utilities for identity rotation and value normalization."""

from .identity import Identity, IdentityRotator, USER_AGENTS
from .normalizer import (
    AvailabilityState,
    AvailabilityClassifier,
    Price,
    PriceNormalizer,
    classify_availability,
    currency_code,
    parse_price,
)


__all__ = [
    # Identity rotation
    "Identity",
    "IdentityRotator",
    "USER_AGENTS",
    # Normalization
    "AvailabilityState",
    "AvailabilityClassifier",
    "Price",
    "PriceNormalizer",
    "classify_availability",
    "currency_code",
    "parse_price",
]
