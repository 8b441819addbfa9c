"""Per-domain extraction rules and the registry that serves them.

Vendor markup is too heterogeneous for a single universal extractor, so each
supported domain registers an ordered list of selector candidates for price
and availability plus a full-text fallback pattern. Lookup is pure and fails
closed: an unregistered domain raises UnsupportedDomainError.
"""

import re
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Pattern, Tuple

import structlog

from pricesync.core.exceptions import UnsupportedDomainError
from pricesync.scrapers.utils.normalizer import currency_code


logger = structlog.get_logger(__name__)

# Currency-agnostic decimal number; prices found this way assume the source currency
DEFAULT_FALLBACK_PATTERN = re.compile(r"\d{1,3}(?:[.,\s]\d{3})*[.,]\d{2}(?!\d)")


def normalize_domain(domain: str) -> str:
    """Lower-case a hostname and drop a leading "www."."""
    domain = (domain or "").strip().lower().rstrip(".")
    if domain.startswith("www."):
        domain = domain[4:]
    return domain


@dataclass(frozen=True)
class ExtractionRule:
    """Selectors and patterns used to read one vendor's product pages."""

    domain: str
    price_selectors: Tuple[str, ...]
    availability_selectors: Tuple[str, ...]
    currency_symbol: str = "€"
    fallback_price_pattern: Pattern[str] = field(default=DEFAULT_FALLBACK_PATTERN)
    wait_selector: Optional[str] = None  # selector to wait for after navigation

    def __post_init__(self):
        """Validate and normalize rule data."""
        if not self.domain:
            raise ValueError("domain is required")
        if not self.price_selectors:
            raise ValueError("at least one price selector is required")
        object.__setattr__(self, "domain", normalize_domain(self.domain))
        object.__setattr__(self, "price_selectors", tuple(self.price_selectors))
        object.__setattr__(self, "availability_selectors", tuple(self.availability_selectors))
        # Raises ValueError for unknown symbols
        currency_code(self.currency_symbol)

    @property
    def currency_code(self) -> str:
        return currency_code(self.currency_symbol)


class RuleProvider(ABC):
    """Source of extraction rules keyed by domain."""

    @abstractmethod
    def rules_for(self, domain: str) -> ExtractionRule:
        """Return the rule for a domain.

        Raises:
            UnsupportedDomainError: If no rule is registered for the domain
        """

    @abstractmethod
    def domains(self) -> List[str]:
        """List registered domains."""

    def supports(self, domain: str) -> bool:
        try:
            self.rules_for(domain)
        except UnsupportedDomainError:
            return False
        return True


class MapRuleProvider(RuleProvider):
    """Dictionary-backed rule registry.

    New domains are added by registering a rule; there is no automatic
    rule inference and no default rule.
    """

    def __init__(self, rules: Optional[List[ExtractionRule]] = None):
        self._rules: Dict[str, ExtractionRule] = {}
        for rule in rules or []:
            self.register(rule)

    def register(self, rule: ExtractionRule) -> None:
        """Register (or replace) the rule for ``rule.domain``."""
        if not isinstance(rule, ExtractionRule):
            raise ValueError(f"Rule must be an ExtractionRule: {rule!r}")
        replaced = rule.domain in self._rules
        self._rules[rule.domain] = rule
        logger.debug("extraction_rule_registered", domain=rule.domain, replaced=replaced)

    def rules_for(self, domain: str) -> ExtractionRule:
        rule = self._rules.get(normalize_domain(domain))
        if rule is None:
            raise UnsupportedDomainError(domain)
        return rule

    def domains(self) -> List[str]:
        return sorted(self._rules)


DEFAULT_RULES: List[ExtractionRule] = [
    ExtractionRule(
        domain="electropeak.com",
        price_selectors=(".price", ".product-price", "[data-price]", ".current-price", ".amount"),
        availability_selectors=(".availability", ".stock-status", "[data-availability]", ".in-stock", ".out-of-stock"),
    ),
    ExtractionRule(
        domain="srituhobby.com",
        price_selectors=(".price", ".product-price", ".woocommerce-Price-amount", ".amount", ".current-price"),
        availability_selectors=(".availability", ".stock", ".in-stock", ".out-of-stock", ".stock-status"),
    ),
    ExtractionRule(
        domain="kubii.com",
        price_selectors=(".current-price", ".price", ".product-price", "[data-price]", ".amount"),
        availability_selectors=(".availability", ".stock-level", ".in-stock", "[data-availability]", "#product-availability"),
    ),
    ExtractionRule(
        domain="eu.robotshop.com",
        price_selectors=(".price", ".product-price", ".current-price", ".amount", "[data-price]"),
        availability_selectors=(".availability", ".stock-status", ".in-stock", ".out-of-stock"),
    ),
    ExtractionRule(
        domain="welectron.com",
        price_selectors=(".price", ".product-price", ".current-price", ".amount"),
        availability_selectors=(".availability", ".stock", ".lagerbestand", ".delivery-information"),
    ),
    ExtractionRule(
        domain="mg-modellbau.de",
        price_selectors=(".price", ".product-price", ".preis", ".current-price"),
        availability_selectors=(".availability", ".lagerbestand", ".lieferzeit", ".delivery--text"),
    ),
    ExtractionRule(
        domain="optics-pro.com",
        price_selectors=(".price", ".product-price", ".current-price", "[data-price]"),
        availability_selectors=(".availability", ".stock-status", ".in-stock"),
    ),
    ExtractionRule(
        domain="gensace.de",
        price_selectors=(".price", ".product-price", ".current-price", ".amount", ".price-item--sale"),
        availability_selectors=(".availability", ".stock", ".lagerbestand", ".product-form__inventory"),
    ),
    ExtractionRule(
        domain="prusa3d.com",
        price_selectors=(".price", ".product-price", ".current-price", ".amount"),
        availability_selectors=(".availability", ".stock-status", ".in-stock"),
    ),
    ExtractionRule(
        domain="eu.mouser.com",
        price_selectors=(".price", ".product-price", ".current-price", "[data-price]", ".pdp-pricing-table td"),
        availability_selectors=(".availability", ".stock-level", ".in-stock", ".pdp-product-availability"),
    ),
]


def build_default_rule_provider() -> MapRuleProvider:
    """Create a registry holding the built-in vendor rules."""
    provider = MapRuleProvider()
    for rule in DEFAULT_RULES:
        try:
            provider.register(rule)
        except ValueError as e:
            logger.error("extraction_rule_registration_failed", domain=rule.domain, error=str(e))

    logger.info(
        "extraction_rules_registered",
        count=len(provider.domains()),
        domains=provider.domains(),
    )
    return provider
