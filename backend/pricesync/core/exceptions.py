"""Custom exception classes for the price sync engine."""

from enum import Enum


class ErrorKind(str, Enum):
    """Failure categories carried by ScrapeFailure outcomes."""

    TIMEOUT = "timeout"
    NETWORK = "network"
    BLOCKED = "blocked"
    UNSUPPORTED_DOMAIN = "unsupported_domain"
    PRICE_NOT_FOUND = "price_not_found"
    INVALID_URL = "invalid_url"
    INTERNAL = "internal"
    CANCELLED = "cancelled"


class PriceSyncException(Exception):
    """Base exception for all price sync errors."""

    def __init__(self, message: str = "An unexpected error occurred"):
        self.message = message
        super().__init__(self.message)


class NotFoundError(PriceSyncException):
    """Raised when a requested resource is not found."""

    def __init__(self, resource: str, identifier: str):
        self.resource = resource
        self.identifier = identifier
        super().__init__(f"{resource} with identifier '{identifier}' not found")


class ScrapeError(PriceSyncException):
    """Base class for errors raised while scraping a single product page.

    Subclasses set ``kind`` and ``retryable``; the retry policy only
    retries errors whose ``retryable`` flag is set.
    """

    kind: ErrorKind = ErrorKind.INTERNAL
    retryable: bool = False

    def __init__(self, message: str, url: str | None = None):
        self.url = url
        super().__init__(message)


class TransportError(ScrapeError):
    """Page could not be retrieved (timeout or network failure)."""

    kind = ErrorKind.NETWORK
    retryable = True


class FetchTimeoutError(TransportError):
    """Page retrieval exceeded its timeout."""

    kind = ErrorKind.TIMEOUT


class NetworkError(TransportError):
    """Connection, DNS or browser-level navigation failure."""

    kind = ErrorKind.NETWORK


class NavigationBlockedError(ScrapeError):
    """The vendor served an anti-automation page (captcha, 403, 429)."""

    kind = ErrorKind.BLOCKED
    retryable = True


class UnsupportedDomainError(ScrapeError):
    """No extraction rule is registered for a domain."""

    kind = ErrorKind.UNSUPPORTED_DOMAIN

    def __init__(self, domain: str):
        self.domain = domain
        super().__init__(f"No extraction rule registered for domain '{domain}'")


class PriceNotFoundError(ScrapeError):
    """The page loaded but no selector or fallback yielded a price."""

    kind = ErrorKind.PRICE_NOT_FOUND


class InvalidURLError(ScrapeError):
    """The product source URL is malformed or missing."""

    kind = ErrorKind.INVALID_URL


class ScrapeFailedError(PriceSyncException):
    """Raised by the cache when a key has never been scraped successfully."""

    def __init__(self, failure):
        self.failure = failure
        super().__init__(
            f"Price for '{failure.product_key}' unavailable: "
            f"{failure.error_kind.value} after {failure.attempts_made} attempt(s)"
        )
