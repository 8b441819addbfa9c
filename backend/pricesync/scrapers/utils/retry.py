"""Retry policy with exponential backoff and identity rotation.

Wraps one single-product scrape. Every attempt is preceded by a randomized
pacing delay and runs under a fresh identity. Transport errors and
navigation blocks are retried with ``2^attempt * base_delay`` backoff;
everything else ends the loop at once. The result is always a
ScrapeOutcome: failures are returned as data, never raised.
"""

import asyncio
import random
from typing import Awaitable, Callable, Optional, Tuple

import structlog
from tenacity import (
    AsyncRetrying,
    RetryCallState,
    RetryError,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
)

from pricesync.core.exceptions import ErrorKind, ScrapeError
from pricesync.scrapers.base import (
    PriceQuote,
    ScrapeFailure,
    ScrapeOutcome,
    ScrapeSuccess,
)
from pricesync.scrapers.utils.identity import Identity, IdentityRotator


logger = structlog.get_logger(__name__)

AttemptFn = Callable[[Identity], Awaitable[PriceQuote]]
SleepFn = Callable[[float], Awaitable[None]]


def is_retryable(exc: BaseException) -> bool:
    """Only transport-class errors and navigation blocks are retried."""
    return isinstance(exc, ScrapeError) and exc.retryable


class RetryPolicy:
    """Bounded retries for a single scrape.

    Attempt n (1-based) that fails with a retryable error is followed by a
    ``2^n * base_delay`` wait, so with the defaults the waits are 2s and 4s
    between three attempts. No wait follows the last attempt.
    """

    def __init__(
        self,
        max_attempts: int = 3,
        base_delay: float = 1.0,
        delay_range: Tuple[float, float] = (2.0, 5.0),
        identities: Optional[IdentityRotator] = None,
        sleep: SleepFn = asyncio.sleep,
        rng: Optional[random.Random] = None,
    ):
        if max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")
        if delay_range[0] > delay_range[1]:
            raise ValueError("delay_range must be (min, max)")
        self.max_attempts = max_attempts
        self.base_delay = base_delay
        self.delay_range = delay_range
        self._identities = identities or IdentityRotator()
        self._sleep = sleep
        self._rng = rng or random.Random()

    def backoff_for(self, attempt_number: int) -> float:
        """Wait applied after failed attempt ``attempt_number``."""
        return (2 ** attempt_number) * self.base_delay

    async def pace(self) -> None:
        """Randomized delay applied before every attempt."""
        await self._sleep(self._rng.uniform(*self.delay_range))

    def _retrying(self, product_key: str) -> AsyncRetrying:
        def log_retry(retry_state: RetryCallState) -> None:
            exc = retry_state.outcome.exception() if retry_state.outcome else None
            logger.warning(
                "scrape_retry_scheduled",
                product_key=product_key,
                attempt=retry_state.attempt_number,
                wait_seconds=retry_state.next_action.sleep if retry_state.next_action else None,
                error_kind=getattr(getattr(exc, "kind", None), "value", None),
                error=str(exc),
            )

        return AsyncRetrying(
            stop=stop_after_attempt(self.max_attempts),
            # multiplier * 2^(n-1) == 2^n * base_delay
            wait=wait_exponential(multiplier=self.base_delay * 2, exp_base=2),
            retry=retry_if_exception(is_retryable),
            before_sleep=log_retry,
            sleep=self._sleep,
            reraise=False,
        )

    async def run(
        self, product_key: str, source_url: Optional[str], attempt_fn: AttemptFn
    ) -> ScrapeOutcome:
        """Run ``attempt_fn`` until it succeeds or the policy gives up.

        Args:
            product_key: Product being scraped (for outcomes and logs)
            source_url: Source URL recorded on failures
            attempt_fn: Coroutine function performing one attempt with the
                given identity and returning a PriceQuote

        Returns:
            ScrapeSuccess, or ScrapeFailure carrying the last error
        """
        attempts = 0
        quote: Optional[PriceQuote] = None

        try:
            async for attempt in self._retrying(product_key):
                with attempt:
                    attempts = attempt.retry_state.attempt_number
                    await self.pace()
                    quote = await attempt_fn(self._identities.next())
        except RetryError as e:
            return self._failure(product_key, source_url, e.last_attempt.exception(), attempts)
        except ScrapeError as e:
            return self._failure(product_key, source_url, e, attempts)
        except Exception as e:
            logger.error(
                "scrape_attempt_crashed",
                product_key=product_key,
                error=str(e),
                exc_info=True,
            )
            return ScrapeFailure(
                product_key=product_key,
                error_kind=ErrorKind.INTERNAL,
                message=str(e) or type(e).__name__,
                attempts_made=attempts,
                source_url=source_url,
            )

        logger.info(
            "scrape_succeeded",
            product_key=product_key,
            price=str(quote.price),
            currency=quote.currency,
            availability=quote.availability.value,
            attempts=attempts,
        )
        return ScrapeSuccess(quote=quote, attempts_made=attempts)

    def _failure(
        self,
        product_key: str,
        source_url: Optional[str],
        error: BaseException,
        attempts: int,
    ) -> ScrapeFailure:
        kind = error.kind if isinstance(error, ScrapeError) else ErrorKind.INTERNAL
        logger.warning(
            "scrape_failed",
            product_key=product_key,
            error_kind=kind.value,
            error=str(error),
            attempts=attempts,
        )
        return ScrapeFailure(
            product_key=product_key,
            error_kind=kind,
            message=str(error),
            attempts_made=attempts,
            source_url=source_url,
        )
