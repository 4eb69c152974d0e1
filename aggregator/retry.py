"""
Retry wrapper for upstream fact and group fetches.

Applied by the calling layer around ``fetch_facts`` / ``fetch_groups``; the
engine never retries anything. Transient failures (timeouts, dropped
connections, database operational errors) back off exponentially with jitter while
other retryable failures wait a constant delay. Non-retryable ``FetchError``s
and any other exception are raised immediately.
"""
import asyncio
import logging
import random
from typing import Awaitable, Callable, Optional, TypeVar

from sqlalchemy.exc import OperationalError

from .errors import FetchError

logger = logging.getLogger(__name__)

T = TypeVar("T")

TRANSIENT_ERRORS = (asyncio.TimeoutError, TimeoutError, ConnectionError, OperationalError)


class RetryPolicy:
    """Bounded retry with backoff chosen per error class."""

    def __init__(
        self,
        max_attempts: int = 3,
        initial_delay: float = 1.0,
        max_delay: float = 30.0,
        backoff_factor: float = 2.0,
        jitter: float = 0.5,
        sleep: Optional[Callable[[float], Awaitable[None]]] = None,
    ):
        self.max_attempts = max(1, max_attempts)
        self.initial_delay = initial_delay
        self.max_delay = max_delay
        self.backoff_factor = backoff_factor
        self.jitter = jitter
        self._sleep = sleep or asyncio.sleep

    def delay_for(self, attempt: int, error: Exception) -> float:
        """
        Seconds to wait after a failed attempt.

        Args:
            attempt: 1-based number of the attempt that just failed
            error: Failure raised by that attempt

        Returns:
            Delay in seconds, capped at ``max_delay``
        """
        if isinstance(error, TRANSIENT_ERRORS):
            delay = self.initial_delay * (self.backoff_factor ** (attempt - 1))
            delay += random.uniform(0, self.jitter)
        else:
            delay = self.initial_delay
        return min(delay, self.max_delay)

    async def run(self, operation: Callable[[], Awaitable[T]], description: str) -> T:
        """
        Run an async operation until it succeeds or attempts run out.

        Only transient errors and retryable ``FetchError``s are retried; any
        other exception propagates unchanged from the first attempt.

        Raises:
            FetchError: When every attempt failed or the failure is not retryable
        """
        attempt = 0
        while True:
            try:
                return await operation()
            except FetchError as e:
                if not e.retryable:
                    logger.error(f"{description} failed permanently: {e}")
                    raise
                last_error = e
            except TRANSIENT_ERRORS as e:
                last_error = e

            attempt += 1
            if attempt >= self.max_attempts:
                logger.error(f"{description} failed after {attempt} attempts: {last_error}")
                raise FetchError(
                    f"{description} failed after {attempt} attempts: {last_error}",
                    retryable=False,
                ) from last_error

            delay = self.delay_for(attempt, last_error)
            logger.warning(
                f"{description} attempt {attempt}/{self.max_attempts} failed, retrying in {delay:.1f}s: {last_error}"
            )
            await self._sleep(delay)


async def retry_operation(
    operation: Callable[[], Awaitable[T]],
    description: str,
    policy: Optional[RetryPolicy] = None,
) -> T:
    """Run ``operation`` under ``policy`` (default policy when omitted)."""
    return await (policy or RetryPolicy()).run(operation, description)
