"""
Retry policy for external AI and automation calls.

Transient failures (timeouts, connection errors, rate limiting, server
errors) are retried with exponential backoff. Everything else is terminal
and raised on the first attempt.
"""

import logging
import time
from dataclasses import dataclass
from typing import Callable, Optional, TypeVar

import httpx
import openai

logger = logging.getLogger(__name__)

T = TypeVar("T")

RETRYABLE_STATUS_CODES = frozenset({408, 429, 500, 502, 503, 504})


@dataclass(frozen=True)
class RetryPolicy:
    """Exponential backoff schedule, delays in seconds."""
    max_attempts: int = 3
    base_delay: float = 1.0
    max_delay: float = 10.0
    backoff_multiplier: float = 2.0

    def __post_init__(self):
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")
        if self.base_delay < 0:
            raise ValueError("base_delay cannot be negative")
        if self.max_delay < self.base_delay:
            raise ValueError("max_delay must be >= base_delay")
        if self.backoff_multiplier < 1:
            raise ValueError("backoff_multiplier must be >= 1")

    def delay_for(self, attempt: int) -> float:
        """Delay after the given failed attempt (1-based)."""
        return min(self.base_delay * self.backoff_multiplier ** (attempt - 1), self.max_delay)


def is_retryable(error: BaseException) -> bool:
    """Classify an exception as transient (retry) or terminal."""
    if isinstance(error, (openai.APIConnectionError, openai.RateLimitError)):
        return True
    if isinstance(error, openai.APIStatusError):
        return error.status_code in RETRYABLE_STATUS_CODES
    if isinstance(error, httpx.HTTPStatusError):
        return error.response.status_code in RETRYABLE_STATUS_CODES
    if isinstance(error, (httpx.TimeoutException, httpx.TransportError)):
        return True
    return isinstance(error, (TimeoutError, ConnectionError))


def call_with_retry(
    operation: Callable[[], T],
    policy: Optional[RetryPolicy] = None,
    sleep: Callable[[float], None] = time.sleep,
    description: str = "operation",
) -> T:
    """Run operation, retrying transient failures according to policy.

    Raises:
        The last exception once attempts are exhausted, or the first
        terminal exception
    """
    policy = policy or RetryPolicy()
    for attempt in range(1, policy.max_attempts + 1):
        try:
            return operation()
        except Exception as e:
            if not is_retryable(e) or attempt == policy.max_attempts:
                logger.error(
                    "%s failed on attempt %d/%d: %s",
                    description, attempt, policy.max_attempts, e,
                )
                raise
            delay = policy.delay_for(attempt)
            logger.warning(
                "%s failed on attempt %d/%d, retrying in %.1fs: %s",
                description, attempt, policy.max_attempts, delay, e,
            )
            sleep(delay)
