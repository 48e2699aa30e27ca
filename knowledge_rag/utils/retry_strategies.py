"""
Retry Strategies for Embedding API Calls

Exponential backoff built on tenacity. The decorator works on both plain and
async functions: tenacity awaits coroutines between attempts.
"""

import logging
from typing import Optional

from tenacity import (
    before_sleep_log,
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

logger = logging.getLogger(__name__)


class RetryConfig:
    """Configuration for retry strategies."""

    def __init__(
        self,
        max_attempts: int = 3,
        initial_delay: float = 1.0,
        max_delay: float = 60.0,
        retryable_exceptions: tuple = (Exception,),
    ):
        """
        Initialize retry configuration.

        Args:
            max_attempts: Maximum number of attempts, including the first call
            initial_delay: Initial delay in seconds
            max_delay: Maximum delay in seconds
            retryable_exceptions: Tuple of exceptions that should trigger retry
        """
        self.max_attempts = max_attempts
        self.initial_delay = initial_delay
        self.max_delay = max_delay
        self.retryable_exceptions = retryable_exceptions


def create_retry_decorator(config: Optional[RetryConfig] = None):
    """
    Create a tenacity retry decorator from a RetryConfig.

    The final failure is re-raised unchanged so callers can apply their own
    fallback.
    """
    if config is None:
        config = RetryConfig()

    return retry(
        stop=stop_after_attempt(config.max_attempts),
        wait=wait_exponential(
            multiplier=config.initial_delay,
            min=config.initial_delay,
            max=config.max_delay,
        ),
        retry=retry_if_exception_type(config.retryable_exceptions),
        before_sleep=before_sleep_log(logger, logging.WARNING),
        reraise=True,
    )
