"""Reusable retry policy for provider calls.

One policy object (max attempts, exponential base delay, cap, jitter and a
retryable-error predicate) is applied uniformly to embedding and generation
requests instead of ad hoc nested try/except blocks.
"""

import asyncio
import logging
import random
from typing import Any, Awaitable, Callable, TypeVar

from shared.exceptions.RAGErrors import ProviderError
from shared.helper.HelperConfig import HelperConfig

T = TypeVar("T")


def is_retryable_provider_error(error: BaseException) -> bool:
    """Default predicate: only transient provider failures are retried.

    Args:
        error (BaseException): The exception raised by the attempt.

    Returns:
        bool: True for ProviderError instances flagged as retryable
              (timeouts, transport errors, HTTP 429 and 5xx).
    """
    return isinstance(error, ProviderError) and error.retryable


class RetryPolicy:
    """Bounded exponential backoff with jitter.

    The delay before retry n (1-based) is
    ``min(base_delay * 2 ** (n - 1) + uniform(0, jitter), max_delay)``.

    Attributes:
        max_attempts: Total attempts including the first one.
        base_delay:   Delay in seconds before the first retry.
        max_delay:    Upper bound of any single delay in seconds.
        jitter:       Upper bound of the random delay added to each backoff.
    """

    def __init__(
        self,
        logger: logging.Logger,
        max_attempts: int = 3,
        base_delay: float = 1.0,
        max_delay: float = 30.0,
        jitter: float = 1.0,
        is_retryable: Callable[[BaseException], bool] = is_retryable_provider_error,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> None:
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1.")
        self.logging = logger
        self.max_attempts = max_attempts
        self.base_delay = base_delay
        self.max_delay = max_delay
        self.jitter = jitter
        self._is_retryable = is_retryable
        self._sleep = sleep

    @classmethod
    def from_config(cls, helper_config: HelperConfig, **overrides: Any) -> "RetryPolicy":
        """Build a policy from RETRY_* environment variables.

        Args:
            helper_config (HelperConfig): Configuration source.
            **overrides: Keyword arguments that take precedence over the environment
                         (e.g. ``sleep`` in tests).

        Returns:
            RetryPolicy: The configured policy.
        """
        kwargs: dict[str, Any] = {
            "max_attempts": int(helper_config.get_positive_number_val("RETRY_MAX_ATTEMPTS", default=3)),
            "base_delay": float(helper_config.get_number_val("RETRY_BASE_DELAY", default=1.0)),
            "max_delay": float(helper_config.get_number_val("RETRY_MAX_DELAY", default=30.0)),
            "jitter": float(helper_config.get_number_val("RETRY_JITTER", default=1.0)),
        }
        kwargs.update(overrides)
        return cls(logger=helper_config.get_logger(), **kwargs)

    def compute_delay(self, retry_number: int) -> float:
        """Return the backoff delay in seconds before the given retry (1-based)."""
        exponential = self.base_delay * (2 ** (retry_number - 1))
        return min(exponential + random.uniform(0, self.jitter), self.max_delay)

    async def run(self, operation: Callable[[], Awaitable[T]], description: str = "provider call") -> T:
        """Run an async operation, retrying transient failures.

        Args:
            operation (Callable[[], Awaitable[T]]): Zero-argument coroutine factory;
                called once per attempt.
            description (str): Short label used in log lines.

        Returns:
            T: The result of the first successful attempt.

        Raises:
            Exception: The last error, once it is not retryable or attempts are exhausted.
        """
        attempt = 1
        while True:
            try:
                result = await operation()
            except Exception as exc:
                if not self._is_retryable(exc):
                    self.logging.warning("%s failed with a non-retryable error: %s", description, exc)
                    raise
                if attempt >= self.max_attempts:
                    self.logging.warning(
                        "%s failed after %d attempt(s), giving up: %s", description, attempt, exc
                    )
                    raise
                delay = self.compute_delay(attempt)
                self.logging.warning(
                    "%s failed (attempt %d/%d): %s. Retrying in %.2fs.",
                    description, attempt, self.max_attempts, exc, delay,
                )
                await self._sleep(delay)
                attempt += 1
                continue
            if attempt > 1:
                self.logging.info("%s succeeded on attempt %d.", description, attempt)
            return result
