"""Bounded exponential-backoff retry for provider calls"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
import dataclasses
import logging

from ..constants import MAX_ATTEMPTS, RETRY_BASE_DELAY, RETRY_MAX_DELAY
from ..core.types import ErrorKind
from .error_handler import classify_error, is_transient

log = logging.getLogger(__name__)


@dataclasses.dataclass(frozen=True, slots=True)
class RetryPolicy:
    """Attempt budget and backoff curve for one logical operation."""

    max_attempts: int = MAX_ATTEMPTS
    base_delay: float = RETRY_BASE_DELAY
    max_delay: float = RETRY_MAX_DELAY

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError(f"max_attempts must be >= 1, got {self.max_attempts}")
        if self.base_delay < 0 or self.max_delay < 0:
            raise ValueError("delays must be non-negative")

    def delay_for(self, attempt: int) -> float:
        """Delay before the retry that follows zero-based ``attempt``."""
        return min(self.base_delay * (2**attempt), self.max_delay)


def default_should_retry(kind: ErrorKind) -> bool:
    """Retry only failures that may clear up on their own."""
    return is_transient(kind)


async def run_with_retry[T](
    operation: Callable[[], Awaitable[T]],
    policy: RetryPolicy | None = None,
    should_retry: Callable[[ErrorKind], bool] = default_should_retry,
    *,
    classify: Callable[[BaseException], ErrorKind] = classify_error,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
) -> T:
    """Run ``operation`` until it succeeds or the attempt budget is spent.

    Args:
        operation: Zero-argument coroutine factory; called once per attempt.
        policy: Attempt budget and backoff. Defaults to ``RetryPolicy()``.
        should_retry: Decides whether a classified failure is worth retrying.
        classify: Maps a raised exception to an ``ErrorKind``.
        sleep: Awaitable sleep, injectable for tests.

    Returns:
        The value of the first successful attempt.

    Raises:
        Exception: The last error, once retries are exhausted or the failure
            is not retryable.
    """
    policy = policy or RetryPolicy()
    attempt = 0
    while True:
        try:
            return await operation()
        except Exception as error:
            kind = classify(error)
            if attempt < policy.max_attempts - 1 and should_retry(kind):
                delay = policy.delay_for(attempt)
                log.warning(
                    "Call failed with retryable error (%s). Retrying in %.2fs (Attempt %d/%d)",
                    kind,
                    delay,
                    attempt + 2,
                    policy.max_attempts,
                )
                await sleep(delay)
                attempt += 1
                continue
            log.debug(
                "Not retrying after attempt %d/%d (%s)",
                attempt + 1,
                policy.max_attempts,
                kind,
            )
            raise
