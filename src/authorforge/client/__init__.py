"""Supporting components for provider calls: classification, retry, throttling."""

from .configuration import RateLimitConfig
from .error_handler import GenerationErrorHandler, classify_error, is_transient
from .rate_limiter import RateLimiter
from .retry import RetryPolicy, default_should_retry, run_with_retry

__all__ = [  # noqa: RUF022
    # Configuration
    "RateLimitConfig",
    "RetryPolicy",
    # Components
    "GenerationErrorHandler",
    "RateLimiter",
    # Functions
    "classify_error",
    "default_should_retry",
    "is_transient",
    "run_with_retry",
]
