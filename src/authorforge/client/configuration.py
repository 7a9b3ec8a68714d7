"""
Client configuration for provider request throttling
"""

from dataclasses import dataclass

from ..constants import FALLBACK_REQUESTS_PER_MINUTE, RATE_LIMIT_WINDOW


@dataclass(frozen=True)
class RateLimitConfig:
    """Rate limiting parameters for provider request throttling"""

    requests_per_minute: int = FALLBACK_REQUESTS_PER_MINUTE
    window_seconds: int = RATE_LIMIT_WINDOW

    def __post_init__(self) -> None:
        if self.requests_per_minute < 1:
            raise ValueError(
                f"requests_per_minute must be >= 1, got {self.requests_per_minute}"
            )
        if self.window_seconds <= 0:
            raise ValueError(f"window_seconds must be > 0, got {self.window_seconds}")
