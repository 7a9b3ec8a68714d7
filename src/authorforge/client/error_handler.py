"""Error classification and user-facing messages for provider failures"""

from __future__ import annotations

import logging
from typing import Any

import httpx

from ..core.types import ErrorKind
from ..exceptions import ProviderError

log = logging.getLogger(__name__)

_RATE_LIMIT_TERMS = (
    "429",
    "rate limit",
    "quota",
    "resource_exhausted",
    "too many requests",
)
_CREDENTIAL_TERMS = (
    "api key not valid",
    "invalid api key",
    "api_key_invalid",
    "unauthenticated",
    "unauthorized",
    "permission denied",
)
_NETWORK_TERMS = (
    "timeout",
    "timed out",
    "offline",
    "dns",
    "name resolution",
    "network",
    "connection refused",
    "connection reset",
    "unreachable",
    "temporarily unavailable",
    "service unavailable",
)
_NETWORK_STATUSES = frozenset({500, 502, 503, 504})
_CREDENTIAL_STATUSES = frozenset({401, 403})


def _status_of(error: Any) -> int | None:
    """Best-effort HTTP status lookup across SDK and transport errors."""
    candidates = (
        getattr(error, "code", None),
        getattr(error, "status_code", None),
        getattr(getattr(error, "response", None), "status_code", None),
    )
    for value in candidates:
        if isinstance(value, int) and not isinstance(value, bool):
            return value
    return None


def classify_error(error: BaseException | str, status: int | None = None) -> ErrorKind:
    """Map a provider failure to an ``ErrorKind``.

    Args:
        error: The raised exception, or its message.
        status: HTTP status if the caller already knows it.

    Returns:
        ``RateLimited``, ``InvalidCredential``, ``NetworkFailure`` or ``Unknown``;
        a ``ProviderError`` keeps the kind it was raised with.
    """
    if isinstance(error, ProviderError):
        return error.kind

    if status is None and not isinstance(error, str):
        status = _status_of(error)
    text = str(error).lower()

    if status == 429 or any(term in text for term in _RATE_LIMIT_TERMS):
        return ErrorKind.RATE_LIMITED
    if status in _CREDENTIAL_STATUSES or any(
        term in text for term in _CREDENTIAL_TERMS
    ):
        return ErrorKind.INVALID_CREDENTIAL
    if isinstance(error, (TimeoutError, ConnectionError, httpx.TransportError)):
        return ErrorKind.NETWORK_FAILURE
    if status in _NETWORK_STATUSES or any(term in text for term in _NETWORK_TERMS):
        return ErrorKind.NETWORK_FAILURE
    return ErrorKind.UNKNOWN


def is_transient(kind: ErrorKind) -> bool:
    return kind in (ErrorKind.RATE_LIMITED, ErrorKind.NETWORK_FAILURE)


class GenerationErrorHandler:
    """Turns terminal provider failures into readable markdown for the UI"""

    def describe(
        self,
        error_kind: ErrorKind,
        error: BaseException | str,
        provider_label: str = "Gemini",
    ) -> str:
        """Transform a classified failure into an informative message"""
        if error_kind is ErrorKind.RATE_LIMITED:
            return (
                f"### {provider_label} API Error: Rate Limit Exceeded\n"
                f"Your request has been rate-limited by {provider_label}.\n\n"
                "**Details:**\n"
                f"- Please wait a few moments and try again, or check your "
                f"{provider_label} plan and billing details.\n"
                "- To monitor usage, visit: https://ai.dev/usage"
            )
        if error_kind is ErrorKind.CONFIGURATION_MISSING:
            return str(error)

        hint = {
            ErrorKind.INVALID_CREDENTIAL: (
                f"Check that your {provider_label} API key is valid in "
                "Settings > AI Configuration."
            ),
            ErrorKind.NETWORK_FAILURE: "Check your internet connection and try again.",
            ErrorKind.MALFORMED_RESPONSE: (
                "The model returned output that could not be parsed. Try again."
            ),
        }.get(
            error_kind,
            f"Check your internet connection and {provider_label} API key validity.",
        )
        return (
            "### AI Provider Error\n"
            f"Could not get a response from {provider_label}.\n\n"
            "**Details:**\n"
            f"- Kind: `{error_kind}`\n"
            f"- Error: `{error}`\n\n"
            "**Troubleshooting:**\n"
            f"1. {hint}"
        )

    def to_provider_error(
        self,
        error: BaseException,
        provider_label: str = "Gemini",
        *,
        kind: ErrorKind | None = None,
    ) -> ProviderError:
        """Classify ``error`` and wrap it with its user-facing message."""
        if (
            isinstance(error, ProviderError)
            and kind is None
            and error.user_message != str(error)
        ):
            return error
        resolved = kind or classify_error(error)
        return ProviderError(
            str(error),
            resolved,
            user_message=self.describe(resolved, error, provider_label),
        )
