"""Exceptions for the AuthorForge AI orchestration core."""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from authorforge.core.types import ErrorKind


class AuthorForgeError(Exception):
    """Base exception for AuthorForge orchestration errors."""


class ConfigurationError(AuthorForgeError):
    """Raised when settings cannot be resolved into a usable configuration."""


class ValidationError(AuthorForgeError, ValueError):
    """Raised when a core record is built from invalid values."""


class ProviderError(AuthorForgeError):
    """A terminal provider failure tagged with exactly one ErrorKind.

    ``user_message`` is the readable, markdown-formatted text the UI renders
    in place of a response. It defaults to the technical message.
    """

    def __init__(
        self,
        message: str,
        kind: ErrorKind,
        *,
        user_message: str | None = None,
    ) -> None:
        super().__init__(message)
        self.kind = kind
        self.user_message = user_message or message

    def __repr__(self) -> str:
        return f"{type(self).__name__}(kind={self.kind.value!r}, message={str(self)!r})"


class MalformedResponseError(ProviderError):
    """Raised when structured data was required but none could be extracted."""

    def __init__(self, message: str, *, raw_text: str | None = None) -> None:
        from authorforge.core.types import ErrorKind

        super().__init__(message, ErrorKind.MALFORMED_RESPONSE)
        self.raw_text = raw_text
