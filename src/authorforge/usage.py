"""Token estimation and process-lifetime usage accounting."""

from __future__ import annotations

import logging
import math
import threading
from typing import Any

import tiktoken

from authorforge.constants import CHARS_PER_TOKEN, DEFAULT_TOKENIZER_ENCODING
from authorforge.core.types import UsageCategory, UsageSnapshot

log = logging.getLogger(__name__)


class TokenEstimator:
    """Approximate token counts for prompts and responses.

    Uses a ``tiktoken`` encoding as a reasonable approximation for Gemini and
    local chat models. The encoding is loaded lazily on first use; if it
    cannot be loaded (for instance when the BPE file cannot be fetched) or
    encoding fails, counts fall back to ``ceil(len(text) / 4)``.
    """

    def __init__(self, encoding_name: str | None = DEFAULT_TOKENIZER_ENCODING):
        """Create an estimator.

        Args:
            encoding_name: tiktoken encoding to use. ``None`` disables the
                tokenizer and always uses the length heuristic.
        """
        self.encoding_name = encoding_name
        self._encoding: Any | None = None
        self._encoding_failed = encoding_name is None
        self._lock = threading.Lock()

    @staticmethod
    def heuristic(text: str) -> int:
        return math.ceil(len(text) / CHARS_PER_TOKEN)

    def _get_encoding(self) -> Any | None:
        if self._encoding_failed:
            return None
        if self._encoding is None:
            with self._lock:
                if self._encoding is None and not self._encoding_failed:
                    try:
                        self._encoding = tiktoken.get_encoding(self.encoding_name)
                    except Exception as e:
                        log.warning(
                            "Could not load tokenizer '%s', falling back to estimation: %s",
                            self.encoding_name,
                            e,
                        )
                        self._encoding_failed = True
        return self._encoding

    @property
    def exact(self) -> bool:
        """Whether counts currently come from a real tokenizer."""
        return self._get_encoding() is not None

    def estimate(self, text: str | None) -> int:
        """Estimate the number of tokens in ``text``."""
        if not text:
            return 0
        encoding = self._get_encoding()
        if encoding is not None:
            try:
                return len(encoding.encode(text, disallowed_special=()))
            except Exception as e:
                log.debug("Token encoding failed, using heuristic: %s", e)
        return self.heuristic(text)

    def estimate_exchange(self, prompt: str | None, response: str | None) -> int:
        """Tokens for one request/response pair."""
        return self.estimate(prompt) + self.estimate(response)


class UsageLedger:
    """Append-only token counters, safe for concurrent increments.

    Counters are never decremented; a new ledger starts at zero.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._total = 0
        self._by_category: dict[str, int] = {c.value: 0 for c in UsageCategory}

    def record(self, category: UsageCategory | str, tokens: int) -> None:
        """Add ``tokens`` to ``category`` and to the total."""
        if tokens < 0:
            raise ValueError(f"tokens must be >= 0, got {tokens}")
        key = UsageCategory(category).value
        with self._lock:
            self._total += tokens
            self._by_category[key] += tokens
        log.debug("Recorded %d tokens under '%s'", tokens, key)

    @property
    def total(self) -> int:
        with self._lock:
            return self._total

    def snapshot(self) -> UsageSnapshot:
        with self._lock:
            return UsageSnapshot(total=self._total, by_category=dict(self._by_category))
