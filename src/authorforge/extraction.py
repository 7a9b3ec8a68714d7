"""Best-effort recovery of JSON values from noisy model output.

Generative models routinely wrap JSON in markdown fences, surround it with
explanatory prose, or truncate long responses mid-value. ``extract_json``
applies three escalating strategies and returns the first value it can parse,
or ``None``. It never raises.

1. Whole text: the trimmed text is itself a JSON document.
2. Fenced block: the interior of the first triple-backtick block.
3. Bracket scan: a single pass from the first ``{`` or ``[`` that tracks
   string state and a bracket stack, parsing each balanced candidate and
   keeping the last one that parsed.
"""

from __future__ import annotations

from enum import Enum, auto
import json
import logging
import re
from typing import Any

from authorforge.core.types import Failure, Result, Success
from authorforge.exceptions import MalformedResponseError

log = logging.getLogger(__name__)

_FENCED_BLOCK = re.compile(r"```(?:json)?\s*([\s\S]*?)\s*```", re.IGNORECASE)
_SCALAR_LITERAL = re.compile(r'^(?:-?\d|"|true$|false$|null$)')
_CLOSERS = {"}": "{", "]": "["}


class _ScanState(Enum):
    NORMAL = auto()
    IN_STRING = auto()


def _loads(candidate: str) -> tuple[bool, Any]:
    try:
        return True, json.loads(candidate)
    except (json.JSONDecodeError, RecursionError):
        return False, None


def _looks_whole(text: str) -> bool:
    if (text.startswith("{") and text.endswith("}")) or (
        text.startswith("[") and text.endswith("]")
    ):
        return True
    return bool(_SCALAR_LITERAL.match(text))


def _parse_whole(text: str) -> tuple[bool, Any]:
    if not _looks_whole(text):
        return False, None
    return _loads(text)


def _parse_fenced(text: str) -> tuple[bool, Any]:
    match = _FENCED_BLOCK.search(text)
    if match is None or not match.group(1):
        return False, None
    return _loads(match.group(1).strip())


def _scan_balanced(text: str) -> Any | None:
    """Return the last balanced candidate that parsed before the scan stopped."""
    starts = [i for i in (text.find("{"), text.find("[")) if i != -1]
    if not starts:
        return None
    start = min(starts)

    state = _ScanState.NORMAL
    stack: list[str] = []
    last_good: Any | None = None
    i = start
    length = len(text)

    while i < length:
        char = text[i]

        if state is _ScanState.IN_STRING:
            if char == "\\":
                i += 2  # the escaped character cannot close the string
                continue
            if char == '"':
                state = _ScanState.NORMAL
            i += 1
            continue

        if char == '"':
            state = _ScanState.IN_STRING
        elif char in "{[":
            stack.append(char)
        elif char in _CLOSERS:
            if not stack or stack[-1] != _CLOSERS[char]:
                # Malformed beyond this point
                return last_good
            stack.pop()
            if not stack:
                ok, value = _loads(text[start : i + 1])
                if not ok:
                    return last_good
                last_good = value
        i += 1

    return last_good


def extract_json(text: str | None) -> Any | None:
    """Recover a JSON value from ``text``.

    Args:
        text: Raw model output, possibly ``None``.

    Returns:
        The parsed value, or ``None`` when no parseable structure exists.
    """
    if not text:
        return None
    trimmed = text.strip()
    if not trimmed:
        return None

    for strategy in (_parse_whole, _parse_fenced):
        ok, value = strategy(trimmed)
        if ok:
            return value

    value = _scan_balanced(trimmed)
    if value is None:
        log.debug("No JSON structure recovered from %d chars of text", len(trimmed))
    return value


def extract_as[T](text: str | None, expected: type[T]) -> T | None:
    """Like ``extract_json`` but only returns values of type ``expected``."""
    value = extract_json(text)
    return value if isinstance(value, expected) else None


def require_json(text: str | None) -> Result[Any, MalformedResponseError]:
    """Extract JSON for callers that cannot proceed without structured data."""
    value = extract_json(text)
    if value is None:
        return Failure(
            MalformedResponseError(
                "Response did not contain a parseable JSON value",
                raw_text=text,
            )
        )
    return Success(value)
