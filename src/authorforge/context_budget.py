"""Context-window budgeting for large documents.

Manuscripts routinely exceed what a provider can accept in one prompt. The
budgeter trades source fidelity for a response at all: sections over the
per-section limit are replaced by their summary plus a short excerpt, or by a
head/tail excerpt around an omission marker.
"""

from __future__ import annotations

from collections.abc import Iterable
import dataclasses
import logging
import math
from typing import TYPE_CHECKING

from authorforge.constants import (
    CHARS_PER_TOKEN,
    LOCAL_EXCERPT_CHARS,
    LOCAL_HEAD_CHARS,
    LOCAL_SECTION_LIMIT,
    LOCAL_TAIL_CHARS,
    MIN_SECTION_CHARS,
    OMITTED_MARKER,
    REMOTE_EXCERPT_CHARS,
    REMOTE_HEAD_CHARS,
    REMOTE_SECTION_LIMIT,
    REMOTE_TAIL_CHARS,
    TRUNCATED_MARKER,
)
from authorforge.core.types import ProviderKind, Section

if TYPE_CHECKING:
    from authorforge.usage import TokenEstimator

log = logging.getLogger(__name__)


@dataclasses.dataclass(frozen=True, slots=True)
class ContextBudget:
    """Character limits applied to each section of a document."""

    per_section_chars: int
    head_chars: int
    tail_chars: int
    excerpt_chars: int

    def __post_init__(self) -> None:
        for name in ("per_section_chars", "head_chars", "tail_chars", "excerpt_chars"):
            value = getattr(self, name)
            if not isinstance(value, int) or value < 0:
                raise ValueError(f"{name}: must be an int >= 0, got {value!r}")

    @classmethod
    def for_provider(cls, kind: ProviderKind) -> ContextBudget:
        """Preset reflecting the context window of each provider family."""
        if ProviderKind(kind) is ProviderKind.LOCAL_EMBEDDED:
            return cls(
                LOCAL_SECTION_LIMIT, LOCAL_HEAD_CHARS, LOCAL_TAIL_CHARS, LOCAL_EXCERPT_CHARS
            )
        return cls(
            REMOTE_SECTION_LIMIT, REMOTE_HEAD_CHARS, REMOTE_TAIL_CHARS, REMOTE_EXCERPT_CHARS
        )

    def scaled(self, factor: float) -> ContextBudget:
        """Shrink every limit by ``factor``, never below the minimum section size."""

        def _scale(value: int) -> int:
            return max(int(value * factor), min(value, MIN_SECTION_CHARS))

        return ContextBudget(
            _scale(self.per_section_chars),
            _scale(self.head_chars),
            _scale(self.tail_chars),
            _scale(self.excerpt_chars),
        )


def _condense(
    section: Section,
    per_section_char_limit: int,
    head_chars: int,
    tail_chars: int,
    excerpt_chars: int,
) -> str:
    content = section.content
    if len(content) <= per_section_char_limit:
        return content
    if section.summary:
        return f"(Summary): {section.summary}\n(Excerpt): {content[:excerpt_chars]}..."
    tail = content[len(content) - tail_chars :] if tail_chars else ""
    return f"{content[:head_chars]}\n{OMITTED_MARKER}\n{tail}"


def budget(
    sections: Iterable[Section],
    per_section_char_limit: int,
    head_chars: int,
    tail_chars: int,
    excerpt_chars: int | None = None,
) -> str:
    """Render ``sections`` as one context string within per-section limits.

    Args:
        sections: Ordered document sections.
        per_section_char_limit: Sections longer than this are condensed.
        head_chars: Leading characters kept when no summary exists.
        tail_chars: Trailing characters kept when no summary exists.
        excerpt_chars: Leading characters shown after a summary. Defaults to
            ``head_chars``.

    Returns:
        Sections rendered as ``### <title>`` blocks separated by a blank line.
    """
    excerpt = head_chars if excerpt_chars is None else excerpt_chars
    blocks = [
        f"### {section.title}\n"
        f"{_condense(section, per_section_char_limit, head_chars, tail_chars, excerpt)}"
        for section in sections
    ]
    return "\n\n".join(blocks)


def budget_with(sections: Iterable[Section], limits: ContextBudget) -> str:
    return budget(
        sections,
        limits.per_section_chars,
        limits.head_chars,
        limits.tail_chars,
        limits.excerpt_chars,
    )


def fit_to_tokens(
    sections: Iterable[Section],
    limits: ContextBudget,
    max_tokens: int,
    estimator: TokenEstimator,
) -> str:
    """Render ``sections`` so the estimated token count stays within ``max_tokens``.

    Limits are halved until the rendering fits or reach the minimum section
    size; the result is then clipped by characters as a last resort.
    """
    if max_tokens < 1:
        raise ValueError(f"max_tokens must be >= 1, got {max_tokens}")
    sections = list(sections)
    current = limits
    rendered = budget_with(sections, current)

    while estimator.estimate(rendered) > max_tokens:
        shrunk = current.scaled(0.5)
        if shrunk == current:
            break
        current = shrunk
        rendered = budget_with(sections, current)

    if estimator.estimate(rendered) <= max_tokens:
        return rendered

    log.warning(
        "Context still exceeds %d tokens at minimum section size; clipping", max_tokens
    )
    # Start at the heuristic ratio, then tighten for denser tokenizations
    clipped = rendered[: max_tokens * CHARS_PER_TOKEN]
    while clipped and estimator.estimate(clipped) > max_tokens:
        clipped = clipped[: math.floor(len(clipped) * 0.9)]
    return clipped


def clip(text: str, limit: int) -> str:
    """Keep at most ``limit`` leading characters."""
    return text[:limit]


def truncate(text: str, limit: int, marker: str = TRUNCATED_MARKER) -> str:
    """Clip ``text`` to ``limit`` characters, appending ``marker`` when clipped."""
    if len(text) <= limit:
        return text
    return text[:limit] + marker


def limit_for(kind: ProviderKind, *, local: int, remote: int) -> int:
    """Pick a provider-dependent character limit."""
    return local if ProviderKind(kind) is ProviderKind.LOCAL_EMBEDDED else remote
