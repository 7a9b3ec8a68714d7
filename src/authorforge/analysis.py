"""Manuscript analyses built on the orchestration core.

Structured analyses raise the ``ProviderError`` of a failed dispatch so the
caller can decide how to surface it. Free-text helpers (chat, summaries)
return display text, which is the soft-failure message when a call fails.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable, Sequence
import json
import logging
from typing import Any, NotRequired, TypedDict

from authorforge.constants import (
    CONTINUITY_BATCH_SIZE_LOCAL,
    CONTINUITY_BATCH_SIZE_REMOTE,
    CONTINUITY_CHAPTER_CHARS,
    HEALTH_BATCH_SIZE_LOCAL,
    HEALTH_BATCH_SIZE_REMOTE,
    HEALTH_CHAPTER_CHARS_LOCAL,
    HEALTH_CHAPTER_CHARS_REMOTE,
    LOCAL_ANALYSIS_CHARS,
    LOCAL_CHAT_CONTEXT_CHARS,
    LOCAL_SUMMARY_CHARS,
    REMOTE_ANALYSIS_CHARS,
    REMOTE_CHAT_CONTEXT_CHARS,
    REMOTE_SUMMARY_CHARS,
)
from authorforge.context_budget import clip, limit_for, truncate
from authorforge.core.types import (
    ChatTurn,
    Failure,
    ResponseShape,
    Section,
    Success,
    UsageCategory,
    display_text,
)
from authorforge.exceptions import MalformedResponseError
from authorforge.executor import StudioExecutor
from authorforge.merge import (
    average_by_key,
    concat,
    concat_unique,
    first_per_batch,
    flatten,
    sum_by_key,
)

log = logging.getLogger(__name__)

CHAT_FALLBACK = "I'm sorry, I couldn't generate a response."

ANALYZE_TEXT_PROMPT = (
    "Analyze the following text from a {genre} novel. Provide a quality score "
    "(1-100), suggestions for improvement, and identify any issues. Respond in "
    'JSON format: {{ "quality_score": number, "suggestions": string[], '
    '"issues": [{{"type": string, "description": string, "severity": string}}] }}'
)
HEALTH_PROMPT = (
    "Analyze the manuscript for health: character usage, POV, pacing, and "
    'global issues. Respond in JSON: { "character_usage": [{"name": string, '
    '"count": number}], "pov_balance": [{"name": string, "percentage": number}], '
    '"pacing_map": [{"title": string, "pacing_score": number, '
    '"tension_score": number}], "global_issues": string[] }'
)
HEALTH_BATCH_PROMPT = (
    "Analyze these chapters for character usage, POV, and pacing. Respond in "
    'JSON: { "character_usage": [{"name": string, "count": number}], '
    '"pov_balance": [{"name": string, "percentage": number}], "pacing_map": '
    '[{"title": string, "pacing_score": number, "tension_score": number}], '
    '"global_issues": string[] }'
)
CONTINUITY_PROMPT = (
    'Analyze these chapters for continuity errors. Respond in JSON: { "issues": '
    '[{"type": string, "description": string, "location": string, '
    '"severity": "low" | "medium" | "high"}] }'
)
SUMMARY_PROMPT = "Summarize this chapter in 2-3 sentences, focusing on the key plot points."


class ProjectHealth(TypedDict):
    character_usage: list[dict[str, Any]]
    pov_balance: list[dict[str, Any]]
    pacing_map: list[dict[str, Any]]
    global_issues: list[Any]


class ContinuityIssue(TypedDict):
    type: str
    description: str
    location: NotRequired[str]
    severity: NotRequired[str]


def empty_health() -> ProjectHealth:
    return {"character_usage": [], "pov_balance": [], "pacing_map": [], "global_issues": []}


def merge_health(results: Sequence[Any]) -> ProjectHealth:
    """Combine per-batch health reports.

    Character counts are summed, POV shares averaged over the batches that
    reported, pacing entries concatenated and issues de-duplicated.
    """
    return {
        "character_usage": sum_by_key(results, "character_usage", "name", "count"),
        "pov_balance": average_by_key(results, "pov_balance", "name", "percentage"),
        "pacing_map": concat(results, "pacing_map"),
        "global_issues": concat_unique(results, "global_issues"),
    }


def _as_health(value: Any) -> ProjectHealth:
    health = empty_health()
    if isinstance(value, dict):
        for key in health:
            if isinstance(value.get(key), list):
                health[key] = value[key]  # type: ignore[literal-required]
    return health


class ManuscriptAnalyzer:
    """High-level analyses over chapters, using one executor."""

    def __init__(self, executor: StudioExecutor):
        self.executor = executor

    @property
    def _provider(self):
        return self.executor.get_provider_config().active_provider

    async def _structured(self, prompt: str) -> Any:
        descriptor = self.executor.describe(
            prompt, response_shape=ResponseShape.STRUCTURED_JSON
        )
        result = await self.executor.dispatch_json(descriptor, UsageCategory.ANALYSIS)
        if isinstance(result, Failure):
            raise result.error
        return result.value

    async def analyze_text(self, text: str, genre: str | None = None) -> dict[str, Any]:
        """Score a passage and list suggestions and issues.

        Raises:
            ProviderError: The dispatch failed.
            MalformedResponseError: The response held no JSON object.
        """
        limit = limit_for(
            self._provider, local=LOCAL_ANALYSIS_CHARS, remote=REMOTE_ANALYSIS_CHARS
        )
        prompt = ANALYZE_TEXT_PROMPT.format(genre=genre or "general")
        value = await self._structured(f"{prompt}\n\nTEXT:\n{clip(text, limit)}")
        if not isinstance(value, dict):
            raise MalformedResponseError(
                "Text analysis did not return a JSON object", raw_text=json.dumps(value)
            )
        return value

    async def project_health(
        self,
        chapters: Sequence[Section],
        *,
        should_stop: Callable[[], bool] | None = None,
    ) -> ProjectHealth:
        """Character, POV, pacing and issue report for a manuscript.

        Manuscripts longer than one batch are analysed in sequential batches;
        shorter ones in a single call over a budgeted context.
        """
        size = self.executor.batch_size_for(
            remote=HEALTH_BATCH_SIZE_REMOTE, local=HEALTH_BATCH_SIZE_LOCAL
        )
        if len(chapters) <= size:
            context = self.executor.context_for(chapters)
            try:
                value = await self._structured(f"{HEALTH_PROMPT}\n\nPROJECT:\n{context}")
            except MalformedResponseError:
                log.warning("Health analysis returned no JSON; reporting empty health")
                return empty_health()
            return _as_health(value)

        limit = limit_for(
            self._provider,
            local=HEALTH_CHAPTER_CHARS_LOCAL,
            remote=HEALTH_CHAPTER_CHARS_REMOTE,
        )

        async def process(batch: list[Section]) -> list[dict[str, Any]]:
            payload = json.dumps(
                [{"title": c.title, "content": clip(c.content, limit)} for c in batch],
                ensure_ascii=False,
            )
            value = await self._structured(f"{HEALTH_BATCH_PROMPT}\n\nCHAPTERS:\n{payload}")
            if not isinstance(value, dict):
                raise MalformedResponseError("Health batch did not return a JSON object")
            return [value]

        return await self.executor.run_batched(
            chapters,
            size,
            process,
            lambda results: merge_health(first_per_batch(results)),
            should_stop=should_stop,
        )

    async def continuity(
        self,
        chapters: Sequence[Section],
        *,
        should_stop: Callable[[], bool] | None = None,
    ) -> list[ContinuityIssue]:
        """Continuity errors across the manuscript, in chapter order."""
        size = self.executor.batch_size_for(
            remote=CONTINUITY_BATCH_SIZE_REMOTE, local=CONTINUITY_BATCH_SIZE_LOCAL
        )

        async def process(batch: list[Section]) -> list[ContinuityIssue]:
            content = "\n\n".join(clip(c.content, CONTINUITY_CHAPTER_CHARS) for c in batch)
            try:
                value = await self._structured(f"{CONTINUITY_PROMPT}\n\nCONTENT:\n{content}")
            except MalformedResponseError:
                return []
            issues = value.get("issues") if isinstance(value, dict) else None
            return issues if isinstance(issues, list) else []

        return await self.executor.run_batched(
            chapters, size, process, flatten, should_stop=should_stop
        )

    async def summarize_chapter(self, content: str) -> str:
        limit = limit_for(
            self._provider, local=LOCAL_SUMMARY_CHARS, remote=REMOTE_SUMMARY_CHARS
        )
        descriptor = self.executor.describe(
            f"{SUMMARY_PROMPT}\n\nCHAPTER:\n{clip(content, limit)}"
        )
        result = await self.executor.dispatch(descriptor, UsageCategory.ANALYSIS)
        return display_text(result)

    async def chat(
        self,
        history: Iterable[ChatTurn],
        text: str,
        context: str = "",
        system_instruction: str | None = None,
    ) -> str:
        """One chat turn with the manuscript context prepended.

        Oversized context is truncated with a marker before sending.
        """
        limit = limit_for(
            self._provider,
            local=LOCAL_CHAT_CONTEXT_CHARS,
            remote=REMOTE_CHAT_CONTEXT_CHARS,
        )
        descriptor = self.executor.describe(
            f"Context:\n{truncate(context, limit)}\n\nUser: {text}",
            system_instruction=system_instruction,
            conversation_history=tuple(history),
            usage_category=UsageCategory.CHAT,
        )
        result = await self.executor.dispatch(descriptor)
        if isinstance(result, Success) and not result.value:
            return CHAT_FALLBACK
        return display_text(result)
