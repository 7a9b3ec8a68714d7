"""Remote provider adapter backed by the ``google-genai`` SDK."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from google import genai
from google.genai import types

from authorforge.constants import REQUEST_TIMEOUT

if TYPE_CHECKING:
    from authorforge.core.types import GenerationParams, RequestDescriptor

log = logging.getLogger(__name__)


def build_contents(descriptor: RequestDescriptor) -> list[types.Content]:
    """Prior turns followed by the current prompt, in Gemini's content format."""
    contents = [
        types.Content(role=turn.role, parts=[types.Part.from_text(text=turn.text)])
        for turn in descriptor.conversation_history
    ]
    contents.append(
        types.Content(
            role="user", parts=[types.Part.from_text(text=descriptor.prompt_body)]
        )
    )
    return contents


def build_config(
    descriptor: RequestDescriptor, params: GenerationParams
) -> types.GenerateContentConfig:
    config = types.GenerateContentConfig(
        temperature=params.temperature,
        top_p=params.top_p,
        top_k=params.top_k,
    )
    if descriptor.system_instruction:
        config.system_instruction = descriptor.system_instruction
    if descriptor.wants_json:
        config.response_mime_type = "application/json"
    else:
        config.response_mime_type = "text/plain"
    return config


class GeminiAdapter:
    """Calls ``generate_content`` through the SDK's async client."""

    label = "Gemini"

    def __init__(
        self,
        api_key: str,
        *,
        timeout: float = REQUEST_TIMEOUT,
        client: Any | None = None,
    ):
        """Create an adapter for one API key.

        Args:
            api_key: Gemini API key. Never logged.
            timeout: Per-request timeout in seconds.
            client: Pre-built ``genai.Client``; mainly for tests.
        """
        self._client = client or genai.Client(
            api_key=api_key,
            http_options=types.HttpOptions(timeout=int(timeout * 1000)),
        )

    async def generate(
        self, descriptor: RequestDescriptor, params: GenerationParams
    ) -> str:
        log.debug("Calling Gemini model '%s'", descriptor.target_model)
        response = await self._client.aio.models.generate_content(
            model=descriptor.target_model,
            contents=build_contents(descriptor),
            config=build_config(descriptor, params),
        )
        return response.text or ""

    async def aclose(self) -> None:
        close = getattr(self._client.aio, "aclose", None)
        if close is not None:
            await close()
