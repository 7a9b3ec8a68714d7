"""Local provider adapter for an OpenAI-compatible chat server.

Targets servers such as ``llama-server`` from llama.cpp that expose
``/health`` and ``/v1/chat/completions`` on the local machine.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

import httpx

from authorforge.constants import (
    DEFAULT_LOCAL_BASE_URL,
    LOCAL_JSON_INSTRUCTION,
    REQUEST_TIMEOUT,
)
from authorforge.exceptions import MalformedResponseError

if TYPE_CHECKING:
    from authorforge.core.types import GenerationParams, RequestDescriptor

log = logging.getLogger(__name__)


def build_chat_messages(descriptor: RequestDescriptor) -> list[dict[str, str]]:
    """Convert a descriptor to OpenAI-style chat messages.

    Order is system instruction, prior turns (``model`` becomes
    ``assistant``), then the current prompt. Structured requests get an
    explicit JSON instruction appended, since local models have no JSON mode.
    """
    messages: list[dict[str, str]] = []
    if descriptor.system_instruction:
        messages.append({"role": "system", "content": descriptor.system_instruction})
    for turn in descriptor.conversation_history:
        role = "assistant" if turn.role == "model" else "user"
        messages.append({"role": role, "content": turn.text})

    content = descriptor.prompt_body
    if content:
        if descriptor.wants_json:
            content += LOCAL_JSON_INSTRUCTION
        messages.append({"role": "user", "content": content})
    return messages


class LocalChatAdapter:
    """Talks to a local chat-completions server over HTTP."""

    label = "Local Model"

    def __init__(
        self,
        model_id: str,
        base_url: str = DEFAULT_LOCAL_BASE_URL,
        *,
        timeout: float = REQUEST_TIMEOUT,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.model_id = model_id
        self.base_url = base_url.rstrip("/")
        self._client = httpx.AsyncClient(
            base_url=self.base_url, timeout=timeout, transport=transport
        )

    async def load(self) -> None:
        """Check the server is up; raises if it cannot be reached."""
        log.info("Connecting to local model '%s' at %s", self.model_id, self.base_url)
        resp = await self._client.get("/health")
        resp.raise_for_status()
        log.debug("Local server ready for '%s'", self.model_id)

    async def generate(
        self, descriptor: RequestDescriptor, params: GenerationParams
    ) -> str:
        payload: dict[str, Any] = {
            "model": self.model_id,
            "messages": build_chat_messages(descriptor),
            "temperature": params.temperature,
            "top_p": params.top_p,
            "top_k": params.top_k,
            "stream": False,
        }
        resp = await self._client.post("/v1/chat/completions", json=payload)
        resp.raise_for_status()
        data = resp.json()
        try:
            content = data["choices"][0]["message"]["content"]
        except (KeyError, IndexError, TypeError) as e:
            raise MalformedResponseError(
                f"Unexpected chat completion payload: {e}", raw_text=resp.text
            ) from e
        return (content or "").strip()

    async def aclose(self) -> None:
        await self._client.aclose()
