"""Provider backends: the remote Gemini API and a local chat server."""

from .base import GenerationAdapter
from .gemini import GeminiAdapter
from .local import LocalChatAdapter, build_chat_messages

__all__ = [
    "GeminiAdapter",
    "GenerationAdapter",
    "LocalChatAdapter",
    "build_chat_messages",
]
