"""Adapter protocol shared by provider backends."""

from __future__ import annotations

from typing import TYPE_CHECKING, Protocol, runtime_checkable

if TYPE_CHECKING:
    from authorforge.core.types import GenerationParams, RequestDescriptor


@runtime_checkable
class GenerationAdapter(Protocol):
    """A backend that turns one request descriptor into response text.

    Adapters raise on failure; classification and retry happen in the
    dispatcher so every backend is treated alike.
    """

    label: str

    async def generate(
        self, descriptor: RequestDescriptor, params: GenerationParams
    ) -> str:
        """Run one generation call and return the response text."""
        ...

    async def aclose(self) -> None:
        """Release transport resources."""
        ...
