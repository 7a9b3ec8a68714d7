"""The primary entry point for the orchestration core.

``StudioExecutor`` bundles everything a request needs: provider
configuration, dispatcher, usage ledger, token estimator, throttle, batch
orchestrator and telemetry. There is no module-level state; construct one
executor per application (or per test) and pass it where it is needed.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable, Iterable, Sequence
import logging
from types import TracebackType
from typing import Any, Self

from authorforge.batching import BatchJob, BatchOrchestrator, batch_size_for
from authorforge.client.configuration import RateLimitConfig
from authorforge.client.rate_limiter import RateLimiter
from authorforge.client.retry import RetryPolicy
from authorforge.config import StudioSettings, load_settings
from authorforge.context_budget import ContextBudget, budget_with, fit_to_tokens
from authorforge.core.types import (
    Credential,
    CredentialCheck,
    DispatchResult,
    ProviderConfig,
    RequestDescriptor,
    Result,
    Section,
    UsageCategory,
    UsageSnapshot,
)
from authorforge.dispatcher import Dispatcher, LocalFactory, RemoteFactory
from authorforge.exceptions import ProviderError
from authorforge.extraction import extract_json
from authorforge.providers.local import LocalChatAdapter
from authorforge.telemetry import TelemetryContext, TelemetryReporter
from authorforge.usage import TokenEstimator, UsageLedger

log = logging.getLogger(__name__)


class StudioExecutor:
    """Explicit orchestration context for one application.

    Notes:
    - ``dispatch`` never raises for provider failures; inspect the returned
      ``Success``/``Failure``.
    - The usage ledger lives as long as the executor and only grows.
    """

    def __init__(
        self,
        settings: StudioSettings,
        *,
        remote_factory: RemoteFactory | None = None,
        local_factory: LocalFactory | None = None,
        reporters: Iterable[TelemetryReporter] = (),
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        """Initialize the executor from settings.

        Args:
            settings: Validated settings.
            remote_factory: Builds the remote adapter from an API key.
            local_factory: Builds the local adapter from a model id.
            reporters: Telemetry reporters; used only when telemetry is enabled.
            sleep: Awaitable sleep for retries, throttling and batch delays.
        """
        self.settings = settings
        self.telemetry = TelemetryContext(*reporters)
        self.ledger = UsageLedger()
        self.estimator = TokenEstimator(settings.tokenizer_encoding)
        self.rate_limiter = RateLimiter(
            RateLimitConfig(requests_per_minute=settings.requests_per_minute),
            sleep=sleep,
        )
        self.dispatcher = Dispatcher(
            settings.to_provider_config(),
            ledger=self.ledger,
            estimator=self.estimator,
            rate_limiter=self.rate_limiter,
            retry_policy=RetryPolicy(
                max_attempts=settings.max_attempts,
                base_delay=settings.retry_base_delay,
                max_delay=settings.retry_max_delay,
            ),
            remote_factory=remote_factory,
            local_factory=local_factory,
            telemetry=self.telemetry,
            validation_model=settings.validation_model,
            local_base_url=settings.local_base_url,
            request_timeout=settings.request_timeout,
            sleep=sleep,
        )
        self.batches = BatchOrchestrator(
            delay=settings.inter_batch_delay, sleep=sleep, telemetry=self.telemetry
        )
        log.debug(
            "Executor ready: provider=%s, model=%s",
            settings.active_provider,
            settings.remote_model,
        )

    # --- Requests ---

    def describe(self, prompt_body: str, **fields: Any) -> RequestDescriptor:
        """Build a descriptor targeting the configured remote model."""
        fields.setdefault("target_model", self.settings.remote_model)
        return RequestDescriptor(prompt_body=prompt_body, **fields)

    async def dispatch(
        self,
        descriptor: RequestDescriptor,
        usage_category: UsageCategory | str | None = None,
    ) -> DispatchResult:
        return await self.dispatcher.dispatch(descriptor, usage_category)

    async def dispatch_json(
        self,
        descriptor: RequestDescriptor,
        usage_category: UsageCategory | str | None = None,
    ) -> Result[Any, ProviderError]:
        return await self.dispatcher.dispatch_json(descriptor, usage_category)

    async def run_batched[T, B, R](
        self,
        items: Sequence[T],
        batch_size: int,
        process_batch: Callable[[list[T]], Awaitable[B]],
        merge: Callable[[list[B]], R],
        *,
        should_stop: Callable[[], bool] | None = None,
    ) -> R:
        """Run a batched job with the executor's delay and telemetry."""
        return await self.batches.run(
            BatchJob(items, batch_size, process_batch, merge), should_stop=should_stop
        )

    extract = staticmethod(extract_json)

    # --- Usage ---

    def get_usage(self) -> UsageSnapshot:
        return self.ledger.snapshot()

    def remaining_tokens(self) -> int:
        """Tokens left under the configured daily limit."""
        return self.ledger.snapshot().remaining(
            self.dispatcher.config.daily_token_limit
        )

    # --- Provider configuration ---

    def get_provider_config(self) -> ProviderConfig:
        return self.dispatcher.config

    def set_provider_config(self, config: ProviderConfig) -> None:
        self.dispatcher.set_provider_config(config)

    async def validate_credential(self, secret: str) -> CredentialCheck:
        return await self.dispatcher.validate_credential(secret)

    async def register_credential(self, secret: str) -> Credential:
        return await self.dispatcher.register_credential(secret)

    async def load_local_model(
        self, model_id: str | None = None, *, force: bool = False
    ) -> LocalChatAdapter:
        return await self.dispatcher.load_local_model(model_id, force=force)

    async def unload_local_model(self) -> None:
        await self.dispatcher.unload_local_model()

    # --- Context ---

    def context_budget(self) -> ContextBudget:
        return ContextBudget.for_provider(self.dispatcher.config.active_provider)

    def context_for(
        self, sections: Iterable[Section], *, max_tokens: int | None = None
    ) -> str:
        """Render document sections within the active provider's budget."""
        limits = self.context_budget()
        if max_tokens is None:
            return budget_with(sections, limits)
        return fit_to_tokens(sections, limits, max_tokens, self.estimator)

    def batch_size_for(self, *, remote: int, local: int) -> int:
        return batch_size_for(
            self.dispatcher.config.active_provider, remote=remote, local=local
        )

    # --- Resources ---

    async def aclose(self) -> None:
        await self.dispatcher.aclose()

    async def __aenter__(self) -> Self:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_value: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        await self.aclose()


def create_executor(
    settings: StudioSettings | None = None,
    *,
    remote_factory: RemoteFactory | None = None,
    local_factory: LocalFactory | None = None,
    reporters: Iterable[TelemetryReporter] = (),
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    **overrides: Any,
) -> StudioExecutor:
    """Create an executor, resolving settings from the environment if needed.

    Args:
        settings: Pre-built settings. Resolved via ``load_settings`` when omitted.
        remote_factory: Optional remote adapter factory.
        local_factory: Optional local adapter factory.
        reporters: Telemetry reporters.
        sleep: Awaitable sleep shared by retry, throttle and batching.
        **overrides: Settings fields that take precedence.

    Returns:
        A ready ``StudioExecutor``.
    """
    # This is the only place where ambient configuration is resolved.
    if settings is None:
        settings = load_settings(**overrides)
    elif overrides:
        settings = type(settings).model_validate(
            {**settings.model_dump(), **overrides}
        )
    return StudioExecutor(
        settings,
        remote_factory=remote_factory,
        local_factory=local_factory,
        reporters=reporters,
        sleep=sleep,
    )
