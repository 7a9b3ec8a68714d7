"""Routes generation requests to the active provider.

The dispatcher is the single entry point for model calls. It picks the
backend from the current ``ProviderConfig``, throttles and retries remote
calls, records token usage for successful calls, and turns every terminal
failure into a ``Failure`` carrying readable text. Provider failures never
propagate as exceptions from ``dispatch``.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
import dataclasses
import functools
import logging
from typing import Any

from authorforge.client.error_handler import GenerationErrorHandler, classify_error
from authorforge.client.rate_limiter import RateLimiter
from authorforge.client.retry import RetryPolicy, run_with_retry
from authorforge.constants import (
    DEFAULT_LOCAL_BASE_URL,
    DEFAULT_VALIDATION_MODEL,
    REQUEST_TIMEOUT,
    VALIDATION_PROMPT,
)
from authorforge.core.types import (
    Credential,
    CredentialCheck,
    CredentialStatus,
    DispatchResult,
    ErrorKind,
    Failure,
    GenerationParams,
    ProviderConfig,
    ProviderKind,
    RequestDescriptor,
    ResponseShape,
    Result,
    Success,
    UsageCategory,
)
from authorforge.exceptions import ConfigurationError, ProviderError
from authorforge.extraction import require_json
from authorforge.providers.base import GenerationAdapter
from authorforge.providers.gemini import GeminiAdapter
from authorforge.providers.local import LocalChatAdapter
from authorforge.telemetry import TelemetryContext, TelemetryContextProtocol
from authorforge.usage import TokenEstimator, UsageLedger

log = logging.getLogger(__name__)

NO_PROVIDER_MESSAGE = (
    "### No AI Provider Configured\n"
    "Please go to Settings > AI Configuration to add a valid Gemini API key "
    "or load a local model."
)
LOCAL_NOT_LOADED_MESSAGE = (
    "### Local Model Not Loaded\n"
    "Please go to Settings > AI Configuration and load a model to use the "
    "local provider."
)

type RemoteFactory = Callable[[str], GenerationAdapter]
type LocalFactory = Callable[[str], LocalChatAdapter]


class Dispatcher:
    """Provider-agnostic request router with soft failures."""

    def __init__(
        self,
        config: ProviderConfig | None = None,
        *,
        ledger: UsageLedger | None = None,
        estimator: TokenEstimator | None = None,
        rate_limiter: RateLimiter | None = None,
        retry_policy: RetryPolicy | None = None,
        remote_factory: RemoteFactory | None = None,
        local_factory: LocalFactory | None = None,
        telemetry: TelemetryContextProtocol | None = None,
        validation_model: str = DEFAULT_VALIDATION_MODEL,
        local_base_url: str = DEFAULT_LOCAL_BASE_URL,
        request_timeout: float = REQUEST_TIMEOUT,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        """Create a dispatcher.

        Args:
            config: Initial provider configuration.
            ledger: Usage ledger charged for successful calls.
            estimator: Token estimator used for ledger charges.
            rate_limiter: Throttle applied to remote calls.
            retry_policy: Attempt budget for each dispatch.
            remote_factory: Builds a remote adapter from an API key.
            local_factory: Builds a local adapter from a model id.
            telemetry: Telemetry context; defaults to the no-op context.
            validation_model: Model probed by ``validate_credential``.
            local_base_url: Base URL of the local chat server.
            request_timeout: Transport timeout in seconds.
            sleep: Awaitable sleep used between retries.
        """
        self._config = config or ProviderConfig()
        self.ledger = ledger or UsageLedger()
        self.estimator = estimator or TokenEstimator()
        self.rate_limiter = rate_limiter or RateLimiter()
        self.retry_policy = retry_policy or RetryPolicy()
        self._remote_factory = remote_factory or functools.partial(
            GeminiAdapter, timeout=request_timeout
        )
        self._local_factory = local_factory or functools.partial(
            LocalChatAdapter, base_url=local_base_url, timeout=request_timeout
        )
        self._tele = telemetry or TelemetryContext()
        self.validation_model = validation_model
        self._sleep = sleep
        self._errors = GenerationErrorHandler()

        self._remote: tuple[str, GenerationAdapter] | None = None
        self._local: LocalChatAdapter | None = None
        self._retired: list[GenerationAdapter] = []
        self._local_lock = asyncio.Lock()

    # --- Configuration ---

    @property
    def config(self) -> ProviderConfig:
        return self._config

    def set_provider_config(self, config: ProviderConfig) -> None:
        """Replace the provider configuration.

        A loaded local model whose id no longer matches is dropped; it must be
        loaded again explicitly. A remote adapter whose credential is no longer
        the valid one is retired too. Retired handles are closed on the next
        dispatch, load or ``aclose``.
        """
        if (
            self._local is not None
            and config.local_model_id is not None
            and config.local_model_id != self._local.model_id
        ):
            log.info(
                "Local model changed from '%s' to '%s'; unloading stale handle",
                self._local.model_id,
                config.local_model_id,
            )
            self._retired.append(self._local)
            self._local = None
        if self._remote is not None:
            credential = config.valid_credential(ProviderKind.REMOTE_CLOUD)
            if credential is None or credential.id != self._remote[0]:
                log.info(
                    "Credential %s is no longer active; retiring its adapter",
                    self._remote[0],
                )
                self._retired.append(self._remote[1])
                self._remote = None
        self._config = config

    @property
    def local_model_loaded(self) -> bool:
        return self._local is not None

    # --- Local model lifecycle ---

    async def load_local_model(
        self, model_id: str | None = None, *, force: bool = False
    ) -> LocalChatAdapter:
        """Initialise the local model handle once and reuse it afterwards.

        Raises:
            ConfigurationError: No model id given or configured.
            ProviderError: The local server could not be reached.
        """
        model_id = model_id or self._config.local_model_id
        if not model_id:
            raise ConfigurationError("No local model id configured")

        async with self._local_lock:
            await self._close_retired()
            if self._local is not None and not force and self._local.model_id == model_id:
                return self._local
            if self._local is not None:
                await self._local.aclose()
                self._local = None

            adapter = self._local_factory(model_id)
            try:
                await adapter.load()
            except Exception as e:
                await adapter.aclose()
                raise self._errors.to_provider_error(e, adapter.label) from e

            self._local = adapter
            if self._config.local_model_id != model_id:
                self._config = dataclasses.replace(self._config, local_model_id=model_id)
            log.info("Local model '%s' loaded", model_id)
            return adapter

    async def unload_local_model(self) -> None:
        async with self._local_lock:
            if self._local is not None:
                await self._local.aclose()
                log.info("Local model '%s' unloaded", self._local.model_id)
                self._local = None

    # --- Dispatch ---

    async def dispatch(
        self,
        descriptor: RequestDescriptor,
        usage_category: UsageCategory | str | None = None,
    ) -> DispatchResult:
        """Run one request against the active provider.

        Args:
            descriptor: The request. Never modified.
            usage_category: Ledger bucket; overrides the descriptor's own.

        Returns:
            ``Success`` with the response text, or ``Failure`` with a
            ``ProviderError`` whose ``user_message`` is ready to display.
        """
        category = UsageCategory(usage_category or descriptor.usage_category)
        config = self._config
        await self._close_retired()

        with self._tele(
            "dispatch", provider=config.active_provider.value, category=category.value
        ) as tele:
            adapter = self._select_adapter(config)
            if isinstance(adapter, Failure):
                return adapter

            try:
                text = await run_with_retry(
                    functools.partial(self._call, adapter, descriptor, config),
                    self.retry_policy,
                    sleep=self._sleep,
                )
            except Exception as error:
                failure = self._errors.to_provider_error(error, adapter.label)
                log.error(
                    "Dispatch to %s failed (%s)", adapter.label, failure.kind, exc_info=True
                )
                return Failure(failure)

            tokens = self.estimator.estimate(descriptor.prompt_body) + self.estimator.estimate(
                text
            )
            self.ledger.record(category, tokens)
            tele.count("tokens", tokens)
            return Success(text)

    async def dispatch_json(
        self,
        descriptor: RequestDescriptor,
        usage_category: UsageCategory | str | None = None,
    ) -> Result[Any, ProviderError]:
        """Dispatch a structured request and extract its JSON value."""
        if not descriptor.wants_json:
            descriptor = dataclasses.replace(
                descriptor, response_shape=ResponseShape.STRUCTURED_JSON
            )
        result = await self.dispatch(descriptor, usage_category)
        if isinstance(result, Failure):
            return result
        return require_json(result.value)

    def _select_adapter(
        self, config: ProviderConfig
    ) -> GenerationAdapter | Failure[ProviderError]:
        if config.is_local:
            if self._local is None:
                log.warning("Local provider selected but no model is loaded")
                return self._missing(LOCAL_NOT_LOADED_MESSAGE)
            return self._local

        credential = config.valid_credential(ProviderKind.REMOTE_CLOUD)
        if credential is None:
            log.warning("Remote provider selected but no valid credential is stored")
            return self._missing(NO_PROVIDER_MESSAGE)
        return self._remote_adapter(credential)

    @staticmethod
    def _missing(message: str) -> Failure[ProviderError]:
        return Failure(
            ProviderError(message, ErrorKind.CONFIGURATION_MISSING, user_message=message)
        )

    def _remote_adapter(self, credential: Credential) -> GenerationAdapter:
        if self._remote is not None and self._remote[0] == credential.id:
            return self._remote[1]
        if self._remote is not None:
            self._retired.append(self._remote[1])
        adapter = self._remote_factory(credential.secret)
        self._remote = (credential.id, adapter)
        return adapter

    async def _call(
        self,
        adapter: GenerationAdapter,
        descriptor: RequestDescriptor,
        config: ProviderConfig,
    ) -> str:
        if config.is_local:
            return await adapter.generate(descriptor, config.generation)
        async with self.rate_limiter.request_context():
            return await adapter.generate(descriptor, config.generation)

    # --- Credentials ---

    async def validate_credential(self, secret: str) -> CredentialCheck:
        """Probe the remote provider once with ``secret``; never retried."""
        if not secret or not secret.strip():
            return CredentialCheck(provider=None, status=CredentialStatus.INVALID)

        adapter = self._remote_factory(secret)
        probe = RequestDescriptor(
            target_model=self.validation_model, prompt_body=VALIDATION_PROMPT
        )
        try:
            async with self.rate_limiter.request_context():
                await adapter.generate(probe, GenerationParams())
        except Exception as e:
            log.info("Credential check failed (%s)", classify_error(e))
            return CredentialCheck(provider=None, status=CredentialStatus.INVALID)
        finally:
            await adapter.aclose()
        return CredentialCheck(
            provider=ProviderKind.REMOTE_CLOUD, status=CredentialStatus.VALID
        )

    async def register_credential(self, secret: str) -> Credential:
        """Verify ``secret`` and store the resolved credential in the config."""
        pending = Credential(secret=secret, provider=ProviderKind.REMOTE_CLOUD)
        check = await self.validate_credential(pending.secret)
        resolved = pending.with_status(check.status)
        self._config = self._config.with_credential(resolved)
        log.info("Stored credential %s as %s", resolved.id, resolved.status)
        return resolved

    # --- Resources ---

    async def _close_retired(self) -> None:
        while self._retired:
            await self._retired.pop().aclose()

    async def aclose(self) -> None:
        """Close every adapter this dispatcher opened."""
        await self._close_retired()
        if self._remote is not None:
            await self._remote[1].aclose()
            self._remote = None
        await self.unload_local_model()
