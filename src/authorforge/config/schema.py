"""Settings schema and validation using Pydantic.

Values come from ``AUTHORFORGE_*`` environment variables, an optional ``.env``
file, or keyword overrides, and are coerced into the types the orchestration
core expects.
"""

from typing import Any

from pydantic import Field, SecretStr, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from authorforge.constants import (
    DAILY_TOKEN_LIMIT,
    DEFAULT_LOCAL_BASE_URL,
    DEFAULT_REMOTE_MODEL,
    DEFAULT_TEMPERATURE,
    DEFAULT_TOKENIZER_ENCODING,
    DEFAULT_TOP_K,
    DEFAULT_TOP_P,
    DEFAULT_VALIDATION_MODEL,
    FALLBACK_REQUESTS_PER_MINUTE,
    INTER_BATCH_DELAY,
    MAX_ATTEMPTS,
    REQUEST_TIMEOUT,
    RETRY_BASE_DELAY,
    RETRY_MAX_DELAY,
)
from authorforge.core.types import (
    Credential,
    CredentialStatus,
    GenerationParams,
    ProviderConfig,
    ProviderKind,
)

_PROVIDER_ALIASES = {
    "remote": ProviderKind.REMOTE_CLOUD,
    "gemini": ProviderKind.REMOTE_CLOUD,
    "local": ProviderKind.LOCAL_EMBEDDED,
    "webllm": ProviderKind.LOCAL_EMBEDDED,
}


class StudioSettings(BaseSettings):
    """Pydantic settings schema for the orchestration core.

    Handles validation, type coercion and defaults for every field, reading
    environment variables with the ``AUTHORFORGE_`` prefix.
    """

    model_config = SettingsConfigDict(
        env_prefix="AUTHORFORGE_",
        env_file=None,  # Only used when explicitly requested
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # --- Provider selection ---

    active_provider: ProviderKind = Field(
        default=ProviderKind.REMOTE_CLOUD,
        description="Backend used for dispatches",
    )
    api_key: SecretStr | None = Field(
        default=None,
        description="Gemini API key",
    )
    remote_model: str = Field(default=DEFAULT_REMOTE_MODEL, min_length=1)
    validation_model: str = Field(default=DEFAULT_VALIDATION_MODEL, min_length=1)
    local_model_id: str | None = Field(
        default=None,
        description="Model served by the local chat server",
    )
    local_base_url: str = Field(default=DEFAULT_LOCAL_BASE_URL, min_length=1)

    # --- Generation ---

    temperature: float = Field(default=DEFAULT_TEMPERATURE, ge=0.0, le=2.0)
    top_p: float = Field(default=DEFAULT_TOP_P, gt=0.0, le=1.0)
    top_k: int = Field(default=DEFAULT_TOP_K, ge=1)

    # --- Resilience ---

    max_attempts: int = Field(default=MAX_ATTEMPTS, ge=1)
    retry_base_delay: float = Field(default=RETRY_BASE_DELAY, ge=0.0)
    retry_max_delay: float = Field(default=RETRY_MAX_DELAY, ge=0.0)
    inter_batch_delay: float = Field(default=INTER_BATCH_DELAY, ge=0.0)
    requests_per_minute: int = Field(default=FALLBACK_REQUESTS_PER_MINUTE, ge=1)
    request_timeout: float = Field(default=REQUEST_TIMEOUT, gt=0.0)

    # --- Usage ---

    daily_token_limit: int = Field(default=DAILY_TOKEN_LIMIT, ge=1)
    tokenizer_encoding: str | None = Field(
        default=DEFAULT_TOKENIZER_ENCODING,
        description="tiktoken encoding; empty disables the tokenizer",
    )

    # --- Validation Rules ---

    @field_validator("active_provider", mode="before")
    @classmethod
    def parse_provider(cls, v: Any) -> ProviderKind:
        """Accept enum values plus short aliases such as ``local``."""
        if isinstance(v, ProviderKind):
            return v
        if isinstance(v, str):
            normalized = v.strip().lower()
            if normalized in _PROVIDER_ALIASES:
                return _PROVIDER_ALIASES[normalized]
            try:
                return ProviderKind(normalized)
            except ValueError:
                pass
        raise ValueError(
            f"Invalid provider: {v}. Must be one of: remote-cloud, local-embedded"
        )

    @field_validator("api_key", "local_model_id", "tokenizer_encoding", mode="before")
    @classmethod
    def blank_to_none(cls, v: Any) -> Any:
        if isinstance(v, str) and not v.strip():
            return None
        return v

    @model_validator(mode="after")
    def validate_delays(self) -> "StudioSettings":
        if self.retry_max_delay < self.retry_base_delay:
            raise ValueError("retry_max_delay must be >= retry_base_delay")
        return self

    # --- Conversion ---

    def to_provider_config(self) -> ProviderConfig:
        """Build the immutable provider configuration.

        A key supplied through settings is trusted as valid; keys entered at
        runtime go through ``register_credential`` instead.
        """
        credentials: tuple[Credential, ...] = ()
        if self.api_key is not None:
            credentials = (
                Credential(
                    secret=self.api_key.get_secret_value(),
                    provider=ProviderKind.REMOTE_CLOUD,
                    status=CredentialStatus.VALID,
                ),
            )
        return ProviderConfig(
            active_provider=self.active_provider,
            credentials=credentials,
            local_model_id=self.local_model_id,
            generation=GenerationParams(
                temperature=self.temperature, top_p=self.top_p, top_k=self.top_k
            ),
            daily_token_limit=self.daily_token_limit,
        )

    def redacted_summary(self) -> dict[str, Any]:
        """Field values safe for printing; the API key is never shown."""
        summary = self.model_dump(mode="json")
        summary["api_key"] = "[SET]" if self.api_key is not None else "[NOT SET]"
        return summary
