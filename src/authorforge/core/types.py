"""Core data types that flow through the orchestration core.

These are immutable records describing provider configuration, a single
request, and the tagged result a dispatch produces. Validation happens at
construction so invalid states never reach the dispatcher.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
import dataclasses
from enum import StrEnum
from types import MappingProxyType
import typing
import uuid

from authorforge.constants import (
    DAILY_TOKEN_LIMIT,
    DEFAULT_TEMPERATURE,
    DEFAULT_TOP_K,
    DEFAULT_TOP_P,
)
from authorforge.exceptions import ValidationError

if typing.TYPE_CHECKING:
    from authorforge.exceptions import ProviderError


def _require(
    *,
    condition: bool,
    message: str,
    exc: type[Exception] = ValidationError,
    field_name: str | None = None,
) -> None:
    """Centralized validation with optional field context for clearer errors."""
    if not condition:
        if field_name:
            raise exc(f"{field_name}: {message}")
        raise exc(message)


# --- Result type ---
# Expected failures flow as values; exceptions stay for programmer errors.

TSuccess = typing.TypeVar("TSuccess")
TFailure = typing.TypeVar("TFailure", bound=Exception)


@dataclasses.dataclass(frozen=True, slots=True)
class Success[TSuccess]:
    """A successful outcome."""

    value: TSuccess


@dataclasses.dataclass(frozen=True, slots=True)
class Failure[TFailure]:
    """A failed outcome, containing the error."""

    error: TFailure


type Result[TSuccess, TFailure] = Success[TSuccess] | Failure[TFailure]


# --- Enumerations ---


class ErrorKind(StrEnum):
    """Failure taxonomy. Every failure surfaced to a caller carries one."""

    RATE_LIMITED = "RateLimited"
    INVALID_CREDENTIAL = "InvalidCredential"
    NETWORK_FAILURE = "NetworkFailure"
    MALFORMED_RESPONSE = "MalformedResponse"
    CONFIGURATION_MISSING = "ConfigurationMissing"
    UNKNOWN = "Unknown"


class ProviderKind(StrEnum):
    """Backends the dispatcher can route to."""

    REMOTE_CLOUD = "remote-cloud"
    LOCAL_EMBEDDED = "local-embedded"


class CredentialStatus(StrEnum):
    PENDING = "pending"
    VALID = "valid"
    INVALID = "invalid"


class ResponseShape(StrEnum):
    FREE_TEXT = "free-text"
    STRUCTURED_JSON = "structured-json"


class UsageCategory(StrEnum):
    """Buckets for token accounting."""

    WRITING = "writing"
    ANALYSIS = "analysis"
    CHAT = "chat"
    MEDIA = "media"


# --- Configuration records ---


@dataclasses.dataclass(frozen=True, slots=True)
class Credential:
    """A provider API key and its verification status."""

    secret: str = dataclasses.field(repr=False)
    provider: ProviderKind = ProviderKind.REMOTE_CLOUD
    status: CredentialStatus = CredentialStatus.PENDING
    id: str = dataclasses.field(default_factory=lambda: uuid.uuid4().hex)

    def __post_init__(self) -> None:
        _require(
            condition=isinstance(self.secret, str) and self.secret.strip() != "",
            message="must be a non-empty str",
            field_name="secret",
        )
        object.__setattr__(self, "provider", ProviderKind(self.provider))
        object.__setattr__(self, "status", CredentialStatus(self.status))

    def with_status(self, status: CredentialStatus) -> Credential:
        return dataclasses.replace(self, status=status)


@dataclasses.dataclass(frozen=True, slots=True)
class GenerationParams:
    """Sampling parameters forwarded to whichever provider is active."""

    temperature: float = DEFAULT_TEMPERATURE
    top_p: float = DEFAULT_TOP_P
    top_k: int = DEFAULT_TOP_K

    def __post_init__(self) -> None:
        _require(
            condition=0.0 <= self.temperature <= 2.0,
            message=f"must be within [0.0, 2.0], got {self.temperature!r}",
            field_name="temperature",
        )
        _require(
            condition=0.0 < self.top_p <= 1.0,
            message=f"must be within (0.0, 1.0], got {self.top_p!r}",
            field_name="top_p",
        )
        _require(
            condition=isinstance(self.top_k, int) and self.top_k >= 1,
            message=f"must be an int >= 1, got {self.top_k!r}",
            field_name="top_k",
        )


@dataclasses.dataclass(frozen=True, slots=True)
class ProviderConfig:
    """Which backend is active, plus the credentials and parameters it uses.

    Only resolved credentials (valid or invalid) may be stored here; pending
    credentials exist only for the duration of a verification call.
    """

    active_provider: ProviderKind = ProviderKind.REMOTE_CLOUD
    credentials: tuple[Credential, ...] = ()
    local_model_id: str | None = None
    generation: GenerationParams = dataclasses.field(default_factory=GenerationParams)
    daily_token_limit: int = DAILY_TOKEN_LIMIT

    def __post_init__(self) -> None:
        object.__setattr__(self, "active_provider", ProviderKind(self.active_provider))
        object.__setattr__(self, "credentials", tuple(self.credentials))
        _require(
            condition=all(isinstance(c, Credential) for c in self.credentials),
            message="must contain only Credential records",
            field_name="credentials",
            exc=TypeError,
        )
        _require(
            condition=not any(
                c.status is CredentialStatus.PENDING for c in self.credentials
            ),
            message="pending credentials cannot be stored; verify them first",
            field_name="credentials",
        )
        _require(
            condition=self.daily_token_limit > 0,
            message="must be positive",
            field_name="daily_token_limit",
        )

    @property
    def is_local(self) -> bool:
        return self.active_provider is ProviderKind.LOCAL_EMBEDDED

    def valid_credential(
        self, provider: ProviderKind = ProviderKind.REMOTE_CLOUD
    ) -> Credential | None:
        """Return the first valid credential for ``provider``, if any."""
        return next(
            (
                c
                for c in self.credentials
                if c.provider is provider and c.status is CredentialStatus.VALID
            ),
            None,
        )

    def with_credential(self, credential: Credential) -> ProviderConfig:
        """Return a copy storing ``credential``, replacing one with the same id."""
        kept = tuple(c for c in self.credentials if c.id != credential.id)
        return dataclasses.replace(self, credentials=(*kept, credential))

    def without_credential(self, credential_id: str) -> ProviderConfig:
        kept = tuple(c for c in self.credentials if c.id != credential_id)
        return dataclasses.replace(self, credentials=kept)

    def with_provider(
        self, provider: ProviderKind, *, local_model_id: str | None = None
    ) -> ProviderConfig:
        return dataclasses.replace(
            self,
            active_provider=ProviderKind(provider),
            local_model_id=local_model_id or self.local_model_id,
        )


@dataclasses.dataclass(frozen=True, slots=True)
class CredentialCheck:
    """Outcome of a one-shot credential verification."""

    provider: ProviderKind | None
    status: CredentialStatus


# --- Request records ---


@dataclasses.dataclass(frozen=True, slots=True)
class ChatTurn:
    """A single prior turn in a conversation."""

    role: typing.Literal["user", "model"]
    text: str

    def __post_init__(self) -> None:
        _require(
            condition=self.role in ("user", "model"),
            message=f"must be 'user' or 'model', got {self.role!r}",
            field_name="role",
        )
        _require(
            condition=isinstance(self.text, str),
            message="must be str",
            field_name="text",
            exc=TypeError,
        )


@dataclasses.dataclass(frozen=True, slots=True)
class RequestDescriptor:
    """Provider-agnostic description of one generation request."""

    target_model: str
    prompt_body: str
    system_instruction: str | None = None
    response_shape: ResponseShape = ResponseShape.FREE_TEXT
    conversation_history: tuple[ChatTurn, ...] = ()
    usage_category: UsageCategory = UsageCategory.WRITING

    def __post_init__(self) -> None:
        _require(
            condition=isinstance(self.target_model, str)
            and self.target_model.strip() != "",
            message="must be a non-empty str",
            field_name="target_model",
        )
        _require(
            condition=isinstance(self.prompt_body, str),
            message="must be str",
            field_name="prompt_body",
            exc=TypeError,
        )
        object.__setattr__(self, "response_shape", ResponseShape(self.response_shape))
        object.__setattr__(self, "usage_category", UsageCategory(self.usage_category))
        object.__setattr__(
            self, "conversation_history", _as_turns(self.conversation_history)
        )

    @property
    def wants_json(self) -> bool:
        return self.response_shape is ResponseShape.STRUCTURED_JSON


def _as_turns(history: Iterable[ChatTurn | Mapping[str, str]]) -> tuple[ChatTurn, ...]:
    turns: list[ChatTurn] = []
    for item in history:
        if isinstance(item, ChatTurn):
            turns.append(item)
        else:
            turns.append(ChatTurn(role=item["role"], text=item.get("text", "")))  # type: ignore[arg-type]
    return tuple(turns)


# --- Dispatch results ---

type DispatchResult = Result[str, ProviderError]


def display_text(result: DispatchResult) -> str:
    """Render either branch of a dispatch result as the text a UI shows."""
    if isinstance(result, Success):
        return result.value
    return result.error.user_message


# --- Usage ---


@dataclasses.dataclass(frozen=True, slots=True)
class UsageSnapshot:
    """Read-only view of the usage ledger at a point in time."""

    total: int
    by_category: Mapping[str, int]

    def __post_init__(self) -> None:
        if not isinstance(self.by_category, MappingProxyType):
            object.__setattr__(
                self, "by_category", MappingProxyType(dict(self.by_category))
            )

    def remaining(self, limit: int) -> int:
        """Tokens left before ``limit`` is reached (never negative)."""
        return max(limit - self.total, 0)


# --- Documents ---


@dataclasses.dataclass(frozen=True, slots=True)
class Section:
    """One titled section of a document, e.g. a manuscript chapter."""

    title: str
    content: str
    summary: str | None = None

    def __post_init__(self) -> None:
        _require(
            condition=isinstance(self.content, str),
            message="must be str",
            field_name="content",
            exc=TypeError,
        )
