"""AI request orchestration core for the AuthorForge writing studio."""

import importlib.metadata
import logging

from authorforge.analysis import ManuscriptAnalyzer
from authorforge.batching import BatchJob, BatchOrchestrator, run_batched
from authorforge.config import StudioSettings, load_settings
from authorforge.context_budget import ContextBudget, budget, clip, fit_to_tokens, truncate
from authorforge.core.types import (
    ChatTurn,
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
    Section,
    Success,
    UsageCategory,
    UsageSnapshot,
    display_text,
)
from authorforge.dispatcher import Dispatcher
from authorforge.exceptions import (
    AuthorForgeError,
    ConfigurationError,
    MalformedResponseError,
    ProviderError,
    ValidationError,
)
from authorforge.executor import StudioExecutor, create_executor
from authorforge.extraction import extract_as, extract_json, require_json
from authorforge.telemetry import SimpleReporter, TelemetryContext, TelemetryReporter
from authorforge.usage import TokenEstimator, UsageLedger

# Version handling
try:
    __version__ = importlib.metadata.version("authorforge")
except importlib.metadata.PackageNotFoundError:
    __version__ = "development"

# Prevents 'No handler found' warnings when the host app configures no logging.
logging.getLogger(__name__).addHandler(logging.NullHandler())

__all__ = [  # noqa: RUF022
    # Entry points
    "StudioExecutor",
    "create_executor",
    "ManuscriptAnalyzer",
    "Dispatcher",
    # Configuration
    "StudioSettings",
    "load_settings",
    # Types
    "ChatTurn",
    "Credential",
    "CredentialCheck",
    "CredentialStatus",
    "DispatchResult",
    "ErrorKind",
    "Failure",
    "GenerationParams",
    "ProviderConfig",
    "ProviderKind",
    "RequestDescriptor",
    "ResponseShape",
    "Result",
    "Section",
    "Success",
    "UsageCategory",
    "UsageSnapshot",
    "display_text",
    # Building blocks
    "BatchJob",
    "BatchOrchestrator",
    "ContextBudget",
    "TokenEstimator",
    "UsageLedger",
    "budget",
    "clip",
    "extract_as",
    "extract_json",
    "fit_to_tokens",
    "require_json",
    "run_batched",
    "truncate",
    # Telemetry
    "SimpleReporter",
    "TelemetryContext",
    "TelemetryReporter",
    # Exceptions
    "AuthorForgeError",
    "ConfigurationError",
    "MalformedResponseError",
    "ProviderError",
    "ValidationError",
]
