"""
Global test configuration.
"""

from contextlib import suppress
import os

import pytest

from authorforge.client.configuration import RateLimitConfig
from authorforge.client.rate_limiter import RateLimiter
from authorforge.client.retry import RetryPolicy
from authorforge.core.types import (
    Credential,
    CredentialStatus,
    ProviderConfig,
    ProviderKind,
)
from authorforge.dispatcher import Dispatcher
from authorforge.usage import TokenEstimator, UsageLedger
from tests.helpers import FakeAdapter, FakeLocalAdapter, SleepRecorder


def pytest_configure(config):
    config.addinivalue_line("markers", "unit: fast, isolated tests")
    config.addinivalue_line("markers", "integration: cross-module workflows")
    config.addinivalue_line("markers", "allow_dotenv: permit .env loading")
    config.addinivalue_line(
        "markers", "allow_env_pollution: keep the current environment"
    )


# --- Environment Isolation (Autouse) ---
@pytest.fixture(autouse=True)
def block_dotenv(request, monkeypatch):
    """Prevent python-dotenv from discovering project .env files during tests.

    Mark a test with @pytest.mark.allow_dotenv to permit discovery.
    """
    if request.node.get_closest_marker("allow_dotenv"):
        return
    with suppress(Exception):
        monkeypatch.setattr(
            "authorforge.config.loader.find_dotenv",
            lambda *_args, **_kwargs: "",
        )


@pytest.fixture(autouse=True)
def isolate_authorforge_env(request, monkeypatch):
    """Ensure a clean AUTHORFORGE_* environment for each test."""
    if request.node.get_closest_marker("allow_env_pollution"):
        return
    for key in list(os.environ.keys()):
        if key.startswith("AUTHORFORGE_"):
            monkeypatch.delenv(key, raising=False)
    # Avoid DEBUG toggles enabling telemetry
    monkeypatch.delenv("DEBUG", raising=False)


# --- Shared building blocks ---


@pytest.fixture
def sleep():
    return SleepRecorder()


@pytest.fixture
def estimator():
    """Deterministic estimator: ceil(len / 4)."""
    return TokenEstimator(encoding_name=None)


@pytest.fixture
def valid_credential():
    return Credential(
        secret="AIza-test-key",
        provider=ProviderKind.REMOTE_CLOUD,
        status=CredentialStatus.VALID,
    )


@pytest.fixture
def remote_config(valid_credential):
    return ProviderConfig(credentials=(valid_credential,))


@pytest.fixture
def remote_adapter():
    return FakeAdapter()


@pytest.fixture
def local_adapter():
    return FakeLocalAdapter()


@pytest.fixture
def make_dispatcher(sleep, estimator, remote_adapter, local_adapter):
    """Factory for dispatchers wired to fake adapters and a no-op sleep."""

    def _make(config=None, *, remote=None, local=None, max_attempts=3):
        remote = remote or remote_adapter
        local = local or local_adapter
        return Dispatcher(
            config,
            ledger=UsageLedger(),
            estimator=estimator,
            rate_limiter=RateLimiter(RateLimitConfig(1000), sleep=sleep),
            retry_policy=RetryPolicy(max_attempts=max_attempts),
            remote_factory=lambda _key: remote,
            local_factory=lambda model_id: local.bind(model_id),
            sleep=sleep,
        )

    return _make
