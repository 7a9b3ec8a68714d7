import pytest

from authorforge.executor import create_executor
from tests.helpers import FakeAdapter, FakeLocalAdapter


@pytest.fixture
def remote():
    return FakeAdapter()


@pytest.fixture
def local():
    return FakeLocalAdapter()


@pytest.fixture
def make_executor(remote, local, sleep):
    """Executor wired to fake adapters, with a deterministic estimator."""

    def _make(**overrides):
        overrides.setdefault("tokenizer_encoding", None)
        overrides.setdefault("requests_per_minute", 1000)
        return create_executor(
            remote_factory=lambda _key: remote,
            local_factory=lambda model_id: local.bind(model_id),
            sleep=sleep,
            **overrides,
        )

    return _make
