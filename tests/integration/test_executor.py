import pytest

from authorforge.config import load_settings
from authorforge.core.types import (
    ErrorKind,
    Failure,
    ProviderKind,
    Section,
    Success,
    UsageCategory,
)
from authorforge.executor import StudioExecutor, create_executor
from authorforge.merge import flatten
from authorforge.telemetry import SimpleReporter

pytestmark = pytest.mark.integration


@pytest.mark.asyncio
async def test_dispatch_with_configured_key(make_executor, remote):
    remote.script("Once upon a time.")
    executor = make_executor(api_key="AIza-int")

    result = await executor.dispatch(executor.describe("Begin the story."))

    assert result == Success("Once upon a time.")
    sent, params = remote.calls[0]
    assert sent.target_model == "gemini-2.5-flash"
    assert params == executor.get_provider_config().generation
    usage = executor.get_usage()
    assert usage.by_category["writing"] == usage.total > 0
    assert executor.remaining_tokens() == 2_000_000 - usage.total


@pytest.mark.asyncio
async def test_no_key_means_soft_failure(make_executor, remote):
    executor = make_executor()

    result = await executor.dispatch(executor.describe("Hello"))

    assert isinstance(result, Failure)
    assert result.error.kind is ErrorKind.CONFIGURATION_MISSING
    assert remote.calls == []


@pytest.mark.asyncio
async def test_registering_key_at_runtime(make_executor, remote):
    executor = make_executor()

    credential = await executor.register_credential("AIza-runtime")
    result = await executor.dispatch(executor.describe("Hello"), UsageCategory.CHAT)

    assert executor.get_provider_config().valid_credential() == credential
    assert isinstance(result, Success)
    usage = executor.get_usage()
    assert usage.by_category["chat"] == usage.total > 0
    assert all(usage.by_category[c] == 0 for c in ("writing", "analysis", "media"))


@pytest.mark.asyncio
async def test_retry_settings_flow_to_dispatcher(make_executor, remote, sleep):
    remote.script(TimeoutError(), TimeoutError(), TimeoutError(), TimeoutError())
    executor = make_executor(api_key="AIza-int", max_attempts=4, retry_base_delay=0.5)

    result = await executor.dispatch(executor.describe("Hello"))

    assert isinstance(result, Failure)
    assert result.error.kind is ErrorKind.NETWORK_FAILURE
    assert len(remote.calls) == 4
    assert sleep.delays == [0.5, 1.0, 2.0]


@pytest.mark.asyncio
async def test_dispatch_json_and_extract(make_executor, remote):
    remote.script('```json\n{"title": "Ashes"}\n```')
    executor = make_executor(api_key="AIza-int")

    result = await executor.dispatch_json(executor.describe("Title?"))

    assert result == Success({"title": "Ashes"})
    assert executor.extract('noise [1, 2] noise') == [1, 2]


@pytest.mark.asyncio
async def test_local_provider_lifecycle(make_executor, local):
    local.script("Local reply")
    executor = make_executor(active_provider="local", local_model_id="llama-3-8b")

    before = await executor.dispatch(executor.describe("Hi"))
    await executor.load_local_model()
    after = await executor.dispatch(executor.describe("Hi"))
    await executor.unload_local_model()

    assert isinstance(before, Failure)
    assert "Local Model Not Loaded" in before.error.user_message
    assert after == Success("Local reply")
    assert local.model_id == "llama-3-8b"
    assert local.closed


def test_context_follows_active_provider(make_executor):
    chapters = [Section("Ch 1", "x" * 2000)]
    remote_exec = make_executor()
    local_exec = make_executor(active_provider="local")

    assert remote_exec.context_for(chapters) == "### Ch 1\n" + "x" * 2000
    assert "...[omitted]..." in local_exec.context_for(chapters)
    assert remote_exec.batch_size_for(remote=5, local=2) == 5
    assert local_exec.batch_size_for(remote=5, local=2) == 2


def test_context_within_token_budget(make_executor):
    executor = make_executor()
    chapters = [Section(f"Ch {i}", "word " * 3000) for i in range(6)]

    context = executor.context_for(chapters, max_tokens=800)

    assert executor.estimator.estimate(context) <= 800


def test_switching_provider_config(make_executor):
    executor = make_executor(api_key="AIza-int")
    config = executor.get_provider_config()

    executor.set_provider_config(config.with_provider(ProviderKind.LOCAL_EMBEDDED))

    assert executor.get_provider_config().is_local
    assert executor.context_budget().per_section_chars == 1000


@pytest.mark.asyncio
async def test_run_batched_uses_configured_delay(make_executor, sleep):
    executor = make_executor(inter_batch_delay=0.25)

    async def double(batch):
        return [n * 2 for n in batch]

    merged = await executor.run_batched(list(range(5)), 2, double, flatten)

    assert merged == [0, 2, 4, 6, 8]
    assert sleep.delays == [0.25, 0.25]


@pytest.mark.asyncio
async def test_async_context_manager_closes_adapters(make_executor, remote):
    async with make_executor(api_key="AIza-int") as executor:
        await executor.dispatch(executor.describe("Hi"))
    assert remote.closed


@pytest.mark.asyncio
async def test_telemetry_counts_tokens(monkeypatch, remote, sleep):
    monkeypatch.setenv("AUTHORFORGE_TELEMETRY", "1")
    reporter = SimpleReporter()
    executor = create_executor(
        remote_factory=lambda _key: remote,
        reporters=[reporter],
        sleep=sleep,
        api_key="AIza-int",
        tokenizer_encoding=None,
    )

    await executor.dispatch(executor.describe("abcd"))

    assert reporter.total("dispatch.tokens") == executor.get_usage().total
    assert len(reporter.timings["dispatch"]) == 1


def test_create_executor_applies_overrides_to_settings():
    settings = load_settings(tokenizer_encoding=None)

    executor = create_executor(settings, top_k=3, daily_token_limit=10)

    assert isinstance(executor, StudioExecutor)
    assert executor.settings.top_k == 3
    assert executor.get_provider_config().generation.top_k == 3
    assert executor.remaining_tokens() == 10
    assert settings.top_k == 40


def test_create_executor_reads_environment(monkeypatch):
    monkeypatch.setenv("AUTHORFORGE_ACTIVE_PROVIDER", "local")
    monkeypatch.setenv("AUTHORFORGE_TOKENIZER_ENCODING", "")

    executor = create_executor()

    assert executor.get_provider_config().is_local
    assert not executor.estimator.exact
