import math

import pytest

from authorforge.batching import (
    BatchJob,
    BatchOrchestrator,
    batch_size_for,
    partition,
    run_batched,
)
from authorforge.core.types import ProviderKind
from authorforge.merge import flatten
from authorforge.telemetry import SimpleReporter, TelemetryContext

pytestmark = pytest.mark.unit


class _Processor:
    """Records each batch; raises for batches listed in ``fail_on``."""

    def __init__(self, fail_on=()):
        self.fail_on = set(fail_on)
        self.batches = []

    async def __call__(self, batch):
        index = len(self.batches)
        self.batches.append(batch)
        if index in self.fail_on:
            raise RuntimeError(f"batch {index} exploded")
        return [item * 10 for item in batch]


def test_partition_is_contiguous():
    assert partition(list(range(7)), 3) == [[0, 1, 2], [3, 4, 5], [6]]
    assert partition([], 3) == []


@pytest.mark.parametrize("size", [0, -2])
def test_partition_rejects_non_positive_size(size):
    with pytest.raises(ValueError):
        partition([1, 2], size)


@pytest.mark.asyncio
@pytest.mark.parametrize(("count", "size"), [(12, 5), (10, 5), (1, 5), (3, 1)])
async def test_one_call_per_batch(count, size, sleep):
    process = _Processor()

    merged = await run_batched(list(range(count)), size, process, flatten, sleep=sleep)

    assert len(process.batches) == math.ceil(count / size)
    assert merged == [i * 10 for i in range(count)]


@pytest.mark.asyncio
async def test_failed_batch_is_skipped_and_order_kept(sleep, caplog):
    process = _Processor(fail_on={1})

    merged = await run_batched(list(range(12)), 5, process, flatten, sleep=sleep)

    assert len(process.batches) == 3
    assert merged == [0, 10, 20, 30, 40, 100, 110]
    assert "Batch 2/3 failed" in caplog.text


@pytest.mark.asyncio
async def test_delay_only_between_batches(sleep):
    await run_batched(list(range(12)), 5, _Processor(), flatten, delay=1.5, sleep=sleep)
    assert sleep.delays == [1.5, 1.5]


@pytest.mark.asyncio
async def test_zero_delay_never_sleeps(sleep):
    await run_batched(list(range(6)), 2, _Processor(), flatten, delay=0, sleep=sleep)
    assert sleep.delays == []


@pytest.mark.asyncio
async def test_empty_input_merges_nothing(sleep):
    process = _Processor()
    assert await run_batched([], 4, process, flatten, sleep=sleep) == []
    assert process.batches == []


@pytest.mark.asyncio
async def test_should_stop_halts_before_next_batch(sleep):
    process = _Processor()

    merged = await run_batched(
        list(range(9)),
        3,
        process,
        flatten,
        sleep=sleep,
        should_stop=lambda: len(process.batches) >= 2,
    )

    assert len(process.batches) == 2
    assert merged == [i * 10 for i in range(6)]


@pytest.mark.asyncio
async def test_invalid_batch_size_raises_before_processing(sleep):
    process = _Processor()
    with pytest.raises(ValueError):
        await run_batched([1, 2, 3], 0, process, flatten, sleep=sleep)
    assert process.batches == []


def test_batch_size_for_provider():
    assert batch_size_for(ProviderKind.REMOTE_CLOUD, remote=5, local=2) == 5
    assert batch_size_for(ProviderKind.LOCAL_EMBEDDED, remote=5, local=2) == 2


# --- Orchestrator ---


def test_batch_job_validates_size():
    with pytest.raises(ValueError):
        BatchJob([1], 0, _Processor(), flatten)


def test_orchestrator_rejects_negative_delay():
    with pytest.raises(ValueError):
        BatchOrchestrator(delay=-1)


@pytest.mark.asyncio
async def test_orchestrator_runs_job_with_its_delay(sleep):
    orchestrator = BatchOrchestrator(delay=2.0, sleep=sleep)
    job = BatchJob(["a", "b", "c"], 2, _Processor(), lambda results: len(results))

    assert await orchestrator.run(job) == 2
    assert sleep.delays == [2.0]


@pytest.mark.asyncio
async def test_failures_are_counted_when_telemetry_enabled(sleep, monkeypatch):
    monkeypatch.setenv("AUTHORFORGE_TELEMETRY", "1")
    reporter = SimpleReporter()
    orchestrator = BatchOrchestrator(
        delay=0, sleep=sleep, telemetry=TelemetryContext(reporter)
    )
    job = BatchJob(list(range(6)), 2, _Processor(fail_on={0, 2}), flatten)

    assert await orchestrator.run(job) == [20, 30]

    assert reporter.total("batch.run.batch.item.batch_failures") == 2
    assert len(reporter.timings["batch.run.batch.item"]) == 3
    assert len(reporter.timings["batch.run"]) == 1
