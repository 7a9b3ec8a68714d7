"""Sequential batch orchestration for large analyses.

Items are split into contiguous slices and processed one slice at a time
with a fixed delay between slices. A failing slice is logged and skipped so a
single bad batch never sinks the whole run; the merge step only sees the
slices that succeeded, in input order.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable, Sequence
import dataclasses
import logging

from authorforge.client.error_handler import classify_error
from authorforge.constants import INTER_BATCH_DELAY
from authorforge.core.types import ProviderKind
from authorforge.telemetry import TelemetryContext, TelemetryContextProtocol

log = logging.getLogger(__name__)

type Sleep = Callable[[float], Awaitable[None]]


def partition[T](items: Sequence[T], batch_size: int) -> list[list[T]]:
    """Split ``items`` into contiguous slices of at most ``batch_size``."""
    if batch_size < 1:
        raise ValueError(f"batch_size must be >= 1, got {batch_size}")
    return [list(items[i : i + batch_size]) for i in range(0, len(items), batch_size)]


def batch_size_for(kind: ProviderKind, *, remote: int, local: int) -> int:
    """Provider-dependent batch size; local models get smaller batches."""
    return local if ProviderKind(kind) is ProviderKind.LOCAL_EMBEDDED else remote


async def run_batched[T, B, R](
    items: Sequence[T],
    batch_size: int,
    process_batch: Callable[[list[T]], Awaitable[B]],
    merge: Callable[[list[B]], R],
    *,
    delay: float = INTER_BATCH_DELAY,
    sleep: Sleep = asyncio.sleep,
    should_stop: Callable[[], bool] | None = None,
    telemetry: TelemetryContextProtocol | None = None,
) -> R:
    """Process ``items`` in sequential batches and merge what succeeded.

    Args:
        items: Work items, e.g. manuscript chapters.
        batch_size: Maximum items per batch. Must be at least 1.
        process_batch: Handles one slice; may raise.
        merge: Combines the per-batch results, in input order.
        delay: Seconds to wait between consecutive batches.
        sleep: Awaitable sleep, injectable for tests.
        should_stop: Checked before each batch; returning True stops the run.
        telemetry: Telemetry context for scopes and failure counts.

    Returns:
        ``merge`` applied to the results of the successful batches.
    """
    tele = telemetry or TelemetryContext()
    batches = partition(items, batch_size)
    results: list[B] = []

    with tele("batch.run", batches=len(batches), items=len(items)) as run:
        for index, batch in enumerate(batches):
            if should_stop is not None and should_stop():
                log.info(
                    "Batch run stopped before batch %d/%d", index + 1, len(batches)
                )
                break
            if index > 0 and delay > 0:
                await sleep(delay)

            with tele("batch.item", index=index, size=len(batch)):
                try:
                    results.append(await process_batch(batch))
                except Exception as e:
                    log.warning(
                        "Batch %d/%d failed (%s); skipping: %s",
                        index + 1,
                        len(batches),
                        classify_error(e),
                        e,
                    )
                    run.count("batch_failures")

    log.debug("Merging %d of %d batch results", len(results), len(batches))
    return merge(results)


@dataclasses.dataclass(frozen=True, slots=True)
class BatchJob[T, B, R]:
    """A batched unit of work: how to size, process, and merge it."""

    items: Sequence[T]
    batch_size: int
    process_batch: Callable[[list[T]], Awaitable[B]]
    merge: Callable[[list[B]], R]

    def __post_init__(self) -> None:
        if self.batch_size < 1:
            raise ValueError(f"batch_size must be >= 1, got {self.batch_size}")


class BatchOrchestrator:
    """Runs batch jobs with a shared delay, sleep and telemetry context."""

    def __init__(
        self,
        *,
        delay: float = INTER_BATCH_DELAY,
        sleep: Sleep = asyncio.sleep,
        telemetry: TelemetryContextProtocol | None = None,
    ):
        if delay < 0:
            raise ValueError(f"delay must be >= 0, got {delay}")
        self.delay = delay
        self._sleep = sleep
        self._tele = telemetry or TelemetryContext()

    async def run[T, B, R](
        self,
        job: BatchJob[T, B, R],
        *,
        should_stop: Callable[[], bool] | None = None,
    ) -> R:
        return await run_batched(
            job.items,
            job.batch_size,
            job.process_batch,
            job.merge,
            delay=self.delay,
            sleep=self._sleep,
            should_stop=should_stop,
            telemetry=self._tele,
        )
