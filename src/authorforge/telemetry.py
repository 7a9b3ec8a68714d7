"""Timing scopes and counters for dispatches and batch runs.

Off unless ``AUTHORFORGE_TELEMETRY=1`` (or ``DEBUG=1``) is set and at least
one reporter is supplied; otherwise every caller shares one no-op context.
Scopes nest per task through a context variable, so concurrent dispatches
report under their own paths, e.g. ``batch.run.batch.item.dispatch``.
"""

from collections import defaultdict, deque
from contextvars import ContextVar, Token
from dataclasses import dataclass
import logging
import os
import time
from types import TracebackType
from typing import Any, Protocol, Self, runtime_checkable

log = logging.getLogger(__name__)

_active_scopes: ContextVar[tuple[str, ...]] = ContextVar(
    "authorforge_active_scopes", default=()
)


def telemetry_enabled() -> bool:
    """Read the environment flags; evaluated each time a context is built."""
    return "1" in (os.getenv("AUTHORFORGE_TELEMETRY"), os.getenv("DEBUG"))


def _placement(parents: tuple[str, ...]) -> dict[str, Any]:
    return {
        "depth": len(parents),
        "parent_scope": ".".join(parents) or None,
    }


@runtime_checkable
class TelemetryReporter(Protocol):
    """Anything that accepts scope timings and metric values."""

    def record_timing(self, scope: str, duration: float, **metadata: Any) -> None: ...  # noqa: D102
    def record_metric(self, scope: str, value: Any, **metadata: Any) -> None: ...  # noqa: D102


@dataclass(frozen=True, slots=True)
class _NoOpTelemetryContext:
    """Shared stand-in when telemetry is off; every operation does nothing."""

    @property
    def enabled(self) -> bool:
        return False

    def __call__(self, name: str, **metadata: Any) -> Self:  # noqa: ARG002
        return self

    def __enter__(self) -> Self:
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_value: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        return None

    def metric(self, name: str, value: Any, **metadata: Any) -> None:  # noqa: ARG002
        return None

    def count(self, name: str, increment: int = 1, **metadata: Any) -> None:  # noqa: ARG002
        return None


class _Scope:
    """One timed region; pushes its name for the duration of the ``with``."""

    __slots__ = ("_context", "_metadata", "_name", "_parents", "_started", "_token")

    def __init__(
        self, context: "_EnabledTelemetryContext", name: str, metadata: dict[str, Any]
    ):
        self._context = context
        self._name = name
        self._metadata = metadata
        self._parents: tuple[str, ...] = ()
        self._token: Token[tuple[str, ...]] | None = None
        self._started = 0.0

    def __enter__(self) -> "_EnabledTelemetryContext":
        if not isinstance(self._name, str) or not self._name:
            raise ValueError("Scope name must be a non-empty string")
        self._parents = _active_scopes.get()
        self._token = _active_scopes.set((*self._parents, self._name))
        self._started = time.perf_counter()
        return self._context

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_value: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        elapsed = time.perf_counter() - self._started
        if self._token is not None:
            _active_scopes.reset(self._token)
        self._context._broadcast(
            "record_timing",
            ".".join((*self._parents, self._name)),
            elapsed,
            **_placement(self._parents),
            **self._metadata,
        )


class _EnabledTelemetryContext:
    """Sends scope timings and metrics to each configured reporter."""

    __slots__ = ("reporters",)

    def __init__(self, *reporters: TelemetryReporter):
        self.reporters = reporters

    @property
    def enabled(self) -> bool:
        return True

    def __call__(self, name: str, **metadata: Any) -> _Scope:
        return _Scope(self, name, metadata)

    def _broadcast(self, method: str, scope: str, value: Any, **metadata: Any) -> None:
        # Reporter failures are logged, never raised
        for reporter in self.reporters:
            try:
                getattr(reporter, method)(scope, value, **metadata)
            except Exception as e:
                log.error(
                    "Telemetry reporter '%s' failed: %s",
                    type(reporter).__name__,
                    e,
                    exc_info=True,
                )

    def metric(self, name: str, value: Any, **metadata: Any) -> None:
        """Record ``value`` under the innermost open scope."""
        parents = _active_scopes.get()
        self._broadcast(
            "record_metric",
            ".".join((*parents, name)),
            value,
            **_placement(parents),
            **metadata,
        )

    def count(self, name: str, increment: int = 1, **metadata: Any) -> None:
        self.metric(name, increment, metric_type="counter", **metadata)


_DISABLED = _NoOpTelemetryContext()

type TelemetryContextProtocol = _EnabledTelemetryContext | _NoOpTelemetryContext


def TelemetryContext(*reporters: TelemetryReporter) -> TelemetryContextProtocol:  # noqa: N802
    """Build a telemetry context for ``reporters``.

    Returns the shared no-op context when no reporters are given or the
    environment flags are off.
    """
    if not reporters or not telemetry_enabled():
        return _DISABLED
    return _EnabledTelemetryContext(*reporters)


class SimpleReporter:
    """Keeps recent timings and metrics in memory, bounded per scope."""

    def __init__(self, max_entries_per_scope: int = 1000):
        self.max_entries = max_entries_per_scope
        self.timings: defaultdict[str, deque[tuple[float, dict[str, Any]]]] = defaultdict(
            self._bounded
        )
        self.metrics: defaultdict[str, deque[tuple[Any, dict[str, Any]]]] = defaultdict(
            self._bounded
        )

    def _bounded(self) -> deque:
        return deque(maxlen=self.max_entries)

    def record_timing(self, scope: str, duration: float, **metadata: Any) -> None:
        self.timings[scope].append((duration, metadata))

    def record_metric(self, scope: str, value: Any, **metadata: Any) -> None:
        self.metrics[scope].append((value, metadata))

    def total(self, scope: str) -> float:
        """Sum of the numeric values recorded for metric ``scope``."""
        entries = self.metrics.get(scope, ())
        return sum(value for value, _ in entries if isinstance(value, int | float))

    def get_report(self) -> str:
        """Plain-text summary: calls and time per scope, totals per metric."""
        lines = ["=== Telemetry Report ==="]
        if self.timings:
            lines.append("\n--- Timings ---")
        for scope in sorted(self.timings):
            durations = [duration for duration, _ in self.timings[scope]]
            spent = sum(durations)
            lines.append(
                f"{scope:<36} calls={len(durations):<5} "
                f"mean={spent / len(durations):.4f}s Total: {spent:.4f}s"
            )
        if self.metrics:
            lines.append("\n--- Metrics ---")
        for scope in sorted(self.metrics):
            lines.append(
                f"{scope:<36} samples={len(self.metrics[scope]):<5} "
                f"Total: {self.total(scope):,.0f}"
            )
        return "\n".join(lines)
