"""Test doubles shared across the suite."""

from collections import deque

from authorforge.core.types import GenerationParams, RequestDescriptor


class SleepRecorder:
    """Awaitable stand-in for ``asyncio.sleep`` that records requested delays."""

    def __init__(self):
        self.delays: list[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


class FakeAdapter:
    """Scripted provider adapter.

    Each call pops the next scripted outcome: a string is returned, an
    exception is raised. With nothing scripted, returns ``default``.
    """

    label = "Gemini"

    def __init__(self, *outcomes, default: str = "ok"):
        self.outcomes = deque(outcomes)
        self.default = default
        self.calls: list[tuple[RequestDescriptor, GenerationParams]] = []
        self.closed = False

    def script(self, *outcomes) -> "FakeAdapter":
        self.outcomes.extend(outcomes)
        return self

    async def generate(self, descriptor, params):
        self.calls.append((descriptor, params))
        outcome = self.outcomes.popleft() if self.outcomes else self.default
        if isinstance(outcome, BaseException):
            raise outcome
        return outcome

    async def aclose(self) -> None:
        self.closed = True


class FakeLocalAdapter(FakeAdapter):
    """Local adapter double with an explicit load step."""

    label = "Local Model"

    def __init__(self, *outcomes, default: str = "ok", load_error=None):
        super().__init__(*outcomes, default=default)
        self.model_id = "local-test-model"
        self.load_error = load_error
        self.loads = 0

    def bind(self, model_id: str) -> "FakeLocalAdapter":
        self.model_id = model_id
        self.closed = False
        return self

    async def load(self) -> None:
        self.loads += 1
        if self.load_error is not None:
            raise self.load_error
