from __future__ import annotations

from typing import Any, Callable, Iterable

from chainchat.agents.dispatcher import Dispatcher, ModelKind
from chainchat.agents.orchestrator import ChainOrchestrator


class FakeModelClient:
    """Stands in for any of the three clients; records every prompt."""

    def __init__(self, reply: str = "", error: Exception | None = None) -> None:
        self.reply = reply
        self.error = error
        self.calls: list[tuple[str, str | None]] = []

    async def ask(self, prompt: str, model: str | None = None) -> str:
        self.calls.append((prompt, model))
        if self.error is not None:
            raise self.error
        return self.reply


def make_orchestrator(
    scraped: FakeModelClient | None = None,
    hosted: FakeModelClient | None = None,
    local: FakeModelClient | None = None,
) -> ChainOrchestrator:
    scraped = scraped or FakeModelClient("scraped answer")
    hosted = hosted or FakeModelClient("hosted answer")
    local = local or FakeModelClient("local answer")
    dispatcher = Dispatcher(
        {
            ModelKind.SCRAPED_SERVICE: lambda: scraped,
            ModelKind.HOSTED_REASONING: lambda: hosted,
            ModelKind.HOSTED_GENERAL: lambda: hosted,
            ModelKind.LOCAL: lambda: local,
        }
    )
    return ChainOrchestrator(dispatcher)


class FakeClock:
    """Monotonic clock advanced only by ``sleep``."""

    def __init__(self) -> None:
        self.now = 0.0
        self.sleeps: list[float] = []

    def __call__(self) -> float:
        return self.now

    async def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds


class FakePageDriver:
    """Simulated Scira page: serves a scripted sequence of answer texts."""

    def __init__(
        self,
        texts: Iterable[str] | Callable[[int], str] = (),
        *,
        fail_on: str | None = None,
        error: Exception | None = None,
        close_error: Exception | None = None,
    ) -> None:
        self._texts = texts if callable(texts) else list(texts)
        self.fail_on = fail_on
        self.error = error or RuntimeError(f"{fail_on} failed")
        self.close_error = close_error
        self.calls: list[str] = []
        self.submitted: list[str] = []
        self.reads = 0
        self.closed = False

    def _step(self, name: str) -> None:
        self.calls.append(name)
        if self.fail_on == name:
            raise self.error

    async def open(self) -> None:
        self._step("open")

    async def submit(self, prompt: str) -> None:
        self._step("submit")
        self.submitted.append(prompt)

    async def wait_for_response(self) -> None:
        self._step("wait_for_response")

    async def read_latest_response(self) -> str:
        self._step("read")
        self.reads += 1
        if callable(self._texts):
            return self._texts(self.reads)
        if not self._texts:
            return ""
        index = min(self.reads, len(self._texts)) - 1
        return self._texts[index]

    async def close(self) -> None:
        self.closed = True
        if self.close_error is not None:
            raise self.close_error


async def seed_messages(store: Any, conversation_id: str, count: int) -> None:
    """Alternate user/AI messages named turn-00, turn-01, ..."""
    for i in range(count):
        await store.create_message(conversation_id, f"turn-{i:02d}", i % 2 == 0, "scira")
