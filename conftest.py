import asyncio
from collections.abc import Sequence

import pytest

from textquest import storage
from textquest.engine import SessionEngine
from textquest.models import Message


class StubModel:
    """Deterministic model stand-in for tests.

    Replies are consumed in call order; an Exception instance in the queue
    is raised instead of returned. Streaming splits each reply into
    word-sized chunks. Set ``gate`` to an asyncio.Event to hold every call
    until the test releases it.
    """

    def __init__(self, replies: Sequence[str | Exception] = ()) -> None:
        self._queue: list[str | Exception] = list(replies)
        self.calls: list[list[Message]] = []
        self.modes: list[str] = []
        self.models: list[str] = ["mistral", "llama3"]
        self.gate: asyncio.Event | None = None

    def queue(self, *replies: str | Exception) -> None:
        self._queue.extend(replies)

    async def _next(self, messages: Sequence[Message], mode: str) -> str:
        self.calls.append(list(messages))
        self.modes.append(mode)
        if self.gate is not None:
            await self.gate.wait()
        if not self._queue:
            raise AssertionError(
                f"StubModel: unexpected call (no replies queued). calls so far: {len(self.calls)}"
            )
        reply = self._queue.pop(0)
        if isinstance(reply, Exception):
            raise reply
        return reply

    async def complete(self, messages, *, model: str, temperature: float) -> str:
        return await self._next(messages, "complete")

    async def stream(self, messages, on_chunk, *, model: str, temperature: float) -> str:
        reply = await self._next(messages, "stream")
        for piece in reply.split(" "):
            on_chunk(piece + " ")
            await asyncio.sleep(0)
        return reply

    async def list_models(self) -> list[str]:
        return list(self.models)

    def assert_exhausted(self) -> None:
        """Assert every queued reply was consumed — catches missing model calls."""
        if self._queue:
            raise AssertionError(f"StubModel: unused replies remain: {self._queue}")


@pytest.fixture
def kv() -> storage.MemoryStore:
    return storage.MemoryStore()


@pytest.fixture
def stub_model() -> StubModel:
    return StubModel()


@pytest.fixture
def engine(kv: storage.MemoryStore, stub_model: StubModel) -> SessionEngine:
    return SessionEngine(stub_model, kv)
