"""Streaming, cancellation and late-chunk handling in SessionEngine."""

import asyncio

import pytest

from textquest.engine import EngineState, SessionEngine
from textquest.events import Events

HALL = "You are in a hall.\nACTIONS: Go north | Go south"


async def _settle() -> None:
    for _ in range(5):
        await asyncio.sleep(0)


class HeldStream:
    """Model that streams the given chunks, then keeps ``on_chunk`` around.

    Lets a test push chunks after the turn that asked for them is over.
    """

    def __init__(self, chunks: list[str]) -> None:
        self.chunks = chunks
        self.on_chunk = None

    async def complete(self, messages, *, model, temperature):
        return "".join(self.chunks)

    async def stream(self, messages, on_chunk, *, model, temperature):
        self.on_chunk = on_chunk
        for chunk in self.chunks:
            on_chunk(chunk)
        return "".join(self.chunks)

    async def list_models(self):
        return []


# ── Streaming ────────────────────────────────────────────


async def test_streaming_is_default(engine, stub_model):
    stub_model.queue(HALL)
    await engine.start_new_game()
    assert stub_model.modes == ["stream"]


async def test_non_streaming_uses_complete(engine, stub_model):
    engine.settings_manager.update(streaming_enabled=False)
    stub_model.queue(HALL)
    await engine.start_new_game()
    assert stub_model.modes == ["complete"]
    assert engine.current_actions == ["Go north", "Go south"]


async def test_chunk_events_in_order(engine, stub_model):
    chunks = []
    engine.events.subscribe(
        lambda kind, data: chunks.append(data["text"]) if kind == Events.CHUNK else None
    )
    stub_model.queue("one two three")
    await engine.start_new_game()
    assert chunks == ["one ", "two ", "three "]


async def test_preview_hides_actions_line(engine, stub_model):
    previews = []
    engine.events.subscribe(
        lambda kind, data: previews.append(data["preview"]) if kind == Events.CHUNK else None
    )
    stub_model.queue(HALL)
    await engine.start_new_game()
    assert previews
    assert not any("ACTIONS" in p for p in previews)
    assert previews[-1] == "You are in a hall."


async def test_streaming_text_cleared_after_turn(engine, stub_model):
    stub_model.queue(HALL)
    await engine.start_new_game()
    assert engine.streaming_text == ""
    assert engine.tokens_per_second >= 0


async def test_event_sequence_for_a_turn(engine, stub_model):
    kinds = []
    engine.events.subscribe(lambda kind, data: kinds.append(kind))
    stub_model.queue("Quiet.\nACTIONS: Wait")
    await engine.start_new_game()
    assert kinds[0] == Events.TURN_STARTED
    assert kinds[-1] == Events.TURN_COMPLETED
    assert set(kinds[1:-1]) == {Events.CHUNK}


async def test_turn_completed_reports_discoveries(engine, stub_model):
    payloads = []
    engine.events.subscribe(
        lambda kind, data: payloads.append(data) if kind == Events.TURN_COMPLETED else None
    )
    stub_model.queue("A stranger named Mira waves.\nACTIONS: Wave back")
    await engine.start_new_game()
    assert payloads[0]["discovered"].npcs == ["Mira"]
    assert payloads[0]["actions"] == ["Wave back"]


async def test_chunk_after_finalize_dropped(kv):
    model = HeldStream(["You wake. ", "\nACTIONS: Rise"])
    engine = SessionEngine(model, kv)
    seen = []
    engine.events.subscribe(lambda kind, data: seen.append(kind))
    await engine.start_new_game()
    seen.clear()

    model.on_chunk("stray text")
    assert engine.streaming_text == ""
    assert seen == []


async def test_old_turn_chunk_dropped_after_new_turn(kv):
    model = HeldStream(["A cave.\nACTIONS: Enter"])
    engine = SessionEngine(model, kv)
    await engine.start_new_game()
    first_on_chunk = model.on_chunk

    await engine.perform_action("Enter")
    first_on_chunk("late")
    assert "late" not in engine.streaming_text
    assert all("late" not in e.text for e in engine.display_log)


# ── Cancellation ─────────────────────────────────────────


async def test_cancel_discards_late_reply(engine, stub_model):
    stub_model.queue(HALL)
    await engine.start_new_game()
    conv_before = len(engine.conversation)

    stub_model.gate = asyncio.Event()
    stub_model.queue("You walk north.\nACTIONS: Keep going")
    task = asyncio.create_task(engine.perform_action("Go north"))
    await _settle()

    assert engine.cancel_turn()
    assert engine.state is EngineState.IDLE
    assert engine.display_log[-1].text == "Turn cancelled."

    stub_model.gate.set()
    await task

    assert len(engine.conversation) == conv_before + 1
    assert engine.conversation.messages[-1].role == "user"
    assert engine.current_actions == ["Go north", "Go south"]
    assert engine.streaming_text == ""
    assert all("walk north" not in e.text for e in engine.display_log)


async def test_cancel_when_idle_is_noop(engine):
    assert not engine.cancel_turn()
    assert engine.display_log == []


async def test_cancel_emits_event(engine, stub_model):
    kinds = []
    engine.events.subscribe(lambda kind, data: kinds.append(kind))
    stub_model.gate = asyncio.Event()
    stub_model.queue(HALL)
    task = asyncio.create_task(engine.start_new_game())
    await _settle()
    engine.cancel_turn()
    stub_model.gate.set()
    await task
    assert Events.TURN_CANCELLED in kinds
    assert Events.TURN_COMPLETED not in kinds
    assert Events.CHUNK not in kinds


async def test_new_turn_after_cancel_wins(engine, stub_model):
    stub_model.queue(HALL)
    await engine.start_new_game()

    stub_model.gate = asyncio.Event()
    stub_model.queue("Old reply.\nACTIONS: Old", "New reply.\nACTIONS: New")
    first = asyncio.create_task(engine.perform_action("Go north"))
    await _settle()
    engine.cancel_turn()
    second = asyncio.create_task(engine.perform_action("Go south"))
    await _settle()

    stub_model.gate.set()
    await asyncio.gather(first, second)

    assert engine.current_actions == ["New"]
    contents = [m.content for m in engine.conversation]
    assert "Old reply.\nACTIONS: Old" not in contents
    assert contents[-1] == "New reply.\nACTIONS: New"
    assert engine.state is EngineState.IDLE


async def test_task_cancellation_cancels_turn(engine, stub_model):
    stub_model.gate = asyncio.Event()
    stub_model.queue(HALL)
    task = asyncio.create_task(engine.start_new_game())
    await _settle()
    task.cancel()
    with pytest.raises(asyncio.CancelledError):
        await task
    assert engine.state is EngineState.IDLE
    assert engine.display_log[-1].text == "Turn cancelled."
