"""Session engine — runs the game one turn at a time.

Turn flow:
  1. Take an undo snapshot and record the player's action.
  2. Append the action as a user message and send the conversation
     (optionally windowed) to the model, streamed or complete.
  3. Append the reply as an assistant message and parse it into narrative
     and actions.
  4. Track entities named in the narrative, then unlock achievements.
  5. Autosave if enabled.

A model failure adds one error block to the display log and leaves the
conversation without an assistant message; the engine is ready for the
next action straight away. Any other exception from the client closes the
turn the same way before it propagates.

State machine:

    IDLE ──turn──▶ AWAITING_MODEL ──reply──▶ IDLE
                        │
                        └──failure──▶ ERROR_DISPLAYED ──▶ IDLE

Only one turn is in flight at a time. Streamed chunks are tagged with the
turn that requested them and are dropped once that turn is finalized or
cancelled, or a newer turn has started.
"""

from __future__ import annotations

import asyncio
import enum
import logging
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone

from textquest import storage
from textquest.achievements import Counters, evaluate, unlock
from textquest.conversation import ConversationStore
from textquest.events import EventEmitter, Events
from textquest.llm import ModelClient, ModelError
from textquest.models import (
    AUTOSAVE_SLOT,
    Achievement,
    DisplayEntry,
    SaveSlot,
    SessionState,
    Settings,
)
from textquest.parser import parse_response, strip_actions_line
from textquest.prompts import OPENING_INSTRUCTION, build_system_prompt, build_troubleshooting
from textquest.settings import SettingsManager
from textquest.tracker import RECENT_LIMIT, EntityKind, EntityTracker
from textquest.undo import DEFAULT_UNDO_LIMIT, UndoStack

logger = logging.getLogger(__name__)

TITLE = "TEXTQUEST"

BANNER: tuple[str, ...] = (
    f"=== {TITLE} ===",
    "A Text Adventure Powered by Ollama",
    "",
    "Initializing game world...",
    "",
)

SEPARATOR = "=" * 50


class EngineState(str, enum.Enum):
    IDLE = "idle"
    AWAITING_MODEL = "awaiting_model"
    ERROR_DISPLAYED = "error_displayed"


@dataclass
class _Turn:
    id: int
    started_at: float = field(default_factory=time.monotonic)
    chunks: int = 0
    finalized: bool = False
    cancelled: bool = False


class SessionEngine:
    def __init__(
        self,
        client: ModelClient,
        kv: storage.KeyValueStore,
        settings: SettingsManager | None = None,
        events: EventEmitter | None = None,
        undo_limit: int = DEFAULT_UNDO_LIMIT,
    ) -> None:
        self.events = events or EventEmitter()
        self.settings_manager = settings or SettingsManager(kv, self.events)
        self._client = client
        self._kv = kv
        self._saves = storage.SaveStore(kv)

        self.display_log: list[DisplayEntry] = []
        self.conversation = ConversationStore()
        self.current_actions: list[str] = []
        self.action_history: list[str] = []
        self.tracker = EntityTracker()
        self.undo_stack = UndoStack(undo_limit)

        self.achievements: list[Achievement] = storage.get_achievements(kv)
        self.stats = storage.get_stats(kv)
        self.available_models: list[str] = []

        self.state = EngineState.IDLE
        self.streaming_text = ""
        self.tokens_per_second = 0.0
        self.last_error: Exception | None = None

        self._turn_counter = 0
        self._turn: _Turn | None = None

    # ------------------------------------------------------------------
    # Read-only views
    # ------------------------------------------------------------------

    @property
    def settings(self) -> Settings:
        return self.settings_manager.settings

    @property
    def is_busy(self) -> bool:
        return self.state is EngineState.AWAITING_MODEL

    @property
    def can_undo(self) -> bool:
        return self.state is EngineState.IDLE and self.undo_stack.can_undo

    def session_state(self) -> SessionState:
        """Deep copy of the current session."""
        return SessionState(
            display_log=list(self.display_log),
            conversation=list(self.conversation.snapshot()),
            current_actions=list(self.current_actions),
            action_history=list(self.action_history),
            tracked=self.tracker.tracked,
        ).model_copy(deep=True)

    def recent(self, kind: EntityKind, limit: int = RECENT_LIMIT) -> list[str]:
        return self.tracker.recent(kind, limit)

    def _apply_state(self, state: SessionState) -> None:
        state = state.model_copy(deep=True)
        self.display_log = state.display_log
        self.conversation.restore(state.conversation)
        self.current_actions = state.current_actions
        self.action_history = state.action_history
        self.tracker = EntityTracker(state.tracked)
        self.streaming_text = ""

    def _add_entry(self, text: str) -> DisplayEntry:
        entry = DisplayEntry(text=text)
        self.display_log.append(entry)
        return entry

    # ------------------------------------------------------------------
    # Turn-taking
    # ------------------------------------------------------------------

    async def start_new_game(self) -> bool:
        """Reset the session and ask the model for the opening scene."""
        if self.is_busy:
            logger.warning("start_new_game ignored: a turn is in flight")
            return False

        self.display_log = []
        self.conversation.clear()
        self.current_actions = []
        self.action_history = []
        self.tracker.reset()
        self.undo_stack.clear()

        for line in BANNER:
            self._add_entry(line)
        self.conversation.append_system(build_system_prompt(self.settings))
        self.conversation.append_user(OPENING_INSTRUCTION)
        logger.info("New game started (model=%s)", self.settings.selected_model)

        await self._run_turn()
        return True

    async def perform_action(self, action: str) -> bool:
        """Play one action. Returns False, changing nothing, if it was rejected."""
        action = action.strip()
        if not action:
            return False
        if self.is_busy:
            logger.warning("perform_action(%r) ignored: a turn is in flight", action)
            return False

        self.undo_stack.push(self.session_state())
        self._add_entry(f"> {action}")
        self._add_entry("")
        self.action_history.append(action)
        self.stats.actions_taken += 1
        storage.save_stats(self._kv, self.stats)
        self.conversation.append_user(action)

        await self._run_turn()
        return True

    def cancel_turn(self) -> bool:
        """Abandon the in-flight turn.

        Its reply, whenever it arrives, is thrown away and never reaches the
        conversation. The player's own message stays, as after a failure.
        """
        turn = self._turn
        if not self.is_busy or turn is None or turn.finalized:
            return False
        turn.cancelled = True
        turn.finalized = True
        self.streaming_text = ""
        self._add_entry("Turn cancelled.")
        self.state = EngineState.IDLE
        logger.info("Turn %d cancelled", turn.id)
        self.events.emit(Events.TURN_CANCELLED, turn_id=turn.id)
        return True

    async def _run_turn(self) -> None:
        self._turn_counter += 1
        turn = _Turn(id=self._turn_counter)
        self._turn = turn
        self.state = EngineState.AWAITING_MODEL
        self.streaming_text = ""
        self.tokens_per_second = 0.0
        self.last_error = None
        self.events.emit(Events.TURN_STARTED, turn_id=turn.id)

        settings = self.settings
        context = self.conversation.context(settings.max_context_messages)
        try:
            if settings.streaming_enabled:
                reply = await self._client.stream(
                    context,
                    lambda chunk: self._on_chunk(turn, chunk),
                    model=settings.selected_model,
                    temperature=settings.temperature,
                )
            else:
                reply = await self._client.complete(
                    context,
                    model=settings.selected_model,
                    temperature=settings.temperature,
                )
        except ModelError as e:
            if self._is_live(turn):
                self._fail_turn(turn, e)
            return
        except asyncio.CancelledError:
            if self._is_live(turn):
                self.cancel_turn()
            raise
        except Exception as e:
            # a client outside the ModelError contract; close the turn, then propagate
            if self._is_live(turn):
                logger.exception("Turn %d failed with an unexpected error", turn.id)
                self._fail_turn(turn, e)
            raise

        if not self._is_live(turn):
            logger.info("Discarding reply for abandoned turn %d", turn.id)
            return
        self._complete_turn(turn, reply)

    def _is_live(self, turn: _Turn) -> bool:
        return turn is self._turn and not turn.finalized

    def _on_chunk(self, turn: _Turn, chunk: str) -> None:
        if not self._is_live(turn):
            logger.debug("Dropping chunk for turn %d", turn.id)
            return
        self.streaming_text += chunk
        turn.chunks += 1
        elapsed = time.monotonic() - turn.started_at
        if elapsed > 0:
            self.tokens_per_second = turn.chunks / elapsed
        self.events.emit(
            Events.CHUNK,
            turn_id=turn.id,
            text=chunk,
            preview=strip_actions_line(self.streaming_text),
        )

    def _complete_turn(self, turn: _Turn, reply: str) -> None:
        turn.finalized = True
        self.conversation.append_assistant(reply)
        parsed = parse_response(reply)
        if parsed.narrative:
            self._add_entry(parsed.narrative)
            self._add_entry("")
        self.current_actions = parsed.actions
        discovered = self.tracker.update(parsed.narrative)
        unlocked = self._evaluate_achievements()
        self.streaming_text = ""

        if self.settings.auto_save_enabled:
            self.save_game(AUTOSAVE_SLOT, "Autosave")

        self.state = EngineState.IDLE
        logger.info("Turn %d completed (%d actions)", turn.id, len(parsed.actions))
        self.events.emit(
            Events.TURN_COMPLETED,
            turn_id=turn.id,
            narrative=parsed.narrative,
            actions=list(parsed.actions),
            discovered=discovered,
            unlocked=[a.id for a in unlocked],
        )

    def _fail_turn(self, turn: _Turn, error: Exception) -> None:
        turn.finalized = True
        self.streaming_text = ""
        self.last_error = error
        self.state = EngineState.ERROR_DISPLAYED
        block = "\n".join([
            "=== ERROR ===",
            str(error) or type(error).__name__,
            "",
            build_troubleshooting(self.settings.selected_model),
        ])
        self._add_entry(block)
        logger.warning("Turn %d failed: %s", turn.id, error)
        self.events.emit(Events.ERROR, turn_id=turn.id, error=error, message=str(error))
        self.state = EngineState.IDLE

    def _evaluate_achievements(self) -> list[Achievement]:
        counts = self.tracker.counts()
        counters = Counters(
            actions_taken=self.stats.actions_taken,
            locations=counts["locations"],
            npcs=counts["npcs"],
            items=counts["items"],
        )
        changed = unlock(self.achievements, evaluate(counters, self.achievements))
        if changed:
            storage.save_achievements(self._kv, self.achievements)
        for ach in changed:
            self._add_entry(f"🏆 Achievement Unlocked: {ach.title}")
            logger.info("Achievement unlocked: %s", ach.id)
            self.events.emit(Events.ACHIEVEMENT_UNLOCKED, achievement=ach)
        return changed

    # ------------------------------------------------------------------
    # Undo
    # ------------------------------------------------------------------

    def undo_last_action(self) -> bool:
        """Rewind to before the last action. Autosaves and unlocks stay as they are."""
        if self.state is not EngineState.IDLE:
            return False
        snapshot = self.undo_stack.pop()
        if snapshot is None:
            return False
        self._apply_state(snapshot)
        logger.info("Undo: %d snapshots left", len(self.undo_stack))
        self.events.emit(Events.STATE_RESTORED, source="undo")
        return True

    # ------------------------------------------------------------------
    # Save slots
    # ------------------------------------------------------------------

    def save_game(self, slot_id: str = AUTOSAVE_SLOT, name: str | None = None) -> SaveSlot:
        return self._saves.save_game(slot_id, self.session_state(), name)

    def load_game(self, slot_id: str = AUTOSAVE_SLOT) -> bool:
        """Restore a slot. Missing or unreadable data leaves the session as it is."""
        if self.is_busy:
            return False
        state = self._saves.load_game(slot_id)
        if state is None:
            return False
        self._apply_state(state)
        self.undo_stack.clear()
        logger.info("Loaded slot %s", slot_id)
        self.events.emit(Events.STATE_RESTORED, source="load", slot_id=slot_id)
        return True

    def list_save_slots(self) -> list[SaveSlot]:
        return self._saves.list_save_slots()

    def delete_save_slot(self, slot_id: str) -> bool:
        return self._saves.delete_save_slot(slot_id)

    def delete_all_saves(self) -> int:
        return self._saves.delete_all_saves()

    async def resume(self) -> None:
        """Continue from the autosave, or start fresh if there is none."""
        if not self.load_game(AUTOSAVE_SLOT) or not self.display_log:
            await self.start_new_game()

    # ------------------------------------------------------------------
    # Models
    # ------------------------------------------------------------------

    async def refresh_models(self) -> list[str]:
        try:
            self.available_models = await self._client.list_models()
        except ModelError as e:
            logger.warning("Could not fetch model list: %s", e)
        return list(self.available_models)

    # ------------------------------------------------------------------
    # Export
    # ------------------------------------------------------------------

    def export_transcript(self, now: datetime | None = None) -> str:
        stamp = (now or datetime.now(timezone.utc)).strftime("%Y-%m-%d %H:%M:%S %Z").strip()
        lines = [
            f"=== {TITLE} TRANSCRIPT ===",
            f"Exported: {stamp}",
            f"Model: {self.settings.selected_model}",
            f"Total Messages: {len(self.display_log)}",
            "",
            SEPARATOR,
            "",
        ]
        lines.extend(entry.text for entry in self.display_log)
        return "\n".join(lines) + "\n"
