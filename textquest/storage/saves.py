"""Save slots: full session blobs plus a metadata index."""

from __future__ import annotations

import logging

from pydantic import ValidationError

from textquest.models import SaveSlot, SessionState, utcnow

from .kv import KeyValueStore

logger = logging.getLogger(__name__)

SLOTS_KEY = "save_slots"
STATE_KEY_PREFIX = "game_state."


def state_key(slot_id: str) -> str:
    return f"{STATE_KEY_PREFIX}{slot_id}"


class SaveStore:
    def __init__(self, kv: KeyValueStore) -> None:
        self._kv = kv

    # ------------------------------------------------------------------
    # Metadata index
    # ------------------------------------------------------------------

    def _read_slots(self) -> list[SaveSlot]:
        try:
            raw = self._kv.get(SLOTS_KEY) or []
            return [SaveSlot.model_validate(s) for s in raw]
        except (ValueError, ValidationError) as e:
            logger.warning("Save slot index is unreadable, treating as empty: %s", e)
            return []

    def _write_slots(self, slots: list[SaveSlot]) -> None:
        self._kv.set(SLOTS_KEY, [s.model_dump(mode="json") for s in slots])

    def list_save_slots(self) -> list[SaveSlot]:
        """All slots, most recently saved first."""
        return sorted(self._read_slots(), key=lambda s: s.saved_at, reverse=True)

    def get_slot(self, slot_id: str) -> SaveSlot | None:
        for slot in self._read_slots():
            if slot.id == slot_id:
                return slot
        return None

    # ------------------------------------------------------------------
    # Save / load
    # ------------------------------------------------------------------

    def save_game(self, slot_id: str, state: SessionState, name: str | None = None) -> SaveSlot:
        """Write the state blob, then upsert its metadata record.

        Blob first: an interrupted save can leave an orphan blob, never a
        slot record pointing at missing data.
        """
        self._kv.set(state_key(slot_id), state.model_dump(mode="json"))

        slot = SaveSlot(
            id=slot_id,
            name=name or slot_id,
            saved_at=utcnow(),
            message_count=len(state.display_log),
        )
        slots = [s for s in self._read_slots() if s.id != slot_id]
        slots.append(slot)
        self._write_slots(slots)
        logger.info("Saved slot %s (%d entries)", slot_id, slot.message_count)
        return slot

    def load_game(self, slot_id: str) -> SessionState | None:
        """Return the saved state, or None when missing or unreadable."""
        try:
            raw = self._kv.get(state_key(slot_id))
        except ValueError as e:
            logger.warning("Save %s is corrupt: %s", slot_id, e)
            return None
        if raw is None:
            logger.info("No save found for slot %s", slot_id)
            return None
        try:
            return SessionState.model_validate(raw)
        except ValidationError as e:
            logger.warning("Save %s failed validation: %s", slot_id, e)
            return None

    # ------------------------------------------------------------------
    # Delete
    # ------------------------------------------------------------------

    def delete_save_slot(self, slot_id: str) -> bool:
        """Remove metadata, then blob. Returns False if neither existed."""
        slots = self._read_slots()
        remaining = [s for s in slots if s.id != slot_id]
        had_blob = state_key(slot_id) in self._kv.keys()
        if len(remaining) != len(slots):
            self._write_slots(remaining)
        self._kv.remove(state_key(slot_id))
        existed = had_blob or len(remaining) != len(slots)
        if existed:
            logger.info("Deleted slot %s", slot_id)
        return existed

    def delete_all_saves(self) -> int:
        """Remove every slot and blob. Returns the number of blobs removed."""
        self._kv.remove(SLOTS_KEY)
        blobs = [k for k in self._kv.keys() if k.startswith(STATE_KEY_PREFIX)]
        for key in blobs:
            self._kv.remove(key)
        logger.info("Deleted all saves (%d)", len(blobs))
        return len(blobs)
