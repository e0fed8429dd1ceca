"""Bounded snapshot stack for single-step undo."""

from __future__ import annotations

from collections import deque

from textquest.models import SessionState

DEFAULT_UNDO_LIMIT = 20


class UndoStack:
    def __init__(self, limit: int = DEFAULT_UNDO_LIMIT) -> None:
        self._limit = limit
        self._stack: deque[SessionState] = deque(maxlen=limit)

    def __len__(self) -> int:
        return len(self._stack)

    @property
    def limit(self) -> int:
        return self._limit

    @property
    def can_undo(self) -> bool:
        return bool(self._stack)

    def push(self, state: SessionState) -> None:
        """Store a deep copy; the oldest snapshot falls off when full."""
        self._stack.append(state.model_copy(deep=True))

    def pop(self) -> SessionState | None:
        if not self._stack:
            return None
        return self._stack.pop()

    def clear(self) -> None:
        self._stack.clear()
