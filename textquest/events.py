"""Synchronous observer notifications for engine state changes.

The presentation layer subscribes a callback and re-renders from the
engine when events arrive. Events are delivered in order on the caller's
thread; a failing subscriber is logged and skipped so it cannot break a
turn.
"""

import logging
from collections.abc import Callable
from typing import Any

logger = logging.getLogger(__name__)

Listener = Callable[[str, dict[str, Any]], None]


class Events:
    TURN_STARTED = "turn_started"
    CHUNK = "chunk"
    TURN_COMPLETED = "turn_completed"
    TURN_CANCELLED = "turn_cancelled"
    ERROR = "error"
    ACHIEVEMENT_UNLOCKED = "achievement_unlocked"
    STATE_RESTORED = "state_restored"
    SETTINGS_CHANGED = "settings_changed"


class EventEmitter:
    def __init__(self) -> None:
        self._listeners: list[Listener] = []

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register ``listener``; returns a function that unsubscribes it."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def emit(self, event_type: str, **data: Any) -> None:
        logger.debug("event %s", event_type)
        for listener in list(self._listeners):
            try:
                listener(event_type, data)
            except Exception:
                logger.exception("Event listener failed on %s", event_type)

    def listener_count(self) -> int:
        return len(self._listeners)
