"""Conversation store — the ordered message log sent to the model each turn."""

from __future__ import annotations

from collections.abc import Iterable

from textquest.models import Message


class ConversationStore:
    """Append-only log of role-tagged messages.

    There is no edit or remove operation. ``restore()`` swaps the whole log
    and is only used when rewinding (undo) or loading a save.
    """

    def __init__(self, messages: Iterable[Message] = ()) -> None:
        self._messages: list[Message] = list(messages)

    def __len__(self) -> int:
        return len(self._messages)

    def __iter__(self):
        return iter(self._messages)

    @property
    def messages(self) -> tuple[Message, ...]:
        return tuple(self._messages)

    def append_system(self, text: str) -> Message:
        return self._append("system", text)

    def append_user(self, text: str) -> Message:
        return self._append("user", text)

    def append_assistant(self, text: str) -> Message:
        return self._append("assistant", text)

    def _append(self, role: str, text: str) -> Message:
        msg = Message(role=role, content=text)
        self._messages.append(msg)
        return msg

    def snapshot(self) -> tuple[Message, ...]:
        """Immutable copy; later appends do not show up in it."""
        return tuple(self._messages)

    def restore(self, messages: Iterable[Message]) -> None:
        self._messages = list(messages)

    def clear(self) -> None:
        self._messages = []

    def context(self, limit: int = 0) -> list[Message]:
        """Messages to send to the model.

        With ``limit == 0`` the whole history goes out. Otherwise the system
        prompt is kept as a prefix and only the last ``limit`` other
        messages follow it.
        """
        if limit <= 0:
            return list(self._messages)
        head: list[Message] = []
        rest = self._messages
        if rest and rest[0].role == "system":
            head, rest = [rest[0]], rest[1:]
        return head + rest[-limit:]
