"""Core domain models.

The engine, storage functions and HTTP layer all operate on these types.
Pydantic is used for validation and serialisation at every data boundary.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

Role = Literal["system", "user", "assistant"]
DetailLevel = Literal["brief", "normal", "detailed"]
Tone = Literal["serious", "balanced", "whimsical"]

AUTOSAVE_SLOT = "autosave"

MIN_FONT_SIZE = 8
MAX_FONT_SIZE = 36


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Message(BaseModel):
    """One role-tagged entry of the conversation sent to the model."""

    model_config = ConfigDict(frozen=True)

    role: Role
    content: str


class DisplayEntry(BaseModel):
    """A line of the transcript shown to the player."""

    id: str = Field(default_factory=lambda: uuid.uuid4().hex)
    text: str
    created_at: datetime = Field(default_factory=utcnow)


class TrackedEntities(BaseModel):
    """Names picked out of the narrative. Append-only, deduplicated."""

    locations: list[str] = Field(default_factory=list)
    npcs: list[str] = Field(default_factory=list)
    items: list[str] = Field(default_factory=list)

    def is_empty(self) -> bool:
        return not (self.locations or self.npcs or self.items)


class SessionState(BaseModel):
    """Everything needed to restore a session: the save and undo unit."""

    display_log: list[DisplayEntry] = Field(default_factory=list)
    conversation: list[Message] = Field(default_factory=list)
    current_actions: list[str] = Field(default_factory=list)
    action_history: list[str] = Field(default_factory=list)
    tracked: TrackedEntities = Field(default_factory=TrackedEntities)


class SaveSlot(BaseModel):
    """Metadata for one named save."""

    id: str
    name: str
    saved_at: datetime
    message_count: int


class Settings(BaseModel):
    """User preferences. Loaded once at startup, persisted on every change."""

    font_size: int = Field(default=14, ge=MIN_FONT_SIZE, le=MAX_FONT_SIZE)
    streaming_enabled: bool = True
    temperature: float = Field(default=0.7, ge=0.0, le=1.0)
    detail_level: DetailLevel = "normal"
    tone: Tone = "balanced"
    auto_save_enabled: bool = True
    selected_model: str = "mistral"
    theme_id: str = "classic"
    max_context_messages: int = Field(default=0, ge=0)  # 0 = send everything


class Achievement(BaseModel):
    id: str
    title: str
    description: str
    unlocked: bool = False
    unlocked_at: datetime | None = None


class SessionStats(BaseModel):
    """Lifetime counters that survive new games."""

    actions_taken: int = 0


class RGBA(BaseModel):
    red: float
    green: float
    blue: float
    alpha: float = 1.0


class ColorTheme(BaseModel):
    id: str
    name: str
    text_color: RGBA
    background_color: RGBA


_BLACK = RGBA(red=0.0, green=0.0, blue=0.0)

THEMES: list[ColorTheme] = [
    ColorTheme(
        id="classic", name="Classic Green",
        text_color=RGBA(red=0.0, green=1.0, blue=0.0), background_color=_BLACK,
    ),
    ColorTheme(
        id="amber", name="Amber Terminal",
        text_color=RGBA(red=1.0, green=0.75, blue=0.0), background_color=_BLACK,
    ),
    ColorTheme(
        id="retroBlue", name="Retro Blue",
        text_color=RGBA(red=0.0, green=0.9, blue=1.0),
        background_color=RGBA(red=0.0, green=0.0, blue=0.2),
    ),
    ColorTheme(
        id="paper", name="Paper Mode",
        text_color=RGBA(red=0.1, green=0.1, blue=0.1),
        background_color=RGBA(red=0.98, green=0.97, blue=0.93),
    ),
    ColorTheme(
        id="hacker", name="Matrix Green",
        text_color=RGBA(red=0.0, green=1.0, blue=0.0), background_color=_BLACK,
    ),
]


def get_theme(theme_id: str) -> ColorTheme | None:
    for theme in THEMES:
        if theme.id == theme_id:
            return theme
    return None
