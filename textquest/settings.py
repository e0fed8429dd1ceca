"""Settings ownership and process environment.

``SettingsManager`` is the one place settings change: every mutation is
validated, persisted and announced to listeners. The engine receives the
manager at construction instead of reading global state.

``EnvConfig`` holds deployment values read from the environment (and a
``.env`` file), which are not user preferences and are never persisted.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from dotenv import load_dotenv
from pydantic import ValidationError

from textquest import storage
from textquest.events import EventEmitter, Events
from textquest.models import MAX_FONT_SIZE, MIN_FONT_SIZE, ColorTheme, Settings, get_theme

logger = logging.getLogger(__name__)

FONT_SIZE_STEP = 2


@dataclass(frozen=True)
class EnvConfig:
    model_url: str = "http://localhost:11434"
    provider_format: str = "ollama"
    api_key: str = ""
    data_dir: Path = Path("data")
    host: str = "127.0.0.1"
    port: int = 13013

    @classmethod
    def from_env(cls, dotenv_path: Path | None = None) -> EnvConfig:
        load_dotenv(dotenv_path or Path.cwd() / ".env")
        return cls(
            model_url=os.getenv("TEXTQUEST_MODEL_URL", cls.model_url),
            provider_format=os.getenv("TEXTQUEST_PROVIDER", cls.provider_format),
            api_key=os.getenv("TEXTQUEST_API_KEY", cls.api_key),
            data_dir=Path(os.getenv("TEXTQUEST_DATA_DIR", str(cls.data_dir))),
            host=os.getenv("HOST", cls.host),
            port=int(os.getenv("PORT", str(cls.port))),
        )


class SettingsManager:
    def __init__(self, kv: storage.KeyValueStore, events: EventEmitter | None = None) -> None:
        self._kv = kv
        self._events = events or EventEmitter()
        self._settings = storage.get_settings(kv)

    @property
    def settings(self) -> Settings:
        """Current settings. Treat as read-only; change them through update()."""
        return self._settings

    @property
    def theme(self) -> ColorTheme:
        return get_theme(self._settings.theme_id) or get_theme("classic")

    def update(self, **fields: Any) -> Settings:
        """Validate, apply and persist a partial update.

        Raises ``ValueError`` for unknown fields or invalid values, leaving
        the current settings untouched.
        """
        unknown = set(fields) - set(Settings.model_fields)
        if unknown:
            raise ValueError(f"Unknown settings: {', '.join(sorted(unknown))}")
        if "theme_id" in fields and get_theme(fields["theme_id"]) is None:
            raise ValueError(f"Unknown theme: {fields['theme_id']}")
        try:
            updated = Settings.model_validate({**self._settings.model_dump(), **fields})
        except ValidationError as e:
            raise ValueError(str(e)) from e
        if updated == self._settings:
            return self._settings
        self._settings = updated
        storage.save_settings(self._kv, updated)
        logger.info("Settings updated: %s", ", ".join(sorted(fields)))
        self._events.emit(Events.SETTINGS_CHANGED, settings=updated, changed=sorted(fields))
        return updated

    def set_theme(self, theme_id: str) -> Settings:
        return self.update(theme_id=theme_id)

    def increase_font_size(self) -> Settings:
        size = min(self._settings.font_size + FONT_SIZE_STEP, MAX_FONT_SIZE)
        return self.update(font_size=size)

    def decrease_font_size(self) -> Settings:
        size = max(self._settings.font_size - FONT_SIZE_STEP, MIN_FONT_SIZE)
        return self.update(font_size=size)
