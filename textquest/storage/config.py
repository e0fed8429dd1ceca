"""User settings, achievement unlocks and lifetime stats."""

import logging
from typing import Any

from pydantic import ValidationError

from textquest.achievements import merge_catalog
from textquest.models import Achievement, SessionStats, Settings

from .kv import KeyValueStore

logger = logging.getLogger(__name__)

SETTINGS_KEY = "settings"
ACHIEVEMENTS_KEY = "achievements"
STATS_KEY = "stats"


def _read(kv: KeyValueStore, key: str) -> Any | None:
    try:
        return kv.get(key)
    except ValueError as e:
        logger.warning("Stored %s is corrupt, using defaults: %s", key, e)
        return None


def get_settings(kv: KeyValueStore) -> Settings:
    """Read settings, returning defaults merged with stored values.

    Stored fields that no longer validate are dropped one by one so a
    single bad value does not reset everything else.
    """
    stored = _read(kv, SETTINGS_KEY)
    if not isinstance(stored, dict):
        return Settings()
    merged: dict[str, Any] = {}
    for field, value in stored.items():
        if field not in Settings.model_fields:
            continue
        try:
            Settings.model_validate({field: value})
        except ValidationError:
            logger.warning("Ignoring invalid stored setting %s=%r", field, value)
            continue
        merged[field] = value
    return Settings.model_validate(merged)


def save_settings(kv: KeyValueStore, settings: Settings) -> None:
    kv.set(SETTINGS_KEY, settings.model_dump(mode="json"))


def get_achievements(kv: KeyValueStore) -> list[Achievement]:
    stored = _read(kv, ACHIEVEMENTS_KEY)
    if not isinstance(stored, list):
        stored = []
    return merge_catalog(e for e in stored if isinstance(e, dict))


def save_achievements(kv: KeyValueStore, achievements: list[Achievement]) -> None:
    kv.set(ACHIEVEMENTS_KEY, [a.model_dump(mode="json") for a in achievements])


def get_stats(kv: KeyValueStore) -> SessionStats:
    stored = _read(kv, STATS_KEY)
    try:
        return SessionStats.model_validate(stored or {})
    except ValidationError as e:
        logger.warning("Stored stats failed validation, resetting: %s", e)
        return SessionStats()


def save_stats(kv: KeyValueStore, stats: SessionStats) -> None:
    kv.set(STATS_KEY, stats.model_dump(mode="json"))
