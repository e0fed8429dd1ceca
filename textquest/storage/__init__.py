"""Persistence for sessions, save slots, settings and achievements.

Everything goes through a small key-value interface (get / set / remove /
keys). The default backend keeps one JSON file per key; tests use the
in-memory backend.

Saves: ``save_game`` writes the session blob before the slot record so an
interrupted save never leaves metadata pointing at missing data. Reads of
missing or corrupt data return None / defaults instead of raising.

Config: ``get_settings`` returns defaults merged with stored values;
``get_achievements`` overlays stored unlocks on the fixed catalog.
"""

# Re-export all public symbols so `from textquest import storage` keeps working.

from .kv import (  # noqa: F401
    JsonFileStore,
    KeyValueStore,
    MemoryStore,
)

from .saves import (  # noqa: F401
    SLOTS_KEY,
    SaveStore,
    state_key,
)

from .config import (  # noqa: F401
    ACHIEVEMENTS_KEY,
    SETTINGS_KEY,
    STATS_KEY,
    get_achievements,
    get_settings,
    get_stats,
    save_achievements,
    save_settings,
    save_stats,
)
