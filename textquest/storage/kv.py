"""Key-value backends.

Values are JSON-compatible Python objects. ``JsonFileStore`` keeps one
file per key under a base directory:

    {base}/
      settings.json
      achievements.json
      stats.json
      save_slots.json
      game_state.autosave.json
      game_state.<quoted slot id>.json

Keys are percent-quoted to form file names, so any slot id is safe.
"""

from __future__ import annotations

import json
import os
import tempfile
from pathlib import Path
from typing import Any, Protocol
from urllib.parse import quote, unquote


class KeyValueStore(Protocol):
    def get(self, key: str) -> Any | None: ...
    def set(self, key: str, value: Any) -> None: ...
    def remove(self, key: str) -> None: ...
    def keys(self) -> list[str]: ...


class JsonFileStore:
    def __init__(self, base_path: Path) -> None:
        self._base = base_path
        self._base.mkdir(parents=True, exist_ok=True)

    @property
    def base_path(self) -> Path:
        return self._base

    def _path(self, key: str) -> Path:
        return self._base / f"{quote(key, safe='')}.json"

    def get(self, key: str) -> Any | None:
        """Return the stored value, or None if the key is absent.

        A file that is not valid JSON raises ``ValueError``; callers decide
        whether that is fatal.
        """
        path = self._path(key)
        if not path.is_file():
            return None
        return json.loads(path.read_text(encoding="utf-8"))

    def set(self, key: str, value: Any) -> None:
        """Write atomically: temp file in the same directory, then rename."""
        data = json.dumps(value, indent=2, ensure_ascii=False)
        fd, tmp = tempfile.mkstemp(dir=self._base, prefix=".tmp-", suffix=".json")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(data)
            os.replace(tmp, self._path(key))
        except BaseException:
            Path(tmp).unlink(missing_ok=True)
            raise

    def remove(self, key: str) -> None:
        self._path(key).unlink(missing_ok=True)

    def keys(self) -> list[str]:
        return sorted(
            unquote(p.stem) for p in self._base.glob("*.json")
            if not p.name.startswith(".tmp-")
        )


class MemoryStore:
    """In-process store; values are round-tripped through JSON like the file store."""

    def __init__(self) -> None:
        self._data: dict[str, str] = {}

    def get(self, key: str) -> Any | None:
        raw = self._data.get(key)
        return None if raw is None else json.loads(raw)

    def set(self, key: str, value: Any) -> None:
        self._data[key] = json.dumps(value)

    def remove(self, key: str) -> None:
        self._data.pop(key, None)

    def keys(self) -> list[str]:
        return sorted(self._data)
