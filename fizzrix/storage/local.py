"""Local string key-value store (UI preferences and legacy data)."""

import threading
from pathlib import Path

from .core import read_json, write_json

ACTIVE_MODULE_KEY = "fizzrix.dashboard.activeModule"
ACTIVE_SESSION_KEY = "fizzrix.dashboard.activeSession"
REORDER_KEY = "fizzrix.dashboard.reorder"  # "drag" | "arrows"
LEGACY_DASHBOARD_KEY = "fizzrix.dashboard.v1"


class LocalStore:
    """Synchronous get/set/remove over `local.json`.

    Values are always strings. Nothing authoritative lives here: only
    per-device preferences and the pre-sessions dashboard list awaiting
    migration.
    """

    def __init__(self, data_dir: Path) -> None:
        self.path = data_dir / "local.json"
        self._lock = threading.Lock()

    def _read(self) -> dict[str, str]:
        return read_json(self.path, {})

    def get(self, key: str) -> str | None:
        return self._read().get(key)

    def set(self, key: str, value: str) -> None:
        if not isinstance(value, str):
            raise TypeError(f"LocalStore values must be strings, got {type(value).__name__}")
        with self._lock:
            data = self._read()
            data[key] = value
            write_json(self.path, data)

    def remove(self, key: str) -> None:
        with self._lock:
            data = self._read()
            if key in data:
                del data[key]
                write_json(self.path, data)

    def keys(self) -> list[str]:
        return list(self._read())
