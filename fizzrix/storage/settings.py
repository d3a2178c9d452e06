"""Flat UI settings (theme, font size, accessibility toggles)."""

from pathlib import Path
from typing import Any

from fizzrix.models import Settings

from .core import read_json, write_json

_SETTINGS_DEFAULTS: dict[str, Any] = Settings().model_dump()

# Keys written by the browser-only app
_LEGACY_KEYS = {
    "highContrast": "high_contrast",
    "fontSize": "font_size",
    "reducedMotion": "reduced_motion",
    "compactMode": "compact_mode",
}


def migrate_settings_keys(stored: dict[str, Any]) -> dict[str, Any]:
    result = dict(stored)
    for old, new in _LEGACY_KEYS.items():
        if old in result:
            value = result.pop(old)
            result.setdefault(new, value)
    return result


class SettingsStore:
    def __init__(self, data_dir: Path) -> None:
        self.path = data_dir / "settings.json"

    def _write(self, settings: dict[str, Any]) -> dict[str, Any]:
        validated = Settings.model_validate(settings).model_dump()
        write_json(self.path, validated)
        return validated

    def get(self) -> dict[str, Any]:
        """Read settings, returning defaults merged with stored values."""
        settings = dict(_SETTINGS_DEFAULTS)
        stored = read_json(self.path, {})
        if isinstance(stored, dict):
            settings.update(migrate_settings_keys(stored))
        return Settings.model_validate(settings).model_dump()

    def set(self, updates: dict[str, Any]) -> dict[str, Any]:
        """Shallow-merge updates into the current settings and persist."""
        settings = self.get()
        settings.update(migrate_settings_keys(updates))
        return self._write(settings)

    def reset(self) -> dict[str, Any]:
        return self._write(dict(_SETTINGS_DEFAULTS))

    def set_all(self, settings: dict[str, Any] | None) -> dict[str, Any]:
        """Replace settings wholesale (missing keys fall back to defaults)."""
        merged = dict(_SETTINGS_DEFAULTS)
        merged.update(migrate_settings_keys(settings or {}))
        return self._write(merged)
