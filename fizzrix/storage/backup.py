"""Whole-state JSON export and import.

File format (version 1):

    {
      "version": 1,
      "exportedAt": "<ISO timestamp>",
      "settings": {...},
      "modules": [...],
      "sessions": [...]      # optional; absent in files from the browser app
    }

Import validates the entire file before writing anything. "replace"
overwrites modules and settings; "merge" shallow-merges settings and
appends modules whose ids are not already present, together with their
sessions.
"""

from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any, Literal

from pydantic import ValidationError

from fizzrix.errors import BackupError
from fizzrix.models import Backup, Module, Session, Settings

from .core import now_iso
from .migrations import upgrade_module, upgrade_session
from .settings import migrate_settings_keys

if TYPE_CHECKING:
    from . import Repository

logger = logging.getLogger(__name__)

BACKUP_VERSION = 1

ImportMode = Literal["replace", "merge"]
IMPORT_MODES = ("replace", "merge")


def export_backup(repo: Repository) -> dict[str, Any]:
    return {
        "version": BACKUP_VERSION,
        "exportedAt": now_iso(),
        "settings": repo.settings.get(),
        "modules": [m.model_dump() for m in repo.modules.list()],
        "sessions": [s.model_dump() for s in repo.sessions.list()],
    }


def backup_filename(now: datetime | None = None) -> str:
    stamp = (now or datetime.now(timezone.utc)).isoformat().replace(":", "-").replace(".", "-")
    return f"fizzrix-backup-{stamp}.json"


def parse_backup(text: str | bytes) -> Any:
    try:
        return json.loads(text)
    except (json.JSONDecodeError, UnicodeDecodeError) as e:
        raise BackupError(f"Backup file is not valid JSON: {e}") from e


def _unique(records: list, label: str) -> None:
    ids = [r.id for r in records]
    if len(ids) != len(set(ids)):
        raise BackupError(f"Backup file contains duplicate {label} ids")


def validate_backup(
    payload: Any,
) -> tuple[dict[str, Any], list[Module], list[Session] | None]:
    """Check a decoded backup file. Returns (settings, modules, sessions)."""
    if not isinstance(payload, dict):
        raise BackupError("Invalid backup file.")
    try:
        backup = Backup.model_validate(payload)
    except ValidationError as e:
        raise BackupError(f"Invalid backup file: {e.error_count()} problem(s)") from e

    try:
        settings = migrate_settings_keys(backup.settings)
        Settings.model_validate(settings)
        modules = [Module.model_validate(upgrade_module(m)) for m in backup.modules]
        sessions = None
        if backup.sessions is not None:
            sessions = [Session.model_validate(upgrade_session(s)) for s in backup.sessions]
    except ValidationError as e:
        raise BackupError(f"Invalid record in backup file: {e.error_count()} problem(s)") from e

    _unique(modules, "module")
    if sessions is not None:
        _unique(sessions, "session")
    return settings, modules, sessions


def import_backup(repo: Repository, payload: Any, mode: ImportMode = "replace") -> dict[str, Any]:
    """Apply a backup file. Raises BackupError and writes nothing if invalid."""
    if mode not in IMPORT_MODES:
        raise BackupError(f"Unknown import mode: {mode}")
    settings, modules, sessions = validate_backup(payload)

    if mode == "replace":
        repo.modules.replace_all(modules)
        repo.settings.set_all(settings)
        if sessions is not None:
            repo.sessions.replace_all(sessions)
        else:
            # Drop sessions whose module did not survive the replace
            kept_modules = {m.id for m in modules}
            current = repo.sessions.list()
            kept = [s for s in current if s.module_id in kept_modules]
            if len(kept) != len(current):
                repo.sessions.replace_all(kept)
    else:
        current_modules = repo.modules.list()
        current_ids = {m.id for m in current_modules}
        added = [m for m in modules if m.id not in current_ids]
        repo.modules.replace_all(current_modules + added)
        repo.settings.set(settings)
        if sessions is not None:
            current_sessions = repo.sessions.list()
            session_ids = {s.id for s in current_sessions}
            # Only sessions of modules that were not already present; a
            # skipped module keeps its own sessions
            new_sessions = [
                s for s in sessions
                if s.id not in session_ids and s.module_id not in current_ids
            ]
            if new_sessions:
                repo.sessions.replace_all(current_sessions + new_sessions)

    logger.info(f"Imported backup ({mode}): {len(modules)} modules in file")
    return {
        "mode": mode,
        "modules": len(repo.modules.list()),
        "sessions": len(repo.sessions.list()),
    }
