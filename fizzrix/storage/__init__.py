"""File-based JSON storage.

Data layout:
  data/
    modules.json     Module records (content tree embedded)
    sessions.json    Session records, each referencing a module by module_id
    settings.json    Flat UI settings
    local.json       Per-device string preferences and legacy dashboard data

Modules are saved by whole-document replace; sessions by field-level patch.
Both carry `schema_version`; older records are upgraded once at startup and
on every read (see migrations.py).

`Repository` is built once per data directory and handed to whatever needs
storage. Nothing in this package keeps module-level state.
"""

import logging
from pathlib import Path

from .core import Collection, new_id, now_iso  # noqa: F401
from .local import LocalStore
from .migrations import needs_upgrade, upgrade_module, upgrade_session
from .modules import ModuleStore
from .sessions import SessionChange, SessionStore  # noqa: F401
from .settings import SettingsStore

logger = logging.getLogger(__name__)


class Repository:
    def __init__(self, data_dir: Path) -> None:
        self.data_dir = Path(data_dir)
        self.data_dir.mkdir(parents=True, exist_ok=True)
        self._module_records = Collection(self.data_dir, "modules")
        self._session_records = Collection(self.data_dir, "sessions")
        self.local = LocalStore(self.data_dir)
        self.modules = ModuleStore(self._module_records)
        self.sessions = SessionStore(self._session_records, self.local)
        self.settings = SettingsStore(self.data_dir)
        self.migrate()

    def migrate(self) -> None:
        """Upgrade stored records to the current schema, then convert legacy dashboards."""
        for collection, upgrade in (
            (self._module_records, upgrade_module),
            (self._session_records, upgrade_session),
        ):
            with collection.transaction():
                records = collection.list()
                stale = sum(1 for r in records if needs_upgrade(r))
                if stale:
                    collection.replace_all([upgrade(r) for r in records])
                    logger.info(f"Upgraded {stale} {collection.name} records to current schema")
        self.sessions.migrate_legacy_dashboard()

    def remove_module(self, module_id: str) -> bool:
        """Delete a module and every session that belongs to it."""
        removed = self.modules.remove(module_id)
        self.sessions.remove_by_module(module_id)
        return removed
